import unittest

from dispatch_display.stations import (
    DEFAULT_STATIONS,
    AreaDirectory,
    InvalidStationError,
    Station,
    build_stations,
)

from fakes import make_directory


class StationMatchTests(unittest.TestCase):
    def test_regex_rule_searches_address(self):
        station = Station(id="MESA", area="MESA", lat=1.0, lng=2.0, match=r"192\.168\.1\.[0-9]+")
        self.assertTrue(station.matches("192.168.1.10"))
        self.assertTrue(station.matches("::ffff:192.168.1.10"))
        self.assertFalse(station.matches("192.168.3.10"))
        self.assertFalse(station.matches(""))

    def test_cidr_rule(self):
        station = Station(id="CES1", area="CES", lat=1.0, lng=2.0, match="10.51.1.0/24")
        self.assertTrue(station.matches("10.51.1.77"))
        self.assertTrue(station.matches("::ffff:10.51.1.77"))
        self.assertFalse(station.matches("10.52.1.77"))
        self.assertFalse(station.matches("not-an-ip"))

    def test_invalid_rules_rejected(self):
        with self.assertRaises(InvalidStationError):
            Station(id="X", area="X", lat=1.0, lng=2.0, match="10.0.0.0/99")
        with self.assertRaises(InvalidStationError):
            Station(id="X", area="X", lat=1.0, lng=2.0, match="(unclosed")
        with self.assertRaises(InvalidStationError):
            Station(id="X", area="X", lat=1.0, lng=2.0, match="")


class BuildStationsTests(unittest.TestCase):
    def test_missing_field(self):
        with self.assertRaises(InvalidStationError):
            build_stations([{"id": "A", "area": "A", "lat": 1.0, "match": ".*"}])

    def test_duplicate_ids(self):
        entry = {"id": "A", "area": "A", "lat": 1.0, "lng": 2.0, "match": ".*"}
        with self.assertRaises(InvalidStationError):
            build_stations([entry, dict(entry)])

    def test_legacy_regex_key_and_lon(self):
        stations = build_stations([{"id": "A", "area": "AREA", "lat": "1.5", "lon": "2.5", "ip_match_regex": "::1"}])
        self.assertEqual(stations[0].lng, 2.5)
        self.assertTrue(stations[0].matches("::1"))

    def test_default_table_loads(self):
        directory = AreaDirectory.from_config(None)
        self.assertEqual(len(directory.stations), len(DEFAULT_STATIONS))


class AreaDirectoryTests(unittest.TestCase):
    def setUp(self):
        self.directory = AreaDirectory.from_config(None)

    def test_address_resolves_to_every_matching_station(self):
        ids = [s.id for s in self.directory.resolve_stations_for_address("10.0.3.5")]
        self.assertEqual(ids, ["TEST1", "APFSA0", "CES0", "KESA0", "KFD0", "NFSA0"])

    def test_address_with_single_station(self):
        stations = self.directory.resolve_stations_for_address("10.53.1.9")
        self.assertEqual([s.id for s in stations], ["CES3"])

    def test_unknown_address(self):
        self.assertEqual(self.directory.resolve_stations_for_address("192.192.192.192"), [])

    def test_stations_in_area(self):
        self.assertEqual(len(self.directory.stations_in_area("CES")), 7)
        self.assertEqual(self.directory.stations_in_area("NOPE"), [])

    def test_find_station_by_id(self):
        self.assertEqual(self.directory.find_station_by_id("KESA1").area, "KESA")
        self.assertIsNone(self.directory.find_station_by_id("NOPE"))

    def test_areas_in_order(self):
        self.assertEqual(make_directory().areas(), ["MESA", "NSA"])


if __name__ == "__main__":
    unittest.main()
