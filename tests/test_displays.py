import unittest

from dispatch_display.displays import ConnectionRegistry

from fakes import FakeClock, make_directory


class ConnectionRegistryTests(unittest.TestCase):
    def setUp(self):
        self.directory = make_directory([
            {"id": "MESA", "area": "MESA", "lat": 1.0, "lng": 2.0, "match": r"192\.168\.1\."},
            {"id": "MESA2", "area": "MESA", "lat": 1.0, "lng": 2.0, "match": r"192\.168\.1\.1"},
            {"id": "NSA", "area": "NSA", "lat": 1.0, "lng": 2.0, "match": r"192\.168\.[13]\."},
        ])
        self.clock = FakeClock(50.0)
        self.registry = ConnectionRegistry(clock=self.clock)

    def register(self, address, session=None):
        stations = self.directory.resolve_stations_for_address(address)
        return self.registry.register(address, stations, session=session)

    def test_register_and_unregister(self):
        entry = self.register("192.168.1.10")
        self.assertEqual(entry.station_ids(), ["MESA", "MESA2", "NSA"])
        self.assertEqual(entry.areas(), ["MESA", "NSA"])
        self.assertEqual(entry.since, 50.0)
        self.assertEqual(len(self.registry), 1)
        self.registry.unregister("192.168.1.10")
        self.assertEqual(len(self.registry), 0)
        self.assertIsNone(self.registry.unregister("192.168.1.10"))

    def test_last_connection_wins(self):
        old_session, new_session = object(), object()
        self.register("192.168.1.10", old_session)
        self.register("192.168.1.10", new_session)
        self.assertEqual(len(self.registry), 1)
        self.assertIsNone(self.registry.unregister("192.168.1.10", old_session))
        self.assertIs(self.registry.get("192.168.1.10").session, new_session)
        self.registry.unregister("192.168.1.10", new_session)
        self.assertEqual(len(self.registry), 0)

    def test_connections_for_area(self):
        self.register("192.168.1.10")
        self.register("192.168.3.10")
        mesa = [e.peer_address for e in self.registry.connections_for_area("MESA")]
        nsa = [e.peer_address for e in self.registry.connections_for_area("NSA")]
        self.assertEqual(mesa, ["192.168.1.10"])
        self.assertEqual(sorted(nsa), ["192.168.1.10", "192.168.3.10"])
        self.assertEqual(self.registry.connections_for_area("KESA"), [])

    def test_one_post_per_call_number(self):
        entry = self.register("192.168.1.10")
        self.registry.record_post(entry, "call", "1")
        self.clock.advance(5)
        self.registry.record_post(entry, "call", "1")
        self.registry.record_post(entry, "directions", "1")
        self.assertEqual(len(entry.posts), 1)
        post = entry.posts[0].to_dict()
        self.assertEqual(post["type"], "call")
        self.assertEqual(post["call_sent"], 55.0)
        self.assertEqual(post["directions_sent"], 55.0)
        self.assertNotIn("call_ack", post)

    def test_record_ack(self):
        entry = self.register("192.168.1.10")
        self.registry.record_post(entry, "call", "1")
        self.clock.advance(2)
        self.registry.record_ack(entry, "call", "1")
        self.assertEqual(entry.posts[0].to_dict()["call_ack"], 52.0)
        self.assertIsNone(self.registry.record_ack(entry, "call", "unknown"))

    def test_recent_posts_reverse_chronological(self):
        entry = self.register("192.168.1.10")
        for n in range(4):
            self.registry.record_post(entry, "call", str(n))
        self.assertEqual([p.call_number for p in entry.recent_posts(2)], ["3", "2"])
        self.assertEqual(len(entry.to_dict(posts_limit=3)["posts"]), 3)


if __name__ == "__main__":
    unittest.main()
