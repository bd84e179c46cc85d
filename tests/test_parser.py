import copy
import unittest

from dispatch_display.parser import is_coordinate_location, normalize_location, parse

SAMPLE = {
    "location": "144 N BINKLEY ST",
    "venue": "SOLDOTNA",
    "crossStreets": "N BINKLY ST / PARK ST",
    "area": "CES",
    "commonName": "Admin Building",
    "callNumber": "4448",
    "callType": "43-Caffeine Withdrawal",
    "callDateTime": "09/25/2017 08:44:34",
    "dispatchDateTime": "09/25/2017 08:47:47",
    "dispatchCode": "25C01",
    "callInfo": "43 year old, male, breathing, conscious.",
    "ccText": "shakes and convulsions",
}


def sample(**overrides):
    body = copy.deepcopy(SAMPLE)
    body.update(overrides)
    return body


class ParseValidityTests(unittest.TestCase):
    def test_valid_when_parsed_ok(self):
        self.assertTrue(parse(SAMPLE)["valid"])

    def test_invalid_when_not_parsable(self):
        self.assertFalse(parse({"foo": "bar"})["valid"])

    def test_invalid_when_missing_required_data(self):
        data = parse(sample(callNumber=None, callType=None))
        self.assertFalse(data["valid"])

    def test_missing_call_number_or_call_type_never_raises(self):
        for missing in ("callNumber", "callType"):
            body = sample()
            del body[missing]
            self.assertFalse(parse(body)["valid"], missing)
        self.assertFalse(parse(sample(callNumber=""))["valid"])

    def test_non_mapping_payloads_are_invalid(self):
        for body in (None, [], "text", 42):
            self.assertFalse(parse(body)["valid"])

    def test_invalid_call_keeps_only_defaults(self):
        data = parse(sample(dispatchCode=None))
        self.assertFalse(data["valid"])
        self.assertIsNone(data["callNumber"])
        self.assertIsNone(data["area"])
        self.assertEqual(data["callType"], "Unknown")
        self.assertEqual(data["dispatchCode"], "?")


class ParseFieldTests(unittest.TestCase):
    def test_call_type_prefix_is_removed(self):
        self.assertEqual(parse(SAMPLE)["callType"], "Caffeine Withdrawal")

    def test_call_type_without_dash_is_unchanged(self):
        self.assertEqual(parse(sample(callType="NoDash"))["callType"], "NoDash")

    def test_call_type_keeps_later_dashes(self):
        self.assertEqual(parse(sample(callType="10-Fall-Ground Level"))["callType"], "Fall-Ground Level")

    def test_letter_extracted_from_dispatch_code(self):
        self.assertEqual(parse(SAMPLE)["dispatchCode"], "C")

    def test_dispatch_code_without_letter_is_unknown(self):
        data = parse(sample(dispatchCode="12345"))
        self.assertTrue(data["valid"])
        self.assertEqual(data["dispatchCode"], "?")

    def test_trailing_zeros_removed_from_latlng(self):
        data = parse(sample(location="60.12340000000,-151.93840000000"))
        self.assertEqual(data["location"], "60.1234,-151.9384")

    def test_street_address_is_unchanged(self):
        self.assertEqual(parse(SAMPLE)["location"], "144 N BINKLEY ST")

    def test_optional_fields_copied_when_present(self):
        data = parse(sample(breathing="Yes", conscious="No"))
        self.assertEqual(data["venue"], "SOLDOTNA")
        self.assertEqual(data["commonName"], "Admin Building")
        self.assertEqual(data["ccText"], "shakes and convulsions")
        self.assertEqual(data["breathing"], "Yes")
        self.assertEqual(data["conscious"], "No")

    def test_absent_optional_fields_keep_defaults(self):
        body = sample()
        for name in ("location", "venue", "ccText", "crossStreets"):
            del body[name]
        data = parse(body)
        self.assertTrue(data["valid"])
        self.assertIsNone(data["location"])
        self.assertIsNone(data["venue"])
        self.assertEqual(data["ccText"], "")
        self.assertEqual(data["breathing"], "Unknown")

    def test_area_falls_back_to_station_and_district(self):
        body = sample()
        del body["area"]
        body["station"] = "KESA"
        self.assertEqual(parse(body)["area"], "KESA")
        del body["station"]
        body["district"] = "NFSA NIKISKI"
        self.assertEqual(parse(body)["area"], "NFSA")

    def test_old_dispatch_datetime_casing(self):
        body = sample()
        del body["dispatchDateTime"]
        body["DispatchDateTime"] = "09/25/2017 08:47:47"
        self.assertEqual(parse(body)["dispatchDateTime"], "09/25/2017 08:47:47")

    def test_call_number_is_text(self):
        self.assertEqual(parse(sample(callNumber=4448))["callNumber"], "4448")


class LocationTests(unittest.TestCase):
    def test_coordinate_detection(self):
        self.assertTrue(is_coordinate_location("60.50,-151.10"))
        self.assertFalse(is_coordinate_location("144 N BINKLEY ST"))
        self.assertFalse(is_coordinate_location(""))
        self.assertFalse(is_coordinate_location(None))

    def test_whole_numbers_keep_their_zeros(self):
        self.assertEqual(normalize_location("60,-150"), "60,-150")
        self.assertEqual(normalize_location("60.000,-150.500"), "60,-150.5")


if __name__ == "__main__":
    unittest.main()
