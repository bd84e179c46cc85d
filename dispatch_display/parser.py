# dispatch_display/parser.py

import copy
import re
from typing import Any, Dict, Optional

COORDINATE_RE = re.compile(r"^[0-9,.-]+$")

OPTIONAL_FIELDS = (
    "crossStreets",
    "venue",
    "commonName",
    "callInfo",
    "ccText",
    "breathing",
    "conscious",
    "locationType",
    "response",
)

CALL_DEFAULTS: Dict[str, Any] = {
    "callNumber": None,
    "callDateTime": None,
    "callType": "Unknown",
    "callInfo": "",
    "ccText": "",
    "breathing": "Unknown",
    "conscious": "Unknown",
    "area": None,
    "dispatchDateTime": None,
    "dispatchCode": "?",  # severity level
    "location": None,
    "crossStreets": None,
    "venue": None,
    "commonName": None,
    "valid": False,
}


def is_coordinate_location(location: Optional[str]) -> bool:
    """True when the location is a bare "lat,lng" pair rather than a street address."""
    return bool(location) and COORDINATE_RE.match(location) is not None


def _trim_fraction(value: str) -> str:
    if "." not in value:
        return value
    return value.rstrip("0").rstrip(".")


def normalize_location(location: str) -> str:
    if not is_coordinate_location(location):
        return location
    parts = location.split(",")
    if len(parts) != 2:
        return location
    return ",".join(_trim_fraction(p) for p in parts)


def parse_call_type(raw: str) -> str:
    # call type is prefixed by some number and a dash
    parts = raw.split("-")
    if len(parts) > 1:
        parts.pop(0)
    return "-".join(parts)


def parse_dispatch_code(raw: str) -> str:
    m = re.search(r"[A-Z]", raw)
    return m.group(0) if m else "?"


def _extract_area(body: Dict[str, Any]) -> str:
    area = body.get("area") or body.get("station")
    if not area and body.get("district"):
        # district is prefixed by the station abbreviation
        area = str(body["district"]).split(" ")[0]
    if not area:
        raise ValueError("no area")
    return str(area).strip()


def parse(body: Any) -> Dict[str, Any]:
    """
    Normalize a payload posted by the 911 system into a call record.

    Never raises: anything unusable in the required fields comes back as the
    default record with ``valid`` set to False.
    """
    data = copy.deepcopy(CALL_DEFAULTS)
    try:
        # must haves
        call_number = body["callNumber"]
        if call_number is None or str(call_number).strip() == "":
            raise ValueError("no callNumber")
        data["callNumber"] = str(call_number).strip()
        data["area"] = _extract_area(body)
        data["callType"] = parse_call_type(body["callType"])
        data["dispatchCode"] = parse_dispatch_code(body["dispatchCode"])

        data["callDateTime"] = body.get("callDateTime")
        data["dispatchDateTime"] = body.get("dispatchDateTime") or body.get("DispatchDateTime")

        # might haves
        location = body.get("location")
        if location:
            data["location"] = normalize_location(str(location).strip())
        for name in OPTIONAL_FIELDS:
            if body.get(name):
                data[name] = body[name]

        data["valid"] = True
    except Exception:
        return copy.deepcopy(CALL_DEFAULTS)

    return data
