# dispatch_display/stations.py
"""
Area directory: which stations exist, where they are, and which
network addresses may speak for them.

A station's ``match`` rule is either a CIDR network (``10.0.3.0/24``)
or a regular expression searched against the textual peer address.
One peer may match several stations (redundant displays on a shared
uplink) and then receives the calls of every area among them.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

# Kenai Peninsula service areas. Origins are the station coordinates used for
# driving directions; the 10.0.[134].x block is the dispatch center itself.
DEFAULT_STATIONS: List[Dict[str, Any]] = [
    {"id": "TEST1", "area": "TEST", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.0\.[134]\.[0-9]+|::1"},
    {"id": "APFSA0", "area": "APFSA", "lat": 59.7796476, "lng": -151.8342569, "match": r"10\.0\.[134]\.[0-9]+|::1"},
    {"id": "APFSA1", "area": "APFSA", "lat": 59.7796476, "lng": -151.8342569, "match": r"10\.81\.1\.[0-9]+"},
    {"id": "APFSA2", "area": "APFSA", "lat": 59.7796476, "lng": -151.8342569, "match": r"10\.82\.1\.[0-9]+"},
    {"id": "CES0", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.0\.[134]\.[0-9]+|::1"},
    {"id": "CES1", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.51\.1\.[0-9]+"},
    {"id": "CES2", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.52\.1\.[0-9]+"},
    {"id": "CES3", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.53\.1\.[0-9]+"},
    {"id": "CES4", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.54\.1\.[0-9]+"},
    {"id": "CES5", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.55\.1\.[0-9]+"},
    {"id": "CES6", "area": "CES", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.56\.1\.[0-9]+"},
    {"id": "KESA0", "area": "KESA", "lat": 59.74515, "lng": -151.258885, "match": r"10\.0\.[134]\.[0-9]+|::1"},
    {"id": "KESA1", "area": "KESA", "lat": 59.74515, "lng": -151.258885, "match": r"10\.111\.1\.[0-9]+"},
    {"id": "KESA2", "area": "KESA", "lat": 59.74515, "lng": -151.258885, "match": r"10\.112\.1\.[0-9]+"},
    {"id": "KFD0", "area": "KFD", "lat": 60.4829661, "lng": -151.0722942, "match": r"10\.0\.[134]\.[0-9]+|::1"},
    {"id": "NFSA0", "area": "NFSA", "lat": 60.6293049, "lng": -151.341654, "match": r"10\.0\.[134]\.[0-9]+|::1"},
    {"id": "NFSA1", "area": "NFSA", "lat": 60.6293049, "lng": -151.341654, "match": r"10\.71\.[12]\.[0-9]+"},
    {"id": "NFSA2", "area": "NFSA", "lat": 60.6293049, "lng": -151.341654, "match": r"10\.72\.[12]\.[0-9]+"},
]


class InvalidStationError(Exception):
    """Raised when a station entry in the configuration is unusable"""


def _looks_like_cidr(rule: str) -> bool:
    return "/" in rule and re.fullmatch(r"[0-9A-Fa-f:.]+/\d{1,3}", rule) is not None


@dataclass(frozen=True)
class Station:
    id: str
    area: str
    lat: float
    lng: float
    match: str
    _network: Optional[IPNetwork] = field(default=None, repr=False, compare=False)
    _pattern: Optional[re.Pattern] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not self.id or not self.area:
            raise InvalidStationError(f"Station {self.id!r} must have an id and an area")
        if not self.match:
            raise InvalidStationError(f"Station {self.id} has no address match rule")
        if _looks_like_cidr(self.match):
            try:
                network = ipaddress.ip_network(self.match, strict=False)
            except ValueError as e:
                raise InvalidStationError(f"Station {self.id} has an invalid network {self.match}: {e}") from e
            object.__setattr__(self, "_network", network)
        else:
            try:
                pattern = re.compile(self.match)
            except re.error as e:
                raise InvalidStationError(f"Station {self.id} has an invalid pattern {self.match}: {e}") from e
            object.__setattr__(self, "_pattern", pattern)

    def matches(self, address: Optional[str]) -> bool:
        if not address:
            return False
        text = str(address)
        if self._network is not None:
            try:
                ip = ipaddress.ip_address(text)
            except ValueError:
                return False
            # ::ffff:10.0.3.5 style peers should match an IPv4 network
            if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
                ip = ip.ipv4_mapped
            return ip.version == self._network.version and ip in self._network
        return self._pattern.search(text) is not None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "area": self.area, "lat": self.lat, "lng": self.lng}


def build_stations(raw: Iterable[Dict[str, Any]]) -> List[Station]:
    result: List[Station] = []
    seen = set()
    for idx, entry in enumerate(raw or []):
        if not isinstance(entry, dict):
            raise InvalidStationError(f"Station #{idx} must be a mapping")
        try:
            station = Station(
                id=str(entry["id"]),
                area=str(entry.get("area") or entry["id"]),
                lat=float(entry["lat"]),
                lng=float(entry["lng"] if entry.get("lng") is not None else entry["lon"]),
                match=str(entry.get("match") or entry.get("ip_match_regex") or ""),
            )
        except KeyError as e:
            raise InvalidStationError(f"Station #{idx} missing required field: {e}") from e
        except (TypeError, ValueError) as e:
            raise InvalidStationError(f"Station #{idx} has an invalid coordinate: {e}") from e
        if station.id in seen:
            raise InvalidStationError(f"Duplicate station id {station.id}")
        seen.add(station.id)
        result.append(station)
    return result


class AreaDirectory:
    """Static registry of stations, queried by id, area or peer address."""

    def __init__(self, stations: Iterable[Station]):
        self.stations: List[Station] = list(stations)

    @classmethod
    def from_config(cls, raw: Optional[Iterable[Dict[str, Any]]]) -> "AreaDirectory":
        return cls(build_stations(raw or DEFAULT_STATIONS))

    def resolve_stations_for_address(self, address: Optional[str]) -> List[Station]:
        return [s for s in self.stations if s.matches(address)]

    def stations_in_area(self, area: Optional[str]) -> List[Station]:
        return [s for s in self.stations if s.area == area]

    def find_station_by_id(self, station_id: Optional[str]) -> Optional[Station]:
        for station in self.stations:
            if station.id == station_id:
                return station
        return None

    def areas(self) -> List[str]:
        seen: List[str] = []
        for station in self.stations:
            if station.area not in seen:
                seen.append(station.area)
        return seen
