# dispatch_display/directions.py

import logging
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from dispatch_display.parser import is_coordinate_location

logger = logging.getLogger(__name__)

DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
STATIC_MAP_URL = "https://maps.googleapis.com/maps/api/staticmap"

# statuses meaning the provider worked but found nothing to route to
NO_ROUTE_STATUSES = ("ZERO_RESULTS", "NOT_FOUND")

Coordinate = Tuple[float, float]
Destination = Union[Coordinate, str]


class DirectionsError(Exception):
    """The directions provider failed or answered with something unusable"""


def destination_for(location: str, address_suffix: str = "") -> Destination:
    if is_coordinate_location(location):
        parts = location.split(",")
        if len(parts) == 2:
            return (float(parts[0]), float(parts[1]))
    return location + (address_suffix or "")


def _format_point(point: Destination) -> str:
    if isinstance(point, tuple):
        return f"{point[0]},{point[1]}"
    return point


def static_map_base(key: str) -> str:
    return f"{STATIC_MAP_URL}?&maptype=roadmap&scale=2&key={key}"


def static_map_url(base: str, polyline: str, end_location: Dict[str, Any], label: Optional[str]) -> str:
    markers = f"&markers=color:red|label:{label or 'X'}|{end_location.get('lat')},{end_location.get('lng')}"
    return f"{base}&path=enc:{quote(polyline, safe='')}{markers}"


class DirectionsClient:
    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        url: str = DIRECTIONS_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.timeout = timeout
        self.url = url
        self.transport = transport

    async def directions(self, origin: Coordinate, destination: Destination) -> Dict[str, Any]:
        params = {
            "origin": _format_point(origin),
            "destination": _format_point(destination),
            "mode": "driving",
            "key": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(self.url, params=params)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise DirectionsError(f"directions request failed: {e}") from e
        except ValueError as e:
            raise DirectionsError(f"directions response was not JSON: {e}") from e
        if not isinstance(body, dict):
            raise DirectionsError("directions response was not an object")
        return body

    __call__ = directions


def build_directions_result(
    call: Dict[str, Any],
    response: Dict[str, Any],
    max_route_meters: float,
    map_base: str = "",
) -> Optional[Dict[str, Any]]:
    """
    Turn a provider response into the ``directions`` event for a call.

    Returns None when there is no usable route or when the route is so long
    that the provider evidently matched the wrong place. Raises
    DirectionsError when the provider reports an error status (bad key,
    quota, invalid request) or an OK response is missing the expected
    structure.
    """
    status = response.get("status")
    if status in NO_ROUTE_STATUSES:
        logger.info(f"No directions for call {call.get('callNumber')}: status {status}")
        return None
    if status != "OK":
        raise DirectionsError(f"directions status {status}: {response.get('error_message')}")
    routes = response.get("routes") or []
    if not routes or not routes[0].get("legs"):
        logger.info(f"No route for call {call.get('callNumber')}")
        return None

    route = routes[0]
    leg = route["legs"][0]
    try:
        distance = float(leg["distance"]["value"])
        end_location = dict(leg["end_location"])
        polyline = route["overview_polyline"]["points"]
    except (KeyError, TypeError, ValueError) as e:
        raise DirectionsError(f"malformed directions response for call {call.get('callNumber')}: {e}") from e

    # must be closer than the ceiling or the provider found some other match
    if distance >= max_route_meters:
        logger.warning(
            f"Discarding directions for call {call.get('callNumber')}: "
            f"{distance:.0f} m exceeds {max_route_meters:.0f} m"
        )
        return None

    return {
        "callNumber": call.get("callNumber"),
        "area": call.get("area"),
        "routeSummary": {
            "distanceMeters": distance,
            "distanceText": (leg.get("distance") or {}).get("text"),
            "durationText": (leg.get("duration") or {}).get("text"),
            "summary": route.get("summary"),
            "endLocation": end_location,
        },
        "mapUrl": static_map_url(map_base, polyline, end_location, call.get("dispatchCode")),
        "response": response,
        "cached": False,
    }
