# dispatch_display/router.py

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from dispatch_display.directions import build_directions_result, destination_for
from dispatch_display.displays import ConnectionEntry, ConnectionRegistry
from dispatch_display.history import CallHistory, HistoryEntry
from dispatch_display.parser import parse
from dispatch_display.stations import AreaDirectory, Station

logger = logging.getLogger(__name__)

Fetcher = Callable[[Tuple[float, float], Any], Awaitable[Dict[str, Any]]]
ErrorReporter = Callable[[BaseException, Dict[str, Any]], None]


def report_to_log(exc: BaseException, context: Dict[str, Any]) -> None:
    logger.error(f"Directions lookup failed for call {context.get('callNumber')}: {exc}", exc_info=exc)


class DispatchRouter:
    """
    Routes calls from the 911 feed to the displays of the area they belong to.

    Owns the call history and the connection registry; nothing else mutates
    them. Directions lookups run as background tasks so the feed gets its
    answer as soon as the call itself has gone out.
    """

    def __init__(
        self,
        directory: AreaDirectory,
        history: Optional[CallHistory] = None,
        registry: Optional[ConnectionRegistry] = None,
        fetcher: Optional[Fetcher] = None,
        error_reporter: Optional[ErrorReporter] = None,
        display_ttl: float = 600,
        address_suffix: str = "",
        max_route_meters: float = 160934,
        status_limit: int = 10,
        map_base: str = "",
        config_extras: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = directory
        self.clock = clock
        self.history = history if history is not None else CallHistory(clock=clock)
        self.registry = registry if registry is not None else ConnectionRegistry(clock=clock)
        self.fetcher = fetcher
        self.error_reporter = error_reporter or report_to_log
        self.display_ttl = display_ttl
        self.address_suffix = address_suffix or ""
        self.max_route_meters = max_route_meters
        self.status_limit = status_limit
        self.map_base = map_base
        self.config_extras = dict(config_extras or {})
        self.started = clock()
        self._tasks: Set[asyncio.Task] = set()
        self.metrics = {
            "calls_received_total": 0,
            "calls_invalid_total": 0,
            "calls_unconfigured_total": 0,
            "displays_rejected_total": 0,
            "directions_fetched_total": 0,
            "directions_cached_total": 0,
            "directions_failed_total": 0,
            "ws_clients_gauge": 0,
        }

    # ---------- display connections ----------
    async def handle_connection(self, session) -> Optional[ConnectionEntry]:
        address = str(session.remote_address or "")
        logger.info(f"A display connected from {address}")
        stations = self.directory.resolve_stations_for_address(address)
        if not stations:
            logger.info(f"  {address} is not registered in the stations list")
            self.metrics["displays_rejected_total"] += 1
            with contextlib.suppress(Exception):
                await session.emit("message", f"{address} is not registered in the stations list.")
            await session.disconnect()
            return None

        entry = self.registry.register(address, stations, session=session)
        self.metrics["ws_clients_gauge"] = len(self.registry)
        ids = ", ".join(entry.station_ids())
        logger.info(f"  Welcome {ids}")

        async def on_calls_log_query(*_):
            await self.send_calls_log(entry)

        async def on_disconnect(reason=None):
            self.handle_disconnect(entry, reason)

        session.on("callslog-query", on_calls_log_query)
        session.on("disconnect", on_disconnect)

        try:
            await session.emit("message", f"Welcome {ids}")
            await session.emit("config", self.config_payload(entry))
        except Exception as e:
            logger.warning(f"Could not greet display {address}: {e}")
            self.handle_disconnect(entry, "greeting failed")
            return None
        await self.replay_active_calls(entry)
        return entry

    def handle_disconnect(self, entry: ConnectionEntry, reason: Optional[str] = None) -> None:
        logger.info(f"Display disconnected {entry.peer_address} {reason or ''}".rstrip())
        self.registry.unregister(entry.peer_address, entry.session)
        self.metrics["ws_clients_gauge"] = len(self.registry)

    def config_payload(self, entry: ConnectionEntry) -> Dict[str, Any]:
        return {
            **self.config_extras,
            "stations": [s.to_dict() for s in entry.stations],
            "areas": entry.areas(),
            "call_active_secs": self.display_ttl,
            "address_suffix": self.address_suffix,
        }

    async def replay_active_calls(self, entry: ConnectionEntry) -> int:
        now = self.clock()
        sent = 0
        for call in self.history.entries_for_area(entry.areas()):
            if call.age(now) >= self.display_ttl:
                continue
            await self.send_to_connection(entry, "call", call.call_data)
            if call.directions_data:
                await self.send_to_connection(entry, "directions", {**call.directions_data, "cached": True})
            sent += 1
        return sent

    async def send_calls_log(self, entry: ConnectionEntry) -> None:
        logger.info(f"Stations {', '.join(entry.station_ids())} requested calls log from {entry.peer_address}")
        calls: List[HistoryEntry] = self.history.entries_for_area(entry.areas())
        await self.send_to_connection(entry, "callslog", {
            "stations": entry.station_ids(),
            "areas": entry.areas(),
            "calls": [c.to_dict() for c in calls],
        })

    # ---------- delivery ----------
    async def send_to_connection(self, entry: ConnectionEntry, event_type: str, data: Dict[str, Any]) -> bool:
        call_number = data.get("callNumber")
        tracked = call_number is not None
        if tracked:
            self.registry.record_post(entry, event_type, call_number)

        def acknowledged(*_):
            logger.info(f"  the {event_type} was acknowledged by {entry.peer_address}")
            if tracked:
                self.registry.record_ack(entry, event_type, call_number)

        logger.info(f"Sending {event_type} to {', '.join(entry.station_ids())} at {entry.peer_address}")
        try:
            await entry.session.emit(event_type, data, acknowledged)
        except Exception as e:
            logger.warning(f"Dropping display {entry.peer_address}: {e}")
            self.handle_disconnect(entry, "send failed")
            return False
        return True

    async def send_to_area(self, event_type: str, data: Dict[str, Any]) -> int:
        sent = 0
        for entry in self.registry.connections_for_area(data.get("area")):
            if await self.send_to_connection(entry, event_type, data):
                sent += 1
        return sent

    # ---------- calls from the 911 feed ----------
    async def handle_incoming_call(self, body: Any) -> Tuple[int, str]:
        self.metrics["calls_received_total"] += 1
        call = parse(body)
        if not call["valid"]:
            logger.info(f"Could not parse the incoming data {body!r}")
            self.metrics["calls_invalid_total"] += 1
            return 400, "Could not parse the incoming data."

        area = call["area"]
        stations = self.directory.stations_in_area(area)
        if not stations:
            logger.info(f"Not handling calls for area {area}")
            self.metrics["calls_unconfigured_total"] += 1
            return 200, f"Not handling calls for area {area}."

        await self.send_to_area("call", call)
        entry, is_new = self.history.upsert(call)
        logger.info(f"{'New' if is_new else 'Updated'} call {call['callNumber']} for {area}")

        if call.get("location"):
            self.route_directions(entry, call, stations[0])
        return 200, "OK"

    def route_directions(self, entry: HistoryEntry, call: Dict[str, Any], station: Station) -> None:
        location = call["location"]
        cached = entry.directions_data
        if cached is not None and entry.directions_location == location and cached.get("area") == call["area"]:
            self.metrics["directions_cached_total"] += 1
            self._spawn(self.send_to_area("directions", {**cached, "callNumber": call["callNumber"], "cached": True}))
            return
        if entry.lookup_location == location:
            logger.info(f"Directions for call {call['callNumber']} to {location} already requested")
            return
        if self.fetcher is None:
            return
        entry.lookup_location = location
        self._spawn(self._fetch_directions(entry, call, station))

    async def _fetch_directions(self, entry: HistoryEntry, call: Dict[str, Any], station: Station) -> None:
        location = call["location"]
        try:
            destination = destination_for(location, self.address_suffix)
            response = await self.fetcher((station.lat, station.lng), destination)
            result = build_directions_result(call, response, self.max_route_meters, self.map_base)
        except Exception as e:
            self.metrics["directions_failed_total"] += 1
            self._report(e, call)
            return
        finally:
            if entry.lookup_location == location:
                entry.lookup_location = None

        if result is None:
            return
        if self.history.get(entry.call_number) is not entry or entry.location != location:
            logger.info(f"Directions for call {entry.call_number} to {location} are stale, not sending")
            return
        self.history.attach_directions(entry, result, location)
        self.metrics["directions_fetched_total"] += 1
        await self.send_to_area("directions", result)

    def _report(self, exc: BaseException, call: Dict[str, Any]) -> None:
        context = {"callNumber": call.get("callNumber"), "area": call.get("area"), "location": call.get("location")}
        try:
            self.error_reporter(exc, context)
        except Exception:
            logger.exception("Error reporter failed")

    # ---------- background tasks ----------
    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_lookups(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        for t in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await t

    # ---------- status ----------
    def compose_status(self) -> Dict[str, Any]:
        entries = sorted(self.registry, key=lambda e: (",".join(e.station_ids()), e.peer_address))
        return {
            "directory": [e.to_dict(self.status_limit) for e in entries],
            "callHistory": [c.to_dict() for c in self.history.recent(self.status_limit)],
            "metrics": self.metrics,
            "started": self.started,
        }
