# dispatch_display/history.py

import time
from collections import OrderedDict
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

DEFAULT_HISTORY_LIMIT = 20


class HistoryEntry:
    def __init__(self, call_number: str, received_at: Optional[float] = None):
        self.call_number = call_number
        self.call_data: Dict[str, Any] = {}
        self.received_at: float = received_at if received_at is not None else time.time()
        self.directions_data: Optional[Dict[str, Any]] = None
        # location the cached directions were computed for
        self.directions_location: Optional[str] = None
        # location of the lookup currently in flight, if any
        self.lookup_location: Optional[str] = None

    @property
    def area(self) -> Optional[str]:
        return self.call_data.get("area")

    @property
    def location(self) -> Optional[str]:
        return self.call_data.get("location")

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.received_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callNumber": self.call_number,
            "callData": self.call_data,
            "receivedAt": self.received_at,
            "directionsData": self.directions_data,
        }


class CallHistory:
    """
    Bounded ledger of recent calls, one entry per call number.

    Eviction is strictly by insertion order: updating a known call
    replaces its data in place and does not refresh its position.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT, clock=time.time):
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        self.clock = clock
        self._entries: "OrderedDict[str, HistoryEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, call_number: object) -> bool:
        return call_number in self._entries

    def get(self, call_number: Optional[str]) -> Optional[HistoryEntry]:
        if call_number is None:
            return None
        return self._entries.get(str(call_number))

    def find_or_create(self, call_number: str) -> Tuple[HistoryEntry, bool]:
        key = str(call_number)
        entry = self._entries.get(key)
        if entry is not None:
            return entry, False
        while len(self._entries) >= self.limit:
            self._entries.popitem(last=False)
        entry = HistoryEntry(key, received_at=self.clock())
        self._entries[key] = entry
        return entry, True

    def record_call_data(self, entry: HistoryEntry, call: Dict[str, Any]) -> None:
        entry.call_data = call

    def attach_directions(self, entry: HistoryEntry, result: Dict[str, Any], location: Optional[str] = None) -> None:
        entry.directions_data = result
        entry.directions_location = location if location is not None else entry.location

    def upsert(self, call: Dict[str, Any]) -> Tuple[HistoryEntry, bool]:
        entry, is_new = self.find_or_create(call["callNumber"])
        self.record_call_data(entry, call)
        return entry, is_new

    def entries_for_area(self, areas: Union[Optional[str], Iterable[str]], newest_first: bool = True) -> List[HistoryEntry]:
        """Entries for one area, or for any of a collection of areas."""
        if areas is None or isinstance(areas, str):
            wanted = {areas}
        else:
            wanted = set(areas)
        entries = [e for e in self._entries.values() if e.area in wanted]
        if newest_first:
            entries.reverse()
        return entries

    def recent(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        entries = list(self._entries.values())
        entries.reverse()
        return entries[:limit] if limit is not None else entries

    def clear(self) -> None:
        self._entries.clear()
