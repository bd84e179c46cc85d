# dispatch_display/displays.py

import time
from typing import Any, Dict, Iterator, List, Optional

from dispatch_display.stations import Station


class PostRecord:
    """Send/ack timestamps for one call on one display, tagged by event type."""

    def __init__(self, event_type: str, call_number: Optional[str]):
        self.type = event_type
        self.call_number = call_number
        self.sent: Dict[str, float] = {}
        self.acked: Dict[str, float] = {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "callNumber": self.call_number}
        for event_type, ts in self.sent.items():
            payload[f"{event_type}_sent"] = ts
        for event_type, ts in self.acked.items():
            payload[f"{event_type}_ack"] = ts
        return payload


class ConnectionEntry:
    def __init__(self, peer_address: str, stations: List[Station], session: Any = None, since: Optional[float] = None):
        self.peer_address = peer_address
        self.stations = list(stations)
        self.session = session
        self.since = since if since is not None else time.time()
        self.posts: List[PostRecord] = []

    def station_ids(self) -> List[str]:
        return [s.id for s in self.stations]

    def areas(self) -> List[str]:
        seen: List[str] = []
        for station in self.stations:
            if station.area not in seen:
                seen.append(station.area)
        return seen

    def serves_area(self, area: Optional[str]) -> bool:
        return any(s.area == area for s in self.stations)

    def find_post(self, call_number: Optional[str]) -> Optional[PostRecord]:
        for post in self.posts:
            if post.call_number == call_number:
                return post
        return None

    def recent_posts(self, limit: Optional[int] = None) -> List[PostRecord]:
        posts = list(reversed(self.posts))
        return posts[:limit] if limit is not None else posts

    def to_dict(self, posts_limit: Optional[int] = None) -> Dict[str, Any]:
        return {
            "address": self.peer_address,
            "stations": self.station_ids(),
            "areas": self.areas(),
            "since": self.since,
            "posts": [p.to_dict() for p in self.recent_posts(posts_limit)],
        }


class ConnectionRegistry:
    """Connected displays keyed by peer address; the last connection from an address wins."""

    def __init__(self, clock=time.time):
        self.clock = clock
        self._entries: Dict[str, ConnectionEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ConnectionEntry]:
        return iter(list(self._entries.values()))

    def get(self, peer_address: str) -> Optional[ConnectionEntry]:
        return self._entries.get(str(peer_address))

    def register(self, peer_address: str, stations: List[Station], session: Any = None) -> ConnectionEntry:
        key = str(peer_address)
        entry = ConnectionEntry(key, stations, session=session, since=self.clock())
        self._entries[key] = entry
        return entry

    def unregister(self, peer_address: str, session: Any = None) -> Optional[ConnectionEntry]:
        key = str(peer_address)
        entry = self._entries.get(key)
        if entry is None:
            return None
        # a late disconnect from a replaced session must not drop its successor
        if session is not None and entry.session is not session:
            return None
        return self._entries.pop(key)

    def connections_for_area(self, area: Optional[str]) -> List[ConnectionEntry]:
        return [e for e in self._entries.values() if e.serves_area(area)]

    def record_post(self, entry: ConnectionEntry, event_type: str, call_number: Optional[str]) -> PostRecord:
        post = entry.find_post(call_number)
        if post is None:
            post = PostRecord(event_type, call_number)
            entry.posts.append(post)
        post.sent[event_type] = self.clock()
        return post

    def record_ack(self, entry: ConnectionEntry, event_type: str, call_number: Optional[str]) -> Optional[PostRecord]:
        post = entry.find_post(call_number)
        if post is None:
            return None
        post.acked[event_type] = self.clock()
        return post
