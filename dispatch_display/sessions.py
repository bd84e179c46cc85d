# dispatch_display/sessions.py

import contextlib
import inspect
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class WebSocketSession:
    """
    Display session over a FastAPI websocket.

    Outgoing frames are ``{"type": event, "data": payload, "id": n}``. The
    display confirms receipt with ``{"type": "ack", "id": n}``; any other
    frame ``{"type": name, "data": ...}`` goes to the handler registered
    for ``name``.
    """

    def __init__(self, ws: WebSocket):
        self.ws = ws
        self.remote_address = ws.client.host if ws.client else ""
        self.connected = False
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.pending_acks: Dict[int, Callable[..., Any]] = {}
        self.next_message_id: int = 1

    async def accept(self) -> None:
        await self.ws.accept()
        self.connected = True

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def emit(self, event: str, data: Any, ack: Optional[Callable[..., Any]] = None) -> None:
        if not self.connected:
            raise ConnectionError(f"session {self.remote_address} is closed")
        message_id = self.next_message_id
        self.next_message_id += 1
        if ack is not None:
            self.pending_acks[message_id] = ack
        try:
            await self.ws.send_json({"type": event, "data": data, "id": message_id})
        except Exception:
            self.pending_acks.pop(message_id, None)
            raise

    async def disconnect(self, code: int = 1008) -> None:
        if not self.connected:
            return
        self.connected = False
        with contextlib.suppress(Exception):
            await self.ws.close(code=code)

    async def dispatch(self, message: Any) -> None:
        if not isinstance(message, dict):
            return
        kind = message.get("type")
        if kind == "ack":
            try:
                message_id = int(message.get("id"))
            except (TypeError, ValueError):
                return
            callback = self.pending_acks.pop(message_id, None)
            if callback is not None:
                await _maybe_await(callback(message.get("data")))
            return
        handler = self.handlers.get(kind)
        if handler is None:
            logger.debug(f"Ignoring {kind!r} from {self.remote_address}")
            return
        await _maybe_await(handler(message.get("data")))

    async def run(self) -> None:
        """Read frames until the display goes away, then fire ``disconnect``."""
        reason = "server disconnect"
        try:
            while self.connected:
                try:
                    message = await self.ws.receive_json()
                except (KeyError, ValueError) as e:
                    # KeyError: binary frame, ValueError: text that is not JSON
                    logger.info(f"Bad frame from {self.remote_address}: {e!r}")
                    continue
                await self.dispatch(message)
        except WebSocketDisconnect as e:
            reason = f"client disconnect ({e.code})"
        finally:
            self.connected = False
            self.pending_acks.clear()
            handler = self.handlers.get("disconnect")
            if handler is not None:
                await _maybe_await(handler(reason))
