# dispatch_display/main.py

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse, PlainTextResponse

from dispatch_display.config import load_dotenv, load_settings
from dispatch_display.directions import DirectionsClient, static_map_base
from dispatch_display.history import CallHistory
from dispatch_display.router import DispatchRouter
from dispatch_display.sessions import WebSocketSession
from dispatch_display.stations import AreaDirectory

# ---------- Logging ----------
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def create_router(settings: Dict[str, Any], directory: Optional[AreaDirectory] = None, fetcher=None) -> DispatchRouter:
    if directory is None:
        directory = AreaDirectory.from_config(settings.get("STATIONS"))
    if fetcher is None:
        fetcher = DirectionsClient(settings["GOOGLE_DIRECTIONS_API_KEY"], timeout=settings["DIRECTIONS_TIMEOUT"])
    return DispatchRouter(
        directory,
        history=CallHistory(limit=settings["CALL_HISTORY_LIMIT"]),
        fetcher=fetcher,
        display_ttl=settings["DISPLAY_TTL"],
        address_suffix=settings["ADDRESS_SUFFIX"],
        max_route_meters=settings["MAX_ROUTE_METERS"],
        status_limit=settings["STATUS_POSTS_LIMIT"],
        map_base=static_map_base(settings["GOOGLE_STATIC_MAPS_API_KEY"]),
        config_extras={
            "mapKey": settings["GOOGLE_MAPS_API_KEY"],
            "environment": settings["ENVIRONMENT"],
        },
    )


def create_app(router: DispatchRouter) -> FastAPI:
    app = FastAPI(title="Dispatch Display")
    app.state.router = router

    @app.get("/health")
    async def health():
        return JSONResponse({"ok": True, "service": "dispatch-display"})

    # ---------- 911 feed ----------
    @app.post("/incoming")
    async def incoming(request: Request):
        try:
            body = await request.json()
        except ValueError:
            logging.info("Incoming data was not JSON")
            return PlainTextResponse("Could not parse the incoming data.", status_code=400)
        status, text = await router.handle_incoming_call(body)
        return PlainTextResponse(text, status_code=status)

    # ---------- Status endpoints ----------
    @app.get("/status")
    async def status():
        return JSONResponse(router.compose_status())

    @app.get("/recent")
    async def recent():
        return JSONResponse({"recent": [c.to_dict() for c in router.history.recent()]})

    # ---------- Metrics ----------
    @app.get("/metrics")
    async def metrics():
        m = router.metrics
        lines = [
            "# HELP dispatch_calls_received_total Calls posted by the 911 feed",
            "# TYPE dispatch_calls_received_total counter",
            f"dispatch_calls_received_total {m['calls_received_total']}",
            "# HELP dispatch_calls_invalid_total Calls that could not be parsed",
            "# TYPE dispatch_calls_invalid_total counter",
            f"dispatch_calls_invalid_total {m['calls_invalid_total']}",
            "# HELP dispatch_calls_unconfigured_total Calls for areas with no stations",
            "# TYPE dispatch_calls_unconfigured_total counter",
            f"dispatch_calls_unconfigured_total {m['calls_unconfigured_total']}",
            "# HELP dispatch_displays_rejected_total Display connections from unregistered addresses",
            "# TYPE dispatch_displays_rejected_total counter",
            f"dispatch_displays_rejected_total {m['displays_rejected_total']}",
            "# HELP dispatch_directions_fetched_total Directions lookups accepted",
            "# TYPE dispatch_directions_fetched_total counter",
            f"dispatch_directions_fetched_total {m['directions_fetched_total']}",
            "# HELP dispatch_directions_cached_total Directions served from the call history",
            "# TYPE dispatch_directions_cached_total counter",
            f"dispatch_directions_cached_total {m['directions_cached_total']}",
            "# HELP dispatch_directions_failed_total Directions lookups that failed",
            "# TYPE dispatch_directions_failed_total counter",
            f"dispatch_directions_failed_total {m['directions_failed_total']}",
            "# HELP dispatch_ws_clients_gauge Connected displays",
            "# TYPE dispatch_ws_clients_gauge gauge",
            f"dispatch_ws_clients_gauge {m['ws_clients_gauge']}",
        ]
        return PlainTextResponse("\n".join(lines), media_type="text/plain; version=0.0.4")

    # ---------- WebSocket ----------
    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        session = WebSocketSession(ws)
        await session.accept()
        entry = await router.handle_connection(session)
        if entry is None:
            return
        await session.run()

    @app.on_event("shutdown")
    async def shutdown_event():
        await router.close()

    return app


load_dotenv()
settings = load_settings()
router = create_router(settings)
app = create_app(router)
