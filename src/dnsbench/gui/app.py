"""
FastAPI application for the DNS Bench GUI.

Serves the web page, the server-list and export endpoints, and a
WebSocket that starts/stops runs and pushes every coordinator snapshot.
"""

import asyncio
import json
import logging
import webbrowser
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, Response

from .. import __version__, config
from ..backend import EngineBackend, MeasurementBackend
from ..coordinator import RunCoordinator, RunSnapshot
from ..errors import InvalidParamsError
from ..models import BenchmarkParams, DnsResultRecord, RunKind, SpeedParams
from ..normalize import canonical_latency, dnssec_status
from ..output import CSV_MIME_TYPE, CSVOutput, export_filename
from ..servers import ServerListStore

logger = logging.getLogger(__name__)


def _display_row(record) -> dict[str, Any]:
    row = record.to_dict()
    if isinstance(record, DnsResultRecord):
        row["latency_ms"] = canonical_latency(record)
        row["dnssec"] = dnssec_status(record).value
    return row


def state_message(snapshot: RunSnapshot) -> dict[str, Any]:
    """JSON form of a snapshot, as pushed over the WebSocket."""
    return {
        "type": "state",
        "run_id": snapshot.run_id,
        "kind": snapshot.kind.value if snapshot.kind else None,
        "target": snapshot.target,
        "loading": snapshot.loading,
        "error": snapshot.error,
        "result_count": len(snapshot.results) if snapshot.results is not None else None,
        "display": [_display_row(r) for r in snapshot.display],
    }


def _field(data: dict[str, Any], key: str, default):
    value = data.get(key)
    return default if value is None else value


def _flag(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidParamsError(f"{key} must be true or false")
    return value


def _start_params(action: str, data: dict[str, Any]):
    """Build run parameters from a WebSocket request; raises ValueError."""
    servers = data.get("servers") or None
    if action == "start_dns":
        return RunKind.DNS, BenchmarkParams.create(
            _field(data, "domain", config.DEFAULT_DOMAIN),
            samples=_field(data, "samples", config.DEFAULT_SAMPLES),
            timeout_secs=_field(data, "timeout", config.DEFAULT_DNS_TIMEOUT_SECS),
            validate_dnssec=_flag(data, "dnssec"),
            warm_up=_flag(data, "warm_up"),
            custom_servers=servers,
        )
    return RunKind.DOWNLOAD, SpeedParams.create(
        _field(data, "url", config.DEFAULT_DOWNLOAD_URL),
        duration_secs=_field(data, "duration", config.DEFAULT_DOWNLOAD_DURATION_SECS),
        timeout_secs=_field(data, "timeout", config.DEFAULT_DOWNLOAD_TIMEOUT_SECS),
        custom_servers=servers,
    )


def create_app(
    backend: Optional[MeasurementBackend] = None,
    store: Optional[ServerListStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        backend: Measurement backend (default: in-process EngineBackend)
        store: Server list shared with the backend

    Returns:
        The application; its RunCoordinator is at app.state.coordinator
    """
    store = store or ServerListStore()
    backend = backend or EngineBackend(store=store)
    coordinator = RunCoordinator(backend)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await coordinator.aclose()

    app = FastAPI(
        title="DNS Bench",
        description="Compare DNS servers by latency and download speed",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator
    app.state.store = store

    static_dir = Path(__file__).parent / "static"

    @app.get("/")
    async def root():
        """Serve the main HTML page."""
        return FileResponse(static_dir / "index.html")

    @app.get("/api/config")
    async def get_config():
        """Get default form values."""
        return {
            "version": __version__,
            "defaults": {
                "domain": config.DEFAULT_DOMAIN,
                "samples": config.DEFAULT_SAMPLES,
                "timeout": config.DEFAULT_DNS_TIMEOUT_SECS,
                "url": config.DEFAULT_DOWNLOAD_URL,
                "duration": config.DEFAULT_DOWNLOAD_DURATION_SECS,
                "download_timeout": config.DEFAULT_DOWNLOAD_TIMEOUT_SECS,
            },
            "presets": config.SERVER_LIST_PRESETS,
        }

    @app.get("/api/servers")
    async def get_servers():
        return {"servers": store.get()}

    @app.put("/api/servers")
    async def put_servers(servers: list[str] = Body(..., embed=True)):
        """Replace the server list; blank entries are dropped."""
        store.set(servers)
        return {"servers": store.get()}

    @app.get("/api/export/{kind}.csv")
    async def export_csv(kind: RunKind):
        """Download the current raw results as a CSV attachment."""
        snapshot = coordinator.snapshot
        if not snapshot.results or snapshot.kind != kind:
            raise HTTPException(status_code=404, detail="No results to export")

        name = export_filename(kind, snapshot.target or "")
        return Response(
            content=CSVOutput.format(kind, snapshot.results),
            media_type=CSV_MIME_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{name}"'},
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Accept run commands; push a state message for every snapshot."""
        await websocket.accept()

        # One writer per connection keeps messages in publication order
        outbox: asyncio.Queue = asyncio.Queue()

        def on_snapshot(snapshot: RunSnapshot) -> None:
            outbox.put_nowait(state_message(snapshot))

        async def pump():
            try:
                while True:
                    await websocket.send_json(await outbox.get())
            except Exception as e:
                logger.warning("WebSocket sender failed: %s", e)
                await websocket.close(code=1011)

        coordinator.subscribe(on_snapshot)
        outbox.put_nowait(state_message(coordinator.snapshot))
        sender = asyncio.create_task(pump())

        try:
            while True:
                text = await websocket.receive_text()
                try:
                    data = json.loads(text)
                except ValueError:
                    outbox.put_nowait({"type": "error", "message": "Malformed message"})
                    continue
                if not isinstance(data, dict):
                    outbox.put_nowait({"type": "error", "message": "Malformed message"})
                    continue

                action = data.get("action")
                if action in ("start_dns", "start_speed"):
                    try:
                        kind, params = _start_params(action, data)
                    except (ValueError, TypeError) as e:
                        outbox.put_nowait({"type": "error", "message": str(e)})
                        continue
                    coordinator.start(kind, params)
                elif action == "stop":
                    coordinator.cancel()
                elif action == "ping":
                    outbox.put_nowait({"type": "pong"})
                else:
                    outbox.put_nowait({"type": "error", "message": f"Unknown action: {action}"})
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected")
        finally:
            coordinator.unsubscribe(on_snapshot)
            sender.cancel()
            (outcome,) = await asyncio.gather(sender, return_exceptions=True)
            if isinstance(outcome, Exception):
                logger.debug("WebSocket close after failed send: %s", outcome)

    return app


def run_gui(
    host: str = config.GUI_HOST,
    port: int = config.GUI_PORT,
    open_browser: bool = True,
    store: Optional[ServerListStore] = None,
):
    """Run the GUI server."""
    app = create_app(store=store)

    if open_browser:
        # Open browser after a short delay
        import threading

        def open_browser_delayed():
            import time
            time.sleep(1)
            webbrowser.open(f"http://{host}:{port}")

        threading.Thread(target=open_browser_delayed, daemon=True).start()

    uvicorn.run(app, host=host, port=port, log_level="warning")
