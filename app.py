# -----------------------------
# app.py
# -----------------------------
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from typing import Any, Dict, Optional, Tuple
import asyncio, json

from loguru import logger

from config import Settings
from matchmaking import Matchmaker
from utils import secure_uuid, setup_logging

__version__ = "1.0.0"
SERVICE_NAME = "pairwire"

INBOUND_EVENTS = {"signal", "find-next"}

def parse_frame(text: Optional[str]) -> Optional[Tuple[str, Any]]:
    """Decode an inbound frame into (event, data); None if it must be dropped."""
    if text is None:
        return None
    try:
        frame = json.loads(text)
    except ValueError:
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        return None
    return frame["event"], frame.get("data")

class Gateway:
    """Owns the sockets' outboxes and serializes every Matchmaker call behind one lock."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.lock = asyncio.Lock()
        self.outboxes: Dict[str, asyncio.Queue] = {}
        self.matchmaker = Matchmaker(self.emit, waiting_timeout=settings.waiting_timeout)

    def emit(self, connection_id: str, event: str, data: Any) -> None:
        # fire and forget; the connection's writer task does the actual send
        box = self.outboxes.get(connection_id)
        if box is None:
            logger.debug(f"Dropping {event} for closed connection {connection_id}")
            return
        box.put_nowait({"event": event, "data": data})

    async def connect(self, connection_id: str) -> None:
        async with self.lock:
            self.matchmaker.on_connect(connection_id)

    async def dispatch(self, connection_id: str, text: Optional[str]) -> None:
        parsed = parse_frame(text)
        if parsed is None:
            logger.warning(f"Dropping malformed frame from {connection_id}")
            return
        event, data = parsed
        if event not in INBOUND_EVENTS:
            logger.warning(f"Dropping unknown event {event!r} from {connection_id}")
            return
        async with self.lock:
            if event == "signal":
                self.matchmaker.on_signal(connection_id, data)
            else:
                self.matchmaker.on_find_next(connection_id)

    async def disconnect(self, connection_id: str, reason: str) -> None:
        async with self.lock:
            self.matchmaker.on_disconnect(connection_id, reason)

    async def sweep(self) -> None:
        async with self.lock:
            self.matchmaker.expire_stale_waiting_entries()

    async def sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval)
            await self.sweep()

    async def writer(self, ws: WebSocket, connection_id: str) -> None:
        """Drain the connection's outbox into the socket until a send fails."""
        box = self.outboxes[connection_id]
        while True:
            message = await box.get()
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.warning(f"Error sending to {connection_id}: {e}")
                # later emissions are dropped; the read loop handles the disconnect
                self.outboxes.pop(connection_id, None)
                return

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    gateway = Gateway(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        sweeper = asyncio.create_task(gateway.sweep_forever())
        logger.info(f"Signaling relay ready (waiting timeout {settings.waiting_timeout}s)")
        yield
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper

    app = FastAPI(title="Pairwire Signaling Relay", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.gateway = gateway

    @app.get("/")
    async def root():
        return {"service": SERVICE_NAME, "version": __version__, "status": "running"}

    @app.get("/health")
    async def health():
        stats = gateway.matchmaker.stats()
        return {
            "status": "healthy",
            "active_connections": stats.active_connections,
            "waiting": stats.waiting,
            "active_pairs": stats.active_pairs,
        }

    @app.websocket("/ws")
    async def ws_signal(ws: WebSocket):
        await ws.accept()
        connection_id = secure_uuid()
        gateway.outboxes[connection_id] = asyncio.Queue()
        writer = asyncio.create_task(gateway.writer(ws, connection_id))
        reason = "closed"
        try:
            await gateway.connect(connection_id)
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                await gateway.dispatch(connection_id, message.get("text"))
        except WebSocketDisconnect as e:
            reason = f"close code {e.code}"
        finally:
            await gateway.disconnect(connection_id, reason)
            gateway.outboxes.pop(connection_id, None)
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    _settings = Settings.from_env()
    setup_logging(_settings.log_level)
    logger.info(f"Starting signaling relay on {_settings.host}:{_settings.port}")
    uvicorn.run(app, host=_settings.host, port=_settings.port)
