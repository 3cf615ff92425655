"""
Web host for the ingestion pipeline.

Starts the pipeline on startup and relays "new-run" events to WebSocket
clients. The app's wider HTTP API is served elsewhere.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from aimtrack.config import IngestConfig
from aimtrack.database import Database
from aimtrack.events import NewRunEvent, RunEvents
from aimtrack.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


class EventRelay:
    """Bridge NewRunEvent from ingestion threads onto per-client asyncio queues."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.queues: Set[asyncio.Queue] = set()

    def register(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self.queues.add(queue)
        return queue

    def unregister(self, queue: asyncio.Queue) -> None:
        self.queues.discard(queue)

    def __call__(self, event: NewRunEvent) -> None:
        # Called from watcher/scan threads
        self.loop.call_soon_threadsafe(self._fan_out, event.to_message())

    def _fan_out(self, message: Dict[str, Any]) -> None:
        for queue in list(self.queues):
            queue.put_nowait(message)


def create_app(
    config: Optional[IngestConfig] = None,
    watch: bool = True,
    background_startup: bool = True,
) -> FastAPI:
    """
    Build the web host.

    Args:
        config: Ingestion settings (defaults to AIMTRACK_* environment)
        watch: Start the live watcher after the startup scan
        background_startup: Run the startup scan without blocking server start
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or IngestConfig.from_env()
        db = Database(cfg.db_path)
        events = RunEvents()
        relay = EventRelay(asyncio.get_running_loop())
        events.subscribe(relay)
        pipeline = IngestionPipeline(cfg, db, events=events)

        app.state.db = db
        app.state.relay = relay
        app.state.pipeline = pipeline
        app.state.startup_result = None

        def _startup() -> None:
            result = pipeline.run_startup_scan()
            app.state.startup_result = result.to_dict()
            if watch:
                pipeline.watcher.start()

        def _log_startup_failure(task: asyncio.Task) -> None:
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.error("Startup scan failed: %s", exc, exc_info=exc)
                app.state.startup_result = {"error": str(exc)}

        startup_task = None
        if background_startup:
            startup_task = asyncio.create_task(asyncio.to_thread(_startup))
            startup_task.add_done_callback(_log_startup_failure)
        else:
            await asyncio.to_thread(_startup)

        try:
            yield
        finally:
            if startup_task is not None and not startup_task.done():
                await asyncio.gather(startup_task, return_exceptions=True)
            pipeline.stop()
            db.close()

    app = FastAPI(lifespan=lifespan)

    @app.get("/api/status")
    async def status() -> Dict[str, Any]:
        pipeline: IngestionPipeline = app.state.pipeline
        last_scan = pipeline.cursor.last_scan_timestamp
        return {
            "stats_dir": pipeline.config.stats_dir,
            "initial_scan_complete": pipeline.cursor.initial_scan_complete,
            "last_scan_timestamp": last_scan.isoformat() if last_scan else None,
            "runs": app.state.db.count_runs(),
            "watching": pipeline.watcher.is_running,
            "startup_scan": app.state.startup_result,
        }

    @app.post("/api/rescan")
    async def rescan() -> Dict[str, Any]:
        pipeline: IngestionPipeline = app.state.pipeline
        try:
            result = await asyncio.to_thread(pipeline.rescan)
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Rescan failed: {str(e)}")
        return result.to_dict()

    @app.websocket("/ws/runs")
    async def run_feed(websocket: WebSocket) -> None:
        await websocket.accept()
        relay: EventRelay = app.state.relay
        queue = relay.register()

        async def _client_loop() -> None:
            # The feed is one-way; reading only serves to notice disconnects
            while True:
                await websocket.receive_text()

        client_task = asyncio.create_task(_client_loop())
        try:
            await websocket.send_json({"type": "connected"})
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, client_task}, return_when=asyncio.FIRST_COMPLETED)
                if client_task in done:
                    getter.cancel()
                    error = client_task.exception()
                    if error is not None and not isinstance(error, WebSocketDisconnect):
                        raise error
                    break
                await websocket.send_json(getter.result())
        except WebSocketDisconnect:
            pass
        finally:
            logger.info("Run feed client disconnected")
            client_task.cancel()
            relay.unregister(queue)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    print("Starting aimtrack web host...")
    print("Open http://localhost:5000/api/status in your browser")
    uvicorn.run(app, host="127.0.0.1", port=5000)
