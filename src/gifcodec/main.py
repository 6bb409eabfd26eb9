"""
gifcodec Service
================

FastAPI entry point exposing the encoder worker over a WebSocket.

Each WebSocket connection owns one EncoderWorker. The client sends the
request messages (init, frame..., finish) as JSON text, frame pixels
base64-encoded. The server answers with progress, complete and error
messages. A completed GIF is kept in a bounded in-memory store and the
`complete` message carries its download URL.

Endpoints:
    GET  /                  - Service information
    GET  /health            - Liveness probe
    GET  /metrics           - Session counters
    GET  /gifs/{result_id}  - Download a completed GIF
    WS   /ws/encode         - Encoding session
"""

import asyncio
import logging
import os
import time
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from gifcodec.config import settings, setup_logging
from gifcodec.models.messages import CompleteResponse, ErrorResponse, parse_request
from gifcodec.pipeline.worker import EncoderWorker


logger = logging.getLogger(__name__)


# =============================================================================
# Result Store
# =============================================================================

class ResultStore:
    """
    Bounded in-memory store of finished GIFs.

    Oldest results are evicted first once `max_results` is reached.
    """

    def __init__(self, max_results: int = 16) -> None:
        if max_results < 1:
            raise ValueError("max_results must be >= 1")
        self.max_results = max_results
        self._results: "OrderedDict[str, bytes]" = OrderedDict()
        self.evicted_count = 0

    def put(self, data: bytes) -> str:
        result_id = uuid.uuid4().hex
        self._results[result_id] = data
        while len(self._results) > self.max_results:
            self._results.popitem(last=False)
            self.evicted_count += 1
        return result_id

    def get(self, result_id: str) -> Optional[bytes]:
        return self._results.get(result_id)

    def __len__(self) -> int:
        return len(self._results)


# =============================================================================
# Global State
# =============================================================================

_results = ResultStore(max_results=settings.server.max_stored_results)
_startup_time: float = time.time()

_sessions_started: int = 0
_sessions_completed: int = 0
_sessions_aborted: int = 0
_sessions_failed: int = 0


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _startup_time

    setup_logging(settings)
    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(
        f"Encoder: sample_factor={settings.encoder.sample_factor}, "
        f"loop_count={settings.encoder.loop_count}"
    )

    yield

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="gifcodec",
    description="Animated GIF encoder with neural palette quantization",
    version=settings.service.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "sample_factor": settings.encoder.sample_factor,
        "loop_count": settings.encoder.loop_count,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe - always 200 while the process is up."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Session counters for observability."""
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "sessions_started": _sessions_started,
        "sessions_completed": _sessions_completed,
        "sessions_aborted": _sessions_aborted,
        "sessions_failed": _sessions_failed,
        "stored_results": len(_results),
        "evicted_results": _results.evicted_count,
    })


@app.get("/gifs/{result_id}")
async def download(result_id: str) -> Response:
    """Download a completed GIF."""
    data = _results.get(result_id)
    if data is None:
        return JSONResponse({"error": "Unknown result"}, status_code=404)
    return Response(content=data, media_type="image/gif")


# =============================================================================
# WebSocket Endpoints
# =============================================================================

async def _forward_responses(websocket: WebSocket, worker: EncoderWorker) -> None:
    """Send worker responses to the client until a terminal one."""
    global _sessions_completed, _sessions_failed

    while True:
        response = await worker.receive()

        if isinstance(response, CompleteResponse):
            result_id = _results.put(response.data)
            response = CompleteResponse(url=f"/gifs/{result_id}", size=response.size)
            _sessions_completed += 1
            await websocket.send_json(response.model_dump(mode="json"))
            return

        if isinstance(response, ErrorResponse):
            _sessions_failed += 1
            await websocket.send_json(response.model_dump(mode="json"))
            return

        await websocket.send_json(response.model_dump(mode="json"))


@app.websocket("/ws/encode")
async def encode_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint running one encoding session."""
    global _sessions_started, _sessions_aborted

    await websocket.accept()
    _sessions_started += 1
    logger.info("Client connected to /ws/encode")

    worker = EncoderWorker(
        sample_factor=settings.encoder.sample_factor,
        loop_count=settings.encoder.loop_count,
        max_queue_size=settings.worker.max_queue_size,
    )
    worker_task = asyncio.create_task(worker.run(), name="encoder_worker")
    forward_task = asyncio.create_task(
        _forward_responses(websocket, worker),
        name="encoder_responses",
    )

    try:
        while not forward_task.done():
            receive_task = asyncio.create_task(websocket.receive_text())
            done, _ = await asyncio.wait(
                {receive_task, forward_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if receive_task not in done:
                receive_task.cancel()
                break

            try:
                request = parse_request(receive_task.result())
            except ValidationError as e:
                logger.warning(f"Rejected invalid request: {e.error_count()} errors")
                error = ErrorResponse(message=f"Invalid request: {e.errors()[0]['msg']}")
                await websocket.send_json(error.model_dump(mode="json"))
                break

            await worker.send(request)
            if request.type == "abort":
                break

    except WebSocketDisconnect:
        logger.info("Client disconnected from /ws/encode")

    finally:
        if not worker_task.done():
            worker.abort()
        state = await worker_task
        if worker.abort_requested:
            _sessions_aborted += 1

        if not forward_task.done():
            forward_task.cancel()
        try:
            await forward_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"WebSocket error: {e}")

        logger.info(f"Session closed in state {state.value}")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "gifcodec.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
