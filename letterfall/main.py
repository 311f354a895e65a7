"""FastAPI entry-point for the letterfall overlay."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import AsyncIterator, List

import numpy as np
import psutil
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel

from .backend.http_client import RedditTitlesClient, TitlesHttpClient, TitlesPoller
from .config import Settings, get_settings
from .engine import LetterEngine
from .logging_config import configure_logging
from .render import FrameRenderer, GlyphMeasurer, encode_jpeg
from .sensors.segmentation_service import SegmentationService
from .text_queue import TextQueue

logger = logging.getLogger(__name__)

settings: Settings = get_settings()
configure_logging(settings.log_level, settings.log_directory, settings.log_retention_days)
app = FastAPI(title="letterfall", version="0.1.0")

text_queue = TextQueue(
    max_length=settings.text_source.max_queue,
    seen_capacity=settings.text_source.seen_capacity,
)
measurer = GlyphMeasurer(settings.letters.font_family, settings.letters.font_size)
segmentation = SegmentationService(settings.camera, settings.surface)
engine = LetterEngine(
    settings,
    queue=text_queue,
    measure=measurer,
    mask_source=segmentation.get_mask,
)
renderer = FrameRenderer(
    settings.surface.width,
    settings.surface.height,
    font=measurer.font,
    font_size=settings.letters.font_size,
    show_hitbox=settings.letters.show_hitbox,
    show_camera=settings.camera.preview_background,
)
titles_client = TitlesHttpClient(settings.text_source)
reddit_client = RedditTitlesClient(settings.text_source)
poller = TitlesPoller(titles_client, text_queue, interval_s=settings.text_source.poll_interval_s)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Catch-all exception handler to prevent application crashes."""
    logger.exception(f"Unhandled exception in {request.url.path}: {exc}")
    return PlainTextResponse(
        f"Internal server error: {str(exc)}",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors gracefully."""
    logger.warning(f"Validation error in {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)}
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    try:
        await segmentation.start()
        await poller.start()
        await engine.start()
        logger.info("Application started successfully")
    except Exception as e:
        logger.exception(f"Failed to start services: {e}")
        logger.error("Application startup failed - some features may not work")
        # Don't re-raise - allow app to start in degraded mode


@app.on_event("shutdown")
async def on_shutdown() -> None:
    try:
        await engine.stop()
        await poller.stop()
        await segmentation.stop()
        await titles_client.aclose()
        await reddit_client.aclose()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    return JSONResponse({
        "status": "ok",
        "phase": engine.phase.value,
        "letters": len(engine.particles),
        "queued": len(text_queue),
        "camera_active": segmentation.active,
    })


@app.get("/debug/performance")
async def debug_performance() -> JSONResponse:
    """Get real-time CPU and memory usage."""
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        memory = psutil.virtual_memory()

        mask = segmentation.get_mask()
        plan = engine.scheduler.plan

        return JSONResponse({
            "cpu_percent": round(cpu_percent, 1),
            "memory_percent": round(memory.percent, 1),
            "memory_used_mb": round(memory.used / (1024 * 1024), 1),
            "memory_total_mb": round(memory.total / (1024 * 1024), 1),
            "letters": len(engine.particles),
            "frame": engine.frame,
            "emitted_total": engine.scheduler.total_emitted,
            "carry": round(engine.scheduler.carry, 2),
            "current_text": {
                "emitted": plan.emitted,
                "remaining": len(plan.remaining),
            } if plan is not None else None,
            "physics": asdict(engine.physics.stats),
            "mask": {
                "coverage": round(mask.coverage(), 4) if mask is not None else 0.0,
                "updates": segmentation.holder.updates,
            },
        })
    except Exception as e:
        logger.error(f"Performance monitoring error: {e}")
        return JSONResponse(
            {"error": str(e)},
            status_code=500
        )


class ToggleRequest(BaseModel):
    enabled: bool = True


class TitlesRequest(BaseModel):
    titles: List[str]


@app.post("/debug/spawn")
async def debug_spawn_toggle(payload: ToggleRequest) -> JSONResponse:
    """Pause or resume letter emission; letters already falling keep moving."""
    enabled = engine.set_spawning(payload.enabled)
    return JSONResponse({"status": "enabled" if enabled else "paused"})


@app.post("/debug/hitbox")
async def debug_hitbox_toggle(payload: ToggleRequest) -> JSONResponse:
    """Draw collision boxes in the preview stream."""
    renderer.show_hitbox = payload.enabled
    logger.info("Hitbox overlay %s", "enabled" if payload.enabled else "disabled")
    return JSONResponse({"status": "enabled" if payload.enabled else "disabled"})


@app.post("/debug/mask")
async def debug_mask_toggle(payload: ToggleRequest) -> JSONResponse:
    """Tint occupied mask pixels in the preview stream."""
    renderer.show_mask = payload.enabled
    return JSONResponse({"status": "enabled" if payload.enabled else "disabled"})


@app.post("/debug/camera")
async def debug_camera_toggle(payload: ToggleRequest) -> JSONResponse:
    """Draw the latest camera frame behind the letters in the preview stream."""
    renderer.show_camera = payload.enabled
    return JSONResponse({"status": "enabled" if payload.enabled else "disabled"})


@app.get("/titles")
async def reddit_titles() -> JSONResponse:
    """Newest Reddit post titles as ``{"titles": [...]}``; the default feed for the poller."""
    return JSONResponse({"titles": await reddit_client.fetch_titles()})


@app.post("/debug/titles")
async def debug_titles(payload: TitlesRequest) -> JSONResponse:
    """Queue text directly, bypassing the remote feed."""
    accepted = text_queue.offer(payload.titles)
    return JSONResponse({"accepted": accepted, "queued": len(text_queue)})


@app.get("/letters")
async def letters_snapshot() -> JSONResponse:
    return JSONResponse({"frame": engine.frame, "letters": engine.snapshot()})


def render_preview() -> np.ndarray:
    latest = segmentation.latest_frame
    background = latest.color_image if latest is not None else None
    return renderer.render(engine.particles, segmentation.get_mask(), background)


@app.get("/preview")
async def preview_stream() -> StreamingResponse:
    """MJPEG stream of rendered letters over the mask."""
    boundary = "frame"

    async def frame_iterator() -> AsyncIterator[bytes]:
        try:
            async for _ in engine.frames():
                jpeg = encode_jpeg(render_preview())
                if jpeg is None:
                    continue
                header = (
                    f"--{boundary}\r\n"
                    f"Content-Type: image/jpeg\r\n"
                    f"Content-Length: {len(jpeg)}\r\n\r\n"
                ).encode("ascii")
                yield header + jpeg + b"\r\n"
        except Exception as e:
            logger.error(f"Preview stream error: {e}")

    media_type = f"multipart/x-mixed-replace; boundary={boundary}"
    return StreamingResponse(frame_iterator(), media_type=media_type)


@app.websocket("/ws/letters")
async def letters_socket(ws: WebSocket) -> None:
    await ws.accept()
    queue = engine.subscribe()
    try:
        while True:
            try:
                letters = await queue.get()
            except asyncio.CancelledError:
                break

            try:
                await ws.send_json({"frame": engine.frame, "letters": letters})
            except Exception as e:
                logger.debug(f"WebSocket send failed (client disconnected): {e}")
                break
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error(f"Unexpected error in letters websocket: {e}")
    finally:
        engine.unsubscribe(queue)
        try:
            await ws.close()
        except Exception:
            pass


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
