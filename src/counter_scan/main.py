"""
Counter Scan Main Application
=============================

FastAPI entry point for the code + counter recognition service.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (OCR engine initialized?)
    GET  /metrics   - Component metrics
    GET  /result    - Last completed scan result
    POST /frames    - Submit a frame trigger, returns the ScanOutcome
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from counter_scan.config import Settings, settings
from counter_scan.decoding import CodeDecoderAdapter
from counter_scan.models.input import FrameMessage
from counter_scan.ocr import MockOcrEngine, TesseractOcrEngine, ValueExtractor
from counter_scan.pipeline import ScanOrchestrator
from counter_scan.stream import ImageDecodeError, decode_image_b64, decode_rgba_b64
from counter_scan.stream.frame import Frame
from counter_scan.vision import CloudVisionAdapter


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_orchestrator: Optional[ScanOrchestrator] = None
_startup_time: float = 0.0
_frames_received: int = 0
_frame_error_count: int = 0


def get_orchestrator() -> Optional[ScanOrchestrator]:
    return _orchestrator


# =============================================================================
# Component Factories
# =============================================================================

def create_ocr_engine(config: Settings) -> Union[TesseractOcrEngine, MockOcrEngine]:
    """
    Create OCR engine based on config.

    Fails fast on an unknown backend or invalid profile.
    """
    profile = config.ocr.resolved_profile()
    backend = config.ocr.backend

    if backend == "mock":
        logger.info("Using MockOcrEngine")
        return MockOcrEngine(profile=profile)

    elif backend == "tesseract":
        logger.info(f"Using TesseractOcrEngine: profile={profile.name}")
        return TesseractOcrEngine(
            profile=profile,
            tesseract_cmd=config.ocr.tesseract_cmd,
            timeout=config.ocr.timeout_seconds,
        )

    else:
        raise ValueError(f"Unknown OCR backend: {backend}")


def create_vision_adapter(
    config: Settings,
    extractor: ValueExtractor,
) -> Optional[CloudVisionAdapter]:
    """Create the vision fallback, or None when disabled."""
    if not config.vision.enabled:
        return None
    if not config.vision.api_key:
        logger.error("Vision fallback enabled but no API key configured (OPENAI_API_KEY)")
    return CloudVisionAdapter(
        api_key=config.vision.api_key,
        endpoint=config.vision.endpoint,
        model=config.vision.model,
        cooldown_seconds=config.vision.cooldown_seconds,
        timeout_seconds=config.vision.timeout_seconds,
        jpeg_quality=config.vision.jpeg_quality,
        extractor=extractor,
    )


def create_orchestrator(config: Settings) -> ScanOrchestrator:
    """Wire every component from settings."""
    extractor = ValueExtractor(
        min_digits=config.value.min_digits,
        max_digits=config.value.max_digits,
        min_value=config.value.min_value,
        max_value=config.value.max_value,
    )
    return ScanOrchestrator(
        engine=create_ocr_engine(config),
        decoder=CodeDecoderAdapter(
            strategies=config.decoder.strategies,
            collect_all=config.decoder.collect_all,
        ),
        regions=config.regions.resolved_regions(),
        buffer_capacity=config.scanner.buffer_capacity,
        cooldown_seconds=config.scanner.cooldown_seconds,
        max_workers=config.scanner.max_workers,
        stability_threshold=config.stability.threshold,
        value_extractor=extractor,
        vision=create_vision_adapter(config, extractor),
        vision_timeout=config.vision.cycle_timeout_seconds,
        history_size=config.scanner.history_size,
        stop_timeout=config.scanner.stop_timeout_seconds,
    )


def frame_from_message(message: FrameMessage) -> Frame:
    """
    Decode a posted frame.

    Raises:
        ImageDecodeError: If the pixel payload cannot be decoded
    """
    timestamp = message.timestamp or time.time()
    if message.rgba is not None:
        return decode_rgba_b64(
            message.rgba,
            width=message.width,
            height=message.height,
            timestamp=timestamp,
            frame_id=message.frame_id,
        )
    return decode_image_b64(message.image, timestamp=timestamp, frame_id=message.frame_id)


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _orchestrator, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    _orchestrator = create_orchestrator(settings)
    await _orchestrator.start()

    logger.info(
        f"All components started (ocr_backend={settings.ocr.backend}, "
        f"vision={'on' if settings.vision.enabled else 'off'})"
    )

    yield

    logger.info("Shutting down gracefully...")
    await _orchestrator.stop()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="CounterScan",
    description="Combined code + digital counter recognition service",
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
        "service": "CounterScan",
        "version": settings.service.version,
        "name": settings.service.name,
        "status": "running",
        "ocr_backend": settings.ocr.backend,
        "ocr_profile": settings.ocr.profile,
        "vision_enabled": settings.vision.enabled,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - can the service recognize counters?

    Returns 200 once the OCR engine is initialized, 503 otherwise.
    """
    orchestrator = get_orchestrator()
    engine_ready = orchestrator is not None and orchestrator.is_ready

    if engine_ready:
        return JSONResponse({
            "status": "ready",
            "engine_ready": True,
            "phase": orchestrator.phase.value,
        })
    return JSONResponse(
        {"status": "not_ready", "engine_ready": False},
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    orchestrator = get_orchestrator()
    component_metrics = {}
    if orchestrator is not None:
        component_metrics = orchestrator.get_metrics()
        engine_metrics = getattr(orchestrator.engine, "get_metrics", None)
        if engine_metrics is not None:
            component_metrics["engine"] = engine_metrics()
        if orchestrator.graph.vision is not None:
            component_metrics["vision"] = orchestrator.graph.vision.get_metrics()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "ocr_backend": settings.ocr.backend,
        "frames_received": _frames_received,
        "frame_errors": _frame_error_count,
        **component_metrics,
    })


@app.get("/result")
async def result() -> JSONResponse:
    """Get the last completed scan result."""
    orchestrator = get_orchestrator()
    last = orchestrator.last_result if orchestrator is not None else None

    if last is None:
        return JSONResponse(
            {"error": "No result available yet"},
            status_code=503,
        )

    return JSONResponse(last.model_dump(mode="json"))


@app.post("/frames")
async def submit_frame(message: FrameMessage) -> JSONResponse:
    """Run a scan trigger for one posted frame."""
    global _frames_received, _frame_error_count

    orchestrator = get_orchestrator()
    if orchestrator is None:
        return JSONResponse({"error": "Scanner not initialized"}, status_code=503)

    _frames_received += 1
    try:
        frame = frame_from_message(message)
    except (ImageDecodeError, ValueError) as e:
        _frame_error_count += 1
        logger.warning(f"Rejected frame {message.frame_id}: {e}")
        return JSONResponse({"error": f"Invalid frame: {e}"}, status_code=422)

    outcome = await orchestrator.on_frame(frame, target=message.target)
    return JSONResponse(outcome.model_dump(mode="json"))


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "counter_scan.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
