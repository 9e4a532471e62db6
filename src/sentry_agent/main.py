"""
SentryAgent Main Application
============================

FastAPI entry point for the person sentry agent.

Startup wires the pipeline from configuration:
    - Detector (mock or Google Cloud Vision)
    - Image store (local directory or S3/MinIO bucket)
    - Notifier (log or SMTP e-mail)
    - StreamManager with one controller per configured stream
    - MQTT control bridge (when a broker is configured)

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (are streams running?)
    GET  /metrics   - Aggregated counters across streams
    GET  /streams   - Per-stream state and metrics
    POST /control   - Activate/deactivate a stream
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from sentry_agent.config import Settings, settings
from sentry_agent.control import MqttControlBridge
from sentry_agent.egress import (
    ImageStore,
    LocalImageStore,
    LogNotifier,
    MinioImageStore,
    Notifier,
    SmtpNotifier,
)
from sentry_agent.models.input import ControlCommand
from sentry_agent.perception import Detector, MockDetector, VisionDetector
from sentry_agent.stream import CaptureFactory, StreamManager, VideoSource


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_manager: Optional[StreamManager] = None
_bridge: Optional[MqttControlBridge] = None
_startup_time: float = 0.0


def get_manager() -> Optional[StreamManager]:
    return _manager

def get_bridge() -> Optional[MqttControlBridge]:
    return _bridge


# =============================================================================
# Component Factories
# =============================================================================

def create_detector(settings: Settings) -> Detector:
    """
    Create detector based on config.

    Raises:
        ValueError: If the backend is unknown
    """
    backend = settings.detector.backend

    if backend == "mock":
        logger.info("Using MockDetector")
        return MockDetector(
            confidence=settings.detector.mock.person_confidence,
            target_label=settings.detector.target_label,
        )

    elif backend == "vision":
        logger.info(f"Using VisionDetector: max_labels={settings.detector.max_labels}")
        return VisionDetector(
            max_labels=settings.detector.max_labels,
            credentials_path=settings.detector.vision.credentials_path,
        )

    else:
        raise ValueError(f"Unknown detector backend: {backend}")


def create_image_store(settings: Settings) -> ImageStore:
    """
    Create image store based on config.

    Raises:
        ValueError: If the backend is unknown
    """
    storage = settings.storage

    if storage.backend == "local":
        return LocalImageStore(root=storage.local_root)

    elif storage.backend == "minio":
        return MinioImageStore(
            endpoint=storage.endpoint,
            bucket=storage.bucket,
            access_key=storage.access_key,
            secret_key=storage.secret_key,
            secure=storage.secure,
            region=storage.region,
        )

    else:
        raise ValueError(f"Unknown storage backend: {storage.backend}")


def create_notifier(settings: Settings) -> Notifier:
    """
    Create notifier based on config.

    Raises:
        ValueError: If the backend is unknown or SMTP has no recipients
    """
    notifier = settings.notifier

    if notifier.backend == "log":
        return LogNotifier()

    elif notifier.backend == "smtp":
        return SmtpNotifier(
            host=notifier.host,
            port=notifier.port,
            sender=notifier.sender,
            recipients=notifier.recipients,
            username=notifier.username,
            password=notifier.password,
            use_tls=notifier.use_tls,
            timeout=notifier.timeout_seconds,
        )

    else:
        raise ValueError(f"Unknown notifier backend: {notifier.backend}")


def build_manager(
    settings: Settings,
    capture_factory: CaptureFactory = VideoSource,
) -> StreamManager:
    """Build the StreamManager and its shared detector, store and notifier."""
    return StreamManager.from_settings(
        settings,
        detector=create_detector(settings),
        store=create_image_store(settings),
        notifier=create_notifier(settings),
        capture_factory=capture_factory,
    )


def create_bridge(
    settings: Settings,
    manager: StreamManager,
) -> Optional[MqttControlBridge]:
    """MQTT bridge for the manager's streams, or None when no broker is set."""
    mqtt = settings.mqtt
    if not mqtt.host:
        logger.warning("MQTT settings missing, control bridge disabled")
        return None

    return MqttControlBridge(
        manager,
        host=mqtt.host,
        port=mqtt.port,
        username=mqtt.username,
        password=mqtt.password,
        client_id=mqtt.client_id,
        keepalive=mqtt.keepalive,
        activate_payload=mqtt.activate_payload,
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _manager, _bridge, _startup_time

    # Startup
    _startup_time = time.time()
    logger.info(f"Starting {settings.agent.name} {settings.agent.version}")

    _manager = build_manager(settings)
    _manager.start_all()
    logger.info(f"Streams: {', '.join(_manager.names) or 'none'}")

    _bridge = create_bridge(settings, _manager)
    if _bridge is not None:
        _bridge.start()

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")

    if _bridge is not None:
        _bridge.stop()

    if _manager is not None:
        failures = await run_in_threadpool(_manager.stop_all)
        for name, error in failures.items():
            logger.error(f"[{name}] Stream did not stop cleanly: {error}")

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="SentryAgent",
    description="Event-gated person detection over video streams",
    version=settings.agent.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    manager = get_manager()
    return JSONResponse({
        "service": "SentryAgent",
        "version": settings.agent.version,
        "name": settings.agent.name,
        "status": "running",
        "streams": manager.names if manager else [],
        "detector_backend": settings.detector.backend,
        "storage_backend": settings.storage.backend,
        "notifier_backend": settings.notifier.backend,
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
    Readiness probe - are the streams running?

    Returns 200 if at least one stream is running, 503 otherwise.
    """
    manager = get_manager()
    running = []
    if manager is not None:
        running = [
            name for name in manager.names
            if manager.get(name).is_running
        ]

    bridge = get_bridge()
    payload = {
        "streams_running": len(running),
        "streams_total": len(manager) if manager else 0,
        "mqtt_connected": bridge.connected if bridge else False,
    }

    if running:
        return JSONResponse({"status": "ready", **payload})
    return JSONResponse({"status": "not_ready", **payload}, status_code=503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Counters summed across all streams."""
    manager = get_manager()
    snapshots = manager.snapshot() if manager else []

    totals = {
        "frames_read": 0,
        "frames_buffered": 0,
        "frames_dropped": 0,
        "batches_flushed": 0,
        "read_failures": 0,
        "batches_processed": 0,
        "detections": 0,
        "detector_errors": 0,
        "store_errors": 0,
        "notify_errors": 0,
        "queued_batches": 0,
    }
    for snap in snapshots:
        for key in ("frames_read", "frames_buffered", "frames_dropped",
                    "batches_flushed", "read_failures"):
            totals[key] += snap["source"][key]
        for key in ("batches_processed", "detections", "detector_errors",
                    "store_errors", "notify_errors"):
            totals[key] += snap["processor"][key]
        totals["queued_batches"] += snap["buffer"]["size"]

    bridge = get_bridge()
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "streams": len(snapshots),
        "active_streams": sum(1 for snap in snapshots if snap["active"]),
        "mqtt_messages": bridge.messages_received if bridge else 0,
        **totals,
    })


@app.get("/streams")
async def streams() -> JSONResponse:
    """Per-stream state and metrics."""
    manager = get_manager()
    return JSONResponse({"streams": manager.snapshot() if manager else []})


@app.post("/control")
async def control(command: ControlCommand) -> JSONResponse:
    """
    Activate or deactivate a stream.

    Returns 404 for an unknown stream and 409 if the stream is stopped.
    """
    manager = get_manager()
    if manager is None or command.stream not in manager:
        raise HTTPException(status_code=404, detail=f"Unknown stream: {command.stream}")

    if not manager.dispatch(command.stream, command.action):
        raise HTTPException(status_code=409, detail=f"Stream {command.stream} is stopped")

    return JSONResponse({
        "stream": command.stream,
        "action": command.action.value,
        "active": manager.get(command.stream).is_active(),
    })


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "sentry_agent.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
