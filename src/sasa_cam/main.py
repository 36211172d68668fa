"""
SasaCam Main Application
========================

FastAPI entry point for the persona engine.

The service exposes the control surface of the virtual camera: the identity
library, the power and persona toggles, and the latest swapped frame.

Endpoints:
    GET    /                          - Service information
    GET    /health                    - Liveness probe (is process alive?)
    GET    /ready                     - Readiness probe (components initialized?)
    GET    /metrics                   - Swap loop, store and session metrics
    GET    /identities                - Identity library snapshot
    POST   /identities                - Add an identity
    DELETE /identities/{id}           - Remove an identity
    POST   /identities/{id}/select    - Toggle selection
    POST   /identities/deselect       - Clear selection
    GET    /session                   - Session snapshot
    POST   /session/power             - Power toggle
    POST   /session/persona           - Persona toggle
    GET    /session/frame             - Latest swapped frame
    WS     /ws/session                - Real-time session stream
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

import httpx
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, field_validator

from sasa_cam.capture import CaptureError, MockCaptureAdapter, OpenCVCaptureAdapter
from sasa_cam.codec import ImageDecodeError, is_inline, transportable_to_bytes
from sasa_cam.config import settings
from sasa_cam.identity import IdentityStore
from sasa_cam.inference import GeminiInferenceClient, MockInferenceClient
from sasa_cam.orchestrator import SessionContext, SwapOrchestrator
from sasa_cam.session import SessionController


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

# Shutdown flag
_shutdown_flag: bool = False

_http_client: Optional[httpx.AsyncClient] = None
_inference: Optional[Union[MockInferenceClient, GeminiInferenceClient]] = None
_store: Optional[IdentityStore] = None
_orchestrator: Optional[SwapOrchestrator] = None
_controller: Optional[SessionController] = None

_startup_time: float = 0.0
_is_ready: bool = False


# =============================================================================
# Getters
# =============================================================================

def get_store() -> Optional[IdentityStore]:
    return _store

def get_orchestrator() -> Optional[SwapOrchestrator]:
    return _orchestrator

def get_controller() -> Optional[SessionController]:
    return _controller

def is_ready() -> bool:
    return _is_ready


# =============================================================================
# Request Models
# =============================================================================

class AddIdentityRequest(BaseModel):
    """Body of POST /identities."""

    name: Optional[str] = Field(default=None, max_length=80)
    image: str = Field(..., min_length=1, description="Data URL or http(s) URL")

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if not (is_inline(v) or v.startswith(("http://", "https://"))):
            raise ValueError("image must be a data URL or an http(s) URL")
        return v


# =============================================================================
# Backend Factories
# =============================================================================

def create_capture_adapter() -> Union[MockCaptureAdapter, OpenCVCaptureAdapter]:
    """Create capture adapter based on config."""
    backend = settings.capture.backend

    if backend == "mock":
        logger.info("Using MockCaptureAdapter")
        return MockCaptureAdapter(
            width=settings.capture.width,
            height=settings.capture.height,
        )

    elif backend == "opencv":
        logger.info(f"Using OpenCVCaptureAdapter: device={settings.capture.device_index}")
        return OpenCVCaptureAdapter(
            device_index=settings.capture.device_index,
            width=settings.capture.width,
            height=settings.capture.height,
        )

    else:
        raise ValueError(f"Unknown capture backend: {backend}")


def create_inference_client() -> Union[MockInferenceClient, GeminiInferenceClient]:
    """
    Create inference client based on config.

    Fails fast if the gemini backend is requested without an API key.
    """
    backend = settings.inference.backend

    if backend == "mock":
        logger.info("Using MockInferenceClient")
        return MockInferenceClient()

    elif backend == "gemini":
        return GeminiInferenceClient(
            api_key=settings.inference.api_key,
            base_url=settings.inference.base_url,
            swap_model=settings.inference.swap_model,
            refine_model=settings.inference.refine_model,
            timeout=settings.inference.request_timeout_sec,
        )

    else:
        raise ValueError(f"Unknown inference backend: {backend}")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _shutdown_flag, _http_client, _inference
    global _store, _orchestrator, _controller, _startup_time, _is_ready

    _shutdown_flag = False
    _startup_time = time.time()
    logger.info(f"Starting {settings.app.name} {settings.app.version}")

    capture = create_capture_adapter()
    _inference = create_inference_client()
    _http_client = httpx.AsyncClient(
        timeout=settings.codec.fetch_timeout_sec,
        follow_redirects=True,
    )

    # Identity library
    _store = IdentityStore(
        inference=_inference,
        refine_instruction=settings.inference.refine_instruction,
        resource_quality=settings.codec.resource_quality,
    )
    for preset in settings.identities.presets:
        _store.preload(preset.name, preset.image)

    # Swap loop and session
    _orchestrator = SwapOrchestrator(
        context=SessionContext(),
        capture=capture,
        inference=_inference,
        interval=settings.orchestrator.tick_interval_sec,
        request_timeout=settings.orchestrator.request_timeout_sec,
        frame_quality=settings.codec.frame_quality,
        acquire_timeout=settings.capture.acquire_timeout_sec,
    )
    _controller = SessionController(
        store=_store,
        orchestrator=_orchestrator,
        http_client=_http_client,
        resource_quality=settings.codec.resource_quality,
        fetch_timeout=settings.codec.fetch_timeout_sec,
    )

    _is_ready = True
    logger.info(
        f"All components started: capture={settings.capture.backend}, "
        f"inference={settings.inference.backend}, "
        f"presets={len(settings.identities.presets)}"
    )

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    _shutdown_flag = True
    _is_ready = False

    await _controller.shutdown()
    await _store.close()
    await _inference.aclose()
    await _http_client.aclose()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="SasaCam",
    description="Real-time persona face-swap engine",
    version=settings.app.version,
    lifespan=lifespan,
)


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Service not initialized"}, status_code=503)


def _library_json() -> dict:
    return get_store().snapshot().model_dump(mode="json")


def _session_json() -> dict:
    return get_controller().snapshot().model_dump(mode="json")


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "SasaCam",
        "version": settings.app.version,
        "name": settings.app.name,
        "status": "running",
        "capture_backend": settings.capture.backend,
        "inference_backend": settings.inference.backend,
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
    Readiness probe - is the service ready to handle requests?

    Returns 200 once the store, swap loop and session are initialized.
    Returns 503 otherwise.
    """
    orchestrator = get_orchestrator()
    controller = get_controller()
    capture_acquired = orchestrator is not None and orchestrator.capture_handle is not None

    if is_ready() and controller is not None:
        return JSONResponse({
            "status": "ready",
            "capture_acquired": capture_acquired,
            "session_status": controller.status.value,
        })
    else:
        return JSONResponse(
            {
                "status": "not_ready",
                "capture_acquired": capture_acquired,
            },
            status_code=503,
        )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    if not is_ready():
        return _not_ready()

    inference_metrics = {}
    if hasattr(_inference, "get_metrics"):
        inference_metrics = _inference.get_metrics()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "capture_backend": settings.capture.backend,
        "inference_backend": settings.inference.backend,
        "session": _session_json(),
        "swap_loop": get_orchestrator().get_metrics(),
        "identities": get_store().get_metrics(),
        "inference": inference_metrics,
    })


@app.get("/identities")
async def list_identities() -> JSONResponse:
    """Identity library snapshot."""
    if not is_ready():
        return _not_ready()
    return JSONResponse(_library_json())


@app.post("/identities")
async def add_identity(request: AddIdentityRequest) -> JSONResponse:
    """Add an identity; refinement continues in the background."""
    if not is_ready():
        return _not_ready()
    identity = get_store().add(request.image, name=request.name)
    return JSONResponse(identity.model_dump(mode="json"), status_code=201)


@app.delete("/identities/{identity_id}")
async def remove_identity(identity_id: str) -> JSONResponse:
    if not is_ready():
        return _not_ready()
    if not get_store().remove(identity_id):
        return JSONResponse({"error": f"Unknown identity: {identity_id}"}, status_code=404)
    return JSONResponse(_library_json())


@app.post("/identities/deselect")
async def deselect_identity() -> JSONResponse:
    if not is_ready():
        return _not_ready()
    get_store().deselect()
    return JSONResponse(_library_json())


@app.post("/identities/{identity_id}/select")
async def select_identity(identity_id: str) -> JSONResponse:
    """Select the identity, or deselect it if it is already active."""
    if not is_ready():
        return _not_ready()
    try:
        get_store().select(identity_id)
    except KeyError:
        return JSONResponse({"error": f"Unknown identity: {identity_id}"}, status_code=404)
    return JSONResponse(_library_json())


@app.get("/session")
async def session() -> JSONResponse:
    if not is_ready():
        return _not_ready()
    return JSONResponse(_session_json())


@app.post("/session/power")
async def toggle_power() -> JSONResponse:
    """
    Power toggle.

    Returns 503 if the camera could not be acquired; the session is
    back in INACTIVE in that case.
    """
    if not is_ready():
        return _not_ready()
    try:
        snapshot = await get_controller().toggle_power()
    except CaptureError as e:
        return JSONResponse(
            {"error": str(e), "session": _session_json()},
            status_code=503,
        )
    return JSONResponse(snapshot.model_dump(mode="json"))


@app.post("/session/persona")
async def toggle_persona() -> JSONResponse:
    """Persona toggle. A no-op while the toggle is disabled."""
    if not is_ready():
        return _not_ready()
    snapshot = await get_controller().toggle_persona()
    return JSONResponse(snapshot.model_dump(mode="json"))


@app.get("/session/frame")
async def session_frame() -> Response:
    """
    Latest swapped frame as raw image bytes.

    Returns 204 when no frame is available and 502 if the model returned
    an undecodable image.
    """
    if not is_ready():
        return _not_ready()
    anchor = get_controller().anchor
    if anchor is None:
        return Response(status_code=204)
    try:
        media_type, data = transportable_to_bytes(anchor)
    except ImageDecodeError as e:
        logger.warning(f"Latest swapped frame is not decodable: {e}")
        return JSONResponse({"error": "Swapped frame is not decodable"}, status_code=502)
    return Response(content=data, media_type=media_type)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/session")
async def session_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time session and library snapshots."""
    await websocket.accept()
    logger.info("Client connected to /ws/session")

    try:
        while not _shutdown_flag:
            if is_ready():
                library = get_store().snapshot().model_dump(
                    mode="json",
                    exclude={"identities": {"__all__": {"image_resource"}}},
                )
                await websocket.send_json({
                    "session": _session_json(),
                    "library": library,
                })
            try:
                # doubles as the 1s pacing and as disconnect detection
                await asyncio.wait_for(websocket.receive_text(), timeout=1.0)
            except asyncio.TimeoutError:
                pass

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/session")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sasa_cam.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
