"""
Test Configuration
==================

Pytest fixtures and test configuration for SasaCam.
"""

import asyncio
import base64
from typing import List, Optional, Tuple

import cv2
import numpy as np
import pytest

from sasa_cam.inference.client import InferenceFailure, RefinementFailure
from sasa_cam.models.payload import ImagePayload


class RecordingInferenceClient:
    """
    Scriptable inference stand-in.

    Records every request. `gate`, when set, holds swap calls until the
    event is set; `failures` makes that many upcoming swaps fail.
    """

    def __init__(self) -> None:
        self.swap_requests: List[Tuple[ImagePayload, ImagePayload, Optional[ImagePayload]]] = []
        self.refine_requests: List[Tuple[ImagePayload, str]] = []
        self.gate: Optional[asyncio.Event] = None
        self.refine_gate: Optional[asyncio.Event] = None
        self.failures: int = 0
        self.refine_error: bool = False

    async def refine(self, identity: ImagePayload, instruction: str) -> str:
        self.refine_requests.append((identity, instruction))
        if self.refine_gate is not None:
            await self.refine_gate.wait()
        if self.refine_error:
            raise RefinementFailure("refinement rejected")
        return "refined description"

    async def swap(
        self,
        source: ImagePayload,
        target: ImagePayload,
        anchor: Optional[ImagePayload] = None,
    ) -> ImagePayload:
        self.swap_requests.append((source, target, anchor))
        number = len(self.swap_requests)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures > 0:
            self.failures -= 1
            raise InferenceFailure("service unavailable")
        data = base64.b64encode(f"result-{number}".encode()).decode("ascii")
        return ImagePayload(data=data, mime_type="image/png")

    async def aclose(self) -> None:
        return None


def result_url(number: int) -> str:
    """Data URL the recording client returns for its n-th swap."""
    data = base64.b64encode(f"result-{number}".encode()).decode("ascii")
    return f"data:image/png;base64,{data}"


@pytest.fixture
def face_image() -> np.ndarray:
    """Provide a small BGR test image."""
    image = np.zeros((48, 48, 3), dtype=np.uint8)
    cv2.circle(image, (24, 24), 16, (90, 160, 220), -1)
    return image


@pytest.fixture
def jpeg_bytes(face_image) -> bytes:
    ok, buf = cv2.imencode(".jpg", face_image)
    assert ok
    return buf.tobytes()


@pytest.fixture
def png_bytes(face_image) -> bytes:
    ok, buf = cv2.imencode(".png", face_image)
    assert ok
    return buf.tobytes()


@pytest.fixture
def jpeg_data_url(jpeg_bytes) -> str:
    """Provide a JPEG identity image as a data URL."""
    return "data:image/jpeg;base64," + base64.b64encode(jpeg_bytes).decode("ascii")


@pytest.fixture
def recording_client() -> RecordingInferenceClient:
    return RecordingInferenceClient()


@pytest.fixture
def result_urls():
    """Map a swap call number to the data URL the recording client returns."""
    return result_url


@pytest.fixture
def build_controller(recording_client):
    """
    Provide a factory for a fully wired SessionController.

    Uses a small synthetic camera, the recording inference client and a
    long tick interval so tests drive the loop manually.
    """
    from sasa_cam.capture import MockCaptureAdapter
    from sasa_cam.identity import IdentityStore
    from sasa_cam.orchestrator import SessionContext, SwapOrchestrator
    from sasa_cam.session import SessionController

    def _build(
        capture=None,
        inference=None,
        interval=60.0,
        request_timeout=5.0,
        acquire_timeout=1.0,
    ):
        orchestrator = SwapOrchestrator(
            context=SessionContext(),
            capture=capture or MockCaptureAdapter(width=64, height=48),
            inference=inference or recording_client,
            interval=interval,
            request_timeout=request_timeout,
            acquire_timeout=acquire_timeout,
        )
        return SessionController(store=IdentityStore(), orchestrator=orchestrator)

    return _build


@pytest.fixture
def start_swapping(jpeg_data_url):
    """Provide a coroutine that selects an identity, powers on and enables the persona."""

    async def _start(controller, resource=None):
        identity = controller.store.preload("Target", resource or jpeg_data_url)
        controller.store.select(identity.id)
        await controller.power_on()
        await controller.persona_on()
        return identity

    return _start
