"""
Inference Client
================

Request/response abstraction over the external image-generation service.

This module provides the InferenceClient protocol, the failure taxonomy,
the swap instruction builder and MockInferenceClient, a deterministic local
stand-in that needs no network access.

Design Rules:
    - Stateless: every call is one request and one response
    - No retries: the swap loop's own cadence is the retry policy
    - A response without an image is a failure, never an empty success
    - Payloads are always stripped (ImagePayload), never data URLs
"""

import asyncio
import logging
from typing import Optional, Protocol

import cv2
import numpy as np

from sasa_cam.codec.image_codec import (
    EncodeError,
    bytes_to_transportable,
    decode_transportable,
    from_payload,
    strip_envelope,
)
from sasa_cam.models.payload import ImagePayload


logger = logging.getLogger(__name__)


class InferenceFailure(Exception):
    """Raised when the service errors or returns a malformed/empty response."""
    pass


class RefinementFailure(InferenceFailure):
    """Raised when identity refinement fails."""
    pass


REFINE_PREFIX = "Enhance this identity for a professional virtual camera output."

REFINE_SYSTEM_INSTRUCTION = (
    "You are a face restoration expert. Describe the lighting and anatomical "
    "features clearly for a mapping engine."
)


def build_swap_instruction(with_anchor: bool) -> str:
    """
    Build the single instruction block that follows the swap images.

    The text differs only in whether the anchor lines are present.

    Args:
        with_anchor: Whether a third image (the previous result) is attached

    Returns:
        Instruction text
    """
    lines = [
        "IDENTITY LOCK:",
        "1. Image 1 is the current live camera frame (SOURCE).",
        "2. Image 2 is the target persona face (TARGET).",
    ]
    if with_anchor:
        lines.append("3. Image 3 is the previous successful swap (ANCHOR).")
    lines += [
        "",
        "TASK: Replace only the face in Image 1 with the facial features of Image 2.",
        "STRICT CONSTRAINTS:",
        "- Keep the background, hair, body and clothing of Image 1 unchanged.",
        "- Keep the lighting and head orientation of Image 1 unchanged.",
        "- Morph only the internal facial features (eyes, nose, mouth) to match Image 2.",
    ]
    if with_anchor:
        lines.append(
            "- Make the resulting face match the face in Image 3 exactly, "
            "so appearance stays stable from frame to frame."
        )
    lines.append("- Output only the modified Image 1.")
    return "\n".join(lines)


class InferenceClient(Protocol):
    """
    Protocol for inference backends.

    Implemented by:
        - GeminiInferenceClient (production, REST)
        - MockInferenceClient (offline, deterministic)
    """

    async def refine(self, identity: ImagePayload, instruction: str) -> str:
        """
        Describe an identity image for the mapping engine.

        Raises:
            RefinementFailure: On any service error or empty text
        """
        ...

    async def swap(
        self,
        source: ImagePayload,
        target: ImagePayload,
        anchor: Optional[ImagePayload] = None,
    ) -> ImagePayload:
        """
        Swap the target face into the source frame.

        Raises:
            InferenceFailure: On any service error or a response without image
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


class MockInferenceClient:
    """
    Deterministic mock inference backend.

    Blends a resized copy of the target face into the centre of the source
    frame. When an anchor is supplied, the blended region is averaged with
    the same region of the anchor, imitating the stabilising effect of the
    consistency reference.

    Attributes:
        delay_sec: Artificial latency per call, to imitate a slow service
        swap_calls: Number of swap calls received
        refine_calls: Number of refine calls received
    """

    def __init__(self, delay_sec: float = 0.0, face_scale: float = 0.4) -> None:
        self.delay_sec = delay_sec
        self.face_scale = face_scale
        self.swap_calls: int = 0
        self.refine_calls: int = 0

        logger.info(f"MockInferenceClient initialized: delay={delay_sec}s")

    async def refine(self, identity: ImagePayload, instruction: str) -> str:
        self.refine_calls += 1
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        try:
            face = decode_transportable(from_payload(identity))
        except EncodeError as e:
            raise RefinementFailure(f"Mock refinement could not decode identity: {e}")
        height, width = face.shape[:2]
        brightness = float(np.mean(face))
        return (
            f"Reference face {width}x{height}, mean brightness {brightness:.1f}. "
            f"{instruction}"
        )

    async def swap(
        self,
        source: ImagePayload,
        target: ImagePayload,
        anchor: Optional[ImagePayload] = None,
    ) -> ImagePayload:
        self.swap_calls += 1
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        try:
            return await asyncio.to_thread(self._compose, source, target, anchor)
        except EncodeError as e:
            raise InferenceFailure(f"Mock swap failed: {e}")

    def _compose(
        self,
        source: ImagePayload,
        target: ImagePayload,
        anchor: Optional[ImagePayload],
    ) -> ImagePayload:
        frame = decode_transportable(from_payload(source))
        face = decode_transportable(from_payload(target))

        height, width = frame.shape[:2]
        side = max(1, int(min(height, width) * self.face_scale))
        top = (height - side) // 2
        left = (width - side) // 2

        face = cv2.resize(face, (side, side), interpolation=cv2.INTER_AREA)
        region = frame[top:top + side, left:left + side]
        blended = cv2.addWeighted(region, 0.3, face, 0.7, 0.0)

        if anchor is not None:
            previous = decode_transportable(from_payload(anchor))
            if previous.shape == frame.shape:
                blended = cv2.addWeighted(
                    blended, 0.5, previous[top:top + side, left:left + side], 0.5, 0.0
                )

        frame[top:top + side, left:left + side] = blended

        ok, buf = cv2.imencode(".png", frame)
        if not ok:
            raise EncodeError("PNG encode failed")
        return ImagePayload(
            data=strip_envelope(bytes_to_transportable(buf.tobytes(), "image/png")),
            mime_type="image/png",
        )

    async def aclose(self) -> None:
        return None

    def get_metrics(self) -> dict:
        return {
            "backend": "mock",
            "swap_calls": self.swap_calls,
            "refine_calls": self.refine_calls,
        }
