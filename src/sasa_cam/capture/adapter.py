"""
Media Capture Adapter
=====================

Acquires a live video source and exposes per-frame snapshots.

Contract:
    acquire()          -> CaptureHandle, or raises CaptureError
    snapshot(handle)   -> BGR frame, or None while the device has no
                          decoded data yet (transient, not an error)
    release(handle)    -> closes the device; safe to call twice

The requested resolution is a hint. Devices may return something else,
so the handle records the resolution actually delivered and downstream
encoding always works on the frame as returned.

Use open_capture() for scoped acquisition: the device is released on every
exit path, including errors and cancellation.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Protocol

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when the capture device is unavailable or access is denied."""
    pass


@dataclass
class CaptureHandle:
    """
    An acquired capture device.

    Attributes:
        source: Human-readable device description
        width: Width of the frames the device actually delivers
        height: Height of the frames the device actually delivers
        opened_at: UNIX timestamp of acquisition
        frames_read: Number of successful snapshots
    """

    source: str
    width: int
    height: int
    opened_at: float = field(default_factory=time.time)
    frames_read: int = 0
    released: bool = False
    device: Any = field(default=None, repr=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class CaptureAdapter(Protocol):
    """Protocol for capture backends."""

    async def acquire(self) -> CaptureHandle:
        ...

    async def snapshot(self, handle: CaptureHandle) -> Optional[np.ndarray]:
        ...

    async def release(self, handle: CaptureHandle) -> None:
        ...


@asynccontextmanager
async def open_capture(
    adapter: CaptureAdapter,
    timeout: Optional[float] = None,
) -> AsyncIterator[CaptureHandle]:
    """
    Acquire a capture device for the duration of a block.

    Args:
        adapter: Capture backend
        timeout: Maximum seconds to wait for acquisition (None = no limit)

    Raises:
        CaptureError: If acquisition fails or times out
    """
    try:
        handle = await asyncio.wait_for(adapter.acquire(), timeout=timeout)
    except asyncio.TimeoutError:
        raise CaptureError(f"Capture acquisition timed out after {timeout}s")

    try:
        yield handle
    finally:
        await adapter.release(handle)


def _note_resolution(handle: CaptureHandle, frame: np.ndarray) -> None:
    height, width = frame.shape[:2]
    if (width, height) != (handle.width, handle.height):
        logger.info(
            f"Capture resolution changed: {handle.width}x{handle.height} -> "
            f"{width}x{height}"
        )
        handle.width = width
        handle.height = height


class OpenCVCaptureAdapter:
    """
    Capture backend using cv2.VideoCapture.

    Blocking OpenCV calls run in worker threads so the event loop is never
    blocked by device I/O.

    Attributes:
        device_index: OpenCV camera index
        width: Requested width (hint)
        height: Requested height (hint)
    """

    def __init__(self, device_index: int = 0, width: int = 1280, height: int = 720) -> None:
        self.device_index = device_index
        self.width = width
        self.height = height

    def _open(self) -> CaptureHandle:
        cap = cv2.VideoCapture(self.device_index)
        if not cap.isOpened():
            cap.release()
            raise CaptureError(f"Camera {self.device_index} could not be opened")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        actual_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or self.width
        actual_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or self.height
        if (actual_width, actual_height) != (self.width, self.height):
            logger.warning(
                f"Camera {self.device_index} delivers {actual_width}x{actual_height} "
                f"(requested {self.width}x{self.height})"
            )

        return CaptureHandle(
            source=f"opencv:{self.device_index}",
            width=actual_width,
            height=actual_height,
            device=cap,
        )

    async def acquire(self) -> CaptureHandle:
        try:
            handle = await asyncio.to_thread(self._open)
        except CaptureError:
            raise
        except cv2.error as e:
            raise CaptureError(f"Camera {self.device_index} failed to open: {e}")

        logger.info(f"Capture acquired: {handle.source} {handle.width}x{handle.height}")
        return handle

    async def snapshot(self, handle: CaptureHandle) -> Optional[np.ndarray]:
        if handle.released or handle.device is None:
            return None

        async with handle.lock:
            if handle.released:
                return None
            ok, frame = await asyncio.to_thread(handle.device.read)
        if not ok or frame is None or frame.size == 0:
            return None

        _note_resolution(handle, frame)
        handle.frames_read += 1
        return frame

    async def release(self, handle: CaptureHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if handle.device is not None:
            # Waits for a read in progress on the worker thread.
            async with handle.lock:
                await asyncio.to_thread(handle.device.release)
        logger.info(f"Capture released: {handle.source}")


class MockCaptureAdapter:
    """
    Deterministic synthetic capture backend.

    Produces a colour gradient that shifts with each frame, so successive
    snapshots differ. The first `warmup_frames` snapshots return None to
    imitate a device that has not decoded data yet.

    Attributes:
        width: Frame width
        height: Frame height
        warmup_frames: Number of initial empty snapshots
        fail: If True, acquire() raises CaptureError
        acquired: Number of acquisitions
        released: Number of releases
    """

    def __init__(
        self,
        width: int = 1280,
        height: int = 720,
        warmup_frames: int = 0,
        fail: bool = False,
    ) -> None:
        self.width = width
        self.height = height
        self.warmup_frames = warmup_frames
        self.fail = fail
        self.acquired: int = 0
        self.released: int = 0

    @property
    def open_handles(self) -> int:
        return self.acquired - self.released

    async def acquire(self) -> CaptureHandle:
        if self.fail:
            raise CaptureError("Mock camera unavailable")
        self.acquired += 1
        return CaptureHandle(source="mock", width=self.width, height=self.height)

    async def snapshot(self, handle: CaptureHandle) -> Optional[np.ndarray]:
        if handle.released:
            return None
        if self.warmup_frames > 0:
            self.warmup_frames -= 1
            return None

        shift = handle.frames_read * 7
        x = np.linspace(0, 255, self.width, dtype=np.float32)
        y = np.linspace(0, 255, self.height, dtype=np.float32)
        frame = np.empty((self.height, self.width, 3), dtype=np.uint8)
        frame[..., 0] = ((x[None, :] + shift) % 256).astype(np.uint8)
        frame[..., 1] = ((y[:, None] + shift) % 256).astype(np.uint8)
        frame[..., 2] = 128

        handle.frames_read += 1
        return frame

    async def release(self, handle: CaptureHandle) -> None:
        if handle.released:
            return
        handle.released = True
        self.released += 1
