"""
Swap Orchestrator
=================

Timed loop that turns the live feed into periodic, single-flight swap
requests and threads each result back in as the next consistency anchor.

Each dispatched tick:
    1. Snapshots the current frame from the capture device
    2. Encodes it as a JPEG data URL (quality ~0.8)
    3. Calls swap(source, target, anchor-if-SYNCED)
    4. On success stores the result as the new anchor (phase -> SYNCED)

Design Rules:
    - The busy flag is the only mutual exclusion. The ticker and the
      immediate trigger both go through trigger(), which checks and skips
      synchronously. Ticks arriving while busy are dropped, never queued.
    - Failures are caught at the tick boundary and become skipped ticks.
      Phase and anchor are left untouched, so the next natural tick retries.
    - Results are validated on arrival: if the anchor generation changed
      or swapping stopped while the request was in flight, the result is
      discarded.
    - The capture handle and the anchor are owned here exclusively.
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import Callable, Optional

from sasa_cam.capture.adapter import CaptureAdapter, CaptureHandle, open_capture
from sasa_cam.codec.image_codec import (
    EncodeError,
    frame_to_transportable,
    from_payload,
    to_payload,
)
from sasa_cam.inference.client import InferenceClient, InferenceFailure
from sasa_cam.orchestrator.ticker import PeriodicTicker
from sasa_cam.orchestrator.context import SessionContext


logger = logging.getLogger(__name__)


class SwapMetrics:
    """Metrics for SwapOrchestrator observability."""

    __slots__ = (
        "triggers",
        "skipped_busy",
        "skipped_inactive",
        "skipped_no_target",
        "skipped_no_frame",
        "requests",
        "successes",
        "failures",
        "encode_errors",
        "timeouts",
        "discarded",
        "last_latency_sec",
        "last_success_at",
    )

    def __init__(self) -> None:
        self.triggers: int = 0
        self.skipped_busy: int = 0
        self.skipped_inactive: int = 0
        self.skipped_no_target: int = 0
        self.skipped_no_frame: int = 0
        self.requests: int = 0
        self.successes: int = 0
        self.failures: int = 0
        self.encode_errors: int = 0
        self.timeouts: int = 0
        self.discarded: int = 0
        self.last_latency_sec: float = 0.0
        self.last_success_at: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class SwapOrchestrator:
    """
    Owner of the capture device, the ticker and the consistency anchor.

    Attributes:
        context: Shared session context
        interval: Ticker period in seconds
        request_timeout: Hard deadline for one dispatched tick
        frame_quality: JPEG quality for frame snapshots
        metrics: Operational metrics

    Example:
        orchestrator = SwapOrchestrator(context, capture, client)
        await orchestrator.acquire_capture()
        orchestrator.start_timer()
        orchestrator.trigger()
        ...
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        context: SessionContext,
        capture: CaptureAdapter,
        inference: InferenceClient,
        interval: float = 6.0,
        request_timeout: float = 90.0,
        frame_quality: float = 0.8,
        acquire_timeout: Optional[float] = 10.0,
        on_synced: Optional[Callable[[], None]] = None,
    ) -> None:
        self.context = context
        self.capture = capture
        self.inference = inference
        self.interval = interval
        self.request_timeout = request_timeout
        self.frame_quality = frame_quality
        self.acquire_timeout = acquire_timeout
        self.on_synced = on_synced

        self.metrics = SwapMetrics()

        self._ticker = PeriodicTicker(interval, self.trigger, name="swap_ticker")
        self._inflight: Optional[asyncio.Task] = None
        self._capture_stack: Optional[AsyncExitStack] = None
        self._capture_handle: Optional[CaptureHandle] = None
        self._device_lock = asyncio.Lock()
        self._acquire_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Capture ownership
    # -------------------------------------------------------------------------

    @property
    def capture_handle(self) -> Optional[CaptureHandle]:
        return self._capture_handle

    async def acquire_capture(self) -> CaptureHandle:
        """
        Acquire the capture device, scoped until release_capture().

        Acquisitions are serialized; a caller that finds a device already
        held gets that handle instead of opening a second one.

        Raises:
            CaptureError: If the device is unavailable or times out
        """
        async with self._acquire_lock:
            if self._capture_handle is not None:
                return self._capture_handle

            stack = AsyncExitStack()
            try:
                handle = await stack.enter_async_context(
                    open_capture(self.capture, timeout=self.acquire_timeout)
                )
            except BaseException:
                await stack.aclose()
                raise

            self._capture_stack = stack
            self._capture_handle = handle
            return handle

    async def release_capture(self) -> None:
        """Release the capture device. Safe to call when nothing is held."""
        stack = self._capture_stack
        self._capture_stack = None
        self._capture_handle = None
        self.context.last_frame = None
        if stack is None:
            return
        async with self._device_lock:
            await stack.aclose()

    # -------------------------------------------------------------------------
    # Timer and anchor
    # -------------------------------------------------------------------------

    @property
    def timer_running(self) -> bool:
        return self._ticker.running

    def start_timer(self) -> None:
        self._ticker.start()

    def stop_timer(self) -> None:
        self._ticker.stop()

    def clear_anchor(self) -> None:
        """Discard the anchor; results of requests already in flight are dropped."""
        self.context.discard_anchor()

    # -------------------------------------------------------------------------
    # Ticks
    # -------------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self.context.busy

    def trigger(self) -> bool:
        """
        Dispatch one swap request unless the loop must skip.

        Synchronous check-and-skip: returns immediately, never queues.

        Returns:
            True if a request was dispatched
        """
        self.metrics.triggers += 1
        ctx = self.context

        if ctx.busy:
            self.metrics.skipped_busy += 1
            logger.debug("Tick skipped: request in flight")
            return False
        if not ctx.swapping:
            self.metrics.skipped_inactive += 1
            return False
        if ctx.target is None or not ctx.state.target_ready:
            self.metrics.skipped_no_target += 1
            logger.debug("Tick skipped: target not resolved")
            return False
        if self._capture_handle is None:
            self.metrics.skipped_no_frame += 1
            logger.warning("Tick skipped: no capture device held")
            return False

        ctx.busy = True
        self._inflight = asyncio.get_running_loop().create_task(
            self._run_request(ctx.generation, ctx.target),
            name="swap_request",
        )
        return True

    async def tick(self) -> bool:
        """Trigger once and wait for the dispatched request to finish."""
        dispatched = self.trigger()
        if dispatched:
            await self.wait_idle()
        return dispatched

    async def wait_idle(self) -> None:
        """Wait for the in-flight request, if any, to complete."""
        task = self._inflight
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run_request(self, generation: int, target: str) -> None:
        ctx = self.context
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self._swap_once(target),
                timeout=self.request_timeout,
            )
        except EncodeError as e:
            self.metrics.encode_errors += 1
            logger.warning(f"Tick skipped: frame encode failed: {e}")
        except InferenceFailure as e:
            self.metrics.failures += 1
            logger.warning(f"Swap failed, retrying on next tick: {e}")
        except asyncio.TimeoutError:
            self.metrics.timeouts += 1
            logger.warning(f"Swap timed out after {self.request_timeout}s")
        except asyncio.CancelledError:
            logger.info("Swap request cancelled")
            raise
        except Exception as e:
            self.metrics.failures += 1
            logger.error(f"Unexpected swap error: {e}")
        else:
            if result is None:
                return
            self.metrics.last_latency_sec = round(time.monotonic() - start, 3)
            if generation != ctx.generation or not ctx.swapping:
                self.metrics.discarded += 1
                logger.info("Discarding swap result from a cancelled session")
                return

            ctx.anchor = result
            self.metrics.successes += 1
            self.metrics.last_success_at = time.time()
            logger.debug(f"Anchor updated in {self.metrics.last_latency_sec:.2f}s")
            if self.on_synced is not None:
                self.on_synced()
        finally:
            ctx.busy = False

    async def _swap_once(self, target: str) -> Optional[str]:
        """Capture, encode and swap one frame; None when no frame is available."""
        handle = self._capture_handle
        if handle is None:
            self.metrics.skipped_no_frame += 1
            return None

        async with self._device_lock:
            frame = await self.capture.snapshot(handle)
        if frame is None:
            self.metrics.skipped_no_frame += 1
            logger.debug("Tick skipped: no decoded frame yet")
            return None

        self.context.last_frame = frame
        source = await asyncio.to_thread(frame_to_transportable, frame, self.frame_quality)

        anchor = self.context.anchor if self.context.synced else None

        self.metrics.requests += 1
        result = await self.inference.swap(
            to_payload(source),
            to_payload(target),
            to_payload(anchor) if anchor is not None else None,
        )
        return from_payload(result)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Stop the timer, discard the anchor, wait for in-flight work, release capture."""
        self.stop_timer()
        self.clear_anchor()
        await self.wait_idle()
        await self.release_capture()

    def get_metrics(self) -> dict:
        return {
            **self.metrics.to_dict(),
            "busy": self.context.busy,
            "timer_running": self.timer_running,
            "ticks_fired": self._ticker.ticks,
            "capture_acquired": self._capture_handle is not None,
        }
