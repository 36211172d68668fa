"""
Session Controller
==================

Applies session events and performs the effects they request.

The controller is the only writer of SessionContext.state. Every input,
whether a user toggle, a capture completion, an identity store mutation
or a swap result, becomes a SessionEvent fed through the SessionGraph,
and the returned effects are carried out here, in order.

Effects:
    ACQUIRE_CAPTURE / RELEASE_CAPTURE  -> orchestrator capture scope (awaited)
    START_TIMER / STOP_TIMER           -> orchestrator ticker (synchronous)
    CLEAR_ANCHOR                       -> orchestrator anchor + generation bump
    RESOLVE_TARGET                     -> background task encoding the active
                                          identity into its transportable form
    TRIGGER_NOW                        -> orchestrator.trigger() (honours busy)
"""

import asyncio
import logging
from typing import Optional

import httpx

from sasa_cam.capture.adapter import CaptureError
from sasa_cam.codec.image_codec import EncodeError, resource_to_transportable
from sasa_cam.identity.store import IdentityStore
from sasa_cam.models.identity import IdentityLibrary
from sasa_cam.models.session import (
    Effect,
    EventKind,
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
)
from sasa_cam.orchestrator.swap_loop import SwapOrchestrator
from sasa_cam.session.graph import SessionGraph
from sasa_cam.session.transitions import TransitionResult


logger = logging.getLogger(__name__)


class SessionController:
    """
    Glue between the session state machine, the identity store and the
    swap orchestrator.

    Must be created and used on a running event loop.

    Attributes:
        store: Identity store (subscribed to for selection changes)
        orchestrator: Swap loop owning capture, timer and anchor
        context: Shared session context
        graph: Session state machine
    """

    def __init__(
        self,
        store: IdentityStore,
        orchestrator: SwapOrchestrator,
        http_client: Optional[httpx.AsyncClient] = None,
        resource_quality: float = 0.92,
        fetch_timeout: float = 15.0,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.context = orchestrator.context
        self.graph = SessionGraph(self.context.state)
        self.http_client = http_client
        self.resource_quality = resource_quality
        self.fetch_timeout = fetch_timeout

        self._resolve_task: Optional[asyncio.Task] = None
        self._acquisitions = 0

        orchestrator.on_synced = self._on_synced
        store.subscribe(self._on_library)
        if store.active_id is not None:
            self._on_library(store.snapshot())

    # -------------------------------------------------------------------------
    # Event dispatch
    # -------------------------------------------------------------------------

    def _dispatch(self, kind: EventKind, identity_id: Optional[str] = None) -> TransitionResult:
        result = self.graph.process(SessionEvent(kind=kind, identity_id=identity_id))
        self.context.state = result.state

        for effect in result.effects:
            if effect == Effect.STOP_TIMER:
                self.orchestrator.stop_timer()
            elif effect == Effect.CLEAR_ANCHOR:
                self.orchestrator.clear_anchor()
            elif effect == Effect.START_TIMER:
                self.orchestrator.start_timer()
            elif effect == Effect.TRIGGER_NOW:
                self.orchestrator.trigger()
            elif effect == Effect.RESOLVE_TARGET:
                self._schedule_resolve()
            # capture effects are awaited by _dispatch_async

        return result

    async def _dispatch_async(
        self,
        kind: EventKind,
        identity_id: Optional[str] = None,
    ) -> TransitionResult:
        result = self._dispatch(kind, identity_id)

        if Effect.RELEASE_CAPTURE in result.effects:
            await self.orchestrator.release_capture()
        if Effect.ACQUIRE_CAPTURE in result.effects:
            await self._acquire()

        return result

    async def _acquire(self) -> None:
        # Only the latest power on reports back; an older acquisition still
        # pending was superseded and the newer one reuses whatever it opened.
        self._acquisitions += 1
        token = self._acquisitions
        try:
            await self.orchestrator.acquire_capture()
        except CaptureError as e:
            if token != self._acquisitions:
                logger.warning(f"Superseded capture acquisition failed: {e}")
                return
            logger.error(f"Capture unavailable: {e}")
            await self._dispatch_async(EventKind.CAPTURE_FAILED)
            raise
        if token != self._acquisitions:
            logger.debug("Superseded capture acquisition completed")
            return
        await self._dispatch_async(EventKind.CAPTURE_READY)

    # -------------------------------------------------------------------------
    # Power
    # -------------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.context.state.status

    async def power_on(self) -> SessionSnapshot:
        """
        Acquire the camera and enter ACTIVE.

        Raises:
            CaptureError: If the device is unavailable; status returns to INACTIVE
        """
        await self._dispatch_async(EventKind.POWER_ON)
        return self.snapshot()

    async def power_off(self) -> SessionSnapshot:
        await self._dispatch_async(EventKind.POWER_OFF)
        return self.snapshot()

    async def toggle_power(self) -> SessionSnapshot:
        if self.status == SessionStatus.INACTIVE:
            return await self.power_on()
        return await self.power_off()

    # -------------------------------------------------------------------------
    # Persona
    # -------------------------------------------------------------------------

    async def persona_on(self) -> SessionSnapshot:
        """Start swapping; a no-op unless ACTIVE with a resolvable identity."""
        await self.wait_for_target()
        self._dispatch(EventKind.PERSONA_ON)
        return self.snapshot()

    async def persona_off(self) -> SessionSnapshot:
        self._dispatch(EventKind.PERSONA_OFF)
        return self.snapshot()

    async def toggle_persona(self) -> SessionSnapshot:
        if self.status == SessionStatus.SWAPPING:
            return await self.persona_off()
        return await self.persona_on()

    @property
    def persona_toggle_enabled(self) -> bool:
        return (
            self.status not in (SessionStatus.INACTIVE, SessionStatus.LOADING)
            and self.context.state.active_identity_id is not None
        )

    # -------------------------------------------------------------------------
    # Identity selection and target resolution
    # -------------------------------------------------------------------------

    def _on_library(self, library: IdentityLibrary) -> None:
        if library.active_id != self.context.state.active_identity_id:
            self._dispatch(EventKind.IDENTITY_CHANGED, library.active_id)

    def _schedule_resolve(self) -> None:
        if self._resolve_task is not None and not self._resolve_task.done():
            self._resolve_task.cancel()
        self._resolve_task = None
        self.context.target = None

        identity_id = self.context.state.active_identity_id
        if identity_id is None:
            return

        self._resolve_task = asyncio.get_running_loop().create_task(
            self._resolve(identity_id),
            name=f"resolve_{identity_id}",
        )

    async def _resolve(self, identity_id: str) -> None:
        identity = self.store.get(identity_id)
        if identity is None:
            self._dispatch(EventKind.TARGET_FAILED, identity_id)
            return

        try:
            encoded = await resource_to_transportable(
                identity.image_resource,
                http_client=self.http_client,
                quality=self.resource_quality,
                timeout=self.fetch_timeout,
            )
        except EncodeError as e:
            logger.warning(f"Could not resolve identity {identity_id}: {e}")
            self._dispatch(EventKind.TARGET_FAILED, identity_id)
            return

        if self.context.state.active_identity_id != identity_id:
            return

        self.context.target = encoded
        self._dispatch(EventKind.TARGET_RESOLVED, identity_id)

    async def wait_for_target(self) -> None:
        """Wait for a pending target resolution, if any."""
        task = self._resolve_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Orchestrator callbacks
    # -------------------------------------------------------------------------

    def _on_synced(self) -> None:
        self._dispatch(EventKind.SWAP_SUCCEEDED)

    # -------------------------------------------------------------------------
    # Views and lifecycle
    # -------------------------------------------------------------------------

    @property
    def anchor(self) -> Optional[str]:
        return self.context.anchor

    def snapshot(self) -> SessionSnapshot:
        state = self.context.state
        return SessionSnapshot(
            status=state.status,
            phase=state.phase,
            busy=self.context.busy,
            active_identity_id=state.active_identity_id,
            target_ready=state.target_ready,
            anchor_available=self.context.anchor is not None,
            persona_toggle_enabled=self.persona_toggle_enabled,
            generation=self.context.generation,
        )

    async def shutdown(self) -> None:
        """Power off and release everything the session holds."""
        self.store.unsubscribe(self._on_library)
        if self.status != SessionStatus.INACTIVE:
            await self.power_off()
        if self._resolve_task is not None:
            self._resolve_task.cancel()
            await asyncio.gather(self._resolve_task, return_exceptions=True)
            self._resolve_task = None
        await self.orchestrator.shutdown()
