"""
Session Transition Logic
========================

Pure transition function for the camera session and its swap loop.

apply_event(state, event) returns the next SessionState plus the ordered
side effects the controller must perform. Nothing here touches devices,
timers or the network, so every rule is testable in isolation.

Transition Rules:
    Power:
        INACTIVE --POWER_ON--> LOADING                [ACQUIRE_CAPTURE]
        LOADING --CAPTURE_READY--> ACTIVE
        LOADING --CAPTURE_FAILED--> INACTIVE          [RELEASE_CAPTURE]
        LOADING/ACTIVE --POWER_OFF--> INACTIVE        [RELEASE_CAPTURE]
        SWAPPING --POWER_OFF--> INACTIVE              [STOP_TIMER, CLEAR_ANCHOR, RELEASE_CAPTURE]

    Persona:
        ACTIVE --PERSONA_ON--> SWAPPING/ARMED         [CLEAR_ANCHOR, START_TIMER, TRIGGER_NOW]
            only with an active identity whose target is resolved,
            otherwise a no-op
        SWAPPING --PERSONA_OFF--> ACTIVE/IDLE         [STOP_TIMER, CLEAR_ANCHOR]

    Identity:
        IDENTITY_CHANGED(id) while SWAPPING           -> ARMED [CLEAR_ANCHOR, RESOLVE_TARGET]
        IDENTITY_CHANGED(None) while SWAPPING         -> ACTIVE/IDLE [STOP_TIMER, CLEAR_ANCHOR, RESOLVE_TARGET]
        IDENTITY_CHANGED otherwise                    -> [RESOLVE_TARGET]
        TARGET_RESOLVED(active id)                    -> target_ready [TRIGGER_NOW if SWAPPING]

    Loop:
        SWAPPING --SWAP_SUCCEEDED--> SYNCED
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from sasa_cam.models.reason_codes import ReasonCode
from sasa_cam.models.session import (
    Effect,
    EventKind,
    SessionEvent,
    SessionState,
    SessionStatus,
    SwapPhase,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Result of applying one event."""

    state: SessionState
    effects: Tuple[Effect, ...]
    reason: ReasonCode
    changed: bool

    def __repr__(self) -> str:
        effects = ",".join(effect.value for effect in self.effects) or "-"
        return (
            f"TransitionResult({self.state.status.value}/{self.state.phase.value}, "
            f"{self.reason.value}, effects={effects})"
        )


_LEAVE_SWAPPING = (Effect.STOP_TIMER, Effect.CLEAR_ANCHOR)


def _result(
    old: SessionState,
    new: SessionState,
    reason: ReasonCode,
    *effects: Effect,
) -> TransitionResult:
    return TransitionResult(
        state=new,
        effects=tuple(effects),
        reason=reason,
        changed=new != old,
    )


def _ignore(state: SessionState, reason: ReasonCode = ReasonCode.NO_CHANGE) -> TransitionResult:
    return TransitionResult(state=state, effects=(), reason=reason, changed=False)


def _update(state: SessionState, **changes) -> SessionState:
    return state.model_copy(update=changes)


def apply_event(state: SessionState, event: SessionEvent) -> TransitionResult:
    """
    Compute the next session state for an event.

    Args:
        state: Current session state
        event: Incoming event

    Returns:
        TransitionResult with the new state and effects to perform
    """
    handler = _HANDLERS[event.kind]
    return handler(state, event)


# =============================================================================
# Power
# =============================================================================

def _on_power_on(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status != SessionStatus.INACTIVE:
        return _ignore(state)
    new = _update(state, status=SessionStatus.LOADING, phase=SwapPhase.IDLE)
    return _result(state, new, ReasonCode.POWERED_ON, Effect.ACQUIRE_CAPTURE)


def _on_capture_ready(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status == SessionStatus.INACTIVE:
        # Powered off while the device was opening: give it back.
        return _result(state, state, ReasonCode.SESSION_NOT_ACTIVE, Effect.RELEASE_CAPTURE)
    if state.status != SessionStatus.LOADING:
        # Already running on the device that is held.
        return _ignore(state)
    new = _update(state, status=SessionStatus.ACTIVE)
    return _result(state, new, ReasonCode.CAPTURE_READY)


def _on_capture_failed(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status != SessionStatus.LOADING:
        return _ignore(state)
    new = _update(state, status=SessionStatus.INACTIVE, phase=SwapPhase.IDLE)
    return _result(state, new, ReasonCode.CAPTURE_FAILED, Effect.RELEASE_CAPTURE)


def _on_power_off(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status == SessionStatus.INACTIVE:
        return _ignore(state)

    new = _update(state, status=SessionStatus.INACTIVE, phase=SwapPhase.IDLE)
    if state.status == SessionStatus.SWAPPING:
        return _result(state, new, ReasonCode.POWERED_OFF, *_LEAVE_SWAPPING, Effect.RELEASE_CAPTURE)
    return _result(state, new, ReasonCode.POWERED_OFF, Effect.RELEASE_CAPTURE)


# =============================================================================
# Persona
# =============================================================================

def _on_persona_on(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status != SessionStatus.ACTIVE:
        return _ignore(state, ReasonCode.SESSION_NOT_ACTIVE)
    if state.active_identity_id is None:
        return _ignore(state, ReasonCode.NO_ACTIVE_IDENTITY)
    if not state.target_ready:
        return _ignore(state, ReasonCode.TARGET_NOT_READY)

    new = _update(state, status=SessionStatus.SWAPPING, phase=SwapPhase.ARMED)
    return _result(
        state, new, ReasonCode.PERSONA_ACTIVATED,
        Effect.CLEAR_ANCHOR, Effect.START_TIMER, Effect.TRIGGER_NOW,
    )


def _on_persona_off(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status != SessionStatus.SWAPPING:
        return _ignore(state)
    new = _update(state, status=SessionStatus.ACTIVE, phase=SwapPhase.IDLE)
    return _result(state, new, ReasonCode.PERSONA_DEACTIVATED, *_LEAVE_SWAPPING)


# =============================================================================
# Identity
# =============================================================================

def _on_identity_changed(state: SessionState, event: SessionEvent) -> TransitionResult:
    new_id = event.identity_id
    if new_id == state.active_identity_id:
        return _ignore(state)

    swapping = state.status == SessionStatus.SWAPPING

    if new_id is None:
        if swapping:
            new = _update(
                state,
                status=SessionStatus.ACTIVE,
                phase=SwapPhase.IDLE,
                active_identity_id=None,
                target_ready=False,
            )
            return _result(
                state, new, ReasonCode.IDENTITY_CLEARED,
                *_LEAVE_SWAPPING, Effect.RESOLVE_TARGET,
            )
        new = _update(state, active_identity_id=None, target_ready=False)
        return _result(state, new, ReasonCode.IDENTITY_CLEARED, Effect.RESOLVE_TARGET)

    if swapping:
        new = _update(
            state,
            phase=SwapPhase.ARMED,
            active_identity_id=new_id,
            target_ready=False,
        )
        return _result(
            state, new, ReasonCode.IDENTITY_SWITCHED,
            Effect.CLEAR_ANCHOR, Effect.RESOLVE_TARGET,
        )

    new = _update(state, active_identity_id=new_id, target_ready=False)
    return _result(state, new, ReasonCode.IDENTITY_SELECTED, Effect.RESOLVE_TARGET)


def _on_target_resolved(state: SessionState, event: SessionEvent) -> TransitionResult:
    if event.identity_id is None or event.identity_id != state.active_identity_id:
        return _ignore(state, ReasonCode.STALE_EVENT)

    new = _update(state, target_ready=True)
    if state.status == SessionStatus.SWAPPING:
        return _result(state, new, ReasonCode.TARGET_RESOLVED, Effect.TRIGGER_NOW)
    return _result(state, new, ReasonCode.TARGET_RESOLVED)


def _on_target_failed(state: SessionState, event: SessionEvent) -> TransitionResult:
    if event.identity_id is None or event.identity_id != state.active_identity_id:
        return _ignore(state, ReasonCode.STALE_EVENT)
    new = _update(state, target_ready=False)
    return _result(state, new, ReasonCode.TARGET_FAILED)


# =============================================================================
# Loop
# =============================================================================

def _on_swap_succeeded(state: SessionState, event: SessionEvent) -> TransitionResult:
    if state.status != SessionStatus.SWAPPING:
        return _ignore(state, ReasonCode.SESSION_NOT_ACTIVE)
    new = _update(state, phase=SwapPhase.SYNCED)
    return _result(state, new, ReasonCode.ANCHOR_SYNCED)


_HANDLERS = {
    EventKind.POWER_ON: _on_power_on,
    EventKind.CAPTURE_READY: _on_capture_ready,
    EventKind.CAPTURE_FAILED: _on_capture_failed,
    EventKind.POWER_OFF: _on_power_off,
    EventKind.PERSONA_ON: _on_persona_on,
    EventKind.PERSONA_OFF: _on_persona_off,
    EventKind.IDENTITY_CHANGED: _on_identity_changed,
    EventKind.TARGET_RESOLVED: _on_target_resolved,
    EventKind.TARGET_FAILED: _on_target_failed,
    EventKind.SWAP_SUCCEEDED: _on_swap_succeeded,
}
