"""
Session Transition Tests
========================

Pure transition rules, without devices, timers or network.
"""

from sasa_cam.models import (
    Effect,
    EventKind,
    ReasonCode,
    SessionEvent,
    SessionState,
    SessionStatus,
    SwapPhase,
)
from sasa_cam.session import SessionGraph, apply_event


def event(kind: EventKind, identity_id=None) -> SessionEvent:
    return SessionEvent(kind=kind, identity_id=identity_id)


def swapping_state(phase: SwapPhase = SwapPhase.SYNCED) -> SessionState:
    return SessionState(
        status=SessionStatus.SWAPPING,
        phase=phase,
        active_identity_id="a",
        target_ready=True,
    )


class TestPowerTransitions:
    """Tests for the power lifecycle."""

    def test_power_on_requests_capture(self):
        result = apply_event(SessionState(), event(EventKind.POWER_ON))
        assert result.state.status == SessionStatus.LOADING
        assert result.effects == (Effect.ACQUIRE_CAPTURE,)
        assert result.changed

    def test_power_on_ignored_when_not_inactive(self):
        state = SessionState(status=SessionStatus.ACTIVE)
        result = apply_event(state, event(EventKind.POWER_ON))
        assert result.state == state
        assert result.effects == ()
        assert not result.changed

    def test_capture_ready_activates(self):
        state = SessionState(status=SessionStatus.LOADING)
        result = apply_event(state, event(EventKind.CAPTURE_READY))
        assert result.state.status == SessionStatus.ACTIVE
        assert result.reason == ReasonCode.CAPTURE_READY

    def test_capture_ready_after_power_off_releases(self):
        """A device that opens after power off is handed straight back."""
        result = apply_event(SessionState(), event(EventKind.CAPTURE_READY))
        assert result.state.status == SessionStatus.INACTIVE
        assert result.effects == (Effect.RELEASE_CAPTURE,)

    def test_capture_ready_while_active_is_ignored(self):
        """A late acquisition never releases the device already in use."""
        state = SessionState(status=SessionStatus.ACTIVE)
        result = apply_event(state, event(EventKind.CAPTURE_READY))
        assert result.state.status == SessionStatus.ACTIVE
        assert result.effects == ()
        assert not result.changed

    def test_capture_failed_returns_to_inactive(self):
        state = SessionState(status=SessionStatus.LOADING)
        result = apply_event(state, event(EventKind.CAPTURE_FAILED))
        assert result.state.status == SessionStatus.INACTIVE
        assert result.effects == (Effect.RELEASE_CAPTURE,)
        assert result.reason == ReasonCode.CAPTURE_FAILED

    def test_power_off_while_swapping_stops_everything(self):
        result = apply_event(swapping_state(), event(EventKind.POWER_OFF))
        assert result.state.status == SessionStatus.INACTIVE
        assert result.state.phase == SwapPhase.IDLE
        assert result.effects == (
            Effect.STOP_TIMER,
            Effect.CLEAR_ANCHOR,
            Effect.RELEASE_CAPTURE,
        )

    def test_power_off_keeps_selection(self):
        result = apply_event(swapping_state(), event(EventKind.POWER_OFF))
        assert result.state.active_identity_id == "a"
        assert result.state.target_ready

    def test_power_off_while_loading(self):
        state = SessionState(status=SessionStatus.LOADING)
        result = apply_event(state, event(EventKind.POWER_OFF))
        assert result.state.status == SessionStatus.INACTIVE
        assert result.effects == (Effect.RELEASE_CAPTURE,)


class TestPersonaTransitions:
    """Tests for the persona toggle."""

    def test_persona_on_while_inactive_is_noop(self):
        state = SessionState(active_identity_id="a", target_ready=True)
        result = apply_event(state, event(EventKind.PERSONA_ON))
        assert result.state == state
        assert result.effects == ()
        assert result.reason == ReasonCode.SESSION_NOT_ACTIVE

    def test_persona_on_without_identity_is_noop(self):
        state = SessionState(status=SessionStatus.ACTIVE)
        result = apply_event(state, event(EventKind.PERSONA_ON))
        assert result.state.status == SessionStatus.ACTIVE
        assert result.reason == ReasonCode.NO_ACTIVE_IDENTITY

    def test_persona_on_with_unresolved_target_is_noop(self):
        state = SessionState(status=SessionStatus.ACTIVE, active_identity_id="a")
        result = apply_event(state, event(EventKind.PERSONA_ON))
        assert result.state.status == SessionStatus.ACTIVE
        assert result.reason == ReasonCode.TARGET_NOT_READY

    def test_persona_on_arms_and_triggers(self):
        state = SessionState(
            status=SessionStatus.ACTIVE,
            active_identity_id="a",
            target_ready=True,
        )
        result = apply_event(state, event(EventKind.PERSONA_ON))
        assert result.state.status == SessionStatus.SWAPPING
        assert result.state.phase == SwapPhase.ARMED
        assert result.effects == (
            Effect.CLEAR_ANCHOR,
            Effect.START_TIMER,
            Effect.TRIGGER_NOW,
        )

    def test_persona_off_returns_to_active(self):
        result = apply_event(swapping_state(), event(EventKind.PERSONA_OFF))
        assert result.state.status == SessionStatus.ACTIVE
        assert result.state.phase == SwapPhase.IDLE
        assert result.effects == (Effect.STOP_TIMER, Effect.CLEAR_ANCHOR)

    def test_swap_success_syncs(self):
        result = apply_event(swapping_state(SwapPhase.ARMED), event(EventKind.SWAP_SUCCEEDED))
        assert result.state.phase == SwapPhase.SYNCED
        assert result.reason == ReasonCode.ANCHOR_SYNCED

    def test_swap_success_ignored_outside_swapping(self):
        state = SessionState(status=SessionStatus.ACTIVE)
        result = apply_event(state, event(EventKind.SWAP_SUCCEEDED))
        assert result.state.phase == SwapPhase.IDLE
        assert not result.changed


class TestIdentityTransitions:
    """Tests for selection changes and target resolution."""

    def test_select_while_active_resolves_target(self):
        state = SessionState(status=SessionStatus.ACTIVE)
        result = apply_event(state, event(EventKind.IDENTITY_CHANGED, "a"))
        assert result.state.active_identity_id == "a"
        assert not result.state.target_ready
        assert result.effects == (Effect.RESOLVE_TARGET,)
        assert result.reason == ReasonCode.IDENTITY_SELECTED

    def test_switch_while_synced_rearms(self):
        result = apply_event(swapping_state(), event(EventKind.IDENTITY_CHANGED, "b"))
        assert result.state.status == SessionStatus.SWAPPING
        assert result.state.phase == SwapPhase.ARMED
        assert result.state.active_identity_id == "b"
        assert not result.state.target_ready
        assert result.effects == (Effect.CLEAR_ANCHOR, Effect.RESOLVE_TARGET)

    def test_clear_while_swapping_stops_persona(self):
        result = apply_event(swapping_state(), event(EventKind.IDENTITY_CHANGED, None))
        assert result.state.status == SessionStatus.ACTIVE
        assert result.state.phase == SwapPhase.IDLE
        assert result.state.active_identity_id is None
        assert result.effects == (
            Effect.STOP_TIMER,
            Effect.CLEAR_ANCHOR,
            Effect.RESOLVE_TARGET,
        )

    def test_same_identity_is_noop(self):
        result = apply_event(swapping_state(), event(EventKind.IDENTITY_CHANGED, "a"))
        assert not result.changed
        assert result.effects == ()

    def test_target_resolved_while_swapping_triggers(self):
        state = swapping_state(SwapPhase.ARMED).model_copy(update={"target_ready": False})
        result = apply_event(state, event(EventKind.TARGET_RESOLVED, "a"))
        assert result.state.target_ready
        assert result.effects == (Effect.TRIGGER_NOW,)

    def test_stale_target_resolution_ignored(self):
        state = SessionState(status=SessionStatus.ACTIVE, active_identity_id="b")
        result = apply_event(state, event(EventKind.TARGET_RESOLVED, "a"))
        assert not result.state.target_ready
        assert result.reason == ReasonCode.STALE_EVENT

    def test_target_failed_clears_readiness(self):
        state = SessionState(
            status=SessionStatus.ACTIVE,
            active_identity_id="a",
            target_ready=True,
        )
        result = apply_event(state, event(EventKind.TARGET_FAILED, "a"))
        assert not result.state.target_ready
        assert result.reason == ReasonCode.TARGET_FAILED


class TestSessionGraph:
    """Tests for the LangGraph wrapper."""

    def test_process_keeps_state(self):
        graph = SessionGraph()
        graph.process(event(EventKind.POWER_ON))
        result = graph.process(event(EventKind.CAPTURE_READY))
        assert result.state.status == SessionStatus.ACTIVE
        assert graph.state.status == SessionStatus.ACTIVE

    def test_process_matches_pure_function(self):
        graph = SessionGraph()
        expected = apply_event(SessionState(), event(EventKind.POWER_ON))
        assert graph.process(event(EventKind.POWER_ON)) == expected

    def test_full_persona_cycle(self):
        graph = SessionGraph()
        for kind, identity_id in [
            (EventKind.POWER_ON, None),
            (EventKind.CAPTURE_READY, None),
            (EventKind.IDENTITY_CHANGED, "a"),
            (EventKind.TARGET_RESOLVED, "a"),
            (EventKind.PERSONA_ON, None),
            (EventKind.SWAP_SUCCEEDED, None),
        ]:
            graph.process(event(kind, identity_id))

        assert graph.state.status == SessionStatus.SWAPPING
        assert graph.state.phase == SwapPhase.SYNCED
