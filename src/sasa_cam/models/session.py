"""
Session State Models
====================

This module defines the state representation for the camera session and
the swap loop it gates.

Core Concepts:
    - SessionStatus: Camera/activation status (INACTIVE, LOADING, ACTIVE, SWAPPING)
    - SwapPhase: Swap loop phase (IDLE, ARMED, SYNCED)
    - SessionEvent: Inputs to the state machine (user intent, I/O completion)
    - Effect: Side effects requested by a transition, applied by the controller
    - SessionState: The pure part of the session, what transitions operate on

Transitions:
    INACTIVE -> LOADING:   power on
    LOADING -> ACTIVE:     capture device acquired
    LOADING -> INACTIVE:   capture failed or power off
    ACTIVE -> SWAPPING:    persona on (requires a resolved active identity)
    SWAPPING -> ACTIVE:    persona off, or active identity deselected
    ACTIVE/SWAPPING -> INACTIVE: power off

The busy flag is NOT part of SessionState. It belongs to the orchestrator
and is orthogonal to the phase, which must persist across a busy request.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    """Process-wide camera/activation status."""

    INACTIVE = "INACTIVE"
    LOADING = "LOADING"
    ACTIVE = "ACTIVE"
    SWAPPING = "SWAPPING"


class SwapPhase(str, Enum):
    """
    Swap loop phase.

    Attributes:
        IDLE: Not swapping
        ARMED: Swapping requested, no consistency anchor yet
        SYNCED: Swapping with an anchor from a previous successful swap
    """

    IDLE = "IDLE"
    ARMED = "ARMED"
    SYNCED = "SYNCED"


class EventKind(str, Enum):
    """Kinds of events accepted by the session state machine."""

    POWER_ON = "POWER_ON"
    CAPTURE_READY = "CAPTURE_READY"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    POWER_OFF = "POWER_OFF"
    PERSONA_ON = "PERSONA_ON"
    PERSONA_OFF = "PERSONA_OFF"
    IDENTITY_CHANGED = "IDENTITY_CHANGED"
    TARGET_RESOLVED = "TARGET_RESOLVED"
    TARGET_FAILED = "TARGET_FAILED"
    SWAP_SUCCEEDED = "SWAP_SUCCEEDED"


class Effect(str, Enum):
    """Side effects a transition asks the controller to perform."""

    ACQUIRE_CAPTURE = "ACQUIRE_CAPTURE"
    RELEASE_CAPTURE = "RELEASE_CAPTURE"
    START_TIMER = "START_TIMER"
    STOP_TIMER = "STOP_TIMER"
    CLEAR_ANCHOR = "CLEAR_ANCHOR"
    RESOLVE_TARGET = "RESOLVE_TARGET"
    TRIGGER_NOW = "TRIGGER_NOW"


class SessionEvent(BaseModel):
    """
    An input to the session state machine.

    Attributes:
        kind: Event kind
        identity_id: Identity the event refers to (IDENTITY_CHANGED,
            TARGET_RESOLVED, TARGET_FAILED). None on IDENTITY_CHANGED
            means the selection was cleared.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    identity_id: Optional[str] = None


class SessionState(BaseModel):
    """
    Pure session state operated on by the transition function.

    Attributes:
        status: Current session status
        phase: Current swap phase (IDLE unless SWAPPING)
        active_identity_id: Selected identity, if any
        target_ready: Whether the active identity's transportable payload
            has been resolved
    """

    model_config = ConfigDict(frozen=True)

    status: SessionStatus = Field(default=SessionStatus.INACTIVE)
    phase: SwapPhase = Field(default=SwapPhase.IDLE)
    active_identity_id: Optional[str] = Field(default=None)
    target_ready: bool = Field(default=False)


class SessionSnapshot(BaseModel):
    """
    Read-only view of the session for the presentation layer.

    Attributes:
        status: Session status
        phase: Swap phase
        busy: Whether a swap request is in flight
        active_identity_id: Selected identity
        target_ready: Whether the target payload is resolved
        anchor_available: Whether a swapped frame is available for display
        persona_toggle_enabled: Whether the persona toggle can be used
        generation: Anchor generation counter
    """

    status: SessionStatus
    phase: SwapPhase
    busy: bool
    active_identity_id: Optional[str] = None
    target_ready: bool = False
    anchor_available: bool = False
    persona_toggle_enabled: bool = False
    generation: int = 0
