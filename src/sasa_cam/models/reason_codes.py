"""
Reason Codes
============

Fixed set of machine-readable reason codes for session transitions.

Every transition result carries exactly ONE reason code, including
no-op results, so logs explain why an input did or did not change state.
"""

from enum import Enum


class ReasonCode(str, Enum):
    """
    Machine-readable transition explanation codes.

    Attributes:
        POWERED_ON: Capture acquisition started
        CAPTURE_READY: Device acquired, session active
        CAPTURE_FAILED: Device unavailable, back to inactive
        POWERED_OFF: Session shut down
        PERSONA_ACTIVATED: Swapping started in ARMED phase
        PERSONA_DEACTIVATED: Swapping stopped, anchor discarded
        NO_ACTIVE_IDENTITY: Persona toggle ignored, nothing selected
        TARGET_NOT_READY: Persona toggle ignored, target not resolved
        SESSION_NOT_ACTIVE: Input ignored in the current status
        IDENTITY_SELECTED: New selection outside of swapping
        IDENTITY_SWITCHED: New selection while swapping, back to ARMED
        IDENTITY_CLEARED: Selection cleared
        TARGET_RESOLVED: Active identity payload resolved
        TARGET_FAILED: Active identity payload could not be resolved
        STALE_EVENT: Event refers to an identity that is no longer active
        ANCHOR_SYNCED: Swap result stored, phase SYNCED
        NO_CHANGE: Input has no effect in the current state
    """

    POWERED_ON = "POWERED_ON"
    CAPTURE_READY = "CAPTURE_READY"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    POWERED_OFF = "POWERED_OFF"

    PERSONA_ACTIVATED = "PERSONA_ACTIVATED"
    PERSONA_DEACTIVATED = "PERSONA_DEACTIVATED"
    NO_ACTIVE_IDENTITY = "NO_ACTIVE_IDENTITY"
    TARGET_NOT_READY = "TARGET_NOT_READY"
    SESSION_NOT_ACTIVE = "SESSION_NOT_ACTIVE"

    IDENTITY_SELECTED = "IDENTITY_SELECTED"
    IDENTITY_SWITCHED = "IDENTITY_SWITCHED"
    IDENTITY_CLEARED = "IDENTITY_CLEARED"
    TARGET_RESOLVED = "TARGET_RESOLVED"
    TARGET_FAILED = "TARGET_FAILED"
    STALE_EVENT = "STALE_EVENT"

    ANCHOR_SYNCED = "ANCHOR_SYNCED"
    NO_CHANGE = "NO_CHANGE"
