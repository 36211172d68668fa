"""
Data Models
===========

Pydantic models and typed payloads for SasaCam.

Models:
    Identity:
        - EmbeddingStatus: READY, PROCESSING, ERROR
        - Identity: A stored persona face
        - IdentityLibrary: Snapshot of the identity store

    Session:
        - SessionStatus, SwapPhase: Session and swap loop states
        - EventKind, SessionEvent: State machine inputs
        - Effect: State machine outputs
        - SessionState: Pure transition state
        - SessionSnapshot: Read-only view for the control surface

    Transport:
        - ImagePayload: Stripped image data plus media type

    Reason Codes:
        - ReasonCode: Why a session transition did or did not happen
"""

from sasa_cam.models.identity import EmbeddingStatus, Identity, IdentityLibrary
from sasa_cam.models.payload import ImagePayload
from sasa_cam.models.reason_codes import ReasonCode
from sasa_cam.models.session import (
    Effect,
    EventKind,
    SessionEvent,
    SessionSnapshot,
    SessionState,
    SessionStatus,
    SwapPhase,
)

__all__ = [
    # Identity
    "EmbeddingStatus",
    "Identity",
    "IdentityLibrary",
    # Session
    "SessionStatus",
    "SwapPhase",
    "EventKind",
    "SessionEvent",
    "Effect",
    "SessionState",
    "SessionSnapshot",
    # Transport
    "ImagePayload",
    # Reason codes
    "ReasonCode",
]
