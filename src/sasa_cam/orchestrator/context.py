"""
Session Context
===============

The single, explicitly passed owner of mutable session data.

The controller and the orchestrator share one SessionContext instead of
reading ambient globals, which keeps both testable without a server.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from sasa_cam.models.session import SessionState, SessionStatus, SwapPhase


@dataclass
class SessionContext:
    """
    Mutable session data.

    Attributes:
        state: Current pure session state (mirrors the session graph)
        target: Enveloped transportable image of the active identity
        anchor: Enveloped last successful swap result (consistency anchor)
        busy: True while a swap request is in flight
        generation: Incremented whenever the anchor is discarded; requests
            dispatched under an older generation have their results dropped
        last_frame: Most recent raw captured frame
    """

    state: SessionState = field(default_factory=SessionState)
    target: Optional[str] = None
    anchor: Optional[str] = None
    busy: bool = False
    generation: int = 0
    last_frame: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def swapping(self) -> bool:
        return self.state.status == SessionStatus.SWAPPING

    @property
    def synced(self) -> bool:
        return self.swapping and self.state.phase == SwapPhase.SYNCED and self.anchor is not None

    def discard_anchor(self) -> None:
        """Drop the anchor and invalidate any request in flight."""
        self.anchor = None
        self.generation += 1
