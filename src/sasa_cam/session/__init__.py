"""
Session Module
==============

Camera session state machine and the controller that applies it.

This module implements the session lifecycle:
    - transitions.py: Pure transition function (state, event) -> result
    - graph.py: LangGraph wrapper running the transition function
    - controller.py: Applies events and performs their effects

Key Design Decisions:
    - Transitions are pure and deterministic
    - Effects are returned as data and performed in one place
    - No ambient global state; the context is passed explicitly
"""

from sasa_cam.session.controller import SessionController
from sasa_cam.session.graph import SessionGraph
from sasa_cam.session.transitions import TransitionResult, apply_event

__all__ = [
    "SessionController",
    "SessionGraph",
    "TransitionResult",
    "apply_event",
]
