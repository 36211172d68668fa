"""
Session Graph Definition
========================

LangGraph state machine for the camera session.

LangGraph is used for CONTROL FLOW only. The single node applies the pure
transition function, so every step is deterministic and inspectable.

Graph Structure:
    START -> apply_event -> END

    The apply_event node:
    1. Receives the current SessionState and one SessionEvent
    2. Applies apply_event() from transitions.py
    3. Emits the new state and the TransitionResult
"""

import logging
from typing import Any, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from sasa_cam.models.session import SessionEvent, SessionState
from sasa_cam.session.transitions import TransitionResult, apply_event


logger = logging.getLogger(__name__)


class SessionGraphState(TypedDict):
    """
    State passed through the session graph.

    Attributes:
        session: Persistent session state across events
        event: Event being applied
        result: Result of the last applied event
    """
    session: SessionState
    event: Optional[SessionEvent]
    result: Optional[TransitionResult]


def create_initial_state(session: Optional[SessionState] = None) -> SessionGraphState:
    """Create initial graph state."""
    return {
        "session": session or SessionState(),
        "event": None,
        "result": None,
    }


class SessionGraph:
    """
    Deterministic session state machine.

    Feeds one event at a time through the compiled graph and keeps the
    resulting SessionState. Side effects are returned to the caller,
    never performed here.
    """

    def __init__(self, initial: Optional[SessionState] = None) -> None:
        self._graph = self._build_graph()
        self._state: SessionGraphState = create_initial_state(initial)

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(SessionGraphState)

        workflow.add_node("apply_event", self._apply_event_node)

        workflow.set_entry_point("apply_event")
        workflow.add_edge("apply_event", END)

        return workflow.compile()

    def _apply_event_node(self, state: SessionGraphState) -> Dict[str, Any]:
        session = state["session"]
        event = state.get("event")
        if event is None:
            return {"result": None}

        result = apply_event(session, event)

        if result.changed:
            logger.info(
                f"Session {event.kind.value}: "
                f"{session.status.value}/{session.phase.value} -> "
                f"{result.state.status.value}/{result.state.phase.value} "
                f"| reason={result.reason.value}"
            )
        else:
            logger.debug(f"Session {event.kind.value} ignored: {result.reason.value}")

        return {"session": result.state, "result": result}

    def process(self, event: SessionEvent) -> TransitionResult:
        """
        Apply one event and return its result.

        Args:
            event: Incoming SessionEvent

        Returns:
            TransitionResult with new state and effects
        """
        self._state["event"] = event
        self._state = self._graph.invoke(self._state)
        return self._state["result"]

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state["session"]
