"""
Orchestrator Module
===================

The capture -> encode -> request -> display loop.

Components:
    - SwapOrchestrator: Single-flight swap loop with consistency anchor
    - SwapMetrics: Loop counters for observability
    - PeriodicTicker: Cancellable fixed-interval timer
    - SessionContext: The single owned session data shared with the controller
"""

from sasa_cam.orchestrator.context import SessionContext
from sasa_cam.orchestrator.swap_loop import SwapMetrics, SwapOrchestrator
from sasa_cam.orchestrator.ticker import PeriodicTicker

__all__ = [
    "SwapOrchestrator",
    "SwapMetrics",
    "PeriodicTicker",
    "SessionContext",
]
