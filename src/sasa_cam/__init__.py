"""
SasaCam
=======

Real-time persona face-swap engine for a virtual camera.

This package keeps a library of persona identities, captures the live camera
feed, and periodically asks an external image model to re-render the current
frame with the selected persona's face. Each successful result is fed back
as a consistency anchor for the next request.

Components:
    - identity: Persona library with asynchronous refinement
    - capture: Camera acquisition (OpenCV or synthetic)
    - codec: Data URL encoding and envelope stripping
    - inference: Generative Language API client
    - orchestrator: Single-flight swap loop
    - session: Session state machine (LangGraph) and controller

Example:
    from sasa_cam.config import settings

    # The service is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "SasaCam Project"

__all__ = [
    "__version__",
]
