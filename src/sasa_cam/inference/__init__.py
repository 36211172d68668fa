"""
Inference Module
================

Clients for the external image-generation service.

The service is treated as an opaque request/response boundary. Only its
contract matters here: refine(identity, instruction) -> text and
swap(source, target, anchor?) -> image.

Components:
    - InferenceClient: Protocol for backends
    - GeminiInferenceClient: Generative Language REST API (production)
    - MockInferenceClient: Deterministic local stand-in
"""

from sasa_cam.inference.client import (
    InferenceClient,
    InferenceFailure,
    MockInferenceClient,
    RefinementFailure,
    build_swap_instruction,
)
from sasa_cam.inference.gemini import GeminiInferenceClient

__all__ = [
    "InferenceClient",
    "InferenceFailure",
    "RefinementFailure",
    "MockInferenceClient",
    "GeminiInferenceClient",
    "build_swap_instruction",
]
