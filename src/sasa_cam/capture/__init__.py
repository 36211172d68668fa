"""
Capture Module
==============

Live video acquisition behind a small async contract.

Components:
    - CaptureAdapter: Protocol for capture backends
    - OpenCVCaptureAdapter: cv2.VideoCapture device (production)
    - MockCaptureAdapter: Synthetic frames for offline runs and tests
    - open_capture: Scoped acquisition with guaranteed release
"""

from sasa_cam.capture.adapter import (
    CaptureAdapter,
    CaptureError,
    CaptureHandle,
    MockCaptureAdapter,
    OpenCVCaptureAdapter,
    open_capture,
)

__all__ = [
    "CaptureAdapter",
    "CaptureError",
    "CaptureHandle",
    "MockCaptureAdapter",
    "OpenCVCaptureAdapter",
    "open_capture",
]
