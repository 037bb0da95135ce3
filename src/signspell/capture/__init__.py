"""Capture pipeline: admission, stability, duplicate filter, camera, session."""

from signspell.capture.admission import FrameAdmissionController, monotonic_ms
from signspell.capture.stability import (
    StabilityStatus,
    PoseTrackingState,
    StabilityDecision,
    PoseStabilityEngine,
)
from signspell.capture.cooldown import DuplicateFilter
from signspell.capture.camera import CaptureDevice, OpenCVCamera, StaticImageSource
from signspell.capture.session import CaptureStatus, CaptureResult, CaptureSession

__all__ = [
    "FrameAdmissionController",
    "monotonic_ms",
    "StabilityStatus",
    "PoseTrackingState",
    "StabilityDecision",
    "PoseStabilityEngine",
    "DuplicateFilter",
    "CaptureDevice",
    "OpenCVCamera",
    "StaticImageSource",
    "CaptureStatus",
    "CaptureResult",
    "CaptureSession",
]
