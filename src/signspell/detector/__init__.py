"""Hand detection: host-side bridge, embedded runtime and runtime hosts."""

from signspell.detector.bridge import DetectorBridge, parse_landmarks
from signspell.detector.runtime import DetectionRuntime
from signspell.detector.launcher import (
    RuntimeInfo,
    RuntimeHost,
    InlineRuntimeHost,
    ProcessRuntimeHost,
    create_runtime_host,
)

__all__ = [
    "DetectorBridge",
    "parse_landmarks",
    "DetectionRuntime",
    "RuntimeInfo",
    "RuntimeHost",
    "InlineRuntimeHost",
    "ProcessRuntimeHost",
    "create_runtime_host",
]
