"""signspell - fingerspelling capture pipeline.

Turns still camera frames into letters: an embedded detection runtime
finds 21 hand landmarks, a stability check waits for a held pose, and a
remote classifier names the letter.

Quick Start:
    $ signspell run --api-url https://production-model.onrender.com

Library use:
    >>> from signspell import AppConfig
    >>> from signspell.app import run_session
    >>> asyncio.run(run_session(AppConfig()))
"""

from signspell.config import AppConfig
from signspell.errors import (
    SignSpellError,
    MalformedPoseError,
    NotReadyError,
    DetectorBusyError,
)
from signspell.types import (
    Landmark,
    HandPose,
    Detected,
    NoHand,
    NO_HAND,
    ClassificationResult,
    ClassificationErrorKind,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AppConfig",
    "SignSpellError",
    "MalformedPoseError",
    "NotReadyError",
    "DetectorBusyError",
    "Landmark",
    "HandPose",
    "Detected",
    "NoHand",
    "NO_HAND",
    "ClassificationResult",
    "ClassificationErrorKind",
]
