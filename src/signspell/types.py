"""Hand pose domain types.

Landmark and HandPose are immutable values. A missing hand is always
represented by NoHand, never by a zero-filled pose.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from signspell.errors import MalformedPoseError

HAND_LANDMARK_COUNT = 21
COORDINATES_PER_LANDMARK = 3
TOTAL_FEATURES = HAND_LANDMARK_COUNT * COORDINATES_PER_LANDMARK

# Letter the classifier returns when it cannot decide.
UNKNOWN_LETTER = "Unknown"


class HandLandmarkIndex:
    """MediaPipe hand landmark indices.

    Example:
        >>> wrist = pose[HandLandmarkIndex.WRIST]
        >>> index_tip = pose[HandLandmarkIndex.INDEX_FINGER_TIP]
    """

    WRIST = 0
    THUMB_CMC = 1
    THUMB_MCP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_FINGER_MCP = 5
    INDEX_FINGER_PIP = 6
    INDEX_FINGER_DIP = 7
    INDEX_FINGER_TIP = 8
    MIDDLE_FINGER_MCP = 9
    MIDDLE_FINGER_PIP = 10
    MIDDLE_FINGER_DIP = 11
    MIDDLE_FINGER_TIP = 12
    RING_FINGER_MCP = 13
    RING_FINGER_PIP = 14
    RING_FINGER_DIP = 15
    RING_FINGER_TIP = 16
    PINKY_MCP = 17
    PINKY_PIP = 18
    PINKY_DIP = 19
    PINKY_TIP = 20


def _coerce_coordinate(value: object) -> float:
    # bool is a Real subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (Real, np.floating, np.integer)):
        raise MalformedPoseError(f"Non-numeric landmark coordinate: {value!r}")
    result = float(value)
    if not math.isfinite(result):
        raise MalformedPoseError(f"Non-finite landmark coordinate: {result}")
    return result


@dataclass(frozen=True)
class Landmark:
    """One normalized 3D hand point.

    Attributes:
        x: Horizontal position, image-relative [0, 1].
        y: Vertical position, image-relative [0, 1].
        z: Relative depth (small signed value, wrist = 0).
    """

    x: float
    y: float
    z: float = 0.0

    @classmethod
    def from_sequence(cls, values: Sequence[object]) -> Landmark:
        """Build a Landmark from an ``[x, y, z]`` (or ``[x, y]``) sequence."""
        if len(values) not in (2, 3):
            raise MalformedPoseError(
                f"Landmark needs 2 or 3 coordinates, got {len(values)}"
            )
        coords = [_coerce_coordinate(v) for v in values]
        return cls(*coords)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class HandPose:
    """The 21-landmark snapshot of one hand at one instant.

    Construction validates the landmark count and that every coordinate
    is a finite number.

    Raises:
        MalformedPoseError: On a wrong count or invalid coordinate.
    """

    landmarks: Tuple[Landmark, ...]

    def __post_init__(self) -> None:
        landmarks = tuple(self.landmarks)
        if len(landmarks) != HAND_LANDMARK_COUNT:
            raise MalformedPoseError(
                f"Invalid landmark count: {len(landmarks)}, "
                f"expected {HAND_LANDMARK_COUNT}"
            )
        for lm in landmarks:
            if not isinstance(lm, Landmark):
                raise MalformedPoseError(f"Not a Landmark: {lm!r}")
            for coord in lm.as_tuple():
                _coerce_coordinate(coord)
        object.__setattr__(self, "landmarks", landmarks)

    @classmethod
    def from_list(cls, rows: Iterable[Sequence[object]]) -> HandPose:
        """Build a pose from ``[[x, y, z], ...]`` rows (API / wire format)."""
        try:
            return cls(tuple(Landmark.from_sequence(row) for row in rows))
        except TypeError as e:
            raise MalformedPoseError(f"Invalid landmark rows: {e}") from e

    @classmethod
    def from_dicts(cls, items: Iterable[dict]) -> HandPose:
        """Build a pose from ``[{"x": .., "y": .., "z": ..}, ...]``."""
        try:
            return cls(tuple(
                Landmark.from_sequence([item["x"], item["y"], item.get("z", 0.0)])
                for item in items
            ))
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedPoseError(f"Invalid landmark dicts: {e}") from e

    @classmethod
    def from_array(cls, array: np.ndarray) -> HandPose:
        """Build a pose from a ``(21, 3)`` numpy array."""
        array = np.asarray(array)
        if array.ndim != 2 or array.shape[1] not in (2, 3):
            raise MalformedPoseError(f"Expected (21, 3) array, got shape {array.shape}")
        return cls.from_list(array.tolist())

    def to_list(self) -> List[List[float]]:
        """Ordered ``[[x, y, z], ...]`` triples."""
        return [list(lm.as_tuple()) for lm in self.landmarks]

    def to_array(self) -> np.ndarray:
        """``(21, 3)`` float64 array in landmark order."""
        return np.array(self.to_list(), dtype=np.float64)

    def __len__(self) -> int:
        return len(self.landmarks)

    def __getitem__(self, index: int) -> Landmark:
        return self.landmarks[index]

    def __iter__(self):
        return iter(self.landmarks)


@dataclass(frozen=True)
class Detected:
    """A hand was found in the image."""

    pose: HandPose
    confidence: float = 0.0

    @property
    def detected(self) -> bool:
        return True


@dataclass(frozen=True)
class NoHand:
    """No hand was found (or detection timed out / failed)."""

    reason: str = ""

    @property
    def detected(self) -> bool:
        return False


NO_HAND = NoHand()

DetectionOutcome = Union[Detected, NoHand]


class ClassificationErrorKind(str, Enum):
    """Why a classification produced no letter."""

    TRANSPORT = "transport"
    REJECTED = "rejected"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_POSE = "invalid_pose"


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one classifier call.

    ``error`` set implies ``letter`` is empty.
    """

    letter: str = ""
    confidence: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[ClassificationErrorKind] = None

    @classmethod
    def failure(cls, message: str, kind: ClassificationErrorKind) -> ClassificationResult:
        return cls(letter="", confidence=0.0, error=message, error_kind=kind)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_retryable(self) -> bool:
        return self.error_kind == ClassificationErrorKind.TRANSPORT

    @property
    def is_actionable(self) -> bool:
        """True when the letter may be appended to a sentence."""
        return self.ok and bool(self.letter) and self.letter != UNKNOWN_LETTER


@dataclass
class EncodedImage:
    """A still image encoded for transmission to the detection runtime.

    Attributes:
        data_b64: Base64-encoded JPEG bytes.
        width: Image width in pixels.
        height: Image height in pixels.
    """

    data_b64: str
    width: int = 0
    height: int = 0


__all__ = [
    "HAND_LANDMARK_COUNT",
    "COORDINATES_PER_LANDMARK",
    "TOTAL_FEATURES",
    "UNKNOWN_LETTER",
    "HandLandmarkIndex",
    "Landmark",
    "HandPose",
    "Detected",
    "NoHand",
    "NO_HAND",
    "DetectionOutcome",
    "ClassificationErrorKind",
    "ClassificationResult",
    "EncodedImage",
]
