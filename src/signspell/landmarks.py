"""Landmark processing utilities.

Validation, distance, quality and wire formatting for hand poses.
"""

import logging
import math
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from signspell.errors import MalformedPoseError
from signspell.types import (
    HAND_LANDMARK_COUNT,
    HandLandmarkIndex,
    HandPose,
)

logger = logging.getLogger(__name__)

PoseLike = Union[HandPose, Sequence[Sequence[float]], np.ndarray]

# MediaPipe 21-point hand connections
HAND_CONNECTIONS = (
    # Thumb
    (HandLandmarkIndex.WRIST, HandLandmarkIndex.THUMB_CMC),
    (HandLandmarkIndex.THUMB_CMC, HandLandmarkIndex.THUMB_MCP),
    (HandLandmarkIndex.THUMB_MCP, HandLandmarkIndex.THUMB_IP),
    (HandLandmarkIndex.THUMB_IP, HandLandmarkIndex.THUMB_TIP),
    # Index finger
    (HandLandmarkIndex.WRIST, HandLandmarkIndex.INDEX_FINGER_MCP),
    (HandLandmarkIndex.INDEX_FINGER_MCP, HandLandmarkIndex.INDEX_FINGER_PIP),
    (HandLandmarkIndex.INDEX_FINGER_PIP, HandLandmarkIndex.INDEX_FINGER_DIP),
    (HandLandmarkIndex.INDEX_FINGER_DIP, HandLandmarkIndex.INDEX_FINGER_TIP),
    # Middle finger
    (HandLandmarkIndex.WRIST, HandLandmarkIndex.MIDDLE_FINGER_MCP),
    (HandLandmarkIndex.MIDDLE_FINGER_MCP, HandLandmarkIndex.MIDDLE_FINGER_PIP),
    (HandLandmarkIndex.MIDDLE_FINGER_PIP, HandLandmarkIndex.MIDDLE_FINGER_DIP),
    (HandLandmarkIndex.MIDDLE_FINGER_DIP, HandLandmarkIndex.MIDDLE_FINGER_TIP),
    # Ring finger
    (HandLandmarkIndex.WRIST, HandLandmarkIndex.RING_FINGER_MCP),
    (HandLandmarkIndex.RING_FINGER_MCP, HandLandmarkIndex.RING_FINGER_PIP),
    (HandLandmarkIndex.RING_FINGER_PIP, HandLandmarkIndex.RING_FINGER_DIP),
    (HandLandmarkIndex.RING_FINGER_DIP, HandLandmarkIndex.RING_FINGER_TIP),
    # Pinky
    (HandLandmarkIndex.WRIST, HandLandmarkIndex.PINKY_MCP),
    (HandLandmarkIndex.PINKY_MCP, HandLandmarkIndex.PINKY_PIP),
    (HandLandmarkIndex.PINKY_PIP, HandLandmarkIndex.PINKY_DIP),
    (HandLandmarkIndex.PINKY_DIP, HandLandmarkIndex.PINKY_TIP),
    # Palm
    (HandLandmarkIndex.INDEX_FINGER_MCP, HandLandmarkIndex.MIDDLE_FINGER_MCP),
    (HandLandmarkIndex.MIDDLE_FINGER_MCP, HandLandmarkIndex.RING_FINGER_MCP),
    (HandLandmarkIndex.RING_FINGER_MCP, HandLandmarkIndex.PINKY_MCP),
)

# A known-good right-hand pose, used by ``signspell test-api``.
SAMPLE_POSE_ROWS = (
    (0.338775, 0.707677, 0.000000),
    (0.359596, 0.690019, -0.064400),
    (0.402614, 0.697840, -0.079851),
    (0.442001, 0.742977, -0.082639),
    (0.478297, 0.772598, -0.079987),
    (0.481200, 0.624843, -0.038444),
    (0.540103, 0.598855, -0.051450),
    (0.579200, 0.580494, -0.059732),
    (0.611820, 0.569921, -0.064929),
    (0.484388, 0.664041, -0.011230),
    (0.522004, 0.718519, -0.034067),
    (0.490152, 0.736844, -0.042311),
    (0.466428, 0.731174, -0.039971),
    (0.479003, 0.698777, 0.009253),
    (0.507311, 0.745670, -0.019042),
    (0.473320, 0.753283, -0.027947),
    (0.456450, 0.737558, -0.024299),
    (0.467371, 0.723029, 0.025279),
    (0.494282, 0.756875, 0.004044),
    (0.473828, 0.764333, -0.002101),
    (0.456327, 0.749471, 0.000011),
)


def sample_pose() -> HandPose:
    """Return the built-in sample pose."""
    return HandPose.from_list(SAMPLE_POSE_ROWS)


def _as_array(pose: Optional[PoseLike]) -> Optional[np.ndarray]:
    if pose is None:
        return None
    if isinstance(pose, HandPose):
        return pose.to_array()
    try:
        array = np.asarray(pose, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if array.ndim != 2 or array.shape[0] == 0:
        return None
    return array


def pose_distance(a: Optional[PoseLike], b: Optional[PoseLike]) -> float:
    """Mean per-landmark Euclidean distance between two poses.

    Mismatched lengths, empty or missing inputs are infinitely far apart,
    so they always count as a pose change.

    Args:
        a: First pose (HandPose, ``(N, 3)`` array or nested sequence).
        b: Second pose.

    Returns:
        Mean of ``sqrt(dx^2 + dy^2 + dz^2)`` over landmarks, or ``inf``.
    """
    arr_a = _as_array(a)
    arr_b = _as_array(b)
    if arr_a is None or arr_b is None or arr_a.shape != arr_b.shape:
        return math.inf
    return float(np.linalg.norm(arr_a - arr_b, axis=1).mean())


def validate_landmarks(landmarks: Any) -> bool:
    """Check that ``landmarks`` forms a valid 21-point pose.

    Accepts a HandPose, ``[[x, y, z], ...]`` rows or ``[{"x":..}, ...]``
    dicts. Never raises.
    """
    if isinstance(landmarks, HandPose):
        return True
    if landmarks is None or isinstance(landmarks, (str, bytes)):
        return False
    try:
        items = list(landmarks)
    except TypeError:
        return False
    if len(items) != HAND_LANDMARK_COUNT:
        logger.warning(
            f"Invalid landmark count: {len(items)}, expected {HAND_LANDMARK_COUNT}"
        )
        return False
    try:
        if items and isinstance(items[0], dict):
            HandPose.from_dicts(items)
        else:
            HandPose.from_list(items)
    except MalformedPoseError as e:
        logger.warning(f"Invalid landmark coordinate detected: {e}")
        return False
    return True


def landmarks_to_api_format(pose: HandPose) -> List[List[float]]:
    """Classifier request format: ordered ``[x, y, z]`` triples."""
    if not isinstance(pose, HandPose):
        raise MalformedPoseError(f"Expected HandPose, got {type(pose).__name__}")
    return pose.to_list()


def landmark_quality(pose: Optional[HandPose], good_coverage: float = 0.3) -> float:
    """Score [0, 1] for how much of the image the hand covers.

    Mean of x-range and y-range divided by ``good_coverage``, capped at 1.
    """
    if pose is None:
        return 0.0
    coords = pose.to_array()
    x_range = float(coords[:, 0].max() - coords[:, 0].min())
    y_range = float(coords[:, 1].max() - coords[:, 1].min())
    coverage = (x_range + y_range) / 2
    return min(coverage / good_coverage, 1.0)


__all__ = [
    "HAND_CONNECTIONS",
    "SAMPLE_POSE_ROWS",
    "sample_pose",
    "pose_distance",
    "validate_landmarks",
    "landmarks_to_api_format",
    "landmark_quality",
]
