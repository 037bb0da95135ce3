"""Pose stability tracking for auto-capture.

Decides, one detection outcome at a time, whether the hand has held the
same pose long enough to be worth classifying. Transient motion and
mid-gesture frames reset the count.

States:
    NO_HAND       no hand in the frame; tracking cleared
    FIRST_POSE    first pose after no hand; count = 1
    POSE_CHANGED  pose moved past the threshold; new candidate, count = 1
    STABILIZING   pose within threshold; count below the required frames
    READY         count reached the required frames; submit and reset to 0

Example:
    >>> engine = PoseStabilityEngine(StabilityConfig())
    >>> state = PoseTrackingState()
    >>> decision = engine.update(state, outcome)
    >>> if decision.should_submit:
    ...     await classifier.classify(decision.pose)
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from signspell.config import StabilityConfig
from signspell.landmarks import pose_distance
from signspell.types import Detected, DetectionOutcome, HandPose

logger = logging.getLogger(__name__)


class StabilityStatus(str, Enum):
    NO_HAND = "no_hand"
    FIRST_POSE = "first_pose"
    POSE_CHANGED = "pose_changed"
    STABILIZING = "stabilizing"
    READY = "ready"


@dataclass
class PoseTrackingState:
    """Mutable tracking state owned by the capture session.

    ``previous_pose`` and ``stable_count`` are tracking fields and are
    cleared by ``reset_tracking()``. The two ``last_accepted_*`` fields
    belong to the duplicate filter and survive tracking resets.
    """

    previous_pose: Optional[HandPose] = None
    stable_count: int = 0
    last_accepted_letter: Optional[str] = None
    last_accepted_at_ms: Optional[int] = None

    def reset_tracking(self) -> None:
        self.previous_pose = None
        self.stable_count = 0


@dataclass(frozen=True)
class StabilityDecision:
    """Result of feeding one outcome to the engine.

    Attributes:
        status: State the engine moved to.
        stable_count: Count after the update.
        distance: Distance to the previous pose (inf when not compared).
        pose: The pose to classify, set only when status is READY.
    """

    status: StabilityStatus
    stable_count: int
    distance: float = math.inf
    pose: Optional[HandPose] = None

    @property
    def should_submit(self) -> bool:
        return self.status == StabilityStatus.READY


class PoseStabilityEngine:
    """Stateless transition function over PoseTrackingState.

    Args:
        config: Threshold and required frame count.
    """

    def __init__(self, config: Optional[StabilityConfig] = None):
        self.config = config or StabilityConfig()

    def update(self, state: PoseTrackingState, outcome: DetectionOutcome) -> StabilityDecision:
        """Advance ``state`` with one detection outcome."""
        if not isinstance(outcome, Detected):
            state.reset_tracking()
            return StabilityDecision(StabilityStatus.NO_HAND, 0)

        pose = outcome.pose

        if state.previous_pose is None:
            state.previous_pose = pose
            state.stable_count = 1
            return StabilityDecision(StabilityStatus.FIRST_POSE, 1)

        distance = pose_distance(pose, state.previous_pose)

        if distance > self.config.distance_threshold:
            logger.debug(f"Pose changed (distance={distance:.4f})")
            state.previous_pose = pose
            state.stable_count = 1
            return StabilityDecision(StabilityStatus.POSE_CHANGED, 1, distance)

        state.stable_count += 1

        if state.stable_count >= self.config.stability_frames:
            state.stable_count = 0
            logger.debug(f"Pose stable (distance={distance:.4f}), ready to submit")
            return StabilityDecision(StabilityStatus.READY, 0, distance, pose)

        return StabilityDecision(StabilityStatus.STABILIZING, state.stable_count, distance)


__all__ = [
    "StabilityStatus",
    "PoseTrackingState",
    "StabilityDecision",
    "PoseStabilityEngine",
]
