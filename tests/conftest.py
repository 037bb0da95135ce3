"""Shared fixtures for signspell tests.

All detection is faked; NO MediaPipe, camera, network or TTS engine needed.
"""

from typing import List

import numpy as np
import pytest

from signspell.detector.backends.base import DetectedHand
from signspell.landmarks import SAMPLE_POSE_ROWS
from signspell.types import ClassificationResult, HandPose


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: int = 10_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeBackend:
    """Hand backend returning scripted results."""

    def __init__(self, results=None, fail_init: bool = False):
        self.results: List = list(results or [])
        self.fail_init = fail_init
        self.initialized = False
        self.cleaned_up = False
        self.calls = 0

    def initialize(self) -> None:
        if self.fail_init:
            raise RuntimeError("model file missing")
        self.initialized = True

    def detect(self, image: np.ndarray) -> List[DetectedHand]:
        self.calls += 1
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def cleanup(self) -> None:
        self.cleaned_up = True


class FakeClassifier:
    """Async classifier returning scripted results (repeats the last one)."""

    def __init__(self, *results: ClassificationResult):
        self.results = list(results) or [ClassificationResult(letter="A", confidence=0.9)]
        self.poses: List[HandPose] = []

    async def classify(self, pose: HandPose) -> ClassificationResult:
        self.poses.append(pose)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


@pytest.fixture
def sample_rows():
    """The built-in 21-row sample pose as nested lists."""
    return [list(row) for row in SAMPLE_POSE_ROWS]


@pytest.fixture
def sample_hand_pose():
    return HandPose.from_list(SAMPLE_POSE_ROWS)


@pytest.fixture
def make_pose():
    """Factory: the sample pose shifted by ``offset`` on every axis."""
    def _make(offset: float = 0.0) -> HandPose:
        return HandPose.from_list(
            [[x + offset, y + offset, z + offset] for x, y, z in SAMPLE_POSE_ROWS]
        )
    return _make


@pytest.fixture
def hand_landmarks():
    """Backend result for one detected hand."""
    return DetectedHand(
        landmarks=np.array(SAMPLE_POSE_ROWS, dtype=np.float32),
        confidence=0.93,
    )


@pytest.fixture
def test_image():
    """Small BGR image with some structure so JPEG encoding is non-trivial."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 255, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def fake_clock():
    return FakeClock()
