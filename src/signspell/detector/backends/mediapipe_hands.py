"""MediaPipe hand landmark backend for still images."""

import logging
import urllib.request
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from signspell.detector.backends.base import DetectedHand

logger = logging.getLogger(__name__)

MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/hand_landmarker/"
    "hand_landmarker/float16/1/hand_landmarker.task"
)
MODEL_FILENAME = "hand_landmarker.task"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "signspell" / "models"


def ensure_model(cache_dir: Path = DEFAULT_CACHE_DIR) -> Path:
    """Return the cached landmarker model, fetching it on first use.

    Raises:
        RuntimeError: If the model cannot be downloaded.
    """
    target = cache_dir / MODEL_FILENAME
    if target.exists():
        return target

    cache_dir.mkdir(parents=True, exist_ok=True)
    partial = target.with_suffix(".part")
    logger.info(f"Fetching hand landmarker model into {cache_dir}")
    try:
        urllib.request.urlretrieve(MODEL_URL, partial)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise RuntimeError(
            f"Could not download {MODEL_URL} ({e}); place the file at {target} manually"
        ) from e
    partial.rename(target)
    return target


class MediaPipeHandsBackend:
    """HandLandmarker in IMAGE running mode.

    Each call is independent, so there is no tracking state between
    captures. Fingerspelling needs one hand; more can be requested.

    Args:
        max_num_hands: Hands to report, best first.
        min_detection_confidence: Palm detection threshold.
        min_presence_confidence: Hand presence threshold.
        min_tracking_confidence: Passed through; unused in IMAGE mode.
        model_path: Model file (default: cached download).
    """

    def __init__(
        self,
        max_num_hands: int = 1,
        min_detection_confidence: float = 0.7,
        min_presence_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_path: Optional[str] = None,
    ):
        self.max_num_hands = max_num_hands
        self.min_detection_confidence = min_detection_confidence
        self.min_presence_confidence = min_presence_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.model_path = model_path
        self._landmarker = None

    @property
    def is_initialized(self) -> bool:
        return self._landmarker is not None

    def initialize(self) -> None:
        if self._landmarker is not None:
            return

        try:
            from mediapipe.tasks.python import BaseOptions, vision
        except ImportError as e:
            raise ImportError(
                "mediapipe is not installed; run: pip install 'signspell[mediapipe]'"
            ) from e

        model = Path(self.model_path) if self.model_path else ensure_model()
        options = vision.HandLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(model)),
            running_mode=vision.RunningMode.IMAGE,
            num_hands=self.max_num_hands,
            min_hand_detection_confidence=self.min_detection_confidence,
            min_hand_presence_confidence=self.min_presence_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
        )
        self._landmarker = vision.HandLandmarker.create_from_options(options)
        logger.info(f"Hand landmarker loaded from {model}")

    def detect(self, image: np.ndarray) -> List[DetectedHand]:
        """Find hands in one BGR image.

        Returns:
            Hands ordered by classification score, highest first.
        """
        if self._landmarker is None:
            raise RuntimeError("initialize() must be called before detect()")

        import mediapipe as mp

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        result = self._landmarker.detect(mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb))

        hands = [
            _to_detected_hand(points, categories)
            for points, categories in zip(result.hand_landmarks or [], _pad(result.handedness))
        ]
        hands.sort(key=lambda hand: hand.confidence, reverse=True)
        return hands

    def cleanup(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
            logger.info("Hand landmarker released")


def _pad(categories):
    """Yield per-hand categories forever, ``[]`` once the list runs out."""
    yield from categories or []
    while True:
        yield []


def _to_detected_hand(points, categories) -> DetectedHand:
    # The landmarker scores each hand only through its top category
    score = float(categories[0].score) if categories else 0.0
    return DetectedHand(
        landmarks=np.array([[p.x, p.y, p.z] for p in points], dtype=np.float32),
        confidence=score,
    )
