"""What a hand landmark backend must provide to the detection runtime."""

from dataclasses import dataclass
from typing import List, Protocol

import numpy as np


@dataclass(frozen=True)
class DetectedHand:
    """One hand found in a still image.

    ``landmarks`` is a ``(21, 3)`` array of image-normalized x, y, z in
    MediaPipe landmark order.
    """

    landmarks: np.ndarray
    confidence: float = 1.0

    def rows(self) -> List[List[float]]:
        """Landmarks as plain ``[x, y, z]`` lists for a JSON reply."""
        return [[float(v) for v in row] for row in np.asarray(self.landmarks).tolist()]


class HandLandmarkBackend(Protocol):
    """A detector the runtime drives from its single worker thread.

    ``initialize`` runs once before the first ``detect`` and ``cleanup``
    once after the last, all on that same thread.
    """

    def initialize(self) -> None:
        ...

    def detect(self, image: np.ndarray) -> List[DetectedHand]:
        """Hands found in a BGR image, most confident first."""
        ...

    def cleanup(self) -> None:
        ...


__all__ = ["DetectedHand", "HandLandmarkBackend"]
