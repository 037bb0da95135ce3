"""Still-image capture devices."""

import logging
import threading
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class CaptureDevice(Protocol):
    """Produces one BGR still image on demand."""

    def open(self) -> None:
        ...

    def read(self) -> np.ndarray:
        """Capture one image.

        Raises:
            IOError: If no image could be captured.
        """
        ...

    def close(self) -> None:
        ...


class OpenCVCamera:
    """cv2.VideoCapture camera.

    Args:
        index: Camera device index.
        resolution: Optional (width, height) request.
        mirror: Flip horizontally (front-camera preview convention).
    """

    def __init__(
        self,
        index: int = 0,
        resolution: Optional[Tuple[int, int]] = None,
        mirror: bool = False,
    ):
        self.index = index
        self.resolution = resolution
        self.mirror = mirror
        self._cap: Optional[cv2.VideoCapture] = None
        # Preview and capture read from different threads
        self._lock = threading.Lock()

    def open(self) -> None:
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise IOError(f"Cannot open camera: {self.index}")
        if self.resolution:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        self._cap = cap
        logger.info(f"Camera {self.index} opened")

    def read(self) -> np.ndarray:
        if self._cap is None:
            raise IOError("Camera not opened")
        with self._lock:
            ret, image = self._cap.read()
        if not ret or image is None:
            raise IOError(f"Failed to capture from camera {self.index}")
        if self.mirror:
            image = cv2.flip(image, 1)
        return image

    def close(self) -> None:
        if self._cap is not None:
            with self._lock:
                self._cap.release()
            self._cap = None
            logger.info(f"Camera {self.index} closed")

    def __enter__(self) -> "OpenCVCamera":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StaticImageSource:
    """Returns the same image on every read (image files, tests)."""

    def __init__(self, image: np.ndarray):
        self._image = image

    @classmethod
    def from_file(cls, path: str) -> "StaticImageSource":
        image = cv2.imread(path, cv2.IMREAD_COLOR)
        if image is None:
            raise IOError(f"Cannot read image: {path}")
        return cls(image)

    def open(self) -> None:
        pass

    def read(self) -> np.ndarray:
        return self._image.copy()

    def close(self) -> None:
        pass


__all__ = ["CaptureDevice", "OpenCVCamera", "StaticImageSource"]
