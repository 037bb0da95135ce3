"""Preview window: camera image with hand skeleton and session status."""

from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from signspell.landmarks import HAND_CONNECTIONS
from signspell.types import HandPose

FONT = cv2.FONT_HERSHEY_SIMPLEX

Color = Tuple[int, int, int]


def draw_pose(
    image: np.ndarray,
    pose: HandPose,
    line_color: Color = (255, 200, 0),
    point_color: Color = (0, 220, 255),
    point_radius: int = 4,
) -> np.ndarray:
    """Draw the 21-point hand skeleton in place. Coordinates are normalized."""
    h, w = image.shape[:2]
    points = [(int(lm.x * w), int(lm.y * h)) for lm in pose]

    for idx1, idx2 in HAND_CONNECTIONS:
        cv2.line(image, points[idx1], points[idx2], line_color, 2)

    for pt in points:
        cv2.circle(image, pt, point_radius, point_color, -1)
        cv2.circle(image, pt, point_radius, (20, 20, 20), 1)

    return image


def draw_text_lines(
    image: np.ndarray,
    lines: Iterable[str],
    origin: Tuple[int, int] = (10, 30),
    font_scale: float = 0.6,
    color: Color = (255, 255, 255),
) -> np.ndarray:
    """Draw text lines top-down with a dark outline for legibility."""
    x, y = origin
    line_height = int(28 * font_scale / 0.6)
    for line in lines:
        cv2.putText(image, line, (x, y), FONT, font_scale, (20, 20, 20), 3)
        cv2.putText(image, line, (x, y), FONT, font_scale, color, 1)
        y += line_height
    return image


class SessionDisplay:
    """Live cv2 window for a capture session.

    Args:
        title: Window title.
        wait_ms: cv2.waitKey delay in milliseconds.
    """

    def __init__(self, title: str = "signspell", wait_ms: int = 1):
        self._title = title
        self._wait_ms = wait_ms

    def update(
        self,
        image: np.ndarray,
        pose: Optional[HandPose],
        lines: Iterable[str],
    ) -> int:
        """Draw and show one frame.

        Returns:
            The pressed key code, or -1 if none.
        """
        display = image.copy()
        if pose is not None:
            draw_pose(display, pose)
        draw_text_lines(display, lines)
        cv2.imshow(self._title, display)
        key = cv2.waitKey(self._wait_ms)
        return -1 if key < 0 else key & 0xFF

    def close(self) -> None:
        """Close the display window."""
        cv2.destroyWindow(self._title)


__all__ = ["draw_pose", "draw_text_lines", "SessionDisplay"]
