"""Frame admission control for the capture loop.

Combines a frame-skip counter with a minimum interval between admitted
cycles, plus a single-flight flag so a new cycle never starts while the
previous one is still running.

Example:
    >>> admission = FrameAdmissionController()
    >>> if admission.should_admit(AdmissionConfig(frame_skip=1, min_interval_ms=100)):
    ...     with admission.cycle():
    ...         await run_cycle()
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from signspell.config import AdmissionConfig

logger = logging.getLogger(__name__)


def monotonic_ms() -> int:
    """Monotonic clock in integer milliseconds."""
    return int(time.monotonic() * 1000)


class FrameAdmissionController:
    """Rate limiter deciding whether a capture cycle may run now.

    Args:
        clock: Millisecond clock (default: monotonic).

    ``mark_end()`` must follow every ``mark_start()``; an unmatched start
    blocks admission until ``mark_end()``, even across ``reset()``.
    Prefer ``cycle()``, which guarantees it.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or monotonic_ms
        self._frame_count = 0
        self._last_processed_at_ms: Optional[int] = None
        self._is_processing = False

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def last_processed_at_ms(self) -> Optional[int]:
        return self._last_processed_at_ms

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def should_admit(self, config: Optional[AdmissionConfig] = None) -> bool:
        """Decide whether a new cycle may start now.

        Args:
            config: Admission policy (default: AdmissionConfig()).

        Returns:
            True if the caller may run a cycle.
        """
        config = config or AdmissionConfig()

        if self._is_processing:
            return False

        self._frame_count += 1

        if config.enable_throttling and self._frame_count % config.frame_skip != 0:
            return False

        if self._last_processed_at_ms is not None:
            elapsed = self._clock() - self._last_processed_at_ms
            if elapsed < config.min_interval_ms:
                return False

        return True

    def mark_start(self) -> None:
        """Mark an admitted cycle as started."""
        if self._is_processing:
            raise RuntimeError("A capture cycle is already in progress")
        self._is_processing = True
        self._last_processed_at_ms = self._clock()

    def mark_end(self) -> None:
        """Mark the current cycle as finished."""
        self._is_processing = False

    @contextmanager
    def cycle(self) -> Iterator[None]:
        """Bracket a cycle with mark_start()/mark_end() on every exit path."""
        self.mark_start()
        try:
            yield
        finally:
            self.mark_end()

    def reset(self) -> None:
        """Clear the counters (loop start/stop).

        A cycle still in flight keeps its processing flag; only its own
        ``mark_end()`` releases it.
        """
        self._frame_count = 0
        self._last_processed_at_ms = None

    def current_fps(self) -> float:
        """Processing rate implied by the time since the last admission."""
        if self._last_processed_at_ms is None:
            return 0.0
        elapsed = self._clock() - self._last_processed_at_ms
        if elapsed <= 0:
            return 0.0
        return round(1000.0 / elapsed, 1)


__all__ = ["FrameAdmissionController", "monotonic_ms"]
