"""Duplicate-letter suppression for auto-capture."""

import logging

from signspell.capture.stability import PoseTrackingState

logger = logging.getLogger(__name__)


class DuplicateFilter:
    """Drops a letter repeated within the cooldown window.

    State lives in the shared PoseTrackingState so it survives tracking
    resets.

    Args:
        state: Tracking state holding the last accepted letter and time.
        cooldown_ms: Window in which a repeat of the last letter is dropped.
    """

    def __init__(self, state: PoseTrackingState, cooldown_ms: int = 2000):
        self.state = state
        self.cooldown_ms = cooldown_ms

    def accept(self, letter: str, now_ms: int) -> bool:
        """Accept ``letter`` at ``now_ms`` unless it is a recent repeat.

        An accepted letter becomes the new reference for later calls.
        """
        last = self.state.last_accepted_letter
        last_at = self.state.last_accepted_at_ms
        if letter == last and last_at is not None and now_ms - last_at < self.cooldown_ms:
            logger.debug(f"Dropping duplicate {letter!r} ({now_ms - last_at}ms after last)")
            return False

        self.state.last_accepted_letter = letter
        self.state.last_accepted_at_ms = now_ms
        return True

    def reset(self) -> None:
        self.state.last_accepted_letter = None
        self.state.last_accepted_at_ms = None
