"""Sentence assembly and prediction history.

SentenceBuffer accumulates accepted letters into text. Every edit is
total: operations that make no sense in the current state are no-ops.
"""

import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from signspell.speech import SpeechOutput
from signspell.types import ClassificationResult

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = "Start signing to build a sentence"


class SentenceBuffer:
    """Letters and single spaces, appended at the end.

    Args:
        speech: Optional speech output used by ``speak()``; ``clear()``
            also cancels its in-progress speech.
    """

    def __init__(self, speech: Optional[SpeechOutput] = None):
        self._chars: List[str] = []
        self._speech = speech

    @property
    def text(self) -> str:
        return "".join(self._chars)

    def append(self, letter: str) -> None:
        """Append a letter. Any whitespace in it goes through ``append_space()``."""
        for char in letter:
            if char.isspace():
                self.append_space()
            else:
                self._chars.append(char)

    def append_space(self) -> None:
        """Append a space unless empty or already ending with one."""
        if not self._chars or self._chars[-1] == " ":
            return
        self._chars.append(" ")

    def backspace(self) -> None:
        if self._chars:
            self._chars.pop()

    def clear(self) -> None:
        self._chars.clear()
        if self._speech is not None:
            self._speech.clear_queue()

    def as_words(self) -> List[str]:
        return self.text.split()

    def render(self, placeholder: str = DEFAULT_PLACEHOLDER) -> str:
        return self.text if self._chars else placeholder

    async def speak(self) -> bool:
        """Speak the whole sentence. Returns False if there was nothing to say."""
        text = self.text.strip()
        if not text or self._speech is None:
            return False
        await self._speech.speak(text)
        return True

    def __len__(self) -> int:
        return len(self._chars)

    def __bool__(self) -> bool:
        return bool(self._chars)

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class PredictionHistoryItem:
    """One accepted prediction, for display."""

    id: str
    letter: str
    confidence: float
    timestamp: float


class PredictionHistory:
    """Bounded history of accepted predictions, oldest first.

    Args:
        max_items: Oldest items are dropped beyond this size.
    """

    def __init__(self, max_items: int = 50):
        self._items: Deque[PredictionHistoryItem] = deque(maxlen=max_items)
        self._ids = itertools.count(1)

    def add(self, result: ClassificationResult, timestamp: Optional[float] = None) -> PredictionHistoryItem:
        item = PredictionHistoryItem(
            id=f"prediction-{next(self._ids)}",
            letter=result.letter,
            confidence=result.confidence,
            timestamp=time.time() if timestamp is None else timestamp,
        )
        self._items.append(item)
        return item

    @property
    def items(self) -> List[PredictionHistoryItem]:
        return list(self._items)

    @property
    def latest(self) -> Optional[PredictionHistoryItem]:
        return self._items[-1] if self._items else None

    def formed_word(self) -> str:
        """All history letters joined in order."""
        return "".join(item.letter for item in self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


__all__ = [
    "DEFAULT_PLACEHOLDER",
    "SentenceBuffer",
    "PredictionHistoryItem",
    "PredictionHistory",
]
