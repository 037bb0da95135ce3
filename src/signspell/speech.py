"""Text-to-speech output.

SpeechOutput is the injectable speech component: letters and sentences
are handed to it with a language, and failures are logged rather than
raised. Engines run on a dedicated single thread because most TTS
engines are bound to the thread that created them.

Example:
    >>> speech = create_speech(SpeechConfig(language="en"))
    >>> await speech.speak("A")
    >>> speech.enqueue("hello")
    >>> await speech.spell_word("ABC", delay_sec=0.5)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Deque, Dict, List, Optional

from signspell.config import LANGUAGE_TAGS, SpeechConfig

logger = logging.getLogger(__name__)


class SpeechOutput(ABC):
    """Base class for speech outputs.

    Subclasses implement the blocking ``_say`` and ``_halt``; everything
    else (language selection, queueing, spelling) lives here.

    Args:
        language: "en" or "sw".
    """

    def __init__(self, language: str = "sw"):
        self._language = self._check_language(language)
        self._queue: Deque[str] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._is_speaking = False

    @staticmethod
    def _check_language(language: str) -> str:
        if language not in LANGUAGE_TAGS:
            raise ValueError(
                f"Unsupported language {language!r}, expected one of {sorted(LANGUAGE_TAGS)}"
            )
        return language

    @property
    def language(self) -> str:
        return self._language

    @language.setter
    def language(self, value: str) -> None:
        self._language = self._check_language(value)

    @property
    def language_tag(self) -> str:
        return LANGUAGE_TAGS[self._language]

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def queued(self) -> List[str]:
        return list(self._queue)

    @abstractmethod
    def _say(self, text: str, language_tag: str) -> None:
        """Speak ``text`` and block until done."""
        ...

    @abstractmethod
    def _halt(self) -> None:
        """Interrupt the current utterance."""
        ...

    def is_available(self) -> bool:
        return True

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="speech")
        return self._executor

    async def speak(self, text: str, language: Optional[str] = None) -> None:
        """Speak ``text`` now, optionally in another language.

        Empty text is ignored.
        """
        if not text:
            return
        tag = LANGUAGE_TAGS[self._check_language(language)] if language else self.language_tag

        loop = asyncio.get_running_loop()
        self._is_speaking = True
        try:
            await loop.run_in_executor(self._ensure_executor(), self._say, text, tag)
        except Exception as e:
            logger.error(f"Speech error: {e}")
        finally:
            self._is_speaking = False

    def enqueue(self, text: str) -> None:
        """Queue ``text`` behind anything already queued.

        Must be called from a running event loop.
        """
        if not text:
            return
        self._queue.append(text)
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue:
            await self.speak(self._queue.popleft())

    def clear_queue(self) -> None:
        """Drop queued text and stop the current utterance."""
        self._queue.clear()
        self.stop()

    def stop(self) -> None:
        """Stop the current utterance."""
        try:
            self._halt()
        except Exception as e:
            logger.error(f"Failed to stop speech: {e}")
        self._is_speaking = False

    async def spell_word(self, word: str, delay_sec: float = 0.5) -> None:
        """Speak ``word`` letter by letter with a pause between letters."""
        for i, letter in enumerate(word):
            await self.speak(letter)
            if i < len(word) - 1:
                await asyncio.sleep(delay_sec)

    def close(self) -> None:
        self.clear_queue()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


class NullSpeech(SpeechOutput):
    """Speech output that only logs. Records what it was asked to say."""

    def __init__(self, language: str = "sw"):
        super().__init__(language)
        self.spoken: List[str] = []
        self.stop_count = 0

    def _say(self, text: str, language_tag: str) -> None:
        logger.info(f"[speech {language_tag}] {text}")
        self.spoken.append(text)

    def _halt(self) -> None:
        self.stop_count += 1


class Pyttsx3Speech(SpeechOutput):
    """pyttsx3-backed speech.

    The engine is created lazily on the speech thread.

    Args:
        language: "en" or "sw".
        rate: Relative speaking rate (1.0 = ``base_rate`` words per minute).
        base_rate: Engine words per minute at rate 1.0.
    """

    def __init__(self, language: str = "sw", rate: float = 0.85, base_rate: int = 200):
        super().__init__(language)
        self._rate = rate
        self._base_rate = base_rate
        self._engine = None
        self._voice_by_tag: Dict[str, Optional[str]] = {}

    def _get_engine(self):
        if self._engine is None:
            import pyttsx3

            engine = pyttsx3.init()
            engine.setProperty("rate", int(self._base_rate * self._rate))
            self._engine = engine
            logger.info("pyttsx3 engine initialized")
        return self._engine

    def _select_voice(self, engine, language_tag: str) -> None:
        if language_tag not in self._voice_by_tag:
            self._voice_by_tag[language_tag] = _find_voice(
                engine.getProperty("voices") or [], language_tag
            )
            if self._voice_by_tag[language_tag] is None:
                logger.warning(f"No voice for {language_tag}, using engine default")
        voice_id = self._voice_by_tag[language_tag]
        if voice_id is not None:
            engine.setProperty("voice", voice_id)

    def _say(self, text: str, language_tag: str) -> None:
        engine = self._get_engine()
        self._select_voice(engine, language_tag)
        engine.say(text)
        engine.runAndWait()

    def _halt(self) -> None:
        if self._engine is not None:
            self._engine.stop()

    def is_available(self) -> bool:
        """True if an engine with at least one voice can be created."""
        def engine_loads() -> bool:
            return bool(self._get_engine().getProperty("voices"))

        try:
            return self._ensure_executor().submit(engine_loads).result()
        except (ImportError, RuntimeError, OSError) as e:
            logger.error(f"Error checking speech availability: {e}")
            return False


def _voice_languages(voice) -> List[str]:
    languages = []
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            # espeak prefixes a priority byte
            lang = lang.decode("utf-8", errors="ignore").lstrip("\x00\x01\x02\x03\x04\x05")
        languages.append(str(lang).lower().replace("_", "-"))
    return languages


def _find_voice(voices, language_tag: str) -> Optional[str]:
    """Pick a voice id for ``language_tag`` (exact tag, then base language)."""
    tag = language_tag.lower()
    base = tag.split("-")[0]
    fallback = None
    for voice in voices:
        languages = _voice_languages(voice)
        if tag in languages:
            return voice.id
        if fallback is None and any(lang.split("-")[0] == base for lang in languages):
            fallback = voice.id
    return fallback


def create_speech(config: Optional[SpeechConfig] = None) -> SpeechOutput:
    """Build the configured speech output."""
    config = config or SpeechConfig()
    if not config.enabled or config.backend == "null":
        return NullSpeech(language=config.language)
    if config.backend == "pyttsx3":
        return Pyttsx3Speech(language=config.language, rate=config.rate)
    raise ValueError(f"Unknown speech backend: {config.backend!r}")


__all__ = [
    "SpeechOutput",
    "NullSpeech",
    "Pyttsx3Speech",
    "create_speech",
]
