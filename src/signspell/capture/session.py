"""Capture session: camera, detector, stability, classifier and sentence.

Two capture paths share one set of collaborators:

- Manual: ``capture_once()`` captures, detects and classifies a single
  image and appends whatever actionable letter comes back.
- Auto: a fixed-period timer runs ``run_cycle()``; admission control,
  the stability engine and the duplicate filter decide what reaches
  the sentence.

Auto-capture can be switched off while a cycle is suspended. Each cycle
remembers the generation it started in and drops its results if the
generation changed by the time it resumes.

Example:
    >>> session = CaptureSession(camera, bridge, classifier, CaptureConfig())
    >>> session.start_auto_capture()
    >>> ...
    >>> session.stop_auto_capture()
    >>> await session.close()
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Set

import cv2

from signspell.capture.admission import FrameAdmissionController, monotonic_ms
from signspell.capture.camera import CaptureDevice
from signspell.capture.cooldown import DuplicateFilter
from signspell.capture.stability import (
    PoseStabilityEngine,
    PoseTrackingState,
    StabilityDecision,
    StabilityStatus,
)
from signspell.config import CaptureConfig
from signspell.detector.bridge import DetectorBridge
from signspell.errors import DetectorBusyError, NotReadyError
from signspell.ipc.codec import encode_image
from signspell.sentence import PredictionHistory, SentenceBuffer
from signspell.speech import NullSpeech, SpeechOutput
from signspell.types import (
    UNKNOWN_LETTER,
    ClassificationResult,
    DetectionOutcome,
    EncodedImage,
    HandPose,
    NoHand,
)

logger = logging.getLogger(__name__)

MSG_NOT_READY = "Please wait: hand detection model is still loading"
MSG_BUSY = "Capture in progress"
MSG_NO_HAND = "No hand detected. Show your hand clearly and try again."
MSG_HOLD = "Hold your sign steady"
MSG_IDLE = "Show your hand sign here"


class Classifier(Protocol):
    async def classify(self, pose: HandPose) -> ClassificationResult:
        ...


class CaptureStatus(str, Enum):
    ACCEPTED = "accepted"
    NOT_READY = "not_ready"
    BUSY = "busy"
    SKIPPED = "skipped"
    CAPTURE_FAILED = "capture_failed"
    NO_HAND = "no_hand"
    HOLDING = "holding"
    CLASSIFICATION_FAILED = "classification_failed"
    UNRECOGNIZED = "unrecognized"
    DUPLICATE = "duplicate"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of one capture attempt.

    Attributes:
        status: What happened.
        message: User-facing status text.
        letter: Predicted letter, when classification ran.
        confidence: Prediction confidence.
        stability: Stability decision (auto-capture only).
    """

    status: CaptureStatus
    message: str = ""
    letter: str = ""
    confidence: float = 0.0
    stability: Optional[StabilityDecision] = None

    @property
    def accepted(self) -> bool:
        return self.status == CaptureStatus.ACCEPTED


class CaptureSession:
    """Wires the capture pipeline together.

    Args:
        camera: Still-image source (opened by the caller).
        bridge: Started detector bridge.
        classifier: Anything with ``async classify(pose)``.
        config: Capture settings.
        speech: Speech output (default: NullSpeech).
        jpeg_quality: Quality of images sent to the detector.
        clock: Millisecond clock shared by admission and cooldown.
        on_result: Called with every capture result.
    """

    def __init__(
        self,
        camera: CaptureDevice,
        bridge: DetectorBridge,
        classifier: Classifier,
        config: Optional[CaptureConfig] = None,
        speech: Optional[SpeechOutput] = None,
        jpeg_quality: int = 80,
        clock: Optional[Callable[[], int]] = None,
        on_result: Optional[Callable[[CaptureResult], None]] = None,
    ):
        self.camera = camera
        self.bridge = bridge
        self.classifier = classifier
        self.config = config or CaptureConfig()
        self.speech = speech or NullSpeech()
        self.jpeg_quality = jpeg_quality
        self.on_result = on_result

        self._clock = clock or monotonic_ms
        self.sentence = SentenceBuffer(self.speech)
        self.history = PredictionHistory(self.config.history_size)
        self.tracking = PoseTrackingState()
        self.stability = PoseStabilityEngine(self.config.stability)
        self.duplicates = DuplicateFilter(self.tracking, self.config.duplicate_cooldown_ms)
        self.admission = FrameAdmissionController(clock=self._clock)

        self._auto_enabled = False
        self._generation = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self.last_result: Optional[CaptureResult] = None
        self.last_outcome: Optional[DetectionOutcome] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def auto_capture_enabled(self) -> bool:
        return self._auto_enabled

    @property
    def status_text(self) -> str:
        if not self.bridge.is_ready:
            return MSG_NOT_READY
        if self.last_result is None or not self.last_result.message:
            return MSG_IDLE
        return self.last_result.message

    def _reset_loop_state(self) -> None:
        self._generation += 1
        self.admission.reset()
        self.tracking.reset_tracking()

    def _is_stale(self, generation: int) -> bool:
        return not self._auto_enabled or generation != self._generation

    def _publish(self, result: CaptureResult) -> CaptureResult:
        self.last_result = result
        if self.on_result is not None:
            try:
                self.on_result(result)
            except Exception:
                logger.exception("on_result callback failed")
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _read_encoded(self) -> EncodedImage:
        return encode_image(self.camera.read(), self.jpeg_quality)

    async def _capture_image(self) -> Optional[EncodedImage]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read_encoded)
        except (IOError, ValueError, cv2.error) as e:
            logger.warning(f"Capture failed: {e}")
            return None

    async def _detect(self, image: EncodedImage) -> DetectionOutcome:
        try:
            outcome = await self.bridge.detect(image)
        except (NotReadyError, DetectorBusyError) as e:
            logger.warning(f"Detection skipped: {e}")
            outcome = NoHand(reason=str(e))
        self.last_outcome = outcome
        return outcome

    def _accept(self, letter: str, confidence: float) -> None:
        self.sentence.append(letter)
        self.history.add(ClassificationResult(letter=letter, confidence=confidence))
        logger.info(f"Accepted {letter!r} ({confidence:.2f}) -> {self.sentence.text!r}")

    @staticmethod
    def _classification_failure(result: ClassificationResult) -> Optional[CaptureResult]:
        if not result.ok:
            return CaptureResult(
                CaptureStatus.CLASSIFICATION_FAILED, message=result.error or ""
            )
        if not result.is_actionable:
            return CaptureResult(
                CaptureStatus.UNRECOGNIZED,
                message="Sign not recognized, try again",
                letter=result.letter or UNKNOWN_LETTER,
                confidence=result.confidence,
            )
        return None

    # ------------------------------------------------------------------
    # Manual capture
    # ------------------------------------------------------------------

    async def capture_once(self) -> CaptureResult:
        """Capture, detect and classify one image, bypassing stability."""
        if not self.bridge.is_ready:
            return self._publish(CaptureResult(CaptureStatus.NOT_READY, MSG_NOT_READY))
        if self.admission.is_processing:
            return self._publish(CaptureResult(CaptureStatus.BUSY, MSG_BUSY))

        with self.admission.cycle():
            result = await self._manual_cycle()
        return self._publish(result)

    async def _manual_cycle(self) -> CaptureResult:
        image = await self._capture_image()
        if image is None:
            return CaptureResult(CaptureStatus.CAPTURE_FAILED, "Could not take photo. Please try again.")

        outcome = await self._detect(image)
        if not outcome.detected:
            return CaptureResult(CaptureStatus.NO_HAND, MSG_NO_HAND)

        result = await self.classifier.classify(outcome.pose)
        failure = self._classification_failure(result)
        if failure is not None:
            return failure

        confidence = result.confidence or outcome.confidence
        self._accept(result.letter, confidence)
        if self.config.speak_letters:
            await self.speech.speak(result.letter)
        return CaptureResult(
            CaptureStatus.ACCEPTED,
            message=f"Detected: {result.letter}",
            letter=result.letter,
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Auto capture
    # ------------------------------------------------------------------

    def start_auto_capture(self) -> None:
        """Start the capture timer. Must be called from a running event loop."""
        if self._auto_enabled:
            return
        self._reset_loop_state()
        self._auto_enabled = True
        self._timer_task = asyncio.get_running_loop().create_task(
            self._timer(self._generation), name="signspell-auto-capture"
        )
        logger.info(f"Auto-capture started ({self.config.interval_ms}ms interval)")

    def stop_auto_capture(self) -> None:
        """Stop the timer. An in-flight cycle finishes without applying results."""
        if not self._auto_enabled:
            return
        self._auto_enabled = False
        self._reset_loop_state()
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
        logger.info("Auto-capture stopped")

    def toggle_auto_capture(self) -> bool:
        if self._auto_enabled:
            self.stop_auto_capture()
        else:
            self.start_auto_capture()
        return self._auto_enabled

    async def _timer(self, generation: int) -> None:
        # Fixed period; admission drops ticks that land during a cycle
        interval_sec = self.config.interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval_sec)
            if self._is_stale(generation):
                return
            task = asyncio.get_running_loop().create_task(self.run_cycle())
            self._cycle_tasks.add(task)
            task.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task) -> None:
        self._cycle_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Capture cycle failed: {exc!r}")

    async def run_cycle(self) -> CaptureResult:
        """Run one auto-capture cycle."""
        generation = self._generation
        if self._is_stale(generation):
            return CaptureResult(CaptureStatus.CANCELLED)
        if not self.bridge.is_ready:
            return self._publish(CaptureResult(CaptureStatus.NOT_READY, MSG_NOT_READY))
        if not self.admission.should_admit(self.config.admission):
            return CaptureResult(CaptureStatus.SKIPPED)

        with self.admission.cycle():
            result = await self._auto_cycle(generation)

        if result.status == CaptureStatus.CANCELLED:
            logger.debug("Discarding result of cancelled cycle")
            return result
        return self._publish(result)

    async def _auto_cycle(self, generation: int) -> CaptureResult:
        image = await self._capture_image()
        if self._is_stale(generation):
            return CaptureResult(CaptureStatus.CANCELLED)
        if image is None:
            return CaptureResult(CaptureStatus.CAPTURE_FAILED, "Could not take photo")

        outcome = await self._detect(image)
        if self._is_stale(generation):
            return CaptureResult(CaptureStatus.CANCELLED)

        decision = self.stability.update(self.tracking, outcome)
        if decision.status == StabilityStatus.NO_HAND:
            return CaptureResult(CaptureStatus.NO_HAND, MSG_IDLE, stability=decision)
        if not decision.should_submit:
            return CaptureResult(CaptureStatus.HOLDING, MSG_HOLD, stability=decision)

        result = await self.classifier.classify(decision.pose)
        if self._is_stale(generation):
            return CaptureResult(CaptureStatus.CANCELLED)

        failure = self._classification_failure(result)
        if failure is not None:
            return failure

        if not self.duplicates.accept(result.letter, self._clock()):
            return CaptureResult(
                CaptureStatus.DUPLICATE,
                message=f"Detected: {result.letter}",
                letter=result.letter,
                confidence=result.confidence,
                stability=decision,
            )

        self._accept(result.letter, result.confidence)
        if self.config.speak_letters:
            self.speech.enqueue(result.letter)
        return CaptureResult(
            CaptureStatus.ACCEPTED,
            message=f"Detected: {result.letter}",
            letter=result.letter,
            confidence=result.confidence,
            stability=decision,
        )

    # ------------------------------------------------------------------
    # Sentence edits
    # ------------------------------------------------------------------

    def add_space(self) -> None:
        self.sentence.append_space()

    def backspace(self) -> None:
        self.sentence.backspace()

    def clear(self) -> None:
        self.sentence.clear()

    async def speak_sentence(self) -> bool:
        return await self.sentence.speak()

    async def spell_last_word(self, delay_sec: float = 0.5) -> bool:
        """Spell the last word of the sentence letter by letter."""
        words = self.sentence.as_words()
        if not words:
            return False
        await self.speech.spell_word(words[-1], delay_sec)
        return True

    async def close(self) -> None:
        """Stop auto-capture and wait for in-flight cycles to finish."""
        self.stop_auto_capture()
        if self._cycle_tasks:
            await asyncio.gather(*self._cycle_tasks, return_exceptions=True)


__all__ = [
    "CaptureStatus",
    "CaptureResult",
    "CaptureSession",
    "Classifier",
]
