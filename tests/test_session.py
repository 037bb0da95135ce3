"""Tests for the capture session (manual and auto capture)."""

import asyncio

import cv2
import pytest

from signspell.capture.camera import StaticImageSource
from signspell.capture.session import (
    MSG_NOT_READY,
    CaptureSession,
    CaptureStatus,
)
from signspell.capture.stability import StabilityStatus
from signspell.config import AdmissionConfig, CaptureConfig
from signspell.errors import DetectorBusyError
from signspell.speech import NullSpeech
from signspell.types import NO_HAND, ClassificationErrorKind, ClassificationResult, Detected

from conftest import FakeClassifier


class StubBridge:
    """Detector bridge stand-in returning scripted outcomes.

    When ``gate`` is set, each detect waits on it, so tests can hold a
    cycle suspended mid-flight.
    """

    def __init__(self, *outcomes, ready=True):
        self.outcomes = list(outcomes)
        self.is_ready = ready
        self.gate = None
        self.calls = 0

    async def detect(self, image):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if not self.outcomes:
            return NO_HAND
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FailingCamera:
    def read(self):
        raise IOError("camera unplugged")


class BrokenFrameCamera:
    def read(self):
        raise cv2.error("frame conversion failed")


def make_session(bridge, classifier=None, fake_clock=None, camera=None, **config_kwargs):
    config_kwargs.setdefault("interval_ms", 60_000)
    config_kwargs.setdefault("admission", AdmissionConfig(frame_skip=1, min_interval_ms=0))
    config = CaptureConfig(**config_kwargs)
    results = []
    session = CaptureSession(
        camera=camera,
        bridge=bridge,
        classifier=classifier or FakeClassifier(),
        config=config,
        speech=NullSpeech(),
        clock=fake_clock,
        on_result=results.append,
    )
    return session, results


@pytest.fixture
def camera(test_image):
    return StaticImageSource(test_image)


def held(pose, confidence=0.9):
    return Detected(pose=pose, confidence=confidence)


# =============================================================================
# Manual capture
# =============================================================================


class TestCaptureOnce:
    """Tests for single-shot capture, which bypasses stability."""

    def test_accepts_letter(self, camera, sample_hand_pose, fake_clock):
        classifier = FakeClassifier(ClassificationResult(letter="A", confidence=0.91))
        session, results = make_session(
            StubBridge(held(sample_hand_pose)), classifier, fake_clock, camera
        )

        result = asyncio.run(session.capture_once())

        assert result.status == CaptureStatus.ACCEPTED
        assert result.letter == "A"
        assert result.confidence == pytest.approx(0.91)
        assert session.sentence.text == "A"
        assert session.history.latest.letter == "A"
        assert session.speech.spoken == ["A"]
        assert classifier.poses == [sample_hand_pose]
        assert results == [result]

    def test_falls_back_to_detection_confidence(self, camera, sample_hand_pose, fake_clock):
        classifier = FakeClassifier(ClassificationResult(letter="B", confidence=0.0))
        session, _ = make_session(
            StubBridge(held(sample_hand_pose, 0.77)), classifier, fake_clock, camera
        )
        result = asyncio.run(session.capture_once())
        assert result.confidence == pytest.approx(0.77)

    def test_no_speech_when_disabled(self, camera, sample_hand_pose, fake_clock):
        session, _ = make_session(
            StubBridge(held(sample_hand_pose)), None, fake_clock, camera, speak_letters=False
        )
        asyncio.run(session.capture_once())
        assert session.speech.spoken == []

    def test_not_ready(self, camera, fake_clock):
        bridge = StubBridge(ready=False)
        session, results = make_session(bridge, None, fake_clock, camera)
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.NOT_READY
        assert result.message == MSG_NOT_READY
        assert bridge.calls == 0
        assert session.status_text == MSG_NOT_READY

    def test_no_hand(self, camera, fake_clock):
        classifier = FakeClassifier()
        session, _ = make_session(StubBridge(NO_HAND), classifier, fake_clock, camera)
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.NO_HAND
        assert classifier.poses == []
        assert session.sentence.text == ""

    def test_capture_failure(self, fake_clock):
        bridge = StubBridge()
        session, _ = make_session(bridge, None, fake_clock, FailingCamera())
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.CAPTURE_FAILED
        assert bridge.calls == 0

    def test_opencv_error_is_capture_failure(self, fake_clock):
        """Test that an OpenCV error while reading becomes a published failure."""
        bridge = StubBridge()
        session, results = make_session(bridge, None, fake_clock, BrokenFrameCamera())
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.CAPTURE_FAILED
        assert results == [result]
        assert bridge.calls == 0
        assert not session.admission.is_processing

    def test_classification_error(self, camera, sample_hand_pose, fake_clock):
        classifier = FakeClassifier(
            ClassificationResult.failure("Server error: 500 - Internal", ClassificationErrorKind.REJECTED)
        )
        session, _ = make_session(StubBridge(held(sample_hand_pose)), classifier, fake_clock, camera)
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.CLASSIFICATION_FAILED
        assert result.message == "Server error: 500 - Internal"
        assert session.sentence.text == ""

    def test_unknown_letter(self, camera, sample_hand_pose, fake_clock):
        classifier = FakeClassifier(ClassificationResult(letter="Unknown", confidence=0.3))
        session, _ = make_session(StubBridge(held(sample_hand_pose)), classifier, fake_clock, camera)
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.UNRECOGNIZED
        assert session.sentence.text == ""

    def test_busy_detector_is_no_hand(self, camera, fake_clock):
        session, _ = make_session(
            StubBridge(DetectorBusyError("in flight")), None, fake_clock, camera
        )
        result = asyncio.run(session.capture_once())
        assert result.status == CaptureStatus.NO_HAND

    def test_manual_repeat_not_filtered(self, camera, sample_hand_pose, fake_clock):
        """Test that manual capture does not apply the duplicate cooldown."""
        session, _ = make_session(
            StubBridge(held(sample_hand_pose), held(sample_hand_pose)), None, fake_clock, camera
        )

        async def scenario():
            await session.capture_once()
            await session.capture_once()

        asyncio.run(scenario())
        assert session.sentence.text == "AA"

    def test_busy_while_cycle_runs(self, camera, sample_hand_pose, fake_clock):
        bridge = StubBridge(held(sample_hand_pose))
        session, _ = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            bridge.gate = asyncio.Event()
            first = asyncio.ensure_future(session.capture_once())
            await asyncio.sleep(0.05)
            second = await session.capture_once()
            bridge.gate.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert second.status == CaptureStatus.BUSY
        assert first.status == CaptureStatus.ACCEPTED


# =============================================================================
# Auto capture
# =============================================================================


class TestAutoCapture:
    """Tests for run_cycle with stability, admission and cooldown."""

    def run_cycles(self, session, count, clock=None, step_ms=1500):
        async def scenario():
            session.start_auto_capture()
            results = []
            for _ in range(count):
                results.append(await session.run_cycle())
                if clock is not None:
                    clock.advance(step_ms)
            await session.close()
            return results

        return asyncio.run(scenario())

    def test_stable_pose_accepted(self, camera, make_pose, fake_clock):
        bridge = StubBridge(held(make_pose(0.0)), held(make_pose(0.01)))
        session, _ = make_session(bridge, None, fake_clock, camera)

        first, second = self.run_cycles(session, 2, fake_clock)

        assert first.status == CaptureStatus.HOLDING
        assert first.stability.status == StabilityStatus.FIRST_POSE
        assert second.status == CaptureStatus.ACCEPTED
        assert second.stability.status == StabilityStatus.READY
        assert session.sentence.text == "A"

    def test_moving_hand_not_submitted(self, camera, make_pose, fake_clock):
        classifier = FakeClassifier()
        bridge = StubBridge(held(make_pose(0.0)), held(make_pose(0.1)), held(make_pose(0.2)))
        session, _ = make_session(bridge, classifier, fake_clock, camera)

        results = self.run_cycles(session, 3, fake_clock)

        assert [r.status for r in results] == [CaptureStatus.HOLDING] * 3
        assert results[-1].stability.status == StabilityStatus.POSE_CHANGED
        assert classifier.poses == []

    def test_no_hand_resets_tracking(self, camera, make_pose, fake_clock):
        bridge = StubBridge(held(make_pose(0.0)), NO_HAND, held(make_pose(0.0)))
        session, _ = make_session(bridge, None, fake_clock, camera)

        results = self.run_cycles(session, 3, fake_clock)

        assert results[1].status == CaptureStatus.NO_HAND
        assert results[2].stability.status == StabilityStatus.FIRST_POSE
        assert session.sentence.text == ""

    def test_duplicate_within_cooldown(self, camera, sample_hand_pose, fake_clock):
        bridge = StubBridge(*[held(sample_hand_pose)] * 4)
        session, _ = make_session(bridge, None, fake_clock, camera)

        # 500 ms apart: both READY cycles fall inside the 2 s cooldown
        results = self.run_cycles(session, 4, fake_clock, step_ms=500)

        statuses = [r.status for r in results]
        assert statuses == [
            CaptureStatus.HOLDING,
            CaptureStatus.ACCEPTED,
            CaptureStatus.HOLDING,
            CaptureStatus.DUPLICATE,
        ]
        assert session.sentence.text == "A"

    def test_repeat_after_cooldown(self, camera, sample_hand_pose, fake_clock):
        bridge = StubBridge(*[held(sample_hand_pose)] * 4)
        session, _ = make_session(bridge, None, fake_clock, camera)

        self.run_cycles(session, 4, fake_clock, step_ms=1500)

        assert session.sentence.text == "AA"

    def test_letters_enqueued_for_speech(self, camera, make_pose, fake_clock):
        bridge = StubBridge(held(make_pose(0.0)), held(make_pose(0.0)))
        session, _ = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            session.start_auto_capture()
            await session.run_cycle()
            await session.run_cycle()
            await asyncio.sleep(0.05)
            await session.close()
            session.speech.close()

        asyncio.run(scenario())
        assert session.speech.spoken == ["A"]

    def test_admission_skips(self, camera, sample_hand_pose, fake_clock):
        bridge = StubBridge(held(sample_hand_pose))
        session, _ = make_session(
            bridge, None, fake_clock, camera,
            admission=AdmissionConfig(frame_skip=1, min_interval_ms=100),
        )

        results = self.run_cycles(session, 2, fake_clock, step_ms=50)

        assert results[1].status == CaptureStatus.SKIPPED
        assert bridge.calls == 1

    def test_not_running_is_cancelled(self, camera, fake_clock):
        bridge = StubBridge()
        session, results = make_session(bridge, None, fake_clock, camera)
        result = asyncio.run(session.run_cycle())
        assert result.status == CaptureStatus.CANCELLED
        assert bridge.calls == 0
        assert results == []

    def test_not_ready(self, camera, fake_clock):
        session, _ = make_session(StubBridge(ready=False), None, fake_clock, camera)
        (result,) = self.run_cycles(session, 1)
        assert result.status == CaptureStatus.NOT_READY

    def test_stop_discards_in_flight_cycle(self, camera, make_pose, fake_clock):
        """Test that a cycle suspended across stop never touches the sentence."""
        bridge = StubBridge(held(make_pose(0.0)), held(make_pose(0.0)))
        session, published = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            session.start_auto_capture()
            await session.run_cycle()
            bridge.gate = asyncio.Event()
            in_flight = asyncio.ensure_future(session.run_cycle())
            await asyncio.sleep(0.05)
            session.stop_auto_capture()
            bridge.gate.set()
            return await in_flight

        result = asyncio.run(scenario())
        assert result.status == CaptureStatus.CANCELLED
        assert session.sentence.text == ""
        assert CaptureStatus.CANCELLED not in [r.status for r in published]
        assert session.tracking.previous_pose is None

    def test_restart_discards_old_generation(self, camera, make_pose, fake_clock):
        bridge = StubBridge(held(make_pose(0.0)), held(make_pose(0.0)))
        session, _ = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            session.start_auto_capture()
            await session.run_cycle()
            bridge.gate = asyncio.Event()
            in_flight = asyncio.ensure_future(session.run_cycle())
            await asyncio.sleep(0.05)
            session.stop_auto_capture()
            session.start_auto_capture()
            bridge.gate.set()
            result = await in_flight
            await session.close()
            return result

        assert asyncio.run(scenario()).status == CaptureStatus.CANCELLED
        assert session.sentence.text == ""

    def test_single_flight_across_restart(self, camera, make_pose, fake_clock):
        """Test that a restart does not admit a cycle beside a suspended one."""
        bridge = StubBridge(held(make_pose(0.0)), held(make_pose(0.0)))
        session, _ = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            session.start_auto_capture()
            bridge.gate = asyncio.Event()
            first = asyncio.ensure_future(session.run_cycle())
            await asyncio.sleep(0.05)
            assert bridge.calls == 1

            session.stop_auto_capture()
            session.start_auto_capture()
            second = await session.run_cycle()
            assert bridge.calls == 1

            bridge.gate.set()
            first_result = await first
            assert not session.admission.is_processing
            third = await session.run_cycle()
            await session.close()
            return second, first_result, third

        second, first_result, third = asyncio.run(scenario())
        assert second.status == CaptureStatus.SKIPPED
        assert first_result.status == CaptureStatus.CANCELLED
        assert third.status == CaptureStatus.HOLDING
        assert bridge.calls == 2

    def test_manual_capture_busy_after_stop(self, camera, make_pose, fake_clock):
        bridge = StubBridge(held(make_pose(0.0)))
        session, _ = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            session.start_auto_capture()
            bridge.gate = asyncio.Event()
            in_flight = asyncio.ensure_future(session.run_cycle())
            await asyncio.sleep(0.05)
            session.stop_auto_capture()
            manual = await session.capture_once()
            bridge.gate.set()
            await in_flight
            return manual

        assert asyncio.run(scenario()).status == CaptureStatus.BUSY
        assert bridge.calls == 1

    def test_cooldown_survives_restart(self, camera, sample_hand_pose, fake_clock):
        bridge = StubBridge(*[held(sample_hand_pose)] * 4)
        session, _ = make_session(bridge, None, fake_clock, camera)

        async def scenario():
            session.start_auto_capture()
            await session.run_cycle()
            await session.run_cycle()
            session.stop_auto_capture()
            session.start_auto_capture()
            fake_clock.advance(500)
            await session.run_cycle()
            result = await session.run_cycle()
            await session.close()
            return result

        assert asyncio.run(scenario()).status == CaptureStatus.DUPLICATE
        assert session.sentence.text == "A"

    def test_timer_spawns_cycles(self, camera, make_pose):
        bridge = StubBridge(*[held(make_pose(0.0))] * 10)
        session, published = make_session(
            bridge, None, None, camera, interval_ms=20,
        )

        async def scenario():
            session.start_auto_capture()
            await asyncio.sleep(0.2)
            await session.close()

        asyncio.run(scenario())
        assert bridge.calls >= 2
        assert session.sentence.text.startswith("A")

    def test_toggle(self, camera, fake_clock):
        session, _ = make_session(StubBridge(), None, fake_clock, camera)

        async def scenario():
            on = session.toggle_auto_capture()
            off = session.toggle_auto_capture()
            return on, off

        assert asyncio.run(scenario()) == (True, False)
        assert session.auto_capture_enabled is False


class TestSentenceEdits:
    def test_edits(self, camera, fake_clock):
        session, _ = make_session(StubBridge(), None, fake_clock, camera)
        session.sentence.append("A")
        session.add_space()
        session.sentence.append("B")
        session.backspace()
        assert session.sentence.text == "A "
        session.clear()
        assert session.sentence.text == ""

    def test_speak_sentence(self, camera, fake_clock):
        session, _ = make_session(StubBridge(), None, fake_clock, camera)
        session.sentence.append("H")
        session.sentence.append("I")

        async def scenario():
            spoken = await session.speak_sentence()
            session.speech.close()
            return spoken

        assert asyncio.run(scenario()) is True
        assert session.speech.spoken == ["HI"]

    def test_spell_last_word(self, camera, fake_clock):
        session, _ = make_session(StubBridge(), None, fake_clock, camera)

        async def scenario():
            empty = await session.spell_last_word(delay_sec=0)
            session.sentence.append("HI YO ")
            spelled = await session.spell_last_word(delay_sec=0)
            session.speech.close()
            return empty, spelled

        assert asyncio.run(scenario()) == (False, True)
        assert session.speech.spoken == ["Y", "O"]
