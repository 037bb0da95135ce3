"""Application wiring: build the pipeline from AppConfig and drive it.

Commands (window keys or stdin lines in headless mode):
    c  capture once          a  toggle auto-capture
    space / _  add space     b  backspace
    x  clear sentence        s  speak sentence
    w  spell last word       q  quit
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from signspell.capture.camera import OpenCVCamera, StaticImageSource
from signspell.capture.session import CaptureResult, CaptureSession, CaptureStatus
from signspell.classifier import ClassificationClient, create_classifier
from signspell.config import AppConfig, ClassifierConfig, DetectorConfig
from signspell.detector.bridge import DetectorBridge
from signspell.detector.launcher import create_runtime_host
from signspell.errors import RuntimeStartError
from signspell.ipc.codec import encode_image
from signspell.landmarks import landmark_quality, sample_pose
from signspell.speech import create_speech
from signspell.types import Detected

logger = logging.getLogger(__name__)

HELP_LINE = "[c]apture [a]uto [space] [b]ackspace [x]clear [s]peak [w]ord [q]uit"


@asynccontextmanager
async def open_detector(
    config: DetectorConfig,
    log_level: str = "INFO",
    on_error: Optional[Callable[[str], None]] = None,
) -> AsyncIterator[DetectorBridge]:
    """Start a runtime host and a bridge on its channel.

    Raises:
        RuntimeStartError: If the runtime cannot be started.
    """
    host = create_runtime_host(config, log_level=log_level)
    channel = await host.start()
    bridge = DetectorBridge(channel, timeout_sec=config.timeout_sec, on_error=on_error)
    await bridge.start()
    try:
        yield bridge
    finally:
        await bridge.stop()
        await host.stop()


def _log_result(result: CaptureResult) -> None:
    if result.status in (CaptureStatus.SKIPPED, CaptureStatus.HOLDING):
        logger.debug(f"{result.status.value}: {result.message}")
    else:
        logger.info(f"{result.status.value}: {result.message}")


def _report_ready(task: asyncio.Task) -> None:
    if not task.cancelled() and not task.result():
        logger.error("Detection runtime did not become ready")


class CommandDispatcher:
    """Maps single-key commands to session operations."""

    def __init__(self, session: CaptureSession):
        self.session = session
        self._tasks: Set[asyncio.Task] = set()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def dispatch(self, command: str) -> bool:
        """Run one command. Returns False when the user asked to quit."""
        session = self.session
        if command in ("q", "\x1b"):
            return False
        if command == "c":
            self._spawn(session.capture_once())
        elif command == "a":
            enabled = session.toggle_auto_capture()
            logger.info(f"Auto-capture {'on' if enabled else 'off'}")
        elif command in (" ", "_"):
            session.add_space()
        elif command in ("b", "\x08", "\x7f"):
            session.backspace()
        elif command == "x":
            session.clear()
        elif command == "s":
            self._spawn(session.speak_sentence())
        elif command == "w":
            self._spawn(session.spell_last_word())
        else:
            logger.debug(f"Unknown command: {command!r}")
        return True

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def status_lines(session: CaptureSession) -> List[str]:
    if session.auto_capture_enabled:
        auto = f"on ({session.admission.current_fps():.1f}/s)"
    else:
        auto = "off"
    lines = [
        session.status_text,
        f"Sentence: {session.sentence.render()}",
        f"Auto: {auto}  Language: {session.speech.language}",
    ]
    latest = session.history.latest
    if latest is not None:
        lines.append(f"Last: {latest.letter} ({latest.confidence * 100:.0f}%)")
        lines.append(f"History: {session.history.formed_word()}")
    lines.append(HELP_LINE)
    return lines


async def _run_window(session: CaptureSession, camera: OpenCVCamera) -> None:
    from signspell.viz import SessionDisplay

    display = SessionDisplay()
    dispatcher = CommandDispatcher(session)
    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                image = await loop.run_in_executor(None, camera.read)
            except IOError as e:
                logger.warning(f"Preview read failed: {e}")
                await asyncio.sleep(0.5)
                continue

            outcome = session.last_outcome
            pose = outcome.pose if isinstance(outcome, Detected) else None
            key = display.update(image, pose, status_lines(session))
            if key != -1 and not dispatcher.dispatch(chr(key)):
                break
            await asyncio.sleep(0.03)
    finally:
        display.close()
        await dispatcher.drain()


async def _run_headless(session: CaptureSession) -> None:
    dispatcher = CommandDispatcher(session)
    loop = asyncio.get_running_loop()
    print(HELP_LINE)
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            command = line.rstrip("\n")[:1] or " "
            if not dispatcher.dispatch(command):
                break
            await asyncio.sleep(0)
            print(" | ".join(status_lines(session)[:3]))
    finally:
        await dispatcher.drain()


async def run_session(config: AppConfig, headless: bool = False, log_level: str = "INFO") -> int:
    """Run an interactive capture session until the user quits."""
    speech = create_speech(config.speech)
    classifier = create_classifier(config.classifier)
    camera = OpenCVCamera(config.camera_index, mirror=True)

    try:
        camera.open()
    except IOError as e:
        logger.error(str(e))
        classifier.close()
        return 1

    try:
        async with open_detector(config.detector, log_level) as bridge:
            session = CaptureSession(
                camera,
                bridge,
                classifier,
                config.capture,
                speech=speech,
                jpeg_quality=config.detector.jpeg_quality,
                on_result=_log_result,
            )
            ready = asyncio.get_running_loop().create_task(
                bridge.wait_ready(config.detector.ready_timeout_sec)
            )
            ready.add_done_callback(_report_ready)
            try:
                if headless:
                    await _run_headless(session)
                else:
                    await _run_window(session, camera)
            finally:
                ready.cancel()
                await session.close()
            logger.info(f"Final sentence: {session.sentence.text!r}")
    except RuntimeStartError as e:
        logger.error(str(e))
        return 1
    finally:
        camera.close()
        classifier.close()
        speech.close()
    return 0


async def detect_image(path: str, config: DetectorConfig, log_level: str = "INFO") -> Dict:
    """Detect landmarks in one image file.

    Returns:
        Dict with ``detected``, and ``landmarks``/``confidence``/``quality``
        when a hand was found.

    Raises:
        IOError: If the image cannot be read.
        RuntimeStartError: If the runtime cannot be started or never gets ready.
    """
    image = StaticImageSource.from_file(path).read()
    async with open_detector(config, log_level) as bridge:
        if not await bridge.wait_ready(config.ready_timeout_sec):
            raise RuntimeStartError(
                bridge.last_error or "Detection runtime did not become ready"
            )
        outcome = await bridge.detect(encode_image(image, config.jpeg_quality))

    if not isinstance(outcome, Detected):
        return {"detected": False, "reason": outcome.reason}
    return {
        "detected": True,
        "confidence": outcome.confidence,
        "quality": round(landmark_quality(outcome.pose), 3),
        "landmarks": outcome.pose.to_list(),
    }


def run_api_test(config: ClassifierConfig) -> Dict:
    """Classify the built-in sample pose (blocking)."""
    client = ClassificationClient(config)
    try:
        result = client.predict(sample_pose())
    finally:
        client.close()
    return {
        "letter": result.letter,
        "confidence": result.confidence,
        "error": result.error,
        "error_kind": result.error_kind.value if result.error_kind else None,
    }


def check_health(config: ClassifierConfig) -> bool:
    client = ClassificationClient(config)
    try:
        return client.health()
    finally:
        client.close()


__all__ = [
    "open_detector",
    "CommandDispatcher",
    "status_lines",
    "run_session",
    "detect_image",
    "run_api_test",
    "check_health",
]
