"""Detector bridge: host side of the detection runtime protocol.

The bridge turns the runtime's fire-and-forget message exchange into a
single awaitable call. At most one detection is in flight; its reply is
matched by correlation id, and a call that gets no reply resolves as
NoHand once the timeout elapses.

Protocol (JSON messages):
    runtime -> host  {"type": "ready"}
    host -> runtime  {"type": "detect", "id": ..., "image": {...}}
    runtime -> host  {"type": "landmarks", "id": ..., "landmarks": [...], "confidence": ...}
    runtime -> host  {"type": "no_hand", "id": ...}
    runtime -> host  {"type": "error", "id"?: ..., "message": ...}
    host -> runtime  {"type": "shutdown"}

Example:
    >>> async with DetectorBridge(channel, timeout_sec=15.0) as bridge:
    ...     await bridge.wait_ready(60.0)
    ...     outcome = await bridge.detect(encode_image(frame))
    ...     if outcome.detected:
    ...         print(outcome.pose[HandLandmarkIndex.WRIST])
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from signspell.errors import (
    ChannelClosedError,
    DetectorBusyError,
    MalformedPoseError,
    NotReadyError,
)
from signspell.ipc.channel import Message, MessageChannel
from signspell.ipc.codec import image_to_message
from signspell.ipc.correlated import CallSlot
from signspell.types import (
    NO_HAND,
    Detected,
    DetectionOutcome,
    EncodedImage,
    HandPose,
    NoHand,
)

logger = logging.getLogger(__name__)


def parse_landmarks(raw: Any) -> HandPose:
    """Parse a ``landmarks`` payload into a HandPose.

    Accepts ``[[x, y, z], ...]`` rows or ``[{"x":..}, ...]`` dicts.

    Raises:
        MalformedPoseError: If the payload is not a valid 21-point pose.
    """
    if not isinstance(raw, list):
        raise MalformedPoseError(f"Landmarks must be a list, got {type(raw).__name__}")
    if raw and isinstance(raw[0], dict):
        return HandPose.from_dicts(raw)
    return HandPose.from_list(raw)


def _parse_confidence(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0.0
    return float(raw)


class DetectorBridge:
    """Correlated, single-in-flight, timeout-bounded detection calls.

    Args:
        channel: Host end of the runtime channel.
        timeout_sec: Wait per detection before resolving NoHand.
        on_ready: Called once when the runtime reports ready.
        on_error: Called with the message of every runtime error.
    """

    def __init__(
        self,
        channel: MessageChannel,
        timeout_sec: float = 15.0,
        on_ready: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        self._channel = channel
        self._timeout_sec = timeout_sec
        self._on_ready = on_ready
        self._on_error = on_error

        self._slot: CallSlot[DetectionOutcome] = CallSlot(
            prefix="detect", busy_error=DetectorBusyError
        )
        self._ready = asyncio.Event()
        self._listener: Optional[asyncio.Task] = None
        self._last_error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_busy(self) -> bool:
        return self._slot.is_busy

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def timeout_sec(self) -> float:
        return self._timeout_sec

    async def start(self) -> None:
        """Start listening for runtime messages."""
        if self._listener is not None:
            return
        self._listener = asyncio.create_task(self._listen(), name="signspell-bridge")

    async def stop(self) -> None:
        """Stop listening; a pending detection resolves NoHand."""
        self._slot.resolve_pending(NoHand(reason="bridge stopped"))
        self._ready.clear()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

    async def __aenter__(self) -> "DetectorBridge":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def wait_ready(self, timeout_sec: Optional[float] = None) -> bool:
        """Wait for the runtime's ready notification.

        Returns:
            True if ready, False on timeout.
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout_sec)
            return True
        except asyncio.TimeoutError:
            return False

    async def detect(self, image: EncodedImage) -> DetectionOutcome:
        """Request landmarks for one image.

        Never raises for runtime failures: timeouts, runtime errors and
        malformed replies all resolve NoHand.

        Raises:
            NotReadyError: If the runtime has not reported ready.
            DetectorBusyError: If another detection is in flight.
        """
        if not self.is_ready:
            raise NotReadyError("Detection runtime is not ready")

        call = self._slot.open()
        try:
            await self._channel.send({
                "type": "detect",
                "id": call.call_id,
                "image": image_to_message(image),
            })
        except ChannelClosedError as e:
            logger.warning(f"Could not send detect request: {e}")
            call.resolve(NoHand(reason="channel closed"))

        return await self._slot.wait(
            call, self._timeout_sec, NoHand(reason="timeout")
        )

    def handle_message(self, message: Message) -> None:
        """Dispatch one runtime message."""
        msg_type = message.get("type")

        if msg_type == "ready":
            if not self._ready.is_set():
                logger.info("Detection runtime ready")
                self._ready.set()
                self._notify(self._on_ready)
            return

        if msg_type == "landmarks":
            call_id = message.get("id")
            try:
                pose = parse_landmarks(message.get("landmarks"))
            except MalformedPoseError as e:
                logger.warning(f"Malformed landmarks for {call_id}: {e}")
                self._slot.resolve(call_id, NoHand(reason="malformed landmarks"))
                return
            confidence = _parse_confidence(message.get("confidence"))
            self._slot.resolve(call_id, Detected(pose=pose, confidence=confidence))
            return

        if msg_type == "no_hand":
            self._slot.resolve(message.get("id"), NO_HAND)
            return

        if msg_type == "error":
            error_message = str(message.get("message", "unknown runtime error"))
            self._last_error = error_message
            logger.warning(f"Detection runtime error: {error_message}")
            self._notify(self._on_error, error_message)
            outcome = NoHand(reason=f"runtime error: {error_message}")
            if message.get("id") is not None:
                self._slot.resolve(message["id"], outcome)
            else:
                self._slot.resolve_pending(outcome)
            return

        logger.debug(f"Ignoring unknown message type: {msg_type}")

    async def _listen(self) -> None:
        while True:
            try:
                message = await self._channel.recv()
            except ChannelClosedError:
                logger.warning("Detection runtime channel closed")
                self._ready.clear()
                self._slot.resolve_pending(NoHand(reason="channel closed"))
                return
            if not isinstance(message, dict):
                logger.warning(f"Ignoring non-object message: {message!r}")
                continue
            self.handle_message(message)

    @staticmethod
    def _notify(callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Bridge callback failed")


__all__ = ["DetectorBridge", "parse_landmarks"]
