"""Embedded detection runtime.

The runtime is the far side of the detector bridge: it loads a hand
landmark backend, announces ``ready``, then answers every ``detect``
request with ``landmarks``, ``no_hand`` or ``error`` carrying the
request's id. ``shutdown`` stops it.

It runs either inline (an asyncio task behind a LocalChannel) or as a
subprocess bound to a ZMQ PAIR socket:

Usage:
    python -m signspell.detector.runtime --ipc-address ipc:///tmp/xxx.sock

Or via the CLI:
    signspell runtime --ipc-address ipc:///tmp/xxx.sock
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from signspell.detector.backends import (
    HandLandmarkBackend,
    available_backends,
    create_backend,
)
from signspell.errors import ChannelClosedError
from signspell.ipc.channel import Message, MessageChannel
from signspell.ipc.codec import decode_image, image_from_message
from signspell.landmarks import validate_landmarks

logger = logging.getLogger(__name__)


class DetectionRuntime:
    """Serves detection requests from one channel.

    Backend calls run on a dedicated single-thread executor; backends
    are not assumed to be thread-safe.

    Args:
        backend: Hand landmark backend (initialized by ``serve``).
    """

    def __init__(self, backend: HandLandmarkBackend):
        self._backend = backend
        self._executor: Optional[ThreadPoolExecutor] = None
        self._requests_served = 0

    @classmethod
    def from_backend_name(cls, name: str, **backend_kwargs: Any) -> "DetectionRuntime":
        return cls(create_backend(name, **backend_kwargs))

    @property
    def requests_served(self) -> int:
        return self._requests_served

    def handle_detect(self, message: Message) -> Message:
        """Answer one detect request (blocking)."""
        call_id = message.get("id")
        try:
            image = decode_image(image_from_message(message.get("image")))
            hands = self._backend.detect(image)
        except Exception as e:
            logger.error(f"Detection error: {e}")
            return {"type": "error", "id": call_id, "message": str(e)}

        if not hands:
            return {"type": "no_hand", "id": call_id}

        hand = hands[0]
        rows = hand.rows()
        if not validate_landmarks(rows):
            return {"type": "error", "id": call_id, "message": "Backend returned invalid landmarks"}
        return {
            "type": "landmarks",
            "id": call_id,
            "landmarks": rows,
            "confidence": float(hand.confidence),
        }

    async def serve(self, channel: MessageChannel) -> int:
        """Run the runtime main loop until shutdown or channel close.

        Returns:
            Exit code (0 for success, non-zero if the backend failed to load).
        """
        loop = asyncio.get_running_loop()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="detector")

        try:
            try:
                await loop.run_in_executor(self._executor, self._backend.initialize)
            except Exception as e:
                logger.error(f"Failed to initialize hand backend: {e}")
                await self._send(channel, {
                    "type": "error",
                    "message": f"Failed to initialize hand backend: {e}",
                })
                return 1

            logger.info("Detection runtime ready")
            if not await self._send(channel, {"type": "ready"}):
                return 0

            while True:
                try:
                    message = await channel.recv()
                except ChannelClosedError:
                    logger.info("Channel closed, stopping runtime")
                    break

                msg_type = message.get("type")

                if msg_type == "shutdown":
                    logger.info("Received shutdown signal")
                    break

                if msg_type == "detect":
                    reply = await loop.run_in_executor(
                        self._executor, self.handle_detect, message
                    )
                    self._requests_served += 1
                    if not await self._send(channel, reply):
                        break
                    continue

                logger.warning(f"Unknown message type: {msg_type}")
                if not await self._send(channel, {
                    "type": "error",
                    "id": message.get("id"),
                    "message": f"Unknown message type: {msg_type}",
                }):
                    break
        finally:
            try:
                await loop.run_in_executor(self._executor, self._backend.cleanup)
            except Exception as e:
                logger.error(f"Error during cleanup: {e}")
            self._executor.shutdown(wait=False)
            self._executor = None
            logger.info("Detection runtime shutdown complete")

        return 0

    @staticmethod
    async def _send(channel: MessageChannel, message: Message) -> bool:
        try:
            await channel.send(message)
            return True
        except ChannelClosedError:
            logger.info("Channel closed while sending")
            return False


def run_runtime(
    backend_name: str,
    ipc_address: str,
    backend_kwargs: Optional[Dict[str, Any]] = None,
) -> int:
    """Run a runtime bound to a ZMQ IPC address.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    import zmq
    from signspell.ipc.zmq_channel import ZMQChannel

    try:
        runtime = DetectionRuntime.from_backend_name(backend_name, **(backend_kwargs or {}))
    except (KeyError, TypeError) as e:
        logger.error(f"Failed to create backend '{backend_name}': {e}")
        return 1

    channel = ZMQChannel()
    try:
        channel.bind(ipc_address)
    except zmq.ZMQError as e:
        logger.error(f"Failed to bind to {ipc_address}: {e}")
        channel.close()
        return 1

    try:
        return asyncio.run(runtime.serve(channel))
    finally:
        channel.close()


def add_runtime_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--ipc-address",
        required=True,
        help="ZMQ IPC address to bind to (e.g., ipc:///tmp/runtime.sock)",
    )
    parser.add_argument(
        "--backend",
        default="mediapipe",
        help=f"Hand landmark backend, one of {', '.join(available_backends())} (default: mediapipe)",
    )
    parser.add_argument(
        "--backend-options",
        default="{}",
        help="JSON object of backend keyword arguments",
    )


def run_from_args(args: argparse.Namespace) -> int:
    try:
        backend_kwargs = json.loads(args.backend_options)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid --backend-options: {e}")
        return 2
    if not isinstance(backend_kwargs, dict):
        logger.error("--backend-options must be a JSON object")
        return 2
    return run_runtime(args.backend, args.ipc_address, backend_kwargs)


def main() -> int:
    """Main entry point for the runtime subprocess."""
    parser = argparse.ArgumentParser(
        description="signspell detection runtime subprocess",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_runtime_arguments(parser)
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    return run_from_args(args)


if __name__ == "__main__":
    sys.exit(main())
