"""ZMQ PAIR based message channel.

Provides the asynchronous, bidirectional transport between the host and
a detection runtime subprocess. Each instance owns its own zmq.Context
for process isolation safety.

Example:
    Runtime side (subprocess):
        >>> channel = ZMQChannel()
        >>> channel.bind("ipc:///tmp/signspell-runtime.sock")
        >>> await channel.send({"type": "ready"})

    Host side (main process):
        >>> channel = ZMQChannel()
        >>> channel.connect("ipc:///tmp/signspell-runtime.sock")
        >>> message = await channel.recv()

Requires: pyzmq
"""

import logging
from typing import Optional

import zmq
import zmq.asyncio

from signspell.errors import ChannelClosedError
from signspell.ipc.channel import Message, MessageChannel

logger = logging.getLogger(__name__)


class ZMQChannel(MessageChannel):
    """ZMQ PAIR socket message channel.

    One end binds, the other connects. Messages are JSON frames.

    Args:
        linger_ms: Socket linger time on close (milliseconds).
    """

    def __init__(self, linger_ms: int = 0):
        self._linger_ms = linger_ms
        self._context: Optional[zmq.asyncio.Context] = None
        self._socket: Optional[zmq.asyncio.Socket] = None
        self._address = ""
        self._closed = False

    def _open_socket(self) -> zmq.asyncio.Socket:
        if self._closed:
            raise ChannelClosedError("Channel is closed")
        if self._socket is not None:
            raise RuntimeError(f"Channel already attached to {self._address}")
        self._context = zmq.asyncio.Context()
        self._socket = self._context.socket(zmq.PAIR)
        self._socket.setsockopt(zmq.LINGER, self._linger_ms)
        return self._socket

    def bind(self, address: str) -> None:
        """Bind the PAIR socket to an address."""
        socket = self._open_socket()
        socket.bind(address)
        self._address = address
        logger.info(f"Channel bound to {address}")

    def connect(self, address: str) -> None:
        """Connect the PAIR socket to a bound address."""
        socket = self._open_socket()
        socket.connect(address)
        self._address = address
        logger.info(f"Channel connected to {address}")

    async def send(self, message: Message) -> None:
        if self._closed or self._socket is None:
            raise ChannelClosedError("Channel is closed")
        try:
            await self._socket.send_json(message)
        except zmq.ZMQError as e:
            raise ChannelClosedError(f"Send failed: {e}") from e

    async def recv(self) -> Message:
        if self._closed or self._socket is None:
            raise ChannelClosedError("Channel is closed")
        try:
            return await self._socket.recv_json()
        except zmq.ZMQError as e:
            raise ChannelClosedError(f"Receive failed: {e}") from e
        except ValueError as e:
            # Undecodable frame; surface it as a protocol error message
            logger.warning(f"Dropping undecodable message: {e}")
            return {"type": "error", "message": f"Undecodable message: {e}"}

    def close(self) -> None:
        """Close the socket and terminate the context."""
        if self._closed:
            return
        self._closed = True

        if self._socket is not None:
            try:
                self._socket.close(linger=self._linger_ms)
            except zmq.ZMQError as e:
                logger.debug(f"Error closing socket: {e}")
            self._socket = None

        if self._context is not None:
            try:
                self._context.term()
            except zmq.ZMQError as e:
                logger.debug(f"Error terminating context: {e}")
            self._context = None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def address(self) -> str:
        return self._address


__all__ = ["ZMQChannel"]
