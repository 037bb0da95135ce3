"""Message channel abstraction.

A MessageChannel carries JSON-compatible dict messages between the host
and the detection runtime. Both ends are asynchronous; neither side may
assume the other is in the same process.

Example:
    >>> host, runtime = LocalChannel.pair()
    >>> await host.send({"type": "shutdown"})
    >>> await runtime.recv()
    {'type': 'shutdown'}
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from signspell.errors import ChannelClosedError

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


class MessageChannel(ABC):
    """One end of a bidirectional message channel."""

    @abstractmethod
    async def send(self, message: Message) -> None:
        """Send a message to the other end.

        Raises:
            ChannelClosedError: If the channel is closed.
        """
        ...

    @abstractmethod
    async def recv(self) -> Message:
        """Wait for the next message from the other end.

        Raises:
            ChannelClosedError: If the channel is (or becomes) closed.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Close this end. Idempotent."""
        ...

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        ...


_CLOSED = object()


class LocalChannel(MessageChannel):
    """In-process channel backed by asyncio queues.

    Messages are serialized to JSON on send and parsed on receive, so a
    local peer sees exactly what a remote one would. Closing either end
    wakes pending receivers on both ends.
    """

    def __init__(self):
        self._inbox: "asyncio.Queue[Any]" = asyncio.Queue()
        self._peer: Optional["LocalChannel"] = None
        self._closed = False

    @classmethod
    def pair(cls) -> Tuple["LocalChannel", "LocalChannel"]:
        """Create two connected channel ends."""
        a, b = cls(), cls()
        a._peer = b
        b._peer = a
        return a, b

    async def send(self, message: Message) -> None:
        if self._closed or self._peer is None or self._peer._closed:
            raise ChannelClosedError("Channel is closed")
        self._peer._inbox.put_nowait(json.dumps(message))

    async def recv(self) -> Message:
        if self._closed:
            raise ChannelClosedError("Channel is closed")
        item = await self._inbox.get()
        if item is _CLOSED:
            # Leave the marker for any other waiter
            self._inbox.put_nowait(_CLOSED)
            raise ChannelClosedError("Channel is closed")
        return json.loads(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_CLOSED)
        if self._peer is not None and not self._peer._closed:
            self._peer._inbox.put_nowait(_CLOSED)

    @property
    def is_closed(self) -> bool:
        return self._closed


__all__ = ["Message", "MessageChannel", "LocalChannel"]
