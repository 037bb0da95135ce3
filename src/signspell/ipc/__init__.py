"""IPC between the host and the detection runtime.

- Channels: MessageChannel ABC, in-process LocalChannel (the ZMQ PAIR
  channel lives in signspell.ipc.zmq_channel and needs pyzmq)
- Correlated calls: PendingCall / CallSlot (single in-flight, timeout fallback)
- Codec: image encode/decode for JSON transmission
- Utilities: ZMQ availability check, IPC address generation
"""

from signspell.ipc.channel import Message, MessageChannel, LocalChannel
from signspell.ipc.correlated import PendingCall, CallSlot
from signspell.ipc.codec import (
    encode_image,
    decode_image,
    image_to_message,
    image_from_message,
)
from signspell.ipc._util import check_zmq_available, generate_ipc_address

__all__ = [
    # Channels
    "Message",
    "MessageChannel",
    "LocalChannel",
    # Correlated calls
    "PendingCall",
    "CallSlot",
    # Codec
    "encode_image",
    "decode_image",
    "image_to_message",
    "image_from_message",
    # Utilities
    "check_zmq_available",
    "generate_ipc_address",
]
