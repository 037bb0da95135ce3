"""Socket address helpers for the runtime subprocess."""

import importlib.util
import os
import tempfile
import uuid
from typing import Tuple


def check_zmq_available() -> bool:
    """True if pyzmq is importable in this interpreter."""
    return importlib.util.find_spec("zmq") is not None


def generate_ipc_address(prefix: str = "signspell") -> Tuple[str, str]:
    """Pick a fresh socket path in the temp directory.

    The file is not created; the runtime's bind creates it and the host
    unlinks it on stop.

    Returns:
        ``(address, path)``, e.g. ``("ipc:///tmp/signspell-4242-1f3a9c.sock",
        "/tmp/signspell-4242-1f3a9c.sock")``.
    """
    name = f"{prefix}-{os.getpid()}-{uuid.uuid4().hex[:12]}.sock"
    path = os.path.join(tempfile.gettempdir(), name)
    return f"ipc://{path}", path
