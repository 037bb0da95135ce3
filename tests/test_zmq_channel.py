"""Tests for the ZMQ PAIR message channel.

Skipped when pyzmq is not installed.
"""

import asyncio
import os

import pytest

zmq = pytest.importorskip("zmq")

from signspell.errors import ChannelClosedError  # noqa: E402
from signspell.ipc._util import check_zmq_available, generate_ipc_address  # noqa: E402
from signspell.ipc.zmq_channel import ZMQChannel  # noqa: E402


@pytest.fixture
def ipc_address():
    address, path = generate_ipc_address(prefix="signspell-test")
    yield address
    if os.path.exists(path):
        os.unlink(path)


class TestZMQChannel:
    """Tests for bind/connect pairs over ipc."""

    def test_round_trip(self, ipc_address):
        async def scenario():
            runtime = ZMQChannel()
            host = ZMQChannel()
            runtime.bind(ipc_address)
            host.connect(ipc_address)
            try:
                await runtime.send({"type": "ready"})
                ready = await asyncio.wait_for(host.recv(), 5.0)
                await host.send({"type": "detect", "id": "detect-1"})
                request = await asyncio.wait_for(runtime.recv(), 5.0)
                return ready, request
            finally:
                host.close()
                runtime.close()

        ready, request = asyncio.run(scenario())
        assert ready == {"type": "ready"}
        assert request == {"type": "detect", "id": "detect-1"}

    def test_closed_channel_raises(self, ipc_address):
        async def scenario():
            channel = ZMQChannel()
            channel.bind(ipc_address)
            channel.close()
            assert channel.is_closed
            with pytest.raises(ChannelClosedError):
                await channel.send({"type": "shutdown"})
            with pytest.raises(ChannelClosedError):
                await channel.recv()

        asyncio.run(scenario())

    def test_unattached_channel_raises(self):
        async def scenario():
            with pytest.raises(ChannelClosedError):
                await ZMQChannel().send({"type": "ready"})

        asyncio.run(scenario())

    def test_double_attach_rejected(self, ipc_address):
        channel = ZMQChannel()
        channel.bind(ipc_address)
        try:
            with pytest.raises(RuntimeError):
                channel.connect(ipc_address)
        finally:
            channel.close()

    def test_address(self, ipc_address):
        channel = ZMQChannel()
        channel.bind(ipc_address)
        try:
            assert channel.address == ipc_address
        finally:
            channel.close()


class TestIpcUtil:
    def test_zmq_available(self):
        assert check_zmq_available() is True

    def test_generate_ipc_address(self):
        address, path = generate_ipc_address()
        assert address == f"ipc://{path}"
        assert path.endswith(".sock")
        assert "signspell-" in os.path.basename(path)
