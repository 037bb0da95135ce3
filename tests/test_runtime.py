"""Tests for the detection runtime and its hosts."""

import argparse
import asyncio
import subprocess
import sys

import numpy as np
import pytest

from signspell.config import DetectorConfig
from signspell.detector.backends import (
    available_backends,
    create_backend,
    register_backend,
)
from signspell.detector.backends.base import DetectedHand
from signspell.detector.launcher import (
    InlineRuntimeHost,
    ProcessRuntimeHost,
    create_runtime_host,
)
from signspell.detector.runtime import DetectionRuntime, add_runtime_arguments
from signspell.ipc.channel import LocalChannel
from signspell.ipc.codec import encode_image, image_to_message
from signspell.landmarks import SAMPLE_POSE_ROWS

from conftest import FakeBackend


def detect_message(image, call_id="detect-1"):
    return {"type": "detect", "id": call_id, "image": image_to_message(encode_image(image))}


# =============================================================================
# DetectionRuntime.handle_detect
# =============================================================================


class TestHandleDetect:
    """Tests for answering a single detect request."""

    def test_landmarks_reply(self, test_image, hand_landmarks):
        runtime = DetectionRuntime(FakeBackend([[hand_landmarks]]))
        reply = runtime.handle_detect(detect_message(test_image))

        assert reply["type"] == "landmarks"
        assert reply["id"] == "detect-1"
        assert reply["confidence"] == pytest.approx(0.93)
        assert set(reply) == {"type", "id", "landmarks", "confidence"}
        assert len(reply["landmarks"]) == 21
        np.testing.assert_allclose(reply["landmarks"], SAMPLE_POSE_ROWS, atol=1e-6)

    def test_first_hand_only(self, test_image, hand_landmarks):
        other = DetectedHand(landmarks=hand_landmarks.landmarks + 0.1, confidence=0.5)
        runtime = DetectionRuntime(FakeBackend([[hand_landmarks, other]]))
        reply = runtime.handle_detect(detect_message(test_image))
        assert reply["confidence"] == pytest.approx(0.93)
        np.testing.assert_allclose(reply["landmarks"], SAMPLE_POSE_ROWS, atol=1e-6)

    def test_invalid_backend_landmarks_reply_error(self, test_image):
        """Test that NaN or short landmark arrays never reach the host as landmarks."""
        rows = np.array(SAMPLE_POSE_ROWS, dtype=np.float32)
        with_nan = rows.copy()
        with_nan[3, 1] = np.nan
        runtime = DetectionRuntime(FakeBackend([
            [DetectedHand(landmarks=with_nan, confidence=0.9)],
            [DetectedHand(landmarks=rows[:20], confidence=0.9)],
        ]))

        for _ in range(2):
            reply = runtime.handle_detect(detect_message(test_image))
            assert reply["type"] == "error"
            assert reply["id"] == "detect-1"

    def test_no_hand_reply(self, test_image):
        runtime = DetectionRuntime(FakeBackend([[]]))
        reply = runtime.handle_detect(detect_message(test_image, "detect-7"))
        assert reply == {"type": "no_hand", "id": "detect-7"}

    def test_backend_error_reply(self, test_image):
        runtime = DetectionRuntime(FakeBackend([RuntimeError("graph failed")]))
        reply = runtime.handle_detect(detect_message(test_image))
        assert reply == {"type": "error", "id": "detect-1", "message": "graph failed"}

    def test_bad_image_reply(self):
        backend = FakeBackend()
        runtime = DetectionRuntime(backend)
        reply = runtime.handle_detect({"type": "detect", "id": "detect-2", "image": {}})
        assert reply["type"] == "error"
        assert reply["id"] == "detect-2"
        assert backend.calls == 0


# =============================================================================
# DetectionRuntime.serve
# =============================================================================


class TestServe:
    """Tests for the runtime main loop over a LocalChannel."""

    def test_ready_detect_shutdown(self, test_image, hand_landmarks):
        backend = FakeBackend([[hand_landmarks], []])
        runtime = DetectionRuntime(backend)

        async def scenario():
            host, runtime_end = LocalChannel.pair()
            task = asyncio.ensure_future(runtime.serve(runtime_end))

            ready = await host.recv()
            await host.send(detect_message(test_image, "detect-1"))
            first = await host.recv()
            await host.send(detect_message(test_image, "detect-2"))
            second = await host.recv()
            await host.send({"type": "shutdown"})
            code = await asyncio.wait_for(task, 5.0)
            return ready, first, second, code

        ready, first, second, code = asyncio.run(scenario())
        assert ready == {"type": "ready"}
        assert first["type"] == "landmarks"
        assert second == {"type": "no_hand", "id": "detect-2"}
        assert code == 0
        assert backend.initialized and backend.cleaned_up
        assert runtime.requests_served == 2

    def test_init_failure_reports_error(self):
        backend = FakeBackend(fail_init=True)
        runtime = DetectionRuntime(backend)

        async def scenario():
            host, runtime_end = LocalChannel.pair()
            code = await runtime.serve(runtime_end)
            return code, await host.recv()

        code, message = asyncio.run(scenario())
        assert code == 1
        assert message["type"] == "error"
        assert "model file missing" in message["message"]
        assert "id" not in message

    def test_unknown_message_type(self):
        runtime = DetectionRuntime(FakeBackend())

        async def scenario():
            host, runtime_end = LocalChannel.pair()
            task = asyncio.ensure_future(runtime.serve(runtime_end))
            await host.recv()
            await host.send({"type": "ping", "id": "x-1"})
            reply = await host.recv()
            await host.send({"type": "shutdown"})
            await task
            return reply

        reply = asyncio.run(scenario())
        assert reply["type"] == "error"
        assert reply["id"] == "x-1"
        assert "ping" in reply["message"]

    def test_channel_close_stops_runtime(self):
        backend = FakeBackend()
        runtime = DetectionRuntime(backend)

        async def scenario():
            host, runtime_end = LocalChannel.pair()
            task = asyncio.ensure_future(runtime.serve(runtime_end))
            await host.recv()
            host.close()
            return await asyncio.wait_for(task, 5.0)

        assert asyncio.run(scenario()) == 0
        assert backend.cleaned_up


# =============================================================================
# Hosts and backend registry
# =============================================================================


class TestInlineRuntimeHost:
    def test_start_stop(self):
        backend = FakeBackend()
        host = InlineRuntimeHost(DetectionRuntime(backend))

        async def scenario():
            channel = await host.start()
            ready = await channel.recv()
            running = host.is_running
            await host.stop()
            return ready, running, host.is_running

        ready, running, after = asyncio.run(scenario())
        assert ready == {"type": "ready"}
        assert running is True
        assert after is False
        assert backend.cleaned_up
        assert host.info.isolation == "inline"

    def test_stop_idempotent(self):
        host = InlineRuntimeHost(DetectionRuntime(FakeBackend()))

        async def scenario():
            await host.stop()
            async with host as channel:
                await channel.recv()
            await host.stop()

        asyncio.run(scenario())


class TestProcessRuntimeHost:
    def test_build_command(self):
        host = ProcessRuntimeHost(
            backend="mediapipe",
            backend_kwargs={"min_detection_confidence": 0.7},
            log_level="DEBUG",
        )
        cmd = host.build_command("ipc:///tmp/x.sock")
        assert cmd[0] == sys.executable
        assert cmd[1:3] == ["-m", "signspell.detector.runtime"]
        assert cmd[cmd.index("--ipc-address") + 1] == "ipc:///tmp/x.sock"
        assert cmd[cmd.index("--backend-options") + 1] == '{"min_detection_confidence": 0.7}'
        assert cmd[cmd.index("--log-level") + 1] == "DEBUG"

    def test_info_before_start(self):
        host = ProcessRuntimeHost()
        assert host.is_running is False
        assert host.info.pid == 0


class TestCreateRuntimeHost:
    def test_inline(self):
        register_backend("fake", lambda **kwargs: FakeBackend())
        host = create_runtime_host(DetectorConfig(isolation="inline", backend="fake"))
        assert isinstance(host, InlineRuntimeHost)

    def test_process(self):
        pytest.importorskip("zmq")
        host = create_runtime_host(DetectorConfig(isolation="process"))
        assert isinstance(host, ProcessRuntimeHost)

    def test_process_falls_back_without_zmq(self, monkeypatch):
        register_backend("fake", lambda **kwargs: FakeBackend())
        monkeypatch.setattr(
            "signspell.detector.launcher.check_zmq_available", lambda: False
        )
        host = create_runtime_host(DetectorConfig(isolation="process", backend="fake"))
        assert isinstance(host, InlineRuntimeHost)

    def test_launcher_imports_without_zmq(self):
        """Test that the launcher module loads when pyzmq cannot be imported."""
        code = (
            "import sys; sys.modules['zmq'] = None; "
            "import signspell.detector.launcher as launcher; "
            "assert launcher.check_zmq_available() is False"
        )
        completed = subprocess.run([sys.executable, "-c", code], capture_output=True, text=True)
        assert completed.returncode == 0, completed.stderr

    def test_unknown_backend(self):
        with pytest.raises(KeyError):
            create_backend("does-not-exist")

    def test_mediapipe_registered(self):
        assert "mediapipe" in available_backends()

    def test_runtime_help_lists_backends(self):
        register_backend("fake", lambda **kwargs: FakeBackend())
        parser = argparse.ArgumentParser()
        add_runtime_arguments(parser)
        help_text = parser.format_help()
        assert "fake" in help_text
        assert "mediapipe" in help_text
