"""Runtime hosts for different isolation levels.

A host starts a DetectionRuntime and hands back the host end of the
message channel the DetectorBridge talks over:

- InlineRuntimeHost: same process, asyncio task behind a LocalChannel
- ProcessRuntimeHost: subprocess over a ZMQ PAIR socket on an IPC address

Example:
    >>> host = create_runtime_host(DetectorConfig(isolation="process"))
    >>> channel = await host.start()
    >>> bridge = DetectorBridge(channel)
    >>> ...
    >>> await host.stop()
"""

import asyncio
import json
import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from signspell.config import DetectorConfig
from signspell.detector.runtime import DetectionRuntime
from signspell.errors import ChannelClosedError, RuntimeStartError
from signspell.ipc import check_zmq_available, generate_ipc_address
from signspell.ipc.channel import LocalChannel, MessageChannel

logger = logging.getLogger(__name__)


@dataclass
class RuntimeInfo:
    """Public runtime status information for observability.

    Attributes:
        isolation: "inline" or "process".
        pid: Runtime process PID (0 = not yet started).
        address: Channel address ("" for inline).
    """
    isolation: str
    pid: int
    address: str


class RuntimeHost(ABC):
    """Abstract base class for runtime hosts."""

    @abstractmethod
    async def start(self) -> MessageChannel:
        """Start the runtime and return the host end of its channel.

        Raises:
            RuntimeStartError: If the runtime cannot be started.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Shut the runtime down and release resources. Idempotent."""
        ...

    @property
    @abstractmethod
    def is_running(self) -> bool:
        ...

    @property
    @abstractmethod
    def info(self) -> RuntimeInfo:
        ...

    async def __aenter__(self) -> MessageChannel:
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


async def _send_shutdown(channel: Optional[MessageChannel], timeout_sec: float) -> None:
    if channel is None or channel.is_closed:
        return
    try:
        await asyncio.wait_for(channel.send({"type": "shutdown"}), timeout_sec)
    except (ChannelClosedError, asyncio.TimeoutError) as e:
        logger.warning(f"Error during shutdown signal: {e!r}")


class InlineRuntimeHost(RuntimeHost):
    """Runs the runtime as a task on the current event loop.

    Args:
        runtime: The runtime to host.
        shutdown_timeout_sec: How long to wait for the runtime to exit.
    """

    def __init__(self, runtime: DetectionRuntime, shutdown_timeout_sec: float = 5.0):
        self._runtime = runtime
        self._shutdown_timeout_sec = shutdown_timeout_sec
        self._host_end: Optional[LocalChannel] = None
        self._runtime_end: Optional[LocalChannel] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> MessageChannel:
        if self._task is not None:
            raise RuntimeStartError("Inline runtime already started")
        self._host_end, self._runtime_end = LocalChannel.pair()
        self._task = asyncio.create_task(
            self._runtime.serve(self._runtime_end), name="signspell-runtime"
        )
        logger.info("Started inline detection runtime")
        return self._host_end

    async def stop(self) -> None:
        if self._task is None:
            return

        await _send_shutdown(self._host_end, self._shutdown_timeout_sec)
        try:
            await asyncio.wait_for(asyncio.shield(self._task), self._shutdown_timeout_sec)
        except asyncio.TimeoutError:
            logger.warning("Inline runtime did not stop, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self._host_end is not None:
            self._host_end.close()
        if self._runtime_end is not None:
            self._runtime_end.close()
        self._task = None
        self._host_end = None
        self._runtime_end = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def info(self) -> RuntimeInfo:
        return RuntimeInfo(isolation="inline", pid=os.getpid(), address="")


class ProcessRuntimeHost(RuntimeHost):
    """Runs the runtime in a subprocess connected over ZMQ.

    Args:
        backend: Backend name passed to the subprocess.
        backend_kwargs: Backend keyword arguments (JSON-serializable).
        python: Interpreter used to launch the runtime.
        log_level: Subprocess logging level.
        shutdown_timeout_sec: Grace period before the subprocess is killed.
    """

    def __init__(
        self,
        backend: str = "mediapipe",
        backend_kwargs: Optional[dict] = None,
        python: Optional[str] = None,
        log_level: str = "INFO",
        shutdown_timeout_sec: float = 5.0,
    ):
        self._backend = backend
        self._backend_kwargs = backend_kwargs or {}
        self._python = python or sys.executable
        self._log_level = log_level
        self._shutdown_timeout_sec = shutdown_timeout_sec

        self._process: Optional[subprocess.Popen] = None
        self._channel = None  # ZMQChannel
        self._ipc_address = ""
        self._ipc_file: Optional[str] = None

    def build_command(self, ipc_address: str) -> List[str]:
        return [
            self._python,
            "-m", "signspell.detector.runtime",
            "--backend", self._backend,
            "--backend-options", json.dumps(self._backend_kwargs),
            "--ipc-address", ipc_address,
            "--log-level", self._log_level,
        ]

    async def start(self) -> MessageChannel:
        if self._process is not None:
            raise RuntimeStartError("Runtime subprocess already started")

        from signspell.ipc.zmq_channel import ZMQChannel

        self._ipc_address, self._ipc_file = generate_ipc_address(prefix="signspell-runtime")
        cmd = self.build_command(self._ipc_address)
        logger.info(f"Starting runtime subprocess: {' '.join(cmd)}")

        try:
            self._process = subprocess.Popen(cmd)
        except OSError as e:
            self._cleanup_ipc()
            raise RuntimeStartError(f"Failed to start runtime subprocess: {e}") from e

        # ZMQ reconnects until the subprocess binds
        self._channel = ZMQChannel()
        try:
            self._channel.connect(self._ipc_address)
        except Exception as e:
            await self._terminate_process()
            self._cleanup_ipc()
            raise RuntimeStartError(f"Failed to connect to runtime: {e}") from e

        return self._channel

    async def stop(self) -> None:
        if self._process is None:
            return

        await _send_shutdown(self._channel, self._shutdown_timeout_sec)
        await self._terminate_process()
        self._cleanup_ipc()

    async def _terminate_process(self) -> None:
        process = self._process
        if process is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, process.wait, self._shutdown_timeout_sec)
        except subprocess.TimeoutExpired:
            logger.warning("Runtime process did not exit, terminating")
            process.terminate()
            try:
                await loop.run_in_executor(None, process.wait, self._shutdown_timeout_sec)
            except subprocess.TimeoutExpired:
                logger.warning("Runtime process did not terminate, killing")
                process.kill()
                await loop.run_in_executor(None, process.wait)
        finally:
            self._process = None

    def _cleanup_ipc(self) -> None:
        if self._channel is not None:
            self._channel.close()
            self._channel = None

        if self._ipc_file and os.path.exists(self._ipc_file):
            try:
                os.unlink(self._ipc_file)
            except OSError as e:
                logger.debug(f"Could not remove {self._ipc_file}: {e}")
        self._ipc_file = None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def info(self) -> RuntimeInfo:
        pid = self._process.pid if self._process is not None else 0
        return RuntimeInfo(isolation="process", pid=pid, address=self._ipc_address)


def create_runtime_host(config: DetectorConfig, log_level: str = "INFO") -> RuntimeHost:
    """Create a runtime host for the configured isolation level.

    Falls back to inline hosting when pyzmq is unavailable.
    """
    if config.isolation == "process":
        if check_zmq_available():
            return ProcessRuntimeHost(
                backend=config.backend,
                backend_kwargs=config.backend_kwargs(),
                log_level=log_level,
            )
        logger.warning("pyzmq not available, falling back to inline runtime")

    runtime = DetectionRuntime.from_backend_name(config.backend, **config.backend_kwargs())
    return InlineRuntimeHost(runtime)


__all__ = [
    "RuntimeInfo",
    "RuntimeHost",
    "InlineRuntimeHost",
    "ProcessRuntimeHost",
    "create_runtime_host",
]
