"""Cross-process bridge to the detection engine.

Each ``analyze`` call owns exactly one child process for its whole lifetime:

1. locate the engine and spawn it with the configured launcher,
2. feed the payload on stdin and close it,
3. drain stdout and stderr concurrently with the write,
4. race the child's completion against the deadline and an optional
   cancellation token; the first terminal event wins,
5. kill whatever is still running, then classify the outcome.

No queue, pool or coalescing happens here: concurrent calls spawn concurrent
engines, each with its own deadline.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import List, Optional, Sequence, Union

import psutil

from ..config.settings import Config
from ..core.entities import DetectionError, DetectionResult, ImagePayload
from ..core.exceptions import (
    AnalysisCancelledError, CodecError, EngineFailureError, EngineSpawnError,
    EngineTimeoutError, ImageRejectedError, ParseFailureError
)
from ..core.logging_config import CorrelationContext, get_correlation_id
from .engine_locator import EngineLocator
from .transport_codec import Transport, decode_response, encode_request

logger = logging.getLogger(__name__)

Deadline = Union[float, int, timedelta]

_READ_CHUNK = 64 * 1024


class CancellationToken:
    """Caller-side handle for abandoning an in-flight analysis.

    ``cancel()`` may be called from any thread, e.g. a tkinter button
    handler while the analysis runs on a worker thread's event loop. The
    token can be reused across event loops, one at a time: each
    ``asyncio.run`` gets a fresh event bound to its own loop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            loop, event = self._loop, self._event
        if event is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(event.set)
            except RuntimeError:
                # loop closed between the check and the call
                pass

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._loop is not loop:
                self._event = asyncio.Event()
                self._loop = loop
            event = self._event
            if self._cancelled:
                event.set()
        await event.wait()


def cancellation_requested(waiter: "asyncio.Task", token: CancellationToken) -> bool:
    """True when a finished ``token.wait()`` task really signals a cancel.

    A waiter that died with an exception is logged and does not count.
    """
    if waiter.cancelled():
        return False
    error = waiter.exception()
    if error is not None:
        logger.error(f"Cancellation watcher failed: {error!r}")
        return False
    return token.cancelled


class _OutputLimitExceeded(Exception):
    def __init__(self, stream: str, limit: int):
        super().__init__(f"Detection engine {stream} exceeded {limit} bytes")


class DetectionBridge:
    """Runs the detection engine as a short-lived child process."""

    def __init__(self, locator: EngineLocator,
                 launcher: Sequence[str] = ("java", "-jar"),
                 timeout_seconds: float = 30.0,
                 max_output_bytes: int = 10 * 1024 * 1024):
        self._locator = locator
        self._launcher: List[str] = list(launcher)
        self.timeout_seconds = float(timeout_seconds)
        self.max_output_bytes = max_output_bytes

    @classmethod
    def from_config(cls, config: Config) -> "DetectionBridge":
        return cls(
            locator=EngineLocator.from_config(config),
            launcher=config.engine_launcher,
            timeout_seconds=config.engine_timeout_seconds,
            max_output_bytes=config.engine_max_output_bytes,
        )

    @property
    def locator(self) -> EngineLocator:
        return self._locator

    def is_available(self) -> bool:
        """Whether an engine artifact exists at one of the candidate paths."""
        return self._locator.find() is not None

    async def analyze(self, payload: ImagePayload, deadline: Optional[Deadline] = None,
                      cancel_token: Optional[CancellationToken] = None) -> DetectionResult:
        """Analyze one image with a fresh engine process.

        Args:
            payload: Encoded image, written verbatim to the engine's stdin
            deadline: Wall-clock limit; defaults to the configured timeout
            cancel_token: Optional token to abandon the request early

        Returns:
            DetectionResult: Geometry exactly as decoded from the engine

        Raises:
            EngineNotFoundError: No candidate location holds the engine
            EngineSpawnError: The launcher could not be started
            EngineTimeoutError: The deadline elapsed first
            AnalysisCancelledError: The token was cancelled first
            EngineFailureError: Non-zero exit code
            ParseFailureError: Exit code 0 but undecodable stdout
            ImageRejectedError: The engine rejected the image (domain failure)
        """
        timeout = _to_seconds(deadline) if deadline is not None else self.timeout_seconds

        with CorrelationContext(get_correlation_id()):
            logger.info(f"Image analysis requested ({len(payload)} bytes, deadline {timeout:g}s)")

            engine_path = self._locator.locate()
            command = [*self._launcher, str(engine_path)]
            logger.debug(f"Engine command: {' '.join(command)}")

            exit_code, stdout, stderr = await self._run_engine(
                command, encode_request(payload, Transport.SUBPROCESS), timeout, cancel_token
            )
            logger.info(f"Engine exited with code {exit_code} (stdout {len(stdout)} chars)")

            return self._classify(exit_code, stdout, stderr)

    async def _run_engine(self, command: List[str], request: bytes, timeout: float,
                          cancel_token: Optional[CancellationToken]):
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start detection engine: {e}")
            raise EngineSpawnError(command, str(e)) from e

        logger.debug(f"Engine started with pid {process.pid}")
        stdout_buf = bytearray()
        stderr_buf = bytearray()

        writer = asyncio.create_task(self._feed_stdin(process, request))
        out_drain = asyncio.create_task(self._drain(process.stdout, stdout_buf, "stdout"))
        err_drain = asyncio.create_task(self._drain(process.stderr, stderr_buf, "stderr"))
        completion = asyncio.create_task(self._wait_exit(process, writer, out_drain, err_drain))
        cancel_waiter = asyncio.create_task(cancel_token.wait()) if cancel_token else None

        pending = [writer, out_drain, err_drain, completion, cancel_waiter]
        loop = asyncio.get_running_loop()
        expires_at = loop.time() + timeout
        try:
            waiters = {completion} if cancel_waiter is None else {completion, cancel_waiter}
            while True:
                remaining = max(expires_at - loop.time(), 0)
                done, _ = await asyncio.wait(waiters, timeout=remaining,
                                             return_when=asyncio.FIRST_COMPLETED)

                if completion in done:
                    try:
                        exit_code = completion.result()
                    except _OutputLimitExceeded as e:
                        logger.error(str(e))
                        raise EngineFailureError(None, message=str(e)) from e
                    break
                if cancel_waiter is not None and cancel_waiter in done:
                    if cancellation_requested(cancel_waiter, cancel_token):
                        logger.warning("Analysis cancelled, killing engine process")
                        raise AnalysisCancelledError()
                    waiters.discard(cancel_waiter)
                    continue
                logger.warning(f"Engine timed out after {timeout:g}s, killing process")
                raise EngineTimeoutError(timeout)
        finally:
            for task in pending:
                if task is not None and not task.done():
                    task.cancel()
            await _terminate(process)
            await asyncio.gather(*(t for t in pending if t is not None), return_exceptions=True)

        return (
            exit_code,
            stdout_buf.decode("utf-8", errors="replace"),
            stderr_buf.decode("utf-8", errors="replace"),
        )

    async def _feed_stdin(self, process: asyncio.subprocess.Process, request: bytes) -> None:
        try:
            process.stdin.write(request)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # engine exited without consuming its input; its exit code decides
            logger.debug("Engine closed stdin before the payload was fully written")
        finally:
            process.stdin.close()

    async def _drain(self, stream: asyncio.StreamReader, buffer: bytearray, name: str) -> None:
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            buffer.extend(chunk)
            if name == "stderr":
                for line in chunk.decode("utf-8", errors="replace").splitlines():
                    if line.strip():
                        logger.debug(f"engine stderr: {line}")
            if len(buffer) > self.max_output_bytes:
                raise _OutputLimitExceeded(name, self.max_output_bytes)

    async def _wait_exit(self, process, writer, out_drain, err_drain) -> int:
        await asyncio.gather(writer, out_drain, err_drain)
        return await process.wait()

    def _classify(self, exit_code: int, stdout: str, stderr: str) -> DetectionResult:
        if exit_code != 0:
            logger.error(f"Detection engine failed with exit code {exit_code}")
            if stderr:
                logger.error(f"Engine stderr: {stderr.strip()}")
            raise EngineFailureError(exit_code, stderr, stdout)

        try:
            outcome = decode_response(stdout.strip())
        except CodecError as e:
            logger.error(f"Could not parse engine output: {e}")
            raise ParseFailureError(raw=stdout, reason=str(e)) from e

        if isinstance(outcome, DetectionError):
            logger.info(f"Engine rejected the image: {outcome.error_code}")
            raise ImageRejectedError(outcome)

        logger.info(
            f"Pupil center=({outcome.pupil_center_x}, {outcome.pupil_center_y}) r={outcome.pupil_radius}; "
            f"iris center=({outcome.iris_center_x}, {outcome.iris_center_y}) r={outcome.iris_radius}"
        )
        return outcome


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill the engine and anything it spawned, then reap it."""
    if process.returncode is None:
        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []
        for child in children:
            try:
                child.kill()
            except psutil.NoSuchProcess:
                pass
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _to_seconds(deadline: Deadline) -> float:
    if isinstance(deadline, timedelta):
        return deadline.total_seconds()
    return float(deadline)
