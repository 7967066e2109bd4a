"""Unit tests for DetectionBridge.

Every test runs a real child process: a tiny Python script standing in for
the detection engine.
"""
import asyncio
import json
import sys
import threading
import time
from datetime import timedelta

import psutil
import pytest

from irisseg.config.settings import Config
from irisseg.core.entities import DetectionResult, ImagePayload
from irisseg.core.exceptions import (
    AnalysisCancelledError, EngineFailureError, EngineNotFoundError, EngineSpawnError,
    EngineTimeoutError, ImageRejectedError, ParseFailureError
)
from irisseg.services.detection_bridge import CancellationToken, DetectionBridge
from irisseg.services.engine_locator import EngineLocator

SLEEPING_ENGINE = """
    import time
    time.sleep(60)
"""


def _child_pids():
    return {p.pid for p in psutil.Process().children(recursive=True)}


class TestDetectionBridgeOutcomes:
    """Exit code and output classification."""

    @pytest.mark.asyncio
    async def test_success_returns_decoded_values(self, fake_bridge, engine_printing,
                                                  success_body, sample_payload, sample_result):
        bridge = fake_bridge(engine_printing(success_body))

        result = await bridge.analyze(sample_payload)

        assert result == sample_result

    @pytest.mark.asyncio
    async def test_payload_written_verbatim_and_stdin_closed(self, fake_bridge, tmp_path,
                                                             success_body, sample_payload):
        capture = tmp_path / "stdin.bin"
        bridge = fake_bridge(f"""
            import pathlib, sys
            data = sys.stdin.buffer.read()
            pathlib.Path({str(capture)!r}).write_bytes(data)
            sys.stdout.write({json.dumps(json.dumps(success_body))})
        """)

        await bridge.analyze(sample_payload)

        assert capture.read_bytes() == sample_payload.data

    @pytest.mark.asyncio
    async def test_not_an_eye_is_domain_rejection(self, fake_bridge, engine_printing,
                                                  not_an_eye_body, sample_payload):
        bridge = fake_bridge(engine_printing(not_an_eye_body))

        with pytest.raises(ImageRejectedError) as exc_info:
            await bridge.analyze(sample_payload)

        error = exc_info.value
        assert error.is_domain_rejection is True
        assert error.error_code == "NOT_AN_EYE"
        assert error.message == "no iris detected"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_engine_failure_even_with_valid_stdout(
            self, fake_bridge, success_body, sample_payload):
        bridge = fake_bridge(f"""
            import sys
            sys.stdin.buffer.read()
            sys.stdout.write({json.dumps(json.dumps(success_body))})
            sys.stderr.write("Exception in thread main")
            sys.exit(3)
        """)

        with pytest.raises(EngineFailureError) as exc_info:
            await bridge.analyze(sample_payload)

        error = exc_info.value
        assert error.exit_code == 3
        assert "Exception in thread main" in error.stderr
        assert "pupilCenterX" in error.stdout
        assert error.is_domain_rejection is False

    @pytest.mark.asyncio
    async def test_undecodable_stdout_is_parse_failure(self, fake_bridge, sample_payload):
        bridge = fake_bridge("""
            import sys
            sys.stdin.buffer.read()
            print("Loading OpenCV native library...")
        """)

        with pytest.raises(ParseFailureError) as exc_info:
            await bridge.analyze(sample_payload)

        assert "Loading OpenCV native library..." in exc_info.value.raw

    @pytest.mark.asyncio
    async def test_partial_result_is_parse_failure(self, fake_bridge, engine_printing, sample_payload):
        bridge = fake_bridge(engine_printing({"pupilCenterX": 1, "pupilCenterY": 2}))

        with pytest.raises(ParseFailureError):
            await bridge.analyze(sample_payload)

    @pytest.mark.asyncio
    async def test_engine_may_exit_without_reading_stdin(self, fake_bridge, success_body):
        bridge = fake_bridge(f"""
            import sys
            sys.stdout.write({json.dumps(json.dumps(success_body))})
        """)
        payload = ImagePayload(b"A" * (2 * 1024 * 1024))

        result = await bridge.analyze(payload)

        assert isinstance(result, DetectionResult)


class TestDetectionBridgeProcessLifecycle:
    """Deadlines, cancellation and process cleanup."""

    @pytest.mark.asyncio
    async def test_deadline_kills_engine(self, fake_bridge, sample_payload):
        bridge = fake_bridge(SLEEPING_ENGINE)
        before = _child_pids()

        started = time.monotonic()
        with pytest.raises(EngineTimeoutError) as exc_info:
            await bridge.analyze(sample_payload, deadline=0.5)
        elapsed = time.monotonic() - started

        assert exc_info.value.kind == "Timeout"
        assert exc_info.value.timeout_seconds == 0.5
        assert elapsed < 10
        assert _child_pids() - before == set()

    @pytest.mark.asyncio
    async def test_configured_timeout_applies_without_deadline(self, fake_bridge, sample_payload):
        bridge = fake_bridge(SLEEPING_ENGINE, timeout_seconds=0.5)

        with pytest.raises(EngineTimeoutError):
            await bridge.analyze(sample_payload)

    @pytest.mark.asyncio
    async def test_deadline_accepts_timedelta(self, fake_bridge, sample_payload):
        bridge = fake_bridge(SLEEPING_ENGINE)

        with pytest.raises(EngineTimeoutError) as exc_info:
            await bridge.analyze(sample_payload, deadline=timedelta(milliseconds=500))

        assert exc_info.value.timeout_seconds == 0.5

    def test_default_timeout_is_thirty_seconds(self):
        assert Config().engine_timeout_seconds == 30.0
        assert DetectionBridge.from_config(Config()).timeout_seconds == 30.0

    @pytest.mark.asyncio
    async def test_chatty_stderr_before_reading_stdin_does_not_stall(self, fake_bridge, success_body):
        bridge = fake_bridge(f"""
            import sys
            sys.stderr.write("w" * 512 * 1024)
            sys.stderr.flush()
            sys.stdin.buffer.read()
            sys.stdout.write({json.dumps(json.dumps(success_body))})
        """, timeout_seconds=20)
        payload = ImagePayload(b"B" * (4 * 1024 * 1024))

        result = await bridge.analyze(payload)

        assert result.iris_radius == 60

    @pytest.mark.asyncio
    async def test_cancel_token_kills_engine(self, fake_bridge, sample_payload):
        bridge = fake_bridge(SLEEPING_ENGINE)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.3, token.cancel)
        before = _child_pids()

        with pytest.raises(AnalysisCancelledError):
            await bridge.analyze(sample_payload, cancel_token=token)

        assert token.cancelled is True
        assert _child_pids() - before == set()

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self, fake_bridge, sample_payload):
        bridge = fake_bridge(SLEEPING_ENGINE)
        token = CancellationToken()
        timer = threading.Timer(0.3, token.cancel)
        timer.start()

        try:
            with pytest.raises(AnalysisCancelledError):
                await bridge.analyze(sample_payload, cancel_token=token)
        finally:
            timer.cancel()

    def test_token_reused_across_event_loops(self, fake_bridge, engine_printing, success_body,
                                             sample_payload, sample_result):
        bridge = fake_bridge(engine_printing(success_body))
        token = CancellationToken()

        first = asyncio.run(bridge.analyze(sample_payload, cancel_token=token))
        second = asyncio.run(bridge.analyze(sample_payload, cancel_token=token))

        assert first == second == sample_result
        assert token.cancelled is False

    def test_reused_token_still_cancels_on_new_loop(self, fake_bridge, engine_printing, success_body,
                                                    sample_payload):
        token = CancellationToken()
        asyncio.run(fake_bridge(engine_printing(success_body)).analyze(sample_payload, cancel_token=token))

        sleeper = fake_bridge(SLEEPING_ENGINE)
        timer = threading.Timer(0.3, token.cancel)
        timer.start()
        try:
            with pytest.raises(AnalysisCancelledError):
                asyncio.run(sleeper.analyze(sample_payload, cancel_token=token))
        finally:
            timer.cancel()

    @pytest.mark.asyncio
    async def test_broken_cancel_watcher_does_not_cancel(self, fake_bridge, engine_printing, success_body,
                                                         sample_payload, sample_result, monkeypatch):
        bridge = fake_bridge(engine_printing(success_body))
        token = CancellationToken()

        async def broken_wait():
            raise RuntimeError("event bound to a different event loop")

        monkeypatch.setattr(token, "wait", broken_wait)

        assert await bridge.analyze(sample_payload, cancel_token=token) == sample_result

    @pytest.mark.asyncio
    async def test_output_limit_kills_engine(self, fake_bridge, sample_payload):
        bridge = fake_bridge("""
            import sys, time
            sys.stdout.write("x" * 100000)
            sys.stdout.flush()
            time.sleep(60)
        """, max_output_bytes=1024)

        with pytest.raises(EngineFailureError) as exc_info:
            await bridge.analyze(sample_payload)

        assert exc_info.value.exit_code is None
        assert "1024" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_concurrent_requests_spawn_independent_engines(self, fake_bridge, engine_printing,
                                                                 success_body, sample_result):
        bridge = fake_bridge(engine_printing(success_body))

        results = await asyncio.gather(*(
            bridge.analyze(ImagePayload(f"payload-{i}".encode())) for i in range(4)
        ))

        assert results == [sample_result] * 4


class TestDetectionBridgeSetupFailures:
    """Locator and launcher failures."""

    @pytest.mark.asyncio
    async def test_missing_engine(self, tmp_path, sample_payload):
        bridge = DetectionBridge(EngineLocator([tmp_path / "nope.jar"]), launcher=[sys.executable])

        with pytest.raises(EngineNotFoundError) as exc_info:
            await bridge.analyze(sample_payload)

        assert exc_info.value.checked_paths == [str(tmp_path / "nope.jar")]

    @pytest.mark.asyncio
    async def test_missing_launcher_is_spawn_error(self, engine_script, tmp_path, sample_payload):
        script = engine_script(SLEEPING_ENGINE)
        bridge = DetectionBridge(EngineLocator([script]), launcher=[str(tmp_path / "no-such-runtime")])

        with pytest.raises(EngineSpawnError) as exc_info:
            await bridge.analyze(sample_payload)

        assert exc_info.value.exit_code is None
        assert exc_info.value.kind == "EngineFailure"

    def test_is_available_reflects_installed_engine(self, engine_script, tmp_path):
        script = engine_script(SLEEPING_ENGINE)

        assert DetectionBridge(EngineLocator([tmp_path / "nope.jar", script])).is_available() is True
        assert DetectionBridge(EngineLocator([tmp_path / "nope.jar"])).is_available() is False
