"""Unit tests for DispatchAdapter routing and network error mapping."""
import asyncio
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from irisseg.config.settings import Config
from irisseg.core.context import AppContext
from irisseg.core.exceptions import (
    AnalysisCancelledError, EngineTimeoutError, ImageRejectedError, TransportFailureError
)
from irisseg.services.detection_bridge import CancellationToken
from irisseg.services.dispatch_adapter import DispatchAdapter, embedded_runtime_available


def _context(handler, **config_values) -> AppContext:
    config = Config(**{"runtime_mode": "detached", **config_values})
    return AppContext(
        config=config,
        http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestCapabilityProbe:
    """Test suite for the default capability probe."""

    def test_auto_follows_bridge_presence(self):
        bridge = Mock(is_available=Mock(return_value=True))
        assert embedded_runtime_available(AppContext(Config(), bridge=bridge)) is True
        assert embedded_runtime_available(AppContext(Config(), bridge=None)) is False

    def test_auto_without_installed_engine_is_detached(self):
        bridge = Mock(is_available=Mock(return_value=False))
        assert embedded_runtime_available(AppContext(Config(), bridge=bridge)) is False

    def test_auto_checks_engine_on_every_call(self, tmp_path):
        engine = tmp_path / "engine.jar"
        context = AppContext.create(Config(
            runtime_mode="auto",
            engine_base_dir=str(tmp_path),
            engine_candidates_dev=["engine.jar"],
            engine_candidates_prod=[],
        ))

        assert embedded_runtime_available(context) is False
        engine.write_bytes(b"PK")
        assert embedded_runtime_available(context) is True

    def test_detached_mode_ignores_bridge(self):
        context = AppContext(Config(runtime_mode="detached"), bridge=Mock())
        assert embedded_runtime_available(context) is False

    def test_embedded_mode_forces_bridge_route(self):
        context = AppContext(Config(runtime_mode="embedded"), bridge=None)
        assert embedded_runtime_available(context) is True


class TestEmbeddedRouting:
    """Requests delegated to the bridge channel."""

    @pytest.mark.asyncio
    async def test_delegates_to_bridge(self, sample_payload, sample_result):
        bridge = Mock()
        bridge.analyze = AsyncMock(return_value=sample_result)
        adapter = DispatchAdapter(AppContext(Config(), bridge=bridge))

        result = await adapter.process_image(sample_payload)

        assert result is sample_result
        bridge.analyze.assert_awaited_once_with(sample_payload, cancel_token=None)

    @pytest.mark.asyncio
    async def test_bridge_errors_propagate_unchanged(self, sample_payload):
        bridge = Mock()
        bridge.analyze = AsyncMock(side_effect=EngineTimeoutError(30.0))
        adapter = DispatchAdapter(AppContext(Config(), bridge=bridge))

        with pytest.raises(EngineTimeoutError):
            await adapter.process_image(sample_payload)

    @pytest.mark.asyncio
    async def test_auto_mode_falls_back_to_backend_when_engine_missing(self, tmp_path, sample_payload,
                                                                       success_body, sample_result):
        context = AppContext.create(Config(
            runtime_mode="auto",
            engine_base_dir=str(tmp_path),
            engine_resources_dir=str(tmp_path / "resources"),
        ))
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json=success_body)

        context.http_client_factory = lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))

        assert await DispatchAdapter(context).process_image(sample_payload) == sample_result
        assert urls == ["http://localhost:8080/api/process-base64"]

    @pytest.mark.asyncio
    async def test_forced_embedded_without_bridge(self, sample_payload):
        adapter = DispatchAdapter(AppContext(Config(runtime_mode="embedded")))

        with pytest.raises(TransportFailureError) as exc_info:
            await adapter.process_image(sample_payload)

        assert exc_info.value.hint

    @pytest.mark.asyncio
    async def test_probe_is_called_once_per_request(self, sample_payload, sample_result, success_body):
        bridge = Mock()
        bridge.analyze = AsyncMock(return_value=sample_result)
        context = _context(lambda request: httpx.Response(200, json=success_body))
        context.bridge = bridge
        probe = Mock(side_effect=[True, False, True])
        adapter = DispatchAdapter(context, probe=probe)

        for _ in range(3):
            await adapter.process_image(sample_payload)

        assert probe.call_count == 3
        probe.assert_called_with(context)
        assert bridge.analyze.await_count == 2


class TestDetachedRouting:
    """Requests sent to the detection server."""

    @pytest.mark.asyncio
    async def test_posts_network_encoding(self, sample_payload, success_body, sample_result):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=success_body)

        adapter = DispatchAdapter(_context(handler))

        result = await adapter.process_image(sample_payload)

        assert result == sample_result
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "http://localhost:8080/api/process-base64"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["accept"] == "application/json"
        assert json.loads(request.content) == {"imageData": sample_payload.as_text()}

    @pytest.mark.asyncio
    async def test_configured_base_url(self, sample_payload, success_body):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json=success_body)

        adapter = DispatchAdapter(_context(handler, api_base_url="http://engine.local:9000/"))

        await adapter.process_image(sample_payload)

        assert urls == ["http://engine.local:9000/api/process-base64"]

    @pytest.mark.asyncio
    async def test_rejection_over_network(self, sample_payload, not_an_eye_body):
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(200, json=not_an_eye_body)))

        with pytest.raises(ImageRejectedError) as exc_info:
            await adapter.process_image(sample_payload)

        assert exc_info.value.error_code == "NOT_AN_EYE"

    @pytest.mark.asyncio
    async def test_error_field_becomes_message(self, sample_payload):
        adapter = DispatchAdapter(_context(
            lambda r: httpx.Response(500, json={"error": "Engine crashed while loading image"})
        ))

        with pytest.raises(TransportFailureError) as exc_info:
            await adapter.process_image(sample_payload)

        assert exc_info.value.message == "Engine crashed while loading image"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_message_field_used_when_no_error_field(self, sample_payload):
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(
            400, json={"errorCode": "INVALID_IMAGE", "message": "Failed to decode image from base64 data"}
        )))

        with pytest.raises(TransportFailureError) as exc_info:
            await adapter.process_image(sample_payload)

        assert exc_info.value.message == "Failed to decode image from base64 data"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_status_line_without_error_body(self, sample_payload):
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(503, text="<html>down</html>")))

        with pytest.raises(TransportFailureError) as exc_info:
            await adapter.process_image(sample_payload)

        assert exc_info.value.message == "HTTP 503: Service Unavailable"

    @pytest.mark.asyncio
    async def test_malformed_success_body(self, sample_payload):
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(200, json={"pupilCenterX": 1})))

        with pytest.raises(TransportFailureError) as exc_info:
            await adapter.process_image(sample_payload)

        assert exc_info.value.message.startswith("Server returned invalid data")

    @pytest.mark.asyncio
    async def test_connection_refused(self, sample_payload):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        adapter = DispatchAdapter(_context(handler))

        with pytest.raises(TransportFailureError) as exc_info:
            await adapter.process_image(sample_payload)

        assert "Could not connect to the server" in exc_info.value.message
        assert "http://localhost:8080" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_read_timeout(self, sample_payload):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = DispatchAdapter(_context(handler))

        with pytest.raises(TransportFailureError):
            await adapter.process_image(sample_payload)

    @pytest.mark.asyncio
    async def test_cancel_token_abandons_request(self, sample_payload, success_body):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=success_body)

        adapter = DispatchAdapter(_context(handler))
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.1, token.cancel)

        with pytest.raises(AnalysisCancelledError):
            await adapter.process_image(sample_payload, cancel_token=token)


    @pytest.mark.asyncio
    async def test_malformed_base_url_is_transport_failure(self, sample_payload):
        context = AppContext(Config(runtime_mode="detached", api_base_url="http://[::1"))

        with pytest.raises(TransportFailureError) as exc_info:
            await DispatchAdapter(context).process_image(sample_payload)

        assert "InvalidURL" in exc_info.value.hint

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [httpx.DecodingError, httpx.TooManyRedirects])
    async def test_other_http_errors_are_transport_failures(self, sample_payload, error):
        def handler(request):
            raise error("broken response", request=request)

        with pytest.raises(TransportFailureError):
            await DispatchAdapter(_context(handler)).process_image(sample_payload)

    @pytest.mark.asyncio
    async def test_broken_cancel_watcher_does_not_cancel(self, sample_payload, success_body,
                                                         sample_result, monkeypatch):
        token = CancellationToken()

        async def broken_wait():
            raise RuntimeError("event bound to a different event loop")

        monkeypatch.setattr(token, "wait", broken_wait)
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(200, json=success_body)))

        assert await adapter.process_image(sample_payload, cancel_token=token) == sample_result

    def test_token_reused_across_event_loops(self, sample_payload, success_body, sample_result):
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(200, json=success_body)))
        token = CancellationToken()

        for _ in range(2):
            assert asyncio.run(adapter.process_image(sample_payload, cancel_token=token)) == sample_result

class TestHealthCheck:
    """Test suite for the liveness probe."""

    @pytest.mark.asyncio
    async def test_healthy_backend(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, text="OK")

        assert await DispatchAdapter(_context(handler)).check_health() is True
        assert paths == ["/api/health"]

    @pytest.mark.asyncio
    async def test_unhealthy_backend(self):
        adapter = DispatchAdapter(_context(lambda r: httpx.Response(500)))
        assert await adapter.check_health() is False

    @pytest.mark.asyncio
    async def test_malformed_base_url_is_unhealthy(self):
        context = AppContext(Config(runtime_mode="detached", api_base_url="http://[::1"))
        assert await DispatchAdapter(context).check_health() is False

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        assert await DispatchAdapter(_context(handler)).check_health() is False
