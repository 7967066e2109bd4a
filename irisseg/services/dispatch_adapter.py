"""Single entry point for image analysis, whatever the deployment.

``DispatchAdapter.process_image`` asks an injected capability probe, once per
call, whether the embedded engine bridge is usable. If it is, the request
goes through the bridge; otherwise it is POSTed to the detection backend.
Both routes raise the same ``AnalysisError`` taxonomy, so callers never need
to know which one served them.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from ..core.constants import HEALTH_ENDPOINT, PROCESS_ENDPOINT
from ..core.context import AppContext
from ..core.entities import DetectionError, DetectionResult, ImagePayload
from ..core.exceptions import (
    AnalysisCancelledError, CodecError, ImageRejectedError, TransportFailureError
)
from ..core.logging_config import CorrelationContext
from .detection_bridge import CancellationToken, cancellation_requested
from .transport_codec import Transport, decode_response, encode_request

logger = logging.getLogger(__name__)

CapabilityProbe = Callable[[AppContext], bool]
T = TypeVar("T")

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def embedded_runtime_available(context: AppContext) -> bool:
    """Default probe: use the bridge when the context exposes one.

    ``runtime_mode`` can force either route. In ``auto`` the bridge must also
    find an installed engine, otherwise the request goes to the backend.
    """
    mode = context.config.runtime_mode
    if mode == "detached":
        return False
    if mode == "embedded":
        return True
    bridge = context.bridge
    return bridge is not None and bool(bridge.is_available())


class DispatchAdapter:
    """Transport-agnostic ``process_image`` for the rest of the application."""

    def __init__(self, context: AppContext, probe: CapabilityProbe = embedded_runtime_available):
        self._context = context
        self._probe = probe

    @property
    def base_url(self) -> str:
        return self._context.config.api_base_url.rstrip("/")

    async def process_image(self, payload: ImagePayload,
                            cancel_token: Optional[CancellationToken] = None) -> DetectionResult:
        """Analyze ``payload`` through whichever route the probe selects.

        Raises:
            AnalysisError: Any subclass; see ``irisseg.core.exceptions``
        """
        with CorrelationContext():
            embedded = self._probe(self._context)
            logger.info(f"Processing image in {'embedded' if embedded else 'detached'} mode")
            if embedded:
                return await self._process_embedded(payload, cancel_token)
            return await self._process_detached(payload, cancel_token)

    async def _process_embedded(self, payload: ImagePayload,
                                cancel_token: Optional[CancellationToken]) -> DetectionResult:
        bridge = self._context.bridge
        if bridge is None:
            raise TransportFailureError(
                "Embedded detection bridge is not available",
                hint="Configure the detection engine or switch runtime_mode to 'detached'",
            )
        return await bridge.analyze(payload, cancel_token=cancel_token)

    async def _process_detached(self, payload: ImagePayload,
                                cancel_token: Optional[CancellationToken]) -> DetectionResult:
        url = f"{self.base_url}{PROCESS_ENDPOINT}"
        logger.info(f"Sending image to {url}")
        body = encode_request(payload, Transport.NETWORK)

        response = await _race_cancel(self._post(url, body), cancel_token)
        logger.info(f"HTTP response status: {response.status_code}")

        if not response.is_success:
            raise TransportFailureError(_error_message(response), status_code=response.status_code)

        try:
            outcome = decode_response(response.content)
        except CodecError as e:
            logger.error(f"Invalid response body from {url}: {e}")
            raise TransportFailureError(
                "Server returned invalid data. Check the server logs for errors.",
                hint=str(e),
                status_code=response.status_code,
            ) from e

        if isinstance(outcome, DetectionError):
            logger.info(f"Backend rejected the image: {outcome.error_code}")
            raise ImageRejectedError(outcome)
        return outcome

    async def _post(self, url: str, body: bytes) -> httpx.Response:
        try:
            async with self._context.new_http_client() as client:
                return await client.post(url, content=body, headers=JSON_HEADERS)
        except httpx.TimeoutException as e:
            logger.error(f"Request to {url} timed out: {e}")
            raise TransportFailureError(
                "The detection server did not respond in time.",
                hint=f"Check that the backend at {self.base_url} is healthy",
            ) from e
        except httpx.TransportError as e:
            logger.error(f"Could not reach {url}: {e}")
            raise TransportFailureError(
                f"Could not connect to the server. Make sure the detection backend is running on {self.base_url}",
                hint=str(e),
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Request to {url} failed: {e}")
            raise TransportFailureError(
                "The request to the detection server failed.",
                hint=f"{type(e).__name__}: {e}. Check the backend URL {self.base_url}",
            ) from e

    async def check_health(self) -> bool:
        """Liveness probe of the detection backend. Diagnostics only."""
        url = f"{self.base_url}{HEALTH_ENDPOINT}"
        try:
            async with self._context.new_http_client() as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Health check failed for {url}: {e}")
            return False
        logger.info(f"Health check {url}: {response.status_code}")
        return response.is_success


def _error_message(response: httpx.Response) -> str:
    """Prefer the body's ``error`` or ``message`` field, else the status line."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}: {response.reason_phrase}"


async def _race_cancel(operation: Awaitable[T], cancel_token: Optional[CancellationToken]) -> T:
    if cancel_token is None:
        return await operation

    task = asyncio.ensure_future(operation)
    waiter = asyncio.create_task(cancel_token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if task not in done and not cancellation_requested(waiter, cancel_token):
            await asyncio.wait({task})
        if task.done():
            return task.result()
        raise AnalysisCancelledError()
    finally:
        for pending in (task, waiter):
            if not pending.done():
                pending.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)
