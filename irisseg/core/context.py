"""Explicit application context.

Carries the capabilities a component may need (configuration, the engine
bridge, the HTTP client factory) so nothing reaches for a module-level
singleton. Build one at startup and pass it down.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, TYPE_CHECKING

import httpx

from ..config.settings import Config
from .entities import DetectionResult, ImagePayload

if TYPE_CHECKING:
    from ..services.detection_bridge import CancellationToken


class BridgeChannel(Protocol):
    """Anything that can analyze a payload in-process (the embedded route)."""

    async def analyze(self, payload: ImagePayload, deadline=None,
                      cancel_token: Optional["CancellationToken"] = None) -> DetectionResult:
        ...

    def is_available(self) -> bool:
        ...


@dataclass
class AppContext:
    config: Config
    bridge: Optional[BridgeChannel] = None
    http_client_factory: Optional[Callable[[], httpx.AsyncClient]] = None

    @classmethod
    def create(cls, config: Config) -> "AppContext":
        """Wire the default capabilities for ``config``.

        The engine bridge is omitted when the runtime is forced to detached
        mode, which makes every request go over the network. In ``auto`` mode
        the bridge is attached and the dispatch probe checks per request
        whether its engine is installed.
        """
        from ..services.detection_bridge import DetectionBridge

        bridge = None if config.runtime_mode == "detached" else DetectionBridge.from_config(config)
        return cls(config=config, bridge=bridge)

    def new_http_client(self) -> httpx.AsyncClient:
        if self.http_client_factory is not None:
            return self.http_client_factory()
        return httpx.AsyncClient(timeout=self.config.api_timeout_seconds)
