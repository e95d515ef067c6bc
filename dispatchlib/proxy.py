from typing import Dict, Optional

from .config import DEFAULT_PROXY_TIMEOUT, DirectConfig
from .direct import DirectTransportBackend
from .metrics import DispatchMetrics
from .types import RequestDescriptor, RequestResponse, Transport


class ProxyBackend:
    """Direct transport pinned to one proxy, with a 10 second default timeout."""

    def __init__(
        self,
        proxy: str,
        transport: Optional[Transport] = None,
        ja3: str = "",
        additional_headers: Optional[Dict[str, str]] = None,
        metrics: Optional[DispatchMetrics] = None,
    ):
        self.proxy = proxy
        config = DirectConfig(
            ja3=ja3,
            additional_headers=dict(additional_headers or {}),
            default_timeout=DEFAULT_PROXY_TIMEOUT,
        )
        self._direct = DirectTransportBackend(
            transport=transport,
            config=config,
            proxy_resolver=lambda url: self.proxy,
            metrics=metrics,
        )

    def do(self, descriptor: RequestDescriptor) -> RequestResponse:
        return self._direct.do(descriptor)
