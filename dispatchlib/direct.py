import logging
import random
import time
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from .config import DirectConfig
from .errors import DispatchError, InvalidRequestError, TransportError, TransportTimeoutError
from .metrics import DispatchMetrics
from .net import Urllib3Transport
from .retry import Retrier, RetryPolicy
from .types import (
    ProxyResolver,
    RequestDescriptor,
    RequestResponse,
    Transport,
    TransportOptions,
    TransportResponse,
    no_proxy,
)


logger = logging.getLogger(__name__)


def build_url(url: str, query_params: Dict[str, str]) -> str:
    """Return ``url`` with its query string replaced by ``query_params``."""
    try:
        parts = urlsplit(url)
        parts.port
    except ValueError as exc:
        raise InvalidRequestError(f"invalid URL {url!r}: {exc}") from exc
    if not parts.scheme or not parts.netloc:
        raise InvalidRequestError(f"invalid URL {url!r}: scheme and host are required")
    query = urlencode(sorted((query_params or {}).items()))
    return urlunsplit(parts._replace(query=query))


def normalize_response(resp: TransportResponse) -> RequestResponse:
    body = resp.body.encode("utf-8") if isinstance(resp.body, str) else bytes(resp.body or b"")
    headers: Dict[str, str] = {}
    for key, value in (resp.headers or {}).items():
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[-1]
        headers[key] = value
    return RequestResponse(status_code=resp.status, body=body, headers=headers)


class DirectTransportBackend:
    """Sends descriptors straight through a fingerprint-capable transport.

    Instance headers are merged over the caller's, so they win on collision.
    Retries follow ``config.retry`` unless a call passes its own policy.
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        config: Optional[DirectConfig] = None,
        proxy_resolver: ProxyResolver = no_proxy,
        metrics: Optional[DispatchMetrics] = None,
        sleep: Callable[[float], None] | None = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or DirectConfig()
        self.transport = transport or Urllib3Transport()
        self.proxy_resolver = proxy_resolver
        self.metrics = metrics
        self._sleep = sleep
        self._rng = rng

    def prepare(self, descriptor: RequestDescriptor) -> Tuple[str, TransportOptions]:
        headers = dict(descriptor.headers)
        headers.update(self.config.additional_headers)
        final_url = build_url(descriptor.url, descriptor.query_params)
        options = TransportOptions(
            body=descriptor.payload,
            ja3=descriptor.ja3_fingerprint or self.config.ja3,
            headers=headers,
            timeout=descriptor.timeout or self.config.default_timeout,
            disable_redirect=descriptor.skip_redirects,
            proxy=self._resolve_proxy(final_url),
            user_agent=headers.get("User-Agent", ""),
        )
        return final_url, options

    def _resolve_proxy(self, url: str) -> str:
        try:
            return self.proxy_resolver(url)
        except DispatchError:
            raise
        except Exception as exc:
            raise TransportError(f"proxy resolution for {url} failed: {exc}") from exc

    def _execute(self, url: str, options: TransportOptions, method: str) -> TransportResponse:
        logger.debug("%s %s (proxy=%s, timeout=%s)", method, url, options.proxy or "-", options.timeout)
        try:
            return self.transport.execute(url, options, method)
        except DispatchError:
            raise
        except TimeoutError as exc:
            raise TransportTimeoutError(f"{method} {url} timed out: {exc}") from exc
        except Exception as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    def request(self, descriptor: RequestDescriptor, retry_policy: Optional[RetryPolicy] = None) -> RequestResponse:
        retrier = Retrier(retry_policy or self.config.retry, sleep=self._sleep, rng=self._rng, metrics=self.metrics)
        t0 = time.perf_counter()
        try:
            url, options = self.prepare(descriptor)
            resp = retrier.run(lambda: self._execute(url, options, descriptor.method))
        except DispatchError:
            self._record(False, t0)
            raise
        self._record(True, t0)
        return normalize_response(resp)

    def do(self, descriptor: RequestDescriptor) -> RequestResponse:
        return self.request(descriptor)

    def _record(self, ok: bool, t0: float) -> None:
        if self.metrics:
            self.metrics.record_request(ok, (time.perf_counter() - t0) * 1000.0)

    def get(self, url: str, query: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> RequestResponse:
        return self.request(RequestDescriptor("GET", url, query_params=query or {}, headers=headers or {}))

    def post(self, url: str, payload: bytes = b"", query: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> RequestResponse:
        return self._with_body("POST", url, payload, query, headers)

    def put(self, url: str, payload: bytes = b"", query: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> RequestResponse:
        return self._with_body("PUT", url, payload, query, headers)

    def patch(self, url: str, payload: bytes = b"", query: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> RequestResponse:
        return self._with_body("PATCH", url, payload, query, headers)

    def delete(self, url: str, payload: bytes = b"", query: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> RequestResponse:
        return self._with_body("DELETE", url, payload, query, headers)

    def _with_body(self, method, url, payload, query, headers) -> RequestResponse:
        return self.request(
            RequestDescriptor(method, url, query_params=query or {}, payload=payload, headers=headers or {})
        )
