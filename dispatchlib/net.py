import logging
import threading
from collections import OrderedDict

import urllib3
from urllib3.util.retry import Retry
from urllib3 import exceptions as urllib3_exc

from .config import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_NUM_POOLS,
    DEFAULT_READ_TIMEOUT,
    MAX_REDIRECTS,
)
from .errors import InvalidRequestError, TransportError, TransportTimeoutError
from .types import TransportOptions, TransportResponse


logger = logging.getLogger(__name__)


class Urllib3Transport:
    """Transport backed by urllib3 pools.

    urllib3 drives the platform TLS stack, so a requested JA3 fingerprint is not
    reproduced on the wire.
    """

    def __init__(self, num_pools: int = DEFAULT_NUM_POOLS, max_connections: int = DEFAULT_MAX_CONNECTIONS):
        self._num_pools = num_pools
        self._max_connections = max_connections
        self.http = urllib3.PoolManager(num_pools=num_pools, maxsize=max_connections)
        self._proxies: "OrderedDict[str, urllib3.ProxyManager]" = OrderedDict()
        self._lock = threading.Lock()

    def _manager_for(self, proxy: str) -> urllib3.PoolManager:
        if not proxy:
            return self.http
        with self._lock:
            manager = self._proxies.get(proxy)
            if manager is not None:
                self._proxies.move_to_end(proxy)
                return manager
            manager = urllib3.ProxyManager(proxy, num_pools=self._num_pools, maxsize=self._max_connections)
            self._proxies[proxy] = manager
            # least recently used managers beyond num_pools are closed
            while len(self._proxies) > self._num_pools:
                evicted_proxy, evicted = self._proxies.popitem(last=False)
                logger.debug("Closing pools for proxy %s", evicted_proxy)
                evicted.clear()
            return manager

    def execute(self, url: str, options: TransportOptions, method: str) -> TransportResponse:
        if options.ja3:
            logger.debug("JA3 fingerprint requested but not supported by urllib3: %s", options.ja3)
        headers = dict(options.headers)
        if options.user_agent:
            headers["User-Agent"] = options.user_agent
        follow = not options.disable_redirect
        read_timeout = float(options.timeout) if options.timeout else DEFAULT_READ_TIMEOUT
        try:
            response = self._manager_for(options.proxy).request(
                method,
                url,
                body=options.body or None,
                headers=headers,
                timeout=urllib3.Timeout(connect=DEFAULT_CONNECT_TIMEOUT, read=read_timeout),
                redirect=follow,
                retries=Retry(
                    total=None,
                    connect=0,
                    read=0,
                    status=0,
                    other=0,
                    redirect=MAX_REDIRECTS if follow else 0,
                    raise_on_redirect=False,
                ),
                preload_content=True,
            )
        except urllib3_exc.LocationValueError as exc:
            raise InvalidRequestError(f"invalid URL {url!r}: {exc}") from exc
        except urllib3_exc.TimeoutError as exc:
            raise TransportTimeoutError(f"{method} {url} timed out: {exc}") from exc
        except urllib3_exc.MaxRetryError as exc:
            if isinstance(exc.reason, urllib3_exc.TimeoutError):
                raise TransportTimeoutError(f"{method} {url} timed out: {exc.reason}") from exc
            raise TransportError(f"{method} {url} failed: {exc.reason}") from exc
        except urllib3_exc.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        return TransportResponse(
            status=response.status,
            body=response.data or b"",
            headers={key: value for key, value in response.headers.iteritems()},
        )
