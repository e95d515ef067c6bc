import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .backoff import Backoff
from .errors import InvalidRequestError, TransportTimeoutError
from .metrics import DispatchMetrics


logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryableFn = Callable[[Optional[Any], Optional[BaseException]], bool]


def retry_on_timeout(response: Optional[Any], error: Optional[BaseException]) -> bool:
    """Retry only network-level timeouts. Responses are final whatever their status."""
    return isinstance(error, (TransportTimeoutError, TimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 0
    delay: Optional[float] = None
    retryable: RetryableFn = retry_on_timeout
    redraw_delay: bool = True


class Retrier:
    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], None] | None = None,
        rng: Optional[random.Random] = None,
        metrics: Optional[DispatchMetrics] = None,
    ):
        self.policy = policy
        self._sleep = sleep
        self._rng = rng
        self._metrics = metrics

    def _record_attempt(self) -> None:
        if self._metrics:
            self._metrics.record_attempt()

    def run(self, attempt: Callable[[], T]) -> T:
        """Call ``attempt`` until the policy is satisfied and return its last outcome.

        At most ``max_retries + 1`` calls are made. Whatever the final call raised
        is re-raised; ``InvalidRequestError`` is never retried.
        """
        if self.policy.max_retries <= 0:
            self._record_attempt()
            return attempt()

        backoff = Backoff(self.policy.delay, self.policy.redraw_delay, rng=self._rng, sleep=self._sleep)
        retries = 0
        while True:
            response: Optional[T] = None
            error: Optional[Exception] = None
            self._record_attempt()
            try:
                response = attempt()
            except InvalidRequestError:
                raise
            except Exception as exc:
                error = exc
            if not self.policy.retryable(response, error):
                break
            if retries >= self.policy.max_retries:
                logger.warning("Giving up after %d retries (last error: %r)", retries, error)
                break
            retries += 1
            if self._metrics:
                self._metrics.record_retry()
            delay = backoff.wait()
            logger.info("Retry %d/%d after %.3fs (error: %r)", retries, self.policy.max_retries, delay, error)
        if error is not None:
            raise error
        return response  # type: ignore[return-value]
