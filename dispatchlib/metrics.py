import threading
import time
from dataclasses import dataclass


@dataclass
class Totals:
    requests: int = 0
    attempts: int = 0
    retries: int = 0
    errors: int = 0
    elapsed_ms_sum: float = 0.0


class DispatchMetrics:
    def __init__(self):
        self._totals = Totals()
        self._lock = threading.Lock()
        self._start = time.time()

    def record_attempt(self) -> None:
        with self._lock:
            self._totals.attempts += 1

    def record_retry(self) -> None:
        with self._lock:
            self._totals.retries += 1

    def record_request(self, ok: bool, elapsed_ms: float) -> None:
        with self._lock:
            self._totals.requests += 1
            if not ok:
                self._totals.errors += 1
            self._totals.elapsed_ms_sum += elapsed_ms

    def snapshot(self) -> tuple[Totals, float]:
        with self._lock:
            t = Totals(
                requests=self._totals.requests,
                attempts=self._totals.attempts,
                retries=self._totals.retries,
                errors=self._totals.errors,
                elapsed_ms_sum=self._totals.elapsed_ms_sum,
            )
        elapsed = max(1e-6, time.time() - self._start)
        return t, elapsed
