import logging
import threading
from prometheus_client import CollectorRegistry, Counter, Gauge, REGISTRY, start_http_server

from .metrics import DispatchMetrics


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(self, metrics: DispatchMetrics, port: int = 8000, registry: CollectorRegistry = REGISTRY) -> None:
        self.metrics = metrics
        self.port = port
        self.registry = registry
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.requests_total = Counter('dispatch_requests_total', 'Total number of dispatched requests', registry=registry)
        self.attempts_total = Counter('dispatch_attempts_total', 'Total number of transport attempts', registry=registry)
        self.retries_total = Counter('dispatch_retries_total', 'Total number of retries', registry=registry)
        self.errors_total = Counter('dispatch_errors_total', 'Total number of failed requests', registry=registry)
        self.avg_request_duration_seconds = Gauge(
            'dispatch_avg_request_duration_seconds', 'Average request duration in seconds', registry=registry
        )

        self._last_requests = 0
        self._last_attempts = 0
        self._last_retries = 0
        self._last_errors = 0

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            self._stop_event.wait(5.0)

    def update(self) -> None:
        totals, _ = self.metrics.snapshot()

        for counter, current, last in (
            (self.requests_total, totals.requests, self._last_requests),
            (self.attempts_total, totals.attempts, self._last_attempts),
            (self.retries_total, totals.retries, self._last_retries),
            (self.errors_total, totals.errors, self._last_errors),
        ):
            if current > last:
                counter.inc(current - last)

        if totals.requests > 0:
            avg_ms = totals.elapsed_ms_sum / totals.requests
            self.avg_request_duration_seconds.set(avg_ms / 1000.0)

        self._last_requests = totals.requests
        self._last_attempts = totals.attempts
        self._last_retries = totals.retries
        self._last_errors = totals.errors

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
