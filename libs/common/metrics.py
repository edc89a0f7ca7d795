"""Metrics collection for load-test runs.

Provides a thin convenience wrapper around ``prometheus_client`` so the
driver can consistently record request, check and iteration outcomes.

Design notes
- Metrics and labels are predeclared to keep label sets small
- Each collector owns its registry (inject one for testing)
- Exposition is either scraped via ``serve`` or read with ``get_metrics``
"""

from typing import Optional
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest, start_http_server
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Prometheus metrics for a load-test run.

    Parameters
    - service_name: Logical name of the run, used in logs
    - registry: Optional custom ``CollectorRegistry``
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests issued by virtual users',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration as seen by virtual users',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.request_errors = Counter(
            'http_request_errors_total',
            'HTTP requests that produced no response',
            ['method', 'endpoint', 'error'],
            registry=self.registry
        )

        self.checks = Counter(
            'load_test_checks_total',
            'Check evaluations partitioned by outcome',
            ['check', 'result'],
            registry=self.registry
        )

        self.iterations = Counter(
            'load_test_iterations_total',
            'Virtual user iterations partitioned by outcome',
            ['outcome'],
            registry=self.registry
        )

        self.active_virtual_users = Gauge(
            'load_test_active_virtual_users',
            'Number of virtual users currently running',
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_http_error(self, method: str, endpoint: str, error: str) -> None:
        """Record a request that failed at the transport level."""
        self.request_errors.labels(method=method, endpoint=endpoint, error=error).inc()

    def record_check(self, check: str, passed: bool) -> None:
        self.checks.labels(check=check, result="pass" if passed else "fail").inc()

    def record_iteration(self, outcome: str) -> None:
        self.iterations.labels(outcome=outcome).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format."""
        return generate_latest(self.registry).decode('utf-8')

    def serve(self, port: int) -> None:
        """Expose the registry over HTTP for scraping during the run."""
        start_http_server(port, registry=self.registry)
        logger.info("Metrics endpoint started", port=port, service=self.service_name)
