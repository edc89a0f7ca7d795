"""Asyncio load-test driver for the departement API.

Each virtual user is an asyncio task running the same iteration until the
configured duration elapses:

1. POST a freshly generated department to ``/add-departement``
2. GET ``/retrieve-all-departements``
3. Evaluate the named checks for both responses
4. Pause for the pacing interval

All virtual users share one ``httpx.AsyncClient`` connection pool and one
``asyncio.Event`` used as the stop signal. Pacing waits on that event, so
idle users stop as soon as the duration expires; users in the middle of an
iteration get ``graceful_stop`` seconds to finish before being cancelled.
"""

import asyncio
import random
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from libs.common.config import ConfigurationError, LoadTestConfig
from libs.common.logging import ServiceLogger
from libs.common.metrics import MetricsCollector

from .checks import (
    CREATE_CHECKS,
    LIST_CHECKS,
    Check,
    CheckResult,
    CheckTally,
    ResponseSnapshot,
    evaluate,
    failed_results,
)
from .payloads import build_department
from .profiler import SystemProfiler
from .report import build_summary


CREATE_REQUEST = "POST /add-departement"
LIST_REQUEST = "GET /retrieve-all-departements"


class RunStats:
    """Mutable run statistics, only touched from the event-loop thread."""

    def __init__(self):
        self.latencies_ms: Dict[str, List[float]] = defaultdict(list)
        self.requests: Dict[str, int] = defaultdict(int)
        self.http_failures: Dict[str, int] = defaultdict(int)
        self.transport_errors: Dict[str, int] = defaultdict(int)
        self.iterations_per_vu: Dict[int, int] = defaultdict(int)
        self.iterations_interrupted = 0
        self.checks = CheckTally()
        self.checks.register(CREATE_CHECKS)
        self.checks.register(LIST_CHECKS)

    @property
    def iterations_completed(self) -> int:
        return sum(self.iterations_per_vu.values())

    def record_response(self, request_name: str, snapshot: ResponseSnapshot) -> None:
        self.requests[request_name] += 1
        self.latencies_ms[request_name].append(snapshot.elapsed_ms)
        # Same convention as k6: anything outside 2xx/3xx is a failed request.
        if not 200 <= snapshot.status_code < 400:
            self.http_failures[request_name] += 1

    def record_transport_error(self, request_name: str) -> None:
        self.requests[request_name] += 1
        self.http_failures[request_name] += 1
        self.transport_errors[request_name] += 1


class LoadTestDriver:
    """Runs the create-then-list iteration across concurrent virtual users.

    Parameters
    - config: Immutable run configuration
    - metrics: Optional ``MetricsCollector`` for Prometheus exposition
    - rng: Optional random source for department names (seed it in tests)
    - transport: Optional httpx transport, e.g. for mocking
    """

    def __init__(
        self,
        config: LoadTestConfig,
        metrics: Optional[MetricsCollector] = None,
        rng: Optional[random.Random] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.rng = rng or random.Random()
        self.transport = transport
        self.stats = RunStats()
        self.log = ServiceLogger("driver", base_url=config.lt_base_url)

    def create_client(self) -> httpx.AsyncClient:
        """Client shared by every virtual user, pooled to the VU count."""
        limits = httpx.Limits(
            max_connections=self.config.lt_vus,
            max_keepalive_connections=self.config.lt_vus,
        )
        return httpx.AsyncClient(
            timeout=self.config.lt_request_timeout_seconds,
            limits=limits,
            transport=self.transport,
        )

    async def run(self) -> Dict[str, Any]:
        """Run the load test and return the summary."""
        config = self.config
        duration = config.duration_seconds
        self.stats = RunStats()

        profiler = SystemProfiler(interval=0.5) if config.lt_profile_generator else None

        async with self.create_client() as client:
            if config.lt_preflight:
                await self.preflight(client)

            self.log.info(
                "Starting load test",
                vus=config.lt_vus,
                duration_seconds=duration,
                sleep_seconds=config.lt_sleep_seconds,
                ramp_up_seconds=config.lt_ramp_up_seconds,
            )

            if profiler:
                profiler.start_profiling()

            stop = asyncio.Event()
            started = time.perf_counter()
            tasks = [
                asyncio.create_task(self._virtual_user(vu_id, client, stop))
                for vu_id in range(config.lt_vus)
            ]

            try:
                await asyncio.wait(tasks, timeout=duration)
                stop.set()
                self.log.info("Duration elapsed, stopping virtual users", duration_seconds=duration)

                pending = [task for task in tasks if not task.done()]
                if pending:
                    _, pending = await asyncio.wait(pending, timeout=config.lt_graceful_stop_seconds)
                if pending:
                    self.log.warning("Cancelling virtual users after graceful stop", remaining=len(pending))
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
            finally:
                stop.set()
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                if profiler:
                    profiler.stop_profiling()

            # Errors other than cancellation escaped run_iteration; surface them.
            for task in tasks:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

            elapsed = time.perf_counter() - started

        summary = build_summary(
            self.stats,
            config,
            elapsed_seconds=elapsed,
            system_stats=profiler.get_summary_stats() if profiler else None,
        )
        self.log.info(
            "Load test completed",
            iterations=summary["iterations"]["completed"],
            interrupted=summary["iterations"]["interrupted"],
            check_pass_rate=summary["checks"]["pass_rate"],
            http_failure_rate=summary["http"]["failure_rate"],
        )
        return summary

    async def preflight(self, client: httpx.AsyncClient) -> None:
        """Fail fast when the base URL cannot be reached at all.

        Any HTTP response counts as reachable; only transport errors abort.
        """
        try:
            response = await client.get(self.config.list_url)
        except httpx.HTTPError as e:
            self.log.error("Target unreachable", url=self.config.list_url, error=str(e))
            raise ConfigurationError(f"Cannot reach {self.config.list_url}: {e}") from e
        self.log.info("Preflight succeeded", status=response.status_code)

    async def run_iteration(self, client: httpx.AsyncClient, vu_id: int = 0) -> List[CheckResult]:
        """Run one create-then-list iteration and record its outcomes."""
        config = self.config
        department = build_department(self.rng, config.lt_name_prefix, config.lt_name_upper_bound)

        create, error = await self._send(
            client,
            "POST",
            config.create_url,
            CREATE_REQUEST,
            vu_id,
            json=department.to_payload(),
            headers={"Content-Type": "application/json"},
        )
        results = self._check(create, CREATE_CHECKS, error)

        listing, error = await self._send(client, "GET", config.list_url, LIST_REQUEST, vu_id)
        results.extend(self._check(listing, LIST_CHECKS, error))

        self.stats.checks.record(results)
        if self.metrics:
            for result in results:
                self.metrics.record_check(result.name, result.passed)
        return results

    async def _virtual_user(self, vu_id: int, client: httpx.AsyncClient, stop: asyncio.Event) -> None:
        config = self.config
        if config.lt_ramp_up_seconds > 0:
            delay = config.lt_ramp_up_seconds * vu_id / config.lt_vus
            if await self._pause(stop, delay):
                return

        if self.metrics:
            self.metrics.active_virtual_users.inc()
        try:
            while not stop.is_set():
                try:
                    await self.run_iteration(client, vu_id)
                except asyncio.CancelledError:
                    self.stats.iterations_interrupted += 1
                    if self.metrics:
                        self.metrics.record_iteration("interrupted")
                    raise
                self.stats.iterations_per_vu[vu_id] += 1
                if self.metrics:
                    self.metrics.record_iteration("completed")

                if await self._pause(stop, config.lt_sleep_seconds):
                    break
        finally:
            if self.metrics:
                self.metrics.active_virtual_users.dec()

    @staticmethod
    async def _pause(stop: asyncio.Event, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if the run stopped meanwhile."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return stop.is_set()
        try:
            await asyncio.wait_for(stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        request_name: str,
        vu_id: int,
        **kwargs: Any,
    ) -> Tuple[Optional[ResponseSnapshot], Optional[str]]:
        """Issue one request; returns the snapshot or the transport error name."""
        endpoint = request_name.split(" ", 1)[1]
        request_start = time.perf_counter()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            error = type(e).__name__
            self.stats.record_transport_error(request_name)
            if self.metrics:
                self.metrics.record_http_error(method, endpoint, error)
            self.log.bind(vu=vu_id).debug("Request failed", request=request_name, error=str(e) or error)
            return None, error

        elapsed = time.perf_counter() - request_start
        snapshot = ResponseSnapshot.from_response(response, elapsed_ms=elapsed * 1000)
        self.stats.record_response(request_name, snapshot)
        if self.metrics:
            self.metrics.record_http_request(method, endpoint, snapshot.status_code, elapsed)
        return snapshot, None

    @staticmethod
    def _check(
        snapshot: Optional[ResponseSnapshot],
        checks: Sequence[Check],
        error: Optional[str],
    ) -> List[CheckResult]:
        if snapshot is None:
            return failed_results(checks, error or "request failed")
        return evaluate(snapshot, checks)


async def run_load_test(config: LoadTestConfig, metrics: Optional[MetricsCollector] = None) -> Dict[str, Any]:
    """Convenience wrapper: build a driver for ``config`` and run it."""
    driver = LoadTestDriver(config, metrics=metrics)
    return await driver.run()
