"""Tests for the asyncio load-test driver."""

import asyncio
import json
import math
import random

import httpx
import pytest
import respx
from prometheus_client import CollectorRegistry

from libs.common.config import ConfigurationError
from libs.common.metrics import MetricsCollector
from performance.driver import CREATE_REQUEST, LIST_REQUEST, LoadTestDriver
from performance.payloads import NAME_PATTERN

from .conftest import BASE_URL, CREATE_URL, LIST_URL

DEPARTMENTS = [{"idDepart": 1, "nomDepart": "TestDept-1"}]


def outcomes(results):
    return {result.name: result.passed for result in results}


@pytest.mark.asyncio
async def test_iteration_posts_department_then_lists(make_config):
    """201 with an id and a populated list pass every check."""
    driver = LoadTestDriver(make_config(), rng=random.Random(5))

    with respx.mock(assert_all_called=True) as router:
        create = router.post(CREATE_URL).mock(return_value=httpx.Response(201, json={"idDepart": 42}))
        listing = router.get(LIST_URL).mock(return_value=httpx.Response(200, json=DEPARTMENTS))

        async with driver.create_client() as client:
            results = await driver.run_iteration(client)

    assert all(result.passed for result in results)
    assert len(results) == 4

    request = create.calls.last.request
    assert request.headers["Content-Type"] == "application/json"
    body = json.loads(request.content)
    assert body["idDepart"] == 0
    assert NAME_PATTERN.match(body["nomDepart"])
    assert 0 <= int(body["nomDepart"].split("-")[1]) < 1000

    assert listing.call_count == 1
    assert driver.stats.requests[CREATE_REQUEST] == 1
    assert driver.stats.requests[LIST_REQUEST] == 1


@pytest.mark.asyncio
async def test_empty_listing_fails_only_the_length_check(make_config):
    driver = LoadTestDriver(make_config())

    with respx.mock() as router:
        router.post(CREATE_URL).mock(return_value=httpx.Response(200, json={"idDepart": 7}))
        router.get(LIST_URL).mock(return_value=httpx.Response(200, json=[]))

        async with driver.create_client() as client:
            results = await driver.run_iteration(client)

    assert outcomes(results) == {
        "POST status is 200": True,
        "POST response contains idDepart": True,
        "GET status is 200": True,
        "GET response has at least one department": False,
    }


@pytest.mark.asyncio
async def test_server_error_on_create_still_lists(make_config):
    driver = LoadTestDriver(make_config())

    with respx.mock() as router:
        router.post(CREATE_URL).mock(return_value=httpx.Response(500, text="Internal Server Error"))
        listing = router.get(LIST_URL).mock(return_value=httpx.Response(200, json=DEPARTMENTS))

        async with driver.create_client() as client:
            results = await driver.run_iteration(client)

    assert outcomes(results) == {
        "POST status is 200": False,
        "POST response contains idDepart": False,
        "GET status is 200": True,
        "GET response has at least one department": True,
    }
    assert listing.call_count == 1
    assert driver.stats.http_failures[CREATE_REQUEST] == 1
    assert driver.stats.http_failures.get(LIST_REQUEST, 0) == 0


@pytest.mark.asyncio
async def test_transport_error_is_counted_not_raised(make_config):
    driver = LoadTestDriver(make_config())

    with respx.mock() as router:
        router.post(CREATE_URL).mock(side_effect=httpx.ConnectError("connection refused"))
        listing = router.get(LIST_URL).mock(return_value=httpx.Response(200, json=DEPARTMENTS))

        async with driver.create_client() as client:
            results = await driver.run_iteration(client)

    assert [result.passed for result in results[:2]] == [False, False]
    assert results[0].message == "no response: ConnectError"
    assert listing.call_count == 1
    assert driver.stats.transport_errors[CREATE_REQUEST] == 1
    assert driver.stats.http_failures[CREATE_REQUEST] == 1
    assert CREATE_REQUEST not in driver.stats.latencies_ms


@pytest.mark.asyncio
async def test_run_respects_pacing_bound(make_config):
    """Each virtual user completes at most ceil(duration / sleep) iterations."""
    config = make_config(lt_vus=3, lt_duration="0.25s", lt_sleep_seconds=0.1)
    metrics = MetricsCollector("test", registry=CollectorRegistry())
    driver = LoadTestDriver(config, metrics=metrics)

    with respx.mock() as router:
        create = router.post(CREATE_URL).mock(return_value=httpx.Response(201, json={"idDepart": 1}))
        router.get(LIST_URL).mock(return_value=httpx.Response(200, json=DEPARTMENTS))
        summary = await driver.run()

    bound = math.ceil(config.duration_seconds / config.lt_sleep_seconds)
    per_vu = driver.stats.iterations_per_vu
    assert set(per_vu) == {0, 1, 2}
    assert all(1 <= count <= bound for count in per_vu.values())

    completed = summary["iterations"]["completed"]
    assert completed == sum(per_vu.values())
    assert create.call_count == completed
    assert summary["iterations"]["interrupted"] == 0
    assert summary["checks"]["passes"] == completed * 4
    assert summary["checks"]["pass_rate"] == 1.0
    assert summary["http"]["total_requests"] == completed * 2
    assert summary["http"]["failure_rate"] == 0.0
    assert summary["http"]["latency"]["p95_ms"] >= 0

    exposition = metrics.get_metrics()
    assert f'load_test_iterations_total{{outcome="completed"}} {float(completed)}' in exposition
    assert "load_test_active_virtual_users 0.0" in exposition


@pytest.mark.asyncio
async def test_run_reports_failing_checks_without_aborting(make_config):
    config = make_config(lt_vus=2, lt_duration="0.15s", lt_min_check_pass_rate=0.99)
    driver = LoadTestDriver(config)

    with respx.mock() as router:
        router.post(CREATE_URL).mock(return_value=httpx.Response(201, json={"idDepart": 1}))
        router.get(LIST_URL).mock(return_value=httpx.Response(200, json=[]))
        summary = await driver.run()

    by_name = summary["checks"]["by_name"]
    assert by_name["GET response has at least one department"]["pass_rate"] == 0.0
    assert by_name["POST status is 200"]["pass_rate"] == 1.0
    assert summary["checks"]["pass_rate"] == pytest.approx(0.75)
    assert list(summary["thresholds"].values()) == [False]


@pytest.mark.asyncio
async def test_preflight_rejects_unreachable_target(make_config):
    driver = LoadTestDriver(make_config(lt_preflight=True))

    with respx.mock(assert_all_called=False) as router:
        create = router.post(CREATE_URL).mock(return_value=httpx.Response(201))
        router.get(LIST_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(ConfigurationError):
            await driver.run()

    assert create.call_count == 0


@pytest.mark.asyncio
async def test_preflight_accepts_any_http_status(make_config):
    driver = LoadTestDriver(make_config(lt_preflight=True))

    with respx.mock() as router:
        router.get(LIST_URL).mock(return_value=httpx.Response(503))
        async with driver.create_client() as client:
            await driver.preflight(client)


@pytest.mark.asyncio
async def test_slow_iterations_are_cancelled_after_graceful_stop(make_config):
    async def handler(request):
        if request.method == "POST":
            await asyncio.sleep(5)
        return httpx.Response(200, json=DEPARTMENTS)

    config = make_config(lt_vus=2, lt_duration="0.1s", lt_graceful_stop_seconds=0.1)
    driver = LoadTestDriver(config, transport=httpx.MockTransport(handler))

    summary = await asyncio.wait_for(driver.run(), timeout=3)

    assert summary["iterations"]["completed"] == 0
    assert summary["iterations"]["interrupted"] == 2


@pytest.mark.asyncio
async def test_ramp_up_staggers_virtual_users(make_config):
    """With ramp-up longer than the run, late users never start."""
    config = make_config(lt_vus=4, lt_duration="0.2s", lt_ramp_up_seconds=10)
    driver = LoadTestDriver(config)

    with respx.mock() as router:
        router.post(CREATE_URL).mock(return_value=httpx.Response(201, json={"idDepart": 1}))
        router.get(LIST_URL).mock(return_value=httpx.Response(200, json=DEPARTMENTS))
        await driver.run()

    assert set(driver.stats.iterations_per_vu) == {0}


def test_client_targets_configured_base_url(make_config):
    driver = LoadTestDriver(make_config())
    assert driver.config.create_url == f"{BASE_URL}/add-departement"
