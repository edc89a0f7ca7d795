"""Run summaries and human-readable reports."""

import json
import time
from typing import Any, Dict, Iterable, Optional

import numpy as np
import structlog

from libs.common.config import LoadTestConfig

logger = structlog.get_logger("report")


def summarize_latencies(values_ms: Iterable[float]) -> Dict[str, float]:
    """Latency distribution in milliseconds; empty dict when no samples."""
    values = list(values_ms)
    if not values:
        return {}
    return {
        "mean_ms": float(np.mean(values)),
        "median_ms": float(np.median(values)),
        "p90_ms": float(np.percentile(values, 90)),
        "p95_ms": float(np.percentile(values, 95)),
        "p99_ms": float(np.percentile(values, 99)),
        "min_ms": float(np.min(values)),
        "max_ms": float(np.max(values)),
    }


def build_summary(
    stats,
    config: LoadTestConfig,
    elapsed_seconds: float,
    system_stats: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Compile ``RunStats`` into the run summary dictionary."""
    total_requests = sum(stats.requests.values())
    total_failures = sum(stats.http_failures.values())
    passes, fails = stats.checks.totals()

    requests = {}
    for name in sorted(stats.requests):
        count = stats.requests[name]
        requests[name] = {
            "count": count,
            "failed": stats.http_failures.get(name, 0),
            "transport_errors": stats.transport_errors.get(name, 0),
            "latency": summarize_latencies(stats.latencies_ms.get(name, [])),
        }

    iterations_per_vu = list(stats.iterations_per_vu.values())

    summary = {
        "timestamp": time.time(),
        "config": {
            "base_url": config.lt_base_url,
            "vus": config.lt_vus,
            "duration": config.lt_duration,
            "duration_seconds": config.duration_seconds,
            "sleep_seconds": config.lt_sleep_seconds,
            "ramp_up_seconds": config.lt_ramp_up_seconds,
        },
        "elapsed_seconds": elapsed_seconds,
        "iterations": {
            "completed": stats.iterations_completed,
            "interrupted": stats.iterations_interrupted,
            "max_per_vu": max(iterations_per_vu) if iterations_per_vu else 0,
            "rate_per_second": stats.iterations_completed / elapsed_seconds if elapsed_seconds > 0 else 0.0,
        },
        "http": {
            "total_requests": total_requests,
            "failed_requests": total_failures,
            "failure_rate": total_failures / total_requests if total_requests else 0.0,
            "throughput_rps": total_requests / elapsed_seconds if elapsed_seconds > 0 else 0.0,
            "latency": summarize_latencies(
                value for values in stats.latencies_ms.values() for value in values
            ),
            "requests": requests,
        },
        "checks": {
            "passes": passes,
            "fails": fails,
            "pass_rate": stats.checks.overall_pass_rate(),
            "by_name": stats.checks.summary(),
        },
    }

    if system_stats:
        summary["generator"] = system_stats

    summary["thresholds"] = evaluate_thresholds(summary, config)
    return summary


def evaluate_thresholds(summary: Dict[str, Any], config: LoadTestConfig) -> Dict[str, bool]:
    """Compare the summary against configured pass/fail thresholds."""
    thresholds = {}

    if config.lt_min_check_pass_rate is not None:
        thresholds[f"checks pass rate >= {config.lt_min_check_pass_rate:.2%}"] = (
            summary["checks"]["pass_rate"] >= config.lt_min_check_pass_rate
        )

    if config.lt_max_http_failure_rate is not None:
        thresholds[f"http failure rate <= {config.lt_max_http_failure_rate:.2%}"] = (
            summary["http"]["failure_rate"] <= config.lt_max_http_failure_rate
        )

    for name, passed in thresholds.items():
        if not passed:
            logger.warning("Threshold failed", threshold=name)

    return thresholds


def thresholds_passed(summary: Dict[str, Any]) -> bool:
    return all(summary.get("thresholds", {}).values())


def render_report(summary: Dict[str, Any]) -> str:
    """Generate a human-readable report of a run summary."""
    config = summary["config"]
    iterations = summary["iterations"]
    http = summary["http"]
    checks = summary["checks"]

    lines = [
        "# Departement Load Test Report",
        f"Generated at: {time.ctime(summary.get('timestamp', time.time()))}",
        f"Target: {config['base_url']}",
        f"Virtual users: {config['vus']}  Duration: {config['duration']}  Elapsed: {summary['elapsed_seconds']:.1f}s",
        "",
        "## Checks",
    ]

    for name, counts in checks["by_name"].items():
        total = counts["passes"] + counts["fails"]
        if counts["pass_rate"] is None:
            lines.append(f"- {name}: not run")
            continue
        mark = "✓" if counts["fails"] == 0 else "✗"
        lines.append(
            f"{mark} {name}: {counts['pass_rate']:.2%} ({counts['passes']}/{total} passed, {counts['fails']} failed)"
        )
    lines.append(f"Overall: {checks['pass_rate']:.2%} ({checks['passes']} passed, {checks['fails']} failed)")

    lines.extend([
        "",
        "## HTTP",
        f"- requests: {http['total_requests']} ({http['throughput_rps']:.2f}/s)",
        f"- failed: {http['failed_requests']} ({http['failure_rate']:.2%})",
    ])
    for name, request in http["requests"].items():
        latency = request["latency"]
        if latency:
            lines.append(
                f"- {name}: count={request['count']} avg={latency['mean_ms']:.2f}ms "
                f"p90={latency['p90_ms']:.2f}ms p95={latency['p95_ms']:.2f}ms max={latency['max_ms']:.2f}ms"
            )
        else:
            lines.append(f"- {name}: count={request['count']} (no responses)")

    lines.extend([
        "",
        "## Iterations",
        f"- completed: {iterations['completed']} ({iterations['rate_per_second']:.2f}/s)",
        f"- interrupted: {iterations['interrupted']}",
        f"- max per virtual user: {iterations['max_per_vu']}",
    ])

    generator = summary.get("generator")
    if generator:
        lines.extend([
            "",
            "## Load Generator",
            f"- cpu: mean={generator['cpu_percent']['mean']:.1f}% max={generator['cpu_percent']['max']:.1f}%",
            f"- memory: max={generator['memory_mb']['max']:.1f}MB",
        ])

    if summary.get("thresholds"):
        lines.extend(["", "## Thresholds"])
        for name, passed in summary["thresholds"].items():
            status = "✅ PASS" if passed else "❌ FAIL"
            lines.append(f"- {name}: {status}")

    return "\n".join(lines)


def save_results(summary: Dict[str, Any], output_path: str) -> None:
    """Save the run summary as JSON."""
    with open(output_path, "w") as f:
        json.dump(summary, f, indent=2, default=str)

    logger.info("Load test results saved", path=output_path)
