"""Resource profiling for the load generator itself.

A load test is only meaningful while the generator has headroom: when the
driver process saturates its CPU, latency numbers describe the client, not
the server. ``SystemProfiler`` samples the current process with ``psutil``
on a background thread during the run and reports summary statistics next
to the request metrics.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
import psutil
import structlog

logger = structlog.get_logger("profiler")


@dataclass
class ResourceSample:
    """One sample of the generator process."""
    timestamp: float
    cpu_percent: float
    memory_mb: float
    memory_percent: float
    threads: int


class SystemProfiler:
    """Profiles load-generator resource usage.

    Spawns a lightweight daemon thread that samples the current process and
    records a bounded history for summary statistics.
    """

    def __init__(self, interval: float = 1.0, max_samples: int = 1000):
        self.interval = interval
        self.max_samples = max_samples
        self.samples: deque = deque(maxlen=max_samples)
        self.is_profiling = False
        self.profile_thread: Optional[threading.Thread] = None
        self.process = psutil.Process()
        self._stop = threading.Event()

    def start_profiling(self):
        """Start continuous sampling."""
        if self.is_profiling:
            return

        self.is_profiling = True
        self._stop.clear()
        # Prime cpu_percent; the first call always returns 0.0
        self.process.cpu_percent()
        self.profile_thread = threading.Thread(target=self._profile_loop, daemon=True)
        self.profile_thread.start()

        logger.info("Generator profiling started", interval=self.interval)

    def stop_profiling(self):
        """Stop sampling and wait for the thread to exit."""
        self.is_profiling = False
        self._stop.set()
        if self.profile_thread:
            self.profile_thread.join(timeout=5)

        logger.info("Generator profiling stopped", samples_collected=len(self.samples))

    def _profile_loop(self):
        while not self._stop.is_set():
            try:
                self.samples.append(self.collect_sample())
            except psutil.Error as e:
                logger.error("Error collecting generator sample", error=str(e))
            self._stop.wait(self.interval)

    def collect_sample(self) -> ResourceSample:
        """Sample CPU%, RSS and thread count of the current process."""
        memory_info = self.process.memory_info()
        return ResourceSample(
            timestamp=time.time(),
            cpu_percent=self.process.cpu_percent(),
            memory_mb=memory_info.rss / 1024 / 1024,
            memory_percent=self.process.memory_percent(),
            threads=self.process.num_threads(),
        )

    def get_summary_stats(self) -> Dict[str, Any]:
        """Summary statistics over the collected samples."""
        if not self.samples:
            return {}

        samples = list(self.samples)

        def calc_stats(values):
            return {
                "mean": float(np.mean(values)),
                "p95": float(np.percentile(values, 95)),
                "max": float(np.max(values)),
            }

        return {
            "sample_count": len(samples),
            "duration_seconds": samples[-1].timestamp - samples[0].timestamp,
            "cpu_percent": calc_stats([s.cpu_percent for s in samples]),
            "memory_mb": calc_stats([s.memory_mb for s in samples]),
            "memory_percent": calc_stats([s.memory_percent for s in samples]),
            "threads": calc_stats([s.threads for s in samples]),
        }
