"""Update-rate and loop-timing metrics for the fusion loop.

The filter's gains and its default time step assume the configured
sample rate. This monitor measures the rate actually delivered by the
sample source so a mismatch can be reported.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Optional, Deque
import numpy as np

from ..core.config import Config

logger = logging.getLogger(__name__)


@dataclass
class LoopMetrics:
    """Metrics for a single loop iteration."""
    timestamp: float
    dt_ms: float
    loop_time_ms: float
    iteration: int


@dataclass
class PerformanceStats:
    """Aggregated performance statistics."""
    mean_dt_ms: float
    std_dt_ms: float
    max_dt_ms: float
    min_dt_ms: float
    mean_loop_time_ms: float
    max_loop_time_ms: float
    effective_rate_hz: float
    target_rate_hz: float
    rate_error: float
    dropped_samples: int
    total_iterations: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "rate_hz": self.effective_rate_hz,
            "target_rate_hz": self.target_rate_hz,
            "rate_error": self.rate_error,
            "dt_mean_ms": self.mean_dt_ms,
            "dt_std_ms": self.std_dt_ms,
            "loop_time_ms": self.mean_loop_time_ms,
            "dropped_samples": self.dropped_samples,
            "iterations": self.total_iterations,
        }


class PerformanceMonitor:
    """Monitors the delivered sample rate against the configured one.

    Tracks timing statistics from sample timestamps, detects jitter,
    dropped samples and a sustained rate mismatch, and logs periodic
    reports.
    """

    def __init__(self, config: Config):
        """Initialize performance monitor.

        Args:
            config: System configuration with filter and monitoring settings.
        """
        self._mon_cfg = config.monitoring
        self._timing_cfg = config.monitoring.loop_timing

        window = self._mon_cfg.window_size
        self._dt_history: Deque[float] = deque(maxlen=window)
        self._loop_time_history: Deque[float] = deque(maxlen=window)

        self._iteration = 0
        self._dropped_samples = 0
        self._last_timestamp: Optional[float] = None
        self._last_log_timestamp: Optional[float] = None
        self._loop_start_time: Optional[float] = None
        self._mismatch_reported = False

        self._target_rate_hz = config.filter.sample_rate_hz
        self._target_dt_ms = 1000.0 / self._target_rate_hz
        self._jitter_threshold = self._timing_cfg.jitter_warning_ms

    def start_iteration(self) -> None:
        """Mark the start of a loop iteration."""
        self._loop_start_time = time.perf_counter()

    def end_iteration(self, timestamp: float) -> LoopMetrics:
        """Mark the end of a loop iteration and compute metrics.

        Args:
            timestamp: Timestamp of the sample just processed (seconds).

        Returns:
            Metrics for this iteration.
        """
        loop_time_ms = 0.0
        if self._loop_start_time is not None:
            loop_time_ms = (time.perf_counter() - self._loop_start_time) * 1000
            self._loop_start_time = None

        dt_ms = 0.0
        if self._last_timestamp is not None:
            dt_ms = (timestamp - self._last_timestamp) * 1000
            self._dt_history.append(dt_ms)

            expected_samples = int(dt_ms / self._target_dt_ms + 0.5)
            if expected_samples > 1:
                self._dropped_samples += expected_samples - 1

            if abs(dt_ms - self._target_dt_ms) > self._jitter_threshold:
                logger.debug(
                    "High jitter: dt=%.2f ms (target=%.2f ms)",
                    dt_ms, self._target_dt_ms
                )

        self._loop_time_history.append(loop_time_ms)
        self._last_timestamp = timestamp
        self._iteration += 1

        self._check_rate()
        self._maybe_log_stats(timestamp)

        return LoopMetrics(
            timestamp=timestamp,
            dt_ms=dt_ms,
            loop_time_ms=loop_time_ms,
            iteration=self._iteration,
        )

    def _check_rate(self) -> None:
        """Warn once when the delivered rate leaves the tolerance band."""
        if len(self._dt_history) < self._dt_history.maxlen // 10 + 1:
            return
        mismatch = self.rate_mismatch
        if mismatch and not self._mismatch_reported:
            stats = self.get_stats()
            logger.warning(
                "Sample rate %.1f Hz differs from configured %.1f Hz (%.1f%%); "
                "filter gains assume the configured rate",
                stats.effective_rate_hz, self._target_rate_hz, stats.rate_error * 100
            )
        self._mismatch_reported = mismatch

    def _maybe_log_stats(self, timestamp: float) -> None:
        """Log statistics every log interval of sample time."""
        if self._last_log_timestamp is None:
            self._last_log_timestamp = timestamp
            return

        if timestamp - self._last_log_timestamp >= self._mon_cfg.log_interval_s:
            stats = self.get_stats()
            logger.info(
                "Performance: rate=%.1f Hz, dt=%.2f+/-%.2f ms, "
                "loop=%.2f ms, dropped=%d",
                stats.effective_rate_hz,
                stats.mean_dt_ms,
                stats.std_dt_ms,
                stats.mean_loop_time_ms,
                stats.dropped_samples,
            )
            self._last_log_timestamp = timestamp

    @property
    def rate_mismatch(self) -> bool:
        """True if the measured rate is outside the configured tolerance."""
        if not self._dt_history:
            return False
        return self.get_stats().rate_error > self._timing_cfg.rate_tolerance

    def get_stats(self) -> PerformanceStats:
        """Get aggregated performance statistics.

        Returns:
            PerformanceStats with current metrics.
        """
        if not self._dt_history:
            return PerformanceStats(
                mean_dt_ms=0.0,
                std_dt_ms=0.0,
                max_dt_ms=0.0,
                min_dt_ms=0.0,
                mean_loop_time_ms=0.0,
                max_loop_time_ms=0.0,
                effective_rate_hz=0.0,
                target_rate_hz=self._target_rate_hz,
                rate_error=0.0,
                dropped_samples=self._dropped_samples,
                total_iterations=self._iteration,
            )

        dt_array = np.array(self._dt_history)
        loop_array = np.array(self._loop_time_history)

        mean_dt = float(np.mean(dt_array))
        effective_rate = 1000.0 / mean_dt if mean_dt > 0 else 0.0
        rate_error = abs(effective_rate - self._target_rate_hz) / self._target_rate_hz

        return PerformanceStats(
            mean_dt_ms=mean_dt,
            std_dt_ms=float(np.std(dt_array)),
            max_dt_ms=float(np.max(dt_array)),
            min_dt_ms=float(np.min(dt_array)),
            mean_loop_time_ms=float(np.mean(loop_array)),
            max_loop_time_ms=float(np.max(loop_array)),
            effective_rate_hz=effective_rate,
            target_rate_hz=self._target_rate_hz,
            rate_error=rate_error,
            dropped_samples=self._dropped_samples,
            total_iterations=self._iteration,
        )

    def reset(self) -> None:
        """Reset all metrics."""
        self._dt_history.clear()
        self._loop_time_history.clear()
        self._iteration = 0
        self._dropped_samples = 0
        self._last_timestamp = None
        self._last_log_timestamp = None
        self._loop_start_time = None
        self._mismatch_reported = False
