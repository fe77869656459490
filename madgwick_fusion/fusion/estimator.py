"""Orientation estimator with input validation and automatic recovery.

This module wraps the Madgwick filter with the host-side duties the
filter itself does not perform: validating readings, choosing the update
variant from the sensors present in each reading, deriving the time step
from timestamps, and resetting the filter when its state is corrupted.
"""

import logging
from typing import Iterable, List, Optional
import numpy as np
from numpy.typing import NDArray

from ..core.config import Config
from ..core.quaternion import QuaternionOps
from ..core.types import (
    EstimatorHealth,
    EulerAngles,
    ImuReading,
    Quaternion,
    UpdateResult,
    UpdateStatus,
)
from ..core.validation import (
    ACCELEROMETER,
    MAGNETOMETER,
    QuaternionValidator,
    SensorValidator,
    validate_dt,
)
from .madgwick import MadgwickFilter
from .sink import OrientationSink

logger = logging.getLogger(__name__)


class OrientationEstimator:
    """Madgwick filter driven by :class:`ImuReading` samples.

    Provides:
    - Reading validation (finite values, plausible ranges, timestamps)
    - Update variant selection (AHRS, IMU or magnetometer-only)
    - Time step from sample timestamps or the configured sample rate
    - Corruption detection and automatic filter reset
    """

    def __init__(
        self,
        config: Config,
        sinks: Optional[Iterable[OrientationSink]] = None,
        use_timestamps: bool = True,
    ):
        """Initialize estimator.

        Args:
            config: System configuration.
            sinks: Orientation consumers, notified only with quaternions
                that pass the corruption check.
            use_timestamps: Derive dt from reading timestamps; otherwise
                every step uses the configured sample period.
        """
        self._config = config
        self._filter = MadgwickFilter(config.filter)
        self._sinks: List[OrientationSink] = list(sinks) if sinks is not None else []
        self._sensor_validator = SensorValidator(config)
        self._quat_validator = QuaternionValidator(config)
        self._use_timestamps = use_timestamps

        self._last_timestamp: Optional[float] = None
        self._last_result: Optional[UpdateResult] = None
        self._reset_count = 0
        self._rejected = 0
        self._dropped = 0
        self._consecutive_corrections = 0

    def initialize(
        self,
        acc_samples: NDArray[np.float64],
        mag_samples: Optional[NDArray[np.float64]] = None,
        gyr_samples: Optional[NDArray[np.float64]] = None,
    ) -> Quaternion:
        """Align the initial orientation from stationary samples.

        Without magnetometer samples only roll and pitch are aligned.

        Args:
            acc_samples: Accelerometer samples (N x 3).
            mag_samples: Magnetometer samples (N x 3), optional.
            gyr_samples: Gyroscope samples (N x 3), optional; only used
                to warn when the device was moving.

        Returns:
            Initial orientation quaternion.

        Raises:
            ValueError: If insufficient samples provided.
        """
        min_samples = self._config.initialization.min_samples
        acc_samples = np.asarray(acc_samples, dtype=np.float64)

        if len(acc_samples) < min_samples:
            raise ValueError(
                f"Insufficient samples: need {min_samples}, got acc={len(acc_samples)}"
            )

        acc_mean = np.mean(acc_samples, axis=0)
        acc_magnitude = float(np.linalg.norm(acc_mean))
        if acc_magnitude == 0.0:
            raise ValueError("Accelerometer samples average to zero")

        initial_tilt = np.rad2deg(np.arccos(np.clip(acc_mean[2] / acc_magnitude, -1.0, 1.0)))
        max_tilt = self._config.initialization.max_tilt_deg
        if initial_tilt > max_tilt:
            logger.warning(
                "Initial tilt (%.1f deg) exceeds threshold (%.1f deg)",
                initial_tilt, max_tilt
            )

        if gyr_samples is not None and len(gyr_samples) > 0:
            gyr = np.asarray(gyr_samples, dtype=np.float64)
            max_rate_dps = float(np.rad2deg(np.max(np.linalg.norm(gyr, axis=1))))
            threshold = self._config.sensor.gyroscope.stationary_threshold_dps
            if max_rate_dps >= threshold:
                logger.warning(
                    "Device not stationary during alignment (%.1f deg/s)", max_rate_dps
                )

        if mag_samples is not None and len(mag_samples) > 0:
            mag_mean = np.mean(np.asarray(mag_samples, dtype=np.float64), axis=0)
            q0 = QuaternionOps.from_acc_mag(acc_mean, mag_mean)
        else:
            q0 = QuaternionOps.from_acc(acc_mean)

        self._filter.reset(q0)
        self._last_timestamp = None

        euler = QuaternionOps.to_euler(q0)
        logger.info(
            "Orientation initialized: roll=%.1f, pitch=%.1f, yaw=%.1f deg",
            euler.roll_deg, euler.pitch_deg, euler.yaw_deg
        )
        return q0

    def update(self, reading: ImuReading, dt: Optional[float] = None) -> Optional[UpdateResult]:
        """Process one reading.

        Args:
            reading: IMU measurement.
            dt: Explicit time step; overrides timestamps and sample rate.

        Returns:
            The filter result, or None if the reading was rejected.
        """
        validation = self._sensor_validator.validate_reading(reading)
        if not validation.is_valid:
            self._rejected += 1
            for error in validation.errors:
                logger.warning("Rejected reading %d: %s", reading.seq, error)
            return None

        for warning in validation.warnings:
            logger.debug("Reading %d: %s", reading.seq, warning)

        step = self._step_for(reading, dt)
        if step is None:
            self._rejected += 1
            return None

        if self.needs_reinitialization():
            self._recover()

        use_acc = reading.has_acc and ACCELEROMETER not in validation.dropped_sensors
        use_mag = reading.has_mag and MAGNETOMETER not in validation.dropped_sensors
        self._dropped += len(validation.dropped_sensors)

        if use_acc and use_mag:
            result = self._filter.update(reading.gyr, reading.acc, reading.mag, dt=step)
        elif use_mag:
            result = self._filter.update_mag(reading.gyr, reading.mag, dt=step)
        else:
            acc = reading.acc if use_acc else np.zeros(3)
            result = self._filter.update_imu(reading.gyr, acc, dt=step)

        if result.status is UpdateStatus.CORRECTED:
            self._consecutive_corrections += 1
        else:
            self._consecutive_corrections = 0

        if self._quat_validator.needs_reinitialization(result.quaternion):
            self._recover()
            return None

        for sink in self._sinks:
            sink.publish(result.quaternion)

        self._last_result = result
        return result

    def _step_for(self, reading: ImuReading, dt: Optional[float]) -> Optional[float]:
        """Time step for ``reading``, or None if it is unusable."""
        last = self._last_timestamp
        self._last_timestamp = reading.timestamp

        if dt is None:
            if not self._use_timestamps or last is None:
                return self._filter.sample_period
            dt = reading.timestamp - last

        dt_validation = validate_dt(dt, self._config)
        if not dt_validation.is_valid:
            logger.warning("Invalid dt: %s", dt_validation.errors)
            return None
        for warning in dt_validation.warnings:
            logger.debug("dt warning: %s", warning)
        return float(dt)

    def _recover(self) -> None:
        """Reset a corrupted filter."""
        self._reset_count += 1
        logger.warning("Filter state corrupted, reset #%d", self._reset_count)
        self._filter.reset()
        self._consecutive_corrections = 0

    def reset(self) -> None:
        """Reset filter and validators."""
        self._filter.reset()
        self._sensor_validator.reset()
        self._last_timestamp = None
        self._last_result = None
        self._consecutive_corrections = 0

    def needs_reinitialization(self) -> bool:
        """Check if the filter state is corrupted."""
        return self._quat_validator.needs_reinitialization(self._filter.quaternion)

    @property
    def health(self) -> EstimatorHealth:
        """Get estimator health metrics."""
        return EstimatorHealth(
            quaternion_norm=self._filter.quaternion.norm,
            is_diverged=self.needs_reinitialization(),
            reset_count=self._reset_count,
            rejected_readings=self._rejected,
            consecutive_corrections=self._consecutive_corrections,
            dropped_references=self._dropped,
            last_status=self._last_result.status if self._last_result else None,
        )

    @property
    def filter(self) -> MadgwickFilter:
        """Underlying Madgwick filter."""
        return self._filter

    @property
    def quaternion(self) -> Quaternion:
        """Current orientation quaternion."""
        return self._filter.quaternion

    @property
    def euler(self) -> EulerAngles:
        """Current Euler angles."""
        return QuaternionOps.to_euler(self._filter.quaternion)

    @property
    def gyro_bias(self) -> NDArray[np.float64]:
        """Current gyroscope bias estimate."""
        return self._filter.gyro_bias

    @property
    def last_result(self) -> Optional[UpdateResult]:
        """Result of the most recent accepted update."""
        return self._last_result
