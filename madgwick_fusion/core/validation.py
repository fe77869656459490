"""Input validation for sensor data and filter state.

Readings are judged by what each sensor contributes to a filter step.
The gyroscope and the timestamp drive every update, so a fault in either
rejects the reading. The accelerometer and magnetometer only steer the
gradient correction: a missing sample is expected, and a saturated or
implausible one is dropped so the estimator runs the update variant for
the sensors that remain.
"""

from typing import List, Optional, Sequence
import numpy as np

from .types import ImuReading, ValidationResult, Quaternion
from .config import Config

ACCELEROMETER = "acc"
MAGNETOMETER = "mag"

SEQ_MODULUS = 2**32


def _saturated_axes(values: Sequence[float], limit: float) -> List[str]:
    """Names of the axes whose magnitude exceeds ``limit``."""
    return [axis for axis, value in zip("xyz", values) if abs(value) > limit]


class SensorValidator:
    """Decides whether a reading may drive the filter, and with which sensors.

    Non-finite values anywhere mark a corrupt frame and reject the
    reading. So do a saturated gyroscope and a timestamp that does not
    advance. Reference sensors that cannot be trusted are listed in
    ``ValidationResult.dropped_sensors`` instead.
    """

    def __init__(self, config: Config):
        self._sensor_cfg = config.sensor
        self._last_seq: Optional[int] = None
        self._last_timestamp: Optional[float] = None

    def validate_reading(self, reading: ImuReading) -> ValidationResult:
        """Validate one reading.

        Args:
            reading: IMU measurement to validate.

        Returns:
            ValidationResult. Errors reject the reading; dropped sensors
            must be treated as missing for this step.
        """
        result = ValidationResult(is_valid=True)

        for label, values in (
            ("timestamp", (reading.timestamp,)),
            ("gyroscope", reading.gyr),
            ("accelerometer", reading.acc),
            ("magnetometer", reading.mag),
        ):
            if not np.all(np.isfinite(values)):
                result.add_error(f"Non-finite {label} value: {values}")
        if not result.is_valid:
            return result

        self._check_propagation(reading, result)
        self._check_gravity_reference(reading, result)
        self._check_field_reference(reading, result)

        self._last_seq = reading.seq
        self._last_timestamp = reading.timestamp
        return result

    def _check_propagation(self, reading: ImuReading, result: ValidationResult) -> None:
        """Gyroscope range, time ordering and sequence continuity."""
        limit = np.deg2rad(self._sensor_cfg.gyroscope.range_dps)
        axes = _saturated_axes(reading.gyr, limit)
        if axes:
            result.add_error(
                f"Gyroscope saturated on {','.join(axes)}: "
                f"{np.round(np.rad2deg(reading.gyr), 1)} deg/s"
            )

        if self._last_timestamp is not None:
            dt = reading.timestamp - self._last_timestamp
            if dt <= 0:
                result.add_error(f"Non-monotonic timestamp: dt={dt:.6f}s")

        if self._last_seq is not None:
            expected = (self._last_seq + 1) % SEQ_MODULUS
            if reading.seq != expected:
                result.add_warning(f"Sequence gap: expected {expected}, got {reading.seq}")

    def _check_gravity_reference(self, reading: ImuReading, result: ValidationResult) -> None:
        if not reading.has_acc:
            result.add_warning("Accelerometer sample missing")
            return

        cfg = self._sensor_cfg.accelerometer
        axes = _saturated_axes(reading.acc, cfg.range_g * cfg.gravity_nominal)
        if axes:
            result.drop(ACCELEROMETER, f"Accelerometer saturated on {','.join(axes)}")
            return

        # Linear acceleration biases the tilt correction but keeps it usable
        magnitude = reading.acc_magnitude
        if abs(magnitude - cfg.gravity_nominal) > cfg.gravity_tolerance:
            result.add_warning(
                f"Acceleration magnitude {magnitude:.2f} m/s^2 deviates from gravity"
            )

    def _check_field_reference(self, reading: ImuReading, result: ValidationResult) -> None:
        if not reading.has_mag:
            result.add_warning("Magnetometer sample missing")
            return

        cfg = self._sensor_cfg.magnetometer
        axes = _saturated_axes(reading.mag, cfg.range_ut)
        if axes:
            result.drop(MAGNETOMETER, f"Magnetometer saturated on {','.join(axes)}")
            return

        strength = reading.mag_magnitude
        if strength < cfg.min_field_ut:
            result.drop(MAGNETOMETER, f"Magnetic field too weak: {strength:.1f} uT")
        elif strength > cfg.max_field_ut:
            result.drop(MAGNETOMETER, f"Magnetic field too strong: {strength:.1f} uT")

    def reset(self) -> None:
        """Forget the previous sequence number and timestamp."""
        self._last_seq = None
        self._last_timestamp = None


class QuaternionValidator:
    """Detects a corrupted filter quaternion.

    Every update renormalizes, so any norm error beyond rounding means
    the state was damaged from outside the update path.
    """

    def __init__(self, config: Config):
        cfg = config.validation.quaternion
        self._norm_tolerance = cfg.norm_tolerance
        self._divergence_threshold = cfg.divergence_threshold

    def validate(self, q: Quaternion) -> ValidationResult:
        result = ValidationResult(is_valid=True)
        if not q.is_finite():
            result.add_error("Quaternion contains non-finite values")
            return result

        norm = q.norm
        if abs(norm - 1.0) > self._divergence_threshold:
            result.add_error(f"Quaternion diverged: norm={norm:.4f}")
        elif abs(norm - 1.0) > self._norm_tolerance:
            result.add_warning(f"Quaternion norm drift: {norm:.9f}")
        return result

    def needs_reinitialization(self, q: Quaternion) -> bool:
        """True if the filter must be reset before the next update."""
        return not self.validate(q).is_valid


def validate_dt(dt: float, config: Config) -> ValidationResult:
    """Check a time step before it is handed to the filter.

    Non-finite or non-positive steps are errors. Steps outside the
    configured window are only warned about since the filter integrates
    any positive dt.
    """
    result = ValidationResult(is_valid=True)
    if not np.isfinite(dt):
        result.add_error(f"Non-finite dt: {dt}")
        return result
    if dt <= 0:
        result.add_error(f"Non-positive dt: {dt}")
        return result

    cfg = config.validation.timestamp
    if dt < cfg.min_dt_s:
        result.add_warning(f"dt too small: {dt * 1000:.2f}ms")
    elif dt > cfg.max_dt_s:
        result.add_warning(f"dt too large: {dt * 1000:.2f}ms")
    return result
