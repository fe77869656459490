"""Tests for sensor data and filter state validation."""

import pytest

from madgwick_fusion.core.types import ImuReading, Quaternion
from madgwick_fusion.core.validation import (
    ACCELEROMETER,
    MAGNETOMETER,
    QuaternionValidator,
    SensorValidator,
    validate_dt,
)


def make_reading(**overrides) -> ImuReading:
    """Stationary level reading with optional field overrides."""
    values = dict(
        seq=1, timestamp=1000.0,
        ax=0.0, ay=0.0, az=9.81,
        gx=0.0, gy=0.0, gz=0.0,
        mx=20.0, my=0.0, mz=-43.0,
    )
    values.update(overrides)
    return ImuReading(**values)


class TestSensorValidator:
    """Tests for SensorValidator class."""

    def test_valid_reading_passes(self, config, sample_imu_reading):
        """Valid IMU reading should pass without warnings."""
        result = SensorValidator(config).validate_reading(sample_imu_reading)

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.dropped_sensors == []

    def test_nan_values_detected(self, config, invalid_reading_nan):
        """NaN anywhere rejects the whole reading."""
        result = SensorValidator(config).validate_reading(invalid_reading_nan)

        assert not result.is_valid
        assert any("Non-finite accelerometer" in e for e in result.errors)

    def test_inf_values_detected(self, config, invalid_reading_inf):
        """Inf values should be detected as errors."""
        result = SensorValidator(config).validate_reading(invalid_reading_inf)

        assert not result.is_valid
        assert any("Non-finite" in e for e in result.errors)

    def test_non_finite_timestamp(self, config):
        result = SensorValidator(config).validate_reading(make_reading(timestamp=float("nan")))

        assert not result.is_valid
        assert any("Non-finite timestamp" in e for e in result.errors)

    def test_saturated_accelerometer_dropped(self, config, reading_out_of_range):
        """Saturated accelerometer is dropped, the reading still passes."""
        result = SensorValidator(config).validate_reading(reading_out_of_range)

        assert result.is_valid
        assert result.dropped_sensors == [ACCELEROMETER]
        assert any("Accelerometer saturated on x" in w for w in result.warnings)

    def test_saturated_gyroscope_rejected(self, config):
        """Angular rate beyond the gyroscope range rejects the reading."""
        result = SensorValidator(config).validate_reading(make_reading(gz=-100.0))

        assert not result.is_valid
        assert any("Gyroscope saturated on z" in e for e in result.errors)

    def test_saturated_magnetometer_dropped(self, config):
        result = SensorValidator(config).validate_reading(make_reading(mx=5000.0))

        assert result.is_valid
        assert result.dropped_sensors == [MAGNETOMETER]

    def test_missing_accelerometer_is_warning(self, config):
        """Zero accelerometer marks a missing sample, not an error."""
        result = SensorValidator(config).validate_reading(make_reading(az=0.0))

        assert result.is_valid
        assert result.dropped_sensors == []
        assert any("Accelerometer sample missing" in w for w in result.warnings)

    def test_missing_magnetometer_is_warning(self, config):
        """Zero magnetometer marks a missing sample, not an error."""
        result = SensorValidator(config).validate_reading(make_reading(mx=0.0, mz=0.0))

        assert result.is_valid
        assert result.dropped_sensors == []
        assert any("Magnetometer sample missing" in w for w in result.warnings)

    def test_gravity_deviation_warning(self, config):
        """Acceleration far from 1 g warns but keeps the accelerometer."""
        result = SensorValidator(config).validate_reading(make_reading(az=15.0))

        assert result.is_valid
        assert result.dropped_sensors == []
        assert any("deviates" in w for w in result.warnings)

    @pytest.mark.parametrize("field,expected", [
        ((1.0, 1.0, 1.0), "too weak"),
        ((100.0, 100.0, 100.0), "too strong"),
    ])
    def test_implausible_field_dropped(self, config, field, expected):
        """Implausible field magnitude drops the magnetometer."""
        mx, my, mz = field
        result = SensorValidator(config).validate_reading(make_reading(mx=mx, my=my, mz=mz))

        assert result.is_valid
        assert result.dropped_sensors == [MAGNETOMETER]
        assert any(expected in w for w in result.warnings)

    def test_sequence_gap_detection(self, config):
        """Sequence gaps should be detected as warnings."""
        validator = SensorValidator(config)
        validator.validate_reading(make_reading(seq=10))
        result = validator.validate_reading(make_reading(seq=15, timestamp=1000.005))

        assert result.is_valid
        assert any("Sequence gap" in w for w in result.warnings)

    def test_sequence_wraps(self, config):
        validator = SensorValidator(config)
        validator.validate_reading(make_reading(seq=2**32 - 1))
        result = validator.validate_reading(make_reading(seq=0, timestamp=1000.005))

        assert result.warnings == []

    def test_non_monotonic_timestamp(self, config):
        """Timestamps going backwards should be errors."""
        validator = SensorValidator(config)
        validator.validate_reading(make_reading(seq=1))
        result = validator.validate_reading(make_reading(seq=2, timestamp=999.0))

        assert not result.is_valid
        assert any("Non-monotonic" in e for e in result.errors)

    def test_reset_clears_state(self, config, sample_imu_reading):
        """Reset should forget the previous sequence and timestamp."""
        validator = SensorValidator(config)
        validator.validate_reading(sample_imu_reading)
        validator.reset()

        result = validator.validate_reading(make_reading(seq=100, timestamp=2.0))

        assert result.is_valid
        assert result.warnings == []


class TestQuaternionValidator:
    """Tests for QuaternionValidator class."""

    def test_valid_quaternion(self, config, identity_quaternion):
        """Unit quaternion should pass validation."""
        result = QuaternionValidator(config).validate(identity_quaternion)

        assert result.is_valid
        assert result.errors == []

    def test_norm_drift_warning(self, config):
        """Small norm error should warn only."""
        result = QuaternionValidator(config).validate(Quaternion(w=0.95, x=0.0, y=0.0, z=0.0))

        assert result.is_valid
        assert any("drift" in w for w in result.warnings)

    def test_diverged_quaternion_error(self, config):
        """Large norm error should be an error."""
        result = QuaternionValidator(config).validate(Quaternion(w=0.5, x=0.0, y=0.0, z=0.0))

        assert not result.is_valid
        assert any("diverged" in e for e in result.errors)

    def test_nan_quaternion(self, config):
        """Quaternion with NaN should be an error."""
        result = QuaternionValidator(config).validate(
            Quaternion(w=float("nan"), x=0.0, y=0.0, z=0.0)
        )

        assert not result.is_valid
        assert any("non-finite" in e for e in result.errors)

    def test_needs_reinitialization(self, config):
        """Corrupted state should require a reset."""
        validator = QuaternionValidator(config)

        assert not validator.needs_reinitialization(Quaternion.identity())
        assert validator.needs_reinitialization(Quaternion(w=0.5, x=0.0, y=0.0, z=0.0))
        assert validator.needs_reinitialization(
            Quaternion(w=float("inf"), x=0.0, y=0.0, z=0.0)
        )


class TestValidateDt:
    """Tests for validate_dt function."""

    def test_valid_dt(self, config):
        assert validate_dt(0.005, config).is_valid

    @pytest.mark.parametrize("dt", [-0.01, 0.0])
    def test_non_positive_dt(self, config, dt):
        """Zero or negative dt should fail."""
        result = validate_dt(dt, config)
        assert not result.is_valid
        assert any("Non-positive" in e for e in result.errors)

    def test_nan_dt(self, config):
        result = validate_dt(float("nan"), config)
        assert not result.is_valid
        assert any("Non-finite" in e for e in result.errors)

    def test_dt_too_large(self, config):
        """Large dt should trigger warning."""
        result = validate_dt(0.5, config)
        assert result.is_valid
        assert any("too large" in w for w in result.warnings)

    def test_dt_too_small(self, config):
        """Small dt should trigger warning."""
        result = validate_dt(0.0001, config)
        assert result.is_valid
        assert any("too small" in w for w in result.warnings)
