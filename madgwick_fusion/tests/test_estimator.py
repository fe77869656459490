"""Tests for the orientation estimator."""

import logging

import pytest
import numpy as np

from madgwick_fusion.core.config import Config, FilterConfig
from madgwick_fusion.core.quaternion import QuaternionOps
from madgwick_fusion.core.types import ImuReading, Quaternion, UpdateResult, UpdateStatus
from madgwick_fusion.fusion.estimator import OrientationEstimator
from madgwick_fusion.fusion.sink import MemorySink


def reading_at(t: float, seq: int = 0, acc=(0.0, 0.0, 9.81), mag=(20.0, 0.0, -43.0),
               gyr=(0.0, 0.0, 0.0)) -> ImuReading:
    return ImuReading(
        timestamp=t,
        ax=acc[0], ay=acc[1], az=acc[2],
        gx=gyr[0], gy=gyr[1], gz=gyr[2],
        mx=mag[0], my=mag[1], mz=mag[2],
        seq=seq,
    )


@pytest.fixture
def estimator(config) -> OrientationEstimator:
    return OrientationEstimator(config)


class TestInitialization:
    """Tests for initial alignment."""

    def test_initialize_level(self, estimator, acc_samples, mag_samples):
        """Level stationary samples give near-identity orientation."""
        q = estimator.initialize(acc_samples, mag_samples)

        assert q.is_valid()
        assert QuaternionOps.angle_between(q, Quaternion.identity()) < np.deg2rad(1.0)
        assert estimator.quaternion == q.normalized()

    def test_initialize_heading(self, estimator, acc_samples):
        """Magnetometer samples set the initial yaw."""
        q_true = QuaternionOps.from_axis_angle(np.array([0.0, 0.0, 1.0]), np.deg2rad(45.0))
        mag = QuaternionOps.inverse_rotate_vector(q_true, np.array([20.0, 0.0, -43.0]))

        estimator.initialize(acc_samples, np.tile(mag, (20, 1)))

        assert estimator.euler.yaw_deg == pytest.approx(45.0, abs=1.0)

    def test_initialize_acc_only(self, estimator):
        """Without magnetometer only tilt is aligned."""
        roll = np.deg2rad(10.0)
        acc = np.tile(9.81 * np.array([0.0, np.sin(roll), np.cos(roll)]), (20, 1))

        estimator.initialize(acc)

        assert estimator.euler.roll_deg == pytest.approx(10.0, abs=1e-6)
        assert estimator.euler.yaw_deg == pytest.approx(0.0, abs=1e-6)

    def test_insufficient_samples(self, estimator):
        with pytest.raises(ValueError, match="Insufficient samples"):
            estimator.initialize(np.tile([0.0, 0.0, 9.81], (3, 1)))

    def test_tilt_warning(self, estimator, caplog):
        """Large initial tilt is logged."""
        acc = np.tile([9.81, 0.0, 0.0], (20, 1))
        with caplog.at_level(logging.WARNING):
            estimator.initialize(acc)
        assert "exceeds threshold" in caplog.text

    def test_motion_warning(self, estimator, acc_samples, caplog):
        """Rotation during alignment is logged."""
        gyr = np.tile([0.0, 0.0, 1.0], (len(acc_samples), 1))
        with caplog.at_level(logging.WARNING):
            estimator.initialize(acc_samples, gyr_samples=gyr)
        assert "not stationary" in caplog.text


class TestUpdate:
    """Tests for per-reading updates."""

    def test_variant_selection(self, estimator):
        """The sensors present choose the update variant."""
        assert estimator.update(reading_at(0.000, 0)).mode == "ahrs"
        assert estimator.update(reading_at(0.005, 1, mag=(0.0, 0.0, 0.0))).mode == "imu"
        assert estimator.update(reading_at(0.010, 2, acc=(0.0, 0.0, 0.0))).mode == "mag"

    def test_no_references(self, estimator):
        """Reading with only a gyroscope propagates."""
        result = estimator.update(reading_at(0.0, acc=(0.0, 0.0, 0.0), mag=(0.0, 0.0, 0.0)))
        assert result.status is UpdateStatus.ACCEL_MISSING

    def test_dt_from_timestamps(self, estimator):
        """First reading uses the sample period, later ones the timestamp gap."""
        first = estimator.update(reading_at(10.0, 0))
        second = estimator.update(reading_at(10.01, 1))

        assert first.dt == pytest.approx(0.005)
        assert second.dt == pytest.approx(0.01)

    def test_fixed_dt(self, config):
        """Timestamps are ignored when disabled."""
        estimator = OrientationEstimator(config, use_timestamps=False)
        estimator.update(reading_at(10.0, 0))
        result = estimator.update(reading_at(10.05, 1))
        assert result.dt == pytest.approx(0.005)

    def test_explicit_dt(self, estimator):
        result = estimator.update(reading_at(0.0), dt=0.02)
        assert result.dt == 0.02

    def test_invalid_explicit_dt_rejected(self, estimator):
        assert estimator.update(reading_at(0.0), dt=-1.0) is None
        assert estimator.health.rejected_readings == 1
        assert estimator.filter.update_count == 0

    def test_invalid_reading_rejected(self, estimator, invalid_reading_nan):
        """Invalid readings never reach the filter."""
        assert estimator.update(invalid_reading_nan) is None
        assert estimator.health.rejected_readings == 1
        assert estimator.filter.update_count == 0
        assert estimator.last_result is None

    def test_non_monotonic_rejected(self, estimator):
        estimator.update(reading_at(1.0, 0))
        assert estimator.update(reading_at(0.5, 1)) is None
        assert estimator.health.rejected_readings == 1

    def test_consecutive_corrections(self, estimator):
        """Corrected steps are counted until a degraded one."""
        gyr = (0.05, 0.0, 0.0)
        tilted = (0.0, 1.0, 9.7)
        for i in range(5):
            estimator.update(reading_at(i * 0.005, i, gyr=gyr, acc=tilted))
        assert estimator.health.consecutive_corrections == 5

        result = estimator.update(
            reading_at(0.025, 5, gyr=gyr, acc=(0.0, 0.0, 0.0), mag=(0.0, 0.0, 0.0))
        )
        assert result.mode == "imu"
        assert estimator.health.consecutive_corrections == 0
        assert estimator.health.last_status is UpdateStatus.ACCEL_MISSING

    def test_missing_accelerometer_uses_mag_update(self, estimator):
        """Without an accelerometer sample the magnetometer still corrects."""
        result = estimator.update(reading_at(0.0, acc=(0.0, 0.0, 0.0), mag=(20.0, 5.0, -43.0)))

        assert result.mode == "mag"
        assert result.status is UpdateStatus.CORRECTED
        assert estimator.health.consecutive_corrections == 1

    def test_saturated_accelerometer_dropped(self, estimator, reading_out_of_range):
        """A saturated accelerometer is excluded rather than rejecting the reading."""
        result = estimator.update(reading_out_of_range)

        assert result is not None
        assert result.mode == "mag"
        assert estimator.health.rejected_readings == 0
        assert estimator.health.dropped_references == 1

    def test_implausible_field_dropped(self, estimator):
        """A disturbed magnetometer falls back to the IMU update."""
        result = estimator.update(reading_at(0.0, mag=(150.0, 0.0, 0.0)))

        assert result.mode == "imu"
        assert result.status is UpdateStatus.ZERO_GRADIENT
        assert estimator.health.dropped_references == 1

    def test_sinks_receive_updates(self, config):
        sink = MemorySink()
        estimator = OrientationEstimator(config, sinks=[sink])
        for i in range(10):
            estimator.update(reading_at(i * 0.005, i))
        assert len(sink) == 10


class TestRecovery:
    """Tests for corruption detection and reset."""

    def test_recovers_from_corrupted_state(self, estimator, caplog):
        """NaN state is reset before the next update."""
        estimator.update(reading_at(0.0, 0))
        estimator.filter._state.quaternion[:] = np.nan
        assert estimator.needs_reinitialization()
        assert estimator.health.is_diverged

        with caplog.at_level(logging.WARNING):
            result = estimator.update(reading_at(0.005, 1))

        assert result is not None
        assert result.quaternion.is_finite()
        assert estimator.health.reset_count == 1
        assert "corrupted" in caplog.text

    def test_corrupted_result_not_published(self, config, monkeypatch):
        """Sinks never see a quaternion that failed the corruption check."""
        sink = MemorySink()
        estimator = OrientationEstimator(config, sinks=[sink])
        corrupted = UpdateResult(
            quaternion=Quaternion(w=float("nan"), x=0.0, y=0.0, z=0.0),
            gyro_bias=np.zeros(3),
            status=UpdateStatus.CORRECTED,
            mode="ahrs",
            dt=0.005,
            correction_applied=True,
        )
        monkeypatch.setattr(estimator.filter, "update", lambda *args, **kwargs: corrupted)

        assert estimator.update(reading_at(0.0, 0)) is None
        assert len(sink) == 0
        assert estimator.health.reset_count == 1

    def test_reset(self, estimator):
        for i in range(20):
            estimator.update(reading_at(i * 0.005, i, gyr=(0.3, 0.0, 0.0)))

        estimator.reset()

        assert estimator.quaternion == Quaternion.identity()
        assert estimator.last_result is None
        np.testing.assert_array_equal(estimator.gyro_bias, np.zeros(3))
        # Validator state is cleared too: an earlier timestamp is accepted
        assert estimator.update(reading_at(0.0, 0)) is not None


class TestTracking:
    """Tests for estimation quality."""

    def test_tracks_bias(self):
        """Stationary readings with a gyro offset converge to that offset."""
        config = Config(filter=FilterConfig(gyro_meas_drift_deg=2.0))
        estimator = OrientationEstimator(config)
        bias = (0.01, 0.02, -0.015)

        for i in range(4000):
            result = estimator.update(reading_at(i * 0.005, i, gyr=bias))

        np.testing.assert_allclose(result.gyro_bias, bias, atol=2e-3)
        assert abs(estimator.euler.yaw_deg) < 1.0
