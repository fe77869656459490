"""Synthetic IMU for tests and development without hardware."""

import logging
from typing import Iterator, Optional, Sequence
import numpy as np
from numpy.typing import NDArray

from ..core.quaternion import QuaternionOps
from ..core.types import ImuReading, Quaternion
from .base import SourceError

logger = logging.getLogger(__name__)

GRAVITY = 9.81
# Earth field in the filter's earth frame (x north, z along gravity reaction), uT
EARTH_FIELD_UT = (20.0, 0.0, -43.0)


class SyntheticImu:
    """Deterministic simulated IMU.

    Simulates a rigid body rotating at a constant body rate, measured by
    an accelerometer, a magnetometer and a gyroscope with a constant
    additive bias and optional Gaussian noise. Readings are produced
    without sleeping; timestamps advance by exactly one sample period.
    """

    def __init__(
        self,
        sample_rate_hz: float = 200.0,
        q_true: Optional[Quaternion] = None,
        body_rate: Sequence[float] = (0.0, 0.0, 0.0),
        gyro_bias: Sequence[float] = (0.0, 0.0, 0.0),
        earth_field: Sequence[float] = EARTH_FIELD_UT,
        acc_noise: float = 0.0,
        gyr_noise: float = 0.0,
        mag_noise: float = 0.0,
        include_acc: bool = True,
        include_mag: bool = True,
        seed: Optional[int] = None,
        start_time: float = 0.0,
    ):
        """Initialize synthetic IMU.

        Args:
            sample_rate_hz: Sample rate in Hz.
            q_true: Initial true orientation; identity if None.
            body_rate: True angular rate in the body frame (rad/s).
            gyro_bias: Constant bias added to every gyro reading (rad/s).
            earth_field: Magnetic field in the earth frame.
            acc_noise: Accelerometer noise standard deviation.
            gyr_noise: Gyroscope noise standard deviation.
            mag_noise: Magnetometer noise standard deviation.
            include_acc: If False, accelerometer reads exactly zero.
            include_mag: If False, magnetometer reads exactly zero.
            seed: Random seed for the noise generator.
            start_time: Timestamp of the first reading.
        """
        if not sample_rate_hz > 0:
            raise ValueError(f"sample_rate_hz must be positive, got {sample_rate_hz}")

        self._dt = 1.0 / sample_rate_hz
        self._q_true = (q_true or Quaternion.identity()).normalized()
        self._body_rate = np.asarray(body_rate, dtype=np.float64)
        self._gyro_bias = np.asarray(gyro_bias, dtype=np.float64)
        self._earth_field = np.asarray(earth_field, dtype=np.float64)
        self._acc_noise = acc_noise
        self._gyr_noise = gyr_noise
        self._mag_noise = mag_noise
        self._include_acc = include_acc
        self._include_mag = include_mag
        self._rng = np.random.default_rng(seed)
        self._time = start_time
        self._seq = 0
        self._is_open = False

        angle = float(np.linalg.norm(self._body_rate)) * self._dt
        self._step_rotation = QuaternionOps.from_axis_angle(self._body_rate, angle)

    def open(self) -> None:
        """Simulate opening the device."""
        self._is_open = True
        logger.info("Synthetic IMU opened (%.1f Hz)", 1.0 / self._dt)

    def close(self) -> None:
        """Simulate closing the device."""
        self._is_open = False
        logger.info("Synthetic IMU closed")

    def read_measurement(self, timeout_s: float = 1.0) -> Optional[ImuReading]:
        """Generate the next reading and advance the true orientation.

        Args:
            timeout_s: Ignored.

        Returns:
            Synthetic IMU reading.

        Raises:
            SourceError: If the source is not open.
        """
        if not self._is_open:
            raise SourceError("Synthetic IMU not open")

        reading = self._measure()
        self._q_true = QuaternionOps.multiply(self._q_true, self._step_rotation).normalized()
        self._time += self._dt
        self._seq += 1
        return reading

    def readings(self, count: int) -> Iterator[ImuReading]:
        """Yield ``count`` consecutive readings."""
        for _ in range(count):
            reading = self.read_measurement()
            if reading is None:
                return
            yield reading

    def _measure(self) -> ImuReading:
        acc = np.zeros(3)
        if self._include_acc:
            acc = GRAVITY * QuaternionOps.inverse_rotate_vector(
                self._q_true, np.array([0.0, 0.0, 1.0])
            )
            acc = acc + self._noise(self._acc_noise)

        mag = np.zeros(3)
        if self._include_mag:
            mag = QuaternionOps.inverse_rotate_vector(self._q_true, self._earth_field)
            mag = mag + self._noise(self._mag_noise)

        gyr = self._body_rate + self._gyro_bias + self._noise(self._gyr_noise)

        return ImuReading(
            timestamp=self._time,
            ax=float(acc[0]), ay=float(acc[1]), az=float(acc[2]),
            gx=float(gyr[0]), gy=float(gyr[1]), gz=float(gyr[2]),
            mx=float(mag[0]), my=float(mag[1]), mz=float(mag[2]),
            seq=self._seq,
        )

    def _noise(self, std: float) -> NDArray[np.float64]:
        if std <= 0:
            return np.zeros(3)
        return self._rng.normal(0.0, std, 3)

    @property
    def true_quaternion(self) -> Quaternion:
        """True orientation at the next reading."""
        return self._q_true

    @property
    def sample_period(self) -> float:
        """Sample period in seconds."""
        return self._dt

    @property
    def is_open(self) -> bool:
        """Check if source is open."""
        return self._is_open

    def __enter__(self) -> "SyntheticImu":
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
