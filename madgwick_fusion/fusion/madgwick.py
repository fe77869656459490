"""Madgwick gradient-descent orientation filter with gyro bias estimation.

State: quaternion q = [w, x, y, z] (sensor frame relative to earth frame)
and gyroscope bias b = [bx, by, bz] in rad/s.

Earth references:
- Gravity: (0, 0, 1), compared against the normalized accelerometer
- Magnetic field: (bx, 0, bz), re-derived every step from the current
  estimate and the normalized magnetometer

Each step forms the objective f(q) = q* d q - s for the available
references, takes the gradient J^T f, and feeds its normalized direction
back with gain beta. The full AHRS step also integrates the angular error
2 q* grad into the bias with gain zeta.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
import numpy as np
from numpy.typing import ArrayLike, NDArray

from ..core.config import FilterConfig
from ..core.quaternion import quat_conjugate, quat_multiply
from ..core.types import Quaternion, UpdateResult, UpdateStatus
from .gains import FilterGains, gains_from_config
from .normalizer import inv_sqrt, is_zero_vector, normalize
from .sink import OrientationSink

logger = logging.getLogger(__name__)


@dataclass
class FilterState:
    """Orientation and gyroscope bias shared by all update variants."""
    quaternion: NDArray[np.float64]
    gyro_bias: NDArray[np.float64]

    @classmethod
    def initial(cls, q0: Optional[Quaternion] = None) -> "FilterState":
        """Identity orientation (or ``q0``, normalized) and zero bias."""
        q = Quaternion.identity() if q0 is None else q0.normalized()
        return cls(quaternion=q.to_array(), gyro_bias=np.zeros(3))

    def copy(self) -> "FilterState":
        """Independent copy of the state."""
        return FilterState(
            quaternion=self.quaternion.copy(),
            gyro_bias=self.gyro_bias.copy(),
        )


def _as_vector(values: ArrayLike, name: str) -> NDArray[np.float64]:
    """Convert input to a finite 3-vector."""
    v = np.asarray(values, dtype=np.float64)
    if v.shape != (3,):
        raise ValueError(f"{name} must have 3 components, got shape {v.shape}")
    if not np.all(np.isfinite(v)):
        raise ValueError(f"{name} contains non-finite values: {v}")
    return v


def _gravity_objective(
    q: NDArray[np.float64],
    a: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Objective and Jacobian for the gravity reference.

    Args:
        q: Current quaternion.
        a: Normalized accelerometer reading.

    Returns:
        Tuple of (f [3], J [3x4]).
    """
    qw, qx, qy, qz = q
    f = np.array([
        2.0 * (qx * qz - qw * qy) - a[0],
        2.0 * (qw * qx + qy * qz) - a[1],
        2.0 * (0.5 - qx * qx - qy * qy) - a[2],
    ])
    J = np.array([
        [-2.0 * qy, 2.0 * qz, -2.0 * qw, 2.0 * qx],
        [2.0 * qx, 2.0 * qw, 2.0 * qz, 2.0 * qy],
        [0.0, -4.0 * qx, -4.0 * qy, 0.0],
    ])
    return f, J


def _magnetic_objective(
    q: NDArray[np.float64],
    m: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Objective and Jacobian for the magnetic reference.

    The earth-frame field h = q m q* is reduced to its horizontal
    magnitude and vertical component, so no magnetic declination needs
    to be known in advance. The reference keeps the full magnitude of h,
    so the residual is zero at the true orientation.

    Args:
        q: Current quaternion.
        m: Normalized magnetometer reading.

    Returns:
        Tuple of (f [3], J [3x4]).
    """
    qw, qx, qy, qz = q
    h = quat_multiply(quat_multiply(q, np.array([0.0, m[0], m[1], m[2]])), quat_conjugate(q))
    bx = float(np.hypot(h[1], h[2]))
    bz = float(h[3])

    f = np.array([
        2.0 * bx * (0.5 - qy * qy - qz * qz) + 2.0 * bz * (qx * qz - qw * qy) - m[0],
        2.0 * bx * (qx * qy - qw * qz) + 2.0 * bz * (qw * qx + qy * qz) - m[1],
        2.0 * bx * (qw * qy + qx * qz) + 2.0 * bz * (0.5 - qx * qx - qy * qy) - m[2],
    ])
    J = np.array([
        [-2.0 * bz * qy,
         2.0 * bz * qz,
         -4.0 * bx * qy - 2.0 * bz * qw,
         -4.0 * bx * qz + 2.0 * bz * qx],
        [-2.0 * bx * qz + 2.0 * bz * qx,
         2.0 * bx * qy + 2.0 * bz * qw,
         2.0 * bx * qx + 2.0 * bz * qz,
         -2.0 * bx * qw + 2.0 * bz * qy],
        [2.0 * bx * qy,
         2.0 * bx * qz - 4.0 * bz * qx,
         2.0 * bx * qw - 4.0 * bz * qy,
         2.0 * bx * qx],
    ])
    return f, J


def _normalized_gradient(
    f: NDArray[np.float64],
    J: NDArray[np.float64],
) -> Optional[NDArray[np.float64]]:
    """Unit gradient direction J^T f, or None if the gradient vanishes."""
    gradient = J.T @ f
    norm_sq = float(np.dot(gradient, gradient))
    if norm_sq == 0.0:
        return None
    return gradient * inv_sqrt(norm_sq)


class MadgwickFilter:
    """Madgwick AHRS/IMU filter.

    Three update variants advance the same state by one time step:

    - :meth:`update`: gyroscope + accelerometer + magnetometer, with bias
      estimation. Falls back to :meth:`update_imu` when the magnetometer
      sample is missing.
    - :meth:`update_imu`: gyroscope + accelerometer.
    - :meth:`update_mag`: gyroscope + magnetometer, reusing the last bias
      estimate.

    An accelerometer or magnetometer vector of exactly (0, 0, 0) is a
    missing sample. Every call returns an :class:`UpdateResult` and
    publishes the new quaternion to each registered sink exactly once.

    Instances are not thread-safe.
    """

    def __init__(
        self,
        config: Optional[FilterConfig] = None,
        q0: Optional[Quaternion] = None,
        sinks: Optional[Iterable[OrientationSink]] = None,
    ):
        """Initialize filter.

        Args:
            config: Filter configuration; defaults to FilterConfig().
            q0: Initial orientation; identity if None.
            sinks: Orientation consumers notified after every update.
        """
        self._config = config if config is not None else FilterConfig()
        self._gains = gains_from_config(self._config)
        self._q0 = q0
        self._state = FilterState.initial(q0)
        self._sinks: List[OrientationSink] = list(sinks) if sinks is not None else []
        self._update_count = 0

    @property
    def config(self) -> FilterConfig:
        """Filter configuration."""
        return self._config

    @property
    def gains(self) -> FilterGains:
        """Current gains."""
        return self._gains

    @property
    def beta(self) -> float:
        """Proportional gain in rad/s."""
        return self._gains.beta

    @property
    def zeta(self) -> float:
        """Bias-integral gain in rad/s^2."""
        return self._gains.zeta

    @property
    def sample_period(self) -> float:
        """Default time step in seconds."""
        return self._config.sample_period

    @property
    def quaternion(self) -> Quaternion:
        """Current orientation."""
        return Quaternion.from_array(self._state.quaternion)

    @property
    def gyro_bias(self) -> NDArray[np.float64]:
        """Current gyroscope bias estimate in rad/s."""
        return self._state.gyro_bias.copy()

    @property
    def state(self) -> FilterState:
        """Copy of the filter state."""
        return self._state.copy()

    @property
    def update_count(self) -> int:
        """Number of update calls since construction or reset."""
        return self._update_count

    def load_state(self, state: FilterState) -> None:
        """Replace the filter state.

        Raises:
            ValueError: If the state is not finite or has the wrong shape.
        """
        q = np.asarray(state.quaternion, dtype=np.float64)
        if q.shape != (4,) or not np.all(np.isfinite(q)):
            raise ValueError(f"Invalid quaternion state: {state.quaternion}")
        bias = _as_vector(state.gyro_bias, "gyro_bias")
        self._state = FilterState(quaternion=normalize(q), gyro_bias=bias.copy())

    def set_gains(self, beta: Optional[float] = None, zeta: Optional[float] = None) -> None:
        """Tune the gains at run time."""
        new_beta = self._gains.beta if beta is None else float(beta)
        new_zeta = self._gains.zeta if zeta is None else float(zeta)
        if new_beta < 0 or new_zeta < 0:
            raise ValueError(f"Gains must be non-negative: beta={new_beta}, zeta={new_zeta}")
        self._gains = FilterGains(beta=new_beta, zeta=new_zeta)
        logger.info("Filter gains set: beta=%.5f, zeta=%.6f", new_beta, new_zeta)

    def add_sink(self, sink: OrientationSink) -> None:
        """Register an orientation consumer."""
        self._sinks.append(sink)

    def remove_sink(self, sink: OrientationSink) -> None:
        """Unregister an orientation consumer."""
        self._sinks.remove(sink)

    def reset(self, q0: Optional[Quaternion] = None) -> None:
        """Restore the initial orientation and zero bias.

        Args:
            q0: New initial orientation; defaults to the one given at
                construction.
        """
        if q0 is not None:
            self._q0 = q0
        self._state = FilterState.initial(self._q0)
        self._update_count = 0
        logger.info("Filter state reset")

    def update(
        self,
        gyr: ArrayLike,
        acc: ArrayLike,
        mag: ArrayLike,
        dt: Optional[float] = None,
    ) -> UpdateResult:
        """AHRS update from gyroscope, accelerometer and magnetometer.

        Args:
            gyr: Angular rate [gx, gy, gz] in rad/s.
            acc: Accelerometer [ax, ay, az]; zero vector if unavailable.
            mag: Magnetometer [mx, my, mz]; zero vector if unavailable.
            dt: Time step in seconds; defaults to the configured period.

        Returns:
            Updated orientation, bias and step status.

        Raises:
            ValueError: If an input is not a finite 3-vector or dt is not
                a positive finite number.
        """
        g = _as_vector(gyr, "gyr")
        a = _as_vector(acc, "acc")
        m = _as_vector(mag, "mag")
        step = self._resolve_dt(dt)

        result = self._step_ahrs(g, a, m, step)
        self._publish(result)
        return result

    def update_imu(
        self,
        gyr: ArrayLike,
        acc: ArrayLike,
        dt: Optional[float] = None,
    ) -> UpdateResult:
        """IMU update from gyroscope and accelerometer.

        Args:
            gyr: Angular rate [gx, gy, gz] in rad/s.
            acc: Accelerometer [ax, ay, az]; zero vector if unavailable.
            dt: Time step in seconds; defaults to the configured period.

        Returns:
            Updated orientation, bias and step status.

        Raises:
            ValueError: On non-finite inputs or invalid dt.
        """
        g = _as_vector(gyr, "gyr")
        a = _as_vector(acc, "acc")
        step = self._resolve_dt(dt)

        result = self._step_imu(g, a, step)
        self._publish(result)
        return result

    def update_mag(
        self,
        gyr: ArrayLike,
        mag: ArrayLike,
        dt: Optional[float] = None,
    ) -> UpdateResult:
        """Magnetometer-only update from gyroscope and magnetometer.

        Rotation about the magnetic field axis is unobservable here, so
        the bias estimate is used but never updated.

        Args:
            gyr: Angular rate [gx, gy, gz] in rad/s.
            mag: Magnetometer [mx, my, mz]; zero vector if unavailable.
            dt: Time step in seconds; defaults to the configured period.

        Returns:
            Updated orientation, bias and step status.

        Raises:
            ValueError: On non-finite inputs or invalid dt.
        """
        g = _as_vector(gyr, "gyr")
        m = _as_vector(mag, "mag")
        step = self._resolve_dt(dt)

        result = self._step_mag(g, m, step)
        self._publish(result)
        return result

    def _resolve_dt(self, dt: Optional[float]) -> float:
        """Return the time step for this call."""
        if dt is None:
            return self._config.sample_period
        step = float(dt)
        if not (np.isfinite(step) and step > 0):
            raise ValueError(f"dt must be a positive finite number, got {dt}")
        return step

    def _step_ahrs(
        self,
        g: NDArray[np.float64],
        a: NDArray[np.float64],
        m: NDArray[np.float64],
        dt: float,
    ) -> UpdateResult:
        if is_zero_vector(m):
            logger.debug("Magnetometer sample missing, using IMU update")
            result = self._step_imu(g, a, dt)
            if result.status is UpdateStatus.CORRECTED:
                return UpdateResult(
                    quaternion=result.quaternion,
                    gyro_bias=result.gyro_bias,
                    status=UpdateStatus.MAG_MISSING,
                    mode=result.mode,
                    dt=result.dt,
                    correction_applied=True,
                )
            return result

        if is_zero_vector(a):
            logger.debug("Accelerometer sample missing, gyroscope propagation only")
            return self._propagate(g, dt, None, UpdateStatus.ACCEL_MISSING, "ahrs")

        q = self._state.quaternion
        f_g, J_g = _gravity_objective(q, normalize(a))
        f_b, J_b = _magnetic_objective(q, normalize(m))
        step = _normalized_gradient(np.concatenate([f_g, f_b]), np.vstack([J_g, J_b]))
        if step is None:
            return self._propagate(g, dt, None, UpdateStatus.ZERO_GRADIENT, "ahrs")

        # Angular error in the body frame drives the bias integrator
        w_err = 2.0 * quat_multiply(quat_conjugate(q), step)[1:]
        self._state.gyro_bias = self._state.gyro_bias + w_err * dt * self._gains.zeta

        return self._propagate(g, dt, step, UpdateStatus.CORRECTED, "ahrs")

    def _step_imu(
        self,
        g: NDArray[np.float64],
        a: NDArray[np.float64],
        dt: float,
    ) -> UpdateResult:
        if is_zero_vector(a):
            logger.debug("Accelerometer sample missing, gyroscope propagation only")
            return self._propagate(g, dt, None, UpdateStatus.ACCEL_MISSING, "imu")

        f, J = _gravity_objective(self._state.quaternion, normalize(a))
        step = _normalized_gradient(f, J)
        if step is None:
            return self._propagate(g, dt, None, UpdateStatus.ZERO_GRADIENT, "imu")

        return self._propagate(g, dt, step, UpdateStatus.CORRECTED, "imu")

    def _step_mag(
        self,
        g: NDArray[np.float64],
        m: NDArray[np.float64],
        dt: float,
    ) -> UpdateResult:
        if is_zero_vector(m):
            logger.debug("Magnetometer sample missing, gyroscope propagation only")
            return self._propagate(g, dt, None, UpdateStatus.MAG_MISSING, "mag")

        f, J = _magnetic_objective(self._state.quaternion, normalize(m))
        step = _normalized_gradient(f, J)
        if step is None:
            return self._propagate(g, dt, None, UpdateStatus.ZERO_GRADIENT, "mag")

        return self._propagate(g, dt, step, UpdateStatus.CORRECTED, "mag")

    def _propagate(
        self,
        g: NDArray[np.float64],
        dt: float,
        step: Optional[NDArray[np.float64]],
        status: UpdateStatus,
        mode: str,
    ) -> UpdateResult:
        """Integrate the bias-corrected rate plus feedback and renormalize."""
        q = self._state.quaternion
        omega = g - self._state.gyro_bias

        q_dot = 0.5 * quat_multiply(q, np.array([0.0, omega[0], omega[1], omega[2]]))
        if step is not None:
            q_dot = q_dot - self._gains.beta * step

        self._state.quaternion = normalize(q + q_dot * dt)
        self._update_count += 1

        return UpdateResult(
            quaternion=Quaternion.from_array(self._state.quaternion),
            gyro_bias=self._state.gyro_bias.copy(),
            status=status,
            mode=mode,
            dt=dt,
            correction_applied=step is not None,
        )

    def _publish(self, result: UpdateResult) -> None:
        for sink in self._sinks:
            sink.publish(result.quaternion)
