"""Filter gains derived from the assumed gyroscope noise."""

import logging
import math
from dataclasses import dataclass

from ..core.config import FilterConfig

logger = logging.getLogger(__name__)

GAIN_FACTOR = math.sqrt(3.0 / 4.0)


@dataclass(frozen=True)
class FilterGains:
    """Proportional (beta) and bias-integral (zeta) gains."""
    beta: float
    zeta: float

    @property
    def bias_time_constant_s(self) -> float:
        """Approximate bias convergence time constant (beta / zeta)."""
        if self.zeta == 0.0:
            return math.inf
        return self.beta / self.zeta


def compute_gains(gyro_meas_error_deg: float, gyro_meas_drift_deg: float) -> FilterGains:
    """Derive beta and zeta from gyroscope error and drift.

    Args:
        gyro_meas_error_deg: Gyroscope measurement error in deg/s.
        gyro_meas_drift_deg: Gyroscope measurement drift in deg/s/s.

    Returns:
        Gains in rad/s and rad/s^2.
    """
    beta = GAIN_FACTOR * math.radians(gyro_meas_error_deg)
    zeta = GAIN_FACTOR * math.radians(gyro_meas_drift_deg)
    return FilterGains(beta=beta, zeta=zeta)


def gains_from_config(config: FilterConfig) -> FilterGains:
    """Derive gains from a filter configuration."""
    gains = compute_gains(config.gyro_meas_error_deg, config.gyro_meas_drift_deg)
    logger.info(
        "Filter gains: beta=%.5f rad/s, zeta=%.6f rad/s^2 (error=%.2f deg/s, drift=%.3f deg/s/s)",
        gains.beta, gains.zeta, config.gyro_meas_error_deg, config.gyro_meas_drift_deg
    )
    return gains
