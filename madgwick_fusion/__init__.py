"""Madgwick orientation fusion for IMU and MARG sensors."""

from .core import Config, FilterConfig, ImuReading, Quaternion, UpdateResult, UpdateStatus, load_config
from .fusion import MadgwickFilter, OrientationEstimator

__version__ = "1.0.0"

__all__ = [
    "Config",
    "FilterConfig",
    "ImuReading",
    "Quaternion",
    "UpdateResult",
    "UpdateStatus",
    "load_config",
    "MadgwickFilter",
    "OrientationEstimator",
]
