"""Core module for Madgwick orientation fusion."""

from .types import (
    ImuReading,
    Quaternion,
    EulerAngles,
    UpdateStatus,
    UpdateResult,
    ValidationResult,
    EstimatorHealth,
)
from .validation import SensorValidator, QuaternionValidator, validate_dt
from .quaternion import QuaternionOps
from .config import Config, FilterConfig, load_config

__all__ = [
    "ImuReading",
    "Quaternion",
    "EulerAngles",
    "UpdateStatus",
    "UpdateResult",
    "ValidationResult",
    "EstimatorHealth",
    "SensorValidator",
    "QuaternionValidator",
    "validate_dt",
    "QuaternionOps",
    "Config",
    "FilterConfig",
    "load_config",
]
