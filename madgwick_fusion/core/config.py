"""Configuration management for Madgwick orientation fusion."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os

import yaml

CONFIG_ENV_VAR = "MADGWICK_CONFIG_PATH"


@dataclass
class FilterConfig:
    """Madgwick filter configuration.

    The gains are derived from the assumed gyroscope noise:
    beta = sqrt(3/4) * measurement error, zeta = sqrt(3/4) * drift.
    """
    sample_rate_hz: float = 200.0
    gyro_meas_error_deg: float = 4.0   # deg/s
    gyro_meas_drift_deg: float = 0.2   # deg/s/s

    def __post_init__(self) -> None:
        if not self.sample_rate_hz > 0:
            raise ValueError(f"sample_rate_hz must be positive, got {self.sample_rate_hz}")
        if self.gyro_meas_error_deg < 0:
            raise ValueError(
                f"gyro_meas_error_deg must be non-negative, got {self.gyro_meas_error_deg}"
            )
        if self.gyro_meas_drift_deg < 0:
            raise ValueError(
                f"gyro_meas_drift_deg must be non-negative, got {self.gyro_meas_drift_deg}"
            )

    @property
    def sample_period(self) -> float:
        """Default time step in seconds."""
        return 1.0 / self.sample_rate_hz


@dataclass
class AccelerometerConfig:
    """Accelerometer sensor configuration."""
    range_g: float = 16.0
    gravity_nominal: float = 9.81
    gravity_tolerance: float = 0.5


@dataclass
class GyroscopeConfig:
    """Gyroscope sensor configuration."""
    range_dps: float = 2000.0
    stationary_threshold_dps: float = 5.0


@dataclass
class MagnetometerSensorConfig:
    """Magnetometer sensor configuration."""
    range_ut: float = 4900.0
    min_field_ut: float = 20.0
    max_field_ut: float = 100.0


@dataclass
class SensorConfig:
    """Sensor plausibility limits used by the input validator."""
    accelerometer: AccelerometerConfig = field(default_factory=AccelerometerConfig)
    gyroscope: GyroscopeConfig = field(default_factory=GyroscopeConfig)
    magnetometer: MagnetometerSensorConfig = field(default_factory=MagnetometerSensorConfig)


@dataclass
class QuaternionValidationConfig:
    """Quaternion validation configuration."""
    norm_tolerance: float = 1e-6
    divergence_threshold: float = 0.1


@dataclass
class TimestampValidationConfig:
    """Timestamp validation configuration."""
    max_dt_s: float = 0.1
    min_dt_s: float = 0.0005


@dataclass
class ValidationConfig:
    """Validation configuration."""
    quaternion: QuaternionValidationConfig = field(default_factory=QuaternionValidationConfig)
    timestamp: TimestampValidationConfig = field(default_factory=TimestampValidationConfig)


@dataclass
class InitializationConfig:
    """Initial alignment configuration."""
    min_samples: int = 10
    max_tilt_deg: float = 30.0


@dataclass
class LoopTimingConfig:
    """Loop timing monitoring configuration."""
    jitter_warning_ms: float = 2.0
    rate_tolerance: float = 0.05


@dataclass
class MonitoringConfig:
    """Performance monitoring configuration."""
    loop_timing: LoopTimingConfig = field(default_factory=LoopTimingConfig)
    window_size: int = 1000
    log_interval_s: float = 10.0


@dataclass
class OutputConfig:
    """Orientation output configuration."""
    emit_rate_hz: float = 10.0


@dataclass
class Config:
    """Complete configuration for Madgwick orientation fusion."""
    filter: FilterConfig = field(default_factory=FilterConfig)
    sensor: SensorConfig = field(default_factory=SensorConfig)
    initialization: InitializationConfig = field(default_factory=InitializationConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def _dict_to_dataclass(data: dict, cls: type) -> object:
    """Recursively convert dictionary to dataclass, ignoring unknown keys."""
    if not hasattr(cls, "__dataclass_fields__"):
        return data

    defaults = cls()
    kwargs = {}

    for name in cls.__dataclass_fields__:
        if name not in data:
            continue
        value = data[name]
        nested_type = type(getattr(defaults, name))
        if hasattr(nested_type, "__dataclass_fields__") and isinstance(value, dict):
            kwargs[name] = _dict_to_dataclass(value, nested_type)
        else:
            kwargs[name] = value

    return cls(**kwargs)


def default_config_path() -> Path:
    """Path of the packaged default configuration file."""
    return Path(__file__).parent.parent / "config" / "default.yaml"


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file. If None, uses the
            MADGWICK_CONFIG_PATH environment variable, then the packaged
            default, then built-in defaults.

    Returns:
        Configuration object with all settings.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValueError: If the file holds invalid filter settings.
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            config_path = env_path
        else:
            default_path = default_config_path()
            if default_path.exists():
                config_path = str(default_path)
            else:
                return Config()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Config()

    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    return _dict_to_dataclass(data, Config)
