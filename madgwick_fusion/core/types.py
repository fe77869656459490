"""Data types for Madgwick orientation fusion."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class ImuReading:
    """Single IMU measurement from all sensors.

    Units:
    - Accelerometer: any (only direction is used), typically m/s^2
    - Gyroscope: rad/s
    - Magnetometer: any (only direction is used), typically uT

    An accelerometer or magnetometer vector of exactly (0, 0, 0) marks
    that sensor as unavailable for this sample.
    """
    timestamp: float  # Seconds
    ax: float
    ay: float
    az: float
    gx: float
    gy: float
    gz: float
    mx: float = 0.0
    my: float = 0.0
    mz: float = 0.0
    seq: int = 0

    @property
    def acc(self) -> NDArray[np.float64]:
        """Accelerometer vector [ax, ay, az]."""
        return np.array([self.ax, self.ay, self.az], dtype=np.float64)

    @property
    def gyr(self) -> NDArray[np.float64]:
        """Gyroscope vector [gx, gy, gz]."""
        return np.array([self.gx, self.gy, self.gz], dtype=np.float64)

    @property
    def mag(self) -> NDArray[np.float64]:
        """Magnetometer vector [mx, my, mz]."""
        return np.array([self.mx, self.my, self.mz], dtype=np.float64)

    @property
    def has_acc(self) -> bool:
        """Whether the accelerometer sample is present (non-zero)."""
        return not (self.ax == 0.0 and self.ay == 0.0 and self.az == 0.0)

    @property
    def has_mag(self) -> bool:
        """Whether the magnetometer sample is present (non-zero)."""
        return not (self.mx == 0.0 and self.my == 0.0 and self.mz == 0.0)

    @property
    def acc_magnitude(self) -> float:
        """Magnitude of acceleration vector."""
        return float(np.linalg.norm(self.acc))

    @property
    def gyr_magnitude(self) -> float:
        """Magnitude of angular rate vector."""
        return float(np.linalg.norm(self.gyr))

    @property
    def mag_magnitude(self) -> float:
        """Magnitude of magnetic field vector."""
        return float(np.linalg.norm(self.mag))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "seq": self.seq,
            "ax": self.ax, "ay": self.ay, "az": self.az,
            "gx": self.gx, "gy": self.gy, "gz": self.gz,
            "mx": self.mx, "my": self.my, "mz": self.mz,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImuReading":
        """Create from a dictionary produced by :meth:`to_dict`."""
        return cls(
            timestamp=float(data["timestamp"]),
            ax=float(data["ax"]), ay=float(data["ay"]), az=float(data["az"]),
            gx=float(data["gx"]), gy=float(data["gy"]), gz=float(data["gz"]),
            mx=float(data.get("mx", 0.0)),
            my=float(data.get("my", 0.0)),
            mz=float(data.get("mz", 0.0)),
            seq=int(data.get("seq", 0)),
        )


@dataclass
class Quaternion:
    """Unit quaternion representing orientation.

    Convention: [w, x, y, z] where w is the scalar component. The
    quaternion rotates sensor-frame vectors into the earth frame.
    """
    w: float
    x: float
    y: float
    z: float

    @classmethod
    def identity(cls) -> "Quaternion":
        """Return identity quaternion (no rotation)."""
        return cls(w=1.0, x=0.0, y=0.0, z=0.0)

    @classmethod
    def from_array(cls, arr: NDArray[np.float64]) -> "Quaternion":
        """Create from numpy array [w, x, y, z]."""
        return cls(w=float(arr[0]), x=float(arr[1]),
                   y=float(arr[2]), z=float(arr[3]))

    def to_array(self) -> NDArray[np.float64]:
        """Convert to numpy array [w, x, y, z]."""
        return np.array([self.w, self.x, self.y, self.z], dtype=np.float64)

    @property
    def norm(self) -> float:
        """Euclidean norm of quaternion."""
        return float(np.sqrt(self.w**2 + self.x**2 + self.y**2 + self.z**2))

    def is_valid(self, tolerance: float = 0.01) -> bool:
        """Check if quaternion is unit quaternion within tolerance."""
        return self.is_finite() and abs(self.norm - 1.0) <= tolerance

    def is_finite(self) -> bool:
        """Check all components are finite."""
        return bool(np.all(np.isfinite([self.w, self.x, self.y, self.z])))

    def normalized(self) -> "Quaternion":
        """Return normalized copy."""
        n = self.norm
        if n < 1e-10:
            return Quaternion.identity()
        return Quaternion(w=self.w/n, x=self.x/n, y=self.y/n, z=self.z/n)


@dataclass(frozen=True)
class EulerAngles:
    """Euler angles in radians.

    Convention: ZYX (yaw-pitch-roll) intrinsic rotations.
    """
    roll: float   # Rotation about X axis
    pitch: float  # Rotation about Y axis
    yaw: float    # Rotation about Z axis

    @property
    def roll_deg(self) -> float:
        """Roll angle in degrees."""
        return float(np.rad2deg(self.roll))

    @property
    def pitch_deg(self) -> float:
        """Pitch angle in degrees."""
        return float(np.rad2deg(self.pitch))

    @property
    def yaw_deg(self) -> float:
        """Yaw angle in degrees."""
        return float(np.rad2deg(self.yaw))


class UpdateStatus(Enum):
    """Outcome of a single filter update."""
    CORRECTED = "corrected"
    ACCEL_MISSING = "accel_missing"
    MAG_MISSING = "mag_missing"
    ZERO_GRADIENT = "zero_gradient"


@dataclass(frozen=True)
class UpdateResult:
    """Orientation and bias after one filter step.

    ``mode`` names the update that actually ran ("ahrs", "imu" or "mag");
    an AHRS call without magnetometer data reports "imu" with status
    MAG_MISSING. ``correction_applied`` is False when the step was pure
    gyroscope propagation.
    """
    quaternion: Quaternion
    gyro_bias: NDArray[np.float64]
    status: UpdateStatus
    mode: str
    dt: float
    correction_applied: bool

    @property
    def euler(self) -> EulerAngles:
        """Orientation as Euler angles."""
        from .quaternion import QuaternionOps
        return QuaternionOps.to_euler(self.quaternion)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        euler = self.euler
        return {
            "qw": self.quaternion.w,
            "qx": self.quaternion.x,
            "qy": self.quaternion.y,
            "qz": self.quaternion.z,
            "roll": euler.roll_deg,
            "pitch": euler.pitch_deg,
            "yaw": euler.yaw_deg,
            "bias_x": float(self.gyro_bias[0]),
            "bias_y": float(self.gyro_bias[1]),
            "bias_z": float(self.gyro_bias[2]),
            "status": self.status.value,
            "mode": self.mode,
            "corrected": self.correction_applied,
            "dt_ms": self.dt * 1000,
        }


@dataclass
class ValidationResult:
    """Result of sensor data validation."""
    is_valid: bool
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    dropped_sensors: list = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add validation error."""
        self.is_valid = False
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        """Add validation warning."""
        self.warnings.append(message)

    def drop(self, sensor: str, reason: str) -> None:
        """Exclude a reference sensor from this update without rejecting the reading."""
        if sensor not in self.dropped_sensors:
            self.dropped_sensors.append(sensor)
        self.warnings.append(f"{reason}; {sensor} dropped")


@dataclass
class EstimatorHealth:
    """Health counters of the orientation estimator."""
    quaternion_norm: float
    is_diverged: bool
    reset_count: int
    rejected_readings: int
    consecutive_corrections: int
    dropped_references: int = 0
    last_status: Optional[UpdateStatus] = None
