"""IMU sample sources: synthetic data and recorded streams."""

from .base import ImuSource, SourceError
from .synthetic import SyntheticImu
from .recording import Recording, RecordingSource, capture

__all__ = [
    "ImuSource",
    "SourceError",
    "SyntheticImu",
    "Recording",
    "RecordingSource",
    "capture",
]
