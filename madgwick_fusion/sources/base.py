"""Common interface for IMU sample sources."""

from typing import Optional, Protocol

from ..core.types import ImuReading


class SourceError(Exception):
    """Base exception for sample source errors."""
    pass


class ImuSource(Protocol):
    """Protocol for IMU data sources."""

    def read_measurement(self, timeout_s: float = 1.0) -> Optional[ImuReading]:
        """Read a single IMU measurement, None when none is available."""
        ...
