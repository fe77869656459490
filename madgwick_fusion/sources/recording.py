"""Recording and replay of IMU sample streams.

Recordings are stored as JSON so filter behaviour can be reproduced
offline from captured or synthetic data.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..core.types import ImuReading
from .base import ImuSource, SourceError

logger = logging.getLogger(__name__)


@dataclass
class Recording:
    """Complete recording session."""
    sample_rate_hz: float
    readings: List[ImuReading] = field(default_factory=list)
    description: str = ""
    start_time: str = ""

    @property
    def sample_count(self) -> int:
        """Number of recorded readings."""
        return len(self.readings)

    @property
    def duration_s(self) -> float:
        """Time spanned by the recorded timestamps."""
        if len(self.readings) < 2:
            return 0.0
        return self.readings[-1].timestamp - self.readings[0].timestamp

    def save(self, filepath: Union[str, Path]) -> None:
        """Save recording to JSON file."""
        data = {
            "start_time": self.start_time,
            "sample_rate_hz": self.sample_rate_hz,
            "duration_s": self.duration_s,
            "sample_count": self.sample_count,
            "description": self.description,
            "readings": [r.to_dict() for r in self.readings],
        }
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info("Saved %d samples to %s", self.sample_count, filepath)

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> "Recording":
        """Load recording from JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            SourceError: If the file is not a valid recording.
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Recording not found: {filepath}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise SourceError(f"Invalid recording {filepath}: {e}") from e

        try:
            readings = [ImuReading.from_dict(r) for r in data["readings"]]
            recording = cls(
                sample_rate_hz=float(data["sample_rate_hz"]),
                readings=readings,
                description=data.get("description", ""),
                start_time=data.get("start_time", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SourceError(f"Invalid recording {filepath}: {e}") from e

        logger.info("Loaded %d samples from %s", recording.sample_count, filepath)
        return recording


class RecordingSource:
    """Replays a :class:`Recording` one reading at a time."""

    def __init__(self, recording: Recording):
        self._recording = recording
        self._index = 0

    @classmethod
    def from_file(cls, filepath: Union[str, Path]) -> "RecordingSource":
        return cls(Recording.load(filepath))

    def read_measurement(self, timeout_s: float = 1.0) -> Optional[ImuReading]:
        """Next recorded reading, or None once the recording is exhausted."""
        if self._index >= len(self._recording.readings):
            return None
        reading = self._recording.readings[self._index]
        self._index += 1
        return reading

    def rewind(self) -> None:
        self._index = 0

    @property
    def recording(self) -> Recording:
        return self._recording

    @property
    def remaining(self) -> int:
        return len(self._recording.readings) - self._index

    def __iter__(self) -> Iterator[ImuReading]:
        while True:
            reading = self.read_measurement()
            if reading is None:
                return
            yield reading


def capture(
    source: ImuSource,
    count: int,
    sample_rate_hz: float,
    description: str = "",
    timeout_s: float = 1.0,
) -> Recording:
    """Read up to ``count`` readings from ``source`` into a recording.

    Stops early when the source returns None.
    """
    recording = Recording(
        sample_rate_hz=sample_rate_hz,
        description=description,
        start_time=datetime.now().isoformat(),
    )
    for _ in range(count):
        reading = source.read_measurement(timeout_s=timeout_s)
        if reading is None:
            logger.warning("Source exhausted after %d samples", recording.sample_count)
            break
        recording.readings.append(reading)
    return recording
