"""Orientation output sinks.

A sink receives the freshly renormalized quaternion after every filter
update. Storage, conversion and transmission belong to the sink.
"""

import json
import sys
from collections import deque
from typing import Deque, Protocol, TextIO, Optional

from ..core.types import Quaternion
from ..core.quaternion import QuaternionOps


class OrientationSink(Protocol):
    """Protocol for orientation consumers."""

    def publish(self, q: Quaternion) -> None:
        """Receive the latest orientation."""
        ...


class MemorySink:
    """Sink keeping every published quaternion in memory."""

    def __init__(self, maxlen: Optional[int] = None):
        self.quaternions: Deque[Quaternion] = deque(maxlen=maxlen)

    def publish(self, q: Quaternion) -> None:
        self.quaternions.append(q)

    @property
    def last(self) -> Optional[Quaternion]:
        """Most recently published quaternion."""
        return self.quaternions[-1] if self.quaternions else None

    def __len__(self) -> int:
        return len(self.quaternions)


class JsonLinesSink:
    """Sink writing one JSON object per quaternion to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None, include_euler: bool = True):
        self._stream = stream if stream is not None else sys.stdout
        self._include_euler = include_euler

    def publish(self, q: Quaternion) -> None:
        output = {"qw": q.w, "qx": q.x, "qy": q.y, "qz": q.z}
        if self._include_euler:
            euler = QuaternionOps.to_euler(q)
            output.update({
                "roll": euler.roll_deg,
                "pitch": euler.pitch_deg,
                "yaw": euler.yaw_deg,
            })
        self._stream.write(json.dumps(output) + "\n")
        self._stream.flush()
