"""Madgwick sensor fusion for orientation estimation."""

from .normalizer import inv_sqrt, normalize, is_zero_vector
from .gains import FilterGains, compute_gains, gains_from_config
from .madgwick import FilterState, MadgwickFilter
from .sink import OrientationSink, MemorySink, JsonLinesSink
from .estimator import OrientationEstimator

__all__ = [
    "inv_sqrt",
    "normalize",
    "is_zero_vector",
    "FilterGains",
    "compute_gains",
    "gains_from_config",
    "FilterState",
    "MadgwickFilter",
    "OrientationSink",
    "MemorySink",
    "JsonLinesSink",
    "OrientationEstimator",
]
