"""Vector normalization helpers used by the filter update steps."""

import math

import numpy as np
from numpy.typing import NDArray


def inv_sqrt(x: float) -> float:
    """Reciprocal square root of a strictly positive value.

    Raises:
        ValueError: If ``x`` is not a positive finite number.
    """
    if not (x > 0.0 and math.isfinite(x)):
        raise ValueError(f"inv_sqrt requires a positive finite argument, got {x}")
    return 1.0 / math.sqrt(x)


def normalize(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Scale a vector to unit length."""
    return v * inv_sqrt(float(np.dot(v, v)))


def is_zero_vector(v: NDArray[np.float64]) -> bool:
    """True for the exact all-zero vector marking a missing sample."""
    return not np.any(v)
