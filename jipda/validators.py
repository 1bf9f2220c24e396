"""
Input Validation Module for JIPDA Tracking

This module defines the tracking error taxonomy and the validators that
guard probabilities, densities, dimensions and covariances flowing into
the association engine from external collaborators.
"""

import numpy as np
from typing import Optional, Sequence

from .constants import PROBABILITY_EPS, PSD_TOLERANCE


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class TrackingError(Exception):
    """Base exception for tracking errors"""
    pass


class SingularCovarianceError(TrackingError):
    """Raised when an innovation or combined covariance is not invertible"""
    def __init__(self, message: str, track_index: Optional[int] = None):
        self.track_index = track_index
        super().__init__(message)


class DimensionMismatchError(TrackingError):
    """Raised when a vector dimension disagrees with the configured one"""
    def __init__(self, name: str, expected: int, actual: int):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{name} has dimension {actual}, expected {expected}"
        )


class InvalidProbabilityError(TrackingError):
    """Raised when a model returns a probability outside [0, 1] or a negative density"""
    def __init__(self, name: str, value: float, bounds: str = "[0, 1]"):
        self.name = name
        self.value = value
        super().__init__(f"{name} = {value} is outside valid range {bounds}")


class DegenerateHypothesisError(TrackingError):
    """Raised when every association hypothesis of a cluster has zero probability"""
    pass


# ============================================================================
# VALIDATORS
# ============================================================================

def validate_probability(value: float, name: str = "probability") -> float:
    """
    Validate that a value is a probability.

    Args:
        value: Value returned by a collaborator
        name: Name used in the error message

    Returns:
        The value as a float

    Raises:
        InvalidProbabilityError: If value is NaN or outside [0, 1]
    """
    value = float(value)
    if not np.isfinite(value) or value < 0.0 or value > 1.0:
        raise InvalidProbabilityError(name, value)
    return value


def validate_density(value: float, name: str = "clutter density") -> float:
    """
    Validate a spatial density (non-negative and finite).

    Raises:
        InvalidProbabilityError: If value is NaN, infinite or negative
    """
    value = float(value)
    if not np.isfinite(value) or value < 0.0:
        raise InvalidProbabilityError(name, value, bounds="[0, inf)")
    return value


def validate_dimension(vector: np.ndarray, expected: int, name: str = "measurement") -> np.ndarray:
    """Check that a 1-D vector has the expected length."""
    vector = np.asarray(vector, dtype=np.float64)
    actual = vector.shape[0] if vector.ndim == 1 else -1
    if actual != expected:
        raise DimensionMismatchError(name, expected, actual)
    return vector


def validate_covariance(covar: np.ndarray, dim: int,
                        name: str = "covariance") -> np.ndarray:
    """
    Check that a covariance matrix is square, of the expected size,
    finite and symmetric.

    Raises:
        DimensionMismatchError: If the matrix is not dim x dim
        ValueError: If the matrix is not finite or not symmetric
    """
    covar = np.asarray(covar, dtype=np.float64)
    if covar.ndim != 2 or covar.shape[0] != covar.shape[1]:
        raise ValueError(f"{name} must be a square 2D array")
    if covar.shape[0] != dim:
        raise DimensionMismatchError(name, dim, covar.shape[0])
    if not np.all(np.isfinite(covar)):
        raise ValueError(f"{name} contains non-finite values")
    scale = max(1.0, float(np.max(np.abs(covar))))
    if not np.allclose(covar, covar.T, atol=PSD_TOLERANCE * scale):
        raise ValueError(f"{name} must be symmetric")
    return covar


def clamp_probability(value: float, name: str = "probability",
                      eps: float = PROBABILITY_EPS) -> float:
    """
    Absorb floating-point drift just outside [0, 1].

    Values further than eps outside the interval indicate a real defect and
    raise InvalidProbabilityError instead of being silently clamped.
    """
    if value < -eps or value > 1.0 + eps or not np.isfinite(value):
        raise InvalidProbabilityError(name, value)
    return float(min(1.0, max(0.0, value)))


def validate_weights(weights: Sequence[float], tolerance: float,
                     name: str = "association weights") -> np.ndarray:
    """Check that weights are non-negative and sum to one within tolerance."""
    weights = np.asarray(weights, dtype=np.float64)
    if np.any(weights < -tolerance):
        raise InvalidProbabilityError(name, float(np.min(weights)))
    total = float(np.sum(weights))
    if abs(total - 1.0) > tolerance:
        raise InvalidProbabilityError(f"sum of {name}", total, bounds="{1}")
    return weights
