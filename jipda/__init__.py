"""
JIPDA: Joint Integrated Probabilistic Data Association multi-target tracking
"""

from .tracking import (
    JIPDATracker,
    StepResult,
    StepStatus,
    Measurement,
    MeasurementBatch,
    GaussianState,
    Track,
)
from .validators import (
    TrackingError,
    SingularCovarianceError,
    DimensionMismatchError,
    InvalidProbabilityError,
    DegenerateHypothesisError,
)

__version__ = "1.0.0"

__all__ = [
    "JIPDATracker",
    "StepResult",
    "StepStatus",
    "Measurement",
    "MeasurementBatch",
    "GaussianState",
    "Track",
    "TrackingError",
    "SingularCovarianceError",
    "DimensionMismatchError",
    "InvalidProbabilityError",
    "DegenerateHypothesisError",
]
