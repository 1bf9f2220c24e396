"""
Base data structures for JIPDA multi-target tracking.

This module provides the records shared by every stage of the tracking
pipeline: immutable measurements and measurement batches, Gaussian state
estimates, and the fixed per-track record that owns a filter instance,
an existence probability and a trajectory history.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import numpy as np
import numpy.typing as npt

from ..validators import validate_probability


def _frozen_array(value: Any) -> npt.NDArray[np.float64]:
    """Return a read-only float64 copy of value."""
    array = np.array(value, dtype=np.float64)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Measurement:
    """
    A single sensor measurement.

    Attributes:
        vector: Measured vector in measurement space
        timestamp: Time of measurement in seconds
        covariance: Measurement noise covariance (optional). When omitted the
            measurement model noise of the filter is used.
        metadata: Additional measurement information (e.g. simulation truth id)
    """

    vector: npt.NDArray[np.float64]
    timestamp: float
    covariance: Optional[npt.NDArray[np.float64]] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        """Freeze the arrays and validate their shapes."""
        object.__setattr__(self, 'vector', _frozen_array(self.vector))
        if self.vector.ndim != 1:
            raise ValueError("Measurement vector must be a 1D array")
        if self.covariance is not None:
            covariance = _frozen_array(self.covariance)
            if covariance.shape != (self.dim, self.dim):
                raise ValueError(
                    f"Measurement covariance must be {self.dim}x{self.dim}, "
                    f"got {covariance.shape}"
                )
            object.__setattr__(self, 'covariance', covariance)

    @property
    def dim(self) -> int:
        """Dimension of the measurement vector."""
        return self.vector.shape[0]


@dataclass(frozen=True)
class MeasurementBatch:
    """
    Ordered measurements received at one timestamp.

    An empty batch is valid and means no detections at this time step.
    """

    timestamp: float
    measurements: Tuple[Measurement, ...] = ()

    def __post_init__(self):
        measurements = tuple(self.measurements)
        object.__setattr__(self, 'measurements', measurements)
        for measurement in measurements:
            if measurement.timestamp != self.timestamp:
                raise ValueError(
                    f"Measurement timestamp {measurement.timestamp} does not match "
                    f"batch timestamp {self.timestamp}"
                )
        dims = {m.dim for m in measurements}
        if len(dims) > 1:
            raise ValueError(f"Measurements in a batch must share one dimension, got {sorted(dims)}")

    @classmethod
    def from_vectors(cls, timestamp: float, vectors: Sequence[Sequence[float]],
                     covariance: Optional[np.ndarray] = None) -> 'MeasurementBatch':
        """
        Build a batch from raw vectors sharing one timestamp.

        Args:
            timestamp: Batch timestamp
            vectors: Measurement vectors, one per row
            covariance: Optional noise covariance applied to every measurement

        Returns:
            MeasurementBatch
        """
        return cls(
            timestamp=timestamp,
            measurements=tuple(Measurement(vector=v, timestamp=timestamp, covariance=covariance)
                               for v in vectors)
        )

    def __len__(self) -> int:
        return len(self.measurements)

    def __iter__(self):
        return iter(self.measurements)

    def __getitem__(self, index: int) -> Measurement:
        return self.measurements[index]

    @property
    def dim(self) -> Optional[int]:
        """Common measurement dimension, or None for an empty batch."""
        return self.measurements[0].dim if self.measurements else None

    @property
    def vectors(self) -> np.ndarray:
        """Measurement vectors stacked as rows (shape n x dim)."""
        if not self.measurements:
            return np.zeros((0, 0))
        return np.vstack([m.vector for m in self.measurements])


@dataclass(eq=False)
class GaussianState:
    """Gaussian state estimate: mean vector and covariance matrix."""

    mean: npt.NDArray[np.float64]
    covar: npt.NDArray[np.float64]
    timestamp: Optional[float] = None

    def __post_init__(self):
        self.mean = np.asarray(self.mean, dtype=np.float64)
        self.covar = np.asarray(self.covar, dtype=np.float64)
        if self.mean.ndim != 1:
            raise ValueError("Mean must be a 1D array")
        if self.covar.shape != (self.mean.shape[0], self.mean.shape[0]):
            raise ValueError("Covariance must be a square matrix matching the mean")

    @property
    def dim(self) -> int:
        return self.mean.shape[0]

    def copy(self) -> 'GaussianState':
        return GaussianState(self.mean.copy(), self.covar.copy(), self.timestamp)


class Track:
    """
    Fixed per-track record used by the JIPDA engine.

    A track exclusively owns its filter and its trajectory. Only the
    existence and state update phases of the tracker mutate them.
    """

    def __init__(self, track_id: Any, filter, existence_probability: float = 0.5,
                 timestamp: Optional[float] = None):
        """
        Initialize a track around an already initialised filter.

        Args:
            track_id: Identifier of the track
            filter: Filter collaborator exclusively owned by this track
            existence_probability: Initial probability that the track exists
            timestamp: Time of the filter's current posterior

        Raises:
            InvalidProbabilityError: If the existence probability is outside [0, 1]
        """
        validate_probability(existence_probability, "existence probability")
        self.track_id = track_id
        self.filter = filter
        self.existence_probability = float(existence_probability)
        self.timestamp = timestamp
        self.trajectory: List[GaussianState] = []

    @classmethod
    def from_prior(cls, track_id: Any, base_filter, prior: GaussianState,
                   existence_probability: float = 0.5) -> 'Track':
        """
        Create a track with its own deep copy of a template filter.

        Args:
            track_id: Identifier of the track
            base_filter: Template filter; it is cloned, never shared
            prior: Initial state estimate
            existence_probability: Initial existence probability

        Returns:
            New Track
        """
        track_filter = base_filter.clone()
        track_filter.initialise(prior)
        return cls(track_id, track_filter, existence_probability, prior.timestamp)

    @property
    def state(self) -> GaussianState:
        """Current posterior state of the track's filter."""
        return self.filter.state_posterior

    def append_trajectory(self, state: GaussianState) -> None:
        """Append a posterior state to the trajectory history."""
        self.trajectory.append(copy.deepcopy(state))

    def __repr__(self) -> str:
        return (f"Track(id={self.track_id!r}, existence={self.existence_probability:.3f}, "
                f"history={len(self.trajectory)})")
