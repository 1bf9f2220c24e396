"""
Clutter and detection probability models.

The association engine only depends on two narrow capabilities:

- ClutterModel: ``density(position)`` (expected false detections per unit
  volume at a position) and ``expected_count`` over the surveillance region
- DetectionModel: ``probability(state)`` of detecting a present target

Concrete models are injected into the tracker; plain functions can be
wrapped with :func:`as_clutter_model` and :func:`as_detection_model`.
"""

from typing import Callable, Optional, Protocol, Sequence, runtime_checkable
import numpy as np

from .tracker_base import GaussianState


@runtime_checkable
class ClutterModel(Protocol):
    """Spatial clutter density capability."""

    expected_count: float

    def density(self, position: np.ndarray) -> float:
        ...


@runtime_checkable
class DetectionModel(Protocol):
    """Detection probability capability."""

    def probability(self, state: Optional[GaussianState] = None) -> float:
        ...


class PoissonUniformClutterModel:
    """
    Poisson-distributed clutter count, uniformly distributed over a box.

    Attributes:
        clutter_rate: Expected number of clutter measurements per scan
        limits: Array of shape (dim, 2) with [min, max] per dimension
    """

    def __init__(self, clutter_rate: float, limits: Sequence[Sequence[float]]):
        """
        Initialize clutter model.

        Args:
            clutter_rate: Expected clutter measurements over the whole region
            limits: [[x_min, x_max], [y_min, y_max], ...]
        """
        self.limits = np.asarray(limits, dtype=np.float64)
        if self.limits.ndim != 2 or self.limits.shape[1] != 2:
            raise ValueError("Limits must have shape (dim, 2)")
        if np.any(self.limits[:, 1] <= self.limits[:, 0]):
            raise ValueError("Each limit must satisfy min < max")
        if clutter_rate < 0:
            raise ValueError(f"Clutter rate must be non-negative, got {clutter_rate}")
        self.clutter_rate = float(clutter_rate)

    @property
    def expected_count(self) -> float:
        return self.clutter_rate

    @property
    def volume(self) -> float:
        """Volume of the surveillance region."""
        return float(np.prod(self.limits[:, 1] - self.limits[:, 0]))

    def contains(self, position: np.ndarray) -> bool:
        position = np.asarray(position, dtype=np.float64)
        return bool(np.all(position >= self.limits[:, 0]) and np.all(position <= self.limits[:, 1]))

    def density(self, position: np.ndarray) -> float:
        """Clutter density: rate / volume inside the region, zero outside."""
        if not self.contains(position):
            return 0.0
        return self.clutter_rate / self.volume

    def sample(self, rng: np.random.Generator) -> np.ndarray:
        """
        Draw one scan of clutter measurements.

        Returns:
            Array of shape (n, dim) with n ~ Poisson(clutter_rate)
        """
        count = rng.poisson(self.clutter_rate)
        return rng.uniform(self.limits[:, 0], self.limits[:, 1], size=(count, self.limits.shape[0]))


class ConstantDetectionModel:
    """Detection probability independent of the target state."""

    def __init__(self, probability: float):
        self._probability = float(probability)

    def probability(self, state: Optional[GaussianState] = None) -> float:
        return self._probability


class _FunctionClutterModel:
    def __init__(self, fn: Callable[[np.ndarray], float], expected_count: float):
        self._fn = fn
        self.expected_count = float(expected_count)

    def density(self, position: np.ndarray) -> float:
        return self._fn(position)


class _FunctionDetectionModel:
    def __init__(self, fn: Callable[[], float]):
        self._fn = fn

    def probability(self, state: Optional[GaussianState] = None) -> float:
        return self._fn()


def as_clutter_model(fn: Callable[[np.ndarray], float], expected_count: float = 0.0) -> ClutterModel:
    """Wrap a density function as a ClutterModel."""
    return _FunctionClutterModel(fn, expected_count)


def as_detection_model(fn: Callable[[], float]) -> DetectionModel:
    """Wrap a zero-argument probability function as a DetectionModel."""
    return _FunctionDetectionModel(fn)
