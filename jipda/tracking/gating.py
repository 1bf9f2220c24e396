"""
Ellipsoidal gating for JIPDA data association.

The gate admits a (track, measurement) pair when the squared Mahalanobis
distance of the innovation is within a chi-square threshold for the
measurement dimension. Every pair is evaluated independently, so gate
membership depends only on the pair and never on evaluation order.

Author: JIPDA Tracker Project
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg
from scipy.stats import chi2

from .tracker_base import Measurement
from ..validators import (
    DimensionMismatchError, SingularCovarianceError, validate_dimension
)

logger = logging.getLogger(__name__)

SINGULAR_POLICIES = ("exclude", "raise")


@dataclass
class PredictedMeasurement:
    """
    Measurement-space prediction of one track.

    Attributes:
        mean: Predicted measurement mean H x(k|k-1)
        innovation_covar: Innovation covariance S using the default noise
        projected_covar: H P H^T, used to rebuild S for measurements that
            carry their own noise covariance (optional)
    """
    mean: np.ndarray
    innovation_covar: np.ndarray
    projected_covar: Optional[np.ndarray] = None

    def covar_for(self, measurement: Measurement) -> np.ndarray:
        """Innovation covariance for a specific measurement."""
        if measurement.covariance is not None and self.projected_covar is not None:
            return self.projected_covar + measurement.covariance
        return self.innovation_covar


@dataclass
class ValidationMatrix:
    """
    Gate membership of every (track, measurement) pair for one step.

    Attributes:
        gated: Boolean matrix (n_tracks x n_measurements)
        distances: Squared Mahalanobis distances (inf where not evaluated)
        log_likelihoods: Gaussian log-likelihoods of gated pairs (-inf elsewhere)
        threshold: Chi-square threshold used
        singular_tracks: Track indices excluded because S was singular
    """
    gated: np.ndarray
    distances: np.ndarray
    log_likelihoods: np.ndarray
    threshold: float
    singular_tracks: List[int] = field(default_factory=list)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.gated.shape

    @property
    def num_tracks(self) -> int:
        return self.gated.shape[0]

    @property
    def num_measurements(self) -> int:
        return self.gated.shape[1]

    def gated_measurements(self, track_index: int) -> np.ndarray:
        """Indices of measurements inside the gate of a track."""
        return np.flatnonzero(self.gated[track_index])

    def gated_tracks(self, measurement_index: int) -> np.ndarray:
        """Indices of tracks whose gate contains a measurement."""
        return np.flatnonzero(self.gated[:, measurement_index])


class GateEvaluator:
    """
    Chi-square ellipsoidal gate.

    The threshold is either given directly or derived from a gate level
    (confidence) with the chi-square quantile for the measurement dimension.
    """

    def __init__(self, measurement_dim: int, gate_level: float = 0.99,
                 gate_threshold: Optional[float] = None,
                 on_singular: str = "exclude"):
        """
        Initialize gate evaluator.

        Args:
            measurement_dim: Dimension of the measurement space
            gate_level: Gate probability in (0, 1), mapped to a chi-square quantile
            gate_threshold: Explicit threshold on the squared distance (overrides gate_level)
            on_singular: "exclude" leaves a track with singular S ungated and
                reports it; "raise" propagates SingularCovarianceError
        """
        if measurement_dim < 1:
            raise ValueError(f"measurement_dim must be positive, got {measurement_dim}")
        if on_singular not in SINGULAR_POLICIES:
            raise ValueError(f"on_singular must be one of {SINGULAR_POLICIES}, got {on_singular!r}")
        self.measurement_dim = measurement_dim
        self.on_singular = on_singular

        if gate_threshold is not None:
            if gate_threshold <= 0:
                raise ValueError(f"gate_threshold must be positive, got {gate_threshold}")
            self.gate_level = float(chi2.cdf(gate_threshold, measurement_dim))
            self.threshold = float(gate_threshold)
        else:
            if not 0.0 < gate_level < 1.0:
                raise ValueError(f"gate_level must be in (0, 1), got {gate_level}")
            self.gate_level = float(gate_level)
            self.threshold = float(chi2.ppf(gate_level, measurement_dim))

    @staticmethod
    def _factorize(covariance: np.ndarray) -> np.ndarray:
        try:
            return scipy.linalg.cholesky(covariance, lower=True)
        except np.linalg.LinAlgError as exc:
            raise SingularCovarianceError("Innovation covariance is not positive definite") from exc

    @staticmethod
    def squared_distance(innovation: np.ndarray, covariance: np.ndarray) -> float:
        """
        Squared Mahalanobis distance of an innovation.

        Args:
            innovation: Innovation vector z - z_hat
            covariance: Innovation covariance S

        Returns:
            innovation^T S^-1 innovation

        Raises:
            SingularCovarianceError: If S is not positive definite
        """
        chol = GateEvaluator._factorize(np.asarray(covariance, dtype=np.float64))
        whitened = scipy.linalg.solve_triangular(chol, innovation, lower=True)
        return float(whitened @ whitened)

    def is_gated(self, predicted_mean: np.ndarray, covariance: np.ndarray,
                 measurement: np.ndarray) -> bool:
        """Check whether a measurement vector lies inside a track's gate."""
        z = validate_dimension(measurement, self.measurement_dim)
        z_hat = validate_dimension(predicted_mean, self.measurement_dim, name="predicted measurement")
        return self.squared_distance(z - z_hat, covariance) <= self.threshold

    def _evaluate_pair(self, z_hat: np.ndarray, z: np.ndarray,
                       chol: np.ndarray) -> Tuple[float, float]:
        whitened = scipy.linalg.solve_triangular(chol, z - z_hat, lower=True)
        distance = float(whitened @ whitened)
        log_det = 2.0 * float(np.sum(np.log(np.diag(chol))))
        log_likelihood = -0.5 * (self.measurement_dim * np.log(2 * np.pi) + log_det + distance)
        return distance, log_likelihood

    def evaluate(self, predictions: Sequence[PredictedMeasurement],
                 measurements: Sequence[Measurement]) -> ValidationMatrix:
        """
        Build the validation matrix for one time step.

        Args:
            predictions: Measurement-space prediction per track
            measurements: Measurements of the current batch

        Returns:
            ValidationMatrix with gate flags, distances and log-likelihoods

        Raises:
            DimensionMismatchError: If any vector has the wrong dimension
            SingularCovarianceError: If on_singular is "raise" and some S is singular
        """
        n_tracks = len(predictions)
        n_measurements = len(measurements)

        for measurement in measurements:
            if measurement.dim != self.measurement_dim:
                raise DimensionMismatchError("measurement", self.measurement_dim, measurement.dim)

        gated = np.zeros((n_tracks, n_measurements), dtype=bool)
        distances = np.full((n_tracks, n_measurements), np.inf)
        log_likelihoods = np.full((n_tracks, n_measurements), -np.inf)
        singular_tracks: List[int] = []

        for i, prediction in enumerate(predictions):
            z_hat = validate_dimension(prediction.mean, self.measurement_dim, name="predicted measurement")
            try:
                default_chol = self._factorize(prediction.innovation_covar)
                for j, measurement in enumerate(measurements):
                    chol = default_chol
                    if measurement.covariance is not None and prediction.projected_covar is not None:
                        chol = self._factorize(prediction.covar_for(measurement))
                    distance, log_likelihood = self._evaluate_pair(z_hat, measurement.vector, chol)
                    distances[i, j] = distance
                    if distance <= self.threshold:
                        gated[i, j] = True
                        log_likelihoods[i, j] = log_likelihood
            except SingularCovarianceError as exc:
                if self.on_singular == "raise":
                    raise SingularCovarianceError(str(exc), track_index=i) from exc
                logger.warning(f"Track index {i}: singular innovation covariance, excluded from gating")
                gated[i, :] = False
                distances[i, :] = np.inf
                log_likelihoods[i, :] = -np.inf
                singular_tracks.append(i)

        logger.debug(f"Gating: {int(gated.sum())} admissible pairs out of "
                     f"{n_tracks * n_measurements} (threshold {self.threshold:.3f})")

        return ValidationMatrix(
            gated=gated,
            distances=distances,
            log_likelihoods=log_likelihoods,
            threshold=self.threshold,
            singular_tracks=singular_tracks
        )
