"""
JIPDA state update by Gaussian mixture reduction.

Each track's posterior is the mixture of its prediction (no detection)
and one Kalman update per gated measurement, weighted by the association
weights. The mixture is collapsed to a single Gaussian by moment matching:

    x = sum_i w_i x_i
    P = sum_i w_i (P_i + (x_i - x)(x_i - x)^T)

Author: JIPDA Tracker Project
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .kalman_filters import KalmanFilter
from .tracker_base import GaussianState, Measurement
from ..constants import NEGLIGIBLE_WEIGHT, PSD_TOLERANCE, WEIGHT_SUM_TOLERANCE
from ..validators import SingularCovarianceError, validate_weights

logger = logging.getLogger(__name__)


class TrackStateUpdater:
    """Mixture-reduction posterior for a single track."""

    def __init__(self, negligible_weight: float = NEGLIGIBLE_WEIGHT,
                 weight_tolerance: float = WEIGHT_SUM_TOLERANCE):
        self.negligible_weight = negligible_weight
        self.weight_tolerance = weight_tolerance

    @staticmethod
    def moment_match(components: Sequence[Tuple[float, GaussianState]]) -> GaussianState:
        """
        Collapse a weighted Gaussian mixture into one Gaussian.

        Args:
            components: (weight, state) pairs; weights must sum to one

        Returns:
            Moment-matched Gaussian state (symmetrized covariance)

        Raises:
            SingularCovarianceError: If the combined covariance is not finite or not PSD
        """
        weights = np.array([w for w, _ in components], dtype=np.float64)
        means = np.vstack([state.mean for _, state in components])
        mean = weights @ means

        covar = np.zeros((mean.shape[0], mean.shape[0]))
        for weight, state in components:
            spread = state.mean - mean
            covar += weight * (state.covar + np.outer(spread, spread))
        covar = 0.5 * (covar + covar.T)

        if not np.all(np.isfinite(covar)):
            raise SingularCovarianceError("Combined covariance contains non-finite values")
        min_eig = float(np.min(np.linalg.eigvalsh(covar)))
        scale = max(1.0, float(np.max(np.abs(np.diag(covar)))))
        if min_eig < -PSD_TOLERANCE * scale:
            raise SingularCovarianceError(
                f"Combined covariance is not positive semi-definite (min eigenvalue {min_eig:.3e})"
            )

        return GaussianState(mean, covar, components[0][1].timestamp)

    def update(self, filter: KalmanFilter, predicted: GaussianState,
               measurements: Sequence[Measurement], weights: Sequence[float]) -> GaussianState:
        """
        Compute and store the posterior state of one track.

        Args:
            filter: The track's filter, holding the prediction
            predicted: Predicted state x(k|k-1), P(k|k-1)
            measurements: Cluster measurements, aligned with weights[1:]
            weights: [w0, w1, ...] where w0 belongs to the prediction

        Returns:
            Posterior state (also written to filter.state_posterior)

        Raises:
            SingularCovarianceError: If a Kalman update or the reduction fails
        """
        weights = validate_weights(weights, self.weight_tolerance)
        if len(weights) != len(measurements) + 1:
            raise ValueError(
                f"Expected {len(measurements) + 1} weights, got {len(weights)}"
            )

        components: List[Tuple[float, GaussianState]] = []
        if weights[0] > self.negligible_weight:
            components.append((float(weights[0]), predicted))
        for weight, measurement in zip(weights[1:], measurements):
            if weight > self.negligible_weight:
                posterior = filter.update(measurement)
                posterior.timestamp = predicted.timestamp
                components.append((float(weight), posterior))

        if len(components) == 1 and components[0][0] == 1.0:
            # A single certain component is the exact filter result
            posterior = components[0][1].copy()
        else:
            total = sum(w for w, _ in components)
            posterior = self.moment_match([(w / total, state) for w, state in components])

        logger.debug(f"State update: {len(components)} mixture components")
        filter.state_posterior = posterior
        return posterior
