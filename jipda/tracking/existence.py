"""
Track existence probability recursion.

The association engine weights every hypothesis by the predicted existence
r of each track, so the no-detection marginal beta(t, 0) mixes two events:
the track exists but was missed, or the track does not exist. The
posterior existence keeps only the first part of that mass:

    r_post = sum_j beta(t, j) + beta(t, 0) * (1 - P_D) r / (1 - P_D r)

Author: JIPDA Tracker Project
"""

import logging
from typing import Sequence

import numpy as np

from ..constants import PROBABILITY_EPS, TrackingDefaults
from ..validators import clamp_probability, validate_probability

logger = logging.getLogger(__name__)


class ExistenceUpdater:
    """
    Markov-chain existence prediction and Bayesian existence update.
    """

    def __init__(self, survival_probability: float = TrackingDefaults.SURVIVAL_PROBABILITY,
                 eps: float = PROBABILITY_EPS):
        """
        Initialize existence updater.

        Args:
            survival_probability: Probability P_S that an existing target
                survives one step
            eps: Rounding drift absorbed when clamping to [0, 1]
        """
        self.survival_probability = validate_probability(survival_probability, "survival probability")
        self.eps = eps

    def predict(self, existence: float) -> float:
        """Predicted existence r(k|k-1) = P_S * r(k-1|k-1)."""
        existence = validate_probability(existence, "existence probability")
        return self.survival_probability * existence

    def _missed_given_exists(self, predicted: float, detection_probability: float) -> float:
        # Fraction of beta(t, 0) where the target exists but went undetected
        denominator = 1.0 - detection_probability * predicted
        if denominator <= 0.0:
            return 0.0
        return (1.0 - detection_probability) * predicted / denominator

    def update(self, predicted: float, detection_probability: float,
               beta_row: Sequence[float]) -> float:
        """
        Posterior existence probability of one track.

        Args:
            predicted: Predicted existence r(k|k-1)
            detection_probability: Detection probability P_D
            beta_row: Marginals [beta(t, 0), beta(t, 1), ...] of the track

        Returns:
            r(k|k) in [0, 1]

        Raises:
            InvalidProbabilityError: If the result leaves [0, 1] by more than eps
        """
        beta_row = np.asarray(beta_row, dtype=np.float64)
        detected = float(np.sum(beta_row[1:]))
        posterior = detected + beta_row[0] * self._missed_given_exists(predicted, detection_probability)
        return clamp_probability(posterior, "posterior existence", self.eps)

    def conditional_weights(self, predicted: float, detection_probability: float,
                            beta_row: Sequence[float], posterior: float) -> np.ndarray:
        """
        Association weights conditioned on the track existing.

        Args:
            predicted: Predicted existence r(k|k-1)
            detection_probability: Detection probability P_D
            beta_row: Marginals [beta(t, 0), beta(t, 1), ...] of the track
            posterior: Posterior existence returned by update()

        Returns:
            Weights [w0, w1, ...] summing to one; w0 belongs to the prediction
        """
        beta_row = np.asarray(beta_row, dtype=np.float64)
        if posterior <= 0.0:
            # Track certainly absent; the estimate stays at the prediction
            weights = np.zeros_like(beta_row)
            weights[0] = 1.0
            return weights
        weights = beta_row / posterior
        weights[0] = beta_row[0] * self._missed_given_exists(predicted, detection_probability) / posterior
        total = float(np.sum(weights))
        if abs(total - 1.0) > 1e-6:
            logger.debug(f"Conditional weights renormalized from sum {total:.3e}")
        return weights / total
