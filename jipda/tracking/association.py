"""
Joint Integrated Probabilistic Data Association (JIPDA) probabilities.

This module computes, for every cluster produced by the cluster builder,
the joint posterior over association hypotheses and its marginals:

- beta(t, j): probability that measurement j originated from track t
- beta(t, 0): probability that track t was not detected
- clutter probability of every measurement in the cluster

Hypothesis scoring (log space). For track t with predicted existence r_t
and detection probability P_D:

    track t <- measurement j : log(r_t * P_D) + log N(z_j; z_hat_t, S_t)
    track t undetected       : log(1 - r_t * P_D)
    measurement j unassigned : log(lambda(z_j))       (clutter density)

The score of a hypothesis is the sum of its decisions. With r_t = 1 the
factors reduce to P_D * N, (1 - P_D) and lambda, i.e. plain JPDA with a
uniform prior over hypotheses. Scores are normalized with logsumexp.

Exact enumeration is a depth-first search over the cluster's tracks where
each track takes "no detection" or one still unused gated measurement.
The number of feasible hypotheses is sum_k C(n, k) C(m, k) k! for a fully
gated cluster of n tracks and m measurements and each is scored in
O(n + m). The search space is bounded above by prod_t (1 + |G_t|) where
G_t is the gate of track t; when that bound exceeds max_exact_hypotheses
the marginals are approximated by loopy belief propagation instead and
the resulting table is flagged approximate.

Author: JIPDA Tracker Project
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import logsumexp

from .clustering import Cluster
from .gating import ValidationMatrix
from ..constants import TrackingDefaults
from ..validators import DegenerateHypothesisError

logger = logging.getLogger(__name__)

NO_DETECTION = -1


def _safe_log(values: np.ndarray) -> np.ndarray:
    """Natural log mapping zeros to -inf without numpy warnings."""
    values = np.asarray(values, dtype=np.float64)
    result = np.full(values.shape, -np.inf)
    positive = values > 0
    result[positive] = np.log(values[positive])
    return result


@dataclass(frozen=True)
class AssociationHypothesis:
    """
    One feasible joint assignment within a cluster.

    Attributes:
        assignment: Measurement index (global) per cluster track, or -1 for
            no detection; ordered like Cluster.track_indices
        log_score: Unnormalized log-probability of the hypothesis
    """
    assignment: Tuple[int, ...]
    log_score: float


@dataclass
class JointProbabilityTable:
    """
    Joint and marginal association probabilities of one cluster.

    Attributes:
        cluster: The cluster the table belongs to
        hypotheses: Enumerated hypotheses (empty for approximate tables)
        probabilities: Normalized probability of each hypothesis
        beta: Marginals (n_tracks x (1 + n_measurements)); column 0 is no
            detection, column 1 + k is cluster.measurement_indices[k]
        clutter_probabilities: Probability each cluster measurement is clutter
        existence_posteriors: Posterior existence per cluster track, filled
            in by the existence update
        approximate: True when computed by belief propagation
    """
    cluster: Cluster
    hypotheses: List[AssociationHypothesis]
    probabilities: np.ndarray
    beta: np.ndarray
    clutter_probabilities: np.ndarray
    existence_posteriors: Optional[np.ndarray] = None
    approximate: bool = False
    iterations: Optional[int] = field(default=None, compare=False)

    def track_weights(self, track_index: int) -> np.ndarray:
        """Marginal row [beta(t, 0), beta(t, j1), ...] for a global track index."""
        return self.beta[self.cluster.track_indices.index(track_index)]

    def marginal(self, track_index: int, measurement_index: Optional[int] = None) -> float:
        """
        Marginal association probability by global indices.

        Args:
            track_index: Global track index
            measurement_index: Global measurement index, or None for no detection

        Returns:
            beta(t, j), or beta(t, 0) when measurement_index is None
        """
        row = self.track_weights(track_index)
        if measurement_index is None:
            return float(row[0])
        if measurement_index not in self.cluster.measurement_indices:
            return 0.0
        return float(row[1 + self.cluster.measurement_indices.index(measurement_index)])


class HypothesisProbabilityEngine:
    """
    Computes JIPDA association probabilities per cluster.

    Exact enumeration is used while the hypothesis space is small enough;
    larger clusters switch to loopy belief propagation with a warning.
    """

    def __init__(self, max_exact_hypotheses: int = TrackingDefaults.MAX_EXACT_HYPOTHESES,
                 bp_max_iterations: int = TrackingDefaults.BP_MAX_ITERATIONS,
                 bp_tolerance: float = TrackingDefaults.BP_TOLERANCE):
        """
        Initialize hypothesis probability engine.

        Args:
            max_exact_hypotheses: Largest hypothesis-space bound enumerated exactly
            bp_max_iterations: Iteration cap for belief propagation
            bp_tolerance: Convergence tolerance on message changes
        """
        if max_exact_hypotheses < 1:
            raise ValueError("max_exact_hypotheses must be at least 1")
        self.max_exact_hypotheses = max_exact_hypotheses
        self.bp_max_iterations = bp_max_iterations
        self.bp_tolerance = bp_tolerance

    # ------------------------------------------------------------------
    # Scoring terms
    # ------------------------------------------------------------------

    @staticmethod
    def _cluster_terms(cluster: Cluster, validation: ValidationMatrix,
                       existence: np.ndarray, detection: np.ndarray,
                       clutter_density: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        tracks = list(cluster.track_indices)
        measurements = list(cluster.measurement_indices)

        detect_prob = existence[tracks] * detection[tracks]
        gated = validation.gated[np.ix_(tracks, measurements)]
        log_detect = np.full(gated.shape, -np.inf)
        log_detect[gated] = (_safe_log(detect_prob)[:, None]
                             + validation.log_likelihoods[np.ix_(tracks, measurements)])[gated]
        log_miss = _safe_log(1.0 - detect_prob)
        log_clutter = _safe_log(clutter_density[measurements])
        return gated, log_detect, log_miss, log_clutter

    @staticmethod
    def hypothesis_space_bound(gated: np.ndarray) -> int:
        """Upper bound prod_t (1 + |G_t|) on the number of hypotheses."""
        bound = 1
        for row in gated:
            bound *= 1 + int(np.count_nonzero(row))
        return bound

    # ------------------------------------------------------------------
    # Exact enumeration
    # ------------------------------------------------------------------

    @staticmethod
    def enumerate_hypotheses(cluster: Cluster, gated: np.ndarray) -> List[Tuple[int, ...]]:
        """
        Enumerate feasible joint assignments of a cluster.

        Args:
            cluster: Cluster whose tracks and measurements are enumerated
            gated: Boolean gate matrix of the step (all tracks x all measurements)

        Returns:
            Assignments as tuples of cluster-local measurement positions
            (-1 for no detection), ordered like cluster.track_indices
        """
        gated = cluster.submatrix(gated)
        num_tracks, num_measurements = gated.shape
        options = [np.flatnonzero(gated[t]).tolist() for t in range(num_tracks)]
        hypotheses: List[Tuple[int, ...]] = []
        current: List[int] = []
        used = [False] * num_measurements

        def generate_recursive(track_idx: int):
            if track_idx == num_tracks:
                hypotheses.append(tuple(current))
                return

            # Option 1: track not detected
            current.append(NO_DETECTION)
            generate_recursive(track_idx + 1)
            current.pop()

            # Option 2: one unused measurement inside the gate
            for meas_idx in options[track_idx]:
                if not used[meas_idx]:
                    used[meas_idx] = True
                    current.append(meas_idx)
                    generate_recursive(track_idx + 1)
                    current.pop()
                    used[meas_idx] = False

        generate_recursive(0)
        return hypotheses

    def _exact(self, cluster: Cluster, validation_gated: np.ndarray, gated: np.ndarray,
               log_detect: np.ndarray, log_miss: np.ndarray, log_clutter: np.ndarray) -> JointProbabilityTable:
        num_tracks, num_measurements = gated.shape
        local_assignments = self.enumerate_hypotheses(cluster, validation_gated)

        scores = np.empty(len(local_assignments))
        for h, assignment in enumerate(local_assignments):
            used = np.zeros(num_measurements, dtype=bool)
            score = 0.0
            for t, j in enumerate(assignment):
                if j == NO_DETECTION:
                    score += log_miss[t]
                else:
                    score += log_detect[t, j]
                    used[j] = True
            score += float(np.sum(log_clutter[~used]))
            scores[h] = score

        if num_measurements == 0:
            # Only the all-undetected hypothesis exists
            probabilities = np.ones(len(local_assignments))
        else:
            total = logsumexp(scores)
            if not np.isfinite(total):
                raise DegenerateHypothesisError(
                    f"All {len(scores)} hypotheses of cluster with tracks "
                    f"{cluster.track_indices} have zero probability"
                )
            probabilities = np.exp(scores - total)

        beta = np.zeros((num_tracks, 1 + num_measurements))
        clutter = np.zeros(num_measurements)
        for assignment, p in zip(local_assignments, probabilities):
            used = np.zeros(num_measurements, dtype=bool)
            for t, j in enumerate(assignment):
                if j == NO_DETECTION:
                    beta[t, 0] += p
                else:
                    beta[t, 1 + j] += p
                    used[j] = True
            clutter[~used] += p

        hypotheses = [
            AssociationHypothesis(
                assignment=tuple(NO_DETECTION if j == NO_DETECTION else cluster.measurement_indices[j]
                                 for j in assignment),
                log_score=float(score)
            )
            for assignment, score in zip(local_assignments, scores)
        ]

        return JointProbabilityTable(
            cluster=cluster,
            hypotheses=hypotheses,
            probabilities=probabilities,
            beta=beta,
            clutter_probabilities=clutter
        )

    # ------------------------------------------------------------------
    # Loopy belief propagation
    # ------------------------------------------------------------------

    def _belief_propagation(self, cluster: Cluster, gated: np.ndarray, log_detect: np.ndarray,
                            log_miss: np.ndarray, log_clutter: np.ndarray) -> JointProbabilityTable:
        num_tracks, num_measurements = gated.shape

        # Likelihood ratios against clutter, rescaled per track
        log_ratio = np.where(gated, log_detect - log_clutter[None, :], -np.inf)
        row_max = np.maximum(log_miss, np.max(log_ratio, axis=1))
        w0 = np.exp(log_miss - row_max)
        w1 = np.where(gated, np.exp(log_ratio - row_max[:, None]), 0.0)

        mu = np.ones((num_tracks, num_measurements))
        nu = np.zeros((num_tracks, num_measurements))
        iterations = 0
        for iterations in range(1, self.bp_max_iterations + 1):
            # Track -> measurement messages
            weighted = w1 * mu
            denom = w0[:, None] + np.sum(weighted, axis=1, keepdims=True) - weighted
            nu = np.where(gated, w1 / denom, 0.0)

            # Measurement -> track messages
            mu_new = 1.0 / (1.0 + np.sum(nu, axis=0, keepdims=True) - nu)

            delta = float(np.max(np.abs(mu_new - mu))) if mu.size else 0.0
            mu = mu_new
            if delta < self.bp_tolerance:
                break
        else:
            logger.warning(f"Belief propagation did not converge in {self.bp_max_iterations} "
                           f"iterations for cluster with tracks {cluster.track_indices}")

        beta = np.zeros((num_tracks, 1 + num_measurements))
        beta[:, 0] = w0
        beta[:, 1:] = w1 * mu
        beta /= np.sum(beta, axis=1, keepdims=True)
        clutter = 1.0 / (1.0 + np.sum(nu, axis=0))

        return JointProbabilityTable(
            cluster=cluster,
            hypotheses=[],
            probabilities=np.zeros(0),
            beta=beta,
            clutter_probabilities=clutter,
            approximate=True,
            iterations=iterations
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compute(self, cluster: Cluster, validation: ValidationMatrix,
                existence: Sequence[float], detection: Sequence[float],
                clutter_density: Sequence[float]) -> JointProbabilityTable:
        """
        Compute the joint probability table of one cluster.

        Args:
            cluster: Cluster to associate
            validation: Validation matrix of the step (gates and log-likelihoods)
            existence: Predicted existence probability per global track index
            detection: Detection probability per global track index
            clutter_density: Clutter density per global measurement index

        Returns:
            JointProbabilityTable with per-track rows summing to one

        Raises:
            DegenerateHypothesisError: If every hypothesis has zero probability
        """
        existence = np.asarray(existence, dtype=np.float64)
        detection = np.asarray(detection, dtype=np.float64)
        clutter_density = np.asarray(clutter_density, dtype=np.float64)

        if cluster.is_clutter_only:
            return JointProbabilityTable(
                cluster=cluster,
                hypotheses=[AssociationHypothesis(assignment=(), log_score=0.0)],
                probabilities=np.ones(1),
                beta=np.zeros((0, 1 + cluster.num_measurements)),
                clutter_probabilities=np.ones(cluster.num_measurements)
            )

        gated, log_detect, log_miss, log_clutter = self._cluster_terms(
            cluster, validation, existence, detection, clutter_density)

        bound = self.hypothesis_space_bound(gated)
        if bound > self.max_exact_hypotheses:
            gated_clutter = log_clutter[np.any(gated, axis=0)]
            if np.all(np.isfinite(gated_clutter)) and np.all(np.isfinite(log_miss)):
                logger.warning(
                    f"Cluster with {cluster.num_tracks} tracks and {cluster.num_measurements} "
                    f"measurements bounds {bound} hypotheses (> {self.max_exact_hypotheses}); "
                    f"using approximate belief propagation"
                )
                return self._belief_propagation(cluster, gated, log_detect, log_miss, log_clutter)
            logger.warning(
                f"Cluster bounds {bound} hypotheses but has zero clutter density or certain "
                f"detection; belief propagation is not applicable, enumerating exactly"
            )

        table = self._exact(cluster, validation.gated, gated, log_detect, log_miss, log_clutter)
        logger.debug(f"Cluster tracks={cluster.track_indices} measurements={cluster.measurement_indices}: "
                     f"{len(table.hypotheses)} hypotheses")
        return table
