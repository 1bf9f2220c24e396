"""
Performance metrics for multi-target tracking evaluation.

Implements the Optimal Sub-Pattern Assignment (OSPA) distance between the
set of true target positions and the set of track estimates, split into
its localisation and cardinality components.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment
from scipy.spatial.distance import cdist

from .tracker_base import Track
from ..constants import TrackingDefaults


def _as_points(points) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    if points.size == 0:
        return np.zeros((0, points.shape[-1] if points.ndim == 2 else 0))
    return points.reshape(points.shape[0], -1)


def ospa_distance(truth: np.ndarray, estimates: np.ndarray,
                  cutoff: float = TrackingDefaults.OSPA_CUTOFF,
                  order: int = TrackingDefaults.OSPA_ORDER) -> Tuple[float, float, float]:
    """
    Compute Optimal Sub-Pattern Assignment (OSPA) distance.

    Args:
        truth: True positions as rows (n x d)
        estimates: Estimated positions as rows (m x d)
        cutoff: OSPA cutoff distance c
        order: OSPA order parameter p

    Returns:
        (ospa, localisation, cardinality) components
    """
    if cutoff <= 0:
        raise ValueError(f"cutoff must be positive, got {cutoff}")
    if order < 1:
        raise ValueError(f"order must be at least 1, got {order}")

    truth = _as_points(truth)
    estimates = _as_points(estimates)
    n_true = truth.shape[0]
    n_est = estimates.shape[0]

    if n_true == 0 and n_est == 0:
        return 0.0, 0.0, 0.0
    n_max = max(n_true, n_est)
    cardinality_cost = cutoff ** order * abs(n_true - n_est)

    if n_true == 0 or n_est == 0:
        return cutoff, 0.0, cutoff

    # Distance matrix with cutoff applied
    dist_matrix = np.minimum(cdist(truth, estimates), cutoff) ** order

    # Solve assignment problem (rectangular matrices are supported)
    row_indices, col_indices = linear_sum_assignment(dist_matrix)
    assignment_cost = float(np.sum(dist_matrix[row_indices, col_indices]))

    ospa = ((assignment_cost + cardinality_cost) / n_max) ** (1.0 / order)
    localisation = (assignment_cost / n_max) ** (1.0 / order)
    cardinality = (cardinality_cost / n_max) ** (1.0 / order)
    return ospa, localisation, cardinality


def track_positions(tracks: Sequence[Track], position_indices: Sequence[int],
                    min_existence: float = 0.0) -> np.ndarray:
    """
    Positions of the current track estimates.

    Args:
        tracks: Tracks to read
        position_indices: State indices of the position components
        min_existence: Tracks below this existence probability are left out

    Returns:
        Positions as rows (n x len(position_indices))
    """
    indices = np.asarray(position_indices, dtype=int)
    rows = [track.state.mean[indices] for track in tracks
            if track.existence_probability >= min_existence]
    if not rows:
        return np.zeros((0, len(indices)))
    return np.vstack(rows)
