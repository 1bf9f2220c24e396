"""
Clustering of tracks and measurements into independent association problems.

The validation matrix is read as a bipartite graph between tracks and
measurements; each connected component is one cluster. Clusters are
disjoint and cover every track and measurement exactly once, so they can
be associated and updated independently.

Author: JIPDA Tracker Project
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple, Union

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from .gating import ValidationMatrix
from ..constants import CONNECTED_COMPONENTS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cluster:
    """Track and measurement indices of one connected component."""
    track_indices: Tuple[int, ...]
    measurement_indices: Tuple[int, ...]

    @property
    def num_tracks(self) -> int:
        return len(self.track_indices)

    @property
    def num_measurements(self) -> int:
        return len(self.measurement_indices)

    @property
    def is_clutter_only(self) -> bool:
        """A measurement gated to no track."""
        return not self.track_indices

    def submatrix(self, gated: np.ndarray) -> np.ndarray:
        """Gate sub-matrix restricted to this cluster (tracks x measurements)."""
        return gated[np.ix_(self.track_indices, self.measurement_indices)]


class ClusterBuilder:
    """
    Partition a validation matrix into clusters.

    Only the connected-components strategy is supported.
    """

    def __init__(self, strategy: str = CONNECTED_COMPONENTS):
        """
        Initialize cluster builder.

        Args:
            strategy: Clustering strategy selector
        """
        if strategy != CONNECTED_COMPONENTS:
            raise ValueError(f"Unknown clustering strategy: {strategy}")
        self.strategy = strategy

    def build(self, validation: Union[ValidationMatrix, np.ndarray]) -> List[Cluster]:
        """
        Compute the clusters of a validation matrix.

        Ordering is deterministic: clusters containing tracks come first,
        sorted by their smallest track index, followed by clutter-only
        measurement clusters sorted by measurement index.

        Args:
            validation: ValidationMatrix or boolean gate matrix (tracks x measurements)

        Returns:
            List of clusters partitioning all track and measurement indices
        """
        gated = validation.gated if isinstance(validation, ValidationMatrix) else validation
        gated = np.asarray(gated, dtype=bool)
        if gated.ndim != 2:
            raise ValueError("Validation matrix must be 2D")
        n_tracks, n_measurements = gated.shape
        if n_tracks + n_measurements == 0:
            return []

        # Nodes 0..n_tracks-1 are tracks, the rest are measurements
        num_nodes = n_tracks + n_measurements
        rows, cols = np.nonzero(gated)
        adjacency = coo_matrix((np.ones(len(rows)), (rows, cols + n_tracks)),
                               shape=(num_nodes, num_nodes))
        _, labels = connected_components(adjacency, directed=False)

        track_labels = labels[:n_tracks]
        measurement_labels = labels[n_tracks:]

        clusters: List[Cluster] = []
        seen = set()
        for t in range(n_tracks):
            label = track_labels[t]
            if label in seen:
                continue
            seen.add(label)
            clusters.append(Cluster(
                track_indices=tuple(int(i) for i in np.flatnonzero(track_labels == label)),
                measurement_indices=tuple(int(j) for j in np.flatnonzero(measurement_labels == label))
            ))
        for j in range(n_measurements):
            if measurement_labels[j] not in seen:
                clusters.append(Cluster(track_indices=(), measurement_indices=(j,)))

        logger.debug(f"Clustering: {len(clusters)} clusters from "
                     f"{n_tracks} tracks and {n_measurements} measurements")
        return clusters
