"""
Test suite for connected-component clustering.
"""

import pytest
import numpy as np
import numpy.testing as npt

from ..clustering import Cluster, ClusterBuilder
from ..gating import ValidationMatrix


def _partition_holds(clusters, n_tracks, n_measurements):
    tracks = [t for c in clusters for t in c.track_indices]
    measurements = [j for c in clusters for j in c.measurement_indices]
    return sorted(tracks) == list(range(n_tracks)) and sorted(measurements) == list(range(n_measurements))


class TestClusterBuilder:
    """Test ClusterBuilder behaviour."""

    def test_shared_measurement_links_tracks(self):
        # T1 gates z1; T2 gates z1 and z2; T3 gates z3; z4 is gated by nothing
        gated = np.array([[1, 0, 0, 0],
                          [1, 1, 0, 0],
                          [0, 0, 1, 0]], dtype=bool)

        clusters = ClusterBuilder().build(gated)

        assert clusters == [
            Cluster(track_indices=(0, 1), measurement_indices=(0, 1)),
            Cluster(track_indices=(2,), measurement_indices=(2,)),
            Cluster(track_indices=(), measurement_indices=(3,)),
        ]
        assert clusters[2].is_clutter_only

    def test_transitive_chain(self):
        # T0 - z0 - T1 - z1 - T2 form a single component
        gated = np.array([[1, 0],
                          [1, 1],
                          [0, 1]], dtype=bool)
        clusters = ClusterBuilder().build(gated)
        assert clusters == [Cluster((0, 1, 2), (0, 1))]

    def test_ungated_track_is_singleton(self):
        gated = np.array([[0, 0],
                          [1, 0]], dtype=bool)
        clusters = ClusterBuilder().build(gated)

        assert clusters[0] == Cluster((0,), ())
        assert clusters[1] == Cluster((1,), (0,))
        assert clusters[2] == Cluster((), (1,))

    def test_no_measurements(self):
        clusters = ClusterBuilder().build(np.zeros((3, 0), dtype=bool))
        assert clusters == [Cluster((0,), ()), Cluster((1,), ()), Cluster((2,), ())]

    def test_no_tracks(self):
        clusters = ClusterBuilder().build(np.zeros((0, 2), dtype=bool))
        assert clusters == [Cluster((), (0,)), Cluster((), (1,))]

    def test_empty(self):
        assert ClusterBuilder().build(np.zeros((0, 0), dtype=bool)) == []

    def test_accepts_validation_matrix(self):
        gated = np.array([[True, False], [False, True]])
        validation = ValidationMatrix(gated=gated, distances=np.zeros((2, 2)),
                                      log_likelihoods=np.zeros((2, 2)), threshold=9.21)
        clusters = ClusterBuilder().build(validation)
        assert [c.track_indices for c in clusters] == [(0,), (1,)]

    def test_partition_on_random_matrices(self, rng):
        builder = ClusterBuilder()
        for _ in range(25):
            n_tracks, n_measurements = rng.integers(0, 8, size=2)
            gated = rng.random((n_tracks, n_measurements)) < 0.2
            clusters = builder.build(gated)

            assert _partition_holds(clusters, n_tracks, n_measurements)
            for cluster in clusters:
                assert list(cluster.track_indices) == sorted(cluster.track_indices)
                assert list(cluster.measurement_indices) == sorted(cluster.measurement_indices)
                # No gate crosses a cluster boundary
                outside = [j for j in range(n_measurements) if j not in cluster.measurement_indices]
                if cluster.track_indices and outside:
                    assert not gated[np.ix_(list(cluster.track_indices), outside)].any()

    def test_deterministic_ordering(self, rng):
        gated = rng.random((6, 9)) < 0.25
        builder = ClusterBuilder()
        assert builder.build(gated) == builder.build(gated.copy())

    def test_submatrix(self):
        gated = np.array([[1, 0, 1],
                          [0, 1, 0],
                          [1, 0, 0]], dtype=bool)
        cluster = Cluster((0, 2), (0, 2))
        npt.assert_array_equal(cluster.submatrix(gated), [[True, True], [True, False]])

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            ClusterBuilder(strategy="naive")

    def test_rejects_non_2d(self):
        with pytest.raises(ValueError):
            ClusterBuilder().build(np.zeros(3, dtype=bool))
