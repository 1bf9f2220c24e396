"""
Joint Integrated Probabilistic Data Association (JIPDA) tracker.

The tracker runs one time step as a fixed sequence of phases:

    validate -> predict -> gate -> cluster -> associate
             -> existence update -> state update -> trajectory append

All inputs are validated before any track is touched. Clusters are
independent after gating, so association and update may run on a thread
pool; a numerical failure inside one cluster leaves its tracks at their
prediction and is reported without affecting the other clusters.

Author: JIPDA Tracker Project
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .association import HypothesisProbabilityEngine, JointProbabilityTable
from .clustering import Cluster, ClusterBuilder
from .clutter_models import (
    ClutterModel, ConstantDetectionModel, DetectionModel, PoissonUniformClutterModel
)
from .existence import ExistenceUpdater
from .gating import GateEvaluator, PredictedMeasurement, ValidationMatrix
from .state_update import TrackStateUpdater
from .tracker_base import GaussianState, MeasurementBatch, Track
from ..validators import (
    DimensionMismatchError, TrackingError, validate_density, validate_probability
)

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    """Outcome of a tracker step."""
    OK = "ok"
    EMPTY_MEASUREMENT_BATCH = "empty_measurement_batch"
    EMPTY_TRACK_LIST = "empty_track_list"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class TrackFailure:
    """Tracks of a cluster left at their prediction after a numerical failure."""
    cluster_index: int
    track_ids: Tuple[Any, ...]
    reason: str


@dataclass
class StepResult:
    """
    Report of one tracker step.

    Attributes:
        timestamp: Batch timestamp
        status: Overall step status
        updated_track_ids: Tracks that received a full JIPDA update
        failures: Per-cluster failures (tracks kept at their prediction)
        tables: Joint probability tables keyed by cluster index
        validation: Validation matrix of the step
        clusters: Clusters of the step
    """
    timestamp: float
    status: StepStatus
    updated_track_ids: List[Any] = field(default_factory=list)
    failures: List[TrackFailure] = field(default_factory=list)
    tables: Dict[int, JointProbabilityTable] = field(default_factory=dict)
    validation: Optional[ValidationMatrix] = None
    clusters: List[Cluster] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class _ClusterOutcome:
    table: Optional[JointProbabilityTable] = None
    existence: Dict[int, float] = field(default_factory=dict)
    failure: Optional[str] = None


class JIPDATracker:
    """
    JIPDA multi-target tracking engine.

    Existence and association are coupled: every hypothesis is weighted by
    the predicted existence of its tracks and the association marginals in
    turn drive the existence and state posteriors.
    """

    def __init__(self, gater: GateEvaluator, clusterer: ClusterBuilder,
                 clutter_model: ClutterModel, detection_model: DetectionModel,
                 engine: Optional[HypothesisProbabilityEngine] = None,
                 existence_updater: Optional[ExistenceUpdater] = None,
                 state_updater: Optional[TrackStateUpdater] = None,
                 max_workers: int = 1):
        """
        Initialize JIPDA tracker.

        Args:
            gater: Ellipsoidal gate evaluator
            clusterer: Cluster builder
            clutter_model: Spatial clutter density
            detection_model: Detection probability
            engine: Hypothesis probability engine (default settings if omitted)
            existence_updater: Existence recursion (P_S = 1 if omitted)
            state_updater: Mixture-reduction state updater
            max_workers: Threads used for independent clusters (1 = sequential)
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.gater = gater
        self.clusterer = clusterer
        self.clutter_model = clutter_model
        self.detection_model = detection_model
        self.engine = engine or HypothesisProbabilityEngine()
        self.existence_updater = existence_updater or ExistenceUpdater()
        self.state_updater = state_updater or TrackStateUpdater()
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config) -> 'JIPDATracker':
        """
        Build a tracker from a TrackerConfig.

        Args:
            config: TrackerConfig as produced by ConfigLoader

        Returns:
            Configured JIPDATracker
        """
        gater = GateEvaluator(
            measurement_dim=config.gating.measurement_dim,
            gate_level=config.gating.gate_level,
            gate_threshold=config.gating.gate_threshold,
            on_singular=config.gating.on_singular
        )
        engine = HypothesisProbabilityEngine(
            max_exact_hypotheses=config.association.max_exact_hypotheses,
            bp_max_iterations=config.association.bp_max_iterations,
            bp_tolerance=config.association.bp_tolerance
        )
        return cls(
            gater=gater,
            clusterer=ClusterBuilder(config.association.clustering),
            clutter_model=PoissonUniformClutterModel(config.clutter.clutter_rate, config.clutter.limits),
            detection_model=ConstantDetectionModel(config.model.detection_probability),
            engine=engine,
            existence_updater=ExistenceUpdater(config.model.survival_probability),
            max_workers=config.association.max_workers
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, tracks: Sequence[Track],
                  batch: MeasurementBatch) -> Tuple[np.ndarray, np.ndarray]:
        """Check every input and evaluate the external models once."""
        if batch.dim is not None and batch.dim != self.gater.measurement_dim:
            raise DimensionMismatchError("measurement", self.gater.measurement_dim, batch.dim)

        for track in tracks:
            if track.filter.dim_z != self.gater.measurement_dim:
                raise DimensionMismatchError(f"track {track.track_id!r} measurement model",
                                             self.gater.measurement_dim, track.filter.dim_z)
            if track.state is None:
                raise ValueError(f"Track {track.track_id!r} has no initialised state")
            if track.timestamp is not None and batch.timestamp < track.timestamp:
                raise ValueError(f"Batch timestamp {batch.timestamp} precedes track "
                                 f"{track.track_id!r} timestamp {track.timestamp}")

        detection = np.array([
            validate_probability(self.detection_model.probability(track.state), "detection probability")
            for track in tracks
        ])
        clutter = np.array([
            validate_density(self.clutter_model.density(measurement.vector), "clutter density")
            for measurement in batch
        ])
        return detection, clutter

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _predict(self, tracks: Sequence[Track], timestamp: float) -> Tuple[List[GaussianState], np.ndarray,
                                                                          List[PredictedMeasurement]]:
        predicted_states = []
        predictions = []
        existence = np.empty(len(tracks))
        for i, track in enumerate(tracks):
            dt = None if track.timestamp is None else timestamp - track.timestamp
            state = track.filter.predict(dt)
            state.timestamp = timestamp
            predicted_states.append(state)
            existence[i] = self.existence_updater.predict(track.existence_probability)

            zero_noise = np.zeros((track.filter.dim_z, track.filter.dim_z))
            predictions.append(PredictedMeasurement(
                mean=track.filter.predicted_measurement(),
                innovation_covar=track.filter.innovation_covariance(),
                projected_covar=track.filter.innovation_covariance(zero_noise)
            ))
        return predicted_states, existence, predictions

    def _process_cluster(self, cluster: Cluster, tracks: Sequence[Track], batch: MeasurementBatch,
                         validation: ValidationMatrix, predicted_states: Sequence[GaussianState],
                         existence: np.ndarray, detection: np.ndarray,
                         clutter: np.ndarray) -> _ClusterOutcome:
        """Associate and update one cluster. Only this cluster's filters are written."""
        singular = [t for t in cluster.track_indices if t in validation.singular_tracks]
        if singular:
            return _ClusterOutcome(failure="singular innovation covariance")

        try:
            table = self.engine.compute(cluster, validation, existence, detection, clutter)
            outcome = _ClusterOutcome(table=table)
            cluster_measurements = [batch[j] for j in cluster.measurement_indices]
            posteriors = np.empty(cluster.num_tracks)

            for k, t in enumerate(cluster.track_indices):
                beta_row = table.beta[k]
                r_post = self.existence_updater.update(existence[t], detection[t], beta_row)
                weights = self.existence_updater.conditional_weights(existence[t], detection[t],
                                                                     beta_row, r_post)
                self.state_updater.update(tracks[t].filter, predicted_states[t],
                                          cluster_measurements, weights)
                posteriors[k] = r_post
                outcome.existence[t] = r_post

            table.existence_posteriors = posteriors
            return outcome
        except TrackingError as exc:
            return _ClusterOutcome(failure=f"{type(exc).__name__}: {exc}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def step(self, tracks: Sequence[Track], batch: MeasurementBatch) -> StepResult:
        """
        Run one JIPDA time step in place on the given tracks.

        Args:
            tracks: Tracks to update
            batch: Measurements received at the batch timestamp

        Returns:
            StepResult describing clusters, probabilities and failures

        Raises:
            ValueError: If tracks or batch is None or timestamps go backwards
            InvalidProbabilityError: If a model returns an invalid probability or density
            DimensionMismatchError: If measurement and model dimensions disagree
        """
        if tracks is None:
            raise ValueError("tracks must not be None")
        if batch is None:
            raise ValueError("batch must not be None")
        tracks = list(tracks)

        if not tracks:
            logger.info(f"t={batch.timestamp}: no tracks, nothing to do")
            return StepResult(timestamp=batch.timestamp, status=StepStatus.EMPTY_TRACK_LIST)

        detection, clutter = self._validate(tracks, batch)

        predicted_states, existence, predictions = self._predict(tracks, batch.timestamp)
        validation = self.gater.evaluate(predictions, batch.measurements)
        clusters = self.clusterer.build(validation)
        track_clusters = [(index, cluster) for index, cluster in enumerate(clusters)
                          if not cluster.is_clutter_only]

        def process(item):
            index, cluster = item
            return index, self._process_cluster(cluster, tracks, batch, validation, predicted_states,
                                                 existence, detection, clutter)

        if self.max_workers > 1 and len(track_clusters) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(process, track_clusters))
        else:
            outcomes = [process(item) for item in track_clusters]

        result = StepResult(timestamp=batch.timestamp, status=StepStatus.OK,
                            validation=validation, clusters=clusters)

        for index, outcome in outcomes:
            cluster = clusters[index]
            if outcome.failure is not None:
                track_ids = tuple(tracks[t].track_id for t in cluster.track_indices)
                logger.warning(f"Cluster {index} (tracks {list(track_ids)}) kept at prediction: "
                               f"{outcome.failure}")
                result.failures.append(TrackFailure(index, track_ids, outcome.failure))
                for t in cluster.track_indices:
                    tracks[t].filter.state_posterior = predicted_states[t].copy()
                    tracks[t].existence_probability = float(existence[t])
                continue

            result.tables[index] = outcome.table
            for t in cluster.track_indices:
                tracks[t].existence_probability = outcome.existence[t]
                result.updated_track_ids.append(tracks[t].track_id)

        for track in tracks:
            track.timestamp = batch.timestamp
            track.append_trajectory(track.state)

        if result.failures:
            result.status = StepStatus.PARTIAL_FAILURE
        elif len(batch) == 0:
            result.status = StepStatus.EMPTY_MEASUREMENT_BATCH

        logger.info(f"t={batch.timestamp}: {len(tracks)} tracks, {len(batch)} measurements, "
                    f"{len(clusters)} clusters, status={result.status.value}")
        return result

    def run(self, tracks: Sequence[Track], batches: Iterable[MeasurementBatch]) -> Iterator[StepResult]:
        """
        Run the tracker over a sequence of batches.

        Args:
            tracks: Tracks updated in place at every step
            batches: Measurement batches in time order

        Yields:
            StepResult of each step
        """
        for batch in batches:
            yield self.step(tracks, batch)
