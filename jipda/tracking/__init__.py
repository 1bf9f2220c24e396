"""
JIPDA target tracking module

This module provides the Joint Integrated Probabilistic Data Association
engine and the collaborators it is driven with.

Pipeline stages:
- Gating - Chi-square ellipsoidal validation of track/measurement pairs
- Clustering - Connected components of the validation graph
- Association - Joint hypothesis probabilities (exact or belief propagation)
- Existence - Track existence probability recursion
- State update - Gaussian mixture reduction of the per-hypothesis updates

Collaborators:
- Constant Velocity (CV) motion model and linear Gaussian measurement model
- Linear Kalman filter
- Poisson/uniform clutter model and constant detection probability
- OSPA performance metric
"""

from .tracker_base import (
    Measurement,
    MeasurementBatch,
    GaussianState,
    Track,
)

from .motion_models import (
    ConstantVelocityModel,
    LinearGaussianMeasurementModel,
)

from .kalman_filters import (
    KalmanFilter,
    initialize_constant_velocity_filter,
)

from .clutter_models import (
    ClutterModel,
    DetectionModel,
    PoissonUniformClutterModel,
    ConstantDetectionModel,
    as_clutter_model,
    as_detection_model,
)

from .gating import (
    GateEvaluator,
    PredictedMeasurement,
    ValidationMatrix,
)

from .clustering import (
    Cluster,
    ClusterBuilder,
)

from .association import (
    AssociationHypothesis,
    JointProbabilityTable,
    HypothesisProbabilityEngine,
)

from .existence import ExistenceUpdater
from .state_update import TrackStateUpdater

from .jipda_tracker import (
    JIPDATracker,
    StepResult,
    StepStatus,
    TrackFailure,
)

from .metrics import (
    ospa_distance,
    track_positions,
)

__all__ = [
    # Data structures
    'Measurement',
    'MeasurementBatch',
    'GaussianState',
    'Track',

    # Models and filter
    'ConstantVelocityModel',
    'LinearGaussianMeasurementModel',
    'KalmanFilter',
    'initialize_constant_velocity_filter',
    'ClutterModel',
    'DetectionModel',
    'PoissonUniformClutterModel',
    'ConstantDetectionModel',
    'as_clutter_model',
    'as_detection_model',

    # JIPDA stages
    'GateEvaluator',
    'PredictedMeasurement',
    'ValidationMatrix',
    'Cluster',
    'ClusterBuilder',
    'AssociationHypothesis',
    'JointProbabilityTable',
    'HypothesisProbabilityEngine',
    'ExistenceUpdater',
    'TrackStateUpdater',

    # Orchestrator
    'JIPDATracker',
    'StepResult',
    'StepStatus',
    'TrackFailure',

    # Metrics
    'ospa_distance',
    'track_positions',
]
