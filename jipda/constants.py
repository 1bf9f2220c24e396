"""
Numerical Tolerances and Default Tracking Parameters

This module contains the tolerances, default model parameters and
standard values used throughout the JIPDA tracking engine.
"""

from dataclasses import dataclass


# ============================================================================
# NUMERICAL TOLERANCES
# ============================================================================

# Maximum rounding drift tolerated before a probability is declared invalid
PROBABILITY_EPS = 1e-9

# Row-sum tolerance for association weights
WEIGHT_SUM_TOLERANCE = 1e-9

# Weights below this value are treated as zero in mixture reduction
NEGLIGIBLE_WEIGHT = 1e-12

# Relative tolerance for positive semi-definiteness checks
PSD_TOLERANCE = 1e-10


# ============================================================================
# DEFAULT MODEL PARAMETERS
# ============================================================================

@dataclass
class TrackingDefaults:
    """Default values for tracker configuration"""

    # Gating
    GATE_LEVEL = 0.99  # chi-square confidence
    MEASUREMENT_DIM = 2

    # Association
    MAX_EXACT_HYPOTHESES = 5000
    BP_MAX_ITERATIONS = 200
    BP_TOLERANCE = 1e-10

    # Existence
    SURVIVAL_PROBABILITY = 1.0
    INITIAL_EXISTENCE = 0.5

    # Models
    DETECTION_PROBABILITY = 0.8
    CLUTTER_RATE = 10.0  # expected false detections per scan
    VELOCITY_ERROR_VARIANCE = 0.01 ** 2
    MEASUREMENT_ERROR_VARIANCE = 0.1 ** 2

    # Evaluation
    OSPA_CUTOFF = 1.0
    OSPA_ORDER = 1


# Only supported clustering strategy
CONNECTED_COMPONENTS = "connected_components"
