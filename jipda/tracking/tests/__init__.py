"""
Test suite for the JIPDA tracking package.

Test Structure:
- test_kalman_filters.py: Kalman filter and motion/measurement models
- test_clutter_models.py: Clutter and detection models
- test_gating.py: Ellipsoidal gating and the validation matrix
- test_clustering.py: Connected-component clustering
- test_association.py: Joint association probabilities (exact and approximate)
- test_existence.py: Existence probability recursion
- test_state_update.py: Mixture-reduction state update
- test_jipda_tracker.py: Orchestrator steps, failure isolation and determinism
- test_metrics.py: OSPA metric

To run all tests:
    pytest jipda/tracking/tests/
"""
