#!/usr/bin/env python3
"""
Configurable scenario runner for JIPDA tracking
Loads YAML configurations, simulates cluttered measurements and runs the
tracker with optional visualization
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec

from jipda.config_loader import ConfigLoader, ScenarioConfig
from jipda.simulation import MultiTargetMeasurementSimulator, generate_ground_truth
from jipda.tracking import (
    ConstantVelocityModel, GaussianState, JIPDATracker, KalmanFilter,
    LinearGaussianMeasurementModel, PoissonUniformClutterModel, ConstantDetectionModel,
    StepStatus, Track, ospa_distance, track_positions
)

logger = logging.getLogger(__name__)


class ScenarioRunner:
    """Run JIPDA tracking scenarios from configuration files"""

    def __init__(self, config: ScenarioConfig):
        """
        Initialize scenario runner

        Args:
            config: Scenario configuration object
        """
        self.config = config
        model_cfg = config.tracker.model

        self.transition_model = ConstantVelocityModel(
            model_cfg.num_dims, model_cfg.velocity_error_variance, config.time_step)
        self.measurement_model = LinearGaussianMeasurementModel(
            self.transition_model.state_dim,
            self.transition_model.position_indices(),
            model_cfg.measurement_error_variance)
        self.base_filter = KalmanFilter(self.transition_model, self.measurement_model)
        self.tracker = JIPDATracker.from_config(config.tracker)

        # Storage for results
        self.results: Dict = {
            'truth': None,
            'batches': [],
            'tracks': [],
            'existence': None,
            'ospa': None,
            'statuses': []
        }

    def _initialize_tracks(self, first_positions: np.ndarray, timestamp: float) -> List[Track]:
        """One track per target, started at its first true position with zero velocity"""
        position_indices = self.transition_model.position_indices()
        covar = self.config.track_init.covariance_scale * self.transition_model.process_covariance()
        tracks = []
        for i, state in enumerate(first_positions):
            mean = np.zeros(self.transition_model.state_dim)
            mean[position_indices] = state[position_indices]
            tracks.append(Track.from_prior(
                i, self.base_filter, GaussianState(mean, covar, timestamp),
                self.config.track_init.existence_probability))
        return tracks

    def run(self) -> Dict:
        """
        Run the complete scenario

        Returns:
            Dictionary with simulation and tracking results
        """
        cfg = self.config
        logger.info(f"Starting scenario: {cfg.name}")
        logger.info(f"Steps: {cfg.num_steps}, Time step: {cfg.time_step}s, "
                    f"Targets: {len(cfg.initial_states)}")

        rng = np.random.default_rng(cfg.seed)
        timestamps = np.arange(cfg.num_steps) * cfg.time_step

        truth = generate_ground_truth(self.transition_model, cfg.initial_states,
                                      cfg.num_steps, cfg.time_step, rng)
        simulator = MultiTargetMeasurementSimulator(
            self.measurement_model,
            PoissonUniformClutterModel(cfg.tracker.clutter.clutter_rate, cfg.tracker.clutter.limits),
            ConstantDetectionModel(cfg.tracker.model.detection_probability))
        batches = simulator.simulate(truth, timestamps, rng)

        tracks = self._initialize_tracks(truth[0], float(timestamps[0]))
        position_indices = self.transition_model.position_indices()

        existence = np.zeros((len(tracks), cfg.num_steps))
        existence[:, 0] = [t.existence_probability for t in tracks]
        ospa_vals = np.zeros((cfg.num_steps, 3))

        # The first scan only initializes the tracks
        for k, result in enumerate(self.tracker.run(tracks, batches[1:]), start=1):
            existence[:, k] = [t.existence_probability for t in tracks]
            ospa_vals[k] = ospa_distance(truth[k][:, position_indices],
                                         track_positions(tracks, position_indices),
                                         cfg.ospa_cutoff, cfg.ospa_order)
            self.results['statuses'].append(result.status)
            if result.status == StepStatus.PARTIAL_FAILURE:
                for failure in result.failures:
                    logger.warning(f"  Step {k}: tracks {list(failure.track_ids)} not updated "
                                   f"({failure.reason})")
            if k % 10 == 0:
                logger.info(f"  Step {k}/{cfg.num_steps - 1}: {len(batches[k])} measurements, "
                            f"OSPA {ospa_vals[k, 0]:.3f}, "
                            f"P(E) {np.array2string(existence[:, k], precision=2)}")

        self.results.update(truth=truth, batches=batches, tracks=tracks,
                            existence=existence, ospa=ospa_vals)
        logger.info(f"Scenario complete: mean OSPA {ospa_vals[1:, 0].mean():.3f}")
        return self.results

    def visualize_results(self, save_path: Optional[str] = None, show: bool = True):
        """Plot trajectories, existence probabilities and OSPA components"""
        truth = self.results['truth']
        tracks = self.results['tracks']
        existence = self.results['existence']
        ospa_vals = self.results['ospa']
        position_indices = self.transition_model.position_indices()
        limits = np.asarray(self.config.tracker.clutter.limits)
        steps = np.arange(existence.shape[1])

        fig = plt.figure(figsize=(14, 10))
        gs = GridSpec(3, 2, figure=fig, hspace=0.4, wspace=0.25)
        colors = plt.cm.tab10(np.linspace(0, 1, max(len(tracks), 1)))

        # Target positions, measurements and tracks
        ax1 = fig.add_subplot(gs[0:2, 0])
        all_meas = [self.measurement_model.finv(b.vectors)[:, position_indices]
                    for b in self.results['batches'] if len(b)]
        if all_meas:
            meas = np.vstack(all_meas)
            ax1.plot(meas[:, 0], meas[:, 1], 'k.', markersize=2, alpha=0.3, label='Measurements')
        for i, track in enumerate(tracks):
            ax1.plot(truth[:, i, position_indices[0]], truth[:, i, position_indices[1]],
                     '--', color=colors[i], alpha=0.6)
            means = np.array([s.mean for s in track.trajectory])
            if len(means):
                ax1.plot(means[:, position_indices[0]], means[:, position_indices[1]],
                         '-', color=colors[i], linewidth=2, label=f'Track {track.track_id}')
        ax1.set_xlim(limits[0])
        ax1.set_ylim(limits[1])
        ax1.set_xlabel('X position (m)')
        ax1.set_ylabel('Y position (m)')
        ax1.set_title('Target positions (dashed: truth)')
        ax1.legend(loc='upper right', fontsize=8)
        ax1.grid(True, alpha=0.3)

        # Existence probabilities
        ax2 = fig.add_subplot(gs[0:2, 1])
        for i, track in enumerate(tracks):
            ax2.plot(steps, existence[i], color=colors[i], label=f'Track {track.track_id}')
        ax2.set_ylim(0, 1.05)
        ax2.set_xlabel('Time step')
        ax2.set_ylabel('P(E)')
        ax2.set_title('Existence probability vs time')
        ax2.legend(fontsize=8)
        ax2.grid(True, alpha=0.3)

        # OSPA components
        ax3 = fig.add_subplot(gs[2, :])
        ax3.plot(steps[1:], ospa_vals[1:, 0], 'k-', label='OSPA')
        ax3.plot(steps[1:], ospa_vals[1:, 1], 'b--', label='Localisation')
        ax3.plot(steps[1:], ospa_vals[1:, 2], 'r:', label='Cardinality')
        ax3.set_xlabel('Time step')
        ax3.set_ylabel('Distance (m)')
        ax3.set_title('OSPA vs time')
        ax3.legend(fontsize=8)
        ax3.grid(True, alpha=0.3)

        fig.suptitle(f'Scenario Results: {self.config.description}', fontsize=12)

        if save_path:
            plt.savefig(save_path, dpi=150, bbox_inches='tight')
            logger.info(f"Figure saved to {save_path}")
        if show:
            plt.show()

        return fig


def main():
    """Main entry point for scenario runner"""

    parser = argparse.ArgumentParser(description='Run JIPDA tracking scenarios from YAML configs')
    parser.add_argument('scenario', nargs='?', default='multiple_robot_tracking',
                        help='Scenario name (without .yaml extension) or path')
    parser.add_argument('--config-dir', default=str(Path(__file__).parent / 'configs'),
                        help='Directory containing scenarios/')
    parser.add_argument('--list', action='store_true', help='List available scenarios')
    parser.add_argument('--plot', action='store_true', help='Show result plots')
    parser.add_argument('--save', help='Output directory for the result figure')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    # Initialize config loader
    loader = ConfigLoader(args.config_dir)

    # List scenarios if requested
    if args.list:
        print("Available scenarios:")
        for scenario in loader.list_scenarios():
            print(f"  - {scenario}")
        return

    try:
        config = loader.load_scenario(args.scenario)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        print("Use --list to see available scenarios")
        sys.exit(1)
    except (KeyError, ValueError) as e:
        print(f"Invalid scenario configuration: {e}")
        sys.exit(1)

    print(f"\nLoaded scenario: {config.name}")
    print(f"Description: {config.description}")

    runner = ScenarioRunner(config)
    results = runner.run()

    # Print results summary
    print("\n" + "=" * 60)
    print("Results Summary")
    print("=" * 60)
    print(f"Mean OSPA: {results['ospa'][1:, 0].mean():.3f}")
    print(f"Partial failures: {sum(s == StepStatus.PARTIAL_FAILURE for s in results['statuses'])}")
    print("\nFinal existence probabilities:")
    for track in results['tracks']:
        print(f"  Track {track.track_id}: {track.existence_probability:.3f}")

    if args.plot or args.save:
        output_path = None
        if args.save:
            os.makedirs(args.save, exist_ok=True)
            output_path = os.path.join(args.save, f"{Path(args.scenario).stem}_results.png")
        runner.visualize_results(save_path=output_path, show=args.plot)


if __name__ == "__main__":
    main()
