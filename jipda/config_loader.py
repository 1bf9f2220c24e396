#!/usr/bin/env python3
"""
Configuration loader for JIPDA tracking scenarios
Handles YAML parsing, validation, and scenario setup
"""

import yaml
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import logging

from .constants import CONNECTED_COMPONENTS, TrackingDefaults
from .validators import validate_density, validate_probability

logger = logging.getLogger(__name__)


@dataclass
class GatingConfig:
    """Gate configuration"""
    measurement_dim: int = TrackingDefaults.MEASUREMENT_DIM
    gate_level: float = TrackingDefaults.GATE_LEVEL
    gate_threshold: Optional[float] = None
    on_singular: str = "exclude"


@dataclass
class AssociationConfig:
    """Association and clustering configuration"""
    clustering: str = CONNECTED_COMPONENTS
    max_exact_hypotheses: int = TrackingDefaults.MAX_EXACT_HYPOTHESES
    bp_max_iterations: int = TrackingDefaults.BP_MAX_ITERATIONS
    bp_tolerance: float = TrackingDefaults.BP_TOLERANCE
    max_workers: int = 1


@dataclass
class ModelConfig:
    """Motion, measurement, detection and existence model configuration"""
    num_dims: int = 2
    velocity_error_variance: float = TrackingDefaults.VELOCITY_ERROR_VARIANCE
    measurement_error_variance: float = TrackingDefaults.MEASUREMENT_ERROR_VARIANCE
    timestep_duration: float = 1.0
    detection_probability: float = TrackingDefaults.DETECTION_PROBABILITY
    survival_probability: float = TrackingDefaults.SURVIVAL_PROBABILITY


@dataclass
class ClutterConfig:
    """Poisson clutter over a rectangular surveillance region"""
    clutter_rate: float
    limits: List[List[float]]


@dataclass
class TrackerConfig:
    """Complete tracker configuration"""
    clutter: ClutterConfig
    gating: GatingConfig = field(default_factory=GatingConfig)
    association: AssociationConfig = field(default_factory=AssociationConfig)
    model: ModelConfig = field(default_factory=ModelConfig)


@dataclass
class TrackInitConfig:
    """Initial track parameters used by the scenario runner"""
    existence_probability: float = TrackingDefaults.INITIAL_EXISTENCE
    covariance_scale: float = 10.0


@dataclass
class ScenarioConfig:
    """Complete scenario configuration"""
    name: str
    description: str
    num_steps: int
    time_step: float
    initial_states: List[List[float]]
    tracker: TrackerConfig
    track_init: TrackInitConfig = field(default_factory=TrackInitConfig)
    seed: Optional[int] = None
    ospa_cutoff: float = TrackingDefaults.OSPA_CUTOFF
    ospa_order: int = TrackingDefaults.OSPA_ORDER


def _require(section: Dict[str, Any], key: str, path: str) -> Any:
    """Fetch a required key, reporting the dotted path when it is missing."""
    if not isinstance(section, dict) or key not in section:
        raise KeyError(f"{path}.{key}" if path else key)
    return section[key]


class ConfigLoader:
    """Load and validate tracking scenario configurations"""

    def __init__(self, config_dir: Union[str, Path] = "configs"):
        """
        Initialize configuration loader

        Args:
            config_dir: Directory containing configuration files
        """
        self.config_dir = Path(config_dir)
        self.scenarios_dir = self.config_dir / "scenarios"

    def _resolve(self, scenario_name: Union[str, Path]) -> Path:
        filepath = Path(scenario_name)
        if filepath.suffix in ('.yaml', '.yml') and filepath.exists():
            return filepath
        name = str(scenario_name)
        if not name.endswith(('.yaml', '.yml')):
            name += '.yaml'
        return self.scenarios_dir / Path(name).name

    def load_scenario(self, scenario_name: Union[str, Path]) -> ScenarioConfig:
        """
        Load a scenario configuration from YAML

        Args:
            scenario_name: Scenario name in the scenarios directory, or a path

        Returns:
            ScenarioConfig object

        Raises:
            FileNotFoundError: If the scenario file does not exist
            KeyError: If a required key is missing (dotted path in the message)
        """
        filepath = self._resolve(scenario_name)
        if not filepath.exists():
            raise FileNotFoundError(f"Scenario file not found: {filepath}")

        logger.info(f"Loading scenario: {filepath}")

        with open(filepath, 'r') as f:
            config_dict = yaml.safe_load(f)

        return self.from_dict(config_dict)

    def list_scenarios(self) -> List[str]:
        """List available scenario files"""
        return sorted(file.stem for file in self.scenarios_dir.glob("*.yaml"))

    @staticmethod
    def tracker_from_dict(tracker_dict: Dict[str, Any], path: str = "tracker") -> TrackerConfig:
        """Parse the tracker section into a TrackerConfig"""
        clutter_cfg = _require(tracker_dict, 'clutter', path)
        clutter = ClutterConfig(
            clutter_rate=validate_density(_require(clutter_cfg, 'rate', f"{path}.clutter"), "clutter rate"),
            limits=[list(map(float, pair)) for pair in _require(clutter_cfg, 'limits', f"{path}.clutter")]
        )

        gating_cfg = tracker_dict.get('gating', {})
        gating = GatingConfig(
            measurement_dim=int(gating_cfg.get('measurement_dim', TrackingDefaults.MEASUREMENT_DIM)),
            gate_level=float(gating_cfg.get('gate_level', TrackingDefaults.GATE_LEVEL)),
            gate_threshold=gating_cfg.get('gate_threshold'),
            on_singular=gating_cfg.get('on_singular', 'exclude')
        )

        assoc_cfg = tracker_dict.get('association', {})
        association = AssociationConfig(
            clustering=assoc_cfg.get('clustering', CONNECTED_COMPONENTS),
            max_exact_hypotheses=int(assoc_cfg.get('max_exact_hypotheses',
                                                   TrackingDefaults.MAX_EXACT_HYPOTHESES)),
            bp_max_iterations=int(assoc_cfg.get('bp_max_iterations', TrackingDefaults.BP_MAX_ITERATIONS)),
            bp_tolerance=float(assoc_cfg.get('bp_tolerance', TrackingDefaults.BP_TOLERANCE)),
            max_workers=int(assoc_cfg.get('max_workers', 1))
        )

        model_cfg = tracker_dict.get('model', {})
        model = ModelConfig(
            num_dims=int(model_cfg.get('num_dims', 2)),
            velocity_error_variance=float(model_cfg.get('velocity_error_variance',
                                                        TrackingDefaults.VELOCITY_ERROR_VARIANCE)),
            measurement_error_variance=float(model_cfg.get('measurement_error_variance',
                                                           TrackingDefaults.MEASUREMENT_ERROR_VARIANCE)),
            timestep_duration=float(model_cfg.get('timestep_duration', 1.0)),
            detection_probability=validate_probability(
                model_cfg.get('detection_probability', TrackingDefaults.DETECTION_PROBABILITY),
                "detection probability"),
            survival_probability=validate_probability(
                model_cfg.get('survival_probability', TrackingDefaults.SURVIVAL_PROBABILITY),
                "survival probability")
        )

        if len(clutter.limits) != gating.measurement_dim:
            logger.warning(f"Clutter region has {len(clutter.limits)} dimensions but the gate "
                           f"expects {gating.measurement_dim}")

        return TrackerConfig(clutter=clutter, gating=gating, association=association, model=model)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> ScenarioConfig:
        """
        Parse a scenario dictionary into configuration objects

        Args:
            config_dict: Dictionary as produced by yaml.safe_load

        Returns:
            ScenarioConfig object
        """
        scenario = _require(config_dict, 'scenario', '')
        tracker = cls.tracker_from_dict(_require(config_dict, 'tracker', ''))

        initial_states = [list(map(float, state))
                          for state in _require(config_dict, 'targets', '')]
        state_dim = 2 * tracker.model.num_dims
        for i, state in enumerate(initial_states):
            if len(state) != state_dim:
                raise ValueError(f"targets[{i}] has {len(state)} components, expected {state_dim}")

        init_cfg = config_dict.get('track_init', {})
        track_init = TrackInitConfig(
            existence_probability=validate_probability(
                init_cfg.get('existence_probability', TrackingDefaults.INITIAL_EXISTENCE),
                "initial existence probability"),
            covariance_scale=float(init_cfg.get('covariance_scale', 10.0))
        )

        eval_cfg = config_dict.get('evaluation', {})
        return ScenarioConfig(
            name=_require(scenario, 'name', 'scenario'),
            description=scenario.get('description', ''),
            num_steps=int(_require(scenario, 'num_steps', 'scenario')),
            time_step=float(_require(scenario, 'time_step', 'scenario')),
            initial_states=initial_states,
            tracker=tracker,
            track_init=track_init,
            seed=scenario.get('seed'),
            ospa_cutoff=float(eval_cfg.get('ospa_cutoff', TrackingDefaults.OSPA_CUTOFF)),
            ospa_order=int(eval_cfg.get('ospa_order', TrackingDefaults.OSPA_ORDER))
        )

    @staticmethod
    def initial_state_array(scenario: ScenarioConfig) -> np.ndarray:
        """Initial target states as rows (n_targets x state_dim)"""
        return np.asarray(scenario.initial_states, dtype=np.float64).reshape(
            len(scenario.initial_states), 2 * scenario.tracker.model.num_dims)
