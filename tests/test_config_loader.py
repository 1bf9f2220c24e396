"""
Tests for YAML scenario configuration loading.
"""

from pathlib import Path

import pytest
import yaml

from jipda.config_loader import ConfigLoader, ScenarioConfig
from jipda.tracking import JIPDATracker
from jipda.validators import InvalidProbabilityError

CONFIG_DIR = Path(__file__).parent.parent / 'configs'


@pytest.fixture
def loader():
    return ConfigLoader(CONFIG_DIR)


@pytest.fixture
def scenario_dict():
    """Minimal valid scenario dictionary."""
    return {
        'scenario': {'name': 'unit', 'num_steps': 5, 'time_step': 1.0, 'seed': 1},
        'tracker': {
            'gating': {'gate_threshold': 10.0},
            'model': {'detection_probability': 0.9},
            'clutter': {'rate': 2.0, 'limits': [[0, 10], [0, 10]]},
        },
        'targets': [[1.0, 0.1, 1.0, 0.1]],
    }


class TestShippedScenario:

    def test_list_scenarios(self, loader):
        assert 'multiple_robot_tracking' in loader.list_scenarios()

    def test_load_multiple_robot_tracking(self, loader):
        config = loader.load_scenario('multiple_robot_tracking')

        assert isinstance(config, ScenarioConfig)
        assert config.num_steps == 60
        assert config.seed == 42
        assert len(config.initial_states) == 3
        assert config.tracker.gating.gate_threshold == 10.0
        assert config.tracker.model.detection_probability == 0.8
        assert config.tracker.clutter.clutter_rate == 10.0
        assert config.tracker.clutter.limits == [[0.0, 10.0], [0.0, 10.0]]
        assert ConfigLoader.initial_state_array(config).shape == (3, 4)

    def test_tracker_from_config(self, loader):
        config = loader.load_scenario('multiple_robot_tracking')
        tracker = JIPDATracker.from_config(config.tracker)

        assert tracker.gater.threshold == 10.0
        assert tracker.detection_model.probability() == 0.8
        assert tracker.engine.max_exact_hypotheses == 5000


class TestLoading:

    def test_load_by_path(self, tmp_path, scenario_dict):
        path = tmp_path / 'custom.yaml'
        path.write_text(yaml.dump(scenario_dict))

        config = ConfigLoader(tmp_path).load_scenario(path)

        assert config.name == 'unit'
        assert config.tracker.model.detection_probability == 0.9
        # Defaults fill unspecified sections
        assert config.track_init.existence_probability == 0.5
        assert config.tracker.association.max_workers == 1

    def test_missing_file(self, loader):
        with pytest.raises(FileNotFoundError):
            loader.load_scenario('does_not_exist')

    def test_missing_clutter_rate(self, scenario_dict):
        del scenario_dict['tracker']['clutter']['rate']
        with pytest.raises(KeyError, match=r"tracker\.clutter\.rate"):
            ConfigLoader.from_dict(scenario_dict)

    def test_invalid_detection_probability(self, scenario_dict):
        scenario_dict['tracker']['model']['detection_probability'] = 1.5
        with pytest.raises(InvalidProbabilityError):
            ConfigLoader.from_dict(scenario_dict)

    def test_negative_clutter_rate(self, scenario_dict):
        scenario_dict['tracker']['clutter']['rate'] = -1.0
        with pytest.raises(InvalidProbabilityError):
            ConfigLoader.from_dict(scenario_dict)

    def test_wrong_state_length(self, scenario_dict):
        scenario_dict['targets'] = [[1.0, 0.0, 1.0]]
        with pytest.raises(ValueError, match=r"targets\[0\]"):
            ConfigLoader.from_dict(scenario_dict)
