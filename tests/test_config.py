"""
Unit tests for configuration management.
"""

import json

import pytest
from domefield.acoustics.config import (
    DomeConfig, FeedbackConfig, PipelineConfig, DomeFieldConfig, DEFAULT_ABSORPTION
)
from domefield.acoustics.exceptions import ConfigurationError


class TestDefaults:
    """Tests for default configuration values."""

    def test_dome_defaults(self):
        config = DomeConfig()
        assert config.radius == 10.0
        assert config.height == 5.0
        assert config.max_mode_order == 10
        assert config.speed_of_sound == 343.0
        assert config.absorption == DEFAULT_ABSORPTION

    def test_absorption_not_shared(self):
        """Test that each config gets its own absorption table."""
        a = DomeConfig()
        b = DomeConfig()
        a.absorption[1000.0] = 0.2
        assert 1000.0 not in b.absorption

    def test_feedback_and_pipeline_defaults(self):
        feedback = FeedbackConfig()
        assert feedback.threshold == 0.7
        assert feedback.history_capacity == 1024
        assert feedback.entanglement_strength == 0.5

        pipeline = PipelineConfig()
        assert pipeline.sample_rate == 44100
        assert pipeline.normalization_peak == 0.95
        assert pipeline.max_field_sources == 4096
        assert pipeline.seed is None


class TestValidation:
    """Tests for configuration validation."""

    @pytest.mark.parametrize("kwargs", [
        {'radius': 0.0},
        {'height': -1.0},
        {'max_mode_order': -1},
        {'speed_of_sound': 0.0},
        {'absorption': {}},
        {'absorption': {0.0: 0.5}},
        {'absorption': {1000.0: 1.5}},
    ])
    def test_invalid_dome(self, kwargs):
        with pytest.raises(ValueError):
            DomeConfig(**kwargs)

    @pytest.mark.parametrize("kwargs", [
        {'threshold': 1.2},
        {'history_capacity': 1},
        {'entanglement_strength': -0.1},
    ])
    def test_invalid_feedback(self, kwargs):
        with pytest.raises(ValueError):
            FeedbackConfig(**kwargs)

    @pytest.mark.parametrize("kwargs", [
        {'sample_rate': 0},
        {'normalization_peak': 0.0},
        {'normalization_peak': 1.5},
        {'reverb_threshold': -0.5},
        {'max_field_sources': 0},
    ])
    def test_invalid_pipeline(self, kwargs):
        with pytest.raises(ValueError):
            PipelineConfig(**kwargs)

    def test_string_absorption_keys(self):
        """Test that JSON-style string keys are converted to floats."""
        config = DomeConfig(absorption={'100': 0.2, '1000': 0.4})
        assert config.absorption == {100.0: 0.2, 1000.0: 0.4}


class TestSerialization:
    """Tests for dictionary and file round trips."""

    def test_dict_round_trip(self):
        config = DomeFieldConfig(
            dome=DomeConfig(radius=7.5, height=3.0),
            feedback=FeedbackConfig(threshold=0.6),
            pipeline=PipelineConfig(sample_rate=48000, max_field_sources=4096, seed=3),
        )
        restored = DomeFieldConfig.from_dict(config.to_dict())
        assert restored == config

    def test_partial_dict(self):
        """Test that missing sections fall back to defaults."""
        config = DomeFieldConfig.from_dict({'pipeline': {'seed': 11}})
        assert config.pipeline.seed == 11
        assert config.dome == DomeConfig()

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            DomeFieldConfig.from_dict({'dome': {'diameter': 4.0}})

    def test_save_and_load(self, tmp_path):
        config = DomeFieldConfig(dome=DomeConfig(radius=12.0, height=6.0))
        path = tmp_path / 'dome.json'
        config.save(str(path))

        with open(path) as f:
            data = json.load(f)
        assert data['dome']['radius'] == 12.0

        assert DomeFieldConfig.load(str(path)) == config

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / 'broken.json'
        path.write_text('{not json')
        with pytest.raises(ConfigurationError):
            DomeFieldConfig.load(str(path))
