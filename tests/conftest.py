"""
Pytest configuration file for dome acoustics tests.
"""

import pytest
import numpy as np
from domefield.acoustics.config import DomeFieldConfig, PipelineConfig
from domefield.acoustics.core import PipelineController
from domefield.acoustics.resonance import DomeResonanceModel


@pytest.fixture
def rng():
    """Return a seeded random generator for reproducible state transitions."""
    return np.random.default_rng(1234)


@pytest.fixture
def small_dome():
    """Return the reference dome: radius 5 m, height 3 m."""
    return DomeResonanceModel(5.0, 3.0)


@pytest.fixture
def test_config():
    """Return a test configuration with a fixed seed."""
    return DomeFieldConfig(pipeline=PipelineConfig(sample_rate=44100, seed=7))


@pytest.fixture
def controller(test_config):
    """Return a pipeline for a 10 m x 5 m dome at 44.1 kHz."""
    return PipelineController(10.0, 5.0, 44100, config=test_config)


@pytest.fixture
def test_block():
    """Create a 1024-sample block of a 440 Hz sine."""
    sr = 44100
    t = np.arange(1024) / sr
    return 0.5 * np.sin(2 * np.pi * 440 * t)
