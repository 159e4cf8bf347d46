"""
Configuration Management Module

This module provides centralized configuration management for the dome
acoustics pipeline, including physical constants, default settings, and
configuration utilities.
"""

from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import json

from .exceptions import ConfigurationError


# =====================================================================================
# Constants
# =====================================================================================

# Physics constants
SPEED_OF_SOUND = 343.0  # m/s at room temperature
SABINE_CONSTANT = 0.161  # s/m, metric Sabine coefficient

# Audible band used for eigenmodes and per-sample frequency spreading
MIN_AUDIBLE_FREQUENCY = 20.0  # Hz
MAX_AUDIBLE_FREQUENCY = 20000.0  # Hz

# Default sample rate
DEFAULT_SAMPLE_RATE = 44100  # Hz

# Dome settings
DEFAULT_MAX_MODE_ORDER = 10
HEIGHT_CORRECTION = 0.1  # eigenfrequency scale per unit height/radius
ABSORPTION_EPSILON = 1e-6  # floor for the Sabine denominator
EIGENFREQUENCY_TOLERANCE = 1e-9  # relative tolerance for duplicate modes
TUNING_TOLERANCE = 1.0  # Hz, minimum spacing for tuned modes

# Default dome materials (frequency in Hz -> absorption coefficient)
DEFAULT_ABSORPTION = {
    20.0: 0.1,
    200.0: 0.3,
    2000.0: 0.5,
    20000.0: 0.7,
}

# Interference settings
DISTANCE_ATTENUATION = 0.1  # gain = 1 / (1 + k * distance)

# Coherence-state transition probabilities per advance_state() call
SUPERPOSITION_COLLAPSE_PROBABILITY = 0.05
ENTANGLED_RELEASE_PROBABILITY = 0.02
COLLAPSED_RECOVERY_PROBABILITY = 0.10

# Feedback settings
DEFAULT_COHERENCE_THRESHOLD = 0.7
DEFAULT_HISTORY_CAPACITY = 1024  # samples
DEFAULT_ENTANGLEMENT_STRENGTH = 0.5
EVENT_LOG_SIZE = 256

# Sources kept in the pipeline's own interference field
DEFAULT_MAX_FIELD_SOURCES = 4 * DEFAULT_HISTORY_CAPACITY

# Pipeline settings
NORMALIZATION_PEAK = 0.95
RESONANCE_REVERB_THRESHOLD = 0.5  # seconds
RESONANCE_BOOST = 0.1
RESONANCE_ROLLOFF = 1000.0  # Hz


# =====================================================================================
# Configuration Classes
# =====================================================================================

@dataclass
class DomeConfig:
    """Geometry and materials of the dome cavity"""

    radius: float = 10.0  # meters
    height: float = 5.0  # meters
    max_mode_order: int = DEFAULT_MAX_MODE_ORDER
    speed_of_sound: float = SPEED_OF_SOUND
    absorption: Dict[float, float] = field(default_factory=lambda: dict(DEFAULT_ABSORPTION))

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.radius <= 0 or self.height <= 0:
            raise ValueError("Dome radius and height must be positive")

        if self.max_mode_order < 0:
            raise ValueError("Maximum mode order must be non-negative")

        if self.speed_of_sound <= 0:
            raise ValueError("Speed of sound must be positive")

        if not self.absorption:
            raise ValueError("Absorption table must contain at least one frequency")

        # JSON round trips turn the keys into strings
        self.absorption = {float(f): float(a) for f, a in self.absorption.items()}

        if any(f <= 0 for f in self.absorption):
            raise ValueError("Absorption frequencies must be positive")

        if any(not (0 <= a <= 1) for a in self.absorption.values()):
            raise ValueError("Absorption coefficients must be between 0 and 1")


@dataclass
class FeedbackConfig:
    """Configuration for the coherence feedback corrector"""

    threshold: float = DEFAULT_COHERENCE_THRESHOLD
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    entanglement_strength: float = DEFAULT_ENTANGLEMENT_STRENGTH

    def __post_init__(self):
        """Validate configuration after initialization"""
        if not (0 <= self.threshold <= 1):
            raise ValueError("Coherence threshold must be between 0 and 1")

        if self.history_capacity < 2:
            raise ValueError("History capacity must be at least 2 samples")

        if not (0 <= self.entanglement_strength <= 1):
            raise ValueError("Entanglement strength must be between 0 and 1")


@dataclass
class PipelineConfig:
    """Configuration for the per-block processing pass"""

    sample_rate: float = DEFAULT_SAMPLE_RATE
    normalization_peak: float = NORMALIZATION_PEAK
    reverb_threshold: float = RESONANCE_REVERB_THRESHOLD
    max_field_sources: Optional[int] = DEFAULT_MAX_FIELD_SOURCES  # None = unbounded
    seed: Optional[int] = None  # seed for coherence-state transitions

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.sample_rate <= 0:
            raise ValueError("Sample rate must be positive")

        if not (0 < self.normalization_peak <= 1):
            raise ValueError("Normalization peak must be in (0, 1]")

        if self.reverb_threshold < 0:
            raise ValueError("Reverb threshold must be non-negative")

        if self.max_field_sources is not None and self.max_field_sources < 1:
            raise ValueError("max_field_sources must be at least 1 (or None)")


@dataclass
class DomeFieldConfig:
    """Complete configuration for a dome processing pipeline"""

    dome: DomeConfig = field(default_factory=DomeConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization"""
        return {
            'dome': {
                'radius': self.dome.radius,
                'height': self.dome.height,
                'max_mode_order': self.dome.max_mode_order,
                'speed_of_sound': self.dome.speed_of_sound,
                'absorption': dict(self.dome.absorption)
            },
            'feedback': {
                'threshold': self.feedback.threshold,
                'history_capacity': self.feedback.history_capacity,
                'entanglement_strength': self.feedback.entanglement_strength
            },
            'pipeline': {
                'sample_rate': self.pipeline.sample_rate,
                'normalization_peak': self.pipeline.normalization_peak,
                'reverb_threshold': self.pipeline.reverb_threshold,
                'max_field_sources': self.pipeline.max_field_sources,
                'seed': self.pipeline.seed
            }
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'DomeFieldConfig':
        """Create configuration from dictionary"""
        try:
            return cls(
                dome=DomeConfig(**config_dict.get('dome', {})),
                feedback=FeedbackConfig(**config_dict.get('feedback', {})),
                pipeline=PipelineConfig(**config_dict.get('pipeline', {}))
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}") from e

    def save(self, file_path: str) -> None:
        """Save configuration to file"""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, file_path: str) -> 'DomeFieldConfig':
        """Load configuration from file"""
        with open(file_path, 'r') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid configuration file {file_path}: {e}") from e
        return cls.from_dict(data)


# Create a default configuration
default_config = DomeFieldConfig()
