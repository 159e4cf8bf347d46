"""
General Utility Functions and Definitions

This module contains type definitions, enumerations and the passive data
records shared across the dome acoustics core.

See Also:
    - config: For centralized configuration management
    - math_utils: For mathematical utility functions
"""

import math
import time
import functools
from enum import Enum, auto
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Tuple

from .exceptions import ValidationError

# Type aliases for improved readability
CartesianCoord = Tuple[float, float, float]  # (x, y, z) in meters
CoordinateKey = Tuple[int, int, int, int]  # quantized (radius, theta, phi, height)
Waveform = Callable[[float, float, float, float], complex]  # (radius, theta, phi, time) -> amplitude

# Scale applied before rounding coordinates into integer keys
_KEY_SCALE = 1e9

TWO_PI = 2.0 * math.pi


class CoherenceState(Enum):
    """
    Coherence state of a single point source.

    Attributes:
        COHERENT: Stable, phase-locked source
        SUPERPOSITION: Source produced by superposing several fields
        ENTANGLED: Source whose phase is coupled to another source
        COLLAPSED: Source that left superposition and has not yet recovered
    """
    COHERENT = auto()
    SUPERPOSITION = auto()
    ENTANGLED = auto()
    COLLAPSED = auto()


class InterferenceFieldType(Enum):
    """
    Transform applied to the summed field of an interference zone.

    Attributes:
        CONSTRUCTIVE: Sum passed through unchanged
        DESTRUCTIVE: Sum negated
        PHASE_MODULATED: Phase rotated by sin(2 * phase)
        AMPLITUDE_MODULATED: Magnitude scaled by (1 + sin(phase)) / 2
        QUANTUM_ENTANGLED: Scaled by |sum| * cos(phase)
    """
    CONSTRUCTIVE = auto()
    DESTRUCTIVE = auto()
    PHASE_MODULATED = auto()
    AMPLITUDE_MODULATED = auto()
    QUANTUM_ENTANGLED = auto()


class FeedbackState(Enum):
    """Coherence band reported by the feedback corrector."""
    COHERENT = auto()
    PARTIALLY_COHERENT = auto()
    INCOHERENT = auto()


def _quantize(value: float) -> int:
    return int(round(value * _KEY_SCALE))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class SphericalCoordinate:
    """
    A point inside the dome in spherical coordinates.

    Equality, hashing and ordering go through an integer-quantized key so
    that coordinates can be used as dictionary keys without float surprises.

    Attributes:
        radius: Distance from the dome axis origin in meters (>= 0)
        theta: Polar angle in radians, [0, pi]
        phi: Azimuth in radians, wrapped into [0, 2*pi)
        height: Vertical offset in meters added to the z axis
    """
    radius: float = 0.0
    theta: float = 0.0
    phi: float = 0.0
    height: float = 0.0

    def __post_init__(self):
        """Validate and normalize inputs after initialization."""
        if self.radius < 0:
            raise ValidationError(f"Radius must be non-negative, got {self.radius}")

        if not (0.0 <= self.theta <= math.pi):
            raise ValidationError(f"Polar angle must be in [0, pi], got {self.theta}")

        phi = self.phi % TWO_PI
        if phi >= TWO_PI:
            phi = 0.0
        object.__setattr__(self, 'phi', phi)

    @property
    def key(self) -> CoordinateKey:
        """Integer-quantized (radius, theta, phi, height) tuple."""
        return (_quantize(self.radius), _quantize(self.theta),
                _quantize(self.phi), _quantize(self.height))

    def __eq__(self, other):
        if not isinstance(other, SphericalCoordinate):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other):
        if not isinstance(other, SphericalCoordinate):
            return NotImplemented
        return self.key < other.key

    def __hash__(self):
        return hash(self.key)

    def to_cartesian(self) -> CartesianCoord:
        """Convert to (x, y, z); the height offset is added to z."""
        sin_theta = math.sin(self.theta)
        x = self.radius * sin_theta * math.cos(self.phi)
        y = self.radius * sin_theta * math.sin(self.phi)
        z = self.radius * math.cos(self.theta) + self.height
        return (x, y, z)

    def distance_to(self, other: 'SphericalCoordinate') -> float:
        """Euclidean distance between the Cartesian images of two coordinates."""
        x1, y1, z1 = self.to_cartesian()
        x2, y2, z2 = other.to_cartesian()
        return math.sqrt((x1 - x2)**2 + (y1 - y2)**2 + (z1 - z2)**2)


@dataclass(frozen=True)
class SoundField:
    """
    Immutable snapshot of a point sound source.

    Containers replace stored copies instead of mutating them; use
    ``with_state`` / ``with_phase`` to derive an updated snapshot.

    Attributes:
        amplitude: Complex amplitude
        frequency: Frequency in Hz (> 0)
        phase: Phase in radians
        state: Coherence state of the source
        position: Location of the source in the dome
        timestamp: Capture time in seconds (monotonic clock)
        waveform: Optional continuous field function (radius, theta, phi, time) -> complex
    """
    amplitude: complex
    frequency: float
    phase: float = 0.0
    state: CoherenceState = CoherenceState.COHERENT
    position: SphericalCoordinate = field(default_factory=SphericalCoordinate)
    timestamp: float = field(default_factory=time.monotonic)
    waveform: Optional[Waveform] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.frequency > 0:
            raise ValidationError(f"Frequency must be positive, got {self.frequency}")
        object.__setattr__(self, 'amplitude', complex(self.amplitude))

    def with_state(self, state: CoherenceState) -> 'SoundField':
        return replace(self, state=state)

    def with_phase(self, phase: float) -> 'SoundField':
        return replace(self, phase=phase)

    def evaluate(self, t: float) -> complex:
        """
        Field value at the source's own position at time ``t``.

        Uses the attached waveform when there is one, otherwise a plain
        rotating phasor ``amplitude * exp(i * (2*pi*f*t + phase))``.
        """
        if self.waveform is not None:
            p = self.position
            return complex(self.waveform(p.radius, p.theta, p.phi, t))
        return self.amplitude * complex(math.cos(TWO_PI * self.frequency * t + self.phase),
                                        math.sin(TWO_PI * self.frequency * t + self.phase))


@dataclass(frozen=True)
class StateChangeEvent:
    """Published by the feedback corrector whenever its coherence band changes."""
    previous: FeedbackState
    current: FeedbackState
    coherence: float
    timestamp: float = field(default_factory=time.monotonic)
