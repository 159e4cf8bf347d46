"""
Interference Field Module

This module contains the InterferenceField class, which combines point sound
sources into a single complex field value through phase-delay superposition
and models a simple per-source coherence-state machine.
"""

import math
import threading
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import (
    SPEED_OF_SOUND, DISTANCE_ATTENUATION, SUPERPOSITION_COLLAPSE_PROBABILITY,
    ENTANGLED_RELEASE_PROBABILITY, COLLAPSED_RECOVERY_PROBABILITY
)
from .exceptions import ValidationError
from .math_utils import coordinates_to_cartesian, weighted_mean_coordinate
from .utils import (
    CoherenceState, InterferenceFieldType, SoundField, SphericalCoordinate, TWO_PI
)

# Coherence states are held as integer codes so the random walk runs on arrays
_STATES = tuple(CoherenceState)
_STATE_CODES = {state: code for code, state in enumerate(_STATES)}

# state -> (probability, next state) for one advance_state() draw
_TRANSITIONS = {
    CoherenceState.SUPERPOSITION: (SUPERPOSITION_COLLAPSE_PROBABILITY, CoherenceState.COLLAPSED),
    CoherenceState.ENTANGLED: (ENTANGLED_RELEASE_PROBABILITY, CoherenceState.COHERENT),
    CoherenceState.COLLAPSED: (COLLAPSED_RECOVERY_PROBABILITY, CoherenceState.COHERENT),
}

# Per state code: probability of leaving it, and the code it moves to (COHERENT stays)
_TRANSITION_PROBABILITY = np.array([_TRANSITIONS.get(s, (0.0, s))[0] for s in _STATES])
_TRANSITION_TARGET = np.array([_STATE_CODES[_TRANSITIONS.get(s, (0.0, s))[1]] for s in _STATES],
                              dtype=np.int8)


def _state_codes(fields: Sequence[SoundField]) -> np.ndarray:
    return np.array([_STATE_CODES[f.state] for f in fields], dtype=np.int8)


def apply_field_type(signal: complex, field_type: InterferenceFieldType) -> complex:
    """
    Apply the zone transform of an interference field type to a summed signal.

    The transform is driven by the phase of the summed signal itself.

    Args:
        signal: Summed complex field
        field_type: Interference type of the zone

    Returns:
        Transformed complex field
    """
    current_phase = math.atan2(signal.imag, signal.real)

    if field_type is InterferenceFieldType.CONSTRUCTIVE:
        return signal
    if field_type is InterferenceFieldType.DESTRUCTIVE:
        return -signal
    if field_type is InterferenceFieldType.PHASE_MODULATED:
        rotation = math.sin(2.0 * current_phase)
        return signal * complex(math.cos(rotation), math.sin(rotation))
    if field_type is InterferenceFieldType.AMPLITUDE_MODULATED:
        return signal * (1.0 + math.sin(current_phase)) / 2.0
    if field_type is InterferenceFieldType.QUANTUM_ENTANGLED:
        return signal * abs(signal) * math.cos(current_phase)

    raise ValidationError(f"Unknown interference field type: {field_type}")


class InterferenceField:
    """
    A zone of the dome in which point sources interfere.

    The field type, center and radius are fixed at construction; only the
    member sources change. Sources are immutable ``SoundField`` snapshots and
    updates replace the stored copy.
    """

    def __init__(self, field_type: InterferenceFieldType, center: SphericalCoordinate,
                 radius: float, rng: Optional[np.random.Generator] = None):
        """
        Initialize an interference field.

        Args:
            field_type: Transform applied to the summed field
            center: Center of the zone of influence
            radius: Radius of the zone of influence in meters (> 0)
            rng: Random generator driving coherence-state transitions
        """
        if not radius > 0:
            raise ValidationError(f"Field radius must be positive, got {radius}")

        self._field_type = field_type
        self._center = center
        self._radius = float(radius)
        self._rng = rng if rng is not None else np.random.default_rng()
        self._sources: List[SoundField] = []
        self._states = np.zeros(0, dtype=np.int8)  # state code per source, kept in step with _sources
        self._lock = threading.RLock()

    @property
    def field_type(self) -> InterferenceFieldType:
        return self._field_type

    @property
    def center(self) -> SphericalCoordinate:
        return self._center

    @property
    def radius(self) -> float:
        return self._radius

    def __len__(self) -> int:
        return self.source_count()

    def source_count(self) -> int:
        with self._lock:
            return len(self._sources)

    def sources(self) -> Tuple[SoundField, ...]:
        """Snapshot of the current sources in insertion order."""
        with self._lock:
            return tuple(self._sources)

    def source(self, index: int) -> SoundField:
        with self._lock:
            return self._sources[index]

    def add_source(self, field: SoundField) -> None:
        """Append a source; duplicates are kept."""
        self.add_sources([field])

    def add_sources(self, fields: Sequence[SoundField]) -> None:
        fields = list(fields)
        codes = _state_codes(fields)
        with self._lock:
            self._sources.extend(fields)
            self._states = np.concatenate((self._states, codes))

    def remove_source(self, index: int) -> None:
        """
        Remove the source at ``index``.

        An out-of-range index (negative indices included) leaves the field unchanged.
        """
        with self._lock:
            if 0 <= index < len(self._sources):
                del self._sources[index]
                self._states = np.delete(self._states, index)

    def clear_sources(self) -> None:
        with self._lock:
            self._sources.clear()
            self._states = np.zeros(0, dtype=np.int8)

    def trim_sources(self, max_count: int) -> int:
        """
        Drop the oldest sources so that at most ``max_count`` remain.

        Returns:
            Number of sources removed
        """
        with self._lock:
            excess = len(self._sources) - max(0, max_count)
            if excess <= 0:
                return 0
            del self._sources[:excess]
            self._states = self._states[excess:].copy()
            return excess

    def contains(self, position: SphericalCoordinate) -> bool:
        """Whether a position lies within the zone of influence."""
        return self._center.distance_to(position) <= self._radius

    def interference_at(self, position: SphericalCoordinate, time: float) -> complex:
        """
        Combined field of all sources at an observation point.

        Each source contributes ``amplitude * exp(i * 2*pi*f*(time - d/c)) / (1 + 0.1*d)``
        where ``d`` is its distance to the observation point; the sum is then
        passed through the field-type transform.

        Args:
            position: Observation point
            time: Observation time in seconds

        Returns:
            Complex field value; exactly zero when there are no sources
        """
        with self._lock:
            if not self._sources:
                return 0j
            sources = list(self._sources)

        amplitudes = np.array([s.amplitude for s in sources], dtype=np.complex128)
        frequencies = np.array([s.frequency for s in sources], dtype=np.float64)
        points = coordinates_to_cartesian([s.position for s in sources])

        observer = np.array(position.to_cartesian())
        distances = np.sqrt(np.sum((points - observer)**2, axis=1))

        phases = TWO_PI * frequencies * (time - distances / SPEED_OF_SOUND)
        contributions = amplitudes * np.exp(1j * phases) / (1.0 + DISTANCE_ATTENUATION * distances)

        return apply_field_type(complex(np.sum(contributions)), self._field_type)

    @staticmethod
    def superpose(fields: Sequence[SoundField]) -> SoundField:
        """
        Collapse several sources into one synthetic source in superposition.

        The result carries the mean amplitude and mean frequency, the phase of
        the mean amplitude and the amplitude-weighted mean position.

        Args:
            fields: Sources to combine

        Returns:
            A new SoundField in the SUPERPOSITION state

        Raises:
            ValidationError: If ``fields`` is empty
        """
        if len(fields) == 0:
            raise ValidationError("Cannot superpose an empty set of fields")

        amplitudes = np.array([f.amplitude for f in fields], dtype=np.complex128)
        mean_amplitude = complex(np.mean(amplitudes))
        mean_frequency = float(np.mean([f.frequency for f in fields]))

        radius, theta, phi, height = weighted_mean_coordinate(
            [f.position for f in fields], np.abs(amplitudes))

        return SoundField(
            amplitude=mean_amplitude,
            frequency=mean_frequency,
            phase=math.atan2(mean_amplitude.imag, mean_amplitude.real),
            state=CoherenceState.SUPERPOSITION,
            position=SphericalCoordinate(radius, theta, phi, height),
        )

    def advance_state(self, dt: float) -> None:
        """
        Run one step of the coherence-state random walk.

        COHERENT sources are stable; SUPERPOSITION collapses, ENTANGLED
        releases and COLLAPSED recovers with fixed per-call probabilities.
        A non-positive ``dt`` does nothing.

        The draw is vectorized over the state codes; only the sources that
        change state have their snapshot replaced.
        """
        if dt <= 0:
            return

        with self._lock:
            if not self._sources:
                return
            draws = self._rng.random(len(self._sources))
            moved = np.flatnonzero(draws < _TRANSITION_PROBABILITY[self._states])
            if moved.size == 0:
                return

            self._states[moved] = _TRANSITION_TARGET[self._states[moved]]
            for i in moved:
                self._sources[i] = self._sources[i].with_state(_STATES[self._states[i]])

    def entangle(self, index_a: int, index_b: int) -> None:
        """
        Couple two sources: both become ENTANGLED and share their mean phase.

        Equal or out-of-range indices leave the field unchanged.
        """
        with self._lock:
            n = len(self._sources)
            if index_a == index_b or not (0 <= index_a < n and 0 <= index_b < n):
                return

            a = self._sources[index_a]
            b = self._sources[index_b]
            phase = (a.phase + b.phase) / 2.0
            self._sources[index_a] = a.with_state(CoherenceState.ENTANGLED).with_phase(phase)
            self._sources[index_b] = b.with_state(CoherenceState.ENTANGLED).with_phase(phase)
            self._states[[index_a, index_b]] = _STATE_CODES[CoherenceState.ENTANGLED]

    def state_counts(self) -> Dict[CoherenceState, int]:
        """Number of sources in each coherence state."""
        with self._lock:
            totals = np.bincount(self._states, minlength=len(_STATES))
            return {state: int(totals[code]) for code, state in enumerate(_STATES)}

    def entangled_pairs(self) -> int:
        return self.state_counts()[CoherenceState.ENTANGLED] // 2
