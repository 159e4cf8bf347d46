"""
Dome Resonance Module

This module contains the DomeResonanceModel class, which derives the acoustic
eigenfrequencies and reverberation behaviour of a dome-shaped cavity from its
geometry and frequency-dependent wall absorption.

The formulas are deliberately simplified spherical-cavity approximations:
eigenfrequencies follow a spherical-harmonic degree series corrected for dome
height, and reverberation uses Sabine's equation on a spherical-cap volume.
"""

import logging
import threading
import warnings
from typing import Dict, Iterable, Mapping, Optional, Tuple

import numpy as np
from scipy.interpolate import interp1d

from .config import (
    SPEED_OF_SOUND, SABINE_CONSTANT, DEFAULT_MAX_MODE_ORDER, DEFAULT_ABSORPTION,
    MIN_AUDIBLE_FREQUENCY, MAX_AUDIBLE_FREQUENCY, ABSORPTION_EPSILON,
    EIGENFREQUENCY_TOLERANCE, TUNING_TOLERANCE
)
from .exceptions import InvalidGeometryError, ValidationError
from .math_utils import dome_mode_frequency, spherical_cap_volume, spherical_cap_area

logger = logging.getLogger(__name__)


def _validate_geometry(radius: float, height: float) -> None:
    if not radius > 0:
        raise InvalidGeometryError(f"Dome radius must be positive, got {radius}")
    if not height > 0:
        raise InvalidGeometryError(f"Dome height must be positive, got {height}")


def _dedupe_sorted(frequencies: Iterable[float]) -> Tuple[float, ...]:
    result = []
    for f in sorted(frequencies):
        if result and abs(f - result[-1]) <= EIGENFREQUENCY_TOLERANCE * max(abs(f), 1.0):
            continue
        result.append(f)
    return tuple(result)


class DomeResonanceModel:
    """
    Acoustic model of a dome cavity.

    Eigenfrequencies are cached and recomputed whenever the geometry changes.
    The absorption table maps sample frequencies to absorption coefficients
    and is interpolated linearly between them.

    All public methods are safe to call from several threads.
    """

    def __init__(self, radius: float, height: float, max_mode_order: int = DEFAULT_MAX_MODE_ORDER,
                 speed_of_sound: float = SPEED_OF_SOUND,
                 absorption: Optional[Mapping[float, float]] = None):
        """
        Initialize the resonance model.

        Args:
            radius: Dome radius in meters (> 0)
            height: Dome height in meters (> 0)
            max_mode_order: Highest spherical-harmonic degree considered for eigenmodes
            speed_of_sound: Speed of sound in m/s
            absorption: Optional frequency -> absorption coefficient table;
                defaults to the standard dome materials

        Raises:
            InvalidGeometryError: If radius or height is not positive
        """
        _validate_geometry(radius, height)
        if max_mode_order < 0:
            raise ValidationError(f"Maximum mode order must be non-negative, got {max_mode_order}")

        self._radius = float(radius)
        self._height = float(height)
        self.max_mode_order = max_mode_order
        self.speed_of_sound = speed_of_sound

        self._lock = threading.RLock()
        self._absorption: Dict[float, float] = {}
        self._interpolator = None
        self._tuned_frequencies = set()
        self._eigenfrequencies: Tuple[float, ...] = ()

        self.set_material_properties(absorption if absorption is not None else DEFAULT_ABSORPTION)
        self._recompute_eigenfrequencies()

    @property
    def radius(self) -> float:
        return self._radius

    @property
    def height(self) -> float:
        return self._height

    def _recompute_eigenfrequencies(self) -> None:
        modes = []
        for n in range(self.max_mode_order + 1):
            # Degenerate in m: every order of degree n rings at the same frequency
            for m in range(n + 1):
                f = dome_mode_frequency(n, self._radius, self._height, self.speed_of_sound)
                if MIN_AUDIBLE_FREQUENCY <= f <= MAX_AUDIBLE_FREQUENCY:
                    modes.append(f)

        modes.extend(self._tuned_frequencies)
        self._eigenfrequencies = _dedupe_sorted(modes)
        logger.debug("Dome r=%.3f h=%.3f: %d eigenfrequencies",
                     self._radius, self._height, len(self._eigenfrequencies))

    def eigenfrequencies(self) -> Tuple[float, ...]:
        """
        Get the resonant frequencies of the dome.

        Returns:
            Ascending, deduplicated frequencies in Hz within the audible band
        """
        with self._lock:
            return self._eigenfrequencies

    def update_geometry(self, radius: float, height: float) -> None:
        """
        Change the dome geometry and recompute the eigenfrequencies.

        Args:
            radius: New dome radius in meters
            height: New dome height in meters

        Raises:
            InvalidGeometryError: If radius or height is not positive; the
                previous geometry and eigenfrequencies are kept
        """
        _validate_geometry(radius, height)
        with self._lock:
            self._radius = float(radius)
            self._height = float(height)
            self._recompute_eigenfrequencies()

    def set_absorption(self, frequency: float, coefficient: float) -> None:
        """
        Set the absorption coefficient at a single frequency.

        Args:
            frequency: Frequency in Hz (> 0)
            coefficient: Absorption coefficient, clamped to [0, 1]

        Raises:
            ValidationError: If frequency is not positive
        """
        if not frequency > 0:
            raise ValidationError(f"Absorption frequency must be positive, got {frequency}")

        clamped = min(1.0, max(0.0, float(coefficient)))
        if clamped != coefficient:
            warnings.warn(f"Absorption coefficient {coefficient} at {frequency} Hz clamped to {clamped}")

        with self._lock:
            self._absorption[float(frequency)] = clamped
            self._interpolator = None

    def set_material_properties(self, properties: Mapping[float, float]) -> None:
        """
        Replace the whole absorption table.

        Args:
            properties: Non-empty mapping of frequency in Hz -> absorption coefficient

        Raises:
            ValidationError: If the mapping is empty or holds a non-positive frequency
        """
        if not properties:
            raise ValidationError("Absorption table must contain at least one frequency")

        table = {}
        for frequency, coefficient in properties.items():
            if not frequency > 0:
                raise ValidationError(f"Absorption frequency must be positive, got {frequency}")
            table[float(frequency)] = min(1.0, max(0.0, float(coefficient)))

        with self._lock:
            self._absorption = table
            self._interpolator = None

    def absorption_table(self) -> Dict[float, float]:
        """Copy of the absorption table ordered by frequency."""
        with self._lock:
            return dict(sorted(self._absorption.items()))

    def absorption_at(self, frequency: float) -> float:
        """
        Absorption coefficient at an arbitrary frequency.

        Linear interpolation between the two bracketing table entries;
        outside the table the nearest endpoint value is used.

        Args:
            frequency: Frequency in Hz

        Returns:
            Absorption coefficient in [0, 1]
        """
        with self._lock:
            if len(self._absorption) == 1:
                return next(iter(self._absorption.values()))

            if self._interpolator is None:
                freqs = np.array(sorted(self._absorption))
                coeffs = np.array([self._absorption[f] for f in freqs])
                self._interpolator = interp1d(freqs, coeffs, kind='linear', bounds_error=False,
                                              fill_value=(coeffs[0], coeffs[-1]), assume_sorted=True)
            return float(self._interpolator(frequency))

    def volume(self) -> float:
        """Air volume of the dome in cubic meters."""
        with self._lock:
            return spherical_cap_volume(self._radius, self._height)

    def surface_area(self) -> float:
        """Curved surface area of the dome in square meters."""
        with self._lock:
            return spherical_cap_area(self._radius, self._height)

    def reverb_time(self, frequency: float) -> float:
        """
        Sabine reverberation time at a frequency.

        RT = 0.161 * V / (S * a(f)), with the absorption floored at a small
        epsilon so a perfectly reflective table stays finite.

        Args:
            frequency: Frequency in Hz

        Returns:
            Reverberation time in seconds (> 0)
        """
        with self._lock:
            absorption = max(self.absorption_at(frequency), ABSORPTION_EPSILON)
            return SABINE_CONSTANT * self.volume() / (self.surface_area() * absorption)

    def reverb_times(self, frequencies: Iterable[float]) -> np.ndarray:
        """Reverberation time for each frequency, as an array."""
        with self._lock:
            return np.array([self.reverb_time(f) for f in frequencies], dtype=np.float64)

    def optimize_frequency_response(self, target_frequencies: Iterable[float]) -> int:
        """
        Tune the dome towards target frequencies.

        Each audible target that is not within 1 Hz of an existing mode is
        added to the mode list. Tuned modes persist across geometry updates.

        Args:
            target_frequencies: Desired resonant frequencies in Hz

        Returns:
            Number of frequencies added
        """
        added = 0
        with self._lock:
            for target in target_frequencies:
                if not (MIN_AUDIBLE_FREQUENCY <= target <= MAX_AUDIBLE_FREQUENCY):
                    continue
                if any(abs(target - f) < TUNING_TOLERANCE for f in self._eigenfrequencies):
                    continue
                self._tuned_frequencies.add(float(target))
                self._eigenfrequencies = _dedupe_sorted(self._eigenfrequencies + (float(target),))
                added += 1

        if added:
            logger.debug("Added %d tuned frequencies", added)
        return added
