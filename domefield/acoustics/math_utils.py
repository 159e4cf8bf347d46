"""
Core Mathematical Functions for Dome Acoustics

This module provides the numeric building blocks used by the resonance model,
the interference engine and the feedback corrector: vectorized coordinate
conversion, spherical-cap geometry, spherical-cavity mode frequencies and
signal coherence statistics.

Most functions accept both scalar and array inputs.

See Also:
    - utils: For type definitions and the coordinate record
    - config: For the constants these functions default to
"""

import math
from typing import Sequence, Tuple, Union

import numpy as np

from .utils import SphericalCoordinate
from .exceptions import ValidationError
from .config import SPEED_OF_SOUND, HEIGHT_CORRECTION


def coordinates_to_cartesian(positions: Sequence[SphericalCoordinate]) -> np.ndarray:
    """
    Convert a sequence of coordinates to Cartesian points in one pass.

    Args:
        positions: Coordinates to convert

    Returns:
        Array of shape (n, 3) holding (x, y, z) per coordinate; z includes the height offset
    """
    if len(positions) == 0:
        return np.zeros((0, 3))

    params = np.array([(p.radius, p.theta, p.phi, p.height) for p in positions], dtype=np.float64)
    r, theta, phi, height = params.T
    sin_theta = np.sin(theta)

    return np.column_stack((
        r * sin_theta * np.cos(phi),
        r * sin_theta * np.sin(phi),
        r * np.cos(theta) + height,
    ))


def spherical_cap_volume(radius: float, height: float) -> float:
    """
    Air volume of a dome of the given radius and height.

    A dome at least as tall as its radius is treated as a hemisphere;
    a shallower one as a spherical segment.

    Args:
        radius: Sphere radius in meters
        height: Dome height in meters

    Returns:
        Volume in cubic meters
    """
    if height >= radius:
        return 2.0 / 3.0 * math.pi * radius**3
    return math.pi * height**2 * (3.0 * radius - height) / 3.0


def spherical_cap_area(radius: float, height: float) -> float:
    """
    Curved surface area of a dome of the given radius and height.

    Args:
        radius: Sphere radius in meters
        height: Dome height in meters

    Returns:
        Area in square meters
    """
    if height >= radius:
        return 2.0 * math.pi * radius**2
    return 2.0 * math.pi * radius * height


def dome_mode_frequency(n: int, radius: float, height: float,
                        speed_of_sound: float = SPEED_OF_SOUND) -> float:
    """
    Spherical-harmonic approximation of a dome eigenfrequency of degree ``n``.

    f(n) = (c / 2pi) * sqrt(n (n + 1)) / radius, scaled by 1 + 0.1 * height / radius.

    Raises:
        ValidationError: If n is negative
    """
    if n < 0:
        raise ValidationError(f"Mode degree must be non-negative, got {n}")
    base = speed_of_sound / (2.0 * math.pi) * math.sqrt(n * (n + 1)) / radius
    return base * (1.0 + HEIGHT_CORRECTION * height / radius)


def lag_one_coherence(signal: Union[Sequence[float], np.ndarray]) -> float:
    """
    Normalized lag-1 autocorrelation magnitude of a signal.

    The mean-removed lag-1 autocovariance is divided by the variance, so a
    slowly varying signal scores close to 1 and white noise close to 0.
    Complex signals are supported.

    Args:
        signal: Real or complex samples

    Returns:
        Coherence in [0, 1]; 1.0 for fewer than two samples or zero variance
    """
    x = np.asarray(signal)
    if x.size < 2:
        return 1.0

    centered = x - np.mean(x)
    variance = float(np.mean(np.abs(centered)**2))
    if not variance > 0.0:
        return 1.0

    r1 = np.mean(centered[1:] * np.conj(centered[:-1]))
    return float(np.clip(np.abs(r1) / variance, 0.0, 1.0))


def wrap_phase(phase: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Wrap phase values into [-pi, pi)."""
    wrapped = np.mod(np.asarray(phase) + np.pi, 2.0 * np.pi) - np.pi
    return wrapped if isinstance(phase, np.ndarray) else float(wrapped)


def phase_variance(samples: Union[Sequence[complex], np.ndarray]) -> float:
    """
    Variance of the sample phases around their mean, with deviations wrapped to [-pi, pi).

    Returns:
        0.0 for fewer than two samples
    """
    x = np.asarray(samples)
    if x.size < 2:
        return 0.0

    phases = np.angle(x)
    deviations = wrap_phase(phases - np.mean(phases))
    return float(np.mean(deviations**2))


def weighted_mean_coordinate(positions: Sequence[SphericalCoordinate],
                             weights: np.ndarray) -> Tuple[float, float, float, float]:
    """
    Weighted centroid of a set of coordinates.

    The spherical parts are averaged as Cartesian points and converted back,
    so azimuths on either side of phi = 0 stay on the same side of the dome.
    The height offsets are averaged separately.

    Args:
        positions: Coordinates to average
        weights: Non-negative weight per coordinate; uniform weights are used
            when every weight is zero

    Returns:
        (radius, theta, phi, height) of the centroid; theta is 0 when the
        centroid falls on the origin
    """
    w = np.asarray(weights, dtype=np.float64)
    if not np.sum(w) > 0.0:
        w = np.ones(len(positions))

    heights = np.array([p.height for p in positions], dtype=np.float64)
    points = coordinates_to_cartesian(positions)
    points[:, 2] -= heights

    x, y, z = np.average(points, axis=0, weights=w)
    height = float(np.average(heights, weights=w))

    radius = math.sqrt(x * x + y * y + z * z)
    if radius == 0.0:
        return (0.0, 0.0, 0.0, height)

    theta = math.acos(min(1.0, max(-1.0, z / radius)))
    phi = math.atan2(y, x) % (2.0 * math.pi)
    return (radius, theta, phi, height)
