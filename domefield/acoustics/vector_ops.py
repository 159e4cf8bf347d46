"""
Vectorized Buffer Operations Module

This module provides JIT-compiled kernels for the per-block buffer work of the
processing pipeline: gain staging, resonance boosts, the additive feedback
correction and peak normalization.
"""

import numpy as np
import numba


@numba.njit
def fast_normalize_peak(signal: np.ndarray, peak: float = 0.95) -> np.ndarray:
    """
    Scale a signal so its largest absolute sample equals ``peak``.

    Args:
        signal: Real audio signal of shape (n_samples,)
        peak: Target peak amplitude

    Returns:
        Normalized copy of the signal; an all-zero (or empty) signal is returned unchanged
    """
    if signal.size == 0:
        return signal.copy()

    max_val = np.max(np.abs(signal))
    if max_val == 0.0:
        return signal.copy()

    return signal * (peak / max_val)


@numba.njit(fastmath=True)
def fast_apply_gain(signal: np.ndarray, gain: float) -> np.ndarray:
    """
    Apply a scalar gain to a real signal.

    Args:
        signal: Audio signal of shape (n_samples,)
        gain: Linear gain factor

    Returns:
        Scaled copy of the signal
    """
    result = np.empty_like(signal)
    for i in range(signal.shape[0]):
        result[i] = signal[i] * gain
    return result


@numba.njit(fastmath=True)
def resonance_boost_factor(eigenfrequencies: np.ndarray, reverb_times: np.ndarray,
                           reverb_threshold: float, boost: float = 0.1,
                           rolloff: float = 1000.0) -> float:
    """
    Combined gain of every dome mode that rings longer than the threshold.

    Each qualifying mode ``f`` contributes a factor ``1 + boost * exp(-f / rolloff)``.

    Args:
        eigenfrequencies: Mode frequencies in Hz
        reverb_times: Reverberation time per mode in seconds (same length)
        reverb_threshold: Minimum reverberation time for a mode to count
        boost: Maximum per-mode boost
        rolloff: Frequency scale of the exponential rolloff in Hz

    Returns:
        Product of the per-mode factors (1.0 when no mode qualifies)
    """
    factor = 1.0
    for i in range(eigenfrequencies.shape[0]):
        if reverb_times[i] > reverb_threshold:
            factor *= 1.0 + boost * np.exp(-eigenfrequencies[i] / rolloff)
    return factor


@numba.njit(fastmath=True)
def feedback_correction(n_samples: int, sample_rate: float, coherence: float,
                        strength: float) -> np.ndarray:
    """
    Additive entanglement correction ``sin(2*pi*i/sample_rate*coherence) * 0.01 * strength``.

    Args:
        n_samples: Block length
        sample_rate: Sample rate in Hz
        coherence: Current coherence factor in [0, 1]
        strength: Entanglement strength in [0, 1]

    Returns:
        Correction signal of shape (n_samples,)
    """
    result = np.empty(n_samples, dtype=np.float64)
    scale = 0.01 * strength
    step = 2.0 * np.pi / sample_rate * coherence
    for i in range(n_samples):
        result[i] = np.sin(step * i) * scale
    return result
