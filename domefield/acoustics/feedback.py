"""
Coherence Feedback Module

This module contains the CoherenceFeedbackCorrector class. It keeps a rolling
history of processed samples, estimates how coherent the recent signal is and
applies a bounded gain correction that depends on the coherence band.

State changes are published as explicit events: every subscriber owns a
``queue.Queue`` channel, and the corrector additionally keeps a bounded log
that can be drained with ``pending_events``.
"""

import collections
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Deque, List, Union, Sequence

import numpy as np

from .config import (
    DEFAULT_COHERENCE_THRESHOLD, DEFAULT_HISTORY_CAPACITY, DEFAULT_ENTANGLEMENT_STRENGTH,
    DEFAULT_SAMPLE_RATE, EVENT_LOG_SIZE
)
from .exceptions import ValidationError
from .math_utils import lag_one_coherence, phase_variance
from .utils import FeedbackState, StateChangeEvent
from .vector_ops import feedback_correction

logger = logging.getLogger(__name__)

# Per-band gain: gain = offset + coherence * slope
_BAND_GAINS = {
    FeedbackState.COHERENT: (1.0, 0.1),
    FeedbackState.PARTIALLY_COHERENT: (1.0, 0.05),
    FeedbackState.INCOHERENT: (0.8, 0.2),
}


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass(frozen=True)
class FeedbackStatistics:
    """Counters describing the corrector's work so far."""
    blocks_processed: int
    samples_processed: int
    state_changes: int
    history_size: int
    coherence: float
    state: FeedbackState


class CoherenceFeedbackCorrector:
    """
    Rolling coherence estimator with band-dependent gain correction.

    Threshold and entanglement strength are clamped to [0, 1] whenever they
    are assigned. The history is a ring of fixed capacity; the oldest samples
    are evicted first.
    """

    def __init__(self, threshold: float = DEFAULT_COHERENCE_THRESHOLD,
                 history_capacity: int = DEFAULT_HISTORY_CAPACITY,
                 sample_rate: float = DEFAULT_SAMPLE_RATE,
                 entanglement_strength: float = DEFAULT_ENTANGLEMENT_STRENGTH):
        """
        Initialize the corrector.

        Args:
            threshold: Coherence above which the signal counts as coherent
            history_capacity: Number of samples kept in the history ring
            sample_rate: Sample rate in Hz, used by the additive correction
            entanglement_strength: Scale of the additive correction
        """
        if history_capacity < 1:
            raise ValidationError(f"History capacity must be positive, got {history_capacity}")
        if not sample_rate > 0:
            raise ValidationError(f"Sample rate must be positive, got {sample_rate}")

        self._lock = threading.RLock()
        self._history: Deque[complex] = collections.deque(maxlen=history_capacity)
        self._threshold = _clamp_unit(threshold)
        self._entanglement_strength = _clamp_unit(entanglement_strength)
        self.sample_rate = float(sample_rate)

        self._coherence = 1.0
        self._state = FeedbackState.COHERENT

        self._events: Deque[StateChangeEvent] = collections.deque(maxlen=EVENT_LOG_SIZE)
        self._subscribers: List[queue.Queue] = []

        self._blocks_processed = 0
        self._samples_processed = 0
        self._state_changes = 0

    @property
    def history_capacity(self) -> int:
        return self._history.maxlen

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        with self._lock:
            self._threshold = _clamp_unit(value)

    @property
    def entanglement_strength(self) -> float:
        return self._entanglement_strength

    @entanglement_strength.setter
    def entanglement_strength(self, value: float) -> None:
        with self._lock:
            self._entanglement_strength = _clamp_unit(value)

    @property
    def coherence_factor(self) -> float:
        """Coherence measured on the history at the last feedback pass."""
        with self._lock:
            return self._coherence

    @property
    def state(self) -> FeedbackState:
        with self._lock:
            return self._state

    @staticmethod
    def coherence(signal: Union[Sequence[float], np.ndarray]) -> float:
        """
        Coherence of a signal in [0, 1].

        Returns 1.0 for signals shorter than two samples or with zero variance.
        """
        return lag_one_coherence(signal)

    def classify(self, coherence: float) -> FeedbackState:
        """Map a coherence value to its band under the current threshold."""
        if coherence > self._threshold:
            return FeedbackState.COHERENT
        if coherence > 0.5 * self._threshold:
            return FeedbackState.PARTIALLY_COHERENT
        return FeedbackState.INCOHERENT

    def subscribe(self) -> queue.Queue:
        """
        Open a notification channel.

        Returns:
            A queue receiving a StateChangeEvent for every later state change
        """
        channel = queue.Queue()
        with self._lock:
            self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: queue.Queue) -> None:
        with self._lock:
            if channel in self._subscribers:
                self._subscribers.remove(channel)

    def pending_events(self) -> List[StateChangeEvent]:
        """Drain and return the state changes logged since the last call."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
            return events

    def _update_state(self, coherence: float) -> None:
        self._coherence = coherence
        new_state = self.classify(coherence)
        if new_state is self._state:
            return

        event = StateChangeEvent(previous=self._state, current=new_state, coherence=coherence)
        self._state = new_state
        self._state_changes += 1
        self._events.append(event)
        for channel in self._subscribers:
            channel.put_nowait(event)

        logger.debug("Coherence state %s -> %s (coherence=%.4f)",
                     event.previous.name, event.current.name, coherence)

    def apply_feedback(self, signal: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """
        Correct a block of samples according to the coherence of the recent history.

        The block is first appended to the history, the history's coherence
        decides the band gain, and the additive entanglement correction is
        added on top. A silent block gets no additive correction.

        Args:
            signal: Real or complex samples

        Returns:
            Corrected samples (empty array for empty input)
        """
        x = np.asarray(signal)
        if x.size == 0:
            return np.array([], dtype=x.dtype if x.dtype.kind in 'fc' else np.float64)
        if x.dtype.kind not in 'fc':
            x = x.astype(np.float64)
        x = x.ravel()

        with self._lock:
            self._history.extend(x.tolist())
            coherence = lag_one_coherence(np.array(self._history))
            self._update_state(coherence)

            offset, slope = _BAND_GAINS[self._state]
            corrected = x * (offset + coherence * slope)

            if np.any(x != 0):
                corrected = corrected + feedback_correction(
                    x.size, self.sample_rate, coherence, self._entanglement_strength)

            self._blocks_processed += 1
            self._samples_processed += x.size

        return corrected

    def history(self) -> np.ndarray:
        """Snapshot of the history ring, oldest sample first."""
        with self._lock:
            return np.array(self._history)

    def phase_variance(self) -> float:
        """Phase variance of the history; 0.0 when fewer than two samples are held."""
        with self._lock:
            return phase_variance(np.array(self._history, dtype=np.complex128))

    def is_coherent(self) -> bool:
        """An empty history counts as coherent."""
        with self._lock:
            if not self._history:
                return True
            return self._state is FeedbackState.COHERENT

    def reset(self) -> None:
        """Clear the history and return to the coherent state without publishing an event."""
        with self._lock:
            self._history.clear()
            self._coherence = 1.0
            self._state = FeedbackState.COHERENT

    def statistics(self) -> FeedbackStatistics:
        with self._lock:
            return FeedbackStatistics(
                blocks_processed=self._blocks_processed,
                samples_processed=self._samples_processed,
                state_changes=self._state_changes,
                history_size=len(self._history),
                coherence=self._coherence,
                state=self._state,
            )
