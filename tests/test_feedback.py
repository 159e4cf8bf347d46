"""
Unit tests for the feedback module.

These tests verify coherence estimation, the coherence-band state machine,
state-change notification and the gain correction of the feedback corrector.
"""

import queue

import pytest
import numpy as np
import math
from domefield.acoustics.feedback import CoherenceFeedbackCorrector
from domefield.acoustics.utils import FeedbackState
from domefield.acoustics.exceptions import ValidationError


@pytest.fixture
def noise():
    """White noise block, which classifies as incoherent."""
    return np.random.default_rng(5).standard_normal(1024)


class TestCoherence:
    """Tests for the coherence measure."""

    def test_constant_signal(self):
        """Test that a constant signal has coherence exactly 1.0."""
        assert CoherenceFeedbackCorrector.coherence(np.full(64, 2.0)) == 1.0

    def test_short_signal(self):
        """Test that signals shorter than two samples have coherence 1.0."""
        assert CoherenceFeedbackCorrector.coherence([]) == 1.0
        assert CoherenceFeedbackCorrector.coherence([3.0]) == 1.0

    def test_range(self, noise):
        """Test that coherence stays within [0, 1]."""
        for signal in (noise, np.cumsum(noise), np.sin(np.arange(500) * 0.3)):
            value = CoherenceFeedbackCorrector.coherence(signal)
            assert 0.0 <= value <= 1.0


class TestParameters:
    """Tests for parameter handling."""

    def test_clamped_on_construction(self):
        """Test that threshold and strength are clamped to [0, 1]."""
        corrector = CoherenceFeedbackCorrector(threshold=1.5, entanglement_strength=-0.3)
        assert corrector.threshold == 1.0
        assert corrector.entanglement_strength == 0.0

    def test_clamped_on_assignment(self):
        """Test that setters clamp to [0, 1]."""
        corrector = CoherenceFeedbackCorrector()
        corrector.threshold = -0.2
        corrector.entanglement_strength = 4.0
        assert corrector.threshold == 0.0
        assert corrector.entanglement_strength == 1.0

    def test_invalid_capacity(self):
        """Test that the history needs a positive capacity."""
        with pytest.raises(ValidationError):
            CoherenceFeedbackCorrector(history_capacity=0)
        with pytest.raises(ValidationError):
            CoherenceFeedbackCorrector(sample_rate=0.0)


class TestStateMachine:
    """Tests for the coherence bands and notifications."""

    def test_classify_bands(self):
        """Test the band boundaries for a threshold of 0.6."""
        corrector = CoherenceFeedbackCorrector(threshold=0.6)
        assert corrector.classify(0.7) is FeedbackState.COHERENT
        assert corrector.classify(0.6) is FeedbackState.PARTIALLY_COHERENT
        assert corrector.classify(0.4) is FeedbackState.PARTIALLY_COHERENT
        assert corrector.classify(0.3) is FeedbackState.INCOHERENT
        assert corrector.classify(0.0) is FeedbackState.INCOHERENT

    def test_initial_state(self):
        """Test that a fresh corrector is coherent."""
        corrector = CoherenceFeedbackCorrector()
        assert corrector.state is FeedbackState.COHERENT
        assert corrector.coherence_factor == 1.0
        assert corrector.is_coherent()

    def test_state_change_is_published(self, noise):
        """Test that a band change reaches subscribers and the event log."""
        corrector = CoherenceFeedbackCorrector()
        channel = corrector.subscribe()

        corrector.apply_feedback(noise)

        assert corrector.state is FeedbackState.INCOHERENT
        event = channel.get_nowait()
        assert event.previous is FeedbackState.COHERENT
        assert event.current is FeedbackState.INCOHERENT
        assert event.coherence == corrector.coherence_factor

        logged = corrector.pending_events()
        assert logged == [event]
        assert corrector.pending_events() == []

    def test_no_event_without_change(self):
        """Test that staying in the same band publishes nothing."""
        corrector = CoherenceFeedbackCorrector()
        channel = corrector.subscribe()
        corrector.apply_feedback(np.full(128, 0.5))
        assert channel.empty()
        assert corrector.pending_events() == []

    def test_unsubscribe(self, noise):
        """Test that an unsubscribed channel receives nothing."""
        corrector = CoherenceFeedbackCorrector()
        channel = corrector.subscribe()
        corrector.unsubscribe(channel)
        corrector.apply_feedback(noise)
        with pytest.raises(queue.Empty):
            channel.get_nowait()


class TestApplyFeedback:
    """Tests for the gain correction."""

    def test_empty_signal(self):
        """Test that an empty block gives an empty result."""
        corrector = CoherenceFeedbackCorrector()
        result = corrector.apply_feedback([])
        assert result.size == 0
        assert corrector.statistics().blocks_processed == 0

    def test_silence_stays_silent(self):
        """Test that an all-zero block is returned as zeros."""
        corrector = CoherenceFeedbackCorrector(entanglement_strength=1.0)
        result = corrector.apply_feedback(np.zeros(256))
        assert np.all(result == 0.0)

    def test_coherent_gain(self):
        """Test the coherent-band gain 1 + c * 0.1 without additive correction."""
        corrector = CoherenceFeedbackCorrector(entanglement_strength=0.0)
        result = corrector.apply_feedback(np.full(32, 2.0))
        np.testing.assert_allclose(result, 2.2)

    def test_incoherent_gain(self, noise):
        """Test the incoherent-band gain 0.8 + c * 0.2."""
        corrector = CoherenceFeedbackCorrector(entanglement_strength=0.0)
        result = corrector.apply_feedback(noise)
        c = corrector.coherence_factor
        np.testing.assert_allclose(result, noise * (0.8 + c * 0.2))

    def test_partially_coherent_gain(self):
        """Test the partially-coherent gain 1 + c * 0.05."""
        corrector = CoherenceFeedbackCorrector(threshold=1.0, entanglement_strength=0.0)
        signal = np.sin(np.arange(512) * 0.5)
        result = corrector.apply_feedback(signal)

        assert corrector.state is FeedbackState.PARTIALLY_COHERENT
        c = corrector.coherence_factor
        np.testing.assert_allclose(result, signal * (1.0 + c * 0.05))

    def test_entanglement_correction(self):
        """Test the additive sin(2*pi*i/sr*c) * 0.01 * strength term."""
        corrector = CoherenceFeedbackCorrector(entanglement_strength=1.0, sample_rate=44100)
        result = corrector.apply_feedback(np.ones(16))

        i = np.arange(16)
        expected = 1.1 + np.sin(2 * math.pi * i / 44100 * 1.0) * 0.01
        np.testing.assert_allclose(result, expected, rtol=1e-9, atol=1e-12)

    def test_complex_signal(self):
        """Test that complex blocks are corrected as complex."""
        corrector = CoherenceFeedbackCorrector(entanglement_strength=0.0)
        result = corrector.apply_feedback(np.full(8, 1 + 1j))
        assert np.iscomplexobj(result)
        np.testing.assert_allclose(result, 1.1 * (1 + 1j))


class TestHistory:
    """Tests for the history ring."""

    def test_ring_eviction(self):
        """Test that only the newest samples are kept."""
        corrector = CoherenceFeedbackCorrector(history_capacity=8, entanglement_strength=0.0)
        corrector.apply_feedback(np.arange(20, dtype=float))

        history = corrector.history()
        assert history.size == 8
        np.testing.assert_array_equal(history, np.arange(12, 20, dtype=float))
        assert corrector.history_capacity == 8

    def test_history_spans_blocks(self):
        """Test that the history accumulates across blocks."""
        corrector = CoherenceFeedbackCorrector(history_capacity=100)
        corrector.apply_feedback(np.ones(30))
        corrector.apply_feedback(np.ones(30))
        assert corrector.history().size == 60

    def test_phase_variance(self):
        """Test phase variance of an in-phase history."""
        corrector = CoherenceFeedbackCorrector()
        assert corrector.phase_variance() == 0.0
        corrector.apply_feedback(np.full(16, 0.5))
        assert corrector.phase_variance() < 1e-20

    def test_reset(self, noise):
        """Test that reset clears history and restores coherence."""
        corrector = CoherenceFeedbackCorrector()
        corrector.apply_feedback(noise)
        corrector.reset()

        assert corrector.history().size == 0
        assert corrector.state is FeedbackState.COHERENT
        assert corrector.coherence_factor == 1.0
        assert corrector.is_coherent()

    def test_statistics(self, noise):
        """Test the processing counters."""
        corrector = CoherenceFeedbackCorrector(history_capacity=512)
        corrector.apply_feedback(noise)
        corrector.apply_feedback(noise[:100])

        stats = corrector.statistics()
        assert stats.blocks_processed == 2
        assert stats.samples_processed == 1124
        assert stats.history_size == 512
        assert stats.state_changes >= 1
