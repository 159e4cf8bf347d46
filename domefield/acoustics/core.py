"""
Core Pipeline Module

This module contains the main PipelineController class that ties together the
resonance model, the interference fields and the feedback corrector, and runs
one complete processing pass per audio block.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import (
    DomeFieldConfig, DomeConfig, PipelineConfig, MIN_AUDIBLE_FREQUENCY,
    MAX_AUDIBLE_FREQUENCY, RESONANCE_BOOST, RESONANCE_ROLLOFF
)
from .exceptions import ProcessingError, ValidationError
from .feedback import CoherenceFeedbackCorrector
from .interference import InterferenceField
from .resonance import DomeResonanceModel
from .utils import (
    CoherenceState, FeedbackState, InterferenceFieldType, SoundField, SphericalCoordinate, TWO_PI
)
from .vector_ops import fast_apply_gain, fast_normalize_peak, resonance_boost_factor

__version__ = '0.1.0'

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineStatistics:
    """Read-only snapshot of the pipeline for logging and telemetry."""
    active_fields: int
    active_sources: int
    entangled_pairs: int
    coherence_ratio: float  # fraction of sources in the COHERENT state
    blocks_processed: int
    coherence_factor: float
    coherence_state: FeedbackState


class PipelineController:
    """
    Dome sound-field processing pipeline.

    Owns one DomeResonanceModel, a list of InterferenceFields and one
    CoherenceFeedbackCorrector, and sequences them over each input block:

    1. one SoundField per sample, spread over the audible band and around the dome
    2. sources fed into the primary interference field, coherence states advanced
    3. resonance boost for every long-ringing dome mode
    4. coherence feedback correction
    5. peak normalization

    Calls to ``process_block`` are serialized by a lock held for the whole pass.
    """

    def __init__(self, radius: Optional[float] = None, height: Optional[float] = None,
                 sample_rate: Optional[float] = None,
                 config: Optional[DomeFieldConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Initialize the pipeline.

        Args:
            radius: Dome radius in meters; defaults to ``config.dome.radius``
            height: Dome height in meters; defaults to ``config.dome.height``
            sample_rate: Sample rate in Hz; overrides the configured one when given
            config: Full configuration; explicit arguments take precedence over it
            rng: Random generator for coherence-state transitions; defaults to one
                seeded from ``config.pipeline.seed``

        Raises:
            InvalidGeometryError: If radius or height is not positive
        """
        config = config if config is not None else DomeFieldConfig()
        self.config = config
        pipeline_config: PipelineConfig = config.pipeline
        dome_config: DomeConfig = config.dome

        radius = radius if radius is not None else dome_config.radius
        height = height if height is not None else dome_config.height

        self.sample_rate = float(sample_rate if sample_rate is not None else pipeline_config.sample_rate)
        if not self.sample_rate > 0:
            raise ValidationError(f"Sample rate must be positive, got {self.sample_rate}")

        self.dome = DomeResonanceModel(
            radius, height,
            max_mode_order=dome_config.max_mode_order,
            speed_of_sound=dome_config.speed_of_sound,
            absorption=dome_config.absorption,
        )
        self.corrector = CoherenceFeedbackCorrector(
            threshold=config.feedback.threshold,
            history_capacity=config.feedback.history_capacity,
            sample_rate=self.sample_rate,
            entanglement_strength=config.feedback.entanglement_strength,
        )

        self._rng = rng if rng is not None else np.random.default_rng(pipeline_config.seed)
        self._primary: Optional[InterferenceField] = None  # receives the per-sample sources
        self._fields: List[InterferenceField] = []  # caller-owned fields
        self._fields_lock = threading.RLock()
        self._pass_lock = threading.Lock()

        self._output = np.zeros(0)
        self._blocks_processed = 0

        logger.debug("Pipeline initialized: dome r=%.3f h=%.3f, %.0f Hz",
                     radius, height, self.sample_rate)

    @property
    def version(self) -> str:
        return __version__

    # ---------------------------------------------------------------------------------
    # Interference fields
    # ---------------------------------------------------------------------------------

    def add_interference_field(self, field: InterferenceField) -> None:
        with self._fields_lock:
            self._fields.append(field)

    def remove_interference_field(self, index: int) -> None:
        """
        Remove the field at ``index`` of ``interference_fields()``.

        An out-of-range index is ignored. Removing the pipeline's own field
        drops its sources; a fresh one is created on the next pass.
        """
        with self._fields_lock:
            fields = self.interference_fields()
            if not 0 <= index < len(fields):
                return
            field = fields[index]
            if field is self._primary:
                self._primary = None
            else:
                self._fields.remove(field)

    def interference_fields(self) -> Tuple[InterferenceField, ...]:
        """The pipeline's own field (once created) followed by the caller's fields."""
        with self._fields_lock:
            primary = (self._primary,) if self._primary is not None else ()
            return primary + tuple(self._fields)

    def _primary_field(self) -> InterferenceField:
        with self._fields_lock:
            if self._primary is None:
                self._primary = InterferenceField(
                    InterferenceFieldType.CONSTRUCTIVE,
                    SphericalCoordinate(0.0, 0.0, 0.0, 0.0),
                    self.dome.radius,
                    rng=self._rng,
                )
            return self._primary

    def create_sound_field(self, frequency: float, position: SphericalCoordinate,
                           state: CoherenceState = CoherenceState.COHERENT) -> SoundField:
        """Create a unit-amplitude source at a position in the dome."""
        return SoundField(amplitude=1.0 + 0j, frequency=frequency, state=state, position=position)

    def update(self, dt: float) -> None:
        """Advance the coherence states of every interference field by ``dt`` seconds."""
        for field in self.interference_fields():
            field.advance_state(dt)

    # ---------------------------------------------------------------------------------
    # Geometry
    # ---------------------------------------------------------------------------------

    def update_geometry(self, radius: float, height: float) -> None:
        """Change the dome geometry; eigenfrequencies are recomputed."""
        self.dome.update_geometry(radius, height)

    def set_absorption(self, frequency: float, coefficient: float) -> None:
        self.dome.set_absorption(frequency, coefficient)

    # ---------------------------------------------------------------------------------
    # Processing
    # ---------------------------------------------------------------------------------

    def _block_to_fields(self, block: np.ndarray) -> List[SoundField]:
        n = block.size
        radius = self.dome.radius
        span = MAX_AUDIBLE_FREQUENCY - MIN_AUDIBLE_FREQUENCY
        fields = []
        for i, sample in enumerate(block):
            fraction = i / (n - 1) if n > 1 else 0.0
            fields.append(SoundField(
                amplitude=complex(sample),
                frequency=MIN_AUDIBLE_FREQUENCY + span * fraction,
                state=CoherenceState.COHERENT,
                position=SphericalCoordinate(radius, math.pi / 2, TWO_PI * i / n, 0.0),
            ))
        return fields

    def _resonance_gain(self) -> float:
        eigenfrequencies = np.array(self.dome.eigenfrequencies(), dtype=np.float64)
        if eigenfrequencies.size == 0:
            return 1.0
        reverb_times = self.dome.reverb_times(eigenfrequencies)
        return resonance_boost_factor(eigenfrequencies, reverb_times,
                                      self.config.pipeline.reverb_threshold,
                                      RESONANCE_BOOST, RESONANCE_ROLLOFF)

    def process_block(self, block: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """
        Run one full processing pass over an audio block.

        Args:
            block: Real-valued audio samples

        Returns:
            Processed samples of the same length, peak-normalized to 0.95;
            an all-zero block comes back all zero and an empty block empty

        Raises:
            ValidationError: If the block holds NaN or infinite samples; the
                pipeline state is left untouched
        """
        samples = np.asarray(block, dtype=np.float64).ravel()
        if samples.size == 0:
            return np.zeros(0)
        if not np.all(np.isfinite(samples)):
            raise ValidationError("Input block contains non-finite samples")

        with self._pass_lock:
            # 1. per-sample sources
            fields = self._block_to_fields(samples)

            # 2. interference fields
            primary = self._primary_field()
            primary.add_sources(fields)
            max_sources = self.config.pipeline.max_field_sources
            if max_sources is not None:
                primary.trim_sources(max_sources)
            self.update(1.0 / self.sample_rate)

            # 3. dome resonance
            gain = self._resonance_gain()
            working = fast_apply_gain(samples, gain)

            # 4. coherence feedback
            working = np.real(self.corrector.apply_feedback(working)).astype(np.float64)

            # 5. normalization
            output = fast_normalize_peak(working, self.config.pipeline.normalization_peak)

            if not np.all(np.isfinite(output)):
                raise ProcessingError("Non-finite samples produced by processing pass")

            self._output = output
            self._blocks_processed += 1

        logger.debug("Processed block %d: %d samples, resonance gain %.4f, coherence %.4f (%s)",
                     self._blocks_processed, samples.size, gain,
                     self.corrector.coherence_factor, self.corrector.state.name)
        return output.copy()

    # ---------------------------------------------------------------------------------
    # Diagnostics
    # ---------------------------------------------------------------------------------

    def eigenfrequencies(self) -> Tuple[float, ...]:
        return self.dome.eigenfrequencies()

    @property
    def coherence_factor(self) -> float:
        return self.corrector.coherence_factor

    @property
    def coherence_state(self) -> FeedbackState:
        return self.corrector.state

    def source_count(self) -> int:
        """Number of sources across all interference fields."""
        return sum(field.source_count() for field in self.interference_fields())

    def last_output(self) -> np.ndarray:
        """Copy of the most recent output block."""
        return self._output.copy()

    def statistics(self) -> PipelineStatistics:
        fields = self.interference_fields()
        total = 0
        coherent = 0
        entangled = 0
        for field in fields:
            counts = field.state_counts()
            total += sum(counts.values())
            coherent += counts[CoherenceState.COHERENT]
            entangled += counts[CoherenceState.ENTANGLED] // 2

        return PipelineStatistics(
            active_fields=len(fields),
            active_sources=total,
            entangled_pairs=entangled,
            coherence_ratio=coherent / total if total else 1.0,
            blocks_processed=self._blocks_processed,
            coherence_factor=self.corrector.coherence_factor,
            coherence_state=self.corrector.state,
        )
