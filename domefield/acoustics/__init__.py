"""
Dome Acoustics Package

Signal-processing core for spatial sound fields inside a dome: point sources
combined by wave interference, coupled to the dome's resonant modes and passed
through a coherence feedback corrector before normalization.
"""

from .core import PipelineController, PipelineStatistics
from .resonance import DomeResonanceModel
from .interference import InterferenceField
from .feedback import CoherenceFeedbackCorrector, FeedbackStatistics
from .streaming import DomeStreamProcessor, process_signal
from .config import DomeFieldConfig, DomeConfig, FeedbackConfig, PipelineConfig
from .utils import (
    SphericalCoordinate, SoundField, StateChangeEvent, CoherenceState,
    InterferenceFieldType, FeedbackState
)
from .exceptions import DomeFieldError, ValidationError, InvalidGeometryError

__version__ = '0.1.0'
