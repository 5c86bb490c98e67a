"""motifscope: MusicXML note timelines and recurring pattern detection."""

__version__ = "0.1.0"

from motifscope.config import PipelineConfig, load_config
from motifscope.errors import (
    MalformedNoteError,
    MotifscopeError,
    PatternInputError,
    PipelineCancelled,
    PipelineWarning,
    ScoreImportError,
    TimingInconsistencyError,
)
from motifscope.pipeline import ScorePipeline, ScoreSession
from motifscope.score_importer import ScoreImporter, validate_score_bytes

__all__ = [
    "MalformedNoteError",
    "MotifscopeError",
    "PatternInputError",
    "PipelineCancelled",
    "PipelineConfig",
    "PipelineWarning",
    "ScoreImportError",
    "ScoreImporter",
    "ScorePipeline",
    "ScoreSession",
    "TimingInconsistencyError",
    "__version__",
    "load_config",
    "validate_score_bytes",
]
