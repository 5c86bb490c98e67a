"""ScorePipeline and ScoreSession: run the stages for one score, last load wins."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable

from motifscope.config import PipelineConfig
from motifscope.errors import PipelineCancelled
from motifscope.interleaver import Interleaver
from motifscope.note_builder import NoteModelBuilder
from motifscope.pattern_detector import PatternDetector, merge_patterns
from motifscope.pattern_grouper import PatternGrouper
from motifscope.score_importer import ScoreImporter
from motifscope.score_models import PipelineResult
from motifscope.timeline import TimelineBuilder

logger = logging.getLogger(__name__)


class ScorePipeline:
    """
    Runs Importer → Note Model Builder → Interleaver → Timeline / Patterns.

    Each stage consumes the full output of the previous one. Between stages
    the optional ``is_current`` callback is consulted; once it returns False
    the run stops with :class:`PipelineCancelled` and its intermediate state
    is dropped.
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.importer = ScoreImporter(reject_flagged=self.config.reject_flagged)
        self.detector = PatternDetector(
            min_length=self.config.min_pattern_length,
            max_length=self.config.max_pattern_length,
        )
        self.grouper = PatternGrouper(
            threshold=self.config.group_threshold,
            display_length=self.config.display_length,
        )

    def _checkpoint(self, is_current: Callable[[], bool] | None, stage: str) -> None:
        if is_current is not None and not is_current():
            raise PipelineCancelled(f"Run superseded before {stage}")

    def run(
        self,
        data: bytes,
        filename: str,
        is_current: Callable[[], bool] | None = None,
    ) -> PipelineResult:
        """
        Run every stage over one score's bytes.

        Raises:
            ScoreImportError: If the bytes are not a readable score.
            PipelineCancelled: If ``is_current`` reported the run superseded.
        """
        imported = self.importer.load(data, filename)
        self._checkpoint(is_current, "note building")

        model = NoteModelBuilder().build(imported)
        self._checkpoint(is_current, "interleaving")

        interleaved = Interleaver().interleave(model)
        self._checkpoint(is_current, "timeline building")

        timeline_builder = TimelineBuilder()
        timeline = timeline_builder.build(model, interleaved)
        self._checkpoint(is_current, "pattern detection")

        step_patterns, direction_patterns = self.detector.detect_all(interleaved)
        self._checkpoint(is_current, "pattern grouping")

        groups = self.grouper.group(merge_patterns(step_patterns, direction_patterns))

        warnings = (*model.warnings, *timeline_builder.warnings)
        logger.info(
            "%s: %d note(s), %d pattern group(s), %d warning(s)",
            filename, len(interleaved), len(groups), len(warnings),
        )
        return PipelineResult(
            source=imported,
            model=model,
            interleaved=interleaved,
            timeline=timeline,
            step_patterns=step_patterns,
            direction_patterns=direction_patterns,
            groups=tuple(groups),
            warnings=warnings,
        )


class ScoreSession:
    """
    Holds the currently loaded score; later loads supersede earlier ones.

    Every load takes a new generation number. A run whose generation is no
    longer the newest is cancelled at its next stage boundary, and if it
    finishes anyway its result is discarded instead of published.

    Usage:

        session = ScoreSession()
        session.load(data, "song.musicxml")
        session.result.timeline
    """

    def __init__(self, pipeline: ScorePipeline | None = None) -> None:
        self.pipeline = pipeline or ScorePipeline()
        self._lock = threading.Lock()
        self._generation = 0
        self._result: PipelineResult | None = None

    @property
    def result(self) -> PipelineResult | None:
        """The most recently published result, if any."""
        with self._lock:
            return self._result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _publish(self, generation: int, result: PipelineResult) -> PipelineResult | None:
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding result of superseded load %d", generation)
                return None
            self._result = result
            return result

    def _run(self, generation: int, data: bytes, filename: str) -> PipelineResult | None:
        try:
            result = self.pipeline.run(data, filename, is_current=lambda: self._is_current(generation))
        except PipelineCancelled as exc:
            logger.info("Load %d of %s cancelled: %s", generation, filename, exc)
            return None
        return self._publish(generation, result)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, data: bytes, filename: str) -> PipelineResult | None:
        """
        Load a score from bytes already in hand.

        Returns:
            The published result, or None if a newer load superseded this one.

        Raises:
            ScoreImportError: If the bytes are not a readable score.
        """
        return self._run(self._begin(), data, filename)

    async def load_async(
        self,
        fetch: Callable[[], Awaitable[bytes]],
        filename: str,
    ) -> PipelineResult | None:
        """
        Await the score bytes once, then run the pipeline in a worker thread.

        Args:
            fetch:    Coroutine factory returning the raw bytes (file read or download).
            filename: Declared filename of the score.

        Returns:
            The published result, or None if a newer load superseded this one.
        """
        generation = self._begin()
        data = await fetch()
        if not self._is_current(generation):
            logger.info("Load %d of %s superseded while fetching", generation, filename)
            return None
        return await asyncio.to_thread(self._run, generation, data, filename)
