"""
Segment analysis pipeline.

Runs segmentation, merging and per-segment classification for one page.
Segments are classified strictly one after another; a segment whose
backend call or response decoding fails is logged and skipped, so one bad
region never loses the rest of the page.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from config import Config
from core.backends import AnalysisBackend
from core.decoder import decode_response
from core.dto.analysis import AnalysisResult, Exercise, OCRBlock, Segment
from core.errors import AnalysisError, BackendUnavailableError, NoContentError
from core.imaging import crop_region
from core.merger import merge_small_segments
from core.response_parser import sanitize_response
from core.segmenter import CropFn, segment_blocks, whole_page_segment

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class AnalysisOutcome:
    """Result of one analysis run: either a result or the error that stopped it."""

    success: bool
    result: Optional[AnalysisResult] = None
    error: Optional[AnalysisError] = None
    segments_total: int = 0
    segments_failed: int = 0

    @classmethod
    def ok(cls, result: AnalysisResult, segments_total: int = 0, segments_failed: int = 0) -> "AnalysisOutcome":
        return cls(
            success=True,
            result=result,
            segments_total=segments_total,
            segments_failed=segments_failed,
        )

    @classmethod
    def failure(cls, error: AnalysisError) -> "AnalysisOutcome":
        return cls(success=False, error=error)

    @property
    def exercises(self) -> List[Exercise]:
        return list(self.result.exercises) if self.result else []


class SegmentPipeline:
    """
    Orchestrates segment -> merge -> classify -> decode for one page.

    The classifier collaborator must provide:
        classify(region, ocr_blocks, backend) -> str   (coroutine)
        is_available(backend) -> bool                   (plain or coroutine)

    Usage:
        async with BackendClassifier() as classifier:
            pipeline = SegmentPipeline(classifier, decision.backend)
            outcome = await pipeline.analyze(blocks, image, on_progress=report)
    """

    def __init__(
        self,
        classifier: Any,
        backend: AnalysisBackend = AnalysisBackend.ON_DEVICE,
        gap_threshold: Optional[float] = None,
        min_height: Optional[float] = None,
        edge_padding: Optional[float] = None,
        crop: CropFn = crop_region,
    ):
        self.classifier = classifier
        self.backend = backend
        self.gap_threshold = Config.GAP_THRESHOLD if gap_threshold is None else gap_threshold
        self.min_height = Config.MIN_SEGMENT_HEIGHT if min_height is None else min_height
        self.edge_padding = Config.EDGE_PADDING if edge_padding is None else edge_padding
        self.crop = crop

    def build_segments(self, blocks: List[OCRBlock], image: Any = None, segmented: bool = True) -> List[Segment]:
        """Segment and merge a page (or wrap it whole when segmented is False)."""
        if not segmented:
            return whole_page_segment(blocks, image, crop=self.crop)

        segments = segment_blocks(
            blocks,
            image,
            gap_threshold=self.gap_threshold,
            crop=self.crop,
            edge_padding=self.edge_padding,
        )
        return merge_small_segments(
            segments,
            min_height=self.min_height,
            full_image=image,
            crop=self.crop,
        )

    async def _check_available(self, backend: AnalysisBackend) -> Optional[BackendUnavailableError]:
        try:
            available = self.classifier.is_available(backend)
            if inspect.isawaitable(available):
                available = await available
        except Exception as e:
            return BackendUnavailableError(str(backend), str(e))

        if not available:
            return BackendUnavailableError(str(backend), "availability check failed")
        return None

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], completed: int, total: int):
        if on_progress is None:
            return
        try:
            on_progress(completed, total)
        except Exception as e:
            logger.warning(f"[PIPELINE] Progress callback failed: {e}")

    async def analyze(
        self,
        blocks: List[OCRBlock],
        image: Any = None,
        on_progress: Optional[ProgressCallback] = None,
        segmented: bool = True,
        backend: Optional[AnalysisBackend] = None,
    ) -> AnalysisOutcome:
        """Analyze one page.

        Args:
            blocks: OCR blocks of the page
            image: Full page image (None for text-only analysis)
            on_progress: Called with (completed, total) after every segment
            segmented: False to classify the whole page as a single segment
            backend: Backend override for this run

        Returns:
            AnalysisOutcome; fails only with NoContentError or
            BackendUnavailableError
        """
        backend = backend or self.backend

        segments = self.build_segments(blocks, image, segmented=segmented)
        if not segments:
            logger.warning("[PIPELINE] Nothing to analyze")
            return AnalysisOutcome.failure(NoContentError())

        unavailable = await self._check_available(backend)
        if unavailable is not None:
            logger.error(f"[PIPELINE] {unavailable}")
            return AnalysisOutcome.failure(unavailable)

        total = len(segments)
        logger.info(f"[PIPELINE] Analyzing {total} segments with {backend.description}")

        exercises: List[Exercise] = []
        failed = 0
        for index, segment in enumerate(segments, start=1):
            try:
                raw = await self.classifier.classify(segment.region_image, segment.blocks, backend)
                found = decode_response(sanitize_response(raw))
                exercises.extend(found)
                logger.debug(
                    f"[PIPELINE] Segment {index}/{total} "
                    f"[{segment.start_y:.3f}, {segment.end_y:.3f}]: {len(found)} exercises"
                )
            except Exception as e:
                failed += 1
                logger.warning(f"[PIPELINE] Segment {index}/{total} skipped: {type(e).__name__}: {e}")

            self._report(on_progress, index, total)

        result = AnalysisResult.from_exercises(exercises)
        logger.info(
            f"[PIPELINE] Found {len(result)} exercises in {total} segments ({failed} failed)"
        )
        return AnalysisOutcome.ok(result, segments_total=total, segments_failed=failed)
