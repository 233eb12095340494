"""
HomeworkAnalyzer - entry point for analyzing one homework page.

Combines the analysis router and the segment pipeline:
    1. Take a routing snapshot and pick the backend
    2. Optionally prepend the assignment description to the OCR text
    3. Run the pipeline (per segment on-device, whole page in the cloud)
    4. Return the outcome together with run metadata

Usage:
    async with BackendClassifier() as classifier:
        analyzer = HomeworkAnalyzer(classifier)
        outcome, metadata = await analyzer.analyze_homework(blocks, image)
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from config import Config
from core.analysis_router import AnalysisRouter, RoutingDecision
from core.backends import AnalysisBackend
from core.dto.analysis import OCRBlock
from core.pipeline import AnalysisOutcome, ProgressCallback, SegmentPipeline

logger = logging.getLogger(__name__)


@dataclass
class AnalysisMetadata:
    """Facts about one analysis run.

    Attributes:
        backend: Backend value that handled the run
        service_used: Human-readable service label
        processing_time_ms: Wall time of the run
        segments_total: Segments sent to the backend
        segments_failed: Segments skipped after a backend or decode error
        requires_subscription: Whether the backend needs a cloud subscription
        is_fallback: Cloud analysis forced without an active subscription
    """

    backend: str
    service_used: str
    processing_time_ms: int
    segments_total: int = 0
    segments_failed: int = 0
    requires_subscription: bool = False
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def with_assignment_context(blocks: List[OCRBlock], additional_context: Optional[str]) -> List[OCRBlock]:
    """Prepend the assignment description as a block at the top of the page."""
    if not additional_context or not additional_context.strip():
        return list(blocks)
    header = OCRBlock(
        text=f"Assignment Description:\n{additional_context.strip()}\n\nAttachment Content:",
        y=1.0,
    )
    return [header] + list(blocks)


class HomeworkAnalyzer:
    """Routes a page to a backend and runs the segment pipeline on it."""

    def __init__(
        self,
        classifier: Any,
        router: Optional[AnalysisRouter] = None,
        segment_cloud_analysis: Optional[bool] = None,
    ):
        """Initialize analyzer.

        Args:
            classifier: Backend classifier (see SegmentPipeline)
            router: Analysis router (defaults to environment settings,
                probing the classifier's on-device model)
            segment_cloud_analysis: Segment pages for cloud backends too
                (defaults to Config.SEGMENT_CLOUD_ANALYSIS)
        """
        self.classifier = classifier
        probe = getattr(classifier, "is_on_device_available_async", None) or getattr(
            classifier, "is_on_device_available", None
        )
        self.router = router or AnalysisRouter(on_device_probe=probe)
        self.segment_cloud_analysis = (
            Config.SEGMENT_CLOUD_ANALYSIS if segment_cloud_analysis is None else segment_cloud_analysis
        )

    def _segmented(self, backend: AnalysisBackend) -> bool:
        return backend is AnalysisBackend.ON_DEVICE or self.segment_cloud_analysis

    async def analyze_homework(
        self,
        blocks: List[OCRBlock],
        image: Any = None,
        on_progress: Optional[ProgressCallback] = None,
        additional_context: Optional[str] = None,
        decision: Optional[RoutingDecision] = None,
    ) -> Tuple[AnalysisOutcome, AnalysisMetadata]:
        """Analyze one homework page.

        Args:
            blocks: OCR blocks of the page
            image: Full page image (None for text-only analysis)
            on_progress: Called with (completed, total) after every segment
            additional_context: Assignment description to analyze with the page
            decision: Precomputed routing decision (routes afresh when None)

        Returns:
            Tuple of (AnalysisOutcome, AnalysisMetadata)
        """
        started = time.perf_counter()

        decision = decision or await self.router.route_async()
        backend = decision.backend
        if decision.is_fallback:
            logger.warning(
                f"[FALLBACK] Using {backend.description} without an active subscription; "
                "the request may be rejected"
            )

        page_blocks = with_assignment_context(blocks, additional_context)
        segmented = self._segmented(backend)
        logger.info(
            f"[ROUTING] Analyzing with {backend.description} "
            f"({'per segment' if segmented else 'whole page'})"
        )

        pipeline = SegmentPipeline(self.classifier, backend)
        outcome = await pipeline.analyze(page_blocks, image, on_progress=on_progress, segmented=segmented)

        metadata = AnalysisMetadata(
            backend=backend.value,
            service_used=backend.description,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            segments_total=outcome.segments_total,
            segments_failed=outcome.segments_failed,
            requires_subscription=backend.requires_subscription,
            is_fallback=decision.is_fallback,
        )
        return outcome, metadata
