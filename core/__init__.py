"""
Homework Analyzer Core - exercise detection for scanned homework pages.

Main components:
- segment_blocks / merge_small_segments: Gap-based page segmentation
- AnalysisRouter: Backend selection (on-device, cloud, multi-agent)
- SegmentPipeline: Per-segment classification with failure isolation
- HomeworkAnalyzer: Routing + pipeline entry point
"""

from core.analysis_router import AnalysisRouter, RoutingConfig, decide_backend
from core.analysis_service import AnalysisMetadata, HomeworkAnalyzer
from core.backends import AnalysisBackend
from core.merger import merge_small_segments
from core.pipeline import AnalysisOutcome, SegmentPipeline
from core.segmenter import segment_blocks

__all__ = [
    "segment_blocks",
    "merge_small_segments",
    "AnalysisBackend",
    "AnalysisRouter",
    "RoutingConfig",
    "decide_backend",
    "SegmentPipeline",
    "AnalysisOutcome",
    "HomeworkAnalyzer",
    "AnalysisMetadata",
]
