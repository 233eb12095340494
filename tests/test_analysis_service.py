"""
Tests for HomeworkAnalyzer (routing + pipeline + metadata).
"""

import sys
import os
import asyncio
import json

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config import Config
from core.analysis_router import AnalysisRouter
from core.analysis_service import HomeworkAnalyzer, with_assignment_context
from core.backends import AnalysisBackend
from core.dto.analysis import OCRBlock

ROUTING_YAML = Config.CONFIG_DIR / "routing.yaml"

SEGMENT_ANSWER = json.dumps(
    {
        "type": "exercise",
        "exercise": {"type": "mathematical", "fullContent": "1 + 1", "startY": 0.4, "endY": 0.45},
    }
)

CLOUD_ANSWER = json.dumps(
    {
        "summary": "One exercise",
        "sections": [{"type": "EXERCISE", "title": "Exercise 4", "content": "Compute 3 x 3", "yStart": 100, "yEnd": 250}],
    }
)


class MockClassifier:
    """Mock classifier answering with a fixed response."""

    def __init__(self, response):
        self.response = response
        self.calls = []

    def is_available(self, backend):
        return True

    async def classify(self, region, ocr_blocks, backend):
        self.calls.append((list(ocr_blocks), backend))
        return self.response


def analyze(analyzer, blocks, **kwargs):
    return asyncio.run(analyzer.analyze_homework(blocks, None, **kwargs))


def test_with_assignment_context():
    blocks = [OCRBlock(text="1) 2 + 2", y=0.5)]
    with_context = with_assignment_context(blocks, "  Worksheet on sums ")

    assert len(with_context) == 2
    assert with_context[0].y == 1.0
    assert with_context[0].text == "Assignment Description:\nWorksheet on sums\n\nAttachment Content:"
    assert with_assignment_context(blocks, None) == blocks
    assert with_assignment_context(blocks, "   ") == blocks
    print("✓ test_with_assignment_context passed")


def test_on_device_run_is_segmented():
    classifier = MockClassifier(SEGMENT_ANSWER)
    router = AnalysisRouter(config_path=ROUTING_YAML, profile="local")
    analyzer = HomeworkAnalyzer(classifier, router=router)

    blocks = [OCRBlock(text="a", y=0.2), OCRBlock(text="b", y=0.8)]
    outcome, metadata = analyze(analyzer, blocks)

    assert outcome.success
    assert len(classifier.calls) == 2
    assert metadata.backend == "on_device"
    assert metadata.service_used == "On-Device Model"
    assert metadata.segments_total == 2
    assert not metadata.requires_subscription
    assert metadata.processing_time_ms >= 0
    print("✓ test_on_device_run_is_segmented passed")


def test_cloud_run_uses_whole_page():
    classifier = MockClassifier(CLOUD_ANSWER)
    router = AnalysisRouter(config_path=ROUTING_YAML, profile="pro")
    analyzer = HomeworkAnalyzer(classifier, router=router, segment_cloud_analysis=False)

    blocks = [OCRBlock(text="a", y=0.2), OCRBlock(text="b", y=0.8)]
    outcome, metadata = analyze(analyzer, blocks, additional_context="Chapter 3")

    assert outcome.success
    assert len(classifier.calls) == 1
    sent_blocks, backend = classifier.calls[0]
    assert backend is AnalysisBackend.CLOUD_SINGLE_AGENT
    assert len(sent_blocks) == 3
    assert any(b.text.startswith("Assignment Description:") for b in sent_blocks)

    exercise = outcome.result.exercises[0]
    assert exercise.exercise_number == "4"
    assert exercise.kind == "calculation"
    assert metadata.service_used == "Cloud (Single Agent)"
    assert metadata.requires_subscription and not metadata.is_fallback
    print("✓ test_cloud_run_uses_whole_page passed")


def test_cloud_run_segmented_when_enabled():
    classifier = MockClassifier(SEGMENT_ANSWER)
    router = AnalysisRouter(config_path=ROUTING_YAML, profile="agentic")
    analyzer = HomeworkAnalyzer(classifier, router=router, segment_cloud_analysis=True)

    blocks = [OCRBlock(text="a", y=0.2), OCRBlock(text="b", y=0.8)]
    outcome, metadata = analyze(analyzer, blocks)

    assert len(classifier.calls) == 2
    assert metadata.service_used == "Cloud (Multi-Agent)"
    print("✓ test_cloud_run_segmented_when_enabled passed")


def test_fallback_reported_in_metadata():
    classifier = MockClassifier(CLOUD_ANSWER)
    router = AnalysisRouter(config_path=ROUTING_YAML, profile="free", on_device_probe=lambda: False)
    analyzer = HomeworkAnalyzer(classifier, router=router, segment_cloud_analysis=False)

    _, metadata = analyze(analyzer, [OCRBlock(text="a", y=0.5)])

    assert metadata.backend == "cloud_single_agent"
    assert metadata.is_fallback
    print("✓ test_fallback_reported_in_metadata passed")


def test_empty_page_fails_with_metadata():
    classifier = MockClassifier(SEGMENT_ANSWER)
    router = AnalysisRouter(config_path=ROUTING_YAML, profile="local")
    analyzer = HomeworkAnalyzer(classifier, router=router)

    outcome, metadata = analyze(analyzer, [])

    assert not outcome.success
    assert metadata.segments_total == 0
    assert metadata.to_dict()["service_used"] == "On-Device Model"
    print("✓ test_empty_page_fails_with_metadata passed")


class AsyncProbeClassifier(MockClassifier):
    """Mock classifier whose on-device check is a coroutine."""

    def __init__(self, response, on_device):
        super().__init__(response)
        self.on_device = on_device
        self.probes = 0

    async def is_on_device_available_async(self):
        self.probes += 1
        await asyncio.sleep(0)
        return self.on_device


def test_default_router_awaits_async_probe():
    classifier = AsyncProbeClassifier(SEGMENT_ANSWER, on_device=True)
    analyzer = HomeworkAnalyzer(classifier)
    analyzer.router.config_path = ROUTING_YAML
    analyzer.router.profile = "free"

    _, metadata = analyze(analyzer, [OCRBlock(text="a", y=0.5)])

    assert classifier.probes == 1
    assert metadata.backend == "on_device"
    print("✓ test_default_router_awaits_async_probe passed")


def test_precomputed_decision_skips_routing():
    classifier = AsyncProbeClassifier(SEGMENT_ANSWER, on_device=False)
    router = AnalysisRouter(config_path=ROUTING_YAML, profile="local")
    analyzer = HomeworkAnalyzer(classifier, router=router)
    decision = router.route()
    router.profile = "bogus"

    _, metadata = analyze(analyzer, [OCRBlock(text="a", y=0.5)], decision=decision)

    assert metadata.backend == "on_device"
    assert classifier.probes == 0
    print("✓ test_precomputed_decision_skips_routing passed")


if __name__ == "__main__":
    test_with_assignment_context()
    test_on_device_run_is_segmented()
    test_cloud_run_uses_whole_page()
    test_cloud_run_segmented_when_enabled()
    test_fallback_reported_in_metadata()
    test_empty_page_fails_with_metadata()
    test_default_router_awaits_async_probe()
    test_precomputed_decision_skips_routing()
    print("\nAll HomeworkAnalyzer tests passed!")
