"""
Tests for gap-based segmentation and segment merging.

Tests cover:
- Gap detection and boundary placement
- Full-page coverage of the produced segments
- Edge padding variant
- Merging of thin segments (chained absorption, short last segment)
- Idempotence of the merge pass
- OCR block positions outside the page
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.dto.analysis import OCRBlock, Segment
from core.merger import merge_small_segments
from core.segmenter import segment_blocks, whole_page_segment


def blocks_at(*ys):
    return [OCRBlock(text=f"line at {y}", y=y) for y in ys]


class RecordingCrop:
    """Crop stand-in that records every call."""

    def __init__(self):
        self.calls = []

    def __call__(self, image, start_y, end_y, padding):
        self.calls.append((image, start_y, end_y, padding))
        return ("region", start_y, end_y)


def assert_covers_page(segments):
    assert abs(segments[0].start_y - 0.0) < 1e-9
    assert abs(segments[-1].end_y - 1.0) < 1e-9
    for lower, upper in zip(segments, segments[1:]):
        assert lower.end_y == upper.start_y, "Segments must be contiguous"


# ============================================================================
# Test segment_blocks()
# ============================================================================


def test_segment_blocks_empty():
    """No blocks means no segments."""
    assert segment_blocks([]) == []
    print("✓ test_segment_blocks_empty passed")


def test_segment_blocks_splits_at_gap_midpoints():
    """Gaps above the threshold split at their midpoints."""
    segments = segment_blocks(blocks_at(0.1, 0.12, 0.5, 0.52, 0.9), gap_threshold=0.05)

    assert len(segments) == 3, f"Expected 3 segments, got {len(segments)}"
    assert abs(segments[0].end_y - 0.31) < 1e-9
    assert abs(segments[1].end_y - 0.71) < 1e-9
    assert [len(s.blocks) for s in segments] == [2, 2, 1]
    assert_covers_page(segments)
    print("✓ test_segment_blocks_splits_at_gap_midpoints passed")


def test_segment_blocks_unsorted_input():
    """Input order does not matter; segments come out bottom to top."""
    segments = segment_blocks(blocks_at(0.9, 0.1, 0.5), gap_threshold=0.05)

    assert [s.blocks[0].y for s in segments] == [0.1, 0.5, 0.9]
    assert all(s.start_y < s.end_y for s in segments)
    assert_covers_page(segments)
    print("✓ test_segment_blocks_unsorted_input passed")


def test_segment_blocks_gap_equal_to_threshold_does_not_split():
    """Only gaps strictly larger than the threshold split."""
    segments = segment_blocks(blocks_at(0.25, 0.5), gap_threshold=0.25)

    assert len(segments) == 1
    assert segments[0].start_y == 0.0 and segments[0].end_y == 1.0
    print("✓ test_segment_blocks_gap_equal_to_threshold_does_not_split passed")


def test_segment_blocks_single_block_covers_page():
    """A single block yields one full-page segment."""
    segments = segment_blocks(blocks_at(0.0))

    assert len(segments) == 1
    assert_covers_page(segments)
    print("✓ test_segment_blocks_single_block_covers_page passed")


def test_segment_blocks_edge_padding():
    """With edge padding the outer edges hug the content."""
    segments = segment_blocks(blocks_at(0.2, 0.8), gap_threshold=0.05, edge_padding=0.05)

    assert len(segments) == 2
    assert abs(segments[0].start_y - 0.15) < 1e-9
    assert abs(segments[0].end_y - 0.5) < 1e-9
    assert abs(segments[-1].end_y - 0.85) < 1e-9
    print("✓ test_segment_blocks_edge_padding passed")


def test_segment_blocks_edge_padding_clamped():
    """Padded edges never leave [0, 1]."""
    segments = segment_blocks(blocks_at(0.02, 0.99), gap_threshold=0.05, edge_padding=0.05)

    assert segments[0].start_y == 0.0
    assert segments[-1].end_y == 1.0
    print("✓ test_segment_blocks_edge_padding_clamped passed")


def test_segment_blocks_rejects_non_positive_edge_padding():
    """Zero padding would produce empty segments."""
    try:
        segment_blocks(blocks_at(0.5), edge_padding=0.0)
        assert False, "Should have raised ValueError"
    except ValueError:
        pass
    print("✓ test_segment_blocks_rejects_non_positive_edge_padding passed")


def test_segment_blocks_crops_each_segment():
    """Every segment gets its region cropped without padding."""
    crop = RecordingCrop()
    segments = segment_blocks(blocks_at(0.2, 0.8), image="page", gap_threshold=0.05, crop=crop)

    assert crop.calls == [("page", 0.0, 0.5, 0.0), ("page", 0.5, 1.0, 0.0)]
    assert segments[0].region_image == ("region", 0.0, 0.5)
    print("✓ test_segment_blocks_crops_each_segment passed")


def test_segment_blocks_without_image():
    """Text-only runs carry no region image."""
    segments = segment_blocks(blocks_at(0.3, 0.7), gap_threshold=0.05)

    assert all(s.region_image is None for s in segments)
    print("✓ test_segment_blocks_without_image passed")


def test_whole_page_segment():
    """Whole-page mode wraps every block into [0, 1]."""
    segments = whole_page_segment(blocks_at(0.9, 0.1, 0.5))

    assert len(segments) == 1
    assert (segments[0].start_y, segments[0].end_y) == (0.0, 1.0)
    assert [b.y for b in segments[0].blocks] == [0.1, 0.5, 0.9]
    assert whole_page_segment([]) == []
    print("✓ test_whole_page_segment passed")


# ============================================================================
# Test merge_small_segments()
# ============================================================================


def make_segment(start_y, end_y, label=None):
    label = label or f"{start_y}-{end_y}"
    return Segment(start_y=start_y, end_y=end_y, blocks=[OCRBlock(text=label, y=start_y)])


def test_merge_absorbs_following_segment():
    """A thin segment absorbs its successor."""
    segments = [make_segment(0.0, 0.01), make_segment(0.01, 0.5), make_segment(0.5, 1.0)]
    merged = merge_small_segments(segments, min_height=0.03)

    assert len(merged) == 2
    assert (merged[0].start_y, merged[0].end_y) == (0.0, 0.5)
    assert [b.text for b in merged[0].blocks] == ["0.0-0.01", "0.01-0.5"]
    assert merged[1] is segments[2]
    print("✓ test_merge_absorbs_following_segment passed")


def test_merge_keeps_absorbing_while_still_thin():
    """Absorption continues until the merged segment is tall enough."""
    segments = [
        make_segment(0.0, 0.01),
        make_segment(0.01, 0.02),
        make_segment(0.02, 0.025),
        make_segment(0.025, 1.0),
    ]
    merged = merge_small_segments(segments, min_height=0.03)

    assert len(merged) == 1
    assert (merged[0].start_y, merged[0].end_y) == (0.0, 1.0)
    assert len(merged[0].blocks) == 4
    print("✓ test_merge_keeps_absorbing_while_still_thin passed")


def test_merge_keeps_thin_last_segment():
    """The last segment has no successor and stays as is."""
    segments = [make_segment(0.0, 0.5), make_segment(0.5, 0.99), make_segment(0.99, 1.0)]
    merged = merge_small_segments(segments, min_height=0.03)

    assert merged == segments
    print("✓ test_merge_keeps_thin_last_segment passed")


def test_merge_tall_segments_untouched():
    """Segments above the minimum pass through unchanged."""
    segments = [make_segment(0.0, 0.4), make_segment(0.4, 1.0)]
    crop = RecordingCrop()
    merged = merge_small_segments(segments, min_height=0.03, crop=crop)

    assert merged[0] is segments[0] and merged[1] is segments[1]
    assert crop.calls == []
    print("✓ test_merge_tall_segments_untouched passed")


def test_merge_recrops_with_padding():
    """Merged segments are re-cropped from the full image with padding."""
    segments = [make_segment(0.0, 0.01), make_segment(0.01, 0.5)]
    crop = RecordingCrop()
    merged = merge_small_segments(
        segments, min_height=0.03, full_image="page", crop=crop, padding=0.02
    )

    assert crop.calls == [("page", 0.0, 0.5, 0.02)]
    assert merged[0].region_image == ("region", 0.0, 0.5)
    print("✓ test_merge_recrops_with_padding passed")


def test_merge_only_last_may_be_thin():
    """After merging only the last segment may be below the minimum."""
    layouts = [
        [(0.0, 0.01), (0.01, 0.02), (0.02, 0.3), (0.3, 0.31), (0.31, 1.0)],
        [(0.0, 0.2), (0.2, 0.21), (0.21, 0.22), (0.22, 0.98), (0.98, 1.0)],
        [(0.0, 0.02), (0.02, 0.04), (0.04, 0.06), (0.06, 0.08)],
    ]
    for layout in layouts:
        merged = merge_small_segments([make_segment(a, b) for a, b in layout], min_height=0.03)
        for segment in merged[:-1]:
            assert segment.height >= 0.03, f"Thin segment left in {layout}"
    print("✓ test_merge_only_last_may_be_thin passed")


def test_merge_is_idempotent():
    """Merging an already merged list changes nothing."""
    segments = [
        make_segment(0.0, 0.01),
        make_segment(0.01, 0.3),
        make_segment(0.3, 0.31),
        make_segment(0.31, 0.99),
        make_segment(0.99, 1.0),
    ]
    once = merge_small_segments(segments, min_height=0.03)
    twice = merge_small_segments(once, min_height=0.03)

    assert [(s.start_y, s.end_y) for s in once] == [(s.start_y, s.end_y) for s in twice]
    print("✓ test_merge_is_idempotent passed")


def test_merge_empty():
    assert merge_small_segments([], min_height=0.03) == []
    print("✓ test_merge_empty passed")


# ============================================================================
# Test OCRBlock validation
# ============================================================================


def test_ocr_block_accepts_page_edges():
    assert OCRBlock(text="bottom", y=0.0).y == 0.0
    assert OCRBlock.from_dict({"text": "top", "y": "1"}).y == 1.0
    print("✓ test_ocr_block_accepts_page_edges passed")


def test_ocr_block_rejects_y_outside_page():
    for y in (1.5, -0.1, float("nan")):
        try:
            OCRBlock(text="off page", y=y)
            assert False, f"Should have raised ValueError for y={y}"
        except ValueError as e:
            assert "[0, 1]" in str(e)

    try:
        OCRBlock.from_dict({"text": "x", "y": 1.5})
        assert False, "Should have raised ValueError"
    except ValueError:
        pass
    print("✓ test_ocr_block_rejects_y_outside_page passed")


def run_all_tests():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("Running segmentation tests")
    print("=" * 60 + "\n")

    test_segment_blocks_empty()
    test_segment_blocks_splits_at_gap_midpoints()
    test_segment_blocks_unsorted_input()
    test_segment_blocks_gap_equal_to_threshold_does_not_split()
    test_segment_blocks_single_block_covers_page()
    test_segment_blocks_edge_padding()
    test_segment_blocks_edge_padding_clamped()
    test_segment_blocks_rejects_non_positive_edge_padding()
    test_segment_blocks_crops_each_segment()
    test_segment_blocks_without_image()
    test_whole_page_segment()

    test_merge_absorbs_following_segment()
    test_merge_keeps_absorbing_while_still_thin()
    test_merge_keeps_thin_last_segment()
    test_merge_tall_segments_untouched()
    test_merge_recrops_with_padding()
    test_merge_only_last_may_be_thin()
    test_merge_is_idempotent()
    test_merge_empty()

    test_ocr_block_accepts_page_edges()
    test_ocr_block_rejects_y_outside_page()

    print("\n" + "=" * 60)
    print("All segmentation tests passed!")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    run_all_tests()
