"""
Gap-based page segmentation.

Splits a page into vertical segments wherever consecutive OCR blocks are
separated by more than a gap threshold. No language understanding is
involved: boundaries come from layout alone and classification is left to
the analysis backends.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from config import Config
from core.dto.analysis import OCRBlock, Segment
from core.imaging import crop_region

logger = logging.getLogger(__name__)

CropFn = Callable[[Any, float, float, float], Any]


def _group_by_gaps(blocks: list[OCRBlock], gap_threshold: float) -> tuple[list[list[OCRBlock]], list[float]]:
    """Group sorted blocks, returning the groups and the boundary between each pair."""
    groups: list[list[OCRBlock]] = [[blocks[0]]]
    boundaries: list[float] = []

    for previous, current in zip(blocks, blocks[1:]):
        gap = current.y - previous.y
        if gap > gap_threshold:
            boundaries.append((previous.y + current.y) / 2)
            groups.append([current])
        else:
            groups[-1].append(current)

    return groups, boundaries


def segment_blocks(
    blocks: list[OCRBlock],
    image: Any = None,
    gap_threshold: Optional[float] = None,
    crop: CropFn = crop_region,
    edge_padding: Optional[float] = None,
) -> list[Segment]:
    """
    Split OCR blocks into vertical segments at large gaps.

    Interior boundaries are the midpoints of gaps wider than gap_threshold.
    The first segment starts at 0.0 and the last ends at 1.0, so the
    segments cover the whole page. With edge_padding set, the outer edges
    instead hug the content: max(0, lowest_y - edge_padding) and
    min(1, highest_y + edge_padding).

    Args:
        blocks: OCR blocks in any order
        image: Full page image passed to crop (may be None)
        gap_threshold: Minimum gap that starts a new segment
            (defaults to Config.GAP_THRESHOLD)
        crop: Region cropper, called as crop(image, start_y, end_y, 0.0)
        edge_padding: Optional margin for the outer edges

    Returns:
        Segments ascending by y (bottom of page first); empty for no blocks
    """
    if not blocks:
        logger.warning("[SEGMENT] No OCR blocks to segment")
        return []

    if gap_threshold is None:
        gap_threshold = Config.GAP_THRESHOLD
    if edge_padding is not None and edge_padding <= 0:
        raise ValueError(f"edge_padding must be positive (got {edge_padding})")

    ordered = sorted(blocks, key=lambda b: b.y)
    groups, boundaries = _group_by_gaps(ordered, gap_threshold)

    if edge_padding is None:
        lower_edge, upper_edge = 0.0, 1.0
    else:
        lower_edge = max(0.0, ordered[0].y - edge_padding)
        upper_edge = min(1.0, ordered[-1].y + edge_padding)

    starts = [lower_edge] + boundaries
    ends = boundaries + [upper_edge]

    segments = []
    for group, start_y, end_y in zip(groups, starts, ends):
        segments.append(
            Segment(
                start_y=start_y,
                end_y=end_y,
                blocks=group,
                region_image=crop(image, start_y, end_y, 0.0),
            )
        )

    logger.info(
        f"[SEGMENT] Split {len(blocks)} blocks into {len(segments)} segments "
        f"(gap threshold {gap_threshold:.3f})"
    )
    return segments


def whole_page_segment(blocks: list[OCRBlock], image: Any = None, crop: CropFn = crop_region) -> list[Segment]:
    """Wrap all blocks into a single [0, 1] segment (empty for no blocks)."""
    if not blocks:
        return []
    ordered = sorted(blocks, key=lambda b: b.y)
    return [Segment(start_y=0.0, end_y=1.0, blocks=ordered, region_image=crop(image, 0.0, 1.0, 0.0))]
