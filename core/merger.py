"""
Segment merger for gap-based segmentation.

Folds segments that are too thin to hold an exercise into the segment
that follows them. Single forward pass, never looking backward.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from config import Config
from core.dto.analysis import Segment
from core.imaging import crop_region
from core.segmenter import CropFn

logger = logging.getLogger(__name__)


def _combine(run: list[Segment], full_image: Any, crop: CropFn, padding: float) -> Segment:
    start_y = run[0].start_y
    end_y = run[-1].end_y
    blocks = [block for segment in run for block in segment.blocks]
    return Segment(
        start_y=start_y,
        end_y=end_y,
        blocks=blocks,
        region_image=crop(full_image, start_y, end_y, padding),
    )


def merge_small_segments(
    segments: list[Segment],
    min_height: Optional[float] = None,
    full_image: Any = None,
    crop: CropFn = crop_region,
    padding: Optional[float] = None,
) -> list[Segment]:
    """
    Merge segments shorter than min_height into their successors.

    A short segment absorbs the next one, and keeps absorbing while the
    combined height is still below min_height and a successor exists.
    Merged segments are re-cropped from the full image with padding.
    Segments that are tall enough, and a short final segment, pass
    through unchanged.

    Args:
        segments: Segments ascending by y
        min_height: Minimum normalized height (defaults to Config.MIN_SEGMENT_HEIGHT)
        full_image: Full page image used to re-crop merged segments
        crop: Region cropper, called as crop(image, start_y, end_y, padding)
        padding: Re-crop padding (defaults to Config.MERGE_PADDING)

    Returns:
        Merged segments; every segment except possibly the last is at
        least min_height tall
    """
    if min_height is None:
        min_height = Config.MIN_SEGMENT_HEIGHT
    if padding is None:
        padding = Config.MERGE_PADDING

    merged: list[Segment] = []
    i = 0
    while i < len(segments):
        current = segments[i]
        if current.height >= min_height or i == len(segments) - 1:
            merged.append(current)
            i += 1
            continue

        run = [current, segments[i + 1]]
        j = i + 1
        while run[-1].end_y - run[0].start_y < min_height and j + 1 < len(segments):
            j += 1
            run.append(segments[j])

        merged.append(_combine(run, full_image, crop, padding))
        i = j + 1

    if len(merged) != len(segments):
        logger.info(f"[SEGMENT] Merged {len(segments)} segments into {len(merged)}")
    return merged
