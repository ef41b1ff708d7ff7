"""
Box reconciliation and normalized-to-pixel mapping.
"""
import logging
from typing import List, Tuple

from .errors import GeometryError
from .models import NORM_MAX, NormalizedBox

logger = logging.getLogger(__name__)

CROP_PADDING_FACTOR = 0.005     # grow each crop by 0.5% per side to keep photo edges


def _shrink(v: int, amount: int) -> int:
    # saturating subtraction, extents never go negative
    return max(0, v - amount)


def overlap_extents(a: NormalizedBox, b: NormalizedBox) -> Tuple[int, int]:
    """Horizontal and vertical overlap of two boxes, 0 when they do not overlap on that axis."""
    h = max(0, min(a.right, b.right) - max(a.x, b.x))
    v = max(0, min(a.bottom, b.bottom) - max(a.y, b.y))
    return h, v


def reconcile_boxes(boxes: List[NormalizedBox]) -> List[NormalizedBox]:
    """
    Remove positive-area overlaps between detected boxes.

    Every unordered pair is visited once, in index order. When two boxes
    intersect, the axis with the smaller overlap is resolved: the box lying
    further along that axis has its origin advanced by overlap // 2 + 1 and
    loses the same extent, and the other box's far edge is pulled in by that
    amount too. Output order and length match the input; the input boxes are
    not modified.

    This is a single greedy pass. With three or more mutually overlapping
    boxes the outcome depends on input order and a later adjustment can
    re-open an earlier pair; no fixed point is searched for.
    """
    fixed = [b.copy() for b in boxes]
    n = len(fixed)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = fixed[i], fixed[j]
            h_overlap, v_overlap = overlap_extents(a, b)
            if h_overlap <= 0 or v_overlap <= 0:
                continue

            overlap = min(h_overlap, v_overlap)
            shrink = overlap // 2 + 1
            logger.info("Overlap detected between box %d and %d: %d units. Shrinking.", i, j, overlap)

            if h_overlap <= v_overlap:
                near, far = (a, b) if a.x < b.x else (b, a)
                near.width = _shrink(near.width, shrink)
                far.x = min(NORM_MAX, far.x + shrink)
                far.width = _shrink(far.width, shrink)
            else:
                near, far = (a, b) if a.y < b.y else (b, a)
                near.height = _shrink(near.height, shrink)
                far.y = min(NORM_MAX, far.y + shrink)
                far.height = _shrink(far.height, shrink)
    return fixed


def box_to_pixels(box: NormalizedBox, img_w: int, img_h: int, index: int = 0,
                  padding_factor: float = CROP_PADDING_FACTOR) -> Tuple[int, int, int, int]:
    """
    Map a normalized box onto a decoded scan, returning (x, y, w, h) in pixels.

    The crop is padded by padding_factor of its own size on each side and
    clipped to the image. Raises GeometryError for an empty result.
    """
    px = int(box.x * img_w / NORM_MAX)
    py = int(box.y * img_h / NORM_MAX)
    pw = int(box.width * img_w / NORM_MAX)
    ph = int(box.height * img_h / NORM_MAX)

    pad_x = int(pw * padding_factor)
    pad_y = int(ph * padding_factor)
    px = max(0, px - pad_x)
    py = max(0, py - pad_y)
    pw = min(pw + 2 * pad_x, img_w - px)
    ph = min(ph + 2 * pad_y, img_h - py)

    if pw <= 0 or ph <= 0:
        raise GeometryError(index, pw, ph)
    return px, py, pw, ph
