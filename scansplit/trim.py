import logging
from dataclasses import dataclass
import numpy as np

logger = logging.getLogger(__name__)

# Flatbed lids and beds scan as near-black; photo borders rarely average this low.
DARK_BRIGHTNESS_THRESHOLD = 60
# A row/column counts as scanner bed when at least this share of it is dark.
MIN_DARK_FRACTION = 0.55
# Detector boxes are only ever a little too generous, cap each side's trim.
MAX_TRIM_FRACTION = 0.08
MIN_TRIM_SIZE = 20              # below this in either dimension nothing is trimmed


@dataclass
class TrimSettings:
    brightness_threshold: int = DARK_BRIGHTNESS_THRESHOLD
    min_dark_fraction: float = MIN_DARK_FRACTION
    max_trim_fraction: float = MAX_TRIM_FRACTION


def _dark_mask(bgr: np.ndarray, threshold: int) -> np.ndarray:
    # unweighted channel mean, integer division like a per-pixel average
    total = bgr[:, :, :3].astype(np.uint16).sum(axis=2)
    return (total // 3) < threshold


def _advance(fractions: np.ndarray, limit: int, min_dark: float, reverse: bool = False) -> int:
    """Count how many leading (or trailing) lines are dark, stopping at the first bright one or at limit."""
    n = len(fractions)
    steps = 0
    for k in range(limit):
        idx = n - 1 - k if reverse else k
        if fractions[idx] >= min_dark:
            steps += 1
        else:
            break
    return steps


def auto_trim_dark_edges(bgr: np.ndarray, cfg: TrimSettings = None) -> np.ndarray:
    """
    Remove dark scanner-bed strips that a detected box failed to exclude.

    Each side walks inward independently over mostly-dark rows/columns, never
    further than max_trim_fraction of that dimension, then a single crop is
    applied. Images smaller than 20x20 are returned as a copy, and the
    result is never smaller than 1x1.
    """
    cfg = cfg or TrimSettings()
    h, w = bgr.shape[:2]
    if w < MIN_TRIM_SIZE or h < MIN_TRIM_SIZE:
        return bgr.copy()

    dark = _dark_mask(bgr, cfg.brightness_threshold)
    col_frac = dark.mean(axis=0)   # share of dark pixels per column
    row_frac = dark.mean(axis=1)   # share of dark pixels per row

    max_x = int(w * cfg.max_trim_fraction)
    max_y = int(h * cfg.max_trim_fraction)

    left = _advance(col_frac, max_x, cfg.min_dark_fraction)
    right = w - _advance(col_frac, max_x, cfg.min_dark_fraction, reverse=True)
    top = _advance(row_frac, max_y, cfg.min_dark_fraction)
    bottom = h - _advance(row_frac, max_y, cfg.min_dark_fraction, reverse=True)

    new_w = max(1, right - left)
    new_h = max(1, bottom - top)
    if new_w >= w and new_h >= h:
        return bgr.copy()

    logger.info("Auto-trim: %dx%d -> %dx%d (trimmed L:%d R:%d T:%d B:%d)",
                w, h, new_w, new_h, left, w - right, top, h - bottom)
    return bgr[top:top + new_h, left:left + new_w].copy()
