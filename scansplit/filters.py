"""
Local enhancement filters and the named filter chain.

Every filter takes a BGR uint8 buffer and returns a new buffer of the same
shape. Tile sizes, radii and sigmas are fixed rather than derived from the
image so latency stays predictable on large scans; retune them here, on
purpose, never per call.
"""
import logging
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence
import cv2, numpy as np

logger = logging.getLogger(__name__)

# Tile-based contrast equalizer
CLAHE_GRID = 8                  # tiles per axis
CLAHE_MIN_TILE = 16             # tile edge in px, keeps histograms meaningful on small crops
CLAHE_CLIP_LIMIT = 40           # per-bin cap before redistribution
HIST_BINS = 256

# Edge-preserving denoise (bilateral approximation)
BILATERAL_RADIUS = 3            # 7x7 window, cost grows with radius^2
BILATERAL_SIGMA_SPACE = 3.0
BILATERAL_SIGMA_COLOR = 50.0    # RGB euclidean distance scale
BILATERAL_MIN_SIZE = 5

# Unsharp mask
UNSHARP_SIGMA = 1.0
UNSHARP_MIN_SIZE = 3
SHARPEN_AMOUNTS = {"mild": 0.5, "normal": 1.0, "strong": 2.0}

# Gaussian denoise
DENOISE_SIGMAS = {"mild": 0.8, "normal": 1.5, "strong": 3.0}

DEFAULT_FILTERS = ("clahe", "sharpen")


def luminance(bgr: np.ndarray) -> np.ndarray:
    """Rec.601 luma truncated to an integer 0..255, computed in exact integer arithmetic."""
    b = bgr[:, :, 0].astype(np.int32)
    g = bgr[:, :, 1].astype(np.int32)
    r = bgr[:, :, 2].astype(np.int32)
    return (299 * r + 587 * g + 114 * b) // 1000


def _equalize_tile(tile_lum: np.ndarray) -> np.ndarray:
    """Clip-limited histogram equalization lookup for one tile, returns the remapped luminance."""
    count = tile_lum.size
    hist = np.bincount(tile_lum.ravel(), minlength=HIST_BINS).astype(np.int64)

    excess = int(np.maximum(hist - CLAHE_CLIP_LIMIT, 0).sum())
    hist = np.minimum(hist, CLAHE_CLIP_LIMIT) + excess // HIST_BINS

    cdf = np.cumsum(hist)
    nonzero = cdf[cdf > 0]
    cdf_min = int(nonzero[0]) if nonzero.size else 0
    denom = max(count - cdf_min, 1)

    mapped = (cdf[tile_lum] - cdf_min) / denom * 255.0
    return np.clip(mapped, 0.0, 255.0).astype(np.uint8)


def equalize_tiles(bgr: np.ndarray) -> np.ndarray:
    """
    Adaptive contrast equalization over a fixed grid of independent tiles.

    A box-tile approximation of CLAHE with no blending between tiles. Each
    tile's luminance histogram is clipped, the excess spread evenly over all
    bins, and pixels remapped through the tile CDF. Colour channels are
    scaled by new/old luminance so hue is kept.
    """
    h, w = bgr.shape[:2]
    out = bgr.copy()
    if h == 0 or w == 0:
        return out

    tile_w = max(w // CLAHE_GRID, CLAHE_MIN_TILE)
    tile_h = max(h // CLAHE_GRID, CLAHE_MIN_TILE)
    lum = luminance(bgr)
    color = bgr[:, :, :3].astype(np.float64)

    for ty in range(0, h, tile_h):
        for tx in range(0, w, tile_w):
            ys, xs = slice(ty, min(ty + tile_h, h)), slice(tx, min(tx + tile_w, w))
            tile_lum = lum[ys, xs]
            new_lum = _equalize_tile(tile_lum)

            scale = np.ones(tile_lum.shape, dtype=np.float64)
            lit = tile_lum > 0
            scale[lit] = new_lum[lit] / tile_lum[lit]

            scaled = color[ys, xs] * scale[:, :, None]
            out[ys, xs, :3] = np.clip(scaled, 0.0, 255.0).astype(np.uint8)
    return out


def bilateral_approx(bgr: np.ndarray) -> np.ndarray:
    """
    Edge-preserving smoothing: each pixel becomes the weighted mean of its
    (2r+1)^2 neighbourhood, weights being a spatial Gaussian times a Gaussian
    on RGB distance to the centre pixel. Neighbours outside the image are
    ignored rather than padded.
    """
    h, w = bgr.shape[:2]
    if h < BILATERAL_MIN_SIZE or w < BILATERAL_MIN_SIZE:
        return bgr.copy()

    src = bgr[:, :, :3].astype(np.float64)
    sums = np.zeros_like(src)
    weights = np.zeros((h, w), dtype=np.float64)
    two_ss = 2.0 * BILATERAL_SIGMA_SPACE ** 2
    two_sc = 2.0 * BILATERAL_SIGMA_COLOR ** 2
    r = BILATERAL_RADIUS

    for dy in range(-r, r + 1):
        for dx in range(-r, r + 1):
            # output rows/cols whose neighbour (y+dy, x+dx) lies inside the image
            y0, y1 = max(0, -dy), h - max(0, dy)
            x0, x1 = max(0, -dx), w - max(0, dx)
            center = src[y0:y1, x0:x1]
            neighbor = src[y0 + dy:y1 + dy, x0 + dx:x1 + dx]

            spatial = np.exp(-(dx * dx + dy * dy) / two_ss)
            color_dist = ((center - neighbor) ** 2).sum(axis=2)
            weight = spatial * np.exp(-color_dist / two_sc)

            sums[y0:y1, x0:x1] += neighbor * weight[:, :, None]
            weights[y0:y1, x0:x1] += weight

    out = bgr.copy()
    # the centre pixel always contributes weight 1, so weights > 0 everywhere
    out[:, :, :3] = np.clip(sums / weights[:, :, None], 0.0, 255.0).astype(np.uint8)
    return out


def gaussian_denoise(bgr: np.ndarray, sigma: float) -> np.ndarray:
    return cv2.GaussianBlur(bgr, (0, 0), sigmaX=sigma, sigmaY=sigma)


def unsharp_mask(bgr: np.ndarray, amount: float) -> np.ndarray:
    """original + amount * (original - blurred), per channel, clamped to 0..255."""
    h, w = bgr.shape[:2]
    if h < UNSHARP_MIN_SIZE or w < UNSHARP_MIN_SIZE:
        return bgr.copy()

    blurred = gaussian_denoise(bgr, UNSHARP_SIGMA).astype(np.float64)
    orig = bgr.astype(np.float64)
    out = bgr.copy()
    sharp = orig[:, :, :3] + amount * (orig[:, :, :3] - blurred[:, :, :3])
    out[:, :, :3] = np.clip(sharp, 0.0, 255.0).astype(np.uint8)
    return out


FILTERS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "clahe": equalize_tiles,
    "sharpen": partial(unsharp_mask, amount=SHARPEN_AMOUNTS["normal"]),
    "sharpen_mild": partial(unsharp_mask, amount=SHARPEN_AMOUNTS["mild"]),
    "sharpen_strong": partial(unsharp_mask, amount=SHARPEN_AMOUNTS["strong"]),
    "bilateral": bilateral_approx,
    "denoise": partial(gaussian_denoise, sigma=DENOISE_SIGMAS["normal"]),
    "denoise_mild": partial(gaussian_denoise, sigma=DENOISE_SIGMAS["mild"]),
    "denoise_strong": partial(gaussian_denoise, sigma=DENOISE_SIGMAS["strong"]),
}


def apply_filters(bgr: np.ndarray, names: Optional[Sequence[str]] = None) -> np.ndarray:
    """
    Fold the buffer through each named filter in order.

    None means the default chain (clahe, sharpen). Unknown names are skipped
    so older or newer clients can send filter lists this build does not know.
    """
    active: List[str] = list(DEFAULT_FILTERS if names is None else names)
    current = bgr.copy()
    for name in active:
        fn = FILTERS.get(name)
        if fn is None:
            logger.info("Unknown filter: %s, skipping", name)
            continue
        current = fn(current)
    return current
