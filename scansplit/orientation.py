"""
Quarter-turn rotation handling.

A detected rotation_angle is the clockwise rotation already present in the
scan, so the corrective transform is its inverse.
"""
import logging, math
import cv2, numpy as np
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

ROTATION_BUCKETS = (0, 90, 180, 270)
# Detectors report free-form angles; anything within half a quarter turn of a
# canonical value is treated as that value.
ROTATION_TOLERANCE_DEG = 45.0

# detected clockwise angle -> cv2 rotate code that undoes it
_CORRECTIONS = {
    90: cv2.ROTATE_90_COUNTERCLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_CLOCKWISE,
}

# requested clockwise angle -> cv2 rotate code
_CLOCKWISE = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def normalize_degrees(degrees: float) -> float:
    return ((degrees % 360) + 360) % 360


def snap_angle(degrees: float) -> int:
    """
    Snap any angle to 90/180/270 when strictly within 45 degrees of it, else 0.

    The angle is first normalized into [0, 360). Exact half-way values
    (45, 135, 225, 315) match no bucket and are left uncorrected, so
    315..360 also ends up at 0. NaN and infinities count as 0.
    """
    degrees = float(degrees)
    if not math.isfinite(degrees):
        return 0
    a = normalize_degrees(degrees)
    for bucket in ROTATION_BUCKETS[1:]:
        if abs(a - bucket) < ROTATION_TOLERANCE_DEG:
            return bucket
    return 0


def correct_rotation(img: np.ndarray, rotation_angle: float) -> np.ndarray:
    """Return an upright copy of a crop whose content was detected rotated clockwise by rotation_angle."""
    detected = snap_angle(rotation_angle)
    code = _CORRECTIONS.get(detected)
    if code is None:
        return img.copy()
    logger.debug("Detected %d deg clockwise -> applying inverse rotation", detected)
    return cv2.rotate(img, code)


def rotate_image(img: np.ndarray, degrees: int) -> np.ndarray:
    """Rotate clockwise by a user-requested angle snapped to a quarter turn."""
    snapped = snap_angle(degrees)
    code = _CLOCKWISE.get(snapped)
    if code is None:
        return img.copy()
    return cv2.rotate(img, code)


def apply_exif_orientation(pil_img: Image.Image) -> Image.Image:
    # respect EXIF orientation (mirrored variants included)
    return ImageOps.exif_transpose(pil_img)
