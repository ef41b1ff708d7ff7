"""
Contour-vs-rectangle gap policy.

Decides whether a crop should go to an external outpainting service that
fills the gap between a photo's true outline and its bounding rectangle.
No pixels are synthesized here.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Tuple
import cv2, numpy as np
from PIL import Image

from .codec import b64decode, open_image
from .models import NORM_MAX, CroppedPhoto, NormalizedBox, Point2D
from .orientation import snap_angle

logger = logging.getLogger(__name__)

MIN_CONTOUR_POINTS = 3          # fewer points enclose no area, the gap is undefined

# (image_base64, mime_type, crop-local contour, bbox_width_px, bbox_height_px) -> image_base64
Outpainter = Callable[[str, str, List[Point2D], int, int], str]


@dataclass
class OutpaintDecision:
    eligible: bool
    reason: str
    contour: List[Point2D] = field(default_factory=list)
    bbox_width: int = 0
    bbox_height: int = 0
    gap_fraction: float = 0.0


def _upright(lx: float, ly: float, rotation_angle: int) -> Tuple[float, float]:
    # same quarter turn correct_rotation applies to the pixels
    if rotation_angle == 90:        # undone counter-clockwise
        return ly, NORM_MAX - lx
    if rotation_angle == 180:
        return NORM_MAX - lx, NORM_MAX - ly
    if rotation_angle == 270:       # undone clockwise
        return NORM_MAX - ly, lx
    return lx, ly


def contour_to_crop_space(contour: List[Point2D], box: NormalizedBox) -> List[Point2D]:
    """
    Re-express scan-normalized contour points in the upright crop's 0-1000 space.

    Points are taken relative to the box and then turned with the box's
    rotation correction, so they line up with the pixels of the delivered
    crop. The small crop padding and any edge trim are not accounted for.
    """
    w = max(box.width, 1)
    h = max(box.height, 1)
    angle = snap_angle(box.rotation_angle)
    local = []
    for p in contour:
        lx = min(max((p.x - box.x) / w * NORM_MAX, 0.0), NORM_MAX)
        ly = min(max((p.y - box.y) / h * NORM_MAX, 0.0), NORM_MAX)
        local.append(Point2D(*_upright(lx, ly, angle)))
    return local


def gap_fraction(contour: List[Point2D], box: NormalizedBox) -> float:
    """Share of the box area lying outside the contour polygon (0 for a perfect fit)."""
    if len(contour) < MIN_CONTOUR_POINTS:
        return 0.0
    pts = np.array([[p.x, p.y] for p in contour], dtype=np.float32)
    poly_area = float(cv2.contourArea(pts))
    box_area = float(max(box.width * box.height, 1))
    return min(max(1.0 - poly_area / box_area, 0.0), 1.0)


def decide_outpaint(box: NormalizedBox, crop_width: int, crop_height: int) -> OutpaintDecision:
    if len(box.contour) < MIN_CONTOUR_POINTS:
        return OutpaintDecision(False, "contour_undefined", bbox_width=crop_width, bbox_height=crop_height)

    gap = gap_fraction(box.contour, box)
    if not box.needs_outpaint:
        return OutpaintDecision(False, "not_requested", bbox_width=crop_width,
                                bbox_height=crop_height, gap_fraction=gap)

    return OutpaintDecision(
        eligible=True,
        reason="needs_outpaint",
        contour=contour_to_crop_space(box.contour, box),
        bbox_width=crop_width,
        bbox_height=crop_height,
        gap_fraction=gap,
    )


def outpaint_photo(photo: CroppedPhoto, outpainter: Outpainter) -> CroppedPhoto:
    """
    Forward an eligible crop to the outpainting collaborator.

    Ineligible crops (no usable contour, or not flagged) come back as the
    same object. The collaborator's reply replaces the image in a new
    CroppedPhoto that keeps index and source box.
    """
    decision = decide_outpaint(photo.source_box, photo.width, photo.height)
    if not decision.eligible:
        logger.info("Photo %d not outpainted (%s)", photo.index, decision.reason)
        return photo

    logger.info("Outpainting photo %d: %dx%d, %d contour points, gap %.1f%%",
                photo.index, decision.bbox_width, decision.bbox_height,
                len(decision.contour), 100 * decision.gap_fraction)
    reply = outpainter(photo.image_base64, photo.mime_type, decision.contour,
                       decision.bbox_width, decision.bbox_height)
    return photo_from_reply(photo, reply)


def photo_from_reply(photo: CroppedPhoto, reply: str) -> CroppedPhoto:
    """Wrap an outpainted base64 image as a new CroppedPhoto for the same box."""
    data = b64decode(reply)
    pil = open_image(data)
    w, h = pil.size
    mime = Image.MIME.get(pil.format or "", photo.mime_type)
    return CroppedPhoto(
        index=photo.index,
        image_bytes=data,
        mime_type=mime,
        width=w,
        height=h,
        source_box=photo.source_box.copy(),
    )
