import logging, os, time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import cv2, numpy as np

from .codec import DEFAULT_JPEG_QUALITY, decode_image, encode_image
from .errors import DecodeError, EncodeError, GeometryError
from .filters import apply_filters
from .geometry import CROP_PADDING_FACTOR, box_to_pixels, reconcile_boxes
from .models import CroppedPhoto, CropResult, DetectionResult, NormalizedBox, SkippedBox, parse_detection
from .orientation import correct_rotation
from .trim import DARK_BRIGHTNESS_THRESHOLD, MAX_TRIM_FRACTION, MIN_DARK_FRACTION, TrimSettings, auto_trim_dark_edges

logger = logging.getLogger(__name__)

DEFAULT_UPSCALE_FACTOR = 2.0


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass
class Settings:
    padding_factor: float = CROP_PADDING_FACTOR        # grow each crop by this share of its size per side
    auto_trim: bool = True                             # strip dark scanner-bed slivers after rotation
    trim_brightness: int = DARK_BRIGHTNESS_THRESHOLD   # mean RGB below this is "dark"
    trim_min_dark: float = MIN_DARK_FRACTION           # a row/col is bed when >= this share is dark
    max_trim_fraction: float = MAX_TRIM_FRACTION       # never trim more than this per side
    crop_filters: Tuple[str, ...] = ()                 # filter chain applied to every crop (empty = none)
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    respect_exif: bool = False                         # boxes refer to raw pixel orientation by default
    upscale_factor: float = DEFAULT_UPSCALE_FACTOR
    image_processing: bool = True                      # False selects the disabled backend
    debug_mode: bool = False                           # write crop rectangles over the scan to disk

    @property
    def trim(self) -> TrimSettings:
        return TrimSettings(
            brightness_threshold=self.trim_brightness,
            min_dark_fraction=self.trim_min_dark,
            max_trim_fraction=self.max_trim_fraction,
        )

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Defaults, with SCANSPLIT_IMAGE_PROCESSING / SCANSPLIT_JPEG_QUALITY read from the environment."""
        cfg = cls(
            image_processing=_env_flag("SCANSPLIT_IMAGE_PROCESSING", True),
            jpeg_quality=int(os.environ.get("SCANSPLIT_JPEG_QUALITY", DEFAULT_JPEG_QUALITY)),
        )
        for k, v in overrides.items():
            setattr(cfg, k, v)
        return cfg


def _draw_debug(bgr: np.ndarray, rects: List[Tuple[int, int, int, int]], path: str = "debug_crops.jpg") -> None:
    debug_img = bgr[:, :, :3].copy()
    for i, (x, y, w, h) in enumerate(rects):
        cv2.rectangle(debug_img, (x, y), (x + w - 1, y + h - 1), (0, 255, 0), 3)
        cv2.putText(debug_img, f"{i}", (x + 8, y + 32), cv2.FONT_HERSHEY_SIMPLEX, 1, (0, 255, 0), 2)
    cv2.imwrite(path, debug_img)
    logger.debug("Saved crop rectangles to %s", path)


def crop_one(bgr: np.ndarray, box: NormalizedBox, index: int, cfg: Settings) -> np.ndarray:
    """Crop, rotate upright and edge-trim a single (already reconciled) box from a decoded scan."""
    H, W = bgr.shape[:2]
    x, y, w, h = box_to_pixels(box, W, H, index=index, padding_factor=cfg.padding_factor)
    region = bgr[y:y + h, x:x + w]
    upright = correct_rotation(region, box.rotation_angle)
    if cfg.auto_trim:
        upright = auto_trim_dark_edges(upright, cfg.trim)
    if cfg.crop_filters:
        upright = apply_filters(upright, cfg.crop_filters)
    return upright


def crop_photos(data: bytes, boxes: Sequence[NormalizedBox], mime_type: str = "image/jpeg",
                original_filename: str = "", cfg: Optional[Settings] = None) -> CropResult:
    """
    Split a decoded scan into one upright, trimmed crop per detected box.

    A scan that cannot be decoded aborts the call with DecodeError. Boxes
    that map to an empty pixel region or fail to re-encode are recorded in
    CropResult.skipped and the remaining boxes are still produced, so a
    result can hold fewer photos than boxes.
    """
    cfg = cfg or Settings()
    bgr = decode_image(data, respect_exif=cfg.respect_exif)
    return crop_scan(bgr, boxes, mime_type, original_filename, cfg)


def crop_scan(bgr: np.ndarray, boxes: Sequence[NormalizedBox], mime_type: str = "image/jpeg",
              original_filename: str = "", cfg: Optional[Settings] = None) -> CropResult:
    """crop_photos on an already decoded BGR scan."""
    cfg = cfg or Settings()
    t0 = time.time()
    H, W = bgr.shape[:2]
    logger.info("Cropping %d boxes from %dx%d scan %s", len(boxes), W, H, original_filename or "")

    for idx, b in enumerate(boxes):
        logger.debug("Box %d: x=%d y=%d w=%d h=%d rotation_angle=%d label=%r",
                     idx, b.x, b.y, b.width, b.height, b.rotation_angle, b.label)

    fixed = reconcile_boxes(list(boxes))
    result = CropResult(original_filename=original_filename)
    rects = []

    for idx, box in enumerate(fixed):
        try:
            crop = crop_one(bgr, box, idx, cfg)
            image_bytes = encode_image(crop, mime_type, cfg.jpeg_quality)
        except GeometryError as e:
            logger.error("Invalid crop dimensions for box %d: %dx%d", idx, e.width, e.height)
            result.skipped.append(SkippedBox(idx, str(e)))
            continue
        except EncodeError as e:
            logger.error("Could not encode crop %d: %s", idx, e)
            result.skipped.append(SkippedBox(idx, str(e)))
            continue

        if cfg.debug_mode:
            rects.append(box_to_pixels(box, W, H, idx, cfg.padding_factor))
        ch, cw = crop.shape[:2]
        result.photos.append(CroppedPhoto(
            index=idx,
            image_bytes=image_bytes,
            mime_type=mime_type,
            width=cw,
            height=ch,
            source_box=box.copy(),
        ))
        logger.info("Cropped photo %d: %dx%d", idx, cw, ch)

    if cfg.debug_mode and rects:
        _draw_debug(bgr, rects)

    result.processing_time_ms = int(1000 * (time.time() - t0))
    logger.info("Crop finished: %d photos, %d skipped, %dms",
                len(result.photos), result.skipped_count, result.processing_time_ms)
    return result


def crop_detection(data: bytes, detection: DetectionResult, mime_type: str = "image/jpeg",
                   original_filename: str = "", cfg: Optional[Settings] = None) -> CropResult:
    """crop_photos over a DetectionResult, recording the scan's pixel size on it once known."""
    cfg = cfg or Settings()
    bgr = decode_image(data, respect_exif=cfg.respect_exif)
    if detection.scan_width <= 0 or detection.scan_height <= 0:
        detection.scan_height, detection.scan_width = bgr.shape[:2]
    return crop_scan(bgr, detection.bounding_boxes, mime_type, original_filename, cfg)


def upscale_image(bgr: np.ndarray, factor: float = DEFAULT_UPSCALE_FACTOR) -> np.ndarray:
    if factor <= 0:
        raise ValueError(f"scale factor must be > 0, got {factor}")
    h, w = bgr.shape[:2]
    new_w, new_h = max(1, int(w * factor)), max(1, int(h * factor))
    logger.info("Upscaling %dx%d -> %dx%d (%sx)", w, h, new_w, new_h, factor)
    return cv2.resize(bgr, (new_w, new_h), interpolation=cv2.INTER_LANCZOS4)


def process_scan_bytes(data: bytes, detection: Union[str, bytes, Dict[str, Any], DetectionResult],
                       cfg: Settings, mime_type: str = "image/jpeg",
                       original_filename: str = "") -> Dict[str, Any]:
    """
    One-shot entry point for the CLI and the UI: returns a result dict
    {"ok", "reason", "photos", "meta"} instead of raising.
    """
    t0 = time.time()
    try:
        det = detection if isinstance(detection, DetectionResult) else parse_detection(detection)
    except ValueError as e:
        return {"ok": False, "reason": f"bad_detection:{e}", "photos": [], "meta": {}}

    if not det.bounding_boxes:
        return {"ok": False, "reason": "no_boxes", "photos": [], "meta": {"photo_count": det.photo_count}}

    try:
        result = crop_detection(data, det, mime_type, original_filename, cfg)
    except DecodeError as e:
        return {"ok": False, "reason": "decode_fail", "photos": [], "meta": {"error": str(e)}}

    return {
        "ok": bool(result.photos),
        "reason": "ok" if result.photos else "all_boxes_skipped",
        "photos": result.photos,
        "meta": {
            "scan_w": det.scan_width,
            "scan_h": det.scan_height,
            "boxes": len(det.bounding_boxes),
            "cropped": len(result.photos),
            "skipped": result.skipped_count,
            "outpaint_hints": sum(1 for b in det.bounding_boxes if b.needs_outpaint),
            "time_ms": int(1000 * (time.time() - t0)),
        },
    }
