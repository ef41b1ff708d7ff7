"""
Data model for detections and crops, plus ingest of detector JSON.

All detection geometry lives in a normalized 0-1000 space (top-left origin),
independent of the scan's pixel size until crop time.
"""
import base64, copy, json, logging, math, uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .orientation import snap_angle

logger = logging.getLogger(__name__)

NORM_MAX = 1000                  # normalized axis extent
DEFAULT_CONFIDENCE = 0.9         # detector omitted a confidence
MERGED_CONFIDENCE_CAP = 0.80     # boxes added by a verifier are never trusted more than this


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Point2D:
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class NormalizedBox:
    x: int
    y: int
    width: int
    height: int
    confidence: float = DEFAULT_CONFIDENCE
    label: Optional[str] = None
    rotation_angle: int = 0
    contour: List[Point2D] = field(default_factory=list)
    needs_outpaint: bool = False

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def copy(self) -> "NormalizedBox":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
            "label": self.label,
            "rotation_angle": self.rotation_angle,
            "contour": [p.to_dict() for p in self.contour],
            "needs_outpaint": self.needs_outpaint,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> Optional["NormalizedBox"]:
        """Build a box from detector JSON, or None when a coordinate is missing or not finite."""
        return _parse_box(d)


@dataclass
class DetectionResult:
    bounding_boxes: List[NormalizedBox] = field(default_factory=list)
    photo_count: int = 0
    provider_used: str = ""
    scan_width: int = 0          # 0 = unknown until the scan is decoded
    scan_height: int = 0
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "photo_count": self.photo_count,
            "bounding_boxes": [b.to_dict() for b in self.bounding_boxes],
            "provider_used": self.provider_used,
            "scan_width": self.scan_width,
            "scan_height": self.scan_height,
        }


@dataclass
class CroppedPhoto:
    index: int
    image_bytes: bytes
    mime_type: str
    width: int
    height: int
    source_box: NormalizedBox
    id: str = field(default_factory=_new_id)

    @property
    def image_base64(self) -> str:
        return base64.b64encode(self.image_bytes).decode("ascii")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "index": self.index,
            "image_base64": self.image_base64,
            "mime_type": self.mime_type,
            "width": self.width,
            "height": self.height,
            "source_box": self.source_box.to_dict(),
        }


@dataclass
class SkippedBox:
    index: int
    reason: str


@dataclass
class CropResult:
    original_filename: str
    photos: List[CroppedPhoto] = field(default_factory=list)
    skipped: List[SkippedBox] = field(default_factory=list)
    processing_time_ms: int = 0
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "original_filename": self.original_filename,
            "photos": [p.to_dict() for p in self.photos],
            "skipped_count": self.skipped_count,
            "skipped": [{"index": s.index, "reason": s.reason} for s in self.skipped],
            "processing_time_ms": self.processing_time_ms,
        }


def _as_float(v: Any) -> Optional[float]:
    # bools are not numbers here; json also lets NaN and Infinity through
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    v = float(v)
    return v if math.isfinite(v) else None


def _as_int(v: Any) -> Optional[int]:
    # detectors send both 120 and 120.0
    if isinstance(v, int) and not isinstance(v, bool):
        return v
    f = _as_float(v)
    return None if f is None else int(f)


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def _parse_point(p: Any) -> Optional[Point2D]:
    if isinstance(p, (list, tuple)):
        if len(p) < 2:
            return None
        px, py = _as_float(p[0]), _as_float(p[1])
    elif isinstance(p, dict):
        px, py = _as_float(p.get("x")), _as_float(p.get("y"))
    else:
        return None
    if px is None or py is None:
        return None
    return Point2D(_clamp(px, 0.0, NORM_MAX), _clamp(py, 0.0, NORM_MAX))


def _parse_box(b: Dict[str, Any]) -> Optional[NormalizedBox]:
    if not isinstance(b, dict):
        return None
    x, y = _as_int(b.get("x")), _as_int(b.get("y"))
    w, h = _as_int(b.get("width")), _as_int(b.get("height"))
    if None in (x, y, w, h):
        return None
    x = int(_clamp(x, 0, NORM_MAX))
    y = int(_clamp(y, 0, NORM_MAX))
    if x >= NORM_MAX or y >= NORM_MAX:
        # no room left for a 1-unit box
        return None
    w = int(_clamp(w, 1, NORM_MAX - x))
    h = int(_clamp(h, 1, NORM_MAX - y))

    contour = []
    raw_contour = b.get("contour")
    if isinstance(raw_contour, list):
        contour = [pt for pt in (_parse_point(p) for p in raw_contour) if pt is not None]

    angle = _as_float(b.get("rotation_angle"))
    confidence = _as_float(b.get("confidence"))
    label = b.get("label")
    if label is not None and not isinstance(label, str):
        label = str(label)

    if isinstance(b.get("rotation_reasoning"), str):
        logger.debug("Photo '%s' rotation reasoning: %s -> angle=%s",
                     label or "?", b["rotation_reasoning"], angle)

    return NormalizedBox(
        x=x, y=y, width=w, height=h,
        confidence=_clamp(confidence, 0.0, 1.0) if confidence is not None else DEFAULT_CONFIDENCE,
        label=label,
        rotation_angle=snap_angle(angle or 0.0),
        contour=contour,
        needs_outpaint=b.get("needs_outpaint") is True,
    )


def _strip_fences(text: str) -> str:
    text = text.strip()
    for prefix in ("```json", "```"):
        if text.startswith(prefix):
            text = text[len(prefix):]
            break
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_detection(payload: Union[str, bytes, Dict[str, Any]], provider: str = "") -> DetectionResult:
    """
    Turn a detector's already-structured reply into a DetectionResult.

    Accepts the decoded dict or the raw JSON text (markdown code fences are
    tolerated). Coordinates are clipped into the normalized space, rotation
    angles are snapped to the nearest quarter turn, and boxes missing any of
    x/y/width/height are dropped.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        payload = json.loads(_strip_fences(payload))
    if not isinstance(payload, dict):
        raise ValueError("detection payload must be a JSON object")

    photo_count = _as_int(payload.get("photo_count")) or 0
    raw_boxes = payload.get("bounding_boxes")
    boxes = []
    if isinstance(raw_boxes, list):
        for i, raw in enumerate(raw_boxes):
            box = NormalizedBox.from_dict(raw)
            if box is None:
                logger.warning("Dropping malformed bounding box %d: %r", i, raw)
                continue
            boxes.append(box)

    logger.info("Detected %d photos with %d bounding boxes (%d need outpainting)",
                photo_count, len(boxes), sum(1 for b in boxes if b.needs_outpaint))

    return DetectionResult(
        bounding_boxes=boxes,
        photo_count=max(0, photo_count),
        provider_used=provider,
        scan_width=max(0, _as_int(payload.get("scan_width")) or 0),
        scan_height=max(0, _as_int(payload.get("scan_height")) or 0),
    )


def merge_missing_boxes(result: DetectionResult, missing: List[NormalizedBox]) -> DetectionResult:
    """
    Append boxes a verification pass reported as missed.

    Each merged box is relabelled "photo N" after its new position and its
    confidence is capped, since it came from a second opinion rather than
    the primary detection.
    """
    for box in missing:
        merged = box.copy()
        merged.label = f"photo {len(result.bounding_boxes) + 1}"
        merged.confidence = min(merged.confidence, MERGED_CONFIDENCE_CAP)
        logger.info("Merging missing box: x=%d y=%d w=%d h=%d (conf %.2f)",
                    merged.x, merged.y, merged.width, merged.height, merged.confidence)
        result.bounding_boxes.append(merged)
    result.photo_count = len(result.bounding_boxes)
    return result
