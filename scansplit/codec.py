"""
Raster decode/encode at the service boundary.

Buffers inside the core are BGR uint8 numpy arrays (OpenCV convention), BGRA
when the source has transparency, which PNG and WebP output keep;
Pillow is used to open whatever encoding arrives, OpenCV to write it back.
"""
import base64, binascii, io, logging
from typing import Any, Dict, Optional
import cv2, numpy as np
from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import TAGS

from .errors import DecodeError, EncodeError
from .orientation import apply_exif_orientation

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 92
_ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")

# mime type -> cv2 encoder extension, JPEG otherwise
_ENCODERS = {
    "image/png": ".png",
    "image/webp": ".webp",
}


def has_alpha(pil_img: Image.Image) -> bool:
    return pil_img.mode in _ALPHA_MODES or "transparency" in pil_img.info


def pil_to_bgr(pil_img: Image.Image) -> np.ndarray:
    """BGR, or BGRA when the source carries transparency."""
    if has_alpha(pil_img):
        rgba = np.array(pil_img.convert("RGBA"))
        return cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    rgb = np.array(pil_img.convert("RGB"))
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def b64decode(data: str) -> bytes:
    """Strict base64 decode; a data: URL prefix is tolerated."""
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Base64 decode error: {e}") from e


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def open_image(data: bytes) -> Image.Image:
    try:
        pil = Image.open(io.BytesIO(data))
        pil.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Image decode error: {e}") from e
    return pil


def decode_image(data: bytes, respect_exif: bool = False) -> np.ndarray:
    """Decode raw image bytes into a BGR buffer, optionally applying EXIF orientation first."""
    pil = open_image(data)
    if respect_exif:
        pil = apply_exif_orientation(pil)
    return pil_to_bgr(pil)


def decode_base64_image(image_base64: str, respect_exif: bool = False) -> np.ndarray:
    return decode_image(b64decode(image_base64), respect_exif=respect_exif)


def encode_image(bgr: np.ndarray, mime_type: str, jpeg_quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode to PNG or WebP when asked for, JPEG for anything else."""
    ext = _ENCODERS.get(mime_type, ".jpg")
    params = [int(cv2.IMWRITE_JPEG_QUALITY), int(jpeg_quality)] if ext == ".jpg" else []
    if ext == ".jpg" and bgr.ndim == 3 and bgr.shape[2] == 4:
        # JPEG has no alpha
        bgr = cv2.cvtColor(bgr, cv2.COLOR_BGRA2BGR)
    try:
        ok, buf = cv2.imencode(ext, bgr, params)
    except cv2.error as e:
        raise EncodeError(f"Image encode error: {e}") from e
    if not ok:
        raise EncodeError(f"Image encode error: {ext} encoder refused {bgr.shape}")
    return buf.tobytes()


def extract_metadata(data: bytes, mime_type: str) -> Dict[str, Any]:
    """Dimensions, colour mode, size and EXIF tags of an encoded image."""
    meta: Dict[str, Any] = {"mime_type": mime_type, "file_size": len(data)}
    pil: Optional[Image.Image] = None
    try:
        pil = open_image(data)
    except DecodeError as e:
        logger.info("Metadata: image not decodable (%s)", e)
    if pil is None:
        return meta

    meta["width"], meta["height"] = pil.size
    meta["color_type"] = pil.mode
    exif = pil.getexif()
    if exif:
        meta["exif"] = {str(TAGS.get(tag, tag)): str(value) for tag, value in exif.items()}
    return meta
