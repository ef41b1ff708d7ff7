"""
Processing backends behind the base64-in / base64-out service surface.

Deployments without image processing get DisabledBackend, which exposes
the same methods and raises CapabilityUnavailable from each of them.
"""
import logging, time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .codec import b64decode, b64encode, decode_image, encode_image, extract_metadata
from .cropper import Settings, crop_photos, upscale_image
from .errors import CapabilityUnavailable
from .filters import DEFAULT_FILTERS, apply_filters
from .models import CropResult, NormalizedBox
from .orientation import normalize_degrees, rotate_image
from .trim import auto_trim_dark_edges

logger = logging.getLogger(__name__)


class ProcessingBackend(ABC):
    name = "abstract"
    available = False

    def __init__(self, cfg: Optional[Settings] = None):
        self.cfg = cfg or Settings()

    @abstractmethod
    def crop(self, image_base64: str, mime_type: str, boxes: Sequence[NormalizedBox],
             original_filename: str = "") -> CropResult:
        raise NotImplementedError

    @abstractmethod
    def rotate(self, image_base64: str, mime_type: str, degrees: int) -> str:
        raise NotImplementedError

    @abstractmethod
    def filters(self, image_base64: str, mime_type: str, names: Optional[Sequence[str]] = None) -> str:
        raise NotImplementedError

    @abstractmethod
    def trim(self, image_base64: str, mime_type: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def upscale(self, image_base64: str, mime_type: str, factor: Optional[float] = None) -> str:
        raise NotImplementedError

    @abstractmethod
    def metadata(self, image_base64: str, mime_type: str) -> Dict[str, Any]:
        raise NotImplementedError


class OpenCVBackend(ProcessingBackend):
    name = "opencv"
    available = True

    def _decode(self, image_base64: str):
        return decode_image(b64decode(image_base64), respect_exif=self.cfg.respect_exif)

    def _encode(self, bgr, mime_type: str) -> str:
        return b64encode(encode_image(bgr, mime_type, self.cfg.jpeg_quality))

    def crop(self, image_base64, mime_type, boxes, original_filename=""):
        return crop_photos(b64decode(image_base64), boxes, mime_type, original_filename, self.cfg)

    def rotate(self, image_base64, mime_type, degrees):
        logger.info("Rotate image %s degrees (normalized %s)", degrees, normalize_degrees(degrees))
        return self._encode(rotate_image(self._decode(image_base64), degrees), mime_type)

    def filters(self, image_base64, mime_type, names=None):
        active: List[str] = list(DEFAULT_FILTERS if names is None else names)
        t0 = time.time()
        bgr = self._decode(image_base64)
        out = self._encode(apply_filters(bgr, active), mime_type)
        logger.info("Applied filters %s to %dx%d image in %dms",
                    active, bgr.shape[1], bgr.shape[0], int(1000 * (time.time() - t0)))
        return out

    def trim(self, image_base64, mime_type):
        return self._encode(auto_trim_dark_edges(self._decode(image_base64), self.cfg.trim), mime_type)

    def upscale(self, image_base64, mime_type, factor=None):
        factor = self.cfg.upscale_factor if factor is None else factor
        return self._encode(upscale_image(self._decode(image_base64), factor), mime_type)

    def metadata(self, image_base64, mime_type):
        return extract_metadata(b64decode(image_base64), mime_type)


class DisabledBackend(ProcessingBackend):
    name = "disabled"
    available = False

    def _unavailable(self, op: str):
        raise CapabilityUnavailable(f"Image processing is not enabled ({op})")

    def crop(self, image_base64, mime_type, boxes, original_filename=""):
        self._unavailable("crop")

    def rotate(self, image_base64, mime_type, degrees):
        self._unavailable("rotate")

    def filters(self, image_base64, mime_type, names=None):
        self._unavailable("filters")

    def trim(self, image_base64, mime_type):
        self._unavailable("trim")

    def upscale(self, image_base64, mime_type, factor=None):
        self._unavailable("upscale")

    def metadata(self, image_base64, mime_type):
        self._unavailable("metadata")


def get_backend(cfg: Optional[Settings] = None) -> ProcessingBackend:
    """Pick the backend for this configuration (Settings.from_env() when none is given)."""
    cfg = cfg or Settings.from_env()
    backend = OpenCVBackend(cfg) if cfg.image_processing else DisabledBackend(cfg)
    logger.debug("Using %s processing backend", backend.name)
    return backend
