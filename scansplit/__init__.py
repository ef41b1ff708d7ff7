"""Split multi-photo flatbed scans into upright, trimmed, enhanced crops."""
from .cropper import Settings, crop_detection, crop_photos, process_scan_bytes
from .errors import CapabilityUnavailable, DecodeError, EncodeError, GeometryError, ScanSplitError
from .filters import DEFAULT_FILTERS, apply_filters
from .geometry import reconcile_boxes
from .models import CroppedPhoto, CropResult, DetectionResult, NormalizedBox, Point2D, parse_detection
from .orientation import correct_rotation, rotate_image
from .outpaint import decide_outpaint, outpaint_photo
from .trim import auto_trim_dark_edges

__version__ = "0.1.0"
