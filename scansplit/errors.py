class ScanSplitError(Exception):
    """Base class for every error raised by the scan splitting core."""


class DecodeError(ScanSplitError):
    """Malformed base64 or an image encoding Pillow cannot read."""


class GeometryError(ScanSplitError):
    """A box mapped to a non-positive pixel width or height."""

    def __init__(self, index: int, width: int, height: int):
        super().__init__(f"box {index} maps to invalid crop {width}x{height}")
        self.index = index
        self.width = width
        self.height = height


class EncodeError(ScanSplitError):
    """Re-encoding a raster buffer failed."""


class CapabilityUnavailable(ScanSplitError):
    """Image processing was disabled for this deployment."""
