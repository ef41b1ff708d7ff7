"""Shared fixtures: a synthetic flatbed scan with two photos on a dark bed."""

import cv2
import numpy as np
import pytest

SCAN_W, SCAN_H = 1000, 500
BED = 10
PHOTO = 200

# pixel rectangles (x0, y0, x1, y1), exclusive ends
PHOTO_RECTS = [(30, 15, 460, 230), (540, 15, 970, 230)]


def make_scan() -> np.ndarray:
    scan = np.full((SCAN_H, SCAN_W, 3), BED, dtype=np.uint8)
    for x0, y0, x1, y1 in PHOTO_RECTS:
        scan[y0:y1, x0:x1] = PHOTO
    return scan


def png_bytes(bgr: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", bgr)
    assert ok
    return buf.tobytes()


@pytest.fixture
def scan_bgr():
    return make_scan()


@pytest.fixture
def scan_png():
    return png_bytes(make_scan())


@pytest.fixture
def detection_dict():
    # boxes a little larger than the photos, the way detectors report them
    return {
        "photo_count": 2,
        "bounding_boxes": [
            {"x": 20, "y": 20, "width": 450, "height": 450, "confidence": 0.97,
             "label": "left", "rotation_angle": 0},
            {"x": 530, "y": 20, "width": 450, "height": 450, "confidence": 0.93,
             "label": "right", "rotation_angle": 90},
        ],
    }
