#!/usr/bin/env python3
"""
Debug script to build a synthetic multi-photo scan and run the splitter on it
"""
import io
import json
import numpy as np
from PIL import Image, ImageDraw
from scansplit.cropper import Settings, process_scan_bytes

SCAN_W, SCAN_H = 1600, 1200

def _norm(px, total):
    return int(round(px * 1000 / total))

def create_test_scan():
    """Create a dark scanner bed holding three photos, one of them upside down.

    Returns the scan and a detection dict in the normalized 0-1000 space,
    deliberately a little too generous so the edge trimmer has work to do.
    """
    img = Image.new('RGB', (SCAN_W, SCAN_H), color=(18, 18, 18))
    draw = ImageDraw.Draw(img)
    boxes = []

    photos = [
        ((60, 60, 740, 560), 0, "photo 1"),
        ((860, 60, 1540, 560), 180, "photo 2"),
        ((60, 640, 740, 1140), 0, "photo 3"),
    ]
    for (x0, y0, x1, y1), angle, label in photos:
        draw.rectangle((x0, y0, x1, y1), fill=(205, 190, 160))
        # a "sky" band marks the top of each photo so rotation mistakes are visible
        if angle == 180:
            draw.rectangle((x0, y1 - 120, x1, y1), fill=(90, 140, 210))
        else:
            draw.rectangle((x0, y0, x1, y0 + 120), fill=(90, 140, 210))
        draw.text((x0 + 20, (y0 + y1) // 2), label, fill='black')

        margin = 25
        boxes.append({
            "x": _norm(x0 - margin, SCAN_W), "y": _norm(y0 - margin, SCAN_H),
            "width": _norm(x1 - x0 + 2 * margin, SCAN_W), "height": _norm(y1 - y0 + 2 * margin, SCAN_H),
            "confidence": 0.95, "label": label, "rotation_angle": angle,
            "contour": [[_norm(x0, SCAN_W), _norm(y0, SCAN_H)], [_norm(x1, SCAN_W), _norm(y0, SCAN_H)],
                        [_norm(x1, SCAN_W), _norm(y1, SCAN_H)], [_norm(x0, SCAN_W), _norm(y1, SCAN_H)]],
            "needs_outpaint": False,
        })

    return img, {"photo_count": len(boxes), "bounding_boxes": boxes}

def debug_split(scan, detection, cfg=None):
    """Run the full pipeline and report what came out"""
    cfg = cfg or Settings(debug_mode=True)
    buf = io.BytesIO()
    scan.save(buf, format='PNG')

    print(f"Scan: {scan.size[0]}x{scan.size[1]}, {len(detection['bounding_boxes'])} boxes")
    res = process_scan_bytes(buf.getvalue(), detection, cfg, mime_type="image/png",
                             original_filename="synthetic_scan.png")
    print(f"Result: {res['reason']}")
    for key, value in res.get('meta', {}).items():
        print(f"   {key}: {value}")

    for photo in res.get("photos", []):
        out = f"debug_crop_{photo.index + 1:02d}.png"
        with open(out, "wb") as f:
            f.write(photo.image_bytes)
        crop = np.array(Image.open(io.BytesIO(photo.image_bytes)).convert('RGB'))
        # after correction the blue band must sit at the top
        top_blue = crop[: crop.shape[0] // 8, :, 2].mean()
        bottom_blue = crop[-(crop.shape[0] // 8):, :, 2].mean()
        status = "upright" if top_blue > bottom_blue else "UPSIDE DOWN"
        print(f"   crop {photo.index}: {photo.width}x{photo.height} -> {out} ({status})")
    return res

if __name__ == "__main__":
    print("Creating synthetic scan...")
    scan, detection = create_test_scan()
    scan.save("synthetic_scan.png")
    with open("synthetic_scan.json", "w", encoding="utf-8") as f:
        json.dump(detection, f, indent=2)
    print("Saved synthetic_scan.png and synthetic_scan.json")

    print("\n" + "="*50)
    result = debug_split(scan, detection)
    print("="*50)

    if result.get("ok"):
        print("Success! Crop rectangles drawn to debug_crops.jpg")
    else:
        print(f"Pipeline returned: {result.get('reason')}")
