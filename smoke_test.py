#!/usr/bin/env python3
"""
Smoke test script for the scan splitting pipeline.
Runs every scan that has a detection sidecar through a few settings presets.
"""
import sys
import time
from pathlib import Path
from scansplit.cropper import Settings, process_scan_bytes

def test_with_settings(image_path, detection_path, **kwargs):
    """Split one scan with custom settings"""
    print(f"\nTesting: {image_path}")
    print(f"Settings: {kwargs}")

    image_data = Path(image_path).read_bytes()
    detection = Path(detection_path).read_text(encoding="utf-8")
    cfg = Settings(**kwargs)

    start_time = time.time()
    result = process_scan_bytes(image_data, detection, cfg, original_filename=Path(image_path).name)
    elapsed = time.time() - start_time

    print(f"Processing time: {elapsed:.2f}s")
    print(f"Result: {result['reason']}")
    for key, value in result.get('meta', {}).items():
        print(f"   {key}: {value:.3f}" if isinstance(value, float) else f"   {key}: {value}")

    if result.get('ok'):
        base_name = Path(image_path).stem
        for photo in result["photos"]:
            output_path = f"smoke_test_{base_name}_{photo.index + 1:02d}.jpg"
            Path(output_path).write_bytes(photo.image_bytes)
            print(f"   saved {photo.width}x{photo.height} -> {output_path}")
        return True
    return False

def run_smoke_tests():
    """Run every scan/sidecar pair through the presets"""
    print("Starting scan splitter smoke tests")
    print("=" * 60)

    test_cases = [
        {"name": "Default Settings", "settings": {}},
        {"name": "No Trim", "settings": {"auto_trim": False}},
        {"name": "Aggressive Trim", "settings": {"max_trim_fraction": 0.15, "trim_min_dark": 0.4}},
        {"name": "Enhanced", "settings": {"crop_filters": ("clahe", "sharpen_mild")}},
        {"name": "Denoised", "settings": {"crop_filters": ("bilateral",)}},
    ]

    pairs = []
    for pattern in ["*.jpg", "*.jpeg", "*.png"]:
        for img in Path(".").glob(pattern):
            sidecar = img.with_suffix(".json")
            if sidecar.exists():
                pairs.append((img, sidecar))

    if not pairs:
        print("No scan/detection pairs found. Creating a synthetic scan...")
        from debug_cropper import create_test_scan
        import json
        scan, detection = create_test_scan()
        scan.save("synthetic_scan.png")
        Path("synthetic_scan.json").write_text(json.dumps(detection), encoding="utf-8")
        pairs = [(Path("synthetic_scan.png"), Path("synthetic_scan.json"))]

    total_tests = 0
    passed_tests = 0
    for image_path, detection_path in pairs[:2]:
        for test_case in test_cases:
            print(f"\nTest Case: {test_case['name']}")
            print("-" * 40)
            total_tests += 1
            if test_with_settings(str(image_path), str(detection_path), **test_case['settings']):
                passed_tests += 1

    print(f"\n{'='*60}")
    print(f"Passed: {passed_tests}/{total_tests}")
    print(f"Success Rate: {100 * passed_tests / total_tests:.1f}%")

if __name__ == "__main__":
    if len(sys.argv) > 2:
        # smoke_test.py scan.jpg scan.json [key=value ...]
        settings = {}
        for arg in sys.argv[3:]:
            if "=" in arg:
                key, value = arg.split("=", 1)
                try:
                    settings[key] = float(value) if "." in value else int(value)
                except ValueError:
                    settings[key] = value
        test_with_settings(sys.argv[1], sys.argv[2], **settings)
    else:
        run_smoke_tests()
