"""Tests for the batch command-line helpers."""

import json
import os

from conftest import make_scan, png_bytes
from scansplit.cli import _process_one, build_parser, detection_path, is_image, settings_from_args
from scansplit.cropper import Settings


class TestHelpers:
    def test_is_image(self):
        assert is_image("a/b/Scan.JPG")
        assert is_image("scan.tiff")
        assert not is_image("scan.json")

    def test_detection_next_to_scan(self):
        assert detection_path(os.path.join("in", "scan.png"), None) == os.path.join("in", "scan.json")

    def test_detection_folder(self):
        assert detection_path(os.path.join("in", "scan.png"), "dets") == os.path.join("dets", "scan.json")


class TestProcessOne:
    def test_writes_crops(self, tmp_path, detection_dict):
        scan = tmp_path / "album.png"
        scan.write_bytes(png_bytes(make_scan()))
        (tmp_path / "album.json").write_text(json.dumps(detection_dict), encoding="utf-8")
        out_dir = tmp_path / "out"

        meta = _process_one((str(scan), str(out_dir), None, None, Settings()))
        assert meta["ok"], meta
        assert sorted(os.listdir(out_dir)) == ["album_01.png", "album_02.png"]
        assert [c["rotation_angle"] for c in meta["crops"]] == [0, 90]

    def test_missing_detection(self, tmp_path):
        scan = tmp_path / "lonely.png"
        scan.write_bytes(png_bytes(make_scan()))
        meta = _process_one((str(scan), str(tmp_path / "out"), None, None, Settings()))
        assert not meta["ok"]
        assert meta["reason"] == "no_detection"

    def test_forced_format(self, tmp_path, detection_dict):
        scan = tmp_path / "album.png"
        scan.write_bytes(png_bytes(make_scan()))
        (tmp_path / "album.json").write_text(json.dumps(detection_dict), encoding="utf-8")
        out_dir = tmp_path / "out"
        meta = _process_one((str(scan), str(out_dir), None, "image/jpeg", Settings()))
        assert meta["ok"]
        assert sorted(os.listdir(out_dir)) == ["album_01.jpg", "album_02.jpg"]


class TestSettingsFromArgs:
    def test_environment_quality_kept_without_flag(self, monkeypatch):
        monkeypatch.setenv("SCANSPLIT_JPEG_QUALITY", "70")
        cfg = settings_from_args(build_parser().parse_args(["--inp", "a", "--out", "b"]))
        assert cfg.jpeg_quality == 70

    def test_flag_beats_environment(self, monkeypatch):
        monkeypatch.setenv("SCANSPLIT_JPEG_QUALITY", "70")
        cfg = settings_from_args(build_parser().parse_args(["--inp", "a", "--out", "b", "--jpeg-quality", "85"]))
        assert cfg.jpeg_quality == 85

    def test_default_quality(self, monkeypatch):
        monkeypatch.delenv("SCANSPLIT_JPEG_QUALITY", raising=False)
        cfg = settings_from_args(build_parser().parse_args(["--inp", "a", "--out", "b"]))
        assert cfg.jpeg_quality == Settings.jpeg_quality

    def test_flags(self):
        args = build_parser().parse_args(["--inp", "a", "--out", "b", "--no-trim", "--filters", "clahe, bilateral"])
        cfg = settings_from_args(args)
        assert cfg.auto_trim is False
        assert cfg.crop_filters == ("clahe", "bilateral")
