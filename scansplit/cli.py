import os, glob, json, logging, time
from multiprocessing import Pool, cpu_count
from typing import Optional, Tuple
from tqdm import tqdm
from .cropper import Settings, process_scan_bytes

MIME_BY_EXT = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png", ".webp": "image/webp",
               ".bmp": "image/jpeg", ".tif": "image/jpeg", ".tiff": "image/jpeg"}
EXT_BY_MIME = {"image/png": ".png", "image/webp": ".webp"}

def is_image(p: str) -> bool:
    ext = os.path.splitext(p.lower())[1]
    return ext in MIME_BY_EXT

def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()

def detection_path(image_path: str, det_dir: Optional[str]) -> str:
    # scan.jpg -> scan.json, next to the scan unless a detections folder is given
    stem = os.path.splitext(os.path.basename(image_path))[0]
    base = det_dir or os.path.dirname(image_path)
    return os.path.join(base, f"{stem}.json")

def _process_one(args: Tuple[str, str, Optional[str], Optional[str], Settings]):
    path, out_dir, det_dir, force_mime, cfg = args
    name = os.path.splitext(os.path.basename(path))[0]
    meta = {"file": path, "ok": False, "reason": "", "crops": [], "time_ms": None}
    t0 = time.time()
    try:
        det_file = detection_path(path, det_dir)
        if not os.path.exists(det_file):
            meta["reason"] = "no_detection"
            return meta
        mime = force_mime or MIME_BY_EXT.get(os.path.splitext(path.lower())[1], "image/jpeg")
        with open(det_file, "r", encoding="utf-8") as f:
            detection = f.read()
        res = process_scan_bytes(_read_bytes(path), detection, cfg, mime_type=mime,
                                 original_filename=os.path.basename(path))
        meta.update(res.get("meta", {}))
        meta["ok"] = bool(res.get("ok", False))
        meta["reason"] = res.get("reason", "")
        if res.get("photos"):
            os.makedirs(out_dir, exist_ok=True)
        for photo in res.get("photos", []):
            out_path = os.path.join(out_dir, f"{name}_{photo.index + 1:02d}{EXT_BY_MIME.get(photo.mime_type, '.jpg')}")
            with open(out_path, "wb") as f:
                f.write(photo.image_bytes)
            meta["crops"].append({"path": out_path, "w": photo.width, "h": photo.height,
                                  "rotation_angle": photo.source_box.rotation_angle})
    except Exception as e:
        # one bad scan must not stop the batch; the reason lands in the log
        meta["ok"] = False; meta["reason"] = f"exception:{e}"
    meta["time_ms"] = int(1000*(time.time()-t0))
    return meta

def build_parser():
    import argparse
    ap = argparse.ArgumentParser(description="Split multi-photo flatbed scans using detection JSON sidecars")
    ap.add_argument("--inp", required=True, help="input folder of scans (recursive)")
    ap.add_argument("--out", required=True, help="output folder for crops")
    ap.add_argument("--detections", default=None, help="folder of <scan>.json detections (default: next to each scan)")
    ap.add_argument("--workers", type=int, default=max(1, cpu_count()//2))
    ap.add_argument("--log", default="process_log.jsonl")
    ap.add_argument("--filters", default="", help="comma separated filter chain applied to each crop, e.g. clahe,sharpen")
    ap.add_argument("--no-trim", action="store_true", help="disable dark scanner-bed trimming")
    ap.add_argument("--max-trim", type=float, default=Settings.max_trim_fraction)
    ap.add_argument("--format", choices=["png", "jpeg", "webp"], default=None, help="force output encoding")
    ap.add_argument("--jpeg-quality", type=int, default=None,
                    help=f"JPEG quality (default: SCANSPLIT_JPEG_QUALITY or {Settings.jpeg_quality})")
    ap.add_argument("--verbose", "-v", action="store_true")
    return ap

def settings_from_args(args) -> Settings:
    overrides = dict(
        auto_trim=not args.no_trim,
        max_trim_fraction=args.max_trim,
        crop_filters=tuple(f.strip() for f in args.filters.split(",") if f.strip()),
    )
    # only an explicit flag beats the environment
    if args.jpeg_quality is not None:
        overrides["jpeg_quality"] = args.jpeg_quality
    return Settings.from_env(**overrides)

def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    cfg = settings_from_args(args)
    force_mime = f"image/{args.format}" if args.format else None
    paths = [p for p in glob.glob(os.path.join(args.inp,"**","*"), recursive=True) if is_image(p)]
    if not paths:
        print("No images found."); return

    os.makedirs(args.out, exist_ok=True)
    work = [(p, args.out, args.detections, force_mime, cfg) for p in paths]
    ok = 0
    with Pool(processes=args.workers) as pool, open(args.log,"w",encoding="utf-8") as f:
        for meta in tqdm(pool.imap_unordered(_process_one, work, chunksize=8), total=len(paths)):
            ok += int(meta["ok"])
            f.write(json.dumps(meta, ensure_ascii=False)+"\n")
    print(f"{ok}/{len(paths)} scans split, log written to {args.log}")

if __name__ == "__main__":
    main()
