import streamlit as st
import zipfile, io, json, time
from PIL import Image
from scansplit.cropper import Settings, process_scan_bytes
from scansplit.filters import DEFAULT_FILTERS, FILTERS
from scansplit.models import parse_detection
from scansplit.outpaint import decide_outpaint

st.set_page_config(page_title="Scan Splitter", layout="wide")

st.title("Multi-photo Scan Splitter")
st.caption("Upload a flatbed scan plus the detector's JSON and get one upright, trimmed crop per photo.")

with st.sidebar:
    st.header("Processing settings")

    preset = st.selectbox("Preset", ["Default", "Tight crops", "No trimming", "Custom"])

    if preset == "Tight crops":
        default_pad, default_trim = 0.0, 0.10
    elif preset == "No trimming":
        default_pad, default_trim = 0.005, 0.0
    else:
        default_pad, default_trim = 0.005, 0.08

    padding = st.slider("Crop padding (fraction per side)", 0.0, 0.05, default_pad, 0.001)
    max_trim = st.slider("Max edge trim (fraction per side)", 0.0, 0.20, default_trim, 0.01)
    trim_brightness = st.slider("Dark threshold (mean RGB)", 10, 120, 60, 1)
    trim_min_dark = st.slider("Min dark share per row/column", 0.30, 0.95, 0.55, 0.01)
    out_format = st.selectbox("Output format", ["image/jpeg", "image/png", "image/webp"])
    jpeg_quality = st.slider("JPEG quality", 60, 100, 92, 1)

    st.subheader("Enhancement")
    filters = st.multiselect("Filter chain (applied in order)", list(FILTERS.keys()), default=list(DEFAULT_FILTERS))
    enhance = st.checkbox("Apply filter chain to crops", value=False)

    with st.expander("Debug Options"):
        debug_mode = st.checkbox("Enable debug mode", help="Save the scan with crop rectangles drawn to debug_crops.jpg")

    run_btn = st.button("Split scan", type="primary")

cfg = Settings(
    padding_factor=padding, auto_trim=max_trim > 0, max_trim_fraction=max_trim,
    trim_brightness=int(trim_brightness), trim_min_dark=trim_min_dark,
    jpeg_quality=int(jpeg_quality), crop_filters=tuple(filters) if enhance else (), debug_mode=debug_mode,
)

def create_thumbnail(image_data, max_size=300):
    """Create a thumbnail for preview to avoid UI freezing"""
    try:
        img = Image.open(io.BytesIO(image_data))
        img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        return img
    except (OSError, ValueError):
        return None

scan = st.file_uploader("Upload a scan", type=["jpg","jpeg","png","bmp","tif","tiff","webp"])
det_file = st.file_uploader("Detection JSON", type=["json"])
det_text = st.text_area("...or paste the detection JSON", height=150)

if run_btn and scan and (det_file or det_text.strip()):
    detection_raw = det_file.read().decode("utf-8") if det_file else det_text
    try:
        detection = parse_detection(detection_raw)
    except ValueError as e:
        st.error(f"Could not parse detection JSON: {e}")
        st.stop()

    data = scan.read()
    with st.spinner(f"Cropping {len(detection.bounding_boxes)} boxes..."):
        t0 = time.time()
        res = process_scan_bytes(data, detection, cfg, mime_type=out_format, original_filename=scan.name)
        elapsed = int(1000*(time.time()-t0))

    meta = res.get("meta", {})
    if not res.get("ok"):
        st.error(f"Split failed: {res.get('reason')}")
        with st.expander("Debug info"):
            st.json(meta)
        st.stop()

    photos = res["photos"]
    st.success(f"{len(photos)}/{meta.get('boxes', 0)} photos cropped in {elapsed}ms")
    if meta.get("skipped"):
        st.warning(f"{meta['skipped']} boxes skipped (empty after pixel mapping or not encodable)")

    cols = st.columns(2)
    with cols[0]:
        st.subheader("Scan")
        thumbnail = create_thumbnail(data, max_size=600)
        if thumbnail:
            st.image(thumbnail, caption=f"{scan.name} ({meta.get('scan_w')}x{meta.get('scan_h')})")
        st.json(detection.to_dict(), expanded=False)

    zip_buffer = io.BytesIO()
    with cols[1], zipfile.ZipFile(zip_buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        st.subheader("Crops")
        for photo in photos:
            image_bytes = photo.image_bytes
            box = photo.source_box
            decision = decide_outpaint(box, photo.width, photo.height)
            caption = (f"#{photo.index + 1} {box.label or ''} | {photo.width}x{photo.height} | "
                       f"rotation {box.rotation_angle} | conf {box.confidence:.2f}")
            if decision.eligible:
                caption += f" | outpaint suggested (gap {100 * decision.gap_fraction:.1f}%)"
            st.image(image_bytes, caption=caption, use_container_width=True)
            ext = {"image/png": "png", "image/webp": "webp"}.get(photo.mime_type, "jpg")
            zf.writestr(f"{scan.name.rsplit('.',1)[0]}_{photo.index + 1:02d}.{ext}", image_bytes)
        zf.writestr("detection.json", json.dumps(detection.to_dict(), indent=2))

    st.divider()
    zip_buffer.seek(0)
    st.download_button(
        "Download all crops as ZIP",
        data=zip_buffer,
        file_name="crops.zip",
        mime="application/zip",
        type="primary"
    )
