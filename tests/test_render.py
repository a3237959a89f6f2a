"""
Tests for the preview (Pillow) and document (reportlab/pypdf) renderers.

Run with: python -m pytest tests/test_render.py -v
Or simply: python tests/test_render.py
"""

import io
import math
import shutil
import sys
import tempfile
import warnings
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest
import reportlab
from PIL import Image
from pypdf import PdfReader, PdfWriter

from sealmark.core import (
    Color, ExportError, InvalidConfigError, Page, WatermarkConfig,
    WatermarkInstance, compute_placement
)
from sealmark.render import (
    DOCUMENT_SPACE, PAGE_SPACE, DocumentRenderer, PageScope, PageSettings,
    PreviewRenderer, from_document_space, load_image, save_image,
    to_document_space, watermark_image, watermark_pdf
)

A4 = Page(595, 842)


def make_config(**overrides) -> WatermarkConfig:
    values = dict(
        text="CONFIDENTIAL", font_size=48, opacity=0.3, rotation=45,
        pattern="diagonal", spacing=150,
    )
    values.update(overrides)
    return WatermarkConfig(**values)


def make_instance(**overrides) -> WatermarkInstance:
    values = dict(
        text="DRAFT", x=100.0, y=100.0, font_size=24.0,
        rotation=30.0, opacity=0.5, color=Color(0, 0, 0),
    )
    values.update(overrides)
    return WatermarkInstance(**values)


def create_test_image(width: int = 400, height: int = 300) -> Image.Image:
    """Simple RGB gradient."""
    xs = np.linspace(0, 255, width, dtype=np.uint8)
    ys = np.linspace(0, 255, height, dtype=np.uint8)
    arr = np.zeros((height, width, 3), dtype=np.uint8)
    arr[:, :, 0] = xs[np.newaxis, :]
    arr[:, :, 1] = ys[:, np.newaxis]
    arr[:, :, 2] = 128
    return Image.fromarray(arr, mode="RGB")


def create_test_pdf(page_count: int = 3, size=(595, 842), rotate: int = 0) -> bytes:
    """Blank multi-page PDF."""
    writer = PdfWriter()
    for _ in range(page_count):
        page = writer.add_blank_page(width=size[0], height=size[1])
        if rotate:
            page.rotate(rotate)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_fonts(page) -> set:
    """BaseFont names referenced by a page's resources."""
    resources = page.get("/Resources")
    if resources is None:
        return set()
    fonts = resources.get_object().get("/Font")
    if fonts is None:
        return set()
    fonts = fonts.get_object()
    return {str(fonts[key].get_object().get("/BaseFont")) for key in fonts}


def ink_geometry(image: Image.Image):
    """
    Ink-weighted centroid and main-axis angle of dark pixels on white.

    The angle is in degrees, counter-clockwise as seen on screen.
    """
    ink = 255.0 - np.asarray(image.convert("L"), dtype=np.float64)
    ys, xs = np.nonzero(ink > 0)
    weights = ink[ys, xs]
    # Pixel (i, j) covers [i, i+1) x [j, j+1)
    xs = xs + 0.5
    ys = ys + 0.5
    cx = np.average(xs, weights=weights)
    cy = np.average(ys, weights=weights)
    cov_xx = np.average((xs - cx) ** 2, weights=weights)
    cov_yy = np.average((ys - cy) ** 2, weights=weights)
    cov_xy = np.average((xs - cx) * (ys - cy), weights=weights)
    # y grows downwards, so negate to get the on-screen angle
    angle = -math.degrees(0.5 * math.atan2(2 * cov_xy, cov_xx - cov_yy))
    return cx, cy, angle


def overlay_transforms(pdf_bytes: bytes) -> list:
    """``cm`` matrices that open each saved graphics state of the overlay."""
    page = PdfReader(io.BytesIO(pdf_bytes)).pages[0]
    operations = page.get_contents().operations
    return [
        [float(value) for value in operands]
        for (_, previous), (operands, operator) in zip(operations, operations[1:])
        if previous == b"q" and operator == b"cm"
    ]


def angle_delta(a: float, b: float) -> float:
    return (a - b + 180.0) % 360.0 - 180.0


def find_ttf_font():
    candidates = (
        Path(reportlab.__file__).parent / "fonts" / "Vera.ttf",
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    )
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


# =============================================================================
# PREVIEW RENDERER
# =============================================================================

def test_preview_draws_every_instance():
    instances = compute_placement(make_config(), A4)
    renderer = PreviewRenderer()
    image, report = renderer.render(instances, renderer.blank_surface(A4))

    assert image.size == (595, 842)
    assert image.mode == "RGBA"
    assert report.coordinate_space == PAGE_SPACE
    assert report.drawn_count == len(instances)
    assert report.skipped_count == 0

    pixels = np.asarray(image.convert("L"))
    assert pixels.min() < 255, "Nothing was drawn"


def test_preview_report_is_scale_independent():
    instances = compute_placement(make_config(pattern="paranoid", random_seed="s"), A4)
    renderer = PreviewRenderer()
    full, full_report = renderer.render(instances, renderer.blank_surface(A4, 1.0), scale=1.0)
    half, half_report = renderer.render(instances, renderer.blank_surface(A4, 0.5), scale=0.5)

    assert half.size == (298, 421)
    assert half_report.marks == full_report.marks


def test_preview_skips_bad_instances():
    instances = [
        make_instance(),
        make_instance(text=""),
        make_instance(x=math.nan),
        make_instance(font_size=0),
        make_instance(x=-40.0, y=-40.0),
    ]
    renderer = PreviewRenderer()
    _, report = renderer.render(instances, renderer.blank_surface(Page(200, 200)))

    assert report.drawn_count == 2
    assert report.skipped_count == 3
    assert [skip.index for skip in report.skipped] == [1, 2, 3]
    assert report.skipped[0].reason == "empty text"


def test_preview_origin_offsets_marks():
    renderer = PreviewRenderer()
    _, report = renderer.render([make_instance()], renderer.blank_surface(A4), origin=(10, 20))
    mark = report.marks[0]
    assert (mark.x, mark.y) == (110.0, 120.0)


def test_preview_ink_matches_instance_geometry():
    renderer = PreviewRenderer()
    page = Page(600, 400)
    for rotation in (30.0, -60.0):
        instance = make_instance(
            text="CONFIDENTIAL", x=300.0, y=200.0, font_size=32.0,
            rotation=rotation, opacity=1.0,
        )
        image, _ = renderer.render([instance], renderer.blank_surface(page))
        cx, cy, angle = ink_geometry(image)

        assert abs(cx - 300.0) < 3.0, f"ink centre x {cx:.1f} for rotation {rotation}"
        assert abs(cy - 200.0) < 3.0, f"ink centre y {cy:.1f} for rotation {rotation}"
        assert abs(angle - rotation) < 2.0, f"drawn angle {angle:.2f}, expected {rotation}"


def test_preview_ink_follows_scale():
    renderer = PreviewRenderer()
    page = Page(300, 240)
    instance = make_instance(text="DRAFT", x=200.0, y=80.0, font_size=40.0, rotation=0.0, opacity=1.0)
    image, _ = renderer.render([instance], renderer.blank_surface(page, 0.5), scale=0.5)
    cx, cy, angle = ink_geometry(image)

    assert image.size == (150, 120)
    assert abs(cx - 100.0) < 3.0
    assert abs(cy - 40.0) < 3.0
    assert abs(angle) < 2.0


def test_watermark_image_keeps_size():
    image = create_test_image()
    result, report = watermark_image(image, make_config(font_size=20, spacing=40))
    assert result.size == image.size
    assert report.drawn_count > 0
    assert np.any(np.asarray(result.convert("RGB")) != np.asarray(image))


def test_save_and_load_image():
    temp_dir = Path(tempfile.mkdtemp())
    try:
        result, _ = watermark_image(create_test_image(), make_config(font_size=20))
        jpeg = save_image(result, temp_dir / "out.jpg")
        png = save_image(result, temp_dir / "nested" / "out.png")

        with Image.open(jpeg) as saved:
            assert saved.mode == "RGB"
        assert load_image(png).size == (400, 300)
        with pytest.raises(FileNotFoundError):
            load_image(temp_dir / "missing.png")
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


# =============================================================================
# DOCUMENT RENDERER
# =============================================================================

def test_document_flips_y_once():
    instance = make_instance(x=100.0, y=30.0)
    pdf_bytes, report = DocumentRenderer().render_overlay([instance], A4)

    assert pdf_bytes.startswith(b"%PDF")
    assert report.coordinate_space == DOCUMENT_SPACE
    mark = report.marks[0]
    assert (mark.x, mark.y) == to_document_space(100.0, 30.0, 842) == (100.0, 812.0)
    assert mark.rotation == 30.0


def test_document_transform_matches_instance():
    instances = [
        make_instance(x=100.0, y=30.0, rotation=30.0),
        make_instance(x=400.0, y=700.0, rotation=-135.0),
        make_instance(x=250.5, y=421.25, rotation=187.9),
    ]
    origin = (10.0, 20.0)
    pdf_bytes, report = DocumentRenderer().render_overlay(instances, A4, origin=origin)
    transforms = overlay_transforms(pdf_bytes)

    assert len(transforms) == report.drawn_count == 3
    for (a, b, c, d, e, f), instance in zip(transforms, instances):
        expected_x, expected_y = to_document_space(instance.x + origin[0], instance.y + origin[1], A4.height)
        assert e == pytest.approx(expected_x, abs=1e-3)
        assert f == pytest.approx(expected_y, abs=1e-3)
        # Pure rotation: [cos sin -sin cos]
        assert (c, d) == pytest.approx((-b, a), abs=1e-5)
        assert abs(angle_delta(math.degrees(math.atan2(b, a)), instance.rotation)) < 1e-3


def test_document_glyph_support():
    renderer = DocumentRenderer()
    assert renderer.supports("CONFIDENTIAL•")
    assert renderer.supports("©®™°·")
    assert not renderer.supports("机密")

    _, report = renderer.render_overlay([make_instance(text="机密"), make_instance()], A4)
    assert report.drawn_count == 1
    assert report.skipped[0].index == 0


def test_document_missing_font_file():
    with pytest.raises(FileNotFoundError):
        DocumentRenderer(font_path="/nonexistent/font.ttf")


def test_document_truetype_font():
    font_path = find_ttf_font()
    if font_path is None:
        pytest.skip("no TrueType font available")

    renderer = DocumentRenderer(font_path=str(font_path))
    assert renderer.font_name == f"Sealmark-{font_path.stem}"
    assert renderer.supports("CONFIDENTIAL")
    assert not renderer.supports("机密")

    instances = [make_instance(), make_instance(text="机密"), make_instance(text="Copy 2", y=300.0)]
    pdf_bytes, report = renderer.render_overlay(instances, A4)
    assert report.drawn_count == 2
    assert [skip.index for skip in report.skipped] == [1]
    assert len(overlay_transforms(pdf_bytes)) == 2

    config = make_config()
    pdf_report = watermark_pdf(create_test_pdf(1), None, config, renderer=renderer)
    assert pdf_report.drawn_count == len(compute_placement(config, A4))


def test_cross_adapter_equivalence():
    for config in (
        make_config(),
        make_config(pattern="grid"),
        make_config(pattern="paranoid", random_seed="fixed-seed-1"),
        make_config(pattern="anti-removal", random_seed="fixed-seed-1"),
    ):
        instances = compute_placement(config, A4)

        preview = PreviewRenderer()
        _, preview_report = preview.render(instances, preview.blank_surface(A4, 0.25), scale=0.25)
        pdf_bytes, document_report = DocumentRenderer().render_overlay(instances, A4)

        assert preview_report.drawn_count == document_report.drawn_count == len(instances)
        preview_marks = preview_report.page_space_tuples(A4.height)
        assert preview_marks == document_report.page_space_tuples(A4.height)

        # What the PDF content stream actually applies, back in page space
        transforms = overlay_transforms(pdf_bytes)
        assert len(transforms) == len(preview_marks)
        for (a, b, _, _, e, f), (x, y, rotation, _) in zip(transforms, preview_marks):
            assert from_document_space(e, f, A4.height) == pytest.approx((x, y), abs=1e-3)
            assert abs(angle_delta(math.degrees(math.atan2(b, a)), rotation)) < 1e-3


# =============================================================================
# PAGE SETTINGS
# =============================================================================

def test_page_settings_scope():
    assert [PageSettings().applies_to(i) for i in range(4)] == [True, True, True, True]
    assert [PageSettings("first").applies_to(i) for i in range(4)] == [True, False, False, False]
    assert [PageSettings(PageScope.ODD).applies_to(i) for i in range(4)] == [True, False, True, False]


def test_page_settings_validation():
    with pytest.raises(InvalidConfigError):
        PageSettings(scope="even")
    with pytest.raises(InvalidConfigError):
        PageSettings(margin=-1)


# =============================================================================
# PDF EXPORT
# =============================================================================

def test_watermark_pdf_all_pages():
    temp_dir = Path(tempfile.mkdtemp())
    try:
        output = temp_dir / "out.pdf"
        report = watermark_pdf(create_test_pdf(), output, make_config())

        assert report.page_count == 3
        assert report.watermarked_pages == [0, 1, 2]
        assert report.drawn_count == 3 * len(compute_placement(make_config(), A4))

        reader = PdfReader(str(output))
        assert len(reader.pages) == 3
        assert all("/Helvetica" in page_fonts(page) for page in reader.pages)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def test_watermark_pdf_odd_pages_to_stream():
    buffer = io.BytesIO()
    report = watermark_pdf(create_test_pdf(3), buffer, make_config(), PageSettings(scope="odd"))

    assert report.output_path is None
    assert report.watermarked_pages == [0, 2]
    assert sorted(report.page_reports) == [0, 2]

    reader = PdfReader(io.BytesIO(buffer.getvalue()))
    fonts = [page_fonts(page) for page in reader.pages]
    assert "/Helvetica" in fonts[0]
    assert "/Helvetica" not in fonts[1]
    assert "/Helvetica" in fonts[2]


def test_watermark_pdf_margin_translates_marks():
    margin = 40.0
    config = make_config(pattern="paranoid", random_seed="margin")
    report = watermark_pdf(create_test_pdf(1), None, config, PageSettings(scope="first", margin=margin))

    page_report = report.page_reports[0]
    inner = compute_placement(config, A4.inset(margin))
    assert page_report.drawn_count == len(inner)
    for (x, y, _, _), inst in zip(page_report.page_space_tuples(A4.height), inner):
        assert x == pytest.approx(inst.x + margin)
        assert y == pytest.approx(inst.y + margin)
        assert margin <= x <= A4.width - margin
        assert margin <= y <= A4.height - margin


def test_watermark_pdf_margin_too_large():
    report = watermark_pdf(create_test_pdf(2), None, make_config(), PageSettings(margin=400))
    assert report.watermarked_pages == []
    assert report.drawn_count == 0


def test_watermark_pdf_rotated_page():
    buffer = io.BytesIO()
    report = watermark_pdf(create_test_pdf(1, rotate=90), buffer, make_config())
    assert report.watermarked_pages == [0]

    page = PdfReader(io.BytesIO(buffer.getvalue())).pages[0]
    assert page.rotation == 0


def test_watermark_pdf_merges_onto_writer_pages():
    source = create_test_pdf(2, rotate=90)
    buffer = io.BytesIO()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        report = watermark_pdf(source, buffer, make_config(), PageSettings(margin=10))

    assert report.watermarked_pages == [0, 1]
    deprecations = [str(w.message) for w in caught if issubclass(w.category, DeprecationWarning)]
    assert not [message for message in deprecations if "pypdf" in message], deprecations

    assert all(page.rotation == 0 for page in PdfReader(io.BytesIO(buffer.getvalue())).pages)


def test_watermark_pdf_unreadable_source():
    with pytest.raises(ExportError):
        watermark_pdf(b"this is not a pdf", None, make_config())
    with pytest.raises(ExportError):
        watermark_pdf(Path(tempfile.gettempdir()) / "sealmark-missing.pdf", None, make_config())


def main():
    """Run all tests."""
    tests = [(name, fn) for name, fn in sorted(globals().items()) if name.startswith("test_")]
    failed = 0
    for name, fn in tests:
        try:
            fn()
            print(f"  {name}: PASS")
        except pytest.skip.Exception as e:
            print(f"  {name}: SKIP {e}")
        except AssertionError as e:
            failed += 1
            print(f"  {name}: FAIL {e}")
    print(f"\nTotal: {len(tests) - failed}/{len(tests)} tests passed")
    return failed == 0


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
