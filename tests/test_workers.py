"""
Test script for worker threads.

Run with: python -m pytest tests/test_workers.py -v
Or simply: python tests/test_workers.py
"""

import gc
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Qt needs no display for these tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PIL import Image
import numpy as np
from pypdf import PdfReader, PdfWriter

from PyQt6.QtCore import QEventLoop, QTimer
from PyQt6.QtGui import QPixmap
from PyQt6.QtWidgets import QApplication

from sealmark.core import Page, WatermarkConfig, compute_placement
from sealmark.render import PageSettings
from sealmark.workers import (
    ExportConfig, ExportResult, ExportWorker, PreviewConfig, PreviewDebouncer,
    PreviewManager, PreviewWorker, clear_proxy_cache, output_filename
)

# Global QApplication instance
_app = None


def get_app():
    """Get or create QApplication instance."""
    global _app
    if _app is None:
        _app = QApplication.instance() or QApplication(sys.argv)
    return _app


def safe_delete(path: Path, max_retries: int = 3, delay: float = 0.5):
    """Remove a file or directory, retrying while another handle closes."""
    for attempt in range(max_retries):
        try:
            gc.collect()
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            return
        except PermissionError:
            if attempt < max_retries - 1:
                time.sleep(delay)
            else:
                print(f"Warning: Could not delete {path}")


def create_test_image(directory: Path, width: int = 1024, height: int = 768) -> Path:
    """Create a gradient PNG in ``directory``."""
    xs = np.linspace(0, 255, width, dtype=np.uint8)
    arr = np.zeros((height, width, 3), dtype=np.uint8)
    arr[:, :, 0] = xs[np.newaxis, :]
    arr[:, :, 2] = 128

    path = directory / "photo.png"
    Image.fromarray(arr, mode="RGB").save(path)
    return path


def create_test_pdf(directory: Path, page_count: int = 2) -> Path:
    writer = PdfWriter()
    for _ in range(page_count):
        writer.add_blank_page(width=595, height=842)
    path = directory / "report.pdf"
    with open(path, "wb") as f:
        writer.write(f)
    return path


def wait_for_signal(signal, trigger=None, timeout_ms: int = 30000):
    """
    Wait for a Qt signal with timeout.

    ``trigger`` (e.g. ``worker.start``) is called after connecting, so fast
    workers cannot emit before anyone is listening.

    Returns:
        The value emitted by the signal, or None if timeout.
    """
    get_app()
    loop = QEventLoop()
    result = [None]

    def on_signal(*args):
        result[0] = args[0] if len(args) == 1 else args
        loop.quit()

    signal.connect(on_signal)
    if trigger is not None:
        trigger()

    timer = QTimer()
    timer.setSingleShot(True)
    timer.timeout.connect(loop.quit)
    timer.start(timeout_ms)

    loop.exec()
    timer.stop()
    signal.disconnect(on_signal)

    return result[0]


CONFIG = WatermarkConfig(
    text="CONFIDENTIAL", font_size=48, opacity=0.3, rotation=45,
    pattern="paranoid", spacing=150, random_seed="fixed-seed-1",
)


# =============================================================================
# PREVIEW
# =============================================================================

def test_preview_worker_blank_page():
    get_app()
    worker = PreviewWorker(PreviewConfig(watermark=CONFIG))
    pixmap = wait_for_signal(worker.preview_ready, worker.start)
    worker.wait()

    assert isinstance(pixmap, QPixmap), "Worker timed out"
    # A4 fitted into 800px: height is the limiting side
    assert pixmap.height() == 800
    assert pixmap.width() == 565
    # Placement ran on the full page, not the proxy
    assert worker.report.drawn_count == len(compute_placement(CONFIG, Page(595, 842)))


def test_preview_worker_image_proxy():
    get_app()
    temp_dir = Path(tempfile.mkdtemp())
    try:
        image_path = create_test_image(temp_dir)
        worker = PreviewWorker(PreviewConfig(watermark=CONFIG, image_path=image_path, max_preview_size=400))
        pixmap = wait_for_signal(worker.preview_ready, worker.start)
        worker.wait()

        assert isinstance(pixmap, QPixmap), "Worker timed out"
        assert (pixmap.width(), pixmap.height()) == (400, 300)
        assert worker.report.drawn_count == len(compute_placement(CONFIG, Page(1024, 768)))
    finally:
        clear_proxy_cache()
        safe_delete(temp_dir)


def test_preview_worker_missing_image():
    get_app()
    worker = PreviewWorker(PreviewConfig(watermark=CONFIG, image_path=Path("/nonexistent/image.png")))
    error = wait_for_signal(worker.preview_error, worker.start)
    worker.wait()

    assert error is not None and "not found" in error


def test_preview_worker_cancelled_before_start():
    get_app()
    worker = PreviewWorker(PreviewConfig(watermark=CONFIG))
    emitted = []
    worker.preview_ready.connect(emitted.append)
    worker.cancel()
    worker.start()
    worker.wait()
    get_app().processEvents()

    assert emitted == []
    assert worker.report is None


def test_debouncer_keeps_last_request():
    get_app()
    debouncer = PreviewDebouncer(delay_ms=20)
    first = PreviewConfig(watermark=CONFIG)
    last = PreviewConfig(watermark=CONFIG, max_preview_size=200)

    debouncer.request_preview(first)
    debouncer.request_preview(last)
    emitted = wait_for_signal(debouncer.preview_requested, timeout_ms=2000)

    assert emitted is last


def test_preview_manager_round_trip():
    get_app()
    manager = PreviewManager(debounce_ms=10)
    started = []
    manager.preview_started.connect(lambda: started.append(True))

    manager.request_preview(PreviewConfig(watermark=CONFIG, max_preview_size=300))
    pixmap = wait_for_signal(manager.preview_updated)
    manager.cancel()

    assert isinstance(pixmap, QPixmap), "Manager timed out"
    assert pixmap.height() == 300
    assert started == [True]


# =============================================================================
# EXPORT
# =============================================================================

def test_output_filename():
    assert output_filename(Path("/a/report.pdf")) == "report_watermarked.pdf"
    assert output_filename(Path("photo.JPG")) == "photo_watermarked.JPG"


def test_export_worker_mixed_batch():
    get_app()
    temp_dir = Path(tempfile.mkdtemp())
    try:
        pdf_path = create_test_pdf(temp_dir)
        image_path = create_test_image(temp_dir)
        text_path = temp_dir / "notes.txt"
        text_path.write_text("plain text")
        output_dir = temp_dir / "out"

        config = ExportConfig(
            watermark=CONFIG,
            source_paths=[pdf_path, image_path, text_path],
            output_dir=output_dir,
            page_settings=PageSettings(scope="first"),
        )
        worker = ExportWorker(config)

        progress_log = []
        completed = []
        worker.progress.connect(lambda c, t, f: progress_log.append((c, t, f)))
        worker.document_completed.connect(completed.append)

        results = wait_for_signal(worker.finished_all, worker.start)
        worker.wait()

        assert results is not None, "Worker timed out"
        assert len(results) == 3
        assert progress_log == [(1, 3, "report.pdf"), (2, 3, "photo.png"), (3, 3, "notes.txt")]
        assert len(completed) == 3

        pdf_result: ExportResult = results[0]
        assert pdf_result.success, pdf_result.error_message
        assert pdf_result.output_path == output_dir / "report_watermarked.pdf"
        assert pdf_result.pages_watermarked == 1
        assert pdf_result.marks_drawn == len(compute_placement(CONFIG, Page(595, 842)))
        assert len(PdfReader(str(pdf_result.output_path)).pages) == 2

        image_result: ExportResult = results[1]
        assert image_result.success, image_result.error_message
        with Image.open(image_result.output_path) as exported:
            assert exported.size == (1024, 768)

        text_result: ExportResult = results[2]
        assert not text_result.success
        assert "Unsupported" in text_result.error_message
        assert text_result.output_path is None
    finally:
        safe_delete(temp_dir)


def test_export_worker_corrupt_pdf_continues():
    get_app()
    temp_dir = Path(tempfile.mkdtemp())
    try:
        broken = temp_dir / "broken.pdf"
        broken.write_bytes(b"not a pdf at all")
        good = create_test_pdf(temp_dir, page_count=1)

        worker = ExportWorker(ExportConfig(
            watermark=CONFIG, source_paths=[broken, good], output_dir=temp_dir / "out"
        ))
        results = wait_for_signal(worker.finished_all, worker.start)
        worker.wait()

        assert results is not None, "Worker timed out"
        assert [r.success for r in results] == [False, True]
        assert "Cannot read document" in results[0].error_message
    finally:
        safe_delete(temp_dir)


def test_export_worker_empty_queue():
    get_app()
    worker = ExportWorker(ExportConfig(watermark=CONFIG))
    errors = []
    worker.error.connect(errors.append)
    results = wait_for_signal(worker.finished_all, worker.start)
    worker.wait()
    get_app().processEvents()

    assert results == []
    assert errors == ["No documents to process"]


def main():
    """Run all tests."""
    print("Sealmark Worker Tests")
    print("=" * 50)

    tests = [(name, fn) for name, fn in globals().items() if name.startswith("test_")]
    results = []
    for name, fn in tests:
        try:
            fn()
            results.append((name, True))
        except AssertionError as e:
            print(f"  {name}: {e}")
            results.append((name, False))

    print("\n" + "=" * 50)
    print("Test Summary")
    print("=" * 50)

    passed = sum(1 for _, r in results if r)
    for name, result in results:
        status = "PASS" if result else "FAIL"
        print(f"  {name}: {status}")

    print(f"\nTotal: {passed}/{len(results)} tests passed")
    return passed == len(results)


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
