"""
Preview Worker - Proxy Rendering Off the UI Thread
==================================================

A full page or photo is far larger than the widget showing it, so the
preview draws on a small proxy surface (max 800px by default) instead.

Placement always runs on the ORIGINAL page size. Only the drawing step is
scaled, so the proxy shows exactly the layout the export will produce:
same instance count, same relative positions, same randomized offsets.

The export path (ExportWorker) never uses the proxy.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from PIL import Image, ImageOps
from PyQt6.QtCore import QMutex, QMutexLocker, QObject, QThread, QTimer, pyqtSignal
from PyQt6.QtGui import QImage, QPixmap

from sealmark.core.config import Page, WatermarkConfig
from sealmark.core.placement import compute_placement
from sealmark.render.base import RenderReport
from sealmark.render.preview import PreviewRenderer

logger = logging.getLogger(__name__)

# A4 portrait in points
DEFAULT_PAGE = Page(595.0, 842.0)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class PreviewConfig:
    """
    What to preview.

    With ``image_path`` the watermark is drawn over a proxy of that image;
    otherwise over a blank ``page``.
    """
    watermark: WatermarkConfig
    image_path: Optional[Path] = None
    page: Page = field(default_factory=lambda: DEFAULT_PAGE)
    max_preview_size: int = 800
    font_path: Optional[str] = None


# =============================================================================
# PROXY CACHE
# =============================================================================

# "path:max_size" -> (proxy_image, original_size)
_proxy_cache: Dict[str, Tuple[Image.Image, Tuple[int, int]]] = {}
_proxy_cache_lock = QMutex()

MAX_PROXY_CACHE_SIZE = 10


def proxy_scale(width: float, height: float, max_size: int) -> float:
    """Factor that fits ``width x height`` inside ``max_size``; never upscales."""
    return min(1.0, max_size / width, max_size / height)


def _get_cached_proxy(image_path: Path, max_size: int) -> Tuple[Image.Image, Tuple[int, int]]:
    """
    Get or create a downsampled copy of an image.

    Returns:
        Tuple of (proxy_image_copy, original_size)
    """
    cache_key = f"{image_path}:{max_size}"

    with QMutexLocker(_proxy_cache_lock):
        if cache_key in _proxy_cache:
            proxy, orig_size = _proxy_cache[cache_key]
            return proxy.copy(), orig_size

    with Image.open(image_path) as opened:
        original = ImageOps.exif_transpose(opened)
        orig_size = original.size
        scale = proxy_scale(orig_size[0], orig_size[1], max_size)
        if scale < 1.0:
            new_size = (max(1, int(orig_size[0] * scale)), max(1, int(orig_size[1] * scale)))
            # BILINEAR is plenty for a preview
            proxy = original.resize(new_size, Image.Resampling.BILINEAR)
        else:
            proxy = original.copy()

    if proxy.mode != "RGBA":
        proxy = proxy.convert("RGBA")

    with QMutexLocker(_proxy_cache_lock):
        if len(_proxy_cache) >= MAX_PROXY_CACHE_SIZE:
            oldest_key = next(iter(_proxy_cache))
            del _proxy_cache[oldest_key]
        _proxy_cache[cache_key] = (proxy.copy(), orig_size)

    return proxy, orig_size


def clear_proxy_cache():
    """Clear the proxy image cache (call when images are removed/changed)."""
    with QMutexLocker(_proxy_cache_lock):
        _proxy_cache.clear()


def pil_image_to_qpixmap(pil_image: Image.Image) -> QPixmap:
    """
    Convert PIL Image to QPixmap.

    The QImage is copied so it owns its buffer after the PIL bytes go away.
    """
    if pil_image.mode != "RGBA":
        pil_image = pil_image.convert("RGBA")

    data = pil_image.tobytes("raw", "RGBA")
    qimage = QImage(
        data,
        pil_image.width,
        pil_image.height,
        pil_image.width * 4,
        QImage.Format.Format_RGBA8888
    )
    return QPixmap.fromImage(qimage.copy())


# =============================================================================
# PREVIEW WORKER
# =============================================================================

class PreviewWorker(QThread):
    """
    Generates one preview pixmap.

    SIGNALS:
    - preview_ready(QPixmap): Emitted when the preview is complete
    - preview_error(str): Emitted on error

    After a successful run ``report`` holds the page-space RenderReport.
    """

    preview_ready = pyqtSignal(object)
    preview_error = pyqtSignal(str)

    def __init__(self, config: PreviewConfig, parent=None):
        super().__init__(parent)
        self.config = config
        self.report: Optional[RenderReport] = None
        self._is_cancelled = False

    def cancel(self):
        """Request cancellation of this worker."""
        self._is_cancelled = True

    def _load_surface(self) -> Tuple[Image.Image, Page, float]:
        if self.config.image_path is not None:
            proxy, (orig_w, orig_h) = _get_cached_proxy(
                self.config.image_path, self.config.max_preview_size
            )
            scale = min(proxy.width / orig_w, proxy.height / orig_h)
            return proxy, Page(orig_w, orig_h), scale

        page = self.config.page
        scale = proxy_scale(page.width, page.height, self.config.max_preview_size)
        renderer = PreviewRenderer()
        return renderer.blank_surface(page, scale), page, scale

    def run(self):
        try:
            if self._is_cancelled:
                return

            image_path = self.config.image_path
            if image_path is not None and not Path(image_path).exists():
                self.preview_error.emit(f"Image not found: {image_path}")
                return

            surface, page, scale = self._load_surface()

            if self._is_cancelled:
                return

            instances = compute_placement(self.config.watermark, page)

            if self._is_cancelled:
                return

            renderer = PreviewRenderer(self.config.font_path)
            result, self.report = renderer.render(instances, surface, scale=scale)

            if self._is_cancelled:
                return

            self.preview_ready.emit(pil_image_to_qpixmap(result))

        except Exception as e:
            if not self._is_cancelled:
                logger.exception("Preview failed")
                self.preview_error.emit(f"Preview failed: {e}")


# =============================================================================
# DEBOUNCER
# =============================================================================

class PreviewDebouncer(QObject):
    """
    Collapses bursts of preview requests.

    Only the last request inside the delay window fires.
    """

    preview_requested = pyqtSignal(object)

    def __init__(self, delay_ms: int = 50, parent=None):
        super().__init__(parent)
        self._delay_ms = delay_ms
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_timeout)
        self._pending_config: Optional[PreviewConfig] = None
        self._mutex = QMutex()

    def request_preview(self, config: PreviewConfig):
        with QMutexLocker(self._mutex):
            self._pending_config = config
            self._timer.stop()
            self._timer.start(self._delay_ms)

    def cancel(self):
        """Cancel any pending preview request."""
        with QMutexLocker(self._mutex):
            self._timer.stop()
            self._pending_config = None

    def _on_timeout(self):
        with QMutexLocker(self._mutex):
            config, self._pending_config = self._pending_config, None
        if config is not None:
            self.preview_requested.emit(config)


# =============================================================================
# PREVIEW MANAGER
# =============================================================================

class PreviewManager(QObject):
    """
    Debounces requests and keeps at most one PreviewWorker alive.

    USAGE:
        manager = PreviewManager(debounce_ms=50)
        manager.preview_updated.connect(on_preview_ready)
        manager.request_preview(config)
    """

    preview_updated = pyqtSignal(object)  # QPixmap
    preview_error = pyqtSignal(str)
    preview_started = pyqtSignal()

    def __init__(self, debounce_ms: int = 50, parent=None):
        super().__init__(parent)
        self._debouncer = PreviewDebouncer(debounce_ms, self)
        self._debouncer.preview_requested.connect(self._start_preview_worker)
        self._current_worker: Optional[PreviewWorker] = None
        self._mutex = QMutex()

    def request_preview(self, config: PreviewConfig):
        self._debouncer.request_preview(config)

    def cancel(self):
        """Cancel all pending and in-progress preview work."""
        self._debouncer.cancel()
        self._cancel_current_worker()

    def clear_cache(self):
        clear_proxy_cache()

    def _cancel_current_worker(self):
        with QMutexLocker(self._mutex):
            worker, self._current_worker = self._current_worker, None
        if worker is None:
            return

        worker.cancel()
        try:
            worker.preview_ready.disconnect()
            worker.preview_error.disconnect()
            worker.finished.disconnect()
        except (TypeError, RuntimeError):
            pass  # already disconnected

        # Cancellation is cooperative; every step between checkpoints is short
        worker.wait()
        worker.deleteLater()

    def _start_preview_worker(self, config: PreviewConfig):
        self._cancel_current_worker()
        self.preview_started.emit()

        worker = PreviewWorker(config)
        worker.preview_ready.connect(self._on_preview_ready)
        worker.preview_error.connect(self._on_preview_error)
        worker.finished.connect(self._on_worker_finished)
        with QMutexLocker(self._mutex):
            self._current_worker = worker
        worker.start()

    def _on_preview_ready(self, pixmap: QPixmap):
        self.preview_updated.emit(pixmap)

    def _on_preview_error(self, error: str):
        self.preview_error.emit(error)

    def _on_worker_finished(self):
        with QMutexLocker(self._mutex):
            worker, self._current_worker = self._current_worker, None
        if worker is not None:
            worker.deleteLater()
