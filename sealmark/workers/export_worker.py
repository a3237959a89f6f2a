"""
Export Worker - Async Batch Watermarking
========================================
QThread worker that watermarks a queue of documents.

Workflow:
1. For each source in the queue:
   a. PDF: place per page and embed through the document renderer
   b. Raster image: place on the pixel size and draw at full resolution
   c. Save to the output directory as ``{stem}_watermarked{suffix}``
2. Emit progress signals during processing
3. Emit finished signal with results

A failing document is recorded in its ExportResult; the batch continues.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from sealmark.core.config import WatermarkConfig
from sealmark.core.errors import ExportError
from sealmark.render.base import output_filename
from sealmark.render.document import DocumentRenderer, PageSettings, watermark_pdf
from sealmark.render.preview import PreviewRenderer, load_image, save_image, watermark_image

logger = logging.getLogger(__name__)

PDF_SUFFIXES = (".pdf",)
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp")


@dataclass
class ExportConfig:
    """Complete configuration for a batch export."""
    watermark: WatermarkConfig
    source_paths: List[Path] = field(default_factory=list)
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "output")
    page_settings: PageSettings = field(default_factory=PageSettings)
    font_path: Optional[str] = None


@dataclass
class ExportResult:
    """Result of exporting a single document."""
    source_path: Path
    output_path: Optional[Path] = None
    pages_watermarked: int = 0
    marks_drawn: int = 0
    marks_skipped: int = 0
    success: bool = False
    error_message: str = ""


class ExportWorker(QThread):
    """
    Worker thread for exporting watermarked documents.

    Signals:
        progress(int, int, str): (current, total, current_file_name)
        document_completed(ExportResult): Emitted when each document is done
        finished_all(list[ExportResult]): Emitted when all documents are done
        error(str): Emitted on critical errors
    """

    progress = pyqtSignal(int, int, str)
    document_completed = pyqtSignal(object)
    finished_all = pyqtSignal(list)
    error = pyqtSignal(str)

    def __init__(self, config: ExportConfig, parent=None):
        super().__init__(parent)
        self.config = config
        self._is_cancelled = False
        self._document_renderer: Optional[DocumentRenderer] = None
        self._preview_renderer: Optional[PreviewRenderer] = None

    def cancel(self):
        """Request cancellation; the document in progress still completes."""
        self._is_cancelled = True

    def _setup_renderers(self):
        self._document_renderer = DocumentRenderer(self.config.font_path)
        self._preview_renderer = PreviewRenderer(self.config.font_path)

    def _cleanup_renderers(self):
        if self._preview_renderer is not None:
            self._preview_renderer.clear_cache()
        self._preview_renderer = None
        self._document_renderer = None

    def _export_pdf(self, source_path: Path, output_path: Path, result: ExportResult):
        report = watermark_pdf(
            source_path,
            output_path,
            self.config.watermark,
            page_settings=self.config.page_settings,
            renderer=self._document_renderer
        )
        result.pages_watermarked = len(report.watermarked_pages)
        result.marks_drawn = report.drawn_count
        result.marks_skipped = report.skipped_count

    def _export_image(self, source_path: Path, output_path: Path, result: ExportResult):
        try:
            image = load_image(source_path)
        except OSError as e:
            raise ExportError(f"Cannot read image: {e}") from e

        watermarked, report = watermark_image(image, self.config.watermark, self._preview_renderer)
        try:
            save_image(watermarked, output_path)
        except OSError as e:
            raise ExportError(f"Cannot write image: {e}") from e
        finally:
            image.close()

        result.pages_watermarked = 1
        result.marks_drawn = report.drawn_count
        result.marks_skipped = report.skipped_count

    def _process_single_document(self, source_path: Path) -> ExportResult:
        result = ExportResult(source_path=source_path)
        suffix = source_path.suffix.lower()

        try:
            output_path = self.config.output_dir / output_filename(source_path)
            if suffix in PDF_SUFFIXES:
                self._export_pdf(source_path, output_path, result)
            elif suffix in IMAGE_SUFFIXES:
                self._export_image(source_path, output_path, result)
            else:
                raise ExportError(f"Unsupported file type: {source_path.suffix or source_path.name}")

            result.output_path = output_path
            result.success = True

        except ExportError as e:
            result.error_message = str(e)
            logger.warning("Export failed for %s: %s", source_path.name, e)
        except Exception as e:
            result.error_message = str(e)
            logger.exception("Unexpected error exporting %s", source_path.name)

        return result

    def run(self):
        results: List[ExportResult] = []
        total = len(self.config.source_paths)

        if total == 0:
            self.error.emit("No documents to process")
            self.finished_all.emit(results)
            return

        try:
            self._setup_renderers()

            for idx, source_path in enumerate(self.config.source_paths):
                if self._is_cancelled:
                    break

                source_path = Path(source_path)
                self.progress.emit(idx + 1, total, source_path.name)

                result = self._process_single_document(source_path)
                results.append(result)
                self.document_completed.emit(result)

        except Exception as e:
            logger.exception("Export batch aborted")
            self.error.emit(f"Critical error: {e}")

        finally:
            self._cleanup_renderers()

        self.finished_all.emit(results)
