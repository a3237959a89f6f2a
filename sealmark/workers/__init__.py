"""
Workers Module - Async Thread Management
========================================
QThread workers that keep rendering off the UI thread.

Components:
- ExportWorker: Batch PDF/image watermarking with progress tracking
- PreviewWorker: Proxy preview generation with debounce
"""

from .export_worker import ExportConfig, ExportResult, ExportWorker, output_filename
from .preview_worker import (
    PreviewConfig, PreviewDebouncer, PreviewManager, PreviewWorker,
    clear_proxy_cache, pil_image_to_qpixmap
)

__all__ = [
    # Export
    "ExportWorker",
    "ExportConfig",
    "ExportResult",
    "output_filename",
    # Preview
    "PreviewWorker",
    "PreviewConfig",
    "PreviewDebouncer",
    "PreviewManager",
    "clear_proxy_cache",
    "pil_image_to_qpixmap",
]
