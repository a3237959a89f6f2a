"""
Render Module - Drawing Placed Instances
========================================
Back ends that consume a placement tuple. None of them decide positions.
"""

from .base import (
    DOCUMENT_SPACE, PAGE_SPACE, DrawnMark, RenderReport, from_document_space,
    output_filename, to_document_space
)
from .document import DocumentRenderer, DocumentReport, PageScope, PageSettings, watermark_pdf
from .preview import PreviewRenderer, load_image, save_image, watermark_image

__all__ = [
    "DOCUMENT_SPACE",
    "PAGE_SPACE",
    "DrawnMark",
    "RenderReport",
    "from_document_space",
    "output_filename",
    "to_document_space",
    "DocumentRenderer",
    "DocumentReport",
    "PageScope",
    "PageSettings",
    "watermark_pdf",
    "PreviewRenderer",
    "load_image",
    "save_image",
    "watermark_image",
]
