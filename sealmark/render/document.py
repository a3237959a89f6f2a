"""
Document Renderer
=================
Embeds placed instances into PDF pages.

Each page gets a one-page reportlab overlay the size of the page, drawn in
PDF user space, which pypdf then merges on top of the original content.
Positions go through ``to_document_space`` exactly once; rotation is
passed through unchanged.
"""

import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence, Tuple, Union

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas as pdf_canvas

from sealmark.core.config import Page, WatermarkConfig, WatermarkInstance
from sealmark.core.errors import ExportError, InvalidConfigError, RenderSkip
from sealmark.core.placement import Placement, compute_placement

from .base import DOCUMENT_SPACE, DrawnMark, RenderReport, check_instance, to_document_space

logger = logging.getLogger(__name__)

DEFAULT_FONT = "Helvetica"
# Standard Type 1 fonts in reportlab are WinAnsi encoded
STANDARD_FONT_ENCODING = "cp1252"
# Baseline offset that puts the visual centre of a capital line at y=0
BASELINE_SHIFT = 0.35

Source = Union[str, Path, bytes, BinaryIO]


class PageScope(str, Enum):
    """Which pages of a document receive the watermark."""
    ALL = "all"
    FIRST = "first"
    ODD = "odd"


@dataclass(frozen=True)
class PageSettings:
    """Page selection and inset applied by the exporter."""
    scope: PageScope = PageScope.ALL
    margin: float = 0.0

    def __post_init__(self):
        try:
            object.__setattr__(self, "scope", PageScope(self.scope))
        except ValueError:
            choices = ", ".join(s.value for s in PageScope)
            raise InvalidConfigError(f"Unknown page scope '{self.scope}', expected one of: {choices}")
        if isinstance(self.margin, bool) or not isinstance(self.margin, (int, float)) or self.margin < 0:
            raise InvalidConfigError(f"Page margin must be a non-negative number, got {self.margin!r}")

    def applies_to(self, index: int) -> bool:
        """``index`` is 0-based; ``odd`` means odd in 1-based numbering."""
        if self.scope is PageScope.FIRST:
            return index == 0
        if self.scope is PageScope.ODD:
            return index % 2 == 0
        return True

    def target_page(self, page: Page) -> Page:
        """Area placement runs on. Raises if the margin leaves nothing."""
        return page.inset(self.margin) if self.margin else page


@dataclass
class DocumentReport:
    """Outcome of watermarking one PDF."""
    output_path: Optional[Path]
    page_count: int = 0
    watermarked_pages: List[int] = field(default_factory=list)
    page_reports: Dict[int, RenderReport] = field(default_factory=dict)

    @property
    def drawn_count(self) -> int:
        return sum(r.drawn_count for r in self.page_reports.values())

    @property
    def skipped_count(self) -> int:
        return sum(r.skipped_count for r in self.page_reports.values())


class DocumentRenderer:
    """
    reportlab renderer for watermark instances.

    Without a font file the standard Helvetica face is used, which limits
    text to what WinAnsi can encode. A TTF file lifts that limit to the
    glyphs the face actually contains.
    """

    def __init__(self, font_path: Optional[str] = None):
        self._face = None
        self.font_name = DEFAULT_FONT
        if font_path:
            path = Path(font_path)
            if not path.exists():
                raise FileNotFoundError(f"Font not found: {path}")
            font = TTFont(f"Sealmark-{path.stem}", str(path))
            pdfmetrics.registerFont(font)
            self.font_name = font.fontName
            self._face = font.face

    def supports(self, text: str) -> bool:
        """True if every character of ``text`` can be drawn with the font."""
        if self._face is not None:
            glyphs = self._face.charToGlyph
            return all(ord(ch) in glyphs for ch in text)
        try:
            text.encode(STANDARD_FONT_ENCODING)
        except UnicodeEncodeError:
            return False
        return True

    def draw(
            self,
            canvas: pdf_canvas.Canvas,
            instances: Sequence[WatermarkInstance],
            page: Page,
            origin: Tuple[float, float] = (0.0, 0.0)
    ) -> RenderReport:
        """
        Draw instances onto a canvas whose page size is ``page``.

        Args:
            canvas: reportlab canvas, untransformed.
            instances: Placement output in page space.
            page: Full page size; used for the y flip.
            origin: Page-space offset added to every instance (margin inset).
        """
        report = RenderReport(coordinate_space=DOCUMENT_SPACE)
        origin_x, origin_y = origin

        for index, instance in enumerate(instances):
            try:
                check_instance(instance, index)
                if not self.supports(instance.text):
                    raise RenderSkip("font has no glyph for text", index)

                doc_x, doc_y = to_document_space(
                    instance.x + origin_x, instance.y + origin_y, page.height
                )
                opacity = min(max(instance.opacity, 0.0), 1.0)
                canvas.saveState()
                try:
                    canvas.translate(doc_x, doc_y)
                    canvas.rotate(instance.rotation)
                    canvas.setFillColorRGB(instance.color.r, instance.color.g, instance.color.b)
                    canvas.setFillAlpha(opacity)
                    canvas.setFont(self.font_name, instance.font_size)
                    canvas.drawCentredString(0, -instance.font_size * BASELINE_SHIFT, instance.text)
                finally:
                    canvas.restoreState()

                report.marks.append(DrawnMark(
                    text=instance.text,
                    x=doc_x,
                    y=doc_y,
                    rotation=instance.rotation,
                    opacity=instance.opacity,
                ))
            except RenderSkip as skip:
                report.record_skip(skip, instance)

        return report

    def render_overlay(
            self,
            instances: Sequence[WatermarkInstance],
            page: Page,
            origin: Tuple[float, float] = (0.0, 0.0)
    ) -> Tuple[bytes, RenderReport]:
        """Single-page PDF holding only the marks, plus its report."""
        buffer = io.BytesIO()
        canvas = pdf_canvas.Canvas(buffer, pagesize=(page.width, page.height))
        report = self.draw(canvas, instances, page, origin)
        canvas.showPage()
        canvas.save()
        return buffer.getvalue(), report


def _open_reader(source: Source) -> PdfReader:
    try:
        if isinstance(source, bytes):
            reader = PdfReader(io.BytesIO(source))
        elif isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise ExportError(f"Document not found: {path}")
            reader = PdfReader(str(path))
        else:
            reader = PdfReader(source)
        if reader.is_encrypted:
            raise ExportError("Encrypted documents are not supported")
        # Touch the page tree so structural damage surfaces here
        len(reader.pages)
    except (PdfReadError, OSError, ValueError) as e:
        raise ExportError(f"Cannot read document: {e}") from e
    return reader


def watermark_pdf(
        source: Source,
        output: Optional[Union[str, Path, BinaryIO]],
        config: WatermarkConfig,
        page_settings: Optional[PageSettings] = None,
        renderer: Optional[DocumentRenderer] = None
) -> DocumentReport:
    """
    Watermark the selected pages of a PDF.

    Args:
        source: Path, raw bytes or binary stream of the input PDF.
        output: Path or binary stream for the result. ``None`` skips writing.
        config: Watermark configuration.
        page_settings: Page scope and margin. Defaults to every page, no margin.
        renderer: Reusable renderer, e.g. one with a custom font.

    Returns:
        DocumentReport with per-page render reports keyed by 0-based index.
    """
    page_settings = page_settings or PageSettings()
    renderer = renderer or DocumentRenderer()
    reader = _open_reader(source)
    writer = PdfWriter()

    output_path = Path(output) if isinstance(output, (str, Path)) else None
    report = DocumentReport(output_path=output_path, page_count=len(reader.pages))
    placements: Dict[Tuple[float, float], Placement] = {}

    for index, source_page in enumerate(reader.pages):
        # Merge onto the writer's copy; reader pages stay untouched
        pdf_page = writer.add_page(source_page)
        if page_settings.applies_to(index):
            if pdf_page.rotation:
                pdf_page.transfer_rotation_to_content()
            box = pdf_page.mediabox
            page = Page(float(box.width), float(box.height))

            try:
                target = page_settings.target_page(page)
            except InvalidConfigError as e:
                logger.warning("Page %d left unmarked: %s", index + 1, e)
                target = None

            if target is not None:
                key = (target.width, target.height)
                if key not in placements:
                    placements[key] = compute_placement(config, target)

                margin = page_settings.margin
                overlay_bytes, page_report = renderer.render_overlay(
                    placements[key], page, origin=(margin, margin)
                )
                overlay = PdfReader(io.BytesIO(overlay_bytes)).pages[0]
                pdf_page.merge_translated_page(overlay, float(box.left), float(box.bottom))
                report.watermarked_pages.append(index)
                report.page_reports[index] = page_report

    if output is not None:
        try:
            if output_path is not None:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(output_path, "wb") as f:
                    writer.write(f)
            else:
                writer.write(output)
        except OSError as e:
            raise ExportError(f"Cannot write document: {e}") from e

    logger.info(
        "Watermarked %d of %d pages (%d marks, %d skipped)",
        len(report.watermarked_pages), report.page_count,
        report.drawn_count, report.skipped_count
    )
    return report
