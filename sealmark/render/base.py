"""
Shared renderer plumbing: the page/document coordinate flip, per-instance
sanity checks and the render report.

Placement coordinates use a top-left origin with y pointing down. PDF
user space has a bottom-left origin with y pointing up. The conversion
between them happens only in ``to_document_space`` and is a plain sign
flip of the y axis; rotation needs no conversion because both back ends
rotate counter-clockwise as seen on the page.
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from sealmark.core.config import WatermarkInstance
from sealmark.core.errors import RenderSkip

logger = logging.getLogger(__name__)

PAGE_SPACE = "page"
DOCUMENT_SPACE = "document"


def to_document_space(x: float, y: float, page_height: float) -> Tuple[float, float]:
    """Map a page-space point (top-left origin) to PDF space (bottom-left)."""
    return x, page_height - y


def from_document_space(x: float, y: float, page_height: float) -> Tuple[float, float]:
    """Inverse of ``to_document_space``."""
    return x, page_height - y


def check_instance(instance: WatermarkInstance, index: int) -> None:
    """Raise ``RenderSkip`` for an instance no back end can draw."""
    if not instance.text:
        raise RenderSkip("empty text", index)
    for name in ("x", "y", "rotation", "opacity", "font_size"):
        if not math.isfinite(getattr(instance, name)):
            raise RenderSkip(f"non-finite {name}", index)
    if instance.font_size <= 0:
        raise RenderSkip("non-positive font size", index)


@dataclass(frozen=True)
class DrawnMark:
    """What a renderer actually drew, in that renderer's coordinate space."""
    text: str
    x: float
    y: float
    rotation: float
    opacity: float


@dataclass
class RenderReport:
    """Outcome of drawing one instance list."""
    coordinate_space: str = PAGE_SPACE
    marks: List[DrawnMark] = field(default_factory=list)
    skipped: List[RenderSkip] = field(default_factory=list)

    @property
    def drawn_count(self) -> int:
        return len(self.marks)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def record_skip(self, skip: RenderSkip, instance: WatermarkInstance) -> None:
        self.skipped.append(skip)
        logger.warning(
            "Skipped instance %d (%r at %.1f, %.1f): %s",
            skip.index, instance.text, instance.x, instance.y, skip.reason
        )

    def page_space_tuples(self, page_height: float, ndigits: int = 6) -> List[Tuple[float, float, float, float]]:
        """``(x, y, rotation, opacity)`` per mark, converted back to page space."""
        out = []
        for mark in self.marks:
            x, y = mark.x, mark.y
            if self.coordinate_space == DOCUMENT_SPACE:
                x, y = from_document_space(x, y, page_height)
            out.append((
                round(x, ndigits),
                round(y, ndigits),
                round(mark.rotation, ndigits),
                round(mark.opacity, ndigits),
            ))
        return out


def output_filename(source_path: Path) -> str:
    """``report.pdf`` -> ``report_watermarked.pdf``"""
    return f"{source_path.stem}_watermarked{source_path.suffix}"
