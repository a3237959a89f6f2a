"""
Pattern Strategies
==================
Closed-form tilings for the ``single``, ``repeat``/``grid`` and ``diagonal``
patterns. None of them consume random draws, so their output does not
depend on the seed.

Technical Notes:
- Every loop is bounded by the page dimensions and advances by at least
  ``MIN_STEP`` units, so tiny pages or tiny spacings always terminate
- Text width is estimated here, once, and never measured by a renderer;
  both renderers therefore see identical tile geometry
"""

import logging
import unicodedata
from typing import Iterator, Tuple

from .config import Page, PositionAnchor, WatermarkConfig, WatermarkInstance

logger = logging.getLogger(__name__)

# Distance of edge anchors from the page border
ANCHOR_MARGIN = 50.0

# Smallest advance any tiling loop may take
MIN_STEP = 1.0

# Advance per character, as a fraction of the font size
NARROW_ADVANCE = 0.6
WIDE_ADVANCE = 1.0

DIAGONAL_ROTATION_OFFSET = 45.0
DIAGONAL_ROW_FACTOR = 0.7


def estimate_text_width(text: str, font_size: float) -> float:
    """
    Estimate the rendered width of ``text``.

    East Asian wide and full-width characters take a full em, everything
    else 0.6 em. This is the single width policy used for placement.
    """
    units = 0.0
    for ch in text:
        if unicodedata.east_asian_width(ch) in ("W", "F"):
            units += WIDE_ADVANCE
        else:
            units += NARROW_ADVANCE
    return font_size * units


def frange(start: float, stop: float, step: float, inclusive: bool = False) -> Iterator[float]:
    """
    Yield ``start + i * step`` while below ``stop`` (or equal, if inclusive).

    Values are computed from the index rather than accumulated so long runs
    do not drift.
    """
    step = max(step, MIN_STEP)
    i = 0
    while True:
        value = start + i * step
        if value > stop or (value == stop and not inclusive):
            return
        yield value
        i += 1


def make_instance(config: WatermarkConfig, x: float, y: float, **overrides) -> WatermarkInstance:
    """Instance at ``(x, y)`` carrying the config's style unless overridden."""
    return WatermarkInstance(
        text=overrides.get("text", config.text),
        x=x,
        y=y,
        font_size=overrides.get("font_size", config.font_size),
        rotation=overrides.get("rotation", config.rotation),
        opacity=overrides.get("opacity", config.opacity),
        color=overrides.get("color", config.color),
    )


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def place_single(config: WatermarkConfig, page: Page) -> Tuple[WatermarkInstance, ...]:
    """One instance at the configured anchor, kept inside the page."""
    half_w = estimate_text_width(config.text, config.font_size) / 2
    half_h = config.font_size / 2

    left = ANCHOR_MARGIN + half_w
    right = page.width - ANCHOR_MARGIN - half_w
    top = ANCHOR_MARGIN + half_h
    bottom = page.height - ANCHOR_MARGIN - half_h
    center_x = page.width / 2
    center_y = page.height / 2

    anchors = {
        PositionAnchor.TOP_LEFT: (left, top),
        PositionAnchor.TOP_CENTER: (center_x, top),
        PositionAnchor.TOP_RIGHT: (right, top),
        PositionAnchor.MIDDLE_LEFT: (left, center_y),
        PositionAnchor.CENTER: (center_x, center_y),
        PositionAnchor.MIDDLE_RIGHT: (right, center_y),
        PositionAnchor.BOTTOM_LEFT: (left, bottom),
        PositionAnchor.BOTTOM_CENTER: (center_x, bottom),
        PositionAnchor.BOTTOM_RIGHT: (right, bottom),
    }
    x, y = anchors[config.position]
    return (make_instance(
        config,
        _clamp(x, 0.0, page.width),
        _clamp(y, 0.0, page.height),
    ),)


def place_grid(config: WatermarkConfig, page: Page) -> Tuple[WatermarkInstance, ...]:
    """
    Uniform tiling used by both ``repeat`` and ``grid``.

    Cell size is (text width + spacing, font size + spacing), starting half
    a spacing in from the top-left corner.
    """
    text_width = estimate_text_width(config.text, config.font_size)
    step_x = text_width + config.spacing
    step_y = config.font_size + config.spacing
    start = config.spacing / 2

    return tuple(
        make_instance(config, x, y)
        for x in frange(start, page.width, step_x)
        for y in frange(start, page.height, step_y)
    )


def place_diagonal(config: WatermarkConfig, page: Page) -> Tuple[WatermarkInstance, ...]:
    """
    Diagonal bands: families of lines ``x = offset + y``.

    The outer loop sweeps the offset from ``-height`` to ``width``; every
    instance is turned a further 45 degrees. Points off the page are dropped.
    """
    text_width = estimate_text_width(config.text, config.font_size)
    band_step = config.spacing + text_width
    row_step = config.spacing * DIAGONAL_ROW_FACTOR
    rotation = config.rotation + DIAGONAL_ROTATION_OFFSET

    marks = []
    for offset in frange(-page.height, page.width, band_step):
        for y in frange(0.0, page.height, row_step, inclusive=True):
            x = offset + y
            if page.contains(x, y):
                marks.append(make_instance(config, x, y, rotation=rotation))
    return tuple(marks)
