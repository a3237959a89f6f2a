"""
Layer Composer
==============
Randomized protection layers for the ``paranoid`` and ``anti-removal``
patterns.

Every layer receives the same ``SeededGenerator`` and appends to one
output list. The order of layers, and of draws inside a layer, fixes which
random value belongs to which instance, so it must never change:

    paranoid:      randomized grid -> noise -> boundary -> micro-marks
    anti-removal:  the four above -> word style -> anti-detection -> zonal

Each randomized cell draws all of its values before the keep/drop test, so
the number of draws per cell does not depend on page geometry.
Opacity weights are multiplied into each instance here; renderers never
stack layer opacities.
"""

import logging
import math
from typing import Callable, Iterator, List, NamedTuple, Optional, Tuple

from .config import Color, Page, Pattern, WatermarkConfig, WatermarkInstance
from .patterns import frange, make_instance
from .rng import SeededGenerator

logger = logging.getLogger(__name__)

# Layer opacity weights (multiplied into config.opacity)
GRID_WEIGHT = 0.8
NOISE_WEIGHT = 0.3
BOUNDARY_WEIGHT = 0.2
MICRO_WEIGHT = 0.1
WORD_STYLE_WEIGHT = 0.15

# Randomized grid
MIN_GRID_CELL = 50.0
GRID_CELL_FACTOR = 0.4
GRID_JITTER = 0.6          # total jitter span, as a fraction of the cell
GRID_INNER_MARGIN = 20.0

# Noise scatter / micro-marks density (one mark per this many square units)
NOISE_AREA_PER_MARK = 8000
MICRO_AREA_PER_MARK = 100000
NOISE_GLYPHS = ("©", "®", "•", "°", "™")
MICRO_GLYPHS = ("©", "®", "™", "°", "•", "·")
MIN_MICRO_FONT = 6.0

# Boundary confusion
BOUNDARY_MARGIN = 25.0
BOUNDARY_STEP_FACTOR = 0.8
BOUNDARY_JITTER = 10.0
BOUNDARY_GLYPH = "•"
BOUNDARY_SCALE = 0.6

# Word-style mimicry
WORD_STYLE_ROTATION = -45.0
WORD_STYLE_SCALE = 1.5
WORD_STYLE_MIN_FONT = 48.0
WORD_STYLE_SPACING_FACTOR = 3.0
WORD_STYLE_COLOR = Color(0.8, 0.8, 0.8)

# Anti-detection decoys: (glyph, absolute opacity, base rotation)
FAKE_FEATURES = (
    (".", 0.02, 0.0),
    ("|", 0.03, 90.0),
    ("/", 0.025, 45.0),
)
FAKE_FEATURE_PITCH = 40.0
FAKE_FEATURE_MARGIN = 20.0


class Zone(NamedTuple):
    """Page-relative region with its own density."""
    name: str
    fx: float
    fy: float
    density: float


ZONES = (
    Zone("upper-left", 0.1, 0.1, 0.3),
    Zone("upper-middle", 0.5, 0.3, 0.5),
    Zone("lower-right", 0.8, 0.7, 0.4),
    Zone("lower-left", 0.3, 0.8, 0.6),
)
ZONE_MARKS_PER_DENSITY = 20
ZONE_MIN_RADIUS = 50.0
ZONE_MAX_RADIUS = 150.0


LayerFn = Callable[[WatermarkConfig, Page, SeededGenerator], List[WatermarkInstance]]


def grid_cell_size(config: WatermarkConfig) -> float:
    return max(config.spacing * GRID_CELL_FACTOR, MIN_GRID_CELL)


# =============================================================================
# PARANOID LAYERS
# =============================================================================

def randomized_grid(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """Jittered grid of the text and its variants."""
    cell = grid_cell_size(config)
    variants = (config.text, config.text.upper(), config.text + "•")
    opacity = config.opacity * GRID_WEIGHT
    low_x, high_x = GRID_INNER_MARGIN, page.width - GRID_INNER_MARGIN
    low_y, high_y = GRID_INNER_MARGIN, page.height - GRID_INNER_MARGIN

    marks = []
    for x in frange(0.0, page.width, cell):
        for y in frange(0.0, page.height, cell):
            fx = x + rng.jitter(cell * GRID_JITTER)
            fy = y + rng.jitter(cell * GRID_JITTER)
            scale = rng.between(0.7, 1.3)
            rotation = config.rotation + rng.jitter(60.0)
            text = rng.choice(variants)

            if low_x <= fx <= high_x and low_y <= fy <= high_y:
                marks.append(make_instance(
                    config, fx, fy,
                    text=text,
                    font_size=config.font_size * scale,
                    rotation=rotation,
                    opacity=opacity,
                ))
    return marks


def noise_scatter(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """Small symbols at fully random positions and angles."""
    count = int(page.area // NOISE_AREA_PER_MARK)
    opacity = config.opacity * NOISE_WEIGHT

    marks = []
    for _ in range(count):
        x = rng.next() * page.width
        y = rng.next() * page.height
        rotation = rng.next() * 360.0
        scale = rng.between(0.4, 0.8)
        glyph = rng.choice(NOISE_GLYPHS)
        marks.append(make_instance(
            config, x, y,
            text=glyph,
            font_size=config.font_size * scale,
            rotation=rotation,
            opacity=opacity,
        ))
    return marks


def boundary_confusion(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """Dots along all four edges, just inside the border."""
    step = grid_cell_size(config) * BOUNDARY_STEP_FACTOR
    opacity = config.opacity * BOUNDARY_WEIGHT
    margin = BOUNDARY_MARGIN

    def dot(x: float, y: float) -> WatermarkInstance:
        dx = rng.jitter(BOUNDARY_JITTER)
        dy = rng.jitter(BOUNDARY_JITTER)
        rotation = rng.next() * 180.0
        return make_instance(
            config, x + dx, y + dy,
            text=BOUNDARY_GLYPH,
            font_size=config.font_size * BOUNDARY_SCALE,
            rotation=rotation,
            opacity=opacity,
        )

    marks = []
    # Top and bottom edges
    if page.height > 2 * margin:
        for x in frange(margin, page.width - margin, step):
            marks.append(dot(x, margin))
            marks.append(dot(x, page.height - margin))
    # Left and right edges
    if page.width > 2 * margin:
        for y in frange(margin, page.height - margin, step):
            marks.append(dot(margin, y))
            marks.append(dot(page.width - margin, y))
    return marks


def micro_marks(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """Sparse single-glyph marks at a very small size."""
    count = int(page.area // MICRO_AREA_PER_MARK)
    font_size = max(config.font_size * 0.3, MIN_MICRO_FONT)
    opacity = config.opacity * MICRO_WEIGHT

    marks = []
    for _ in range(count):
        x = rng.next() * page.width
        y = rng.next() * page.height
        rotation = rng.next() * 360.0
        glyph = rng.choice(MICRO_GLYPHS)
        marks.append(make_instance(
            config, x, y,
            text=glyph,
            font_size=font_size,
            rotation=rotation,
            opacity=opacity,
        ))
    return marks


# =============================================================================
# ANTI-REMOVAL LAYERS
# =============================================================================

def word_style(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """
    Regular grid imitating a typical office-suite watermark.

    Large light-grey text at -45 degrees. Removal tools tuned to that
    signature strip this layer and leave the differently signed ones.
    """
    font_size = max(config.font_size * WORD_STYLE_SCALE, WORD_STYLE_MIN_FONT)
    spacing = font_size * WORD_STYLE_SPACING_FACTOR
    opacity = config.opacity * WORD_STYLE_WEIGHT

    return [
        make_instance(
            config, x, y,
            font_size=font_size,
            rotation=WORD_STYLE_ROTATION,
            opacity=opacity,
            color=WORD_STYLE_COLOR,
        )
        for x in frange(spacing, page.width, spacing)
        for y in frange(spacing, page.height, spacing)
    ]


def anti_detection(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """Near-invisible decoy strokes that feed feature-based detectors."""
    base = config.color
    high_x = page.width - FAKE_FEATURE_MARGIN
    high_y = page.height - FAKE_FEATURE_MARGIN

    marks = []
    for glyph, opacity, base_rotation in FAKE_FEATURES:
        for x in frange(FAKE_FEATURE_MARGIN, high_x, FAKE_FEATURE_PITCH):
            for y in frange(FAKE_FEATURE_MARGIN, high_y, FAKE_FEATURE_PITCH):
                jx = rng.jitter(20.0)
                jy = rng.jitter(20.0)
                size = rng.between(8.0, 12.0)
                red = min(max(base.r + rng.jitter(0.2), 0.0), 1.0)
                rotation = base_rotation + rng.jitter(30.0)
                marks.append(make_instance(
                    config, x + jx, y + jy,
                    text=glyph,
                    font_size=size,
                    rotation=rotation,
                    opacity=opacity,
                    color=Color(red, base.g, base.b),
                ))
    return marks


def zonal(config: WatermarkConfig, page: Page, rng: SeededGenerator) -> List[WatermarkInstance]:
    """Clusters around fixed zones, scaled by each zone's density."""
    marks = []
    for zone in ZONES:
        center_x = page.width * zone.fx
        center_y = page.height * zone.fy
        font_size = config.font_size * (0.5 + zone.density * 0.8)
        opacity = config.opacity * (0.3 + zone.density * 0.4)

        for _ in range(int(zone.density * ZONE_MARKS_PER_DENSITY)):
            radius = rng.between(ZONE_MIN_RADIUS, ZONE_MAX_RADIUS)
            angle = rng.next() * 2 * math.pi
            rotation = config.rotation + rng.jitter(90.0)
            x = center_x + math.cos(angle) * radius
            y = center_y + math.sin(angle) * radius

            if page.contains(x, y):
                marks.append(make_instance(
                    config, x, y,
                    font_size=font_size,
                    rotation=rotation,
                    opacity=opacity,
                ))
    return marks


# =============================================================================
# COMPOSITION
# =============================================================================

PARANOID_SEQUENCE: Tuple[Tuple[str, LayerFn], ...] = (
    ("randomized_grid", randomized_grid),
    ("noise_scatter", noise_scatter),
    ("boundary_confusion", boundary_confusion),
    ("micro_marks", micro_marks),
)

ANTI_REMOVAL_SEQUENCE: Tuple[Tuple[str, LayerFn], ...] = PARANOID_SEQUENCE + (
    ("word_style", word_style),
    ("anti_detection", anti_detection),
    ("zonal", zonal),
)

LAYER_SEQUENCES = {
    Pattern.PARANOID: PARANOID_SEQUENCE,
    Pattern.ANTI_REMOVAL: ANTI_REMOVAL_SEQUENCE,
}


def iter_layers(
        config: WatermarkConfig,
        page: Page,
        rng: Optional[SeededGenerator] = None
) -> Iterator[Tuple[str, List[WatermarkInstance]]]:
    """
    Yield ``(layer_name, instances)`` for every enabled layer, in order.

    Disabled layers consume no draws.
    """
    if not config.pattern.is_randomized:
        raise ValueError(f"Pattern '{config.pattern.value}' has no protection layers")

    if rng is None:
        rng = SeededGenerator(config.effective_seed)
    settings = config.resolved_layers()

    for name, layer_fn in LAYER_SEQUENCES[config.pattern]:
        if not getattr(settings, name).enabled:
            continue
        marks = layer_fn(config, page, rng)
        logger.debug("Layer %s produced %d instances (draws so far: %d)", name, len(marks), rng.draws)
        yield name, marks


def compose_layers(
        config: WatermarkConfig,
        page: Page,
        rng: Optional[SeededGenerator] = None
) -> Tuple[WatermarkInstance, ...]:
    """Flatten all enabled layers into one ordered instance tuple."""
    marks: List[WatermarkInstance] = []
    for _, layer_marks in iter_layers(config, page, rng):
        marks.extend(layer_marks)
    return tuple(marks)
