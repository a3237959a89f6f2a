"""
Placement entry point.

``compute_placement`` is a pure function of ``(config, page)``: no I/O, no
shared state, a fresh generator per call. Renderers only ever consume its
output.
"""

import logging
from typing import Dict, Iterable, List, Tuple

from .config import Page, Pattern, WatermarkConfig, WatermarkInstance
from .layers import compose_layers
from .patterns import place_diagonal, place_grid, place_single
from .rng import SeededGenerator

logger = logging.getLogger(__name__)

Placement = Tuple[WatermarkInstance, ...]


def compute_placement(config: WatermarkConfig, page: Page) -> Placement:
    """
    Compute the ordered instance tuple for one page.

    Args:
        config: Validated watermark configuration.
        page: Target page size.

    Returns:
        Instances in paint order. Identical inputs always give an identical
        tuple.
    """
    if config.pattern.is_randomized:
        marks = compose_layers(config, page, SeededGenerator(config.effective_seed))
    elif config.pattern is Pattern.SINGLE:
        marks = place_single(config, page)
    elif config.pattern in (Pattern.REPEAT, Pattern.GRID):
        marks = place_grid(config, page)
    else:
        marks = place_diagonal(config, page)

    logger.debug(
        "Placed %d instances (pattern=%s, page=%.1fx%.1f)",
        len(marks), config.pattern.value, page.width, page.height
    )
    return marks


def compute_placements(config: WatermarkConfig, pages: Iterable[Page]) -> List[Placement]:
    """
    One placement per page, e.g. for a multi-page document.

    Pages of equal size share a result; runs are otherwise independent.
    """
    cache: Dict[Tuple[float, float], Placement] = {}
    results = []
    for page in pages:
        key = (page.width, page.height)
        if key not in cache:
            cache[key] = compute_placement(config, page)
        results.append(cache[key])
    return results
