"""
Protection scoring.

A rough 0-100 estimate of removal resistance, derived only from which
layers are enabled and their density weights. It never looks at actual
placement geometry.
"""

import math
from dataclasses import dataclass

from .config import LayerSettings, WatermarkConfig

TOTAL_LAYERS = len(LayerSettings.names())

# (minimum score, label), highest first
LEVELS = (
    (85, "very high"),
    (70, "high"),
    (50, "medium"),
    (30, "low"),
)
LOWEST_LEVEL = "very low"


@dataclass(frozen=True)
class ProtectionScore:
    value: int
    level: str
    enabled_layers: int
    total_count: int


def protection_level(value: int) -> str:
    for threshold, label in LEVELS:
        if value >= threshold:
            return label
    return LOWEST_LEVEL


def assess(config: WatermarkConfig) -> ProtectionScore:
    """Score a config and bucket the result."""
    layers = config.resolved_layers()
    enabled = [getattr(layers, name) for name in layers.enabled_names()]
    total_count = sum(toggle.count for toggle in enabled)

    tech_score = len(enabled) / TOTAL_LAYERS * 50
    density_score = min(total_count / 10 * 50, 50)
    # Half-up rounding
    value = int(math.floor(tech_score + density_score + 0.5))
    value = max(0, min(100, value))

    return ProtectionScore(
        value=value,
        level=protection_level(value),
        enabled_layers=len(enabled),
        total_count=total_count,
    )


def protection_score(config: WatermarkConfig) -> int:
    return assess(config).value
