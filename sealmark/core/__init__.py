"""
Core Module - Pure Placement Logic
==================================
This module contains no rendering or UI dependencies.
Placement is a pure function of (config, page).
"""

from .config import (
    Color, LayerSettings, LayerToggle, Page, Pattern, PositionAnchor,
    PRESETS, WatermarkConfig, WatermarkInstance, preset
)
from .errors import ExportError, InvalidConfigError, RenderSkip, WatermarkError
from .layers import compose_layers, iter_layers
from .patterns import estimate_text_width
from .placement import compute_placement, compute_placements
from .rng import SeededGenerator
from .scoring import ProtectionScore, assess, protection_level, protection_score

__all__ = [
    "Color",
    "LayerSettings",
    "LayerToggle",
    "Page",
    "Pattern",
    "PositionAnchor",
    "PRESETS",
    "WatermarkConfig",
    "WatermarkInstance",
    "preset",
    "ExportError",
    "InvalidConfigError",
    "RenderSkip",
    "WatermarkError",
    "compose_layers",
    "iter_layers",
    "estimate_text_width",
    "compute_placement",
    "compute_placements",
    "SeededGenerator",
    "ProtectionScore",
    "assess",
    "protection_level",
    "protection_score",
]
