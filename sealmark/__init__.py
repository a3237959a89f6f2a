"""
Sealmark - Deterministic Watermark Placement
============================================
Places multi-layer text watermarks on document pages and draws them
through a raster preview and a PDF embedder that agree mark for mark.

Modules:
    - core: Pure placement logic (no rendering dependencies)
    - render: Pillow preview and reportlab/pypdf document back ends
    - workers: PyQt6 QThread workers for preview and batch export

Usage:
    from sealmark import WatermarkConfig, Page, compute_placement
    from sealmark.render import watermark_pdf
    from sealmark.workers import ExportWorker
"""

__version__ = "1.0.0"
__app_name__ = "Sealmark"

# Core exports
from .core import (
    Color, LayerSettings, LayerToggle, Page, Pattern, PositionAnchor,
    PRESETS, ProtectionScore, WatermarkConfig, WatermarkInstance,
    ExportError, InvalidConfigError, RenderSkip, WatermarkError,
    assess, compute_placement, compute_placements, preset, protection_score
)

__all__ = [
    # Version info
    "__version__",
    "__app_name__",

    # Config
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

    # Placement and scoring
    "compute_placement",
    "compute_placements",
    "ProtectionScore",
    "assess",
    "protection_score",

    # Errors
    "ExportError",
    "InvalidConfigError",
    "RenderSkip",
    "WatermarkError",
]
