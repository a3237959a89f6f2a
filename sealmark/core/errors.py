"""
Exception hierarchy for Sealmark.

Placement itself never fails once a config has been accepted; the only
errors that cross the core boundary are configuration errors.
"""


class WatermarkError(Exception):
    """Base exception for all watermark operations."""
    pass


class InvalidConfigError(WatermarkError, ValueError):
    """Raised when a config, page or layer setting is out of range."""
    pass


class RenderSkip(WatermarkError):
    """Raised by a renderer when a single instance cannot be drawn."""

    def __init__(self, reason: str, index: int = -1):
        super().__init__(reason)
        self.reason = reason
        self.index = index


class ExportError(WatermarkError):
    """Raised when a source document cannot be read or written."""
    pass
