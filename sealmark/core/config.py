"""
Configuration Model
===================
Watermark configuration, page geometry and the placed-instance record.

All records are frozen dataclasses validated on construction, so a config
that exists is a config that placement can run on. Invalid input raises
``InvalidConfigError`` before any random generator is created.

Coordinate convention (shared by every renderer):
- Origin at the top-left corner of the page, y grows downwards
- ``(x, y)`` of an instance is the visual centre of the mark
- ``rotation`` is counter-clockwise degrees as seen on the page
"""

import json
import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import InvalidConfigError


class Pattern(str, Enum):
    """Top-level layout strategy."""
    SINGLE = "single"
    REPEAT = "repeat"
    GRID = "grid"
    DIAGONAL = "diagonal"
    PARANOID = "paranoid"
    ANTI_REMOVAL = "anti-removal"

    @property
    def is_randomized(self) -> bool:
        return self in (Pattern.PARANOID, Pattern.ANTI_REMOVAL)


class PositionAnchor(str, Enum):
    """Nine-point anchor used by the ``single`` pattern."""
    TOP_LEFT = "top-left"
    TOP_CENTER = "top-center"
    TOP_RIGHT = "top-right"
    MIDDLE_LEFT = "middle-left"
    CENTER = "center"
    MIDDLE_RIGHT = "middle-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_CENTER = "bottom-center"
    BOTTOM_RIGHT = "bottom-right"


def _parse_enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise InvalidConfigError(f"Unknown {label} '{value}', expected one of: {choices}")


def _require_finite(value, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(f"{label} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidConfigError(f"{label} must be finite, got {value!r}")
    return float(value)


# =============================================================================
# GEOMETRY AND COLOUR
# =============================================================================

@dataclass(frozen=True)
class Color:
    """RGB colour with channels in ``[0, 1]``."""
    r: float = 0.5
    g: float = 0.5
    b: float = 0.5

    def __post_init__(self):
        for name in ("r", "g", "b"):
            value = _require_finite(getattr(self, name), f"Color channel '{name}'")
            if not 0.0 <= value <= 1.0:
                raise InvalidConfigError(f"Color channel '{name}' must be in [0, 1], got {value}")

    @classmethod
    def from_hex(cls, hex_color: str) -> "Color":
        """Parse ``#RGB`` or ``#RRGGBB``."""
        digits = hex_color.strip().lstrip("#")
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        if len(digits) != 6:
            raise InvalidConfigError(f"Invalid hex colour: {hex_color!r}")
        try:
            channels = [int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4)]
        except ValueError:
            raise InvalidConfigError(f"Invalid hex colour: {hex_color!r}")
        return cls(*channels)

    def to_hex(self) -> str:
        return "#{:02x}{:02x}{:02x}".format(*self.to_rgb255())

    def to_rgb255(self) -> Tuple[int, int, int]:
        return (
            int(round(self.r * 255)),
            int(round(self.g * 255)),
            int(round(self.b * 255)),
        )


@dataclass(frozen=True)
class Page:
    """Target page size, in points."""
    width: float
    height: float

    def __post_init__(self):
        for name in ("width", "height"):
            value = _require_finite(getattr(self, name), f"Page {name}")
            if value <= 0:
                raise InvalidConfigError(f"Page {name} must be positive, got {value}")

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains(self, x: float, y: float) -> bool:
        return 0.0 <= x <= self.width and 0.0 <= y <= self.height

    def inset(self, margin: float) -> "Page":
        """Page shrunk by ``margin`` on every side."""
        return Page(self.width - 2 * margin, self.height - 2 * margin)


@dataclass(frozen=True)
class WatermarkInstance:
    """One fully resolved mark. Immutable once produced."""
    text: str
    x: float
    y: float
    font_size: float
    rotation: float
    opacity: float
    color: Color


# =============================================================================
# LAYER SETTINGS
# =============================================================================

MAX_LAYER_COUNT = 5


@dataclass(frozen=True)
class LayerToggle:
    """Enable flag plus a 0-5 density weight for one protection layer."""
    enabled: bool = False
    count: int = 0

    def __post_init__(self):
        if not isinstance(self.enabled, bool):
            raise InvalidConfigError(f"Layer 'enabled' must be a bool, got {self.enabled!r}")
        if isinstance(self.count, bool) or not isinstance(self.count, int):
            raise InvalidConfigError(f"Layer 'count' must be an integer, got {self.count!r}")
        if not 0 <= self.count <= MAX_LAYER_COUNT:
            raise InvalidConfigError(
                f"Layer 'count' must be between 0 and {MAX_LAYER_COUNT}, got {self.count}"
            )


_OFF = LayerToggle(False, 0)


@dataclass(frozen=True)
class LayerSettings:
    """
    Fixed record of the seven protection layers, in composition order.

    Layers 1-4 belong to ``paranoid``; ``anti-removal`` uses all seven.
    """
    randomized_grid: LayerToggle = _OFF
    noise_scatter: LayerToggle = _OFF
    boundary_confusion: LayerToggle = _OFF
    micro_marks: LayerToggle = _OFF
    word_style: LayerToggle = _OFF
    anti_detection: LayerToggle = _OFF
    zonal: LayerToggle = _OFF

    @classmethod
    def names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def defaults_for(cls, pattern: Pattern) -> "LayerSettings":
        if pattern is Pattern.PARANOID:
            return cls(
                randomized_grid=LayerToggle(True, 3),
                noise_scatter=LayerToggle(True, 3),
                boundary_confusion=LayerToggle(True, 2),
                micro_marks=LayerToggle(True, 2),
            )
        if pattern is Pattern.ANTI_REMOVAL:
            return cls(
                randomized_grid=LayerToggle(True, 3),
                noise_scatter=LayerToggle(True, 2),
                boundary_confusion=LayerToggle(True, 1),
                micro_marks=LayerToggle(True, 1),
                word_style=LayerToggle(True, 2),
                anti_detection=LayerToggle(True, 1),
                zonal=LayerToggle(True, 2),
            )
        return cls()

    def masked_to(self, pattern: Pattern) -> "LayerSettings":
        """Switch off every layer the pattern does not compose."""
        supported = PATTERN_LAYERS.get(pattern, ())
        return replace(self, **{
            name: _OFF for name in self.names() if name not in supported
        })

    def enabled_names(self) -> Tuple[str, ...]:
        return tuple(name for name in self.names() if getattr(self, name).enabled)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {"enabled": toggle.enabled, "count": toggle.count}
            for name, toggle in ((n, getattr(self, n)) for n in self.names())
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LayerSettings":
        unknown = set(data) - set(cls.names())
        if unknown:
            raise InvalidConfigError(f"Unknown layer(s): {', '.join(sorted(unknown))}")
        toggles = {}
        for name, value in data.items():
            if not isinstance(value, dict):
                raise InvalidConfigError(f"Layer '{name}' must be an object, got {value!r}")
            toggles[name] = LayerToggle(value.get("enabled", False), value.get("count", 0))
        return cls(**toggles)


PATTERN_LAYERS: Dict[Pattern, Tuple[str, ...]] = {
    Pattern.PARANOID: (
        "randomized_grid", "noise_scatter", "boundary_confusion", "micro_marks",
    ),
    Pattern.ANTI_REMOVAL: LayerSettings.names(),
}


# =============================================================================
# WATERMARK CONFIG
# =============================================================================

@dataclass(frozen=True)
class WatermarkConfig:
    """
    User-facing watermark settings.

    ``random_seed`` defaults to ``text``: two configs with the same text and
    no explicit seed always produce the same randomized layout.
    """
    text: str
    font_size: float = 48.0
    opacity: float = 0.3
    rotation: float = 45.0
    color: Color = field(default_factory=lambda: Color(0.5, 0.5, 0.5))
    position: PositionAnchor = PositionAnchor.CENTER
    spacing: float = 150.0
    pattern: Pattern = Pattern.DIAGONAL
    random_seed: Optional[str] = None
    layers: Optional[LayerSettings] = None

    def __post_init__(self):
        if not isinstance(self.text, str) or not self.text.strip():
            raise InvalidConfigError("Watermark text cannot be empty")

        font_size = _require_finite(self.font_size, "font_size")
        if font_size <= 0:
            raise InvalidConfigError(f"font_size must be positive, got {font_size}")

        opacity = _require_finite(self.opacity, "opacity")
        if not 0.0 <= opacity <= 1.0:
            raise InvalidConfigError(f"opacity must be between 0 and 1, got {opacity}")

        _require_finite(self.rotation, "rotation")

        spacing = _require_finite(self.spacing, "spacing")
        if spacing <= 0:
            raise InvalidConfigError(f"spacing must be positive, got {spacing}")

        if not isinstance(self.color, Color):
            raise InvalidConfigError(f"color must be a Color, got {self.color!r}")
        if self.random_seed is not None and not isinstance(self.random_seed, str):
            raise InvalidConfigError(f"random_seed must be a string, got {self.random_seed!r}")
        if self.layers is not None and not isinstance(self.layers, LayerSettings):
            raise InvalidConfigError(f"layers must be LayerSettings, got {self.layers!r}")

        object.__setattr__(self, "pattern", _parse_enum(Pattern, self.pattern, "pattern"))
        object.__setattr__(self, "position", _parse_enum(PositionAnchor, self.position, "position"))

    @property
    def effective_seed(self) -> str:
        return self.random_seed or self.text

    def resolved_layers(self) -> LayerSettings:
        """Layer settings for this pattern, with unsupported layers off."""
        layers = self.layers if self.layers is not None else LayerSettings.defaults_for(self.pattern)
        return layers.masked_to(self.pattern)

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "font_size": self.font_size,
            "opacity": self.opacity,
            "rotation": self.rotation,
            "color": {"r": self.color.r, "g": self.color.g, "b": self.color.b},
            "position": self.position.value,
            "spacing": self.spacing,
            "pattern": self.pattern.value,
            "random_seed": self.random_seed,
            "layers": self.layers.to_dict() if self.layers is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatermarkConfig":
        if "text" not in data:
            raise InvalidConfigError("Config is missing 'text'")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfigError(f"Unknown config field(s): {', '.join(sorted(unknown))}")

        kwargs = dict(data)
        try:
            color = kwargs.get("color")
            if isinstance(color, str):
                kwargs["color"] = Color.from_hex(color)
            elif isinstance(color, dict):
                kwargs["color"] = Color(**color)
            if isinstance(kwargs.get("layers"), dict):
                kwargs["layers"] = LayerSettings.from_dict(kwargs["layers"])
            return cls(**kwargs)
        except TypeError as e:
            raise InvalidConfigError(f"Invalid config: {e}")

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, **kwargs)

    @classmethod
    def from_json(cls, payload: str) -> "WatermarkConfig":
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise InvalidConfigError(f"Config is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise InvalidConfigError("Config JSON must be an object")
        return cls.from_dict(data)


# =============================================================================
# PRESETS
# =============================================================================

PRESETS: Dict[str, Dict[str, Any]] = {
    "paranoid": dict(
        text="TOP SECRET", font_size=42, opacity=0.25, rotation=25,
        color="#cc0000", pattern="paranoid", spacing=100,
    ),
    "anti-removal": dict(
        text="COPYRIGHT PROTECTED", font_size=38, opacity=0.2, rotation=15,
        color="#990000", pattern="anti-removal", spacing=120,
    ),
    "confidential": dict(
        text="CONFIDENTIAL", font_size=48, opacity=0.3, rotation=45,
        color="#ff0000", pattern="diagonal", spacing=150,
    ),
    "internal": dict(
        text="INTERNAL USE", font_size=24, opacity=0.2, rotation=0,
        color="#666666", pattern="grid", spacing=100,
    ),
    "no-copy": dict(
        text="DO NOT COPY", font_size=36, opacity=0.4, rotation=-45,
        color="#0066cc", pattern="repeat", spacing=120,
    ),
    "reference": dict(
        text="FOR REFERENCE ONLY", font_size=20, opacity=0.15, rotation=30,
        color="#008800", pattern="grid", spacing=200,
    ),
}


def preset(name: str, random_seed: Optional[str] = None, **overrides) -> WatermarkConfig:
    """Build a config from a named preset, optionally overriding fields."""
    if name not in PRESETS:
        raise InvalidConfigError(
            f"Unknown preset '{name}', expected one of: {', '.join(PRESETS)}"
        )
    data = dict(PRESETS[name])
    data.update(overrides)
    if random_seed is not None:
        data["random_seed"] = random_seed
    return WatermarkConfig.from_dict(data)
