"""
Preview Renderer
================
Draws a placed instance list onto a raster surface using PIL/Pillow.

Technical Notes:
- Each instance becomes its own RGBA tile, rotated with an expanded canvas
  so the text is never clipped, then pasted centred on the instance point
- Positions and font sizes are multiplied by ``scale``, which lets the
  preview run on a small proxy while keeping the layout of the full page
- RGBA mode is used for proper opacity blending
- The renderer never measures text to decide positions; it only centres
  each tile on the point placement already chose
"""

import logging
import math
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, ImageOps

from sealmark.core.config import Page, WatermarkConfig, WatermarkInstance
from sealmark.core.errors import RenderSkip
from sealmark.core.placement import compute_placement

from .base import PAGE_SPACE, DrawnMark, RenderReport, check_instance

logger = logging.getLogger(__name__)

PAGE_BACKGROUND = (255, 255, 255, 255)
MIN_FONT_PX = 1


class PreviewRenderer:
    """
    Raster renderer for watermark instances.

    One renderer can be reused for many runs; it caches fonts per pixel
    size but holds no placement state.
    """

    def __init__(self, font_path: Optional[str] = None):
        """
        Initialize the PreviewRenderer.

        Args:
            font_path: Optional path to a custom TTF font file.
                      If None, a system font is looked up.
        """
        self._font_path = font_path
        self._cached_fonts: Dict[int, ImageFont.ImageFont] = {}

    def _get_font(self, size: int) -> ImageFont.ImageFont:
        """Get or create a cached font object for the given pixel size."""
        if size not in self._cached_fonts:
            if self._font_path and Path(self._font_path).exists():
                self._cached_fonts[size] = ImageFont.truetype(self._font_path, size)
            else:
                self._cached_fonts[size] = self._load_system_font(size)
        return self._cached_fonts[size]

    @staticmethod
    def _load_system_font(size: int) -> ImageFont.ImageFont:
        candidates = (
            "msyh.ttc",                                         # Windows
            "/System/Library/Fonts/PingFang.ttc",               # macOS
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",  # Linux
            "DejaVuSans.ttf",
        )
        for candidate in candidates:
            try:
                return ImageFont.truetype(candidate, size)
            except OSError:
                continue
        return ImageFont.load_default(size)

    def clear_cache(self) -> None:
        self._cached_fonts.clear()

    def _create_mark_tile(
            self,
            text: str,
            font_px: int,
            alpha: int,
            angle: float,
            color: Tuple[int, int, int]
    ) -> Image.Image:
        """
        Create one rotated mark tile with the text at its centre.

        Args:
            text: Text of the mark.
            font_px: Font size in pixels.
            alpha: Opacity 0-255.
            angle: Rotation in degrees, counter-clockwise.
            color: RGB tuple, 0-255 per channel.

        Returns:
            RGBA tile whose centre is the centre of the text.
        """
        font = self._get_font(font_px)

        left, top, right, bottom = font.getbbox(text)
        text_width = right - left
        text_height = bottom - top

        # Square canvas on the text diagonal plus 10% so rotation never clips
        diagonal = int(math.ceil(math.hypot(text_width, text_height)))
        canvas_size = max(diagonal + int(diagonal * 0.1) + 2, 1)

        tile = Image.new("RGBA", (canvas_size, canvas_size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(tile)
        x = (canvas_size - text_width) / 2 - left
        y = (canvas_size - text_height) / 2 - top
        draw.text((x, y), text, font=font, fill=(*color, alpha))

        if angle % 360 != 0:
            tile = tile.rotate(angle, expand=True, resample=Image.Resampling.BICUBIC)
        return tile

    def blank_surface(self, page: Page, scale: float = 1.0) -> Image.Image:
        """White page-sized surface at the given scale."""
        size = (max(1, int(round(page.width * scale))), max(1, int(round(page.height * scale))))
        return Image.new("RGBA", size, PAGE_BACKGROUND)

    def render(
            self,
            instances: Sequence[WatermarkInstance],
            surface: Image.Image,
            scale: float = 1.0,
            origin: Tuple[float, float] = (0.0, 0.0)
    ) -> Tuple[Image.Image, RenderReport]:
        """
        Draw instances onto a copy of ``surface``.

        Args:
            instances: Placement output, drawn in order.
            surface: Background image; page space maps onto it via ``scale``.
            scale: Surface pixels per page unit.
            origin: Page-space offset added to every instance (margin inset).

        Returns:
            Tuple of (composited RGBA image, RenderReport in page space).
        """
        if surface.mode != "RGBA":
            surface = surface.convert("RGBA")

        overlay = Image.new("RGBA", surface.size, (0, 0, 0, 0))
        report = RenderReport(coordinate_space=PAGE_SPACE)
        origin_x, origin_y = origin

        for index, instance in enumerate(instances):
            try:
                check_instance(instance, index)
                font_px = max(MIN_FONT_PX, int(round(instance.font_size * scale)))
                alpha = int(round(min(max(instance.opacity, 0.0), 1.0) * 255))
                try:
                    tile = self._create_mark_tile(
                        text=instance.text,
                        font_px=font_px,
                        alpha=alpha,
                        angle=instance.rotation,
                        color=instance.color.to_rgb255()
                    )
                except (OSError, ValueError, UnicodeError) as e:
                    raise RenderSkip(f"cannot rasterize: {e}", index)

                page_x = instance.x + origin_x
                page_y = instance.y + origin_y
                dest = (
                    int(round(page_x * scale - tile.width / 2)),
                    int(round(page_y * scale - tile.height / 2)),
                )
                overlay.paste(tile, dest, tile)
                report.marks.append(DrawnMark(
                    text=instance.text,
                    x=page_x,
                    y=page_y,
                    rotation=instance.rotation,
                    opacity=instance.opacity,
                ))
            except RenderSkip as skip:
                report.record_skip(skip, instance)

        logger.debug(
            "Rendered %d marks (%d skipped) on %dx%d at scale %.3f",
            report.drawn_count, report.skipped_count, surface.width, surface.height, scale
        )
        return Image.alpha_composite(surface, overlay), report

    def render_page(
            self,
            config: WatermarkConfig,
            page: Page,
            scale: float = 1.0
    ) -> Tuple[Image.Image, RenderReport]:
        """Place and draw onto a blank page, e.g. for live config feedback."""
        instances = compute_placement(config, page)
        return self.render(instances, self.blank_surface(page, scale), scale=scale)


def load_image(image_path: Union[str, Path]) -> Image.Image:
    """Open an image with its EXIF orientation applied."""
    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image not found: {image_path}")
    with Image.open(image_path) as image:
        return ImageOps.exif_transpose(image).copy()


def watermark_image(
        image: Image.Image,
        config: WatermarkConfig,
        renderer: Optional[PreviewRenderer] = None
) -> Tuple[Image.Image, RenderReport]:
    """
    Watermark a full-resolution image, treating its pixel size as the page.
    """
    renderer = renderer or PreviewRenderer()
    page = Page(image.width, image.height)
    instances = compute_placement(config, page)
    return renderer.render(instances, image, scale=1.0)


def save_image(image: Image.Image, output_path: Union[str, Path]) -> Path:
    """Save an RGBA result, flattening onto white for JPEG."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    suffix = output_path.suffix.lower()
    if suffix in (".jpg", ".jpeg"):
        # Convert RGBA to RGB for JPEG
        rgb_result = Image.new("RGB", image.size, (255, 255, 255))
        rgb_result.paste(image, mask=image.split()[3])
        rgb_result.save(output_path, quality=95)
    else:
        image.save(output_path)
    return output_path
