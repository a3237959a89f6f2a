"""
Command line interface.

    python -m sealmark place --preset paranoid --seed fixed-seed-1
    python -m sealmark score --text DRAFT --pattern anti-removal
    python -m sealmark preview --preset confidential --out preview.png
    python -m sealmark export report.pdf photo.jpg --preset internal --output-dir out
    python -m sealmark presets
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from sealmark import __app_name__, __version__
from sealmark.core.config import (
    PRESETS, Page, Pattern, PositionAnchor, WatermarkConfig, WatermarkInstance
)
from sealmark.core.errors import InvalidConfigError, WatermarkError
from sealmark.core.placement import compute_placement
from sealmark.core.scoring import assess
from sealmark.render.base import output_filename
from sealmark.render.document import DocumentRenderer, PageScope, PageSettings, watermark_pdf
from sealmark.render.preview import (
    PreviewRenderer, load_image, save_image, watermark_image
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Overridable WatermarkConfig fields: (flag, dest, type)
_OVERRIDES = (
    ("--text", "text", str),
    ("--font-size", "font_size", float),
    ("--opacity", "opacity", float),
    ("--rotation", "rotation", float),
    ("--color", "color", str),
    ("--spacing", "spacing", float),
    ("--seed", "random_seed", str),
)


def _add_config_arguments(parser: argparse.ArgumentParser):
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--config", type=Path, help="JSON file with a watermark config")
    source.add_argument("--preset", choices=sorted(PRESETS), help="Start from a named preset")
    for flag, dest, kind in _OVERRIDES:
        parser.add_argument(flag, dest=dest, type=kind)
    parser.add_argument("--pattern", choices=[p.value for p in Pattern])
    parser.add_argument("--position", choices=[p.value for p in PositionAnchor])


def _add_page_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--width", type=float, default=595.0, help="Page width in points (default: A4)")
    parser.add_argument("--height", type=float, default=842.0, help="Page height in points (default: A4)")


def build_config(args: argparse.Namespace) -> WatermarkConfig:
    """Merge config file or preset with command line overrides."""
    data: Dict[str, Any] = {}
    if getattr(args, "config", None):
        try:
            data = json.loads(args.config.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfigError(f"Cannot load config {args.config}: {e}")
        if not isinstance(data, dict):
            raise InvalidConfigError("Config JSON must be an object")
    elif getattr(args, "preset", None):
        data = dict(PRESETS[args.preset])

    for dest in [d for _, d, _ in _OVERRIDES] + ["pattern", "position"]:
        value = getattr(args, dest, None)
        if value is not None:
            data[dest] = value

    return WatermarkConfig.from_dict(data)


def instance_to_dict(instance: WatermarkInstance) -> Dict[str, Any]:
    return {
        "text": instance.text,
        "x": instance.x,
        "y": instance.y,
        "font_size": instance.font_size,
        "rotation": instance.rotation,
        "opacity": instance.opacity,
        "color": instance.color.to_hex(),
    }


def cmd_place(args: argparse.Namespace) -> int:
    config = build_config(args)
    instances = compute_placement(config, Page(args.width, args.height))
    json.dump([instance_to_dict(i) for i in instances], sys.stdout, indent=args.indent, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


def cmd_score(args: argparse.Namespace) -> int:
    score = assess(build_config(args))
    print(f"{score.value} ({score.level})")
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    config = build_config(args)
    renderer = PreviewRenderer(args.font)
    if args.image:
        image, report = watermark_image(load_image(args.image), config, renderer)
    else:
        image, report = renderer.render_page(config, Page(args.width, args.height), scale=args.scale)
    path = save_image(image, args.out)
    print(f"Wrote {path} ({report.drawn_count} marks, {report.skipped_count} skipped)")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    config = build_config(args)
    page_settings = PageSettings(scope=args.scope, margin=args.margin)
    document_renderer = DocumentRenderer(args.font)
    preview_renderer = PreviewRenderer(args.font)
    failures = 0

    for source in args.sources:
        output = args.output_dir / output_filename(source)
        try:
            if source.suffix.lower() == ".pdf":
                report = watermark_pdf(source, output, config, page_settings, document_renderer)
                drawn, skipped = report.drawn_count, report.skipped_count
            else:
                image, render_report = watermark_image(load_image(source), config, preview_renderer)
                save_image(image, output)
                drawn, skipped = render_report.drawn_count, render_report.skipped_count
        except (WatermarkError, OSError) as e:
            failures += 1
            logger.error("Failed to export %s: %s", source, e)
            continue
        print(f"{source} -> {output} ({drawn} marks, {skipped} skipped)")

    return 1 if failures else 0


def cmd_presets(args: argparse.Namespace) -> int:
    for name in PRESETS:
        config = WatermarkConfig.from_dict(PRESETS[name])
        score = assess(config)
        print(f"{name:<14} {config.pattern.value:<13} {score.value:>3} ({score.level})  {config.text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sealmark", description=__app_name__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    place_parser = subparsers.add_parser("place", help="Print placed instances as JSON")
    _add_config_arguments(place_parser)
    _add_page_arguments(place_parser)
    place_parser.add_argument("--indent", type=int, default=None)
    place_parser.set_defaults(func=cmd_place)

    score_parser = subparsers.add_parser("score", help="Show the protection score")
    _add_config_arguments(score_parser)
    score_parser.set_defaults(func=cmd_score)

    preview_parser = subparsers.add_parser("preview", help="Render a preview image")
    _add_config_arguments(preview_parser)
    _add_page_arguments(preview_parser)
    preview_parser.add_argument("--image", type=Path, help="Draw over this image instead of a blank page")
    preview_parser.add_argument("--scale", type=float, default=1.0, help="Pixels per point for blank pages")
    preview_parser.add_argument("--font", help="TTF font file")
    preview_parser.add_argument("--out", type=Path, default=Path("preview.png"))
    preview_parser.set_defaults(func=cmd_preview)

    export_parser = subparsers.add_parser("export", help="Watermark PDFs or images")
    _add_config_arguments(export_parser)
    export_parser.add_argument("sources", nargs="+", type=Path)
    export_parser.add_argument("--output-dir", type=Path, default=Path("output"))
    export_parser.add_argument("--scope", choices=[s.value for s in PageScope], default=PageScope.ALL.value)
    export_parser.add_argument("--margin", type=float, default=0.0)
    export_parser.add_argument("--font", help="TTF font file")
    export_parser.set_defaults(func=cmd_export)

    presets_parser = subparsers.add_parser("presets", help="List named presets")
    presets_parser.set_defaults(func=cmd_presets)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except InvalidConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    except (WatermarkError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
