"""BezelFrame — put screenshots and screen recordings inside device bezels."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from bezel.catalog import DEVICES, find_device, validate_catalog
from bezel.composition import DEFAULT_VIDEO_BACKGROUND
from bezel.compositor import composite_params, load_bezel
from bezel.errors import BezelFrameError, ExportCancelledError
from bezel.export_size import ExportSize
from bezel.image_io import load_image, rotate_image, save_png
from bezel.matcher import match_devices, match_devices_strict
from bezel.models import CompositionParameters, DeviceDefinition
from bezel.region_cache import RegionCache
from bezel.resources import ResourcePaths, default_resources
from bezel.utils import parse_color
from bezel.version import __version__
from bezel.video_exporter import export_video
from bezel.video_geometry import VALID_ROTATIONS, swaps_axes
from bezel.video_source import is_video_path, open_asset, video_dimensions

logging.basicConfig(
    level=logging.INFO,
    format="%(name)s | %(levelname)s | %(message)s",
)

_logger = logging.getLogger(__name__)


def _global_exception_handler(exc_type, exc_value, exc_tb):
    """Log unhandled exceptions instead of crashing silently."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    _logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))


def _load_devices(args) -> tuple:
    resources = ResourcePaths(args.resources) if args.resources else default_resources()
    cache = RegionCache.load(resources)
    return cache, cache.resolve_devices(DEVICES)


def _default_output(input_path: str, video: bool) -> str:
    stem = os.path.splitext(os.path.basename(input_path))[0]
    ext = ".mp4" if video else ".png"
    return os.path.join(os.path.dirname(os.path.abspath(input_path)), f"{stem}-framed{ext}")


# ── Subcommands ─────────────────────────────────────────────────────

def cmd_devices(args) -> int:
    _, devices = _load_devices(args)
    for problem in validate_catalog(devices):
        print(f"warning: {problem}", file=sys.stderr)
    for device in devices:
        region = device.screen_region
        size = f"{region.width}x{region.height}" if region else "(no region)"
        colors = ", ".join(c.display_name for c in device.colors)
        print(f"{device.id:<20} {device.display_name:<22} {size:<12} {colors}")
    return 0


def cmd_match(args) -> int:
    _, devices = _load_devices(args)
    matcher = match_devices_strict if args.strict else match_devices
    matches = matcher(args.width, args.height, devices)
    if not matches:
        print(f"No matching device found for {args.width}×{args.height} screenshot.")
        return 1
    for m in matches:
        print(f"{m.device.id:<20} {'landscape' if m.is_landscape else 'portrait'}")
    return 0


def _choose_device(args, devices: List[DeviceDefinition], width: int, height: int,
                   kind: str) -> Optional[tuple]:
    """Resolve (device, is_landscape) from flags or by matching."""
    if args.device:
        device = find_device(args.device, devices)
        if device is None:
            print(f"Error: unknown device {args.device!r}", file=sys.stderr)
            return None
        is_landscape = width > height
    else:
        matches = match_devices(width, height, devices)
        if not matches:
            print(f"No matching device found for {width}×{height} {kind}.", file=sys.stderr)
            return None
        device, is_landscape = matches[0].device, matches[0].is_landscape
    if args.orientation is not None:
        is_landscape = args.orientation == "landscape"
    return device, is_landscape


def _choose_color(args, device: DeviceDefinition):
    if not args.color:
        return device.default_color
    color = device.color(args.color)
    if color is None:
        names = ", ".join(c.id for c in device.colors)
        print(f"Error: {device.display_name} has no colour {args.color!r} (choose from: {names})",
              file=sys.stderr)
    return color


def _print_progress(value: float) -> None:
    sys.stderr.write(f"\rExporting… {value * 100:5.1f}%")
    if value >= 1.0:
        sys.stderr.write("\n")
    sys.stderr.flush()


def cmd_frame(args) -> int:
    cache, devices = _load_devices(args)
    background = parse_color(args.background) if args.background else None
    video = is_video_path(args.input)
    output = args.output or _default_output(args.input, video)

    if video:
        asset = open_asset(args.input)
        width, height = video_dimensions(asset)
        if swaps_axes(args.rotate):
            width, height = height, width
        source = asset
    else:
        source = rotate_image(load_image(args.input), args.rotate)
        height, width = source.shape[:2]

    chosen = _choose_device(args, devices, width, height, "video" if video else "screenshot")
    if chosen is None:
        return 1
    device, is_landscape = chosen
    color = _choose_color(args, device)
    if color is None:
        return 1

    params = CompositionParameters(
        source=source,
        device=device,
        color=color,
        is_landscape=is_landscape,
        background=background,
        extra_rotation=args.rotate if video else 0,
    )
    if args.width:
        bezel = load_bezel(cache, params.bezel_file_name)
        size = ExportSize(bezel.shape[1], bezel.shape[0])
        size.set_width_preserving_aspect(args.width)
        if size.size_changed:
            params.output_size = size.target_size
        if not size.is_high_quality:
            _logger.info("Output %dx%d is above the high-quality pixel threshold", *size.target_size)

    print(f"{device.display_name} · {color.display_name} · "
          f"{'landscape' if is_landscape else 'portrait'}")

    if video:
        if params.background is None:
            params.background = DEFAULT_VIDEO_BACKGROUND
        written = export_video(params, cache, output, progress=_print_progress)
    else:
        written = save_png(composite_params(params, cache), output)
    print(written)
    return 0


# ── Argument parsing ────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bezelframe",
        description="Frame screenshots and screen recordings with device bezels.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--resources", default=None,
                        help="resource root (default: $BEZELFRAME_RESOURCES or bundled)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("devices", help="list supported devices")
    p.set_defaults(func=cmd_devices)

    p = sub.add_parser("match", help="find devices for a pixel size")
    p.add_argument("width", type=int)
    p.add_argument("height", type=int)
    p.add_argument("--strict", action="store_true", help="exact size only (no ±1 px tolerance)")
    p.set_defaults(func=cmd_match)

    p = sub.add_parser("frame", help="composite a screenshot or video into a bezel")
    p.add_argument("input", help="screenshot (PNG/JPEG) or video (.mov/.mp4/.m4v)")
    p.add_argument("-o", "--output", default=None, help="output path")
    p.add_argument("--device", default=None, help="device id (default: best match)")
    p.add_argument("--color", default=None, help="colour name (default: device default)")
    orient = p.add_mutually_exclusive_group()
    orient.add_argument("--landscape", dest="orientation", action="store_const", const="landscape")
    orient.add_argument("--portrait", dest="orientation", action="store_const", const="portrait")
    p.add_argument("--rotate", type=int, choices=VALID_ROTATIONS, default=0,
                   help="extra clockwise rotation in degrees")
    p.add_argument("--background", default=None, metavar="#RRGGBB",
                   help="solid background colour (videos default to white)")
    p.add_argument("--width", type=int, default=None,
                   help="output width in pixels; height follows the bezel's aspect ratio")
    p.set_defaults(func=cmd_frame)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    sys.excepthook = _global_exception_handler
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        return args.func(args)
    except ExportCancelledError as exc:
        print(str(exc), file=sys.stderr)
        return 130
    except (BezelFrameError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
