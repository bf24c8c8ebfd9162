import os
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import asyncio

import tensorflow as tf
import numpy as np

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont
import imageio

from mandelscan import (
    Canvas,
    ColorScheme,
    ControllerState,
    InvalidRegion,
    NavigationController,
    ScanEnded,
    ScanEngine,
    ScanStarted,
    SelectionRect,
    draw_selection,
)

log("TensorFlow version: %s" % tf.__version__)

# Scans run on the first GPU when TensorFlow sees one, otherwise on the CPU.
gpus = tf.config.list_physical_devices('GPU')
if gpus:
    try:
        for gpu in gpus:
            tf.config.experimental.set_memory_growth(gpu, True)
        DEVICE = '/GPU:0'
        log("GPU found, using %s" % gpus[0].name)
    except RuntimeError as e:
        log(e)
        DEVICE = '/CPU:0'
else:
    DEVICE = '/CPU:0'
    log("No GPU found, using CPU")

from argparse import ArgumentParser, ArgumentTypeError

NAVIGATION_ACTIONS = ("zoom-in", "zoom-out", "reset", "repaint")


@dataclass(frozen=True)
class Action:
    name: str
    start: Optional[tuple[float, float]] = None
    end: Optional[tuple[float, float]] = None
    scheme: Optional[ColorScheme] = None

    def describe(self) -> str:
        if self.name == "region":
            return f"region {self.start} -> {self.end}"
        if self.name == "scheme":
            return f"scheme {self.scheme.label}"
        return self.name


def parse_action(text: str) -> Action:
    """Parse a navigation step: zoom-in, zoom-out, reset, repaint,
    region=X0,Y0,X1,Y1 (a drag in canvas pixels) or scheme=NAME."""

    name, _, value = text.strip().partition("=")
    name = name.strip().lower()
    if name in NAVIGATION_ACTIONS:
        if value:
            raise ValueError(f"'{name}' does not take a value.")
        return Action(name=name)
    if name == "region":
        try:
            x0, y0, x1, y1 = (float(part) for part in value.split(","))
        except ValueError:
            raise ValueError(f"region needs four comma separated numbers, got '{value}'.") from None
        return Action(name="region", start=(x0, y0), end=(x1, y1))
    if name == "scheme":
        return Action(name="scheme", scheme=ColorScheme.from_label(value))
    raise ValueError(
        f"Unknown action '{text}'. Valid actions: {', '.join(NAVIGATION_ACTIONS)}, region=X0,Y0,X1,Y1, scheme=NAME."
    )


def _action_arg(text: str) -> Action:
    try:
        return parse_action(text)
    except ValueError as exc:
        raise ArgumentTypeError(str(exc)) from None


@dataclass
class OutputConfig:
    modes: tuple[str, ...]
    gif_path: Path | None
    image_path: Path | None
    frame_dir: Path | None
    image_format: str


def build_parser():
    parser = ArgumentParser(description="Scan and navigate the Mandelbrot set, writing what the display would show.")

    parser.add_argument('actions', nargs='*', type=_action_arg, metavar='ACTION',
                        help='navigation steps run after the initial scan: zoom-in, zoom-out, reset, repaint, '
                             'region=X0,Y0,X1,Y1 (drag box in canvas pixels) or scheme=NAME (recolor and repaint)')

    parser.add_argument('--width-px', type=int,
                        dest='width_px', help='width of the display canvas in pixels',
                        metavar='WIDTH_PX', default=640)

    parser.add_argument('--height-px', type=int,
                        dest='height_px', help='height of the display canvas in pixels',
                        metavar='HEIGHT_PX', default=480)

    parser.add_argument('--color-scheme', type=str, dest='color_scheme',
                        choices=[scheme.label for scheme in ColorScheme],
                        default=ColorScheme.CHECKERED.label,
                        help='color scheme used by the initial scan and restored by reset')

    parser.add_argument('--budget-ms', type=float, dest='budget_ms', default=100.0,
                        help='milliseconds of scanning between suspensions that let the canvas repaint')

    parser.add_argument('--paint-interval', type=float, dest='paint_interval', default=0.05,
                        help='seconds between progressive paints recorded while a scan runs')

    parser.add_argument('--time-limit', type=float, dest='time_limit', default=None,
                        help='cancel any scan still running after this many seconds')

    parser.add_argument('--mode', dest='modes', action='append', metavar='MODE',
                        help='Output modes to generate. May be repeated. Choices: image, gif, frames.')

    parser.add_argument('--output', dest='output', type=str,
                        help='Destination for single-file outputs (gif/image) or container directory when both are requested.')

    parser.add_argument('--frame-dir', dest='frame_dir', type=str,
                        help='Directory in which to store the progressive paint sequence (frames mode).')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format for image-based outputs. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--show-coordinates', help='overlay the final viewport parameters on the final image',
                        dest='show_coordinates', action='store_true')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow and hardware diagnostics.')

    return parser


def resolve_output_config(opt, parser: ArgumentParser) -> OutputConfig:
    valid_modes = {"image", "gif", "frames"}
    modes: list[str] = []
    for mode in opt.modes or ["image"]:
        if mode not in valid_modes:
            parser.error(f"Unknown output mode '{mode}'. Valid choices: {', '.join(sorted(valid_modes))}.")
        if mode not in modes:
            modes.append(mode)
    modes_tuple = tuple(modes)

    if opt.width_px <= 0 or opt.height_px <= 0:
        parser.error("--width-px and --height-px must be positive.")
    if opt.budget_ms < 0:
        parser.error("--budget-ms must not be negative.")
    if opt.paint_interval <= 0:
        parser.error("--paint-interval must be positive.")
    if opt.time_limit is not None and opt.time_limit <= 0:
        parser.error("--time-limit must be positive.")

    frame_dir_path: Path | None = None
    if "frames" in modes_tuple:
        frame_dir_path = Path(opt.frame_dir or "./frames").expanduser().resolve()
    elif opt.frame_dir is not None:
        parser.error("--frame-dir is only valid with the frames mode.")

    image_format = (opt.format or "png").lower().lstrip(".") or "png"

    file_modes = [mode for mode in modes_tuple if mode in {"gif", "image"}]
    gif_path: Path | None = None
    image_path: Path | None = None

    if not file_modes:
        if opt.output:
            parser.error("--output is only valid when gif or image modes are requested.")
    elif len(file_modes) == 1:
        expected_suffix = ".gif" if file_modes[0] == "gif" else f".{image_format}"
        if opt.output:
            output_path = Path(opt.output).expanduser()
            if output_path.exists() and output_path.is_dir():
                parser.error("--output must point to a file, not a directory, when a single file mode is active.")
            if output_path.suffix:
                if output_path.suffix.lower() != expected_suffix:
                    parser.error(f"--output extension {output_path.suffix} does not match the {file_modes[0]} mode.")
            else:
                output_path = output_path.with_suffix(expected_suffix)
        else:
            output_path = Path("progress.gif" if file_modes[0] == "gif" else f"mandelbrot{expected_suffix}")
        output_path = output_path.expanduser().resolve()
        if file_modes[0] == "gif":
            gif_path = output_path
        else:
            image_path = output_path
    else:
        base_dir = Path(opt.output).expanduser() if opt.output else Path.cwd()
        if base_dir.exists() and not base_dir.is_dir():
            parser.error("--output must be a directory when both gif and image modes are active.")
        gif_path = (base_dir / "progress.gif").resolve()
        image_path = (base_dir / f"mandelbrot.{image_format}").resolve()

    return OutputConfig(
        modes=modes_tuple,
        gif_path=gif_path,
        image_path=image_path,
        frame_dir=frame_dir_path,
        image_format=image_format,
    )


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write a single image to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    if pil_format == "JPEG" and image.mode == "RGBA":
        image = image.convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=pil_format)


def write_frame_sequence(image: PIL.Image.Image, frame_dir: Path, index: int, image_format: str) -> Path:
    """Persist a paint in a numbered sequence inside ``frame_dir``."""

    frame_path = frame_dir / f"paint{index:04d}.{image_format}"
    write_single_image(image, frame_path, image_format)
    return frame_path


_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
)


def _load_annotation_font(image: PIL.Image.Image) -> PIL.ImageFont.ImageFont:
    target_size = max(12, int(round(max(min(image.size), 1) * 0.028)))
    for path in _FONT_CANDIDATES:
        font_path = Path(path)
        if font_path.exists():
            try:
                return PIL.ImageFont.truetype(str(font_path), target_size)
            except OSError:
                continue
    return PIL.ImageFont.load_default()


def annotate_with_viewport(image: PIL.Image.Image, controller: NavigationController) -> PIL.Image.Image:
    """Overlay the committed viewport parameters on ``image``."""

    if image.mode != "RGBA":
        image = image.convert("RGBA")

    viewport = controller.viewport
    frame = controller.engine.frame
    lines = [
        f"Center @ ({viewport.center_re:.6g}, {viewport.center_im:.6g}i)",
        f"Width: {viewport.width:.6g}  Height: {viewport.height:.6g}",
    ]
    if frame is not None:
        lines.append(f"Iterations: {frame.max_iterations}  Scheme: {frame.color_scheme.label}")
    text = "\n".join(lines)

    overlay = PIL.Image.new("RGBA", image.size, (0, 0, 0, 0))
    draw = PIL.ImageDraw.Draw(overlay)
    font = _load_annotation_font(image)
    font_size = getattr(font, "size", 12)
    padding = max(6, int(round(font_size * 0.6)))
    spacing = max(2, int(round(font_size * 0.3)))

    left, top, right, bottom = draw.multiline_textbbox((0, 0), text, font=font, spacing=spacing)
    box = [(8, 8), (8 + right - left + padding * 2, 8 + bottom - top + padding * 2)]
    draw.rounded_rectangle(box, radius=max(4, padding), fill=(18, 22, 40, 190), outline=(255, 255, 255, 45))

    origin = (8 + padding - left, 8 + padding - top)
    shadow_offset = max(1, int(round(font_size * 0.08)))
    draw.multiline_text((origin[0] + shadow_offset, origin[1] + shadow_offset), text,
                        font=font, fill=(0, 0, 0, 170), spacing=spacing)
    draw.multiline_text(origin, text, font=font, fill=(240, 244, 255, 255), spacing=spacing)

    return PIL.Image.alpha_composite(image, overlay)


@dataclass
class OutputWriters:
    config: OutputConfig

    def __post_init__(self) -> None:
        self._frame_index = 0
        self._gif_writer: Any = None
        if "gif" in self.config.modes and self.config.gif_path is not None:
            self.config.gif_path.parent.mkdir(parents=True, exist_ok=True)
            self._gif_writer = imageio.get_writer(str(self.config.gif_path), mode='I', duration=0.1, loop=0)
        if self.config.frame_dir is not None:
            self.config.frame_dir.mkdir(parents=True, exist_ok=True)

    @property
    def records_progress(self) -> bool:
        return self._gif_writer is not None or self.config.frame_dir is not None

    def write_progress(self, frame_array: np.ndarray) -> None:
        if self._gif_writer is not None:
            self._gif_writer.append_data(frame_array)
        if self.config.frame_dir is not None:
            write_frame_sequence(
                PIL.Image.fromarray(frame_array),
                self.config.frame_dir,
                self._frame_index,
                self.config.image_format,
            )
        self._frame_index += 1

    def finalize(self, final_image: PIL.Image.Image | None) -> None:
        if "image" in self.config.modes and final_image is not None and self.config.image_path is not None:
            write_single_image(final_image, self.config.image_path, self.config.image_format)

    def close(self) -> None:
        if self._gif_writer is not None:
            self._gif_writer.close()
            self._gif_writer = None


class ScanLog:
    """Log scan lifecycle events, timing each scan from its start event."""

    def __init__(self) -> None:
        self.started_at: Optional[float] = None

    def started(self, event: ScanStarted) -> None:
        self.started_at = event.timestamp
        log("scan started: %s [%s]" % (event.viewport.describe(), event.color_scheme.label))

    def ended(self, event: ScanEnded) -> None:
        elapsed = event.timestamp - self.started_at if self.started_at is not None else 0.0
        self.started_at = None
        log("scan %s after %.3f s: %s" % (event.outcome.value, elapsed, event.viewport.describe()))


async def apply_action(controller: NavigationController, action: Action) -> None:
    if action.name == "zoom-in":
        await controller.zoom_in()
    elif action.name == "zoom-out":
        await controller.zoom_out()
    elif action.name == "reset":
        await controller.reset()
    elif action.name == "repaint":
        await controller.repaint()
    elif action.name == "scheme":
        controller.color_scheme = action.scheme
        await controller.repaint()
    elif action.name == "region":
        rect = SelectionRect.from_drag(action.start, action.end, controller.canvas_size)
        await controller.commit_region(rect)
    else:
        raise ValueError(f"Unknown action {action.name!r}")


async def paint_while_scanning(controller: NavigationController, canvas: Canvas,
                               writers: OutputWriters, interval: float) -> None:
    while controller.state is ControllerState.SCANNING:
        writers.write_progress(canvas.paint(controller.engine).copy())
        await asyncio.sleep(interval)


async def follow_scan(controller: NavigationController, canvas: Canvas, writers: OutputWriters,
                      paint_interval: float, time_limit: float | None) -> None:
    painter = None
    if writers.records_progress:
        painter = asyncio.ensure_future(paint_while_scanning(controller, canvas, writers, paint_interval))
    try:
        if time_limit is None:
            await controller.wait()
        else:
            try:
                await asyncio.wait_for(asyncio.shield(controller.wait()), time_limit)
            except asyncio.TimeoutError:
                log("scan exceeded %.3g s, cancelling" % time_limit)
                await controller.cancel()
    finally:
        if painter is not None:
            await painter

    canvas.paint(controller.engine)
    if writers.records_progress:
        writers.write_progress(canvas.buffer.copy())


async def run_session(opt, writers: OutputWriters) -> tuple[NavigationController, Canvas]:
    engine = ScanEngine(opt.width_px, opt.height_px, budget=opt.budget_ms / 1000.0, device=DEVICE)
    controller = NavigationController(engine, color_scheme=ColorScheme.from_label(opt.color_scheme))
    canvas = Canvas(opt.width_px, opt.height_px)
    scan_log = ScanLog()
    controller.on(ScanStarted, scan_log.started)
    controller.on(ScanEnded, scan_log.ended)

    actions = [Action(name="repaint"), *opt.actions]
    for i, action in enumerate(actions):
        print("action {0} out of {1}: {2}".format(i, len(actions), action.describe()), end='\r')
        if action.name == "region" and writers.records_progress:
            rect = SelectionRect.from_drag(action.start, action.end, controller.canvas_size)
            writers.write_progress(np.array(draw_selection(canvas.to_image(), rect)))
        try:
            await apply_action(controller, action)
        except InvalidRegion as exc:
            print(f"Skipping '{action.describe()}': {exc}")
            continue
        await follow_scan(controller, canvas, writers, opt.paint_interval, opt.time_limit)
    print()

    return controller, canvas


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    output_config = resolve_output_config(opt, parser)

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    writers = OutputWriters(output_config)
    try:
        controller, canvas = asyncio.run(run_session(opt, writers))
    finally:
        writers.close()

    final_image = canvas.to_image()
    if opt.show_coordinates:
        final_image = annotate_with_viewport(final_image, controller)
    writers.finalize(final_image)
    log(controller.viewport.describe())


if __name__ == '__main__':
    main()
