"""Public API for incremental Mandelbrot scanning and navigation."""

from .canvas import Canvas, draw_selection, render
from .coloring import ColorScheme, checkered, checkered_grayscale, color_pixel, colorize
from .iteration import max_iterations
from .navigation import ControllerState, NavigationController, ScanEnded, ScanStarted
from .scanner import PixelRecords, PointResults, ScanEngine, ScanFrame, ScanOutcome, iterate_points
from .viewport import (
    InvalidRegion,
    SelectionRect,
    Viewport,
    ZoomHistory,
    default_viewport,
    pixel_to_complex,
    region_from_selection,
)

__all__ = [
    "Canvas",
    "ColorScheme",
    "ControllerState",
    "InvalidRegion",
    "NavigationController",
    "PixelRecords",
    "PointResults",
    "ScanEnded",
    "ScanEngine",
    "ScanFrame",
    "ScanOutcome",
    "ScanStarted",
    "SelectionRect",
    "Viewport",
    "ZoomHistory",
    "checkered",
    "checkered_grayscale",
    "color_pixel",
    "colorize",
    "default_viewport",
    "draw_selection",
    "iterate_points",
    "max_iterations",
    "pixel_to_complex",
    "region_from_selection",
    "render",
]
