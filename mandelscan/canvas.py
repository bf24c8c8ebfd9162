"""Painting pixel records into an RGBA buffer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import numpy as np
import PIL.Image
import PIL.ImageDraw

from .coloring import colorize

if TYPE_CHECKING:
    from .scanner import PixelRecords, ScanEngine, ScanFrame
    from .viewport import SelectionRect


def render(records: "PixelRecords", frame: Optional["ScanFrame"], buffer: np.ndarray) -> np.ndarray:
    """Paint every pixel still flagged in ``records`` into ``buffer``.

    ``buffer`` is an ``(height_px, width_px, 4)`` uint8 array. Pixels that the
    scan has not reached yet are painted black and stay flagged; the others
    are colored once and their flag is cleared. Safe to call mid-scan.
    """

    flat = buffer.reshape(-1, 4)
    if flat.shape[0] != len(records):
        raise ValueError(f"buffer holds {flat.shape[0]} pixels, records hold {len(records)}")

    pending = np.flatnonzero(records.needs_color)
    if pending.size == 0:
        return buffer

    scanned = pending[records.iterations[pending] > 0]
    flat[pending, :3] = 0
    if frame is not None and scanned.size:
        flat[scanned, :3] = colorize(records, scanned, frame)
        records.needs_color[scanned] = False
    flat[pending, 3] = 255
    return buffer


class Canvas:
    """Display surface holding the painted RGBA image of the engine's records."""

    def __init__(self, width_px: int, height_px: int) -> None:
        if width_px <= 0 or height_px <= 0:
            raise ValueError(f"canvas size must be positive, got {width_px}x{height_px}")
        self.width_px = int(width_px)
        self.height_px = int(height_px)
        self.buffer = np.zeros((self.height_px, self.width_px, 4), dtype=np.uint8)
        self.buffer[..., 3] = 255

    @property
    def size(self) -> tuple[int, int]:
        return self.width_px, self.height_px

    def paint(self, engine: "ScanEngine") -> np.ndarray:
        if engine.size != self.size:
            raise ValueError(f"engine size {engine.size} does not match canvas size {self.size}")
        return render(engine.records, engine.frame, self.buffer)

    def to_image(self) -> PIL.Image.Image:
        return PIL.Image.fromarray(self.buffer.copy())


def draw_selection(image: PIL.Image.Image, rect: "SelectionRect") -> PIL.Image.Image:
    """Outline a drag selection: a wide white stroke under a thin black one."""

    if image.mode != "RGBA":
        image = image.convert("RGBA")

    x0 = max(0.0, min(rect.x0, rect.x1))
    y0 = max(0.0, min(rect.y0, rect.y1))
    x1 = min(float(image.width), max(rect.x0, rect.x1))
    y1 = min(float(image.height), max(rect.y0, rect.y1))

    draw = PIL.ImageDraw.Draw(image, "RGBA")
    draw.rectangle([(x0, y0), (x1, y1)], outline=(255, 255, 255, 255), width=3)
    draw.rectangle([(x0, y0), (x1, y1)], outline=(0, 0, 0, 255), width=1)
    return image
