"""Viewport geometry and the zoom history stack."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterator

import numpy as np

DEFAULT_SIDE = 4.0


class InvalidRegion(ValueError):
    """Raised when a candidate viewport cannot be scanned."""


@dataclass(frozen=True)
class Viewport:
    """Region of the complex plane mapped onto the display.

    Pixel rows advance along the real axis (spanned by ``height``) and pixel
    columns along the imaginary axis (spanned by ``width``).
    """

    center: tuple[float, float]
    width: float
    height: float

    @property
    def center_re(self) -> float:
        return self.center[0]

    @property
    def center_im(self) -> float:
        return self.center[1]

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.width)
            and math.isfinite(self.height)
            and self.width > 0.0
            and self.height > 0.0
            and all(math.isfinite(value) for value in self.center)
        )

    def zoomed(self, factor: float) -> "Viewport":
        """Scale both sides by ``factor`` around the unchanged center."""

        width = np.float64(self.width) * np.float64(factor)
        height = np.float64(self.height) * np.float64(factor)
        return replace(self, width=float(width), height=float(height))

    def pixel_spacing(self, width_px: int) -> float:
        return float(np.float64(self.width) / np.float64(width_px))

    def describe(self) -> str:
        return (
            f"Center @ ({self.center_re}, {self.center_im}i); "
            f"Width: {self.width}; Height: {self.height}"
        )


def default_viewport(width_px: int, height_px: int) -> Viewport:
    """Return the root view: a region inscribing the radius 2 circle."""

    ratio = width_px / height_px
    if ratio >= 1.0:
        return Viewport(center=(0.0, 0.0), width=DEFAULT_SIDE * ratio, height=DEFAULT_SIDE)
    return Viewport(center=(0.0, 0.0), width=DEFAULT_SIDE, height=DEFAULT_SIDE / ratio)


def validate_viewport(viewport: Viewport) -> Viewport:
    if not viewport.is_valid():
        raise InvalidRegion(
            f"viewport needs a finite center and positive finite sides, got {viewport!r}"
        )
    return viewport


def pixel_to_complex(viewport: Viewport, row, col, width_px: int) -> tuple[np.ndarray, np.ndarray]:
    """Map pixel-space positions to the sample points at those pixels' centers.

    ``row`` and ``col`` may be scalars or arrays; rows advance along the real
    axis and columns along the imaginary axis.
    """

    spacing = np.float64(viewport.pixel_spacing(width_px))
    re_min = np.float64(viewport.center_re) - np.float64(viewport.height) / 2.0
    im_min = np.float64(viewport.center_im) - np.float64(viewport.width) / 2.0
    re = re_min + spacing / 2.0 + np.asarray(row, dtype=np.float64) * spacing
    im = im_min + spacing / 2.0 + np.asarray(col, dtype=np.float64) * spacing
    return re, im


@dataclass(frozen=True)
class SelectionRect:
    """Pixel-space box dragged on the display, corners in any order."""

    x0: float
    y0: float
    x1: float
    y1: float

    @classmethod
    def from_drag(
        cls,
        start: tuple[float, float],
        end: tuple[float, float],
        canvas_size: tuple[int, int],
    ) -> "SelectionRect":
        """Clamp a drag to the canvas and lock it to the canvas aspect ratio.

        The longer side of the dragged box is shrunk so the box keeps the
        direction of the drag from ``start``.
        """

        canvas_w, canvas_h = canvas_size
        ratio = canvas_w / canvas_h
        x_ini, y_ini = start
        x = max(0.0, min(float(canvas_w), float(end[0])))
        y = max(0.0, min(float(canvas_h), float(end[1])))

        dis_x = abs(x - x_ini)
        dis_y = abs(y - y_ini)
        if dis_x > dis_y * ratio:
            dis_x = dis_y * ratio
        else:
            dis_y = dis_x / ratio

        x = x_ini - dis_x if x < x_ini else x_ini + dis_x
        y = y_ini - dis_y if y < y_ini else y_ini + dis_y
        return cls(x0=float(x_ini), y0=float(y_ini), x1=x, y1=y)

    def clamped(self, canvas_size: tuple[int, int]) -> "SelectionRect":
        canvas_w, canvas_h = canvas_size
        return SelectionRect(
            x0=max(0.0, min(self.x0, self.x1)),
            y0=max(0.0, min(self.y0, self.y1)),
            x1=min(float(canvas_w), max(self.x0, self.x1)),
            y1=min(float(canvas_h), max(self.y0, self.y1)),
        )


def region_from_selection(
    viewport: Viewport,
    rect: SelectionRect,
    canvas_size: tuple[int, int],
) -> Viewport:
    """Map a pixel-space selection linearly onto ``viewport``.

    The new height is derived from the new width and the canvas ratio, so the
    result keeps the display aspect even for a box that was not aspect-locked.
    """

    canvas_w, canvas_h = canvas_size
    ratio = canvas_w / canvas_h
    box = rect.clamped(canvas_size)

    top = np.float64(viewport.center_im) - np.float64(viewport.width) / 2.0
    left = np.float64(viewport.center_re) - np.float64(viewport.height) / 2.0
    center_im = top + ((box.x0 + box.x1) / 2.0) * np.float64(viewport.width) / canvas_w
    center_re = left + ((box.y0 + box.y1) / 2.0) * np.float64(viewport.height) / canvas_h
    width = (box.x1 - box.x0) * np.float64(viewport.width) / canvas_w
    height = width / ratio
    return Viewport(center=(float(center_re), float(center_im)), width=float(width), height=float(height))


class ZoomHistory:
    """Undo stack of committed viewports; never drops its root."""

    def __init__(self, root: Viewport) -> None:
        self._stack: list[Viewport] = [root]

    @property
    def root(self) -> Viewport:
        return self._stack[0]

    @property
    def current(self) -> Viewport:
        return self._stack[-1]

    def push(self, viewport: Viewport) -> Viewport:
        self._stack.append(viewport)
        return viewport

    def pop(self) -> Viewport:
        """Drop the top entry unless only the root remains; return the new top."""

        if len(self._stack) > 1:
            self._stack.pop()
        return self.current

    def truncate(self) -> Viewport:
        del self._stack[1:]
        return self.root

    def __len__(self) -> int:
        return len(self._stack)

    def __iter__(self) -> Iterator[Viewport]:
        return iter(self._stack)
