"""Color schemes turning pixel records into RGB."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Callable

import numpy as np
from matplotlib.colors import hsv_to_rgb

if TYPE_CHECKING:
    from .scanner import PixelRecords, ScanFrame

LOG_BIG_NUM = float(np.log(1000000.0))
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


class ColorScheme(enum.IntEnum):
    CHECKERED = 0
    CHECKERED_GRAYSCALE = 1

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")

    @classmethod
    def from_label(cls, label: str) -> "ColorScheme":
        try:
            return cls[label.strip().upper().replace("-", "_")]
        except KeyError:
            choices = ", ".join(scheme.label for scheme in cls)
            raise ValueError(f"Unknown color scheme '{label}'. Valid choices: {choices}.") from None


def checkered(
    iterations: np.ndarray,
    dwell: np.ndarray,
    distance: np.ndarray,
    final_angle: np.ndarray,
    max_iterations: int,
    pixel_spacing: float,
) -> np.ndarray:
    """Checkerboard banding by dwell, shaded by distance to the boundary.

    Returns an ``(N, 3)`` float array in ``[0, 255]``. Interior points are
    white and pixels not scanned yet (zero iterations) are black. See
    https://mrob.com/pub/muency/color.html for the scheme.
    """

    iterations = np.asarray(iterations)
    rgb = np.zeros(iterations.shape + (3,), dtype=np.float64)
    rgb[iterations >= max_iterations] = 255.0
    escaped = (iterations > 0) & (iterations < max_iterations)
    if not np.any(escaped):
        return rgb

    dwell = np.asarray(dwell, dtype=np.float64)[escaped]
    distance = np.asarray(distance, dtype=np.float64)[escaped]
    final_angle = np.asarray(final_angle, dtype=np.float64)[escaped]

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        dwell_floor = np.floor(dwell)
        frac = dwell - dwell_floor
        dscale = np.log2(distance / pixel_spacing)

        value = np.where(dscale > 0.0, 1.0, np.where(dscale > -10.0, (10.0 + dscale) / 10.0, 0.0))

        p = np.log(dwell_floor) / LOG_BIG_NUM
        low = p < 0.5
        p = np.where(low, 1.0 - 1.5 * p, 1.5 * p - 0.5)
        angle = np.where(low, 1.0 - p, p)
        radius = np.sqrt(p)

        odd = np.abs(np.fmod(dwell_floor, 2.0)) == 1.0
        value = np.where(odd, value * 0.85, value)
        radius = np.where(odd, radius * 0.667, radius)

        angle = angle + np.where(final_angle > 0.0, 0.02, 0.0)
        angle = angle + 0.0001 * frac

        hue = angle * 10.0
        hue = hue - np.floor(hue)
        saturation = radius - np.floor(radius)

    rgb[escaped] = hsv_to_rgb(np.stack((hue, saturation, value), axis=-1)) * 255.0
    return rgb


def checkered_grayscale(
    iterations: np.ndarray,
    dwell: np.ndarray,
    distance: np.ndarray,
    final_angle: np.ndarray,
    max_iterations: int,
    pixel_spacing: float,
) -> np.ndarray:
    """Luma of the checkered colors, rounded half up, on all three channels."""

    rgb = checkered(iterations, dwell, distance, final_angle, max_iterations, pixel_spacing)
    gray = np.floor(rgb @ LUMA_WEIGHTS + 0.5)
    return np.repeat(gray[..., np.newaxis], 3, axis=-1)


PALETTES: dict[ColorScheme, Callable[..., np.ndarray]] = {
    ColorScheme.CHECKERED: checkered,
    ColorScheme.CHECKERED_GRAYSCALE: checkered_grayscale,
}


def colorize(records: "PixelRecords", indices: np.ndarray, frame: "ScanFrame") -> np.ndarray:
    """Color the pixels at ``indices`` with the frame's scheme as uint8 RGB."""

    indices = np.asarray(indices, dtype=np.intp)
    iterations = records.iterations[indices]
    palette = PALETTES[frame.color_scheme]
    rgb = palette(
        iterations,
        records.dwell[indices],
        records.distance[indices],
        records.final_angle[indices],
        frame.max_iterations,
        frame.pixel_spacing,
    )
    return np.rint(np.clip(rgb, 0.0, 255.0)).astype(np.uint8)


def color_pixel(records: "PixelRecords", k: int, frame: "ScanFrame") -> tuple[int, int, int]:
    r, g, b = colorize(records, np.array([k]), frame)[0]
    return int(r), int(g), int(b)
