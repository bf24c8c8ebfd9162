"""Row-by-row escape-time scanning with distance estimation."""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Callable, Generator, Optional

import numpy as np
import tensorflow as tf

from .coloring import ColorScheme
from .iteration import max_iterations
from .viewport import Viewport, pixel_to_complex

HORIZON_SQUARED = 4.0
LOG2_LOG2_2 = float(np.log2(np.log2(2.0)))

# Seconds of work between voluntary suspensions.
WAIT_SECONDS = 0.1


class ScanOutcome(enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PointResults:
    """Per-point results of the escape-time kernel."""

    iterations: np.ndarray
    final_angle: np.ndarray
    distance: np.ndarray
    dwell: np.ndarray


@dataclass(frozen=True)
class ScanFrame:
    """Everything needed to interpret the pixel records of one scan."""

    viewport: Viewport
    max_iterations: int
    pixel_spacing: float
    color_scheme: ColorScheme


@dataclass
class PixelRecords:
    """Row-major per-pixel scan results for a fixed display size."""

    iterations: np.ndarray
    final_angle: np.ndarray
    distance: np.ndarray
    dwell: np.ndarray
    needs_color: np.ndarray

    @classmethod
    def allocate(cls, size: int) -> "PixelRecords":
        records = cls(
            iterations=np.zeros(size, dtype=np.uint32),
            final_angle=np.zeros(size, dtype=np.float64),
            distance=np.zeros(size, dtype=np.float64),
            dwell=np.zeros(size, dtype=np.float64),
            needs_color=np.ones(size, dtype=bool),
        )
        return records

    def __len__(self) -> int:
        return int(self.iterations.size)

    def reset(self) -> None:
        self.iterations.fill(0)
        self.final_angle.fill(0.0)
        self.distance.fill(0.0)
        self.dwell.fill(0.0)
        self.needs_color.fill(True)

    def store(self, start: int, results: PointResults) -> None:
        stop = start + results.iterations.size
        self.iterations[start:stop] = results.iterations
        self.final_angle[start:stop] = results.final_angle
        self.distance[start:stop] = results.distance
        self.dwell[start:stop] = results.dwell


@tf.function
def _escape_step(
    cr: tf.Tensor,
    ci: tf.Tensor,
    zr: tf.Tensor,
    zi: tf.Tensor,
    dzr: tf.Tensor,
    dzi: tf.Tensor,
    ns: tf.Tensor,
    active: tf.Tensor,
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Advance z <- z^2 + c and dz <- 2 z dz + 1 for points still iterating."""

    zi_next = 2.0 * zr * zi + ci
    zr_next = zr * zr - zi * zi + cr
    dzr_next = 2.0 * (zr_next * dzr - zi_next * dzi) + 1.0
    dzi_next = 2.0 * (zr_next * dzi + zi_next * dzr)

    zr = tf.where(active, zr_next, zr)
    zi = tf.where(active, zi_next, zi)
    dzr = tf.where(active, dzr_next, dzr)
    dzi = tf.where(active, dzi_next, dzi)
    ns = ns + tf.cast(active, ns.dtype)
    return zr, zi, dzr, dzi, ns


@tf.function
def _escape_run(cr: tf.Tensor, ci: tf.Tensor, max_n: tf.Tensor) -> tuple[tf.Tensor, ...]:
    """Iterate every point until it escapes or reaches ``max_n``."""

    zeros = tf.zeros_like(ci)
    ns = tf.zeros(tf.shape(ci), dtype=tf.int32)
    active = tf.less(ns, max_n)

    def cond(zr, zi, dzr, dzi, ns, active):
        return tf.reduce_any(active)

    def body(zr, zi, dzr, dzi, ns, active):
        zr, zi, dzr, dzi, ns = _escape_step(cr, ci, zr, zi, dzr, dzi, ns, active)
        inside = tf.less_equal(zr * zr + zi * zi, HORIZON_SQUARED)
        active = tf.logical_and(active, tf.logical_and(inside, tf.less(ns, max_n)))
        return zr, zi, dzr, dzi, ns, active

    return tf.while_loop(cond, body, (zeros, zeros, zeros, zeros, ns, active))


def iterate_points(c_re, c_im, max_n: int, *, device: Optional[str] = None) -> PointResults:
    """Run the escape-time kernel over arrays of sample points.

    Points that never escape keep whatever the formulas give them (NaN or
    infinities included); callers decide which fields are meaningful.
    """

    c_re, c_im = np.broadcast_arrays(
        np.asarray(c_re, dtype=np.float64),
        np.asarray(c_im, dtype=np.float64),
    )
    shape = c_re.shape

    with tf.device(device if device is not None else "/CPU:0"):
        cr = tf.convert_to_tensor(c_re.ravel(), dtype=tf.float64)
        ci = tf.convert_to_tensor(c_im.ravel(), dtype=tf.float64)
        zr, zi, dzr, dzi, ns, _ = _escape_run(cr, ci, tf.constant(max_n, dtype=tf.int32))

    zr = zr.numpy()
    zi = zi.numpy()
    dzr = dzr.numpy()
    dzi = dzi.numpy()
    ns = ns.numpy()

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        mag_z = np.sqrt(zr * zr + zi * zi)
        mag_dz = np.sqrt(dzr * dzr + dzi * dzi)
        distance = np.log(mag_z * mag_z) * mag_z / mag_dz
        final_angle = np.arctan(zr / zi)
        dwell = ns + np.log2(np.log2(mag_z)) - LOG2_LOG2_2

    return PointResults(
        iterations=ns.astype(np.uint32).reshape(shape),
        final_angle=final_angle.reshape(shape),
        distance=distance.reshape(shape),
        dwell=dwell.reshape(shape),
    )


class ScanEngine:
    """Scan a viewport into pixel records, one row at a time.

    The engine shares its thread with the host: after each row it checks how
    long it has run since its last suspension and, past ``budget`` seconds,
    suspends so the host can paint or handle input. Cancellation is polled
    before every row.
    """

    def __init__(
        self,
        width_px: int,
        height_px: int,
        *,
        budget: float = WAIT_SECONDS,
        clock: Callable[[], float] = time.perf_counter,
        device: Optional[str] = None,
    ) -> None:
        if width_px <= 0 or height_px <= 0:
            raise ValueError(f"display size must be positive, got {width_px}x{height_px}")
        self.width_px = int(width_px)
        self.height_px = int(height_px)
        self.budget = budget
        self.clock = clock
        self.device = device
        self.records = PixelRecords.allocate(self.width_px * self.height_px)
        self.frame: Optional[ScanFrame] = None
        self.scanning = False
        self._scan_loop = False

    @property
    def size(self) -> tuple[int, int]:
        return self.width_px, self.height_px

    def scan_steps(
        self,
        viewport: Viewport,
        color_scheme: ColorScheme = ColorScheme.CHECKERED,
    ) -> Generator[int, None, ScanOutcome]:
        """Arm a scan of ``viewport`` and return its resumable sweep.

        The records are cleared and the scan is marked active before this
        returns, so a ``cancel()`` issued right after is never lost. Each
        ``next()`` runs rows until the time budget is spent and yields the
        last finished row; the generator returns the ``ScanOutcome``.
        """

        color_scheme = ColorScheme(color_scheme)
        self.records.reset()
        self.frame = ScanFrame(
            viewport=viewport,
            max_iterations=max_iterations(viewport.width, viewport.height),
            pixel_spacing=viewport.pixel_spacing(self.width_px),
            color_scheme=color_scheme,
        )
        self.scanning = True
        self._scan_loop = True
        return self._sweep(self.frame)

    def _sweep(self, frame: ScanFrame) -> Generator[int, None, ScanOutcome]:
        cr, _ = pixel_to_complex(frame.viewport, np.arange(self.height_px), 0, self.width_px)
        _, ci = pixel_to_complex(frame.viewport, 0, np.arange(self.width_px), self.width_px)

        try:
            t = self.clock()
            for i in range(self.height_px):
                if not self._scan_loop:
                    break
                row = iterate_points(cr[i], ci, frame.max_iterations, device=self.device)
                self.records.store(i * self.width_px, row)

                if self.clock() - t > self.budget:
                    yield i
                    t = self.clock()
        finally:
            self.scanning = False

        return ScanOutcome.COMPLETED if self._scan_loop else ScanOutcome.CANCELLED

    def scan(self, viewport: Viewport, color_scheme: ColorScheme = ColorScheme.CHECKERED):
        """Arm a scan and return a coroutine that runs it on the event loop."""

        return self._drive(self.scan_steps(viewport, color_scheme))

    async def _drive(self, steps: Generator[int, None, ScanOutcome]) -> ScanOutcome:
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value
            await asyncio.sleep(0)

    def cancel(self) -> bool:
        """Ask the running scan to stop at the next row boundary."""

        was_running = self.scanning and self._scan_loop
        self._scan_loop = False
        return was_running
