"""Adaptive iteration limit for a scan region."""

from __future__ import annotations

# (minimum side strictly greater than, iteration cap); checked in order.
ITERATION_STEPS: tuple[tuple[float, int], ...] = (
    (4.0 / 10.0, 250),
    (4.0 / 100.0, 1000),
    (4.0 / 1000.0, 2500),
    (4.0 / 10000.0, 5000),
    (4.0 / 100000.0, 10000),
    (4.0 / 1000000.0, 25000),
)
DEEPEST_ITERATIONS = 50000


def max_iterations(width: float, height: float) -> int:
    """Pick the iteration cap for a region from its smaller side.

    Smaller regions sit closer to the boundary and need more iterations to
    separate escaping points from interior ones.
    """

    min_dim = min(width, height)
    for threshold, iterations in ITERATION_STEPS:
        if min_dim > threshold:
            return iterations
    return DEEPEST_ITERATIONS
