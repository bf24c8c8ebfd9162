import itertools

import pytest


class TickClock:
    """Clock advancing one second per reading, so every row exceeds the budget."""

    def __init__(self):
        self._ticks = itertools.count()

    def __call__(self):
        return float(next(self._ticks))


@pytest.fixture
def tick_clock():
    return TickClock()


def run_to_end(steps):
    """Drive a scan generator, returning (outcome, rows yielded at)."""

    yielded = []
    while True:
        try:
            yielded.append(next(steps))
        except StopIteration as stop:
            return stop.value, yielded
