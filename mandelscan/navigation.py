"""Navigation over the fractal: zoom history, scan lifecycle and events."""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .coloring import ColorScheme
from .scanner import ScanEngine, ScanOutcome
from .viewport import (
    InvalidRegion,
    SelectionRect,
    Viewport,
    ZoomHistory,
    default_viewport,
    region_from_selection,
    validate_viewport,
)


class ControllerState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"


@dataclass(frozen=True)
class ScanStarted:
    center: tuple[float, float]
    width: float
    height: float
    color_scheme: ColorScheme
    success: bool
    timestamp: float

    @property
    def viewport(self) -> Viewport:
        return Viewport(center=self.center, width=self.width, height=self.height)


@dataclass(frozen=True)
class ScanEnded(ScanStarted):
    outcome: ScanOutcome = ScanOutcome.COMPLETED


ScanEvent = Union[ScanStarted, ScanEnded]
Handler = Callable[[ScanEvent], None]


class NavigationController:
    """Drive a ``ScanEngine`` through zoom, reset and repaint actions.

    Every action cancels the scan in flight and waits for it to stop before
    committing a new viewport, so at most one scan ever writes the engine's
    records. Actions are serialized on an asyncio lock.
    """

    def __init__(
        self,
        engine: ScanEngine,
        *,
        color_scheme: ColorScheme = ColorScheme.CHECKERED,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.engine = engine
        self.default_color_scheme = ColorScheme(color_scheme)
        self.color_scheme = self.default_color_scheme
        self.clock = clock
        self.history = ZoomHistory(default_viewport(engine.width_px, engine.height_px))
        self._handlers: dict[type, list[Handler]] = {ScanStarted: [], ScanEnded: []}
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def color_scheme(self) -> ColorScheme:
        """Scheme used by the next committed scan."""

        return self._color_scheme

    @color_scheme.setter
    def color_scheme(self, value: ColorScheme) -> None:
        self._color_scheme = ColorScheme(value)

    @property
    def viewport(self) -> Viewport:
        return self.history.current

    @property
    def canvas_size(self) -> tuple[int, int]:
        return self.engine.size

    @property
    def state(self) -> ControllerState:
        if self._task is not None and not self._task.done():
            return ControllerState.SCANNING
        return ControllerState.IDLE

    # -- events ---------------------------------------------------------------

    def on(self, event_type: type, handler: Handler) -> None:
        self._handlers_for(event_type).append(handler)

    def off(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers_for(event_type)
        if handler in handlers:
            handlers.remove(handler)

    def _handlers_for(self, event_type: type) -> list[Handler]:
        try:
            return self._handlers[event_type]
        except KeyError:
            raise ValueError(f"Unknown event type {event_type!r}; expected ScanStarted or ScanEnded.") from None

    def _dispatch(self, event: ScanEvent) -> None:
        for handler in list(self._handlers[type(event)]):
            handler(event)

    # -- actions --------------------------------------------------------------

    async def reset(self) -> None:
        async with self._lock:
            await self._stop_scan()
            self.color_scheme = self.default_color_scheme
            self._start_scan(self.history.truncate())

    async def repaint(self) -> None:
        async with self._lock:
            await self._stop_scan()
            self._start_scan(self.history.current)

    async def zoom_in(self) -> None:
        async with self._lock:
            candidate = validate_viewport(self.history.current.zoomed(0.5))
            await self._stop_scan()
            self._start_scan(self.history.push(candidate))

    async def zoom_out(self) -> None:
        async with self._lock:
            if len(self.history) == 1:
                return
            await self._stop_scan()
            self._start_scan(self.history.pop())

    async def commit_region(self, rect: SelectionRect) -> None:
        """Zoom into a pixel-space box selected on the current view."""

        async with self._lock:
            box = rect.clamped(self.canvas_size)
            if box.x1 <= box.x0 or box.y1 <= box.y0:
                raise InvalidRegion(f"selection {rect!r} does not cover any pixels")
            candidate = validate_viewport(
                region_from_selection(self.history.current, box, self.canvas_size)
            )
            await self._stop_scan()
            self._start_scan(self.history.push(candidate))

    async def cancel(self) -> None:
        await self._stop_scan()

    async def wait(self) -> Optional[ScanOutcome]:
        """Wait for the current scan, if any, and return its outcome."""

        if self._task is None:
            return None
        return await self._task

    # -- scan lifecycle -------------------------------------------------------

    async def _stop_scan(self) -> None:
        if self._task is None or self._task.done():
            return
        self.engine.cancel()
        await self._task

    def _start_scan(self, viewport: Viewport) -> None:
        color_scheme = self.color_scheme
        self._dispatch(self._event(ScanStarted, viewport, color_scheme, True))
        scan = self.engine.scan(viewport, color_scheme)
        self._task = asyncio.ensure_future(self._run_scan(scan, viewport, color_scheme))

    async def _run_scan(self, scan, viewport: Viewport, color_scheme: ColorScheme) -> ScanOutcome:
        outcome = await scan
        self._dispatch(
            self._event(ScanEnded, viewport, color_scheme, outcome is ScanOutcome.COMPLETED, outcome=outcome)
        )
        return outcome

    def _event(self, event_type: type, viewport: Viewport, color_scheme: ColorScheme, success: bool, **extra) -> ScanEvent:
        return event_type(
            center=viewport.center,
            width=viewport.width,
            height=viewport.height,
            color_scheme=color_scheme,
            success=success,
            timestamp=self.clock(),
            **extra,
        )
