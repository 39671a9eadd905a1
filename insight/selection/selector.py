"""Pointer-driven region selection state machine."""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from insight.config import get_settings
from insight.core.models import CaptureIntent, CaptureRequest, SelectionRect

from .surface import SelectionSurface

logger = logging.getLogger(__name__)

ESCAPE_KEY = "Escape"

CaptureCallback = Callable[[CaptureRequest], Union[Awaitable[Any], Any]]
StateCallback = Callable[["SelectorState"], Any]


class SelectorState(str, enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    DRAGGING = "dragging"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATES = (SelectorState.ARMED, SelectorState.DRAGGING)


class RegionSelector:
    """Turns pointer events on a host surface into one :class:`CaptureRequest`.

    A session runs ``IDLE -> ARMED -> DRAGGING -> COMPLETED | CANCELLED``.
    Only one session is active at a time; arming a new one cancels the
    previous. A finished selection must exceed ``min_size`` CSS pixels in
    both directions, otherwise the session is cancelled without a request.
    """

    def __init__(
        self,
        surface: SelectionSurface,
        *,
        min_size: Optional[float] = None,
        capture_delay: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._surface = surface
        self._min_size = settings.min_selection_size if min_size is None else min_size
        self._capture_delay = settings.capture_delay_seconds if capture_delay is None else capture_delay
        self._state = SelectorState.IDLE
        self._observers: List[StateCallback] = []
        self._on_capture: Optional[CaptureCallback] = None
        self._intent = CaptureIntent.OCR
        self._prompt = ""
        self._start: Optional[tuple[float, float]] = None
        self._rect: Optional[SelectionRect] = None

    @property
    def state(self) -> SelectorState:
        return self._state

    @property
    def rect(self) -> Optional[SelectionRect]:
        return self._rect

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    def on_state(self, callback: StateCallback) -> Callable[[], None]:
        """Register ``callback`` for state changes; returns an unsubscribe function."""

        self._observers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return _unsubscribe

    async def begin(
        self,
        on_capture: CaptureCallback,
        *,
        intent: CaptureIntent = CaptureIntent.OCR,
        prompt: str = "",
    ) -> None:
        if self.is_active:
            logger.info("Cancelling previous selection before arming a new one")
            await self.cancel()

        self._on_capture = on_capture
        self._intent = intent
        self._prompt = prompt
        self._start = None
        self._rect = None
        self._set_state(SelectorState.ARMED)
        if not await self._call_surface("mount", self._surface.mount()):
            return
        logger.debug("Selection armed", extra={"intent": intent.value})

    async def pointer_down(self, x: float, y: float) -> None:
        if self._state is not SelectorState.ARMED:
            return
        self._start = (x, y)
        self._rect = SelectionRect(left=x, top=y, width=0.0, height=0.0)
        self._set_state(SelectorState.DRAGGING)
        await self._call_surface("update_box", self._surface.update_box(self._rect))

    async def pointer_move(self, x: float, y: float) -> None:
        if self._state is not SelectorState.DRAGGING or self._start is None:
            return
        self._rect = SelectionRect.from_points(self._start[0], self._start[1], x, y)
        await self._call_surface("update_box", self._surface.update_box(self._rect))

    async def pointer_up(self, x: float, y: float) -> None:
        if self._state is not SelectorState.DRAGGING or self._start is None:
            return

        # Snapshot before anything can suspend.
        try:
            viewport = self._surface.read_viewport()
        except Exception as exc:
            logger.warning("Could not read viewport metadata", exc_info=exc)
            await self.cancel()
            return

        rect = SelectionRect.from_points(self._start[0], self._start[1], x, y).clamped(viewport)
        self._rect = rect
        if not (rect.width > self._min_size and rect.height > self._min_size):
            logger.debug(
                "Selection too small, cancelling",
                extra={"width": rect.width, "height": rect.height, "min_size": self._min_size},
            )
            await self.cancel()
            return

        on_capture = self._on_capture
        request = CaptureRequest(selection=rect, viewport=viewport, intent=self._intent, prompt=self._prompt)
        self._set_state(SelectorState.COMPLETED)
        await self._teardown()

        # Let the host repaint without the overlay before the viewport is captured.
        if self._capture_delay > 0:
            await asyncio.sleep(self._capture_delay)

        logger.info("Selection completed", extra={"selection": rect.to_dict()})
        if on_capture is None:
            return
        try:
            result = on_capture(request)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.warning("Capture callback failed", exc_info=exc)

    async def key_down(self, key: str) -> None:
        if key == ESCAPE_KEY and self.is_active:
            await self.cancel()

    async def cancel(self) -> None:
        """Abandon the active session without emitting a request."""

        if not self.is_active:
            return
        self._set_state(SelectorState.CANCELLED)
        await self._teardown()

    async def _teardown(self) -> None:
        self._on_capture = None
        self._start = None
        try:
            await self._surface.unmount()
        except Exception as exc:
            logger.warning("Selection surface failed to unmount", exc_info=exc)

    async def _call_surface(self, operation: str, awaitable: Awaitable[Any]) -> bool:
        try:
            await awaitable
            return True
        except Exception as exc:
            logger.warning("Selection surface failed", extra={"operation": operation}, exc_info=exc)
            await self.cancel()
            return False

    def _set_state(self, state: SelectorState) -> None:
        if state is self._state:
            return
        self._state = state
        for callback in list(self._observers):
            try:
                callback(state)
            except Exception as exc:
                logger.warning(f"State callback failed for {state.value}: {exc}")
