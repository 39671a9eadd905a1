"""Playwright implementations of the selection surface and the raster source."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from insight.core.errors import CaptureFailedError
from insight.core.models import SelectionRect, ViewportMetadata

if TYPE_CHECKING:
    from insight.selection.selector import RegionSelector

logger = logging.getLogger(__name__)

BINDING_NAME = "__insightSelection"

VIEWPORT_SCRIPT = """
() => ({
    devicePixelRatio: window.devicePixelRatio || 1,
    scrollX: window.scrollX,
    scrollY: window.scrollY,
    innerWidth: window.innerWidth,
    innerHeight: window.innerHeight,
})
"""

MOUNT_SCRIPT = """
(binding) => {
    if (document.getElementById('insight-overlay')) {
        return;
    }
    const viewport = () => ({
        devicePixelRatio: window.devicePixelRatio || 1,
        scrollX: window.scrollX,
        scrollY: window.scrollY,
        innerWidth: window.innerWidth,
        innerHeight: window.innerHeight,
    });
    const send = (type, event) => window[binding]({
        type,
        x: event.clientX,
        y: event.clientY,
        key: event.key || null,
        viewport: viewport(),
    });

    const overlay = document.createElement('div');
    overlay.id = 'insight-overlay';
    Object.assign(overlay.style, {
        position: 'fixed', top: '0', left: '0', width: '100%', height: '100%',
        backgroundColor: 'rgba(0, 0, 0, 0.3)', zIndex: '2147483647', cursor: 'crosshair',
    });

    const box = document.createElement('div');
    box.id = 'insight-selection-box';
    Object.assign(box.style, {
        position: 'fixed', border: '2px dashed #fff', backgroundColor: 'rgba(66, 133, 244, 0.1)',
        display: 'none', zIndex: '2147483648', pointerEvents: 'none',
    });

    const instructions = document.createElement('div');
    instructions.id = 'insight-instructions';
    instructions.textContent = 'Click and drag to select an area. Press ESC to cancel.';
    Object.assign(instructions.style, {
        position: 'fixed', top: '10px', left: '50%', transform: 'translateX(-50%)',
        backgroundColor: 'rgba(0, 0, 0, 0.7)', color: 'white', padding: '10px 20px',
        borderRadius: '4px', fontSize: '14px', zIndex: '2147483649', pointerEvents: 'none',
    });

    const handlers = {
        mousedown: (event) => { event.preventDefault(); send('down', event); },
        mousemove: (event) => send('move', event),
        mouseup: (event) => send('up', event),
    };
    const onKey = (event) => { if (event.key === 'Escape') { send('key', event); } };
    for (const [name, handler] of Object.entries(handlers)) {
        overlay.addEventListener(name, handler);
    }
    document.addEventListener('keydown', onKey, true);
    window.__insightTeardown = () => document.removeEventListener('keydown', onKey, true);

    document.body.appendChild(overlay);
    document.body.appendChild(box);
    document.body.appendChild(instructions);
}
"""

UPDATE_SCRIPT = """
(rect) => {
    const box = document.getElementById('insight-selection-box');
    if (!box) {
        return;
    }
    box.style.left = rect.left + 'px';
    box.style.top = rect.top + 'px';
    box.style.width = rect.width + 'px';
    box.style.height = rect.height + 'px';
    box.style.display = 'block';
}
"""

UNMOUNT_SCRIPT = """
() => {
    for (const id of ['insight-overlay', 'insight-selection-box', 'insight-instructions']) {
        const element = document.getElementById(id);
        if (element) {
            element.remove();
        }
    }
    if (window.__insightTeardown) {
        window.__insightTeardown();
        delete window.__insightTeardown;
    }
}
"""


class PlaywrightSelectionSurface:
    """Draws the selection overlay into a Playwright page and relays its pointer events."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._selector: Optional["RegionSelector"] = None
        self._viewport: Optional[ViewportMetadata] = None
        self._bound = False
        self._dispatch_lock = asyncio.Lock()

    async def attach(self, selector: "RegionSelector") -> None:
        """Route page events to ``selector``; must run before the selector is armed."""

        self._selector = selector
        if not self._bound:
            await self._page.expose_binding(BINDING_NAME, self._on_page_event)
            self._bound = True

    async def mount(self) -> None:
        self._viewport = ViewportMetadata.from_mapping(await self._page.evaluate(VIEWPORT_SCRIPT))
        await self._page.evaluate(MOUNT_SCRIPT, BINDING_NAME)

    async def update_box(self, rect: SelectionRect) -> None:
        await self._page.evaluate(UPDATE_SCRIPT, rect.to_dict())

    async def unmount(self) -> None:
        await self._page.evaluate(UNMOUNT_SCRIPT)

    def read_viewport(self) -> ViewportMetadata:
        # Refreshed from the payload of every pointer event, so on pointer-up it
        # describes the page at the moment the button was released.
        if self._viewport is None:
            raise RuntimeError("viewport has not been reported by the page yet")
        return self._viewport

    async def _on_page_event(self, source: Any, event: Dict[str, Any]) -> None:
        selector = self._selector
        if selector is None:
            return
        async with self._dispatch_lock:
            viewport = event.get("viewport")
            if viewport:
                self._viewport = ViewportMetadata.from_mapping(viewport)

            kind = event.get("type")
            x = float(event.get("x") or 0.0)
            y = float(event.get("y") or 0.0)
            if kind == "down":
                await selector.pointer_down(x, y)
            elif kind == "move":
                await selector.pointer_move(x, y)
            elif kind == "up":
                await selector.pointer_up(x, y)
            elif kind == "key":
                await selector.key_down(str(event.get("key") or ""))
            else:
                logger.debug("Ignoring page event", extra={"event_type": kind})


class PlaywrightRasterSource:
    """Captures the visible viewport of a Playwright page as PNG bytes."""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def capture_viewport(self) -> bytes:
        try:
            return await self._page.screenshot(type="png", full_page=False)
        except PlaywrightError as exc:
            raise CaptureFailedError(f"viewport capture failed: {exc}") from exc
