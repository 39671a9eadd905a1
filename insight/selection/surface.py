"""Host interface the region selector draws through."""
from __future__ import annotations

from typing import Protocol

from insight.core.models import SelectionRect, ViewportMetadata


class SelectionSurface(Protocol):
    """Protocol describing the overlay a host page must provide."""

    async def mount(self) -> None:
        """Show the dimming overlay, the instructions and an empty selection box."""

    async def update_box(self, rect: SelectionRect) -> None:
        """Move and resize the selection box."""

    async def unmount(self) -> None:
        """Remove every element added by :meth:`mount`."""

    def read_viewport(self) -> ViewportMetadata:
        """Return the viewport geometry as it is right now.

        Synchronous so the selector can read it in the same step that
        finalises the rectangle.
        """
