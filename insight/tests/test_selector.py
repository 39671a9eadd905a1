"""Tests for the region selection state machine."""
from __future__ import annotations

import pytest

from insight.core.models import CaptureIntent, CaptureRequest, SelectionRect, ViewportMetadata
from insight.selection import RegionSelector, SelectorState


class FakeSurface:
    """Selection surface that records calls and reports a fixed viewport."""

    def __init__(self, *, fail_on: str | None = None) -> None:
        self.calls: list[str] = []
        self.boxes: list[SelectionRect] = []
        self.mounted = False
        self.viewport = ViewportMetadata(
            device_pixel_ratio=2.0,
            scroll_x=0.0,
            scroll_y=120.0,
            viewport_width=1000.0,
            viewport_height=800.0,
        )
        self._fail_on = fail_on

    async def mount(self) -> None:
        self.calls.append("mount")
        if self._fail_on == "mount":
            raise RuntimeError("page navigated away")
        self.mounted = True

    async def update_box(self, rect: SelectionRect) -> None:
        self.calls.append("update_box")
        if self._fail_on == "update_box":
            raise RuntimeError("element detached")
        self.boxes.append(rect)

    async def unmount(self) -> None:
        self.calls.append("unmount")
        self.mounted = False

    def read_viewport(self) -> ViewportMetadata:
        self.calls.append("read_viewport")
        # The overlay must still be up when the viewport is read.
        assert self.mounted
        return self.viewport


def _selector(surface: FakeSurface, min_size: float = 10) -> RegionSelector:
    return RegionSelector(surface, min_size=min_size, capture_delay=0)


@pytest.mark.asyncio
async def test_drag_emits_one_capture_request() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    requests: list[CaptureRequest] = []
    states: list[SelectorState] = []
    selector.on_state(states.append)

    await selector.begin(requests.append, intent=CaptureIntent.AI, prompt="explain")
    await selector.pointer_down(200, 150)
    await selector.pointer_move(120, 100)
    await selector.pointer_up(100, 100)

    assert selector.state is SelectorState.COMPLETED
    assert states == [SelectorState.ARMED, SelectorState.DRAGGING, SelectorState.COMPLETED]
    assert len(requests) == 1
    request = requests[0]
    assert request.selection == SelectionRect(left=100, top=100, width=100, height=50)
    assert request.viewport == surface.viewport
    assert request.intent is CaptureIntent.AI
    assert request.prompt == "explain"
    assert surface.calls.index("read_viewport") < surface.calls.index("unmount")
    assert not surface.mounted


@pytest.mark.asyncio
async def test_pointer_move_updates_box_geometry() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    await selector.begin(lambda request: None)

    await selector.pointer_down(50, 60)
    await selector.pointer_move(20, 100)

    assert surface.boxes[0] == SelectionRect(left=50, top=60, width=0, height=0)
    assert surface.boxes[-1] == SelectionRect(left=20, top=60, width=30, height=40)


@pytest.mark.asyncio
async def test_small_selection_is_cancelled_silently() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    requests: list[CaptureRequest] = []

    await selector.begin(requests.append)
    await selector.pointer_down(10, 10)
    await selector.pointer_up(20, 40)

    assert selector.state is SelectorState.CANCELLED
    assert requests == []
    assert not surface.mounted


@pytest.mark.asyncio
async def test_escape_cancels_active_session() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    requests: list[CaptureRequest] = []

    await selector.begin(requests.append)
    await selector.pointer_down(10, 10)
    await selector.key_down("Escape")
    await selector.pointer_up(300, 300)

    assert selector.state is SelectorState.CANCELLED
    assert requests == []


@pytest.mark.asyncio
async def test_other_keys_are_ignored() -> None:
    selector = _selector(FakeSurface())
    await selector.begin(lambda request: None)
    await selector.key_down("Enter")
    assert selector.state is SelectorState.ARMED


@pytest.mark.asyncio
async def test_begin_cancels_previous_session() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    first: list[CaptureRequest] = []
    second: list[CaptureRequest] = []
    states: list[SelectorState] = []
    selector.on_state(states.append)

    await selector.begin(first.append)
    await selector.pointer_down(0, 0)
    await selector.begin(second.append)
    await selector.pointer_down(0, 0)
    await selector.pointer_up(50, 50)

    assert SelectorState.CANCELLED in states
    assert first == []
    assert len(second) == 1


@pytest.mark.asyncio
async def test_surface_failure_collapses_to_cancelled() -> None:
    surface = FakeSurface(fail_on="update_box")
    selector = _selector(surface)
    requests: list[CaptureRequest] = []

    await selector.begin(requests.append)
    await selector.pointer_down(0, 0)

    assert selector.state is SelectorState.CANCELLED
    assert "unmount" in surface.calls
    await selector.pointer_up(100, 100)
    assert requests == []


@pytest.mark.asyncio
async def test_mount_failure_collapses_to_cancelled() -> None:
    selector = _selector(FakeSurface(fail_on="mount"))
    await selector.begin(lambda request: None)
    assert selector.state is SelectorState.CANCELLED


@pytest.mark.asyncio
async def test_async_capture_callback_is_awaited() -> None:
    selector = _selector(FakeSurface())
    received: list[CaptureRequest] = []

    async def on_capture(request: CaptureRequest) -> None:
        received.append(request)

    await selector.begin(on_capture)
    await selector.pointer_down(0, 0)
    await selector.pointer_up(40, 40)
    assert len(received) == 1


@pytest.mark.asyncio
async def test_drag_past_viewport_edge_is_clamped() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    requests: list[CaptureRequest] = []

    await selector.begin(requests.append)
    await selector.pointer_down(950, 700)
    await selector.pointer_up(1400, 1100)

    assert requests[0].selection == SelectionRect(left=950, top=700, width=50, height=100)


@pytest.mark.asyncio
async def test_min_size_applies_after_clamping() -> None:
    surface = FakeSurface()
    selector = _selector(surface)
    requests: list[CaptureRequest] = []

    await selector.begin(requests.append)
    await selector.pointer_down(995, 100)
    await selector.pointer_up(1200, 300)

    assert selector.state is SelectorState.CANCELLED
    assert requests == []
