"""Tests for the capture coordinator and the notification bus."""
from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from insight.capture import CAPTURE_READY, CaptureCoordinator, MessageBus
from insight.core.errors import CaptureFailedError, ErrorKind
from insight.core.models import CaptureBundle, CaptureIntent, CaptureRequest, SelectionRect, ViewportMetadata
from insight.storage import StoreKeys


def _make_png_bytes(width: int = 20, height: int = 10) -> bytes:
    image = Image.new("RGB", (width, height), color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class RasterSourceStub:
    def __init__(self, raster: bytes = b"", error: Exception | None = None) -> None:
        self._raster = raster
        self._error = error
        self.calls = 0

    async def capture_viewport(self) -> bytes:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._raster


def _request(width: float = 10, height: float = 5) -> CaptureRequest:
    return CaptureRequest(
        selection=SelectionRect(left=2, top=3, width=width, height=height),
        viewport=ViewportMetadata(
            device_pixel_ratio=1.0, scroll_x=0, scroll_y=40, viewport_width=20, viewport_height=10
        ),
        intent=CaptureIntent.AI,
        prompt="what is this?",
    )


@pytest.mark.asyncio
async def test_request_capture_stores_bundle_and_notifies(store) -> None:
    raster = _make_png_bytes()
    bus = MessageBus()
    notifications: list[dict] = []
    bus.subscribe(CAPTURE_READY, notifications.append)
    coordinator = CaptureCoordinator(RasterSourceStub(raster), store, bus)

    reply = await coordinator.request_capture(_request())
    await bus.drain()

    assert reply.ok
    assert reply.error is None
    bundle = CaptureBundle.from_dict(store.get(StoreKeys.PENDING_CAPTURE))
    assert bundle.raster == raster
    assert bundle.handle == reply.handle
    assert bundle.selection == SelectionRect(left=2, top=3, width=10, height=5)
    assert bundle.viewport.scroll_y == 40
    assert bundle.intent is CaptureIntent.AI
    assert bundle.prompt == "what is this?"
    assert notifications == [{"handle": reply.handle, "intent": "ai"}]


@pytest.mark.asyncio
async def test_missing_listener_is_not_a_failure(store) -> None:
    coordinator = CaptureCoordinator(RasterSourceStub(_make_png_bytes()), store, MessageBus())
    reply = await coordinator.request_capture(_request())
    assert reply.ok
    assert store.get(StoreKeys.PENDING_CAPTURE) is not None


@pytest.mark.asyncio
async def test_degenerate_rectangle_is_rejected_locally(store) -> None:
    source = RasterSourceStub(_make_png_bytes())
    coordinator = CaptureCoordinator(source, store)

    reply = await coordinator.request_capture(_request(width=0))

    assert not reply.ok
    assert reply.error.kind is ErrorKind.INVALID_REGION
    assert source.calls == 0
    assert store.get(StoreKeys.PENDING_CAPTURE) is None


@pytest.mark.asyncio
async def test_capture_failure_is_reported(store) -> None:
    coordinator = CaptureCoordinator(RasterSourceStub(error=CaptureFailedError("rate limited")), store)
    reply = await coordinator.request_capture(_request())

    assert reply.to_dict() == {"ok": False, "error": {"kind": "CaptureFailed", "detail": "rate limited"}}
    assert store.get(StoreKeys.PENDING_CAPTURE) is None


@pytest.mark.asyncio
async def test_unexpected_capture_error_becomes_capture_failed(store) -> None:
    coordinator = CaptureCoordinator(RasterSourceStub(error=RuntimeError("tab closed")), store)
    reply = await coordinator.request_capture(_request())
    assert reply.error.kind is ErrorKind.CAPTURE_FAILED
    assert "tab closed" in reply.error.detail


@pytest.mark.asyncio
async def test_latest_capture_wins(store) -> None:
    coordinator = CaptureCoordinator(RasterSourceStub(_make_png_bytes()), store)
    await coordinator.request_capture(_request(width=4))
    await coordinator.request_capture(_request(width=6))
    assert store.get(StoreKeys.PENDING_CAPTURE)["selection"]["width"] == 6


@pytest.mark.asyncio
async def test_bus_handler_errors_are_contained() -> None:
    bus = MessageBus()
    received: list[dict] = []

    async def broken(message: dict) -> None:
        raise RuntimeError("listener crashed")

    bus.subscribe(CAPTURE_READY, broken)
    bus.subscribe(CAPTURE_READY, received.append)

    assert bus.publish(CAPTURE_READY, {"handle": "h"}) == 2
    await bus.drain()
    assert received == [{"handle": "h"}]
