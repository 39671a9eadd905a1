"""Integration-style tests for the pipeline orchestrator with stubbed hosts and services."""
from __future__ import annotations

import json
from io import BytesIO

import httpx
import pytest
from PIL import Image

from insight.capture import CaptureCoordinator, MessageBus
from insight.core.errors import ErrorKind
from insight.core.models import CaptureBundle, CaptureIntent, CaptureRequest, SelectionRect, ViewportMetadata
from insight.pipeline import PipelineEvent, PipelineOrchestrator, PipelineState
from insight.selection import RegionSelector
from insight.services import ServiceAdapter
from insight.storage import StoreKeys

LOCAL_OCR = {"service": "local", "serverUrl": "http://ocr.test/extract"}
OPENAI = {"service": "openai", "apiKey": "sk-test", "model": "gpt-4o"}


def _make_png_bytes(width: int = 200, height: int = 160) -> bytes:
    image = Image.new("RGB", (width, height), color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _viewport() -> ViewportMetadata:
    return ViewportMetadata(
        device_pixel_ratio=2.0, scroll_x=0, scroll_y=0, viewport_width=100, viewport_height=80
    )


def _pending_bundle(selection: SelectionRect, intent: CaptureIntent = CaptureIntent.OCR, prompt: str = "") -> dict:
    bundle = CaptureBundle(
        raster=_make_png_bytes(),
        selection=selection,
        viewport=_viewport(),
        intent=intent,
        prompt=prompt,
    )
    return bundle.to_dict()


class ServiceStub:
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self._response

    def adapter(self) -> ServiceAdapter:
        return ServiceAdapter(client=httpx.AsyncClient(transport=httpx.MockTransport(self)), timeout=5.0)


class FakeSurface:
    def __init__(self) -> None:
        self.mounted = False

    async def mount(self) -> None:
        self.mounted = True

    async def update_box(self, rect: SelectionRect) -> None:
        return None

    async def unmount(self) -> None:
        self.mounted = False

    def read_viewport(self) -> ViewportMetadata:
        return _viewport()


class RasterSourceStub:
    async def capture_viewport(self) -> bytes:
        return _make_png_bytes()


def _collect(orchestrator: PipelineOrchestrator) -> list[PipelineEvent]:
    events: list[PipelineEvent] = []
    orchestrator.on_event(events.append)
    return events


@pytest.mark.asyncio
async def test_process_pending_without_capture_returns_none(store) -> None:
    orchestrator = PipelineOrchestrator(store, ServiceStub(httpx.Response(200, json={})).adapter())
    events = _collect(orchestrator)

    assert await orchestrator.process_pending() is None
    assert events == []
    assert orchestrator.state is PipelineState.IDLE


@pytest.mark.asyncio
async def test_ocr_run_writes_results_and_consumes_capture(store, ledger) -> None:
    service = ServiceStub(httpx.Response(200, json={"extracted_text": "Invoice 42"}))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ledger=ledger, ocr_config=LOCAL_OCR)
    events = _collect(orchestrator)
    store.set(StoreKeys.PENDING_CAPTURE, _pending_bundle(SelectionRect(10, 10, 30, 20)))

    result = await orchestrator.process_pending()

    assert result.ok and result.text == "Invoice 42"
    assert [event.state for event in events] == [
        PipelineState.CAPTURE_READY,
        PipelineState.CROPPED,
        PipelineState.EXTRACTING,
        PipelineState.DONE,
    ]
    assert events[1].payload["width"] == 60
    assert events[1].payload["height"] == 40
    assert store.get(StoreKeys.LAST_EXTRACTED_TEXT) == "Invoice 42"
    assert store.get(StoreKeys.LAST_PREVIEW_IMAGE).startswith("data:image/png;base64,")
    assert store.get(StoreKeys.PENDING_CAPTURE) is None
    assert json.loads(service.requests[0].content)["image"].startswith("data:image/png;base64,")

    record = ledger.latest_finished()
    assert record["status"] == "completed"
    assert record["kind"] == "ocr"
    assert record["service"] == "local"

    assert await orchestrator.process_pending() is None
    assert len(service.requests) == 1


@pytest.mark.asyncio
async def test_invalid_region_fails_without_network(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"extracted_text": "x"}))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ocr_config=LOCAL_OCR)
    events = _collect(orchestrator)
    store.set(StoreKeys.PENDING_CAPTURE, _pending_bundle(SelectionRect(150, 150, 20, 20)))

    result = await orchestrator.process_pending()

    assert result.error.kind is ErrorKind.INVALID_REGION
    assert events[-1].state is PipelineState.FAILED
    assert events[-1].error.kind is ErrorKind.INVALID_REGION
    assert service.requests == []


@pytest.mark.asyncio
async def test_missing_config_fails_run(store) -> None:
    orchestrator = PipelineOrchestrator(store, ServiceStub(httpx.Response(200, json={})).adapter())
    events = _collect(orchestrator)
    store.set(StoreKeys.PENDING_CAPTURE, _pending_bundle(SelectionRect(10, 10, 30, 20)))

    result = await orchestrator.process_pending()

    assert result.error.kind is ErrorKind.CONFIG_MISSING
    assert orchestrator.state is PipelineState.FAILED
    assert events[-1].error.kind is ErrorKind.CONFIG_MISSING


@pytest.mark.asyncio
async def test_service_config_is_read_from_store(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"extracted_text": "from store"}))
    orchestrator = PipelineOrchestrator(store, service.adapter())
    store.set(StoreKeys.OCR_SERVICE_CONFIG, LOCAL_OCR)
    store.set(StoreKeys.PENDING_CAPTURE, _pending_bundle(SelectionRect(10, 10, 30, 20)))

    result = await orchestrator.process_pending()

    assert result.text == "from store"
    assert str(service.requests[0].url) == "http://ocr.test/extract"


@pytest.mark.asyncio
async def test_service_error_is_recorded(store, ledger) -> None:
    service = ServiceStub(httpx.Response(502))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ledger=ledger, ocr_config=LOCAL_OCR)
    events = _collect(orchestrator)
    store.set(StoreKeys.PENDING_CAPTURE, _pending_bundle(SelectionRect(10, 10, 30, 20)))

    result = await orchestrator.process_pending()

    assert result.error.status == 502
    assert events[-1].state is PipelineState.FAILED
    assert events[-1].error.status == 502
    assert ledger.latest_finished()["status"] == "error"
    assert store.get(StoreKeys.LAST_EXTRACTED_TEXT) is None


@pytest.mark.asyncio
async def test_ai_capture_sends_prompt_and_image(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"choices": [{"message": {"content": "A chart."}}]}))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ai_config=OPENAI)
    store.set(
        StoreKeys.PENDING_CAPTURE,
        _pending_bundle(SelectionRect(10, 10, 30, 20), intent=CaptureIntent.AI, prompt="What is shown?"),
    )

    result = await orchestrator.process_pending()

    assert result.text == "A chart."
    assert store.get(StoreKeys.LAST_AI_RESPONSE) == "A chart."
    content = json.loads(service.requests[0].content)["messages"][1]["content"]
    assert content[0]["text"] == "What is shown?"
    assert content[1]["type"] == "image_url"


@pytest.mark.asyncio
async def test_ask_without_image(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]}))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ai_config=OPENAI)
    events = _collect(orchestrator)

    result = await orchestrator.ask("Hello?")

    assert result.text == "No text detected"
    assert [event.state for event in events] == [PipelineState.EXTRACTING, PipelineState.DONE]
    payload = json.loads(service.requests[0].content)
    assert payload["messages"][1] == {"role": "user", "content": "Hello?"}


@pytest.mark.asyncio
async def test_full_run_from_selection_to_text(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"extracted_text": "Total: 12"}))
    bus = MessageBus()
    selector = RegionSelector(FakeSurface(), min_size=10, capture_delay=0)
    orchestrator = PipelineOrchestrator(
        store,
        service.adapter(),
        selector=selector,
        coordinator=CaptureCoordinator(RasterSourceStub(), store, bus),
        bus=bus,
        ocr_config=LOCAL_OCR,
    )
    events = _collect(orchestrator)

    await orchestrator.begin_selection(CaptureIntent.OCR)
    await selector.pointer_down(10, 10)
    await selector.pointer_move(30, 25)
    await selector.pointer_up(40, 30)
    await bus.drain()

    assert [event.state for event in events] == [
        PipelineState.CAPTURE_REQUESTED,
        PipelineState.CAPTURE_READY,
        PipelineState.CROPPED,
        PipelineState.EXTRACTING,
        PipelineState.DONE,
    ]
    assert events[0].payload["selection"] == {"left": 10, "top": 10, "width": 30, "height": 20}
    assert events[-1].payload["text"] == "Total: 12"
    assert store.get(StoreKeys.PENDING_CAPTURE) is None


@pytest.mark.asyncio
async def test_cancelled_selection_returns_to_idle(store) -> None:
    service = ServiceStub(httpx.Response(200, json={}))
    selector = RegionSelector(FakeSurface(), min_size=10, capture_delay=0)
    orchestrator = PipelineOrchestrator(
        store,
        service.adapter(),
        selector=selector,
        coordinator=CaptureCoordinator(RasterSourceStub(), store),
        ocr_config=LOCAL_OCR,
    )
    events = _collect(orchestrator)

    await orchestrator.begin_selection()
    await selector.key_down("Escape")

    assert orchestrator.state is PipelineState.IDLE
    assert events == [PipelineEvent(state=PipelineState.IDLE, payload={"cancelled": True})]
    assert service.requests == []


@pytest.mark.asyncio
async def test_only_newest_capture_is_processed(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"extracted_text": "newest"}))
    bus = MessageBus()
    coordinator = CaptureCoordinator(RasterSourceStub(), store, bus)
    orchestrator = PipelineOrchestrator(store, service.adapter(), bus=bus, ocr_config=LOCAL_OCR)
    events = _collect(orchestrator)

    stale = await coordinator.request_capture(
        CaptureRequest(selection=SelectionRect(10, 10, 30, 20), viewport=_viewport())
    )
    newest = await coordinator.request_capture(
        CaptureRequest(selection=SelectionRect(5, 5, 20, 10), viewport=_viewport())
    )
    await bus.drain()

    assert stale.ok and newest.ok
    assert len(service.requests) == 1
    cropped = [event for event in events if event.state is PipelineState.CROPPED]
    assert len(cropped) == 1
    assert cropped[0].payload["handle"] == newest.handle
    assert (cropped[0].payload["width"], cropped[0].payload["height"]) == (40, 20)
    assert store.get(StoreKeys.PENDING_CAPTURE) is None


@pytest.mark.asyncio
async def test_unclaimed_result_is_reported_then_acknowledged(store, ledger) -> None:
    service = ServiceStub(httpx.Response(502))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ledger=ledger, ocr_config=LOCAL_OCR)
    store.set(StoreKeys.PENDING_CAPTURE, _pending_bundle(SelectionRect(10, 10, 30, 20)))
    await orchestrator.process_pending()

    record = orchestrator.check_pending_results()

    assert record["status"] == "error"
    assert record["error_kind"] == "ServiceError"
    assert orchestrator.acknowledge_result(record["id"])
    assert orchestrator.check_pending_results() is None


@pytest.mark.asyncio
async def test_in_flight_request_is_reported_but_not_acknowledged(store, ledger) -> None:
    orchestrator = PipelineOrchestrator(store, ServiceStub(httpx.Response(200, json={})).adapter(), ledger=ledger)
    request_id = ledger.open("ai", "openai")

    record = orchestrator.check_pending_results()

    assert record["id"] == request_id
    assert record["status"] == "processing"
    assert not orchestrator.acknowledge_result(request_id)
    assert ledger.get(request_id) is not None


@pytest.mark.asyncio
async def test_ocr_without_image_fails_without_network(store) -> None:
    service = ServiceStub(httpx.Response(200, json={"extracted_text": "x"}))
    orchestrator = PipelineOrchestrator(store, service.adapter(), ocr_config=LOCAL_OCR)

    result = await orchestrator._extract(CaptureIntent.OCR, None, "")

    assert result.error.kind is ErrorKind.INVALID_REGION
    assert orchestrator.state is PipelineState.FAILED
    assert service.requests == []


@pytest.mark.asyncio
async def test_capture_request_without_coordinator_fails(store) -> None:
    orchestrator = PipelineOrchestrator(store, ServiceStub(httpx.Response(200, json={})).adapter())
    events = _collect(orchestrator)

    await orchestrator._on_capture_request(
        CaptureRequest(selection=SelectionRect(10, 10, 30, 20), viewport=_viewport())
    )

    assert events[-1].state is PipelineState.FAILED
    assert events[-1].error.kind is ErrorKind.CAPTURE_FAILED
