"""Sequence selection, capture, crop and extraction for the consumer context."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from insight.capture.coordinator import CaptureCoordinator
from insight.capture.messaging import CAPTURE_READY, MessageBus
from insight.core.errors import (
    CaptureFailedError,
    ConfigMissingError,
    ErrorInfo,
    InsightError,
    InvalidRegionError,
)
from insight.core.models import (
    CaptureBundle,
    CaptureIntent,
    CaptureRequest,
    CroppedImage,
    ExtractionResult,
)
from insight.selection.selector import RegionSelector, SelectorState
from insight.services.adapter import ConfigLike, ServiceAdapter
from insight.services.config import CustomProviderConfig, FixedProviderConfig
from insight.storage.requests import FINISHED_STATUSES, RequestLedger
from insight.storage.store import KeyValueStore, StoreKeys
from insight.vision.crop import crop_capture

logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    CAPTURE_REQUESTED = "capture_requested"
    CAPTURE_READY = "capture_ready"
    CROPPED = "cropped"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class PipelineEvent:
    """State transition reported to the presentation layer."""

    state: PipelineState
    payload: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"state": self.state.value, "payload": dict(self.payload)}
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


EventCallback = Callable[[PipelineEvent], Any]

_CONFIG_KEYS = {
    CaptureIntent.OCR: StoreKeys.OCR_SERVICE_CONFIG,
    CaptureIntent.AI: StoreKeys.AI_SERVICE_CONFIG,
}


def _service_label(config: ConfigLike) -> str:
    if isinstance(config, (FixedProviderConfig, CustomProviderConfig)):
        return config.label
    return str(config.get("service") or "unknown")


class PipelineOrchestrator:
    """Consumer side of the capture pipeline.

    A run moves ``IDLE -> CAPTURE_REQUESTED -> CAPTURE_READY -> CROPPED ->
    EXTRACTING -> DONE``; any failure ends it in ``FAILED`` with the
    originating :class:`ErrorInfo`. Failures are reported through events
    and return values, never raised.
    """

    def __init__(
        self,
        store: KeyValueStore,
        adapter: ServiceAdapter,
        *,
        selector: Optional[RegionSelector] = None,
        coordinator: Optional[CaptureCoordinator] = None,
        bus: Optional[MessageBus] = None,
        ledger: Optional[RequestLedger] = None,
        ocr_config: Optional[ConfigLike] = None,
        ai_config: Optional[ConfigLike] = None,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._selector = selector
        self._coordinator = coordinator
        self._bus = bus
        self._ledger = ledger
        self._configs: Dict[CaptureIntent, Optional[ConfigLike]] = {
            CaptureIntent.OCR: ocr_config,
            CaptureIntent.AI: ai_config,
        }
        self._callbacks: List[EventCallback] = []
        self._state = PipelineState.IDLE

        if selector is not None:
            selector.on_state(self._on_selector_state)
        if bus is not None:
            bus.subscribe(CAPTURE_READY, self._on_capture_ready)

    @property
    def state(self) -> PipelineState:
        return self._state

    def on_event(self, callback: EventCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    async def begin_selection(self, intent: CaptureIntent = CaptureIntent.OCR, prompt: str = "") -> None:
        """Arm the selector; the rest of the run is driven by pointer events."""

        if self._selector is None or self._coordinator is None:
            raise RuntimeError("begin_selection requires a selector and a capture coordinator")
        self._state = PipelineState.IDLE
        await self._selector.begin(self._on_capture_request, intent=intent, prompt=prompt)

    async def resume(self) -> Optional[ExtractionResult]:
        """Startup poll: tidy the request ledger and consume any capture left behind."""

        if self._ledger is not None:
            self._ledger.cleanup()
            for record in self._ledger.recoverable():
                logger.info(
                    "Service request still in flight",
                    extra={"request_id": record["id"], "kind": record["kind"], "status": record["status"]},
                )
        return await self.process_pending()

    def check_pending_results(self) -> Optional[Dict[str, Any]]:
        """Report the result a previous consumer never picked up.

        Returns the most recent finished request (errors first), otherwise the
        newest request still in flight, otherwise ``None``.
        """

        if self._ledger is None:
            return None
        finished = self._ledger.latest_finished()
        if finished is not None:
            return finished
        in_flight = self._ledger.recoverable()
        return in_flight[-1] if in_flight else None

    def acknowledge_result(self, request_id: int) -> bool:
        """Drop a finished request once its result has been shown."""

        if self._ledger is None:
            return False
        record = self._ledger.get(request_id)
        if record is None or record["status"] not in FINISHED_STATUSES:
            return False
        return self._ledger.acknowledge(request_id)

    async def process_pending(self) -> Optional[ExtractionResult]:
        """Consume the pending capture, if any, and run crop plus extraction on it."""

        try:
            payload = self._store.take(StoreKeys.PENDING_CAPTURE)
        except SQLAlchemyError as exc:
            logger.exception("Could not read pending capture")
            return self._fail(CaptureFailedError(f"could not read pending capture: {exc}").to_info())
        if payload is None:
            logger.debug("No pending capture")
            return None

        try:
            bundle = CaptureBundle.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable capture bundle", exc_info=exc)
            return self._fail(CaptureFailedError(f"pending capture is unreadable: {exc}").to_info())

        self._emit(PipelineState.CAPTURE_READY, {"handle": bundle.handle, "intent": bundle.intent.value})

        try:
            cropped = crop_capture(bundle.raster, bundle.viewport, bundle.selection)
        except InsightError as exc:
            return self._fail(exc.to_info(), {"handle": bundle.handle})

        self._store.set(StoreKeys.LAST_PREVIEW_IMAGE, cropped.data_url())
        self._emit(
            PipelineState.CROPPED,
            {"handle": bundle.handle, "width": cropped.width, "height": cropped.height},
        )

        prompt = bundle.prompt if bundle.intent is CaptureIntent.AI else ""
        return await self._extract(bundle.intent, cropped, prompt, handle=bundle.handle)

    async def ask(self, prompt: str, image: Optional[CroppedImage] = None) -> ExtractionResult:
        """Send ``prompt`` (and optionally ``image``) to the AI service outside a capture run."""

        self._state = PipelineState.IDLE
        return await self._extract(CaptureIntent.AI, image, prompt)

    async def _extract(
        self,
        intent: CaptureIntent,
        image: Optional[CroppedImage],
        prompt: str,
        *,
        handle: Optional[str] = None,
    ) -> ExtractionResult:
        base_payload: Dict[str, Any] = {"intent": intent.value}
        if handle is not None:
            base_payload["handle"] = handle

        if intent is CaptureIntent.OCR and image is None:
            return self._fail(InvalidRegionError("OCR needs a cropped image").to_info(), base_payload)

        config = self._config_for(intent)
        if config is None:
            error = ConfigMissingError(f"no {intent.value} service configured").to_info()
            return self._fail(error, base_payload)

        service = _service_label(config)
        self._emit(PipelineState.EXTRACTING, {**base_payload, "service": service})
        request_id = self._ledger.open(intent.value, service, capture_handle=handle) if self._ledger else None

        if image is not None and intent is CaptureIntent.OCR:
            result = await self._adapter.extract_text(image, config)
        else:
            result = await self._adapter.query(prompt, image, config)

        if not result.ok:
            if self._ledger is not None and request_id is not None:
                self._ledger.fail(request_id, result.error)
            self._fail(result.error, {**base_payload, "service": service})
            return result

        result_key = StoreKeys.LAST_AI_RESPONSE if intent is CaptureIntent.AI else StoreKeys.LAST_EXTRACTED_TEXT
        self._store.set(result_key, result.text)
        if self._ledger is not None and request_id is not None:
            self._ledger.complete(request_id, result.text or "")
        self._emit(PipelineState.DONE, {**base_payload, "service": service, "text": result.text})
        return result

    def _config_for(self, intent: CaptureIntent) -> Optional[ConfigLike]:
        configured = self._configs.get(intent)
        if configured is not None:
            return configured
        stored = self._store.get(_CONFIG_KEYS[intent])
        if isinstance(stored, Mapping) and stored:
            return stored
        return None

    async def _on_capture_request(self, request: CaptureRequest) -> None:
        if self._coordinator is None:
            self._fail(CaptureFailedError("no capture coordinator configured").to_info())
            return
        self._emit(PipelineState.CAPTURE_REQUESTED, {"selection": request.selection.to_dict()})
        reply = await self._coordinator.request_capture(request)
        if not reply.ok:
            self._fail(reply.error or CaptureFailedError("capture failed").to_info())
            return
        if self._bus is None:
            await self.process_pending()

    async def _on_capture_ready(self, message: Dict[str, Any]) -> None:
        logger.debug("Capture ready notification", extra={"handle": message.get("handle")})
        await self.process_pending()

    def _on_selector_state(self, state: SelectorState) -> None:
        if state is SelectorState.CANCELLED:
            self._emit(PipelineState.IDLE, {"cancelled": True})

    def _fail(self, error: ErrorInfo, payload: Optional[Dict[str, Any]] = None) -> ExtractionResult:
        logger.warning("Pipeline run failed", extra={"kind": error.kind.value, "detail": error.detail})
        self._emit(PipelineState.FAILED, payload, error)
        return ExtractionResult.failure(error)

    def _emit(
        self,
        state: PipelineState,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[ErrorInfo] = None,
    ) -> None:
        self._state = state
        event = PipelineEvent(state=state, payload=dict(payload or {}), error=error)
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as exc:
                logger.warning(f"Event callback failed for {state.value}: {exc}")
