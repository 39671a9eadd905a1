"""Capture the viewport for a finished selection and hand it to the consumer."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from insight.core.errors import CaptureFailedError, ErrorInfo, InsightError
from insight.core.models import CaptureBundle, CaptureRequest
from insight.storage.store import KeyValueStore, StoreKeys

from .messaging import CAPTURE_READY, MessageBus

logger = logging.getLogger(__name__)


class RasterSource(Protocol):
    """Host primitive producing a PNG of the visible viewport."""

    async def capture_viewport(self) -> bytes:
        ...


@dataclass(slots=True)
class CaptureReply:
    """Structured answer returned to the selector's context."""

    ok: bool
    handle: Optional[str] = None
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok}
        if self.handle is not None:
            payload["handle"] = self.handle
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        return payload


class CaptureCoordinator:
    """Sole writer of the pending-capture slot."""

    def __init__(self, source: RasterSource, store: KeyValueStore, bus: Optional[MessageBus] = None) -> None:
        self._source = source
        self._store = store
        self._bus = bus

    async def request_capture(self, request: CaptureRequest) -> CaptureReply:
        try:
            request.selection.validate()
            request.viewport.validate()
        except InsightError as exc:
            logger.warning("Rejected capture request", extra={"error": exc.detail})
            return CaptureReply(ok=False, error=exc.to_info())

        try:
            raster = await self._source.capture_viewport()
        except InsightError as exc:
            logger.warning("Viewport capture failed", extra={"error": exc.detail})
            return CaptureReply(ok=False, error=exc.to_info())
        except Exception as exc:
            logger.warning("Viewport capture failed", exc_info=exc)
            return CaptureReply(ok=False, error=CaptureFailedError(str(exc) or exc.__class__.__name__).to_info())

        if not raster:
            return CaptureReply(ok=False, error=CaptureFailedError("host returned an empty capture").to_info())

        bundle = CaptureBundle(
            raster=raster,
            selection=request.selection,
            viewport=request.viewport,
            intent=request.intent,
            prompt=request.prompt,
        )
        try:
            self._store.set(StoreKeys.PENDING_CAPTURE, bundle.to_dict())
        except SQLAlchemyError as exc:
            logger.exception("Could not persist capture bundle")
            return CaptureReply(ok=False, error=CaptureFailedError(f"could not store capture: {exc}").to_info())

        logger.info("Capture stored", extra={"handle": bundle.handle, "bytes": len(raster)})
        self._notify(bundle)
        return CaptureReply(ok=True, handle=bundle.handle)

    def _notify(self, bundle: CaptureBundle) -> None:
        if self._bus is None:
            return
        try:
            self._bus.publish(CAPTURE_READY, {"handle": bundle.handle, "intent": bundle.intent.value})
        except Exception as exc:
            logger.warning("Capture notification failed", exc_info=exc)
