"""Data structures exchanged between the selector, coordinator and orchestrator."""
from __future__ import annotations

import base64
import enum
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, Mapping, Optional

from .errors import ErrorInfo, InvalidRegionError

NO_TEXT_DETECTED = "No text detected"


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(UTC)


class CaptureIntent(str, enum.Enum):
    """Which consumer path a captured region is meant for."""

    OCR = "ocr"
    AI = "ai"


@dataclass(slots=True)
class ViewportMetadata:
    """Viewport geometry snapshotted at the instant a selection is finalised."""

    device_pixel_ratio: float
    scroll_x: float
    scroll_y: float
    viewport_width: float
    viewport_height: float

    def validate(self) -> None:
        if not (self.viewport_width > 0 and self.viewport_height > 0):
            raise InvalidRegionError(
                f"viewport must have positive dimensions, got {self.viewport_width}x{self.viewport_height}"
            )
        if not math.isfinite(self.device_pixel_ratio) or self.device_pixel_ratio < 1:
            raise InvalidRegionError(f"invalid device pixel ratio {self.device_pixel_ratio!r}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "devicePixelRatio": self.device_pixel_ratio,
            "scrollX": self.scroll_x,
            "scrollY": self.scroll_y,
            "viewportWidth": self.viewport_width,
            "viewportHeight": self.viewport_height,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ViewportMetadata":
        """Build from either the wire shape or the page's ``window`` field names."""

        if not data:
            raise ValueError("viewport mapping cannot be empty")

        ratio = data.get("devicePixelRatio", data.get("zoomLevel", 1.0)) or 1.0
        width = data.get("viewportWidth", data.get("innerWidth", data.get("windowWidth")))
        height = data.get("viewportHeight", data.get("innerHeight", data.get("windowHeight")))
        if width is None or height is None:
            raise ValueError("viewport mapping must include width and height")

        return cls(
            device_pixel_ratio=max(1.0, float(ratio)),
            scroll_x=float(data.get("scrollX", 0.0)),
            scroll_y=float(data.get("scrollY", 0.0)),
            viewport_width=float(width),
            viewport_height=float(height),
        )


@dataclass(slots=True)
class SelectionRect:
    """User-drawn rectangle in viewport CSS pixels."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @classmethod
    def from_points(cls, start_x: float, start_y: float, end_x: float, end_y: float) -> "SelectionRect":
        return cls(
            left=min(start_x, end_x),
            top=min(start_y, end_y),
            width=abs(end_x - start_x),
            height=abs(end_y - start_y),
        )

    def validate(self) -> None:
        if not (self.width > 0 and self.height > 0):
            raise InvalidRegionError(
                f"selection must have positive dimensions, got {self.width}x{self.height}"
            )

    def clamped(self, viewport: ViewportMetadata) -> "SelectionRect":
        """Clip the rectangle to ``[0, viewport_width] x [0, viewport_height]``."""

        left = min(max(self.left, 0.0), viewport.viewport_width)
        top = min(max(self.top, 0.0), viewport.viewport_height)
        right = min(max(self.right, 0.0), viewport.viewport_width)
        bottom = min(max(self.bottom, 0.0), viewport.viewport_height)
        return SelectionRect(left=left, top=top, width=right - left, height=bottom - top)

    def to_dict(self) -> Dict[str, float]:
        return {"left": self.left, "top": self.top, "width": self.width, "height": self.height}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SelectionRect":
        if not data:
            raise ValueError("selection mapping cannot be empty")
        try:
            return cls(
                left=float(data["left"]),
                top=float(data["top"]),
                width=float(data["width"]),
                height=float(data["height"]),
            )
        except KeyError as exc:
            raise ValueError(f"selection mapping is missing {exc.args[0]!r}") from exc


@dataclass(slots=True)
class CaptureRequest:
    """Message emitted by the selector once a region has been drawn."""

    selection: SelectionRect
    viewport: ViewportMetadata
    intent: CaptureIntent = CaptureIntent.OCR
    prompt: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selection": self.selection.to_dict(),
            "viewport": self.viewport.to_dict(),
            "intent": self.intent.value,
            "prompt": self.prompt,
        }


@dataclass(slots=True)
class CaptureBundle:
    """Full-viewport raster plus the metadata needed to crop it later."""

    raster: bytes
    selection: SelectionRect
    viewport: ViewportMetadata
    intent: CaptureIntent = CaptureIntent.OCR
    prompt: str = ""
    captured_at: datetime = field(default_factory=utcnow)

    @property
    def handle(self) -> str:
        return f"capture-{self.captured_at.strftime('%Y%m%dT%H%M%S%f')}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raster": base64.b64encode(self.raster).decode("ascii"),
            "selection": self.selection.to_dict(),
            "viewport": self.viewport.to_dict(),
            "intent": self.intent.value,
            "prompt": self.prompt,
            "capturedAt": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CaptureBundle":
        captured_at = payload.get("capturedAt")
        return cls(
            raster=base64.b64decode(payload["raster"]),
            selection=SelectionRect.from_mapping(payload["selection"]),
            viewport=ViewportMetadata.from_mapping(payload["viewport"]),
            intent=CaptureIntent(payload.get("intent", CaptureIntent.OCR.value)),
            prompt=str(payload.get("prompt") or ""),
            captured_at=datetime.fromisoformat(captured_at) if captured_at else utcnow(),
        )


@dataclass(slots=True, frozen=True)
class CroppedImage:
    """PNG-encoded crop of a capture bundle."""

    data: bytes
    width: int
    height: int

    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:image/png;base64,{self.base64()}"


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of one service round trip: text on success, error otherwise."""

    text: Optional[str] = None
    error: Optional[ErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, text: str) -> "ExtractionResult":
        return cls(text=text)

    @classmethod
    def failure(cls, error: ErrorInfo) -> "ExtractionResult":
        return cls(error=error)

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"ok": False, "error": self.error.to_dict()}
        return {"ok": True, "text": self.text}


def normalize_text(value: Any) -> str:
    """Stringify a service result, mapping empty output to :data:`NO_TEXT_DETECTED`."""

    if value is None:
        return NO_TEXT_DETECTED
    text = str(value)
    return text if text.strip() else NO_TEXT_DETECTED
