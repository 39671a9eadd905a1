"""Error taxonomy shared by every stage of the capture pipeline."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


class ErrorKind(str, enum.Enum):
    """Terminal failure categories reported to the consumer."""

    CAPTURE_FAILED = "CaptureFailed"
    INVALID_REGION = "InvalidRegion"
    SERVICE_ERROR = "ServiceError"
    PATH_NOT_FOUND = "PathNotFound"
    CONFIG_MISSING = "ConfigMissing"


@dataclass(slots=True, frozen=True)
class ErrorInfo:
    """JSON-safe description of a failure that may cross a context boundary."""

    kind: ErrorKind
    detail: str
    status: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value, "detail": self.detail}
        if self.status is not None:
            payload["status"] = self.status
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ErrorInfo":
        status = payload.get("status")
        return cls(
            kind=ErrorKind(payload["kind"]),
            detail=str(payload.get("detail", "")),
            status=int(status) if status is not None else None,
        )

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.status is not None:
            return f"{self.kind.value} ({self.status}): {self.detail}"
        return f"{self.kind.value}: {self.detail}"


class InsightError(Exception):
    """Base class for pipeline failures raised inside a single context."""

    kind: ErrorKind = ErrorKind.SERVICE_ERROR

    def __init__(self, detail: str, *, status: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status = status

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, detail=self.detail, status=self.status)


class CaptureFailedError(InsightError):
    """The host raster primitive refused or errored."""

    kind = ErrorKind.CAPTURE_FAILED


class InvalidRegionError(InsightError):
    """The selection or the derived crop box is degenerate."""

    kind = ErrorKind.INVALID_REGION


class ServiceError(InsightError):
    """Non-2xx response, transport failure or provider-reported processing error."""

    kind = ErrorKind.SERVICE_ERROR


class PathNotFoundError(InsightError):
    """The response path could not be resolved against the response document."""

    kind = ErrorKind.PATH_NOT_FOUND


class ConfigMissingError(InsightError):
    """A required provider field is absent or unusable."""

    kind = ErrorKind.CONFIG_MISSING
