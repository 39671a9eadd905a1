"""Core domain models and the pipeline error taxonomy."""

from .errors import (
    CaptureFailedError,
    ConfigMissingError,
    ErrorInfo,
    ErrorKind,
    InsightError,
    InvalidRegionError,
    PathNotFoundError,
    ServiceError,
)
from .models import (
    NO_TEXT_DETECTED,
    CaptureBundle,
    CaptureIntent,
    CaptureRequest,
    CroppedImage,
    ExtractionResult,
    SelectionRect,
    ViewportMetadata,
    normalize_text,
    utcnow,
)

__all__ = [
    "CaptureFailedError",
    "ConfigMissingError",
    "ErrorInfo",
    "ErrorKind",
    "InsightError",
    "InvalidRegionError",
    "PathNotFoundError",
    "ServiceError",
    "NO_TEXT_DETECTED",
    "CaptureBundle",
    "CaptureIntent",
    "CaptureRequest",
    "CroppedImage",
    "ExtractionResult",
    "SelectionRect",
    "ViewportMetadata",
    "normalize_text",
    "utcnow",
]
