"""InSight: web page region capture routed through pluggable OCR and AI services."""

from .core import (
	CaptureBundle,
	CaptureIntent,
	CaptureRequest,
	CroppedImage,
	ErrorInfo,
	ErrorKind,
	ExtractionResult,
	InsightError,
	SelectionRect,
	ViewportMetadata,
)

from .capture import CaptureCoordinator, CaptureReply, MessageBus
from .pipeline import PipelineEvent, PipelineOrchestrator, PipelineState
from .selection import RegionSelector, SelectionSurface, SelectorState
from .services import ServiceAdapter, service_config_from_dict
from .vision import crop_capture

__all__ = [
	"CaptureBundle",
	"CaptureIntent",
	"CaptureRequest",
	"CroppedImage",
	"ErrorInfo",
	"ErrorKind",
	"ExtractionResult",
	"InsightError",
	"SelectionRect",
	"ViewportMetadata",
	"CaptureCoordinator",
	"CaptureReply",
	"MessageBus",
	"PipelineEvent",
	"PipelineOrchestrator",
	"PipelineState",
	"RegionSelector",
	"SelectionSurface",
	"SelectorState",
	"ServiceAdapter",
	"service_config_from_dict",
	"crop_capture",
]
