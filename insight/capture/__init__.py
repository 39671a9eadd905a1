"""Viewport capture and cross-context notification."""

from .coordinator import CaptureCoordinator, CaptureReply, RasterSource
from .messaging import CAPTURE_READY, MessageBus

__all__ = ["CaptureCoordinator", "CaptureReply", "RasterSource", "CAPTURE_READY", "MessageBus"]
