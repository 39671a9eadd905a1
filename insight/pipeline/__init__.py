"""Consumer-side sequencing of a capture run."""

from .orchestrator import PipelineEvent, PipelineOrchestrator, PipelineState

__all__ = ["PipelineEvent", "PipelineOrchestrator", "PipelineState"]
