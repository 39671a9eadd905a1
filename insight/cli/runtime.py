"""Shared wiring for the CLI commands."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from insight.core.models import CaptureIntent
from insight.pipeline.orchestrator import PipelineEvent, PipelineState
from insight.storage.store import StoreKeys

_FILE_KEYS = {
    CaptureIntent.OCR: ("ocr", StoreKeys.OCR_SERVICE_CONFIG),
    CaptureIntent.AI: ("ai", StoreKeys.AI_SERVICE_CONFIG),
}

_STATE_STYLES = {
    PipelineState.IDLE: "dim",
    PipelineState.CAPTURE_REQUESTED: "cyan",
    PipelineState.CAPTURE_READY: "cyan",
    PipelineState.CROPPED: "cyan",
    PipelineState.EXTRACTING: "blue",
    PipelineState.DONE: "green",
    PipelineState.FAILED: "red",
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def load_service_configs(path: Optional[str]) -> Dict[CaptureIntent, Optional[Dict[str, Any]]]:
    """Read service configs from a JSON file.

    The file holds ``{"ocr": {...}, "ai": {...}}``; the store key names
    (``ocrServiceConfig`` / ``aiServiceConfig``) are accepted too. Intents
    missing from the file fall back to the durable store.
    """

    configs: Dict[CaptureIntent, Optional[Dict[str, Any]]] = {intent: None for intent in CaptureIntent}
    if not path:
        return configs

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    for intent, keys in _FILE_KEYS.items():
        for key in keys:
            if isinstance(data.get(key), dict):
                configs[intent] = data[key]
                break
    return configs


def print_event(console: Console, event: PipelineEvent) -> None:
    style = _STATE_STYLES.get(event.state, "white")
    if event.error is not None:
        console.print(f"[{style}]{event.state.value}[/{style}] {event.error}")
        return
    if event.payload.get("cancelled"):
        console.print("[yellow]Selection cancelled[/yellow]")
        return
    details = {key: value for key, value in event.payload.items() if key != "text"}
    console.print(f"[{style}]{event.state.value}[/{style}] [dim]{details}[/dim]")


def is_terminal(event: PipelineEvent) -> bool:
    if event.state in (PipelineState.DONE, PipelineState.FAILED):
        return True
    return event.state is PipelineState.IDLE and bool(event.payload.get("cancelled"))
