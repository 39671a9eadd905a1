"""Consume a capture left in the durable store by an earlier session."""
from __future__ import annotations

import asyncio
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from insight.core.models import CaptureIntent
from insight.pipeline import PipelineEvent, PipelineOrchestrator
from insight.services import ServiceAdapter
from insight.storage import KeyValueStore, RequestLedger, StoreKeys

from ..runtime import load_service_configs, print_event

console = Console()


@click.command(name="pending")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="JSON file with service configs")
def pending_command(config_file: Optional[str]):
    """Process the pending capture, if there is one."""
    asyncio.run(_process_pending(config_file))


async def _process_pending(config_file: Optional[str]) -> None:
    configs = load_service_configs(config_file)

    def on_event(event: PipelineEvent) -> None:
        print_event(console, event)

    async with ServiceAdapter() as adapter:
        store = KeyValueStore()
        orchestrator = PipelineOrchestrator(
            store,
            adapter,
            ledger=RequestLedger(),
            ocr_config=configs[CaptureIntent.OCR],
            ai_config=configs[CaptureIntent.AI],
        )
        orchestrator.on_event(on_event)
        result = await orchestrator.resume()

        if result is None:
            _show_unclaimed(orchestrator, store)
            return

        if result.ok:
            console.print(Panel(result.text or "", title="Result", border_style="green"))
        # This run's ledger entry has already been displayed.
        shown = orchestrator.check_pending_results()
        if shown is not None:
            orchestrator.acknowledge_result(shown["id"])


def _show_unclaimed(orchestrator: PipelineOrchestrator, store: KeyValueStore) -> None:
    record = orchestrator.check_pending_results()
    if record is None:
        console.print("[dim]Nothing pending.[/dim]")
        last = store.get_many([StoreKeys.LAST_EXTRACTED_TEXT, StoreKeys.LAST_AI_RESPONSE])
        for key, value in last.items():
            console.print(f"[dim]{key}:[/dim] {value}")
        return

    if record["status"] == "error":
        console.print(
            Panel(
                record["error_message"] or "",
                title=f"{record['kind'].upper()} request failed ({record['error_kind']})",
                border_style="red",
            )
        )
    elif record["status"] == "completed":
        console.print(
            Panel(record["result"] or "", title=f"{record['kind'].upper()} result", border_style="green")
        )
    else:
        console.print(f"[yellow]{record['kind'].upper()} request is still processing[/yellow]")
        return

    orchestrator.acknowledge_result(record["id"])
