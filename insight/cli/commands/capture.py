"""Select a region of a live page and run it through OCR or AI."""
from __future__ import annotations

import asyncio
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from insight.browser import BrowserConfig, PlaywrightRasterSource, PlaywrightSelectionSurface, open_page
from insight.capture import CaptureCoordinator, MessageBus
from insight.core.models import CaptureIntent
from insight.pipeline import PipelineEvent, PipelineOrchestrator, PipelineState
from insight.selection import RegionSelector
from insight.services import ServiceAdapter
from insight.storage import KeyValueStore, RequestLedger

from ..runtime import is_terminal, load_service_configs, print_event

console = Console()


@click.command(name="capture")
@click.argument("url")
@click.option("--ai", "use_ai", is_flag=True, help="Send the region to the AI service instead of OCR")
@click.option("--prompt", default="", help="Question to send along with the region (AI only)")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="JSON file with service configs")
@click.option("--browser", "browser_type", help="Playwright browser to use (chromium, firefox, webkit)")
def capture_command(url: str, use_ai: bool, prompt: str, config_file: Optional[str], browser_type: Optional[str]):
    """
    Open URL, draw a rectangle on it and extract its text.

    Examples:

      insight capture https://example.com

      insight capture https://example.com --ai --prompt "Summarise this"
    """
    intent = CaptureIntent.AI if use_ai else CaptureIntent.OCR
    asyncio.run(_capture(url, intent, prompt, config_file, browser_type))


async def _capture(
    url: str,
    intent: CaptureIntent,
    prompt: str,
    config_file: Optional[str],
    browser_type: Optional[str],
) -> None:
    configs = load_service_configs(config_file)
    store = KeyValueStore()
    bus = MessageBus()
    finished = asyncio.Event()
    outcome: dict = {}

    def on_event(event: PipelineEvent) -> None:
        print_event(console, event)
        if is_terminal(event):
            outcome["event"] = event
            finished.set()

    browser_config = BrowserConfig.from_settings(headless=False, browser_type=browser_type)
    async with ServiceAdapter() as adapter, open_page(browser_config, url) as page:
        surface = PlaywrightSelectionSurface(page)
        selector = RegionSelector(surface)
        await surface.attach(selector)

        orchestrator = PipelineOrchestrator(
            store,
            adapter,
            selector=selector,
            coordinator=CaptureCoordinator(PlaywrightRasterSource(page), store, bus),
            bus=bus,
            ledger=RequestLedger(),
            ocr_config=configs[CaptureIntent.OCR],
            ai_config=configs[CaptureIntent.AI],
        )
        orchestrator.on_event(on_event)

        console.print("[cyan]Draw a rectangle on the page. Press ESC to cancel.[/cyan]")
        await orchestrator.begin_selection(intent, prompt)
        await finished.wait()
        await bus.drain()

    event = outcome.get("event")
    if event is not None and event.state is PipelineState.DONE:
        title = "AI response" if intent is CaptureIntent.AI else "Extracted text"
        console.print(Panel(event.payload.get("text", ""), title=title, border_style="green"))
