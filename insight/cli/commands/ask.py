"""Send a question to the AI service without capturing anything."""
from __future__ import annotations

import asyncio
from io import BytesIO
from pathlib import Path
from typing import Optional

import click
from PIL import Image
from rich.console import Console
from rich.panel import Panel

from insight.core.models import CaptureIntent, CroppedImage
from insight.pipeline import PipelineOrchestrator
from insight.services import ServiceAdapter
from insight.storage import KeyValueStore, RequestLedger

from ..runtime import load_service_configs

console = Console()


def _load_image(path: str) -> CroppedImage:
    with Image.open(path) as image:
        output = BytesIO()
        image.save(output, format="PNG")
        return CroppedImage(data=output.getvalue(), width=image.width, height=image.height)


@click.command(name="ask")
@click.argument("prompt")
@click.option("--image", "image_path", type=click.Path(exists=True, dir_okay=False), help="Image to send with the prompt")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="JSON file with service configs")
def ask_command(prompt: str, image_path: Optional[str], config_file: Optional[str]):
    """
    Ask the configured AI service a question.

    PROMPT: The question to send.
    """
    asyncio.run(_ask(prompt, image_path, config_file))


async def _ask(prompt: str, image_path: Optional[str], config_file: Optional[str]) -> None:
    configs = load_service_configs(config_file)
    image = _load_image(image_path) if image_path else None

    async with ServiceAdapter() as adapter:
        orchestrator = PipelineOrchestrator(
            KeyValueStore(),
            adapter,
            ledger=RequestLedger(),
            ai_config=configs[CaptureIntent.AI],
        )
        with console.status("[bold blue]Waiting for the AI service..."):
            result = await orchestrator.ask(prompt, image)

    if result.ok:
        title = f"AI response ({Path(image_path).name})" if image_path else "AI response"
        console.print(Panel(result.text or "", title=title, border_style="green"))
    else:
        console.print(f"[red]Error:[/red] {result.error}")
