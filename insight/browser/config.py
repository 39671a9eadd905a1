"""Browser launch settings and a page context manager for the CLI host."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

from playwright.async_api import Page, async_playwright

from insight.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 800}


@dataclass
class BrowserConfig:
    """Configuration for the browser hosting the selection overlay."""

    headless: bool = False
    browser_type: str = "chromium"  # chromium, firefox, webkit
    viewport: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    device_scale_factor: Optional[float] = None
    timeout: int = 30000  # milliseconds

    @classmethod
    def from_settings(cls, **overrides) -> "BrowserConfig":
        settings = get_settings()
        values = {"headless": settings.headless, "browser_type": settings.browser_type}
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@asynccontextmanager
async def open_page(config: Optional[BrowserConfig] = None, url: Optional[str] = None) -> AsyncIterator[Page]:
    """Launch a browser, open one page (optionally at ``url``) and close everything on exit."""

    config = config or BrowserConfig.from_settings()
    async with async_playwright() as playwright:
        launcher = getattr(playwright, config.browser_type, None)
        if launcher is None:
            raise ValueError(f"unsupported browser type {config.browser_type!r}")

        browser = await launcher.launch(headless=config.headless)
        context_options = {"viewport": config.viewport}
        if config.device_scale_factor:
            context_options["device_scale_factor"] = config.device_scale_factor
        context = await browser.new_context(**context_options)
        context.set_default_timeout(config.timeout)
        page = await context.new_page()
        logger.info(
            "Opened browser page",
            extra={"browser_type": config.browser_type, "headless": config.headless},
        )
        try:
            if url:
                await page.goto(url, wait_until="load")
            yield page
        finally:
            try:
                await context.close()
                await browser.close()
            except Exception as e:
                logger.error(f"Error closing browser session: {e}")
