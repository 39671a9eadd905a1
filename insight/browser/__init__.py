"""Playwright host for the selection overlay and viewport capture."""

from .config import BrowserConfig, open_page
from .host import PlaywrightRasterSource, PlaywrightSelectionSurface

__all__ = ["BrowserConfig", "open_page", "PlaywrightRasterSource", "PlaywrightSelectionSurface"]
