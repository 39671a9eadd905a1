"""CLI commands for InSight."""

from . import ask, capture, pending, requests

__all__ = ["ask", "capture", "pending", "requests"]
