"""Command-line interface for InSight."""
