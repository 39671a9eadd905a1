"""Region selection on a host page."""

from .selector import RegionSelector, SelectorState
from .surface import SelectionSurface

__all__ = ["RegionSelector", "SelectorState", "SelectionSurface"]
