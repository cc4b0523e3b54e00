"""Interactive folder browser and scanner for wormsign."""

from wormsign.tui.app import TuiApp
from wormsign.tui.state import BrowserState, ViewMode

__all__ = ["BrowserState", "TuiApp", "ViewMode"]
