"""Dockspace UI - terminal rendering and prompts."""

from .console import DockspaceConsole, console
from .prompts import RichConfirmer
from .render import render_history, render_plan, render_report, render_snapshot
from .theme import COLORS, DOCKSPACE_THEME, PANEL_STYLES, SYMBOLS

__all__ = [
    "console", "DockspaceConsole", "COLORS", "SYMBOLS", "DOCKSPACE_THEME", "PANEL_STYLES",
    "RichConfirmer",
    "render_snapshot", "render_plan", "render_report", "render_history",
]
