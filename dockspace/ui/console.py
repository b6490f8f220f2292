"""Dockspace console - themed console singleton with semantic message methods."""

import sys
from typing import Optional

from rich.console import Console as RichConsole
from rich.panel import Panel

from .theme import DOCKSPACE_THEME, PANEL_STYLES, SYMBOLS


class DockspaceConsole:
    """Themed console. Errors and warnings go to stderr so ``--json`` stdout stays clean."""

    _instance: Optional["DockspaceConsole"] = None

    def __new__(cls) -> "DockspaceConsole":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._console = RichConsole(theme=DOCKSPACE_THEME)
            cls._instance._err_console = RichConsole(theme=DOCKSPACE_THEME, stderr=True)
        return cls._instance

    @property
    def rich(self) -> RichConsole:
        return self._console

    def print(self, *args, **kwargs) -> None:
        self._console.print(*args, **kwargs)

    def success(self, message: str) -> None:
        self._console.print(f"[success_symbol]{SYMBOLS['success']}[/] [success]{message}[/]")

    def error(self, message: str, details: Optional[str] = None) -> None:
        self._err_console.print(f"[error_symbol]{SYMBOLS['error']}[/] [error]{message}[/]")
        if details:
            self._err_console.print(f"  [secondary]{details}[/]")

    def warning(self, message: str) -> None:
        self._err_console.print(f"[warning_symbol]{SYMBOLS['warning']}[/]  [warning]{message}[/]")

    def info(self, message: str) -> None:
        self._console.print(f"[info_symbol]{SYMBOLS['info']}[/] [info]{message}[/]")

    def secondary(self, message: str) -> None:
        self._console.print(f"  [secondary]{message}[/]")

    def blank(self) -> None:
        self._console.print()

    def panel(self, content, title: str = "", style: str = "default") -> None:
        panel_style = PANEL_STYLES.get(style, PANEL_STYLES["default"])
        self._console.print(Panel(content, title=f"─ {title} " if title else None, **panel_style))

    def json(self, payload: str) -> None:
        """Machine-readable output bypasses rich markup entirely."""
        sys.stdout.write(payload + "\n")
        sys.stdout.flush()


console = DockspaceConsole()
