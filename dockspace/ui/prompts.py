"""Interactive confirmation for gated plan steps."""

from rich.prompt import Confirm

from .console import console


class RichConfirmer:
    """Asks on the terminal. An empty answer, EOF or Ctrl-C all mean no."""

    def ask(self, prompt: str) -> bool:
        try:
            return Confirm.ask(f"[highlight]{prompt}[/]", default=False, console=console.rich)
        except (KeyboardInterrupt, EOFError):
            console.blank()
            return False
