"""Terminal discipline control."""

from termctl.control.terminal import TerminalController

__all__ = ["TerminalController"]
