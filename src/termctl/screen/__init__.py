"""Cursor control and console size utilities."""

from termctl.screen.cursor import AnsiScreen, NullScreen, Screen, Win32Screen, screen_for
from termctl.screen.size import ConsoleSizeProbe, console_size, default_size

__all__ = [
    "AnsiScreen",
    "NullScreen",
    "Screen",
    "Win32Screen",
    "screen_for",
    "ConsoleSizeProbe",
    "console_size",
    "default_size",
]
