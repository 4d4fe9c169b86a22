"""Platform backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from termctl.core.mode import ModeDescriptor, RawOptions
from termctl.core.size import ConsoleSize
from termctl.errors import PlatformUnsupported


@dataclass(frozen=True)
class ScreenInfo:
    """Cursor and window geometry of a native console (zero-based)."""
    cursor_row: int
    cursor_column: int
    width: int
    height: int
    window_top: int = 0
    window_height: int = 0
    attributes: int = 0


class Backend(ABC):
    """
    Discipline and device access for one host platform.

    Exactly one backend is chosen per process (see ``default_backend``); the
    rest of the package never branches on the platform itself.
    """

    name: str = "abstract"

    @abstractmethod
    def get_mode(self, fd: int) -> ModeDescriptor:
        """Capture the current discipline of ``fd``."""

    @abstractmethod
    def set_mode(self, fd: int, descriptor: ModeDescriptor) -> ModeDescriptor:
        """Apply ``descriptor`` all-or-nothing and return the previous mode."""

    @abstractmethod
    def make_raw(self, current: ModeDescriptor, options: RawOptions) -> ModeDescriptor:
        """Derive the raw discipline from ``current``."""

    @abstractmethod
    def make_cooked(self, current: ModeDescriptor) -> ModeDescriptor:
        """Derive the canonical, echoing discipline from ``current``."""

    @abstractmethod
    def make_noecho(self, current: ModeDescriptor) -> ModeDescriptor:
        """Derive ``current`` with echo turned off."""

    @abstractmethod
    def make_echo(self, current: ModeDescriptor) -> ModeDescriptor:
        """Derive ``current`` with echo turned back on, companion bits included."""

    @abstractmethod
    def flush(self, fd: int, queue: str) -> None:
        """Discard pending data; ``queue`` is "input", "output" or "both"."""

    @abstractmethod
    def pending_bytes(self, fd: int) -> int | None:
        """Unread byte count held by the kernel, or None if it cannot tell."""

    @abstractmethod
    def window_size(self, fd: int) -> ConsoleSize:
        """Query the window size of the console behind ``fd``."""

    @abstractmethod
    def set_window_size(self, fd: int, size: ConsoleSize) -> None:
        """Change the window size of the console behind ``fd``."""

    @abstractmethod
    def open_console(self) -> tuple[int, int]:
        """Open the controlling console, returning (input_fd, output_fd)."""

    @abstractmethod
    def is_terminal(self, fd: int) -> bool:
        """True if ``fd`` refers to a terminal or console."""

    def supports_sequences(self, fd: int | None) -> bool:
        """True if output to ``fd`` understands cursor control sequences."""
        return True

    # Native console screen access, only meaningful where sequences are not.

    def screen_info(self, fd: int) -> ScreenInfo:
        raise PlatformUnsupported(f"{self.name} backend has no native screen API")

    def set_cursor(self, fd: int, row: int, column: int) -> None:
        raise PlatformUnsupported(f"{self.name} backend has no native screen API")

    def fill_blank(self, fd: int, row: int, column: int, count: int, attributes: int) -> None:
        raise PlatformUnsupported(f"{self.name} backend has no native screen API")
