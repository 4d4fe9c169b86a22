"""Console size queries with an environment-based fallback."""

from __future__ import annotations

import sys
from typing import Any, Mapping

import structlog

from termctl.config import load_settings
from termctl.core.constants import DEFAULT_COLUMNS, DEFAULT_ROWS
from termctl.core.size import ConsoleSize
from termctl.errors import DeviceUnavailable, InvalidArgument, PlatformUnsupported
from termctl.platform import Backend, default_backend

logger = structlog.get_logger()


def default_size(environ: Mapping[str, str] | None = None) -> ConsoleSize:
    """LINES/COLUMNS from the environment, else 24 rows by 80 columns. Never fails."""
    settings = load_settings(environ)
    return ConsoleSize(settings.lines or DEFAULT_ROWS, settings.columns or DEFAULT_COLUMNS)


class ConsoleSizeProbe:
    """Reads (and on POSIX, sets) the window size of the console behind a stream."""

    def __init__(self, stream: Any = None, backend: Backend | None = None) -> None:
        self.stream = sys.stdout if stream is None else stream
        self._backend = backend or default_backend()

    def _fileno(self) -> int:
        if isinstance(self.stream, int) and not isinstance(self.stream, bool):
            return self.stream
        try:
            return self.stream.fileno()
        except (AttributeError, ValueError, OSError) as exc:
            raise DeviceUnavailable(0, f"{self.stream!r} is not a console") from exc

    def size(self) -> ConsoleSize:
        """Query the device; DeviceUnavailable when the stream is not a terminal."""
        fd = self._fileno()
        if not self._backend.is_terminal(fd):
            raise DeviceUnavailable(0, f"fd {fd} is not a terminal")
        return self._backend.window_size(fd)

    def set_size(self, rows: int, columns: int, pixel_width: int = 0, pixel_height: int = 0) -> None:
        """Change the window size the device reports."""
        values = (rows, columns, pixel_width, pixel_height)
        for value in values:
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFF:
                raise InvalidArgument(f"window dimensions must be 0-65535, got {values}")
        fd = self._fileno()
        if not self._backend.is_terminal(fd):
            raise DeviceUnavailable(0, f"fd {fd} is not a terminal")
        self._backend.set_window_size(fd, ConsoleSize(*values))

    def default_size(self) -> ConsoleSize:
        return default_size()

    def size_or_default(self) -> ConsoleSize:
        """size(), or default_size() when the stream is not a usable console."""
        try:
            current = self.size()
        except (DeviceUnavailable, PlatformUnsupported) as exc:
            logger.debug("console_size_fallback", reason=str(exc))
            return default_size()
        if current.rows <= 0 or current.columns <= 0:
            logger.debug("console_size_fallback", reason="device reported zero size")
            return default_size()
        return current


def console_size(stream: Any = None) -> ConsoleSize:
    """Size of ``stream`` (default stdout), falling back to default_size()."""
    return ConsoleSizeProbe(stream).size_or_default()
