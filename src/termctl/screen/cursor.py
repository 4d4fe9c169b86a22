"""Cursor movement, erasing and scrolling."""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from typing import Any

from termctl.core.constants import CSI, ERASE_LINE_MODES, ERASE_SCREEN_MODES
from termctl.errors import InvalidArgument, PlatformUnsupported
from termctl.platform import Backend, default_backend


def _count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an int, got {value!r}")
    return value


def _coordinate(name: str, value: Any) -> int:
    value = _count(name, value)
    if value < 0:
        raise InvalidArgument(f"{name} must be >= 0, got {value}")
    return value


def _mode(value: Any, allowed: tuple[int, ...]) -> int:
    value = _count("mode", value)
    if value not in allowed:
        raise InvalidArgument(f"mode must be one of {allowed}, got {value}")
    return value


class Screen(ABC):
    """
    Cursor and erase operations on one output stream.

    Rows and columns are zero-based. Negative counts move the opposite way and
    a zero count does nothing.
    """

    def __init__(self, stream: Any) -> None:
        self.stream = stream

    def move_up(self, n: int = 1) -> None:
        self._move(-_count("n", n), 0)

    def move_down(self, n: int = 1) -> None:
        self._move(_count("n", n), 0)

    def move_left(self, n: int = 1) -> None:
        self._move(0, -_count("n", n))

    def move_right(self, n: int = 1) -> None:
        self._move(0, _count("n", n))

    def scroll_forward(self, n: int = 1) -> None:
        """Scroll content up by ``n`` lines (new lines appear at the bottom)."""
        self._scroll(_count("n", n))

    def scroll_backward(self, n: int = 1) -> None:
        """Scroll content down by ``n`` lines."""
        self._scroll(-_count("n", n))

    def clear_screen(self) -> None:
        """Erase the whole screen and home the cursor."""
        self.erase_screen(2)
        self.goto(0, 0)

    @abstractmethod
    def goto(self, row: int, column: int) -> None:
        """Move the cursor to an absolute position."""

    @abstractmethod
    def goto_column(self, column: int) -> None:
        """Move the cursor to ``column`` on the current row."""

    @abstractmethod
    def erase_line(self, mode: int = 0) -> None:
        """0: cursor to end of line, 1: start of line to cursor, 2: whole line."""

    @abstractmethod
    def erase_screen(self, mode: int = 0) -> None:
        """0: cursor to end, 1: start to cursor, 2: whole screen, 3: also scrollback."""

    @abstractmethod
    def _move(self, rows: int, columns: int) -> None:
        ...

    @abstractmethod
    def _scroll(self, lines: int) -> None:
        ...


class AnsiScreen(Screen):
    """
    ECMA-48 / VT100 control sequences.

    CUU/CUD/CUF/CUB (CSI n A/B/C/D), CUP (CSI r;c H), CHA (CSI c G),
    EL (CSI m K), ED (CSI m J), SU/SD (CSI n S / CSI n T).
    """

    def _emit(self, sequence: str) -> None:
        if not sequence:
            return
        if isinstance(self.stream, io.TextIOBase):
            self.stream.write(sequence)
        else:
            self.stream.write(sequence.encode("ascii"))
        flush = getattr(self.stream, "flush", None)
        if flush is not None:
            flush()

    def _move(self, rows: int, columns: int) -> None:
        parts: list[str] = []
        if rows:
            parts.append(f"{CSI}{abs(rows)}{'A' if rows < 0 else 'B'}")
        if columns:
            parts.append(f"{CSI}{abs(columns)}{'D' if columns < 0 else 'C'}")
        self._emit("".join(parts))

    def goto(self, row: int, column: int) -> None:
        row = _coordinate("row", row)
        column = _coordinate("column", column)
        self._emit(f"{CSI}{row + 1};{column + 1}H")

    def goto_column(self, column: int) -> None:
        column = _coordinate("column", column)
        self._emit(f"{CSI}{column + 1}G")

    def erase_line(self, mode: int = 0) -> None:
        self._emit(f"{CSI}{_mode(mode, ERASE_LINE_MODES)}K")

    def erase_screen(self, mode: int = 0) -> None:
        self._emit(f"{CSI}{_mode(mode, ERASE_SCREEN_MODES)}J")

    def _scroll(self, lines: int) -> None:
        if lines:
            self._emit(f"{CSI}{abs(lines)}{'S' if lines > 0 else 'T'}")


class Win32Screen(Screen):
    """Native console API, for consoles without virtual-terminal processing."""

    def __init__(self, stream: Any, backend: Backend, fd: int) -> None:
        super().__init__(stream)
        self._backend = backend
        self._fd = fd

    def _move(self, rows: int, columns: int) -> None:
        if not rows and not columns:
            return
        info = self._backend.screen_info(self._fd)
        row = min(max(info.cursor_row + rows, 0), info.height - 1)
        column = min(max(info.cursor_column + columns, 0), info.width - 1)
        self._backend.set_cursor(self._fd, row, column)

    def goto(self, row: int, column: int) -> None:
        row = _coordinate("row", row)
        column = _coordinate("column", column)
        info = self._backend.screen_info(self._fd)
        self._backend.set_cursor(
            self._fd,
            min(info.window_top + row, info.height - 1),
            min(column, info.width - 1),
        )

    def goto_column(self, column: int) -> None:
        column = _coordinate("column", column)
        info = self._backend.screen_info(self._fd)
        self._backend.set_cursor(self._fd, info.cursor_row, min(column, info.width - 1))

    def erase_line(self, mode: int = 0) -> None:
        mode = _mode(mode, ERASE_LINE_MODES)
        info = self._backend.screen_info(self._fd)
        if mode == 0:
            start, count = info.cursor_column, info.width - info.cursor_column
        elif mode == 1:
            start, count = 0, info.cursor_column + 1
        else:
            start, count = 0, info.width
        self._backend.fill_blank(self._fd, info.cursor_row, start, count, info.attributes)

    def erase_screen(self, mode: int = 0) -> None:
        mode = _mode(mode, ERASE_SCREEN_MODES)
        info = self._backend.screen_info(self._fd)
        window_end = info.window_top + info.window_height
        if mode == 0:
            row, column = info.cursor_row, info.cursor_column
            count = (window_end - info.cursor_row) * info.width - info.cursor_column
        elif mode == 1:
            row, column = info.window_top, 0
            count = (info.cursor_row - info.window_top) * info.width + info.cursor_column + 1
        elif mode == 2:
            row, column = info.window_top, 0
            count = info.window_height * info.width
        else:
            row, column = 0, 0
            count = info.height * info.width
        self._backend.fill_blank(self._fd, row, column, count, info.attributes)

    def _scroll(self, lines: int) -> None:
        raise PlatformUnsupported("scrolling is not supported by the native console backend")


class NullScreen(Screen):
    """Output that understands no cursor control at all (e.g. TERM=dumb)."""

    def _unsupported(self, *args: Any) -> None:
        raise PlatformUnsupported("output stream has no cursor control")

    goto = goto_column = erase_line = erase_screen = _move = _scroll = _unsupported


def _optional_fileno(stream: Any) -> int | None:
    try:
        return stream.fileno()
    except (AttributeError, ValueError, OSError):
        return None


def screen_for(stream: Any, backend: Backend | None = None) -> Screen:
    """
    Pick the screen implementation for ``stream``.

    Streams without a descriptor (in-memory buffers) always get control
    sequences. A console that cannot interpret sequences gets the native
    API where one exists, otherwise every operation raises
    PlatformUnsupported.
    """
    backend = backend or default_backend()
    fd = _optional_fileno(stream)
    if fd is None or backend.supports_sequences(fd):
        return AnsiScreen(stream)
    if backend.name == "windows" and backend.is_terminal(fd):
        return Win32Screen(stream, backend, fd)
    return NullScreen(stream)
