"""Console-mode discipline control for Windows hosts."""

from __future__ import annotations

import ctypes
import msvcrt
import os
from ctypes import wintypes

import structlog

from termctl.core.constants import WINDOWS_CONSOLE_INPUT, WINDOWS_CONSOLE_OUTPUT
from termctl.core.mode import ModeDescriptor, RawOptions
from termctl.core.size import ConsoleSize
from termctl.errors import DeviceUnavailable, InvalidArgument, PlatformUnsupported
from termctl.platform.base import Backend, ScreenInfo

logger = structlog.get_logger()

kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

# Input console mode flags
ENABLE_PROCESSED_INPUT = 0x0001
ENABLE_LINE_INPUT = 0x0002
ENABLE_ECHO_INPUT = 0x0004

# Output console mode flags
ENABLE_VIRTUAL_TERMINAL_PROCESSING = 0x0004

_ERROR_INVALID_HANDLE = 6


class COORD(ctypes.Structure):
    _fields_ = [("X", wintypes.SHORT), ("Y", wintypes.SHORT)]


class SMALL_RECT(ctypes.Structure):
    _fields_ = [
        ("Left", wintypes.SHORT),
        ("Top", wintypes.SHORT),
        ("Right", wintypes.SHORT),
        ("Bottom", wintypes.SHORT),
    ]


class CONSOLE_SCREEN_BUFFER_INFO(ctypes.Structure):
    _fields_ = [
        ("dwSize", COORD),
        ("dwCursorPosition", COORD),
        ("wAttributes", wintypes.WORD),
        ("srWindow", SMALL_RECT),
        ("dwMaximumWindowSize", COORD),
    ]


def _handle(fd: int) -> int:
    try:
        return msvcrt.get_osfhandle(fd)
    except OSError as exc:
        raise DeviceUnavailable(exc.errno, f"fd {fd} has no OS handle") from exc


def _last_error(action: str, fd: int) -> DeviceUnavailable:
    code = ctypes.get_last_error() or _ERROR_INVALID_HANDLE
    return DeviceUnavailable(code, f"cannot {action} on fd {fd}: {ctypes.FormatError(code)}")


class WindowsBackend(Backend):
    """
    Discipline through GetConsoleMode/SetConsoleMode.

    The console has no VMIN/VTIME slots, so the backend remembers the last
    values applied per handle and reports them back; reads are not governed
    by them.
    """

    name = "windows"

    def __init__(self) -> None:
        self._timing: dict[int, tuple[int, int]] = {}

    def _console_mode(self, fd: int) -> int:
        mode = wintypes.DWORD()
        if not kernel32.GetConsoleMode(_handle(fd), ctypes.byref(mode)):
            raise _last_error("read console mode", fd)
        return mode.value

    def get_mode(self, fd: int) -> ModeDescriptor:
        mode = self._console_mode(fd)
        min_bytes, timeout_tenths = self._timing.get(_handle(fd), (1, 0))
        return self._describe(mode, min_bytes, timeout_tenths)

    def set_mode(self, fd: int, descriptor: ModeDescriptor) -> ModeDescriptor:
        descriptor.validate()
        previous = self.get_mode(fd)
        handle = _handle(fd)
        wanted = self._render(descriptor, previous.snapshot)
        if not kernel32.SetConsoleMode(handle, wanted):
            raise _last_error("set console mode", fd)
        if self._console_mode(fd) != wanted:
            logger.warning("mode_apply_mismatch", fd=fd)
            if not kernel32.SetConsoleMode(handle, previous.snapshot):
                logger.warning("mode_rollback_failed", fd=fd, error=ctypes.FormatError(ctypes.get_last_error()))
            raise DeviceUnavailable(0, f"console on fd {fd} rejected part of the mode change")
        self._timing[handle] = (descriptor.min_bytes, descriptor.timeout_tenths)
        logger.debug("mode_applied", fd=fd, echo=descriptor.echo, canonical=descriptor.canonical)
        return previous

    def make_raw(self, current: ModeDescriptor, options: RawOptions) -> ModeDescriptor:
        mode = self._render(current, current.snapshot)
        mode &= ~(ENABLE_ECHO_INPUT | ENABLE_LINE_INPUT | ENABLE_PROCESSED_INPUT)
        if options.interrupt_chars:
            mode |= ENABLE_PROCESSED_INPUT
        return self._describe(mode, options.min_bytes, options.timeout_tenths)

    def make_cooked(self, current: ModeDescriptor) -> ModeDescriptor:
        mode = self._render(current, current.snapshot)
        mode |= ENABLE_ECHO_INPUT | ENABLE_LINE_INPUT | ENABLE_PROCESSED_INPUT
        return self._describe(mode, current.min_bytes, current.timeout_tenths)

    def make_noecho(self, current: ModeDescriptor) -> ModeDescriptor:
        mode = self._render(current, current.snapshot) & ~ENABLE_ECHO_INPUT
        return self._describe(mode, current.min_bytes, current.timeout_tenths)

    def make_echo(self, current: ModeDescriptor) -> ModeDescriptor:
        mode = self._render(current, current.snapshot) | ENABLE_ECHO_INPUT
        return self._describe(mode, current.min_bytes, current.timeout_tenths)

    def flush(self, fd: int, queue: str) -> None:
        if queue not in ("input", "output", "both"):
            raise InvalidArgument(f"unknown queue: {queue!r}")
        if queue == "output":
            raise PlatformUnsupported("console output queue cannot be discarded")
        if not kernel32.FlushConsoleInputBuffer(_handle(fd)):
            raise _last_error("flush console input", fd)

    def pending_bytes(self, fd: int) -> int | None:
        available = wintypes.DWORD()
        ok = kernel32.PeekNamedPipe(
            _handle(fd), None, 0, None, ctypes.byref(available), None
        )
        if not ok:
            return None
        return available.value

    def window_size(self, fd: int) -> ConsoleSize:
        info = self._buffer_info(fd)
        window = info.srWindow
        return ConsoleSize(window.Bottom - window.Top + 1, window.Right - window.Left + 1)

    def set_window_size(self, fd: int, size: ConsoleSize) -> None:
        raise PlatformUnsupported("resizing the console window is not supported")

    def open_console(self) -> tuple[int, int]:
        try:
            in_fd = os.open(WINDOWS_CONSOLE_INPUT, os.O_RDWR)
            out_fd = os.open(WINDOWS_CONSOLE_OUTPUT, os.O_RDWR)
        except OSError as exc:
            raise DeviceUnavailable(exc.errno, f"no console attached: {exc.strerror}") from exc
        return in_fd, out_fd

    def is_terminal(self, fd: int) -> bool:
        try:
            self._console_mode(fd)
        except DeviceUnavailable:
            return False
        return True

    def supports_sequences(self, fd: int | None) -> bool:
        if fd is None:
            return False
        try:
            return bool(self._console_mode(fd) & ENABLE_VIRTUAL_TERMINAL_PROCESSING)
        except DeviceUnavailable:
            return False

    def screen_info(self, fd: int) -> ScreenInfo:
        info = self._buffer_info(fd)
        return ScreenInfo(
            cursor_row=info.dwCursorPosition.Y,
            cursor_column=info.dwCursorPosition.X,
            width=info.dwSize.X,
            height=info.dwSize.Y,
            window_top=info.srWindow.Top,
            window_height=info.srWindow.Bottom - info.srWindow.Top + 1,
            attributes=info.wAttributes,
        )

    def set_cursor(self, fd: int, row: int, column: int) -> None:
        if not kernel32.SetConsoleCursorPosition(_handle(fd), COORD(column, row)):
            raise _last_error("move console cursor", fd)

    def fill_blank(self, fd: int, row: int, column: int, count: int, attributes: int) -> None:
        handle = _handle(fd)
        written = wintypes.DWORD()
        origin = COORD(column, row)
        if not kernel32.FillConsoleOutputCharacterW(
            handle, wintypes.WCHAR(" "), count, origin, ctypes.byref(written)
        ):
            raise _last_error("erase console cells", fd)
        if not kernel32.FillConsoleOutputAttribute(
            handle, attributes, count, origin, ctypes.byref(written)
        ):
            raise _last_error("erase console cells", fd)

    def _buffer_info(self, fd: int) -> CONSOLE_SCREEN_BUFFER_INFO:
        info = CONSOLE_SCREEN_BUFFER_INFO()
        if not kernel32.GetConsoleScreenBufferInfo(_handle(fd), ctypes.byref(info)):
            raise _last_error("query console screen buffer", fd)
        return info

    @staticmethod
    def _render(descriptor: ModeDescriptor, fallback: int) -> int:
        mode = descriptor.snapshot if descriptor.snapshot is not None else fallback
        if not isinstance(mode, int):
            raise InvalidArgument(f"not a console mode snapshot: {mode!r}")
        for flag, enabled in (
            (ENABLE_ECHO_INPUT, descriptor.echo),
            (ENABLE_LINE_INPUT, descriptor.canonical),
            (ENABLE_PROCESSED_INPUT, descriptor.interrupt_chars),
        ):
            mode = mode | flag if enabled else mode & ~flag
        return mode

    @staticmethod
    def _describe(mode: int, min_bytes: int, timeout_tenths: int) -> ModeDescriptor:
        return ModeDescriptor(
            echo=bool(mode & ENABLE_ECHO_INPUT),
            canonical=bool(mode & ENABLE_LINE_INPUT),
            min_bytes=min_bytes,
            timeout_tenths=timeout_tenths,
            interrupt_chars=bool(mode & ENABLE_PROCESSED_INPUT),
            snapshot=mode,
        )
