"""Terminal discipline control with scoped, always-restored mode changes."""

from __future__ import annotations

import codecs
import errno
import re
import sys
import time
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Callable, Iterator, TextIO

import structlog

from termctl.config import load_settings
from termctl.core.constants import BEL, CURSOR_POSITION_REQUEST
from termctl.core.mode import ModeDescriptor, RawOptions
from termctl.core.size import ConsoleSize
from termctl.errors import DeviceUnavailable, InvalidArgument, TermctlError
from termctl.io.poller import ReadinessPoller
from termctl.io.stream import DeviceStream
from termctl.platform import Backend, default_backend
from termctl.screen.cursor import Screen, screen_for
from termctl.screen.size import ConsoleSizeProbe

logger = structlog.get_logger()

# ESC [ row ; column R
_CURSOR_REPORT = re.compile(rb"\x1b\[(\d+);(\d+)R")


def _descriptor_of(handle: Any) -> int:
    if isinstance(handle, int) and not isinstance(handle, bool):
        return handle
    try:
        return handle.fileno()
    except (AttributeError, ValueError, OSError) as exc:
        raise DeviceUnavailable(errno.EBADF, f"{handle!r} has no file descriptor") from exc


def _strip_terminator(line: str) -> str:
    """Remove exactly one trailing line terminator."""
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith(("\n", "\r")):
        return line[:-1]
    return line


class TerminalController:
    """
    Owns one terminal device and changes its input discipline.

    ``raw()``, ``cooked()`` and ``noecho()`` are context managers: each one
    remembers the mode seen on entry and puts exactly that mode back on exit,
    however the block ends. Nested scopes therefore unwind like a stack.

    The discipline lives in the OS, not in this object: closing or discarding
    a controller does not revert anything.

    Not thread-safe. Callers sharing a device across threads must hold a lock
    around whole scoped regions.
    """

    def __init__(
        self,
        device: Any,
        *,
        output: Any = None,
        error_stream: TextIO | None = None,
        encoding: str | None = None,
        backend: Backend | None = None,
        owned: bool = False,
    ) -> None:
        in_fd = _descriptor_of(device)
        out_fd = in_fd if output is None else _descriptor_of(output)
        self._input = DeviceStream(in_fd, owned=owned)
        self._output = DeviceStream(out_fd, owned=owned and out_fd != in_fd)
        self._error_stream = error_stream
        self.encoding = encoding or load_settings().encoding
        self._backend = backend or default_backend()

    @classmethod
    def open(cls, **kwargs: Any) -> "TerminalController":
        """Open the process's controlling console (/dev/tty, CONIN$/CONOUT$)."""
        backend = kwargs.get("backend") or default_backend()
        in_fd, out_fd = backend.open_console()
        kwargs["backend"] = backend
        return cls(in_fd, output=None if out_fd == in_fd else out_fd, owned=True, **kwargs)

    # -- handles -------------------------------------------------------------

    @property
    def input(self) -> DeviceStream:
        return self._input

    @property
    def output(self) -> DeviceStream:
        return self._output

    @property
    def backend(self) -> Backend:
        return self._backend

    def fileno(self) -> int:
        return self._input.fileno()

    def isatty(self) -> bool:
        return self._backend.is_terminal(self.fileno())

    @property
    def closed(self) -> bool:
        return self._input.closed

    def close(self) -> None:
        """Release the handles this controller opened itself. Mode is left as is."""
        self._input.close()
        self._output.close()

    def __enter__(self) -> "TerminalController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __copy__(self) -> "TerminalController":
        raise TypeError("TerminalController owns its device and cannot be copied")

    def __deepcopy__(self, memo: dict) -> "TerminalController":
        raise TypeError("TerminalController owns its device and cannot be copied")

    def __reduce_ex__(self, protocol: Any) -> Any:
        raise TypeError("TerminalController cannot be pickled")

    def __repr__(self) -> str:
        return f"TerminalController(input={self._input!r}, backend={self._backend.name!r})"

    # -- discipline ----------------------------------------------------------

    def get_mode(self) -> ModeDescriptor:
        """Current discipline; DeviceUnavailable if the handle is not a terminal."""
        return self._backend.get_mode(self.fileno())

    def set_mode(self, mode: ModeDescriptor) -> ModeDescriptor:
        """Apply ``mode`` all-or-nothing and return the mode it replaced."""
        if not isinstance(mode, ModeDescriptor):
            raise InvalidArgument(f"expected a ModeDescriptor, got {mode!r}")
        return self._backend.set_mode(self.fileno(), mode)

    def raw_now(self, options: RawOptions | None = None) -> ModeDescriptor:
        """Switch to raw mode until told otherwise; returns the previous mode."""
        return self.set_mode(self._backend.make_raw(self.get_mode(), options or RawOptions()))

    def cooked_now(self) -> ModeDescriptor:
        """Switch to canonical, echoing mode; returns the previous mode."""
        return self.set_mode(self._backend.make_cooked(self.get_mode()))

    @property
    def echo(self) -> bool:
        return self.get_mode().echo

    @echo.setter
    def echo(self, enabled: bool) -> None:
        current = self.get_mode()
        if enabled:
            self.set_mode(self._backend.make_echo(current))
        else:
            self.set_mode(self._backend.make_noecho(current))

    def raw(self, options: RawOptions | None = None) -> AbstractContextManager["TerminalController"]:
        """
        Raw mode for the duration of a ``with`` block.

        Canonical processing, echo and (unless ``options.interrupt_chars``)
        signal characters are off; reads return after ``options.min_bytes``
        bytes or ``options.timeout_tenths`` tenths of a second.
        """
        options = options or RawOptions()
        return self._scoped(lambda current: self._backend.make_raw(current, options))

    def cooked(self) -> AbstractContextManager["TerminalController"]:
        """Canonical, echoing mode for the duration of a ``with`` block."""
        return self._scoped(self._backend.make_cooked)

    def noecho(self) -> AbstractContextManager["TerminalController"]:
        """Echo off for the duration of a ``with`` block; canonical bit untouched."""
        return self._scoped(self._backend.make_noecho)

    @contextmanager
    def _scoped(self, derive: Callable[[ModeDescriptor], ModeDescriptor]) -> Iterator["TerminalController"]:
        entry = self.get_mode()
        # if this raises, the body never runs and nothing needs restoring
        self.set_mode(derive(entry))
        try:
            yield self
        except BaseException as exc:
            self._restore(entry, exc)
            raise
        self._restore(entry, None)

    def _restore(self, mode: ModeDescriptor, pending: BaseException | None) -> None:
        try:
            self._backend.set_mode(self.fileno(), mode)
        except (TermctlError, OSError, ValueError) as exc:
            # ValueError: the controller was closed inside the scope
            logger.warning("mode_restore_failed", device=repr(self._input), error=str(exc))
            if pending is None:
                raise
            pending.add_note(f"restoring the terminal mode also failed: {exc}")

    def flush_input(self) -> None:
        """Discard input received but not yet read."""
        self._input.discard()
        self._backend.flush(self.fileno(), "input")

    def flush_output(self) -> None:
        """Discard output written but not yet transmitted."""
        self._backend.flush(self._output.fileno(), "output")

    def flush_both(self) -> None:
        self._backend.flush(self.fileno(), "both")

    # -- reading -------------------------------------------------------------

    def getch(self, options: RawOptions | None = None) -> str | None:
        """
        Read one character in raw mode.

        Blocks per ``options`` (default: until one byte arrives). Multi-byte
        characters are read until complete. Returns None when the read times
        out or reaches end of file.
        """
        with self.raw(options):
            return self._read_char()

    def _read_char(self) -> str | None:
        decoder = codecs.getincrementaldecoder(self.encoding)("replace")
        while True:
            byte = self._input.read(1)
            if not byte:
                # timeout or EOF part-way through a character
                return decoder.decode(b"", final=True) or None
            char = decoder.decode(byte)
            if char:
                return char

    def getpass(self, prompt: str | None = None) -> str | None:
        """
        Read a line without echoing it.

        ``prompt`` goes to the error stream (stderr by default), never to the
        device input. Exactly one trailing line terminator is removed. Returns
        None at end of file.
        """
        err = self._error_stream if self._error_stream is not None else sys.stderr
        with self.noecho():
            if prompt:
                err.write(prompt)
                err.flush()
            # without canonical processing Enter arrives as a bare \r
            line = self._input.readline(carriage_return=not self.get_mode().canonical)
        # the user's Enter was not echoed
        self._output.write(b"\n")
        if not line:
            return None
        return _strip_terminator(line.decode(self.encoding, errors="replace"))

    def cursor_position(self, timeout: float = 0.5) -> tuple[int, int]:
        """
        Ask the terminal where the cursor is; returns zero-based (row, column).

        Input that arrives ahead of the report is kept for later reads.
        """
        poller = ReadinessPoller(self._input, backend=self._backend)
        received = bytearray()
        with self.raw():
            self._output.write(CURSOR_POSITION_REQUEST, self.encoding)
            deadline = time.monotonic() + timeout
            while True:
                match = _CURSOR_REPORT.search(received)
                if match:
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0 or not poller.wait_readable(remaining):
                    self._input.unread(bytes(received))
                    raise DeviceUnavailable(errno.ETIMEDOUT, "terminal did not report the cursor position")
                chunk = self._input.read(1)
                if not chunk:
                    self._input.unread(bytes(received))
                    raise DeviceUnavailable(errno.EIO, "terminal closed while reporting the cursor position")
                received += chunk
        self._input.unread(bytes(received[:match.start()] + received[match.end():]))
        return int(match.group(1)) - 1, int(match.group(2)) - 1

    # -- convenience ---------------------------------------------------------

    def poller(self) -> ReadinessPoller:
        """A poller over the device input, aware of bytes this controller buffered."""
        return ReadinessPoller(self._input, backend=self._backend)

    def nread(self) -> int:
        return self.poller().nread()

    def ready(self) -> bool:
        return self.poller().ready()

    def beep(self) -> None:
        self._output.write(BEL, self.encoding)

    @property
    def screen(self) -> Screen:
        return screen_for(self._output, self._backend)

    def size(self) -> ConsoleSize:
        return ConsoleSizeProbe(self._output.fileno(), self._backend).size()

    def set_size(self, rows: int, columns: int, pixel_width: int = 0, pixel_height: int = 0) -> None:
        ConsoleSizeProbe(self._output.fileno(), self._backend).set_size(rows, columns, pixel_width, pixel_height)
