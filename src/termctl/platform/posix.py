"""termios-based discipline control for POSIX hosts."""

from __future__ import annotations

import array
import errno
import fcntl
import os
import struct
import termios

import structlog

from termctl.core.constants import POSIX_CONSOLE_PATH
from termctl.core.mode import ModeDescriptor, RawOptions
from termctl.core.size import ConsoleSize
from termctl.errors import DeviceUnavailable, InvalidArgument
from termctl.platform.base import Backend

logger = structlog.get_logger()

# tcgetattr list layout
IFLAG, OFLAG, CFLAG, LFLAG, ISPEED, OSPEED, CC = range(7)

# struct winsize: ws_row, ws_col, ws_xpixel, ws_ypixel
_WINSIZE = struct.Struct("HHHH")

_RAW_IFLAG_OFF = (
    termios.IGNBRK | termios.BRKINT | termios.PARMRK | termios.ISTRIP
    | termios.INLCR | termios.IGNCR | termios.ICRNL | termios.IXON
)
_RAW_LFLAG_OFF = termios.ECHO | termios.ECHONL | termios.ICANON | termios.ISIG | termios.IEXTEN
_ECHO_BITS = termios.ECHO | termios.ECHOE | termios.ECHOK | termios.ECHONL

_FLUSH_QUEUES = {
    "input": termios.TCIFLUSH,
    "output": termios.TCOFLUSH,
    "both": termios.TCIOFLUSH,
}


def _cc_int(value: bytes | int) -> int:
    """termios reports VMIN/VTIME as int outside canonical mode, bytes inside."""
    if isinstance(value, bytes):
        return value[0] if value else 0
    return int(value)


def _freeze(attrs: list) -> tuple:
    return tuple(attrs[:CC]) + (tuple(attrs[CC]),)


def _thaw(snapshot: tuple) -> list:
    return list(snapshot[:CC]) + [list(snapshot[CC])]


def _unavailable(exc: BaseException, action: str, fd: int) -> DeviceUnavailable:
    code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else errno.ENOTTY
    return DeviceUnavailable(code, f"cannot {action} on fd {fd}: {os.strerror(code)}")


class PosixBackend(Backend):
    """
    Terminal discipline through termios.

    Abstract fields map onto lflag ECHO/ICANON/ISIG and the VMIN/VTIME
    control-character slots. Everything else rides along in the snapshot.
    """

    name = "posix"

    def get_mode(self, fd: int) -> ModeDescriptor:
        try:
            attrs = termios.tcgetattr(fd)
        except (termios.error, OSError) as exc:
            raise _unavailable(exc, "read terminal mode", fd) from exc
        return self._describe(attrs)

    def set_mode(self, fd: int, descriptor: ModeDescriptor) -> ModeDescriptor:
        descriptor.validate()
        previous = self.get_mode(fd)
        attrs = self._render(descriptor, previous.snapshot)
        try:
            termios.tcsetattr(fd, termios.TCSANOW, attrs)
            observed = termios.tcgetattr(fd)
        except (termios.error, OSError) as exc:
            raise _unavailable(exc, "set terminal mode", fd) from exc

        if not self._matches(attrs, observed):
            # tcsetattr succeeds if any change was applied; undo a partial one
            logger.warning("mode_apply_mismatch", fd=fd)
            try:
                termios.tcsetattr(fd, termios.TCSANOW, _thaw(previous.snapshot))
            except (termios.error, OSError) as exc:
                logger.warning("mode_rollback_failed", fd=fd, error=str(exc))
            raise DeviceUnavailable(errno.EIO, f"terminal on fd {fd} rejected part of the mode change")

        logger.debug(
            "mode_applied",
            fd=fd,
            echo=descriptor.echo,
            canonical=descriptor.canonical,
            min_bytes=descriptor.min_bytes,
            timeout_tenths=descriptor.timeout_tenths,
        )
        return previous

    def make_raw(self, current: ModeDescriptor, options: RawOptions) -> ModeDescriptor:
        attrs = self._base(current)
        attrs[IFLAG] &= ~_RAW_IFLAG_OFF
        attrs[OFLAG] &= ~termios.OPOST
        attrs[LFLAG] &= ~_RAW_LFLAG_OFF
        attrs[CFLAG] &= ~(termios.CSIZE | termios.PARENB)
        attrs[CFLAG] |= termios.CS8
        if options.interrupt_chars:
            attrs[IFLAG] |= termios.BRKINT
            attrs[LFLAG] |= termios.ISIG
            attrs[OFLAG] |= termios.OPOST
        attrs[CC][termios.VMIN] = options.min_bytes
        attrs[CC][termios.VTIME] = options.timeout_tenths
        return self._describe(attrs)

    def make_cooked(self, current: ModeDescriptor) -> ModeDescriptor:
        attrs = self._base(current)
        attrs[IFLAG] |= termios.BRKINT | termios.ICRNL | termios.IXON
        attrs[OFLAG] |= termios.OPOST
        attrs[LFLAG] |= (
            termios.ECHO | termios.ECHOE | termios.ECHOK
            | termios.ICANON | termios.ISIG | termios.IEXTEN
        )
        return self._describe(attrs)

    def make_noecho(self, current: ModeDescriptor) -> ModeDescriptor:
        attrs = self._base(current)
        attrs[LFLAG] &= ~_ECHO_BITS
        return self._describe(attrs)

    def make_echo(self, current: ModeDescriptor) -> ModeDescriptor:
        attrs = self._base(current)
        # ECHONL stays as found, matching make_cooked
        attrs[LFLAG] |= termios.ECHO | termios.ECHOE | termios.ECHOK
        return self._describe(attrs)

    def flush(self, fd: int, queue: str) -> None:
        try:
            selector = _FLUSH_QUEUES[queue]
        except KeyError:
            raise InvalidArgument(f"unknown queue: {queue!r}") from None
        try:
            termios.tcflush(fd, selector)
        except (termios.error, OSError) as exc:
            raise _unavailable(exc, "flush terminal queue", fd) from exc

    def pending_bytes(self, fd: int) -> int | None:
        buf = array.array("i", [0])
        try:
            fcntl.ioctl(fd, termios.FIONREAD, buf, True)
        except OSError:
            return None
        return max(buf[0], 0)

    def window_size(self, fd: int) -> ConsoleSize:
        try:
            packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, bytes(_WINSIZE.size))
        except OSError as exc:
            raise _unavailable(exc, "query window size", fd) from exc
        rows, columns, xpixel, ypixel = _WINSIZE.unpack(packed)
        return ConsoleSize(rows, columns, xpixel, ypixel)

    def set_window_size(self, fd: int, size: ConsoleSize) -> None:
        packed = _WINSIZE.pack(size.rows, size.columns, size.pixel_width, size.pixel_height)
        try:
            fcntl.ioctl(fd, termios.TIOCSWINSZ, packed)
        except OSError as exc:
            raise _unavailable(exc, "set window size", fd) from exc

    def open_console(self) -> tuple[int, int]:
        try:
            fd = os.open(POSIX_CONSOLE_PATH, os.O_RDWR | os.O_NOCTTY)
        except OSError as exc:
            raise DeviceUnavailable(exc.errno, f"no controlling terminal: {exc.strerror}") from exc
        return fd, fd

    def is_terminal(self, fd: int) -> bool:
        return os.isatty(fd)

    def supports_sequences(self, fd: int | None) -> bool:
        return os.environ.get("TERM", "") != "dumb"

    def _base(self, current: ModeDescriptor) -> list:
        if current.snapshot is None:
            raise InvalidArgument("descriptor carries no termios snapshot; capture one with get_mode()")
        return self._render(current, current.snapshot)

    @staticmethod
    def _render(descriptor: ModeDescriptor, fallback: tuple) -> list:
        """Overlay the abstract fields onto a snapshot, as a tcsetattr list."""
        snapshot = descriptor.snapshot if descriptor.snapshot is not None else fallback
        if not isinstance(snapshot, tuple) or len(snapshot) != CC + 1:
            raise InvalidArgument(f"not a termios snapshot: {snapshot!r}")
        attrs = _thaw(snapshot)
        for flag, enabled in (
            (termios.ECHO, descriptor.echo),
            (termios.ICANON, descriptor.canonical),
            (termios.ISIG, descriptor.interrupt_chars),
        ):
            if enabled:
                attrs[LFLAG] |= flag
            else:
                attrs[LFLAG] &= ~flag
        attrs[CC][termios.VMIN] = descriptor.min_bytes
        attrs[CC][termios.VTIME] = descriptor.timeout_tenths
        return attrs

    @staticmethod
    def _describe(attrs: list) -> ModeDescriptor:
        lflag = attrs[LFLAG]
        cc = attrs[CC]
        return ModeDescriptor(
            echo=bool(lflag & termios.ECHO),
            canonical=bool(lflag & termios.ICANON),
            min_bytes=_cc_int(cc[termios.VMIN]),
            timeout_tenths=_cc_int(cc[termios.VTIME]),
            interrupt_chars=bool(lflag & termios.ISIG),
            snapshot=_freeze(attrs),
        )

    @staticmethod
    def _matches(wanted: list, observed: list) -> bool:
        for index in (IFLAG, OFLAG, LFLAG):
            if wanted[index] != observed[index]:
                return False
        for slot in (termios.VMIN, termios.VTIME):
            if _cc_int(wanted[CC][slot]) != _cc_int(observed[CC][slot]):
                return False
        return True
