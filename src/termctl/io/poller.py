"""Readiness polling with timeout semantics and a buffered-data fast path."""

from __future__ import annotations

import contextlib
import errno
import io
import math
import numbers
import os
import select
import signal
import time
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Any, Iterator

import structlog

from termctl.config import load_settings
from termctl.core import constants
from termctl.errors import InvalidArgument, Interrupted, PlatformUnsupported, StreamClosed
from termctl.io.stream import BufferedSource
from termctl.platform import Backend, default_backend

logger = structlog.get_logger()


class Readiness(IntFlag):
    """Event bits accepted by ``wait``; combine with ``|``."""
    READABLE = constants.READABLE
    WRITABLE = constants.WRITABLE
    PRIORITY = constants.PRIORITY


class WaitStatus(Enum):
    """How a wait ended."""
    READY = "ready"
    TIMED_OUT = "timed_out"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class WaitResult:
    """Outcome of a wait; truthy only when some requested event fired."""
    status: WaitStatus
    events: Readiness = Readiness(0)

    def __bool__(self) -> bool:
        return self.status is WaitStatus.READY

    @property
    def timed_out(self) -> bool:
        return self.status is WaitStatus.TIMED_OUT

    @property
    def unsupported(self) -> bool:
        return self.status is WaitStatus.UNSUPPORTED


TIMED_OUT = WaitResult(WaitStatus.TIMED_OUT)
UNSUPPORTED = WaitResult(WaitStatus.UNSUPPORTED)

if hasattr(select, "poll"):
    _POLL_BITS = (
        (Readiness.READABLE, select.POLLIN),
        (Readiness.WRITABLE, select.POLLOUT),
        (Readiness.PRIORITY, select.POLLPRI),
    )
    _POLL_FAILURE = select.POLLHUP | select.POLLERR


def _check_events(events: Any) -> Readiness:
    if isinstance(events, bool) or not isinstance(events, int):
        raise InvalidArgument(f"event mask must be an int, got {events!r}")
    if not 0 < events <= constants.ALL_EVENTS:
        raise InvalidArgument(f"event mask must be a non-empty combination of 1, 2 and 4, got {events}")
    return Readiness(events)


def _check_timeout(timeout: Any) -> float | None:
    if timeout is None:
        return None
    if isinstance(timeout, bool) or not isinstance(timeout, numbers.Real):
        raise InvalidArgument(f"timeout must be a number or None, got {timeout!r}")
    seconds = float(timeout)
    if math.isnan(seconds) or seconds < 0:
        raise InvalidArgument(f"timeout must be >= 0, got {timeout!r}")
    if math.isinf(seconds):
        return None
    return seconds


def _fileno(stream: Any) -> int:
    """Descriptor behind ``stream``; StreamClosed/PlatformUnsupported when there is none."""
    if isinstance(stream, int) and not isinstance(stream, bool):
        fd = stream
    else:
        try:
            fd = stream.fileno()
        except io.UnsupportedOperation as exc:
            raise PlatformUnsupported(f"{stream!r} has no pollable descriptor") from exc
        except ValueError as exc:
            # file objects raise ValueError once closed
            raise StreamClosed(errno.EBADF, f"{stream!r} is closed") from exc
        except AttributeError as exc:
            raise PlatformUnsupported(f"{stream!r} has no pollable descriptor") from exc
    if fd < 0:
        raise StreamClosed(errno.EBADF, f"{stream!r} is closed")
    return fd


def _remaining_ms(deadline: float | None) -> int | None:
    if deadline is None:
        return None
    return max(0, math.ceil((deadline - time.monotonic()) * 1000))


class ReadinessPoller:
    """
    Waits until a stream can be read, written, or has priority data.

    The stream may be a raw descriptor, anything with ``fileno()`` (files,
    sockets, pipes, terminals), or a ``DeviceStream``. Bytes a stream holds in
    its own buffer count as readable without asking the kernel.

    Closing a ``DeviceStream`` while a wait is blocked on it ends the wait with
    ``StreamClosed``.

    Signals: interrupted polls are retried for the remaining time unless the
    poller is ``interruptible``, in which case a signal delivered during the
    wait raises ``Interrupted``.
    """

    def __init__(self, stream: Any, *, interruptible: bool | None = None,
                 backend: Backend | None = None) -> None:
        self._stream = stream
        if interruptible is None:
            interruptible = load_settings().interruptible
        self._interruptible = interruptible
        self._backend = backend

    @property
    def stream(self) -> Any:
        return self._stream

    def _buffered(self) -> int:
        if isinstance(self._stream, BufferedSource):
            return self._stream.pending()
        return 0

    def nread(self) -> int:
        """Bytes readable right now without blocking; never consumes them."""
        buffered = self._buffered()
        try:
            fd = _fileno(self._stream)
        except (StreamClosed, PlatformUnsupported):
            return buffered
        backend = self._backend or default_backend()
        return buffered + (backend.pending_bytes(fd) or 0)

    def ready(self) -> bool:
        return self.nread() > 0

    def wait(self, events: int, timeout: float | None = None) -> WaitResult:
        """
        Block until one of ``events`` fires or ``timeout`` seconds pass.

        ``timeout=None`` waits forever, ``0`` polls once. Returns a READY result
        carrying the subset of events that fired, or TIMED_OUT.
        """
        mask = _check_events(events)
        seconds = _check_timeout(timeout)

        if mask & Readiness.READABLE and self._buffered() > 0:
            return WaitResult(WaitStatus.READY, Readiness.READABLE)

        fd = _fileno(self._stream)
        deadline = None if seconds is None else time.monotonic() + seconds
        if hasattr(select, "poll"):
            return self._poll(fd, mask, deadline)
        return self._select(fd, mask, deadline)

    def wait_readable(self, timeout: float | None = None) -> WaitResult:
        return self._wait_single(Readiness.READABLE, timeout)

    def wait_writable(self, timeout: float | None = None) -> WaitResult:
        return self._wait_single(Readiness.WRITABLE, timeout)

    def wait_priority(self, timeout: float | None = None) -> WaitResult:
        return self._wait_single(Readiness.PRIORITY, timeout)

    def _wait_single(self, event: Readiness, timeout: float | None) -> WaitResult:
        try:
            return self.wait(event, timeout)
        except (StreamClosed, PlatformUnsupported):
            return UNSUPPORTED

    def _close_signal(self) -> int | None:
        """Descriptor that fires when the stream is closed, if the stream offers one."""
        signal_fd = getattr(self._stream, "close_signal", None)
        if signal_fd is None:
            return None
        try:
            return signal_fd()
        except ValueError as exc:
            raise StreamClosed(errno.EBADF, f"{self._stream!r} is closed") from exc

    def _poll(self, fd: int, mask: Readiness, deadline: float | None) -> WaitResult:
        wanted = 0
        for flag, bit in _POLL_BITS:
            if mask & flag:
                wanted |= bit
        poller = select.poll()
        poller.register(fd, wanted)
        closing = self._close_signal()
        if closing is not None:
            poller.register(closing, select.POLLIN)

        with self._wakeup_fd() as wakeup:
            if wakeup is not None:
                poller.register(wakeup, select.POLLIN)
            while True:
                if getattr(self._stream, "closed", False):
                    raise StreamClosed(errno.EBADF, f"fd {fd} was closed while waiting")
                try:
                    fired = poller.poll(_remaining_ms(deadline))
                except OSError as exc:
                    if exc.errno == errno.EBADF:
                        raise StreamClosed(errno.EBADF, f"fd {fd} was closed") from exc
                    raise
                if closing is not None and any(ready_fd == closing for ready_fd, _ in fired):
                    raise StreamClosed(errno.EBADF, f"fd {fd} was closed while waiting")
                for ready_fd, revents in fired:
                    if ready_fd == wakeup:
                        logger.debug("poll_interrupted", fd=fd)
                        raise Interrupted(errno.EINTR, "signal received while waiting")
                    if revents & select.POLLNVAL:
                        raise StreamClosed(errno.EBADF, f"fd {fd} is not open")
                    result = Readiness(0)
                    for flag, bit in _POLL_BITS:
                        if revents & bit:
                            result |= flag
                    if revents & _POLL_FAILURE:
                        # hang-up or error: the next operation will not block
                        result |= mask
                    if result & mask:
                        return WaitResult(WaitStatus.READY, result & mask)
                if deadline is not None and time.monotonic() >= deadline:
                    return TIMED_OUT

    def _select(self, fd: int, mask: Readiness, deadline: float | None) -> WaitResult:
        rlist = [fd] if mask & Readiness.READABLE else []
        wlist = [fd] if mask & Readiness.WRITABLE else []
        xlist = [fd] if mask & Readiness.PRIORITY else []
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                readable, writable, exceptional = select.select(rlist, wlist, xlist, remaining)
            except OSError as exc:
                if exc.errno == errno.EBADF:
                    raise StreamClosed(errno.EBADF, f"fd {fd} was closed") from exc
                raise PlatformUnsupported(f"fd {fd} cannot be polled on this host") from exc
            result = Readiness(0)
            if readable:
                result |= Readiness.READABLE
            if writable:
                result |= Readiness.WRITABLE
            if exceptional:
                result |= Readiness.PRIORITY
            if result:
                return WaitResult(WaitStatus.READY, result)
            if deadline is not None and time.monotonic() >= deadline:
                return TIMED_OUT

    @contextlib.contextmanager
    def _wakeup_fd(self) -> Iterator[int | None]:
        """Route signal wake-ups into a pipe for the duration of one wait."""
        if not self._interruptible or os.name == "nt":
            yield None
            return

        read_end, write_end = os.pipe()
        os.set_blocking(read_end, False)
        os.set_blocking(write_end, False)
        try:
            previous = signal.set_wakeup_fd(write_end, warn_on_full_buffer=False)
        except ValueError:
            # only the main thread may own the wake-up fd
            logger.debug("wakeup_fd_unavailable")
            os.close(read_end)
            os.close(write_end)
            yield None
            return

        try:
            yield read_end
        finally:
            signal.set_wakeup_fd(previous)
            if previous != -1:
                _forward_signal_bytes(read_end, previous)
            os.close(read_end)
            os.close(write_end)


def _forward_signal_bytes(source: int, target: int) -> None:
    """Hand signal numbers seen during the wait to the wake-up fd they displaced."""
    try:
        data = os.read(source, 512)
    except BlockingIOError:
        return
    if data:
        with contextlib.suppress(OSError):
            os.write(target, data)


def wait(stream: Any, events: int, timeout: float | None = None, *,
         interruptible: bool | None = None) -> WaitResult:
    """One-off ``ReadinessPoller(stream).wait(events, timeout)``."""
    return ReadinessPoller(stream, interruptible=interruptible).wait(events, timeout)


def wait_readable(stream: Any, timeout: float | None = None) -> WaitResult:
    return ReadinessPoller(stream).wait_readable(timeout)


def wait_writable(stream: Any, timeout: float | None = None) -> WaitResult:
    return ReadinessPoller(stream).wait_writable(timeout)


def wait_priority(stream: Any, timeout: float | None = None) -> WaitResult:
    return ReadinessPoller(stream).wait_priority(timeout)


def nread(stream: Any) -> int:
    return ReadinessPoller(stream).nread()


def ready(stream: Any) -> bool:
    return ReadinessPoller(stream).ready()
