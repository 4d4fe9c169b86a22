"""Byte stream over a raw descriptor with an observable read-ahead buffer."""

from __future__ import annotations

import os
import re
from typing import Protocol, runtime_checkable

_CHUNK = 1024

_NEWLINE = re.compile(rb"\n")
# raw mode delivers Enter as \r, possibly followed by \n
_ANY_LINE_END = re.compile(rb"\r\n?|\n")


@runtime_checkable
class BufferedSource(Protocol):
    """A stream that can report bytes it holds but has not handed out yet."""

    def pending(self) -> int:
        """Number of buffered, unread bytes."""
        ...

    def fileno(self) -> int:
        ...


class DeviceStream:
    """
    Reader/writer over one file descriptor.

    Reads go straight to ``os.read`` so terminal VMIN/VTIME settings govern
    them; bytes that were read but not consumed (a partial line, bytes past a
    decoded character) are kept in an explicit buffer that ``pending()``
    exposes. ``read`` serves that buffer first and never reads ahead.

    Once closed, ``fileno()`` and I/O raise ValueError like a closed file
    object, and every wait blocked on ``close_signal()`` wakes up.
    """

    def __init__(self, fd: int, *, owned: bool = False) -> None:
        self._fd = fd
        self._owned = owned
        self._buffer = bytearray()
        self._closed = False
        self._close_pipe: tuple[int, int] | None = None

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed stream")

    def fileno(self) -> int:
        self._check_open()
        return self._fd

    @property
    def closed(self) -> bool:
        return self._closed

    def close_signal(self) -> int:
        """Descriptor that turns readable (hang-up) when this stream is closed."""
        self._check_open()
        if self._close_pipe is None:
            self._close_pipe = os.pipe()
        return self._close_pipe[0]

    def pending(self) -> int:
        return len(self._buffer)

    def discard(self) -> None:
        """Drop buffered bytes that have not been read."""
        self._buffer.clear()

    def unread(self, data: bytes) -> None:
        """Push ``data`` back so the next read returns it first."""
        self._buffer[:0] = data

    def read(self, size: int = 1) -> bytes:
        """Read up to ``size`` bytes; b"" means timeout (VMIN=0) or end of file."""
        self._check_open()
        if size <= 0:
            return b""
        if self._buffer:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data
        return os.read(self._fd, size)

    def readline(self, *, carriage_return: bool = False) -> bytes:
        """
        Read through the next line terminator (or end of file), buffering any excess.

        The terminator is b"\\n"; with ``carriage_return`` a lone b"\\r" also
        ends the line, taking a b"\\n" right behind it along when that byte has
        already arrived.
        """
        terminator = _ANY_LINE_END if carriage_return else _NEWLINE
        line = bytearray()
        while True:
            chunk = self.read(_CHUNK)
            if not chunk:
                return bytes(line)
            match = terminator.search(chunk)
            if match:
                line += chunk[:match.end()]
                self.unread(chunk[match.end():])
                return bytes(line)
            line += chunk

    def write(self, data: bytes | str, encoding: str = "utf-8") -> int:
        """Write all of ``data``; str is encoded with ``encoding``."""
        self._check_open()
        if isinstance(data, str):
            data = data.encode(encoding)
        view = memoryview(data)
        while view:
            written = os.write(self._fd, view)
            view = view[written:]
        return len(data)

    def flush(self) -> None:
        """Writes are unbuffered; present for file-object compatibility."""

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        if self._close_pipe is not None:
            read_end, write_end = self._close_pipe
            self._close_pipe = None
            # hang-up on read_end wakes pollers before the descriptor goes away
            os.close(write_end)
            os.close(read_end)
        if self._owned:
            os.close(self._fd)

    def __enter__(self) -> "DeviceStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"pending={len(self._buffer)}"
        return f"DeviceStream(fd={self._fd}, {state})"
