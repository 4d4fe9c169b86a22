"""Pytest configuration: pseudo-terminal and pipe fixtures."""

import os
import sys
import time
from typing import Iterator

import pytest

from termctl.control.terminal import TerminalController

HAS_PTY = hasattr(os, "openpty") and sys.platform != "win32"

posix_only = pytest.mark.skipif(not HAS_PTY, reason="needs termios and pseudo-terminals")


def read_available(fd: int, settle: float = 0.2) -> bytes:
    """Collect whatever ``fd`` yields until it stays quiet for ``settle`` seconds."""
    import select

    data = bytearray()
    while True:
        ready, _, _ = select.select([fd], [], [], settle)
        if not ready:
            return bytes(data)
        try:
            chunk = os.read(fd, 1024)
        except OSError:
            return bytes(data)
        if not chunk:
            return bytes(data)
        data += chunk


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def pty_pair() -> Iterator[tuple[int, int]]:
    """(master, slave) descriptors of a fresh pseudo-terminal."""
    if not HAS_PTY:
        pytest.skip("needs pseudo-terminals")
    master, slave = os.openpty()
    yield master, slave
    for fd in (master, slave):
        try:
            os.close(fd)
        except OSError:
            pass


@pytest.fixture
def controller(pty_pair: tuple[int, int]) -> TerminalController:
    """Controller over the slave end, with prompts captured in memory."""
    import io

    from termctl.platform.posix import PosixBackend

    _, slave = pty_pair
    return TerminalController(slave, error_stream=io.StringIO(), encoding="utf-8", backend=PosixBackend())


@pytest.fixture
def pipe_pair() -> Iterator[tuple[int, int]]:
    """(read_end, write_end) of an OS pipe."""
    read_end, write_end = os.pipe()
    yield read_end, write_end
    for fd in (read_end, write_end):
        try:
            os.close(fd)
        except OSError:
            pass
