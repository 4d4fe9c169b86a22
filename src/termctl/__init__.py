"""
termctl: terminal discipline control and readiness polling

Switch a terminal between cooked, raw and no-echo input with a guaranteed
restore, and wait on streams for readability without blocking forever.

Quick Start:
    >>> import termctl
    >>> with termctl.TerminalController.open() as tty:
    ...     key = tty.getch()
    ...     secret = tty.getpass("Password: ")
    >>> termctl.wait_readable(sock, timeout=1.0)

Features:
    - Scoped raw / cooked / no-echo modes that always restore the prior mode
    - ModeDescriptor: portable view of the discipline plus an exact snapshot
    - getch() with multi-byte characters, getpass() with the prompt on stderr
    - Readiness waits with timeouts, signal handling and a buffered fast path
    - Cursor, erase and scroll operations (VT100 or native Windows console)
    - Console size queries with a LINES/COLUMNS fallback
"""

__version__ = "0.1.0"

# Core types
from termctl.core.mode import ModeDescriptor, RawOptions
from termctl.core.size import ConsoleSize

# Errors
from termctl.errors import (
    DeviceUnavailable,
    Interrupted,
    InvalidArgument,
    PlatformUnsupported,
    StreamClosed,
    TermctlError,
)

# Terminal control
from termctl.control.terminal import TerminalController

# Readiness
from termctl.io.poller import (
    ReadinessPoller,
    Readiness,
    WaitResult,
    WaitStatus,
    nread,
    ready,
    wait,
    wait_priority,
    wait_readable,
    wait_writable,
)
from termctl.io.stream import DeviceStream

# Screen
from termctl.screen.cursor import Screen, screen_for
from termctl.screen.size import ConsoleSizeProbe, console_size, default_size

READABLE = Readiness.READABLE
WRITABLE = Readiness.WRITABLE
PRIORITY = Readiness.PRIORITY

__all__ = [
    # Version
    "__version__",
    # Core types
    "ModeDescriptor",
    "RawOptions",
    "ConsoleSize",
    # Errors
    "TermctlError",
    "InvalidArgument",
    "DeviceUnavailable",
    "Interrupted",
    "StreamClosed",
    "PlatformUnsupported",
    # Terminal control
    "TerminalController",
    # Readiness
    "ReadinessPoller",
    "Readiness",
    "WaitResult",
    "WaitStatus",
    "READABLE",
    "WRITABLE",
    "PRIORITY",
    "wait",
    "wait_readable",
    "wait_writable",
    "wait_priority",
    "nread",
    "ready",
    "DeviceStream",
    # Screen
    "Screen",
    "screen_for",
    "ConsoleSizeProbe",
    "console_size",
    "default_size",
]
