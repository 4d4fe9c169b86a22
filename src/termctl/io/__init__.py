"""Device streams and readiness polling."""

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
from termctl.io.stream import BufferedSource, DeviceStream

__all__ = [
    "ReadinessPoller",
    "Readiness",
    "WaitResult",
    "WaitStatus",
    "nread",
    "ready",
    "wait",
    "wait_priority",
    "wait_readable",
    "wait_writable",
    "BufferedSource",
    "DeviceStream",
]
