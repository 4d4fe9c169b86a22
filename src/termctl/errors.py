"""Exception hierarchy for terminal control and readiness polling."""

from __future__ import annotations


class TermctlError(Exception):
    """Base class for every error raised by termctl."""


class InvalidArgument(TermctlError, ValueError):
    """A timeout, event mask, mode field or coordinate is malformed."""


class DeviceUnavailable(TermctlError, OSError):
    """The handle is not a controllable terminal, or the device refused a change."""


class Interrupted(TermctlError, InterruptedError):
    """A signal was delivered while blocked in a wait or read."""


class StreamClosed(TermctlError, OSError):
    """The descriptor was closed before or during a wait."""


class PlatformUnsupported(TermctlError, OSError):
    """The host has no way to perform the requested operation."""
