"""Terminal discipline state as a portable value type."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from termctl.core.constants import CC_SLOT_MAX, DEFAULT_MIN_BYTES, DEFAULT_TIMEOUT_TENTHS
from termctl.errors import InvalidArgument


def _check_flag(name: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise InvalidArgument(f"{name} must be a bool, got {value!r}")


def _check_slot(name: str, value: Any) -> None:
    # bool is an int subclass; reject it so True never means "1 byte"
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an int, got {value!r}")
    if not 0 <= value <= CC_SLOT_MAX:
        raise InvalidArgument(f"{name} must be 0-{CC_SLOT_MAX}, got {value}")


@dataclass(frozen=True)
class ModeDescriptor:
    """
    Discipline state of a terminal device.

    The five abstract fields are a convenience view. ``snapshot`` holds
    whatever the platform backend captured (a termios attribute tuple, a
    console mode integer) and is the authoritative source when the mode is
    applied again; it is never interpreted outside the backend that made it.

    ``min_bytes == 0`` with ``timeout_tenths == 0`` is legal and means a read
    returns immediately with whatever is available.
    """
    echo: bool = True
    canonical: bool = True
    min_bytes: int = DEFAULT_MIN_BYTES
    timeout_tenths: int = DEFAULT_TIMEOUT_TENTHS
    interrupt_chars: bool = True
    snapshot: Any = field(default=None, compare=False, repr=False)

    def validate(self) -> "ModeDescriptor":
        """Raise InvalidArgument if any field is out of range."""
        _check_flag("echo", self.echo)
        _check_flag("canonical", self.canonical)
        _check_flag("interrupt_chars", self.interrupt_chars)
        _check_slot("min_bytes", self.min_bytes)
        _check_slot("timeout_tenths", self.timeout_tenths)
        return self

    def replace(self, **changes: Any) -> "ModeDescriptor":
        """Return a copy with some abstract fields changed, keeping the snapshot."""
        return dataclasses.replace(self, **changes)

    @property
    def raw(self) -> bool:
        """True when canonical (line) mode is off."""
        return not self.canonical


@dataclass(frozen=True)
class RawOptions:
    """
    Parameters for raw mode.

    min_bytes: a read blocks until at least this many bytes arrive (default 1).
    timeout_tenths: inter-byte timeout in tenths of a second (default 0, none).
    interrupt_chars: keep ^C/^Z/^\\ generating signals (default False).
    """
    min_bytes: int = DEFAULT_MIN_BYTES
    timeout_tenths: int = DEFAULT_TIMEOUT_TENTHS
    interrupt_chars: bool = False

    def __post_init__(self) -> None:
        _check_slot("min_bytes", self.min_bytes)
        _check_slot("timeout_tenths", self.timeout_tenths)
        _check_flag("interrupt_chars", self.interrupt_chars)
