"""Platform backend selection."""

from __future__ import annotations

import functools
import os

from termctl.config import BACKEND_CHOICES, load_settings
from termctl.errors import InvalidArgument, PlatformUnsupported
from termctl.platform.base import Backend, ScreenInfo


def create_backend(name: str = "auto") -> Backend:
    """Instantiate the backend called ``name`` ("auto" probes the host)."""
    if name not in BACKEND_CHOICES:
        raise InvalidArgument(f"unknown backend {name!r}; expected one of {', '.join(BACKEND_CHOICES)}")
    if name == "auto":
        name = "windows" if os.name == "nt" else "posix"

    if name == "windows":
        try:
            from termctl.platform.windows import WindowsBackend
        except ImportError as exc:
            raise PlatformUnsupported(f"Windows console API unavailable: {exc}") from exc
        return WindowsBackend()

    try:
        from termctl.platform.posix import PosixBackend
    except ImportError as exc:
        raise PlatformUnsupported(f"termios unavailable: {exc}") from exc
    return PosixBackend()


@functools.lru_cache(maxsize=None)
def default_backend() -> Backend:
    """The process-wide backend, chosen once from TERMCTL_BACKEND."""
    return create_backend(load_settings().backend)


__all__ = ["Backend", "ScreenInfo", "create_backend", "default_backend"]
