"""Environment-driven settings."""

from __future__ import annotations

import codecs
import locale
import os
from dataclasses import dataclass
from typing import Mapping

BACKEND_CHOICES = ("auto", "posix", "windows")

_TRUTHY = ("1", "true", "yes", "on")


def _positive_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        number = int(value.strip())
    except ValueError:
        return None
    return number if number > 0 else None


def _encoding(name: str | None) -> str:
    encoding = name or locale.getpreferredencoding(False) or "utf-8"
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        return "utf-8"


@dataclass(frozen=True)
class Settings:
    """
    Settings read from the process environment.

    TERMCTL_BACKEND: "auto", "posix" or "windows".
    TERMCTL_ENCODING: encoding used to decode characters read from a device.
    TERMCTL_INTERRUPTIBLE: surface signals during waits as Interrupted.
    LINES / COLUMNS: console size hints for default_size().
    """
    backend: str = "auto"
    encoding: str = "utf-8"
    interruptible: bool = False
    lines: int | None = None
    columns: int | None = None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from ``environ`` (default: os.environ)."""
    env = os.environ if environ is None else environ
    return Settings(
        backend=(env.get("TERMCTL_BACKEND") or "auto").strip().lower(),
        encoding=_encoding(env.get("TERMCTL_ENCODING")),
        interruptible=(env.get("TERMCTL_INTERRUPTIBLE", "").strip().lower() in _TRUTHY),
        lines=_positive_int(env.get("LINES")),
        columns=_positive_int(env.get("COLUMNS")),
    )
