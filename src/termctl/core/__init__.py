"""Core value types and constants."""

from termctl.core.mode import ModeDescriptor, RawOptions
from termctl.core.size import ConsoleSize

__all__ = ["ModeDescriptor", "RawOptions", "ConsoleSize"]
