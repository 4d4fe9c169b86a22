"""Console dimensions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ConsoleSize:
    """Console window dimensions in character cells (and pixels when known)."""
    rows: int
    columns: int
    pixel_width: int = 0
    pixel_height: int = 0

    def as_tuple(self) -> tuple[int, int]:
        """Return (rows, columns)."""
        return (self.rows, self.columns)
