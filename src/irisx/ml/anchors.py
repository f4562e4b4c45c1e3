"""Anchor (prior box) generation for single-shot face detectors.

Anchors can be produced procedurally from a list of square feature-map grids
or read from a precomputed ``cx,cy,w,h`` table. Both yield the same ordered
sequence that the box decoder indexes into.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anchor:
    """A prior box with a normalized center and a (unit) size."""

    x_center: float
    y_center: float
    width: float = 1.0
    height: float = 1.0

    def as_rect(self) -> tuple[float, float, float, float]:
        """Return ``(x, y, width, height)`` with ``(x, y)`` the top-left corner."""
        return (
            self.x_center - self.width / 2,
            self.y_center - self.height / 2,
            self.width,
            self.height,
        )


@dataclass(frozen=True)
class AnchorOptions:
    """Layout of a detector head.

    ``layers`` is an ordered sequence of ``(grid_size, replicas_per_cell)``.
    E.g. ``((16, 2), (8, 6))`` gives 16*16*2 + 8*8*6 = 896 anchors.
    """

    layers: tuple[tuple[int, int], ...]
    offset_x: float = 0.5
    offset_y: float = 0.5

    @property
    def num_anchors(self) -> int:
        return sum(size * size * replicas for size, replicas in self.layers)


def generate_anchors(options: AnchorOptions) -> list[Anchor]:
    """Build anchors grid by grid, row-major, each cell replicated in place."""
    anchors: list[Anchor] = []
    for size, replicas in options.layers:
        for y in range(size):
            for x in range(size):
                anchor = Anchor(
                    x_center=(x + options.offset_x) / size,
                    y_center=(y + options.offset_y) / size,
                )
                anchors.extend([anchor] * replicas)
    return anchors


def load_anchor_table(path: str | Path) -> list[Anchor]:
    """Read anchors from a text file with one ``cx,cy,w,h`` line per anchor.

    Lines that do not hold exactly four floats are skipped with a warning;
    the caller is expected to check the resulting count against the detector.

    Raises:
        FileNotFoundError: If the table does not exist.
    """
    table = Path(path)
    anchors: list[Anchor] = []
    with table.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            fields = line.split(",")
            if len(fields) != 4:
                logger.warning("Skipping anchor line %d in %s: expected 4 fields, got %d", lineno, table, len(fields))
                continue
            try:
                cx, cy, w, h = (float(field) for field in fields)
            except ValueError:
                logger.warning("Skipping anchor line %d in %s: %r is not numeric", lineno, table, line)
                continue
            anchors.append(Anchor(x_center=cx, y_center=cy, width=w, height=h))

    logger.info("Loaded %d anchors from %s", len(anchors), table)
    return anchors
