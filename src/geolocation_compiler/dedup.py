"""
Coordinate deduplication on the quantized grid.

Two rows that quantize to the same (qlat, qlon) cell cannot both be encoded:
the downstream reader binary-searches on the packed coordinate. The row with
the strictly larger population wins; on a tie the first row seen stays.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

from .quantize import quantize
from .records import GazetteerRow


@dataclass
class DedupStats:
    """Counters collected while deduplicating."""

    rows_seen: int = 0
    collisions: int = 0
    replaced: int = 0


class CoordinateDeduplicator:
    """Keeps at most one row per quantized coordinate pair."""

    def __init__(self):
        self._cells: Dict[Tuple[int, int], GazetteerRow] = {}
        self.stats = DedupStats()

    def add(self, row: GazetteerRow) -> bool:
        """
        Offer a row to the grid.

        Returns:
            True if the row now owns its cell
        """
        self.stats.rows_seen += 1
        cell = quantize(row.lat, row.lon)
        current = self._cells.get(cell)

        if current is None:
            self._cells[cell] = row
            return True

        self.stats.collisions += 1
        if row.population > current.population:
            self._cells[cell] = row
            self.stats.replaced += 1
            return True
        return False

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[Tuple[Tuple[int, int], GazetteerRow]]:
        return iter(self._cells.items())

    def rows(self) -> Iterator[GazetteerRow]:
        return iter(self._cells.values())
