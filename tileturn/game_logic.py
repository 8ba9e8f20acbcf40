"""Tile containers the engine drives: editions, the letter bag, racks and the board.

Every method that moves a tile hands the Tile object over rather than
copying it, so the total tile count across bag, racks and board never
changes.
"""
from __future__ import annotations
import asyncio
import random
from typing import Dict, List, Optional

from pydantic import BaseModel

from .errors import EditionNotFound
from .schemas import PlacedTile, Tile


class LetterSpec(BaseModel):
    letter: Optional[str]  # None for a blank
    points: int
    count: int


class Edition(BaseModel):
    name: str
    rows: int = 15
    cols: int = 15
    rack_count: int = 7
    letters: List[LetterSpec]

    def tiles(self) -> List[Tile]:
        out = []
        for spec in self.letters:
            for _ in range(spec.count):
                out.append(Tile(letter=spec.letter, points=spec.points,
                                is_blank=spec.letter is None))
        return out


def _letters(table: Dict[str, tuple]) -> List[LetterSpec]:
    return [LetterSpec(letter=None if k == '_' else k, points=v[0], count=v[1])
            for k, v in table.items()]


# letter: (points, count); '_' is the blank
ENGLISH_SCRABBLE = {
    '_': (0, 2),
    'A': (1, 9), 'B': (3, 2), 'C': (3, 2), 'D': (2, 4), 'E': (1, 12),
    'F': (4, 2), 'G': (2, 3), 'H': (4, 2), 'I': (1, 9), 'J': (8, 1),
    'K': (5, 1), 'L': (1, 4), 'M': (3, 2), 'N': (1, 6), 'O': (1, 8),
    'P': (3, 2), 'Q': (10, 1), 'R': (1, 6), 'S': (1, 4), 'T': (1, 6),
    'U': (1, 4), 'V': (4, 2), 'W': (4, 2), 'X': (8, 1), 'Y': (4, 2),
    'Z': (10, 1),
}

TINY = {
    '_': (0, 1),
    'A': (1, 4), 'E': (1, 4), 'T': (1, 3), 'S': (1, 3), 'C': (3, 2),
    'D': (2, 2), 'O': (1, 3), 'G': (2, 2), 'X': (8, 1),
}

EDITIONS: Dict[str, Edition] = {
    'English_Scrabble': Edition(name='English_Scrabble', letters=_letters(ENGLISH_SCRABBLE)),
    'Tiny': Edition(name='Tiny', rows=7, cols=7, rack_count=5, letters=_letters(TINY)),
}


async def load_edition(name: str) -> Edition:
    # Editions are built in; the await keeps callers ready for a real loader
    await asyncio.sleep(0)
    edition = EDITIONS.get(name)
    if edition is None:
        raise EditionNotFound(f"No such edition {name!r}")
    return edition


class LetterBag:
    def __init__(self, tiles: Optional[List[Tile]] = None, rng: Optional[random.Random] = None):
        self.tiles: List[Tile] = list(tiles or [])
        self.rng = rng or random.Random()

    @classmethod
    def for_edition(cls, edition: Edition, rng: Optional[random.Random] = None) -> 'LetterBag':
        return cls(edition.tiles(), rng)

    def remaining_tile_count(self) -> int:
        return len(self.tiles)

    def is_empty(self) -> bool:
        return not self.tiles

    def get_random_tile(self) -> Optional[Tile]:
        if not self.tiles:
            return None
        return self.tiles.pop(self.rng.randrange(len(self.tiles)))

    def return_tile(self, tile: Tile):
        if tile.is_blank:
            tile.letter = None
        self.tiles.append(tile)


class Rack:
    def __init__(self, capacity: int, tiles: Optional[List[Tile]] = None):
        self.capacity = capacity
        self._tiles: List[Tile] = list(tiles or [])

    def tiles(self) -> List[Tile]:
        return list(self._tiles)

    def __len__(self) -> int:
        return len(self._tiles)

    def is_empty(self) -> bool:
        return not self._tiles

    def is_full(self) -> bool:
        return len(self._tiles) >= self.capacity

    def score(self) -> int:
        return sum(t.points for t in self._tiles)

    def add_tile(self, tile: Tile):
        if self.is_full():
            raise ValueError(f"Rack is full ({self.capacity} tiles)")
        if tile.is_blank:
            tile.letter = None
        self._tiles.append(tile)

    @staticmethod
    def _matches(rack_tile: Tile, tile: Tile) -> bool:
        # any blank stands in for a blank, otherwise letters must agree
        if tile.is_blank:
            return rack_tile.is_blank
        return not rack_tile.is_blank and rack_tile.letter == tile.letter

    def find_tile(self, tile: Tile) -> Optional[int]:
        for i, t in enumerate(self._tiles):
            if self._matches(t, tile):
                return i
        return None

    def remove_tile(self, tile: Tile) -> Optional[Tile]:
        i = self.find_tile(tile)
        if i is None:
            return None
        removed = self._tiles.pop(i)
        if removed.is_blank:
            removed.letter = tile.letter
        return removed

    def contains_all(self, tiles: List[Tile]) -> bool:
        """True if every tile in `tiles` matches a distinct rack entry."""
        taken = set()
        for tile in tiles:
            for i, t in enumerate(self._tiles):
                if i not in taken and self._matches(t, tile):
                    taken.add(i)
                    break
            else:
                return False
        return True

    def __str__(self) -> str:
        return ''.join(str(t) for t in self._tiles)


class Board:
    def __init__(self, rows: int = 15, cols: int = 15):
        self.rows = rows
        self.cols = cols
        self.cells: List[List[Optional[Tile]]] = [[None for _ in range(cols)] for _ in range(rows)]

    @classmethod
    def for_edition(cls, edition: Edition) -> 'Board':
        return cls(edition.rows, edition.cols)

    def at(self, row: int, col: int) -> Optional[Tile]:
        return self.cells[row][col]

    def place_tile(self, row: int, col: int, tile: Tile):
        if self.cells[row][col] is not None:
            raise ValueError(f"Square {row},{col} is occupied")
        self.cells[row][col] = tile

    def remove_tile(self, row: int, col: int) -> Optional[Tile]:
        tile = self.cells[row][col]
        self.cells[row][col] = None
        return tile

    def is_empty_at(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols and self.cells[row][col] is None

    def occupied(self) -> int:
        return sum(1 for row in self.cells for t in row if t is not None)

    def placements(self) -> List[PlacedTile]:
        return [PlacedTile(row=r, col=c, tile=t)
                for r, row in enumerate(self.cells)
                for c, t in enumerate(row) if t is not None]

    def load(self, placements: List[PlacedTile]):
        for p in placements:
            self.cells[p.row][p.col] = p.tile
