"""Best-play solver seam.

The engine only needs something that, given a game and a rack, eventually
produces a scored Move or nothing. Progress strings are informational.
"""
from __future__ import annotations
from typing import Callable, List, Optional, Protocol

from .schemas import Move, Tile

Progress = Callable[[str], None]


class BestPlaySolver(Protocol):
    async def find_best_play(self, game, rack: List[Tile],
                             on_progress: Optional[Progress] = None) -> Optional[Move]:
        ...


class NullSolver:
    """Never finds a play, so robots always pass."""

    async def find_best_play(self, game, rack, on_progress=None):
        if on_progress:
            on_progress(f"No solver configured for {game.key}")
        return None
