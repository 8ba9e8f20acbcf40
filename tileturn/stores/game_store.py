from abc import ABC, abstractmethod
from typing import List

from ..schemas import GameRecord


class GameStore(ABC):
    """
    Persistence for whole games.

    Invariants:
    - A save captures the entire GameRecord; there are no partial writes
    - load() of an unknown key raises GameNotFound
    """

    async def init(self) -> None:
        """Open connections. Call after construction."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def save(self, key: str, record: GameRecord) -> None:
        """Insert or replace the game stored under `key`."""

    @abstractmethod
    async def load(self, key: str) -> GameRecord:
        """Fetch a game.

        Raises:
            GameNotFound: If no game is stored under `key`.
        """

    @abstractmethod
    async def keys(self) -> List[str]:
        """Keys of every stored game."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a game.

        Raises:
            GameNotFound: If no game is stored under `key`.
        """
