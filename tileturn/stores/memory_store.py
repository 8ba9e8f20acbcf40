from typing import Dict, List

from ..errors import GameNotFound
from ..schemas import GameRecord
from .game_store import GameStore


class MemoryGameStore(GameStore):
    """Keeps serialised records in a dict, so loads never alias live objects."""

    def __init__(self):
        self._games: Dict[str, str] = {}

    async def save(self, key: str, record: GameRecord) -> None:
        self._games[key] = record.model_dump_json(by_alias=True)

    async def load(self, key: str) -> GameRecord:
        if key not in self._games:
            raise GameNotFound(f"No such game {key}")
        return GameRecord.model_validate_json(self._games[key])

    async def keys(self) -> List[str]:
        return list(self._games)

    async def delete(self, key: str) -> None:
        if self._games.pop(key, None) is None:
            raise GameNotFound(f"No such game {key}")
