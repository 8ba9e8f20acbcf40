"""Players and seating rotation.

Rotation never advances by itself; the turn engine moves `current_key`
when it commits a Turn.
"""
from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .errors import BagExhausted, PlayerNotFound
from .game_logic import LetterBag, Rack
from .schemas import PlayerRecord, PlayerSummary


def gen_key() -> str:
    return uuid.uuid4().hex[:16]


@dataclass
class Player:
    name: str
    key: str = field(default_factory=gen_key)
    is_robot: bool = False
    can_challenge: bool = False
    score: int = 0
    passes: int = 0
    rack: Rack = field(default_factory=lambda: Rack(0))
    # Remaining time for the turn in progress
    seconds_to_play: float = 0
    wants_advice: bool = False

    def fill_rack(self, bag: LetterBag, rack_size: int):
        """Deal a full rack. All or nothing."""
        need = rack_size - len(self.rack)
        if bag.remaining_tile_count() < need:
            raise BagExhausted(
                f"Bag has {bag.remaining_tile_count()} tiles, {self.name} needs {need}")
        self.rack.capacity = rack_size
        for _ in range(need):
            self.rack.add_tile(bag.get_random_tile())

    def return_tiles(self, bag: LetterBag):
        for tile in self.rack.tiles():
            bag.return_tile(self.rack.remove_tile(tile))

    def toggle_advice(self):
        self.wants_advice = not self.wants_advice

    def to_record(self) -> PlayerRecord:
        return PlayerRecord(
            key=self.key, name=self.name, is_robot=self.is_robot,
            can_challenge=self.can_challenge, score=self.score,
            passes=self.passes, rack=self.rack.tiles(),
            seconds_to_play=self.seconds_to_play, wants_advice=self.wants_advice)

    @classmethod
    def from_record(cls, rec: PlayerRecord, rack_size: int) -> 'Player':
        return cls(
            key=rec.key, name=rec.name, is_robot=rec.is_robot,
            can_challenge=rec.can_challenge, score=rec.score,
            passes=rec.passes, rack=Rack(rack_size, rec.rack),
            seconds_to_play=rec.seconds_to_play, wants_advice=rec.wants_advice)

    def summary(self) -> PlayerSummary:
        return PlayerSummary(
            key=self.key, name=self.name, is_robot=self.is_robot,
            can_challenge=self.can_challenge, score=self.score,
            passes=self.passes, seconds_to_play=self.seconds_to_play,
            wants_advice=self.wants_advice)

    def __str__(self) -> str:
        robot = ' (robot)' if self.is_robot else ''
        return f"{self.name}{robot} [{self.rack}] {self.score}"


PlayerRef = Union[Player, str, None]


class Roster:
    """Seating order is insertion order."""

    def __init__(self, players: Optional[List[Player]] = None, current_key: Optional[str] = None):
        self.players: List[Player] = list(players or [])
        self.current_key = current_key

    def __len__(self) -> int:
        return len(self.players)

    def __iter__(self):
        return iter(self.players)

    def get(self, key: Optional[str] = None) -> Optional[Player]:
        """Player with `key`, or the current player when no key is given."""
        if key is None:
            key = self.current_key
        return next((p for p in self.players if p.key == key), None)

    def require(self, key: Optional[str]) -> Player:
        player = self.get(key)
        if player is None:
            raise PlayerNotFound(f"No such player {key}")
        return player

    def current(self) -> Optional[Player]:
        return self.get()

    def _index(self, player: PlayerRef) -> int:
        if player is None:
            player = self.current_key
        key = player.key if isinstance(player, Player) else player
        for i, p in enumerate(self.players):
            if p.key == key:
                return i
        raise PlayerNotFound(f"No such player {key}")

    def next(self, player: PlayerRef = None) -> Player:
        i = self._index(player)
        return self.players[(i + 1) % len(self.players)]

    def previous(self, player: PlayerRef = None) -> Player:
        i = self._index(player)
        return self.players[(i + len(self.players) - 1) % len(self.players)]

    def add(self, player: Player):
        if self.get(player.key) is not None:
            raise ValueError(f"Player {player.key} already seated")
        self.players.append(player)

    def remove(self, key: str) -> Player:
        player = self.require(key)
        self.players.remove(player)
        return player

    def all_passed_twice(self) -> bool:
        return all(p.passes >= 2 for p in self.players)

    def with_no_tiles(self) -> Optional[Player]:
        return next((p for p in self.players if p.rack.is_empty()), None)
