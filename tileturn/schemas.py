from __future__ import annotations
import time
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Lifecycle states. Anything other than PLAYING is terminal.
PLAYING = 'playing'
ALL_PASSED_TWICE = 'All players passed twice'
CHALLENGE_FAILED = 'challenge-failed'
TIMED_OUT = 'Timed out'
GAME_OVER = 'Game over'

# Turn types that are not terminal states
MOVE = 'move'
PASSED = 'passed'
TIMEOUT = 'timeout'
SWAP = 'swap'
CHALLENGE_WON = 'challenge-won'
TOOK_BACK = 'took-back'

PassType = Literal['passed', 'challenge-failed', 'timeout']
TakeBackType = Literal['took-back', 'challenge-won']


class Tile(CamelModel):
    letter: Optional[str] = None
    points: int = 0
    is_blank: bool = False

    def __str__(self) -> str:
        if self.is_blank:
            return (self.letter or '?').lower()
        return self.letter or '?'


class PlacedTile(CamelModel):
    row: int
    col: int
    tile: Tile


class Word(CamelModel):
    word: str
    score: int = 0


class Move(CamelModel):
    """A scored placement. Transient until committed into a Turn."""
    player_key: Optional[str] = None
    placements: List[PlacedTile] = []
    replacements: List[Tile] = []
    words: List[Word] = []
    score: int = 0
    remaining_time: Optional[float] = None


class Turn(CamelModel):
    """Immutable record of one committed state transition."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: str
    player_key: Optional[str] = None
    next_to_go_key: Optional[str] = None
    # A number, or a per-player map for end-of-game adjustments
    score: Union[int, Dict[str, int]] = 0
    placements: List[PlacedTile] = []
    replacements: List[Tile] = []
    words: List[Word] = []
    challenger_key: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class GameConfig(CamelModel):
    """Fixed parameters of a game. Copied explicitly into follow-on games."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True)

    edition: str = Field(..., min_length=1)
    dictionary: Optional[str] = None
    seconds_per_play: int = 0
    predict_score: bool = False
    allow_take_back: bool = False
    check_dictionary: bool = False
    min_players: int = 2
    max_players: int = 0
    # Whether a swap can finish the game when it makes everyone have
    # passed twice. Off by default: swaps only ever rotate the turn.
    swap_can_end_game: bool = False

    @model_validator(mode='before')
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        minutes = None
        for key in ('minutes_per_play', 'minutesPerPlay'):
            if key in data:
                minutes = data.pop(key)
        seconds_key = 'secondsPerPlay' if 'secondsPerPlay' in data else 'seconds_per_play'
        if not data.get(seconds_key) and minutes:
            data[seconds_key] = int(minutes) * 60

        dict_key = 'dictionary'
        if data.get(dict_key) in ('none', ''):
            data[dict_key] = None

        min_key = 'minPlayers' if 'minPlayers' in data else 'min_players'
        max_key = 'maxPlayers' if 'maxPlayers' in data else 'max_players'
        min_players = int(data.get(min_key) or 2)
        max_players = int(data.get(max_key) or 0)
        if max_players < min_players:
            max_players = 0
        data[min_key] = min_players
        data[max_key] = max_players
        return data

    @classmethod
    def from_game(cls, game) -> 'GameConfig':
        return cls(**{name: getattr(game.config, name) for name in cls.model_fields})


class PlayerRecord(CamelModel):
    key: str
    name: str
    is_robot: bool = False
    can_challenge: bool = False
    score: int = 0
    passes: int = 0
    rack: List[Tile] = []
    seconds_to_play: float = 0
    wants_advice: bool = False


class GameRecord(CamelModel):
    """The whole mutable state of a game, saved and loaded as one unit."""
    key: str
    creation_timestamp: int
    config: GameConfig
    state: str = PLAYING
    players: List[PlayerRecord] = []
    turns: List[Turn] = []
    current_player_key: Optional[str] = None
    board: List[PlacedTile] = []
    bag: List[Tile] = []
    rack_size: int = 0
    paused_by: Optional[str] = None
    next_game_key: Optional[str] = None
    previous_move: Optional[Move] = None


class PlayerSummary(CamelModel):
    key: str
    name: str
    is_robot: bool
    can_challenge: bool
    score: int
    passes: int
    seconds_to_play: float
    wants_advice: bool


class GameSummary(CamelModel):
    key: str
    creation_timestamp: int
    edition: str
    dictionary: Optional[str]
    predict_score: bool
    check_dictionary: bool
    allow_take_back: bool
    state: str
    players: List[PlayerSummary]
    turns: int
    current_player_key: Optional[str]
    seconds_per_play: int
    paused_by: Optional[str]
    min_players: int
    max_players: int
    next_game_key: Optional[str]
    last_activity: int


class Message(CamelModel):
    sender: str = 'Advisor'
    text: str
    args: List[Any] = []
    classes: Optional[str] = None


class TickState(CamelModel):
    game_key: str
    player_key: str
    seconds_to_play: float
