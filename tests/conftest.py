"""Shared fixtures and builders for engine tests."""

import random

import pytest

from tileturn.game import Game
from tileturn.managers.game import GameManager
from tileturn.notifier import Notifier
from tileturn.roster import Player
from tileturn.schemas import GameConfig, Move, PlacedTile, Tile, Word


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def notify_one(self, game_key, player_key, event, data=None):
        self.sent.append((player_key, event, data))

    def notify_all(self, game_key, event, data=None):
        self.sent.append(('*', event, data))

    def events(self, event):
        return [s for s in self.sent if s[1] == event]


class FakeTimers:
    """Stands in for TimerManager; records what the engine asks of it."""

    def __init__(self, remaining=42.0):
        self.remaining = remaining
        self.starts = []
        self.stops = 0
        self.running = set()

    def start(self, game_key, player_key, seconds):
        self.running.add(game_key)
        self.starts.append((player_key, seconds))

    def stop(self, game_key):
        self.stops += 1
        if game_key in self.running:
            self.running.discard(game_key)
            return self.remaining
        return None

    def stop_all(self, game_key):
        self.stop(game_key)

    def is_running(self, game_key):
        return game_key in self.running

    def start_clock(self, game_key):
        pass


class FakeSolver:
    def __init__(self, plays=None, error=None):
        self.plays = list(plays or [])
        self.error = error
        self.calls = []

    async def find_best_play(self, game, rack, on_progress=None):
        self.calls.append(game.board.occupied())
        if on_progress:
            on_progress('thinking')
        if self.error:
            raise self.error
        return self.plays.pop(0) if self.plays else None


def take_from_bag(game, letter):
    for i, t in enumerate(game.letter_bag.tiles):
        if (letter == '_' and t.is_blank) or (not t.is_blank and t.letter == letter):
            return game.letter_bag.tiles.pop(i)
    raise AssertionError(f"no {letter} left in bag")


def set_rack(game, key, letters):
    """Swap a player's rack for the given letters, keeping tile totals."""
    player = game.get_player(key)
    player.return_tiles(game.letter_bag)
    for letter in letters:
        player.rack.add_tile(take_from_bag(game, letter))


def rack_letters(game, key):
    return sorted(str(t) for t in game.get_player(key).rack.tiles())


def total_tiles(game):
    return (game.letter_bag.remaining_tile_count()
            + sum(len(p.rack) for p in game.players)
            + game.board.occupied())


def make_move(player_key, letters, score, words=None, row=7, col=7):
    """Horizontal play of `letters` starting at row, col."""
    placements = [
        PlacedTile(row=row, col=col + i, tile=Tile(letter=letter, points=1))
        for i, letter in enumerate(letters)
    ]
    words = words if words is not None else [letters]
    return Move(player_key=player_key, placements=placements, score=score,
                words=[Word(word=w, score=score) for w in words])


async def build_game(players=('A', 'B'), **config):
    config.setdefault('edition', 'English_Scrabble')
    game = await Game(GameConfig(**config)).create(random.Random(7))
    for key in players:
        game.add_player(Player(name=key, key=key))
    game.roster.current_key = players[0]
    return game


@pytest.fixture
def notifier():
    return RecordingNotifier()


async def build_table(manager, humans=('H',), robots=0, **config):
    """Create a game through the manager and seat players. Robot keys are
    returned in seating order after the humans."""
    config.setdefault('edition', 'English_Scrabble')
    game = await manager.create_game(config)
    for key in humans:
        await manager.add_player(game.key, key, key=key)
    robot_keys = []
    for i in range(robots):
        robot = await manager.add_robot(game.key, f'Robot{i + 1}')
        robot_keys.append(robot.key)
    game.roster.current_key = humans[0]
    return game, robot_keys


@pytest.fixture
def manager(notifier):
    return GameManager(notifier=notifier, stale_game_days=14)
