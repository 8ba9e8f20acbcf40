from __future__ import annotations
import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..config import get_settings
from ..errors import ConfigurationError, GameNotFound, NextGameExists
from ..game import Game
from ..notifier import Notifier
from ..roster import Player
from ..schemas import GAME_OVER, GameConfig, GameSummary, Move, Tile, Turn
from ..solver import NullSolver
from ..stores.game_store import GameStore
from ..stores.memory_store import MemoryGameStore
from .timer import TimerManager

logger = logging.getLogger(__name__)


class GameManager:
    """Owns live games and serialises every command against a game.

    Each game key has its own asyncio.Lock; all commands, timeouts and
    robot turns for that game run while holding it.
    """

    def __init__(self, notifier: Optional[Notifier] = None, store: Optional[GameStore] = None,
                 solver=None, tick_seconds: Optional[float] = None,
                 stale_game_days: Optional[int] = None):
        settings = get_settings()
        self.notifier = notifier or Notifier()
        self.store = store or MemoryGameStore()
        self.solver = solver or NullSolver()
        self.timer = TimerManager(
            self._on_timeout, self.notifier,
            tick_seconds if tick_seconds is not None else settings.tick_seconds)
        self.stale_game_days = (stale_game_days if stale_game_days is not None
                                else settings.stale_game_days)
        self.games: Dict[str, Game] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, game_key: str) -> asyncio.Lock:
        if game_key not in self._locks:
            self._locks[game_key] = asyncio.Lock()
        return self._locks[game_key]

    def _attach(self, game: Game) -> Game:
        game.on_load(self.notifier, self.timer, self.solver)
        self.games[game.key] = game
        return game

    async def get(self, game_key: str) -> Game:
        if game_key in self.games:
            return self.games[game_key]
        record = await self.store.load(game_key)
        game = await Game.from_record(record)
        return self._attach(game)

    @asynccontextmanager
    async def locked(self, game_key: str):
        async with self._lock(game_key):
            yield await self.get(game_key)

    async def save(self, game: Game):
        await self.store.save(game.key, game.to_record())

    def _release(self, game: Game):
        # Finished games are read back from the store when asked for
        if game.has_ended():
            self.games.pop(game.key, None)

    # -------------------------------------------------
    # Lifecycle
    # -------------------------------------------------

    async def create_game(self, params: dict) -> Game:
        try:
            config = GameConfig.model_validate(params)
        except ValidationError as e:
            raise ConfigurationError(f"Bad game configuration: {e.errors()}") from e
        game = await Game(config).create()
        self._attach(game)
        await self.save(game)
        logger.info("Created game %s", game, extra={'game_key': game.key})
        return game

    async def add_player(self, game_key: str, name: str, key: Optional[str] = None,
                         is_robot: bool = False, can_challenge: bool = False) -> Player:
        async with self.locked(game_key) as game:
            player = Player(name=name, is_robot=is_robot, can_challenge=can_challenge)
            if key:
                player.key = key
            game.add_player(player)
            await self.save(game)
            self.notifier.notify_all(game_key, 'game:state', game.summary().model_dump(by_alias=True))
            return player

    async def add_robot(self, game_key: str, name: str = 'Robot', can_challenge: bool = True) -> Player:
        return await self.add_player(game_key, name, is_robot=True, can_challenge=can_challenge)

    async def remove_player(self, game_key: str, player_key: str):
        async with self.locked(game_key) as game:
            game.remove_player(player_key)
            await self._play_if_ready(game)
            self.notifier.notify_all(game_key, 'game:state', game.summary().model_dump(by_alias=True))

    async def join(self, game_key: str, player_key: str) -> GameSummary:
        """A player's client connected. Start the game if it can start."""
        async with self.locked(game_key) as game:
            game.roster.require(player_key)
            if not game.has_ended():
                game.start_the_clock()
                await self._play_if_ready(game)
            return game.summary()

    async def start_game(self, game_key: str) -> Optional[str]:
        async with self.locked(game_key) as game:
            return await self._play_if_ready(game)

    async def _play_if_ready(self, game: Game) -> Optional[str]:
        reason = game.play_if_ready()
        await self.save(game)
        if reason is not None:
            return reason
        current = game.roster.current()
        if current.is_robot and not game.paused_by:
            await self.finish_turn(game, await self._robot_turn(game))
        return None

    async def finish_turn(self, game: Game, turn: Turn):
        """Commit a turn, save, tell everyone, then keep playing robots
        until a human holds the turn or the game is over."""
        while turn is not None:
            game.commit(turn)
            await self.save(game)
            logger.debug("Turn %s in %s", turn.type, game.key,
                         extra={'game_key': game.key, 'turn_type': turn.type})
            self.notifier.notify_all(game.key, 'turn', turn.model_dump(by_alias=True))

            if game.has_ended():
                self.notifier.notify_all(game.key, 'gameOverConfirmed',
                                         {'key': game.key, 'state': game.state})
                self._release(game)
                return

            next_player = game.roster.current()
            if next_player is None or not next_player.is_robot:
                return
            turn = await self._robot_turn(game)

    async def _robot_turn(self, game: Game) -> Turn:
        # A robot never challenges a play that emptied a rack, so the
        # game is simply over
        if game.player_with_no_tiles() is not None:
            return await game.confirm_game_over(GAME_OVER)
        return await game.autoplay()

    async def _on_timeout(self, game_key: str, player_key: str, generation: int):
        async with self.locked(game_key) as game:
            if (self.timer.generation(game_key) != generation or game.has_ended()
                    or game.paused_by or game.current_player_key != player_key
                    or game.get_player(player_key) is None):
                logger.debug("Ignoring stale timeout for %s in %s", player_key, game_key)
                return
            turn = await game.pass_turn('timeout', player_key)
            await self.finish_turn(game, turn)

    # -------------------------------------------------
    # Turn commands
    # -------------------------------------------------

    async def make_move(self, game_key: str, player_key: str, move: Move) -> Turn:
        async with self.locked(game_key) as game:
            turn = await game.make_move(move, player_key)
            await self.finish_turn(game, turn)
            return turn

    async def pass_turn(self, game_key: str, player_key: str) -> Turn:
        async with self.locked(game_key) as game:
            turn = await game.pass_turn('passed', player_key)
            await self.finish_turn(game, turn)
            return turn

    async def swap(self, game_key: str, player_key: str, tiles: List[Tile]) -> Turn:
        async with self.locked(game_key) as game:
            turn = await game.swap(tiles, player_key)
            await self.finish_turn(game, turn)
            return turn

    async def challenge(self, game_key: str, player_key: str) -> Turn:
        async with self.locked(game_key) as game:
            turn = await game.challenge(player_key)
            await self.finish_turn(game, turn)
            return turn

    async def take_back(self, game_key: str, player_key: str) -> Turn:
        async with self.locked(game_key) as game:
            turn = await game.take_back(player_key)
            await self.finish_turn(game, turn)
            return turn

    async def confirm_game_over(self, game_key: str, player_key: str) -> Turn:
        async with self.locked(game_key) as game:
            turn = await game.confirm_game_over(GAME_OVER, player_key)
            await self.finish_turn(game, turn)
            return turn

    # -------------------------------------------------
    # Other commands
    # -------------------------------------------------

    async def hint(self, game_key: str, player_key: str):
        async with self.locked(game_key) as game:
            await game.hint(player_key)

    async def toggle_advice(self, game_key: str, player_key: str) -> bool:
        async with self.locked(game_key) as game:
            wants = game.toggle_advice(player_key)
            await self.save(game)
            return wants

    async def toggle_pause(self, game_key: str, player_key: str) -> bool:
        async with self.locked(game_key) as game:
            paused = game.toggle_pause(player_key)
            await self.save(game)
            if not paused:
                await self._play_if_ready(game)
            return paused

    async def another_game(self, game_key: str, player_key: Optional[str] = None) -> str:
        """Start a follow-on game with the same settings and players."""
        async with self.locked(game_key) as old:
            if player_key is not None:
                old.roster.require(player_key)
            if old.next_game_key:
                logger.error("Another game already created: old %s new %s",
                             old.key, old.next_game_key)
                raise NextGameExists(f"Game {old.key} already continues as {old.next_game_key}")

            new = await Game(GameConfig.from_game(old)).create()
            self._attach(new)

            # Everyone should get an equal chance to start
            picked = list(old.players)
            random.shuffle(picked)
            for p in picked:
                new.add_player(Player(name=p.name, key=p.key, is_robot=p.is_robot,
                                      can_challenge=p.can_challenge))
            new.roster.current_key = new.players[0].key
            new.players[0].seconds_to_play = new.config.seconds_per_play

            old.next_game_key = new.key
            await self.save(old)
            await self.save(new)
            logger.info("Created follow-on game %s", new.key, extra={'game_key': old.key})
            self._release(old)

        async with self.locked(new.key) as game:
            await self._play_if_ready(game)
        self.notifier.notify_all(game_key, 'nextGame', new.key)
        return new.key

    async def summaries(self) -> List[GameSummary]:
        out = []
        for key in await self.store.keys():
            async with self.locked(key) as game:
                out.append(game.summary())
                self._release(game)
        return out

    async def check_timeouts(self) -> List[str]:
        """Time out stale games. Returns the keys that were timed out."""
        timed_out = []
        for key in await self.store.keys():
            async with self.locked(key) as game:
                if game.check_timeout(self.stale_game_days):
                    await self.save(game)
                    timed_out.append(key)
                self._release(game)
        return timed_out

    async def delete_game(self, game_key: str):
        try:
            async with self._lock(game_key):
                self.timer.stop_all(game_key)
                self.games.pop(game_key, None)
                try:
                    await self.store.delete(game_key)
                except GameNotFound:
                    logger.warning("Deleting unknown game %s", game_key)
                    raise
        finally:
            self._locks.pop(game_key, None)

    def shutdown(self):
        self.timer.shutdown()
