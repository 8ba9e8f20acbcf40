"""The Game aggregate and its turn engine.

A Game is built in two steps: construct it from a GameConfig, then
`await game.create()` to load the edition and make the board and bag.
Games loaded from a store are rebuilt with `Game.from_record()`. In both
cases `on_load()` attaches the collaborators that are not persisted
(notifier, timers, solver).

Every turn handler returns a Turn; the caller (the game manager) commits
it, saves the game and tells the players. Handlers check everything they
can before the first mutation, so a raised GameError leaves the game as
it was.
"""
from __future__ import annotations
import asyncio
import logging
import random
from typing import List, Optional, Set

from .dictionary import load_dictionary
from .errors import (
    ConfigurationError, DictionaryUnavailable, GameFull, GameNotReady,
    GameOver, GamePaused, InvariantViolation, NoPreviousMove, NotYourTurn,
    InsufficientBag, PlayerNotFound, TakeBackNotAllowed, TileNotOnRack,
)
from .finalizer import rack_penalties
from .game_logic import Board, LetterBag, load_edition
from .notifier import Notifier
from .roster import Player, Roster, gen_key
from .schemas import (
    ALL_PASSED_TWICE, CHALLENGE_FAILED, CHALLENGE_WON, GAME_OVER, MOVE,
    PASSED, PLAYING, SWAP, TIMED_OUT, TOOK_BACK,
    GameConfig, GameRecord, GameSummary, Message, Move, PassType, Tile,
    Turn, now_ms,
)
from .solver import NullSolver

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class Game:

    def __init__(self, config: GameConfig, key: Optional[str] = None,
                 creation_timestamp: Optional[int] = None):
        self.config = config
        self.key = key or gen_key()
        self.creation_timestamp = creation_timestamp or now_ms()
        # 'playing' until the game is finished, then the reason it ended
        self.state: str = PLAYING
        self.roster = Roster()
        self.turns: List[Turn] = []
        self.board: Optional[Board] = None
        self.letter_bag: Optional[LetterBag] = None
        # Cached from the edition
        self.rack_size = 0
        self.paused_by: Optional[str] = None
        self.next_game_key: Optional[str] = None
        # Last committed move, while it can still be taken back or challenged
        self.previous_move: Optional[Move] = None

        self._notifier: Notifier = Notifier()
        self._timers = None
        self._solver = NullSolver()
        self._background: Set[asyncio.Task] = set()

    async def create(self, rng: Optional[random.Random] = None) -> 'Game':
        edition = await load_edition(self.config.edition)
        self.board = Board.for_edition(edition)
        self.letter_bag = LetterBag.for_edition(edition, rng)
        self.rack_size = edition.rack_count
        return self

    def on_load(self, notifier: Optional[Notifier] = None, timers=None, solver=None) -> 'Game':
        if notifier is not None:
            self._notifier = notifier
        if timers is not None:
            self._timers = timers
        if solver is not None:
            self._solver = solver
        return self

    # -------------------------------------------------
    # Roster
    # -------------------------------------------------

    @property
    def players(self) -> List[Player]:
        return self.roster.players

    @property
    def current_player_key(self) -> Optional[str]:
        return self.roster.current_key

    def add_player(self, player: Player):
        """Seat a player and deal them a full rack."""
        if self.letter_bag is None:
            raise GameNotReady("Cannot add a player before create()")
        if self.has_ended():
            raise GameOver(f"Game {self.key} has ended")
        if self.config.max_players and len(self.roster) >= self.config.max_players:
            raise GameFull(f"Game {self.key} is full")
        if self.roster.get(player.key) is not None:
            raise ConfigurationError(f"{player.key} is already in {self.key}")
        player.fill_rack(self.letter_bag, self.rack_size)
        self.roster.add(player)
        logger.debug("%s joined %s", player.key, self.key)

    def remove_player(self, key: str) -> Player:
        """Unseat a player, returning their tiles to the bag. If it was
        their turn, it passes to the next seat without starting a clock;
        `play_if_ready()` starts it."""
        player = self.roster.require(key)
        if self.has_ended():
            raise GameOver(f"Game {self.key} has ended: {self.state}")
        if self.previous_move is not None and self.previous_move.player_key == key:
            self.previous_move = None
        if self.roster.current_key == key:
            self._stop_timer(player)
            self.roster.current_key = (
                self.roster.next(player).key if len(self.roster) > 1 else None)
        player.return_tiles(self.letter_bag)
        self.roster.remove(key)
        logger.debug("%s left %s", key, self.key)
        return player

    def get_player(self, key: Optional[str] = None) -> Optional[Player]:
        return self.roster.get(key)

    def next_player(self, player=None) -> Player:
        return self.roster.next(player)

    def previous_player(self, player=None) -> Player:
        return self.roster.previous(player)

    def has_robot(self) -> bool:
        return any(p.is_robot for p in self.roster)

    def winning_score(self) -> int:
        return max([p.score for p in self.roster] + [0])

    def player_with_no_tiles(self) -> Optional[Player]:
        return self.roster.with_no_tiles()

    # -------------------------------------------------
    # Lifecycle
    # -------------------------------------------------

    def has_ended(self) -> bool:
        return self.state != PLAYING

    def last_activity(self) -> int:
        if self.turns:
            return self.turns[-1].timestamp
        return self.creation_timestamp

    def commit(self, turn: Turn):
        self.turns.append(turn)

    def check_timeout(self, stale_days: int = 14) -> bool:
        """Time out a game nobody has touched for `stale_days`."""
        if self.has_ended():
            return False
        age_days = (now_ms() - self.last_activity()) / DAY_MS
        if age_days <= stale_days:
            return False
        logger.info("Game %s timed out", self.key)
        self._end(TIMED_OUT)
        return True

    def _end(self, state: str):
        # One way: nothing leaves a terminal state
        self.stop_timers()
        self.state = state
        self.previous_move = None
        self.roster.current_key = None

    def play_if_ready(self) -> Optional[str]:
        """Make sure someone holds the turn. Returns why the game cannot
        be played, or None. Robots are driven by the caller."""
        if len(self.roster) < self.config.min_players:
            return 'Not enough players'
        if self.has_ended():
            return self.state
        if self.roster.current_key is None:
            self.roster.current_key = random.choice(self.players).key
        elif self.roster.current() is None:
            # Player whose turn it was must have left
            self.roster.current_key = self.players[0].key
        player = self.roster.current()
        logger.debug("Next to play in %s is %s", self.key, player.name)
        if (not player.is_robot and self._timers is not None
                and not self._timers.is_running(self.key) and not self.paused_by):
            self.start_turn(player, player.seconds_to_play or None)
        return None

    # -------------------------------------------------
    # Timers
    # -------------------------------------------------

    def start_turn(self, player: Player, timeout: Optional[float] = None):
        logger.debug("Starting %s's turn", player.name)
        self.roster.current_key = player.key
        if self.config.seconds_per_play and self.state == PLAYING:
            player.seconds_to_play = timeout or self.config.seconds_per_play
            if self._timers is not None and not player.is_robot and not self.paused_by:
                self._timers.start(self.key, player.key, player.seconds_to_play)

    def _stop_timer(self, player: Player):
        if self._timers is None:
            return
        remaining = self._timers.stop(self.key)
        if remaining is not None:
            player.seconds_to_play = remaining

    def start_the_clock(self):
        if self.config.seconds_per_play and self._timers is not None and not self.has_ended():
            self._timers.start_clock(self.key)

    def stop_timers(self):
        current = self.roster.current()
        if current is not None:
            self._stop_timer(current)
        if self._timers is not None:
            self._timers.stop_all(self.key)

    def restart_timers(self):
        if self.has_ended():
            return
        self.start_the_clock()
        current = self.roster.current()
        if current is not None and not current.is_robot:
            self.start_turn(current, current.seconds_to_play or None)

    def toggle_pause(self, player_key: str) -> bool:
        """Returns True if the game is now paused."""
        player = self.roster.require(player_key)
        if self.paused_by:
            logger.debug("%s has unpaused %s", player.name, self.key)
            self.paused_by = None
            self.restart_timers()
            self._notifier.notify_all(self.key, 'unpause', {'key': self.key, 'name': player.name})
            return False
        self.paused_by = player.name
        logger.debug("%s has paused %s", player.name, self.key)
        self.stop_timers()
        self._notifier.notify_all(self.key, 'pause', {'key': self.key, 'name': player.name})
        return True

    # -------------------------------------------------
    # Advice
    # -------------------------------------------------

    def _progress(self, info: str):
        logger.debug(info)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _message(self, text: str, *args, classes: Optional[str] = None) -> dict:
        return Message(text=text, args=list(args), classes=classes).model_dump(by_alias=True)

    async def _best_play(self, player: Player) -> Optional[Move]:
        return await self._solver.find_best_play(self, player.rack.tiles(), self._progress)

    async def hint(self, player_key: str):
        """Tell a player the best play for their rack. Not a turn."""
        player = self.roster.require(player_key)
        logger.debug("%s asked for a hint", player.name)
        try:
            best = await self._best_play(player)
        except Exception as e:
            logger.warning("Hint failed for %s: %s", player.name, e)
            self._notifier.notify_all(self.key, 'message', self._message(str(e)))
            return
        if best is None or not best.placements:
            hint = self._message("Can't find a play")
        else:
            start = best.placements[0]
            words = ','.join(w.word for w in best.words)
            hint = self._message('Hint', words, start.row + 1, start.col + 1, best.score)
        self._notifier.notify_one(self.key, player.key, 'message', hint)
        self._notifier.notify_all(self.key, 'message', self._message(
            '$1 asked for a hint', player.name, classes='warning'))

    def toggle_advice(self, player_key: str) -> bool:
        player = self.roster.require(player_key)
        player.toggle_advice()
        self._notifier.notify_one(self.key, player.key, 'message', self._message(
            'Enabled' if player.wants_advice else 'Disabled'))
        if player.wants_advice:
            self._notifier.notify_all(self.key, 'message', self._message(
                '$1 has asked for advice from the robot', player.name, classes='warning'))
        return player.wants_advice

    async def advise(self, player: Player, their_score: int):
        """Report a better play than the one about to be made.
        Reads the board, so it must finish before the move is applied."""
        logger.debug("Computing advice for %s > %d", player.name, their_score)
        try:
            best = await self._best_play(player)
        except Exception as e:
            logger.warning("Advice failed for %s: %s", player.name, e)
            return
        if best is None or best.score <= their_score or not best.placements:
            logger.debug("No better plays found for %s", player.name)
            return
        start = best.placements[0]
        words = ','.join(w.word for w in best.words)
        self._notifier.notify_one(self.key, player.key, 'message', self._message(
            '$1 at row $2 column $3 would have scored $4',
            words, start.row + 1, start.col + 1, best.score))
        self._notifier.notify_all(self.key, 'message', self._message(
            '$1 has received advice from the robot', player.name, classes='warning'))

    async def _check_words(self, player_key: str, words: List[str]):
        # Feedback only; must never touch scores, racks or the board
        try:
            dictionary = await load_dictionary(self.config.dictionary)
        except DictionaryUnavailable as e:
            logger.warning("Dictionary check skipped for %s: %s", self.key, e)
            return
        for word in words:
            if not dictionary.has_word(word):
                self._notifier.notify_one(self.key, player_key, 'message', self._message(
                    '$1 not found in $2', word, dictionary.name))

    # -------------------------------------------------
    # Turn handlers
    # -------------------------------------------------

    def _acting_player(self, player_key: Optional[str] = None) -> Player:
        if self.board is None or self.letter_bag is None:
            raise GameNotReady(f"Game {self.key} has not been created")
        if self.has_ended():
            raise GameOver(f"Game {self.key} has ended: {self.state}")
        if self.paused_by:
            raise GamePaused(f"Game {self.key} is paused by {self.paused_by}")
        player = self.roster.current()
        if player is None:
            raise PlayerNotFound(f"No current player in {self.key}")
        if player_key is not None and player_key != player.key:
            self.roster.require(player_key)
            raise NotYourTurn(f"It is {player.name}'s turn")
        return player

    async def make_move(self, move: Move, player_key: Optional[str] = None) -> Turn:
        player = self._acting_player(player_key or move.player_key)

        if not player.rack.contains_all([p.tile for p in move.placements]):
            raise TileNotOnRack(f"{player.name} does not hold those tiles")
        squares = {(p.row, p.col) for p in move.placements}
        if len(squares) != len(move.placements) or not all(
                self.board.is_empty_at(r, c) for r, c in squares):
            raise ConfigurationError("Placements must target distinct empty squares")

        self._stop_timer(player)
        logger.debug("%s plays %s", player.name, [w.word for w in move.words])

        # Advice depends on the board, which the move is about to change
        if player.wants_advice:
            await self.advise(player, move.score)

        move = move.model_copy(deep=True)
        move.replacements = []
        for placement in move.placements:
            tile = player.rack.remove_tile(placement.tile)
            self.board.place_tile(placement.row, placement.col, tile)

        player.score += move.score

        for _ in move.placements:
            tile = self.letter_bag.get_random_tile()
            if tile is not None:
                player.rack.add_tile(tile)
                move.replacements.append(tile.model_copy())

        if self.config.check_dictionary and not player.is_robot:
            self._spawn(self._check_words(player.key, [w.word for w in move.words]))

        move.player_key = player.key
        move.remaining_time = player.seconds_to_play
        self.previous_move = move
        player.passes = 0

        if self.roster.all_passed_twice():
            self._end(ALL_PASSED_TWICE)
        else:
            self.start_turn(self.roster.next(player))

        return Turn(
            type=MOVE,
            player_key=player.key,
            next_to_go_key=self.roster.current_key,
            score=move.score,
            placements=[p.model_copy(deep=True) for p in move.placements],
            replacements=[t.model_copy() for t in move.replacements],
            words=[w.model_copy() for w in move.words])

    async def pass_turn(self, type: PassType = PASSED, player_key: Optional[str] = None) -> Turn:
        player = self._acting_player(player_key)
        self._stop_timer(player)
        return self._pass(player, type)

    def _pass(self, player: Player, type: str) -> Turn:
        self.previous_move = None
        player.passes += 1
        logger.debug("%s %s (%d)", player.name, type, player.passes)

        if self.roster.all_passed_twice():
            return self._confirm_game_over(ALL_PASSED_TWICE)
        self.start_turn(self.roster.next(player))
        return Turn(type=type, player_key=player.key, next_to_go_key=self.roster.current_key)

    async def swap(self, tiles: List[Tile], player_key: Optional[str] = None) -> Turn:
        player = self._acting_player(player_key)
        if self.letter_bag.remaining_tile_count() < len(tiles):
            raise InsufficientBag(
                f"Cannot swap, bag only has {self.letter_bag.remaining_tile_count()} tiles")
        if not player.rack.contains_all(tiles):
            raise TileNotOnRack(f"Cannot swap, {player.name}'s rack does not hold those tiles")

        self._stop_timer(player)
        self.previous_move = None
        player.passes += 1

        # Draw first, then put the discards back, so a player never
        # redraws what they just threw in
        replacements = [self.letter_bag.get_random_tile() for _ in tiles]
        for tile in tiles:
            self.letter_bag.return_tile(player.rack.remove_tile(tile))
        for tile in replacements:
            player.rack.add_tile(tile)

        if self.config.swap_can_end_game and self.roster.all_passed_twice():
            return self._confirm_game_over(ALL_PASSED_TWICE)

        self.start_turn(self.roster.next(player))
        return Turn(
            type=SWAP,
            player_key=player.key,
            next_to_go_key=self.roster.current_key,
            replacements=[t.model_copy() for t in replacements])

    async def challenge(self, challenger_key: Optional[str] = None) -> Turn:
        """The current player disputes the words of the previous move."""
        challenger = self._acting_player(challenger_key)
        if self.previous_move is None:
            raise NoPreviousMove("There is no move to challenge")
        if self.previous_move.player_key == challenger.key:
            raise ConfigurationError("Cannot challenge your own move")

        self._stop_timer(challenger)

        try:
            dictionary = await load_dictionary(self.config.dictionary)
        except DictionaryUnavailable:
            logger.debug("No dictionary, so challenge always succeeds")
            return self._take_back(CHALLENGE_WON)

        bad = [w.word for w in self.previous_move.words if not dictionary.has_word(w.word)]
        if bad:
            logger.info("%s challenged successfully: %s", challenger.name, bad)
            return self._take_back(CHALLENGE_WON)

        # The challenged play emptied the mover's rack; nothing left to do
        if not self.previous_move.replacements:
            return self._confirm_game_over(CHALLENGE_FAILED)

        return self._pass(challenger, CHALLENGE_FAILED)

    async def take_back(self, player_key: str) -> Turn:
        """Undo the previous move at the request of the player who made it."""
        if self.has_ended():
            raise GameOver(f"Game {self.key} has ended: {self.state}")
        if self.paused_by:
            raise GamePaused(f"Game {self.key} is paused by {self.paused_by}")
        if not self.config.allow_take_back:
            raise TakeBackNotAllowed("Take-backs are not allowed in this game")
        if self.previous_move is None:
            raise NoPreviousMove("There is no move to take back")
        if player_key != self.previous_move.player_key:
            self.roster.require(player_key)
            raise NotYourTurn("Only the player who made the last move can take it back")

        current = self.roster.current()
        if current is not None:
            self._stop_timer(current)
        return self._take_back(TOOK_BACK)

    def _take_back(self, type: str) -> Turn:
        move = self.previous_move
        mover = self.roster.require(move.player_key)
        if not mover.rack.contains_all(move.replacements) or any(
                self.board.at(p.row, p.col) is None for p in move.placements):
            logger.error("Cannot reverse move by %s in %s", mover.key, self.key)
            raise InvariantViolation("Previous move no longer matches rack and board")

        self.previous_move = None

        for new_tile in move.replacements:
            self.letter_bag.return_tile(mover.rack.remove_tile(new_tile))
        for placement in move.placements:
            mover.rack.add_tile(self.board.remove_tile(placement.row, placement.col))
        mover.score -= move.score

        challenger_key = self.roster.current_key
        if type == TOOK_BACK:
            # Same player again, with only the time they had left
            self.start_turn(mover, move.remaining_time)
        else:
            # The challenger keeps the turn and gets a fresh clock
            self.start_turn(self.roster.require(challenger_key))

        return Turn(
            type=type,
            player_key=mover.key,
            next_to_go_key=self.roster.current_key,
            score=-move.score,
            placements=[p.model_copy(deep=True) for p in move.placements],
            replacements=[t.model_copy() for t in move.replacements],
            challenger_key=challenger_key)

    async def confirm_game_over(self, reason: str = GAME_OVER,
                                player_key: Optional[str] = None) -> Turn:
        if self.has_ended():
            raise GameOver(f"Game {self.key} has already ended: {self.state}")
        if player_key is not None:
            self.roster.require(player_key)
        return self._confirm_game_over(reason)

    def _confirm_game_over(self, end_state: str) -> Turn:
        deltas = rack_penalties(self.roster)
        logger.info("Game %s over: %s", self.key, end_state)
        acting_key = self.roster.current_key
        self._end(end_state)
        for key, delta in deltas.items():
            self.roster.require(key).score += delta
        return Turn(type=end_state, player_key=acting_key, score=deltas)

    async def autoplay(self) -> Turn:
        """Play the current (robot) player's turn: challenge a bad human
        move if allowed, otherwise make the best play or pass."""
        player = self._acting_player()
        logger.debug("Autoplaying %s", player.name)

        if self.config.dictionary and player.can_challenge and self.previous_move:
            last_player = self.roster.get(self.previous_move.player_key)
            if last_player is not None and not last_player.is_robot:
                try:
                    dictionary = await load_dictionary(self.config.dictionary)
                except DictionaryUnavailable as e:
                    logger.warning("%s cannot challenge: %s", player.name, e)
                else:
                    bad = [w.word for w in self.previous_move.words
                           if not dictionary.has_word(w.word)]
                    if bad:
                        logger.info("%s challenges %s: %s", player.name, last_player.name, bad)
                        return self._take_back(CHALLENGE_WON)

        try:
            best = await self._best_play(player)
        except Exception as e:
            logger.warning("Solver failed for %s, passing: %s", player.name, e)
            best = None

        if best is not None:
            try:
                return await self.make_move(best, player.key)
            except ConfigurationError as e:
                logger.warning("Solver play rejected for %s, passing: %s", player.name, e)

        logger.debug("%s can't play, passing", player.name)
        self._stop_timer(player)
        return self._pass(player, PASSED)

    # -------------------------------------------------
    # Serialisation
    # -------------------------------------------------

    def to_record(self) -> GameRecord:
        return GameRecord(
            key=self.key,
            creation_timestamp=self.creation_timestamp,
            config=self.config,
            state=self.state,
            players=[p.to_record() for p in self.roster],
            turns=list(self.turns),
            current_player_key=self.roster.current_key,
            board=self.board.placements() if self.board else [],
            bag=list(self.letter_bag.tiles) if self.letter_bag else [],
            rack_size=self.rack_size,
            paused_by=self.paused_by,
            next_game_key=self.next_game_key,
            previous_move=self.previous_move)

    @classmethod
    async def from_record(cls, record: GameRecord) -> 'Game':
        game = cls(record.config, key=record.key,
                   creation_timestamp=record.creation_timestamp)
        await game.create()
        game.letter_bag.tiles = list(record.bag)
        game.board.load(record.board)
        game.rack_size = record.rack_size
        game.state = record.state
        game.roster = Roster(
            [Player.from_record(p, record.rack_size) for p in record.players],
            record.current_player_key)
        game.turns = list(record.turns)
        game.paused_by = record.paused_by
        game.next_game_key = record.next_game_key
        game.previous_move = record.previous_move
        return game

    def summary(self) -> GameSummary:
        return GameSummary(
            key=self.key,
            creation_timestamp=self.creation_timestamp,
            edition=self.config.edition,
            dictionary=self.config.dictionary,
            predict_score=self.config.predict_score,
            check_dictionary=self.config.check_dictionary,
            allow_take_back=self.config.allow_take_back,
            state=self.state,
            players=[p.summary() for p in self.roster],
            turns=len(self.turns),
            current_player_key=self.roster.current_key,
            seconds_per_play=self.config.seconds_per_play,
            paused_by=self.paused_by,
            min_players=self.config.min_players,
            max_players=self.config.max_players,
            next_game_key=self.next_game_key,
            last_activity=self.last_activity())

    def __str__(self) -> str:
        options = ''.join(flag for flag, on in (
            ('P', self.config.predict_score),
            ('C', self.config.check_dictionary),
            ('T', self.config.allow_take_back)) if on)
        ps = ', '.join(str(p) for p in self.roster)
        return (f'Game {options} {self.key} edition "{self.config.edition}" '
                f'dictionary "{self.config.dictionary}" players [ {ps} ] '
                f'next {self.roster.current_key}')
