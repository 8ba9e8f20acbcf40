from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Set

from ..notifier import Notifier
from ..schemas import TickState

logger = logging.getLogger(__name__)

TimeoutCallback = Callable[[str, str, int], Awaitable[None]]


@dataclass
class TurnClock:
    player_key: str
    deadline: float  # loop.time() when the turn runs out
    handle: asyncio.TimerHandle
    generation: int

    def remaining(self, now: float) -> float:
        return max(0.0, self.deadline - now)


class TimerManager:
    """Per-game turn timers plus the 'tick' broadcast.

    At most one turn timer runs per game. Every start or stop bumps the
    game's generation, and timeouts report the generation they were armed
    with, so a timeout that loses a race with a real action can be
    recognised as stale and ignored.
    """

    def __init__(self, on_timeout: TimeoutCallback, notifier: Optional[Notifier] = None,
                 tick_seconds: float = 1.0):
        self.on_timeout = on_timeout
        self.notifier = notifier or Notifier()
        self.tick_seconds = tick_seconds
        self._clocks: Dict[str, TurnClock] = {}
        self._ticks: Dict[str, asyncio.Task] = {}
        self._generations: Dict[str, int] = {}
        self._firing: Set[asyncio.Task] = set()

    def generation(self, game_key: str) -> int:
        return self._generations.get(game_key, 0)

    def _bump(self, game_key: str) -> int:
        self._generations[game_key] = self.generation(game_key) + 1
        return self._generations[game_key]

    def is_running(self, game_key: str) -> bool:
        return game_key in self._clocks

    def current(self, game_key: str) -> Optional[str]:
        clock = self._clocks.get(game_key)
        return clock.player_key if clock else None

    def remaining(self, game_key: str) -> Optional[float]:
        clock = self._clocks.get(game_key)
        if not clock:
            return None
        return clock.remaining(asyncio.get_running_loop().time())

    def start(self, game_key: str, player_key: str, seconds: float) -> int:
        self.stop(game_key)
        gen = self._bump(game_key)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(seconds, self._expire, game_key, player_key, gen)
        self._clocks[game_key] = TurnClock(player_key, loop.time() + seconds, handle, gen)
        logger.debug("Timer for %s in %s: %.1fs", player_key, game_key, seconds)
        return gen

    def stop(self, game_key: str) -> Optional[float]:
        """Cancel the turn timer. Returns the time that was left, if any."""
        self._bump(game_key)
        clock = self._clocks.pop(game_key, None)
        if not clock:
            return None
        clock.handle.cancel()
        return clock.remaining(asyncio.get_running_loop().time())

    def _expire(self, game_key: str, player_key: str, gen: int):
        clock = self._clocks.get(game_key)
        if clock is None or clock.generation != gen:
            return
        del self._clocks[game_key]
        logger.info("%s timed out in %s", player_key, game_key)
        task = asyncio.create_task(self.on_timeout(game_key, player_key, gen))
        self._firing.add(task)
        task.add_done_callback(self._firing.discard)

    # Tick broadcast. Purely informational; may lag or skip.

    def start_clock(self, game_key: str):
        if game_key in self._ticks and not self._ticks[game_key].done():
            return
        self._ticks[game_key] = asyncio.create_task(self._run(game_key))

    def stop_clock(self, game_key: str):
        task = self._ticks.pop(game_key, None)
        if task and not task.done():
            task.cancel()

    def stop_all(self, game_key: str):
        self.stop(game_key)
        self.stop_clock(game_key)

    def shutdown(self):
        for key in list(self._clocks) + list(self._ticks):
            self.stop_all(key)

    async def _run(self, game_key: str):
        try:
            while True:
                await asyncio.sleep(self.tick_seconds)
                clock = self._clocks.get(game_key)
                if not clock:
                    continue
                tick = TickState(
                    game_key=game_key,
                    player_key=clock.player_key,
                    seconds_to_play=round(clock.remaining(asyncio.get_running_loop().time())),
                )
                self.notifier.notify_all(game_key, 'tick', tick.model_dump(by_alias=True))
        except asyncio.CancelledError:
            return
