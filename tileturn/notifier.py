from __future__ import annotations
import asyncio
import logging
from typing import Any, Set

logger = logging.getLogger(__name__)


def player_room(game_key: str, player_key: str) -> str:
    return f"{game_key}/{player_key}"


class Notifier:
    """Fan-out of game events. Fire-and-forget: no delivery guarantee."""

    def notify_one(self, game_key: str, player_key: str, event: str, data: Any = None):
        pass

    def notify_all(self, game_key: str, event: str, data: Any = None):
        pass


class SocketIONotifier(Notifier):
    """Emits into Socket.IO rooms; `<game>` for everyone at the table and
    `<game>/<player>` for each of a player's sockets."""

    def __init__(self, sio):
        self.sio = sio
        self._pending: Set[asyncio.Task] = set()

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Notification failed: %s", task.exception())

    def notify_one(self, game_key, player_key, event, data=None):
        logger.debug("<-S- %s %s", player_key, event)
        self._spawn(self.sio.emit(event, data, room=player_room(game_key, player_key)))

    def notify_all(self, game_key, event, data=None):
        logger.debug("<-S- * %s", event)
        self._spawn(self.sio.emit(event, data, room=game_key))
