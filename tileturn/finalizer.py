"""End-of-game rack penalties.

Each player with tiles left loses their rack value. The one player who
emptied their rack, if any, gains everyone else's losses. The deltas sum
to zero only when a player went out; otherwise everyone just loses.
"""
import logging
from typing import Dict, Iterable

from .errors import MultipleEmptyRacks

logger = logging.getLogger(__name__)


def rack_penalties(players: Iterable) -> Dict[str, int]:
    deltas: Dict[str, int] = {}
    player_with_no_tiles = None
    remaining = 0
    for player in players:
        deltas[player.key] = 0
        if player.rack.is_empty():
            if player_with_no_tiles is not None:
                logger.error("Players %s and %s both have empty racks",
                             player_with_no_tiles.key, player.key)
                raise MultipleEmptyRacks(
                    "Found more than one player with no tiles when finishing game")
            player_with_no_tiles = player
        else:
            rack_score = player.rack.score()
            deltas[player.key] -= rack_score
            remaining += rack_score
            logger.debug("%s has %d left", player.name, rack_score)

    if player_with_no_tiles is not None:
        deltas[player_with_no_tiles.key] = remaining
        logger.debug("%s gains %d", player_with_no_tiles.name, remaining)
    return deltas
