import random

import pytest

from tileturn.errors import BagExhausted, GameFull, GameNotReady, PlayerNotFound
from tileturn.game import Game
from tileturn.roster import Player, Roster
from tileturn.schemas import GameConfig


def _roster():
    return Roster([Player(name=k, key=k) for k in 'ABC'], current_key='A')


def test_rotation_wraps():
    roster = _roster()
    assert roster.current().key == 'A'
    assert roster.next().key == 'B'
    assert roster.next('C').key == 'A'
    assert roster.previous('A').key == 'C'
    assert roster.previous(roster.get('B')).key == 'A'


def test_unknown_keys():
    roster = _roster()
    assert roster.get('Z') is None
    with pytest.raises(PlayerNotFound):
        roster.next('Z')
    with pytest.raises(PlayerNotFound):
        roster.remove('Z')


@pytest.mark.asyncio
async def test_add_player_deals_full_rack():
    game = await Game(GameConfig(edition='English_Scrabble')).create(random.Random(1))
    game.add_player(Player(name='A', key='A'))
    assert len(game.get_player('A').rack) == 7
    assert game.letter_bag.remaining_tile_count() == 93


@pytest.mark.asyncio
async def test_add_player_before_create():
    game = Game(GameConfig(edition='English_Scrabble'))
    with pytest.raises(GameNotReady):
        game.add_player(Player(name='A'))


@pytest.mark.asyncio
async def test_add_player_to_full_game():
    game = await Game(GameConfig(edition='English_Scrabble', max_players=2)).create()
    game.add_player(Player(name='A'))
    game.add_player(Player(name='B'))
    with pytest.raises(GameFull):
        game.add_player(Player(name='C'))


@pytest.mark.asyncio
async def test_add_player_when_bag_cannot_fill_rack():
    game = await Game(GameConfig(edition='English_Scrabble')).create()
    game.letter_bag.tiles = game.letter_bag.tiles[:5]
    with pytest.raises(BagExhausted):
        game.add_player(Player(name='A'))
    assert game.letter_bag.remaining_tile_count() == 5
    assert len(game.players) == 0


@pytest.mark.asyncio
async def test_remove_player_returns_tiles():
    game = await Game(GameConfig(edition='English_Scrabble')).create()
    game.add_player(Player(name='A', key='A'))
    game.remove_player('A')
    assert game.letter_bag.remaining_tile_count() == 100
    with pytest.raises(PlayerNotFound):
        game.remove_player('A')
