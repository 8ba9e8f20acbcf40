"""GameManager: persistence after each turn, follow-on games, pausing,
stale-game timeouts and lookups."""

import pytest

from conftest import build_table
from tileturn.errors import (
    ConfigurationError, EditionNotFound, GameNotFound, GamePaused,
    NextGameExists, PlayerNotFound,
)
from tileturn.schemas import PASSED, PLAYING, TIMED_OUT, now_ms
from tileturn.game import DAY_MS


@pytest.mark.asyncio
async def test_turn_is_saved_and_broadcast(manager, notifier):
    game, _ = await build_table(manager, humans=('H', 'G'))

    turn = await manager.pass_turn(game.key, 'H')

    record = await manager.store.load(game.key)
    assert [t.type for t in record.turns] == [PASSED]
    assert record.current_player_key == 'G'
    sent = notifier.events('turn')
    assert sent == [('*', 'turn', turn.model_dump(by_alias=True))]
    assert sent[0][2]['playerKey'] == 'H'
    assert sent[0][2]['nextToGoKey'] == 'G'


@pytest.mark.asyncio
async def test_bad_configuration_is_rejected(manager):
    with pytest.raises(ConfigurationError):
        await manager.create_game({'edition': ''})
    with pytest.raises(EditionNotFound):
        await manager.create_game({'edition': 'Klingon'})


@pytest.mark.asyncio
async def test_unknown_game_and_player(manager):
    with pytest.raises(GameNotFound):
        await manager.pass_turn('nope', 'H')
    game, _ = await build_table(manager, humans=('H', 'G'))
    with pytest.raises(PlayerNotFound):
        await manager.join(game.key, 'Z')


@pytest.mark.asyncio
async def test_join_starts_a_game_without_a_current_player(manager):
    game, _ = await build_table(manager, humans=('H', 'G'))
    game.roster.current_key = None

    summary = await manager.join(game.key, 'G')

    assert summary.current_player_key in ('H', 'G')
    assert summary.state == PLAYING


@pytest.mark.asyncio
async def test_game_waits_for_enough_players(manager):
    game, _ = await build_table(manager, humans=('H',))
    assert await manager.start_game(game.key) == 'Not enough players'


@pytest.mark.asyncio
async def test_paused_game_refuses_turns(manager, notifier):
    game, _ = await build_table(manager, humans=('H', 'G'))

    assert await manager.toggle_pause(game.key, 'G') is True
    with pytest.raises(GamePaused):
        await manager.pass_turn(game.key, 'H')
    assert notifier.events('pause')

    assert await manager.toggle_pause(game.key, 'H') is False
    await manager.pass_turn(game.key, 'H')
    assert notifier.events('unpause')
    assert len(game.turns) == 1


@pytest.mark.asyncio
async def test_another_game_reseats_everyone(manager, notifier):
    game, (robot,) = await build_table(manager, humans=('H', 'G'), robots=1,
                                       allow_take_back=True)
    await manager.pass_turn(game.key, 'H')

    new_key = await manager.another_game(game.key)

    assert game.next_game_key == new_key
    new = await manager.get(new_key)
    assert new.config.allow_take_back
    assert sorted(p.key for p in new.players) == sorted(['H', 'G', robot])
    assert all(p.score == 0 for p in new.players)
    assert all(len(p.rack) == 7 for p in new.players)
    assert new.current_player_key is not None
    assert notifier.events('nextGame') == [('*', 'nextGame', new_key)]

    with pytest.raises(NextGameExists):
        await manager.another_game(game.key)


@pytest.mark.asyncio
async def test_stale_games_time_out(manager):
    fresh, _ = await build_table(manager, humans=('H', 'G'))
    stale, _ = await build_table(manager, humans=('H', 'G'))
    stale.creation_timestamp = now_ms() - 15 * DAY_MS

    assert await manager.check_timeouts() == [stale.key]

    assert stale.state == TIMED_OUT
    assert stale.current_player_key is None
    assert fresh.state == PLAYING
    assert (await manager.store.load(stale.key)).state == TIMED_OUT
    # Finished games are not kept in memory
    assert stale.key not in manager.games
    assert fresh.key in manager.games
    assert (await manager.get(stale.key)).state == TIMED_OUT


@pytest.mark.asyncio
async def test_games_reload_from_the_store(manager):
    game, _ = await build_table(manager, humans=('H', 'G'))
    await manager.pass_turn(game.key, 'H')
    manager.games.clear()

    reloaded = await manager.get(game.key)

    assert reloaded is not game
    assert reloaded.current_player_key == 'G'
    assert reloaded.get_player('H').passes == 1
    assert [str(t) for t in reloaded.get_player('H').rack.tiles()] == \
        [str(t) for t in game.get_player('H').rack.tiles()]


@pytest.mark.asyncio
async def test_summaries_and_delete(manager):
    game, _ = await build_table(manager, humans=('H', 'G'))

    summaries = await manager.summaries()
    assert [s.key for s in summaries] == [game.key]
    assert summaries[0].turns == 0

    await manager.delete_game(game.key)
    assert await manager.summaries() == []
    assert game.key not in manager.games
    assert game.key not in manager._locks
    with pytest.raises(GameNotFound):
        await manager.delete_game(game.key)
