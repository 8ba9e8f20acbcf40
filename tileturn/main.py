from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import get_settings
from .dictionary import load_dictionary
from .errors import (
    ConfigurationError, DependencyError, GameError, GameNotFound,
    InvariantViolation,
)
from .game_logic import EDITIONS
from .managers.game import GameManager
from .notifier import SocketIONotifier, player_room
from .observability import setup_logging
from .schemas import Move, Tile
from .stores.memory_store import MemoryGameStore
from .stores.sqlite_store import SqliteGameStore

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

# Socket.IO server (ASGI)
sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins='*')

store = SqliteGameStore(settings.db_path) if settings.store == 'sqlite' else MemoryGameStore()
games = GameManager(SocketIONotifier(sio), store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await store.init()
    await games.check_timeouts()
    yield
    games.shutdown()
    await store.close()


app = FastAPI(title="Tileturn Server", version="0.1.0", lifespan=lifespan)

# Mount Socket.IO ASGI application
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


def _status_for(exc: GameError) -> int:
    if isinstance(exc, GameNotFound):
        return 404
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, DependencyError):
        return 503
    return 500


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    level = logging.ERROR if isinstance(exc, InvariantViolation) else logging.WARNING
    logger.log(level, "%s on %s: %s", exc.code, request.url.path, exc.message,
               extra={'error_code': exc.code})
    return JSONResponse(status_code=_status_for(exc), content={'error': exc.to_response()})


class NewPlayer(BaseModel):
    name: str
    key: Optional[str] = None


class NewRobot(BaseModel):
    name: str = 'Robot'
    canChallenge: bool = True


class JoinGame(BaseModel):
    gameKey: str
    playerKey: str


# REST Endpoints
@app.get('/editions')
async def list_editions() -> Dict[str, list]:
    return {'editions': sorted(EDITIONS)}


@app.get('/games')
async def list_games():
    return {'games': [s.model_dump(by_alias=True) for s in await games.summaries()]}


@app.post('/games')
async def create_game(params: dict):
    params.setdefault('edition', settings.default_edition)
    if settings.default_dictionary:
        params.setdefault('dictionary', settings.default_dictionary)
    game = await games.create_game(params)
    return {'key': game.key}


@app.get('/games/{game_key}')
async def get_game(game_key: str):
    async with games.locked(game_key) as game:
        return game.summary().model_dump(by_alias=True)


@app.post('/games/{game_key}/players')
async def add_player(game_key: str, body: NewPlayer):
    player = await games.add_player(game_key, body.name, key=body.key)
    return {'key': player.key}


@app.post('/games/{game_key}/robot')
async def add_robot(game_key: str, body: NewRobot):
    player = await games.add_robot(game_key, body.name, body.canChallenge)
    return {'key': player.key}


@app.delete('/games/{game_key}/players/{player_key}')
async def remove_player(game_key: str, player_key: str):
    await games.remove_player(game_key, player_key)
    return {'ok': True}


@app.post('/games/{game_key}/another')
async def another_game(game_key: str):
    return {'key': await games.another_game(game_key)}


@app.get('/dict/{name}/{word}')
async def validate_word(name: str, word: str):
    dictionary = await load_dictionary(name)
    return {'word': word.upper(), 'valid': dictionary.has_word(word)}


# Socket.IO Events

# sid -> (game key, player key)
connections: Dict[str, Tuple[str, str]] = {}


def _connected(game_key: str) -> List[str]:
    return sorted({pk for gk, pk in connections.values() if gk == game_key})


async def _seat(sid) -> Optional[Tuple[str, str]]:
    seat = connections.get(sid)
    if not seat:
        await sio.emit('error', {'code': 'NOT_JOINED', 'message': 'Join a game first'}, to=sid)
    return seat


def _validated(model, data):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Bad {model.__name__}: {e.errors(include_url=False)}") from e


def _move(payload) -> Move:
    return _validated(Move, payload)


def _tiles(payload) -> List[Tile]:
    if not isinstance(payload, dict) or not isinstance(payload.get('tiles', []), list):
        raise ConfigurationError("Swap needs {tiles: [...]}")
    return [_validated(Tile, t) for t in payload.get('tiles', [])]


async def _run(sid, command, *args, parse=None):
    """Run a manager command for the socket's seat, reporting failures to it.
    `parse` turns the raw payload into the command's argument."""
    seat = await _seat(sid)
    if not seat:
        return None
    game_key, player_key = seat
    try:
        if parse is not None:
            args = (parse(*args),)
        return await command(game_key, player_key, *args)
    except GameError as e:
        level = logging.ERROR if isinstance(e, InvariantViolation) else logging.WARNING
        logger.log(level, "%s failed: %s", command.__name__, e.message,
                   extra={'game_key': game_key, 'player_key': player_key, 'error_code': e.code})
        await sio.emit('error', e.to_response(), to=sid)
        return None


@sio.event
async def connect(sid, environ, auth=None):
    await sio.emit('pong', to=sid)


@sio.event
async def disconnect(sid):
    seat = connections.pop(sid, None)
    if seat:
        await sio.emit('connections', _connected(seat[0]), room=seat[0])


@sio.on('ping')
async def on_ping(sid):
    await sio.emit('pong', to=sid)


@sio.on('join-game')
async def join_game(sid, payload):
    try:
        request = _validated(JoinGame, payload)
        game_key, player_key = request.gameKey, request.playerKey
        summary = await games.join(game_key, player_key)
    except GameError as e:
        logger.warning("join-game refused: %s", e.message, extra={'error_code': e.code})
        await sio.emit('error', e.to_response(), to=sid)
        return
    connections[sid] = (game_key, player_key)
    await sio.enter_room(sid, game_key)
    await sio.enter_room(sid, player_room(game_key, player_key))
    await sio.emit('game:state', summary.model_dump(by_alias=True), to=sid)
    await sio.emit('connections', _connected(game_key), room=game_key)


@sio.on('make-move')
async def make_move(sid, payload):
    await _run(sid, games.make_move, payload, parse=_move)


@sio.on('pass')
async def pass_turn(sid):
    await _run(sid, games.pass_turn)


@sio.on('swap')
async def swap(sid, payload):
    await _run(sid, games.swap, payload, parse=_tiles)


@sio.on('challenge')
async def challenge(sid):
    await _run(sid, games.challenge)


@sio.on('take-back')
async def take_back(sid):
    await _run(sid, games.take_back)


@sio.on('confirm-game-over')
async def confirm_game_over(sid):
    await _run(sid, games.confirm_game_over)


@sio.on('hint')
async def hint(sid):
    await _run(sid, games.hint)


@sio.on('toggle-advice')
async def toggle_advice(sid):
    await _run(sid, games.toggle_advice)


@sio.on('pause')
async def pause(sid):
    await _run(sid, games.toggle_pause)


@sio.on('another-game')
async def another_game_event(sid):
    await _run(sid, games.another_game)


# Export ASGI app for uvicorn
application = asgi_app

# For local running: uvicorn tileturn.main:application --reload --host 0.0.0.0 --port 8000
