from __future__ import annotations

import contextlib
import json
from http import HTTPStatus
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute

from game.guesses.engine import GuessOutcome
from lobby.server.settings import LobbyServerSettings
from lobby.server.types import (
    AddPoolCharacterRequest,
    CreateRoomRequest,
    GuessRequest,
    JoinRoomRequest,
    PickCharacterRequest,
)
from lobby.server.websocket import room_feed_websocket
from lobby.services import create_services
from shared.dal.memory_store import MemoryStore
from shared.db import Database, SqliteStore
from shared.db.connection import MEMORY_PATH
from shared.leaderboard import HttpLeaderboardSink
from shared.logging import setup_logging
from shared.rejections import NOT_FOUND_REJECTIONS, Rejection

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from lobby.services import RoomServices
    from shared.dal.store import Store

logger = structlog.get_logger()

_MAX_REQUEST_BODY_SIZE = 4096


def _services(request: Request) -> RoomServices:
    return request.app.state.services


def _rejection_response(reason: Rejection) -> JSONResponse:
    if reason in NOT_FOUND_REJECTIONS:
        status = HTTPStatus.NOT_FOUND
    elif reason == Rejection.STORE_UNAVAILABLE:
        status = HTTPStatus.SERVICE_UNAVAILABLE
    else:
        status = HTTPStatus.CONFLICT
    return JSONResponse({"error": reason.value}, status_code=status)


async def _parse_body[M: BaseModel](request: Request, model: type[M]) -> M | JSONResponse:
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        return JSONResponse({"error": "Request body too large"}, status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
    try:
        body = json.loads(raw_body) if raw_body.strip() else {}
        return model.model_validate(body)
    except (ValueError, ValidationError) as e:
        return JSONResponse({"error": str(e)}, status_code=HTTPStatus.UNPROCESSABLE_ENTITY)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def list_characters(request: Request) -> JSONResponse:
    characters = await _services(request).catalog.list_characters()
    return JSONResponse({"characters": [c.model_dump(mode="json") for c in characters]})


async def create_room(request: Request) -> JSONResponse:
    req = await _parse_body(request, CreateRoomRequest)
    if isinstance(req, JSONResponse):
        return req
    result = await _services(request).lifecycle.create_room(req.code)
    if isinstance(result, Rejection):
        return _rejection_response(result)
    return JSONResponse({"room": result.to_record()}, status_code=HTTPStatus.CREATED)


async def get_room(request: Request) -> JSONResponse:
    room = await _services(request).lifecycle.get_room(request.path_params["code"])
    if room is None:
        return _rejection_response(Rejection.ROOM_NOT_FOUND)
    return JSONResponse({"room": room.to_record()})


async def delete_room(request: Request) -> Response:
    result = await _services(request).lifecycle.delete_room(request.path_params["code"])
    if result is not None:
        return _rejection_response(result)
    return Response(status_code=HTTPStatus.NO_CONTENT)


async def can_join(request: Request) -> JSONResponse:
    user_id = request.query_params.get("user_id", "")
    if not user_id:
        return JSONResponse({"error": "user_id is required"}, status_code=HTTPStatus.UNPROCESSABLE_ENTITY)
    reason = await _services(request).membership.can_join(request.path_params["code"], user_id)
    return JSONResponse({"can_join": reason is None, "reason": reason.value if reason else None})


async def join_room(request: Request) -> JSONResponse:
    req = await _parse_body(request, JoinRoomRequest)
    if isinstance(req, JSONResponse):
        return req
    result = await _services(request).membership.join_room(request.path_params["code"], req.user_id, req.display_name)
    if isinstance(result, Rejection):
        return _rejection_response(result)
    return JSONResponse({"room": result.to_record()})


async def leave_room(request: Request) -> Response:
    result = await _services(request).membership.leave_room(
        request.path_params["code"],
        request.path_params["user_id"],
    )
    if result is not None:
        return _rejection_response(result)
    return Response(status_code=HTTPStatus.NO_CONTENT)


async def get_pool(request: Request) -> JSONResponse:
    pool = await _services(request).pool.get_character_pool(request.path_params["code"])
    return JSONResponse({"characters": [c.model_dump(mode="json") for c in pool]})


async def add_to_pool(request: Request) -> Response:
    req = await _parse_body(request, AddPoolCharacterRequest)
    if isinstance(req, JSONResponse):
        return req
    result = await _services(request).pool.add_character_to_pool(
        request.path_params["code"],
        req.character_id,
        req.added_by,
    )
    if result is not None:
        return _rejection_response(result)
    return Response(status_code=HTTPStatus.CREATED)


async def remove_from_pool(request: Request) -> Response:
    result = await _services(request).pool.remove_character_from_pool(
        request.path_params["code"],
        request.path_params["character_id"],
    )
    if result is not None:
        return _rejection_response(result)
    return Response(status_code=HTTPStatus.NO_CONTENT)


async def start_game(request: Request) -> JSONResponse:
    code = request.path_params["code"]
    services = _services(request)
    result = await services.picks.start_game(code)
    if result is not None:
        return _rejection_response(result)
    room = await services.lifecycle.get_room(code)
    return JSONResponse({"room": room.to_record() if room else None})


async def pick_character(request: Request) -> JSONResponse:
    req = await _parse_body(request, PickCharacterRequest)
    if isinstance(req, JSONResponse):
        return req
    result = await _services(request).picks.pick_character(
        request.path_params["code"],
        req.user_id,
        req.character_id,
        req.is_ready,
    )
    if isinstance(result, Rejection):
        return _rejection_response(result)
    return JSONResponse({"room": result.to_record(), "is_guessing_started": result.is_guessing_started})


async def make_guess(request: Request) -> JSONResponse:
    req = await _parse_body(request, GuessRequest)
    if isinstance(req, JSONResponse):
        return req
    code = request.path_params["code"]
    services = _services(request)
    result = await services.guesses.make_guess(code, req.user_id, req.character_id)
    if isinstance(result, Rejection):
        return _rejection_response(result)
    return JSONResponse(
        {
            "outcome": result.value,
            "correct": result == GuessOutcome.CORRECT,
            "winner": await services.guesses.get_winner(code),
        },
    )


async def get_guess_count(request: Request) -> JSONResponse:
    count = await _services(request).guesses.get_guess_count(
        request.path_params["code"],
        request.path_params["user_id"],
    )
    return JSONResponse({"guess_count": count})


async def get_winner(request: Request) -> JSONResponse:
    winner = await _services(request).guesses.get_winner(request.path_params["code"])
    return JSONResponse({"winner": winner})


def _open_store(settings: LobbyServerSettings) -> tuple[Store, Database | None]:
    if settings.database_path == MEMORY_PATH:
        return MemoryStore(), None
    db = Database(settings.database_path)
    db.connect()
    return SqliteStore(db), db


def create_app(
    settings: LobbyServerSettings | None = None,
    store: Store | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = LobbyServerSettings()

    db = None
    if store is None:
        store, db = _open_store(settings)

    http_sink = None
    if settings.leaderboard_url:
        http_sink = HttpLeaderboardSink(settings.leaderboard_url, timeout=settings.leaderboard_timeout_seconds)

    services = create_services(store, leaderboard=http_sink, max_write_attempts=settings.max_write_attempts)

    routes = [
        Route("/health", health, methods=["GET"], name="health"),
        Route("/characters", list_characters, methods=["GET"], name="list_characters"),
        Route("/rooms", create_room, methods=["POST"], name="create_room"),
        Route("/rooms/{code}", get_room, methods=["GET"], name="get_room"),
        Route("/rooms/{code}", delete_room, methods=["DELETE"], name="delete_room"),
        Route("/rooms/{code}/can-join", can_join, methods=["GET"], name="can_join"),
        Route("/rooms/{code}/players", join_room, methods=["POST"], name="join_room"),
        Route("/rooms/{code}/players/{user_id}", leave_room, methods=["DELETE"], name="leave_room"),
        Route("/rooms/{code}/pool", get_pool, methods=["GET"], name="get_pool"),
        Route("/rooms/{code}/pool", add_to_pool, methods=["POST"], name="add_to_pool"),
        Route("/rooms/{code}/pool/{character_id}", remove_from_pool, methods=["DELETE"], name="remove_from_pool"),
        Route("/rooms/{code}/start", start_game, methods=["POST"], name="start_game"),
        Route("/rooms/{code}/picks", pick_character, methods=["POST"], name="pick_character"),
        Route("/rooms/{code}/guesses", make_guess, methods=["POST"], name="make_guess"),
        Route("/rooms/{code}/guesses/{user_id}", get_guess_count, methods=["GET"], name="get_guess_count"),
        Route("/rooms/{code}/winner", get_winner, methods=["GET"], name="get_winner"),
        WebSocketRoute("/ws/rooms/{code}", room_feed_websocket, name="room_feed"),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        services.lifecycle.start_sweeper(settings.cleanup_interval_seconds, settings.room_retention)
        yield
        await services.lifecycle.stop_sweeper()
        if http_sink is not None:
            await http_sink.aclose()
        await store.close()
        if db is not None:
            db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )

    app.state.settings = settings
    app.state.services = services

    logger.info("room server ready", database_path=settings.database_path)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory function for uvicorn --factory lobby.server.app:get_app."""
    settings = LobbyServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
