from __future__ import annotations

import contextlib
import json
import re
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from minddigit.logic.enums import GameErrorCode
from minddigit.logic.exceptions import GameRuleError
from minddigit.logic.rng import create_turn_rng
from minddigit.server.settings import ServerSettings
from minddigit.server.types import (
    GuessRequest,
    JoinRequest,
    RoomPlayerRequest,
    SelectDigitRequest,
    SetSecretRequest,
)
from minddigit.session.manager import RoomManager
from minddigit.session.store import RedisKeyValueStore, TieredGameStore
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request

    from minddigit.session.types import ResultModel


_MAX_REQUEST_BODY_SIZE = 4096
_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_MAX_ID_LENGTH = 100

_STATUS_BY_ERROR_CODE: dict[GameErrorCode, int] = {
    GameErrorCode.INVALID_INPUT: 400,
    GameErrorCode.NOT_FOUND: 404,
    GameErrorCode.INVALID_STATE: 409,
    GameErrorCode.NOT_YOUR_TURN: 409,
    GameErrorCode.OPPONENT_NOT_READY: 409,
    GameErrorCode.CONFLICT: 409,
}


class BadRequestError(Exception):
    """Malformed request that never reached the room manager."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _ok(result: ResultModel) -> JSONResponse:
    return JSONResponse(result.model_dump(mode="json", by_alias=True))


async def _parse_body[T: BaseModel](request: Request, model: type[T]) -> T:
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        raise BadRequestError("Request body too large", status_code=413)
    try:
        body = json.loads(raw_body)
        return model.model_validate(body)
    except (ValueError, TypeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        raise BadRequestError("Invalid request body") from None


def _query_id(request: Request, name: str, *, required: bool = True) -> str | None:
    value = request.query_params.get(name)
    if not value:
        if required:
            raise BadRequestError(f"Missing {name} parameter")
        return None
    if len(value) > _MAX_ID_LENGTH or not _ID_PATTERN.match(value):
        raise BadRequestError(f"Invalid {name} parameter")
    return value


def _manager(request: Request) -> RoomManager:
    return request.app.state.room_manager


async def health(request: Request) -> JSONResponse:
    manager = _manager(request)
    return JSONResponse({"status": "ok", "store": manager.store.backend_name})


async def join_room(request: Request) -> JSONResponse:
    body = await _parse_body(request, JoinRequest)
    return _ok(await _manager(request).join(body.player_name))


async def room_status(request: Request) -> JSONResponse:
    room_id = _query_id(request, "roomId")
    player_id = _query_id(request, "playerId", required=False)
    return _ok(await _manager(request).status(room_id, player_id))


async def select_digit(request: Request) -> JSONResponse:
    body = await _parse_body(request, SelectDigitRequest)
    return _ok(await _manager(request).select_digit_count(body.room_id, body.player_id, body.digits))


async def set_secret(request: Request) -> JSONResponse:
    body = await _parse_body(request, SetSecretRequest)
    return _ok(await _manager(request).set_secret(body.room_id, body.player_id, body.secret))


async def submit_guess(request: Request) -> JSONResponse:
    body = await _parse_body(request, GuessRequest)
    return _ok(await _manager(request).guess(body.room_id, body.player_id, body.guess))


async def leave_room(request: Request) -> JSONResponse:
    body = await _parse_body(request, RoomPlayerRequest)
    return _ok(await _manager(request).leave(body.room_id, body.player_id))


async def guess_history(request: Request) -> JSONResponse:
    room_id = _query_id(request, "roomId")
    player_id = _query_id(request, "playerId")
    return _ok(await _manager(request).history(room_id, player_id))


async def opponent_secret(request: Request) -> JSONResponse:
    body = await _parse_body(request, RoomPlayerRequest)
    return _ok(await _manager(request).opponent_secret(body.room_id, body.player_id))


async def suggest_secret(request: Request) -> JSONResponse:
    room_id = _query_id(request, "roomId")
    return _ok(await _manager(request).suggest_secret(room_id))


async def handle_game_rule_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, GameRuleError)  # noqa: S101
    logger.info("action rejected", path=request.url.path, error=exc.code, reason=exc.message)
    payload = {to_camel(key): value for key, value in exc.to_dict().items()}
    return JSONResponse(payload, status_code=_STATUS_BY_ERROR_CODE[exc.code])


async def handle_bad_request(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, BadRequestError)  # noqa: S101
    return JSONResponse(
        {"error": GameErrorCode.INVALID_INPUT.value, "message": exc.message},
        status_code=exc.status_code,
    )


def build_room_manager(settings: ServerSettings) -> RoomManager:
    """Wire a RoomManager to the configured store backend."""
    primary = None
    if settings.redis_url:
        primary = RedisKeyValueStore.from_url(settings.redis_url, timeout_seconds=settings.store_timeout_seconds)
    store = TieredGameStore(
        primary,
        room_ttl_seconds=settings.room_ttl_seconds,
        player_ttl_seconds=settings.player_ttl_seconds,
        timeout_seconds=settings.store_timeout_seconds,
    )
    return RoomManager(store, settings.game_settings(), rng=create_turn_rng(settings.turn_seed))


def create_app(
    settings: ServerSettings | None = None,
    room_manager: RoomManager | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ServerSettings()

    if room_manager is None:
        room_manager = build_room_manager(settings)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/room/join", join_room, methods=["POST"]),
        Route("/room/status", room_status, methods=["GET"]),
        Route("/game/select-digit", select_digit, methods=["POST"]),
        Route("/game/set-secret", set_secret, methods=["POST"]),
        Route("/game/guess", submit_guess, methods=["POST"]),
        Route("/game/leave", leave_room, methods=["POST"]),
        Route("/game/history", guess_history, methods=["GET"]),
        Route("/game/opponent-secret", opponent_secret, methods=["POST"]),
        Route("/game/suggest-secret", suggest_secret, methods=["GET"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        store = room_manager.store
        store.cache.start_cleanup()
        try:
            yield
        finally:
            await store.cache.stop_cleanup()
            await store.close()

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={
            GameRuleError: handle_game_rule_error,
            BadRequestError: handle_bad_request,
        },
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.room_manager = room_manager

    logger.info("minddigit server ready", store=room_manager.store.backend_name)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = ServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
