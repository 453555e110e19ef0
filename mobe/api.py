"""FastAPI application exposing the matchmaking server over HTTP."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import ServerConfig
from .errors import (
    ConfirmationTimeout,
    Conflict,
    InternalError,
    InvalidArgument,
    MatchmakingError,
    NotFound,
    UnsupportedAction,
)
from .game_server import GameServer
from .store import MatchStore

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    InvalidArgument: 400,
    NotFound: 404,
    Conflict: 409,
    ConfirmationTimeout: 409,
    UnsupportedAction: 422,
    InternalError: 500,
}


class ConnectRequest(BaseModel):
    client_info: Dict[str, Any] = Field(default_factory=dict)


class JoinRequest(BaseModel):
    player_data: Dict[str, Any] = Field(default_factory=dict)


class ConfirmRequest(BaseModel):
    player_id: str
    accept: bool


class ActionRequest(BaseModel):
    player_id: str
    action: str
    payload: Dict[str, Any] = Field(default_factory=dict)


def status_code_for(exc: MatchmakingError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_CODES:
            return STATUS_CODES[error_type]
    return 500


def create_app(config: Optional[ServerConfig] = None, store: Optional[MatchStore] = None) -> FastAPI:
    """Create the application and the ``GameServer`` it drives."""

    config = config or ServerConfig()
    app = FastAPI(title="Mobe matchmaking", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.server = GameServer(config, store=store)

    @app.on_event("startup")
    async def _start_server() -> None:
        await app.state.server.start()

    @app.on_event("shutdown")
    async def _stop_server() -> None:
        await app.state.server.stop()

    @app.exception_handler(MatchmakingError)
    async def _matchmaking_error(request: Request, exc: MatchmakingError) -> JSONResponse:
        status = status_code_for(exc)
        if status >= 500:
            logger.error("request failed", path=request.url.path, error=exc.code, detail=str(exc))
        return JSONResponse(status_code=status, content={"error": exc.code, "detail": str(exc)})

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled error", path=request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": InternalError.code, "detail": "internal error"})

    _register_routes(app)
    return app


async def get_server(request: Request) -> GameServer:
    return request.app.state.server


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def healthcheck(server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        """Readiness probe with a few counters."""

        return {"status": "ok", **server.stats()}

    @app.get("/load-game")
    async def load_game() -> Dict[str, Any]:
        return {"status": "Game data successfully loaded!", "gameInfo": "Sample game information"}

    @app.post("/players/{player_id}/connect")
    async def connect(
        player_id: str, body: Optional[ConnectRequest] = None, server: GameServer = Depends(get_server)
    ) -> Dict[str, Any]:
        session = await server.connect(player_id, body.client_info if body else None)
        return {"session": session.serialise(), "connected_players": server.sessions.connected_count}

    @app.post("/players/{player_id}/heartbeat")
    async def heartbeat(player_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        session = await server.heartbeat(player_id)
        return {"ack": True, "last_activity": session.last_activity}

    @app.post("/players/{player_id}/disconnect")
    async def disconnect(player_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        return {"ack": True, "disconnected": await server.disconnect(player_id)}

    @app.get("/players/{player_id}/notifications")
    async def notifications(player_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        return {"notifications": [item.serialise() for item in server.poll_notifications(player_id)]}

    @app.post("/queue/{player_id}")
    async def join_queue(
        player_id: str, body: Optional[JoinRequest] = None, server: GameServer = Depends(get_server)
    ) -> Dict[str, Any]:
        entry = await server.join_queue(player_id, body.player_data if body else None)
        return {"status": "waiting", "entry": entry.serialise()}

    @app.delete("/queue/{player_id}")
    async def leave_queue(player_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        return {"ack": True, "removed": await server.leave_queue(player_id)}

    @app.get("/queue/{player_id}")
    async def queue_status(player_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        return server.queue_status(player_id).serialise()

    @app.post("/matches/{match_id}/confirm")
    async def confirm(match_id: str, body: ConfirmRequest, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        match = await server.confirm(match_id, body.player_id, body.accept)
        return match.serialise()

    @app.get("/matches/{match_id}")
    async def get_match(match_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        return server.get_match(match_id).serialise()

    @app.get("/games/{match_id}")
    async def get_game(match_id: str, server: GameServer = Depends(get_server)) -> Dict[str, Any]:
        return server.get_game(match_id).serialise()

    @app.post("/games/{match_id}/actions")
    async def submit_action(
        match_id: str, body: ActionRequest, server: GameServer = Depends(get_server)
    ) -> Dict[str, Any]:
        state, events = await server.submit_action(
            match_id, body.player_id, {"action": body.action, "payload": body.payload}
        )
        return {"state": state.serialise(), "events": events}


__all__ = ["create_app", "get_server", "status_code_for"]
