"""
Game API router.

Polling-based multiplayer: clients call these endpoints for every action
and poll GET /api/game/{code} for the current state. Every response
carries a ``success`` flag; failures add an ``error`` message and use
the status code matching the kind of failure (400 rule violation,
403 host-only, 404 unknown game or card, 503 server busy).
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from constants import MAX_CARDS_PER_PLAYER, MIN_CARDS_PER_PLAYER
from engine import ErrorKind
from game import GameSettings
from logging_config import game_code_var
from names import generate_fun_name
from services.game_manager import ActionResult, GameManager, get_game_manager, normalize_code
from session import clean_player_name, require_session, set_player_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/game", tags=["game"])


STATUS_BY_KIND = {
    ErrorKind.INVALID: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAVAILABLE: 503,
}


# =============================================================================
# Request Models
# =============================================================================


class SettingsRequest(BaseModel):
    """Table options; anything omitted uses the server default."""
    cards_per_player: Optional[int] = Field(None, ge=MIN_CARDS_PER_PLAYER, le=MAX_CARDS_PER_PLAYER)
    starting_player_mode: Optional[Literal["random", "youngest", "manual"]] = None
    starting_player_index: Optional[int] = Field(None, ge=0)
    enable_reverse_for_2_players: Optional[bool] = None
    enable_tts: Optional[bool] = None
    tts_speed: Optional[Literal["normal", "slow"]] = None


class CreateGameRequest(BaseModel):
    player_name: Optional[str] = Field(None, max_length=50)
    settings: Optional[SettingsRequest] = None


class JoinGameRequest(BaseModel):
    player_name: Optional[str] = Field(None, max_length=50)


class PlayCardRequest(BaseModel):
    card_id: str = Field(..., min_length=1)
    declared_suit: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================


def get_manager_dep() -> GameManager:
    """Dependency to get the game manager."""
    return get_game_manager()


def _failure(response: Response, result: ActionResult) -> dict:
    response.status_code = STATUS_BY_KIND.get(result.error_kind, 400)
    return {"success": False, "error": result.error}


def _events(result: ActionResult) -> list[dict]:
    return [event.to_dict() for event in result.events]


def _bind_code(code: str) -> str:
    code = normalize_code(code)
    game_code_var.set(code)
    return code


# =============================================================================
# Endpoints
# =============================================================================


@router.post("")
async def create_game(
    request: CreateGameRequest,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """Create a game with the caller as host."""
    name = clean_player_name(request.player_name)
    if name:
        set_player_name(response, name)
    else:
        name = generate_fun_name()

    settings = None
    if request.settings is not None:
        settings = GameSettings.from_dict(request.settings.model_dump(exclude_none=True))

    result = await manager.create_game(session_id, name, settings)
    if not result.success:
        return _failure(response, result)

    return {
        "success": True,
        "code": result.state.code,
        "game_id": result.state.id,
        "player_name": name,
        "events": _events(result),
    }


@router.get("/{code}")
async def get_game(
    code: str,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """
    Poll a game.

    ``is_player`` tells the client whether it holds a seat; spectators
    get the same view with ``game.you`` set to null.
    """
    code = _bind_code(code)
    result = await manager.get_client_state(code, session_id)
    if not result.success:
        return _failure(response, result)

    view = result.view
    return {
        "success": True,
        "game": view.to_dict(),
        "is_player": view.you is not None,
        "updated_at": view.updated_at.isoformat(),
    }


@router.post("/{code}/join")
async def join_game(
    code: str,
    response: Response,
    request: Optional[JoinGameRequest] = None,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """Take a seat in a waiting game."""
    code = _bind_code(code)
    name = clean_player_name(request.player_name if request else None)
    if name:
        set_player_name(response, name)

    result = await manager.join_game(code, session_id, name)
    if not result.success:
        return _failure(response, result)
    return {
        "success": True,
        "message": result.message,
        "game_id": result.state.id,
        "events": _events(result),
    }


@router.post("/{code}/start")
async def start_game(
    code: str,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """Deal and start the game (host only)."""
    result = await manager.start_game(_bind_code(code), session_id)
    if not result.success:
        return _failure(response, result)
    return {"success": True, "message": result.message, "events": _events(result)}


@router.post("/{code}/play")
async def play_card(
    code: str,
    request: PlayCardRequest,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """Play a card. Change cards need ``declared_suit``."""
    result = await manager.play_card(
        _bind_code(code), session_id, request.card_id, request.declared_suit
    )
    if not result.success:
        return _failure(response, result)
    return {"success": True, "events": _events(result), "game_ended": result.game_ended}


@router.post("/{code}/draw")
async def draw_card(
    code: str,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """Draw a card (only when nothing in hand is playable)."""
    result = await manager.draw_card(_bind_code(code), session_id)
    if not result.success:
        return _failure(response, result)
    return {"success": True, "events": _events(result), "game_ended": result.game_ended}


@router.post("/{code}/leave")
async def leave_game(
    code: str,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """
    Leave a game.

    Takes no body so browsers can call it with a fire-and-forget beacon
    while the page unloads.
    """
    result = await manager.leave_game(_bind_code(code), session_id)
    if not result.success:
        return _failure(response, result)
    return {
        "success": True,
        "message": result.message,
        "game_deleted": result.game_deleted,
        "game_ended": result.game_ended,
    }


@router.delete("/{code}")
async def delete_game(
    code: str,
    response: Response,
    session_id: str = Depends(require_session),
    manager: GameManager = Depends(get_manager_dep),
):
    """Delete a game (host only)."""
    result = await manager.delete_game(_bind_code(code), session_id)
    if not result.success:
        return _failure(response, result)
    return {"success": True, "message": result.message, "game_deleted": True}
