"""
Session API router.

GET creates the anonymous session cookie on first visit, POST remembers
a display name, DELETE forgets both.
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field

from session import (
    clean_player_name,
    clear_session,
    ensure_session,
    get_player_name,
    set_player_name,
)

router = APIRouter(prefix="/api/session", tags=["session"])


class PlayerNameRequest(BaseModel):
    player_name: str = Field(..., min_length=1, max_length=50)


@router.get("")
async def get_session(request: Request, response: Response):
    """Return the caller's session, creating it if needed."""
    session_id, created = ensure_session(request, response)
    return {
        "session_id": session_id,
        "player_name": get_player_name(request),
        "created": created,
    }


@router.post("")
async def update_session(body: PlayerNameRequest, request: Request, response: Response):
    """Remember the caller's display name."""
    session_id, _ = ensure_session(request, response)
    name = clean_player_name(body.player_name)
    if not name:
        response.status_code = 400
        return {"success": False, "error": "Player name is required"}
    set_player_name(response, name)
    return {"success": True, "session_id": session_id, "player_name": name}


@router.delete("")
async def delete_session(response: Response):
    """Forget the caller's session and name."""
    clear_session(response)
    return {"success": True}
