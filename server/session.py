"""
Anonymous browser sessions.

A session is just a random id kept in a cookie. It lets the server
recognise the same browser across requests (to find "your" seat and
hand) and nothing more: there are no accounts and the id is not a
credential.

The player's chosen display name is remembered in a second cookie so
the create/join forms can be prefilled.
"""

import uuid
from typing import Optional

from fastapi import Request, Response

from config import config
from constants import MAX_PLAYER_NAME_LENGTH, MAX_SESSION_ID_LENGTH
from logging_config import session_id_var


def clean_player_name(name: Optional[str]) -> str:
    """Trim whitespace and cap a display name at MAX_PLAYER_NAME_LENGTH characters."""
    return (name or "").strip()[:MAX_PLAYER_NAME_LENGTH]


def _max_age() -> int:
    return config.SESSION_MAX_AGE_DAYS * 24 * 60 * 60


def _set_cookie(response: Response, key: str, value: str) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=_max_age(),
        httponly=True,
        samesite="lax",
        secure=config.ENVIRONMENT == "production",
        path="/",
    )


def get_session_id(request: Request) -> Optional[str]:
    """The session cookie, or None when missing or too long to store."""
    session_id = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not session_id or len(session_id) > MAX_SESSION_ID_LENGTH:
        return None
    return session_id


def get_player_name(request: Request) -> Optional[str]:
    name = clean_player_name(request.cookies.get(config.PLAYER_NAME_COOKIE_NAME))
    return name or None


def set_player_name(response: Response, name: str) -> None:
    _set_cookie(response, config.PLAYER_NAME_COOKIE_NAME, name)


def clear_session(response: Response) -> None:
    response.delete_cookie(config.SESSION_COOKIE_NAME, path="/")
    response.delete_cookie(config.PLAYER_NAME_COOKIE_NAME, path="/")


def ensure_session(request: Request, response: Response) -> tuple[str, bool]:
    """
    Return the request's session id, minting and setting one if absent.

    Returns:
        (session_id, created)
    """
    session_id = get_session_id(request)
    created = session_id is None
    if created:
        session_id = str(uuid.uuid4())
        _set_cookie(response, config.SESSION_COOKIE_NAME, session_id)
    return session_id, created


async def require_session(request: Request, response: Response) -> str:
    """
    FastAPI dependency: the caller's session id, created on first use.

    Also tags log records for the rest of the request with the session.
    """
    session_id, _ = ensure_session(request, response)
    session_id_var.set(session_id)
    return session_id
