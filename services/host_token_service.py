"""
Host access tokens.

A host token is a signed, room-scoped, time-bounded capability issued when a
room is created or its owner PIN is verified. Every privileged action (close
room, delete vote, reveal, roulette) checks it server-side, so a browser-local
"I am the host" flag is never trusted on its own.
"""
import logging
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from core.exceptions import HostAccessDenied, HostAccessForbidden
from database import get_settings

logger = logging.getLogger(__name__)

_SALT = "room-host-access"


def _serializer():
    return URLSafeTimedSerializer(get_settings().host_token_secret)


def issue_host_token(room_id: str) -> str:
    return _serializer().dumps({"room_id": room_id}, salt=_SALT)


def read_host_token(token: str, max_age: Optional[int] = None) -> str:
    """Return the room id a token was issued for, or raise HostAccessDenied."""
    if max_age is None:
        max_age = get_settings().host_token_max_age
    try:
        payload = _serializer().loads(token, salt=_SALT, max_age=max_age)
    except SignatureExpired:
        raise HostAccessDenied("Host token has expired")
    except BadSignature:
        raise HostAccessDenied("Invalid host token")

    room_id = payload.get("room_id") if isinstance(payload, dict) else None
    if not room_id:
        raise HostAccessDenied("Invalid host token")
    return room_id


def ensure_host_access(token: Optional[str], room_id: str) -> None:
    """
    Raise unless `token` grants host access to `room_id`.

    Disabled entirely when HOST_TOKEN_REQUIRED is false.
    """
    if not get_settings().host_token_required:
        return
    if not token:
        raise HostAccessDenied()
    token_room_id = read_host_token(token)
    if token_room_id != room_id:
        logger.warning(f"Host token for room {token_room_id} used against room {room_id}")
        raise HostAccessForbidden()
