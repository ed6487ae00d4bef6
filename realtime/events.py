"""
Realtime event names and payload builders.

Room events are what the server publishes on `room-<roomId>`. Protocol events
are the control messages exchanged on the WebSocket itself.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RoomEvent:
    NEW_VOTE = "new-vote"
    VOTE_DELETED = "vote-deleted"
    GENDER_REVEALED = "gender-revealed"
    ROOM_UPDATED = "room-updated"


class ProtocolEvent:
    CONNECTION_ESTABLISHED = "connection_established"
    SUBSCRIBE = "subscribe"
    SUBSCRIPTION_SUCCEEDED = "subscription_succeeded"
    UNSUBSCRIBE = "unsubscribe"
    UNSUBSCRIBED = "unsubscribed"
    PING = "ping"
    PONG = "pong"
    ERROR = "error"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_vote_payload(vote: Any) -> Dict[str, Any]:
    return {"vote": vote, "timestamp": _timestamp()}


def vote_deleted_payload(vote_id: str, vote: Optional[Any]) -> Dict[str, Any]:
    return {"voteId": vote_id, "vote": vote, "timestamp": _timestamp()}


def gender_revealed_payload(category: str) -> Dict[str, Any]:
    return {"category": category, "timestamp": _timestamp()}


def room_updated_payload(room: Any) -> Dict[str, Any]:
    return {"room": room, "timestamp": _timestamp()}
