"""
Client synchronization channel.

`RoomSyncChannel` keeps one viewer's copy of a room's votes in step with the
server: it owns a transport, subscribes to exactly one `room-<roomId>`
channel each time the transport reports CONNECTED, and applies incoming
events to a `VoteTally`.

Guarantees:
- the tally is keyed by vote id, so a replayed `new-vote` does not double
  count and a `vote-deleted` for an unknown id is a no-op;
- re-entering CONNECTED releases the previous channel's bindings before
  binding again;
- switching rooms bumps a generation counter synchronously, and handlers
  bound for an older generation ignore whatever still arrives for them.
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from models import Category
from realtime.events import RoomEvent
from realtime.transports import Channel, ConnectionState, Transport
from services.naming_service import room_channel

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]


class VoteTally:
    """Votes of one room keyed by id (wire format dicts)."""

    def __init__(self, votes: Iterable[Dict[str, Any]] = ()):
        self._votes: Dict[str, Dict[str, Any]] = {}
        self.replace(votes)

    def __len__(self) -> int:
        return len(self._votes)

    def __contains__(self, vote_id: object) -> bool:
        return vote_id in self._votes

    def upsert(self, vote: Dict[str, Any]) -> bool:
        """Store `vote`; True when its id was not known yet."""
        vote_id = vote.get("id")
        if not vote_id:
            raise ValueError("vote has no id")
        is_new = vote_id not in self._votes
        self._votes[vote_id] = vote
        return is_new

    def remove(self, vote_id: Optional[str]) -> bool:
        return self._votes.pop(vote_id, None) is not None

    def replace(self, votes: Iterable[Dict[str, Any]]) -> None:
        self._votes = {}
        for vote in votes:
            self.upsert(vote)

    def votes(self) -> List[Dict[str, Any]]:
        """Newest first, like GET /api/votes."""
        return sorted(
            self._votes.values(),
            key=lambda vote: vote.get("createdAt") or "",
            reverse=True,
        )

    def counts(self) -> Dict[str, int]:
        counts = {category.value: 0 for category in Category}
        for vote in self._votes.values():
            category = vote.get("category")
            if category in counts:
                counts[category] += 1
        counts["total"] = sum(counts[category.value] for category in Category)
        return counts


class RoomSyncChannel:

    def __init__(
        self,
        transport_factory: Optional[TransportFactory] = None,
        on_new_vote: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_vote_deleted: Optional[Callable[[str], None]] = None,
        on_gender_revealed: Optional[Callable[[str], None]] = None,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
    ):
        self.tally = VoteTally()
        self.state = ConnectionState.INITIALIZING
        self.error: Optional[str] = None
        self.room_id: Optional[str] = None
        self.revealed_category: Optional[str] = None

        self._transport_factory = transport_factory
        self._on_new_vote = on_new_vote
        self._on_vote_deleted = on_vote_deleted
        self._on_gender_revealed = on_gender_revealed
        self._on_state_change = on_state_change

        self._transport: Optional[Transport] = None
        self._channel: Optional[Channel] = None
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def channel(self) -> Optional[Channel]:
        return self._channel

    def watch(self, room_id: str, votes: Iterable[Dict[str, Any]] = ()) -> None:
        """
        Start following `room_id`, seeding the tally with `votes`.

        Watching the room already followed is a no-op; any other room tears
        the current subscription down first.
        """
        with self._lock:
            if room_id == self.room_id and self._transport is not None:
                return

            self._generation += 1
            generation = self._generation
            self._teardown()

            self.room_id = room_id
            self.error = None
            self.revealed_category = None
            self.tally.replace(votes)

            if self._transport_factory is None:
                logger.warning("Realtime transport not configured, real-time updates disabled")
                self._set_state(ConnectionState.DISABLED)
                return

            try:
                self._transport = self._transport_factory()
                self._transport.connect(
                    lambda state, error=None: self._on_transport_state(generation, state, error)
                )
            except Exception as e:
                logger.error(f"Failed to initialize realtime connection for room {room_id}: {e}", exc_info=True)
                self.error = "Failed to initialize real-time connection"
                self._set_state(ConnectionState.ERROR)

    def close(self) -> None:
        with self._lock:
            self._generation += 1
            self._teardown()
            self.room_id = None

    def reconcile(self, votes: Iterable[Dict[str, Any]]) -> None:
        """Replace the tally with a freshly polled vote list."""
        with self._lock:
            self.tally.replace(votes)

    def _on_transport_state(self, generation: int, state: ConnectionState, error: Optional[str]) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if state == ConnectionState.CONNECTED:
                self.error = None
            elif error:
                self.error = error
            self._set_state(state)
            if state == ConnectionState.CONNECTED:
                self._subscribe(generation)

    def _subscribe(self, generation: int) -> None:
        self._release_channel()
        channel_name = room_channel(self.room_id)
        try:
            channel = self._transport.subscribe(channel_name)
        except Exception as e:
            logger.error(f"Failed to subscribe to {channel_name}: {e}", exc_info=True)
            self.error = "Failed to subscribe to room updates"
            return

        channel.bind(RoomEvent.NEW_VOTE, self._guarded(generation, self._apply_new_vote))
        channel.bind(RoomEvent.VOTE_DELETED, self._guarded(generation, self._apply_vote_deleted))
        channel.bind(RoomEvent.GENDER_REVEALED, self._guarded(generation, self._apply_gender_revealed))
        self._channel = channel
        logger.info(f"Subscribed to {channel_name}")

    def _guarded(self, generation: int, apply: Callable[[Any], None]) -> Callable[[Any], None]:
        def handler(data: Any) -> None:
            with self._lock:
                if generation != self._generation:
                    logger.debug("Dropping event for a stale room subscription")
                    return
                apply(data or {})
        return handler

    def _apply_new_vote(self, data: Dict[str, Any]) -> None:
        vote = data.get("vote")
        if not isinstance(vote, dict) or not vote.get("id"):
            logger.warning(f"Ignoring malformed new-vote event: {data}")
            return
        if vote.get("roomId") not in (None, self.room_id):
            return
        if self.tally.upsert(vote) and self._on_new_vote:
            self._on_new_vote(vote)

    def _apply_vote_deleted(self, data: Dict[str, Any]) -> None:
        vote_id = data.get("voteId")
        if self.tally.remove(vote_id) and self._on_vote_deleted:
            self._on_vote_deleted(vote_id)

    def _apply_gender_revealed(self, data: Dict[str, Any]) -> None:
        category = data.get("category")
        if not category:
            return
        self.revealed_category = category
        if self._on_gender_revealed:
            self._on_gender_revealed(category)

    def _release_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        channel.unbind_all()
        try:
            self._transport.unsubscribe(channel.name)
        except Exception as e:
            logger.warning(f"Failed to unsubscribe from {channel.name}: {e}")

    def _teardown(self) -> None:
        if self._transport is None:
            return
        logger.info(f"Cleaning up realtime connection for room {self.room_id}")
        self._release_channel()
        transport, self._transport = self._transport, None
        try:
            transport.disconnect()
        except Exception as e:
            logger.warning(f"Error while disconnecting transport: {e}")
        self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        self.state = state
        if self._on_state_change:
            self._on_state_change(state)
