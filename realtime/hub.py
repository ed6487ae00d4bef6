"""
In-process channel hub.

Tracks subscribers per channel and fans published messages out to them.
Delivery is best effort: a subscriber that fails is dropped, nothing is
buffered for subscribers that are not connected at publish time.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


class Subscriber:
    """Something that can receive a message published on a channel."""

    def deliver(self, message: Message) -> None:
        raise NotImplementedError


class CallbackSubscriber(Subscriber):
    """Calls `callback(message)` synchronously in the publishing thread."""

    def __init__(self, callback: Callable[[Message], None]):
        self._callback = callback

    def deliver(self, message: Message) -> None:
        self._callback(message)


class QueueSubscriber(Subscriber):
    """
    Hands messages to an asyncio queue owned by a WebSocket connection.

    Publishing happens on request threads, so the put is scheduled onto the
    connection's event loop instead of touching the queue directly. Raises
    RuntimeError once that loop is closed, which makes the hub drop us.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Message]"):
        self._loop = loop
        self._queue = queue

    def deliver(self, message: Message) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)


class ChannelHub:
    """Thread-safe registry of channel -> subscribers."""

    def __init__(self):
        self._channels: Dict[str, Set[Subscriber]] = defaultdict(set)
        self._lock = threading.Lock()

    def subscribe(self, channel: str, subscriber: Subscriber) -> None:
        with self._lock:
            self._channels[channel].add(subscriber)
        logger.debug(f"Subscriber added to {channel}")

    def unsubscribe(self, channel: str, subscriber: Subscriber) -> None:
        with self._lock:
            subscribers = self._channels.get(channel)
            if not subscribers:
                return
            subscribers.discard(subscriber)
            if not subscribers:
                del self._channels[channel]

    def unsubscribe_all(self, subscriber: Subscriber) -> None:
        with self._lock:
            for channel in list(self._channels):
                subscribers = self._channels[channel]
                subscribers.discard(subscriber)
                if not subscribers:
                    del self._channels[channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))

    def channels(self) -> List[str]:
        with self._lock:
            return sorted(self._channels)

    def publish(self, channel: str, event: str, data: Any) -> int:
        """
        Deliver `{"event", "channel", "data"}` to every current subscriber.

        Returns how many subscribers accepted the message.
        """
        message = {"event": event, "channel": channel, "data": data}
        with self._lock:
            targets = list(self._channels.get(channel, ()))

        delivered = 0
        for subscriber in targets:
            try:
                subscriber.deliver(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping subscriber on {channel} after failed delivery: {e}")
                self.unsubscribe(channel, subscriber)
        return delivered
