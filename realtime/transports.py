"""
Client transports for the room synchronization channel.

A transport owns the connection to the broadcast fabric and reports its
connection state through a listener. Reconnecting after a drop is the
transport's job; the sync channel only reacts to state changes.

- HubTransport: in-process, subscribes directly on a ChannelHub.
- WebSocketTransport: speaks the /ws protocol with the `websockets` client.
"""
import enum
import json
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import connect as ws_connect

from realtime.events import ProtocolEvent
from realtime.hub import CallbackSubscriber, ChannelHub

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
    ERROR = "error"
    DISABLED = "disabled"


StateListener = Callable[[ConnectionState, Optional[str]], None]
EventHandler = Callable[[Any], None]


class Channel:
    """Event bindings for one subscribed channel."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    def bind(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[event].append(handler)

    def unbind_all(self) -> None:
        with self._lock:
            self._handlers.clear()

    def handler_count(self, event: Optional[str] = None) -> int:
        with self._lock:
            if event is not None:
                return len(self._handlers.get(event, ()))
            return sum(len(handlers) for handlers in self._handlers.values())

    def dispatch(self, event: str, data: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(data)
            except Exception as e:
                logger.error(f"Handler for {event} on {self.name} failed: {e}", exc_info=True)


class Transport:
    """Base class: connection state bookkeeping shared by both transports."""

    def __init__(self):
        self.state = ConnectionState.INITIALIZING
        self._listener: Optional[StateListener] = None

    def connect(self, listener: StateListener) -> None:
        raise NotImplementedError

    def subscribe(self, channel_name: str) -> Channel:
        raise NotImplementedError

    def unsubscribe(self, channel_name: str) -> None:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def _set_state(self, state: ConnectionState, error: Optional[str] = None) -> None:
        self.state = state
        listener = self._listener
        if listener is not None:
            listener(state, error)


class HubTransport(Transport):
    """
    Subscribes straight on an in-process ChannelHub.

    `drop()` / `reconnect()` mimic a network drop and the transport-level
    retry, which is what the sync channel's resubscribe logic reacts to.
    """

    def __init__(self, hub: ChannelHub):
        super().__init__()
        self._hub = hub
        self._subscriptions: Dict[str, Tuple[Channel, CallbackSubscriber]] = {}

    def connect(self, listener: StateListener) -> None:
        self._listener = listener
        self._set_state(ConnectionState.CONNECTING)
        self._set_state(ConnectionState.CONNECTED)

    def subscribe(self, channel_name: str) -> Channel:
        if self.state != ConnectionState.CONNECTED:
            raise RuntimeError(f"Cannot subscribe to {channel_name} while {self.state.value}")
        if channel_name in self._subscriptions:
            return self._subscriptions[channel_name][0]

        channel = Channel(channel_name)
        subscriber = CallbackSubscriber(
            lambda message: channel.dispatch(message["event"], message.get("data"))
        )
        self._hub.subscribe(channel_name, subscriber)
        self._subscriptions[channel_name] = (channel, subscriber)
        return channel

    def unsubscribe(self, channel_name: str) -> None:
        entry = self._subscriptions.pop(channel_name, None)
        if entry is None:
            return
        channel, subscriber = entry
        channel.unbind_all()
        self._hub.unsubscribe(channel_name, subscriber)

    def disconnect(self) -> None:
        self._release_all()
        self._set_state(ConnectionState.DISCONNECTED)
        self._listener = None

    def drop(self) -> None:
        self._release_all()
        self._set_state(ConnectionState.DISCONNECTED)

    def reconnect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self._set_state(ConnectionState.CONNECTED)

    def _release_all(self) -> None:
        for channel_name in list(self._subscriptions):
            self.unsubscribe(channel_name)


class WebSocketTransport(Transport):
    """
    Client side of the /ws protocol.

    A reader thread owns the socket: it connects, waits for
    `connection_established`, reports CONNECTED, then dispatches incoming
    channel events. On a drop it retries up to `max_reconnect_attempts`
    times before settling in FAILED.
    """

    def __init__(
        self,
        url: str,
        max_reconnect_attempts: int = 3,
        reconnect_delay: float = 1.0,
        open_timeout: float = 10.0,
        connect_factory: Optional[Callable[..., Any]] = None,
    ):
        super().__init__()
        self.url = url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.open_timeout = open_timeout
        self.socket_id: Optional[str] = None
        self._connect_factory = connect_factory or ws_connect
        self._channels: Dict[str, Channel] = {}
        self._socket = None
        self._closing = threading.Event()
        self._send_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def connect(self, listener: StateListener) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._listener = listener
        self._closing.clear()
        self._thread = threading.Thread(target=self._run, name="ws-transport", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def subscribe(self, channel_name: str) -> Channel:
        channel = self._channels.get(channel_name)
        if channel is None:
            channel = Channel(channel_name)
            self._channels[channel_name] = channel
        self._send(ProtocolEvent.SUBSCRIBE, {"channel": channel_name})
        return channel

    def unsubscribe(self, channel_name: str) -> None:
        channel = self._channels.pop(channel_name, None)
        if channel is None:
            return
        channel.unbind_all()
        if self.state == ConnectionState.CONNECTED:
            self._send(ProtocolEvent.UNSUBSCRIBE, {"channel": channel_name})

    def disconnect(self) -> None:
        # reader thread is not joined: its listener may hold the sync channel lock
        self._closing.set()
        socket = self._socket
        if socket is not None:
            try:
                socket.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing socket: {e}")
        for channel in self._channels.values():
            channel.unbind_all()
        self._channels.clear()
        self._set_state(ConnectionState.DISCONNECTED)
        self._listener = None

    def _send(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        socket = self._socket
        if socket is None:
            raise RuntimeError("WebSocket is not connected")
        message = {"event": event}
        if data is not None:
            message["data"] = data
        with self._send_lock:
            socket.send(json.dumps(message))

    def _run(self) -> None:
        attempts = 0
        while not self._closing.is_set():
            self._set_state(ConnectionState.CONNECTING)
            try:
                self._socket = self._connect_factory(self.url, open_timeout=self.open_timeout)
            except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as e:
                attempts += 1
                logger.warning(f"WebSocket connect to {self.url} failed ({attempts}): {e}")
                if attempts > self.max_reconnect_attempts:
                    self._set_state(ConnectionState.FAILED, "Connection failed")
                    return
                self._set_state(ConnectionState.UNAVAILABLE, str(e))
                self._closing.wait(self.reconnect_delay)
                continue

            attempts = 0
            try:
                self._read_loop()
            except ConnectionClosed as e:
                logger.info(f"WebSocket closed: {e}")
            except Exception as e:
                logger.error(f"WebSocket reader failed: {e}", exc_info=True)
                self._set_state(ConnectionState.ERROR, str(e))
            finally:
                self._socket = None
                self.socket_id = None

            if self._closing.is_set():
                return
            self._set_state(ConnectionState.DISCONNECTED)
            attempts += 1
            if attempts > self.max_reconnect_attempts:
                self._set_state(ConnectionState.FAILED, "Connection lost")
                return
            self._closing.wait(self.reconnect_delay)

    def _read_loop(self) -> None:
        for raw in self._socket:
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed realtime message: {raw!r}")
                continue

            event = message.get("event")
            data = message.get("data")

            if event == ProtocolEvent.CONNECTION_ESTABLISHED:
                self.socket_id = (data or {}).get("socketId")
                self._set_state(ConnectionState.CONNECTED)
            elif event == ProtocolEvent.ERROR:
                logger.warning(f"Realtime server error: {data}")
            elif event in (
                ProtocolEvent.SUBSCRIPTION_SUCCEEDED,
                ProtocolEvent.UNSUBSCRIBED,
                ProtocolEvent.PONG,
            ):
                logger.debug(f"Realtime {event}: {data}")
            else:
                channel = self._channels.get(message.get("channel"))
                if channel is not None:
                    channel.dispatch(event, data)
