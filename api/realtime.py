"""
Realtime WebSocket endpoint

URL: /ws

連線流程：
1. accept；即時推播被關閉時以 1013（Try Again Later）關閉，前端改用輪詢
2. 送出 connection_established {socketId}
3. 訊息迴圈：
   - subscribe {channel}    -> subscription_succeeded
   - unsubscribe {channel}  -> unsubscribed
   - ping                   -> pong
   - 其他任何事件           -> error（client 不能 publish）
4. 斷線時從所有頻道移除

Server 推播格式：{"event", "channel", "data"}

同一條連線只有一個 writer（_pump），回覆也走同一個 queue，
避免兩個 task 同時 send
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from realtime.broadcaster import Broadcaster, get_broadcaster
from realtime.events import ProtocolEvent
from realtime.hub import ChannelHub, QueueSubscriber
from services.naming_service import parse_room_channel

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)

CLOSE_TRY_AGAIN_LATER = 1013


def _control(event: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    message = {"event": event}
    if data is not None:
        message["data"] = data
    return message


def _error(message: str) -> Dict[str, Any]:
    return _control(ProtocolEvent.ERROR, {"message": message})


async def _pump(websocket: WebSocket, queue: "asyncio.Queue[Dict[str, Any]]") -> None:
    """把 queue 裡的訊息（推播 + 回覆）依序送出"""
    while True:
        message = await queue.get()
        await websocket.send_json(message)


def _handle(message: Any, hub: ChannelHub, subscriber: QueueSubscriber) -> Dict[str, Any]:
    """處理一則 client 訊息，回傳要送回去的控制訊息"""
    if not isinstance(message, dict):
        return _error("Malformed message")

    event = message.get("event")
    data = message.get("data") or {}

    if event == ProtocolEvent.PING:
        return _control(ProtocolEvent.PONG)

    if event in (ProtocolEvent.SUBSCRIBE, ProtocolEvent.UNSUBSCRIBE):
        channel = data.get("channel") if isinstance(data, dict) else None
        if not isinstance(channel, str) or parse_room_channel(channel) is None:
            return _error(f"Invalid channel name: {channel!r}")

        if event == ProtocolEvent.SUBSCRIBE:
            hub.subscribe(channel, subscriber)
            return _control(ProtocolEvent.SUBSCRIPTION_SUCCEEDED, {"channel": channel})

        hub.unsubscribe(channel, subscriber)
        return _control(ProtocolEvent.UNSUBSCRIBED, {"channel": channel})

    return _error("Clients may not publish")


async def _receive(
    websocket: WebSocket,
    hub: ChannelHub,
    subscriber: QueueSubscriber,
    queue: "asyncio.Queue[Dict[str, Any]]",
) -> None:
    while True:
        try:
            message = await websocket.receive_json()
        except (ValueError, KeyError):
            # invalid JSON, or a binary frame
            await queue.put(_error("Malformed message"))
            continue
        await queue.put(_handle(message, hub, subscriber))


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, broadcaster: Broadcaster = Depends(get_broadcaster)):
    await websocket.accept()

    hub = broadcaster.hub
    if hub is None:
        logger.warning("Realtime disabled, rejecting WebSocket connection")
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Realtime updates are disabled")
        return

    socket_id = uuid.uuid4().hex
    queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
    subscriber = QueueSubscriber(asyncio.get_running_loop(), queue)
    await websocket.send_json(_control(ProtocolEvent.CONNECTION_ESTABLISHED, {"socketId": socket_id}))
    logger.info(f"WebSocket {socket_id} connected")

    sender = asyncio.create_task(_pump(websocket, queue))
    receiver = asyncio.create_task(_receive(websocket, hub, subscriber, queue))
    try:
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"WebSocket {socket_id} failed: {error}", exc_info=error)
    finally:
        hub.unsubscribe_all(subscriber)
        logger.info(f"WebSocket {socket_id} disconnected")
