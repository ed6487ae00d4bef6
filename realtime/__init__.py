"""
即時推播層

- ChannelHub：頻道 → 訂閱者的註冊表（server 端的 broadcast fabric）
- Broadcaster：server 程式唯一的 publish 入口，失敗只回傳 False
- RoomSyncChannel：client 端訂閱管理 + 票數同步
- HubTransport / WebSocketTransport：client 端連線
"""
from realtime.broadcaster import Broadcaster, get_broadcaster, reset_broadcaster
from realtime.client import RoomSyncChannel, VoteTally
from realtime.events import RoomEvent
from realtime.hub import ChannelHub
from realtime.transports import ConnectionState, HubTransport, WebSocketTransport

__all__ = [
    "Broadcaster",
    "ChannelHub",
    "ConnectionState",
    "HubTransport",
    "RoomEvent",
    "RoomSyncChannel",
    "VoteTally",
    "WebSocketTransport",
    "get_broadcaster",
    "reset_broadcaster",
]
