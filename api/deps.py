"""
API 共用 dependencies

- 管理器（注入 Broadcaster，測試時可 override get_broadcaster）
- 輪盤 RNG（測試時 override 成 random.Random(seed)）
- Host token 驗證
"""
import secrets
from typing import Optional

from fastapi import Depends, Header

from core.room_registry import RoomRegistry
from core.vote_ledger import VoteLedger
from realtime.broadcaster import Broadcaster, get_broadcaster
from services.host_token_service import ensure_host_access

HOST_TOKEN_HEADER = "X-Host-Token"


def get_room_registry(broadcaster: Broadcaster = Depends(get_broadcaster)) -> RoomRegistry:
    return RoomRegistry(broadcaster)


def get_vote_ledger(broadcaster: Broadcaster = Depends(get_broadcaster)) -> VoteLedger:
    return VoteLedger(broadcaster)


def get_roulette_rng():
    return secrets.SystemRandom()


def host_token_header(
    host_token: Optional[str] = Header(None, alias=HOST_TOKEN_HEADER),
) -> Optional[str]:
    return host_token


def require_room_host(room_id: str, host_token: Optional[str] = Depends(host_token_header)) -> str:
    """
    路徑上有 {room_id} 的 host 操作用

    異常：
        HostAccessDenied (401) / HostAccessForbidden (403)
    """
    ensure_host_access(host_token, room_id)
    return room_id
