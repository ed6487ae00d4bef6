"""
命名服務：生成房間分享網址與即時頻道名稱

純計算邏輯，不涉及狀態轉換
"""
import re
from typing import Optional

from database import get_settings

ROOM_CHANNEL_PREFIX = "room-"

_CHANNEL_PATTERN = re.compile(r"^room-([A-Za-z0-9_-]+)$")


def build_room_url(room_id: str) -> str:
    """
    生成分享給參加者的房間網址

    範例：http://localhost:3000/room/2b1c...

    注意：
    - APP_URL 結尾的斜線會被去掉，避免出現 //room
    """
    base_url = get_settings().app_url.rstrip("/")
    return f"{base_url}/room/{room_id}"


def room_channel(room_id: str) -> str:
    """
    房間的即時頻道名稱

    範例：room_channel("abc") -> "room-abc"
    """
    return f"{ROOM_CHANNEL_PREFIX}{room_id}"


def parse_room_channel(channel: str) -> Optional[str]:
    """
    從頻道名稱取回 room_id，格式不符回傳 None

    範例：
        parse_room_channel("room-abc") -> "abc"
        parse_room_channel("lobby") -> None
    """
    match = _CHANNEL_PATTERN.match(channel or "")
    if not match:
        return None
    return match.group(1)
