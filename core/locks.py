"""
並發控制工具

提供 Database-level 的鎖定機制，縮小競態條件（Race Condition）的窗口

主要使用 PostgreSQL 的 SELECT ... FOR UPDATE 來實現悲觀鎖（Pessimistic Locking）
SQLite 會忽略 FOR UPDATE，此時唯一性仍由 UNIQUE constraint 把關
"""
from sqlalchemy.orm import Session, Query

from models import Room, Vote


def with_room_lock(room_id: str, db: Session) -> Query:
    """
    鎖定一個 Room（行級鎖）

    使用場景：
    - 投票寫入時：確保「檢查房間是否關閉 → 寫入投票」期間房間狀態不被改動
    - 開關投票、輪盤抽籤時

    範例：
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)
        if room.is_close:
            raise RoomClosed()

    參數：
        room_id: Room ID
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Room).filter(
        Room.id == room_id
    ).with_for_update(nowait=False)


def with_vote_lock(vote_id: str, db: Session) -> Query:
    """
    鎖定一筆 Vote（行級鎖）

    使用場景：
    - 修改 / 刪除投票時
    - 輪盤把投票標成 eliminated / winner 時

    參數：
        vote_id: Vote ID
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 來取得結果）
    """
    return db.query(Vote).filter(
        Vote.id == vote_id
    ).with_for_update(nowait=False)
