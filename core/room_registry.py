"""
Room Registry：管理 Room 的完整生命週期

職責：
1. 建立 Room（產生兩組 PIN，只存 digest）
2. 修改 / 開關投票 / 刪除 Room
3. PIN 驗證（發 host token）
4. 揭曉答案（推播 gender-revealed）

原則：
- 寫入全部走 @transactional 的內部方法，推播一律在 commit 之後
- 推播失敗只記 log，不影響已經成功的寫入
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional, Tuple
import logging

from models import Category, Room, User
from core.locks import with_room_lock
from core.exceptions import (
    InvalidPin,
    RoomNameTaken,
    RoomNotFound,
    TrusteeNotFound,
)
from database import transactional
from realtime.broadcaster import Broadcaster
from realtime.events import RoomEvent, gender_revealed_payload, room_updated_payload
from schemas import RoomPublic
from services.host_token_service import issue_host_token
from services.pagination_service import DEFAULT_LIMIT, paginate
from services.pin_service import generate_pin, hash_pin, pin_matches

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Room 生命週期管理器"""

    def __init__(self, broadcaster: Broadcaster):
        self.broadcaster = broadcaster

    # ============ 建立 ============

    def create_room(
        self,
        db: Session,
        trustee_id: str,
        room_name: str,
        category: Category,
    ) -> Tuple[Room, str, str]:
        """
        建立新房間

        流程：
        1. 確認 Trustee 存在
        2. 確認房間名稱沒被用過
        3. 產生 owner / member PIN，只存 SHA-256 digest
        4. 寫入

        參數：
            db: SQLAlchemy Session
            trustee_id: 建立者（User）ID
            room_name: 房間名稱（全域唯一）
            category: 正確答案

        返回：
            (Room, owner_pin, member_pin) tuple
            PIN 明碼只會在這裡出現一次

        異常：
            TrusteeNotFound: Trustee 不存在
            RoomNameTaken: 名稱重複（含並發時 UNIQUE constraint 擋下的情況）
        """
        owner_pin = generate_pin()
        member_pin = generate_pin()
        try:
            room = self._insert_room(db, trustee_id, room_name, category, owner_pin, member_pin)
        except IntegrityError:
            raise RoomNameTaken()

        logger.info(f"Created room {room.id} ({room.room_name}) for trustee {trustee_id}")
        return room, owner_pin, member_pin

    @staticmethod
    @transactional
    def _insert_room(
        db: Session,
        trustee_id: str,
        room_name: str,
        category: Category,
        owner_pin: str,
        member_pin: str,
    ) -> Room:
        if not db.query(User).filter(User.id == trustee_id).first():
            raise TrusteeNotFound(trustee_id)

        if db.query(Room).filter(Room.room_name == room_name).first():
            raise RoomNameTaken()

        room = Room(
            room_name=room_name,
            category=category,
            owner_pin=hash_pin(owner_pin),
            member_pin=hash_pin(member_pin),
            trustee_id=trustee_id,
        )
        db.add(room)
        db.flush()
        return room

    # ============ 查詢 ============

    @staticmethod
    def get_room(db: Session, room_id: str) -> Room:
        """
        透過 ID 取得 Room

        異常：
            RoomNotFound: Room 不存在
        """
        room = db.query(Room).filter(Room.id == room_id).first()
        if not room:
            raise RoomNotFound(room_id)
        return room

    @staticmethod
    def list_rooms(
        db: Session,
        page: int = 1,
        limit: int = DEFAULT_LIMIT,
        trustee_id: Optional[str] = None,
    ) -> Tuple[List[Room], Dict[str, Any]]:
        """列出房間（新的在前），可用 trustee_id 篩選"""
        query = db.query(Room)
        if trustee_id:
            query = query.filter(Room.trustee_id == trustee_id)
        query = query.order_by(Room.created_at.desc(), Room.id.desc())
        return paginate(query, page, limit)

    # ============ 修改 ============

    def update_room(
        self,
        db: Session,
        room_id: str,
        trustee_id: Optional[str] = None,
        room_name: Optional[str] = None,
        category: Optional[Category] = None,
    ) -> Room:
        """
        部分更新房間

        只有名稱真的改變時才檢查唯一性；沒有任何欄位改變時不推播

        異常：
            RoomNotFound / TrusteeNotFound / RoomNameTaken
        """
        try:
            room, changed = self._apply_update(db, room_id, trustee_id, room_name, category)
        except IntegrityError:
            raise RoomNameTaken()

        if changed:
            logger.info(f"Room {room_id} updated")
            self._publish_room_updated(room)
        return room

    @staticmethod
    @transactional
    def _apply_update(
        db: Session,
        room_id: str,
        trustee_id: Optional[str],
        room_name: Optional[str],
        category: Optional[Category],
    ) -> Tuple[Room, bool]:
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)

        changed = False

        if trustee_id is not None and trustee_id != room.trustee_id:
            if not db.query(User).filter(User.id == trustee_id).first():
                raise TrusteeNotFound(trustee_id)
            room.trustee_id = trustee_id
            changed = True

        if room_name is not None and room_name != room.room_name:
            taken = db.query(Room).filter(
                Room.room_name == room_name,
                Room.id != room_id
            ).first()
            if taken:
                raise RoomNameTaken()
            room.room_name = room_name
            changed = True

        if category is not None and category != room.category:
            room.category = category
            changed = True

        db.flush()
        return room, changed

    def set_closed(self, db: Session, room_id: str, closed: bool) -> Room:
        """
        開關投票

        冪等：已經是目標狀態時直接回傳，不推播

        異常：
            RoomNotFound: Room 不存在
        """
        room, changed = self._apply_closed(db, room_id, closed)
        if changed:
            logger.info(f"Room {room_id} {'closed' if closed else 'reopened'} for voting")
            self._publish_room_updated(room)
        return room

    @staticmethod
    @transactional
    def _apply_closed(db: Session, room_id: str, closed: bool) -> Tuple[Room, bool]:
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)
        if room.is_close == closed:
            return room, False
        room.is_close = closed
        return room, True

    @staticmethod
    @transactional
    def delete_room(db: Session, room_id: str) -> None:
        """
        刪除房間（投票跟著 cascade 刪除）

        異常：
            RoomNotFound: Room 不存在
        """
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)
        db.delete(room)
        logger.info(f"Deleted room {room_id}")

    # ============ Host 操作 ============

    @staticmethod
    def verify_pin(db: Session, room_id: str, pin: str) -> Dict[str, Any]:
        """
        驗證 owner PIN

        返回：
            {"verified": True, "category": ..., "host_token": ...}

        異常：
            RoomNotFound: Room 不存在
            InvalidPin: PIN 的 digest 與 owner PIN 不同
        """
        room = RoomRegistry.get_room(db, room_id)
        if not pin_matches(pin, room.owner_pin):
            logger.warning(f"Invalid pin attempt for room {room_id}")
            raise InvalidPin()

        return {
            "verified": True,
            "category": room.category,
            "host_token": issue_host_token(room.id),
        }

    def reveal(self, db: Session, room_id: str) -> Tuple[Category, bool]:
        """
        揭曉答案：推播 gender-revealed

        返回：
            (category, broadcast) tuple；broadcast 為 False 表示推播沒送出，
            前端要靠輪詢拿到結果
        """
        room = self.get_room(db, room_id)
        category = Category(room.category)
        ok = self.broadcaster.publish(room.id, RoomEvent.GENDER_REVEALED, gender_revealed_payload(category.value))
        logger.info(f"Revealed category for room {room_id} (broadcast={ok})")
        return category, ok

    def _publish_room_updated(self, room: Room) -> bool:
        return self.broadcaster.publish(
            room.id,
            RoomEvent.ROOM_UPDATED,
            room_updated_payload(RoomPublic.from_room(room)),
        )
