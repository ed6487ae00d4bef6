"""
Vote Ledger：投票的寫入、查詢、修改、刪除

投票寫入的檢查順序（不可調換）：
1. 房間存在（否則 RoomNotFound）
2. 房間沒關閉（否則 RoomClosed，就算名字重複也先回這個）
3. 同房間同名字沒投過（否則 DuplicateVote）

Race condition 處理：
- 房間 row 在整個寫入交易期間被 FOR UPDATE 鎖住（PostgreSQL）
- 最終仲裁是 votes.(room_id, name) 的 UNIQUE constraint，
  IntegrityError 一律轉成 DuplicateVote
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from models import Category, Room, Vote, VoteOutcome
from core.locks import with_room_lock, with_vote_lock
from core.exceptions import (
    DuplicateVote,
    RoomClosed,
    RoomNotFound,
    VoteNotFound,
)
from database import transactional
from realtime.broadcaster import Broadcaster
from realtime.events import RoomEvent, new_vote_payload, vote_deleted_payload
from schemas import VoteResponse

logger = logging.getLogger(__name__)


def find_duplicate_vote(
    db: Session,
    room_id: str,
    name: str,
    exclude_id: Optional[str] = None,
) -> Optional[Vote]:
    """
    找出同房間同名字的投票

    只是快速路徑：兩個請求可能同時通過這個檢查，真正擋下重複的是 UNIQUE constraint
    """
    query = db.query(Vote).filter(Vote.room_id == room_id, Vote.name == name)
    if exclude_id is not None:
        query = query.filter(Vote.id != exclude_id)
    return query.first()


def resolve_outcome(is_out: Optional[bool], outcome: Optional[VoteOutcome]) -> Optional[VoteOutcome]:
    """
    把舊的 isOut 布林值換成 outcome

    outcome 有給就以 outcome 為準；isOut=True -> eliminated，isOut=False -> active
    """
    if outcome is not None:
        return outcome
    if is_out is None:
        return None
    return VoteOutcome.ELIMINATED if is_out else VoteOutcome.ACTIVE


class VoteLedger:
    """投票管理器"""

    def __init__(self, broadcaster: Broadcaster):
        self.broadcaster = broadcaster

    # ============ 投票 ============

    def cast_vote(
        self,
        db: Session,
        room_id: str,
        name: str,
        category: Category,
        is_out: bool = False,
    ) -> Vote:
        """
        投票

        流程：
        1. 在交易內檢查 + 寫入（見 _admit_vote）
        2. commit 成功後推播 new-vote（失敗只記 log）

        參數：
            db: SQLAlchemy Session
            room_id: 房間 ID
            name: 投票者名字（同房間唯一）
            category: 猜測的答案
            is_out: 舊欄位，True 表示直接標成 eliminated

        返回：
            新建立的 Vote

        異常：
            RoomNotFound: 房間不存在
            RoomClosed: 房間已關閉投票
            DuplicateVote: 同名字已投過（含並發時的 UNIQUE 衝突）
        """
        try:
            vote = self._admit_vote(db, room_id, name, category, resolve_outcome(is_out, None))
        except IntegrityError:
            logger.warning(f"Unique constraint rejected duplicate vote {name!r} in room {room_id}")
            raise DuplicateVote()

        logger.info(f"Vote {vote.id} cast in room {room_id} by {name!r}")
        self.broadcaster.publish(
            room_id,
            RoomEvent.NEW_VOTE,
            new_vote_payload(VoteResponse.from_vote(vote)),
        )
        return vote

    @staticmethod
    @transactional
    def _admit_vote(
        db: Session,
        room_id: str,
        name: str,
        category: Category,
        outcome: VoteOutcome,
    ) -> Vote:
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)

        if room.is_close:
            raise RoomClosed()

        if find_duplicate_vote(db, room_id, name):
            raise DuplicateVote()

        vote = Vote(room_id=room_id, name=name, category=category, outcome=outcome)
        db.add(vote)
        db.flush()
        return vote

    # ============ 查詢 ============

    @staticmethod
    def list_votes(
        db: Session,
        room_id: Optional[str] = None,
        name: Optional[str] = None,
        category: Optional[Category] = None,
        is_out: Optional[bool] = None,
        outcome: Optional[VoteOutcome] = None,
    ) -> List[Vote]:
        """
        列出投票（新的在前）

        所有篩選條件是 AND；is_out 換算成 outcome 條件：
        - is_out=True  -> outcome == eliminated
        - is_out=False -> outcome != eliminated
        """
        query = db.query(Vote)
        if room_id:
            query = query.filter(Vote.room_id == room_id)
        if name:
            query = query.filter(Vote.name == name)
        if category is not None:
            query = query.filter(Vote.category == category)
        if is_out is True:
            query = query.filter(Vote.outcome == VoteOutcome.ELIMINATED)
        elif is_out is False:
            query = query.filter(Vote.outcome != VoteOutcome.ELIMINATED)
        if outcome is not None:
            query = query.filter(Vote.outcome == outcome)
        return query.order_by(Vote.created_at.desc(), Vote.id.desc()).all()

    @staticmethod
    def get_vote(db: Session, vote_id: str) -> Vote:
        """
        異常：
            VoteNotFound: 投票不存在
        """
        vote = db.query(Vote).filter(Vote.id == vote_id).first()
        if not vote:
            raise VoteNotFound(vote_id)
        return vote

    # ============ 修改 / 刪除 ============

    def update_vote(
        self,
        db: Session,
        vote_id: str,
        room_id: Optional[str] = None,
        name: Optional[str] = None,
        category: Optional[Category] = None,
        is_out: Optional[bool] = None,
        outcome: Optional[VoteOutcome] = None,
    ) -> Vote:
        """
        部分更新投票（host 操作，不檢查房間是否關閉）

        異常：
            VoteNotFound: 投票不存在
            RoomNotFound: 新的 room_id 不存在
            DuplicateVote: 改完後 (room_id, name) 跟別的投票撞名
        """
        try:
            vote = self._apply_update(
                db, vote_id, room_id, name, category, resolve_outcome(is_out, outcome)
            )
        except IntegrityError:
            raise DuplicateVote()

        logger.info(f"Vote {vote_id} updated")
        return vote

    @staticmethod
    @transactional
    def _apply_update(
        db: Session,
        vote_id: str,
        room_id: Optional[str],
        name: Optional[str],
        category: Optional[Category],
        outcome: Optional[VoteOutcome],
    ) -> Vote:
        vote = with_vote_lock(vote_id, db).first()
        if not vote:
            raise VoteNotFound(vote_id)

        target_room_id = room_id if room_id is not None else vote.room_id
        target_name = name if name is not None else vote.name

        if target_room_id != vote.room_id:
            if not db.query(Room).filter(Room.id == target_room_id).first():
                raise RoomNotFound(target_room_id)

        if (target_room_id, target_name) != (vote.room_id, vote.name):
            if find_duplicate_vote(db, target_room_id, target_name, exclude_id=vote.id):
                raise DuplicateVote()

        vote.room_id = target_room_id
        vote.name = target_name
        if category is not None:
            vote.category = category
        if outcome is not None:
            vote.outcome = outcome

        db.flush()
        return vote

    def delete_vote(self, db: Session, vote_id: str) -> None:
        """
        刪除投票，commit 後推播 vote-deleted（帶刪除前的快照）

        異常：
            VoteNotFound: 投票不存在
        """
        room_id, snapshot = self._remove_vote(db, vote_id)
        logger.info(f"Vote {vote_id} deleted from room {room_id}")
        self.broadcaster.publish(
            room_id,
            RoomEvent.VOTE_DELETED,
            vote_deleted_payload(vote_id, snapshot),
        )

    @staticmethod
    @transactional
    def _remove_vote(db: Session, vote_id: str):
        vote = with_vote_lock(vote_id, db).first()
        if not vote:
            raise VoteNotFound(vote_id)
        snapshot = VoteResponse.from_vote(vote)
        room_id = vote.room_id
        db.delete(vote)
        return room_id, snapshot
