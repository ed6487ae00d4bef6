"""
資料表定義：User（Trustee）、Room、Vote

唯一性約束全部交給資料庫：
- users.username
- rooms.room_name
- votes.(room_id, name)：同一房間同一名字只能投一次
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    # 用 Python 端時間（微秒精度），SQLite 的 server_default 只到秒，排序會打結
    return datetime.now(timezone.utc)


class Category(str, enum.Enum):
    """房間要猜的答案 / 投票選項（二選一）"""
    MALE = "male"
    FEMALE = "female"


class VoteOutcome(str, enum.Enum):
    """
    投票在輪盤中的狀態

    取代舊的 isOut 布林值：isOut 同時被拿來表示「被淘汰」與「贏家」，
    改成三態比較清楚
    """
    ACTIVE = "active"
    ELIMINATED = "eliminated"
    WINNER = "winner"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(50), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    rooms = relationship("Room", back_populates="trustee")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(String(36), primary_key=True, default=_uuid)
    room_name = Column(String(100), nullable=False, unique=True)
    category = Column(Enum(Category, values_callable=lambda e: [m.value for m in e]), nullable=False)

    # 只存 SHA-256 digest，明碼只在建立時回傳一次
    owner_pin = Column(String(64), nullable=False)
    member_pin = Column(String(64), nullable=False)

    is_close = Column(Boolean, nullable=False, default=False)
    trustee_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    trustee = relationship("User", back_populates="rooms")
    votes = relationship(
        "Vote",
        back_populates="room",
        cascade="all, delete-orphan",
    )


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("room_id", "name", name="uq_votes_room_name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    room_id = Column(String(36), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    category = Column(Enum(Category, values_callable=lambda e: [m.value for m in e]), nullable=False)
    outcome = Column(
        Enum(VoteOutcome, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=VoteOutcome.ACTIVE,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    room = relationship("Room", back_populates="votes")

    @property
    def is_out(self) -> bool:
        return self.outcome == VoteOutcome.ELIMINATED
