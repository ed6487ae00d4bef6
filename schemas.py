"""
Request / Response Schemas

JSON 一律 camelCase（roomName、isClose、isOut⋯），Python 端用 snake_case，
靠 alias_generator 轉換
"""
from datetime import datetime
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from models import Category, Room, User, Vote, VoteOutcome

T = TypeVar("T")

Username = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
RoomName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
VoterName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
EntityId = Annotated[str, StringConstraints(min_length=1)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ Envelope ============

class ApiResponse(CamelModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class PaginationMeta(CamelModel):
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Page(CamelModel, Generic[T]):
    data: List[T]
    pagination: PaginationMeta


# ============ User ============

class UserCreate(CamelModel):
    username: Username


class UserUpdate(CamelModel):
    username: Optional[Username] = None


class UserResponse(CamelModel):
    id: str
    username: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TrusteeSummary(CamelModel):
    id: str
    username: str


# ============ Room ============

class RoomCreate(CamelModel):
    trustee_id: EntityId
    room_name: RoomName
    category: Category


class RoomUpdate(CamelModel):
    trustee_id: Optional[EntityId] = None
    room_name: Optional[RoomName] = None
    category: Optional[Category] = None


class CloseRoomRequest(CamelModel):
    is_close: Optional[bool] = None


class VerifyPinRequest(CamelModel):
    pin: Annotated[str, StringConstraints(pattern=r"^\d{4}$")]


class RoomPublic(CamelModel):
    """公開資料：不含 category（避免參加者投票前就知道答案）"""
    id: str
    room_name: str
    is_close: bool
    trustee: TrusteeSummary
    vote_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_room(cls, room: Room, **extra) -> "RoomPublic":
        return cls(
            id=room.id,
            room_name=room.room_name,
            is_close=room.is_close,
            trustee=TrusteeSummary(id=room.trustee.id, username=room.trustee.username),
            vote_count=len(room.votes),
            created_at=room.created_at,
            updated_at=room.updated_at,
            **extra,
        )


class RoomDetail(RoomPublic):
    """Host 看到的資料：含 category"""
    category: Category

    @classmethod
    def from_room(cls, room: Room, **extra) -> "RoomDetail":
        return super().from_room(room, category=room.category, **extra)


class RoomCreated(RoomDetail):
    """建立房間的回應：PIN 明碼只會出現這一次"""
    room_url: str
    owner_pin: str
    member_pin: str
    host_token: str


class PinVerified(CamelModel):
    verified: bool
    category: Category
    host_token: str


class RevealResponse(CamelModel):
    category: Category
    broadcast: bool


class TallyResponse(CamelModel):
    male: int
    female: int
    total: int


# ============ Vote ============

class VoteCreate(CamelModel):
    room_id: EntityId
    name: VoterName
    category: Category
    is_out: bool = False


class VoteUpdate(CamelModel):
    room_id: Optional[EntityId] = None
    name: Optional[VoterName] = None
    category: Optional[Category] = None
    is_out: Optional[bool] = None
    outcome: Optional[VoteOutcome] = None


class RoomSummary(CamelModel):
    id: str
    room_name: str


class VoteResponse(CamelModel):
    id: str
    room_id: str
    name: str
    category: Category
    is_out: bool
    outcome: VoteOutcome
    room: RoomSummary
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_vote(cls, vote: Vote) -> "VoteResponse":
        return cls(
            id=vote.id,
            room_id=vote.room_id,
            name=vote.name,
            category=vote.category,
            is_out=vote.is_out,
            outcome=vote.outcome,
            room=RoomSummary(id=vote.room.id, room_name=vote.room.room_name),
            created_at=vote.created_at,
            updated_at=vote.updated_at,
        )


# ============ Roulette ============

class RouletteStateResponse(CamelModel):
    phase: str
    participants: List[str]
    remaining: List[str]
    eliminated: List[str]
    winner: Optional[str] = None
    rounds_played: int


class RouletteRoundResponse(CamelModel):
    round_number: int
    eliminated: Optional[str] = None
    eliminated_index: Optional[int] = None
    remaining: List[str]
    winner: Optional[str] = None


class DeclareWinnerRequest(CamelModel):
    vote_id: EntityId
