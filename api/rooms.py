"""
Room API Endpoints

職責：
1. 建立 / 列出 / 查詢 Room（公開版不含 category）
2. Host 操作：修改、開關投票、刪除、揭曉、輪盤（需要 X-Host-Token）
3. PIN 驗證（成功後發 host token）
4. 票數統計（給沒有即時推播的前端輪詢）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from database import get_db
from schemas import (
    ApiResponse,
    CloseRoomRequest,
    DeclareWinnerRequest,
    Page,
    PaginationMeta,
    PinVerified,
    RevealResponse,
    RoomCreate,
    RoomCreated,
    RoomDetail,
    RoomPublic,
    RoomUpdate,
    RouletteRoundResponse,
    RouletteStateResponse,
    TallyResponse,
    VerifyPinRequest,
    VoteResponse,
)
from api.deps import get_room_registry, get_roulette_rng, require_room_host
from core.exceptions import GenderRevealException
from core.room_registry import RoomRegistry
from core.roulette import RouletteEngine
from core.roulette_manager import RouletteManager
from services.host_token_service import issue_host_token
from services.naming_service import build_room_url
from services.pagination_service import DEFAULT_LIMIT
from services.tally_service import count_votes

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


def _roulette_state(engine: RouletteEngine) -> RouletteStateResponse:
    return RouletteStateResponse(
        phase=engine.phase.value,
        participants=list(engine.participants),
        remaining=list(engine.remaining),
        eliminated=list(engine.eliminated),
        winner=engine.winner,
        rounds_played=engine.rounds_played,
    )


# ============ 建立 / 查詢 ============

@router.post("", response_model=ApiResponse[RoomCreated], status_code=201)
def create_room(
    payload: RoomCreate,
    db: Session = Depends(get_db),
    registry: RoomRegistry = Depends(get_room_registry),
):
    """
    建立房間

    返回：
        房間資料 + roomUrl + ownerPin / memberPin 明碼（只有這一次）+ hostToken
    """
    try:
        room, owner_pin, member_pin = registry.create_room(
            db, payload.trustee_id, payload.room_name, payload.category
        )
        data = RoomCreated.from_room(
            room,
            room_url=build_room_url(room.id),
            owner_pin=owner_pin,
            member_pin=member_pin,
            host_token=issue_host_token(room.id),
        )
        return ApiResponse(message="Room created successfully", data=data)
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to create room: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=ApiResponse[Page[RoomPublic]])
def list_rooms(
    page: int = Query(1),
    limit: int = Query(DEFAULT_LIMIT),
    trustee_id: Optional[str] = Query(None, alias="trusteeId"),
    db: Session = Depends(get_db),
):
    """分頁列出房間（公開資料，新的在前）"""
    try:
        rooms, meta = RoomRegistry.list_rooms(db, page, limit, trustee_id)
        return ApiResponse(
            message="Rooms fetched successfully",
            data=Page(
                data=[RoomPublic.from_room(room) for room in rooms],
                pagination=PaginationMeta(**meta),
            ),
        )
    except Exception as e:
        logger.error(f"Failed to list rooms: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{room_id}", response_model=ApiResponse[RoomDetail])
def get_room(
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
):
    """Host 版房間資料（含 category）"""
    try:
        room = RoomRegistry.get_room(db, room_id)
        return ApiResponse(message="Room fetched successfully", data=RoomDetail.from_room(room))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to get room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{room_id}/public", response_model=ApiResponse[RoomPublic])
def get_public_room(room_id: str, db: Session = Depends(get_db)):
    """參加者版房間資料（不含 category）"""
    try:
        room = RoomRegistry.get_room(db, room_id)
        return ApiResponse(message="Room fetched successfully", data=RoomPublic.from_room(room))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to get public room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{room_id}/tally", response_model=ApiResponse[TallyResponse])
def get_tally(room_id: str, db: Session = Depends(get_db)):
    """
    票數統計

    用途：
        即時推播不可用（disabled / failed）時，前端用這個輪詢
    """
    try:
        RoomRegistry.get_room(db, room_id)
        return ApiResponse(message="Tally fetched successfully", data=TallyResponse(**count_votes(room_id, db)))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to count votes for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


# ============ Host 操作 ============

@router.patch("/{room_id}", response_model=ApiResponse[RoomDetail])
def update_room(
    payload: RoomUpdate,
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
    registry: RoomRegistry = Depends(get_room_registry),
):
    try:
        room = registry.update_room(
            db,
            room_id,
            trustee_id=payload.trustee_id,
            room_name=payload.room_name,
            category=payload.category,
        )
        return ApiResponse(message="Room updated successfully", data=RoomDetail.from_room(room))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to update room {room_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.patch("/{room_id}/close-room", response_model=ApiResponse[RoomDetail])
def close_room(
    payload: CloseRoomRequest,
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
    registry: RoomRegistry = Depends(get_room_registry),
):
    """
    開關投票

    注意：
        - body 沒帶 isClose 時視為關閉
        - 冪等：重複關閉都回 200
    """
    closed = True if payload.is_close is None else payload.is_close
    try:
        room = registry.set_closed(db, room_id, closed)
        message = "Room closed successfully" if room.is_close else "Room reopened successfully"
        return ApiResponse(message=message, data=RoomDetail.from_room(room))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to close room {room_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{room_id}", response_model=ApiResponse[None])
def delete_room(
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
    registry: RoomRegistry = Depends(get_room_registry),
):
    try:
        registry.delete_room(db, room_id)
        return ApiResponse(message="Room deleted successfully")
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete room {room_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/verify-pin", response_model=ApiResponse[PinVerified])
def verify_pin(room_id: str, payload: VerifyPinRequest, db: Session = Depends(get_db)):
    """
    驗證 owner PIN

    返回：
        {verified: true, category, hostToken}；PIN 錯誤 -> 400
    """
    try:
        result = RoomRegistry.verify_pin(db, room_id, payload.pin)
        return ApiResponse(message="Pin verified successfully", data=PinVerified(**result))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to verify pin for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/reveal", response_model=ApiResponse[RevealResponse])
def reveal(
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
    registry: RoomRegistry = Depends(get_room_registry),
):
    """揭曉答案並推播 gender-revealed（broadcast=false 表示推播沒送出）"""
    try:
        category, ok = registry.reveal(db, room_id)
        return ApiResponse(message="Category revealed", data=RevealResponse(category=category, broadcast=ok))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to reveal room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


# ============ 輪盤 ============

@router.get("/{room_id}/roulette", response_model=ApiResponse[RouletteStateResponse])
def get_roulette(
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
):
    """目前的輪盤狀態（從投票 outcome 重建）"""
    try:
        engine = RouletteManager.state(db, room_id)
        return ApiResponse(message="Roulette fetched successfully", data=_roulette_state(engine))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to load roulette for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/roulette/spin", response_model=ApiResponse[RouletteRoundResponse])
def spin_roulette(
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
    rng=Depends(get_roulette_rng),
):
    """
    轉一回合

    異常：
        409 沒有人猜對 / 已經有贏家
    """
    try:
        result, _ = RouletteManager.spin(db, room_id, rng=rng)
        return ApiResponse(
            message="Roulette spun successfully",
            data=RouletteRoundResponse(
                round_number=result.round_number,
                eliminated=result.eliminated,
                eliminated_index=result.eliminated_index,
                remaining=result.remaining,
                winner=result.winner,
            ),
        )
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to spin roulette for room {room_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/roulette/reset", response_model=ApiResponse[RouletteStateResponse])
def reset_roulette(
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
):
    try:
        RouletteManager.reset(db, room_id)
        engine = RouletteManager.state(db, room_id)
        return ApiResponse(message="Roulette reset successfully", data=_roulette_state(engine))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to reset roulette for room {room_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/roulette/winner", response_model=ApiResponse[VoteResponse])
def declare_winner(
    payload: DeclareWinnerRequest,
    room_id: str = Depends(require_room_host),
    db: Session = Depends(get_db),
):
    """前端自己跑輪盤時，把贏家寫回來"""
    try:
        vote = RouletteManager.declare_winner(db, room_id, payload.vote_id)
        return ApiResponse(message="Winner recorded successfully", data=VoteResponse.from_vote(vote))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to declare winner for room {room_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
