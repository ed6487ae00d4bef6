"""
Vote API Endpoints

職責：
1. 投票（房間關閉 -> 409，同名字 -> 409）
2. 查詢（roomId / name / category / isOut / outcome 篩選，新的在前）
3. Host 修改 / 刪除（需要該投票所屬房間的 X-Host-Token）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from models import Category, VoteOutcome
from schemas import ApiResponse, VoteCreate, VoteResponse, VoteUpdate
from api.deps import get_vote_ledger, host_token_header
from core.exceptions import GenderRevealException
from core.vote_ledger import VoteLedger
from services.host_token_service import ensure_host_access

router = APIRouter(prefix="/api/votes", tags=["votes"])
logger = logging.getLogger(__name__)


@router.post("", response_model=ApiResponse[VoteResponse], status_code=201)
def cast_vote(
    payload: VoteCreate,
    db: Session = Depends(get_db),
    ledger: VoteLedger = Depends(get_vote_ledger),
):
    """
    投票

    檢查順序：房間存在 -> 房間未關閉 -> 名字沒投過
    成功後推播 new-vote（推播失敗不影響回應）
    """
    try:
        vote = ledger.cast_vote(db, payload.room_id, payload.name, payload.category, payload.is_out)
        return ApiResponse(message="Vote created successfully", data=VoteResponse.from_vote(vote))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to cast vote: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=ApiResponse[List[VoteResponse]])
def list_votes(
    room_id: Optional[str] = Query(None, alias="roomId"),
    name: Optional[str] = Query(None),
    category: Optional[Category] = Query(None),
    is_out: Optional[bool] = Query(None, alias="isOut"),
    outcome: Optional[VoteOutcome] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        votes = VoteLedger.list_votes(
            db,
            room_id=room_id,
            name=name,
            category=category,
            is_out=is_out,
            outcome=outcome,
        )
        return ApiResponse(
            message="Votes fetched successfully",
            data=[VoteResponse.from_vote(vote) for vote in votes],
        )
    except Exception as e:
        logger.error(f"Failed to list votes: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{vote_id}", response_model=ApiResponse[VoteResponse])
def get_vote(vote_id: str, db: Session = Depends(get_db)):
    try:
        vote = VoteLedger.get_vote(db, vote_id)
        return ApiResponse(message="Vote fetched successfully", data=VoteResponse.from_vote(vote))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to get vote {vote_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.patch("/{vote_id}", response_model=ApiResponse[VoteResponse])
def update_vote(
    vote_id: str,
    payload: VoteUpdate,
    host_token: Optional[str] = Depends(host_token_header),
    db: Session = Depends(get_db),
    ledger: VoteLedger = Depends(get_vote_ledger),
):
    """
    修改投票（host）

    注意：
        - 搬到別的房間時，token 只需要對應原本的房間
        - isOut 會換算成 outcome（true -> eliminated，false -> active）
    """
    try:
        vote = VoteLedger.get_vote(db, vote_id)
        ensure_host_access(host_token, vote.room_id)

        vote = ledger.update_vote(
            db,
            vote_id,
            room_id=payload.room_id,
            name=payload.name,
            category=payload.category,
            is_out=payload.is_out,
            outcome=payload.outcome,
        )
        return ApiResponse(message="Vote updated successfully", data=VoteResponse.from_vote(vote))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to update vote {vote_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{vote_id}", response_model=ApiResponse[None])
def delete_vote(
    vote_id: str,
    host_token: Optional[str] = Depends(host_token_header),
    db: Session = Depends(get_db),
    ledger: VoteLedger = Depends(get_vote_ledger),
):
    """刪除投票（host），成功後推播 vote-deleted"""
    try:
        vote = VoteLedger.get_vote(db, vote_id)
        ensure_host_access(host_token, vote.room_id)

        ledger.delete_vote(db, vote_id)
        return ApiResponse(message="Vote deleted successfully")
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete vote {vote_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
