"""
User API Endpoints

職責：
1. 建立 Trustee（房間建立者）
2. 查詢 / 分頁列出
3. 改名

不提供 DELETE（對 /api/users/{id} 送 DELETE 會得到 405）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import ApiResponse, Page, PaginationMeta, UserCreate, UserResponse, UserUpdate
from core.user_manager import UserManager
from core.exceptions import GenderRevealException
from services.pagination_service import DEFAULT_LIMIT

router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.post("", response_model=ApiResponse[UserResponse], status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """建立使用者（名稱重複 -> 409）"""
    try:
        user = UserManager.create_user(db, payload.username)
        return ApiResponse(message="User created successfully", data=UserResponse.from_user(user))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to create user: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=ApiResponse[Page[UserResponse]])
def list_users(
    page: int = Query(1),
    limit: int = Query(DEFAULT_LIMIT),
    db: Session = Depends(get_db),
):
    """分頁列出使用者（新的在前）"""
    try:
        users, meta = UserManager.list_users(db, page, limit)
        return ApiResponse(
            message="Users fetched successfully",
            data=Page(
                data=[UserResponse.from_user(user) for user in users],
                pagination=PaginationMeta(**meta),
            ),
        )
    except Exception as e:
        logger.error(f"Failed to list users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{user_id}", response_model=ApiResponse[UserResponse])
def get_user(user_id: str, db: Session = Depends(get_db)):
    try:
        user = UserManager.get_user(db, user_id)
        return ApiResponse(message="User fetched successfully", data=UserResponse.from_user(user))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to get user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.patch("/{user_id}", response_model=ApiResponse[UserResponse])
def update_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db)):
    """改名（名稱沒變時不檢查唯一性）"""
    try:
        user = UserManager.update_user(db, user_id, payload.username)
        return ApiResponse(message="User updated successfully", data=UserResponse.from_user(user))
    except GenderRevealException:
        raise
    except Exception as e:
        logger.error(f"Failed to update user {user_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
