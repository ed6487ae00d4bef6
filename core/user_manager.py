"""
User Manager：Trustee（房間建立者）帳號

只有建立、查詢、改名；不提供刪除（房間的 trustee_id 必須一直有效）
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Tuple
import logging

from models import User
from core.exceptions import UserNotFound, UsernameTaken
from database import transactional
from services.pagination_service import DEFAULT_LIMIT, paginate

logger = logging.getLogger(__name__)


class UserManager:
    """使用者管理器"""

    @staticmethod
    def create_user(db: Session, username: str) -> User:
        """
        建立使用者

        異常：
            UsernameTaken: 名稱已存在
        """
        try:
            user = UserManager._insert_user(db, username)
        except IntegrityError:
            raise UsernameTaken()
        logger.info(f"Created user {user.id} ({username})")
        return user

    @staticmethod
    @transactional
    def _insert_user(db: Session, username: str) -> User:
        if db.query(User).filter(User.username == username).first():
            raise UsernameTaken()
        user = User(username=username)
        db.add(user)
        db.flush()
        return user

    @staticmethod
    def get_user(db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFound(user_id)
        return user

    @staticmethod
    def list_users(db: Session, page: int = 1, limit: int = DEFAULT_LIMIT) -> Tuple[List[User], Dict[str, Any]]:
        query = db.query(User).order_by(User.created_at.desc(), User.id.desc())
        return paginate(query, page, limit)

    @staticmethod
    def update_user(db: Session, user_id: str, username: str = None) -> User:
        """
        改名

        名稱沒變時不檢查唯一性

        異常：
            UserNotFound / UsernameTaken
        """
        try:
            return UserManager._apply_update(db, user_id, username)
        except IntegrityError:
            raise UsernameTaken()

    @staticmethod
    @transactional
    def _apply_update(db: Session, user_id: str, username: str) -> User:
        user = db.query(User).filter(User.id == user_id).with_for_update(nowait=False).first()
        if not user:
            raise UserNotFound(user_id)

        if username is not None and username != user.username:
            taken = db.query(User).filter(
                User.username == username,
                User.id != user_id
            ).first()
            if taken:
                raise UsernameTaken()
            user.username = username
            logger.info(f"User {user_id} renamed to {username}")

        db.flush()
        return user
