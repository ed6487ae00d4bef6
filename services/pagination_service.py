"""
分頁服務

page 從 1 開始；limit 限制在 1-100 之間，避免一次撈太多
"""
import math
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Query

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def paginate(query: Query, page: int = 1, limit: int = DEFAULT_LIMIT) -> Tuple[List[Any], Dict[str, Any]]:
    """
    對已排序好的 Query 分頁

    參數：
        query: 已經 order_by 的 SQLAlchemy Query
        page: 頁數（1-based，小於 1 視為 1）
        limit: 每頁筆數（會被夾在 1..100）

    返回：
        (items, pagination) tuple
        pagination 欄位：page, limit, total_items, total_pages, has_next, has_prev
    """
    safe_page = max(1, page)
    safe_limit = max(1, min(limit, MAX_LIMIT))

    total_items = query.order_by(None).count()
    items = query.offset((safe_page - 1) * safe_limit).limit(safe_limit).all()
    total_pages = math.ceil(total_items / safe_limit)

    return items, {
        "page": safe_page,
        "limit": safe_limit,
        "total_items": total_items,
        "total_pages": total_pages,
        "has_next": safe_page < total_pages,
        "has_prev": safe_page > 1,
    }
