"""
Vote tally service.

Builds the per-category counts the room page shows and the correct-guess
subset that seeds the roulette.
"""
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Category, Room, Vote


def count_votes(room_id: str, db: Session) -> Dict[str, int]:
    """
    Return `{"male": n, "female": m, "total": n + m}` for a room.

    Categories with no votes are reported as 0 so polling clients always get
    the same shape.
    """
    rows = (
        db.query(Vote.category, func.count(Vote.id))
        .filter(Vote.room_id == room_id)
        .group_by(Vote.category)
        .all()
    )
    counts = {category.value: 0 for category in Category}
    for category, count in rows:
        counts[Category(category).value] = count
    counts["total"] = sum(counts[category.value] for category in Category)
    return counts


def correct_guess_votes(room: Room, db: Session) -> List[Vote]:
    """
    Votes whose category matches the room's actual category, oldest first.

    The order is stable so a roulette restored from the database sees the
    same participant order every time.
    """
    return (
        db.query(Vote)
        .filter(Vote.room_id == room.id, Vote.category == room.category)
        .order_by(Vote.created_at.asc(), Vote.id.asc())
        .all()
    )
