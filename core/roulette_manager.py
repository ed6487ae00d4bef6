"""
Roulette Manager：把輪盤狀態存回投票的 outcome

輪盤本身（RouletteEngine）只活在記憶體；伺服器重啟或 host 換裝置後，
靠投票的 outcome 欄位重建：
- eliminated：已被淘汰（依 updated_at 排出淘汰順序）
- winner：贏家
- active：還在輪盤上

參加者 = 猜對的投票（category 等於房間答案），依投票時間排序
"""
from sqlalchemy.orm import Session
from typing import Dict, List, Tuple
import logging

from models import Room, Vote, VoteOutcome
from core.locks import with_room_lock, with_vote_lock
from core.exceptions import Conflict, InvalidStateTransition, RoomNotFound, VoteNotFound
from core.roulette import RouletteEngine, RoundResult
from database import transactional
from services.tally_service import correct_guess_votes

logger = logging.getLogger(__name__)


def _engine_from_votes(votes: List[Vote], rng=None) -> RouletteEngine:
    names = [vote.name for vote in votes]
    eliminated = sorted(
        (vote for vote in votes if vote.outcome == VoteOutcome.ELIMINATED),
        key=lambda vote: (vote.updated_at, vote.id),
    )
    winner = next((vote.name for vote in votes if vote.outcome == VoteOutcome.WINNER), None)
    return RouletteEngine.restore(
        names,
        [vote.name for vote in eliminated],
        winner=winner,
        rng=rng,
    )


class RouletteManager:
    """輪盤持久化"""

    @staticmethod
    def _get_room(db: Session, room_id: str, lock: bool = False) -> Room:
        if lock:
            room = with_room_lock(room_id, db).first()
        else:
            room = db.query(Room).filter(Room.id == room_id).first()
        if not room:
            raise RoomNotFound(room_id)
        return room

    @staticmethod
    def participants(db: Session, room_id: str) -> List[Vote]:
        """猜對的投票（輪盤參加者），舊的在前"""
        room = RouletteManager._get_room(db, room_id)
        return correct_guess_votes(room, db)

    @staticmethod
    def state(db: Session, room_id: str) -> RouletteEngine:
        """
        從投票 outcome 重建目前的輪盤

        異常：
            RoomNotFound: 房間不存在
        """
        return _engine_from_votes(RouletteManager.participants(db, room_id))

    @staticmethod
    @transactional
    def spin(db: Session, room_id: str, rng=None) -> Tuple[RoundResult, RouletteEngine]:
        """
        在伺服器端轉一回合

        流程：
        1. 鎖住房間，重建輪盤
        2. 抽出一人 -> 該投票標成 eliminated
        3. 只剩一人 -> 該投票標成 winner

        輪盤重建後已經結束、但贏家還沒寫回（例如只有一位參加者）時，
        不抽籤，直接把贏家寫回（回傳的結果沒有淘汰者）

        異常：
            RoomNotFound: 房間不存在
            RouletteEmpty: 沒有人猜對
            InvalidStateTransition: 已經有贏家（要先 reset）
        """
        room = RouletteManager._get_room(db, room_id, lock=True)
        votes = correct_guess_votes(room, db)
        engine = _engine_from_votes(votes, rng=rng)
        by_name: Dict[str, Vote] = {vote.name: vote for vote in votes}
        if engine.is_done:
            winner_vote = by_name[engine.winner]
            if winner_vote.outcome != VoteOutcome.WINNER:
                winner_vote.outcome = VoteOutcome.WINNER
                db.flush()
                logger.info(f"Roulette winner for room {room_id}: {engine.winner!r} (no rounds left)")
                result = RoundResult(
                    round_number=engine.rounds_played,
                    eliminated=None,
                    eliminated_index=None,
                    remaining=list(engine.remaining),
                    winner=engine.winner,
                )
                return result, engine
            raise InvalidStateTransition("Roulette already has a winner, reset it first")

        result = engine.spin_round()

        by_name[result.eliminated].outcome = VoteOutcome.ELIMINATED
        if result.winner is not None:
            by_name[result.winner].outcome = VoteOutcome.WINNER
            logger.info(f"Roulette winner for room {room_id}: {result.winner!r}")

        logger.info(f"Roulette round {result.round_number} in room {room_id}: eliminated {result.eliminated!r}")
        db.flush()
        return result, engine

    @staticmethod
    @transactional
    def reset(db: Session, room_id: str) -> int:
        """
        所有投票回到 active

        返回：
            被重設的投票數
        """
        RouletteManager._get_room(db, room_id, lock=True)
        count = db.query(Vote).filter(
            Vote.room_id == room_id,
            Vote.outcome != VoteOutcome.ACTIVE
        ).update({Vote.outcome: VoteOutcome.ACTIVE}, synchronize_session="fetch")
        logger.info(f"Roulette reset for room {room_id} ({count} votes restored)")
        return count

    @staticmethod
    @transactional
    def declare_winner(db: Session, room_id: str, vote_id: str) -> Vote:
        """
        前端自己跑輪盤時，把贏家寫回來

        前置條件：
        - 投票屬於這個房間
        - 投票猜對（category 等於房間答案）

        原本的贏家（如果有）會被改回 active

        異常：
            RoomNotFound / VoteNotFound
            Conflict: 投票不屬於這個房間，或不是猜對的人
        """
        room = RouletteManager._get_room(db, room_id, lock=True)
        vote = with_vote_lock(vote_id, db).first()
        if not vote:
            raise VoteNotFound(vote_id)
        if vote.room_id != room.id:
            raise Conflict("Vote does not belong to this room")
        if vote.category != room.category:
            raise Conflict("Only participants who guessed correctly can win")

        previous = db.query(Vote).filter(
            Vote.room_id == room_id,
            Vote.outcome == VoteOutcome.WINNER,
            Vote.id != vote_id
        ).all()
        for other in previous:
            other.outcome = VoteOutcome.ACTIVE

        vote.outcome = VoteOutcome.WINNER
        db.flush()
        logger.info(f"Vote {vote_id} declared winner of room {room_id}")
        return vote
