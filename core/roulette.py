"""
Roulette Engine：每回合隨機淘汰一人，直到剩下一位贏家

狀態轉換：
    IDLE -> SPINNING -> ROUND_RESULT -> IDLE（還剩 2 人以上）
                                     -> DONE（只剩 1 人）

規則：
- 每回合從剩下的人裡均勻抽一個淘汰：index = floor(random() * len(remaining))
- N 位參加者一定在 N-1 回合後結束
- 只有 1 位參加者時，建立當下就是 DONE（0 回合）
- 空名單直接拒絕（RouletteEmpty）

純記憶體邏輯，不碰資料庫；持久化交給 RouletteManager
"""
import enum
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from core.exceptions import InvalidStateTransition, RouletteEmpty

logger = logging.getLogger(__name__)


class RoulettePhase(str, enum.Enum):
    IDLE = "idle"
    SPINNING = "spinning"
    ROUND_RESULT = "round_result"
    DONE = "done"


@dataclass
class RoundResult:
    round_number: int
    eliminated: Optional[str]
    eliminated_index: Optional[int]
    remaining: List[str]
    winner: Optional[str] = None


class RouletteEngine:
    """
    淘汰輪盤

    參數：
        participants: 參加者名單（順序有意義：index 對應輪盤上的位置）
        rng: 需要有 random() 方法；預設 secrets.SystemRandom()，測試時傳 random.Random(seed)
        on_winner: 產生贏家時呼叫一次 on_winner(winner)
    """

    def __init__(
        self,
        participants: Sequence[str],
        rng=None,
        on_winner: Optional[Callable[[str], None]] = None,
    ):
        self.rng = rng or secrets.SystemRandom()
        self.on_winner = on_winner
        self.reset(participants)

    @classmethod
    def restore(
        cls,
        participants: Sequence[str],
        eliminated: Sequence[str],
        winner: Optional[str] = None,
        rng=None,
        on_winner: Optional[Callable[[str], None]] = None,
    ) -> "RouletteEngine":
        """
        從已保存的狀態重建（淘汰順序 + 贏家）

        重建過程不會呼叫 on_winner

        異常：
            InvalidStateTransition: 被淘汰的人不在名單裡，或贏家跟剩下的人對不上
        """
        engine = cls([], rng=rng)
        engine._load(participants)
        for name in eliminated:
            if name not in engine.remaining:
                raise InvalidStateTransition(f"{name!r} is not a remaining participant")
            engine.remaining.remove(name)
            engine.eliminated.append(name)
            engine.rounds_played += 1

        if winner is not None:
            if winner not in engine.remaining:
                raise InvalidStateTransition(f"{winner!r} is not a remaining participant")
            engine.eliminated.extend(name for name in engine.remaining if name != winner)
            engine.remaining = [winner]

        if len(engine.remaining) == 1:
            engine.winner = engine.remaining[0]
            engine.phase = RoulettePhase.DONE
        engine.on_winner = on_winner
        return engine

    def reset(self, participants: Optional[Sequence[str]] = None) -> None:
        """回到初始名單（或換一份新名單），清掉贏家與淘汰紀錄"""
        self._load(participants)
        if len(self.remaining) == 1:
            self._finish(self.remaining[0])

    def _load(self, participants: Optional[Sequence[str]]) -> None:
        if participants is not None:
            self.participants = list(participants)
        self.remaining = list(self.participants)
        self.eliminated: List[str] = []
        self.winner: Optional[str] = None
        self.rounds_played = 0
        self._pending_index: Optional[int] = None
        self.phase = RoulettePhase.IDLE

    @property
    def is_done(self) -> bool:
        return self.phase == RoulettePhase.DONE

    def spin(self) -> int:
        """
        抽出這回合要淘汰的位置

        返回：
            remaining 裡的 index（0 <= index < len(remaining)）

        異常：
            RouletteEmpty: 沒有參加者
            InvalidStateTransition: 不是 IDLE（上一回合還沒 resolve，或已經 DONE）
        """
        if not self.remaining:
            raise RouletteEmpty()
        if self.phase != RoulettePhase.IDLE:
            raise InvalidStateTransition(f"Cannot spin while {self.phase.value}")

        count = len(self.remaining)
        index = min(int(self.rng.random() * count), count - 1)
        self._pending_index = index
        self.phase = RoulettePhase.SPINNING
        return index

    def resolve(self) -> RoundResult:
        """
        套用 spin() 的結果：淘汰該位置的人

        流程：
        1. SPINNING -> ROUND_RESULT，移除被抽中的人
        2. 剩 1 人 -> DONE（觸發 on_winner）；否則回到 IDLE
        """
        if self.phase != RoulettePhase.SPINNING:
            raise InvalidStateTransition(f"Cannot resolve while {self.phase.value}")

        index = self._pending_index
        self._pending_index = None
        self.phase = RoulettePhase.ROUND_RESULT

        eliminated = self.remaining.pop(index)
        self.eliminated.append(eliminated)
        self.rounds_played += 1
        logger.debug(f"Round {self.rounds_played}: eliminated {eliminated!r}, {len(self.remaining)} left")

        if len(self.remaining) == 1:
            self._finish(self.remaining[0])
        else:
            self.phase = RoulettePhase.IDLE

        return RoundResult(
            round_number=self.rounds_played,
            eliminated=eliminated,
            eliminated_index=index,
            remaining=list(self.remaining),
            winner=self.winner,
        )

    def spin_round(self) -> RoundResult:
        self.spin()
        return self.resolve()

    def run(self) -> str:
        """一路轉到只剩一人，回傳贏家"""
        if not self.remaining:
            raise RouletteEmpty()
        while not self.is_done:
            self.spin_round()
        return self.winner

    def _finish(self, winner: str) -> None:
        self.winner = winner
        self.phase = RoulettePhase.DONE
        logger.info(f"Roulette finished, winner: {winner!r}")
        if self.on_winner:
            self.on_winner(winner)
