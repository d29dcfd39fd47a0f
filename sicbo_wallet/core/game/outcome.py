"""Sic bo round evaluation: three dice, big (11-17) or small (4-10)."""

from __future__ import annotations

import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional, Sequence, Tuple

from ..bridge.models import GamePlayResultPayload

Choice = Literal["big", "small"]
BIG_THRESHOLD = 11
DICE_COUNT = 3

_system_random = random.SystemRandom()


@dataclass(frozen=True)
class RoundOutcome:
    is_win: bool
    dice_values: Tuple[int, int, int]
    total: int
    choice: Choice
    win_amount: Decimal

    @property
    def is_big(self) -> bool:
        return self.total >= BIG_THRESHOLD

    def to_payload(self) -> GamePlayResultPayload:
        return GamePlayResultPayload(
            is_win=self.is_win,
            dice_values=self.dice_values,
            total=self.total,
            choice=self.choice,
            win_amount=float(self.win_amount),
        )


def roll_dice(rng: Optional[random.Random] = None) -> Tuple[int, int, int]:
    rng = rng or _system_random
    return (rng.randint(1, 6), rng.randint(1, 6), rng.randint(1, 6))


def evaluate_round(dice: Sequence[int], choice: str, amount: Decimal) -> RoundOutcome:
    if len(dice) != DICE_COUNT or any(face < 1 or face > 6 for face in dice):
        raise ValueError(f"Expected three dice between 1 and 6, got {list(dice)}")
    if choice not in ("big", "small"):
        raise ValueError(f"Choice must be 'big' or 'small', got {choice!r}")
    amount = Decimal(amount)
    if amount <= 0:
        raise ValueError("Bet amount must be positive")

    total = sum(dice)
    is_big = total >= BIG_THRESHOLD
    is_win = (choice == "big") == is_big
    return RoundOutcome(
        is_win=is_win,
        dice_values=(dice[0], dice[1], dice[2]),
        total=total,
        choice=choice,  # type: ignore[arg-type]
        win_amount=amount if is_win else -amount,
    )
