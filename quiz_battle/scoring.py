from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

TOTAL_SCALE = 100


@dataclass(frozen=True, slots=True)
class ScoringConfig:
    base_correct: int = 10
    rapid_bonus: int = 2
    rapid_threshold_s: float = 2.0
    streak_bonus: int = 5
    streak_every: int = 3
    completion_bonus: int = 10

    def __post_init__(self) -> None:
        for name in ("base_correct", "rapid_bonus", "streak_bonus", "completion_bonus"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.streak_every < 1:
            raise ValueError("streak_every must be >= 1")
        if self.rapid_threshold_s < 0:
            raise ValueError("rapid_threshold_s must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_correct": self.base_correct,
            "rapid_bonus": self.rapid_bonus,
            "rapid_threshold_s": self.rapid_threshold_s,
            "streak_bonus": self.streak_bonus,
            "streak_every": self.streak_every,
            "completion_bonus": self.completion_bonus,
        }


@dataclass(frozen=True, slots=True)
class CorrectOutcome:
    points: int
    rapid: bool
    streak: bool


class ScoreEngine:
    """Stateless point rules.

    Wrong answers and timeouts earn nothing and deduct nothing; the health
    damage is the penalty.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._cfg = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._cfg

    def score_correct(self, *, response_time_s: float, consecutive_correct: int) -> CorrectOutcome:
        """Points for a correct answer.

        ``consecutive_correct`` is the streak length including this answer.
        """

        cfg = self._cfg
        points = cfg.base_correct
        rapid = response_time_s < cfg.rapid_threshold_s
        if rapid:
            points += cfg.rapid_bonus
        streak = consecutive_correct > 0 and consecutive_correct % cfg.streak_every == 0
        if streak:
            points += cfg.streak_bonus
        return CorrectOutcome(points=points, rapid=rapid, streak=streak)

    def score_incorrect_or_timeout(self) -> int:
        return 0

    def completion_bonus(self) -> int:
        return self._cfg.completion_bonus

    def max_attainable(self, questions_presented: int) -> int:
        cfg = self._cfg
        n = max(0, int(questions_presented))
        return (
            n * (cfg.base_correct + cfg.rapid_bonus)
            + (n // cfg.streak_every) * cfg.streak_bonus
            + cfg.completion_bonus
        )

    def normalize(self, score: int, questions_presented: int) -> int:
        """Rescale a final score to 0..100 against the best possible run."""

        if questions_presented <= 0:
            return 0
        best = self.max_attainable(questions_presented)
        if best <= 0:
            return 0
        pct = round_half_up(TOTAL_SCALE * score / best)
        return max(0, min(TOTAL_SCALE, pct))


def round_half_up(x: float) -> int:
    # Python's round() is banker's rounding; scores use the classroom rule.
    return int(math.floor(x + 0.5))
