from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .scoring import ScoringConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "QUIZ_BATTLE_CONFIG_PATH"
USER_ID_ENV = "QUIZ_BATTLE_USER_ID"

# Single fixed difficulty ("medium").
DEFAULT_TIME_LIMIT_S = 15


@dataclass(frozen=True, slots=True)
class DamageConfig:
    player_attack: int = 25
    enemy_wrong_answer: int = 20
    enemy_timeout: int = 15

    @classmethod
    def from_dict(cls, data: object) -> "DamageConfig":
        if not isinstance(data, dict):
            return cls()
        d = cls()
        return cls(
            player_attack=_clamp_int(_as_int(data.get("player_attack"), d.player_attack), 0, 10_000),
            enemy_wrong_answer=_clamp_int(_as_int(data.get("enemy_wrong_answer"), d.enemy_wrong_answer), 0, 10_000),
            enemy_timeout=_clamp_int(_as_int(data.get("enemy_timeout"), d.enemy_timeout), 0, 10_000),
        )


@dataclass(frozen=True, slots=True)
class TimingConfig:
    countdown_step_s: float = 1.5
    countdown_fight_s: float = 1.0
    resolve_to_next_s: float = 1.2
    resolve_to_end_s: float = 0.5
    taunt_display_s: float = 3.5

    @classmethod
    def from_dict(cls, data: object) -> "TimingConfig":
        if not isinstance(data, dict):
            return cls()
        d = cls()
        return cls(
            countdown_step_s=_clamp(_as_float(data.get("countdown_step_s"), d.countdown_step_s), 0.0, 10.0),
            countdown_fight_s=_clamp(_as_float(data.get("countdown_fight_s"), d.countdown_fight_s), 0.0, 10.0),
            resolve_to_next_s=_clamp(_as_float(data.get("resolve_to_next_s"), d.resolve_to_next_s), 0.0, 10.0),
            resolve_to_end_s=_clamp(_as_float(data.get("resolve_to_end_s"), d.resolve_to_end_s), 0.0, 10.0),
            taunt_display_s=_clamp(_as_float(data.get("taunt_display_s"), d.taunt_display_s), 0.0, 30.0),
        )


@dataclass(frozen=True, slots=True)
class BattleConfig:
    max_hp: int = 100
    time_limit_s: int = DEFAULT_TIME_LIMIT_S
    damage: DamageConfig = field(default_factory=DamageConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    taunt_every: int = 2
    category: str = "addition"
    game_id: int = 1
    user_id: str | None = None

    def __post_init__(self) -> None:
        if self.max_hp <= 0:
            raise ValueError("max_hp must be > 0")
        if self.time_limit_s < 1:
            raise ValueError("time_limit_s must be >= 1")
        if self.taunt_every < 1:
            raise ValueError("taunt_every must be >= 1")

    @classmethod
    def from_dict(cls, data: object) -> "BattleConfig":
        if not isinstance(data, dict):
            return cls()
        d = cls()
        raw_scoring = data.get("scoring")
        scoring = d.scoring
        if isinstance(raw_scoring, dict):
            s = d.scoring
            try:
                scoring = ScoringConfig(
                    base_correct=_as_int(raw_scoring.get("base_correct"), s.base_correct),
                    rapid_bonus=_as_int(raw_scoring.get("rapid_bonus"), s.rapid_bonus),
                    rapid_threshold_s=_as_float(raw_scoring.get("rapid_threshold_s"), s.rapid_threshold_s),
                    streak_bonus=_as_int(raw_scoring.get("streak_bonus"), s.streak_bonus),
                    streak_every=_as_int(raw_scoring.get("streak_every"), s.streak_every),
                    completion_bonus=_as_int(raw_scoring.get("completion_bonus"), s.completion_bonus),
                )
            except ValueError as exc:
                logger.warning("ignoring invalid scoring config: %s", exc)
                scoring = d.scoring

        user_id = data.get("user_id")
        category = str(data.get("category", d.category)).strip() or d.category
        return cls(
            max_hp=_clamp_int(_as_int(data.get("max_hp"), d.max_hp), 1, 10_000),
            time_limit_s=_clamp_int(_as_int(data.get("time_limit_s"), d.time_limit_s), 1, 600),
            damage=DamageConfig.from_dict(data.get("damage")),
            scoring=scoring,
            timing=TimingConfig.from_dict(data.get("timing")),
            taunt_every=_clamp_int(_as_int(data.get("taunt_every"), d.taunt_every), 1, 100),
            category=category,
            game_id=_as_int(data.get("game_id"), d.game_id),
            user_id=None if user_id is None or str(user_id).strip() == "" else str(user_id).strip(),
        )


def default_config_path() -> Path:
    explicit = os.environ.get(CONFIG_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".quiz_battle.json"


def load_config(path: Path | None = None) -> BattleConfig:
    """Read a BattleConfig from JSON, falling back to defaults.

    A missing file is normal. An unreadable or malformed one is logged and
    ignored. ``QUIZ_BATTLE_USER_ID`` fills in the user id when the file has none.
    """

    cfg_path = default_config_path() if path is None else Path(path)
    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            payload = json.loads(cfg_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("could not read config %s: %s", cfg_path, exc)
            payload = None
        if isinstance(payload, dict):
            data = payload
        elif payload is not None:
            logger.warning("config %s: top level must be an object", cfg_path)

    if not data.get("user_id"):
        env_user = os.environ.get(USER_ID_ENV, "").strip()
        if env_user:
            data = {**data, "user_id": env_user}

    cfg = BattleConfig.from_dict(data)
    logger.debug("config loaded from %s: %s", cfg_path, cfg)
    return cfg


def _as_float(value: object, fallback: float) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


def _as_int(value: object, fallback: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


def _clamp(value: float, lo: float, hi: float) -> float:
    if value <= lo:
        return lo
    if value >= hi:
        return hi
    return float(value)


def _clamp_int(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, int(value)))
