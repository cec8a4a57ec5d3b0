from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CombatState:
    """Player and boss health pools.

    Both pools start full unless given, and only ever go down; every value
    is clamped to ``[0, max_hp]``.
    """

    max_hp: int = 100
    player_hp: int | None = None
    boss_hp: int | None = None

    def __post_init__(self) -> None:
        if self.max_hp <= 0:
            raise ValueError("max_hp must be > 0")
        if self.player_hp is None:
            self.player_hp = self.max_hp
        if self.boss_hp is None:
            self.boss_hp = self.max_hp
        self.player_hp = _clamp_hp(self.player_hp, self.max_hp)
        self.boss_hp = _clamp_hp(self.boss_hp, self.max_hp)

    def reset(self) -> None:
        self.player_hp = self.max_hp
        self.boss_hp = self.max_hp

    def apply_player_attack(self, damage: int) -> None:
        """The player hits the boss."""
        _check_damage(damage)
        self.boss_hp = _clamp_hp(self.boss_hp - damage, self.max_hp)

    def apply_enemy_attack(self, damage: int) -> None:
        """The boss hits the player."""
        _check_damage(damage)
        self.player_hp = _clamp_hp(self.player_hp - damage, self.max_hp)

    def is_boss_defeated(self) -> bool:
        return self.boss_hp <= 0

    def is_player_defeated(self) -> bool:
        return self.player_hp <= 0

    def player_fraction(self) -> float:
        return self.player_hp / self.max_hp

    def boss_fraction(self) -> float:
        return self.boss_hp / self.max_hp


def _check_damage(damage: int) -> None:
    if damage < 0:
        raise ValueError("damage must be >= 0")


def _clamp_hp(hp: int, max_hp: int) -> int:
    return max(0, min(max_hp, int(hp)))
