"""
Enemy combatant state for a single dungeon slot.

An EnemyInstance holds the mutable battle state of one enemy (level, current
HP, enrage, charges, flags, absorbs...). Derived stats come from the monster
card and the dungeon multipliers, which are always passed in explicitly at
read time so a slot never holds on to stale multipliers.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, List
import math

from dungeon_engine.core.monster_data import MonsterCard, get_monster_book
from dungeon_engine.core.rational import Rational
from dungeon_engine.models.dungeon_data import EnemySnapshot


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive stats, like the game client does."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class DungeonMultipliers:
    """The three dungeon-wide stat multipliers in effect."""
    hp: Rational = field(default_factory=Rational)
    atk: Rational = field(default_factory=Rational)
    defense: Rational = field(default_factory=Rational)


DEFAULT_MULTIPLIERS = DungeonMultipliers()


def _scale(multiplier: Rational, value: int) -> float:
    # NaN multipliers leave the base stat unscaled
    if multiplier.is_nan:
        return value
    return multiplier.multiply(value)


@dataclass
class EnemyInstance:
    """Mutable battle state of one enemy."""
    id: int = 0
    lv: int = 1
    current_hp: int = 0

    # Battle flags
    attack_multiplier: float = 1
    ignore_defense_percent: int = 0
    charges: int = 0
    counter: int = 0
    flags: int = 0
    status_shield: bool = False
    invincible: bool = False
    current_attribute: int = -1
    combo_absorb: int = 0
    damage_absorb: int = 0
    damage_void: int = 0
    attribute_absorbs: List[int] = field(default_factory=list)
    damage_shield_percent: int = 0
    other_enemy_hp: int = 100

    def get_card(self) -> MonsterCard:
        return get_monster_book().get_card(self.id)

    def set_level(self, lv: int) -> None:
        self.lv = lv

    def reset(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> None:
        """Restore battle flags and set HP to the scaled max HP."""
        self.attack_multiplier = 1
        self.ignore_defense_percent = 0
        self.charges = self.get_card().charges
        self.counter = 0
        self.flags = 0
        self.status_shield = False
        self.invincible = False
        self.current_attribute = -1
        self.combo_absorb = 0
        self.damage_absorb = 0
        self.damage_void = 0
        self.attribute_absorbs = []
        self.damage_shield_percent = 0
        self.current_hp = self.get_hp(multipliers)

    # ==================== Derived Stats ====================

    def get_hp(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        """Max HP at the current level, scaled by the dungeon HP multiplier."""
        return round_half_up(_scale(multipliers.hp, self.get_card().hp.at(self.lv)))

    def get_hp_percent(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        max_hp = self.get_hp(multipliers)
        if max_hp <= 0:
            return 100
        return round_half_up(self.current_hp / max_hp * 100)

    def get_atk_base(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        return round_half_up(_scale(multipliers.atk, self.get_card().atk.at(self.lv)))

    def get_atk(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        """Attack including enrage."""
        return round_half_up(self.get_atk_base(multipliers) * self.attack_multiplier)

    def get_def_base(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        return round_half_up(_scale(multipliers.defense, self.get_card().defense.at(self.lv)))

    def get_def(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        """Defense after defense break."""
        return round_half_up(
            self.get_def_base(multipliers) * (100 - self.ignore_defense_percent) / 100
        )

    def get_resolve(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> float:
        """HP at or above which a lethal hit leaves the enemy at 1 HP."""
        return self.get_hp(multipliers) * self.get_card().resolve_percent / 100

    def get_super_resolve(self, multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS) -> int:
        """Minimum HP threshold of super resolve, 0 when the card has none."""
        percent = self.get_card().super_resolve_percent
        if percent <= 0:
            return 0
        return math.ceil(self.get_hp(multipliers) * percent / 100)

    def get_attribute(self) -> int:
        if self.current_attribute >= 0:
            return self.current_attribute
        return self.get_card().attribute

    def get_type_resists(self) -> Dict[str, Any]:
        return self.get_card().type_resists.to_dict()

    def get_attr_resists(self) -> Dict[str, Any]:
        return self.get_card().attr_resists.to_dict()

    # ==================== Serialization ====================

    def to_json(self) -> EnemySnapshot:
        return EnemySnapshot(id=self.id, lv=self.lv)

    @classmethod
    def from_json(cls, data: EnemySnapshot) -> "EnemyInstance":
        return cls(id=data.id, lv=data.lv)
