"""
Monster card data for enemy combatants.

A card describes one behavior-set id: its level curve, element, types,
starting charges, resolve thresholds, resistances, and the ordered list of
skills (by stable rule id) the enemy can use. Cards are looked up through a
process-wide MonsterBook, mirroring how rules data is served elsewhere.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Iterable
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


# Element ids used by attribute fields and attribute absorbs
ATTRIBUTE_NAMES = {
    -1: "None",
    0: "Fire",
    1: "Water",
    2: "Wood",
    3: "Light",
    4: "Dark",
}


@dataclass
class StatCurve:
    """Linear level curve anchored at level 1 and level 10."""
    lv1: int = 0
    lv10: int = 0

    def at(self, level: int) -> int:
        if self.lv10 == self.lv1:
            return self.lv1
        return round(self.lv1 + (self.lv10 - self.lv1) * (level - 1) / 9)

    @classmethod
    def from_value(cls, value: Any) -> "StatCurve":
        if isinstance(value, StatCurve):
            return value
        if isinstance(value, dict):
            lv1 = int(value.get("lv1", 0))
            return cls(lv1=lv1, lv10=int(value.get("lv10", lv1)))
        return cls(lv1=int(value or 0), lv10=int(value or 0))


@dataclass
class Resist:
    """Damage reduction against a set of types or attributes."""
    ids: List[int] = field(default_factory=list)
    percent: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"ids": list(self.ids), "percent": self.percent}


@dataclass
class EnemySkillRef:
    """
    One entry of a card's skill list.

    `rule_id` is the stable identifier the rule oracle resolves. The other
    fields feed the reference oracle's candidate selection.
    """
    rule_id: int
    chance: int = 1                 # Selection weight
    preempt: bool = False           # Only usable as the preemptive action
    passive: bool = False           # Always active, never rolled
    hp_below: int = 100             # Usable while HP% <= this
    min_combo: int = 0
    charge_cost: int = 0
    once_flag: int = 0              # Bit set on use; skill skipped while set
    counter_delta: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnemySkillRef":
        return cls(
            rule_id=int(data.get("rule_id", data.get("id", 0))),
            chance=int(data.get("chance", 1)),
            preempt=bool(data.get("preempt", False)),
            passive=bool(data.get("passive", False)),
            hp_below=int(data.get("hp_below", 100)),
            min_combo=int(data.get("min_combo", 0)),
            charge_cost=int(data.get("charge_cost", 0)),
            once_flag=int(data.get("once_flag", 0)),
            counter_delta=int(data.get("counter_delta", 0)),
        )


@dataclass
class MonsterCard:
    """Static data for one behavior-set id."""
    id: int
    name: str = ""
    attribute: int = -1
    types: List[int] = field(default_factory=list)
    hp: StatCurve = field(default_factory=StatCurve)
    atk: StatCurve = field(default_factory=StatCurve)
    defense: StatCurve = field(default_factory=StatCurve)
    charges: int = 0
    resolve_percent: int = 0
    super_resolve_percent: int = 0
    type_resists: Resist = field(default_factory=Resist)
    attr_resists: Resist = field(default_factory=Resist)
    skills: List[EnemySkillRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonsterCard":
        type_resists = data.get("type_resists") or {}
        attr_resists = data.get("attr_resists") or {}
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            attribute=int(data.get("attribute", -1)),
            types=list(data.get("types", [])),
            hp=StatCurve.from_value(data.get("hp", 0)),
            atk=StatCurve.from_value(data.get("atk", 0)),
            defense=StatCurve.from_value(data.get("defense", 0)),
            charges=int(data.get("charges", 0)),
            resolve_percent=int(data.get("resolve_percent", 0)),
            super_resolve_percent=int(data.get("super_resolve_percent", 0)),
            type_resists=Resist(list(type_resists.get("ids", [])), int(type_resists.get("percent", 0))),
            attr_resists=Resist(list(attr_resists.get("ids", [])), int(attr_resists.get("percent", 0))),
            skills=[EnemySkillRef.from_dict(s) for s in data.get("skills", [])],
        )


class MonsterBook:
    """Registry of monster cards keyed by behavior-set id."""

    def __init__(self, cards: Optional[Iterable[MonsterCard]] = None):
        self._cards: Dict[int, MonsterCard] = {}
        for card in cards or []:
            self.add(card)

    def add(self, card: MonsterCard) -> None:
        self._cards[card.id] = card

    def get_card(self, card_id: int) -> MonsterCard:
        """Get a card; unknown ids resolve to a zero-stat placeholder."""
        card = self._cards.get(card_id)
        if card is None:
            logger.debug(f"[MonsterBook] Unknown card {card_id}, using placeholder")
            return MonsterCard(id=card_id)
        return card

    def __contains__(self, card_id: int) -> bool:
        return card_id in self._cards

    def __len__(self) -> int:
        return len(self._cards)

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "MonsterBook":
        return cls(MonsterCard.from_dict(entry) for entry in data)

    @classmethod
    def load_from_file(cls, filepath: Path) -> "MonsterBook":
        """Load cards from a JSON file holding a list of card dicts."""
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        book = cls.from_list(data)
        logger.info(f"[MonsterBook] Loaded {len(book)} cards from {filepath}")
        return book


# Global monster book instance
_current_book: Optional[MonsterBook] = None


def get_monster_book() -> MonsterBook:
    """Get the current monster book."""
    global _current_book
    if _current_book is None:
        _current_book = MonsterBook()
    return _current_book


def set_monster_book(book: MonsterBook) -> None:
    """Replace the current monster book."""
    global _current_book
    _current_book = book


def reset_monster_book() -> None:
    """Reset to an empty monster book."""
    global _current_book
    _current_book = None
