"""
Enemy Skill Rule Oracle.

The oracle answers three questions about enemy behavior:
- Given a combatant context, which skills could it use and with what weight?
- Given a skill's stable rule id, what does the skill do (raw effect args)?
- How should a skill be shown to the player (text, always-active or not)?

SkillOracle is the interface the engine talks to. TableSkillOracle is the
reference implementation, driven by the skill list on each MonsterCard and a
table of skill effects loaded from JSON-compatible dicts.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Iterable
import json
import logging
from pathlib import Path

from dungeon_engine.core.monster_data import MonsterBook, get_monster_book
from dungeon_engine.core.skill_lottery import SkillCandidate, SkillContext

logger = logging.getLogger(__name__)


class EffectKind(str, Enum):
    """What an enemy skill does to the player."""
    ATTACK = "attack"
    GRAVITY = "gravity"
    BIND = "bind"
    DEBUFF = "debuff"
    SKYFALL = "skyfall"
    NO_SKYFALL = "no_skyfall"
    LOCK = "lock"
    UNMATCHABLE = "unmatchable"
    ATTRIBUTE_ABSORB = "attribute_absorb"
    COMBO_ABSORB = "combo_absorb"
    DAMAGE_ABSORB = "damage_absorb"
    DAMAGE_VOID = "damage_void"
    LEADER_SWAP = "leader_swap"
    CLOUD = "cloud"
    TAPE = "tape"
    SPINNER = "spinner"
    SKILL_DELAY = "skill_delay"
    SKILLSET = "skillset"  # Runs every skill in skill_ids
    PASSIVE = "passive"    # Resolve and other always-on traits
    TEXT = "text"          # Flavor only


@dataclass
class SkillEffect:
    """Raw rule definition of one enemy skill."""
    id: int
    kind: EffectKind
    name: str = ""
    args: Dict[str, Any] = field(default_factory=dict)
    description: str = ""
    skill_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkillEffect":
        try:
            kind = EffectKind(data.get("kind", "text"))
        except ValueError:
            logger.warning(f"[SkillOracle] Unknown effect kind {data.get('kind')!r} on skill {data.get('id')}")
            kind = EffectKind.TEXT
        return cls(
            id=int(data["id"]),
            kind=kind,
            name=data.get("name", ""),
            args=dict(data.get("args", {})),
            description=data.get("description", ""),
            skill_ids=[int(i) for i in data.get("skill_ids", [])],
        )


class SkillOracle:
    """Interface to enemy behavior rules."""

    def determine_skillset(self, ctx: SkillContext) -> List[SkillCandidate]:
        """Weighted candidate skills for a combatant in a battle context."""
        raise NotImplementedError

    def get_skill_effect(self, rule_id: int) -> Optional[SkillEffect]:
        """Raw effect of a skill by stable rule id, None when unknown."""
        raise NotImplementedError

    def is_passive(self, card_id: int, idx: int) -> bool:
        """Whether the skill at idx is always active rather than rolled."""
        raise NotImplementedError

    def describe(self, card_id: int, idx: int) -> str:
        """Human-readable text of the skill at idx."""
        raise NotImplementedError


def render_effect(effect: SkillEffect) -> str:
    """Default text for an effect that carries no description."""
    args = effect.args
    kind = effect.kind
    if kind == EffectKind.ATTACK:
        hits = args.get("max_hits", args.get("min_hits", 1))
        return f"Attack {args.get('atk_percent', 100)}% x{hits}"
    if kind == EffectKind.GRAVITY:
        return f"Gravity {args.get('percent', 0)}%"
    if kind == EffectKind.BIND:
        return f"Bind {args.get('target', 'team')} for {args.get('turns', 0)} turns"
    if kind == EffectKind.DEBUFF:
        return f"{str(args.get('debuff', '')).upper()} debuff for {args.get('turns', 0)} turns"
    if kind == EffectKind.SKYFALL:
        return f"{args.get('orb', 'jammer')} skyfall {args.get('chance', 0)}%"
    if kind == EffectKind.COMBO_ABSORB:
        return f"Absorb damage of {args.get('combos', 0)} combos or less"
    if kind == EffectKind.ATTRIBUTE_ABSORB:
        return f"Absorb attributes {args.get('attributes', [])}"
    if kind == EffectKind.DAMAGE_ABSORB:
        return f"Absorb damage of {args.get('amount', 0)} or more"
    if kind == EffectKind.DAMAGE_VOID:
        return f"Void damage of {args.get('amount', 0)} or more"
    if kind == EffectKind.SKILL_DELAY:
        return f"Delay skills by {args.get('turns', 0)} turns"
    return kind.value.replace("_", " ").capitalize()


class TableSkillOracle(SkillOracle):
    """Reference oracle backed by card skill lists and an effect table."""

    def __init__(
        self,
        effects: Optional[Iterable[SkillEffect]] = None,
        book: Optional[MonsterBook] = None,
    ):
        self._effects: Dict[int, SkillEffect] = {}
        self._book = book
        for effect in effects or []:
            self.add(effect)

    @property
    def book(self) -> MonsterBook:
        return self._book if self._book is not None else get_monster_book()

    def add(self, effect: SkillEffect) -> None:
        self._effects[effect.id] = effect

    def get_skill_effect(self, rule_id: int) -> Optional[SkillEffect]:
        return self._effects.get(rule_id)

    def determine_skillset(self, ctx: SkillContext) -> List[SkillCandidate]:
        card = self.book.get_card(ctx.card_id)
        candidates = []
        for idx, ref in enumerate(card.skills):
            if ref.passive or ref.preempt != ctx.is_preempt:
                continue
            if ctx.hp_percent > ref.hp_below:
                continue
            if ref.charge_cost > ctx.charges:
                continue
            if ref.once_flag and ctx.flags & ref.once_flag:
                continue
            if ref.min_combo and ctx.combo < ref.min_combo:
                continue
            candidates.append(SkillCandidate(
                idx=idx,
                chance=ref.chance,
                counter=ctx.counter + ref.counter_delta,
                flags=ctx.flags | ref.once_flag,
            ))
        return candidates

    def is_passive(self, card_id: int, idx: int) -> bool:
        skills = self.book.get_card(card_id).skills
        if not 0 <= idx < len(skills):
            return False
        ref = skills[idx]
        if ref.passive:
            return True
        effect = self._effects.get(ref.rule_id)
        return effect is not None and effect.kind == EffectKind.PASSIVE

    def describe(self, card_id: int, idx: int) -> str:
        skills = self.book.get_card(card_id).skills
        if not 0 <= idx < len(skills):
            return ""
        effect = self._effects.get(skills[idx].rule_id)
        if effect is None:
            return f"Unknown skill {skills[idx].rule_id}"
        text = effect.description or render_effect(effect)
        if effect.name:
            return f"{effect.name}: {text}"
        return text

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]], book: Optional[MonsterBook] = None) -> "TableSkillOracle":
        return cls((SkillEffect.from_dict(entry) for entry in data), book=book)

    @classmethod
    def load_from_file(cls, filepath: Path, book: Optional[MonsterBook] = None) -> "TableSkillOracle":
        """Load skill effects from a JSON file holding a list of effect dicts."""
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        oracle = cls.from_list(data, book=book)
        logger.info(f"[SkillOracle] Loaded {len(oracle._effects)} skills from {filepath}")
        return oracle


# Global oracle instance
_current_oracle: Optional[SkillOracle] = None


def get_skill_oracle() -> SkillOracle:
    """Get the current skill oracle."""
    global _current_oracle
    if _current_oracle is None:
        _current_oracle = TableSkillOracle()
    return _current_oracle


def set_skill_oracle(oracle: SkillOracle) -> None:
    """Replace the current skill oracle."""
    global _current_oracle
    _current_oracle = oracle


def reset_skill_oracle() -> None:
    """Reset to an empty reference oracle."""
    global _current_oracle
    _current_oracle = None
