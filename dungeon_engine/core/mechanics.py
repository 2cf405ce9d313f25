"""
Dungeon Mechanics Aggregation.

Scans every enemy of a dungeon and folds the effects of every skill it could
use into one DungeonMechanics record: the hazards a player has to plan for.

Merge rules:
- Boolean hazards OR together (once any enemy can cause it, the dungeon can)
- Hit descriptors append, no deduplication
- Numeric thresholds combine per a MechanicsMergePolicy (MAX by default)

The scan never rolls the skill lottery: it walks the full skill list, or the
oracle's preemptive candidates when preempt_only is set.
"""
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Dict, Any, List, Optional, TYPE_CHECKING
import math
import logging

from dungeon_engine.core.enemy_instance import DungeonMultipliers, EnemyInstance
from dungeon_engine.core.skill_lottery import BattleContext, build_skill_context
from dungeon_engine.services.skill_oracle import EffectKind, SkillEffect, SkillOracle

if TYPE_CHECKING:
    from dungeon_engine.core.dungeon import DungeonInstance

logger = logging.getLogger(__name__)

# Nested skill sets deeper than this are treated as malformed data
MAX_SKILLSET_DEPTH = 8


class MergeStrategy(str, Enum):
    """How a numeric mechanic combines with the accumulated value."""
    MAX = "max"
    MIN = "min"
    OVERWRITE = "overwrite"


@dataclass
class MechanicsMergePolicy:
    """Per-field combine rule for the numeric mechanics."""
    skill_delay: MergeStrategy = MergeStrategy.MAX
    combo_absorb_threshold: MergeStrategy = MergeStrategy.MAX
    attributes_absorbed: MergeStrategy = MergeStrategy.MAX

    @classmethod
    def uniform(cls, strategy: MergeStrategy) -> "MechanicsMergePolicy":
        strategy = MergeStrategy(strategy)
        return cls(
            skill_delay=strategy,
            combo_absorb_threshold=strategy,
            attributes_absorbed=strategy,
        )


def combine(current: int, value: int, strategy: MergeStrategy) -> int:
    """Combine a numeric mechanic. 0 means "not seen yet" for MIN."""
    if strategy == MergeStrategy.OVERWRITE:
        return value
    if strategy == MergeStrategy.MIN:
        if current <= 0:
            return value
        return min(current, value)
    return max(current, value)


@dataclass
class HitDescriptor:
    """One damaging skill: category, damage per hit, and hit count."""
    category: str
    damage: int
    hits: int = 1
    skill_id: int = 0


# Bind targets and skyfall orbs accepted in skill args, mapped to flag names
BIND_FLAGS = {
    "leader": "leader_bind",
    "helper": "helper_bind",
    "sub": "sub_bind",
    "attribute": "attribute_bind",
    "type": "type_bind",
    "awakening": "awakening_bind",
    "skill": "skill_bind",
}

DEBUFF_FLAGS = {
    "time": "time_debuff",
    "rcv": "rcv_debuff",
    "atk": "atk_debuff",
}

SKYFALL_FLAGS = {
    "jammer": "jammer_skyfall",
    "poison": "poison_skyfall",
    "mortal_poison": "mortal_poison_skyfall",
    "bomb": "bomb_skyfall",
    "locked": "lock_skyfall",
}


@dataclass
class DungeonMechanics:
    """Every hazard a dungeon's enemies can produce."""
    resolve: bool = False
    super_resolve: bool = False

    # Binds
    leader_bind: bool = False
    helper_bind: bool = False
    sub_bind: bool = False
    attribute_bind: bool = False
    type_bind: bool = False
    awakening_bind: bool = False
    skill_bind: bool = False

    # Debuffs
    time_debuff: bool = False
    rcv_debuff: bool = False
    atk_debuff: bool = False
    unmatchable: bool = False

    # Skyfall
    jammer_skyfall: bool = False
    poison_skyfall: bool = False
    mortal_poison_skyfall: bool = False
    bomb_skyfall: bool = False
    lock_skyfall: bool = False
    no_skyfall: bool = False
    lock: bool = False

    # Absorbs and voids
    attribute_absorb: bool = False
    combo_absorb: bool = False
    damage_absorb: bool = False
    damage_void: bool = False
    leader_swap: bool = False

    # Board obstacles
    cloud: bool = False
    tape: bool = False
    spinner: bool = False

    # Thresholds
    skill_delay: int = 0
    combo_absorb_threshold: int = 0
    attributes_absorbed: int = 0

    hits: List[HitDescriptor] = field(default_factory=list)

    def merge(self, other: "DungeonMechanics", policy: Optional[MechanicsMergePolicy] = None) -> None:
        """Fold another record into this one."""
        policy = policy or MechanicsMergePolicy()
        for f in fields(self):
            if f.type in (bool, "bool"):
                if getattr(other, f.name):
                    setattr(self, f.name, True)
        if other.skill_delay:
            self.skill_delay = combine(self.skill_delay, other.skill_delay, policy.skill_delay)
        if other.combo_absorb_threshold:
            self.combo_absorb_threshold = combine(
                self.combo_absorb_threshold, other.combo_absorb_threshold,
                policy.combo_absorb_threshold,
            )
        if other.attributes_absorbed:
            self.attributes_absorbed = combine(
                self.attributes_absorbed, other.attributes_absorbed,
                policy.attributes_absorbed,
            )
        self.hits.extend(other.hits)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _attack_hit(effect: SkillEffect, atk: int, category: str = "attack") -> Optional[HitDescriptor]:
    """Hit descriptor for effects carrying an atk_percent, None otherwise."""
    percent = effect.args.get("atk_percent")
    if percent is None:
        return None
    hits = int(effect.args.get("max_hits", effect.args.get("min_hits", 1)))
    return HitDescriptor(
        category=category,
        damage=math.ceil(atk * percent / 100),
        hits=hits,
        skill_id=effect.id,
    )


def merge_effect(
    mechanics: DungeonMechanics,
    effect: SkillEffect,
    atk: int,
    oracle: Optional[SkillOracle] = None,
    policy: Optional[MechanicsMergePolicy] = None,
    _depth: int = 0,
) -> None:
    """
    Fold one skill effect into the accumulator.

    Args:
        mechanics: Accumulator, mutated in place
        effect: Raw skill effect from the oracle
        atk: Base attack of the enemy using it, for damage-dependent effects
        oracle: Needed to expand SKILLSET effects
        policy: Numeric merge policy
    """
    policy = policy or MechanicsMergePolicy()
    args = effect.args
    kind = effect.kind

    if kind == EffectKind.ATTACK:
        hit = _attack_hit(effect, atk)
        if hit:
            mechanics.hits.append(hit)
        return

    if kind == EffectKind.SKILLSET:
        if oracle is None or _depth >= MAX_SKILLSET_DEPTH:
            logger.debug(f"[Mechanics] Skipping skillset {effect.id} expansion")
            return
        for sub_id in effect.skill_ids:
            sub_effect = oracle.get_skill_effect(sub_id)
            if sub_effect is None:
                logger.debug(f"[Mechanics] Missing sub-skill {sub_id} of skillset {effect.id}")
                continue
            merge_effect(mechanics, sub_effect, atk, oracle, policy, _depth + 1)
        return

    if kind == EffectKind.GRAVITY:
        mechanics.hits.append(HitDescriptor(
            category="gravity",
            damage=int(args.get("percent", 0)),
            hits=1,
            skill_id=effect.id,
        ))
    elif kind == EffectKind.BIND:
        targets = args.get("targets") or [args.get("target", "sub")]
        for target in targets:
            flag = BIND_FLAGS.get(target)
            if flag:
                setattr(mechanics, flag, True)
    elif kind == EffectKind.DEBUFF:
        flag = DEBUFF_FLAGS.get(args.get("debuff"))
        if flag:
            setattr(mechanics, flag, True)
    elif kind == EffectKind.SKYFALL:
        flag = SKYFALL_FLAGS.get(args.get("orb", "jammer"))
        if flag:
            setattr(mechanics, flag, True)
    elif kind == EffectKind.NO_SKYFALL:
        mechanics.no_skyfall = True
    elif kind == EffectKind.LOCK:
        mechanics.lock = True
    elif kind == EffectKind.UNMATCHABLE:
        mechanics.unmatchable = True
    elif kind == EffectKind.ATTRIBUTE_ABSORB:
        mechanics.attribute_absorb = True
        count = len(args.get("attributes", []))
        if count:
            mechanics.attributes_absorbed = combine(
                mechanics.attributes_absorbed, count, policy.attributes_absorbed
            )
    elif kind == EffectKind.COMBO_ABSORB:
        mechanics.combo_absorb = True
        combos = int(args.get("combos", 0))
        if combos:
            mechanics.combo_absorb_threshold = combine(
                mechanics.combo_absorb_threshold, combos, policy.combo_absorb_threshold
            )
    elif kind == EffectKind.DAMAGE_ABSORB:
        mechanics.damage_absorb = True
    elif kind == EffectKind.DAMAGE_VOID:
        mechanics.damage_void = True
    elif kind == EffectKind.LEADER_SWAP:
        mechanics.leader_swap = True
    elif kind == EffectKind.CLOUD:
        mechanics.cloud = True
    elif kind == EffectKind.TAPE:
        mechanics.tape = True
    elif kind == EffectKind.SPINNER:
        mechanics.spinner = True
    elif kind == EffectKind.SKILL_DELAY:
        turns = int(args.get("turns", args.get("max_turns", 0)))
        if turns:
            mechanics.skill_delay = combine(mechanics.skill_delay, turns, policy.skill_delay)

    # Many hazards also hit (bind + attack, skyfall + attack...)
    hit = _attack_hit(effect, atk)
    if hit:
        mechanics.hits.append(hit)


def compute_enemy_mechanics(
    enemy: EnemyInstance,
    battle: BattleContext,
    oracle: SkillOracle,
    multipliers: DungeonMultipliers,
    preempt_only: bool = False,
    policy: Optional[MechanicsMergePolicy] = None,
) -> DungeonMechanics:
    """Mechanics contributed by a single enemy."""
    mechanics = DungeonMechanics()
    mechanics.resolve = enemy.get_resolve(multipliers) > 0
    mechanics.super_resolve = enemy.get_super_resolve(multipliers) > 0

    card = enemy.get_card()
    if preempt_only:
        preempt_battle = BattleContext(
            is_preempt=True,
            combo=0,
            team_ids=list(battle.team_ids),
            team_attributes=list(battle.team_attributes),
            team_types=list(battle.team_types),
            big_board=battle.big_board,
        )
        ctx = build_skill_context(enemy, preempt_battle, multipliers)
        indices = [c.idx for c in oracle.determine_skillset(ctx)]
    else:
        indices = list(range(len(card.skills)))

    atk = enemy.get_atk_base(multipliers)
    for idx in indices:
        if not 0 <= idx < len(card.skills):
            logger.debug(f"[Mechanics] Card {card.id} has no skill {idx}")
            continue
        effect = oracle.get_skill_effect(card.skills[idx].rule_id)
        if effect is None:
            logger.debug(f"[Mechanics] No rule data for skill {card.skills[idx].rule_id}")
            continue
        merge_effect(mechanics, effect, atk, oracle, policy)
    return mechanics


def compute_dungeon_mechanics(
    dungeon: "DungeonInstance",
    battle: BattleContext,
    oracle: SkillOracle,
    preempt_only: bool = False,
    policy: Optional[MechanicsMergePolicy] = None,
) -> DungeonMechanics:
    """
    Every hazard the dungeon can throw at a player.

    Each enemy is reset against the dungeon's current multipliers before it is
    scanned, so callers relying on the active enemy's view afterwards should
    re-run DungeonInstance.update().
    """
    policy = policy or MechanicsMergePolicy()
    multipliers = dungeon.multipliers
    mechanics = DungeonMechanics()
    for floor in dungeon.floors:
        for enemy in floor.enemies:
            enemy.reset(multipliers)
            mechanics.merge(
                compute_enemy_mechanics(enemy, battle, oracle, multipliers, preempt_only, policy),
                policy,
            )
    return mechanics
