"""
Enemy skill lottery.

Picks the skill an enemy uses this turn:
1. A forced index short-circuits everything (scripted / what-if queries)
2. Otherwise the rule oracle lists weighted candidates for the enemy's context
3. A draw in [0, total weight) selects the first candidate whose interval
   contains it; that candidate's counter/flags are written to the enemy
4. Every other candidate is reported as rejected, in oracle order
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TYPE_CHECKING
import logging
import random

from dungeon_engine.core.enemy_instance import (
    DEFAULT_MULTIPLIERS,
    DungeonMultipliers,
    EnemyInstance,
    round_half_up,
)

if TYPE_CHECKING:
    from dungeon_engine.services.skill_oracle import SkillOracle

logger = logging.getLogger(__name__)

# Takes the total weight, returns a draw in [0, total)
DrawSource = Callable[[float], float]


@dataclass
class BattleContext:
    """What the player side looks like when the enemy acts."""
    is_preempt: bool = False
    combo: int = 0
    team_ids: List[int] = field(default_factory=list)
    team_attributes: List[int] = field(default_factory=list)
    team_types: List[int] = field(default_factory=list)
    big_board: bool = False


@dataclass
class SkillContext:
    """Everything the oracle needs to list an enemy's candidate skills."""
    card_id: int
    lv: int
    attribute: int
    atk: int
    hp_percent: int
    charges: int
    flags: int
    counter: int
    other_enemy_hp: int
    is_preempt: bool = False
    combo: int = 0
    team_ids: List[int] = field(default_factory=list)
    team_attributes: List[int] = field(default_factory=list)
    team_types: List[int] = field(default_factory=list)
    big_board: bool = False


@dataclass
class SkillCandidate:
    """A usable skill, its weight, and the counter/flags it leaves behind."""
    idx: int
    chance: float
    counter: int = 0
    flags: int = 0


@dataclass
class SkillSelection:
    """Lottery result. chosen is -1 when nothing was usable."""
    chosen: int
    rejected: List[int] = field(default_factory=list)

    def to_dict(self):
        return {"chosen": self.chosen, "rejected": list(self.rejected)}


def default_draw(total_weight: float) -> float:
    return random.random() * total_weight


def build_skill_context(
    enemy: EnemyInstance,
    battle: BattleContext,
    multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS,
) -> SkillContext:
    """Snapshot an enemy's state for the oracle."""
    max_hp = enemy.get_hp(multipliers)
    hp_percent = round_half_up(enemy.current_hp / max_hp * 100) if max_hp > 0 else 100
    return SkillContext(
        card_id=enemy.id,
        lv=enemy.lv,
        attribute=enemy.get_attribute(),
        atk=enemy.get_atk(multipliers),
        hp_percent=hp_percent,
        charges=enemy.charges,
        flags=enemy.flags,
        counter=enemy.counter,
        other_enemy_hp=enemy.other_enemy_hp,
        is_preempt=battle.is_preempt,
        combo=battle.combo,
        team_ids=list(battle.team_ids),
        team_attributes=list(battle.team_attributes),
        team_types=list(battle.team_types),
        big_board=battle.big_board,
    )


def weighted_pick(
    candidates: List[SkillCandidate],
    draw: Optional[DrawSource] = None,
) -> SkillSelection:
    """Run the weighted scan over candidates without touching any enemy."""
    if not candidates:
        return SkillSelection(chosen=-1)

    total_weight = sum(c.chance for c in candidates)
    roll = (draw or default_draw)(total_weight)

    chosen = -1
    rejected = []
    for candidate in candidates:
        if chosen < 0 and roll < candidate.chance:
            chosen = candidate.idx
        else:
            rejected.append(candidate.idx)
        roll -= candidate.chance
    return SkillSelection(chosen=chosen, rejected=rejected)


def select_behavior(
    enemy: EnemyInstance,
    battle: BattleContext,
    oracle: "SkillOracle",
    multipliers: DungeonMultipliers = DEFAULT_MULTIPLIERS,
    forced_index: int = -1,
    draw: Optional[DrawSource] = None,
) -> SkillSelection:
    """
    Choose the enemy's skill for this turn.

    Args:
        enemy: The acting enemy; its counter/flags are updated on a pick
        battle: Player-side context
        oracle: Rule oracle listing candidate skills
        multipliers: Dungeon multipliers used for HP%/ATK
        forced_index: If >= 0, returned as-is with no rejections
        draw: Injectable draw source for reproducible rolls

    Returns:
        SkillSelection with the chosen index (-1 if none) and the rest
    """
    if forced_index >= 0:
        return SkillSelection(chosen=forced_index)

    ctx = build_skill_context(enemy, battle, multipliers)
    candidates = oracle.determine_skillset(ctx)
    selection = weighted_pick(candidates, draw)

    for candidate in candidates:
        if candidate.idx == selection.chosen:
            enemy.counter = candidate.counter
            enemy.flags = candidate.flags
            break

    logger.debug(
        f"[SkillLottery] Enemy {enemy.id} chose {selection.chosen} "
        f"over {selection.rejected}"
    )
    return selection
