"""View state published to dungeon editor subscribers after every update."""
from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional, Tuple


class EnemyStatsView(BaseModel):
    """Consolidated stat block of the active enemy."""
    lv: int

    current_hp: int
    percent_hp: int
    hp: int

    base_atk: int
    enrage: float
    atk: int

    base_def: int
    ignore_defense_percent: int
    def_: int = Field(alias="def")

    resolve: int
    super_resolve: int
    type_resists: Dict[str, Any]
    attr_resists: Dict[str, Any]

    status_shield: bool
    invincible: bool
    attribute: int
    combo_absorb: int
    damage_absorb: int
    damage_void: int
    attribute_absorbs: List[int]
    damage_shield_percent: int

    max_charges: int
    charges: int
    counter: int
    flags: int

    class Config:
        populate_by_name = True


class SkillView(BaseModel):
    """One entry of the active enemy's skill list."""
    idx: int
    text: str
    always_active: bool


class DungeonViewState(BaseModel):
    """Everything the editor needs to redraw after a reducer pass."""
    enemies: List[List[int]]
    active: Optional[Tuple[int, int]] = None  # Only set when the active enemy changed
    multipliers: Tuple[str, str, str]
    stats: EnemyStatsView
    skills: Optional[List[SkillView]] = None  # Only set when the active enemy changed
