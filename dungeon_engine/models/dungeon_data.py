"""
Dungeon data models.

Two families of pydantic models live here:
- Snapshot models: the persisted, JSON-compatible form of an edited dungeon
- Raw reference models: the dungeon/encounter document served by the data source
"""
from pydantic import BaseModel, Field
from typing import List, Optional


# =============================================================================
# Persisted Snapshot
# =============================================================================

class EnemySnapshot(BaseModel):
    """One enemy slot: behavior-set id and level."""
    id: int = 0
    lv: int = 1


class FloorSnapshot(BaseModel):
    """One floor's enemies in declaration order."""
    enemies: List[EnemySnapshot] = []


class DungeonSnapshot(BaseModel):
    """
    Serializable dungeon.

    Multipliers are decimal strings and are left out when they equal exactly 1.
    """
    title: str = ""
    is_normal: bool = Field(True, alias="isNormal")
    floors: List[FloorSnapshot] = []
    hp: Optional[str] = None
    atk: Optional[str] = None
    def_: Optional[str] = Field(None, alias="def")

    class Config:
        populate_by_name = True

    def to_wire(self) -> dict:
        """Dump with wire field names, omitting absent multipliers."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Raw Reference Data
# =============================================================================

class EncounterRaw(BaseModel):
    """One enemy placement in a sub-dungeon."""
    enemy_id: int
    level: int = 1
    stage: int = 1  # Which floor to add it to (1-based)
    order_idx: int = 0
    amount: int = 1

    hp: Optional[int] = None
    atk: Optional[int] = None
    defense: Optional[int] = None
    turns: Optional[int] = None


class SubDungeonDataRaw(BaseModel):
    """A playable difficulty of a dungeon."""
    dungeon_id: int = 0
    sub_dungeon_id: int
    name_na: str = ""
    floors: int = 1

    atk_mult: float = 1
    def_mult: float = 1
    hp_mult: float = 1
    encounters: List[EncounterRaw] = []


class DungeonDataRaw(BaseModel):
    """A dungeon and its sub-dungeons."""
    dungeon_id: int
    dungeon_type: int = 0
    name_na: str = ""
    sub_dungeons: List[SubDungeonDataRaw] = []


class DungeonSearchEntry(BaseModel):
    """Searchable (title, id) pair."""
    title: str
    sub_dungeon_id: int
