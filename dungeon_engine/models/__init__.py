# Data Models

from .dungeon_data import (
    EnemySnapshot,
    FloorSnapshot,
    DungeonSnapshot,
    EncounterRaw,
    SubDungeonDataRaw,
    DungeonDataRaw,
    DungeonSearchEntry,
)
from .view import (
    EnemyStatsView,
    SkillView,
    DungeonViewState,
)

__all__ = [
    "EnemySnapshot",
    "FloorSnapshot",
    "DungeonSnapshot",
    "EncounterRaw",
    "SubDungeonDataRaw",
    "DungeonDataRaw",
    "DungeonSearchEntry",
    "EnemyStatsView",
    "SkillView",
    "DungeonViewState",
]
