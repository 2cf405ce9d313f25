"""
Event channel for dungeon editor notifications.

Events fire after the dungeon state has been mutated and before the command
that caused them returns:
- ENEMY_SKILL: (skill_idx, other_skill_idxs) after a lottery roll
- ENEMY_CHANGE: (floor_idx, enemy_idx) when the active enemy changes
- ENEMY_UPDATE: (enemy,) after every reducer pass
- VIEW: (DungeonViewState,) after every view recomputation
"""
from enum import Enum
from typing import Any, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)


class DungeonEvent(str, Enum):
    """Notifications a dungeon emits."""
    ENEMY_SKILL = "enemy_skill"
    ENEMY_CHANGE = "enemy_change"
    ENEMY_UPDATE = "enemy_update"
    VIEW = "view"


class DungeonEvents:
    """Per-dungeon subscriber registry."""

    def __init__(self):
        self._subscribers: Dict[DungeonEvent, List[Callable[..., Any]]] = {
            event: [] for event in DungeonEvent
        }

    def subscribe(self, event: DungeonEvent, callback: Callable[..., Any]) -> None:
        """Subscribe to one event type."""
        self._subscribers[DungeonEvent(event)].append(callback)

    def unsubscribe(self, event: DungeonEvent, callback: Callable[..., Any]) -> None:
        """Unsubscribe from one event type."""
        callbacks = self._subscribers[DungeonEvent(event)]
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: DungeonEvent, *args: Any) -> None:
        """Notify subscribers in subscription order."""
        for callback in list(self._subscribers[event]):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"[DungeonEvents] Subscriber error on {event.value}: {e}")
