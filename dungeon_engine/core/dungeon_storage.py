"""
Shared storage for active dungeon editor sessions.

Keeps the in-memory registry in one place so routes and tests share the same
dictionary without importing each other. Sessions live only as long as the
process; persistence is the snapshot the client exports.
"""
from typing import Dict, Optional
import logging
import uuid

from dungeon_engine.core.dungeon import DungeonInstance
from dungeon_engine.core.errors import SessionNotFoundError

logger = logging.getLogger(__name__)

# session_id -> DungeonInstance
active_dungeons: Dict[str, DungeonInstance] = {}


def create_session(dungeon: Optional[DungeonInstance] = None) -> str:
    """Register a dungeon (a fresh one by default) and return its session id."""
    session_id = str(uuid.uuid4())
    active_dungeons[session_id] = dungeon or DungeonInstance()
    logger.info(f"[DungeonStorage] Created session {session_id}")
    return session_id


def get_session(session_id: str) -> DungeonInstance:
    """
    Get a session's dungeon.

    Raises:
        SessionNotFoundError: No such session
    """
    dungeon = active_dungeons.get(session_id)
    if dungeon is None:
        raise SessionNotFoundError(session_id)
    return dungeon


def delete_session(session_id: str) -> None:
    if active_dungeons.pop(session_id, None) is None:
        raise SessionNotFoundError(session_id)
    logger.info(f"[DungeonStorage] Deleted session {session_id}")


def clear_sessions() -> None:
    """Drop every session (useful for testing)."""
    active_dungeons.clear()
