"""
Dungeon editor API routes.

Endpoints for:
- Creating, reading and closing editor sessions
- Applying editor updates (sparse context or explicit command list)
- Rolling an enemy's skill and scanning dungeon mechanics
- Importing/exporting snapshots
- Searching the reference dungeon list
"""
from fastapi import APIRouter, Body, status
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List

from dungeon_engine.core.commands import UpdateContext, parse_commands
from dungeon_engine.core.dungeon import DungeonInstance
from dungeon_engine.core.dungeon_storage import create_session, delete_session, get_session
from dungeon_engine.core.errors import ValidationError
from dungeon_engine.core.mechanics import MechanicsMergePolicy, MergeStrategy
from dungeon_engine.core.skill_lottery import BattleContext
from dungeon_engine.services.dungeon_loader import get_dungeon_store

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Start an editor session, optionally from a snapshot or sub-dungeon."""
    snapshot: Optional[Dict[str, Any]] = Field(None, description="Persisted dungeon snapshot")
    sub_dungeon_id: Optional[int] = Field(None, description="Reference sub-dungeon to load")


class CommandBatchRequest(BaseModel):
    """Explicit command list, each entry tagged by `kind`."""
    commands: List[Dict[str, Any]] = Field(default_factory=list)


class BattleRequest(BaseModel):
    """Player-side battle context."""
    is_preempt: bool = False
    combo: int = Field(0, ge=0)
    team_ids: List[int] = Field(default_factory=list)
    team_attributes: List[int] = Field(default_factory=list)
    team_types: List[int] = Field(default_factory=list)
    big_board: bool = False

    def to_context(self) -> BattleContext:
        return BattleContext(
            is_preempt=self.is_preempt,
            combo=self.combo,
            team_ids=list(self.team_ids),
            team_attributes=list(self.team_attributes),
            team_types=list(self.team_types),
            big_board=self.big_board,
        )


class UseSkillRequest(BattleRequest):
    """Roll the active enemy's skill."""
    forced_index: int = Field(-1, description="Skill index to use without rolling (-1 rolls)")


class MechanicsRequest(BattleRequest):
    """Scan every enemy for hazards."""
    preempt_only: bool = False
    strategy: Optional[str] = Field(None, description="Numeric merge strategy: max, min, overwrite")


def _session_payload(session_id: str, dungeon: DungeonInstance) -> Dict[str, Any]:
    return {
        "session_id": session_id,
        "snapshot": dungeon.to_snapshot().to_wire(),
        "view": dungeon.build_view(True).model_dump(by_alias=True),
    }


# =============================================================================
# Session Endpoints
# =============================================================================

@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_dungeon_session(request: Optional[CreateSessionRequest] = None):
    """Create an editor session with a fresh, imported, or loaded dungeon."""
    request = request or CreateSessionRequest()
    dungeon = DungeonInstance()
    if request.snapshot is not None:
        dungeon.load_json(request.snapshot)
    if request.sub_dungeon_id is not None:
        await dungeon.load_dungeon(request.sub_dungeon_id)

    session_id = create_session(dungeon)
    return _session_payload(session_id, dungeon)


@router.get("/sessions/{session_id}")
async def get_dungeon_session(session_id: str):
    """Current snapshot and full view of a session."""
    return _session_payload(session_id, get_session(session_id))


@router.delete("/sessions/{session_id}")
async def delete_dungeon_session(session_id: str):
    delete_session(session_id)
    return {"deleted": session_id}


# =============================================================================
# Update Endpoints
# =============================================================================

@router.post("/sessions/{session_id}/update")
async def update_dungeon(session_id: str, context: UpdateContext):
    """Apply a sparse editor update and return the published view."""
    dungeon = get_session(session_id)
    view = await dungeon.apply_update(context)
    return {"view": view.model_dump(by_alias=True)}


@router.post("/sessions/{session_id}/commands")
async def apply_commands(session_id: str, request: CommandBatchRequest):
    """Apply an explicit command list and return the published view."""
    dungeon = get_session(session_id)
    view = await dungeon.apply_update(parse_commands(request.commands))
    return {"view": view.model_dump(by_alias=True)}


# =============================================================================
# Battle & Planning Endpoints
# =============================================================================

@router.post("/sessions/{session_id}/skill")
async def use_enemy_skill(session_id: str, request: UseSkillRequest):
    """Roll (or force) the active enemy's skill for this turn."""
    dungeon = get_session(session_id)
    selection = dungeon.use_enemy_skill(request.to_context(), forced_index=request.forced_index)
    return selection.to_dict()


@router.post("/sessions/{session_id}/mechanics")
async def compute_mechanics(session_id: str, request: MechanicsRequest):
    """Every hazard the session's dungeon can produce."""
    dungeon = get_session(session_id)

    policy = None
    if request.strategy is not None:
        try:
            policy = MechanicsMergePolicy.uniform(MergeStrategy(request.strategy.lower()))
        except ValueError:
            raise ValidationError(
                "strategy",
                f"Invalid strategy: {request.strategy}. Valid: {[s.value for s in MergeStrategy]}",
                request.strategy,
            )

    mechanics = dungeon.compute_mechanics(request.to_context(), request.preempt_only, policy)
    # The scan resets every enemy
    view = dungeon.update(False)
    return {"mechanics": mechanics.to_dict(), "view": view.model_dump(by_alias=True)}


# =============================================================================
# Snapshot Endpoints
# =============================================================================

@router.get("/sessions/{session_id}/snapshot")
async def export_snapshot(session_id: str):
    return get_session(session_id).to_snapshot().to_wire()


@router.put("/sessions/{session_id}/snapshot")
async def import_snapshot(session_id: str, payload: Dict[str, Any] = Body(...)):
    """Replace the session's dungeon with a persisted snapshot."""
    dungeon = get_session(session_id)
    dungeon.load_json(payload)
    return _session_payload(session_id, dungeon)


# =============================================================================
# Reference Data Endpoints
# =============================================================================

@router.get("/search")
async def search_dungeons(q: str = "", limit: int = 50):
    """Search reference sub-dungeons by title."""
    store = get_dungeon_store()
    await store.wait_loaded()
    results = store.search(q, limit=limit)
    return {
        "results": [entry.model_dump() for entry in results],
        "count": len(results),
    }
