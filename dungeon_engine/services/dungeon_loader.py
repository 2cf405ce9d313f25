"""
Dungeon Reference Data Store.

Process-scoped store of every loadable sub-dungeon. Lifecycle:
1. start() issues the one and only fetch (URL via requests, or a local file)
2. the raw document is parsed into DungeonSnapshot definitions and a
   searchable (title, id) list
3. the loaded flag is set; every get() awaits it and never fetches again

The store is read-only once loaded.
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from pydantic import TypeAdapter

from dungeon_engine.config import get_settings
from dungeon_engine.core.errors import DungeonDataUnavailableError, UnknownDungeonError
from dungeon_engine.models.dungeon_data import (
    DungeonDataRaw,
    DungeonSearchEntry,
    DungeonSnapshot,
    EnemySnapshot,
    FloorSnapshot,
    SubDungeonDataRaw,
)

logger = logging.getLogger("dungeon_engine.dungeon_loader")

NORMAL_DUNGEON_TYPE = 0

_dungeon_list_adapter = TypeAdapter(List[DungeonDataRaw])


def build_sub_dungeon(datum: DungeonDataRaw, sub: SubDungeonDataRaw) -> DungeonSnapshot:
    """Turn one raw sub-dungeon into a loadable snapshot."""
    floors = [FloorSnapshot() for _ in range(max(sub.floors, 0))]
    for encounter in sorted(sub.encounters, key=lambda e: e.order_idx):
        stage = encounter.stage
        if stage <= 0:
            stage = 1
        if stage > len(floors):
            stage = len(floors)
        if not 1 <= stage <= len(floors):
            logger.warning(
                f"[DungeonData] Invalid floor count for sub-dungeon {sub.sub_dungeon_id}, "
                f"dropping enemy {encounter.enemy_id}"
            )
            continue
        floors[stage - 1].enemies.append(EnemySnapshot(id=encounter.enemy_id, lv=encounter.level))

    return DungeonSnapshot(
        title=f"{datum.name_na} - {sub.name_na}",
        is_normal=datum.dungeon_type == NORMAL_DUNGEON_TYPE,
        floors=floors,
        hp=str(sub.hp_mult),
        atk=str(sub.atk_mult),
        def_=str(sub.def_mult),
    )


class DungeonDataStore:
    """One-time loaded lookup of sub-dungeon id -> dungeon definition."""

    def __init__(
        self,
        url: Optional[str] = None,
        path: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.url = settings.DUNGEON_DATA_URL if url is None else url
        self.path = settings.DUNGEON_DATA_PATH if path is None else path
        self.timeout = settings.FETCH_TIMEOUT if timeout is None else timeout

        self._dungeons: Dict[int, DungeonSnapshot] = {}
        self._search: List[DungeonSearchEntry] = []
        self._loaded = asyncio.Event()
        self._fetch_task: Optional[asyncio.Task] = None
        self._error: Optional[str] = None

    # ==================== Loading ====================

    def start(self) -> Optional["asyncio.Task"]:
        """Issue the fetch once; later calls return the same task."""
        if self._fetch_task is None and not self.loaded:
            self._fetch_task = asyncio.get_running_loop().create_task(self._fetch_and_load())
        return self._fetch_task

    def _fetch_raw(self) -> Any:
        """Blocking fetch of the raw JSON document."""
        if self.url:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        if self.path:
            with open(Path(self.path), 'r', encoding='utf-8') as f:
                return json.load(f)
        logger.warning("[DungeonData] No DUNGEON_DATA_URL or DUNGEON_DATA_PATH configured")
        return []

    async def _fetch_and_load(self) -> None:
        logger.info("[DungeonData] Loading dungeon JSON data...")
        try:
            raw = await asyncio.to_thread(self._fetch_raw)
            self.load_raw(raw)
        except Exception as e:
            # get() reports the recorded error
            self._error = str(e) or type(e).__name__
            logger.error(f"[DungeonData] Failed to load dungeon data: {e}", exc_info=True)
        finally:
            self._loaded.set()

    def load_raw(self, raw: Any) -> None:
        """
        Parse a raw dungeon document and mark the store loaded.

        Raises:
            pydantic.ValidationError: The document is not a list of dungeons
        """
        data = _dungeon_list_adapter.validate_python(raw)
        for datum in data:
            for sub in datum.sub_dungeons:
                snapshot = build_sub_dungeon(datum, sub)
                self._dungeons[sub.sub_dungeon_id] = snapshot
                self._search.append(DungeonSearchEntry(
                    title=snapshot.title,
                    sub_dungeon_id=sub.sub_dungeon_id,
                ))
        self._loaded.set()
        logger.info(f"[DungeonData] Dungeon data loaded ({len(self._dungeons)} sub-dungeons)")

    # ==================== Access ====================

    @property
    def loaded(self) -> bool:
        return self._loaded.is_set()

    async def wait_loaded(self) -> None:
        """Block until the shared fetch has completed."""
        if not self.loaded:
            self.start()
        await self._loaded.wait()

    async def get(self, sub_dungeon_id: int) -> DungeonSnapshot:
        """
        Get a sub-dungeon definition, waiting for the data if needed.

        Raises:
            DungeonDataUnavailableError: The fetch failed
            UnknownDungeonError: The id is not in the data
        """
        await self.wait_loaded()
        if self._error and not self._dungeons:
            raise DungeonDataUnavailableError(self._error)
        snapshot = self._dungeons.get(sub_dungeon_id)
        if snapshot is None:
            raise UnknownDungeonError(sub_dungeon_id)
        return snapshot.model_copy(deep=True)

    @property
    def search_entries(self) -> List[DungeonSearchEntry]:
        return list(self._search)

    def search(self, query: str = "", limit: int = 50) -> List[DungeonSearchEntry]:
        """Case-insensitive substring search over dungeon titles."""
        needle = query.lower().strip()
        matches = [e for e in self._search if needle in e.title.lower()]
        return matches[:limit]


# Global store instance
_current_store: Optional[DungeonDataStore] = None


def get_dungeon_store() -> DungeonDataStore:
    """Get the process-wide dungeon data store."""
    global _current_store
    if _current_store is None:
        _current_store = DungeonDataStore()
    return _current_store


def set_dungeon_store(store: DungeonDataStore) -> None:
    """Replace the process-wide store."""
    global _current_store
    _current_store = store


def reset_dungeon_store() -> None:
    """Drop the process-wide store (useful for testing)."""
    global _current_store
    _current_store = None
