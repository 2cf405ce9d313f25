"""
Tests for the dungeon reference data store.

Tests:
- Raw sub-dungeon -> snapshot conversion (stage clamping, ordering, titles)
- Single shared fetch
- Fetch failure handling
- Title search
- Loading a sub-dungeon into a DungeonInstance
"""
import asyncio
import json

import pytest
import requests
from pydantic import ValidationError as PydanticValidationError

from dungeon_engine.core.dungeon import DungeonInstance
from dungeon_engine.core.errors import DungeonDataUnavailableError, UnknownDungeonError
from dungeon_engine.core.rational import Rational
from dungeon_engine.models.dungeon_data import DungeonDataRaw
from dungeon_engine.services.dungeon_loader import (
    DungeonDataStore,
    build_sub_dungeon,
    get_dungeon_store,
    set_dungeon_store,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


@pytest.fixture
def fake_get(monkeypatch, raw_dungeon_data):
    """Replace requests.get, recording every call."""
    calls = []

    def get(url, timeout=None):
        calls.append((url, timeout))
        return FakeResponse(raw_dungeon_data)

    monkeypatch.setattr("dungeon_engine.services.dungeon_loader.requests.get", get)
    return calls


class TestBuildSubDungeon:
    """Conversion of raw encounters into floors."""

    def test_stages_clamped_and_ordered(self, raw_dungeon_data):
        datum = DungeonDataRaw.model_validate(raw_dungeon_data[0])
        snapshot = build_sub_dungeon(datum, datum.sub_dungeons[0])

        assert [[e.id for e in f.enemies] for f in snapshot.floors] == [[100, 300], [200, 100]]
        assert [[e.lv for e in f.enemies] for f in snapshot.floors] == [[1, 3], [10, 5]]

    def test_title_and_multipliers(self, raw_dungeon_data):
        datum = DungeonDataRaw.model_validate(raw_dungeon_data[0])
        snapshot = build_sub_dungeon(datum, datum.sub_dungeons[0])

        assert snapshot.title == "Tower - Normal"
        assert snapshot.is_normal is True
        assert Rational.from_string(snapshot.hp) == Rational(3, 2)
        assert Rational.from_string(snapshot.atk) == Rational(1)
        assert Rational.from_string(snapshot.def_) == Rational(2)

    def test_non_normal_dungeon_type(self, raw_dungeon_data):
        datum = DungeonDataRaw.model_validate(raw_dungeon_data[1])
        snapshot = build_sub_dungeon(datum, datum.sub_dungeons[0])
        assert snapshot.title == "Arena - Mythic"
        assert snapshot.is_normal is False

    def test_floorless_sub_dungeon_drops_encounters(self, raw_dungeon_data):
        datum = DungeonDataRaw.model_validate(raw_dungeon_data[0])
        snapshot = build_sub_dungeon(datum, datum.sub_dungeons[1])
        assert snapshot.floors == []


class TestStore:
    """Lookup and search over a loaded store."""

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, loaded_store):
        first = await loaded_store.get(101)
        first.floors.clear()
        second = await loaded_store.get(101)
        assert len(second.floors) == 2

    @pytest.mark.asyncio
    async def test_unknown_id(self, loaded_store):
        with pytest.raises(UnknownDungeonError) as exc_info:
            await loaded_store.get(999)
        assert exc_info.value.http_status == 404
        assert exc_info.value.details == {"sub_dungeon_id": 999}

    def test_search_case_insensitive(self, loaded_store):
        results = loaded_store.search("MYTHIC")
        assert [(r.title, r.sub_dungeon_id) for r in results] == [("Arena - Mythic", 201)]

    def test_search_all_with_limit(self, loaded_store):
        assert len(loaded_store.search("")) == 3
        assert [r.sub_dungeon_id for r in loaded_store.search("tower", limit=1)] == [101]

    def test_search_entries(self, loaded_store):
        assert [e.sub_dungeon_id for e in loaded_store.search_entries] == [101, 102, 201]

    def test_global_store(self, loaded_store):
        set_dungeon_store(loaded_store)
        assert get_dungeon_store() is loaded_store


class TestFetch:
    """The one-time fetch."""

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_fetch(self, fake_get):
        store = DungeonDataStore(url="http://data.test/dungeons.json", path="", timeout=3)

        results = await asyncio.gather(store.get(101), store.get(201), store.get(101))

        assert [r.title for r in results] == ["Tower - Normal", "Arena - Mythic", "Tower - Normal"]
        assert fake_get == [("http://data.test/dungeons.json", 3)]

        await store.get(102)
        assert len(fake_get) == 1

    @pytest.mark.asyncio
    async def test_preloaded_store_never_fetches(self, fake_get, loaded_store):
        loaded_store.url = "http://data.test/dungeons.json"
        await loaded_store.get(101)
        assert loaded_store.start() is None
        assert fake_get == []

    @pytest.mark.asyncio
    async def test_fetch_failure(self, monkeypatch):
        def get(url, timeout=None):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr("dungeon_engine.services.dungeon_loader.requests.get", get)
        store = DungeonDataStore(url="http://data.test/dungeons.json", path="")

        with pytest.raises(DungeonDataUnavailableError) as exc_info:
            await store.get(101)
        assert exc_info.value.http_status == 503
        assert store.loaded is True

    @pytest.mark.asyncio
    async def test_http_error_status(self, monkeypatch):
        monkeypatch.setattr(
            "dungeon_engine.services.dungeon_loader.requests.get",
            lambda url, timeout=None: FakeResponse({}, status_code=500),
        )
        store = DungeonDataStore(url="http://data.test/dungeons.json", path="")
        with pytest.raises(DungeonDataUnavailableError):
            await store.get(101)

    @pytest.mark.asyncio
    async def test_document_that_is_not_a_list(self, monkeypatch):
        monkeypatch.setattr(
            "dungeon_engine.services.dungeon_loader.requests.get",
            lambda url, timeout=None: FakeResponse(None),
        )
        store = DungeonDataStore(url="http://data.test/dungeons.json", path="")

        with pytest.raises(DungeonDataUnavailableError):
            await asyncio.wait_for(store.get(101), timeout=2)
        assert store.loaded is True
        assert store.search("") == []

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_still_marks_loaded(self, monkeypatch):
        store = DungeonDataStore(url="", path="")

        def broken_fetch():
            raise RuntimeError("decoder crashed")

        monkeypatch.setattr(store, "_fetch_raw", broken_fetch)

        with pytest.raises(DungeonDataUnavailableError) as exc_info:
            await asyncio.wait_for(store.get(101), timeout=2)
        assert exc_info.value.message == "decoder crashed"
        assert store.loaded is True

    def test_load_raw_rejects_malformed_document(self):
        store = DungeonDataStore(url="", path="")
        with pytest.raises(PydanticValidationError):
            store.load_raw({"dungeon_id": 1})
        assert store.loaded is False
        assert store.search_entries == []

    @pytest.mark.asyncio
    async def test_load_from_file(self, tmp_path, raw_dungeon_data):
        data_file = tmp_path / "dungeons.json"
        data_file.write_text(json.dumps(raw_dungeon_data), encoding="utf-8")
        store = DungeonDataStore(url="", path=str(data_file))

        snapshot = await store.get(201)

        assert snapshot.title == "Arena - Mythic"
        assert snapshot.floors[0].enemies[0].lv == 99

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        store = DungeonDataStore(url="", path=str(tmp_path / "missing.json"))
        with pytest.raises(DungeonDataUnavailableError):
            await store.get(101)

    @pytest.mark.asyncio
    async def test_unconfigured_store_is_empty(self):
        store = DungeonDataStore(url="", path="")
        with pytest.raises(UnknownDungeonError):
            await store.get(101)
        assert store.loaded is True


class TestLoadDungeon:
    """DungeonInstance.load_dungeon() against the store."""

    @pytest.mark.asyncio
    async def test_load_sub_dungeon(self, oracle, loaded_store):
        dungeon = DungeonInstance()

        assert await dungeon.load_dungeon(101, store=loaded_store) is True

        assert dungeon.id == 101
        assert dungeon.title == "Tower - Normal"
        assert [f.get_enemy_ids() for f in dungeon.floors] == [[100, 300], [200, 100]]
        assert dungeon.hp_multiplier == Rational(3, 2)
        assert (dungeon.active_floor, dungeon.active_enemy) == (0, 0)
        assert dungeon.get_active_enemy().current_hp == 1500

    @pytest.mark.asyncio
    async def test_load_uses_global_store(self, oracle, loaded_store):
        set_dungeon_store(loaded_store)
        dungeon = DungeonInstance()
        assert await dungeon.load_dungeon(201) is True
        assert dungeon.is_normal is False

    @pytest.mark.asyncio
    async def test_floorless_sub_dungeon_gets_default_floor(self, oracle, loaded_store):
        dungeon = DungeonInstance()
        assert await dungeon.load_dungeon(102, store=loaded_store) is True
        assert [f.get_enemy_ids() for f in dungeon.floors] == [[0]]

    @pytest.mark.asyncio
    async def test_unknown_id_leaves_dungeon_untouched(self, oracle, loaded_store):
        dungeon = DungeonInstance.from_json({"title": "Mine", "floors": [{"enemies": [{"id": 100}]}]})
        assert await dungeon.load_dungeon(999, store=loaded_store) is False
        assert dungeon.title == "Mine"
        assert dungeon.id == -1

    @pytest.mark.asyncio
    async def test_unavailable_data(self, oracle, monkeypatch):
        def get(url, timeout=None):
            raise requests.Timeout("timed out")

        monkeypatch.setattr("dungeon_engine.services.dungeon_loader.requests.get", get)
        store = DungeonDataStore(url="http://data.test/dungeons.json", path="")
        dungeon = DungeonInstance()

        assert await dungeon.load_dungeon(101, store=store) is False
        assert dungeon.floors[0].get_enemy_ids() == [0]
