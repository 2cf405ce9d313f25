"""
Tests for persisted dungeon snapshots.

Tests:
- Wire form (camelCase, "def" alias, omitted multipliers)
- Save/load round trip
- Empty floor and enemy lists
- Multipliers applied before the first reset
- Invalid documents
"""
import json

import pytest

from dungeon_engine.core.dungeon import DungeonInstance
from dungeon_engine.core.errors import SnapshotError
from dungeon_engine.core.events import DungeonEvent
from dungeon_engine.core.rational import Rational
from dungeon_engine.models.dungeon_data import DungeonSnapshot


class TestWireForm:
    """What to_json() writes."""

    def test_default_dungeon(self, oracle):
        data = json.loads(DungeonInstance().to_json())
        assert data == {
            "title": "",
            "isNormal": True,
            "floors": [{"enemies": [{"id": 0, "lv": 1}]}],
        }

    def test_multiplier_equal_to_one_is_omitted(self, oracle):
        dungeon = DungeonInstance()
        dungeon.hp_multiplier = Rational(3, 2)
        dungeon.def_multiplier = Rational(2, 2)
        data = json.loads(dungeon.to_json())
        assert data["hp"] == "3/2"
        assert "atk" not in data
        assert "def" not in data

    def test_nan_multiplier_is_omitted(self, oracle):
        dungeon = DungeonInstance()
        dungeon.atk_multiplier = Rational.nan()
        assert "atk" not in json.loads(dungeon.to_json())

    def test_def_alias(self, oracle):
        dungeon = DungeonInstance.from_json({"def": "1/2"})
        assert dungeon.def_multiplier == Rational(1, 2)
        assert json.loads(dungeon.to_json())["def"] == "1/2"

    def test_snapshot_accepts_field_names(self):
        snapshot = DungeonSnapshot(is_normal=False, def_="2")
        assert snapshot.to_wire() == {"title": "", "isNormal": False, "floors": [], "def": "2"}


class TestRoundTrip:

    def test_round_trip(self, oracle):
        dungeon = DungeonInstance.from_json({
            "title": "Tower - Normal",
            "isNormal": False,
            "floors": [
                {"enemies": [{"id": 100}, {"id": 300, "lv": 3}]},
                {"enemies": [{"id": 200, "lv": 10}]},
            ],
            "hp": "1.5",
            "atk": "2",
        })

        restored = DungeonInstance.from_json(dungeon.to_json())

        assert restored.title == "Tower - Normal"
        assert restored.is_normal is False
        assert [f.get_enemy_ids() for f in restored.floors] == [[100, 300], [200]]
        assert restored.floors[0].enemies[1].lv == 3
        assert restored.hp_multiplier == Rational(3, 2)
        assert restored.atk_multiplier == Rational(2)
        assert restored.def_multiplier == Rational(1)
        assert restored.to_json() == dungeon.to_json()

    def test_battle_state_is_not_persisted(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": [{"enemies": [{"id": 100}]}]})
        dungeon.get_active_enemy().counter = 4
        dungeon.get_active_enemy().invincible = True
        restored = DungeonInstance.from_json(dungeon.to_json())
        assert restored.get_active_enemy().counter == 0
        assert restored.get_active_enemy().invincible is False


class TestLoading:
    """load_json() semantics."""

    def test_empty_floor_list_gets_default_floor(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": []})
        assert len(dungeon.floors) == 1
        assert dungeon.floors[0].get_enemy_ids() == [0]

    def test_empty_enemy_list_gets_default_enemy(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": [{"enemies": []}, {"enemies": [{"id": 100}]}]})
        assert dungeon.floors[0].get_enemy_ids() == [0]
        assert dungeon.floors[1].get_enemy_ids() == [100]

    def test_multipliers_applied_before_reset(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": [{"enemies": [{"id": 100}]}], "hp": "2"})
        assert dungeon.get_active_enemy().current_hp == 2000

    def test_invalid_multiplier_becomes_nan(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": [{"enemies": [{"id": 100}]}], "hp": "lots"})
        assert dungeon.hp_multiplier.is_nan
        assert dungeon.get_active_enemy().current_hp == 1000
        assert "hp" not in json.loads(dungeon.to_json())

    def test_load_resets_cursor_and_publishes(self, oracle):
        dungeon = DungeonInstance()
        dungeon.add_floor()
        dungeon.add_enemy()
        views = []
        dungeon.events.subscribe(DungeonEvent.VIEW, views.append)

        dungeon.load_json({"floors": [{"enemies": [{"id": 100}]}, {"enemies": [{"id": 200}]}]})

        assert (dungeon.active_floor, dungeon.active_enemy) == (0, 0)
        assert len(views) == 1
        assert views[0].active == (0, 0)
        assert views[0].enemies == [[100], [200]]

    def test_load_keeps_sub_dungeon_id(self, oracle):
        dungeon = DungeonInstance()
        dungeon.id = 101
        dungeon.load_json({"title": "Edited"})
        assert dungeon.id == 101


class TestInvalidSnapshots:

    @pytest.mark.parametrize("document", [
        "not json",
        '{"floors": "many"}',
        {"floors": [{"enemies": [{"id": "abc"}]}]},
        {"isNormal": "sometimes"},
    ])
    def test_invalid_document_raises(self, oracle, document):
        with pytest.raises(SnapshotError) as exc_info:
            DungeonInstance.from_json(document)
        assert exc_info.value.http_status == 400

    def test_failed_load_leaves_dungeon_untouched(self, oracle):
        dungeon = DungeonInstance.from_json({"title": "Keep", "floors": [{"enemies": [{"id": 100}]}]})
        with pytest.raises(SnapshotError):
            dungeon.load_json('{"floors": 3}')
        assert dungeon.title == "Keep"
        assert dungeon.floors[0].get_enemy_ids() == [100]
