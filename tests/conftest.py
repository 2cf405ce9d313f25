"""
Dungeon Engine - Test Configuration and Fixtures
Shared cards, skills, reference data and global resets for pytest.
"""
import pytest
from typing import Dict, List, Any
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dungeon_engine.core.dungeon_storage import clear_sessions
from dungeon_engine.core.monster_data import MonsterBook, set_monster_book, reset_monster_book
from dungeon_engine.services.dungeon_loader import DungeonDataStore, reset_dungeon_store
from dungeon_engine.services.skill_oracle import TableSkillOracle, set_skill_oracle, reset_skill_oracle


# ==================== Card Fixtures ====================

@pytest.fixture
def sample_cards() -> List[Dict[str, Any]]:
    """
    Three enemy cards.

    100: flat 1000 HP / 1000 ATK, an attack, a bind, a preemptive combo
         absorb and a passive.
    200: 100 -> 1000 HP over levels 1-10, resolve, a delay, a once-only
         combo absorb, and a preemptive skill set.
    300: a long delay and a skill with no rule data.
    """
    return [
        {
            "id": 100,
            "name": "Tyrant",
            "attribute": 0,
            "types": [1],
            "hp": 1000,
            "atk": 1000,
            "defense": 200,
            "charges": 3,
            "type_resists": {"ids": [1], "percent": 50},
            "skills": [
                {"rule_id": 10, "chance": 1},
                {"rule_id": 11, "chance": 3},
                {"rule_id": 12, "preempt": True},
                {"rule_id": 13, "passive": True},
            ],
        },
        {
            "id": 200,
            "name": "Warden",
            "attribute": 1,
            "hp": {"lv1": 100, "lv10": 1000},
            "atk": {"lv1": 30, "lv10": 300},
            "defense": 0,
            "resolve_percent": 50,
            "skills": [
                {"rule_id": 20, "chance": 1},
                {"rule_id": 21, "chance": 1, "counter_delta": 1, "once_flag": 1},
                {"rule_id": 22, "preempt": True},
            ],
        },
        {
            "id": 300,
            "name": "Sloth",
            "hp": 500,
            "atk": 100,
            "skills": [
                {"rule_id": 30},
                {"rule_id": 999},
            ],
        },
    ]


@pytest.fixture
def sample_skills() -> List[Dict[str, Any]]:
    """Effect table for the sample cards. Rule 999 is intentionally missing."""
    return [
        {"id": 10, "kind": "attack", "name": "Slash", "args": {"atk_percent": 100, "max_hits": 1}},
        {"id": 11, "kind": "bind", "name": "Chains", "args": {"targets": ["leader", "sub"], "turns": 3, "atk_percent": 50}},
        {"id": 12, "kind": "combo_absorb", "args": {"combos": 5, "turns": 5}},
        {"id": 13, "kind": "passive", "name": "Resolve", "description": "Survives a lethal hit above 50% HP"},
        {"id": 20, "kind": "skill_delay", "args": {"turns": 2}},
        {"id": 21, "kind": "combo_absorb", "args": {"combos": 3}},
        {"id": 22, "kind": "skillset", "name": "Opening", "skill_ids": [10, 23, 999]},
        {"id": 23, "kind": "skyfall", "args": {"orb": "poison", "chance": 15}},
        {"id": 30, "kind": "skill_delay", "args": {"turns": 5}},
    ]


@pytest.fixture
def monster_book(sample_cards) -> MonsterBook:
    book = MonsterBook.from_list(sample_cards)
    set_monster_book(book)
    return book


@pytest.fixture
def oracle(monster_book, sample_skills) -> TableSkillOracle:
    skill_oracle = TableSkillOracle.from_list(sample_skills)
    set_skill_oracle(skill_oracle)
    return skill_oracle


# ==================== Reference Data Fixtures ====================

@pytest.fixture
def raw_dungeon_data() -> List[Dict[str, Any]]:
    """Two dungeons, one with out-of-range stages and one floorless sub-dungeon."""
    return [
        {
            "dungeon_id": 1,
            "dungeon_type": 0,
            "name_na": "Tower",
            "sub_dungeons": [
                {
                    "sub_dungeon_id": 101,
                    "name_na": "Normal",
                    "floors": 2,
                    "hp_mult": 1.5,
                    "atk_mult": 1,
                    "def_mult": 2,
                    "encounters": [
                        {"enemy_id": 200, "level": 10, "stage": 2, "order_idx": 1},
                        {"enemy_id": 100, "level": 1, "stage": 1, "order_idx": 0},
                        {"enemy_id": 300, "level": 3, "stage": 0, "order_idx": 2},
                        {"enemy_id": 100, "level": 5, "stage": 9, "order_idx": 3},
                    ],
                },
                {
                    "sub_dungeon_id": 102,
                    "name_na": "Empty",
                    "floors": 0,
                    "encounters": [{"enemy_id": 1, "stage": 1}],
                },
            ],
        },
        {
            "dungeon_id": 2,
            "dungeon_type": 1,
            "name_na": "Arena",
            "sub_dungeons": [
                {
                    "sub_dungeon_id": 201,
                    "name_na": "Mythic",
                    "floors": 1,
                    "encounters": [{"enemy_id": 300, "level": 99, "stage": 1}],
                },
            ],
        },
    ]


@pytest.fixture
def loaded_store(raw_dungeon_data) -> DungeonDataStore:
    """A store that has already parsed the sample reference data."""
    store = DungeonDataStore(url="", path="")
    store.load_raw(raw_dungeon_data)
    return store


# ==================== Global State ====================

@pytest.fixture(autouse=True)
def reset_globals():
    """Every test starts with empty card, skill, data and session registries."""
    yield
    reset_monster_book()
    reset_skill_oracle()
    reset_dungeon_store()
    clear_sessions()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP surface tests")
