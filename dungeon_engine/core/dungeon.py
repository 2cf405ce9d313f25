"""
Dungeon encounter hierarchy: dungeon -> floors -> enemies.

A DungeonInstance always has at least one floor, every floor at least one
enemy, and exactly one active (floor, enemy) pair. Every change of the active
cursor goes through set_active(), which mirrors the cursor into the floor and
resets the newly active enemy against the dungeon multipliers.

Invalid structural operations (deleting the last floor or enemy, indexes out
of range) are logged and ignored; they never raise.
"""
from typing import List, Optional, Union
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from dungeon_engine.config import get_settings
from dungeon_engine.core.commands import CommandDispatcher, to_command_list
from dungeon_engine.core.enemy_instance import (
    DungeonMultipliers,
    EnemyInstance,
    round_half_up,
)
from dungeon_engine.core.errors import DungeonError, SnapshotError
from dungeon_engine.core.events import DungeonEvent, DungeonEvents
from dungeon_engine.core.mechanics import (
    DungeonMechanics,
    MechanicsMergePolicy,
    compute_dungeon_mechanics,
)
from dungeon_engine.core.rational import Rational
from dungeon_engine.core.skill_lottery import (
    BattleContext,
    DrawSource,
    SkillSelection,
    select_behavior,
)
from dungeon_engine.models.dungeon_data import DungeonSnapshot, FloorSnapshot
from dungeon_engine.models.view import DungeonViewState, EnemyStatsView, SkillView
from dungeon_engine.services.dungeon_loader import DungeonDataStore, get_dungeon_store
from dungeon_engine.services.skill_oracle import SkillOracle, get_skill_oracle

logger = logging.getLogger(__name__)


class DungeonFloor:
    """Ordered, non-empty list of enemies with one active enemy."""

    def __init__(self, enemies: Optional[List[EnemyInstance]] = None):
        self.enemies: List[EnemyInstance] = enemies or [EnemyInstance()]
        self.active_enemy = 0

    def add_enemy(self) -> int:
        """Append a default enemy and return its index."""
        self.enemies.append(EnemyInstance())
        return len(self.enemies) - 1

    def delete_enemy(self, idx: int) -> bool:
        if len(self.enemies) <= 1 or not 0 <= idx < len(self.enemies):
            logger.info(f"[Dungeon] Unable to delete enemy {idx} from floor")
            return False
        self.enemies.pop(idx)
        if self.active_enemy >= idx:
            self.active_enemy = max(self.active_enemy - 1, 0)
        return True

    def get_active_enemy(self) -> EnemyInstance:
        return self.enemies[self.active_enemy]

    def get_enemy_ids(self) -> List[int]:
        return [enemy.id for enemy in self.enemies]

    def to_json(self) -> FloorSnapshot:
        return FloorSnapshot(enemies=[enemy.to_json() for enemy in self.enemies])

    @classmethod
    def from_json(cls, data: FloorSnapshot) -> "DungeonFloor":
        # Reference data contains floors with no encounters
        return cls([EnemyInstance.from_json(enemy) for enemy in data.enemies])


class DungeonInstance:
    """An editable, simulatable multi-floor encounter."""

    def __init__(
        self,
        oracle: Optional[SkillOracle] = None,
        events: Optional[DungeonEvents] = None,
    ):
        settings = get_settings()

        self.id = -1  # Loaded sub-dungeon id
        self.title = ""
        self.is_normal = True
        self.board_width = settings.DEFAULT_BOARD_WIDTH
        self.fixed_time = 0
        self.is_rogue = False  # Not enforced
        self.all_attributes_required = False  # Not enforced
        self.no_dupes = False  # Not enforced

        self.floors: List[DungeonFloor] = [DungeonFloor()]
        self.hp_multiplier = Rational(1)
        self.atk_multiplier = Rational(1)
        self.def_multiplier = Rational(1)
        self.active_floor = 0
        self.active_enemy = 0

        self.events = events or DungeonEvents()
        self._oracle = oracle

    @property
    def oracle(self) -> SkillOracle:
        return self._oracle if self._oracle is not None else get_skill_oracle()

    @property
    def multipliers(self) -> DungeonMultipliers:
        return DungeonMultipliers(
            hp=self.hp_multiplier,
            atk=self.atk_multiplier,
            defense=self.def_multiplier,
        )

    # ==================== Hierarchy ====================

    def add_floor(self, activate: bool = True) -> int:
        """Append a floor with one default enemy, returning its index."""
        self.floors.append(DungeonFloor())
        idx = len(self.floors) - 1
        if activate:
            self.set_active(idx, 0)
        return idx

    def delete_floor(self, idx: int) -> bool:
        if len(self.floors) <= 1 or not 0 <= idx < len(self.floors):
            logger.info(f"[Dungeon] Unable to delete floor {idx}")
            return False
        self.floors.pop(idx)
        # Deleting a later floor leaves the active enemy and its battle state alone
        if self.active_floor >= idx:
            self.active_floor = max(self.active_floor - 1, 0)
            self.set_active_enemy(self.floors[self.active_floor].active_enemy)
        return True

    def add_enemy(self, activate: bool = True) -> int:
        """Append a default enemy to the active floor, returning its index."""
        idx = self.floors[self.active_floor].add_enemy()
        if activate:
            self.set_active_enemy(idx)
        return idx

    def delete_enemy(self, idx: int) -> bool:
        floor = self.floors[self.active_floor]
        moves_cursor = idx <= floor.active_enemy
        if not floor.delete_enemy(idx):
            return False
        if moves_cursor:
            self.set_active_enemy(floor.active_enemy)
        return True

    def set_active(self, floor_idx: int, enemy_idx: int) -> bool:
        """
        Move the active cursor and reset the newly active enemy.

        Returns False, leaving the cursor untouched, when either index is out
        of range.
        """
        if not 0 <= floor_idx < len(self.floors):
            logger.warning(f"[Dungeon] Invalid floor index {floor_idx}")
            return False
        floor = self.floors[floor_idx]
        if not 0 <= enemy_idx < len(floor.enemies):
            logger.warning(f"[Dungeon] Invalid enemy index {enemy_idx} on floor {floor_idx}")
            return False

        self.active_floor = floor_idx
        self.active_enemy = enemy_idx
        floor.active_enemy = enemy_idx
        floor.get_active_enemy().reset(self.multipliers)
        self.events.emit(DungeonEvent.ENEMY_CHANGE, floor_idx, enemy_idx)
        return True

    def set_active_enemy(self, idx: int) -> bool:
        return self.set_active(self.active_floor, idx)

    def get_active_enemy(self) -> EnemyInstance:
        return self.floors[self.active_floor].get_active_enemy()

    # ==================== View ====================

    def build_view(self, update_active_enemy: bool = False) -> DungeonViewState:
        multipliers = self.multipliers
        enemy = self.get_active_enemy()
        card = enemy.get_card()

        stats = EnemyStatsView(
            lv=enemy.lv,
            current_hp=enemy.current_hp,
            percent_hp=enemy.get_hp_percent(multipliers),
            hp=enemy.get_hp(multipliers),
            base_atk=enemy.get_atk_base(multipliers),
            enrage=enemy.attack_multiplier,
            atk=enemy.get_atk(multipliers),
            base_def=enemy.get_def_base(multipliers),
            ignore_defense_percent=enemy.ignore_defense_percent,
            def_=enemy.get_def(multipliers),
            resolve=round_half_up(enemy.get_resolve(multipliers)),
            super_resolve=enemy.get_super_resolve(multipliers),
            type_resists=enemy.get_type_resists(),
            attr_resists=enemy.get_attr_resists(),
            status_shield=enemy.status_shield,
            invincible=enemy.invincible,
            attribute=enemy.get_attribute(),
            combo_absorb=enemy.combo_absorb,
            damage_absorb=enemy.damage_absorb,
            damage_void=enemy.damage_void,
            attribute_absorbs=list(enemy.attribute_absorbs),
            damage_shield_percent=enemy.damage_shield_percent,
            max_charges=card.charges,
            charges=enemy.charges,
            counter=enemy.counter,
            flags=enemy.flags,
        )

        active = None
        skills = None
        if update_active_enemy:
            active = (self.active_floor, self.active_enemy)
            oracle = self.oracle
            skills = [
                SkillView(
                    idx=idx,
                    text=oracle.describe(enemy.id, idx),
                    always_active=oracle.is_passive(enemy.id, idx),
                )
                for idx in range(len(card.skills))
            ]

        return DungeonViewState(
            enemies=[floor.get_enemy_ids() for floor in self.floors],
            active=active,
            multipliers=(
                str(self.hp_multiplier),
                str(self.atk_multiplier),
                str(self.def_multiplier),
            ),
            stats=stats,
            skills=skills,
        )

    def update(self, update_active_enemy: bool = False) -> DungeonViewState:
        """Recompute the view state and publish it to subscribers."""
        view = self.build_view(update_active_enemy)
        self.events.emit(DungeonEvent.VIEW, view)
        return view

    # ==================== Battle ====================

    def use_enemy_skill(
        self,
        battle: Optional[BattleContext] = None,
        forced_index: int = -1,
        draw: Optional[DrawSource] = None,
    ) -> SkillSelection:
        """Roll the active enemy's skill and publish the result."""
        selection = select_behavior(
            self.get_active_enemy(),
            battle or BattleContext(),
            self.oracle,
            self.multipliers,
            forced_index=forced_index,
            draw=draw,
        )
        self.events.emit(DungeonEvent.ENEMY_SKILL, selection.chosen, list(selection.rejected))
        return selection

    def compute_mechanics(
        self,
        battle: Optional[BattleContext] = None,
        preempt_only: bool = False,
        policy: Optional[MechanicsMergePolicy] = None,
    ) -> DungeonMechanics:
        """
        Every hazard this dungeon's enemies can produce.

        Resets every enemy; call update() afterwards to refresh the view.
        """
        if policy is None:
            policy = MechanicsMergePolicy.uniform(get_settings().MECHANICS_MERGE_STRATEGY)
        return compute_dungeon_mechanics(
            self, battle or BattleContext(), self.oracle, preempt_only, policy
        )

    # ==================== Commands ====================

    async def apply_update(self, update) -> DungeonViewState:
        """
        Apply an UpdateContext, a wire dict, or a command list.

        Returns the published view state.
        """
        return await CommandDispatcher().apply(self, to_command_list(update))

    async def load_dungeon(self, sub_dungeon_id: int, store: Optional[DungeonDataStore] = None) -> bool:
        """
        Replace this dungeon with a sub-dungeon from the reference data.

        Unknown ids and unavailable data are logged and leave the dungeon
        untouched.
        """
        store = store or get_dungeon_store()
        try:
            snapshot = await store.get(sub_dungeon_id)
        except DungeonError as e:
            logger.warning(f"[Dungeon] Cannot load sub-dungeon {sub_dungeon_id}: {e.message}")
            return False
        self.id = sub_dungeon_id
        self.load_snapshot(snapshot)
        logger.info(f"[Dungeon] Loaded sub-dungeon {sub_dungeon_id}: {self.title}")
        return True

    # ==================== Serialization ====================

    def to_snapshot(self) -> DungeonSnapshot:
        snapshot = DungeonSnapshot(
            title=self.title,
            is_normal=self.is_normal,
            floors=[floor.to_json() for floor in self.floors],
        )
        # Exact 1 and NaN are left out of persisted snapshots
        for name, multiplier in (
            ("hp", self.hp_multiplier),
            ("atk", self.atk_multiplier),
            ("def_", self.def_multiplier),
        ):
            if not multiplier.is_nan and not multiplier.is_one:
                setattr(snapshot, name, str(multiplier))
        return snapshot

    def load_snapshot(self, snapshot: DungeonSnapshot) -> None:
        """Replace the whole dungeon and reset the cursor to (0, 0)."""
        self.title = snapshot.title or ""
        self.is_normal = snapshot.is_normal
        self.floors = [DungeonFloor.from_json(floor) for floor in snapshot.floors]
        if not self.floors:
            self.floors = [DungeonFloor()]

        self.hp_multiplier = Rational.from_string(snapshot.hp or "1")
        self.atk_multiplier = Rational.from_string(snapshot.atk or "1")
        self.def_multiplier = Rational.from_string(snapshot.def_ or "1")

        self.set_active(0, 0)
        self.update(True)

    def to_json(self) -> str:
        return json.dumps(self.to_snapshot().to_wire())

    def load_json(self, data: Union[str, dict]) -> None:
        """
        Load a persisted snapshot from a JSON string or dict.

        Raises:
            SnapshotError: The document is not a dungeon snapshot
        """
        try:
            if isinstance(data, str):
                snapshot = DungeonSnapshot.model_validate_json(data)
            else:
                snapshot = DungeonSnapshot.model_validate(data)
        except PydanticValidationError as e:
            raise SnapshotError(f"Invalid dungeon snapshot: {e.error_count()} error(s)")
        self.load_snapshot(snapshot)

    @classmethod
    def from_json(cls, data: Union[str, dict], oracle: Optional[SkillOracle] = None) -> "DungeonInstance":
        dungeon = cls(oracle=oracle)
        dungeon.load_json(data)
        return dungeon
