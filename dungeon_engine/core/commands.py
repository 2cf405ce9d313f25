"""
Dungeon update commands and the phase-ordered dispatcher.

Each editor change is a small command model tagged by `kind`. The dispatcher
groups a batch of commands into phases and runs the phases in a fixed order,
because later phases read state produced by earlier ones:

1. LOAD      - replace the dungeon from the reference data
2. ACTIVATE  - add floors/enemies, then resolve and apply the active cursor once
3. REMOVE    - delete floors/enemies
4. SETTINGS  - dungeon-wide multipliers and metadata
5. ENEMY     - state of the active enemy
6. publish   - always recompute the view, then emit ENEMY_UPDATE

Within a phase, commands run in the order given. The editor's sparse wire
object (UpdateContext) converts to a command list with to_commands().
"""
from enum import IntEnum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union, TYPE_CHECKING
import logging
import math

from pydantic import BaseModel, Field, TypeAdapter

from dungeon_engine.core.errors import InvalidCommandError
from dungeon_engine.core.events import DungeonEvent
from dungeon_engine.core.rational import Rational
from dungeon_engine.models.view import DungeonViewState
from dungeon_engine.services.dungeon_loader import DungeonDataStore, get_dungeon_store

if TYPE_CHECKING:
    from dungeon_engine.core.dungeon import DungeonInstance

logger = logging.getLogger(__name__)

MultiplierValue = Union[str, int, float]


class Phase(IntEnum):
    """Dispatcher phases in execution order."""
    LOAD = 0
    ACTIVATE = 1
    REMOVE = 2
    SETTINGS = 3
    ENEMY = 4


# =============================================================================
# Command Models
# =============================================================================

class LoadDungeon(BaseModel):
    kind: Literal["load_dungeon"] = "load_dungeon"
    phase: ClassVar[Phase] = Phase.LOAD
    sub_dungeon_id: int


class AddFloor(BaseModel):
    kind: Literal["add_floor"] = "add_floor"
    phase: ClassVar[Phase] = Phase.ACTIVATE


class AddEnemy(BaseModel):
    kind: Literal["add_enemy"] = "add_enemy"
    phase: ClassVar[Phase] = Phase.ACTIVATE


class SetActiveFloor(BaseModel):
    kind: Literal["set_active_floor"] = "set_active_floor"
    phase: ClassVar[Phase] = Phase.ACTIVATE
    floor: int


class SetActiveEnemy(BaseModel):
    kind: Literal["set_active_enemy"] = "set_active_enemy"
    phase: ClassVar[Phase] = Phase.ACTIVATE
    enemy: int


class RemoveFloor(BaseModel):
    """Delete a floor. 0 is reserved and does nothing."""
    kind: Literal["remove_floor"] = "remove_floor"
    phase: ClassVar[Phase] = Phase.REMOVE
    floor: int


class RemoveEnemy(BaseModel):
    """Delete an enemy from the active floor."""
    kind: Literal["remove_enemy"] = "remove_enemy"
    phase: ClassVar[Phase] = Phase.REMOVE
    enemy: int


class SetHpMultiplier(BaseModel):
    kind: Literal["set_hp_multiplier"] = "set_hp_multiplier"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "hp_multiplier"
    value: MultiplierValue


class SetAtkMultiplier(BaseModel):
    kind: Literal["set_atk_multiplier"] = "set_atk_multiplier"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "atk_multiplier"
    value: MultiplierValue


class SetDefMultiplier(BaseModel):
    kind: Literal["set_def_multiplier"] = "set_def_multiplier"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "def_multiplier"
    value: MultiplierValue


class SetTitle(BaseModel):
    kind: Literal["set_title"] = "set_title"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "title"
    value: str


class SetIsNormal(BaseModel):
    kind: Literal["set_is_normal"] = "set_is_normal"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "is_normal"
    value: bool


class SetBoardWidth(BaseModel):
    kind: Literal["set_board_width"] = "set_board_width"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "board_width"
    value: int


class SetFixedTime(BaseModel):
    kind: Literal["set_fixed_time"] = "set_fixed_time"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "fixed_time"
    value: float


class SetAllAttributesRequired(BaseModel):
    kind: Literal["set_all_attributes_required"] = "set_all_attributes_required"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "all_attributes_required"
    value: bool


class SetNoDupes(BaseModel):
    kind: Literal["set_no_dupes"] = "set_no_dupes"
    phase: ClassVar[Phase] = Phase.SETTINGS
    target: ClassVar[str] = "no_dupes"
    value: bool


class SetHp(BaseModel):
    """Set current HP, clamped to [0, max HP]."""
    kind: Literal["set_hp"] = "set_hp"
    phase: ClassVar[Phase] = Phase.ENEMY
    value: int


class SetHpPercent(BaseModel):
    """Set current HP from a percent, clamped to [0, 100] first."""
    kind: Literal["set_hp_percent"] = "set_hp_percent"
    phase: ClassVar[Phase] = Phase.ENEMY
    value: float


class SetLevel(BaseModel):
    kind: Literal["set_level"] = "set_level"
    phase: ClassVar[Phase] = Phase.ENEMY
    value: int


# Enemy fields below are assigned verbatim to `target`

class SetEnrage(BaseModel):
    kind: Literal["set_enrage"] = "set_enrage"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "attack_multiplier"
    value: float


class SetDefBreak(BaseModel):
    kind: Literal["set_def_break"] = "set_def_break"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "ignore_defense_percent"
    value: int


class SetEnemyId(BaseModel):
    kind: Literal["set_enemy_id"] = "set_enemy_id"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "id"
    value: int


class SetStatusShield(BaseModel):
    kind: Literal["set_status_shield"] = "set_status_shield"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "status_shield"
    value: bool


class SetInvincible(BaseModel):
    kind: Literal["set_invincible"] = "set_invincible"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "invincible"
    value: bool


class SetAttribute(BaseModel):
    kind: Literal["set_attribute"] = "set_attribute"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "current_attribute"
    value: int


class SetComboAbsorb(BaseModel):
    kind: Literal["set_combo_absorb"] = "set_combo_absorb"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "combo_absorb"
    value: int


class SetDamageShield(BaseModel):
    kind: Literal["set_damage_shield"] = "set_damage_shield"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "damage_shield_percent"
    value: int


class SetDamageAbsorb(BaseModel):
    kind: Literal["set_damage_absorb"] = "set_damage_absorb"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "damage_absorb"
    value: int


class SetDamageVoid(BaseModel):
    kind: Literal["set_damage_void"] = "set_damage_void"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "damage_void"
    value: int


class SetAttributeAbsorbs(BaseModel):
    kind: Literal["set_attribute_absorbs"] = "set_attribute_absorbs"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "attribute_absorbs"
    value: List[int]


class SetCharges(BaseModel):
    kind: Literal["set_charges"] = "set_charges"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "charges"
    value: int


class SetCounter(BaseModel):
    kind: Literal["set_counter"] = "set_counter"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "counter"
    value: int


class SetFlags(BaseModel):
    kind: Literal["set_flags"] = "set_flags"
    phase: ClassVar[Phase] = Phase.ENEMY
    target: ClassVar[str] = "flags"
    value: int


COMMAND_TYPES = (
    LoadDungeon,
    AddFloor, AddEnemy, SetActiveFloor, SetActiveEnemy,
    RemoveFloor, RemoveEnemy,
    SetHpMultiplier, SetAtkMultiplier, SetDefMultiplier,
    SetTitle, SetIsNormal, SetBoardWidth, SetFixedTime,
    SetAllAttributesRequired, SetNoDupes,
    SetHp, SetHpPercent, SetLevel,
    SetEnrage, SetDefBreak, SetEnemyId, SetStatusShield, SetInvincible,
    SetAttribute, SetComboAbsorb, SetDamageShield, SetDamageAbsorb,
    SetDamageVoid, SetAttributeAbsorbs, SetCharges, SetCounter, SetFlags,
)

COMMANDS_BY_KIND: Dict[str, type] = {
    command_type.model_fields["kind"].default: command_type
    for command_type in COMMAND_TYPES
}

Command = Annotated[Union[COMMAND_TYPES], Field(discriminator="kind")]

_command_list_adapter = TypeAdapter(List[Command])


def parse_commands(raw: List[Dict[str, Any]]) -> List[BaseModel]:
    """
    Validate a list of command dicts.

    Raises:
        InvalidCommandError: A dict names a kind no command handles
    """
    for entry in raw:
        kind = entry.get("kind")
        if kind not in COMMANDS_BY_KIND:
            raise InvalidCommandError(str(kind))
    return _command_list_adapter.validate_python(raw)


# =============================================================================
# Sparse Update Context
# =============================================================================

class UpdateContext(BaseModel):
    """
    Sparse editor update. A present field means "apply this change".

    Field names follow the editor's camelCase wire format.
    """
    load_dungeon: Optional[int] = Field(None, alias="loadDungeon")

    active_floor: Optional[int] = Field(None, alias="activeFloor")
    active_enemy: Optional[int] = Field(None, alias="activeEnemy")
    add_floor: Optional[bool] = Field(None, alias="addFloor")
    add_enemy: Optional[bool] = Field(None, alias="addEnemy")
    remove_floor: Optional[int] = Field(None, alias="removeFloor")
    remove_enemy: Optional[int] = Field(None, alias="removeEnemy")

    dungeon_hp_multiplier: Optional[MultiplierValue] = Field(None, alias="dungeonHpMultiplier")
    dungeon_atk_multiplier: Optional[MultiplierValue] = Field(None, alias="dungeonAtkMultiplier")
    dungeon_def_multiplier: Optional[MultiplierValue] = Field(None, alias="dungeonDefMultiplier")
    title: Optional[str] = None
    is_normal: Optional[bool] = Field(None, alias="isNormal")
    board_width: Optional[int] = Field(None, alias="boardWidth")
    fixed_time: Optional[float] = Field(None, alias="fixedTime")
    all_attributes_required: Optional[bool] = Field(None, alias="allAttributesRequired")
    no_dupes: Optional[bool] = Field(None, alias="noDupes")

    hp: Optional[int] = None
    hp_percent: Optional[float] = Field(None, alias="hpPercent")
    enrage: Optional[float] = None
    def_break: Optional[int] = Field(None, alias="defBreak")
    enemy_level: Optional[int] = Field(None, alias="enemyLevel")
    active_enemy_id: Optional[int] = Field(None, alias="activeEnemyId")
    status_shield: Optional[bool] = Field(None, alias="statusShield")
    invincible: Optional[bool] = None
    attribute: Optional[int] = None
    combo_absorb: Optional[int] = Field(None, alias="comboAbsorb")
    damage_shield: Optional[int] = Field(None, alias="damageShield")
    damage_absorb: Optional[int] = Field(None, alias="damageAbsorb")
    damage_void: Optional[int] = Field(None, alias="damageVoid")
    attribute_absorbs: Optional[List[int]] = Field(None, alias="attributeAbsorbs")
    charges: Optional[int] = None
    counter: Optional[int] = None
    flags: Optional[int] = None

    class Config:
        populate_by_name = True

    def to_commands(self) -> List[BaseModel]:
        """Convert the present fields into a command list."""
        commands: List[BaseModel] = []

        def present(name: str) -> bool:
            return name in self.model_fields_set and getattr(self, name) is not None

        if present("load_dungeon"):
            commands.append(LoadDungeon(sub_dungeon_id=self.load_dungeon))

        if self.add_floor:
            commands.append(AddFloor())
        if self.add_enemy:
            commands.append(AddEnemy())
        if present("active_floor"):
            commands.append(SetActiveFloor(floor=self.active_floor))
        if present("active_enemy"):
            commands.append(SetActiveEnemy(enemy=self.active_enemy))

        if present("remove_floor"):
            commands.append(RemoveFloor(floor=self.remove_floor))
        if present("remove_enemy"):
            commands.append(RemoveEnemy(enemy=self.remove_enemy))

        for name, command_type in _VALUE_FIELDS:
            if present(name):
                commands.append(command_type(value=getattr(self, name)))
        return commands


# Context field -> command, in application order
_VALUE_FIELDS = (
    ("dungeon_hp_multiplier", SetHpMultiplier),
    ("dungeon_atk_multiplier", SetAtkMultiplier),
    ("dungeon_def_multiplier", SetDefMultiplier),
    ("title", SetTitle),
    ("is_normal", SetIsNormal),
    ("board_width", SetBoardWidth),
    ("fixed_time", SetFixedTime),
    ("all_attributes_required", SetAllAttributesRequired),
    ("no_dupes", SetNoDupes),
    ("hp", SetHp),
    ("hp_percent", SetHpPercent),
    ("enrage", SetEnrage),
    ("def_break", SetDefBreak),
    ("enemy_level", SetLevel),
    ("active_enemy_id", SetEnemyId),
    ("status_shield", SetStatusShield),
    ("invincible", SetInvincible),
    ("attribute", SetAttribute),
    ("combo_absorb", SetComboAbsorb),
    ("damage_shield", SetDamageShield),
    ("damage_absorb", SetDamageAbsorb),
    ("damage_void", SetDamageVoid),
    ("attribute_absorbs", SetAttributeAbsorbs),
    ("charges", SetCharges),
    ("counter", SetCounter),
    ("flags", SetFlags),
)


def to_command_list(update: Union[UpdateContext, Dict[str, Any], List[Any]]) -> List[BaseModel]:
    """Normalize an UpdateContext, a wire dict, or a command list."""
    if isinstance(update, UpdateContext):
        return update.to_commands()
    if isinstance(update, dict):
        return UpdateContext.model_validate(update).to_commands()
    if update and all(isinstance(entry, dict) for entry in update):
        return parse_commands(update)
    return list(update or [])


# =============================================================================
# Dispatcher
# =============================================================================

class CommandDispatcher:
    """Runs a command batch against a dungeon in phase order."""

    def __init__(self, store: Optional[DungeonDataStore] = None):
        self._store = store

    @property
    def store(self) -> DungeonDataStore:
        return self._store if self._store is not None else get_dungeon_store()

    async def apply(self, dungeon: "DungeonInstance", commands: List[BaseModel]) -> DungeonViewState:
        """
        Apply a command batch and publish the resulting view.

        Raises:
            InvalidCommandError: A command type has no handler
        """
        phases: Dict[Phase, List[BaseModel]] = {phase: [] for phase in Phase}
        for command in commands:
            if type(command) not in COMMAND_TYPES:
                raise InvalidCommandError(getattr(command, "kind", type(command).__name__))
            phases[command.phase].append(command)

        old_cursor = (dungeon.active_floor, dungeon.active_enemy)

        # A loaded dungeon has a new active enemy even when the cursor is (0, 0)
        loaded = False
        for command in phases[Phase.LOAD]:
            if await dungeon.load_dungeon(command.sub_dungeon_id, self.store):
                loaded = True

        self._activate(dungeon, phases[Phase.ACTIVATE])

        for command in phases[Phase.REMOVE]:
            self._remove(dungeon, command)

        for command in phases[Phase.SETTINGS]:
            self._apply_setting(dungeon, command)

        for command in phases[Phase.ENEMY]:
            self._apply_enemy_state(dungeon, command)

        update_active_enemy = loaded or old_cursor != (dungeon.active_floor, dungeon.active_enemy)
        view = dungeon.update(update_active_enemy)
        dungeon.events.emit(DungeonEvent.ENEMY_UPDATE, dungeon.get_active_enemy())
        return view

    # ==================== Phases ====================

    def _activate(self, dungeon: "DungeonInstance", commands: List[BaseModel]) -> None:
        """
        Resolve the new cursor from every activation command, apply it once.

        Order: new floors, floor selection (slot 0), new enemies on the
        floor targeted so far, explicit enemy selection.
        """
        if not commands:
            return

        floor_idx = dungeon.active_floor
        enemy_idx = dungeon.active_enemy

        for command in commands:
            if isinstance(command, AddFloor):
                floor_idx = dungeon.add_floor(activate=False)
                enemy_idx = 0
        for command in commands:
            if isinstance(command, SetActiveFloor):
                floor_idx = command.floor
                enemy_idx = 0
        for command in commands:
            if isinstance(command, AddEnemy):
                if not 0 <= floor_idx < len(dungeon.floors):
                    logger.warning(f"[Commands] Cannot add enemy to invalid floor {floor_idx}")
                    continue
                enemy_idx = dungeon.floors[floor_idx].add_enemy()
        for command in commands:
            if isinstance(command, SetActiveEnemy):
                enemy_idx = command.enemy

        dungeon.set_active(floor_idx, enemy_idx)

    def _remove(self, dungeon: "DungeonInstance", command: BaseModel) -> None:
        if isinstance(command, RemoveFloor):
            if command.floor == 0:
                logger.debug("[Commands] remove_floor 0 is reserved, ignoring")
                return
            dungeon.delete_floor(command.floor)
        elif isinstance(command, RemoveEnemy):
            dungeon.delete_enemy(command.enemy)

    def _apply_setting(self, dungeon: "DungeonInstance", command: BaseModel) -> None:
        if isinstance(command, (SetHpMultiplier, SetAtkMultiplier, SetDefMultiplier)):
            setattr(dungeon, command.target, Rational.from_value(command.value))
            if isinstance(command, SetHpMultiplier):
                # Current HP never exceeds the newly scaled max HP
                enemy = dungeon.get_active_enemy()
                enemy.current_hp = min(enemy.current_hp, enemy.get_hp(dungeon.multipliers))
            return
        setattr(dungeon, command.target, command.value)

    def _apply_enemy_state(self, dungeon: "DungeonInstance", command: BaseModel) -> None:
        enemy = dungeon.get_active_enemy()
        if isinstance(command, SetHp):
            max_hp = enemy.get_hp(dungeon.multipliers)
            enemy.current_hp = min(max(command.value, 0), max_hp)
        elif isinstance(command, SetHpPercent):
            percent = min(max(command.value, 0), 100)
            enemy.current_hp = math.ceil(enemy.get_hp(dungeon.multipliers) * percent / 100)
        elif isinstance(command, SetLevel):
            enemy.set_level(command.value)
        elif isinstance(command, SetAttributeAbsorbs):
            enemy.attribute_absorbs = list(command.value)
        else:
            setattr(enemy, command.target, command.value)
