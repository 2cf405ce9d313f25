"""
Tests for the enemy skill lottery.

Tests:
- Weighted scan with an injected draw
- Forced index short-circuit
- Empty candidate sets
- Counter/flag side effects of the chosen skill
- Oracle candidate filtering
"""
import pytest
from unittest.mock import MagicMock

from dungeon_engine.core.dungeon import DungeonInstance
from dungeon_engine.core.enemy_instance import EnemyInstance
from dungeon_engine.core.events import DungeonEvent
from dungeon_engine.core.skill_lottery import (
    BattleContext,
    SkillCandidate,
    build_skill_context,
    select_behavior,
    weighted_pick,
)
from dungeon_engine.services.skill_oracle import SkillOracle


def fixed_draw(value):
    """Draw source that records the total weight and returns `value`."""
    totals = []

    def draw(total_weight):
        totals.append(total_weight)
        return value

    draw.totals = totals
    return draw


class TestWeightedPick:
    """The weighted scan itself."""

    @pytest.fixture
    def candidates(self):
        return [SkillCandidate(idx=0, chance=1), SkillCandidate(idx=1, chance=3)]

    def test_low_draw_picks_first(self, candidates):
        draw = fixed_draw(0.5)
        selection = weighted_pick(candidates, draw)
        assert (selection.chosen, selection.rejected) == (0, [1])
        assert draw.totals == [4]

    def test_high_draw_picks_second(self, candidates):
        selection = weighted_pick(candidates, fixed_draw(2.5))
        assert (selection.chosen, selection.rejected) == (1, [0])

    def test_interval_boundary_belongs_to_next(self, candidates):
        selection = weighted_pick(candidates, fixed_draw(1.0))
        assert selection.chosen == 1

    def test_rejections_keep_order(self):
        candidates = [SkillCandidate(idx=i, chance=1) for i in range(4)]
        selection = weighted_pick(candidates, fixed_draw(2.5))
        assert (selection.chosen, selection.rejected) == (2, [0, 1, 3])

    def test_empty_candidates(self):
        draw = fixed_draw(0.0)
        selection = weighted_pick([], draw)
        assert (selection.chosen, selection.rejected) == (-1, [])
        assert draw.totals == []

    def test_default_draw_in_range(self, candidates):
        for _ in range(50):
            assert weighted_pick(candidates).chosen in (0, 1)


class TestSelectBehavior:
    """Lottery against an oracle, with side effects on the enemy."""

    def test_forced_index_skips_oracle(self):
        oracle = MagicMock(spec=SkillOracle)
        selection = select_behavior(EnemyInstance(id=100), BattleContext(), oracle, forced_index=2)
        assert (selection.chosen, selection.rejected) == (2, [])
        oracle.determine_skillset.assert_not_called()

    def test_no_candidates(self):
        oracle = MagicMock(spec=SkillOracle)
        oracle.determine_skillset.return_value = []
        enemy = EnemyInstance(id=100, counter=3)
        selection = select_behavior(enemy, BattleContext(), oracle)
        assert (selection.chosen, selection.rejected) == (-1, [])
        assert enemy.counter == 3

    def test_chosen_candidate_writes_counter_and_flags(self, oracle):
        enemy = EnemyInstance(id=200, lv=10)
        enemy.reset()

        selection = select_behavior(enemy, BattleContext(), oracle, draw=fixed_draw(1.5))

        assert (selection.chosen, selection.rejected) == (1, [0])
        assert (enemy.counter, enemy.flags) == (1, 1)

    def test_once_only_skill_not_offered_again(self, oracle):
        enemy = EnemyInstance(id=200, lv=10)
        enemy.reset()
        select_behavior(enemy, BattleContext(), oracle, draw=fixed_draw(1.5))

        selection = select_behavior(enemy, BattleContext(), oracle, draw=fixed_draw(0.0))
        assert (selection.chosen, selection.rejected) == (0, [])
        assert (enemy.counter, enemy.flags) == (1, 1)

    def test_rejected_candidate_does_not_touch_enemy(self, oracle):
        enemy = EnemyInstance(id=200, lv=10)
        enemy.reset()
        select_behavior(enemy, BattleContext(), oracle, draw=fixed_draw(0.5))
        assert (enemy.counter, enemy.flags) == (0, 0)
        assert enemy.current_hp == 1000

    def test_preempt_context_offers_preempt_skills(self, oracle):
        enemy = EnemyInstance(id=100)
        enemy.reset()
        selection = select_behavior(enemy, BattleContext(is_preempt=True), oracle, draw=fixed_draw(0.0))
        assert (selection.chosen, selection.rejected) == (2, [])


class TestSkillContext:

    def test_context_snapshot(self, monster_book):
        enemy = EnemyInstance(id=100)
        enemy.reset()
        enemy.current_hp = 375
        enemy.attack_multiplier = 2
        battle = BattleContext(is_preempt=True, combo=7, team_ids=[1, 2], big_board=True)

        ctx = build_skill_context(enemy, battle)

        assert ctx.card_id == 100
        assert ctx.hp_percent == 38
        assert ctx.atk == 2000
        assert ctx.charges == 3
        assert ctx.attribute == 0
        assert ctx.is_preempt is True
        assert ctx.combo == 7
        assert ctx.team_ids == [1, 2]
        assert ctx.big_board is True


class TestUseEnemySkill:
    """DungeonInstance glue around the lottery."""

    def test_emits_enemy_skill(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": [{"enemies": [{"id": 100}]}]})
        received = []
        dungeon.events.subscribe(DungeonEvent.ENEMY_SKILL, lambda idx, others: received.append((idx, others)))

        selection = dungeon.use_enemy_skill(draw=fixed_draw(2.5))

        assert (selection.chosen, selection.rejected) == (1, [0])
        assert received == [(1, [0])]

    def test_forced_index_emits_without_rolling(self, oracle):
        dungeon = DungeonInstance.from_json({"floors": [{"enemies": [{"id": 100}]}]})
        received = []
        dungeon.events.subscribe(DungeonEvent.ENEMY_SKILL, lambda idx, others: received.append((idx, others)))

        dungeon.use_enemy_skill(forced_index=3, draw=fixed_draw(0.0))

        assert received == [(3, [])]
