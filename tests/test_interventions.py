from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from frozen_lake_hitl.agents.interventions import (
    INTERVENTION_RULES,
    InterventionParams,
    InterventionRecord,
    InterventionRuleEngine,
    apply_intervention_rule,
    suggested_direction,
)
from frozen_lake_hitl.utils.gridworld_core import DOWN, LEFT, RIGHT, UP


def _params(state=0, new_state=1, action=RIGHT, reward=0.0, alpha=0.5, gamma=0.9, rows=4, cols=4):
    return InterventionParams(
        state=state,
        reward=reward,
        new_state=new_state,
        action=action,
        learning_rate=alpha,
        gamma=gamma,
        rows=rows,
        cols=cols,
    )


def _record(rule="suggestion", reward=0.0, kind="exploitation", ts=0.0):
    return InterventionRecord(
        timestamp=ts, from_state=0, to_state=1, rule=rule, reward=reward, action=RIGHT, action_kind=kind
    )


def test_impede_penalizes_announced_action():
    table = np.zeros((16, 4))
    out = apply_intervention_rule("impede", table, _params())
    assert out[0, RIGHT] == pytest.approx(-0.5)
    mask = np.ones_like(out, dtype=bool)
    mask[0, RIGHT] = False
    assert not out[mask].any()
    assert not table.any()


def test_reset_rule_uses_real_reward():
    table = np.zeros((16, 4))
    table[5] = [0.0, 2.0, 0.0, 0.0]
    out = apply_intervention_rule("reset", table, _params(state=4, new_state=5, action=UP, reward=-10.0))
    assert out[4, UP] == pytest.approx(0.5 * (-10.0 + 0.9 * 2.0))


def test_suggestion_ignores_real_reward():
    table = np.zeros((16, 4))
    out = apply_intervention_rule("suggestion", table, _params(state=0, new_state=1, reward=-10.0))
    assert out[0, RIGHT] == pytest.approx(0.5)


@given(
    seed=st.integers(min_value=0, max_value=10**6),
    state=st.integers(min_value=0, max_value=15),
    new_state=st.integers(min_value=0, max_value=15),
    action=st.integers(min_value=0, max_value=3),
)
@settings(max_examples=100)
def test_interrupt_is_identity(seed, state, new_state, action):
    table = np.random.default_rng(seed).normal(size=(16, 4))
    out = apply_intervention_rule("interrupt", table, _params(state=state, new_state=new_state, action=action))
    assert np.array_equal(out, table)
    assert out is not table


@given(
    rule=st.sampled_from(sorted(INTERVENTION_RULES)),
    seed=st.integers(min_value=0, max_value=10**6),
    state=st.integers(min_value=0, max_value=15),
    new_state=st.integers(min_value=0, max_value=15),
)
@settings(max_examples=100)
def test_rules_never_mutate_input(rule, seed, state, new_state):
    table = np.random.default_rng(seed).normal(size=(16, 4))
    before = table.copy()
    apply_intervention_rule(rule, table, _params(state=state, new_state=new_state))
    assert np.array_equal(table, before)


def _col_dominant_moves():
    moves = []
    for s in range(16):
        for s2 in range(16):
            dr = s2 // 4 - s // 4
            dc = s2 % 4 - s % 4
            if abs(dc) > abs(dr):
                moves.append((s, s2))
    return moves


@given(move=st.sampled_from(_col_dominant_moves()))
def test_suggestion_column_dominant_updates_horizontal_only(move):
    s, s2 = move
    table = np.zeros((16, 4))
    out = apply_intervention_rule("suggestion", table, _params(state=s, new_state=s2, action=UP))
    changed = set(zip(*np.nonzero(out != table)))
    assert changed
    assert changed <= {(s, LEFT), (s, RIGHT)}


def test_suggested_direction_axes():
    assert suggested_direction(_params(state=5, new_state=7)) == RIGHT
    assert suggested_direction(_params(state=5, new_state=11)) == RIGHT
    assert suggested_direction(_params(state=5, new_state=4)) == LEFT
    assert suggested_direction(_params(state=5, new_state=13)) == DOWN
    assert suggested_direction(_params(state=5, new_state=1)) == UP
    # equal deltas favour the vertical axis
    assert suggested_direction(_params(state=5, new_state=8)) == DOWN
    assert suggested_direction(_params(state=5, new_state=3, rows=1, cols=14)) == LEFT
    assert suggested_direction(_params(state=5, new_state=9, rows=1, cols=14)) == RIGHT


def test_unknown_rule():
    with pytest.raises(KeyError):
        apply_intervention_rule("teleport", np.zeros((16, 4)), _params())
    with pytest.raises(KeyError):
        InterventionRuleEngine("teleport")
    engine = InterventionRuleEngine()
    assert not engine.set_rule("teleport")
    assert engine.rule == "suggestion"
    assert engine.set_rule("impede")
    assert engine.rule == "impede"


def test_engine_apply_uses_selected_rule():
    engine = InterventionRuleEngine("impede")
    out = engine.apply(np.zeros((16, 4)), _params())
    assert out[0, RIGHT] == pytest.approx(-0.5)
    out = engine.apply(np.zeros((16, 4)), _params(), rule="interrupt")
    assert not out.any()


def test_history_analysis():
    engine = InterventionRuleEngine()
    engine.record(_record("suggestion", reward=0.0, ts=1.0))
    engine.record(_record("impede", reward=-10.0, kind="exploration", ts=2.0))
    engine.record(_record("suggestion", reward=10.0, ts=3.0))

    stats = engine.stats()
    assert stats["total"] == 3
    assert stats["by_rule"] == {"suggestion": 2, "reset": 0, "interrupt": 0, "impede": 1}
    assert stats["by_rule_percentage"]["impede"] == pytest.approx(100.0 / 3)
    assert stats["by_action_kind"] == {"exploitation": 2, "exploration": 1}
    assert stats["average_reward"] == pytest.approx(0.0)
    assert stats["last"].timestamp == 3.0

    assert [r.timestamp for r in engine.recent(2)] == [3.0, 2.0]
    assert engine.recent(0) == []
    assert len(engine.by_rule("suggestion")) == 2

    engine.clear_history()
    assert engine.history == ()
    assert engine.stats()["last"] is None


def test_empty_rule_name_is_not_the_selected_rule():
    engine = InterventionRuleEngine("impede")
    with pytest.raises(KeyError):
        engine.apply(np.zeros((16, 4)), _params(), rule="")
