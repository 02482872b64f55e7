from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from frozen_lake_hitl.engine.stats import RunningTotals


def test_record_episode_end_accumulates():
    totals = RunningTotals()
    totals.record_episode_end(success=False, reward=-10.0, steps=3, interventions=1, last_reward=-10.0)
    stats = totals.record_episode_end(success=True, reward=10.0, steps=5, interventions=0, last_reward=10.0)
    assert stats.episode == 2
    assert stats.total_reward == 0.0
    assert stats.steps == 8
    assert stats.interventions == 1
    assert stats.last_reward == 10.0
    assert stats.success_rate == 0.5


def test_empty_totals():
    totals = RunningTotals()
    assert totals.success_rate == 0.0
    assert totals.batch_success_rate() == 0.0
    assert totals.learning_progress() == []


@given(outcomes=st.lists(st.booleans(), min_size=1, max_size=200))
def test_incremental_success_rate_matches_batch(outcomes):
    totals = RunningTotals()
    for ok in outcomes:
        totals.record_episode_end(success=ok, reward=10.0 if ok else -10.0, steps=1, interventions=0)
    assert totals.success_rate == pytest.approx(sum(outcomes) / len(outcomes))
    assert totals.success_rate == pytest.approx(totals.batch_success_rate())


def test_learning_progress_windows():
    totals = RunningTotals()
    for r in (1.0, 3.0, 5.0, 7.0, 9.0):
        totals.record_episode_end(success=True, reward=r, steps=1, interventions=0)
    assert totals.learning_progress(window=2) == [2.0, 6.0, 9.0]


def test_clear():
    totals = RunningTotals()
    totals.record_episode_end(success=True, reward=1.0, steps=1, interventions=2)
    totals.clear()
    assert totals.snapshot().episode == 0
    assert totals.episode_rewards == []
    assert totals.success_rate == 0.0
