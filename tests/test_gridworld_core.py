from __future__ import annotations

import pytest

from frozen_lake_hitl.utils.config import MAP_CONFIGS
from frozen_lake_hitl.utils.errors import ConfigurationError
from frozen_lake_hitl.utils.gridworld_core import (
    DOWN,
    LEFT,
    RIGHT,
    UP,
    CellKind,
    GridWorld,
    available_actions_for,
    validate_reward_schedule,
)

SCHEDULE = (-10.0, 10.0, 0.0)


@pytest.fixture
def small() -> GridWorld:
    return GridWorld(MAP_CONFIGS["SMALL_3x4"])


def test_parses_dimensions_and_cells(small):
    assert (small.rows, small.cols, small.state_count) == (3, 4, 12)
    assert small.start_state() == 0
    assert small.cell_kind(5) is CellKind.HOLE
    assert small.is_goal(11) and small.is_terminal(11)
    assert small.is_terminal(7) and not small.is_goal(7)
    assert not small.is_terminal(0) and small.is_start(0)


def test_describe(small):
    info = small.describe()
    assert info["holes"] == [5, 7]
    assert info["goals"] == [11]
    assert info["start"] == 0


def test_rewards_start_counts_as_frozen(small):
    assert small.reward(0, SCHEDULE) == 0.0
    assert small.reward(1, SCHEDULE) == 0.0
    assert small.reward(5, SCHEDULE) == -10.0
    assert small.reward(11, SCHEDULE) == 10.0


def test_apply_action_blocks_at_edges(small):
    assert small.apply_action(0, LEFT) == 0
    assert small.apply_action(0, UP) == 0
    assert small.apply_action(0, RIGHT) == 1
    assert small.apply_action(0, DOWN) == 4
    assert small.apply_action(3, RIGHT) == 3
    assert small.apply_action(11, DOWN) == 11
    assert small.apply_action(6, UP) == 2


def test_available_actions_order(small):
    assert small.available_actions(0) == (DOWN, RIGHT)
    assert small.available_actions(5) == (LEFT, DOWN, RIGHT, UP)
    assert small.available_actions(11) == (LEFT, UP)


def test_single_row_has_only_horizontal_moves():
    assert available_actions_for(0, 1, 14) == (RIGHT,)
    assert available_actions_for(5, 1, 14) == (LEFT, RIGHT)
    assert available_actions_for(13, 1, 14) == (LEFT,)
    assert available_actions_for(0, 1, 1) == ()


def test_position_round_trip(small):
    for s in range(small.state_count):
        assert small.to_state(*small.position(s)) == s
    assert small.position(6) == (1, 2)


def test_invalid_states(small):
    assert not small.is_valid_state(-1)
    assert not small.is_valid_state(12)
    assert not small.is_valid_state("3")
    assert small.is_valid_state(11)
    with pytest.raises(IndexError):
        small.position(12)
    with pytest.raises(IndexError):
        small.to_state(3, 0)


@pytest.mark.parametrize(
    "desc",
    [
        [],
        [""],
        ["SFF", "FF"],
        ["SFX"],
    ],
)
def test_malformed_maps_rejected(desc):
    with pytest.raises(ConfigurationError):
        GridWorld(desc)


def test_missing_start_strict_and_lenient():
    with pytest.raises(ConfigurationError):
        GridWorld(["FFG"])
    lenient = GridWorld(["FFG"], strict=False)
    assert lenient.start_state() == 0


def test_linear_preset_start_is_not_state_zero():
    grid = GridWorld(MAP_CONFIGS["LINEAR_1x14"])
    assert grid.rows == 1 and grid.cols == 14
    assert grid.start_state() == 2
    assert grid.is_terminal(0)


def test_validate_reward_schedule():
    assert validate_reward_schedule([-1, 2, 0]) == (-1.0, 2.0, 0.0)
    with pytest.raises(ConfigurationError):
        validate_reward_schedule([1, 2])
    with pytest.raises(ConfigurationError):
        validate_reward_schedule(["a", 2, 3])


@pytest.mark.parametrize("state", [-1, -12, 12])
def test_out_of_range_lookups_raise(small, state):
    with pytest.raises(IndexError):
        small.cell_kind(state)
    with pytest.raises(IndexError):
        small.is_terminal(state)
    with pytest.raises(IndexError):
        small.is_goal(state)
    with pytest.raises(IndexError):
        small.is_start(state)
    with pytest.raises(IndexError):
        small.reward(state, SCHEDULE)
    with pytest.raises(IndexError):
        small.apply_action(state, RIGHT)
    with pytest.raises(IndexError):
        small.available_actions(state)
