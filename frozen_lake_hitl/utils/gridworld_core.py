from __future__ import annotations

import logging
import operator
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from frozen_lake_hitl.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Actions follow the FrozenLake convention: 0:LEFT, 1:DOWN, 2:RIGHT, 3:UP
LEFT, DOWN, RIGHT, UP = 0, 1, 2, 3
ACTIONS = (LEFT, DOWN, RIGHT, UP)
ACTION_NAMES = {LEFT: "LEFT", DOWN: "DOWN", RIGHT: "RIGHT", UP: "UP"}
ACTION_ARROWS = {LEFT: "←", DOWN: "↓", RIGHT: "→", UP: "↑"}
TERMINAL_MARK = "■"

RewardSchedule = Tuple[float, float, float]


class CellKind(str, Enum):
    """Cell classification; values are the single-character map codes."""

    START = "S"
    FROZEN = "F"
    HOLE = "H"
    GOAL = "G"


class GridWorld:
    """Static frozen-lake geometry addressed by ``state = row * cols + col``.

    The map is parsed once from a list of equal-length row strings and is
    read-only afterwards. Moving off the grid is a no-op (the agent stays in
    place) and there is no wraparound.

    Args:
        desc: Map rows, e.g. ``["SFFF", "FHFH", "FFFG"]``.
        strict: If True (default) a map without a Start cell is rejected.
            Otherwise ``start_state()`` falls back to state 0.

    Raises:
        ConfigurationError: Empty map, ragged rows or unknown cell codes.
    """

    def __init__(self, desc: Sequence[str], strict: bool = True):
        rows = [str(r) for r in desc]
        if not rows or not rows[0]:
            raise ConfigurationError("Map description is empty")
        width = len(rows[0])
        for i, row in enumerate(rows):
            if len(row) != width:
                raise ConfigurationError(
                    f"Inconsistent row length at row {i}: expected {width}, got {len(row)}"
                )
        codes = {k.value for k in CellKind}
        cells: List[CellKind] = []
        for r, row in enumerate(rows):
            for c, ch in enumerate(row):
                if ch not in codes:
                    raise ConfigurationError(f"Unknown cell code {ch!r} at ({r}, {c})")
                cells.append(CellKind(ch))

        self.desc: Tuple[str, ...] = tuple(rows)
        self.rows = len(rows)
        self.cols = width
        self._cells: Tuple[CellKind, ...] = tuple(cells)
        self._start = self._find_start()
        if self._start is None:
            if strict:
                raise ConfigurationError("Map has no Start ('S') cell")
            logger.warning("Map has no Start cell; falling back to state 0")

    def _find_start(self) -> int | None:
        for s, kind in enumerate(self._cells):
            if kind is CellKind.START:
                return s
        return None

    @property
    def state_count(self) -> int:
        return self.rows * self.cols

    def is_valid_state(self, state: int) -> bool:
        try:
            index = operator.index(state)
        except TypeError:
            return False
        return 0 <= index < self.state_count

    def position(self, state: int) -> Tuple[int, int]:
        """Return ``(row, col)`` for a state index."""
        if not self.is_valid_state(state):
            raise IndexError(f"State {state} outside grid of {self.state_count} cells")
        return state // self.cols, state % self.cols

    def to_state(self, row: int, col: int) -> int:
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f"Position ({row}, {col}) outside {self.rows}x{self.cols} grid")
        return row * self.cols + col

    def cell_kind(self, state: int) -> CellKind:
        """Cell at ``state``; out-of-range indices, negative ones included, raise ``IndexError``."""
        if not self.is_valid_state(state):
            raise IndexError(f"State {state} outside grid of {self.state_count} cells")
        return self._cells[state]

    def is_start(self, state: int) -> bool:
        return self.cell_kind(state) is CellKind.START

    def is_terminal(self, state: int) -> bool:
        """Holes and goals end the episode."""
        return self.cell_kind(state) in (CellKind.HOLE, CellKind.GOAL)

    def is_goal(self, state: int) -> bool:
        return self.cell_kind(state) is CellKind.GOAL

    def reward(self, state: int, schedule: Sequence[float]) -> float:
        """Reward for landing on ``state`` under ``(hole, goal, frozen)``; Start counts as Frozen."""
        hole, goal, frozen = schedule
        kind = self.cell_kind(state)
        if kind is CellKind.HOLE:
            return float(hole)
        if kind is CellKind.GOAL:
            return float(goal)
        return float(frozen)

    def available_actions(self, state: int) -> Tuple[int, ...]:
        """Actions that keep the agent on the grid, in ``ACTIONS`` order."""
        self.position(state)
        return available_actions_for(state, self.rows, self.cols)

    def start_state(self) -> int:
        return 0 if self._start is None else self._start

    def apply_action(self, state: int, action: int) -> int:
        """Pure one-step transition; a move off the grid leaves the state unchanged."""
        row, col = self.position(state)
        if action == LEFT and col > 0:
            return state - 1
        if action == DOWN and row < self.rows - 1:
            return state + self.cols
        if action == RIGHT and col < self.cols - 1:
            return state + 1
        if action == UP and row > 0:
            return state - self.cols
        return state

    def describe(self) -> Dict[str, object]:
        return {
            "desc": list(self.desc),
            "rows": self.rows,
            "cols": self.cols,
            "start": self.start_state(),
            "holes": [s for s, k in enumerate(self._cells) if k is CellKind.HOLE],
            "goals": [s for s, k in enumerate(self._cells) if k is CellKind.GOAL],
        }


def validate_reward_schedule(schedule: Sequence[float]) -> RewardSchedule:
    """Coerce a ``(hole, goal, frozen)`` triple, rejecting any other shape."""
    values = list(schedule)
    if len(values) != 3:
        raise ConfigurationError(
            f"Reward schedule must be [hole, goal, frozen], got {len(values)} values"
        )
    try:
        hole, goal, frozen = (float(v) for v in values)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Reward schedule values must be numeric: {values!r}") from exc
    return hole, goal, frozen


def available_actions_for(state: int, rows: int, cols: int) -> Tuple[int, ...]:
    """Boundary-checked actions for ``state`` on a ``rows x cols`` grid (no wraparound)."""
    row, col = state // cols, state % cols
    valid: List[int] = []
    if col > 0:
        valid.append(LEFT)
    if row < rows - 1:
        valid.append(DOWN)
    if col < cols - 1:
        valid.append(RIGHT)
    if row > 0:
        valid.append(UP)
    return tuple(valid)
