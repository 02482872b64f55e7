from __future__ import annotations

import logging
import operator
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np

from frozen_lake_hitl.utils.config import LearningParams
from frozen_lake_hitl.utils.gridworld_core import (
    ACTION_ARROWS,
    LEFT,
    TERMINAL_MARK,
    available_actions_for,
)
from frozen_lake_hitl.utils.rng import RandomSource

if TYPE_CHECKING:
    from frozen_lake_hitl.utils.gridworld_core import GridWorld  # pragma: no cover

logger = logging.getLogger(__name__)

# Returned when a state has no on-grid action (only possible on a 1x1 map).
DEFAULT_ACTION = LEFT


class ActionKind(str, Enum):
    EXPLORATION = "exploration"
    EXPLOITATION = "exploitation"


@dataclass(frozen=True)
class AnnouncedAction:
    """What the policy decided for ``state`` the last time it was asked.

    Attributes:
        state: State the decision was made for.
        action: Selected action index.
        kind: Whether the epsilon draw led to exploration or exploitation.
        random_draw: The uniform value compared against epsilon.
        timestamp: Wall-clock time of the decision (seconds since epoch).
    """
    state: int
    action: int
    kind: ActionKind
    random_draw: float
    timestamp: float


@dataclass(frozen=True)
class QTableStats:
    min: float
    max: float
    mean: float
    std: float


class QLearningEngine:
    """Tabular Q-learning with an epsilon-greedy policy and action announcements.

    The engine exclusively owns the Q-table and the announcement map. Every
    call to ``choose_action`` draws from the shared ``RandomSource`` and
    overwrites the announcement for that state; ``get_announced_action`` is a
    pure lookup and is the only way interventions learn what the agent
    intended to do.

    Args:
        params: Hyperparameters and table dimensions.
        rng: Shared random source. A fresh default-seeded one if omitted.
        initial_table: Optional starting table of shape
            ``(state_size, action_size)``; copied.
    """

    def __init__(
        self,
        params: LearningParams,
        rng: Optional[RandomSource] = None,
        initial_table: Optional[Sequence[Sequence[float]]] = None,
    ):
        self._params = params
        self.rng = rng if rng is not None else RandomSource()
        self._announcements: Dict[int, AnnouncedAction] = {}
        self._current: Optional[AnnouncedAction] = None
        if initial_table is not None:
            table = np.array(initial_table, dtype=float)
            self._check_shape(table)
            self._q = table
        else:
            self._q = self._zeros()

    # --- table ownership ---
    @property
    def params(self) -> LearningParams:
        return self._params

    @property
    def q_table(self) -> np.ndarray:
        """Read-only snapshot of the current table."""
        snap = self._q.copy()
        snap.flags.writeable = False
        return snap

    def _zeros(self) -> np.ndarray:
        return np.zeros((self._params.state_size, self._params.action_size), dtype=float)

    def _check_shape(self, table: np.ndarray) -> None:
        expected = (self._params.state_size, self._params.action_size)
        if table.shape != expected:
            raise ValueError(f"Q-table shape {table.shape} does not match {expected}")

    def update_q_table(self, new_table: Any) -> None:
        """Replace the whole table, e.g. with an intervention rule's result."""
        table = np.array(new_table, dtype=float)
        self._check_shape(table)
        self._q = table

    def reset_q_table(self) -> None:
        self._q = self._zeros()
        self.clear_announcements()
        logger.info("Q-table reset to zeros (%dx%d)", *self._q.shape)

    def resize(self, state_size: int, action_size: int = 4) -> None:
        self.set_learning_params(state_size=state_size, action_size=action_size)

    def set_learning_params(self, **changes: Any) -> LearningParams:
        """Apply parameter changes; any dimension change reallocates a zeroed table.

        Changing ``rows``/``cols`` without an explicit ``state_size`` derives
        ``state_size = rows * cols``.
        """
        prev = self._params
        if ("rows" in changes or "cols" in changes) and "state_size" not in changes:
            changes["state_size"] = int(changes.get("rows", prev.rows)) * int(changes.get("cols", prev.cols))
        updated = prev.updated(**changes)
        dims_changed = (
            updated.state_size != prev.state_size
            or updated.action_size != prev.action_size
            or updated.rows != prev.rows
            or updated.cols != prev.cols
        )
        self._params = updated
        if dims_changed:
            self._q = self._zeros()
            self.clear_announcements()
            logger.info("Q-table reallocated to %dx%d", updated.state_size, updated.action_size)
        return updated

    def set_seed(self, seed: int) -> None:
        self.rng.reseed(seed)

    def is_valid_state(self, state: int) -> bool:
        try:
            index = operator.index(state)
        except TypeError:
            return False
        return 0 <= index < self._params.state_size

    # --- policy ---
    def available_actions(self, state: int) -> Tuple[int, ...]:
        return available_actions_for(state, self._params.rows, self._params.cols)

    def _best_from(self, state: int, valids: Sequence[int]) -> Tuple[int, float]:
        q = self._q[state]
        max_q = max(float(q[a]) for a in valids)
        cand = [a for a in valids if float(q[a]) == max_q]
        return int(self.rng.choice(cand)), max_q

    def choose_action(self, state: int) -> int:
        """Epsilon-greedy selection over the on-grid actions of ``state``.

        One uniform draw decides exploration (``draw < epsilon``: uniform over
        available actions) versus exploitation (arg-max Q with random
        tie-break). The decision is stored as the announcement for ``state``.
        An out-of-range state is logged and answered with ``DEFAULT_ACTION``
        without drawing or announcing.
        """
        if not self.is_valid_state(state):
            logger.error("Invalid state: %s", state)
            return DEFAULT_ACTION
        valids = self.available_actions(state)
        if not valids:
            logger.warning("State %d has no available actions; using default action", state)
            return DEFAULT_ACTION

        draw = self.rng.uniform()
        if draw < self._params.epsilon:
            action = int(self.rng.choice(valids))
            kind = ActionKind.EXPLORATION
        else:
            action, _ = self._best_from(state, valids)
            kind = ActionKind.EXPLOITATION

        info = AnnouncedAction(
            state=int(state),
            action=action,
            kind=kind,
            random_draw=draw,
            timestamp=time.time(),
        )
        self._announcements[int(state)] = info
        self._current = info
        logger.debug("Announced %s action %d for state %d (draw=%.4f)", kind.value, action, state, draw)
        return action

    def get_announced_action(self, state: int) -> Optional[AnnouncedAction]:
        return self._announcements.get(int(state))

    @property
    def current_announcement(self) -> Optional[AnnouncedAction]:
        """Most recent announcement, for display."""
        return self._current

    def clear_announcements(self) -> None:
        self._announcements.clear()
        self._current = None

    # --- learning ---
    def update_q_value(self, state: int, action: int, reward: float, new_state: int) -> Optional[float]:
        """Bellman update ``Q[s][a] += alpha * (r + gamma * max Q[s'] - Q[s][a])``.

        The max runs over all actions of ``new_state``, reachable or not.
        Returns the new value of ``Q[s][a]``, or None (table untouched) when
        a state or the action is out of range.
        """
        if not (self.is_valid_state(state) and self.is_valid_state(new_state)):
            logger.error("Invalid state in Q update: %s -> %s", state, new_state)
            return None
        if not 0 <= action < self._params.action_size:
            logger.error("Invalid action in Q update: %s", action)
            return None
        table = self._q.copy()
        current = table[state, action]
        max_next = float(np.max(table[new_state]))
        td_error = reward + self._params.gamma * max_next - current
        table[state, action] = current + self._params.learning_rate * td_error
        self._q = table
        return float(table[state, action])

    # --- analysis ---
    def best_action(self, state: int) -> Tuple[int, float]:
        """Greedy action among available ones and its Q-value.

        Ties resolve to the lowest action index so that read-only analysis
        never advances the shared random source.
        """
        valids = self.available_actions(state) if self.is_valid_state(state) else ()
        if not valids:
            return DEFAULT_ACTION, 0.0
        q = self._q[state]
        best = max(valids, key=lambda a: (float(q[a]), -a))
        return int(best), float(q[best])

    def policy(self) -> List[int]:
        return [self.best_action(s)[0] for s in range(self._params.state_size)]

    def stats(self) -> QTableStats:
        q = self._q
        return QTableStats(
            min=float(np.min(q)),
            max=float(np.max(q)),
            mean=float(np.mean(q)),
            std=float(np.std(q)),
        )

    def directions(self, grid: "GridWorld", blank_unvisited: bool = False) -> List[List[str]]:
        """Arrow grid of the greedy policy; Hole and Goal cells are marked with a block.

        With ``blank_unvisited`` a non-terminal state whose row is still all
        zeros gets an empty label instead of its tie-break arrow.
        """
        out: List[List[str]] = []
        for row in range(grid.rows):
            line: List[str] = []
            for col in range(grid.cols):
                s = grid.to_state(row, col)
                if grid.is_terminal(s):
                    line.append(TERMINAL_MARK)
                elif blank_unvisited and not self._q[s].any():
                    line.append("")
                else:
                    line.append(ACTION_ARROWS[self.best_action(s)[0]])
            out.append(line)
        return out
