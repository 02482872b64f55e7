"""Intervention rules applied when a supervisor relocates the agent.

Each rule is a pure function ``(table, params) -> table`` returning a new
array; the input is never mutated. Rules act on the action the agent had
*announced* for ``params.state`` and on the explicit ``state -> new_state``
transition. They never draw random numbers and never consult the grid's
available actions.

- ``suggestion``: reinforce the direction the supervisor moved the agent,
  with a fixed reward term of ``+1``.
- ``reset``: ordinary Bellman update of the announced action with the real reward.
- ``interrupt``: discard the timestep; the table is returned unchanged.
- ``impede``: penalize the announced action with a fixed reward term of ``-1``.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from frozen_lake_hitl.utils.config import DEFAULT_INTERVENTION_RULE, INTERVENTION_RULE_NAMES
from frozen_lake_hitl.utils.gridworld_core import DOWN, LEFT, RIGHT, UP

logger = logging.getLogger(__name__)

SUGGESTION_REWARD = 1.0
IMPEDE_REWARD = -1.0


@dataclass(frozen=True)
class InterventionParams:
    """Inputs shared by all intervention rules.

    Attributes:
        state: State the agent was dragged from.
        reward: Reward of the cell the agent was dropped on.
        new_state: State the agent was dropped on.
        action: Action announced for ``state`` before the intervention.
        learning_rate: Alpha.
        gamma: Discount factor.
        rows: Grid height (a single row means a 1-D map).
        cols: Grid width.
    """
    state: int
    reward: float
    new_state: int
    action: int
    learning_rate: float
    gamma: float
    rows: int
    cols: int


@dataclass(frozen=True)
class InterventionRecord:
    timestamp: float
    from_state: int
    to_state: int
    rule: str
    reward: float
    action: int
    action_kind: str


InterventionRule = Callable[[np.ndarray, InterventionParams], np.ndarray]


def _td_update(table: np.ndarray, state: int, action: int, target_reward: float,
               new_state: int, learning_rate: float, gamma: float) -> np.ndarray:
    out = np.array(table, dtype=float, copy=True)
    current = out[state, action]
    max_next = float(np.max(out[new_state]))
    out[state, action] = current + learning_rate * (target_reward + gamma * max_next - current)
    return out


def suggested_direction(params: InterventionParams) -> int:
    """Infer the direction of ``state -> new_state``.

    On a single-row map only the horizontal delta counts. Otherwise the axis
    with the larger absolute delta wins, and vertical wins ties.
    """
    old_row, old_col = divmod(params.state, params.cols)
    new_row, new_col = divmod(params.new_state, params.cols)
    col_diff = new_col - old_col
    if params.rows == 1:
        return RIGHT if col_diff > 0 else LEFT
    row_diff = new_row - old_row
    if abs(col_diff) > abs(row_diff):
        return RIGHT if col_diff > 0 else LEFT
    return DOWN if row_diff > 0 else UP


def suggestion_rule(table: np.ndarray, params: InterventionParams) -> np.ndarray:
    direction = suggested_direction(params)
    logger.debug(
        "suggestion: %d -> %d reinforces action %d", params.state, params.new_state, direction
    )
    return _td_update(table, params.state, direction, SUGGESTION_REWARD, params.new_state,
                      params.learning_rate, params.gamma)


def reset_rule(table: np.ndarray, params: InterventionParams) -> np.ndarray:
    return _td_update(table, params.state, params.action, params.reward, params.new_state,
                      params.learning_rate, params.gamma)


def interrupt_rule(table: np.ndarray, params: InterventionParams) -> np.ndarray:
    return np.array(table, dtype=float, copy=True)


def impede_rule(table: np.ndarray, params: InterventionParams) -> np.ndarray:
    return _td_update(table, params.state, params.action, IMPEDE_REWARD, params.new_state,
                      params.learning_rate, params.gamma)


INTERVENTION_RULES: Dict[str, InterventionRule] = {
    "suggestion": suggestion_rule,
    "reset": reset_rule,
    "interrupt": interrupt_rule,
    "impede": impede_rule,
}


def apply_intervention_rule(name: str, table: np.ndarray, params: InterventionParams) -> np.ndarray:
    """Dispatch to the named rule. Unknown names raise ``KeyError``."""
    return INTERVENTION_RULES[name](table, params)


class InterventionRuleEngine:
    """Holds the selected rule and the ordered, append-only intervention history."""

    def __init__(self, rule: str = DEFAULT_INTERVENTION_RULE):
        if rule not in INTERVENTION_RULES:
            raise KeyError(rule)
        self._rule = rule
        self._history: List[InterventionRecord] = []

    @property
    def rule(self) -> str:
        return self._rule

    def set_rule(self, name: str) -> bool:
        """Select a rule by name; returns False (and keeps the current one) if unknown."""
        if name not in INTERVENTION_RULES:
            logger.warning("Unknown intervention rule %r; keeping %r", name, self._rule)
            return False
        if name != self._rule:
            logger.info("Intervention rule switched to: %s", name)
        self._rule = name
        return True

    def apply(self, table: np.ndarray, params: InterventionParams, rule: Optional[str] = None) -> np.ndarray:
        return apply_intervention_rule(rule if rule is not None else self._rule, table, params)

    # --- history ---
    @property
    def history(self) -> Tuple[InterventionRecord, ...]:
        return tuple(self._history)

    def record(self, record: InterventionRecord) -> None:
        self._history.append(record)

    def clear_history(self) -> None:
        self._history.clear()
        logger.info("Intervention history cleared")

    def recent(self, count: int = 5) -> List[InterventionRecord]:
        """Most recent records, newest first."""
        if count <= 0:
            return []
        return list(reversed(self._history[-count:]))

    def by_rule(self, rule: str) -> List[InterventionRecord]:
        return [r for r in self._history if r.rule == rule]

    def stats(self) -> Dict[str, object]:
        total = len(self._history)
        by_rule = {name: 0 for name in INTERVENTION_RULE_NAMES}
        by_rule.update(Counter(r.rule for r in self._history))
        by_rule_pct = {name: (100.0 * n / total if total else 0.0) for name, n in by_rule.items()}
        by_kind = dict(Counter(r.action_kind for r in self._history))
        avg_reward = sum(r.reward for r in self._history) / total if total else 0.0
        return {
            "total": total,
            "by_rule": by_rule,
            "by_rule_percentage": by_rule_pct,
            "by_action_kind": by_kind,
            "average_reward": avg_reward,
            "last": self._history[-1] if self._history else None,
        }
