"""Frozen-lake episode controller with human interventions.

This module defines:
- ``ControllerState`` and the ``AgentState``/``GameStatus`` read models.
- ``StepResult`` and ``InterventionResult``, the soft-fail results returned
  by ``step`` and ``intervene``.
- ``EpisodeController``, the episodic state machine that executes announced
  actions, hands interventions to the rule engine, tracks statistics and
  schedules the automatic episode reset.
- ``create_engine`` / ``from_config`` / ``from_json`` constructors.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from frozen_lake_hitl.agents.interventions import (
    INTERVENTION_RULES,
    InterventionParams,
    InterventionRecord,
    InterventionRuleEngine,
)
from frozen_lake_hitl.agents.q_learning import AnnouncedAction, QLearningEngine, QTableStats
from frozen_lake_hitl.engine.scheduler import Scheduler, TaskHandle
from frozen_lake_hitl.engine.stats import EpisodeStats, RunningTotals
from frozen_lake_hitl.utils.config import (
    DEFAULT_INTERVENTION_RULE,
    DEFAULT_STEP_DELAY,
    GameConfig,
    LearningParams,
)
from frozen_lake_hitl.utils.errors import ConfigurationError, Failure
from frozen_lake_hitl.utils.gridworld_core import GridWorld, RewardSchedule, validate_reward_schedule
from frozen_lake_hitl.utils.rng import DEFAULT_SEED, RandomSource

logger = logging.getLogger(__name__)

# Seconds between an episode ending and the agent returning to the start cell.
EPISODE_RESET_DELAY = 1.0
INTERVENTION_RESET_DELAY = 1.5
AUTO_RESUME_DELAY = 0.5


class ControllerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class AgentState:
    current_state: int
    total_reward: float = 0.0
    steps: int = 0
    last_reward: float = 0.0
    is_done: bool = False


@dataclass(frozen=True)
class GameStatus:
    running: bool
    paused: bool
    intervening: bool
    training: bool
    dragging: bool


@dataclass(frozen=True)
class StepResult:
    ok: bool
    reason: Optional[Failure] = None
    state: Optional[int] = None
    action: Optional[int] = None
    reward: float = 0.0
    new_state: Optional[int] = None
    done: bool = False
    success: bool = False

    @classmethod
    def failure(cls, reason: Failure, state: Optional[int] = None) -> "StepResult":
        return cls(ok=False, reason=reason, state=state)


@dataclass(frozen=True)
class InterventionResult:
    ok: bool
    reason: Optional[Failure] = None
    record: Optional[InterventionRecord] = None
    done: bool = False
    success: bool = False

    @classmethod
    def failure(cls, reason: Failure) -> "InterventionResult":
        return cls(ok=False, reason=reason)


StepCallback = Callable[[int, int, float, int], None]
EpisodeEndCallback = Callable[[EpisodeStats], None]
InterventionCallback = Callable[[InterventionRecord], None]


class EpisodeController:
    """Episodic state machine driving one agent on a ``GridWorld``.

    States are ``STOPPED``, ``RUNNING`` and ``PAUSED``; ``intervening`` is a
    transient flag layered on top while an intervention is processed and is
    the only mutual-exclusion mechanism. Time is explicit: ``update(dt)``
    advances the scheduler (episode auto-reset and auto-resume) and performs
    an automatic step whenever ``step_delay`` seconds have accumulated while
    running, not intervening and not dragging.

    Every mutation of the Q-table goes through ``QLearningEngine``; rules in
    ``InterventionRuleEngine`` work on a snapshot that is committed only once
    they return.

    Args:
        grid: Map geometry.
        reward_schedule: ``(hole, goal, frozen)`` rewards.
        learner: Q-learning engine whose table matches ``grid``.
        interventions: Rule engine and history; a default one if omitted.
        step_delay: Seconds between automatic steps while running.
        scheduler: Delayed-task queue; a fresh one if omitted.
        on_step: Called with ``(state, action, reward, new_state)`` after each step.
        on_episode_end: Called with the aggregate ``EpisodeStats`` when an episode ends.
        on_intervention: Called with each new ``InterventionRecord``.
    """

    def __init__(
        self,
        grid: GridWorld,
        reward_schedule: Sequence[float],
        learner: QLearningEngine,
        interventions: Optional[InterventionRuleEngine] = None,
        step_delay: float = DEFAULT_STEP_DELAY,
        scheduler: Optional[Scheduler] = None,
        on_step: Optional[StepCallback] = None,
        on_episode_end: Optional[EpisodeEndCallback] = None,
        on_intervention: Optional[InterventionCallback] = None,
    ):
        if learner.params.state_size != grid.state_count:
            raise ConfigurationError(
                f"Q-table has {learner.params.state_size} states but the map has {grid.state_count}"
            )
        self.grid = grid
        self.reward_schedule: RewardSchedule = validate_reward_schedule(reward_schedule)
        self.learner = learner
        self.interventions = interventions if interventions is not None else InterventionRuleEngine()
        self.scheduler = scheduler if scheduler is not None else Scheduler()
        self.step_delay = float(step_delay)
        self.on_step = on_step
        self.on_episode_end = on_episode_end
        self.on_intervention = on_intervention

        self.training = True
        self.totals = RunningTotals()
        self._state = ControllerState.STOPPED
        self._intervening = False
        self._dragging = False
        self._auto_paused = False
        self._accum = 0.0
        self._pending: List[TaskHandle] = []
        self._agent = AgentState(current_state=grid.start_state())
        self._clear_episode_counters()

    # --- read model ---
    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def intervening(self) -> bool:
        return self._intervening

    @property
    def agent_state(self) -> AgentState:
        return replace(self._agent)

    @property
    def episode_stats(self) -> EpisodeStats:
        return self.totals.snapshot()

    @property
    def q_table(self) -> np.ndarray:
        return self.learner.q_table

    @property
    def intervention_history(self) -> Tuple[InterventionRecord, ...]:
        return self.interventions.history

    @property
    def intervention_rule(self) -> str:
        return self.interventions.rule

    @property
    def status(self) -> GameStatus:
        return GameStatus(
            running=self._state is ControllerState.RUNNING,
            paused=self._state is ControllerState.PAUSED,
            intervening=self._intervening,
            training=self.training,
            dragging=self._dragging,
        )

    @property
    def pending_action(self) -> Optional[AnnouncedAction]:
        """Announcement for the agent's current state, if any."""
        if self._agent.is_done:
            return None
        return self.learner.get_announced_action(self._agent.current_state)

    def policy(self) -> List[int]:
        return self.learner.policy()

    def q_table_stats(self) -> QTableStats:
        return self.learner.stats()

    def intervention_stats(self) -> Dict[str, object]:
        return self.interventions.stats()

    # --- configuration surface ---
    def set_intervention_rule(self, name: str) -> bool:
        return self.interventions.set_rule(name)

    def set_step_delay(self, seconds: float) -> None:
        self.step_delay = max(0.0, float(seconds))
        logger.info("Agent step delay set to %.3fs", self.step_delay)

    def begin_drag(self) -> None:
        self._dragging = True

    def end_drag(self) -> None:
        self._dragging = False

    # --- drive loop ---
    def announce(self) -> Optional[AnnouncedAction]:
        """Request an announcement for the current state unless one is pending."""
        if self._agent.is_done:
            return None
        s = self._agent.current_state
        if not self.grid.is_valid_state(s):
            logger.error("Invalid state: %s", s)
            return None
        existing = self.learner.get_announced_action(s)
        if existing is not None:
            return existing
        self.learner.choose_action(s)
        return self.learner.get_announced_action(s)

    def start(self) -> None:
        if self._state is ControllerState.RUNNING:
            return
        self._state = ControllerState.RUNNING
        self._auto_paused = False
        self.announce()
        logger.info("Training running from state %d", self._agent.current_state)

    def pause(self) -> None:
        """Freeze automatic ticking; an explicit pause also cancels any pending auto-resume."""
        self._auto_paused = False
        if self._state is ControllerState.RUNNING:
            self._state = ControllerState.PAUSED
            logger.info("Training paused")

    def step(self) -> StepResult:
        """Execute the pending announced action for the current state.

        No-op (with a failure result) when the episode is over, when no
        action has been announced, or while an intervention is in flight.
        """
        if self._intervening:
            return StepResult.failure(Failure.BUSY)
        s = self._agent.current_state
        if not self.grid.is_valid_state(s):
            logger.error("Invalid state: %s", s)
            return StepResult.failure(Failure.INVALID_STATE, s)
        if self._agent.is_done or self.grid.is_terminal(s):
            return StepResult.failure(Failure.EPISODE_DONE, s)
        announced = self.learner.get_announced_action(s)
        if announced is None:
            return StepResult.failure(Failure.NO_PENDING_ACTION, s)

        a = announced.action
        s2 = self.grid.apply_action(s, a)
        if s2 == s:
            logger.debug("Blocked move: action %d at state %d", a, s)
        r = self.grid.reward(s2, self.reward_schedule)
        done = self.grid.is_terminal(s2)

        self.learner.update_q_value(s, a, r, s2)
        self._advance_agent(s2, r, done)
        if self.on_step is not None:
            self.on_step(s, a, r, s2)

        success = done and self.grid.is_goal(s2)
        if done:
            self._finish_episode(s2, r, via_intervention=False)
        else:
            self.learner.choose_action(s2)
        return StepResult(ok=True, state=s, action=a, reward=r, new_state=s2, done=done, success=success)

    def intervene(self, from_state: int, to_state: int, rule: Optional[str] = None) -> InterventionResult:
        """Relocate the agent and update the Q-table with an intervention rule.

        The rule is applied against the action already announced for
        ``from_state``; nothing is resampled. Afterwards the agent state and
        episode accounting advance exactly as for a step, including episode
        termination on a hole or goal.

        Args:
            from_state: Must equal the agent's current state.
            to_state: Cell the agent was dropped on.
            rule: Rule name; the selected rule if omitted.

        Returns:
            ``InterventionResult`` with the new record, or the failure reason.
        """
        if self._intervening:
            logger.warning("Intervention in progress; rejecting %s -> %s", from_state, to_state)
            return InterventionResult.failure(Failure.BUSY)
        if not self.grid.is_valid_state(from_state):
            logger.error("Invalid start state: %s", from_state)
            return InterventionResult.failure(Failure.INVALID_STATE)
        if not self.grid.is_valid_state(to_state):
            logger.error("Invalid target state: %s", to_state)
            return InterventionResult.failure(Failure.INVALID_STATE)
        rule_name = rule if rule is not None else self.interventions.rule
        if rule_name not in INTERVENTION_RULES:
            logger.error("Unknown intervention rule: %r", rule_name)
            return InterventionResult.failure(Failure.UNKNOWN_RULE)
        if from_state != self._agent.current_state:
            logger.warning(
                "Intervention from %d but agent is at %d", from_state, self._agent.current_state
            )
            return InterventionResult.failure(Failure.STATE_MISMATCH)
        if self._agent.is_done:
            return InterventionResult.failure(Failure.EPISODE_DONE)
        announced = self.learner.get_announced_action(from_state)
        if announced is None:
            logger.error("No announced action for state %d; cannot apply intervention", from_state)
            return InterventionResult.failure(Failure.NO_ANNOUNCEMENT)

        self._intervening = True
        try:
            reward = self.grid.reward(to_state, self.reward_schedule)
            done = self.grid.is_terminal(to_state)
            params = self.learner.params
            rule_params = InterventionParams(
                state=from_state,
                reward=reward,
                new_state=to_state,
                action=announced.action,
                learning_rate=params.learning_rate,
                gamma=params.gamma,
                rows=params.rows,
                cols=params.cols,
            )
            new_table = self.interventions.apply(self.learner.q_table, rule_params, rule_name)
            self.learner.update_q_table(new_table)

            record = InterventionRecord(
                timestamp=time.time(),
                from_state=from_state,
                to_state=to_state,
                rule=rule_name,
                reward=reward,
                action=announced.action,
                action_kind=announced.kind.value,
            )
            self.interventions.record(record)
            self._episode_interventions += 1
            self._advance_agent(to_state, reward, done)
            logger.info(
                "Intervention applied: %s rule, %d -> %d (announced %s action %d, reward %+.2f)",
                rule_name, from_state, to_state, announced.kind.value, announced.action, reward,
            )
            if self.on_intervention is not None:
                self.on_intervention(record)

            success = done and self.grid.is_goal(to_state)
            if done:
                self._finish_episode(to_state, reward, via_intervention=True)
            else:
                self.learner.choose_action(to_state)
        finally:
            self._intervening = False
        return InterventionResult(ok=True, record=record, done=done, success=success)

    def update(self, dt: float) -> Optional[StepResult]:
        """Advance time by ``dt`` seconds; returns the result of an automatic step, if one ran."""
        self.scheduler.advance(dt)
        if (
            self._state is not ControllerState.RUNNING
            or self._intervening
            or self._dragging
            or self._agent.is_done
        ):
            return None
        self._accum += dt
        if self._accum < self.step_delay:
            return None
        self._accum = 0.0
        return self.step()

    def reset(self) -> None:
        """Stop and clear the agent, statistics and intervention history.

        Pending auto-reset/auto-resume tasks are cancelled. The Q-table is
        kept; use ``reset_q_table`` for that.
        """
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        self._state = ControllerState.STOPPED
        self._intervening = False
        self._dragging = False
        self._auto_paused = False
        self._accum = 0.0
        self._agent = AgentState(current_state=self.grid.start_state())
        self._clear_episode_counters()
        self.totals.clear()
        self.interventions.clear_history()
        self.learner.clear_announcements()
        logger.info("Controller reset")

    def reset_q_table(self) -> None:
        self.learner.reset_q_table()
        if self._state is ControllerState.RUNNING:
            self.announce()

    # --- internals ---
    def _clear_episode_counters(self) -> None:
        self._episode_reward = 0.0
        self._episode_steps = 0
        self._episode_interventions = 0

    def _advance_agent(self, new_state: int, reward: float, done: bool) -> None:
        prev = self._agent
        self._agent = AgentState(
            current_state=new_state,
            total_reward=prev.total_reward + reward,
            steps=prev.steps + 1,
            last_reward=reward,
            is_done=done,
        )
        self._episode_reward += reward
        self._episode_steps += 1

    def _schedule(self, delay: float, callback: Callable[..., Any], label: str) -> None:
        self._pending = [h for h in self._pending if h.pending]
        self._pending.append(self.scheduler.call_later(delay, callback, label=label))

    def _finish_episode(self, final_state: int, reward: float, via_intervention: bool) -> None:
        success = self.grid.is_goal(final_state)
        stats = self.totals.record_episode_end(
            success=success,
            reward=self._episode_reward,
            steps=self._episode_steps,
            interventions=self._episode_interventions,
            last_reward=reward,
        )
        logger.info(
            "Episode %d ended on %s (%s), reward %+.2f, success rate %.2f",
            stats.episode,
            self.grid.cell_kind(final_state).name,
            "intervention" if via_intervention else "step",
            self._episode_reward,
            stats.success_rate,
        )
        if self.on_episode_end is not None:
            self.on_episode_end(stats)

        if via_intervention and self._state is ControllerState.RUNNING:
            self._state = ControllerState.PAUSED
            self._auto_paused = True
            self._schedule(INTERVENTION_RESET_DELAY, self._reset_episode_then_resume, "episode-reset")
        else:
            self._schedule(EPISODE_RESET_DELAY, self._reset_episode, "episode-reset")

    def _reset_episode(self) -> None:
        self._agent = AgentState(current_state=self.grid.start_state())
        self._clear_episode_counters()
        self._accum = 0.0
        self.learner.clear_announcements()
        logger.debug("Episode reset to start state %d", self._agent.current_state)
        if self._state is ControllerState.RUNNING:
            self.announce()

    def _reset_episode_then_resume(self) -> None:
        self._reset_episode()
        self._schedule(AUTO_RESUME_DELAY, self._auto_resume, "auto-resume")

    def _auto_resume(self) -> None:
        if self._auto_paused and self._state is ControllerState.PAUSED and self.training:
            logger.debug("Auto-resuming after intervention-ended episode")
            self.start()
        self._auto_paused = False


LearningSpec = Union[LearningParams, Mapping[str, Any], None]


def create_engine(
    map_description: Sequence[str],
    reward_schedule: Sequence[float],
    learning_params: LearningSpec = None,
    *,
    seed: int = DEFAULT_SEED,
    step_delay: float = DEFAULT_STEP_DELAY,
    intervention_rule: str = DEFAULT_INTERVENTION_RULE,
    strict: bool = True,
) -> EpisodeController:
    """Build a ready-to-drive controller from plain configuration values.

    Table dimensions always come from the map; from ``learning_params`` only
    ``learning_rate``, ``gamma`` and ``epsilon`` are used.

    Raises:
        ConfigurationError: Malformed map, reward schedule, parameters or rule name.
    """
    grid = GridWorld(map_description, strict=strict)
    if isinstance(learning_params, LearningParams):
        overrides: Dict[str, Any] = {
            "learning_rate": learning_params.learning_rate,
            "gamma": learning_params.gamma,
            "epsilon": learning_params.epsilon,
        }
    else:
        overrides = dict(learning_params or {})
    params = LearningParams.for_grid(grid, **overrides)
    if intervention_rule not in INTERVENTION_RULES:
        raise ConfigurationError(f"Unknown intervention rule: {intervention_rule!r}")
    learner = QLearningEngine(params, rng=RandomSource(seed))
    return EpisodeController(
        grid,
        reward_schedule,
        learner,
        interventions=InterventionRuleEngine(intervention_rule),
        step_delay=step_delay,
    )


def from_config(cfg: GameConfig) -> EpisodeController:
    return create_engine(
        cfg.map_desc,
        cfg.reward_schedule,
        cfg.learning_overrides(),
        seed=cfg.seed,
        step_delay=cfg.step_delay,
        intervention_rule=cfg.intervention_rule,
    )


def from_json(path: Path) -> EpisodeController:
    """Load a controller from a JSON file (see ``GameConfig.from_dict`` for keys)."""
    return from_config(GameConfig.from_json(Path(path)))
