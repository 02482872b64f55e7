from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, TYPE_CHECKING

from frozen_lake_hitl.utils.errors import ConfigurationError
from frozen_lake_hitl.utils.gridworld_core import RewardSchedule, validate_reward_schedule
from frozen_lake_hitl.utils.rng import DEFAULT_SEED

if TYPE_CHECKING:
    from frozen_lake_hitl.utils.gridworld_core import GridWorld  # pragma: no cover

MAP_CONFIGS: Dict[str, Tuple[str, ...]] = {
    "LINEAR_1x14": ("HFSFFFFFFFFFFG",),
    "SMALL_3x4": ("SFFF", "FHFH", "FFFG"),
    "STANDARD_4x4": ("SFFF", "FHFH", "FFFH", "HFFG"),
    "LARGE_8x8": (
        "SFFFFFFF",
        "FFFFFFFF",
        "FFFHFFFF",
        "FFFFFHFF",
        "FFFHFFFF",
        "FHHFFFHF",
        "FHFFHFHF",
        "FFFHFFFG",
    ),
}

# [hole, goal, frozen]
REWARD_SCHEDULES: Dict[str, RewardSchedule] = {
    "DEFAULT": (-10.0, 10.0, 0.0),
    "GENEROUS": (-5.0, 20.0, 0.0),
    "HARSH": (-20.0, 5.0, -1.0),
}

INTERVENTION_RULE_NAMES = ("suggestion", "reset", "interrupt", "impede")
DEFAULT_INTERVENTION_RULE = "suggestion"
DEFAULT_STEP_DELAY = 0.5


def load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


@dataclass
class LearningParams:
    """Tabular Q-learning hyperparameters and table dimensions.

    Attributes:
        learning_rate: Step size alpha in [0, 1].
        gamma: Discount factor in [0, 1].
        epsilon: Exploration rate for epsilon-greedy selection in [0, 1].
        state_size: Number of rows in the Q-table (``rows * cols``).
        action_size: Number of actions per state (always 4 on a grid).
        rows: Grid height used for available-action and geometry checks.
        cols: Grid width.
    """
    learning_rate: float = 0.8
    gamma: float = 0.95
    epsilon: float = 0.1
    state_size: int = 16
    action_size: int = 4
    rows: int = 4
    cols: int = 4

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in ("learning_rate", "gamma", "epsilon"):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.state_size <= 0 or self.action_size <= 0:
            raise ConfigurationError(
                f"Table dimensions must be positive, got {self.state_size}x{self.action_size}"
            )

    @classmethod
    def for_grid(cls, grid: "GridWorld", **overrides: Any) -> "LearningParams":
        """Derive sizes from ``grid``; only alpha/gamma/epsilon may be overridden."""
        base = {k: overrides[k] for k in ("learning_rate", "gamma", "epsilon") if k in overrides}
        return cls(
            state_size=grid.state_count,
            action_size=4,
            rows=grid.rows,
            cols=grid.cols,
            **base,
        )

    def updated(self, **changes: Any) -> "LearningParams":
        return replace(self, **changes)


@dataclass
class GameConfig:
    """Configuration consumed from outside the engine.

    Attributes:
        map_desc: Map rows of single-character cell codes (S, F, H, G).
        reward_schedule: ``(hole, goal, frozen)`` rewards.
        step_delay: Seconds between automatic ticks while running.
        seed: Seed for the shared RandomSource.
        intervention_rule: Rule applied when the supervisor relocates the agent.
        learning_rate: Alpha passed to ``LearningParams``.
        gamma: Discount passed to ``LearningParams``.
        epsilon: Exploration rate passed to ``LearningParams``.
    """
    map_desc: List[str] = field(default_factory=lambda: list(MAP_CONFIGS["STANDARD_4x4"]))
    reward_schedule: RewardSchedule = REWARD_SCHEDULES["DEFAULT"]
    step_delay: float = DEFAULT_STEP_DELAY
    seed: int = DEFAULT_SEED
    intervention_rule: str = DEFAULT_INTERVENTION_RULE
    learning_rate: float = 0.8
    gamma: float = 0.95
    epsilon: float = 0.1

    def __post_init__(self) -> None:
        self.reward_schedule = validate_reward_schedule(self.reward_schedule)
        if self.intervention_rule not in INTERVENTION_RULE_NAMES:
            raise ConfigurationError(f"Unknown intervention rule: {self.intervention_rule!r}")
        if self.step_delay < 0:
            raise ConfigurationError(f"step_delay must be non-negative, got {self.step_delay}")

    def learning_overrides(self) -> Dict[str, float]:
        return {"learning_rate": self.learning_rate, "gamma": self.gamma, "epsilon": self.epsilon}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "GameConfig":
        """Build a config from a mapping.

        ``map`` may be a preset name from ``MAP_CONFIGS`` or a list of rows;
        ``rewards`` may be a preset name from ``REWARD_SCHEDULES`` or a
        ``[hole, goal, frozen]`` triple. Learning values live under ``learning``.
        """
        raw_map = data.get("map", "STANDARD_4x4")
        if isinstance(raw_map, str):
            if raw_map not in MAP_CONFIGS:
                raise ConfigurationError(f"Unknown map preset: {raw_map!r}")
            map_desc = list(MAP_CONFIGS[raw_map])
        else:
            map_desc = [str(r) for r in raw_map]

        raw_rewards = data.get("rewards", "DEFAULT")
        if isinstance(raw_rewards, str):
            if raw_rewards not in REWARD_SCHEDULES:
                raise ConfigurationError(f"Unknown reward preset: {raw_rewards!r}")
            rewards = REWARD_SCHEDULES[raw_rewards]
        else:
            rewards = validate_reward_schedule(raw_rewards)

        learning = data.get("learning", {})
        return GameConfig(
            map_desc=map_desc,
            reward_schedule=rewards,
            step_delay=float(data.get("step_delay", DEFAULT_STEP_DELAY)),
            seed=int(data.get("seed", DEFAULT_SEED)),
            intervention_rule=str(data.get("intervention_rule", DEFAULT_INTERVENTION_RULE)),
            learning_rate=float(learning.get("learning_rate", 0.8)),
            gamma=float(learning.get("gamma", 0.95)),
            epsilon=float(learning.get("epsilon", 0.1)),
        )

    @staticmethod
    def from_json(path: Path) -> "GameConfig":
        return GameConfig.from_dict(load_json(Path(path)))
