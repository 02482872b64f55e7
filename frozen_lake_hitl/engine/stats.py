from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class EpisodeStats:
    """Aggregate read model exposed to UIs and exporters."""
    episode: int = 0
    total_reward: float = 0.0
    steps: int = 0
    last_reward: float = 0.0
    interventions: int = 0
    success_rate: float = 0.0


@dataclass
class RunningTotals:
    """Cumulative training statistics, append-only until ``clear``.

    ``record_episode_end`` is the single entry point that advances the
    totals, whatever ended the episode (a step or an intervention).
    """
    episodes: int = 0
    successes: int = 0
    total_reward: float = 0.0
    total_steps: int = 0
    total_interventions: int = 0
    last_reward: float = 0.0
    episode_rewards: List[float] = field(default_factory=list)
    episode_steps: List[int] = field(default_factory=list)
    episode_interventions: List[int] = field(default_factory=list)
    episode_outcomes: List[bool] = field(default_factory=list)

    def record_episode_end(self, success: bool, reward: float, steps: int, interventions: int,
                           last_reward: float = 0.0) -> EpisodeStats:
        self.episodes += 1
        if success:
            self.successes += 1
        self.total_reward += reward
        self.total_steps += steps
        self.total_interventions += interventions
        self.last_reward = last_reward
        self.episode_rewards.append(float(reward))
        self.episode_steps.append(int(steps))
        self.episode_interventions.append(int(interventions))
        self.episode_outcomes.append(bool(success))
        return self.snapshot()

    @property
    def success_rate(self) -> float:
        return self.successes / self.episodes if self.episodes else 0.0

    def batch_success_rate(self) -> float:
        """Success rate recomputed from the full per-episode history."""
        n = len(self.episode_outcomes)
        return sum(self.episode_outcomes) / n if n else 0.0

    def learning_progress(self, window: int = 10) -> List[float]:
        """Mean episode reward over consecutive windows of ``window`` episodes."""
        out: List[float] = []
        for i in range(0, len(self.episode_rewards), window):
            chunk = self.episode_rewards[i:i + window]
            out.append(sum(chunk) / len(chunk))
        return out

    def snapshot(self) -> EpisodeStats:
        return EpisodeStats(
            episode=self.episodes,
            total_reward=self.total_reward,
            steps=self.total_steps,
            last_reward=self.last_reward,
            interventions=self.total_interventions,
            success_rate=self.success_rate,
        )

    def clear(self) -> None:
        self.episodes = 0
        self.successes = 0
        self.total_reward = 0.0
        self.total_steps = 0
        self.total_interventions = 0
        self.last_reward = 0.0
        self.episode_rewards.clear()
        self.episode_steps.clear()
        self.episode_interventions.clear()
        self.episode_outcomes.clear()
