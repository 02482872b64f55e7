from __future__ import annotations

import logging
from pathlib import Path

from frozen_lake_hitl.engine.stats import EpisodeStats
from frozen_lake_hitl.envs.frozen_lake import from_json


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    root = Path(__file__).resolve().parents[1]
    cfg_path = root / "config" / "frozen_lake.json"

    controller = from_json(cfg_path)

    def report(stats: EpisodeStats) -> None:
        agent = controller.agent_state
        outcome = "GOAL" if controller.grid.is_goal(agent.current_state) else "HOLE"
        print(
            f"ep={stats.episode:03d} {outcome} steps={agent.steps:3d} "
            f"r={agent.total_reward:+.1f} success_rate={stats.success_rate:.2f}"
        )

    controller.on_episode_end = report
    controller.start()

    episodes = 50
    max_ticks = 20000
    dt = max(controller.step_delay, 0.1)
    for _ in range(max_ticks):
        controller.update(dt)
        if controller.episode_stats.episode >= episodes:
            break

    print("\nGreedy policy:")
    for row in controller.learner.directions(controller.grid):
        print(" ".join(row))
    q = controller.q_table_stats()
    print(f"\nQ-table: min={q.min:+.3f} max={q.max:+.3f} mean={q.mean:+.3f} std={q.std:.3f}")
