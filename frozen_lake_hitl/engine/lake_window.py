from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import arcade

from frozen_lake_hitl.agents.q_learning import ActionKind
from frozen_lake_hitl.envs.frozen_lake import EpisodeController
from frozen_lake_hitl.utils.config import INTERVENTION_RULE_NAMES
from frozen_lake_hitl.utils.gridworld_core import ACTION_NAMES, CellKind

CELL_COLORS = {
    CellKind.START: (140, 200, 255),
    CellKind.FROZEN: (220, 240, 255),
    CellKind.HOLE: (20, 40, 90),
    CellKind.GOAL: (255, 200, 40),
}

RULE_KEYS = {
    arcade.key.KEY_1: INTERVENTION_RULE_NAMES[0],
    arcade.key.KEY_2: INTERVENTION_RULE_NAMES[1],
    arcade.key.KEY_3: INTERVENTION_RULE_NAMES[2],
    arcade.key.KEY_4: INTERVENTION_RULE_NAMES[3],
}


@dataclass
class VizCfg:
    cell_size: int = 72
    hud_height: int = 96
    min_width: int = 480
    show_policy: bool = True


class FrozenLakeWindow(arcade.Window):
    """Arcade window responsible exclusively for visualization and input.

    Responsibilities (UI only):
    - Render the lake tiles, the greedy-policy arrows and the agent.
    - Highlight the cell targeted by the announced action.
    - Draw the HUD (episode statistics, selected rule, controller state).
    - Translate keyboard and mouse input into controller calls.

    All mechanics (timing, stepping, interventions, resets) live in the
    ``EpisodeController``; ``on_update`` only forwards the frame time.

    Controls:
    - Space: start / pause
    - S: single step
    - R: reset statistics and episode (Q-table kept)
    - Q: reset the Q-table
    - 1-4: select intervention rule (suggestion, reset, interrupt, impede)
    - Drag the agent onto another cell to intervene
    """

    def __init__(self, controller: EpisodeController, viz: VizCfg):
        grid = controller.grid
        width = max(viz.min_width, grid.cols * viz.cell_size)
        height = grid.rows * viz.cell_size + viz.hud_height
        super().__init__(width=width, height=height, title="Frozen Lake (Q-learning + interventions)", resizable=False)
        arcade.set_background_color(arcade.color.BLACK)

        self.controller = controller
        self.viz = viz

        # Drag state
        self._drag_from: Optional[int] = None
        self._drag_pos: Optional[Tuple[float, float]] = None

        # Per-cell policy labels, rebuilt only if the map changes
        self._cell_labels: List[arcade.Text] = []
        self._build_cell_labels()

        top = viz.hud_height
        self._overlay = arcade.Text("", 10, top - 22, arcade.color.WHITE, 13)
        self._overlay2 = arcade.Text("", 10, top - 42, arcade.color.LIGHT_GRAY, 12)
        self._overlay3 = arcade.Text("", 10, top - 62, arcade.color.GRAY, 11)
        self._hint = arcade.Text(
            "Space: run/pause  |  S: step  |  R: reset  |  Q: clear Q  |  1-4: rule  |  drag agent: intervene",
            10, 6, arcade.color.LIGHT_GRAY, 10,
        )

    # --- geometry ---
    def _cell_rect(self, state: int) -> Tuple[float, float, float, float]:
        """Return ``(left, right, bottom, top)``; row 0 is drawn at the top."""
        cs = self.viz.cell_size
        row, col = self.controller.grid.position(state)
        left = col * cs
        bottom = self.viz.hud_height + (self.controller.grid.rows - 1 - row) * cs
        return left, left + cs, bottom, bottom + cs

    def _cell_center(self, state: int) -> Tuple[float, float]:
        left, right, bottom, top = self._cell_rect(state)
        return (left + right) / 2, (bottom + top) / 2

    def _state_at(self, x: float, y: float) -> Optional[int]:
        grid = self.controller.grid
        cs = self.viz.cell_size
        col = int(x // cs)
        row_from_bottom = int((y - self.viz.hud_height) // cs)
        if y < self.viz.hud_height or not (0 <= col < grid.cols and 0 <= row_from_bottom < grid.rows):
            return None
        return grid.to_state(grid.rows - 1 - row_from_bottom, col)

    def _build_cell_labels(self) -> None:
        grid = self.controller.grid
        self._cell_labels = []
        for s in range(grid.state_count):
            cx, cy = self._cell_center(s)
            label = arcade.Text("", cx, cy, arcade.color.DARK_SLATE_GRAY, 20, anchor_x="center", anchor_y="center")
            self._cell_labels.append(label)

    # --- drawing ---
    def _draw_tiles(self) -> None:
        grid = self.controller.grid
        for s in range(grid.state_count):
            left, right, bottom, top = self._cell_rect(s)
            arcade.draw_lrbt_rectangle_filled(left, right, bottom, top, CELL_COLORS[grid.cell_kind(s)])
            arcade.draw_lrbt_rectangle_outline(left, right, bottom, top, arcade.color.BLACK, 1)

    def _draw_policy(self) -> None:
        if not self.viz.show_policy:
            return
        grid = self.controller.grid
        arrows = self.controller.learner.directions(grid, blank_unvisited=True)
        for s, label in enumerate(self._cell_labels):
            row, col = grid.position(s)
            label.text = arrows[row][col]
            if label.text:
                label.draw()

    def _draw_announcement(self) -> None:
        pending = self.controller.pending_action
        if pending is None:
            return
        target = self.controller.grid.apply_action(pending.state, pending.action)
        left, right, bottom, top = self._cell_rect(target)
        color = arcade.color.ORANGE if pending.kind is ActionKind.EXPLORATION else arcade.color.GREEN
        arcade.draw_lrbt_rectangle_outline(left + 3, right - 3, bottom + 3, top - 3, color, 3)

    def _draw_agent(self) -> None:
        agent = self.controller.agent_state
        if self._drag_pos is not None:
            cx, cy = self._drag_pos
        else:
            cx, cy = self._cell_center(agent.current_state)
        color = arcade.color.RED if agent.is_done else arcade.color.BLACK
        arcade.draw_circle_filled(cx, cy, self.viz.cell_size * 0.28, color)

    def _update_overlay(self) -> None:
        c = self.controller
        stats = c.episode_stats
        agent = c.agent_state
        status = c.status
        mode = "RUNNING" if status.running else ("PAUSED" if status.paused else "STOPPED")
        self._overlay.text = (
            f"episode={stats.episode + 1}  state={agent.current_state}  steps={agent.steps}  "
            f"reward={agent.total_reward:+.1f}  success={stats.success_rate:.0%}  [{mode}]"
        )
        self._overlay2.text = (
            f"rule={c.intervention_rule}  interventions={stats.interventions}  "
            f"delay={c.step_delay:.2f}s  totalR={stats.total_reward:+.1f}"
        )
        pending = c.pending_action
        if pending is not None:
            self._overlay3.text = (
                f"next: {ACTION_NAMES[pending.action]} ({pending.kind.value}, draw={pending.random_draw:.3f})"
            )
        else:
            self._overlay3.text = ""

    def on_draw(self):
        """Arcade draw handler. Draws tiles, policy arrows, announcement, agent and HUD."""
        self.clear()
        self._draw_tiles()
        self._draw_policy()
        self._draw_announcement()
        self._draw_agent()
        self._update_overlay()
        self._overlay.draw()
        self._overlay2.draw()
        if self._overlay3.text:
            self._overlay3.draw()
        self._hint.draw()

    def on_update(self, dt: float):
        self.controller.update(dt)

    # --- input ---
    def on_key_press(self, symbol: int, modifiers: int):
        c = self.controller
        if symbol == arcade.key.SPACE:
            if c.status.running:
                c.pause()
            else:
                c.start()
        elif symbol == arcade.key.S:
            c.announce()
            c.step()
        elif symbol == arcade.key.R:
            c.reset()
        elif symbol == arcade.key.Q:
            c.reset_q_table()
        elif symbol in RULE_KEYS:
            c.set_intervention_rule(RULE_KEYS[symbol])

    def on_mouse_press(self, x: float, y: float, button: int, modifiers: int):
        state = self._state_at(x, y)
        agent = self.controller.agent_state
        if state is None or state != agent.current_state or agent.is_done:
            return
        self._drag_from = state
        self._drag_pos = (x, y)
        self.controller.begin_drag()

    def on_mouse_drag(self, x: float, y: float, dx: float, dy: float, buttons: int, modifiers: int):
        if self._drag_from is not None:
            self._drag_pos = (x, y)

    def on_mouse_release(self, x: float, y: float, button: int, modifiers: int):
        if self._drag_from is None:
            return
        from_state = self._drag_from
        self._drag_from = None
        self._drag_pos = None
        self.controller.end_drag()
        to_state = self._state_at(x, y)
        if to_state is None or to_state == from_state:
            return
        self.controller.intervene(from_state, to_state)
