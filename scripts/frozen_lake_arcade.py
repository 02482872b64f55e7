from __future__ import annotations

import logging
from pathlib import Path

import arcade

from frozen_lake_hitl.engine.lake_window import FrozenLakeWindow, VizCfg
from frozen_lake_hitl.envs.frozen_lake import from_json


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    root = Path(__file__).resolve().parents[1]
    cfg_path = root / "config" / "frozen_lake.json"

    controller = from_json(cfg_path)
    window = FrozenLakeWindow(controller, viz=VizCfg(cell_size=72))
    controller.start()
    arcade.run()
