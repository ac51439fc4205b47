"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from arete.config import load_config
from arete.database.models import EventSource, MilestoneDimension
from arete.engine.milestones import default_milestones

MINIMAL = """
app_name: "Arete"
xp:
  streak_step: 0.1
  streak_cap: 2.0
"""


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_minimal_uses_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL))
        assert cfg.app_name == "Arete"
        assert cfg.xp.streak_cap == 2.0
        assert cfg.xp.difficulty_multipliers["hard"] == 1.3
        assert cfg.xp.base_for(EventSource.TASK_COMPLETED) == 50
        assert cfg.xp.daily_meal_cap == 5
        assert cfg.milestones == default_milestones()

    def test_overrides(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL + """
  difficulty_multipliers:
    hard: 1.5
  category_bonus:
    legs: 3
  base_xp:
    food_logged: 8
  daily_meal_cap: 3
"""))
        assert cfg.xp.difficulty_multipliers["hard"] == 1.5
        assert cfg.xp.difficulty_multipliers["easy"] == 0.8
        assert cfg.xp.category_bonus == {"legs": 3}
        assert cfg.xp.base_for("food_logged") == 8
        assert cfg.xp.base_for("task_completed") == 50
        assert cfg.xp.daily_meal_cap == 3

    def test_custom_milestones(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL + """
milestones:
  - source: task_completed
    dimension: streak
    threshold: 5
    achievement_id: high_five
    bonus_xp: 20
  - dimension: cross_domain
    threshold: 10
    bonus_xp: 5
"""))
        first, second = cfg.milestones
        assert first.source == EventSource.TASK_COMPLETED
        assert first.dimension == MilestoneDimension.STREAK
        assert first.achievement_id == "high_five"
        assert second.source is None
        assert second.achievement_id is None

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, 'app_name: "Arete"\nxp:\n  streak_step: 0.1\n'))
