"""
arete.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for the XP tuning values and (optionally) a custom
milestone table.  Secrets such as ``DATABASE_URL`` stay in the
environment (``.env``), not here.

Usage::

    from arete.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.xp.streak_cap)         # 2.0
    print(len(cfg.milestones))       # default table unless overridden
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from arete.engine.milestones import Milestone, default_milestones
from arete.engine.xp import DEFAULT_BASE_XP, DEFAULT_DIFFICULTY_MULTIPLIERS, XpRules


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AreteConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str
    xp: XpRules = field(default_factory=XpRules)
    milestones: tuple[Milestone, ...] = field(default_factory=default_milestones)


def _parse_xp(raw: dict) -> XpRules:
    return XpRules(
        streak_step=float(raw["streak_step"]),
        streak_cap=float(raw["streak_cap"]),
        difficulty_multipliers={
            **DEFAULT_DIFFICULTY_MULTIPLIERS,
            **{str(k): float(v) for k, v in (raw.get("difficulty_multipliers") or {}).items()},
        },
        category_bonus={str(k): int(v) for k, v in (raw.get("category_bonus") or {}).items()},
        base_xp={
            **DEFAULT_BASE_XP,
            **{str(k): int(v) for k, v in (raw.get("base_xp") or {}).items()},
        },
        daily_meal_cap=int(raw.get("daily_meal_cap", 5)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AreteConfig:
    """Read *path* and return an :class:`AreteConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    milestones_raw = raw.get("milestones")
    milestones = (
        tuple(Milestone.from_dict(m) for m in milestones_raw)
        if milestones_raw
        else default_milestones()
    )
    return AreteConfig(
        app_name=raw["app_name"],
        xp=_parse_xp(raw["xp"]),
        milestones=milestones,
    )
