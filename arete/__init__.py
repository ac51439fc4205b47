"""
Arete — Progress, XP & Achievement Coordination Engine
=======================================================
Turns trackable user actions (task completions, food logs, weigh-ins) into XP awards,
streak updates and achievement unlocks, and can undo any of them exactly
from a stored ledger.  Every processed action is keyed by a caller-supplied
token so retried requests never double-apply.

Package layout::

    arete/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level formula + default milestone thresholds
    ├── errors.py          # Error taxonomy (ErrorKind + exceptions)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models: user_progress, event_log, tasks
    ├── engine/
    │   ├── events.py      # ActionEvent + per-source payload variants
    │   ├── streaks.py     # Recurrence-aware streak calculation
    │   ├── xp.py          # XP breakdown with capped multipliers
    │   ├── thresholds.py  # Threshold crossing detection
    │   ├── milestones.py  # Crossing → achievement / bonus mapping
    │   └── progress.py    # Progress snapshots and delta application
    ├── services/
    │   ├── repositories.py     # EventLog / progress / task repositories
    │   ├── coordinator.py      # process() / reverse() orchestration
    │   └── progress_service.py # Level info + achievement claiming
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Event + progress endpoints
"""

__version__ = "0.1.0"
