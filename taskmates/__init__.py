"""
Taskmates — Achievement Badge Engine for a Social Task Network
================================================================
Scans a member's task activity (completions, collaborations, followers,
ratings, streaks, tag usage), turns each stream into a levelled badge,
and reconciles the result against stored badges without ever moving a
member backwards.

Package layout::

    taskmates/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Category catalogue (icons, labels, blurbs)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Source-table mirrors + user_badges
    ├── engine/
    │   ├── levels.py      # Threshold ladder → level
    │   ├── activity.py    # Snapshot + candidate dataclasses
    │   ├── metrics.py     # The nine category aggregators
    │   └── reconcile.py   # Monotonic upgrade planner
    ├── services/
    │   ├── activity_service.py      # Per-category snapshot loaders
    │   ├── badge_sync_service.py    # Aggregate → plan → apply
    │   ├── badge_query_service.py   # Top / gallery / pending / history
    │   └── notification_service.py  # Acknowledge a level-up
    ├── api/
    │   ├── main.py        # FastAPI app
    │   ├── deps.py        # Engine, config, JWT identity
    │   └── routes/        # Badge endpoints
    └── worker.py          # ``python -m taskmates.worker`` batch sync
"""

__version__ = "0.1.0"
