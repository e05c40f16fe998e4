"""
taskmates.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the soft settings of the badge service (display
locale, list sizes, API port).  Secrets and the database URL come from the
environment (``.env``), never from this file.

Usage::

    from taskmates.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "Taskmates"
    print(cfg.top_badges_limit)  # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

SUPPORTED_LOCALES: tuple[str, ...] = ("en", "pt")


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TaskmatesConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str

    # Presentation
    default_locale: str = "en"
    top_badges_limit: int = 10     # Badge banner on the profile page
    task_history_limit: int = 20   # Tasks listed behind a single badge

    # API
    api_port: int = 8000


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> TaskmatesConfig:
    """Read *path* and return a :class:`TaskmatesConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``default_locale`` is not one of :data:`SUPPORTED_LOCALES`.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    locale = str(raw.get("default_locale", "en"))
    if locale not in SUPPORTED_LOCALES:
        raise ValueError(
            f"default_locale must be one of {SUPPORTED_LOCALES}, got {locale!r}"
        )

    return TaskmatesConfig(
        app_name=raw["app_name"],
        default_locale=locale,
        top_badges_limit=int(raw.get("top_badges_limit", 10)),
        task_history_limit=int(raw.get("task_history_limit", 20)),
        api_port=int(raw.get("api_port", 8000)),
    )
