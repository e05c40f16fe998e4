"""
taskmates.engine.levels — Badge Level Ladder
=============================================

Single source of truth for the metric → level mapping.  Every badge
category shares the same ladder; levels 10–12 carry named tiers.

Pure calculation — no database I/O.
"""

from __future__ import annotations

from bisect import bisect_right

# Minimum metric value for levels 1..12
LEVEL_THRESHOLDS: tuple[int, ...] = (
    10, 100, 500, 1_000, 2_000, 5_000,
    10_000, 20_000, 50_000, 100_000, 500_000, 1_000_000,
)

MAX_LEVEL = len(LEVEL_THRESHOLDS)

# Named tiers above the numeric levels
_TIER_NAMES: dict[str, dict[int, str]] = {
    "en": {10: "Silver Level", 11: "Gold Level", 12: "Diamond Level"},
    "pt": {10: "Nível Prata", 11: "Nível Ouro", 12: "Nível Diamante"},
}

_LEVEL_WORD: dict[str, str] = {"en": "Level", "pt": "Nível"}


def _clamp_level(level: int) -> int:
    return min(max(level, 1), MAX_LEVEL)


def level_for_metric(value: int) -> int:
    """Highest level whose threshold is ``<= value``; 0 below level 1."""
    return bisect_right(LEVEL_THRESHOLDS, value)


def threshold_for_level(level: int) -> int:
    """Metric needed for *level*.  Out-of-range levels clamp to the table ends."""
    return LEVEL_THRESHOLDS[_clamp_level(level) - 1]


def next_threshold(level: int) -> int | None:
    """Metric needed for the level after *level*, or ``None`` at the top."""
    if level >= MAX_LEVEL:
        return None
    return LEVEL_THRESHOLDS[max(level, 0)]


def level_progress(metric_value: int, level: int) -> float:
    """Fraction of the way from *level*'s threshold to the next one.

    Returns ``1.0`` once the top level is reached.
    """
    upper = next_threshold(level)
    if upper is None:
        return 1.0
    lower = threshold_for_level(level) if level >= 1 else 0
    span = upper - lower
    return min(max((metric_value - lower) / span, 0.0), 1.0)


def level_display_name(level: int, locale: str = "en") -> str:
    """``"Level N"`` for 1–9, localized Silver/Gold/Diamond for 10–12.

    Unknown locales fall back to English.
    """
    lang = locale if locale in _LEVEL_WORD else "en"
    level = _clamp_level(level)
    tier = _TIER_NAMES[lang].get(level)
    if tier is not None:
        return tier
    return f"{_LEVEL_WORD[lang]} {level}"
