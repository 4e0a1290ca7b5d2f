# brawltrack/trends.py
"""Position trends between two polls of the same leaderboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .database import LEADERBOARD_TYPES, Database
from .normalization import parse_numeric_score
from .utils import normalize_tag

logger = logging.getLogger(__name__)

DIRECTION_UP = "up"
DIRECTION_DOWN = "down"
DIRECTION_STABLE = "stable"
DIRECTION_NEW = "new"


@dataclass(frozen=True)
class TrendAnnotation:
    direction: str
    places: int
    has_history: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"direction": self.direction, "places": self.places, "has_history": self.has_history}


def trend_from_positions(previous: Optional[int], current: int) -> TrendAnnotation:
    if not previous:
        return TrendAnnotation(DIRECTION_NEW, 0, False)
    diff = previous - current
    if diff > 0:
        return TrendAnnotation(DIRECTION_UP, diff, True)
    if diff < 0:
        return TrendAnnotation(DIRECTION_DOWN, abs(diff), True)
    return TrendAnnotation(DIRECTION_STABLE, 0, True)


def _positions(entries: Iterable[Mapping[str, Any]]) -> List[Tuple[str, int, float]]:
    """(tag, 1-based index in the list, value); a repeated tag keeps its first index."""
    rows: List[Tuple[str, int, float]] = []
    seen = set()
    for position, entry in enumerate(entries, start=1):
        tag = normalize_tag(entry.get("tag"))
        if tag in seen:
            continue
        seen.add(tag)
        rows.append((tag, position, float(parse_numeric_score(entry.get("value")))))
    return rows


def compare_and_persist_leaderboard(
    db: Optional[Database],
    board_type: str,
    entries: Iterable[Mapping[str, Any]],
) -> Dict[str, TrendAnnotation]:
    """
    Annotate an ordered leaderboard with trends and store the new positions.

    Args:
        db: Store holding the previous positions; None means no store.
        board_type: One of "world", "ranked", "esport".
        entries: Ordered {"tag", "value"} mappings, best first.

    Returns:
        {canonical tag: TrendAnnotation}. Empty when the store is missing or
        fails; trends never block a leaderboard.
    """
    if board_type not in LEADERBOARD_TYPES:
        raise ValueError(f"Unknown leaderboard type '{board_type}'")

    rows = _positions(entries)
    if db is None or not rows:
        return {}

    try:
        previous = db.get_leaderboard_positions(board_type, [tag for tag, _, _ in rows])
        trends = {tag: trend_from_positions(previous.get(tag), position) for tag, position, _ in rows}
        db.upsert_leaderboard_positions(board_type, rows)
    except RuntimeError as e:
        logger.warning("Leaderboard trends skipped for %s: %s", board_type, e)
        return {}

    return trends
