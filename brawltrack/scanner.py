# brawltrack/scanner.py
"""
Deep scan of upstream JSON for ranked-score fields.

The same logical value shows up as `rankedElo`, `ranked_score`,
`powerLeagueElo`, ... at different depths depending on the API version, so
keys are normalized and matched against allow-lists instead of walking a fixed
path. A bare `rank` key is a leaderboard position (or a brawler rank) and must
never be read as a ranked score.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .normalization import (
    parse_numeric_score,
    rank_tier_floor_from_label,
    sanitize_ranked_score,
)
from .utils import normalize_tag

JsonValue = Union[Dict[str, "JsonValue"], List["JsonValue"], str, int, float, bool, None]

KEY_CURRENT = "current"
KEY_PEAK = "peak"
KEY_TIER_LABEL = "tier_label"

CURRENT_RANKED_KEYS = frozenset({
    "rankscore",
    "rankpoints",
    "rankpoint",
    "rankedpoints",
    "rankedpoint",
    "elo",
    "currentelo",
    "currentrankedelo",
    "currentrankedscore",
    "rankedelo",
    "rankedscore",
    "rankedtrophies",
    "powerleagueelo",
    "powermatchelo",
})

PEAK_RANKED_KEYS = frozenset({
    "highestrankedpoints",
    "bestrankedpoints",
    "maxrankedpoints",
    "peakrankedpoints",
    "highestrankedtrophies",
    "highestrankedelo",
    "highestrankedscore",
    "bestrankedtrophies",
    "bestrankedelo",
    "bestelo",
    "maxrankedelo",
    "peakrankedelo",
    "rankedrecord",
})

TIER_LABEL_KEYS = frozenset({
    "currentrank",
    "bestrank",
    "highestrank",
    "rankname",
    "league",
    "tier",
    "rankedtier",
    "rankedleague",
    "rankedrank",
    "currentrankname",
    "currentrankedtier",
    "currentrankedleague",
})

# Keys that name a leaderboard position or a per-brawler rank.
GENERIC_RANK_KEYS = frozenset({"rank", "position", "globalrank", "localrank", "leaderboardrank", "ranking"})

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_lookup_key(key: Any) -> str:
    return _NON_ALNUM_RE.sub("", str(key).lower())


def is_generic_rank_key(normalized_key: str) -> bool:
    if normalized_key in GENERIC_RANK_KEYS:
        return True
    return "brawler" in normalized_key and "rank" in normalized_key


def classify_ranked_key(key: Any) -> Optional[str]:
    """Return KEY_CURRENT, KEY_PEAK, KEY_TIER_LABEL or None for an upstream key."""
    normalized = normalize_lookup_key(key)
    if not normalized or is_generic_rank_key(normalized):
        return None
    if normalized in CURRENT_RANKED_KEYS:
        return KEY_CURRENT
    if normalized in PEAK_RANKED_KEYS:
        return KEY_PEAK
    if normalized in TIER_LABEL_KEYS:
        return KEY_TIER_LABEL
    return None


def _iter_matching_values(root: JsonValue, allowed_keys: frozenset) -> Iterator[Any]:
    """Yield every value whose key is in allowed_keys, at any depth."""
    if not isinstance(root, (dict, list)):
        return
    stack: List[Any] = [root]
    seen = set()

    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, list):
            for entry in current:
                if isinstance(entry, (dict, list)):
                    stack.append(entry)
            continue

        for key, value in current.items():
            normalized = normalize_lookup_key(key)
            if normalized in allowed_keys and not is_generic_rank_key(normalized):
                yield value
            if isinstance(value, (dict, list)):
                stack.append(value)


def collect_numeric_for_keys(root: JsonValue, allowed_keys: frozenset) -> List[float]:
    values: List[float] = []
    for value in _iter_matching_values(root, allowed_keys):
        parsed = sanitize_ranked_score(parse_numeric_score(value, strict=True))
        if parsed is not None:
            values.append(parsed)
    return values


def collect_tier_floors_for_keys(root: JsonValue, allowed_keys: frozenset) -> List[int]:
    floors: List[int] = []
    for value in _iter_matching_values(root, allowed_keys):
        floor = rank_tier_floor_from_label(value)
        if floor > 0:
            floors.append(floor)
    return floors


def collect_labels_for_keys(root: JsonValue, allowed_keys: frozenset) -> List[Tuple[str, int]]:
    """(label, floor) for every recognisable tier label under allowed_keys."""
    labels: List[Tuple[str, int]] = []
    for value in _iter_matching_values(root, allowed_keys):
        floor = rank_tier_floor_from_label(value)
        if floor > 0:
            labels.append((value.strip(), floor))
    return labels


def best_rank_label(root: JsonValue) -> Optional[str]:
    labels = collect_labels_for_keys(root, TIER_LABEL_KEYS)
    if not labels:
        return None
    return max(labels, key=lambda item: item[1])[0]


def _max_or_zero(values: List[float]) -> float:
    return max(values) if values else 0


def read_current_ranked_elo(root: JsonValue) -> float:
    return _max_or_zero(collect_numeric_for_keys(root, CURRENT_RANKED_KEYS))


def read_highest_ranked_elo(root: JsonValue) -> float:
    candidates = collect_numeric_for_keys(root, PEAK_RANKED_KEYS)
    candidates += collect_tier_floors_for_keys(root, TIER_LABEL_KEYS)
    return _max_or_zero(candidates)


def find_tagged_record(payload: JsonValue, tag: str) -> Optional[Dict[str, Any]]:
    """
    Locate the object describing `tag` inside a mirror response.

    Flat objects must carry the matching tag themselves (or hold it in a
    wrapper such as `player` / `data`). List-like responses without a matching
    record are a miss: guessing would attribute someone else's score.
    """
    wanted = normalize_tag(tag)
    stack: List[Any] = [payload]
    seen = set()

    while stack:
        current = stack.pop()
        if not isinstance(current, (dict, list)) or id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, list):
            stack.extend(reversed(current))
            continue

        record_tag = current.get("tag")
        if isinstance(record_tag, str) and record_tag.strip():
            if normalize_tag(record_tag) == wanted:
                return current
            # A record for somebody else; its children belong to that player too.
            continue

        for value in current.values():
            if isinstance(value, (dict, list)):
                stack.append(value)

    return None

