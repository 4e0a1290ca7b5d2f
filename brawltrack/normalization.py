# brawltrack/normalization.py
"""
Number and rank-tier helpers shared by every ranked-score extractor.

Upstream sources disagree on formatting ("8,250", "8 250", 8250.0) and on
where the ranked score lives, so everything funnels through these three
functions before a value is trusted.
"""

from __future__ import annotations

import math
import re
from typing import Any, List, Optional, Tuple, Union

from .utils import strip_diacritics

Number = Union[int, float]

MAX_REASONABLE_RANKED_SCORE = 20_000

# Thousands separators seen in scraped pages and mirror payloads (\s covers
# non-breaking and thin spaces).
_NUMBER_NOISE_RE = re.compile(r"[\s,]")

# (family, detection pattern, floors for levels I/II/III); ordered low -> high.
TIER_FLOORS: Tuple[Tuple[str, str, Tuple[int, ...]], ...] = (
    ("Bronze", r"\bbronze", (1, 250, 500)),
    ("Silver", r"\bsilver|\bargent", (750, 1000, 1250)),
    ("Gold", r"\bgold|\bor\b", (1500, 2000, 2500)),
    ("Diamond", r"\bdiam", (3000, 3500, 4000)),
    ("Mythic", r"\bmyth", (4500, 5000, 5500)),
    ("Legendary", r"\blegend", (6000, 6750, 7500)),
    ("Masters", r"\bmaster", (8250, 9250, 10250)),
    ("Pro", r"\bpro\b", (11250,)),
)

_LEVEL_NAMES = ("I", "II", "III")
_ROMAN_LEVEL_RE = re.compile(r"\b(iii|ii|i)\b")
_DIGIT_LEVEL_RE = re.compile(r"\s([123])\b")


def parse_numeric_score(value: Any, strict: bool = False) -> Optional[Number]:
    """
    Parse a loosely formatted number.

    Args:
        value: int/float or a string such as "12,500", "1 234" or " 8250 ".
        strict: Return None instead of 0 when the value is not a finite number.

    Returns:
        The parsed number (int when integral), or 0 / None when unparsable.
    """
    invalid = None if strict else 0
    if isinstance(value, bool):
        return invalid
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return invalid
        return value
    if not isinstance(value, str):
        return invalid

    cleaned = _NUMBER_NOISE_RE.sub("", value)
    if not cleaned:
        return invalid
    try:
        parsed = float(cleaned)
    except ValueError:
        return invalid
    if not math.isfinite(parsed):
        return invalid
    return int(parsed) if parsed.is_integer() else parsed


def sanitize_ranked_score(value: Optional[Number]) -> Optional[Number]:
    """Return value if it is a plausible ranked score, None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if value <= 0 or value > MAX_REASONABLE_RANKED_SCORE:
        return None
    return value


def _label_level(normalized: str) -> int:
    roman = _ROMAN_LEVEL_RE.findall(normalized)
    if roman:
        return max(len(token) for token in roman)
    digit = _DIGIT_LEVEL_RE.search(normalized)
    if digit:
        return int(digit.group(1))
    return 1


def rank_tier_floor_from_label(label: Any) -> int:
    """
    Map a tier label ("Legendary III", "Mythique 2", "Pro") to its minimum score.

    Returns 0 for anything that is not a string or names no known family.
    """
    if not isinstance(label, str):
        return 0
    normalized = strip_diacritics(label).lower().strip()
    if not normalized:
        return 0

    level = _label_level(normalized)
    for _family, pattern, floors in reversed(TIER_FLOORS):
        if re.search(pattern, normalized):
            return floors[min(level, len(floors)) - 1]
    return 0


def tier_ladder() -> List[Tuple[str, int]]:
    """Every (label, floor) pair in ascending order."""
    ladder: List[Tuple[str, int]] = []
    for family, _pattern, floors in TIER_FLOORS:
        if len(floors) == 1:
            ladder.append((family, floors[0]))
            continue
        for level_name, floor in zip(_LEVEL_NAMES, floors):
            ladder.append((f"{family} {level_name}", floor))
    return ladder


def rank_label_from_score(score: Any) -> str:
    value = parse_numeric_score(score)
    if not value or value <= 0:
        return "Unranked"
    label = "Unranked"
    for name, floor in tier_ladder():
        if value >= floor:
            label = name
    return label
