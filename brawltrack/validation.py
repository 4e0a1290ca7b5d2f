# brawltrack/validation.py
"""
Shape checks for stored player payloads.

A tracked player only feeds the ranked leaderboard when its stored payload
looks like a real profile from the official API, not a partial or synthesized
record.
"""

from typing import Any, Dict, List, Tuple

from .normalization import parse_numeric_score
from .utils import normalize_tag


def is_genuine_profile(payload: Any, expected_tag: str) -> Tuple[bool, List[str]]:
    """
    Validate that a stored payload is a complete player profile.

    Rules:
    1. Payload is an object whose `tag` normalizes to expected_tag
    2. `name` is a non-empty string
    3. `brawlers` is a non-empty list
    4. `trophies` and `highestTrophies` are numbers >= 0

    Returns:
        (is_valid, reasons) where reasons lists every failed rule.
    """
    if not isinstance(payload, dict):
        return (False, ["REJECTED: payload is not an object"])

    reasons: List[str] = []

    if normalize_tag(payload.get("tag")) != normalize_tag(expected_tag):
        reasons.append(f"tag mismatch ({payload.get('tag')!r} != {expected_tag!r})")

    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        reasons.append("name is empty")

    brawlers = payload.get("brawlers")
    if not isinstance(brawlers, list) or not brawlers:
        reasons.append("brawlers list is empty or missing")

    for counter in ("trophies", "highestTrophies"):
        value = parse_numeric_score(payload.get(counter), strict=True)
        if value is None or value < 0:
            reasons.append(f"{counter} is missing or negative")

    return (not reasons, reasons)


def is_valid_session_id(raw: Any) -> bool:
    """Session ids for search history: 1-80 chars of [A-Za-z0-9_-]."""
    if not isinstance(raw, str):
        return False
    value = raw.strip()
    if not value or len(value) > 80:
        return False
    return all(ch.isascii() and (ch.isalnum() or ch in "_-") for ch in value)
