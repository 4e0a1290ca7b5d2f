# brawltrack/utils.py

import re
import unicodedata
from typing import Any, Dict
from urllib.parse import quote

# Alphabet used by the game for player and club tags.
TAG_ALPHABET = "0289PYLQGRJCUV"
_TAG_RE = re.compile(rf"^#[{TAG_ALPHABET}]{{3,12}}$")


def normalize_tag(raw_tag: Any) -> str:
    """Uppercase, strip URL-encoded/plain leading markers and re-add a single '#'."""
    trimmed = str(raw_tag or "").strip().upper().replace("%23", "")
    trimmed = trimmed.lstrip("#")
    return f"#{trimmed}"


def bare_tag(raw_tag: Any) -> str:
    return normalize_tag(raw_tag)[1:]


def encode_tag(raw_tag: Any) -> str:
    return quote(normalize_tag(raw_tag), safe="")


def is_plausible_tag(raw_tag: Any) -> bool:
    return bool(_TAG_RE.match(normalize_tag(raw_tag)))


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def mode_of_battle(item: Dict[str, Any]) -> str:
    battle = item.get("battle") if isinstance(item, dict) else None
    event = item.get("event") if isinstance(item, dict) else None
    mode = (battle or {}).get("mode") if isinstance(battle, dict) else None
    if not mode and isinstance(event, dict):
        mode = event.get("mode")
    return str(mode or "unknown")


def readable_name(value: Any, fallback: str = "Unknown") -> str:
    """Brawler names come either as plain strings or as {locale: name} maps."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, dict):
        for item in value.values():
            if isinstance(item, str) and item.strip():
                return item.strip()
    return fallback
