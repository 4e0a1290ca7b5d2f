# brawltrack/meta.py
"""
Meta tier list.

The curated `meta_tierlist` table is authoritative; when it has nothing for
the requested mode, the community winrate tier list is served instead.
"""

import logging
from typing import Any, Dict, List, Optional

from .api_client import BrawlApiClient, BrawlApiError
from .database import META_TIERS, Database

logger = logging.getLogger(__name__)

SOURCE_CURATED = "curated"
SOURCE_COMMUNITY = "community"
SOURCE_NONE = "none"

_TIER_ORDER = {tier: index for index, tier in enumerate(META_TIERS)}


def group_by_mode(rows: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Curated rows per mode, ordered S to C then by brawler name."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        grouped.setdefault(str(row.get("mode") or "unknown"), []).append(row)
    for entries in grouped.values():
        entries.sort(key=lambda row: (_TIER_ORDER.get(row.get("tier"), len(META_TIERS)), str(row.get("brawler_name"))))
    return grouped


class MetaService:
    """Read and edit the meta tier list."""

    def __init__(self, db: Optional[Database] = None, api: Optional[BrawlApiClient] = None):
        self.db = db
        self.api = api

    def get_tier_list(self, mode: Optional[str] = None, limit: int = 30) -> Dict[str, Any]:
        warnings: List[str] = []
        if self.db is not None:
            try:
                rows = self.db.get_meta_tierlist(mode)
            except RuntimeError as e:
                logger.warning("Curated tier list unavailable: %s", e)
                warnings.append(str(e))
                rows = []
            if rows:
                return {"source": SOURCE_CURATED, "modes": group_by_mode(rows), "entries": [], "warnings": warnings}

        if self.api is not None:
            try:
                entries = self.api.get_brawlify_tier_list(limit)
            except BrawlApiError as e:
                logger.warning("Community tier list unavailable: %s", e)
                warnings.append(str(e))
                entries = []
            if entries:
                return {"source": SOURCE_COMMUNITY, "modes": {}, "entries": entries, "warnings": warnings}

        return {"source": SOURCE_NONE, "modes": {}, "entries": [], "warnings": warnings}

    def set_tier(self, brawler_name: str, tier: str, mode: str) -> Dict[str, Any]:
        """
        Upsert one curated entry.

        Raises:
            ValueError: empty name/mode or a tier outside S/A/B/C.
            RuntimeError: no store configured, or the write failed.
        """
        brawler_name = (brawler_name or "").strip()
        mode = (mode or "").strip()
        tier = (tier or "").strip().upper()
        if not brawler_name or not mode:
            raise ValueError("brawler_name and mode are required")
        if self.db is None:
            raise RuntimeError("No database configured for the meta tier list")
        self.db.upsert_meta_tier(brawler_name, tier, mode)
        logger.info("Meta tier set: %s -> %s (%s)", brawler_name, tier, mode)
        return {"brawler_name": brawler_name, "tier": tier, "mode": mode}
