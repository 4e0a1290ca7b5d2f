# brawltrack/snapshots.py
"""
Player snapshot service.

One call fetches the profile and battlelog from the official API, derives the
analytics, writes the player/analytics/history rows and enriches the ranked
score from secondary sources. Only the primary fetch may raise; the store and
the enrichment sources degrade to defaults.
"""

from __future__ import annotations

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from .api_client import BrawlApiClient
from .database import Database, today_utc, utc_now
from .metrics import (
    DEFAULT_SCAN_LIMIT,
    calculate_winrate25,
    compute_battlelog_analytics,
    estimate_account_value,
    estimate_player_playtime,
    extract_ranked_elo,
    persisted_winrate,
    top_played_brawlers,
)
from .normalization import parse_numeric_score, rank_label_from_score
from .resolver import RankedSnapshot, RankedSnapshotResolver
from .utils import normalize_tag

logger = logging.getLogger(__name__)


def snapshot_hash(profile: Dict[str, Any]) -> str:
    """Content hash of the fields that make a profile 'changed' between two fetches."""
    club = profile.get("club") if isinstance(profile.get("club"), dict) else {}
    brawlers = [b for b in profile.get("brawlers") or [] if isinstance(b, dict)]
    payload = {
        "tag": normalize_tag(profile.get("tag")),
        "trophies": profile.get("trophies"),
        "highestTrophies": profile.get("highestTrophies"),
        "clubTag": club.get("tag"),
        "clubName": club.get("name"),
        "brawlers": [
            {
                "id": brawler.get("id"),
                "trophies": brawler.get("trophies"),
                "highestTrophies": brawler.get("highestTrophies"),
                "rank": brawler.get("rank"),
                "power": brawler.get("power"),
            }
            for brawler in sorted(brawlers, key=lambda b: parse_numeric_score(b.get("id")))
        ],
    }
    encoded = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def fallback_history_row(profile: Dict[str, Any], playtime_minutes: float, winrate: float) -> Dict[str, Any]:
    """Single in-memory history point for a player the store has never recorded."""
    club = profile.get("club") if isinstance(profile.get("club"), dict) else {}
    return {
        "id": 0,
        "player_tag": normalize_tag(profile.get("tag")),
        "snapshot_date": today_utc(),
        "trophies": profile.get("trophies") or 0,
        "highest_trophies": profile.get("highestTrophies") or 0,
        "club_tag": club.get("tag"),
        "club_name": club.get("name") or "Welcome",
        "estimated_playtime_minutes": playtime_minutes,
        "winrate_25": winrate,
        "raw_payload": profile,
        "created_at": utc_now(),
    }


class SnapshotService:
    """Fetch, derive and persist one player's snapshot."""

    def __init__(
        self,
        api: BrawlApiClient,
        db: Optional[Database] = None,
        resolver: Optional[RankedSnapshotResolver] = None,
        battlelog_limit: int = DEFAULT_SCAN_LIMIT,
    ):
        self.api = api
        self.db = db
        self.resolver = resolver
        self.battlelog_limit = battlelog_limit

    def fetch_primary(self, tag: str, force_refresh: bool = False) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """Profile and battlelog, fetched concurrently. BrawlApiError propagates."""
        with ThreadPoolExecutor(max_workers=2) as pool:
            profile_future = pool.submit(self.api.get_player, tag, force_refresh)
            battlelog_future = pool.submit(self.api.get_player_battlelog, tag, self.battlelog_limit, force_refresh)
            return profile_future.result(), battlelog_future.result()

    def fetch_and_store_player_snapshot(
        self,
        tag: str,
        force_refresh: bool = False,
        enrich_ranked: bool = True,
    ) -> Dict[str, Any]:
        """
        Build the full player bundle.

        Args:
            tag: Player tag in any accepted spelling.
            force_refresh: Ask upstream caches for fresh data.
            enrich_ranked: Query the scraped site and mirrors for the ranked
                score the official API does not expose.

        Returns:
            Dict with the raw profile and battlelog, winrates, analytics,
            estimates, ranked score and label, history rows, pro status and
            whether the profile changed since the last stored snapshot.

        Raises:
            BrawlApiError: the profile or battlelog fetch failed.
        """
        normalized = normalize_tag(tag)
        profile, battlelog = self.fetch_primary(normalized, force_refresh)

        winrates25 = calculate_winrate25(battlelog)
        analytics = compute_battlelog_analytics(battlelog, normalized, self.battlelog_limit)
        playtime_hours = estimate_player_playtime(profile)
        playtime_minutes = round(playtime_hours * 60, 2)
        winrate = persisted_winrate(winrates25)
        digest = snapshot_hash(profile)

        previous = self._previous_row(normalized)
        changed = self._persist(normalized, profile, battlelog, analytics, digest, winrate, playtime_minutes, previous)

        ranked_elo = extract_ranked_elo(profile, fallback_from_db=(previous or {}).get("ranked_elo"))
        ranked_snapshot = self._external_ranked(normalized, force_refresh) if enrich_ranked else None
        ranked_label = None
        if ranked_snapshot is not None:
            if ranked_snapshot.score > 0:
                ranked_elo = ranked_snapshot.score
            ranked_label = ranked_snapshot.rank_label
        if not ranked_label and ranked_elo > 0:
            ranked_label = rank_label_from_score(ranked_elo)
        if ranked_elo > 0:
            self._store_ranked(normalized, ranked_elo, ranked_label)

        history = self.get_history(normalized)
        if not history:
            history = [fallback_history_row(profile, playtime_minutes, winrate)]

        pro_profile = self._pro_profile(normalized)

        return {
            "tag": normalized,
            "player": profile,
            "battlelog": battlelog,
            "winrates25": winrates25,
            "analytics": analytics,
            "estimated_playtime_hours": playtime_hours,
            "account_value_gems": estimate_account_value(profile),
            "ranked_elo": ranked_elo,
            "ranked_label": ranked_label,
            "ranked_snapshot": ranked_snapshot.to_dict() if ranked_snapshot else None,
            "top_brawlers": top_played_brawlers(profile.get("brawlers") or [], 10),
            "history": history,
            "is_pro_verified": pro_profile is not None,
            "pro_profile": pro_profile,
            "changed": changed,
        }

    # --- store, best effort ---

    def _previous_row(self, tag: str) -> Optional[Dict[str, Any]]:
        if self.db is None:
            return None
        try:
            return self.db.get_player(tag)
        except RuntimeError as e:
            logger.warning("Previous snapshot read skipped for %s: %s", tag, e)
            return None

    def _persist(
        self,
        tag: str,
        profile: Dict[str, Any],
        battlelog: List[Dict[str, Any]],
        analytics: Dict[str, Any],
        digest: str,
        winrate: float,
        playtime_minutes: float,
        previous: Optional[Dict[str, Any]],
    ) -> bool:
        changed = previous is None or previous.get("last_snapshot_hash") != digest
        if self.db is None:
            return changed

        try:
            history_exists = self.db.has_history(tag)
            self.db.upsert_player(profile, digest, winrate, playtime_minutes)
            self.db.upsert_analytics_snapshot(tag, analytics, battlelog)
            if changed or not history_exists:
                self.db.upsert_daily_history(profile, playtime_minutes, winrate)
        except RuntimeError as e:
            logger.warning("Snapshot write skipped for %s: %s", tag, e)
        return changed

    def get_history(self, tag: str) -> List[Dict[str, Any]]:
        if self.db is None:
            return []
        try:
            return self.db.get_history(tag)
        except RuntimeError as e:
            logger.warning("History read skipped for %s: %s", tag, e)
            return []

    def _pro_profile(self, tag: str) -> Optional[Dict[str, Any]]:
        if self.db is None:
            return None
        try:
            return self.db.get_pro_player(tag)
        except RuntimeError as e:
            logger.warning("Pro status read skipped for %s: %s", tag, e)
            return None

    def _store_ranked(self, tag: str, ranked_elo: int, ranked_label: Optional[str]) -> None:
        if self.db is None:
            return
        try:
            self.db.update_player_ranked(tag, ranked_elo, ranked_label)
        except RuntimeError as e:
            logger.warning("Ranked score write skipped for %s: %s", tag, e)

    # --- enrichment ---

    def _external_ranked(self, tag: str, force_refresh: bool) -> Optional[RankedSnapshot]:
        if self.resolver is None:
            return None
        return self.resolver.get_external_ranked_snapshot(tag, force_refresh=force_refresh)
