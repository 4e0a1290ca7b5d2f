# brawltrack/leaderboard.py
"""
Ranked, world and esport leaderboards.

The ranked board has no official endpoint, so it is assembled from the best
source that answers: the scraped ranked leaderboard page, then players this
instance has already fetched from the official API, then the official global
ranking. The ranked board has no static fallback.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any, Dict, List, Optional

from .api_client import BrawlApiClient, BrawlApiError, HttpFetcher
from .database import Database
from .html_extract import is_bot_challenge, parse_ranked_leaderboard
from .normalization import parse_numeric_score, sanitize_ranked_score
from .scanner import read_current_ranked_elo, read_highest_ranked_elo
from .seeds import DEFAULT_ICON_ID, esport_seed_entries
from .utils import is_plausible_tag, normalize_tag
from .validation import is_genuine_profile

logger = logging.getLogger(__name__)

RANKED_LEADERBOARD_PATH = "/leaderboard/highest-ranked-elo"


@dataclass(frozen=True)
class LeaderboardEntry:
    tag: str
    name: str
    rank: int
    score: int
    icon_id: int = DEFAULT_ICON_ID

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "name": self.name,
            "rank": self.rank,
            "score": self.score,
            "icon_id": self.icon_id,
        }


class LeaderboardUnavailableError(Exception):
    """Raised when no source could produce a ranked leaderboard."""


def _icon_id(payload: Any) -> int:
    icon = payload.get("icon") if isinstance(payload, dict) else None
    if isinstance(icon, dict):
        value = parse_numeric_score(icon.get("id"), strict=True)
        if value:
            return int(value)
    return DEFAULT_ICON_ID


class LeaderboardBuilder:
    """Build leaderboards from the API client, the scraped site and the store."""

    def __init__(
        self,
        api: BrawlApiClient,
        http: Optional[HttpFetcher] = None,
        db: Optional[Database] = None,
        scrape_base_url: str = "https://brawltime.ninja",
        tracked_batch_size: int = 500,
    ):
        self.api = api
        self.http = http or HttpFetcher(api.timeout_seconds)
        self.db = db
        self.scrape_base_url = scrape_base_url.rstrip("/")
        self.tracked_batch_size = tracked_batch_size

    # --- ranked ---

    def get_top_ranked_players(self, limit: int = 10) -> List[LeaderboardEntry]:
        """
        Ranked leaderboard of at most `limit` entries.

        Raises:
            LeaderboardUnavailableError: every source came back empty.
        """
        for source_name, source in (
            ("scraped leaderboard", self._ranked_from_scraped_page),
            ("tracked players", self._ranked_from_tracked_players),
            ("global ranking", self._ranked_from_global_rankings),
        ):
            entries = source(limit)
            if entries:
                logger.info("Ranked leaderboard built from %s (%d entries)", source_name, len(entries))
                return entries
            logger.debug("Ranked leaderboard source '%s' returned nothing", source_name)

        raise LeaderboardUnavailableError(
            "Ranked leaderboard unavailable: search a few players to seed the tracked board."
        )

    def _ranked_from_scraped_page(self, limit: int) -> List[LeaderboardEntry]:
        url = f"{self.scrape_base_url}{RANKED_LEADERBOARD_PATH}"
        try:
            page = self.http.get_text(url)
        except (OSError, ValueError, HTTPException) as e:
            logger.debug("Ranked leaderboard page failed: %s", e)
            return []
        if is_bot_challenge(page):
            logger.debug("Ranked leaderboard page is a bot challenge")
            return []

        entries: List[LeaderboardEntry] = []
        used_ranks = set()
        for row in parse_ranked_leaderboard(page, limit):
            if row["rank"] in used_ranks:
                continue
            used_ranks.add(row["rank"])
            entries.append(LeaderboardEntry(tag=row["tag"], name=row["name"], rank=row["rank"], score=row["score"]))
        return entries

    def tracked_score(self, row: Dict[str, Any]) -> int:
        """Best ranked score known for a stored player row, 0 when unusable."""
        tag = normalize_tag(row.get("tag"))
        if not is_plausible_tag(tag) or not row.get("last_snapshot_hash"):
            return 0

        payload = row.get("raw_payload")
        valid, reasons = is_genuine_profile(payload, tag)
        if not valid:
            logger.debug("Tracked player %s skipped: %s", tag, "; ".join(reasons))
            return 0

        candidates = [read_current_ranked_elo(payload), read_highest_ranked_elo(payload)]
        stored = sanitize_ranked_score(parse_numeric_score(row.get("ranked_elo"), strict=True))
        if stored is not None:
            candidates.append(stored)
        return int(max(candidates))

    def _ranked_from_tracked_players(self, limit: int) -> List[LeaderboardEntry]:
        if self.db is None:
            return []
        try:
            rows = self.db.get_recent_players(self.tracked_batch_size)
        except RuntimeError as e:
            logger.warning("Tracked players unavailable: %s", e)
            return []

        best: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            score = self.tracked_score(row)
            if score <= 0:
                continue
            tag = normalize_tag(row.get("tag"))
            if tag in best and best[tag]["score"] >= score:
                continue
            payload = row.get("raw_payload") or {}
            best[tag] = {
                "tag": tag,
                "name": str(payload.get("name") or row.get("name") or tag),
                "score": score,
                "icon_id": _icon_id(payload),
                "last_seen_at": row.get("last_seen_at") or "",
            }

        ordered = sorted(best.values(), key=lambda item: item["last_seen_at"], reverse=True)
        ordered.sort(key=lambda item: item["score"], reverse=True)
        return [
            LeaderboardEntry(tag=item["tag"], name=item["name"], rank=index, score=item["score"], icon_id=item["icon_id"])
            for index, item in enumerate(ordered[:limit], start=1)
        ]

    def _ranked_from_global_rankings(self, limit: int) -> List[LeaderboardEntry]:
        try:
            items = self.api.get_global_rankings()
        except BrawlApiError as e:
            logger.debug("Global ranking unavailable for ranked board: %s", e)
            return []

        scored = []
        seen = set()
        for item in items:
            tag = normalize_tag(item.get("tag"))
            if not is_plausible_tag(tag) or tag in seen:
                continue
            score = int(read_current_ranked_elo(item))
            if score <= 0:
                continue
            seen.add(tag)
            scored.append((tag, str(item.get("name") or tag), score, _icon_id(item)))

        scored.sort(key=lambda item: item[2], reverse=True)
        return [
            LeaderboardEntry(tag=tag, name=name, rank=index, score=score, icon_id=icon_id)
            for index, (tag, name, score, icon_id) in enumerate(scored[:limit], start=1)
        ]

    # --- world trophies ---

    def get_top_players(self, limit: int = 10) -> List[LeaderboardEntry]:
        """World trophy leaderboard; BrawlApiError propagates to the caller."""
        entries = []
        for index, item in enumerate(self.api.get_top_players(limit), start=1):
            entries.append(LeaderboardEntry(
                tag=normalize_tag(item.get("tag")),
                name=str(item.get("name") or "Unknown"),
                rank=int(item.get("rank") or index),
                score=int(parse_numeric_score(item.get("trophies"))),
                icon_id=_icon_id(item),
            ))
        return entries

    # --- esport ---

    def get_top_esport_leaders(self, limit: int = 10, enrich_icons: bool = True) -> List[Dict[str, Any]]:
        """Pro players by earnings, topped up with the static seed board."""
        rows: List[Dict[str, Any]] = []
        if self.db is not None:
            try:
                rows = self.db.get_top_pro_players(limit)
            except RuntimeError as e:
                logger.warning("pro_players unavailable, using seed board: %s", e)

        if not rows:
            return esport_seed_entries(limit)

        leaders = [
            {
                "tag": normalize_tag(row.get("player_tag")),
                "display_name": str(row.get("display_name") or row.get("player_tag")),
                "team": str(row.get("team") or "Unknown"),
                "matcherino_url": row.get("matcherino_url") if isinstance(row.get("matcherino_url"), str) else None,
                "earnings_usd": parse_numeric_score(row.get("matcherino_earnings_usd")),
                "icon_id": DEFAULT_ICON_ID,
            }
            for row in rows
        ]
        if enrich_icons:
            with ThreadPoolExecutor(max_workers=min(8, len(leaders))) as pool:
                leaders = list(pool.map(self._with_live_icon, leaders))

        if len(leaders) >= limit:
            return leaders[:limit]
        used = {leader["tag"] for leader in leaders}
        supplement = [seed for seed in esport_seed_entries(limit) if normalize_tag(seed["tag"]) not in used]
        return (leaders + supplement)[:limit]

    def _with_live_icon(self, leader: Dict[str, Any]) -> Dict[str, Any]:
        try:
            profile = self.api.get_player(leader["tag"])
        except BrawlApiError:
            return leader
        return {**leader, "icon_id": _icon_id(profile)}
