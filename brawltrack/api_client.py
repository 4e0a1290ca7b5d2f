from __future__ import annotations

import json
import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from http.client import HTTPException
from typing import Any, Dict, List, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .config import Settings
from .normalization import parse_numeric_score
from .utils import encode_tag

logger = logging.getLogger(__name__)

CODE_UNAUTHORIZED = "UNAUTHORIZED"
CODE_PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
CODE_MAINTENANCE = "MAINTENANCE"
CODE_HTTP_ERROR = "HTTP_ERROR"


class BrawlApiError(Exception):
    """Primary API failure carrying the HTTP status and a stable error code."""

    def __init__(self, message: str, status: int, code: str):
        super().__init__(message)
        self.status = status
        self.code = code


def map_status_to_code(status: int) -> str:
    if status in (401, 403):
        return CODE_UNAUTHORIZED
    if status == 404:
        return CODE_PLAYER_NOT_FOUND
    if status == 503:
        return CODE_MAINTENANCE
    return CODE_HTTP_ERROR


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


def tier_from_winrate(winrate: float) -> str:
    if winrate >= 58:
        return "S"
    if winrate >= 53:
        return "A"
    if winrate >= 49:
        return "B"
    return "C"


class HttpFetcher:
    """Plain GET helper shared by the API client, the scraper and the mirrors."""

    HEADERS = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    def _build_request(self, url: str, headers: Optional[Mapping[str, str]], force_refresh: bool) -> Request:
        merged = dict(self.HEADERS)
        if headers:
            merged.update(headers)
        if force_refresh:
            merged["Cache-Control"] = "no-cache"
        return Request(url, headers=merged, method="GET")

    def get_text(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        force_refresh: bool = False,
    ) -> str:
        req = self._build_request(url, headers, force_refresh)
        with urlopen(req, timeout=self.timeout_seconds) as resp:
            return resp.read().decode("utf-8", errors="replace")

    def get_json(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        force_refresh: bool = False,
    ) -> Any:
        return json.loads(self.get_text(url, headers=headers, force_refresh=force_refresh))


class BrawlApiClient:
    """Client for the official game API and the community tier-list API."""

    def __init__(
        self,
        token: str = "",
        base_url: str = "https://api.brawlstars.com/v1",
        brawlify_base_url: str = "https://api.brawlify.com/v1",
        timeout_seconds: float = 10.0,
        http: Optional[HttpFetcher] = None,
        rate_limit_pause_seconds: float = 1.0,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.brawlify_base_url = brawlify_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.http = http or HttpFetcher(timeout_seconds)
        self.rate_limit_pause_seconds = rate_limit_pause_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrawlApiClient":
        return cls(
            token=settings.brawl_api_token,
            base_url=settings.brawl_api_base_url,
            brawlify_base_url=settings.brawlify_api_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        )

    # --- transport ---

    def _api_url(self, path: str) -> str:
        path = path if path.startswith("/") else f"/{path}"
        if path == "/v1" or path.startswith("/v1/"):
            path = path[3:]
        return f"{self.base_url}{path}"

    @staticmethod
    def _error_detail(exc: HTTPError) -> str:
        try:
            body = exc.read().decode("utf-8", errors="replace")
        except (OSError, AttributeError):
            return ""
        try:
            payload = json.loads(body)
        except ValueError:
            return body.strip()[:200]
        if isinstance(payload, dict):
            return str(payload.get("message") or payload.get("reason") or "")
        return ""

    def _get_json(self, path: str, force_refresh: bool = False, retry_429: bool = True) -> Any:
        if not self.token:
            raise BrawlApiError("BRAWL_API_TOKEN is not configured.", 500, CODE_UNAUTHORIZED)

        url = self._api_url(path)
        headers = {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}
        try:
            return self.http.get_json(url, headers=headers, force_refresh=force_refresh)
        except HTTPError as exc:
            if exc.code == 429 and retry_429:
                time.sleep(self.rate_limit_pause_seconds)
                return self._get_json(path, force_refresh=force_refresh, retry_429=False)
            detail = self._error_detail(exc)
            message = f"Brawl API error ({exc.code})" + (f": {detail}" if detail else "")
            raise BrawlApiError(message, exc.code, map_status_to_code(exc.code)) from exc
        except (URLError, OSError, HTTPException) as exc:
            if _is_timeout(exc):
                raise BrawlApiError(
                    f"Brawl API timeout ({int(self.timeout_seconds * 1000)}ms)", 504, CODE_HTTP_ERROR
                ) from exc
            raise BrawlApiError(f"Brawl API unreachable: {exc}", 502, CODE_HTTP_ERROR) from exc
        except ValueError as exc:
            raise BrawlApiError("Brawl API returned invalid JSON", 502, CODE_HTTP_ERROR) from exc

    @staticmethod
    def _items(payload: Any) -> List[Dict[str, Any]]:
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    # --- players ---

    def get_player(self, tag: str, force_refresh: bool = False) -> Dict[str, Any]:
        payload = self._get_json(f"/players/{encode_tag(tag)}", force_refresh=force_refresh)
        if not isinstance(payload, dict):
            raise BrawlApiError("Brawl API returned an unexpected player payload", 502, CODE_HTTP_ERROR)
        return payload

    def get_player_battlelog(self, tag: str, limit: int = 25, force_refresh: bool = False) -> List[Dict[str, Any]]:
        payload = self._get_json(f"/players/{encode_tag(tag)}/battlelog", force_refresh=force_refresh)
        items = self._items(payload)
        if limit <= 0:
            return items
        return items[:limit]

    # --- rankings ---

    def get_global_rankings(self, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Raw items of the global player ranking."""
        path = "/rankings/global/players"
        if params:
            path = f"{path}?{urlencode(params)}"
        return self._items(self._get_json(path))

    def get_top_players(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        World trophy leaderboard.

        Some upstream deployments answer with placeholder values (every entry
        at a handful of trophies); in that case each entry is refreshed from
        the live profile before returning.
        """
        parsed: List[Dict[str, Any]] = []
        for item in self.get_global_rankings():
            entry = dict(item)
            entry["rank"] = int(parse_numeric_score(item.get("rank")))
            entry["trophies"] = parse_numeric_score(
                item.get("trophies", item.get("score", item.get("value", 0)))
            )
            parsed.append(entry)

        max_trophies = max((entry["trophies"] for entry in parsed), default=0)
        suspicious = bool(parsed) and (all(entry["trophies"] <= 25 for entry in parsed) or max_trophies < 1000)
        if suspicious:
            logger.info("Global ranking looks like placeholder data; refreshing %d live profiles", len(parsed))
            with ThreadPoolExecutor(max_workers=min(8, len(parsed))) as pool:
                parsed = list(pool.map(self._refresh_ranking_entry, parsed))

        return parsed[:limit]

    def _refresh_ranking_entry(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        try:
            profile = self.get_player(str(entry.get("tag", "")))
        except BrawlApiError as exc:
            logger.debug("Live profile refresh failed for %s: %s", entry.get("tag"), exc)
            return entry
        refreshed = dict(entry)
        refreshed["name"] = profile.get("name") or entry.get("name")
        refreshed["trophies"] = parse_numeric_score(profile.get("trophies", entry.get("trophies")))
        refreshed["icon"] = profile.get("icon") or entry.get("icon")
        return refreshed

    # --- meta ---

    def get_brawlify_tier_list(self, limit: int = 30) -> List[Dict[str, Any]]:
        """Community brawler winrates bucketed into S/A/B/C tiers, best first."""
        url = f"{self.brawlify_base_url}/brawlers"
        try:
            payload = self.http.get_json(url)
        except HTTPError as exc:
            raise BrawlApiError(f"Brawlify API error ({exc.code})", exc.code, CODE_HTTP_ERROR) from exc
        except (URLError, OSError, HTTPException) as exc:
            status = 504 if _is_timeout(exc) else 502
            raise BrawlApiError(f"Brawlify API unavailable: {exc}", status, CODE_HTTP_ERROR) from exc
        except ValueError as exc:
            raise BrawlApiError("Brawlify API returned invalid JSON", 502, CODE_HTTP_ERROR) from exc

        listing = payload.get("list") if isinstance(payload, dict) else None
        if not isinstance(listing, list):
            return []

        entries: List[Dict[str, Any]] = []
        for item in listing:
            if not isinstance(item, dict):
                continue
            stats = item.get("stats") if isinstance(item.get("stats"), dict) else {}
            winrate = parse_numeric_score(
                next(
                    (
                        value
                        for value in (
                            item.get("winRate"),
                            item.get("winrate"),
                            stats.get("winRate"),
                            stats.get("winrate"),
                            stats.get("win_rate"),
                        )
                        if value is not None
                    ),
                    None,
                ),
                strict=True,
            )
            if winrate is None:
                continue

            image_url = next(
                (item[key] for key in ("imageUrl", "imageUrl2", "image") if isinstance(item.get(key), str)),
                None,
            )
            entries.append({
                "id": int(parse_numeric_score(item.get("id"))),
                "name": str(item.get("name") or "Unknown"),
                "image_url": image_url,
                "winrate": round(float(winrate), 2),
                "tier": tier_from_winrate(float(winrate)),
            })

        entries.sort(key=lambda entry: entry["winrate"], reverse=True)
        return entries[:limit]
