# brawltrack/config.py
"""
Runtime settings read from the environment.

Every knob has a default so the app starts without any configuration; the
primary API simply answers UNAUTHORIZED until BRAWL_API_TOKEN is set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

DEFAULT_DB_PATH = "data/brawltrack.db"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip().rstrip("/") for part in raw.split(",") if part.strip())


def _versioned_base(raw: str) -> str:
    base = raw.strip().rstrip("/")
    if base.lower().endswith("/v1"):
        return base
    return f"{base}/v1"


@dataclass(frozen=True)
class MirrorSource:
    base_url: str
    api_key: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    brawl_api_token: str = ""
    brawl_api_base_url: str = "https://api.brawlstars.com/v1"
    brawlify_api_base_url: str = "https://api.brawlify.com/v1"
    scrape_base_url: str = "https://brawltime.ninja"
    mirrors: Tuple[MirrorSource, ...] = field(default_factory=tuple)
    db_path: str = DEFAULT_DB_PATH
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    admin_password: str = ""
    tracked_batch_size: int = 500
    use_db: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        mirror_key = _env("BRAWLTRACK_MIRROR_API_KEY") or None
        keyed_hosts = set(_split_csv(_env("BRAWLTRACK_MIRROR_KEYED_HOSTS")))
        mirror_urls = _split_csv(
            _env("BRAWLTRACK_MIRROR_URLS", "https://api.brawlapi.com/v1,https://bsproxy.royaleapi.dev/v1")
        )
        mirrors = tuple(
            MirrorSource(base_url=url, api_key=mirror_key if mirror_key and url in keyed_hosts else None)
            for url in mirror_urls
        )

        try:
            batch = int(_env("BRAWLTRACK_TRACKED_BATCH", "500"))
        except ValueError:
            batch = 500

        return cls(
            brawl_api_token=_env("BRAWL_API_TOKEN"),
            brawl_api_base_url=_versioned_base(_env("BRAWL_API_BASE_URL", "https://api.brawlstars.com/v1")),
            brawlify_api_base_url=_env("BRAWLIFY_API_BASE_URL", "https://api.brawlify.com/v1").rstrip("/"),
            scrape_base_url=_env("BRAWLTRACK_SCRAPE_BASE_URL", "https://brawltime.ninja").rstrip("/"),
            mirrors=mirrors,
            db_path=_env("BRAWLTRACK_DB_PATH", DEFAULT_DB_PATH),
            request_timeout_seconds=_env_float("BRAWLTRACK_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS),
            admin_password=_env("ADMIN_PASSWORD"),
            tracked_batch_size=max(1, batch),
            use_db=_env("BRAWLTRACK_NO_DB").lower() not in ("1", "true", "yes"),
        )

    def describe(self) -> Dict[str, object]:
        """Settings summary safe to print (no secrets)."""
        return {
            "brawl_api_base_url": self.brawl_api_base_url,
            "brawl_api_token_set": bool(self.brawl_api_token),
            "scrape_base_url": self.scrape_base_url,
            "mirrors": [m.base_url for m in self.mirrors],
            "db_path": self.db_path if self.use_db else None,
            "request_timeout_seconds": self.request_timeout_seconds,
        }
