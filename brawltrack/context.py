# brawltrack/context.py
"""
Process-wide service wiring.

`ServiceContext` owns the store connection and the upstream clients. Each one
is created on first use and kept for the life of the process; tests build
their own context from explicit parts instead of patching globals.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .api_client import BrawlApiClient, HttpFetcher
from .compare import PlayerComparator
from .config import Settings
from .database import Database
from .leaderboard import LeaderboardBuilder
from .meta import MetaService
from .resolver import RankedSnapshotResolver
from .snapshots import SnapshotService

logger = logging.getLogger(__name__)


class ServiceContext:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        db: Optional[Database] = None,
        api: Optional[BrawlApiClient] = None,
        http: Optional[HttpFetcher] = None,
        resolver: Optional[RankedSnapshotResolver] = None,
        use_db: bool = True,
    ):
        self.settings = settings or Settings.from_env()
        self._db = db
        self._db_failed = False
        self._use_db = use_db and self.settings.use_db
        self._http = http
        self._api = api
        self._resolver = resolver
        self._lock = threading.Lock()

    @property
    def db(self) -> Optional[Database]:
        """The store, or None when disabled or when opening it failed."""
        if self._db is not None or not self._use_db or self._db_failed:
            return self._db
        with self._lock:
            if self._db is None and not self._db_failed:
                try:
                    self._db = Database(self.settings.db_path)
                    print(f"[DB] Using database at: {self._db.db_path}")
                except RuntimeError as e:
                    # Run without a store: no trends, no history.
                    self._db_failed = True
                    logger.error("Database unavailable, continuing without it: %s", e)
        return self._db

    @property
    def http(self) -> HttpFetcher:
        if self._http is None:
            self._http = HttpFetcher(self.settings.request_timeout_seconds)
        return self._http

    @property
    def api(self) -> BrawlApiClient:
        if self._api is None:
            self._api = BrawlApiClient(
                token=self.settings.brawl_api_token,
                base_url=self.settings.brawl_api_base_url,
                brawlify_base_url=self.settings.brawlify_api_base_url,
                timeout_seconds=self.settings.request_timeout_seconds,
                http=self.http,
            )
        return self._api

    @property
    def resolver(self) -> RankedSnapshotResolver:
        if self._resolver is None:
            self._resolver = RankedSnapshotResolver.from_settings(self.settings, http=self.http)
        return self._resolver

    # Cheap per-request facades over the shared parts.

    def leaderboards(self) -> LeaderboardBuilder:
        return LeaderboardBuilder(
            self.api,
            http=self.http,
            db=self.db,
            scrape_base_url=self.settings.scrape_base_url,
            tracked_batch_size=self.settings.tracked_batch_size,
        )

    def snapshots(self) -> SnapshotService:
        return SnapshotService(self.api, db=self.db, resolver=self.resolver)

    def comparator(self) -> PlayerComparator:
        return PlayerComparator(self.api, self.db)

    def meta(self) -> MetaService:
        return MetaService(self.db, self.api)


_context: Optional[ServiceContext] = None
_context_lock = threading.Lock()


def get_context() -> ServiceContext:
    """Shared context for the web app; a FastAPI dependency."""
    global _context
    if _context is None:
        with _context_lock:
            if _context is None:
                _context = ServiceContext()
    return _context
