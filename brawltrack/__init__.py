# brawltrack/__init__.py
"""
Brawl Stars player tracker: profile analytics, ranked score resolution and
leaderboards with position trends.
"""

from .api_client import BrawlApiClient, BrawlApiError, HttpFetcher
from .config import Settings
from .context import ServiceContext, get_context
from .database import Database
from .leaderboard import LeaderboardBuilder, LeaderboardEntry, LeaderboardUnavailableError
from .resolver import RankedSnapshot, RankedSnapshotResolver
from .trends import TrendAnnotation, compare_and_persist_leaderboard

__all__ = [
    'BrawlApiClient',
    'BrawlApiError',
    'HttpFetcher',
    'Settings',
    'ServiceContext',
    'get_context',
    'Database',
    'LeaderboardBuilder',
    'LeaderboardEntry',
    'LeaderboardUnavailableError',
    'RankedSnapshot',
    'RankedSnapshotResolver',
    'TrendAnnotation',
    'compare_and_persist_leaderboard',
]
