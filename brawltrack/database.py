# brawltrack/database.py

import json
import logging
import os
import sqlite3
import threading
import time
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .utils import normalize_tag

logger = logging.getLogger(__name__)

LEADERBOARD_TYPES = ("world", "ranked", "esport")
META_TIERS = ("S", "A", "B", "C")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def today_utc() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _loads(raw: Any, fallback: Any = None) -> Any:
    if raw is None or raw == "":
        return fallback
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return fallback


def _locked(method):
    """Run a Database method while holding the connection lock."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)

    return wrapper


class Database:
    """Handle all database operations."""

    JSON_COLUMNS = {
        "raw_payload",
        "maps_ranked",
        "maps_trophies",
        "top_brawlers_ranked",
        "top_brawlers_trophies",
        "ranked_bans",
        "battlelog_sample",
    }

    def __init__(self, db_path: str = 'data/brawltrack.db'):
        self.db_path = self._resolve_db_path(db_path)
        self.conn = None
        # One connection serves every worker thread; a statement and its
        # commit/rollback run as one unit under this lock.
        self.lock = threading.RLock()
        self.init_database()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        """Return an absolute database path anchored to project root when relative."""
        if db_path == ":memory:":
            return db_path
        path = Path(db_path)
        if path.is_absolute():
            return str(path)

        project_root = Path(__file__).resolve().parents[1]
        return str(project_root / path)

    def init_database(self):
        """Create tables if they don't exist."""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise RuntimeError(f"Failed to create database directory '{db_dir}': {e}")

            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    tag TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    trophies INTEGER DEFAULT 0,
                    highest_trophies INTEGER DEFAULT 0,
                    exp_level INTEGER,
                    victories_3v3 INTEGER DEFAULT 0,
                    solo_victories INTEGER DEFAULT 0,
                    duo_victories INTEGER DEFAULT 0,
                    club_tag TEXT,
                    club_name TEXT,
                    icon_id INTEGER,
                    estimated_playtime_minutes REAL DEFAULT 0,
                    last_battlelog_winrate REAL DEFAULT 0,
                    last_snapshot_hash TEXT,
                    raw_payload TEXT,
                    last_seen_at TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_players_last_seen
                ON players (last_seen_at DESC)
            """)

            # One row per player per UTC day
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_tag TEXT NOT NULL,
                    snapshot_date TEXT NOT NULL,
                    trophies INTEGER DEFAULT 0,
                    highest_trophies INTEGER DEFAULT 0,
                    club_tag TEXT,
                    club_name TEXT,
                    estimated_playtime_minutes REAL DEFAULT 0,
                    winrate_25 REAL DEFAULT 0,
                    raw_payload TEXT,
                    created_at TEXT,
                    UNIQUE (player_tag, snapshot_date)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_analytics_snapshots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_tag TEXT NOT NULL,
                    snapshot_date TEXT NOT NULL,
                    ranked_winrate_25 REAL DEFAULT 0,
                    trophy_winrate_25 REAL DEFAULT 0,
                    ranked_matches_sample INTEGER DEFAULT 0,
                    trophy_matches_sample INTEGER DEFAULT 0,
                    maps_ranked TEXT,
                    maps_trophies TEXT,
                    top_brawlers_ranked TEXT,
                    top_brawlers_trophies TEXT,
                    ranked_bans TEXT,
                    battlelog_sample TEXT,
                    updated_at TEXT,
                    UNIQUE (player_tag, snapshot_date)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS leaderboard_snapshots (
                    type TEXT NOT NULL,
                    player_tag TEXT NOT NULL,
                    last_position INTEGER NOT NULL,
                    last_value REAL DEFAULT 0,
                    updated_at TEXT,
                    PRIMARY KEY (type, player_tag)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS pro_players (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_tag TEXT UNIQUE NOT NULL,
                    display_name TEXT NOT NULL,
                    team TEXT DEFAULT 'Unknown',
                    mercato_status TEXT DEFAULT 'signed',
                    matcherino_url TEXT,
                    matcherino_earnings_usd REAL DEFAULT 0,
                    is_active INTEGER DEFAULT 1,
                    notes TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS meta_tierlist (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    brawler_name TEXT NOT NULL,
                    tier TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    UNIQUE (brawler_name, mode)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS search_history (
                    session_id TEXT NOT NULL,
                    player_tag TEXT NOT NULL,
                    player_name TEXT,
                    searched_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY (session_id, player_tag)
                )
            """)

            self._commit_with_retry(context="init schema commit")
            self._migrate_schema()
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _migrate_schema(self) -> None:
        """
        Apply additive, idempotent schema migrations for older local databases.
        """
        try:
            self._add_column_if_missing("players", "ranked_elo INTEGER", "ranked_elo")
            self._add_column_if_missing("players", "ranked_label TEXT", "ranked_label")
            self._add_column_if_missing("leaderboard_snapshots", "updated_at TEXT", "updated_at")
            self._commit_with_retry(context="migrate schema commit")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to migrate database schema: {e}")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        try:
            self.conn.rollback()
        except sqlite3.Error as e:
            logger.warning("Rollback after failed %s also failed: %s", context, e)
        raise RuntimeError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    logger.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    def _get_table_columns(self, table_name: str) -> set:
        cursor = self.conn.cursor()
        cursor.execute(f"PRAGMA table_info({table_name})")
        return {row["name"] for row in cursor.fetchall()}

    def _add_column_if_missing(self, table_name: str, column_sql: str, column_name: str) -> None:
        columns = self._get_table_columns(table_name)
        if column_name not in columns:
            cursor = self.conn.cursor()
            cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_sql}")

    def _row_to_dict(self, row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        if row is None:
            return None
        data = dict(row)
        for key in self.JSON_COLUMNS.intersection(data):
            data[key] = _loads(data[key])
        return data

    # --- players ---

    @_locked
    def get_player(self, tag: str) -> Optional[Dict[str, Any]]:
        """Get a single player row by tag (raw_payload decoded)."""
        tag = normalize_tag(tag)
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM players WHERE tag = ?", (tag,))
            return self._row_to_dict(cursor.fetchone())
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to get player '{tag}': {e}")

    @_locked
    def upsert_player(
        self,
        profile: Dict[str, Any],
        snapshot_hash: str,
        winrate: float = 0.0,
        estimated_playtime_minutes: float = 0.0,
    ) -> None:
        """Insert or overwrite the player row from a primary API profile."""
        tag = normalize_tag(profile.get("tag"))
        club = profile.get("club") if isinstance(profile.get("club"), dict) else {}
        icon = profile.get("icon") if isinstance(profile.get("icon"), dict) else {}
        now = utc_now()
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO players (
                    tag, name, trophies, highest_trophies, exp_level,
                    victories_3v3, solo_victories, duo_victories,
                    club_tag, club_name, icon_id,
                    estimated_playtime_minutes, last_battlelog_winrate,
                    last_snapshot_hash, raw_payload, last_seen_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tag) DO UPDATE SET
                    name = excluded.name,
                    trophies = excluded.trophies,
                    highest_trophies = excluded.highest_trophies,
                    exp_level = excluded.exp_level,
                    victories_3v3 = excluded.victories_3v3,
                    solo_victories = excluded.solo_victories,
                    duo_victories = excluded.duo_victories,
                    club_tag = excluded.club_tag,
                    club_name = excluded.club_name,
                    icon_id = excluded.icon_id,
                    estimated_playtime_minutes = excluded.estimated_playtime_minutes,
                    last_battlelog_winrate = excluded.last_battlelog_winrate,
                    last_snapshot_hash = excluded.last_snapshot_hash,
                    raw_payload = excluded.raw_payload,
                    last_seen_at = excluded.last_seen_at,
                    updated_at = excluded.updated_at
            """, (
                tag,
                str(profile.get("name") or ""),
                profile.get("trophies") or 0,
                profile.get("highestTrophies") or 0,
                profile.get("expLevel"),
                profile.get("3vs3Victories") or 0,
                profile.get("soloVictories") or 0,
                profile.get("duoVictories") or 0,
                club.get("tag"),
                club.get("name"),
                icon.get("id"),
                estimated_playtime_minutes,
                winrate,
                snapshot_hash,
                _dumps(profile),
                now,
                now,
            ))
            self._commit_with_retry(context=f"upsert player {tag}")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to upsert player '{tag}': {e}")

    @_locked
    def update_player_ranked(self, tag: str, ranked_elo: Optional[int], ranked_label: Optional[str]) -> None:
        """Persist a resolved ranked score/label on an existing player row."""
        tag = normalize_tag(tag)
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                "UPDATE players SET ranked_elo = ?, ranked_label = ?, updated_at = ? WHERE tag = ?",
                (ranked_elo, ranked_label, utc_now(), tag),
            )
            self._commit_with_retry(context=f"update ranked for {tag}")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to update ranked score for '{tag}': {e}")

    @_locked
    def get_recent_players(self, limit: int = 500) -> List[Dict[str, Any]]:
        """Most recently seen players first."""
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                "SELECT * FROM players ORDER BY last_seen_at DESC LIMIT ?",
                (max(0, int(limit)),),
            )
            return [self._row_to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to list recent players: {e}")

    # --- history ---

    @_locked
    def has_history(self, tag: str) -> bool:
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT 1 FROM history WHERE player_tag = ? LIMIT 1", (normalize_tag(tag),))
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to check history for '{tag}': {e}")

    @_locked
    def upsert_daily_history(
        self,
        profile: Dict[str, Any],
        estimated_playtime_minutes: float,
        winrate: float,
        snapshot_date: Optional[str] = None,
    ) -> None:
        tag = normalize_tag(profile.get("tag"))
        club = profile.get("club") if isinstance(profile.get("club"), dict) else {}
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO history (
                    player_tag, snapshot_date, trophies, highest_trophies,
                    club_tag, club_name, estimated_playtime_minutes, winrate_25,
                    raw_payload, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(player_tag, snapshot_date) DO UPDATE SET
                    trophies = excluded.trophies,
                    highest_trophies = excluded.highest_trophies,
                    club_tag = excluded.club_tag,
                    club_name = excluded.club_name,
                    estimated_playtime_minutes = excluded.estimated_playtime_minutes,
                    winrate_25 = excluded.winrate_25,
                    raw_payload = excluded.raw_payload,
                    created_at = excluded.created_at
            """, (
                tag,
                snapshot_date or today_utc(),
                profile.get("trophies") or 0,
                profile.get("highestTrophies") or 0,
                club.get("tag"),
                club.get("name"),
                estimated_playtime_minutes,
                winrate,
                _dumps(profile),
                utc_now(),
            ))
            self._commit_with_retry(context=f"upsert history {tag}")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to upsert history for '{tag}': {e}")

    @_locked
    def get_history(self, tag: str, limit: int = 120) -> List[Dict[str, Any]]:
        """Daily history rows, oldest first."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT * FROM history
                WHERE player_tag = ?
                ORDER BY snapshot_date ASC
                LIMIT ?
            """, (normalize_tag(tag), limit))
            return [self._row_to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to read history for '{tag}': {e}")

    @_locked
    def get_history_for_tags(self, tags: Iterable[str], limit: int = 240) -> List[Dict[str, Any]]:
        """History rows for several players, newest first."""
        wanted = sorted({normalize_tag(tag) for tag in tags})
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        try:
            cursor = self.conn.cursor()
            cursor.execute(f"""
                SELECT * FROM history
                WHERE player_tag IN ({placeholders})
                ORDER BY snapshot_date DESC
                LIMIT ?
            """, (*wanted, limit))
            return [self._row_to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to read history for {', '.join(wanted)}: {e}")

    # --- analytics ---

    @_locked
    def upsert_analytics_snapshot(
        self,
        tag: str,
        analytics: Dict[str, Any],
        battlelog: List[Dict[str, Any]],
        snapshot_date: Optional[str] = None,
    ) -> None:
        tag = normalize_tag(tag)
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO player_analytics_snapshots (
                    player_tag, snapshot_date, ranked_winrate_25, trophy_winrate_25,
                    ranked_matches_sample, trophy_matches_sample,
                    maps_ranked, maps_trophies, top_brawlers_ranked, top_brawlers_trophies,
                    ranked_bans, battlelog_sample, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(player_tag, snapshot_date) DO UPDATE SET
                    ranked_winrate_25 = excluded.ranked_winrate_25,
                    trophy_winrate_25 = excluded.trophy_winrate_25,
                    ranked_matches_sample = excluded.ranked_matches_sample,
                    trophy_matches_sample = excluded.trophy_matches_sample,
                    maps_ranked = excluded.maps_ranked,
                    maps_trophies = excluded.maps_trophies,
                    top_brawlers_ranked = excluded.top_brawlers_ranked,
                    top_brawlers_trophies = excluded.top_brawlers_trophies,
                    ranked_bans = excluded.ranked_bans,
                    battlelog_sample = excluded.battlelog_sample,
                    updated_at = excluded.updated_at
            """, (
                tag,
                snapshot_date or today_utc(),
                analytics.get("ranked_winrate_25") or 0,
                analytics.get("trophy_winrate_25") or 0,
                analytics.get("ranked_sample_matches") or 0,
                analytics.get("trophy_sample_matches") or 0,
                _dumps(analytics.get("maps_ranked", [])),
                _dumps(analytics.get("maps_trophies", [])),
                _dumps(analytics.get("top_brawlers_ranked", [])),
                _dumps(analytics.get("top_brawlers_trophies", [])),
                _dumps(analytics.get("ranked_bans", [])),
                _dumps(battlelog),
                utc_now(),
            ))
            self._commit_with_retry(context=f"upsert analytics {tag}")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to upsert analytics for '{tag}': {e}")

    @_locked
    def get_latest_analytics(self, tag: str) -> Optional[Dict[str, Any]]:
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM player_analytics_snapshots
            WHERE player_tag = ?
            ORDER BY snapshot_date DESC
            LIMIT 1
        """, (normalize_tag(tag),))
        return self._row_to_dict(cursor.fetchone())

    # --- leaderboard positions ---

    @_locked
    def get_leaderboard_positions(self, board_type: str, tags: Iterable[str]) -> Dict[str, int]:
        """Last persisted position per tag for one leaderboard type."""
        wanted = sorted({normalize_tag(tag) for tag in tags})
        if not wanted:
            return {}
        placeholders = ",".join("?" for _ in wanted)
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                f"SELECT player_tag, last_position FROM leaderboard_snapshots "
                f"WHERE type = ? AND player_tag IN ({placeholders})",
                (board_type, *wanted),
            )
            return {row["player_tag"]: int(row["last_position"] or 0) for row in cursor.fetchall()}
        except sqlite3.Error as e:
            raise RuntimeError(f"Leaderboard snapshot read error ({board_type}): {e}")

    @_locked
    def upsert_leaderboard_positions(self, board_type: str, rows: List[Tuple[str, int, float]]) -> None:
        """Overwrite (type, tag) -> (position, value) for every row."""
        if not rows:
            return
        now = utc_now()
        try:
            cursor = self.conn.cursor()
            cursor.executemany("""
                INSERT INTO leaderboard_snapshots (type, player_tag, last_position, last_value, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(type, player_tag) DO UPDATE SET
                    last_position = excluded.last_position,
                    last_value = excluded.last_value,
                    updated_at = excluded.updated_at
            """, [(board_type, normalize_tag(tag), position, value, now) for tag, position, value in rows])
            self._commit_with_retry(context=f"upsert {board_type} leaderboard snapshot")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Leaderboard snapshot upsert error ({board_type}): {e}")

    # --- pro players ---

    @_locked
    def upsert_pro_player(
        self,
        tag: str,
        display_name: str,
        team: str = "Unknown",
        matcherino_url: Optional[str] = None,
        earnings_usd: float = 0.0,
        is_active: bool = True,
        mercato_status: str = "signed",
        notes: Optional[str] = None,
    ) -> None:
        tag = normalize_tag(tag)
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO pro_players (
                    player_tag, display_name, team, mercato_status, matcherino_url,
                    matcherino_earnings_usd, is_active, notes, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(player_tag) DO UPDATE SET
                    display_name = excluded.display_name,
                    team = excluded.team,
                    mercato_status = excluded.mercato_status,
                    matcherino_url = excluded.matcherino_url,
                    matcherino_earnings_usd = excluded.matcherino_earnings_usd,
                    is_active = excluded.is_active,
                    notes = excluded.notes,
                    updated_at = excluded.updated_at
            """, (
                tag, display_name, team, mercato_status, matcherino_url,
                earnings_usd, 1 if is_active else 0, notes, utc_now(),
            ))
            self._commit_with_retry(context=f"upsert pro player {tag}")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to upsert pro player '{tag}': {e}")

    @_locked
    def get_pro_player(self, tag: str) -> Optional[Dict[str, Any]]:
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                "SELECT * FROM pro_players WHERE player_tag = ? AND is_active = 1",
                (normalize_tag(tag),),
            )
            return self._row_to_dict(cursor.fetchone())
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to read pro player '{tag}': {e}")

    @_locked
    def get_top_pro_players(self, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT * FROM pro_players
                WHERE is_active = 1
                ORDER BY matcherino_earnings_usd DESC
                LIMIT ?
            """, (limit,))
            return [self._row_to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to read top pro players: {e}")

    # --- meta tier list ---

    @_locked
    def get_meta_tierlist(self, mode: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT id, brawler_name, tier, mode FROM meta_tierlist"
        params: Tuple[Any, ...] = ()
        if mode and mode.strip():
            query += " WHERE mode = ?"
            params = (mode.strip(),)
        query += " ORDER BY tier ASC, brawler_name ASC"
        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to read meta tier list: {e}")

    @_locked
    def upsert_meta_tier(self, brawler_name: str, tier: str, mode: str) -> None:
        if tier not in META_TIERS:
            raise ValueError(f"Invalid tier '{tier}' (expected one of {', '.join(META_TIERS)})")
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO meta_tierlist (brawler_name, tier, mode)
                VALUES (?, ?, ?)
                ON CONFLICT(brawler_name, mode) DO UPDATE SET tier = excluded.tier
            """, (brawler_name, tier, mode))
            self._commit_with_retry(context=f"upsert meta tier {brawler_name}/{mode}")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to upsert meta tier for '{brawler_name}': {e}")

    # --- search history ---

    @_locked
    def record_search(self, session_id: str, tag: str, player_name: Optional[str] = None) -> None:
        now = utc_now()
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO search_history (session_id, player_tag, player_name, searched_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(session_id, player_tag) DO UPDATE SET
                    player_name = excluded.player_name,
                    searched_at = excluded.searched_at,
                    updated_at = excluded.updated_at
            """, (session_id, normalize_tag(tag), player_name, now, now))
            self._commit_with_retry(context="upsert search history")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to record search for session '{session_id}': {e}")

    @_locked
    def get_search_history(self, session_id: str, limit: int = 8) -> List[Dict[str, Any]]:
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT player_tag, player_name, updated_at
                FROM search_history
                WHERE session_id = ?
                ORDER BY updated_at DESC
                LIMIT ?
            """, (session_id, limit))
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to read search history for session '{session_id}': {e}")

    @_locked
    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
