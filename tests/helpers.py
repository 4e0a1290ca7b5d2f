# tests/helpers.py
"""Shared fixtures loaders and in-process fakes for the upstream services."""

import copy
import json
import os
import tempfile
from urllib.error import URLError

from brawltrack.api_client import BrawlApiError, CODE_PLAYER_NOT_FOUND
from brawltrack.database import Database
from brawltrack.utils import normalize_tag

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), 'fixtures')


def _fixture_path(name):
    return os.path.join(FIXTURES_DIR, name)


def load_text(name):
    with open(_fixture_path(name), 'r', encoding='utf-8') as handle:
        return handle.read()


def load_json(name):
    return json.loads(load_text(name))


def sample_profile(**overrides):
    profile = load_json('player_profile.json')
    profile.update(overrides)
    return profile


def sample_battlelog():
    return load_json('battlelog.json')['items']


def create_test_db():
    """Create a temporary database; returns (db, path)."""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    return Database(db_path), db_path


def remove_test_db(db, db_path):
    db.close()
    for suffix in ('', '-wal', '-shm'):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)


class FakeHttp:
    """Answers GETs from canned pages/payloads; unknown URLs fail like an offline host."""

    def __init__(self, pages=None, payloads=None, default_payload=None):
        self.pages = dict(pages or {})
        self.payloads = dict(payloads or {})
        self.default_payload = default_payload
        self.requested = []

    def get_text(self, url, headers=None, force_refresh=False):
        self.requested.append(url)
        if url in self.pages:
            return self.pages[url]
        raise URLError(f"offline: {url}")

    def get_json(self, url, headers=None, force_refresh=False):
        self.requested.append(url)
        if url in self.payloads:
            return copy.deepcopy(self.payloads[url])
        if self.default_payload is not None:
            return copy.deepcopy(self.default_payload)
        raise URLError(f"offline: {url}")


class FakeApi:
    """Stand-in for BrawlApiClient keyed by normalized tag."""

    timeout_seconds = 1.0

    def __init__(self, players=None, battlelogs=None, rankings=None, rankings_error=None, tier_list=None):
        self.players = {normalize_tag(tag): profile for tag, profile in (players or {}).items()}
        self.battlelogs = {normalize_tag(tag): items for tag, items in (battlelogs or {}).items()}
        self.rankings = rankings or []
        self.rankings_error = rankings_error
        self.tier_list = tier_list or []
        self.player_calls = []

    def get_player(self, tag, force_refresh=False):
        tag = normalize_tag(tag)
        self.player_calls.append(tag)
        if tag not in self.players:
            raise BrawlApiError("Brawl API error (404): notFound", 404, CODE_PLAYER_NOT_FOUND)
        return copy.deepcopy(self.players[tag])

    def get_player_battlelog(self, tag, limit=25, force_refresh=False):
        tag = normalize_tag(tag)
        if tag not in self.players:
            raise BrawlApiError("Brawl API error (404): notFound", 404, CODE_PLAYER_NOT_FOUND)
        return copy.deepcopy(self.battlelogs.get(tag, []))[:limit]

    def get_global_rankings(self, params=None):
        if self.rankings_error is not None:
            raise self.rankings_error
        return copy.deepcopy(self.rankings)

    def get_top_players(self, limit=10):
        return self.get_global_rankings()[:limit]

    def get_brawlify_tier_list(self, limit=30):
        return self.tier_list[:limit]


class FakeResolver:
    def __init__(self, snapshot=None):
        self.snapshot = snapshot
        self.calls = []

    def get_external_ranked_snapshot(self, tag, force_refresh=False):
        self.calls.append(tag)
        return self.snapshot
