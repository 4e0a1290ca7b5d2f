import os
import sys
from http.client import IncompleteRead

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from brawltrack.config import MirrorSource, Settings
from brawltrack.resolver import (
    RankedSnapshot,
    RankedSnapshotResolver,
    SOURCE_MIRROR,
    SOURCE_SCRAPE,
    redact_url,
    snapshot_from_record,
)
from tests.helpers import FakeHttp, load_text

SCRAPE_BASE = "https://scrape.test"


def _resolver(http, mirrors=(MirrorSource("https://mirror.test"),)):
    return RankedSnapshotResolver(http=http, scrape_base_url=SCRAPE_BASE, mirrors=mirrors)


def test_scraped_profile_wins_without_touching_mirrors():
    http = FakeHttp(pages={f"{SCRAPE_BASE}/profile/P0LY8J2Q": load_text('ranked_profile_page.html')})
    report = _resolver(http).resolve("#p0ly8j2q")

    assert report.snapshot == RankedSnapshot(score=8700, rank_label="Masters I", peak_score=9320)
    assert len(report.attempts) == 1
    assert report.attempts[0].source == SOURCE_SCRAPE and report.attempts[0].ok
    assert http.requested == [f"{SCRAPE_BASE}/profile/P0LY8J2Q"]


def test_blocked_scrape_falls_back_to_first_mirror():
    http = FakeHttp(
        pages={f"{SCRAPE_BASE}/profile/ABC": load_text('challenge_page.html')},
        default_payload={"tag": "#ABC", "rankedElo": "8,250", "rankName": "Legendary III"},
    )
    report = _resolver(http).resolve("#ABC")

    assert report.snapshot.score == 8250
    assert report.snapshot.rank_label == "Legendary III"
    assert report.snapshot.peak_score == 8250
    assert [a.source for a in report.attempts] == [SOURCE_SCRAPE, SOURCE_MIRROR]
    assert report.attempts[0].detail == "bot challenge page"
    assert report.attempts[1].url == "https://mirror.test/players/%23ABC"


def test_mirror_records_for_other_players_are_skipped():
    http = FakeHttp(
        payloads={
            "https://mirror.test/players/%23ABC": {"items": [{"tag": "#QQQ", "rankedElo": 9900}]},
            "https://mirror.test/players/ABC": {"tag": "#ABC", "trophies": 12000},
            "https://mirror.test/player/ABC": {"player": {"tag": "#ABC", "elo": 7100}},
        },
    )
    report = _resolver(http).resolve("ABC")

    assert report.snapshot.score == 7100
    details = [a.detail for a in report.attempts]
    assert details[0].startswith("request failed")
    assert details[1] == "no record for tag"
    assert details[2] == "record has no ranked fields"
    assert report.attempts[-1].ok


def test_nothing_found_returns_none_and_every_attempt():
    http = FakeHttp()
    resolver = _resolver(http)
    report = resolver.resolve("#ABC")

    assert report.snapshot is None
    assert len(report.attempts) == 1 + len(resolver.mirror_urls("#ABC"))
    assert not any(a.ok for a in report.attempts)
    assert resolver.get_external_ranked_snapshot("#ABC") is None


def test_mirror_urls_cover_versioned_roots_and_key():
    resolver = _resolver(FakeHttp(), mirrors=(MirrorSource("https://keyed.test/v1", api_key="s3cret"),))
    urls = resolver.mirror_urls("#ABC")

    assert urls[0] == "https://keyed.test/v1/players/%23ABC?apiKey=s3cret"
    assert "https://keyed.test/player?tag=ABC&apiKey=s3cret" in urls
    assert len(urls) == len(set(urls)) == 8


def test_mirror_key_is_redacted_in_attempts():
    resolver = _resolver(FakeHttp(), mirrors=(MirrorSource("https://keyed.test/v1", api_key="s3cret"),))
    report = resolver.resolve("#ABC")
    assert all("s3cret" not in a.url for a in report.attempts)
    assert redact_url("https://x.test/p?tag=1&apiKey=abc") == "https://x.test/p?tag=1&apiKey=***"


@pytest.mark.parametrize("record,expected", [
    ({"tag": "#ABC", "rankName": "Diamond I"}, RankedSnapshot(0, "Diamond I", 3000)),
    ({"tag": "#ABC", "elo": 5200, "bestElo": 6100}, RankedSnapshot(5200, None, 6100)),
    ({"tag": "#ABC", "rank": 12}, None),
])
def test_snapshot_from_record(record, expected):
    assert snapshot_from_record(record) == expected


def test_from_settings_uses_configured_sources():
    settings = Settings(scrape_base_url="https://scrape.test", mirrors=(MirrorSource("https://m.test/v1"),))
    resolver = RankedSnapshotResolver.from_settings(settings, http=FakeHttp())
    assert resolver.profile_url("#ABC") == "https://scrape.test/profile/ABC"
    assert resolver.mirror_urls("#ABC")[0] == "https://m.test/v1/players/%23ABC"


class TruncatingHttp(FakeHttp):
    """Profile pages die mid-body the way a dropped keep-alive connection does."""

    def get_text(self, url, headers=None, force_refresh=False):
        self.requested.append(url)
        raise IncompleteRead(b"<html>partial")


def test_truncated_scrape_moves_on_to_mirrors():
    http = TruncatingHttp(default_payload={"tag": "#ABC", "rankedElo": "8,250"})
    report = _resolver(http).resolve("#ABC")

    assert report.snapshot.score == 8250
    assert report.snapshot.peak_score == 8250
    assert report.attempts[0].source == SOURCE_SCRAPE
    assert report.attempts[0].detail.startswith("request failed")
    assert report.attempts[1].ok


def test_truncated_mirror_bodies_are_misses():
    class TruncatingJsonHttp(FakeHttp):
        def get_json(self, url, headers=None, force_refresh=False):
            self.requested.append(url)
            raise IncompleteRead(b'{"tag": "#AB')

    resolver = _resolver(TruncatingJsonHttp())
    assert resolver.get_external_ranked_snapshot("#ABC") is None
    assert len(resolver.resolve("#ABC").attempts) == 1 + len(resolver.mirror_urls("#ABC"))
