import os
import sys
from http.client import IncompleteRead

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from brawltrack.api_client import BrawlApiError, CODE_UNAUTHORIZED
from brawltrack.leaderboard import (
    RANKED_LEADERBOARD_PATH,
    LeaderboardBuilder,
    LeaderboardEntry,
    LeaderboardUnavailableError,
)
from brawltrack.seeds import DEFAULT_ICON_ID, ESPORT_SEEDS
from tests.helpers import FakeApi, FakeHttp, create_test_db, load_text, remove_test_db, sample_profile

SCRAPE_BASE = "https://scrape.test"
BOARD_URL = f"{SCRAPE_BASE}{RANKED_LEADERBOARD_PATH}"


@pytest.fixture
def temp_db():
    db, path = create_test_db()
    try:
        yield db
    finally:
        remove_test_db(db, path)


def _builder(api=None, pages=None, db=None):
    return LeaderboardBuilder(
        api or FakeApi(),
        http=FakeHttp(pages=pages),
        db=db,
        scrape_base_url=SCRAPE_BASE,
    )


def test_scraped_page_is_preferred():
    builder = _builder(pages={BOARD_URL: load_text('ranked_leaderboard_page.html')})
    entries = builder.get_top_ranked_players(2)

    assert entries == [
        LeaderboardEntry(tag="#P0LY8J2Q", name="Nova", rank=1, score=12480),
        LeaderboardEntry(tag="#Q2GCUV9L", name="Raven", rank=2, score=11905),
    ]
    assert entries[0].to_dict()["icon_id"] == DEFAULT_ICON_ID


def test_every_source_empty_raises(temp_db):
    api = FakeApi(rankings_error=BrawlApiError("BRAWL_API_TOKEN is not configured.", 500, CODE_UNAUTHORIZED))
    temp_db.upsert_player(sample_profile(tag="#Q2GCUV9L"), "", 50.0, 0)
    builder = _builder(api=api, pages={BOARD_URL: ""}, db=temp_db)

    with pytest.raises(LeaderboardUnavailableError):
        builder.get_top_ranked_players(10)


def test_challenge_page_and_empty_ranking_raise():
    builder = _builder(api=FakeApi(rankings=[]), pages={BOARD_URL: load_text('challenge_page.html')})
    with pytest.raises(LeaderboardUnavailableError):
        builder.get_top_ranked_players(10)


def test_tracked_players_build_the_board(temp_db):
    temp_db.upsert_player(sample_profile(rankedElo=8700), "hash-a", 60.0, 10.0)
    temp_db.upsert_player(sample_profile(tag="#Q2GCUV9L", name="Raven"), "hash-b", 55.0, 10.0)
    temp_db.update_player_ranked("#Q2GCUV9L", 9100, "Masters I")
    # Stored payload is not a real profile: no brawlers.
    temp_db.upsert_player({"tag": "#8YJ0Q2PC", "name": "Kyro", "trophies": 1, "rankedElo": 15000}, "hash-c")

    entries = _builder(db=temp_db).get_top_ranked_players(10)

    assert [(e.tag, e.rank, e.score) for e in entries] == [("#Q2GCUV9L", 1, 9100), ("#P0LY8J2Q", 2, 8700)]
    assert entries[1].icon_id == 28000012


def test_tracked_score_ignores_rows_without_snapshot(temp_db):
    builder = _builder(db=temp_db)
    row = {"tag": "#P0LY8J2Q", "last_snapshot_hash": "", "raw_payload": sample_profile(rankedElo=8000)}
    assert builder.tracked_score(row) == 0
    row["last_snapshot_hash"] = "abc"
    assert builder.tracked_score(row) == 8000
    row["ranked_elo"] = 99999
    assert builder.tracked_score(row) == 8000


def test_global_ranking_fallback_reads_only_ranked_keys():
    api = FakeApi(rankings=[
        {"tag": "#Q2GCUV9L", "name": "Raven", "rank": 1, "trophies": 90000, "rankedElo": 8800},
        {"tag": "#P0LY8J2Q", "name": "Nova", "rank": 2, "trophies": 88000, "rankedElo": 9400},
        {"tag": "#8YJ0Q2PC", "name": "Kyro", "rank": 3, "trophies": 87000},
    ])
    entries = _builder(api=api).get_top_ranked_players(5)
    assert [(e.name, e.rank, e.score) for e in entries] == [("Nova", 1, 9400), ("Raven", 2, 8800)]


def test_world_board_maps_ranking_items():
    api = FakeApi(rankings=[
        {"tag": "#p0ly8j2q", "name": "Nova", "rank": 1, "trophies": 91000, "icon": {"id": 28000012}},
        {"tag": "#Q2GCUV9L", "name": "Raven", "rank": 2, "trophies": "89,500"},
    ])
    entries = _builder(api=api).get_top_players(10)
    assert entries[0] == LeaderboardEntry("#P0LY8J2Q", "Nova", 1, 91000, 28000012)
    assert entries[1].score == 89500
    assert entries[1].icon_id == DEFAULT_ICON_ID


def test_world_board_propagates_api_errors():
    api = FakeApi(rankings_error=BrawlApiError("down", 503, "MAINTENANCE"))
    with pytest.raises(BrawlApiError):
        _builder(api=api).get_top_players(10)


def test_esport_board_uses_seeds_without_pro_players():
    leaders = _builder().get_top_esport_leaders(3)
    assert [leader["tag"] for leader in leaders] == [seed["tag"] for seed in ESPORT_SEEDS[:3]]
    assert leaders[0]["icon_id"] == DEFAULT_ICON_ID


def test_esport_board_tops_up_pro_players_with_seeds(temp_db):
    temp_db.upsert_pro_player("#2L8Q9JVC", "Pulse", team="Vertex", earnings_usd=99000)
    api = FakeApi(players={"#2L8Q9JVC": sample_profile(tag="#2L8Q9JVC", icon={"id": 28000050})})

    leaders = _builder(api=api, db=temp_db).get_top_esport_leaders(4)

    assert leaders[0]["display_name"] == "Pulse"
    assert leaders[0]["earnings_usd"] == 99000
    assert leaders[0]["icon_id"] == 28000050
    assert len(leaders) == 4
    assert [leader["tag"] for leader in leaders].count("#2L8Q9JVC") == 1


def test_truncated_scrape_page_falls_through_to_global_ranking():
    class TruncatingHttp(FakeHttp):
        def get_text(self, url, headers=None, force_refresh=False):
            self.requested.append(url)
            raise IncompleteRead(b"<html>partial")

    api = FakeApi(rankings=[{"tag": "#Q2GCUV9L", "name": "Raven", "rank": 1, "rankedElo": 8800}])
    builder = LeaderboardBuilder(api, http=TruncatingHttp(), db=None, scrape_base_url=SCRAPE_BASE)

    entries = builder.get_top_ranked_players(5)
    assert [(e.tag, e.rank, e.score) for e in entries] == [("#Q2GCUV9L", 1, 8800)]
