import json
import socket
from http.client import IncompleteRead
from io import BytesIO
from urllib.error import HTTPError, URLError

import pytest

import brawltrack.api_client as api_module
from brawltrack.api_client import (
    BrawlApiClient,
    BrawlApiError,
    CODE_HTTP_ERROR,
    CODE_MAINTENANCE,
    CODE_PLAYER_NOT_FOUND,
    CODE_UNAUTHORIZED,
    HttpFetcher,
    map_status_to_code,
    tier_from_winrate,
)
from brawltrack.config import Settings

BASE_URL = "https://api.test/v1"


@pytest.fixture
def client():
    return BrawlApiClient(token="test-token", base_url=BASE_URL, brawlify_base_url="https://brawlify.test/v1")


def _json_response(payload):
    return BytesIO(json.dumps(payload).encode("utf-8"))


def _http_error(url, code, body=b"{}"):
    return HTTPError(url, code, "error", hdrs=None, fp=BytesIO(body))


def test_get_player_sends_token_and_encoded_tag(monkeypatch, client):
    seen = []

    def fake_urlopen(req, timeout=0):
        seen.append(req)
        return _json_response({"tag": "#P0LY8J2Q", "name": "Nova"})

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    profile = client.get_player("p0ly8j2q")

    assert profile["name"] == "Nova"
    assert seen[0].full_url == "https://api.test/v1/players/%23P0LY8J2Q"
    assert seen[0].get_header("Authorization") == "Bearer test-token"


def test_force_refresh_sets_no_cache(monkeypatch, client):
    seen = []

    def fake_urlopen(req, timeout=0):
        seen.append(req)
        return _json_response({"items": []})

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    client.get_player_battlelog("#P0LY8J2Q", force_refresh=True)
    assert seen[0].get_header("Cache-control") == "no-cache"


def test_battlelog_is_truncated(monkeypatch, client):
    items = [{"battleTime": str(i)} for i in range(30)]
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_response({"items": items}))
    assert len(client.get_player_battlelog("#P0LY8J2Q")) == 25
    assert len(client.get_player_battlelog("#P0LY8J2Q", limit=0)) == 30


def test_404_maps_to_player_not_found(monkeypatch, client):
    def fake_urlopen(req, timeout=0):
        raise _http_error(req.full_url, 404, b'{"reason": "notFound"}')

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")

    assert excinfo.value.status == 404
    assert excinfo.value.code == CODE_PLAYER_NOT_FOUND
    assert "notFound" in str(excinfo.value)


def test_503_maps_to_maintenance(monkeypatch, client):
    def fake_urlopen(req, timeout=0):
        raise _http_error(req.full_url, 503)

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")
    assert excinfo.value.code == CODE_MAINTENANCE


def test_429_retries_once(monkeypatch, client):
    calls = {"n": 0}

    def fake_urlopen(req, timeout=0):
        calls["n"] += 1
        if calls["n"] == 1:
            raise _http_error(req.full_url, 429)
        return _json_response({"tag": "#P0LY8J2Q"})

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    monkeypatch.setattr(api_module.time, "sleep", lambda *_: None)

    assert client.get_player("#P0LY8J2Q")["tag"] == "#P0LY8J2Q"
    assert calls["n"] == 2


def test_second_429_is_an_error(monkeypatch, client):
    def fake_urlopen(req, timeout=0):
        raise _http_error(req.full_url, 429)

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    monkeypatch.setattr(api_module.time, "sleep", lambda *_: None)
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")
    assert excinfo.value.status == 429
    assert excinfo.value.code == CODE_HTTP_ERROR


def test_missing_token_fails_without_request(monkeypatch):
    def fake_urlopen(req, timeout=0):
        raise AssertionError("no request expected")

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    with pytest.raises(BrawlApiError) as excinfo:
        BrawlApiClient(token="", base_url=BASE_URL).get_player("#P0LY8J2Q")
    assert excinfo.value.status == 500
    assert excinfo.value.code == CODE_UNAUTHORIZED


def test_timeout_and_network_errors(monkeypatch, client):
    def timing_out(req, timeout=0):
        raise URLError(socket.timeout("timed out"))

    monkeypatch.setattr(api_module, "urlopen", timing_out)
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")
    assert excinfo.value.status == 504

    def refused(req, timeout=0):
        raise URLError(ConnectionRefusedError(111, "refused"))

    monkeypatch.setattr(api_module, "urlopen", refused)
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")
    assert excinfo.value.status == 502


def test_invalid_json_is_bad_gateway(monkeypatch, client):
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: BytesIO(b"<html>oops</html>"))
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")
    assert excinfo.value.status == 502


class _TruncatedBody(BytesIO):
    def read(self, *args):
        raise IncompleteRead(b'{"tag": "#P0')


def test_truncated_body_is_bad_gateway(monkeypatch, client):
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _TruncatedBody())
    with pytest.raises(BrawlApiError) as excinfo:
        client.get_player("#P0LY8J2Q")
    assert excinfo.value.status == 502
    assert excinfo.value.code == CODE_HTTP_ERROR

    with pytest.raises(BrawlApiError) as excinfo:
        client.get_brawlify_tier_list()
    assert excinfo.value.status == 502


def test_get_top_players_normalizes_items(monkeypatch, client):
    payload = {"items": [
        {"tag": "#P0LY8J2Q", "name": "Nova", "rank": 1, "trophies": 91000},
        {"tag": "#Q2GCUV9L", "name": "Raven", "rank": "2", "trophies": "89,500"},
    ]}
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_response(payload))

    top = client.get_top_players(1)
    assert top == [{"tag": "#P0LY8J2Q", "name": "Nova", "rank": 1, "trophies": 91000}]


def test_get_top_players_refreshes_placeholder_rows(monkeypatch, client):
    ranking = [
        {"tag": "#P0LY8J2Q", "name": "?", "rank": 1, "trophies": 3},
        {"tag": "#Q2GCUV9L", "name": "?", "rank": 2, "trophies": 2},
    ]
    profiles = {
        "#P0LY8J2Q": {"tag": "#P0LY8J2Q", "name": "Nova", "trophies": 91000, "icon": {"id": 28000012}},
    }

    def fake_get_player(tag, force_refresh=False):
        if tag not in profiles:
            raise BrawlApiError("missing", 404, CODE_PLAYER_NOT_FOUND)
        return profiles[tag]

    monkeypatch.setattr(client, "get_global_rankings", lambda params=None: ranking)
    monkeypatch.setattr(client, "get_player", fake_get_player)

    top = client.get_top_players(10)
    assert top[0]["name"] == "Nova"
    assert top[0]["trophies"] == 91000
    assert top[0]["icon"] == {"id": 28000012}
    assert top[1]["name"] == "?"


def test_brawlify_tier_list(monkeypatch, client):
    payload = {"list": [
        {"id": 16000000, "name": "Shelly", "imageUrl": "https://img.test/shelly.png", "stats": {"winRate": "51.2"}},
        {"id": 16000001, "name": "Colt", "winRate": 59.1},
        {"id": 16000002, "name": "Bull", "stats": {"winrate": 47}},
        {"id": 16000003, "name": "Brock"},
    ]}
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_response(payload))

    tiers = client.get_brawlify_tier_list()
    assert [(t["name"], t["tier"]) for t in tiers] == [("Colt", "S"), ("Shelly", "B"), ("Bull", "C")]
    assert tiers[1]["image_url"] == "https://img.test/shelly.png"


def test_brawlify_failure_raises(monkeypatch, client):
    def fake_urlopen(req, timeout=0):
        raise _http_error(req.full_url, 500)

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    with pytest.raises(BrawlApiError):
        client.get_brawlify_tier_list()


def test_helpers():
    assert map_status_to_code(401) == CODE_UNAUTHORIZED
    assert map_status_to_code(403) == CODE_UNAUTHORIZED
    assert map_status_to_code(418) == CODE_HTTP_ERROR
    assert [tier_from_winrate(v) for v in (58, 53, 49, 48.9)] == ["S", "A", "B", "C"]


def test_from_settings():
    settings = Settings(brawl_api_token="abc", brawl_api_base_url="https://proxy.test/v1/", request_timeout_seconds=3.0)
    client = BrawlApiClient.from_settings(settings)
    assert client.base_url == "https://proxy.test/v1"
    assert isinstance(client.http, HttpFetcher)
    assert client.http.timeout_seconds == 3.0
