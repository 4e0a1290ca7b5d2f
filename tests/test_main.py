import os
import sys
import tempfile

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import main as cli
from brawltrack.config import Settings
from brawltrack.context import ServiceContext


def _capture_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(cli.uvicorn, 'run', lambda app, **kwargs: calls.append((app, kwargs)))
    return calls


def test_serve_passes_no_db_and_path_to_server(monkeypatch):
    monkeypatch.setenv('BRAWLTRACK_DB_PATH', 'data/other.db')
    monkeypatch.setenv('BRAWLTRACK_NO_DB', '0')
    calls = _capture_uvicorn(monkeypatch)
    db_path = os.path.join(tempfile.gettempdir(), 'brawltrack-serve.db')

    assert cli.main(['--db', db_path, '--no-db', 'serve', '--port', '9001']) == 0

    assert calls == [('web.app:app', {'host': '127.0.0.1', 'port': 9001, 'reload': False})]
    settings = Settings.from_env()
    assert settings.db_path == db_path
    assert settings.use_db is False
    assert ServiceContext(settings=settings).db is None


def test_serve_keeps_store_enabled_by_default(monkeypatch):
    monkeypatch.setenv('BRAWLTRACK_DB_PATH', 'data/brawltrack.db')
    monkeypatch.setenv('BRAWLTRACK_NO_DB', '')
    _capture_uvicorn(monkeypatch)

    assert cli.main(['--db', 'data/served.db', 'serve']) == 0

    settings = Settings.from_env()
    assert settings.db_path == 'data/served.db'
    assert settings.use_db is True
