import itertools

import pytest

from config import reload_settings
from db_engine import get_engine, init_db, reset_engine
from services.reconciler import PositionReconciler

_owner_ids = itertools.count(1000)


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the engine at a fresh SQLite file for the duration of one test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'coinfolio_test.db'}")
    monkeypatch.setenv("OWNER_ID", "1")
    reload_settings()
    reset_engine()
    init_db()
    yield get_engine()
    reset_engine()


@pytest.fixture
def reconciler(db):
    return PositionReconciler(max_attempts=3)


@pytest.fixture
def fresh_owner():
    """Returns a factory for owner ids unused by earlier examples."""
    return lambda: next(_owner_ids)
