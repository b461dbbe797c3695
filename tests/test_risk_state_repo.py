"""Tests for risk-state persistence — SQLite and in-memory stores."""

import dataclasses
from datetime import date, datetime, timedelta, timezone

import pytest

from tradedesk.config import Config, load_config
from tradedesk.repos.db import get_connection, init_db
from tradedesk.repos.risk_state_repo import SqliteRiskStateStore
from tradedesk.risk.state_store import InMemoryRiskStateStore, RiskStateStore

_ENDS = datetime(2025, 3, 3, 16, 0, tzinfo=timezone.utc)
_DAY = date(2025, 3, 3)


def _config_for(tmp_path, db_path: str) -> Config:
    cfg = load_config(env_path=str(tmp_path / "missing.env"))
    return dataclasses.replace(cfg, db_path=db_path)


@pytest.fixture
def sqlite_store(tmp_path):
    db_path = str(tmp_path / "nested" / "risk.db")
    init_db(db_path)
    return SqliteRiskStateStore(db_path)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRiskStateStore()
    db_path = str(tmp_path / "risk.db")
    init_db(db_path)
    return SqliteRiskStateStore(db_path)


class TestInitDb:
    def test_creates_tables(self, tmp_path):
        db_path = str(tmp_path / "risk.db")
        init_db(db_path)
        conn = get_connection(db_path)
        try:
            names = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            conn.close()
        assert {"risk_cooldowns", "risk_daily_stats"} <= names

    def test_idempotent(self, tmp_path):
        db_path = str(tmp_path / "risk.db")
        init_db(db_path)
        init_db(db_path)


class TestStores:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, RiskStateStore)

    def test_cooldown_round_trip(self, store):
        assert store.get_cooldown("u1") is None
        store.set_cooldown("u1", _ENDS)
        assert store.get_cooldown("u1") == _ENDS

    def test_cooldown_overwrite_and_clear(self, store):
        store.set_cooldown("u1", _ENDS)
        store.set_cooldown("u1", _ENDS + timedelta(minutes=30))
        assert store.get_cooldown("u1") == _ENDS + timedelta(minutes=30)
        store.clear_cooldown("u1")
        assert store.get_cooldown("u1") is None

    def test_clear_missing_cooldown_is_noop(self, store):
        store.clear_cooldown("nobody")
        assert store.get_cooldown("nobody") is None

    def test_day_start_balance_keyed_by_day(self, store):
        tomorrow = _DAY + timedelta(days=1)
        store.set_day_start_balance("u1", _DAY, 10_000.0)
        assert store.get_day_start_balance("u1", _DAY) == 10_000.0
        assert store.get_day_start_balance("u1", tomorrow) is None

        store.set_day_start_balance("u1", tomorrow, 9_500.0)
        assert store.get_day_start_balance("u1", tomorrow) == 9_500.0
        assert store.get_day_start_balance("u2", _DAY) is None

    def test_users_isolated(self, store):
        store.set_cooldown("u1", _ENDS)
        assert store.get_cooldown("u2") is None


class TestSqlitePersistence:
    def test_survives_new_instance(self, sqlite_store, tmp_path):
        sqlite_store.set_cooldown("u1", _ENDS)
        sqlite_store.set_day_start_balance("u1", _DAY, 10_000.0)

        reopened = SqliteRiskStateStore(str(tmp_path / "nested" / "risk.db"))
        assert reopened.get_cooldown("u1") == _ENDS
        assert reopened.get_day_start_balance("u1", _DAY) == 10_000.0

    def test_timezone_preserved(self, sqlite_store):
        sqlite_store.set_cooldown("u1", _ENDS)
        assert sqlite_store.get_cooldown("u1").tzinfo is not None

    def test_from_config_initializes_database(self, tmp_path):
        db_path = str(tmp_path / "cfg" / "risk.db")
        store = SqliteRiskStateStore.from_config(_config_for(tmp_path, db_path))
        store.set_day_start_balance("u1", _DAY, 10_000.0)
        assert store.get_day_start_balance("u1", _DAY) == 10_000.0


class TestInMemoryStore:
    def test_earlier_days_dropped(self):
        store = InMemoryRiskStateStore()
        store.set_day_start_balance("u1", _DAY, 10_000.0)
        store.set_day_start_balance("u2", _DAY, 5_000.0)
        store.set_day_start_balance("u1", _DAY + timedelta(days=1), 9_500.0)

        assert store.get_day_start_balance("u1", _DAY) is None
        assert store.get_day_start_balance("u2", _DAY) is None
        assert store.get_day_start_balance("u1", _DAY + timedelta(days=1)) == 9_500.0
        assert len(store._day_start) == 1

    def test_same_day_entries_kept(self):
        store = InMemoryRiskStateStore()
        store.set_day_start_balance("u1", _DAY, 10_000.0)
        store.set_day_start_balance("u2", _DAY, 5_000.0)
        assert store.get_day_start_balance("u1", _DAY) == 10_000.0
        assert store.get_day_start_balance("u2", _DAY) == 5_000.0
