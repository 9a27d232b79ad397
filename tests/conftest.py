# tests/conftest.py
"""
Shared test fixtures and configuration for pytest.
"""

import os
import sqlite3
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bulkaction.database import Database
from bulkaction.session import Session
from models import Buyer, Order, Soldier

TEST_ENCRYPTION_KEY = '2YvTXI9DHQPy4d6-ZC9NxcypvLMsJ94OBdmoHyjmwbM='


@pytest.fixture(autouse=True)
def setup_test_config():
    """Automatically set test config file and encryption key for all tests."""
    from bulkaction.config import set_config_file
    from bulkaction.defaults import settings

    saved = dict(settings)
    set_config_file(str(Path(__file__).parent / 'test.yml'))

    with patch.dict(os.environ, {'BULKACTION_ENCRYPTION_KEY': TEST_ENCRYPTION_KEY}):
        yield

    settings.clear()
    settings.update(saved)


@pytest.fixture
def db_path(tmp_path):
    """SQLite database file with the tables the tests load into."""
    path = tmp_path / 'ba_sing_se.db'
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE orders
        (
            "Id"    INTEGER PRIMARY KEY,
            "Total" NUMERIC NOT NULL
        );
        CREATE TABLE fire_nation_army
        (
            soldier_id        TEXT PRIMARY KEY,
            name              TEXT NOT NULL,
            rank              TEXT NOT NULL,
            firebending_skill INTEGER
        );
    """)
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_session(db_path):
    """Session writing to the sqlite fixture database."""
    return Session('sqlite', database=str(db_path),
                   tables={Order: 'orders', Soldier: 'fire_nation_army'})


@pytest.fixture
def fetch_rows(db_path):
    """Read back rows with a separate connection."""
    def _fetch(sql):
        conn = sqlite3.connect(db_path)
        try:
            return conn.execute(sql).fetchall()
        finally:
            conn.close()
    return _fetch


@pytest.fixture
def orders():
    """Three orders, each with a navigation reference that must not be written."""
    buyer = Buyer(Id=7, Name='Iroh')
    return [
        Order(Id=1, Total=12.5, Customer=buyer),
        Order(Id=2, Total=3.75, Customer=buyer),
        Order(Id=3, Total=99.99),
    ]


@pytest.fixture
def soldiers():
    """Sample Fire Nation army records."""
    return [
        Soldier('FN001', 'Zuko', 'Prince', 8, notes='banished'),
        Soldier('FN002', 'Azula', 'Princess', 10),
        Soldier('FN003', 'Zhao', 'Admiral', 6),
        Soldier('FN004', 'Mai', 'Noble', None),
    ]


@pytest.fixture
def make_mock_db():
    """Factory for MagicMocks standing in for a Database wrapper."""
    def _make(server_type='sqlite', driver_name='sqlite3', paramstyle='qmark'):
        db = MagicMock()
        db.server_type = server_type
        db.driver_name = driver_name
        db.interface.paramstyle = paramstyle
        # real commit/rollback handling on top of the mock connection
        db.transaction.side_effect = lambda: Database.transaction(db)
        return db
    return _make
