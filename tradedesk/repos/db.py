"""Database initialization and connection management.

Creates the risk-state tables on first use and provides a connection factory.
"""

import logging
import pathlib
import sqlite3

logger = logging.getLogger("tradedesk.repos")

_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent / "migrations"


def init_db(db_path: str) -> None:
    """Initialize the database by running the risk-state migration.

    Creates the parent directory of *db_path* when needed.  Safe to call on
    an already-initialized database.

    Args:
        db_path: Path to the SQLite database file.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='risk_cooldowns'"
        )
        if cur.fetchone() is None:
            sql = (_MIGRATION_DIR / "001_risk_state.sql").read_text(encoding="utf-8")
            conn.executescript(sql)
            logger.info("Initialized risk-state schema in %s", db_path)
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
