import os
import sqlite3
from tracklog.utils.log import get_logger

logger = get_logger(__name__)

# Seconds a write waits on a locked database before failing as busy.
DEFAULT_BUSY_TIMEOUT = 0.5


def get_connection(db_path: str, timeout: float = DEFAULT_BUSY_TIMEOUT) -> sqlite3.Connection:
    """
    Get a SQLite connection with foreign-keys enabled
    and rows returned as sqlite3.Row.

    The connection may be handed to the recorder's dispatcher thread, which
    serializes every access to it.
    """
    conn = sqlite3.connect(
        db_path,
        timeout=timeout,
        detect_types=sqlite3.PARSE_DECLTYPES,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_db(db_path: str, timeout: float = DEFAULT_BUSY_TIMEOUT) -> sqlite3.Connection:
    """
    Initialize (or migrate) the database by running the
    DDL in schema.sql, then return a live connection.
    """
    conn = get_connection(db_path, timeout)
    schema_path = os.path.join(os.path.dirname(__file__), "schema.sql")
    logger.debug("Initializing DB schema: %s", schema_path)
    with open(schema_path, "r") as f:
        conn.executescript(f.read())
    conn.commit()
    return conn
