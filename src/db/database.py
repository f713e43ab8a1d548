# connection handling for the shop database; only db.crud should need this
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row

import aiosqlite

from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = os.getenv("SUPERMARKET_DB", "data/db.sqlite")
SEED_DEMO_DATA = os.getenv("SUPERMARKET_SEED", "1") != "0"
# seconds a writer waits on another connection's lock
BUSY_TIMEOUT = float(os.getenv("SUPERMARKET_BUSY_TIMEOUT", "5"))

_SQL_DIR = os.path.dirname(os.path.abspath(__file__))
SCHEMA_SCRIPT = os.path.join(_SQL_DIR, "tables.sql")
SEED_SCRIPT = os.path.join(_SQL_DIR, "dummy-data.sql")

_initialized = False
_init_lock = asyncio.Lock()


async def _run_script(conn: aiosqlite.Connection, script: str) -> None:
    if not os.path.exists(script) or os.path.getsize(script) == 0:
        _logger.warning(f"SQL script {os.path.basename(script)} is missing or empty")
        return
    _logger.info(f"Running {os.path.basename(script)}...")
    with open(script, "r") as f:
        await conn.executescript(f.read())


async def _is_fresh(conn: aiosqlite.Connection) -> bool:
    """True when no user has been created yet, i.e. the file is new."""
    cur = await conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'users';"
    )
    has_users_table = await cur.fetchone() is not None
    await cur.close()
    if not has_users_table:
        return True

    cur = await conn.execute("SELECT COUNT(*) FROM users;")
    row = await cur.fetchone()
    await cur.close()
    return int(row[0]) == 0


async def _prepare(conn: aiosqlite.Connection) -> None:
    fresh = await _is_fresh(conn)
    # the schema script only creates what is missing
    await _run_script(conn, SCHEMA_SCRIPT)
    if fresh and SEED_DEMO_DATA:
        await _run_script(conn, SEED_SCRIPT)
    await conn.commit()


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """
    Open a connection to DB_PATH with rows as sqlite3.Row and foreign keys on.

    The first connection of the process brings the schema up to date and seeds
    a brand-new database. Each call gets its own connection; nothing is shared
    between callers, so writes made in separate ``connect()`` blocks commit
    independently.
    """
    global _initialized
    db_dir = os.path.dirname(DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    conn = await aiosqlite.connect(DB_PATH, timeout=BUSY_TIMEOUT)
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")

    try:
        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    await _prepare(conn)
                    _initialized = True
        yield conn
    finally:
        await conn.close()
