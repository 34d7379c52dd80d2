import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path

from fncli import cli

from . import config
from .core.errors import ConflictError, StoreError
from .lib.errors import echo

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "_migrations"
MIGRATIONS_DIR = Path(__file__).parent / "migrations"

Migration = tuple[str, str]


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def get_db(db_path: Path | None = None):
    """One transaction: commit on success, roll back on any exception.

    sqlite failures surface as StoreError (transient) or ConflictError (constraint).
    """
    db_path = db_path if db_path else config.DB_PATH
    try:
        conn = _connect(db_path)
    except sqlite3.Error as e:
        raise StoreError(f"cannot open store at {db_path}: {e}") from e
    try:
        yield conn
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise ConflictError(f"store rejected change: {e}") from e
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning("store operation failed, rolled back: %s", e)
        raise StoreError(f"store operation failed: {e}") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def row_exists(conn: sqlite3.Connection, table: str, row_id: str) -> bool:
    return conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (row_id,)).fetchone() is not None  # noqa: S608


# ── migrations ───────────────────────────────────────────────────────────────


def load_migrations() -> list[Migration]:
    if not MIGRATIONS_DIR.exists():
        return []
    return [(path.stem, path.read_text()) for path in sorted(MIGRATIONS_DIR.glob("*.sql"))]


def _row_counts(conn: sqlite3.Connection) -> dict[str, int]:
    tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' AND name != ?",
        (MIGRATIONS_TABLE,),
    ).fetchall()
    return {
        name: conn.execute(f'SELECT COUNT(*) FROM "{name}"').fetchone()[0]  # noqa: S608
        for (name,) in tables
    }


def _snapshot(conn: sqlite3.Connection) -> Path:
    """Copy the live database aside before touching its schema."""
    folder = config.BACKUP_DIR / "migrations"
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"studio.{datetime.now():%Y%m%d_%H%M%S}.backup"
    try:
        with closing(sqlite3.connect(path)) as copy:
            conn.backup(copy)
    except sqlite3.Error:
        path.unlink(missing_ok=True)
        raise
    return path


def _restore(conn: sqlite3.Connection, snapshot: Path) -> None:
    with closing(sqlite3.connect(snapshot)) as copy:
        copy.backup(conn)


def _run(conn: sqlite3.Connection, name: str, script: str) -> None:
    before = _row_counts(conn)
    conn.executescript(script)
    after = _row_counts(conn)
    lost = {table: count for table, count in before.items() if after.get(table, 0) < count}
    if lost:
        detail = ", ".join(f"{t} {n} -> {after.get(t, 0)}" for t, n in lost.items())
        raise StoreError(f"migration {name} would drop rows ({detail})")
    conn.execute(f"INSERT INTO {MIGRATIONS_TABLE} (name) VALUES (?)", (name,))  # noqa: S608
    conn.commit()


def _migrate(conn: sqlite3.Connection) -> list[str]:
    conn.execute(
        f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} "
        "(name TEXT PRIMARY KEY, applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    )
    conn.commit()
    applied = {name for (name,) in conn.execute(f"SELECT name FROM {MIGRATIONS_TABLE}")}  # noqa: S608
    pending = [(name, script) for name, script in load_migrations() if name not in applied]
    if not pending:
        return []

    # a fresh store has nothing worth saving
    snapshot = _snapshot(conn) if _row_counts(conn) else None
    done: list[str] = []
    for name, script in pending:
        try:
            _run(conn, name, script)
        except Exception:
            conn.rollback()
            if snapshot:
                _restore(conn, snapshot)
                logger.error("migration %s failed, restored %s", name, snapshot)
            raise
        logger.info("applied migration %s", name)
        done.append(name)
    if snapshot:
        snapshot.unlink(missing_ok=True)
    return done


def init(db_path: Path | None = None) -> list[str]:
    """Create the store if needed and bring its schema up to date."""
    db_path = db_path if db_path else config.DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with closing(_connect(db_path)) as conn:
        return _migrate(conn)


@cli("studio db", name="migrate")
def db_migrate():
    """Run pending database migrations"""
    applied = init()
    echo(f"migrations applied: {', '.join(applied)}" if applied else "schema up to date")
