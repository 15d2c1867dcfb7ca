import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from config import settings
from loan import OPEN_STATUSES

logger = logging.getLogger(__name__)

# Default database file. LIBRARY_DB_FILE overrides it; tests and callers may
# also reassign DATABASE_FILE before creating a Library.
DATABASE_FILE = settings.database_file

OPEN_STATUS_VALUES = tuple(s.value for s in OPEN_STATUSES)


def get_db_connection() -> sqlite3.Connection:
    """Open a new connection to the SQLite database.

    Connections run in autocommit mode; multi-statement writes go through
    ``transaction()`` which issues an explicit ``BEGIN IMMEDIATE``.
    """
    conn = sqlite3.connect(DATABASE_FILE, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """Run a block of statements as one atomic unit.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so a concurrent
    writer waits instead of reading state that is about to change.
    """
    conn = get_db_connection()
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def create_tables() -> None:
    """Create the tables if they do not exist yet."""
    conn = get_db_connection()
    try:
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT NOT NULL UNIQUE,
                publication_year INTEGER NOT NULL
                    CHECK(publication_year >= 1000 AND publication_year <= 2030),
                genre TEXT,
                available INTEGER NOT NULL DEFAULT 1,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS patrons (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                phone TEXT,
                address TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                registered_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                patron_id INTEGER NOT NULL REFERENCES patrons(id) ON DELETE CASCADE,
                book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
                loaned_at TEXT NOT NULL,
                due_at TEXT NOT NULL,
                returned_at TEXT,
                status TEXT NOT NULL DEFAULT 'ACTIVE'
                    CHECK(status IN ('ACTIVE', 'RETURNED', 'OVERDUE', 'RENEWED')),
                fine TEXT NOT NULL DEFAULT '0.00'
            );

            CREATE INDEX IF NOT EXISTS idx_books_title ON books(title);
            CREATE INDEX IF NOT EXISTS idx_books_author ON books(author);
            CREATE INDEX IF NOT EXISTS idx_patrons_name ON patrons(name);
            CREATE INDEX IF NOT EXISTS idx_loans_patron_id ON loans(patron_id);
            CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id);
            CREATE INDEX IF NOT EXISTS idx_loans_status ON loans(status);
            CREATE INDEX IF NOT EXISTS idx_loans_due_at ON loans(due_at);

            -- at most one open loan per book
            CREATE UNIQUE INDEX IF NOT EXISTS idx_loans_open_book
                ON loans(book_id) WHERE status IN {OPEN_STATUS_VALUES!r};
        """)
    finally:
        conn.close()


def initialize_database() -> None:
    """Initialize the database, creating tables when needed."""
    create_tables()
    logger.debug("Database ready at %s", DATABASE_FILE)
