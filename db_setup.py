import logging
import sqlite3
from contextlib import contextmanager

from contact_store import ContactStore
from exceptions import StoreUnavailable, WriteConflict

logger = logging.getLogger(__name__)

DB_NAME = "contacts.db"

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS Contact (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        phoneNumber TEXT,
        email TEXT,
        linkedId INTEGER,
        linkPrecedence TEXT NOT NULL CHECK(linkPrecedence IN ('secondary', 'primary')),
        createdAt DATETIME NOT NULL,
        updatedAt DATETIME NOT NULL,
        deletedAt DATETIME,
        FOREIGN KEY (linkedId) REFERENCES Contact (id),
        CHECK (email IS NOT NULL OR phoneNumber IS NOT NULL),
        CHECK (
            (linkPrecedence = 'primary' AND linkedId IS NULL) OR
            (linkPrecedence = 'secondary' AND linkedId IS NOT NULL)
        )
    );
    CREATE INDEX IF NOT EXISTS ix_contact_email ON Contact (email);
    CREATE INDEX IF NOT EXISTS ix_contact_phone ON Contact (phoneNumber);
    CREATE INDEX IF NOT EXISTS ix_contact_linked ON Contact (linkedId);
'''


def translate_error(exc: sqlite3.Error):
    message = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message):
        return WriteConflict(f"contact store is busy: {exc}")
    return StoreUnavailable(f"contact store failed: {exc}")


def get_db_connection(db_name: str = DB_NAME, timeout: float = 5.0):
    # isolation_level=None: transactions are opened explicitly with BEGIN IMMEDIATE
    conn = sqlite3.connect(db_name, timeout=timeout, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


class Database:
    """Handle on the SQLite contact store, created once at process start."""

    def __init__(self, db_name: str = DB_NAME, timeout: float = 5.0):
        self.db_name = db_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.db_name, settings.busy_timeout)

    def _connect(self):
        try:
            return get_db_connection(self.db_name, self.timeout)
        except sqlite3.Error as exc:
            raise translate_error(exc) from exc

    def init(self):
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise translate_error(exc) from exc
        finally:
            conn.close()
        logger.info("Contact table ready in %s", self.db_name)

    @contextmanager
    def transaction(self):
        """
        Run a block under the database write lock.

        BEGIN IMMEDIATE takes the lock up front, so two transactions never
        interleave their reads and writes. Everything is rolled back if the
        block raises.
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield ContactStore(conn)
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback(conn)
            raise translate_error(exc) from exc
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @contextmanager
    def session(self):
        conn = self._connect()
        try:
            yield ContactStore(conn)
        except sqlite3.Error as exc:
            raise translate_error(exc) from exc
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn):
        # the error that caused the rollback is the one callers must see
        try:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("Rollback failed on %r", conn)
