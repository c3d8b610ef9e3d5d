import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from db_models import ContactRecord, LinkPrecedence

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ContactStore:
    """
    Queries against the Contact table over a single sqlite3 connection.

    Soft-deleted rows (deletedAt set) are invisible to every query. Lists are
    ordered by (createdAt, id) ascending. Absent email/phone arguments never
    constrain a query; they are not compared against NULL.
    """

    def __init__(self, conn):
        self.conn = conn

    def _fetch(self, query: str, params=()) -> List[ContactRecord]:
        rows = self.conn.execute(query, params).fetchall()
        return [ContactRecord.model_validate(dict(row)) for row in rows]

    def find_by_email_or_phone(self, email: str = None, phone: str = None) -> List[ContactRecord]:
        clauses, params = [], []
        if email:
            clauses.append("email = ?")
            params.append(email)
        if phone:
            clauses.append("phoneNumber = ?")
            params.append(phone)
        if not clauses:
            return []

        query = f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND ({" OR ".join(clauses)})
            ORDER BY createdAt ASC, id ASC
        """
        return self._fetch(query, params)

    def find_by_ids(self, ids: Iterable[int]) -> List[ContactRecord]:
        ids = sorted(set(ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        return self._fetch(f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL AND id IN ({placeholders})
            ORDER BY createdAt ASC, id ASC
        """, ids)

    def find_exact(self, email: str = None, phone: str = None) -> Optional[ContactRecord]:
        clauses, params = [], []
        if email:
            clauses.append("email = ?")
            params.append(email)
        if phone:
            clauses.append("phoneNumber = ?")
            params.append(phone)
        if not clauses:
            return None

        found = self._fetch(f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL AND {" AND ".join(clauses)}
            ORDER BY createdAt ASC, id ASC
            LIMIT 1
        """, params)
        return found[0] if found else None

    def find_cluster(self, primary_id: int) -> List[ContactRecord]:
        """Return the primary followed by everything linked to it."""
        primary = self._fetch(
            "SELECT * FROM Contact WHERE id = ? AND deletedAt IS NULL", (primary_id,)
        )
        if not primary:
            return []

        secondaries = self._fetch("""
            SELECT * FROM Contact
            WHERE linkedId = ? AND deletedAt IS NULL
            ORDER BY createdAt ASC, id ASC
        """, (primary_id,))
        return primary + secondaries

    def list_all(self) -> List[ContactRecord]:
        return self._fetch(
            "SELECT * FROM Contact WHERE deletedAt IS NULL ORDER BY createdAt ASC, id ASC"
        )

    def create(self, email: str = None, phone: str = None,
               precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
               linked_id: int = None) -> ContactRecord:
        """Create a new contact"""
        # createdAt never goes backwards, even if the wall clock does
        latest = self.conn.execute("SELECT MAX(createdAt) FROM Contact").fetchone()[0]
        now = _now()
        if latest and latest > now:
            now = latest

        cursor = self.conn.execute("""
            INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (phone, email, linked_id, LinkPrecedence(precedence).value, now, now))

        return self._fetch("SELECT * FROM Contact WHERE id = ?", (cursor.lastrowid,))[0]

    def update(self, contact_id: int, precedence: LinkPrecedence, linked_id: Optional[int]):
        self.conn.execute("""
            UPDATE Contact
            SET linkedId = ?, linkPrecedence = ?, updatedAt = ?
            WHERE id = ?
        """, (linked_id, LinkPrecedence(precedence).value, _now(), contact_id))

    def relink_secondaries(self, old_primary_id: int, new_primary_id: int) -> int:
        cursor = self.conn.execute("""
            UPDATE Contact
            SET linkedId = ?, linkPrecedence = 'secondary', updatedAt = ?
            WHERE linkedId = ? AND deletedAt IS NULL
        """, (new_primary_id, _now(), old_primary_id))
        logger.debug("Relinked %d contacts from %d to %d", cursor.rowcount, old_primary_id, new_primary_id)
        return cursor.rowcount
