"""SQLite message store and the predicate-to-SQL compiler."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator

from .config import get_config, get_data_dir
from .models import Address, Attachment, Message
from .predicates import (
    AccountIn,
    AddressContainsAny,
    AttachmentExists,
    AttachmentNameContainsAny,
    AttachmentSizeCompare,
    DateRange,
    FlagEquals,
    FolderIn,
    LabelIn,
    OwnerScope,
    Predicate,
    SubjectContainsAny,
    TextContainsAll,
    as_utc,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    message_id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    account_id TEXT NOT NULL DEFAULT '',
    thread_id TEXT NOT NULL DEFAULT '',
    folder TEXT NOT NULL DEFAULT 'INBOX',

    from_addr TEXT NOT NULL,
    from_name TEXT NOT NULL DEFAULT '',
    to_json TEXT NOT NULL DEFAULT '[]',
    cc_json TEXT NOT NULL DEFAULT '[]',
    bcc_json TEXT NOT NULL DEFAULT '[]',

    subject TEXT NOT NULL DEFAULT '',
    sent_at TEXT NOT NULL,

    body_text TEXT,
    body_html TEXT,

    is_read INTEGER NOT NULL DEFAULT 0,
    is_starred INTEGER NOT NULL DEFAULT 0,
    is_important INTEGER NOT NULL DEFAULT 0,

    labels_json TEXT NOT NULL DEFAULT '[]',
    attachments_json TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_messages_owner_sent ON messages(owner_id, sent_at DESC);
CREATE INDEX IF NOT EXISTS idx_messages_owner_from ON messages(owner_id, from_addr);
CREATE INDEX IF NOT EXISTS idx_messages_account ON messages(account_id);
"""

FLAG_COLUMNS = frozenset({"is_read", "is_starred", "is_important"})

ADDRESS_COLUMNS = {"to": "to_json", "cc": "cc_json", "bcc": "bcc_json"}

# SQLite binds integers as signed 64-bit
INT64_MAX = 2**63 - 1


def to_db_time(moment: datetime) -> str:
    """Fixed-width UTC ISO timestamp, so string order matches time order."""
    return as_utc(moment).isoformat(timespec="microseconds")


def like_pattern(term: str) -> str:
    """Substring LIKE pattern with %, _ and \\ escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _like(column: str) -> str:
    return f"{column} LIKE ? ESCAPE '\\'"


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def predicate_to_sql(predicate: Predicate) -> tuple[str, list[Any]]:
    """Translate one predicate into a WHERE fragment and its parameters."""
    if isinstance(predicate, OwnerScope):
        return "m.owner_id = ?", [predicate.owner_id]

    if isinstance(predicate, AccountIn):
        ids = list(predicate.account_ids)
        return f"m.account_id IN ({_placeholders(len(ids))})", ids

    if isinstance(predicate, AddressContainsAny):
        parts: list[str] = []
        params: list[Any] = []
        for term in predicate.terms:
            pattern = like_pattern(term)
            if predicate.field == "from":
                parts.append(_like("m.from_addr"))
            else:
                column = ADDRESS_COLUMNS[predicate.field]
                addr_match = _like("json_extract(a.value, '$.addr')")
                parts.append(
                    f"EXISTS (SELECT 1 FROM json_each(m.{column}) AS a "
                    f"WHERE {addr_match})"
                )
            params.append(pattern)
        clause = "(" + " OR ".join(f"({p})" for p in parts) + ")"
        if predicate.negated:
            clause = f"NOT {clause}"
        return clause, params

    if isinstance(predicate, SubjectContainsAny):
        clause = "(" + " OR ".join(_like("m.subject") for _ in predicate.terms) + ")"
        if predicate.negated:
            clause = f"NOT {clause}"
        return clause, [like_pattern(t) for t in predicate.terms]

    if isinstance(predicate, FlagEquals):
        if predicate.flag not in FLAG_COLUMNS:
            raise ValueError(f"Unknown flag: {predicate.flag}")
        return f"m.{predicate.flag} = ?", [int(predicate.value)]

    if isinstance(predicate, AttachmentExists):
        op = ">" if predicate.present else "="
        return f"json_array_length(m.attachments_json) {op} 0", []

    if isinstance(predicate, AttachmentNameContainsAny):
        conditions = " OR ".join(
            _like("json_extract(att.value, '$.filename')") for _ in predicate.terms
        )
        return (
            f"EXISTS (SELECT 1 FROM json_each(m.attachments_json) AS att WHERE {conditions})",
            [like_pattern(t) for t in predicate.terms],
        )

    if isinstance(predicate, AttachmentSizeCompare):
        if predicate.op not in (">", "<"):
            raise ValueError(f"Unknown size comparison: {predicate.op}")
        return (
            "EXISTS (SELECT 1 FROM json_each(m.attachments_json) AS att "
            f"WHERE json_extract(att.value, '$.size') {predicate.op} ?)",
            [min(predicate.threshold, INT64_MAX)],
        )

    if isinstance(predicate, DateRange):
        parts = []
        params = []
        if predicate.after is not None:
            parts.append("m.sent_at >= ?")
            params.append(to_db_time(predicate.after))
        if predicate.before is not None:
            parts.append("m.sent_at <= ?")
            params.append(to_db_time(predicate.before))
        if not parts:
            return "1 = 1", []
        return " AND ".join(parts), params

    if isinstance(predicate, TextContainsAll):
        parts = []
        params = []
        for term in predicate.terms:
            pattern = like_pattern(term)
            parts.append(
                f"({_like('m.subject')} OR {_like('m.body_text')} "
                f"OR {_like('m.body_html')} OR {_like('m.from_addr')})"
            )
            params.extend([pattern] * 4)
        return "(" + " AND ".join(parts) + ")", params

    if isinstance(predicate, FolderIn):
        folders = [f.lower() for f in predicate.folders]
        return f"lower(m.folder) IN ({_placeholders(len(folders))})", folders

    if isinstance(predicate, LabelIn):
        labels = [label.lower() for label in predicate.labels]
        return (
            "EXISTS (SELECT 1 FROM json_each(m.labels_json) AS l "
            f"WHERE lower(l.value) IN ({_placeholders(len(labels))}))",
            labels,
        )

    raise TypeError(f"Unsupported predicate: {predicate!r}")


def build_where_clauses(predicates: Iterable[Predicate]) -> tuple[list[str], list[Any]]:
    """Build SQL WHERE clauses and parameters from a predicate set.

    Returns (clauses, params); the clauses are meant to be joined with AND.
    """
    clauses: list[str] = []
    params: list[Any] = []
    for predicate in predicates:
        clause, clause_params = predicate_to_sql(predicate)
        clauses.append(clause)
        params.extend(clause_params)
    return clauses, params


class MessageStore:
    """SQLite-backed message store queried by predicate sets."""

    def __init__(self, db_path: Path | None = None):
        if db_path is None:
            db_path = get_config().storage.db_path or get_data_dir() / "messages.db"
        self.db_path = Path(db_path)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create database schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        """Convert a database row to a Message object."""
        return Message(
            message_id=row["message_id"],
            owner_id=row["owner_id"],
            account_id=row["account_id"],
            thread_id=row["thread_id"],
            folder=row["folder"],
            **{"from": Address(addr=row["from_addr"], name=row["from_name"] or "")},
            to=[Address(**a) for a in json.loads(row["to_json"])],
            cc=[Address(**a) for a in json.loads(row["cc_json"])],
            bcc=[Address(**a) for a in json.loads(row["bcc_json"])],
            subject=row["subject"] or "",
            sent_at=datetime.fromisoformat(row["sent_at"]),
            body_text=row["body_text"],
            body_html=row["body_html"],
            is_read=bool(row["is_read"]),
            is_starred=bool(row["is_starred"]),
            is_important=bool(row["is_important"]),
            labels=json.loads(row["labels_json"]),
            attachments=[Attachment(**a) for a in json.loads(row["attachments_json"])],
        )

    def _message_params(self, msg: Message) -> tuple:
        return (
            msg.message_id,
            msg.owner_id,
            msg.account_id,
            msg.thread_id,
            msg.folder,
            msg.from_.addr,
            msg.from_.name,
            json.dumps([a.model_dump() for a in msg.to]),
            json.dumps([a.model_dump() for a in msg.cc]),
            json.dumps([a.model_dump() for a in msg.bcc]),
            msg.subject,
            to_db_time(msg.sent_at),
            msg.body_text,
            msg.body_html,
            int(msg.is_read),
            int(msg.is_starred),
            int(msg.is_important),
            json.dumps(msg.labels),
            json.dumps([a.model_dump() for a in msg.attachments]),
        )

    def store_messages(self, messages: Iterable[Message]) -> int:
        """Store or update messages. Returns how many were written."""
        rows = [self._message_params(msg) for msg in messages]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO messages (
                    message_id, owner_id, account_id, thread_id, folder,
                    from_addr, from_name, to_json, cc_json, bcc_json,
                    subject, sent_at, body_text, body_html,
                    is_read, is_starred, is_important,
                    labels_json, attachments_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def store_message(self, msg: Message) -> None:
        """Store or update a single message."""
        self.store_messages([msg])

    def get_message(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE message_id = ?", (message_id,)
            ).fetchone()
            if row:
                return self._row_to_message(row)
        return None

    def query(
        self,
        predicates: list[Predicate],
        limit: int = 50,
        offset: int = 0,
    ) -> list[Message]:
        """Messages satisfying every predicate, newest first."""
        clauses, params = build_where_clauses(predicates)
        sql = "SELECT m.* FROM messages m"
        if clauses:
            sql += " WHERE " + " AND ".join(f"({c})" for c in clauses)
        sql += " ORDER BY m.sent_at DESC, m.message_id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_message(row) for row in rows]

    def count(self, predicates: list[Predicate]) -> int:
        """Number of messages satisfying every predicate, ignoring pagination."""
        clauses, params = build_where_clauses(predicates)
        sql = "SELECT COUNT(*) FROM messages m"
        if clauses:
            sql += " WHERE " + " AND ".join(f"({c})" for c in clauses)

        with self._connect() as conn:
            return conn.execute(sql, params).fetchone()[0]

    # =========================================================================
    # Per-user aggregates
    # =========================================================================

    def top_senders(self, owner_id: str, limit: int = 5) -> list[tuple[str, int]]:
        """Most frequent sender addresses as (address, count)."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT from_addr, COUNT(*) AS n FROM messages
                WHERE owner_id = ?
                GROUP BY from_addr
                ORDER BY n DESC, from_addr ASC
                LIMIT ?
                """,
                (owner_id, limit),
            ).fetchall()
            return [(row["from_addr"], row["n"]) for row in rows]

    def top_subjects(self, owner_id: str, limit: int = 5) -> list[tuple[str, int]]:
        """Most frequent non-empty subjects as (subject, count)."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT subject, COUNT(*) AS n FROM messages
                WHERE owner_id = ? AND subject != ''
                GROUP BY subject
                ORDER BY n DESC, subject ASC
                LIMIT ?
                """,
                (owner_id, limit),
            ).fetchall()
            return [(row["subject"], row["n"]) for row in rows]

    def emails_by_month(self, owner_id: str, limit: int = 12) -> list[tuple[str, int]]:
        """Message counts for the most recent months with mail, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT substr(sent_at, 1, 7) AS month, COUNT(*) AS n FROM messages
                WHERE owner_id = ?
                GROUP BY month
                ORDER BY month DESC
                LIMIT ?
                """,
                (owner_id, limit),
            ).fetchall()
            return [(row["month"], row["n"]) for row in reversed(rows)]

    def read_counts(self, owner_id: str) -> tuple[int, int]:
        """(read, unread) message counts."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COALESCE(SUM(CASE WHEN is_read = 1 THEN 1 ELSE 0 END), 0) AS read,
                    COALESCE(SUM(CASE WHEN is_read = 0 THEN 1 ELSE 0 END), 0) AS unread
                FROM messages
                WHERE owner_id = ?
                """,
                (owner_id,),
            ).fetchone()
            return row["read"], row["unread"]

    def delete_message(self, message_id: str) -> None:
        """Delete a message from the store."""
        with self._connect() as conn:
            conn.execute("DELETE FROM messages WHERE message_id = ?", (message_id,))

    def clear(self) -> None:
        """Remove every stored message."""
        with self._connect() as conn:
            conn.execute("DELETE FROM messages")


# Global store instance
_store: MessageStore | None = None


def get_store() -> MessageStore:
    """Get or create the global message store."""
    global _store
    if _store is None:
        _store = MessageStore()
    return _store
