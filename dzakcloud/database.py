"""SQLite-backed persistence for users, payments and contact inquiries."""
from __future__ import annotations

import logging
import queue
import secrets
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from passlib.context import CryptContext

from .models import Contact, ContactStats, Payment, User

logger = logging.getLogger("dzakcloud.database")

DEFAULT_POOL_SIZE = 10
DEFAULT_CURRENCY = "IDR"
DEFAULT_PAYMENT_STATUS = "pending"
DEFAULT_CONTACT_STATUS = "new"

_AMOUNT_QUANTUM = Decimal("0.01")


class DuplicateRecordError(ValueError):
    """Raised when an insert or update violates a unique constraint."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "dzakcloud.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _serialize_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(_AMOUNT_QUANTUM))


def _generate_payment_id() -> str:
    return secrets.token_hex(8)


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """Check ``password`` and return a replacement hash when the stored one is outdated."""

    try:
        return _pwd_context.verify_and_update(password, hashed)
    except ValueError:
        return False, None


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc).upper()


class ConnectionPool:
    """Bounded pool of SQLite connections shared across request threads.

    Connections are opened lazily on first use and handed back to the pool
    when the caller is done with them. At most ``max_connections`` may be
    checked out at once; further callers block until one is returned.
    """

    def __init__(self, path: Path, *, max_connections: int = DEFAULT_POOL_SIZE) -> None:
        if max_connections < 1:
            raise ValueError("Connection pool size must be at least 1")
        self._path = path
        self._max_connections = max_connections
        self._slots = threading.BoundedSemaphore(max_connections)
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def closed(self) -> bool:
        return self._closed

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Check out a connection wrapped in a transaction."""

        self._slots.acquire()
        try:
            if self._closed:
                raise sqlite3.ProgrammingError("Connection pool is closed")
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                conn = self._open()
            try:
                with conn:
                    yield conn
            finally:
                self._release(conn)
        finally:
            self._slots.release()

    def _release(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            if not self._closed:
                self._idle.put(conn)
                return
        conn.close()

    def close(self) -> None:
        with self._lock:
            self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()


class Database:
    """Record access layer for the site's three tables."""

    def __init__(self, path: Path, *, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        _ensure_directory(path)
        self._path = path
        self._pool = ConnectionPool(path, max_connections=pool_size)

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self):
        return self._pool.connection()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    full_name TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS payments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
                    email TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    currency TEXT NOT NULL DEFAULT 'IDR',
                    service TEXT NOT NULL,
                    payment_id TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL DEFAULT 'pending',
                    qr_code_url TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS contacts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    topic TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    description TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'new',
                    notes TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_payments_user_id ON payments(user_id);
                CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status);
                CREATE INDEX IF NOT EXISTS idx_contacts_status ON contacts(status);
                """
            )
        logger.debug("Schema ensured at %s", self._path)

    def close(self) -> None:
        """Close every pooled connection; later queries fail."""

        self._pool.close()

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str, password: str) -> User:
        """Create a new customer account."""

        if not password:
            raise ValueError("Password must not be empty")

        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Name must not be empty")

        created_at = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (email, password_hash, full_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        _normalize_email(email),
                        _hash_password(password),
                        normalized_name,
                        created_at,
                        created_at,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise DuplicateRecordError("Email already registered") from exc
                raise
            user_id = cursor.lastrowid

        user = self.get_user(user_id)
        if user is None:
            raise RuntimeError("Failed to load user after creation")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
            if row is None:
                return None

            valid, replacement = _verify_password(password, str(row["password_hash"]))
            if not valid:
                return None
            if replacement is not None:
                conn.execute(
                    "UPDATE users SET password_hash = ? WHERE id = ?",
                    (replacement, row["id"]),
                )
        return self._row_to_user(row)

    def update_user_profile(
        self,
        user_id: int,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        """Update the display name and/or email address of an existing user.

        Returns ``None`` when the user does not exist.
        """

        updates: List[str] = []
        values: List[object] = []
        if name is not None:
            normalized_name = name.strip()
            if not normalized_name:
                raise ValueError("Name must not be empty")
            updates.append("full_name = ?")
            values.append(normalized_name)
        if email is not None:
            updates.append("email = ?")
            values.append(_normalize_email(email))

        if not updates:
            return self.get_user(user_id)

        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.append(user_id)

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE users SET {', '.join(updates)} WHERE id = ?",
                    values,
                )
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise DuplicateRecordError("Email already in use") from exc
                raise
            if cursor.rowcount == 0:
                return None

        return self.get_user(user_id)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def create_payment(
        self,
        *,
        email: str,
        service: str,
        amount: Decimal,
        payment_id: Optional[str] = None,
        status: str = DEFAULT_PAYMENT_STATUS,
        qr_code_url: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Payment:
        public_id = payment_id or _generate_payment_id()
        created_at = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO payments (
                        user_id, email, amount, currency, service, payment_id, status,
                        qr_code_url, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        email,
                        _serialize_amount(amount),
                        DEFAULT_CURRENCY,
                        service,
                        public_id,
                        status,
                        qr_code_url,
                        created_at,
                        created_at,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise DuplicateRecordError(f"Payment {public_id} already exists") from exc
                raise

        payment = self.get_payment(public_id)
        if payment is None:
            raise RuntimeError("Failed to load payment after creation")
        return payment

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM payments WHERE payment_id = ?",
                (payment_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_payment(row)

    def list_payments(self, *, limit: Optional[int] = None, offset: int = 0) -> List[Payment]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM payments ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (limit if limit is not None else -1, offset),
            ).fetchall()
        return [self._row_to_payment(row) for row in rows]

    def count_payments(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM payments").fetchone()
        return int(row["total"])

    def update_payment_status(self, payment_id: str, status: str) -> Optional[Payment]:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE payments SET status = ?, updated_at = ? WHERE payment_id = ?",
                (status, _serialize_datetime(_current_timestamp()), payment_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get_payment(payment_id)

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------
    def create_contact(
        self,
        *,
        name: str,
        email: str,
        topic: str,
        subject: str,
        description: str,
    ) -> Contact:
        created_at = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO contacts (
                    name, email, topic, subject, description, status, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, '', ?, ?)
                """,
                (name, email, topic, subject, description, DEFAULT_CONTACT_STATUS, created_at, created_at),
            )
            contact_id = cursor.lastrowid

        contact = self.get_contact(contact_id)
        if contact is None:
            raise RuntimeError("Failed to load contact after creation")
        return contact

    def get_contact(self, contact_id: int) -> Optional[Contact]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_contact(row)

    def list_contacts(
        self,
        *,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Contact]:
        query = "SELECT * FROM contacts"
        params: List[object] = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit if limit is not None else -1, offset])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_contact(row) for row in rows]

    def count_contacts(self, *, status: Optional[str] = None) -> int:
        with self._connect() as conn:
            if status is None:
                row = conn.execute("SELECT COUNT(*) AS total FROM contacts").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS total FROM contacts WHERE status = ?",
                    (status,),
                ).fetchone()
        return int(row["total"])

    def update_contact(
        self,
        contact_id: int,
        *,
        status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[Contact]:
        """Change the triage status and/or notes of a contact.

        The status is stored verbatim; it is not limited to the canonical
        values in :data:`~dzakcloud.models.CONTACT_STATUSES`.
        """

        updates: List[str] = []
        values: List[object] = []
        if status is not None:
            updates.append("status = ?")
            values.append(status)
        if notes is not None:
            updates.append("notes = ?")
            values.append(notes)

        if not updates:
            return self.get_contact(contact_id)

        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.append(contact_id)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE contacts SET {', '.join(updates)} WHERE id = ?",
                values,
            )
            if cursor.rowcount == 0:
                return None

        return self.get_contact(contact_id)

    def delete_contact(self, contact_id: int) -> Optional[Contact]:
        """Delete a contact and return the row as it was before deletion."""

        with self._connect() as conn:
            row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM contacts WHERE id = ?", (contact_id,))
        return self._row_to_contact(row)

    def contact_stats(self) -> ContactStats:
        with self._connect() as conn:
            status_rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM contacts GROUP BY status"
            ).fetchall()
            topic_rows = conn.execute(
                "SELECT topic, COUNT(*) AS count FROM contacts GROUP BY topic"
            ).fetchall()

        by_status = {str(row["status"]): int(row["count"]) for row in status_rows}
        return ContactStats(
            total=sum(by_status.values()),
            new=by_status.get("new", 0),
            in_progress=by_status.get("in_progress", 0),
            resolved=by_status.get("resolved", 0),
            topic_breakdown={str(row["topic"]): int(row["count"]) for row in topic_rows},
        )

    # ------------------------------------------------------------------
    # Legacy import
    # ------------------------------------------------------------------
    def import_user(
        self,
        *,
        email: str,
        password: str,
        name: str,
        created_at: datetime,
        updated_at: datetime,
    ) -> bool:
        """Insert a user unless the email is already registered."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (email, password_hash, full_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(email) DO NOTHING
                """,
                (
                    _normalize_email(email),
                    _hash_password(password),
                    name,
                    _serialize_datetime(created_at),
                    _serialize_datetime(updated_at),
                ),
            )
            return cursor.rowcount > 0

    def import_payment(
        self,
        *,
        payment_id: str,
        email: str,
        service: str,
        amount: Decimal,
        status: str,
        qr_code_url: Optional[str],
        created_at: datetime,
        updated_at: datetime,
    ) -> bool:
        """Insert a payment unless one with the same public id exists."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO payments (
                    email, amount, currency, service, payment_id, status, qr_code_url,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(payment_id) DO NOTHING
                """,
                (
                    email,
                    _serialize_amount(amount),
                    DEFAULT_CURRENCY,
                    service,
                    payment_id,
                    status,
                    qr_code_url,
                    _serialize_datetime(created_at),
                    _serialize_datetime(updated_at),
                ),
            )
            return cursor.rowcount > 0

    def import_contact(
        self,
        *,
        name: str,
        email: str,
        topic: str,
        subject: str,
        description: str,
        status: str,
        notes: str,
        created_at: datetime,
        updated_at: datetime,
    ) -> bool:
        """Insert a contact unless the same submission was imported before."""

        serialized_created = _serialize_datetime(created_at)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO contacts (
                    name, email, topic, subject, description, status, notes, created_at, updated_at
                )
                SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?
                 WHERE NOT EXISTS (
                    SELECT 1 FROM contacts WHERE email = ? AND subject = ? AND created_at = ?
                 )
                """,
                (
                    name,
                    email,
                    topic,
                    subject,
                    description,
                    status,
                    notes,
                    serialized_created,
                    _serialize_datetime(updated_at),
                    email,
                    subject,
                    serialized_created,
                ),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["full_name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _row_to_payment(self, row: sqlite3.Row) -> Payment:
        return Payment(
            id=int(row["id"]),
            user_id=int(row["user_id"]) if row["user_id"] is not None else None,
            email=str(row["email"]),
            amount=Decimal(str(row["amount"])),
            currency=str(row["currency"]),
            service=str(row["service"]),
            payment_id=str(row["payment_id"]),
            status=str(row["status"]),
            qr_code_url=row["qr_code_url"],
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _row_to_contact(self, row: sqlite3.Row) -> Contact:
        return Contact(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            topic=str(row["topic"]),
            subject=str(row["subject"]),
            description=str(row["description"]),
            status=str(row["status"]),
            notes=str(row["notes"] or ""),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = [
    "ConnectionPool",
    "Database",
    "DuplicateRecordError",
    "resolve_database_path",
]
