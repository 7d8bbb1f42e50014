"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

from .errors import ConflictError, ConflictKind, RepositoryError
from .models import Role, User, UserCredentials

logger = logging.getLogger("accounts.database")

_UPDATABLE_COLUMNS = ("name", "email", "tel", "role", "password_hash")


class UserRepository(Protocol):
    """The narrow storage interface the account core depends on."""

    def create_user(
        self, *, name: str, email: str, tel: str, role: Role, password_hash: str
    ) -> User:
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_credentials_by_email(self, email: str) -> Optional[UserCredentials]:
        ...

    def list_users(self) -> List[User]:
        ...

    def update_user(self, user_id: str, **fields: object) -> Optional[User]:
        ...

    def delete_user(self, user_id: str) -> bool:
        ...


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _generate_user_id() -> str:
    return uuid.uuid4().hex


class Database:
    """Simple wrapper around SQLite for persisting user accounts.

    Each call opens its own connection and runs as a single transaction, so
    concurrent requests never share a cursor and a failed write leaves no
    partial state. The unique index on ``email`` is what makes duplicate
    registration detection atomic.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self._connect()
            with conn:
                yield conn
        except sqlite3.DatabaseError as exc:
            logger.error("Database operation failed on %s: %s", self._path, exc)
            raise RepositoryError("Database operation failed") from exc
        finally:
            if conn is not None:
                conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    tel TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        *,
        name: str,
        email: str,
        tel: str,
        role: Role,
        password_hash: str,
    ) -> User:
        """Insert a new account; raises :class:`ConflictError` on a duplicate email."""

        user = User(
            id=_generate_user_id(),
            name=name,
            email=normalize_email(email),
            tel=tel,
            role=Role(role),
            created_at=_current_timestamp(),
        )

        with self._transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, name, email, tel, role, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user.id,
                        user.name,
                        user.email,
                        user.tel,
                        user.role.value,
                        password_hash,
                        _serialize_datetime(user.created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(ConflictKind.DUPLICATE_EMAIL) from exc

        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        credentials = self.get_credentials_by_email(email)
        return credentials.user if credentials is not None else None

    def get_credentials_by_email(self, email: str) -> Optional[UserCredentials]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return UserCredentials(user=self._row_to_user(row), password_hash=str(row["password_hash"]))

    def list_users(self) -> List[User]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at, id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def count_users(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    def update_user(self, user_id: str, **fields: object) -> Optional[User]:
        """Apply a partial update and return the refreshed record.

        Only the supplied columns change. Returns ``None`` when the id is
        unknown.
        """

        unknown = set(fields) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update column(s): {', '.join(sorted(unknown))}")

        updates: List[str] = []
        values: List[object] = []
        for column in _UPDATABLE_COLUMNS:
            if column not in fields:
                continue
            value = fields[column]
            if value is None:
                continue
            if column == "email":
                value = normalize_email(str(value))
            if column == "role":
                value = Role(value).value
            updates.append(f"{column} = ?")
            values.append(value)

        if not updates:
            return self.get_user(user_id)

        values.append(user_id)
        query = f"UPDATE users SET {', '.join(updates)} WHERE id = ?"

        with self._transaction() as conn:
            try:
                cursor = conn.execute(query, values)
            except sqlite3.IntegrityError as exc:
                raise ConflictError(ConflictKind.DUPLICATE_EMAIL) from exc
            if cursor.rowcount == 0:
                return None

        return self.get_user(user_id)

    def delete_user(self, user_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            tel=str(row["tel"]),
            role=Role(str(row["role"])),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "UserRepository", "normalize_email"]
