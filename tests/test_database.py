from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from accounts.database import Database
from accounts.errors import ConflictError, ConflictKind, RepositoryError
from accounts.models import Role, User


def _create(database: Database, email: str = "owner@example.com", **overrides) -> User:
    fields = {
        "name": "Account Owner",
        "email": email,
        "tel": "+1 555 0100",
        "role": Role.USER,
        "password_hash": "$pbkdf2-sha256$stored",
    }
    fields.update(overrides)
    return database.create_user(**fields)


def test_create_and_fetch_user(database: Database) -> None:
    user = _create(database, email="  Owner@Example.COM ")

    assert user.email == "owner@example.com"
    assert user.role is Role.USER
    assert len(user.id) == 32

    fetched = database.get_user(user.id)
    assert fetched == user
    assert database.get_user_by_email("OWNER@example.com") == user
    assert not hasattr(fetched, "password_hash")


def test_credentials_lookup_returns_stored_hash(database: Database) -> None:
    user = _create(database)

    credentials = database.get_credentials_by_email("owner@example.com")
    assert credentials is not None
    assert credentials.user == user
    assert credentials.password_hash == "$pbkdf2-sha256$stored"
    assert database.get_credentials_by_email("missing@example.com") is None


def test_duplicate_email_is_a_conflict(database: Database) -> None:
    _create(database)

    with pytest.raises(ConflictError) as excinfo:
        _create(database, email="OWNER@example.com")
    assert excinfo.value.kind is ConflictKind.DUPLICATE_EMAIL
    assert database.count_users() == 1


def test_partial_update_only_changes_supplied_fields(database: Database) -> None:
    user = _create(database)

    updated = database.update_user(user.id, tel="+44 20 7946 0000")
    assert updated is not None
    assert updated.tel == "+44 20 7946 0000"
    assert updated.name == user.name
    assert updated.email == user.email
    assert updated.role is Role.USER

    promoted = database.update_user(user.id, role=Role.ADMIN, name=None)
    assert promoted is not None
    assert promoted.role is Role.ADMIN
    assert promoted.name == user.name


def test_update_password_hash(database: Database) -> None:
    user = _create(database)
    database.update_user(user.id, password_hash="$pbkdf2-sha256$rotated")

    credentials = database.get_credentials_by_email(user.email)
    assert credentials is not None
    assert credentials.password_hash == "$pbkdf2-sha256$rotated"


def test_update_to_existing_email_is_a_conflict(database: Database) -> None:
    _create(database, email="first@example.com")
    second = _create(database, email="second@example.com")

    with pytest.raises(ConflictError):
        database.update_user(second.id, email="FIRST@example.com")


def test_update_unknown_user_returns_none(database: Database) -> None:
    assert database.update_user("does-not-exist", name="Nobody") is None


def test_update_rejects_unknown_columns(database: Database) -> None:
    user = _create(database)
    with pytest.raises(ValueError):
        database.update_user(user.id, created_at="yesterday")


def test_delete_user(database: Database) -> None:
    user = _create(database)

    assert database.delete_user("does-not-exist") is False
    assert database.count_users() == 1

    assert database.delete_user(user.id) is True
    assert database.get_user(user.id) is None
    assert database.count_users() == 0


def test_list_users_in_creation_order(database: Database) -> None:
    first = _create(database, email="a@example.com")
    second = _create(database, email="b@example.com", role=Role.ADMIN)

    users = database.list_users()
    assert [user.id for user in users] == [first.id, second.id]
    assert users[1].is_admin


def test_store_failures_surface_as_repository_errors(tmp_path: Path) -> None:
    uninitialised = Database(tmp_path / "empty.sqlite3")

    with pytest.raises(RepositoryError):
        uninitialised.get_user("anything")


def test_connection_failures_surface_as_repository_errors(database: Database, monkeypatch) -> None:
    def refuse_connection():
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(database, "_connect", refuse_connection)

    with pytest.raises(RepositoryError):
        database.list_users()
