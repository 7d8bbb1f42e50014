from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from accounts.config import Settings
from accounts.database import Database

TEST_SECRET = "tests-secret-key-with-enough-entropy-0123456789"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    # Cheap PBKDF2 rounds keep the suite fast.
    return Settings(
        secret_key=TEST_SECRET,
        database_path=tmp_path / "accounts.sqlite3",
        password_schemes=("pbkdf2_sha256",),
        password_rounds=1000,
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    db.initialize()
    return db


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()
