from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from accounts.config import Settings, load_settings, resolve_config_path

SECRET = "configured-secret-value-0123456789abcdef"


def _write_config(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    return path


def test_load_settings_from_yaml(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "accounts.yaml",
        f"""
secret_key: {SECRET}
token_lifetime_days: 7
cookie_name: session
cookie_lifetime_days: 2
environment: production
database_path: data/users.sqlite3
password_schemes: [pbkdf2_sha256]
""",
    )

    settings = load_settings(config, environ={})

    assert settings.secret_key == SECRET
    assert settings.token_lifetime == timedelta(days=7)
    assert settings.cookie_name == "session"
    assert settings.cookie_max_age == 2 * 24 * 60 * 60
    assert settings.secure_cookies is True
    assert settings.database_path == (tmp_path / "data" / "users.sqlite3").resolve()
    assert settings.password_schemes == ("pbkdf2_sha256",)


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "accounts.yaml", f"secret_key: {SECRET}\nenvironment: production\n")

    settings = load_settings(
        config,
        environ={
            "ACCOUNTS_ENV": "development",
            "ACCOUNTS_TOKEN_LIFETIME_DAYS": "1",
            "ACCOUNTS_DB_PATH": str(tmp_path / "override.sqlite3"),
            "ACCOUNTS_PASSWORD_ROUNDS": "5000",
        },
    )

    assert settings.secure_cookies is False
    assert settings.token_lifetime == timedelta(days=1)
    assert settings.database_path == (tmp_path / "override.sqlite3").resolve()
    assert settings.password_rounds == 5000


def test_settings_from_environment_only(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.yaml", environ={"ACCOUNTS_SECRET_KEY": SECRET})

    assert settings.secret_key == SECRET
    assert settings.cookie_name == "token"
    assert settings.cookie_lifetime_days == 30
    assert settings.secure_cookies is False
    assert settings.password_schemes[0] == "pbkdf2_sha256"


def test_secret_key_is_required(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_settings(tmp_path / "missing.yaml", environ={})
    with pytest.raises(ValueError):
        Settings(secret_key="   ")


def test_invalid_numbers_are_rejected(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "accounts.yaml", f"secret_key: {SECRET}\ncookie_lifetime_days: soon\n")
    with pytest.raises(ValueError):
        load_settings(config, environ={})

    with pytest.raises(ValueError):
        Settings.from_dict({"secret_key": SECRET, "token_lifetime_days": 0})


def test_top_level_must_be_a_mapping(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "accounts.yaml", "- just\n- a list\n")
    with pytest.raises(ValueError):
        load_settings(config, environ={"ACCOUNTS_SECRET_KEY": SECRET})


def test_resolve_config_path(tmp_path: Path) -> None:
    explicit = resolve_config_path(str(tmp_path / "custom.yaml"))
    assert explicit == (tmp_path / "custom.yaml").resolve()

    default = resolve_config_path(None)
    assert default.name == "accounts.yaml"
    assert default.parent.name == "config"
