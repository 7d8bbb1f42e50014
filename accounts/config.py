"""Configuration management for the accounts service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

PRODUCTION = "production"
DEFAULT_PASSWORD_SCHEMES: Tuple[str, ...] = ("pbkdf2_sha256", "bcrypt")


def default_database_path() -> Path:
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "accounts.sqlite3").resolve(strict=False)


def _resolve_path(value: object, base_path: Path | None) -> Path:
    raw = Path(str(value)).expanduser()
    if raw.is_absolute() or base_path is None:
        return raw.resolve(strict=False)
    return (base_path / raw).resolve(strict=False)


def _positive_int(data: Mapping[str, object], key: str, default: int) -> int:
    raw = data.get(key, default)
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Configuration value '{key}' must be an integer") from exc
    if value <= 0:
        raise ValueError(f"Configuration value '{key}' must be positive")
    return value


@dataclass(frozen=True)
class Settings:
    """Immutable process-wide configuration.

    Built once at start-up and handed to the token issuer, the credential
    verifier and the account service. Nothing in the core reads environment
    variables directly.
    """

    secret_key: str
    token_lifetime: timedelta = timedelta(days=30)
    cookie_name: str = "token"
    cookie_lifetime_days: int = 30
    environment: str = "development"
    database_path: Path = field(default_factory=default_database_path)
    password_min_length: int = 6
    password_schemes: Tuple[str, ...] = DEFAULT_PASSWORD_SCHEMES
    password_rounds: Optional[int] = None
    api_prefix: str = ""

    def __post_init__(self) -> None:
        if not self.secret_key or not self.secret_key.strip():
            raise ValueError("A non-empty secret key is required to sign session tokens")
        if self.token_lifetime <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        if not self.password_schemes:
            raise ValueError("At least one password hashing scheme must be configured")

    @property
    def secure_cookies(self) -> bool:
        return self.environment.strip().lower() == PRODUCTION

    @property
    def cookie_max_age(self) -> int:
        return int(timedelta(days=self.cookie_lifetime_days).total_seconds())

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw mapping data (e.g. a parsed YAML file)."""
        secret = data.get("secret_key")
        if not secret:
            raise ValueError("Missing required configuration field: secret_key")

        database_path = (
            _resolve_path(data["database_path"], base_path)
            if data.get("database_path")
            else default_database_path()
        )

        schemes_raw = data.get("password_schemes")
        if schemes_raw is None:
            schemes = DEFAULT_PASSWORD_SCHEMES
        elif isinstance(schemes_raw, str):
            schemes = tuple(item.strip() for item in schemes_raw.split(",") if item.strip())
        else:
            schemes = tuple(str(item) for item in schemes_raw)  # type: ignore[union-attr]

        prefix = str(data.get("api_prefix", "") or "").rstrip("/")
        rounds = _positive_int(data, "password_rounds", 1) if data.get("password_rounds") else None

        return Settings(
            secret_key=str(secret),
            token_lifetime=timedelta(days=_positive_int(data, "token_lifetime_days", 30)),
            cookie_name=str(data.get("cookie_name", "token")),
            cookie_lifetime_days=_positive_int(data, "cookie_lifetime_days", 30),
            environment=str(data.get("environment", "development")),
            database_path=database_path,
            password_min_length=_positive_int(data, "password_min_length", 6),
            password_schemes=schemes,
            password_rounds=rounds,
            api_prefix=prefix,
        )


_ENV_OVERRIDES: Dict[str, str] = {
    "ACCOUNTS_SECRET_KEY": "secret_key",
    "ACCOUNTS_TOKEN_LIFETIME_DAYS": "token_lifetime_days",
    "ACCOUNTS_COOKIE_NAME": "cookie_name",
    "ACCOUNTS_COOKIE_LIFETIME_DAYS": "cookie_lifetime_days",
    "ACCOUNTS_ENV": "environment",
    "ACCOUNTS_DB_PATH": "database_path",
    "ACCOUNTS_PASSWORD_ROUNDS": "password_rounds",
}


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply ``ACCOUNTS_*`` overrides."""
    env = os.environ if environ is None else environ
    raw: Dict[str, object] = {}
    base_path: Path | None = None

    if config_path is not None and config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        raw.update(loaded)
        base_path = config_path.parent

    for variable, key in _ENV_OVERRIDES.items():
        value = env.get(variable)
        if value is not None and value.strip():
            raw[key] = value.strip()

    settings = Settings.from_dict(raw, base_path=base_path)
    env_db_path = env.get("ACCOUNTS_DB_PATH")
    if env_db_path and env_db_path.strip():
        # Environment paths are relative to the working directory, not the file.
        settings = replace(settings, database_path=_resolve_path(env_db_path.strip(), None))
    return settings


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "accounts.yaml").resolve(strict=False)
    return candidate


__all__ = ["PRODUCTION", "Settings", "default_database_path", "load_settings", "resolve_config_path"]
