"""
Settings loaded from environment variables (+ optional .env file).

Every variable may be given with the TASKBOARD_ prefix; DATABASE_URL,
DATABASE_NAME and PORT are also read unprefixed for hosted environments
that inject those names.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKBOARD"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _first_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v.strip()
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(*names: str, default: int) -> int:
    raw = _first_env(*names)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


@dataclass(frozen=True)
class Settings:
    # ---- Database ----
    database_url: str
    database_name: str

    # ---- Server ----
    host: str
    port: int
    # "*" serves any origin without credentials; list origins to allow cross-site cookie sessions
    cors_origins: List[str]

    # ---- Sessions ----
    session_ttl: timedelta
    session_update_age: timedelta
    cookie_secure: bool
    bcrypt_rounds: int

    # ---- Logging ----
    log_level: str
    log_dir: Optional[str]

    @property
    def cors_allows_any_origin(self) -> bool:
        return "*" in self.cors_origins

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv(override=False)
        return Settings(
            database_url=_first_env(_k("DATABASE_URL"), "DATABASE_URL", default="mongodb://localhost:27017"),
            database_name=_first_env(_k("DATABASE_NAME"), "DATABASE_NAME", default="taskboard"),
            host=_first_env(_k("HOST"), default="0.0.0.0"),
            port=_env_int(_k("PORT"), "PORT", default=8000),
            cors_origins=_env_list(_k("CORS_ORIGINS"), ["*"]),
            session_ttl=timedelta(days=_env_int(_k("SESSION_TTL_DAYS"), default=7)),
            session_update_age=timedelta(hours=_env_int(_k("SESSION_UPDATE_AGE_HOURS"), default=24)),
            cookie_secure=_env_bool(_k("COOKIE_SECURE"), False),
            bcrypt_rounds=_env_int(_k("BCRYPT_ROUNDS"), default=12),
            log_level=_first_env(_k("LOG_LEVEL"), default="INFO").upper(),
            log_dir=_first_env(_k("LOG_DIR")),
        )


def get_settings() -> Settings:
    """Build settings from the environment. The app factory overrides this dependency with its own instance."""
    return Settings.from_env()
