"""Settings loaded once from the process environment (+ optional .env)."""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv(override=False)

DEFAULT_SQLITE_URL = "sqlite:///./tasks.db"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _database_url_from_env() -> str:
    """
    Resolve the store URL.

    DATABASE_URL wins; otherwise DB_HOST/DB_PORT/DB_USER/DB_PASSWORD/DB_NAME
    build a MySQL URL; otherwise a local SQLite file is used.
    """
    url = _first_env("DATABASE_URL")
    if url:
        return url.strip()

    host = _first_env("DB_HOST")
    if not host:
        return DEFAULT_SQLITE_URL

    user = quote_plus(_env("DB_USER", "root"))
    password = _env("DB_PASSWORD", "")
    auth = f"{user}:{quote_plus(password)}" if password else user
    port = _env_int("DB_PORT", 3306)
    name = _env("DB_NAME", "tasks")
    return f"mysql+pymysql://{auth}@{host.strip()}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    # ---- Store ----
    database_url: str
    db_pool_size: int
    db_pool_timeout: int

    # ---- Tokens / passwords ----
    jwt_secret: str
    jwt_secret_is_generated: bool
    access_token_expire_minutes: int
    bcrypt_rounds: int

    # ---- HTTP ----
    frontend_origins: List[str]
    host: str
    port: int

    # ---- Logging ----
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        secret = _first_env("JWT_SECRET", "SECRET_KEY")
        generated = secret is None
        if generated:
            secret = secrets.token_urlsafe(32)

        return Settings(
            database_url=_database_url_from_env(),
            db_pool_size=max(1, _env_int("DB_POOL_SIZE", 10)),
            db_pool_timeout=max(1, _env_int("DB_POOL_TIMEOUT", 30)),
            jwt_secret=secret,
            jwt_secret_is_generated=generated,
            access_token_expire_minutes=max(1, _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 10),
            frontend_origins=_env_list("FRONTEND_ORIGIN", ["http://localhost:5173"]),
            host=_env("HOST", "0.0.0.0"),
            port=_env_int("PORT", 5000),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )

    def describe(self) -> str:
        """Human-readable summary for startup logs. Never includes secrets."""
        db = self.database_url
        if "@" in db:
            scheme, _, rest = db.partition("://")
            db = f"{scheme}://***@{rest.split('@', 1)[1]}"
        return (
            f"db={db} pool_size={self.db_pool_size} "
            f"token_ttl={self.access_token_expire_minutes}m "
            f"origins={','.join(self.frontend_origins)} port={self.port}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
