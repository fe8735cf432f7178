from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]


def _load_env_file(env_path: Optional[Path] = None) -> None:
    path = env_path or REPO_ROOT / ".env"
    if path.exists():
        load_dotenv(dotenv_path=path)
    else:
        load_dotenv()


def _to_bool(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _to_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        return default


@dataclass(frozen=True)
class RedisConfig:
    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RedisConfig":
        # Redis stays off outside production unless explicitly enabled.
        production = os.getenv("APP_ENV", "development") == "production"
        enabled = _to_bool(os.getenv("REDIS_ENABLED"), default=production)

        uri = os.getenv("REDIS_URI")
        if uri:
            return cls.from_uri(uri, enabled=enabled)

        return cls(
            enabled=enabled,
            host=os.getenv("REDIS_HOST", cls.host),
            port=_to_int(os.getenv("REDIS_PORT"), cls.port),
            db=_to_int(os.getenv("REDIS_DB"), cls.db),
            password=os.getenv("REDIS_PASSWORD") or None,
        )

    @classmethod
    def from_uri(cls, uri: str, *, enabled: bool = True) -> "RedisConfig":
        parsed = urlparse(uri)
        if parsed.scheme not in {"redis", "rediss"}:
            raise ValueError(
                f"Unsupported Redis URI scheme: {parsed.scheme!r}")

        db_fragment = parsed.path.lstrip("/")
        return cls(
            enabled=enabled,
            host=parsed.hostname or cls.host,
            port=parsed.port or cls.port,
            db=int(db_fragment) if db_fragment else cls.db,
            password=parsed.password or None,
        )


@dataclass(frozen=True)
class RecoveryConfig:
    max_concurrent_sessions: int = 2
    # Multiplier applied to every simulated step delay; 0 runs phases back to back.
    delay_scale: float = 1.0


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///syncsphere.db"
    redis: RedisConfig = field(default_factory=RedisConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "Settings":
        _load_env_file(env_path)

        recovery = RecoveryConfig(
            max_concurrent_sessions=_to_int(
                os.getenv("RECOVERY_MAX_CONCURRENT"), RecoveryConfig.max_concurrent_sessions),
            delay_scale=_to_float(
                os.getenv("RECOVERY_DELAY_SCALE"), RecoveryConfig.delay_scale),
        )
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            redis=RedisConfig.from_env(),
            recovery=recovery,
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            host=os.getenv("HOST", cls.host),
            port=_to_int(os.getenv("PORT"), cls.port),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
