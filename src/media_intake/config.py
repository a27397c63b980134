"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

EIGHT_GIB = 8 * 1024 * 1024 * 1024


@dataclass(slots=True)
class IntakeLimits:
    min_size_bytes: int = 1_000
    max_size_bytes: int = 8_000_000_000
    min_duration_seconds: float = 0.1
    max_duration_seconds: float = 21_600.0
    max_tags: int = 25


@dataclass(slots=True)
class StorageNodeConfig:
    api_url: str
    gateway_url: str
    health_timeout_seconds: float = 10.0


@dataclass(slots=True)
class StorageConfig:
    primary: StorageNodeConfig
    fallback: StorageNodeConfig
    upload_timeout_seconds: float = 120.0
    unpin_timeout_seconds: float = 10.0
    max_upload_bytes: int = EIGHT_GIB


@dataclass(slots=True)
class EvictionConfig:
    enabled: bool = True
    retention_days: int = 7
    run_hour_utc: int = 2


@dataclass(slots=True)
class AppConfig:
    upload_dir: Path
    transfer_endpoint: str
    intake_limits: IntakeLimits
    storage: StorageConfig
    eviction: EvictionConfig
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    pending_transfer_ttl_seconds: int
    job_max_retries: int
    default_thumbnail: str = ""


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_storage_config() -> StorageConfig:
    """Read primary/fallback node endpoints from the environment."""
    return StorageConfig(
        primary=StorageNodeConfig(
            api_url=os.getenv("IPFS_SUPERNODE_URL", "http://65.21.201.94:5002"),
            gateway_url=os.getenv("THREESPEAK_IPFS_GATEWAY", "https://ipfs.3speak.tv"),
            health_timeout_seconds=10.0,
        ),
        fallback=StorageNodeConfig(
            api_url=os.getenv("IPFS_FALLBACK_URL", "http://localhost:5001"),
            gateway_url=os.getenv("IPFS_FALLBACK_GATEWAY", "https://ipfs.yourdomain.com"),
            health_timeout_seconds=5.0,
        ),
        upload_timeout_seconds=float(os.getenv("STORAGE_TIMEOUT_SECONDS", 120)),
        max_upload_bytes=int(os.getenv("STORAGE_MAX_BYTES", EIGHT_GIB)),
    )


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    upload_dir = Path(os.getenv("UPLOAD_DIR", "/tmp/uploads"))
    upload_dir.mkdir(parents=True, exist_ok=True)

    database_url = os.getenv("DATABASE_URL", "sqlite:///media_intake.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    eviction = EvictionConfig(
        enabled=_env_flag("EVICTION_ENABLED", True),
        retention_days=int(os.getenv("CLEANUP_RETENTION_DAYS", 7)),
        run_hour_utc=int(os.getenv("EVICTION_RUN_HOUR_UTC", 2)) % 24,
    )

    init_db(engine)

    return AppConfig(
        upload_dir=upload_dir,
        transfer_endpoint=os.getenv("TUS_ENDPOINT", "http://localhost:1080/files"),
        intake_limits=IntakeLimits(),
        storage=load_storage_config(),
        eviction=eviction,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        pending_transfer_ttl_seconds=int(os.getenv("PENDING_TRANSFER_TTL_SECONDS", 3600)),
        job_max_retries=int(os.getenv("JOB_MAX_RETRIES", 3)),
        default_thumbnail=os.getenv("DEFAULT_THUMBNAIL", ""),
    )
