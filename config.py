"""Runtime configuration loaded from the environment (and ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from ttl_cache import user_cache_dir

DEFAULT_APP_NAME = "steam-pick"


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Settings passed explicitly into clients and the coordinator."""

    api_key: str = ""
    app_name: str = DEFAULT_APP_NAME
    db_path: Path | None = None
    cache_ttl: timedelta = timedelta(hours=24)
    auth_cache_ttl: timedelta = timedelta(minutes=30)
    http_timeout: float = 30.0
    gpg_recipient: str | None = None
    workers: int = 1
    rate_limit_per_minute: float = 30.0

    @property
    def data_dir(self) -> Path:
        return user_cache_dir() / self.app_name

    @property
    def cache_dir(self) -> Path:
        # Kept apart from the database so clearing the cache never drops it.
        return self.data_dir / "http"

    @property
    def database_path(self) -> Path:
        return self.db_path or self.data_dir / "steampick.db"

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Read settings from environment variables, using defaults when unset."""
        db_path = os.getenv("STEAM_PICK_DB_PATH")
        return cls(
            api_key=os.getenv("STEAM_API_KEY", ""),
            app_name=os.getenv("STEAM_PICK_APP_NAME", DEFAULT_APP_NAME),
            db_path=Path(db_path) if db_path else None,
            cache_ttl=timedelta(hours=float(os.getenv("STEAM_PICK_CACHE_TTL_HOURS", "24"))),
            auth_cache_ttl=timedelta(minutes=float(os.getenv("STEAM_PICK_AUTH_CACHE_TTL_MINUTES", "30"))),
            http_timeout=float(os.getenv("STEAM_PICK_HTTP_TIMEOUT", "30")),
            gpg_recipient=os.getenv("STEAM_PICK_GPG_RECIPIENT") or None,
            workers=int(os.getenv("ENRICH_WORKERS", "1")),
            rate_limit_per_minute=float(os.getenv("ENRICH_RATE_LIMIT_PER_MINUTE", "30")),
        )
