"""Environment-driven settings for billflow."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

DEFAULT_DB_PATH = str(Path.home() / ".billflow" / "billflow.db")


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Attributes:
        db_path: SQLite database file (BILLFLOW_DB_PATH)
        remote_url: Base URL of the remote transaction store; None means
            payments are validated against the local store only
            (BILLFLOW_REMOTE_URL)
        remote_timeout: HTTP timeout in seconds (BILLFLOW_REMOTE_TIMEOUT)
        log_level: DEBUG, INFO, WARNING or ERROR (BILLFLOW_LOG_LEVEL)
        log_format: console or json (BILLFLOW_LOG_FORMAT)
    """

    db_path: str = DEFAULT_DB_PATH
    remote_url: Optional[str] = None
    remote_timeout: float = 10.0
    log_level: str = "WARNING"
    log_format: str = "console"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from BILLFLOW_* environment variables."""
        return cls(
            db_path=os.environ.get("BILLFLOW_DB_PATH") or DEFAULT_DB_PATH,
            remote_url=os.environ.get("BILLFLOW_REMOTE_URL") or None,
            remote_timeout=float(os.environ.get("BILLFLOW_REMOTE_TIMEOUT", "10")),
            log_level=os.environ.get("BILLFLOW_LOG_LEVEL", "WARNING").upper(),
            log_format=os.environ.get("BILLFLOW_LOG_FORMAT", "console").lower(),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
