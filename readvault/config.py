"""Centralised settings for the readvault snapshot service.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("READVAULT_WORKSPACE", Path.home() / ".readvault_data")
        )
    )
    storage_prefix: str = field(
        default_factory=lambda: os.environ.get("SNAPSHOT_STORAGE_PREFIX", "snapshots")
    )

    @property
    def storage_dir(self) -> Path:
        """Root directory under which snapshot blobs are written."""
        return self.workspace_dir / "blobs"

    # ------------------------------------------------------------------
    # Pipeline switches
    # ------------------------------------------------------------------
    snapshots_enabled: bool = field(
        default_factory=lambda: _env_bool("SNAPSHOTS_ENABLED", "true")
    )
    resolve_dns: bool = field(
        default_factory=lambda: _env_bool("SNAPSHOT_RESOLVE_DNS", "true")
    )

    # ------------------------------------------------------------------
    # Fetch limits
    # ------------------------------------------------------------------
    fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SNAPSHOT_FETCH_TIMEOUT", "15.0"))
    )
    max_content_size: int = field(
        default_factory=lambda: int(
            os.environ.get("SNAPSHOT_MAX_CONTENT_SIZE", str(5 * 1024 * 1024))
        )
    )
    max_redirects: int = field(
        default_factory=lambda: int(os.environ.get("SNAPSHOT_MAX_REDIRECTS", "5"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "SNAPSHOT_USER_AGENT", "ReadvaultBot/1.0 (+https://readvault.dev/bot)"
        )
    )

    # ------------------------------------------------------------------
    # Content limits
    # ------------------------------------------------------------------
    max_text_length: int = field(
        default_factory=lambda: int(os.environ.get("SNAPSHOT_MAX_TEXT_LENGTH", "500000"))
    )
    excerpt_length: int = field(
        default_factory=lambda: int(os.environ.get("SNAPSHOT_EXCERPT_LENGTH", "500"))
    )
    min_article_chars: int = field(
        default_factory=lambda: int(os.environ.get("SNAPSHOT_MIN_ARTICLE_CHARS", "100"))
    )

    # ------------------------------------------------------------------
    # Domain extractors
    # ------------------------------------------------------------------
    domain_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SNAPSHOT_DOMAIN_TIMEOUT", "10.0"))
    )
    twitter_oembed_url: str = field(
        default_factory=lambda: os.environ.get(
            "TWITTER_OEMBED_URL", "https://publish.twitter.com/oembed"
        )
    )
    fxtwitter_base_url: str = field(
        default_factory=lambda: os.environ.get("FXTWITTER_BASE_URL", "https://fxtwitter.com")
    )
    reddit_mirror_url: str = field(
        default_factory=lambda: os.environ.get("REDDIT_MIRROR_URL", "https://old.reddit.com")
    )

    # ------------------------------------------------------------------
    # Worker endpoint
    # ------------------------------------------------------------------
    max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("SNAPSHOT_MAX_ATTEMPTS", "3"))
    )
    worker_secret: str = field(
        default_factory=lambda: os.environ.get("SNAPSHOT_WORKER_SECRET", "")
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper()
    )

    def ensure_workspace(self) -> None:
        """Create the workspace and blob directories if they do not exist."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from readvault.config import settings
settings = Settings()
