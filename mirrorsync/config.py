"""Configuration management for mirrorsync."""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from .platform import get_platform_specific_defaults, normalize_path

try:
    from dotenv import load_dotenv
    load_dotenv()  # Load .env file if it exists
except ImportError:
    # python-dotenv not available, continue without it
    pass


DEFAULT_GIT_USER_NAME = "Mirror Sync"
DEFAULT_GIT_USER_EMAIL = "sync@mirrorsync.local"


@dataclass
class Config:
    """
    Configuration for the sync engine with validation and defaults.

    Also serves as the settings provider consumed by SyncOrchestrator
    (get_remote_url, get_token, get_local_working_path,
    get_source_directory_path).
    """

    # Remote
    remote_url: Optional[str] = None
    token: Optional[str] = None
    branch: str = "main"

    # Directories
    source_dir: Path = field(default_factory=lambda: Path.home() / ".mirrorsync" / "source")
    repo_dir: Path = field(default_factory=lambda: Path.home() / ".mirrorsync-repo")
    exclude_patterns: List[str] = field(default_factory=list)

    # Auto-sync
    auto_sync: bool = True
    sync_interval_minutes: float = 5.0

    # Git
    git_user_name: str = DEFAULT_GIT_USER_NAME
    git_user_email: str = DEFAULT_GIT_USER_EMAIL
    git_timeout: float = 120.0

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.source_dir, str):
            self.source_dir = Path(self.source_dir)
        if isinstance(self.repo_dir, str):
            self.repo_dir = Path(self.repo_dir)

        self.source_dir = normalize_path(self.source_dir)
        self.repo_dir = normalize_path(self.repo_dir)

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}")
        self.log_level = self.log_level.upper()

        if self.sync_interval_minutes <= 0:
            raise ValueError("sync_interval_minutes must be positive")

        if self.git_timeout <= 0:
            raise ValueError("git_timeout must be positive")

        if not self.branch or not self.branch.strip():
            raise ValueError("branch must not be empty")

        if self.source_dir == self.repo_dir:
            raise ValueError("source_dir and repo_dir must be different directories")

    @property
    def sync_interval_seconds(self) -> float:
        """Auto-sync interval in seconds."""
        return self.sync_interval_minutes * 60.0

    def get_remote_url(self) -> Optional[str]:
        return self.remote_url

    def get_token(self) -> Optional[str]:
        return self.token

    def get_local_working_path(self) -> Path:
        return self.repo_dir

    def get_source_directory_path(self) -> Path:
        return self.source_dir


def _parse_patterns(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [pattern.strip() for pattern in raw.split(",") if pattern.strip()]


def load_configuration() -> Config:
    """Load configuration from environment variables with platform-specific defaults."""
    try:
        platform_defaults = get_platform_specific_defaults()

        return Config(
            remote_url=os.getenv("MIRRORSYNC_REMOTE_URL") or None,
            token=os.getenv("MIRRORSYNC_TOKEN") or None,
            branch=os.getenv("MIRRORSYNC_BRANCH", platform_defaults['branch']),
            source_dir=Path(os.getenv("MIRRORSYNC_SOURCE_DIR", str(platform_defaults['source_dir']))),
            repo_dir=Path(os.getenv("MIRRORSYNC_REPO_DIR", str(platform_defaults['repo_dir']))),
            exclude_patterns=_parse_patterns(os.getenv("MIRRORSYNC_EXCLUDE")),
            auto_sync=os.getenv("MIRRORSYNC_AUTO_SYNC", "true").lower() == "true",
            sync_interval_minutes=float(os.getenv(
                "MIRRORSYNC_SYNC_INTERVAL_MINUTES", str(platform_defaults['sync_interval_minutes'])
            )),
            git_user_name=os.getenv("MIRRORSYNC_GIT_USER_NAME", DEFAULT_GIT_USER_NAME),
            git_user_email=os.getenv("MIRRORSYNC_GIT_USER_EMAIL", DEFAULT_GIT_USER_EMAIL),
            git_timeout=float(os.getenv("MIRRORSYNC_GIT_TIMEOUT", str(platform_defaults['git_timeout']))),
            log_level=os.getenv("MIRRORSYNC_LOG_LEVEL", platform_defaults['log_level']).upper(),
        )
    except (ValueError, TypeError) as e:
        raise ValueError(f"Configuration error: {e}")


def validate_configuration(config: Config) -> List[str]:
    """Validate configuration and return any errors or warnings."""
    errors = []

    if not config.remote_url:
        errors.append("ERROR: No remote URL configured (set MIRRORSYNC_REMOTE_URL)")
    elif not config.remote_url.startswith(("http://", "https://", "git@", "file://", "/")):
        errors.append(f"WARNING: Git remote URL may be invalid: {config.remote_url}")

    if config.remote_url and config.remote_url.startswith(("http://", "https://")) and not config.token:
        errors.append("WARNING: No access token configured; pushes to an HTTPS remote will likely be rejected")

    if not config.source_dir.exists():
        errors.append(f"WARNING: Source directory does not exist yet: {config.source_dir}")
    elif not os.access(config.source_dir, os.R_OK):
        errors.append(f"ERROR: No read permission for source directory: {config.source_dir}")

    try:
        config.repo_dir.relative_to(config.source_dir)
        errors.append("ERROR: Working directory must not live inside the source directory")
    except ValueError:
        pass

    if config.sync_interval_minutes < 1:
        errors.append("WARNING: Sync intervals under one minute may hit remote rate limits")

    if errors:
        logging.getLogger('mirrorsync.config').debug(f"Configuration validation produced {len(errors)} findings")

    return errors
