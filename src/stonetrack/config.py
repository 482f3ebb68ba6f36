"""Configuration management for Stone."""

from datetime import datetime, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Stone config directory
STONE_DIR = Path.home() / ".stone"
STONE_ENV_FILE = STONE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STONE_",
        # Later files override earlier ones:
        # 1. ~/.stone/.env (user config)
        # 2. .env in current directory (project-specific override)
        env_file=(str(STONE_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    storage_path: Path | None = Field(
        default=None,
        description="Path for the entry store (default: ~/.stone/entries.json)",
    )
    store_lock_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for the store file lock before failing",
    )

    # Idle detection
    idle_threshold_seconds: float = Field(
        default=300.0,
        description="Seconds without input before the user is asked about idle time",
    )
    idle_poll_interval_seconds: float = Field(
        default=30.0,
        description="Seconds between idle checks",
    )
    wake_alert_threshold_seconds: float = Field(
        default=60.0,
        description="Sleeps shorter than this are kept silently on wake",
    )
    sleep_gap_grace_seconds: float = Field(
        default=30.0,
        description="Extra delay between idle checks tolerated before assuming the machine slept",
    )

    # Reports
    timezone: str = Field(
        default="",
        description="IANA timezone for day boundaries (empty = system local time)",
    )
    week_start: int = Field(
        default=0,
        ge=0,
        le=6,
        description="First day of the week for week presets (0 = Monday, 6 = Sunday)",
    )
    export_prefix: str = Field(
        default="Stone_Report",
        description="Filename prefix for CSV exports",
    )
    export_dir: Path | None = Field(
        default=None,
        description="Directory for CSV exports (default: current directory)",
    )

    def get_storage_path(self) -> Path:
        """Get the storage path, using default if not set."""
        if self.storage_path:
            return self.storage_path
        return STONE_DIR / "entries.json"

    def get_timezone(self) -> tzinfo:
        """Get the timezone used for calendar arithmetic.

        Returns:
            The configured zone, or the system's local zone when unset.
        """
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo

    def get_export_dir(self) -> Path:
        """Get the export directory, defaulting to the working directory."""
        if self.export_dir:
            return self.export_dir
        return Path.cwd()


# Global settings instance
settings = Settings()
