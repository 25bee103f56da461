from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, PrivateAttr
from typing import Optional
from dotenv import load_dotenv, find_dotenv


class ClientConfig(BaseSettings):
    """Archive backend connection configuration."""

    api_url: str = Field(default="http://localhost:8000", description="Base URL of the archive backend")
    timeout: float = Field(default=120.0, gt=0, description="Per-request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="ARCHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


class TrackerConfig(BaseSettings):
    """Ingestion status polling configuration."""

    poll_interval: float = Field(default=3.0, gt=0, description="Seconds between two status polls")
    retire_delay: float = Field(default=5.0, ge=0, description="Seconds a terminal job stays tracked")
    max_consecutive_failures: Optional[int] = Field(
        default=None,
        ge=1,
        description="Failed polls in a row after which a job is treated as failed; unset disables the threshold",
    )

    model_config = SettingsConfigDict(
        env_prefix="TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


class SearchConfig(BaseSettings):
    """Search defaults."""

    max_results: int = Field(default=20, ge=1, description="Number of results requested from the backend")
    display_limit: int = Field(default=20, ge=5, le=50, description="Number of results shown")

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


class RecentImagesConfig(BaseSettings):
    """Recent image search history configuration."""

    path: str = Field(default="~/.vidarchive/recent_images.json", description="JSON file holding the history")
    capacity: int = Field(default=10, ge=1, description="Maximum number of remembered images")

    model_config = SettingsConfigDict(
        env_prefix="RECENT_IMAGES_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    file: Optional[str] = Field(default=None)
    enable_file: bool = Field(default=False)
    max_file_size: str = Field(default="10 MB")
    retention_days: int = Field(default=7)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


class ArchiveConfig(BaseSettings):
    """Main configuration class."""

    app_name: str = Field(default="vidarchive")
    debug: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="VIDARCHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )

    _client: Optional[ClientConfig] = PrivateAttr(default=None)
    _tracker: Optional[TrackerConfig] = PrivateAttr(default=None)
    _search: Optional[SearchConfig] = PrivateAttr(default=None)
    _recent_images: Optional[RecentImagesConfig] = PrivateAttr(default=None)
    _logging: Optional[LoggingConfig] = PrivateAttr(default=None)

    def __init__(self, **kwargs):
        # Force load environment variables before initializing
        load_dotenv(find_dotenv(usecwd=True))
        super().__init__(**kwargs)

    @property
    def client(self) -> ClientConfig:
        if self._client is None:
            self._client = ClientConfig()
        return self._client

    @property
    def tracker(self) -> TrackerConfig:
        if self._tracker is None:
            self._tracker = TrackerConfig()
        return self._tracker

    @property
    def search(self) -> SearchConfig:
        if self._search is None:
            self._search = SearchConfig()
        return self._search

    @property
    def recent_images(self) -> RecentImagesConfig:
        if self._recent_images is None:
            self._recent_images = RecentImagesConfig()
        return self._recent_images

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            self._logging = LoggingConfig()
        return self._logging


__all__ = [
    "ArchiveConfig",
    "ClientConfig",
    "TrackerConfig",
    "SearchConfig",
    "RecentImagesConfig",
    "LoggingConfig",
]
