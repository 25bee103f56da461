from .settings import (
    ArchiveConfig,
    ClientConfig,
    TrackerConfig,
    SearchConfig,
    RecentImagesConfig,
    LoggingConfig,
)

__all__ = [
    "ArchiveConfig",
    "ClientConfig",
    "TrackerConfig",
    "SearchConfig",
    "RecentImagesConfig",
    "LoggingConfig",
]
