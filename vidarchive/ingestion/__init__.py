from .status_tracker import IngestionStatusTracker, JobEvent, JobEventKind
from .upload import UploadCoordinator

__all__ = [
    'IngestionStatusTracker',
    'JobEvent',
    'JobEventKind',
    'UploadCoordinator',
]
