from .base import KeyValueStorage
from .local_storage import InMemoryStorage, JsonFileStorage
from .recent_images import RecentImageStore, MaterializedImage

__all__ = [
    'KeyValueStorage',
    'InMemoryStorage',
    'JsonFileStorage',
    'RecentImageStore',
    'MaterializedImage',
]
