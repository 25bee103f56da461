from .filters import VideoFilterSelection
from .orchestrator import SearchInput, SearchMode, SearchOrchestrator, SearchPhase, SearchState

__all__ = [
    'VideoFilterSelection',
    'SearchInput',
    'SearchMode',
    'SearchOrchestrator',
    'SearchPhase',
    'SearchState',
]
