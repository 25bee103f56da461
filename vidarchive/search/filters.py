from typing import Iterable, List, Optional, Set

from loguru import logger

from ..exceptions import ValidationException


class VideoFilterSelection:
    """
    Which completed videos a search is restricted to.

    An empty selection means "search all videos", not "search none"; the
    request then carries no filter at all.
    """

    def __init__(self, available: Optional[Iterable[str]] = None):
        self.available: List[str] = list(available or [])
        self.selected: Set[str] = set()

    async def load(self, client) -> List[str]:
        """Fetch the names of completed videos and drop selections that disappeared."""
        self.available = await client.list_video_names(status="completed")
        self.selected &= set(self.available)
        logger.info(f"Loaded {len(self.available)} completed video(s) for filtering")
        return self.available

    def toggle(self, video_name: str) -> bool:
        """Flip one video in or out of the selection. Returns True if now selected."""
        if video_name not in self.available:
            raise ValidationException(f"Unknown video: {video_name}")
        if video_name in self.selected:
            self.selected.discard(video_name)
            return False
        self.selected.add(video_name)
        return True

    def select_all(self) -> None:
        self.selected = set(self.available)

    def select_none(self) -> None:
        self.selected = set()

    @property
    def all_selected(self) -> bool:
        return bool(self.available) and self.selected == set(self.available)

    @property
    def none_selected(self) -> bool:
        return not self.selected

    def request_value(self) -> Optional[Set[str]]:
        return set(self.selected) if self.selected else None

    def summary(self) -> str:
        if self.none_selected:
            return "Searching all videos"
        return f"Searching {len(self.selected)} of {len(self.available)} videos"
