"""
Search orchestration.

Turns user input (a text query or an image, frame/object toggles and the
active video filter) into a SearchRequest, runs it through the archive client
and reduces the outcome into a single observable SearchState:

    idle -> loading -> done | error

Only the most recently issued search may write the state. Every call takes a
new generation token and a response whose token is no longer current is
dropped, so a slow earlier search can never overwrite a newer one.
"""

import dataclasses
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger

from ..exceptions import ValidationException
from ..models import SearchRequest, SearchResult
from ..utils.error_handler import ErrorHandler
from ..utils.validation import clamp_display_limit
from .filters import VideoFilterSelection

IMAGE_QUERY_LABEL = "image search"


class SearchPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"
    DONE = "done"


class SearchMode(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True)
class SearchState:
    phase: SearchPhase = SearchPhase.IDLE
    last_query: str = ""
    results: List[SearchResult] = field(default_factory=list)
    error_message: Optional[str] = None
    generation: int = 0


@dataclass
class SearchInput:
    """What the user submitted; only the fields of the chosen mode are read."""

    mode: SearchMode = SearchMode.TEXT
    query_text: Optional[str] = None
    image: Optional[bytes] = None
    image_filename: str = "image"
    image_content_type: Optional[str] = None
    search_frames: bool = True
    search_objects: bool = True


StateListener = Callable[[SearchState], None]


class SearchOrchestrator:
    """
    Owns the current search request/result pair.

    Attributes:
        client: ArchiveClient used for the searches
        video_filter: Active video selection; empty means all videos
        recent_images: Optional RecentImageStore that image searches are recorded into
        max_results: Number of results requested from the backend
    """

    def __init__(
        self,
        client,
        video_filter: Optional[VideoFilterSelection] = None,
        recent_images=None,
        max_results: int = 20,
        display_limit: int = 20,
    ):
        if max_results < 1:
            raise ValueError("max_results must be positive")
        self.client = client
        self.video_filter = video_filter or VideoFilterSelection()
        self.recent_images = recent_images
        self.max_results = max_results
        self._display_limit = clamp_display_limit(display_limit)
        self._generation = 0
        self._state = SearchState()
        self._listeners: List[StateListener] = []

    @classmethod
    def from_config(cls, client, config, video_filter=None, recent_images=None) -> "SearchOrchestrator":
        return cls(
            client,
            video_filter=video_filter,
            recent_images=recent_images,
            max_results=config.max_results,
            display_limit=config.display_limit,
        )

    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def display_limit(self) -> int:
        return self._display_limit

    @display_limit.setter
    def display_limit(self, value: int) -> None:
        self._display_limit = clamp_display_limit(value)

    def visible_results(self) -> List[SearchResult]:
        """Ranked results cut to the display limit; order is never changed."""
        return self._state.results[:self._display_limit]

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` on every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **changes) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.exception(f"Search state listener failed: {e}")

    def _validate(self, search_input: SearchInput) -> bool:
        if search_input.mode == SearchMode.TEXT:
            return bool(search_input.query_text and search_input.query_text.strip())
        return bool(search_input.image)

    def _build_request(self, search_input: SearchInput) -> SearchRequest:
        common = dict(
            search_frames=search_input.search_frames,
            search_objects=search_input.search_objects,
            max_results=self.max_results,
            video_names=self.video_filter.request_value(),
        )
        if search_input.mode == SearchMode.TEXT:
            return SearchRequest(query_text=search_input.query_text.strip(), **common)
        return SearchRequest(
            query_image=search_input.image,
            image_filename=search_input.image_filename,
            image_content_type=(
                search_input.image_content_type
                or mimetypes.guess_type(search_input.image_filename)[0]
                or "application/octet-stream"
            ),
            **common,
        )

    async def run_search(self, search_input: SearchInput) -> Optional[SearchState]:
        """
        Run one search and reduce its outcome into the state.

        Invalid input (blank text, missing image) is ignored without sending
        anything and returns None. Failures never propagate: they end in the
        ``error`` phase with a human readable message.

        Args:
            search_input: The submitted query and toggles

        Returns:
            SearchState after this search settled, or None if the input was rejected
        """
        if not self._validate(search_input):
            logger.debug(f"Ignoring empty {search_input.mode.value} search")
            return None

        self._generation += 1
        token = self._generation
        is_image = search_input.mode == SearchMode.IMAGE
        last_query = IMAGE_QUERY_LABEL if is_image else search_input.query_text.strip()
        self._set_state(phase=SearchPhase.LOADING, error_message=None, last_query=last_query, generation=token)

        try:
            request = self._build_request(search_input)
            if is_image:
                if self.recent_images is not None:
                    await self.recent_images.record(
                        search_input.image_filename, search_input.image, search_input.image_content_type
                    )
                results = await self.client.search_by_image(request)
            else:
                results = await self.client.search_by_text(request)
        except Exception as e:
            if token != self._generation:
                logger.debug(f"Dropping failure of superseded search #{token}: {e}")
                return self._state
            message = ErrorHandler.user_message(e)
            logger.error(f"Search #{token} failed: {message}")
            self._set_state(phase=SearchPhase.ERROR, error_message=message, results=[])
            return self._state

        if token != self._generation:
            logger.debug(f"Dropping {len(results)} results of superseded search #{token}")
            return self._state

        self._set_state(phase=SearchPhase.DONE, results=list(results), error_message=None)
        return self._state

    async def search_text(self, query: str, search_frames: bool = True, search_objects: bool = True):
        return await self.run_search(
            SearchInput(
                mode=SearchMode.TEXT,
                query_text=query,
                search_frames=search_frames,
                search_objects=search_objects,
            )
        )

    async def search_image(
        self,
        image: bytes,
        filename: str = "image",
        content_type: Optional[str] = None,
        search_frames: bool = True,
        search_objects: bool = True,
    ):
        return await self.run_search(
            SearchInput(
                mode=SearchMode.IMAGE,
                image=image,
                image_filename=filename,
                image_content_type=content_type,
                search_frames=search_frames,
                search_objects=search_objects,
            )
        )

    async def run_recent(self, entry_id: int, search_frames: bool = True, search_objects: bool = True):
        """Search again with an image from the recent-image history."""
        if self.recent_images is None:
            raise ValidationException("No recent image history configured")
        entry = await self.recent_images.get(entry_id)
        if entry is None:
            raise ValidationException(f"No recent image with id {entry_id}")
        image = self.recent_images.materialize(entry)
        return await self.search_image(
            image.data,
            filename=image.filename,
            content_type=image.content_type,
            search_frames=search_frames,
            search_objects=search_objects,
        )
