import asyncio
import base64
import binascii
import json
import mimetypes
import re
import time
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

from loguru import logger
from pydantic import ValidationError

from .base import KeyValueStorage
from ..exceptions import StorageException, ValidationException
from ..models import RecentImageEntry

STORAGE_KEY = "recent_image_searches"
DEFAULT_CAPACITY = 10

_DATA_URL_PATTERN = re.compile(r"^data:(?P<content_type>[^;,]*)(?P<params>(;[^;,]*)*?);base64,(?P<payload>.*)$", re.DOTALL)


class MaterializedImage(NamedTuple):
    filename: str
    content_type: str
    data: bytes


def encode_data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(data_url: str):
    """Split a base64 data URL into ``(content_type, bytes)``."""
    match = _DATA_URL_PATTERN.match(data_url or "")
    if match is None:
        raise ValidationException("Not a base64 data URL")
    try:
        payload = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationException(f"Invalid base64 payload: {e}")
    return match.group("content_type") or "application/octet-stream", payload


class RecentImageStore:
    """
    Bounded, newest-first history of images used as search queries.

    Entries are persisted under a single namespace key of a KeyValueStorage
    backend. Unreadable or corrupt persisted state is treated as an empty
    history; write failures are logged and never raised to the caller.

    Attributes:
        storage: Backend holding the serialized history
        capacity: Maximum number of entries kept
    """

    def __init__(self, storage: KeyValueStorage, capacity: int = DEFAULT_CAPACITY, key: str = STORAGE_KEY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.storage = storage
        self.capacity = capacity
        self.key = key
        self._lock = asyncio.Lock()
        self._last_id = 0

    async def _load(self) -> List[RecentImageEntry]:
        try:
            raw = await self.storage.get_item(self.key)
        except StorageException as e:
            logger.warning(f"Could not read recent images, starting empty: {e}")
            return []
        if not raw:
            return []
        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise ValueError("expected a list of entries")
            return [RecentImageEntry.model_validate(item) for item in items]
        except (ValueError, ValidationError) as e:
            logger.warning(f"Discarding corrupt recent image history: {e}")
            return []

    async def _save(self, entries: List[RecentImageEntry]) -> None:
        payload = json.dumps([entry.model_dump(mode="json") for entry in entries])
        try:
            await self.storage.set_item(self.key, payload)
        except StorageException as e:
            logger.error(f"Could not persist recent images: {e}")

    def _next_id(self, entries: List[RecentImageEntry]) -> int:
        candidate = int(time.time() * 1000)
        highest = max([self._last_id] + [entry.id for entry in entries])
        if candidate <= highest:
            candidate = highest + 1
        self._last_id = candidate
        return candidate

    async def record(self, filename: str, data: bytes, content_type: Optional[str] = None) -> RecentImageEntry:
        """
        Remember an image used for a search.

        The new entry goes first; an older entry holding the same image is
        dropped, and entries beyond the capacity are evicted oldest first.

        Args:
            filename: Original file name of the image
            data: Raw image bytes
            content_type: MIME type; guessed from the file name when omitted

        Returns:
            RecentImageEntry: The stored entry
        """
        if not data:
            raise ValidationException("Cannot record an empty image")
        if not content_type:
            content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"

        async with self._lock:
            entries = await self._load()
            image_data = encode_data_url(data, content_type)
            entry = RecentImageEntry(
                id=self._next_id(entries),
                filename=filename,
                content_type=content_type,
                image_data=image_data,
                captured_at=datetime.now(timezone.utc),
            )
            entries = [e for e in entries if e.image_data != image_data]
            entries.insert(0, entry)
            evicted = entries[self.capacity:]
            entries = entries[:self.capacity]
            if evicted:
                logger.debug(f"Evicted {len(evicted)} recent image(s) beyond capacity {self.capacity}")
            await self._save(entries)
        return entry

    async def remove(self, entry_id: int) -> bool:
        async with self._lock:
            entries = await self._load()
            remaining = [entry for entry in entries if entry.id != entry_id]
            if len(remaining) == len(entries):
                return False
            await self._save(remaining)
        return True

    async def clear(self) -> None:
        async with self._lock:
            try:
                await self.storage.remove_item(self.key)
            except StorageException as e:
                logger.error(f"Could not clear recent images: {e}")

    async def list(self) -> List[RecentImageEntry]:
        """Entries newest first."""
        async with self._lock:
            return await self._load()

    async def get(self, entry_id: int) -> Optional[RecentImageEntry]:
        for entry in await self.list():
            if entry.id == entry_id:
                return entry
        return None

    @staticmethod
    def materialize(entry: RecentImageEntry) -> MaterializedImage:
        """Rebuild the original file name, content type and bytes of an entry."""
        content_type, data = decode_data_url(entry.image_data)
        return MaterializedImage(filename=entry.filename, content_type=entry.content_type or content_type, data=data)
