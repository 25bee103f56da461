import json
import os
import aiofiles
from pathlib import Path
from loguru import logger
from typing import Dict, Optional
from .base import KeyValueStorage
from ..exceptions import StorageException
from ..utils.error_handler import convert_exceptions


class InMemoryStorage(KeyValueStorage):
    """Dictionary backed storage, used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """Key-value storage persisted as a single JSON object on the local filesystem."""

    def __init__(self, path: str):
        """
        Initialize JSON file storage.

        Args:
            path: Location of the JSON file; ``~`` is expanded and parents are created on write
        """
        self.path = Path(os.path.expanduser(path)).resolve()
        logger.debug(f"JsonFileStorage initialized at {self.path}")

    async def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            raw = await f.read()
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise StorageException(f"Unexpected content in {self.path}: expected a JSON object")
        return data

    async def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data))
        os.replace(tmp_path, self.path)

    @convert_exceptions({Exception: StorageException})
    async def get_item(self, key: str) -> Optional[str]:
        value = (await self._read_all()).get(key)
        return value if isinstance(value, str) or value is None else json.dumps(value)

    @convert_exceptions({Exception: StorageException})
    async def set_item(self, key: str, value: str) -> None:
        try:
            data = await self._read_all()
        except (ValueError, StorageException) as e:
            logger.warning(f"Overwriting unreadable storage file {self.path}: {e}")
            data = {}
        data[key] = value
        await self._write_all(data)

    @convert_exceptions({Exception: StorageException})
    async def remove_item(self, key: str) -> None:
        data = await self._read_all()
        if key in data:
            del data[key]
            await self._write_all(data)
