"""
Persistent key-value store on top of JSON files.

Each collection is a directory and each item a ``{id}.json`` file. Writes go
to a temporary file first and are moved into place, so a crash never leaves a
half-written item behind.
"""

import asyncio
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from loguru import logger
from pydantic import BaseModel

from interview_eval.utils.error_handlers import PersistenceError

COLLECTIONS = ("interviews", "batches", "analyses", "files")

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.\-]+$")

Item = Dict[str, Any]


class KeyValueStore(Protocol):
    """Storage contract used by the history, batch and file services."""

    async def initialize(self) -> None: ...

    async def save_item(self, collection: str, item_id: str, value: Union[BaseModel, Item]) -> None: ...

    async def get_item(self, collection: str, item_id: str) -> Optional[Item]: ...

    async def get_all_items(self, collection: str) -> List[Item]: ...

    async def delete_item(self, collection: str, item_id: str) -> bool: ...

    async def clear_store(self, collection: str) -> None: ...


class JsonFileStore:
    """
    File-backed implementation of ``KeyValueStore``.

    Blocking file I/O runs in a worker thread so the event loop keeps serving
    other in-flight evaluations. Items with distinct ids can be written
    concurrently; there is no cross-item transaction.
    """

    def __init__(self, base_dir: Path = Path("data/store"), collections=COLLECTIONS):
        self.base_dir = Path(base_dir)
        self.collections = tuple(collections)
        self._initialized = False

    async def initialize(self) -> None:
        await asyncio.to_thread(self._initialize_sync)

    def _initialize_sync(self) -> None:
        try:
            for collection in self.collections:
                (self.base_dir / collection).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create store at {self.base_dir}: {e}") from e
        self._initialized = True
        logger.info(f"JSON store ready: {self.base_dir}")

    def _item_path(self, collection: str, item_id: str) -> Path:
        if collection not in self.collections:
            raise PersistenceError(f"Unknown collection: {collection}")
        if not _SAFE_NAME.match(item_id):
            raise PersistenceError(f"Invalid item id: {item_id!r}")
        return self.base_dir / collection / f"{item_id}.json"

    async def save_item(self, collection: str, item_id: str, value: Union[BaseModel, Item]) -> None:
        await asyncio.to_thread(self._save_sync, collection, item_id, value)

    def _save_sync(self, collection: str, item_id: str, value: Union[BaseModel, Item]) -> None:
        final_file = self._item_path(collection, item_id)
        temp_file = final_file.with_suffix(".tmp")

        if isinstance(value, BaseModel):
            payload = value.model_dump_json(indent=2)
        else:
            payload = json.dumps(value, ensure_ascii=False, indent=2, default=str)

        try:
            final_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(payload)
            temp_file.replace(final_file)
        except OSError as e:
            raise PersistenceError(f"Failed to save {collection}/{item_id}: {e}") from e
        logger.debug(f"Saved {collection}/{item_id}")

    async def get_item(self, collection: str, item_id: str) -> Optional[Item]:
        return await asyncio.to_thread(self._get_sync, collection, item_id)

    def _get_sync(self, collection: str, item_id: str) -> Optional[Item]:
        path = self._item_path(collection, item_id)
        if not path.exists():
            return None
        return self._read(path)

    def _read(self, path: Path) -> Item:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    async def get_all_items(self, collection: str) -> List[Item]:
        return await asyncio.to_thread(self._get_all_sync, collection)

    def _get_all_sync(self, collection: str) -> List[Item]:
        if collection not in self.collections:
            raise PersistenceError(f"Unknown collection: {collection}")
        directory = self.base_dir / collection
        if not directory.exists():
            return []
        return [self._read(path) for path in sorted(directory.glob("*.json"))]

    async def delete_item(self, collection: str, item_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, collection, item_id)

    def _delete_sync(self, collection: str, item_id: str) -> bool:
        path = self._item_path(collection, item_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to delete {collection}/{item_id}: {e}") from e
        return True

    async def clear_store(self, collection: str) -> None:
        await asyncio.to_thread(self._clear_sync, collection)

    def _clear_sync(self, collection: str) -> None:
        if collection not in self.collections:
            raise PersistenceError(f"Unknown collection: {collection}")
        directory = self.base_dir / collection
        if not directory.exists():
            return
        removed = 0
        try:
            for path in directory.glob("*.json"):
                path.unlink()
                removed += 1
        except OSError as e:
            raise PersistenceError(f"Failed to clear {collection}: {e}") from e
        logger.info(f"Cleared {removed} items from '{collection}'")
