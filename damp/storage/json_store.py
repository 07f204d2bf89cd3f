"""
Versioned JSON document store.

Each store is one file shaped as:

    {"version": "1.0.0", "last_updated": 1700000000000, "<root_key>": {...}}

Writes are read-modify-write under an asyncio.Lock, written to a temp file
in the same directory and moved into place with os.replace, so a crash
never leaves a half-written document. A missing, unreadable or malformed
file is recreated empty.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from damp.models.project import now_ms
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Storage")

STORE_VERSION = "1.0.0"

T = TypeVar("T")


class JsonStore:
    """A single JSON file holding one keyed map."""

    def __init__(self, path: Path, root_key: str):
        self.path = Path(path)
        self.root_key = root_key
        self._lock = asyncio.Lock()

    def _empty(self) -> Dict[str, Any]:
        return {"version": STORE_VERSION, "last_updated": now_ms(), self.root_key: {}}

    def _read(self) -> Dict[str, Any]:
        return self._read_checked()[0]

    def _read_checked(self) -> Tuple[Dict[str, Any], bool]:
        """Return (document, valid). An invalid or missing file yields an empty document."""
        if not self.path.exists():
            return self._empty(), False
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {self.path.name}, recreating: {e}")
            return self._empty(), False

        if not isinstance(document, dict) or not isinstance(document.get(self.root_key), dict):
            logger.warning(f"Invalid structure in {self.path.name}, recreating")
            return self._empty(), False
        return document, True

    def _write(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document["version"] = STORE_VERSION
        document["last_updated"] = now_ms()
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, self.path)

    async def initialize(self) -> None:
        """Create the file if it does not exist (or repair it if invalid)."""
        async with self._lock:
            document, valid = await asyncio.to_thread(self._read_checked)
            if not valid:
                await asyncio.to_thread(self._write, document)
        logger.info(f"Store ready: {self.path}")

    async def load(self) -> Dict[str, Any]:
        """Return a copy of the keyed map."""
        async with self._lock:
            document = await asyncio.to_thread(self._read)
        return dict(document[self.root_key])

    async def update(self, mutate: Callable[[Dict[str, Any]], T]) -> T:
        """
        Apply mutate() to the keyed map and persist the result atomically.

        The return value of mutate() is passed through. If mutate() raises,
        nothing is written.
        """
        async with self._lock:
            document = await asyncio.to_thread(self._read)
            entries = document[self.root_key]
            result = mutate(entries)
            await asyncio.to_thread(self._write, document)
        return result

    async def replace(self, entries: Dict[str, Any]) -> None:
        def _replace(current: Dict[str, Any]) -> None:
            current.clear()
            current.update(entries)

        await self.update(_replace)

    async def clear(self) -> None:
        await self.update(lambda current: current.clear())

    async def get(self, key: str) -> Optional[Any]:
        return (await self.load()).get(key)
