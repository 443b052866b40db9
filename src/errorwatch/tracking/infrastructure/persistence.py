"""
Snapshot Persistence Adapters
==============================

Concrete implementations of IPersistenceAdapter.
"""

import asyncio
import os
from pathlib import Path
from typing import Dict, Optional

from errorwatch.core import PersistenceException
from errorwatch.shared.infrastructure.logging import get_logger
from errorwatch.tracking.application.services import IPersistenceAdapter

logger = get_logger(__name__)


class InMemorySnapshotStore(IPersistenceAdapter):
    """Process-local store; state is lost on exit."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def save(self, key: str, blob: str) -> bool:
        self._data[key] = blob
        return True

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)


class JSONFileSnapshotStore(IPersistenceAdapter):
    """
    One JSON file per key inside ``directory``.

    Writes go to a temporary file that atomically replaces the target, so a
    crash mid-write never leaves a truncated snapshot behind. File I/O runs
    in the default executor to keep the event loop responsive. Bytes that
    are not valid UTF-8 are replaced on read, leaving the snapshot check to
    reject the content.
    """

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self._directory / f"{safe_key}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise PersistenceException(f"Cannot read snapshot {path}", {"error": str(e)}) from e

    def _write(self, key: str, blob: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(blob, encoding="utf-8")
        os.replace(tmp_path, path)

    async def load(self, key: str) -> Optional[str]:
        if self._directory.exists() and not self._directory.is_dir():
            raise PersistenceException(f"Snapshot path is not a directory: {self._directory}")
        return await asyncio.get_running_loop().run_in_executor(None, self._read, key)

    async def save(self, key: str, blob: str) -> bool:
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._write, key, blob)
            return True
        except OSError as e:
            logger.error(
                "Failed to write snapshot file",
                extra={"key": key, "directory": str(self._directory), "error": str(e)}
            )
            return False
