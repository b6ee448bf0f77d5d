"""Disk-backed cache store: one JSON file per key."""

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from pondus.cache.base import CacheEntry, CacheStats, CacheStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "pondus"


class DiskCache(CacheStore):
    """Persistent cache surviving across runs.

    Entry data must be JSON-serializable (raw API payloads are). Access
    order is tracked through file mtimes, so eviction removes the file that
    was read or written longest ago.
    """

    def __init__(
        self,
        cache_dir: Union[str, Path, None] = None,
        **kwargs,  # type: ignore[no-untyped-def]
    ) -> None:
        super().__init__(**kwargs)
        self.cache_dir = Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR
        self._stats = CacheStats()

    # ── File helpers ──────────────────────────────────────────────────────

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def _files(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return list(self.cache_dir.glob("*.json"))

    def _read(self, key: str) -> Optional[CacheEntry]:
        path = self._path_for(key)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if raw.get("key") != key:
                return None
            return CacheEntry.model_validate(raw["entry"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, ValidationError):
            logger.debug("discarding unreadable cache file %s", path)
            path.unlink(missing_ok=True)
            return None

    def _touch(self, key: str) -> None:
        try:
            os.utime(self._path_for(key))
        except FileNotFoundError:
            pass

    def _write(self, key: str, entry: CacheEntry) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        if not path.exists():
            files = self._files()
            overflow = len(files) - self.options.max_entries + 1
            if overflow > 0:
                for victim in sorted(files, key=lambda p: p.stat().st_mtime)[:overflow]:
                    victim.unlink(missing_ok=True)
                    logger.debug("disk cache evicted %s", victim.name)
        # Unique temp name per writer so concurrent sets of one key never share it
        with tempfile.NamedTemporaryFile(
            "w", dir=self.cache_dir, suffix=".tmp", delete=False, encoding="utf-8"
        ) as tmp:
            tmp.write(json.dumps({"key": key, "entry": entry.model_dump(mode="json")}))
        os.replace(tmp.name, path)

    def _remove(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def _clear(self) -> None:
        for path in self._files():
            path.unlink(missing_ok=True)

    # ── CacheStore ────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = await asyncio.to_thread(self._read, key)
        if entry is None:
            self._stats.misses += 1
            return None
        if self.is_dead(entry):
            await asyncio.to_thread(self._remove, key)
            self._stats.misses += 1
            return None
        await asyncio.to_thread(self._touch, key)
        self._stats.hits += 1
        return entry

    async def peek(self, key: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        await asyncio.to_thread(self._write, key, entry)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)
        self._stats = CacheStats()

    async def stats(self) -> CacheStats:
        files = await asyncio.to_thread(self._files)
        size = 0
        for path in files:
            try:
                size += path.stat().st_size
            except FileNotFoundError:
                continue
        return self._stats.model_copy(update={"entries": len(files), "size": size})
