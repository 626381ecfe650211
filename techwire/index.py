"""Persistent key -> CacheEntry index, one JSON document per cache tier.

Writes go to a temporary file in the same directory and are renamed over
``index.json``, so a reader sees either the old or the new document, never
a truncated one. Writers are serialized by an ``asyncio.Lock`` inside the
process and by an ``index.json.lock`` sentinel file across processes; a
writer that finds the sentinel backs off and retries.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from techwire.errors import StorageError
from techwire.models import CacheEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

INDEX_FILENAME = "index.json"
MIRROR_TTL = 300  # 5 minutes


class CacheIndex:
    def __init__(
        self,
        directory: Path,
        filename: str = INDEX_FILENAME,
        clock: Callable[[], float] = time.time,
        mirror_ttl: float = MIRROR_TTL,
        retry_delay: float = 0.1,
        max_attempts: int = 50,
        stale_lock_after: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.directory = Path(directory).expanduser()
        self.path = self.directory / filename
        self.lock_path = self.directory / f"{filename}.lock"
        self.clock = clock
        self.mirror_ttl = mirror_ttl
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self.stale_lock_after = stale_lock_after
        self._sleep = sleep
        # One asyncio.Lock per event loop; recreated when the index is used from a new loop
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._tmp_counter = itertools.count()
        self._mirror: Optional[Dict[str, CacheEntry]] = None
        self._mirror_at = 0.0

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _load_sync(self) -> Dict[str, CacheEntry]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"[Index] Unreadable index {self.path}, treating as empty: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"[Index] Index {self.path} is not a mapping, treating as empty")
            return {}

        entries: Dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry.from_dict(key, value)
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"[Index] Dropping bad entry {key!r}: {e}")
        return entries

    async def load(self) -> Dict[str, CacheEntry]:
        """Read the on-disk index. Returns an empty mapping on any failure."""
        return await asyncio.to_thread(self._load_sync)

    async def read(self) -> Dict[str, CacheEntry]:
        """Read through the in-memory mirror (refreshed every ``mirror_ttl`` seconds)."""
        now = self.clock()
        if self._mirror is not None and (now - self._mirror_at) < self.mirror_ttl:
            return dict(self._mirror)
        entries = await self.load()
        self._set_mirror(entries)
        return dict(entries)

    def invalidate_mirror(self) -> None:
        self._mirror = None
        self._mirror_at = 0.0

    def _set_mirror(self, entries: Dict[str, CacheEntry]) -> None:
        self._mirror = dict(entries)
        self._mirror_at = self.clock()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _write_sync(self, entries: Dict[str, CacheEntry]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = self.directory / f"{self.path.name}.tmp.{os.getpid()}.{next(self._tmp_counter)}"
        payload = {key: entry.to_dict() for key, entry in sorted(entries.items())}
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            raise

    def _try_create_lock(self) -> bool:
        self.directory.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()} {time.time()}")
        return True

    def _lock_is_stale(self) -> bool:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return False
        return age > self.stale_lock_after

    def _release_lock(self) -> None:
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass

    def _loop_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _acquire_file_lock(self) -> None:
        for attempt in range(self.max_attempts):
            try:
                if await asyncio.to_thread(self._try_create_lock):
                    return
            except OSError as e:
                raise StorageError(f"cannot create lock {self.lock_path}: {e}") from e
            if await asyncio.to_thread(self._lock_is_stale):
                logger.warning(f"[Index] Removing abandoned lock {self.lock_path}")
                await asyncio.to_thread(self._release_lock)
                continue
            logger.debug(f"[Index] {self.lock_path.name} held, retry {attempt + 1}/{self.max_attempts}")
            await self._sleep(self.retry_delay)
        raise StorageError(f"timed out waiting for {self.lock_path}")

    async def save(self, entries: Dict[str, CacheEntry]) -> None:
        """Atomically replace the whole index with ``entries``."""
        def replace(current: Dict[str, CacheEntry]) -> None:
            current.clear()
            current.update(entries)

        await self.update(replace)

    async def update(self, mutator: Callable[[Dict[str, CacheEntry]], T]) -> T:
        """Load, mutate and save the index as one locked step.

        ``mutator`` receives the freshly loaded on-disk mapping and edits it
        in place; its return value is passed back to the caller.
        """
        def locked_update():
            entries = self._load_sync()
            result = mutator(entries)
            self._write_sync(entries)
            return entries, result

        async with self._loop_lock():
            await self._acquire_file_lock()
            try:
                entries, result = await asyncio.to_thread(locked_update)
            except OSError as e:
                self.invalidate_mirror()
                raise StorageError(f"failed to write {self.path}: {e}") from e
            except BaseException:
                self.invalidate_mirror()
                raise
            finally:
                await asyncio.to_thread(self._release_lock)
            self._set_mirror(entries)
            return result
