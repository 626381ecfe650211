"""Content-addressed artifact store (one instance per cache tier).

Artifacts live under ``<directory>/<md5(key)><ext>``; the tier's
``index.json`` is the only record of what is cached. Reads are
side-effect free: an expired entry, or one whose file has gone missing,
is reported as a miss and left for the next write to clean up.

Usage:
    store = ArtifactStore(Path("~/.cache/techwire/images"), ext=".jpg")
    path = await store.put("Rust 2.0", jpeg_bytes, {"original_url": url})
    hit = await store.get("rust 2.0")
"""
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import os
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Union

from techwire.expiry import DEFAULT_TTL, ExpiryPolicy
from techwire.index import INDEX_FILENAME, CacheIndex
from techwire.models import Artifact, CacheEntry, CacheStats
from techwire.utils import artifact_name, normalize_key

logger = logging.getLogger(__name__)

ProducerResult = Union[bytes, Tuple[bytes, Dict[str, Any]]]


class ArtifactStore:
    def __init__(
        self,
        directory: Path,
        ext: str = ".bin",
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
        name: str = "",
        index: Optional[CacheIndex] = None,
    ):
        self.directory = Path(directory).expanduser()
        self.ext = ext
        self.clock = clock
        self.name = name or self.directory.name
        self.expiry = ExpiryPolicy(ttl=ttl, clock=clock)
        self.index = index or CacheIndex(self.directory, clock=clock)
        self._tmp_counter = itertools.count()

    @staticmethod
    def normalize(key: str) -> str:
        return normalize_key(key)

    def path_for(self, key: str) -> Path:
        """Where the artifact for ``key`` lives (whether or not it exists)."""
        return self.directory / artifact_name(normalize_key(key), self.ext)

    # ------------------------------------------------------------------
    # Reads (never mutate the index or the filesystem)
    # ------------------------------------------------------------------

    async def _live_entry(self, key: str) -> Optional[CacheEntry]:
        k = normalize_key(key)
        if not k:
            return None
        entries = await self.index.read()
        entry = entries.get(k)
        if entry is None:
            return None
        if self.expiry.is_expired(entry):
            logger.debug(f"[Store:{self.name}] Expired: {k!r}")
            return None
        return entry

    async def locate(self, key: str) -> Optional[Path]:
        """Return the artifact path on a live hit, else ``None``."""
        entry = await self._live_entry(key)
        if entry is None:
            return None
        path = self.directory / entry.filename
        if not await asyncio.to_thread(path.is_file):
            logger.debug(f"[Store:{self.name}] Indexed file missing: {path.name}")
            return None
        return path

    async def get(self, key: str) -> Optional[Artifact]:
        """Return the cached artifact on a live hit, else ``None``."""
        entry = await self._live_entry(key)
        if entry is None:
            return None
        path = self.directory / entry.filename
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            logger.debug(f"[Store:{self.name}] Indexed file missing: {path.name}")
            return None
        except OSError as e:
            logger.warning(f"[Store:{self.name}] Failed to read {path.name}: {e}")
            return None
        return Artifact(key=entry.key, data=data, location=path, entry=entry)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write_artifact(self, path: Path, payload: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}.{next(self._tmp_counter)}")
        try:
            with open(tmp, "wb") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            raise

    def _unlink_all(self, filenames: Iterable[str]) -> int:
        removed = 0
        for filename in filenames:
            try:
                (self.directory / filename).unlink()
                removed += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"[Store:{self.name}] Could not delete {filename}: {e}")
        return removed

    def _drop_missing(self, entries: Dict[str, CacheEntry]) -> int:
        missing = [k for k, e in entries.items() if not (self.directory / e.filename).is_file()]
        for k in missing:
            del entries[k]
        return len(missing)

    async def put(self, key: str, payload: bytes, source_meta: Optional[Dict[str, Any]] = None) -> Path:
        """Persist ``payload`` under ``key`` and record it in the index.

        The artifact is written, and expired or dangling entries are swept
        with their files deleted, inside the same locked index update, so a
        concurrent writer never loses the file it just recorded. Raises
        ``StorageError`` on any disk failure.
        """
        k = normalize_key(key)
        if not k:
            raise ValueError("cache key must not be empty")
        filename = artifact_name(k, self.ext)
        path = self.directory / filename
        now = self.clock()
        entry = CacheEntry(key=k, filename=filename, created_at=now, source_meta=dict(source_meta or {}))

        def record(entries: Dict[str, CacheEntry]):
            self._write_artifact(path, payload)
            expired = self.expiry.sweep(entries, now)
            healed = self._drop_missing(entries)
            if healed:
                logger.info(f"[Store:{self.name}] Dropped {healed} entries with missing files")
            entries[k] = entry
            live = {e.filename for e in entries.values()}
            self._unlink_all(e.filename for e in expired if e.filename not in live)

        await self.index.update(record)
        logger.debug(f"[Store:{self.name}] Cached {k!r} -> {filename} ({len(payload)} bytes)")
        return path

    async def get_or_create_artifact(
        self,
        key: str,
        producer: Callable[[], Union[ProducerResult, Awaitable[ProducerResult]]],
    ) -> Path:
        """Return the cached artifact location, producing and storing it on a miss.

        ``producer`` returns the payload bytes, or ``(bytes, source_meta)``.
        Errors from ``producer`` and ``StorageError`` propagate.
        """
        hit = await self.locate(key)
        if hit is not None:
            return hit
        produced = producer()
        if inspect.isawaitable(produced):
            produced = await produced
        if isinstance(produced, tuple):
            payload, meta = produced
        else:
            payload, meta = produced, {}
        return await self.put(key, payload, meta)

    async def invalidate(self, key: str) -> bool:
        """Remove one entry and its artifact. Returns whether an entry existed."""
        k = normalize_key(key)

        def drop(entries: Dict[str, CacheEntry]):
            removed = entries.pop(k, None)
            self._unlink_all([artifact_name(k, self.ext)])
            return removed

        removed = await self.index.update(drop)
        if removed is not None:
            logger.info(f"[Store:{self.name}] Invalidated {k!r}")
        return removed is not None

    def _artifact_files(self):
        if not self.directory.is_dir():
            return []
        return [
            p for p in self.directory.iterdir()
            if p.is_file() and not p.name.startswith(INDEX_FILENAME)
        ]

    async def clear(self) -> int:
        """Remove every entry and every artifact file. Returns files removed."""
        def wipe(entries: Dict[str, CacheEntry]) -> int:
            entries.clear()
            return self._unlink_all([p.name for p in self._artifact_files()])

        removed = await self.index.update(wipe)
        logger.info(f"[Store:{self.name}] Cleared {removed} artifact(s)")
        return removed

    async def clean(self) -> int:
        """Maintenance pass: sweep expired and dangling entries, delete orphan files.

        Runs as one locked index update. Returns the number of entries plus
        files removed.
        """
        now = self.clock()

        def sweep(entries: Dict[str, CacheEntry]):
            expired = self.expiry.sweep(entries, now)
            healed = self._drop_missing(entries)
            live = {e.filename for e in entries.values()}
            expired_files = [e.filename for e in expired if e.filename not in live]
            orphans = [
                p.name for p in self._artifact_files()
                if p.name not in live and p.name not in expired_files and p.suffix == self.ext
            ]
            deleted = self._unlink_all(expired_files + orphans)
            return len(expired), healed, len(orphans), deleted

        expired, healed, orphans, deleted = await self.index.update(sweep)
        logger.info(
            f"[Store:{self.name}] Clean: {expired} expired, {healed} dangling, "
            f"{orphans} orphan file(s) ({deleted} files deleted)"
        )
        return expired + healed + orphans

    async def stats(self) -> CacheStats:
        entries = await self.index.load()
        now = self.clock()

        def measure() -> int:
            total = 0
            for entry in entries.values():
                try:
                    total += (self.directory / entry.filename).stat().st_size
                except OSError:
                    pass
            try:
                total += self.index.path.stat().st_size
            except OSError:
                pass
            return total

        size = await asyncio.to_thread(measure)
        expired = sum(1 for e in entries.values() if self.expiry.is_expired(e, now))
        return CacheStats(count=len(entries), total_approx_size=size, expired_count=expired)
