"""Two-tier summary cache: an in-process map backed by one JSON file per entry.

Entries are keyed by (method, path, hash of the endpoint's code snippet), so
editing the code around a route changes its key and the old summary is never
served for it. Expired entries are purged lazily when they are read.
"""

import hashlib
import json
import os
import shutil
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

import xxhash

from restsum.exceptions import CacheError
from restsum.logger import get_logger
from restsum.models import Endpoint

logger = get_logger()

DEFAULT_EXPIRATION = timedelta(hours=24)


def default_cache_dir() -> Path:
    return Path.home() / ".restsum" / "cache"


def content_hash(text: str) -> str:
    """Hash an endpoint's code snippet."""
    return xxhash.xxh64(text.encode("utf-8")).hexdigest()


def cache_key(method: str, path: str, code_hash: str) -> str:
    """Stable key for a (method, path, code hash) triple."""
    return hashlib.sha256(f"{method}:{path}:{code_hash}".encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    summary: str
    timestamp: float

    def to_dict(self) -> Dict[str, object]:
        return {"summary": self.summary, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "CacheEntry":
        summary = data["summary"]
        if not isinstance(summary, str):
            raise ValueError("summary must be a string")
        return cls(summary=summary, timestamp=float(data["timestamp"]))


class ReadWriteLock:
    """Lets any number of readers in at once, or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class ResultCache:
    """Cache of generated endpoint summaries.

    Lookups check the in-process map first, then the on-disk entry, which is
    promoted into the map on a hit. Writes go to disk first so that a crash
    after the write loses nothing.

    The map is shared between worker threads and guarded by a
    ``ReadWriteLock``. Disk entries are independent files, so distinct keys
    never contend.
    """

    def __init__(
        self,
        directory: Optional[Path] = None,
        expiration: timedelta = DEFAULT_EXPIRATION,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory) if directory else default_cache_dir()
        self.expiration = expiration
        self._clock = clock
        self._memory: Dict[str, CacheEntry] = {}
        self._lock = ReadWriteLock()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"Could not initialize cache at {self.directory}: {e}") from e

    def _entry_path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self.expiration.total_seconds()

    def lookup(self, method: str, path: str, code_hash: str) -> Optional[str]:
        """Return the cached summary, or None on a miss or expired entry."""
        key = cache_key(method, path, code_hash)

        with self._lock.read():
            entry = self._memory.get(key)

        if entry is not None:
            if not self._expired(entry):
                return entry.summary
            with self._lock.write():
                if self._memory.get(key) is entry:
                    del self._memory[key]

        entry = self._read_entry(key)
        if entry is None:
            return None

        if self._expired(entry):
            self._remove_entry(key)
            return None

        with self._lock.write():
            self._memory[key] = entry
        return entry.summary

    def store(self, method: str, path: str, code_hash: str, summary: str) -> None:
        """Persist a summary, then record it in memory.

        Raises:
            CacheError: if the entry could not be written to disk.
        """
        key = cache_key(method, path, code_hash)
        entry = CacheEntry(summary=summary, timestamp=self._clock())
        self._write_entry(key, entry)
        with self._lock.write():
            self._memory[key] = entry

    def lookup_endpoint(self, endpoint: Endpoint) -> Optional[str]:
        return self.lookup(endpoint.method, endpoint.path, content_hash(endpoint.raw_code))

    def store_endpoint(self, endpoint: Endpoint) -> None:
        self.store(
            endpoint.method, endpoint.path, content_hash(endpoint.raw_code), endpoint.summary
        )

    def clear(self) -> None:
        """Drop every entry, in memory and on disk."""
        with self._lock.write():
            self._memory.clear()
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheError(f"Could not clear cache at {self.directory}: {e}") from e
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"Could not recreate cache at {self.directory}: {e}") from e

    def _read_entry(self, key: str) -> Optional[CacheEntry]:
        entry_path = self._entry_path(key)
        try:
            with open(entry_path, encoding="utf-8") as f:
                data = json.load(f)
            return CacheEntry.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding corrupt cache entry {entry_path.name}: {e}")
            self._remove_entry(key)
            return None

    def _write_entry(self, key: str, entry: CacheEntry) -> None:
        # Write to a temp file in the same directory and rename it into place
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entry.to_dict(), f)
                os.replace(tmp_name, self._entry_path(key))
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as e:
            raise CacheError(f"Could not write cache entry {key}: {e}") from e

    def _remove_entry(self, key: str) -> None:
        try:
            self._entry_path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove cache entry {key}: {e}")
