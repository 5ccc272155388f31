"""Engine binary cache with single-flight acquisition."""

from __future__ import annotations

import hashlib
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path

from fripack.errors import BinaryNotFoundError
from fripack.fetch import Fetcher
from fripack.models import CachedBinary, EngineBinaryKey
from fripack.observability import StructuredLogger
from fripack.policy import Policy

CACHED_SUFFIXES = (".so", ".apk")


@dataclass(frozen=True, slots=True)
class CacheStats:
    file_count: int
    total_size: int
    files: tuple[Path, ...]


@dataclass(slots=True)
class BinaryCache:
    """Owns every engine binary used during one invocation.

    The first caller for a key performs the lookup or download; concurrent
    callers for the same key wait on that call's outcome, failures included.
    Entries are never modified once published.
    """

    root: Path
    fetcher: Fetcher | None = None
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _flights: dict[EngineBinaryKey, Future[CachedBinary]] = field(
        default_factory=dict, init=False, repr=False
    )

    def acquire(self, key: EngineBinaryKey) -> CachedBinary:
        with self._lock:
            flight = self._flights.get(key)
            owner = flight is None
            if flight is None:
                flight = Future()
                self._flights[key] = flight
        if owner:
            try:
                flight.set_result(self._locate(key))
            except BaseException as exc:
                flight.set_exception(exc)
        return flight.result()

    def adopt(self, key: EngineBinaryKey, path: Path) -> CachedBinary:
        """Use a local file in place of the cached binary for *key*."""
        if not path.is_file():
            raise BinaryNotFoundError(
                "Override prebuilt file does not exist.",
                hint="Fix `overridePrebuildFile` or remove it to use the release binary.",
                context={**key.describe(), "path": str(path)},
            )
        self.logger.log(
            operation="binary_override",
            target=None,
            phase="acquire",
            builder=None,
            message=f"Using override prebuilt file {path}.",
            extra=key.describe(),
        )
        return _describe(key, path)

    def path_for(self, key: EngineBinaryKey) -> Path:
        return self.root / key.cache_filename

    def cached_files(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(
            path
            for path in self.root.iterdir()
            if path.is_file() and path.suffix in CACHED_SUFFIXES
        )

    def stats(self) -> CacheStats:
        files = tuple(self.cached_files())
        return CacheStats(
            file_count=len(files),
            total_size=sum(path.stat().st_size for path in files),
            files=files,
        )

    def clear(self) -> int:
        removed = 0
        for path in self.cached_files():
            path.unlink(missing_ok=True)
            removed += 1
        with self._lock:
            self._flights = {
                key: flight for key, flight in self._flights.items() if not flight.done()
            }
        return removed

    def _locate(self, key: EngineBinaryKey) -> CachedBinary:
        path = self.path_for(key)
        if path.is_file():
            self.logger.log(
                operation="binary_cache_hit",
                target=None,
                phase="acquire",
                builder=None,
                message=f"Loading engine binary from cache: {path}",
                extra=key.describe(),
            )
            return _describe(key, path)

        if self.fetcher is None or self.policy.offline:
            raise BinaryNotFoundError(
                "Engine binary is not cached and downloads are disabled.",
                hint="Run once without --offline, or set `overridePrebuildFile`.",
                context={**key.describe(), "cache": str(path)},
            )

        self.logger.log(
            operation="binary_download",
            target=None,
            phase="acquire",
            builder=None,
            message=f"Downloading engine binary {key.cache_filename}.",
            extra=key.describe(),
        )
        self.root.mkdir(parents=True, exist_ok=True)
        fetched = self.fetcher.fetch(key, path)
        return _describe(key, fetched)


def _describe(key: EngineBinaryKey, path: Path) -> CachedBinary:
    payload = path.read_bytes()
    return CachedBinary(
        key=key,
        path=path,
        sha256=hashlib.sha256(payload).hexdigest(),
        size=len(payload),
    )
