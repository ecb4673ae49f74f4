"""In-process cache of recognition results.

Results are keyed by engine and by a fingerprint of the source file, so
the same image recognized twice by the same engine is only sent to
Tesseract once. The cache is safe to share between threads.
"""

import hashlib
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from src.utils.logger import get_logger

if TYPE_CHECKING:
    from src.ocr.base import RecognitionResult

logger = get_logger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class SourceFingerprint:
    """Content-addressed identity of an input file."""

    sha256: str
    mtime_ns: int
    size: int

    @classmethod
    def of(cls, path: Path) -> "SourceFingerprint":
        """Fingerprint a file from its content hash, mtime, and size.

        Args:
            path: File to fingerprint.

        Returns:
            The file's fingerprint.

        Raises:
            OSError: If the file cannot be read.
        """
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        stat = os.stat(path)
        return cls(
            sha256=digest.hexdigest(), mtime_ns=stat.st_mtime_ns, size=stat.st_size
        )


CacheKey = tuple[str, SourceFingerprint]


class RecognitionCache:
    """Thread-safe map from ``(engine_id, fingerprint)`` to a recognition result.

    Only successful results should be stored. Entries live as long as the
    cache instance.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, "RecognitionResult"] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(
        self, engine_id: str, fingerprint: SourceFingerprint
    ) -> "RecognitionResult | None":
        """Look up a cached result, counting the hit or miss.

        Args:
            engine_id: Engine that produced the result.
            fingerprint: Fingerprint of the recognized file.

        Returns:
            The cached result, or ``None``.
        """
        with self._lock:
            result = self._entries.get((engine_id, fingerprint))
            if result is None:
                self.misses += 1
            else:
                self.hits += 1
        return result

    def put_if_absent(
        self,
        engine_id: str,
        fingerprint: SourceFingerprint,
        result: "RecognitionResult",
    ) -> "RecognitionResult":
        """Store a result unless another thread already stored one.

        Args:
            engine_id: Engine that produced the result.
            fingerprint: Fingerprint of the recognized file.
            result: Result to store.

        Returns:
            The result held by the cache after the call.
        """
        with self._lock:
            existing = self._entries.setdefault((engine_id, fingerprint), result)
        if existing is result:
            logger.debug("Cached %s result for %s", engine_id, fingerprint.sha256[:12])
        return existing

    def clear(self) -> None:
        """Drop all entries and reset the counters."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, int]:
        """Return entry count and hit/miss counters."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
            }
