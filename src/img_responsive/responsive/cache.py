"""Content-addressed cache of resized variants keyed by (source hash, width)."""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Set

logger = logging.getLogger(__name__)

__all__ = [
    "VariantCache",
    "VariantKey",
    "VariantRecord",
    "hash_source",
    "variant_filename",
]


def hash_source(source: Path | str) -> str:
    """Return the stable SHA-512 hex digest of a source path."""

    return hashlib.sha512(str(source).encode("utf-8")).hexdigest()


def variant_filename(source: Path | str, width: int) -> str:
    """Deterministic variant name ``<hash>_<width>w.<ext>`` for *source* at *width*."""

    extension = Path(source).suffix.lower().lstrip(".")
    return f"{hash_source(source)}_{int(width)}w.{extension}"


class VariantKey(NamedTuple):
    source_key: str
    width: int


@dataclass(frozen=True)
class VariantRecord:
    """A produced (or reused) variant and where the markup should point."""

    source_key: str
    width: int
    output_path: Path
    url: str


class VariantCache:
    """
    Map ``(source, width)`` to an already produced variant.

    Lookups fall back to the deterministic on-disk name so variants survive across
    runs; with ``overwrite`` set only variants recorded during this pass count.
    Per-key locks guarantee at most one resize per key even across worker threads.
    """

    def __init__(self, output_root: Path, relative_path: str, *, overwrite: bool = False) -> None:
        self.output_root = Path(output_root)
        self.relative_path = relative_path.rstrip("/")
        self.overwrite = overwrite
        self._records: Dict[VariantKey, VariantRecord] = {}
        self._locks: Dict[VariantKey, threading.Lock] = {}
        self._failed: Set[VariantKey] = set()
        self._guard = threading.Lock()

    def key_for(self, source: Path | str, width: int) -> VariantKey:
        return VariantKey(hash_source(source), int(width))

    def output_path_for(self, source: Path | str, width: int) -> Path:
        return self.output_root / variant_filename(source, width)

    def url_for(self, source: Path | str, width: int) -> str:
        return f"{self.relative_path}/{variant_filename(source, width)}"

    def lookup(self, source: Path | str, width: int) -> Optional[VariantRecord]:
        """Return the variant for *source* at *width* if it is already available."""

        key = self.key_for(source, width)
        with self._guard:
            record = self._records.get(key)
        if record is not None:
            return record
        if self.overwrite:
            return None
        output_path = self.output_path_for(source, width)
        if not output_path.is_file():
            return None
        record = VariantRecord(
            source_key=key.source_key,
            width=key.width,
            output_path=output_path,
            url=self.url_for(source, width),
        )
        logger.debug("Reusing variant on disk: %s", output_path)
        self.record(record)
        return record

    def record(self, record: VariantRecord) -> None:
        with self._guard:
            self._records[VariantKey(record.source_key, record.width)] = record

    def records(self) -> List[VariantRecord]:
        with self._guard:
            return list(self._records.values())

    def _lock_for(self, key: VariantKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get_or_create(
        self,
        source: Path | str,
        width: int,
        create: Callable[[Path], bool],
    ) -> Optional[VariantRecord]:
        """
        Return the cached variant or produce it with ``create(output_path)``.

        ``create`` runs under the key's lock and must return True on success.
        A key that failed once in this pass is not attempted again.
        """

        key = self.key_for(source, width)
        with self._lock_for(key):
            existing = self.lookup(source, width)
            if existing is not None:
                return existing
            with self._guard:
                if key in self._failed:
                    return None
            output_path = self.output_path_for(source, width)
            if not create(output_path):
                with self._guard:
                    self._failed.add(key)
                return None
            record = VariantRecord(
                source_key=key.source_key,
                width=key.width,
                output_path=output_path,
                url=self.url_for(source, width),
            )
            self.record(record)
            return record
