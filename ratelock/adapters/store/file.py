"""File-based counter store.

Each key maps to one file under a shared directory, so processes on the same
host (or a shared volume) see the same limiter state. Serializing those
processes needs a lock provider that spans them (the redis lock); the
in-memory lock only serializes threads of one process. Writes go through a
temporary file and ``os.replace`` so a crashed writer never leaves a
half-written state file behind.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path

from ratelock.adapters.store.base import AbstractCounterStore
from ratelock.core.errors import StoreError

logger = logging.getLogger(__name__)


class FileCounterStore(AbstractCounterStore):
    """Store limiter state as one file per key.

    Args:
        directory: Directory holding the state files; created on first use.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Path:
        # Keys may contain ':' or '/', so hash them into safe file names.
        digest = hashlib.sha256(key.encode()).hexdigest()[:32]
        return self._directory / f"{digest}.state"

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error(
                "store.read_failed",
                extra={"backend": "file", "store_key": key, "error_msg": str(exc)},
            )
            raise StoreError(
                "Failed to read limiter state file",
                details={"backend": "file", "store_key": key},
            ) from exc

    def put(self, key: str, value: bytes) -> None:
        path = self._path_for(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error(
                "store.write_failed",
                extra={"backend": "file", "store_key": key, "error_msg": str(exc)},
            )
            raise StoreError(
                "Failed to write limiter state file",
                details={"backend": "file", "store_key": key},
            ) from exc
