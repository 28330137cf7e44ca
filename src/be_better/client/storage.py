"""Durable key/value storage for the client.

The local ledger and the session token are both kept here as strings. Two
backends are provided: a JSON file for real use and an in-memory dict for
tests and throwaway sessions. Both raise ``StorageError`` on failure; it is
up to callers to decide whether a failure is fatal (for the ledger it never
is).
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol


class StorageError(RuntimeError):
    """Durable read or write failed."""


class Storage(Protocol):
    """Interface every storage backend implements."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Storage backed by a single JSON object on disk.

    Every ``set`` rewrites the whole file through a temporary file and
    ``os.replace`` so a crash mid-write leaves the previous contents intact.

    Args:
        path: File to read and write. Parent directories are created on the
            first write.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read_all(self, *, strict: bool = True) -> dict[str, str]:
        """Load the whole file. With ``strict=False`` a corrupt file reads as empty."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageError(f"Could not read {self.path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except ValueError as exc:
            if not strict:
                return {}
            raise StorageError(f"Corrupt storage file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            if not strict:
                return {}
            raise StorageError(f"Corrupt storage file {self.path}: expected an object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Could not write {self.path}: {exc}") from exc

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        # A corrupt file is replaced rather than blocking every later write
        data = self._read_all(strict=False)
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all(strict=False)
        if data.pop(key, None) is not None:
            self._write_all(data)
