from __future__ import annotations

from pathlib import Path
from typing import Protocol

from docqa.services.qa.errors import ObjectNotFound, StorageUnavailable


class ObjectStorage(Protocol):
    def get(self, key: str) -> bytes: ...

    def put(self, key: str, data: bytes, content_type: str) -> None: ...


class LocalObjectStorage:
    """Filesystem-backed object storage; keys are paths relative to the root."""

    def __init__(self, root_dir: Path) -> None:
        self._root_dir = root_dir

    def _resolve(self, key: str) -> Path:
        root = self._root_dir.resolve()
        try:
            path = (root / key.lstrip("/")).resolve()
        except (OSError, ValueError) as exc:
            raise ObjectNotFound(f"Invalid object key {key!r}: {exc}") from exc
        if root != path and root not in path.parents:
            raise ObjectNotFound(f"Object key escapes storage root: {key}")
        return path

    def get(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFound(f"Object not found: {key}") from exc
        except ValueError as exc:
            raise ObjectNotFound(f"Invalid object key {key!r}: {exc}") from exc
        except OSError as exc:
            raise StorageUnavailable(f"Failed to read object {key}: {exc}") from exc

    def put(self, key: str, data: bytes, content_type: str) -> None:
        del content_type
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageUnavailable(f"Failed to write object {key}: {exc}") from exc
