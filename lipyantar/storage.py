"""Durable key/value storage namespaces."""

from __future__ import annotations

import os
import pathlib
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .errors import StorageError, StorageQuotaExceededError, StorageReadError

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024

SYNC_NAMESPACE = "sync"
LOCAL_NAMESPACE = "local"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _encoded_size(value: str) -> int:
    return len(value.encode("utf-8"))


class KeyValueStorage(ABC):
    """String key/value store with a size quota."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or ``None`` when the key is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Persist a value, raising ``StorageQuotaExceededError`` when full."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""


class MemoryStorage(KeyValueStorage):
    """In-process storage, mainly for tests and ephemeral runs."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(
                _encoded_size(item)
                for item_key, item in self._items.items()
                if item_key != key
            )
            if used + _encoded_size(value) > self.quota_bytes:
                raise StorageQuotaExceededError(
                    f"Storage quota of {self.quota_bytes} bytes exceeded writing '{key}'."
                )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class FileStorage(KeyValueStorage):
    """One file per key inside a namespace directory."""

    SUFFIX = ".json"

    def __init__(
        self,
        directory: pathlib.Path,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
    ) -> None:
        self.directory = pathlib.Path(directory)
        self.quota_bytes = quota_bytes

    def _path_for(self, key: str) -> pathlib.Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key) or "_"
        return self.directory / f"{safe}{self.SUFFIX}"

    def _used_bytes(self, exclude: pathlib.Path) -> int:
        if not self.directory.exists():
            return 0
        total = 0
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            if path == exclude:
                continue
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return total

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageReadError(f"Could not read '{key}' from {path}: {exc}") from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        if self._used_bytes(path) + _encoded_size(value) > self.quota_bytes:
            raise StorageQuotaExceededError(
                f"Storage quota of {self.quota_bytes} bytes exceeded writing '{key}'."
            )
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(f"Could not write '{key}' to {path}: {exc}") from exc

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Could not remove '{key}' at {path}: {exc}") from exc


def open_namespace(
    root: pathlib.Path,
    name: str,
    quota_bytes: int = DEFAULT_QUOTA_BYTES,
) -> FileStorage:
    """Return the file storage for one namespace under ``root``."""

    return FileStorage(pathlib.Path(root).expanduser() / name, quota_bytes=quota_bytes)
