"""Key-path JSON/blob store.

Everything the agent persists goes through this interface; user data lives
under ``users/{user_id}/...``. ``LocalStore`` keeps the tree on disk and
serialises read-modify-write cycles with an advisory file lock.
"""
from __future__ import annotations

import fcntl
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from autoapply.errors import NotFoundError, ValidationError
from autoapply.log import get_logger
from autoapply.retry import retry

log = get_logger(__name__)

_LOCK_SUFFIX = ".lock"
_TMP_PREFIX = ".tmp-"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonStore(ABC):
    @abstractmethod
    def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded document, or None when the key does not exist."""

    @abstractmethod
    def put_json(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def update_json(self, key: str, mutator: Callable[[Optional[Any]], Any]) -> Any:
        """Read-modify-write; ``mutator`` receives None for a missing key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        ...

    @abstractmethod
    def download_file(self, key: str) -> bytes:
        ...

    @abstractmethod
    def list_keys(self, prefix: str) -> list[str]:
        ...

    @abstractmethod
    def get_presigned_url(self, key: str, ttl_seconds: int = 3600) -> str:
        ...


def _lock(f, exclusive: bool = True) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def _is_missing(exc: BaseException) -> bool:
    return isinstance(exc, FileNotFoundError)


class LocalStore(JsonStore):
    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        key = key.strip("/")
        if not key or key.startswith(".") or ".." in key.split("/"):
            raise ValidationError(f"Invalid store key {key!r}")
        return self.root / key

    def _write_bytes(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @retry(max_attempts=3, base_delay=0.2, retryable=(OSError,), giveup=_is_missing)
    def _read_bytes(self, path: Path) -> bytes:
        return path.read_bytes()

    def get_json(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        raw = self._read_bytes(path)
        if not raw.strip():
            return None
        return json.loads(raw)

    def put_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, indent=2, default=_json_default).encode("utf-8")
        self._write_bytes(self._path(key), payload)

    def update_json(self, key: str, mutator: Callable[[Optional[Any]], Any]) -> Any:
        path = self._path(key)
        lock_path = path.with_name(path.name + _LOCK_SUFFIX)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(lock_path, "a", encoding="utf-8") as lf:
            _lock(lf)
            try:
                updated = mutator(self.get_json(key))
                self.put_json(key, updated)
            finally:
                _unlock(lf)
        return updated

    def delete(self, key: str) -> None:
        path = self._path(key)
        path.unlink(missing_ok=True)
        path.with_name(path.name + _LOCK_SUFFIX).unlink(missing_ok=True)

    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        self._write_bytes(self._path(key), data)
        log.debug("Stored %s (%s, %d bytes)", key, content_type, len(data))
        return key

    def download_file(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise NotFoundError(f"No object at {key}")
        return self._read_bytes(path)

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        for path in self.root.rglob("*"):
            if not path.is_file():
                continue
            if path.name.endswith(_LOCK_SUFFIX) or path.name.startswith(_TMP_PREFIX):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def get_presigned_url(self, key: str, ttl_seconds: int = 3600) -> str:
        path = self._path(key)
        if not path.exists():
            raise NotFoundError(f"No object at {key}")
        return f"{path.as_uri()}?{urlencode({'expires': int(time.time()) + ttl_seconds})}"


def user_key(user_id: str, *parts: str) -> str:
    return "/".join(("users", user_id) + parts)


def list_user_ids(store: JsonStore) -> list[str]:
    """Unique user ids, taken from the second path segment under ``users/``."""
    seen: dict[str, None] = {}
    for key in store.list_keys("users/"):
        segments = key.split("/")
        if len(segments) > 2 and segments[1]:
            seen.setdefault(segments[1], None)
    return list(seen)
