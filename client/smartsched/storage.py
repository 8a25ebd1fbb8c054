"""
Durable key-value storage for the session credential.

Only get/set/clear semantics are offered. The file store rewrites the whole
document through a temporary file so a crash never leaves half a session
on disk.
"""
from __future__ import annotations
import os
import threading
from pathlib import Path
from typing import Any, Mapping

import orjson

TOKEN_KEY = "token"
USER_KEY = "user"


class MemoryCredentialStore:
    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def update(self, values: Mapping[str, Any]) -> None:
        self._data.update(values)

    def clear(self) -> None:
        self._data.clear()


class FileCredentialStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        data = orjson.loads(self.path.read_bytes())
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected credential document in {self.path}")
        return data

    def _write(self, data: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(orjson.dumps(dict(data), option=orjson.OPT_INDENT_2))
        os.replace(tmp, self.path)
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            pass  # best effort on filesystems without POSIX modes

    def get(self, key: str) -> Any:
        """Raises ValueError when the file exists but cannot be parsed."""
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            try:
                data = self._read()
            except ValueError:
                data = {}
            data.update(values)
            self._write(data)

    def clear(self) -> None:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
