"""Flat string key/value store kept in a single JSON file."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


class PreferenceStoreError(Exception):
    """Raised when the preference file cannot be read."""


class CorruptPreferencesError(PreferenceStoreError):
    """The preference file, or one value in it, has the wrong shape."""


class PreferenceStore:
    """Named string values persisted together in one JSON object.

    Every write rewrites the whole file through a temporary file and
    :func:`os.replace`, so readers never observe a half written file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptPreferencesError(f"Cannot decode {self.path}: {exc}") from exc
        except OSError as exc:
            raise PreferenceStoreError(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CorruptPreferencesError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.remove(tmp)
            except OSError:  # pragma: no cover - already moved or gone
                pass
            raise

    def get_raw(self, key: str) -> Any:
        """Return the decoded JSON value under *key* whatever its type."""
        return self._read().get(key)

    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self._read().get(key, default)
        if value is not None and not isinstance(value, str):
            raise CorruptPreferencesError(f"Value for {key!r} is not a string")
        return value

    def put_string(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
