"""Saved story persistence on top of the preference store."""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator

from pydantic import ValidationError

from models import StoryList, StoryRecord
from storage.preferences import CorruptPreferencesError, PreferenceStore, PreferenceStoreError

logger = logging.getLogger(__name__)

STORIES_KEY = "saved_stories"
DATE_FORMAT = "%d/%m/%Y %H:%M"


class StoreError(Exception):
    """Base class for saved story failures."""


class CorruptStoreError(StoreError):
    """The stored story blob exists but cannot be decoded."""


class StoreUnavailableError(StoreError):
    """The preference file could not be read at all."""


class StoreWriteError(StoreError):
    """A save or delete could not be written."""


def serialize(records: list[StoryRecord]) -> str:
    """Encode *records* as the JSON array stored under :data:`STORIES_KEY`."""

    return StoryList.dump_json(records, by_alias=True).decode("utf-8")


def deserialize(blob: str | None) -> list[StoryRecord]:
    """Decode a stored blob. Absent or blank blobs yield an empty list."""

    if blob is None or not blob.strip():
        return []
    try:
        return StoryList.validate_json(blob)
    except ValidationError as exc:
        raise CorruptStoreError(str(exc)) from exc


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class StoryStore:
    """Keeps the saved stories as one serialized list.

    ``save`` and ``delete`` read the whole collection, change it and write it
    back. Both run under a lock so that writers sharing this instance are
    serialized; separate processes on the same file must not write at once.
    """

    def __init__(
        self,
        prefs: PreferenceStore,
        *,
        key: str = STORIES_KEY,
        title_prefix: str = "Masal",
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], int] = _now_millis,
    ) -> None:
        self.prefs = prefs
        self.key = key
        self.title_prefix = title_prefix
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.Lock()

    # Reading -------------------------------------------------------------
    def _load(self) -> list[StoryRecord]:
        try:
            blob = self.prefs.get_string(self.key)
        except CorruptPreferencesError as exc:
            raise CorruptStoreError(str(exc)) from exc
        except PreferenceStoreError as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return deserialize(blob)

    def list(self, strict: bool = False) -> list[StoryRecord]:
        """Return every saved story in insertion order.

        A corrupt blob or unreadable file is logged and reported as an empty
        collection unless *strict* is set, in which case the
        :class:`StoreError` propagates.
        """

        try:
            return self._load()
        except StoreError as exc:
            if strict:
                raise
            logger.warning("Ignoring unreadable saved stories: %s", exc)
            return []

    def get(self, story_id: int) -> StoryRecord | None:
        for record in self.list():
            if record.id == story_id:
                return record
        return None

    # Writing -------------------------------------------------------------
    @contextmanager
    def _updating(self, action: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except (OSError, PreferenceStoreError, StoreUnavailableError) as exc:
                logger.error("Could not %s: %s", action, exc)
                raise StoreWriteError(f"Could not {action}: {exc}") from exc

    def _load_for_update(self) -> list[StoryRecord]:
        try:
            return self._load()
        except CorruptStoreError as exc:
            logger.error("Saved stories are corrupt, starting a new list: %s", exc)
            self._preserve_corrupt_blob()
            return []

    def _preserve_corrupt_blob(self) -> None:
        try:
            raw = self.prefs.get_raw(self.key)
        except CorruptPreferencesError:
            path = self.prefs.path
            backup = path.with_name(path.name + ".corrupt")
            logger.error("Preference file %s is unusable, moved to %s", path, backup)
            path.replace(backup)
            return
        if raw is None:
            return
        if not isinstance(raw, str):
            raw = json.dumps(raw, ensure_ascii=False)
        self.prefs.put_string(f"{self.key}.corrupt", raw)

    def save(self, title: str, content: str, image_prompt: str = "") -> StoryRecord:
        """Create a story record and append it to the saved collection.

        Raises :class:`StoreWriteError` when the collection cannot be written.
        """

        date = self._clock().strftime(DATE_FORMAT)
        record = StoryRecord(
            id=self._id_factory(),
            title=title.strip() or f"{self.title_prefix} {date}",
            content=content,
            date=date,
            image_prompt=image_prompt,
        )
        with self._updating("save story"):
            records = self._load_for_update()
            records.append(record)
            self.prefs.put_string(self.key, serialize(records))
        logger.info("Saved story %s (%d total)", record.id, len(records))
        return record

    def delete(self, story_id: int) -> None:
        """Remove every record carrying *story_id*; unknown ids are ignored."""

        with self._updating("delete story"):
            records = self._load_for_update()
            remaining = [r for r in records if r.id != story_id]
            if len(remaining) == len(records):
                return
            self.prefs.put_string(self.key, serialize(remaining))
        logger.info("Deleted story %s", story_id)
