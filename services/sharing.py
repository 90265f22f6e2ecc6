"""Hand a story over to an external share target."""

from __future__ import annotations

import logging
from typing import Callable

from models import StoryRecord

logger = logging.getLogger(__name__)

SHARE_FAILED = "Sharing failed, please try again."


def share_text(record: StoryRecord) -> str:
    """Plain text payload for *record*: title, blank line, body."""

    return f"{record.title}\n\n{record.content}"


def share_story(
    record: StoryRecord,
    sink: Callable[[str], None],
    notify: Callable[[str], None] | None = None,
) -> bool:
    """Pass the story text to *sink*; failures become a notice."""

    try:
        sink(share_text(record))
    except Exception as exc:
        logger.error("Sharing story %s failed: %s", record.id, exc)
        if notify is not None:
            notify(SHARE_FAILED)
        return False
    return True
