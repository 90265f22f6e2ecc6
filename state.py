from __future__ import annotations

"""Story composition session state."""

import threading
from dataclasses import dataclass, field
from typing import List


@dataclass
class StorySession:
    """Keywords and the latest generated story on the compose screen."""

    keywords: List[str] = field(default_factory=list)
    story: str = ""
    image_prompt: str = ""
    busy: bool = False

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def add_keyword(self, word: str) -> bool:
        word = word.strip()
        if not word:
            return False
        self.keywords.append(word)
        return True

    def remove_keyword(self, word: str) -> None:
        self.keywords = [k for k in self.keywords if k != word]

    def default_title(self, prefix: str = "Masal") -> str:
        """Title used when a generated story is saved."""
        return f"{prefix} {', '.join(self.keywords)}".strip()

    def begin_generation(self) -> bool:
        """Mark a generation as in flight; ``False`` if one already is."""
        with self._lock:
            if self.busy:
                return False
            self.busy = True
            return True

    def end_generation(self, story: str = "", image_prompt: str = "") -> None:
        with self._lock:
            self.story = story
            self.image_prompt = image_prompt
            self.busy = False
