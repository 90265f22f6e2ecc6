"""Data models used by the TaleTeller application."""

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class StoryRecord(BaseModel):
    """A saved story as it is persisted in the preference store."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    title: str
    content: str
    date: str
    image_prompt: str = Field(default="", alias="imagePrompt")

    def preview(self, limit: int = 100) -> str:
        """Return the start of the story for list views."""
        if len(self.content) <= limit:
            return self.content
        return self.content[:limit] + "..."


StoryList = TypeAdapter(list[StoryRecord])


def newest_first(records: list[StoryRecord]) -> list[StoryRecord]:
    """Return *records* in display order, most recent first."""
    return list(reversed(records))
