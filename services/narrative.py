"""Story prompt construction and generation through Gemini."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal

import genai_api as ga
from utils import clean_unicode, get_response_tokens

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"

_STORY_PROMPTS = {
    "tr": {
        "intro": "Çocuklar için eğlenceli, öğretici ve yaratıcı bir masal yaz. ",
        "keywords": "Şu kelimeleri doğal bir şekilde masala dahil et: {keywords}. ",
        "original": "Özgün bir masal oluştur. ",
        "outro": (
            "Masalın içinde macera, dostluk ve anlamlı bir öğüt olsun. "
            "Hikaye kısa, akıcı ve çocukların ilgisini çekecek şekilde yazılsın."
        ),
        "image": "{story}\n\nBuradaki masalı anlatan bir resim oluşturmam için prompt oluştur.",
    },
    "en": {
        "intro": "Write a fun, educational and creative fairy tale for children. ",
        "keywords": "Weave these words naturally into the tale: {keywords}. ",
        "original": "Make up an original tale. ",
        "outro": (
            "The tale should contain adventure, friendship and a meaningful lesson. "
            "Keep it short, fluent and engaging for children."
        ),
        "image": "{story}\n\nWrite a prompt I can use to generate a picture illustrating this tale.",
    },
}


def _templates(language: str) -> dict[str, str]:
    return _STORY_PROMPTS.get(language, _STORY_PROMPTS["tr"])


def build_story_prompt(keywords: list[str], language: str = "tr") -> str:
    """Create the story request for *keywords*."""

    t = _templates(language)
    joined = ", ".join(k.strip() for k in keywords if k.strip())
    middle = t["keywords"].format(keywords=joined) if joined else t["original"]
    return t["intro"] + middle + t["outro"]


def build_image_prompt_request(story: str, language: str = "tr") -> str:
    """Ask for an image-generation prompt describing *story*."""

    return _templates(language)["image"].format(story=story)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one text generation call.

    ``empty`` means the service answered without text, ``error`` that the
    request itself failed; ``error`` then carries a readable message.
    """

    status: Literal["ok", "empty", "error"]
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, text: str) -> "GenerationResult":
        return cls("ok", text)

    @classmethod
    def empty(cls) -> "GenerationResult":
        return cls("empty")

    @classmethod
    def failure(cls, message: str) -> "GenerationResult":
        return cls("error", error=message)


class StoryGenerator:
    """Generates stories and their illustration prompts."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        language: str = "tr",
        client_factory: Callable[[], Any] | None = None,
        temperature: float | None = None,
    ) -> None:
        self.model = model
        self.language = language
        self.temperature = temperature
        self._client_factory = client_factory or ga.ensure_client

    def generate_text(self, prompt: str) -> GenerationResult:
        """Send *prompt* to the model and classify the reply."""

        client = self._client_factory()
        if client is None:
            return GenerationResult.failure("No Gemini API key configured")
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=ga.generation_config(self.temperature),
            )
        except Exception as exc:
            logger.error("Story generation failed: %s", exc)
            return GenerationResult.failure(str(exc) or exc.__class__.__name__)

        logger.debug(
            "Generated %d tokens with %s",
            get_response_tokens(getattr(response, "usage_metadata", None)),
            self.model,
        )
        text = clean_unicode(getattr(response, "text", None) or "", keep_newlines=True).strip()
        if not text:
            return GenerationResult.empty()
        return GenerationResult.success(text)

    def generate_story(self, keywords: list[str]) -> tuple[GenerationResult, GenerationResult]:
        """Return the story and, when the story succeeded, its image prompt."""

        story = self.generate_text(build_story_prompt(keywords, self.language))
        if not story.ok:
            return story, GenerationResult.empty()
        image_prompt = self.generate_text(build_image_prompt_request(story.text, self.language))
        return story, image_prompt
