from __future__ import annotations

"""Application configuration handling."""

from dataclasses import dataclass, asdict, fields
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """User adjustable settings for the application."""

    model: str = "gemini-1.5-flash"
    enable_audio: bool = True
    store_path: str = "stories.json"
    title_prefix: str = "Masal"
    language: str = "tr"
    locale: str = "tr_TR"
    fallback_locale: str = "en_US"
    speech_rate: float = 1.0
    speech_pitch: float = 1.0


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from *path*.

    Returns a default :class:`AppConfig` if the file is missing or unreadable.
    Unknown keys are ignored.
    """

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return AppConfig()
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return AppConfig()
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: not a JSON object", path)
        return AppConfig()
    known = {f.name for f in fields(AppConfig)}
    return AppConfig(**{k: v for k, v in data.items() if k in known})


def save_config(cfg: AppConfig, path: str | Path) -> None:
    """Persist *cfg* to *path* as JSON."""

    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(cfg), f, indent=2)
