"""Utilities for working with the Google GenAI client.

API key resolution and client creation live here so that the story generator
never touches the SDK setup directly and tests have one place to swap in a
fake client.
"""
from __future__ import annotations

import os
import logging
from google import genai
from google.genai import types, errors

from utils import get_user_env_var

logger = logging.getLogger(__name__)

API_KEY_VAR = "GEMINI_API_KEY"

# Cached client instance and the key used to create it
client: genai.Client | None = None
_client_key: str | None = None


def resolve_api_key() -> str:
    """Return the Gemini API key for this process.

    ``GEMINI_API_KEY`` from the process environment wins over a user-level
    variable found by :func:`utils.get_user_env_var`. A found key is exported
    back into ``os.environ``.
    """
    key = (
        os.environ.get(API_KEY_VAR)
        or get_user_env_var(API_KEY_VAR)
        or ""
    ).strip()
    if key:
        os.environ[API_KEY_VAR] = key
    return key


def ensure_client() -> genai.Client | None:
    """Return a Gemini client for the current key, or ``None`` without one.

    The client is cached and rebuilt only when the key changes.
    """
    global client, _client_key
    key = resolve_api_key()
    if not key:
        client = None
        _client_key = None
        return None
    if client is None or key != _client_key:
        try:
            client = genai.Client(api_key=key)
            _client_key = key
        except (getattr(errors, "APIError", Exception), Exception) as exc:
            logger.error("Failed to create GenAI client: %s", exc)
            client = None
            _client_key = None
            return None
    return client


def reset_client() -> None:
    """Forget the cached client so the next call builds a new one."""
    global client, _client_key
    client = None
    _client_key = None


def generation_config(temperature: float | None = None) -> types.GenerateContentConfig | None:
    """Build the request config for plain text generation."""
    if temperature is None:
        return None
    return types.GenerateContentConfig(temperature=temperature)


__all__ = [
    "client",
    "ensure_client",
    "generation_config",
    "reset_client",
    "resolve_api_key",
    "types",
    "errors",
    "genai",
]
