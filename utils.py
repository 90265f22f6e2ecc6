"""Utility helpers for the TaleTeller application."""

from collections.abc import Mapping, Sequence
import unicodedata
import os
import sys

if sys.platform.startswith("win"):
    import winreg
else:  # pragma: no cover - platform specific
    winreg = None


_KEPT_CONTROLS = {"\n", "\t"}


def get_user_env_var(name: str) -> str | None:
    r"""Retrieve a user-level environment variable on Windows.

    This helper reads the ``HKCU\Environment`` registry key so that values
    configured globally are discovered even when the current process environment
    does not include them. On non-Windows platforms it simply falls back to
    ``os.environ``.
    """
    if not sys.platform.startswith("win") or winreg is None:
        return os.environ.get(name)
    try:
        reg_key = winreg.OpenKey(winreg.HKEY_CURRENT_USER, "Environment")
        try:
            value, _ = winreg.QueryValueEx(reg_key, name)
            return value
        finally:
            winreg.CloseKey(reg_key)
    except FileNotFoundError:
        return os.environ.get(name)


def clean_unicode(obj, keep_newlines: bool = False):
    """Recursively strip Unicode control characters from nested structures.

    With *keep_newlines* line breaks and tabs survive, which keeps paragraph
    structure intact for narration.
    """
    if isinstance(obj, str):
        kept = _KEPT_CONTROLS if keep_newlines else set()
        return "".join(
            ch for ch in obj
            if ch in kept or unicodedata.category(ch)[0] != "C"
        )
    if isinstance(obj, Mapping):
        return {k: clean_unicode(v, keep_newlines) for k, v in obj.items()}
    if isinstance(obj, Sequence) and not isinstance(obj, str):
        return type(obj)(clean_unicode(v, keep_newlines) for v in obj)
    return obj


def get_response_tokens(usage) -> int:
    """Return generated token count from a usage metadata object.

    Depending on the API surface the SDK reports this as
    ``response_token_count`` or ``candidates_token_count``. ``0`` is returned
    when neither is set or ``usage`` is ``None``.
    """

    if usage is None:
        return 0

    if getattr(usage, "response_token_count", None) is not None:
        return usage.response_token_count

    if getattr(usage, "candidates_token_count", None) is not None:
        return usage.candidates_token_count

    return 0
