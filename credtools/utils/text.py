"""Utilities for deriving repository filenames from user-entered names."""
from __future__ import annotations

import re
from typing import Any


_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_INVALID_RE = re.compile(r"[^a-z0-9-]")
KNOWN_EXTENSIONS: tuple[str, ...] = (".jsonld", ".json")


def slugify(value: Any) -> str:
    """Return a lower-case, dash-separated slug for ``value``.

    Whitespace runs become a single dash and every character outside
    ``[a-z0-9-]`` is dropped, so ``"Home Credential"`` becomes
    ``"home-credential"``. Non-string inputs return an empty string.
    """

    if not isinstance(value, str):
        return ""

    text = value.strip().lower()
    text = _WHITESPACE_RE.sub("-", text)
    return _SLUG_INVALID_RE.sub("", text)


def strip_known_extension(filename: str) -> str:
    """Remove a trailing ``.json``/``.jsonld`` extension, case-insensitively."""

    lowered = filename.lower()
    for extension in KNOWN_EXTENSIONS:
        if lowered.endswith(extension):
            return filename[: -len(extension)]
    return filename


def with_extension(filename: str, extension: str) -> str:
    """Return ``filename`` carrying exactly one ``extension``."""

    return f"{strip_known_extension(filename.strip())}{extension}"


__all__ = ["KNOWN_EXTENSIONS", "slugify", "strip_known_extension", "with_extension"]
