"""Utility functions for Stele.

This module contains small string, mapping and path helpers used throughout
the Stele codebase.

Key functions:
    slugify: Convert text to a URL-safe token.
    permalink: Resolve a content slug against the site base URL.
    replace_tokens: Substitute `{{token}}` placeholders in a string.
    merge_dicts: Recursively merge two mappings.
    word_count: Count whitespace separated words.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .html_utils import join_root_url

SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Convert text to a lower-case slug.

    Runs of characters that are not ASCII letters or digits collapse into a
    single hyphen; leading and trailing hyphens are dropped.

    Args:
        text: Text to convert.

    Returns:
        URL-friendly slug, possibly empty.

    Examples:
        >>> slugify("This <is a> bracket")
        'this-is-a-bracket'
    """
    return SLUG_RE.sub("-", text.lower()).strip("-")


def permalink(slug: str, base_url: str) -> str:
    """Return the absolute URL of a content slug.

    Slugs that end in a file name (``feed.xml``) are linked as-is, every
    other slug is treated as a directory and gets a trailing slash.

    Args:
        slug: Content slug such as ``blog/hello-world``.
        base_url: Site base URL.

    Returns:
        Absolute URL for the slug.
    """
    slug = slug.strip("/")
    if not slug:
        return join_root_url(base_url, "/")
    last = slug.rsplit("/", 1)[-1]
    suffix = "" if "." in last else "/"
    return join_root_url(base_url, f"/{slug}{suffix}")


def replace_tokens(text: str, replacements: Mapping[str, str]) -> str:
    """Replace every occurrence of each key with its value in one pass.

    Substituted values are never scanned again, so a value containing another
    key is left untouched.

    Args:
        text: Source text.
        replacements: Mapping of literal token to replacement string.

    Returns:
        Text with all tokens replaced.
    """
    if not replacements or not text:
        return text
    keys = sorted(replacements, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(key) for key in keys))
    return pattern.sub(lambda m: replacements[m.group(0)], text)


def merge_dicts(base: Mapping[str, Any], other: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``other`` into a copy of ``base``.

    Nested mappings present on both sides are merged, any other value from
    ``other`` wins.
    """
    result = dict(base)
    for key, value in other.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = merge_dicts(current, value)
        else:
            result[key] = value
    return result


def word_count(text: str) -> int:
    """Count whitespace separated words in text."""
    return len(text.split())


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path))
    path.mkdir(parents=True, exist_ok=True)
