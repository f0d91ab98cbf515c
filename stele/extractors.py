"""Front matter and YAML extraction for Stele.

Content files start with an optional YAML front matter block between ``---``
markers. Decoding errors are not swallowed: a broken front matter block
aborts loading with a :class:`~stele.errors.FrontMatterError`, before any
query runs.

Functions:
    extract_frontmatter: Split a file into its front matter and body.
    load_yaml_mapping: Decode a YAML document that must be a mapping.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from .errors import BuildError, FrontMatterError

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)


def load_yaml_mapping(
    text: str,
    path: Path,
    error_cls: type[BuildError] = BuildError,
) -> dict[str, Any]:
    """Decode a YAML document that must be a mapping (or empty).

    Args:
        text: YAML source.
        path: File the text came from, used in errors.
        error_cls: Error type to raise.

    Returns:
        The decoded mapping; an empty document gives an empty dict.

    Raises:
        BuildError: ``error_cls`` when the YAML is invalid or not a mapping.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise error_cls(path, f"Invalid YAML: {exc}", exc) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise error_cls(path, f"Expected a mapping, got {type(data).__name__}")
    return data


def extract_frontmatter(text: str, path: Path) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from content.

    Args:
        text: Raw file content.
        path: Path of the file, used in errors.

    Returns:
        Tuple of (front matter dict, remaining body). Text without a leading
        ``---`` block has empty front matter and is returned unchanged.

    Raises:
        FrontMatterError: If the block is not a valid YAML mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    data = load_yaml_mapping(match.group(1), path, FrontMatterError)
    return data, text[match.end() :].lstrip("\n")
