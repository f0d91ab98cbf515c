"""Error types for Stele.

Only failures from the loading layer are raised as exceptions. Everything the
core meets while rendering (bad directive arguments, missing templates, unknown
engines) is logged and skipped instead.
"""

from __future__ import annotations

from pathlib import Path


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class ConfigError(BuildError):
    """A configuration, type definition or pipeline file could not be decoded."""


class FrontMatterError(BuildError):
    """The front matter of a content file is not a valid YAML mapping."""
