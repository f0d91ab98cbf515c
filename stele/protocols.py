"""Protocol definitions for Stele.

This module defines the interfaces of the collaborators around the render
core: where contents come from, how templates are rendered, how bundles are
turned into results and where results are written.

These protocols enable:
- Loose coupling between the core and the file system
- Easy testing through in-memory implementations
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import Content
    from .output import ContextBundle, PipelineResult


@runtime_checkable
class ContentLoader(Protocol):
    """Protocol for supplying the content snapshot of a build."""

    @abstractmethod
    def load(self) -> list[Content]:
        """Load every content item.

        Returns:
            The finalized content snapshot.
        """
        ...


@runtime_checkable
class TemplateProvider(Protocol):
    """Protocol for rendering templates by id."""

    @abstractmethod
    def render(self, template_id: str, context: Mapping[str, Any]) -> str | None:
        """Render a template.

        Args:
            template_id: Template identifier.
            context: Template context.

        Returns:
            Rendered text, or None if the template does not exist.
        """
        ...


@runtime_checkable
class BundleRenderer(Protocol):
    """Protocol for turning context bundles into pipeline results."""

    @abstractmethod
    def render(self, bundles: Iterable[ContextBundle]) -> list[PipelineResult]: ...


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for writing rendered results."""

    @abstractmethod
    def write(self, path: str, file: str, ext: str, data: bytes) -> None:
        """Write one result.

        Args:
            path: Directory relative to the output root.
            file: File name without extension.
            ext: File extension without the dot; may be empty.
            data: Encoded file contents.
        """
        ...
