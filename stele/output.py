"""Rendering dispatch for Stele.

Context bundles are turned into file shaped results by the renderer matching
the pipeline's engine id:

- ``mustache`` and ``jinja``: render the bundle's template with its context.
- ``json`` and ``context``: encode the context mapping as JSON.

Items that cannot be rendered (no template id, unknown template, empty
output) are skipped with a warning. An unknown engine id logs an error and
the pipeline contributes no results.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from jinja2 import TemplateSyntaxError

if TYPE_CHECKING:
    from .content import Content
    from .pipeline import Pipeline
    from .protocols import BundleRenderer, TemplateProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Destination:
    """Where a rendered bundle is written, relative to the output folder."""

    path: str
    file: str
    ext: str

    @property
    def relative_path(self) -> str:
        name = f"{self.file}.{self.ext}" if self.ext else self.file
        directory = self.path.strip("/")
        return f"{directory}/{name}" if directory else name


@dataclass(frozen=True)
class ContextBundle:
    content: Content
    context: Mapping[str, Any]
    destination: Destination


@dataclass(frozen=True)
class PipelineResult:
    contents: str
    destination: Destination


@dataclass
class ContextBundleToHTMLRenderer:
    """Renders bundles through templates.

    The template id comes from the item's ``template`` front matter field,
    else from ``engine.options.contentTypes.<type>.template``.
    """

    pipeline: Pipeline
    templates: TemplateProvider

    def template_id(self, content: Content) -> str | None:
        options = self.pipeline.engine.options.get("contentTypes") or {}
        type_options = options.get(content.definition.id) or {}
        template = content.front_matter.get("template") or type_options.get("template")
        return str(template) if template else None

    def render(self, bundles: Iterable[ContextBundle]) -> list[PipelineResult]:
        results = []
        for bundle in bundles:
            result = self.render_bundle(bundle)
            if result is not None:
                results.append(result)
        return results

    def render_bundle(self, bundle: ContextBundle) -> PipelineResult | None:
        content = bundle.content
        template = self.template_id(content)
        if not template:
            logger.warning(
                "Missing template for `%s` (type: %s)", content.slug, content.definition.id
            )
            return None
        try:
            html = self.templates.render(template, bundle.context)
        except TemplateSyntaxError:
            logger.error(
                "Template `%s` for engine `%s` is not valid Jinja2 syntax",
                template,
                self.pipeline.engine.id,
            )
            raise
        if not html:
            logger.warning(
                "Could not get valid HTML for `%s` (type: %s) using template `%s`",
                content.slug,
                content.definition.id,
                template,
            )
            return None
        return PipelineResult(html, bundle.destination)


@dataclass
class ContextBundleToJSONRenderer:
    """Encodes bundle contexts as JSON.

    ``engine.options.keyPath`` (a dotted path such as ``page.title``) selects a
    part of the context to encode instead of the whole mapping.
    """

    pipeline: Pipeline
    templates: Any = field(default=None, repr=False)

    def render(self, bundles: Iterable[ContextBundle]) -> list[PipelineResult]:
        key_path = self.pipeline.engine.options.get("keyPath")
        results = []
        for bundle in bundles:
            value = _lookup(bundle.context, key_path) if key_path else bundle.context
            data = json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False, default=str)
            results.append(PipelineResult(data, bundle.destination))
        return results


ENGINE_RENDERERS: dict[str, type] = {
    "mustache": ContextBundleToHTMLRenderer,
    "jinja": ContextBundleToHTMLRenderer,
    "json": ContextBundleToJSONRenderer,
    "context": ContextBundleToJSONRenderer,
}


def _lookup(context: Mapping[str, Any], key_path: str) -> Any:
    value: Any = context
    for part in str(key_path).split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def render_bundles(
    pipeline: Pipeline,
    bundles: Iterable[ContextBundle],
    templates: TemplateProvider,
) -> list[PipelineResult]:
    """Dispatch bundles to the renderer of the pipeline's engine.

    Args:
        pipeline: Pipeline the bundles belong to.
        bundles: Resolved context bundles.
        templates: Template provider for template engines.

    Returns:
        One result per rendered bundle, in bundle order. Empty when the engine
        id is unknown.
    """
    renderer_cls = ENGINE_RENDERERS.get(pipeline.engine.id)
    if renderer_cls is None:
        logger.error("Unknown renderer engine `%s`", pipeline.engine.id)
        return []
    renderer: BundleRenderer = renderer_cls(pipeline, templates)
    return renderer.render(bundles)
