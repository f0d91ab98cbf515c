"""Render context resolution for Stele.

For every content item the resolver builds the mapping templates see. What
ends up in the mapping is decided by the scope the item is requested with:

- ``userDefined``: free-form front matter fields.
- ``properties``: typed properties (dates expanded into every configured
  format) plus computed ``slug``, ``permalink`` and ``lastUpdate``.
- ``contents``: rendered HTML, reading time and outline.
- ``relations``: related items, resolved with the ``reference`` scope.
- ``queries``: the content type's sub-queries, resolved with their own scope
  (``list`` by default). Only the directly requested item runs them.

Resolved mappings are memoized per resolver by ``(pipeline id, slug, scope,
sub-queries allowed)``, plus a flag marking results resolved at the depth
limit. The scope's field allow-list is applied after the cache, so narrower
scopes never see a truncated cached result.

Nested resolution is bounded: items reached through a relation or sub-query
never run sub-queries, and items two levels below the requested one do not
expand their relations either. Relation cycles therefore always terminate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .content import Content, PropertyType
from .dates import DateFormat, DateFormatter, prepare_formatters, to_date_formats
from .output import ContextBundle, Destination
from .pipeline import ContextCategory, Pipeline
from .query import FieldFilter, Operator, Query
from .query import run as run_query
from .renderers import ContentRenderer
from .utils import merge_dicts, permalink, replace_tokens

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, str, bool, bool]
CategoryResolver = Callable[["_Request", dict[str, Any]], None]

# Depth at which relations stop being expanded
MAX_RELATION_DEPTH = 2

DEFAULT_LIST_SCOPE = "list"
DETAIL_SCOPE = "detail"
REFERENCE_SCOPE = "reference"


@dataclass(frozen=True)
class _Request:
    content: Content
    contents: Sequence[Content]
    pipeline: Pipeline
    now: float
    allow_sub_queries: bool
    depth: int


class ContextResolver:
    """Builds render contexts for one render pass.

    A resolver owns its cache and date formatter tables. Create one per build
    (or per pipeline run); nothing is shared between resolvers.

    Attributes:
        content_renderer: Renders Markdown bodies for the ``contents`` category.
        base_url: Site base URL.
        assets_path: Name of the per-content assets folder.
        time_zone: Site time zone name used for date formats.
        date_formats: Site wide named date formats.
    """

    def __init__(
        self,
        content_renderer: ContentRenderer,
        base_url: str,
        assets_path: str = "assets",
        time_zone: str | None = None,
        date_formats: Mapping[str, Any] | None = None,
    ):
        self.content_renderer = content_renderer
        self.base_url = base_url
        self.assets_path = assets_path
        self.time_zone = time_zone
        self.date_formats = dict(date_formats or {})
        self._cache: dict[CacheKey, dict[str, Any]] = {}
        self._formatters: dict[str, dict[str, DateFormatter]] = {}
        self._categories: tuple[tuple[ContextCategory, CategoryResolver], ...] = (
            (ContextCategory.USER_DEFINED, self._resolve_user_defined),
            (ContextCategory.PROPERTIES, self._resolve_properties),
            (ContextCategory.CONTENTS, self._resolve_contents),
            (ContextCategory.RELATIONS, self._resolve_relations),
            (ContextCategory.QUERIES, self._resolve_queries),
        )

    # --- date formats ---

    def formatters(self, pipeline: Pipeline) -> dict[str, DateFormatter]:
        """Return the formatter table of a pipeline (site formats plus its own)."""
        table = self._formatters.get(pipeline.id)
        if table is None:
            formats: dict[str, Any] = {
                k: DateFormat.from_value(v) for k, v in self.date_formats.items()
            }
            formats.update(pipeline.date_formats)
            table = prepare_formatters(self.time_zone, formats)
            self._formatters[pipeline.id] = table
        return table

    def format_date(self, pipeline: Pipeline, timestamp: float) -> dict[str, Any]:
        return to_date_formats(timestamp, self.formatters(pipeline))

    # --- content contexts ---

    def resolve(
        self,
        content: Content,
        contents: Sequence[Content],
        pipeline: Pipeline,
        scope_name: str,
        now: float,
        allow_sub_queries: bool = True,
        depth: int = 0,
    ) -> dict[str, Any]:
        """Resolve the context of one content item.

        Args:
            content: Item to resolve.
            contents: Pipeline content snapshot, used by relations and queries.
            pipeline: Pipeline providing scopes and date formats.
            scope_name: Scope to resolve with.
            now: Current time as epoch seconds.
            allow_sub_queries: Run the content type's sub-queries. Only the
                directly requested item should pass True.
            depth: Nesting level below the requested item.

        Returns:
            The context mapping, limited to the scope's fields when it has any.
        """
        scope = pipeline.get_scope(scope_name, content.definition.id)
        truncated = depth >= MAX_RELATION_DEPTH
        key: CacheKey = (pipeline.id, content.slug, scope_name, allow_sub_queries, truncated)

        result = self._cache.get(key)
        if result is None:
            request = _Request(content, contents, pipeline, now, allow_sub_queries, depth)
            result = {}
            for category, resolver in self._categories:
                if category in scope.context:
                    resolver(request, result)
            self._cache[key] = result

        if scope.fields:
            return {k: v for k, v in result.items() if k in scope.fields}
        return dict(result)

    def _resolve_user_defined(self, request: _Request, result: dict[str, Any]) -> None:
        result.update(request.content.user_defined)

    def _resolve_properties(self, request: _Request, result: dict[str, Any]) -> None:
        content = request.content
        definitions = content.definition.properties
        for name, value in content.properties.items():
            prop = definitions.get(name)
            if (
                prop is not None
                and prop.type is PropertyType.DATE
                and isinstance(value, (int, float))
                and not isinstance(value, bool)
            ):
                result[name] = self.format_date(request.pipeline, float(value))
            else:
                result[name] = value
        result["slug"] = content.slug
        result["permalink"] = permalink(content.slug, self.base_url)
        result["lastUpdate"] = self.format_date(request.pipeline, content.last_update)

    def _resolve_contents(self, request: _Request, result: dict[str, Any]) -> None:
        content = request.content
        rendered = self.content_renderer.render(
            content.markdown, content.slug, self.assets_path, self.base_url
        )
        result["contents"] = rendered.to_context()

    def _resolve_relations(self, request: _Request, result: dict[str, Any]) -> None:
        if request.depth >= MAX_RELATION_DEPTH:
            return
        content = request.content
        for name, relation in content.definition.relations.items():
            identifiers = list(content.relations.get(name, ()))
            query = Query(
                content_type=relation.references,
                filter=FieldFilter("id", Operator.IN, identifiers),
                order_by=(relation.order,) if relation.order else (),
            )
            related = run_query(request.contents, query, request.now)
            if relation.order is None:
                position: dict[str, int] = {}
                for index, identifier in enumerate(identifiers):
                    position.setdefault(identifier, index)
                related = sorted(related, key=lambda c: position[c.id])
            missing = set(identifiers) - {c.id for c in related}
            if missing:
                logger.warning(
                    "Relation `%s` of `%s` references missing %s: %s",
                    name,
                    content.slug,
                    relation.references,
                    ", ".join(sorted(missing)),
                )
            result[name] = [
                self.resolve(
                    item,
                    request.contents,
                    request.pipeline,
                    REFERENCE_SCOPE,
                    request.now,
                    allow_sub_queries=False,
                    depth=request.depth + 1,
                )
                for item in related
            ]

    def _resolve_queries(self, request: _Request, result: dict[str, Any]) -> None:
        if not request.allow_sub_queries:
            return
        fields = request.content.query_fields
        for name, query in request.content.definition.queries.items():
            items = run_query(request.contents, query.resolve_parameters(fields), request.now)
            result[name] = [
                self.resolve(
                    item,
                    request.contents,
                    request.pipeline,
                    query.scope or DEFAULT_LIST_SCOPE,
                    request.now,
                    allow_sub_queries=False,
                    depth=request.depth + 1,
                )
                for item in items
            ]

    # --- bundle blocks ---

    def iterator(
        self, content: Content, contents: Sequence[Content], pipeline: Pipeline, now: float
    ) -> dict[str, Any]:
        """Return the ``iterator`` block of a paginated page, or an empty mapping."""
        info = content.iterator_info
        if info is None:
            return {}
        scope_name = info.scope or DEFAULT_LIST_SCOPE
        return {
            "iterator": {
                "total": info.total,
                "limit": info.limit,
                "current": info.current,
                "items": [
                    self.resolve(item, contents, pipeline, scope_name, now)
                    for item in info.items
                ],
                "links": [dict(link) for link in info.links],
            }
        }

    def pipeline_context(
        self, contents: Sequence[Content], pipeline: Pipeline, now: float
    ) -> dict[str, Any]:
        """Return the ``context`` block holding the pipeline's query results."""
        context: dict[str, Any] = {}
        for name, query in pipeline.queries.items():
            context[name] = [
                self.resolve(item, contents, pipeline, query.scope or DEFAULT_LIST_SCOPE, now)
                for item in run_query(contents, query, now)
            ]
        return {"context": context}

    def bundle(
        self,
        content: Content,
        contents: Sequence[Content],
        pipeline: Pipeline,
        now: float,
        global_context: Mapping[str, Any] | None = None,
        pipeline_context: Mapping[str, Any] | None = None,
    ) -> ContextBundle:
        """Build the complete context bundle of one item.

        Args:
            content: Item the bundle is rendered for.
            contents: Pipeline content snapshot.
            pipeline: Pipeline being rendered.
            now: Current time as epoch seconds.
            global_context: Blocks shared by every bundle, e.g. ``site``.
            pipeline_context: Precomputed :meth:`pipeline_context` result.

        Returns:
            ContextBundle with ``page``, ``iterator``, ``context`` and the
            global blocks, plus its output destination.
        """
        if pipeline_context is None:
            pipeline_context = self.pipeline_context(contents, pipeline, now)
        context: dict[str, Any] = {
            "page": self.resolve(content, contents, pipeline, DETAIL_SCOPE, now)
        }
        context = merge_dicts(context, self.iterator(content, contents, pipeline, now))
        context = merge_dicts(context, pipeline_context)
        context = merge_dicts(context, global_context or {})
        return ContextBundle(content, context, self.destination(content, pipeline))

    @staticmethod
    def destination(content: Content, pipeline: Pipeline) -> Destination:
        """Fill the pipeline's output template for an item."""
        tokens = {"{{id}}": content.id, "{{slug}}": content.slug}
        info = content.iterator_info
        if info is not None:
            tokens["{{iterator.current}}"] = str(info.current)
            tokens["{{iterator.total}}"] = str(info.total)
            tokens["{{iterator.limit}}"] = str(info.limit)
        output = pipeline.output
        return Destination(
            path=replace_tokens(output.path, tokens),
            file=replace_tokens(output.file, tokens),
            ext=replace_tokens(output.ext, tokens),
        )

    def bundles(
        self,
        contents: Iterable[Content],
        pipeline: Pipeline,
        now: float,
        global_context: Mapping[str, Any] | None = None,
    ) -> list[ContextBundle]:
        """Build bundles for every item whose type the pipeline renders."""
        snapshot = list(contents)
        allowed = [c for c in snapshot if pipeline.content_types.is_allowed(c.definition.id)]
        if not allowed:
            return []
        shared = self.pipeline_context(snapshot, pipeline, now)
        return [
            self.bundle(content, snapshot, pipeline, now, global_context, shared)
            for content in allowed
        ]
