"""Pipeline definitions for Stele.

A pipeline selects contents, declares the scopes used to expose them, the
queries run against the whole snapshot, pagination iterators, the rendering
engine and the output location template.

Example ``pipelines/html.yaml``::

    id: html
    contentTypes:
      include: [page, post]
      filterRules:
        post: {key: draft, operator: equals, value: false}
    scopes:
      post:
        list:
          context: [properties, relations]
          fields: [title, slug, permalink]
    queries:
      featured:
        contentType: post
        filter: {key: featured, operator: equals, value: true}
    iterators:
      post.pagination:
        contentType: post
        limit: 10
    engine:
      id: mustache
      options:
        contentTypes:
          post: {template: post}
    output:
      path: "{{slug}}"
      file: index
      ext: html
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import TYPE_CHECKING, Any

from .dates import DateFormat
from .query import Filter, Query, matches, parse_filter

if TYPE_CHECKING:
    from .content import Content

WILDCARD = "*"


class ContextCategory(Flag):
    """Groups of fields a scope exposes."""

    NONE = 0
    USER_DEFINED = auto()
    PROPERTIES = auto()
    CONTENTS = auto()
    RELATIONS = auto()
    QUERIES = auto()
    ALL = USER_DEFINED | PROPERTIES | CONTENTS | RELATIONS | QUERIES

    @classmethod
    def from_names(cls, names: Any) -> ContextCategory:
        """Build a flag set from YAML names such as ``userDefined`` or ``all``."""
        if isinstance(names, str):
            names = [names]
        result = cls.NONE
        for name in names or ():
            result |= _CATEGORY_NAMES[str(name)]
        return result


_CATEGORY_NAMES = {
    "userDefined": ContextCategory.USER_DEFINED,
    "properties": ContextCategory.PROPERTIES,
    "contents": ContextCategory.CONTENTS,
    "relations": ContextCategory.RELATIONS,
    "queries": ContextCategory.QUERIES,
    "all": ContextCategory.ALL,
}


@dataclass(frozen=True)
class Scope:
    """A named view onto a content type.

    Attributes:
        context: Categories resolved for the content.
        fields: Allow-list of output keys; empty exposes every key.
    """

    context: ContextCategory = ContextCategory.ALL
    fields: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Scope:
        context = data.get("context")
        return cls(
            context=ContextCategory.from_names(context)
            if context is not None
            else ContextCategory.ALL,
            fields=tuple(data.get("fields") or ()),
        )


DEFAULT_SCOPES: dict[str, Scope] = {
    "reference": Scope(ContextCategory.USER_DEFINED | ContextCategory.PROPERTIES),
    "list": Scope(
        ContextCategory.USER_DEFINED
        | ContextCategory.PROPERTIES
        | ContextCategory.RELATIONS
    ),
    "detail": Scope(ContextCategory.ALL),
}


@dataclass(frozen=True)
class ContentTypes:
    """Which content types a pipeline renders and pre-filters.

    Attributes:
        include: Types that produce bundles; empty allows every type.
        exclude: Types that never produce bundles.
        last_update: Types considered for the site ``lastUpdate``; empty
            considers every type.
        filter_rules: Content type (or ``*``) to a filter; contents of that type
            that do not match are dropped from the pipeline's snapshot.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    last_update: tuple[str, ...] = ()
    filter_rules: Mapping[str, Filter] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ContentTypes:
        return cls(
            include=tuple(data.get("include") or ()),
            exclude=tuple(data.get("exclude") or ()),
            last_update=tuple(data.get("lastUpdate") or ()),
            filter_rules={
                k: parse_filter(v) for k, v in (data.get("filterRules") or {}).items()
            },
        )

    def is_allowed(self, content_type: str) -> bool:
        if content_type in self.exclude:
            return False
        return not self.include or content_type in self.include

    def apply_filter_rules(self, contents: Sequence[Content], now: float) -> list[Content]:
        """Keep only contents that satisfy the rule for their type.

        A rule keyed by the content type wins over the ``*`` rule; contents of
        types without a rule are always kept. Input order is preserved.
        """
        if not self.filter_rules:
            return list(contents)
        kept: list[Content] = []
        for content in contents:
            rule = self.filter_rules.get(content.definition.id)
            if rule is None:
                rule = self.filter_rules.get(WILDCARD)
            if rule is None or matches(content, rule, now):
                kept.append(content)
        return kept


@dataclass(frozen=True)
class Engine:
    id: str
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Output:
    """Output location template; values may contain ``{{id}}``-style tokens."""

    path: str = "{{slug}}"
    file: str = "index"
    ext: str = "html"


@dataclass(frozen=True)
class Pipeline:
    """A named rendering configuration.

    Attributes:
        id: Pipeline identifier, part of the context cache key.
        scopes: Content type (or ``*``) to scope name to Scope.
        queries: Queries run against the whole snapshot, exposed under
            ``context``.
        date_formats: Extra named date formats for this pipeline.
        content_types: Inclusion and pre-filter rules.
        iterators: Iterator id to the query it paginates.
        engine: Rendering engine selector and options.
        output: Output location template.
    """

    id: str
    scopes: Mapping[str, Mapping[str, Scope]] = field(default_factory=dict)
    queries: Mapping[str, Query] = field(default_factory=dict)
    date_formats: Mapping[str, DateFormat] = field(default_factory=dict)
    content_types: ContentTypes = field(default_factory=ContentTypes)
    iterators: Mapping[str, Query] = field(default_factory=dict)
    engine: Engine = field(default_factory=lambda: Engine("mustache"))
    output: Output = field(default_factory=Output)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], id: str | None = None) -> Pipeline:
        """Build a pipeline from decoded YAML.

        Args:
            data: Pipeline mapping, see the module docstring.
            id: Fallback id when the mapping has none (usually the file name).

        Returns:
            Pipeline instance.
        """
        engine = data.get("engine") or {}
        output = data.get("output") or {}
        date_formats = ((data.get("dataTypes") or {}).get("date") or {}).get(
            "dateFormats"
        ) or {}
        return cls(
            id=str(data.get("id", id)),
            scopes={
                type_id: {name: Scope.from_dict(s) for name, s in scopes.items()}
                for type_id, scopes in (data.get("scopes") or {}).items()
            },
            queries={k: Query.from_dict(v) for k, v in (data.get("queries") or {}).items()},
            date_formats={k: DateFormat.from_value(v) for k, v in date_formats.items()},
            content_types=ContentTypes.from_dict(data.get("contentTypes") or {}),
            iterators={
                k: Query.from_dict(v) for k, v in (data.get("iterators") or {}).items()
            },
            engine=Engine(
                id=str(engine.get("id", "mustache")),
                options=engine.get("options") or {},
            ),
            output=Output(
                path=str(output.get("path", Output.path)),
                file=str(output.get("file", Output.file)),
                ext=str(output.get("ext", Output.ext)),
            ),
        )

    def get_scope(self, name: str, content_type: str) -> Scope:
        """Look up a scope for a content type.

        The content type's own scopes win over ``*`` scopes, which win over
        the built-in ``reference``/``list``/``detail`` scopes. Unknown names
        fall back to ``detail``.
        """
        for key in (content_type, WILDCARD):
            scope = self.scopes.get(key, {}).get(name)
            if scope is not None:
                return scope
        return DEFAULT_SCOPES.get(name, DEFAULT_SCOPES["detail"])
