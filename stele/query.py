"""Content query engine for Stele.

Queries select contents of one type, filter them with a small expression tree,
sort them by any number of keys and paginate the result. Everything here is a
pure function of its inputs: the current time is passed in explicitly and the
input contents are never modified.

Key classes:
- Operator: Comparison operators available to field filters.
- FieldFilter, AndFilter, OrFilter: The filter expression tree.
- Order: One sort key with a direction.
- Query: Content type, filter, ordering, pagination and scope.

Key functions:
- run: Evaluate a query against a list of contents.
- matches: Evaluate a filter against a single content item.
- parse_filter: Build a filter tree from decoded YAML/JSON data.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from .content import Content

NOW_TOKEN = "{{date.now}}"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUALS = "lessThanOrEquals"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUALS = "greaterThanOrEquals"
    LIKE = "like"
    CASE_INSENSITIVE_LIKE = "caseInsensitiveLike"
    IN = "in"
    CONTAINS = "contains"


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class FieldFilter:
    """Leaf condition comparing one content field with a value."""

    key: str
    operator: Operator
    value: Any


@dataclass(frozen=True)
class AndFilter:
    """Matches when every child filter matches. An empty list matches all."""

    filters: tuple[Filter, ...] = ()


@dataclass(frozen=True)
class OrFilter:
    """Matches when any child filter matches. An empty list matches nothing."""

    filters: tuple[Filter, ...] = ()


Filter = Union[FieldFilter, AndFilter, OrFilter]


@dataclass(frozen=True)
class Order:
    key: str
    direction: Direction = Direction.ASC

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Order:
        return cls(
            key=str(data["key"]),
            direction=Direction(data.get("direction", Direction.ASC.value)),
        )


@dataclass(frozen=True)
class Query:
    """A declarative selection of contents.

    Attributes:
        content_type: Definition id of the contents to scan.
        filter: Optional filter tree.
        order_by: Sort keys, most significant first.
        limit: Maximum number of results, applied after ``offset``.
        offset: Number of leading results to skip.
        scope: Scope name used when the results are resolved into contexts.
    """

    content_type: str
    filter: Filter | None = None
    order_by: tuple[Order, ...] = field(default_factory=tuple)
    limit: int | None = None
    offset: int = 0
    scope: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Query:
        """Build a query from decoded YAML/JSON data.

        Args:
            data: Mapping with ``contentType`` and optional ``filter``,
                ``orderBy``, ``limit``, ``offset`` and ``scope`` keys.

        Returns:
            Query instance.
        """
        raw_filter = data.get("filter")
        limit = data.get("limit")
        return cls(
            content_type=str(data["contentType"]),
            filter=parse_filter(raw_filter) if raw_filter is not None else None,
            order_by=tuple(Order.from_dict(o) for o in data.get("orderBy") or ()),
            limit=int(limit) if limit is not None else None,
            offset=int(data.get("offset") or 0),
            scope=data.get("scope"),
        )

    def resolve_parameters(self, fields: Mapping[str, Any]) -> Query:
        """Return a copy with ``{{name}}`` filter values substituted.

        A filter value that is exactly ``{{name}}`` is replaced with
        ``fields[name]``; unknown names and :data:`NOW_TOKEN` are left alone.

        Args:
            fields: Query fields of the content the query belongs to.

        Returns:
            A new query with parameters substituted.
        """
        if self.filter is None:
            return self
        return replace(self, filter=_substitute(self.filter, fields))


def parse_filter(data: Mapping[str, Any]) -> Filter:
    """Build a filter tree from decoded data.

    Accepted shapes are ``{"and": [...]}``, ``{"or": [...]}`` and
    ``{"key": ..., "operator": ..., "value": ...}``.

    Raises:
        ValueError: If the mapping matches none of the shapes or names an
            unknown operator.
    """
    if "and" in data:
        return AndFilter(tuple(parse_filter(f) for f in data["and"] or ()))
    if "or" in data:
        return OrFilter(tuple(parse_filter(f) for f in data["or"] or ()))
    if "key" in data and "operator" in data:
        return FieldFilter(
            key=str(data["key"]),
            operator=Operator(data["operator"]),
            value=data.get("value"),
        )
    raise ValueError(f"Invalid filter: {dict(data)!r}")


def _substitute(node: Filter, fields: Mapping[str, Any]) -> Filter:
    if isinstance(node, FieldFilter):
        return replace(node, value=_substitute_value(node.value, fields))
    return replace(node, filters=tuple(_substitute(f, fields) for f in node.filters))


def _substitute_value(value: Any, fields: Mapping[str, Any]) -> Any:
    if isinstance(value, list):
        return [_substitute_value(v, fields) for v in value]
    if (
        isinstance(value, str)
        and value != NOW_TOKEN
        and value.startswith("{{")
        and value.endswith("}}")
    ):
        name = value[2:-2].strip()
        if name in fields:
            return fields[name]
    return value


# --- evaluation ---


def _comparable(value: Any) -> tuple[str, Any] | None:
    """Coerce a value to a ``(kind, value)`` pair, or None when unsupported."""
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("number", float(value))
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return ("number", moment.timestamp())
    if isinstance(value, date):
        return (
            "number",
            datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp(),
        )
    if isinstance(value, str):
        return ("string", value)
    return None


def _resolve_now(value: Any, now: float) -> Any:
    if value == NOW_TOKEN:
        return now
    if isinstance(value, list):
        return [_resolve_now(v, now) for v in value]
    return value


def _compare(field_value: Any, operator: Operator, query_value: Any) -> bool:
    if operator is Operator.IN:
        if not isinstance(query_value, (list, tuple, set, frozenset)):
            return False
        left = _comparable(field_value)
        return left is not None and left in {_comparable(v) for v in query_value}

    if operator is Operator.CONTAINS:
        if not isinstance(field_value, (list, tuple)):
            return False
        right = _comparable(query_value)
        return right is not None and right in {_comparable(v) for v in field_value}

    left = _comparable(field_value)
    right = _comparable(query_value)
    if left is None or right is None or left[0] != right[0]:
        return False
    kind, a = left
    b = right[1]

    if operator is Operator.EQUALS:
        return a == b
    if operator is Operator.NOT_EQUALS:
        return a != b
    if operator is Operator.LESS_THAN:
        return a < b
    if operator is Operator.LESS_THAN_OR_EQUALS:
        return a <= b
    if operator is Operator.GREATER_THAN:
        return a > b
    if operator is Operator.GREATER_THAN_OR_EQUALS:
        return a >= b
    if kind != "string":
        return False
    if operator is Operator.LIKE:
        return b in a
    if operator is Operator.CASE_INSENSITIVE_LIKE:
        return b.lower() in a.lower()
    return False


def matches(content: Content, node: Filter, now: float) -> bool:
    """Evaluate a filter tree against one content item.

    Args:
        content: Content to test.
        node: Filter tree.
        now: Current time as epoch seconds, substituted for ``{{date.now}}``.

    Returns:
        True if the content satisfies the filter.
    """
    if isinstance(node, AndFilter):
        return all(matches(content, f, now) for f in node.filters)
    if isinstance(node, OrFilter):
        return any(matches(content, f, now) for f in node.filters)
    fields = content.query_fields
    if node.key not in fields:
        return False
    return _compare(fields[node.key], node.operator, _resolve_now(node.value, now))


def _sort_key(value: Any) -> tuple[str, Any]:
    # _comparable never returns None here; missing values are split off first
    return _comparable(value)  # type: ignore[return-value]


def sort_contents(contents: Iterable[Content], order_by: Sequence[Order]) -> list[Content]:
    """Stable multi-key sort.

    Keys are applied least significant first so that each later (more
    significant) pass keeps the order established by the previous ones.
    Contents without a usable value for a key always go after the others.
    """
    result = list(contents)
    for order in reversed(order_by):
        present: list[Content] = []
        missing: list[Content] = []
        for content in result:
            value = content.query_fields.get(order.key)
            (missing if _comparable(value) is None else present).append(content)
        present.sort(
            key=lambda c: _sort_key(c.query_fields[order.key]),
            reverse=order.direction is Direction.DESC,
        )
        result = present + missing
    return result


def run(contents: Iterable[Content], query: Query, now: float) -> list[Content]:
    """Evaluate a query.

    Args:
        contents: Content snapshot to scan.
        query: Query to evaluate.
        now: Current time as epoch seconds.

    Returns:
        A new list with the matching contents, sorted and paginated.
    """
    selected = [c for c in contents if c.definition.id == query.content_type]
    if query.filter is not None:
        selected = [c for c in selected if matches(c, query.filter, now)]
    selected = sort_contents(selected, query.order_by)
    if query.offset:
        selected = selected[query.offset :]
    if query.limit is not None:
        selected = selected[: query.limit]
    return selected
