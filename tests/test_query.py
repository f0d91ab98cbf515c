from datetime import datetime, timezone

import pytest

from stele.content import Content, ContentDefinition
from stele.query import (
    AndFilter,
    Direction,
    FieldFilter,
    Operator,
    OrFilter,
    Order,
    Query,
    parse_filter,
    run,
)

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp()

AUTHOR = ContentDefinition(id="author")
POST = ContentDefinition(id="post")


def _authors():
    return [
        Content(
            id=f"author-{i}",
            slug=f"authors/author-{i}",
            definition=AUTHOR,
            properties={"name": f"Author #{i}", "age": 20 + i},
        )
        for i in range(1, 11)
    ]


def _names(contents):
    return [c.properties["name"] for c in contents]


def test_like_is_case_sensitive_substring():
    query = Query("author", filter=FieldFilter("name", Operator.LIKE, "Author #1"))
    assert _names(run(_authors(), query, NOW)) == ["Author #1", "Author #10"]

    query = Query("author", filter=FieldFilter("name", Operator.LIKE, "author #1"))
    assert run(_authors(), query, NOW) == []


def test_case_insensitive_like():
    query = Query(
        "author", filter=FieldFilter("name", Operator.CASE_INSENSITIVE_LIKE, "author #1")
    )
    assert _names(run(_authors(), query, NOW)) == ["Author #1", "Author #10"]


def test_in_filter_with_ascending_order():
    query = Query(
        "author",
        filter=FieldFilter("name", Operator.IN, ["Author #6", "Author #4"]),
        order_by=(Order("name"),),
    )
    assert _names(run(_authors(), query, NOW)) == ["Author #4", "Author #6"]


def test_limit_and_offset_follow_insertion_order():
    query = Query("author", limit=2, offset=3)
    assert _names(run(_authors(), query, NOW)) == ["Author #4", "Author #5"]


def test_empty_and_matches_everything_empty_or_matches_nothing():
    authors = _authors()
    assert len(run(authors, Query("author", filter=AndFilter(())), NOW)) == 10
    assert run(authors, Query("author", filter=OrFilter(())), NOW) == []


def test_nested_filters():
    query = Query(
        "author",
        filter=OrFilter(
            (
                FieldFilter("age", Operator.LESS_THAN, 22),
                AndFilter(
                    (
                        FieldFilter("age", Operator.GREATER_THAN_OR_EQUALS, 29),
                        FieldFilter("name", Operator.NOT_EQUALS, "Author #10"),
                    )
                ),
            )
        ),
    )
    assert _names(run(_authors(), query, NOW)) == ["Author #1", "Author #9"]


def test_type_mismatch_is_a_non_match():
    query = Query("author", filter=FieldFilter("age", Operator.GREATER_THAN, "21"))
    assert run(_authors(), query, NOW) == []
    query = Query("author", filter=FieldFilter("missing", Operator.EQUALS, 1))
    assert run(_authors(), query, NOW) == []


def test_contains_matches_array_members():
    posts = [
        Content(id="a", slug="a", definition=POST, properties={"tags": ["python", "web"]}),
        Content(id="b", slug="b", definition=POST, properties={"tags": ["go"]}),
        Content(id="c", slug="c", definition=POST, properties={"tags": "python"}),
    ]
    query = Query("post", filter=FieldFilter("tags", Operator.CONTAINS, "python"))
    assert [c.id for c in run(posts, query, NOW)] == ["a"]


def test_only_requested_type_is_scanned():
    contents = _authors() + [
        Content(id="p", slug="p", definition=POST, properties={"name": "Author #1"})
    ]
    query = Query("post")
    assert [c.id for c in run(contents, query, NOW)] == ["p"]


def test_multi_key_sort_and_missing_values_last():
    posts = [
        Content(id="a", slug="a", definition=POST, properties={"rank": 2, "title": "B"}),
        Content(id="b", slug="b", definition=POST, properties={"title": "A"}),
        Content(id="c", slug="c", definition=POST, properties={"rank": 1, "title": "C"}),
        Content(id="d", slug="d", definition=POST, properties={"rank": 2, "title": "A"}),
    ]
    asc = Query("post", order_by=(Order("rank"), Order("title")))
    assert [c.id for c in run(posts, asc, NOW)] == ["c", "d", "a", "b"]

    desc = Query("post", order_by=(Order("rank", Direction.DESC), Order("title")))
    assert [c.id for c in run(posts, desc, NOW)] == ["d", "a", "c", "b"]


def test_now_token_is_injected():
    posts = [
        Content(id="old", slug="old", definition=POST, properties={"published": NOW - 10}),
        Content(id="new", slug="new", definition=POST, properties={"published": NOW + 10}),
    ]
    query = Query(
        "post", filter=FieldFilter("published", Operator.LESS_THAN, "{{date.now}}")
    )
    assert [c.id for c in run(posts, query, NOW)] == ["old"]
    assert [c.id for c in run(posts, query, NOW + 20)] == ["old", "new"]


def test_run_does_not_mutate_input():
    authors = _authors()
    before = list(authors)
    run(authors, Query("author", order_by=(Order("name", Direction.DESC),)), NOW)
    assert authors == before


def test_query_from_dict_and_parameters():
    query = Query.from_dict(
        {
            "contentType": "post",
            "scope": "list",
            "limit": 5,
            "filter": {
                "and": [
                    {"key": "authors", "operator": "contains", "value": "{{id}}"},
                    {"key": "published", "operator": "lessThan", "value": "{{date.now}}"},
                ]
            },
            "orderBy": [{"key": "published", "direction": "desc"}],
        }
    )
    assert query.limit == 5
    assert query.scope == "list"
    assert query.order_by == (Order("published", Direction.DESC),)

    resolved = query.resolve_parameters({"id": "jane"})
    first, second = resolved.filter.filters
    assert first.value == "jane"
    assert second.value == "{{date.now}}"
    assert query.filter.filters[0].value == "{{id}}"


def test_parse_filter_rejects_unknown_shapes():
    with pytest.raises(ValueError):
        parse_filter({"nope": 1})
    with pytest.raises(ValueError):
        parse_filter({"key": "a", "operator": "between", "value": 1})
