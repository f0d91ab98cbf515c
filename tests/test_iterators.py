from stele.content import Content, ContentDefinition
from stele.iterators import IteratorResolver
from stele.pipeline import ContentTypes, Pipeline
from stele.query import FieldFilter, Operator, Order, Query

NOW = 1_700_000_000.0

PAGE = ContentDefinition(id="page")
POST = ContentDefinition(id="post")


def _contents(count=5):
    posts = [
        Content(id=f"post-{i}", slug=f"posts/post-{i}", definition=POST, properties={"n": i})
        for i in range(1, count + 1)
    ]
    listing = Content(
        id="blog-{{post.pagination}}",
        slug="blog/{{post.pagination}}",
        definition=PAGE,
    )
    about = Content(id="about", slug="about", definition=PAGE)
    return [about, listing, *posts]


def _pipeline(limit=2):
    return Pipeline(
        "html",
        iterators={
            "post.pagination": Query("post", order_by=(Order("n"),), limit=limit)
        },
    )


def test_iterator_page_is_expanded_in_place():
    resolved = IteratorResolver("http://h/").resolve(_contents(), _pipeline(), NOW)
    slugs = [c.slug for c in resolved]
    assert slugs[:4] == ["about", "blog/1", "blog/2", "blog/3"]
    assert len(resolved) == 3 + 1 + 5

    first, second, third = resolved[1:4]
    assert first.id == "blog-1"
    assert [c.id for c in first.iterator_info.items] == ["post-1", "post-2"]
    assert [c.id for c in third.iterator_info.items] == ["post-5"]
    assert second.iterator_info.current == 2
    assert second.iterator_info.total == 3
    assert second.iterator_info.limit == 2
    assert [link["isCurrent"] for link in second.iterator_info.links] == [False, True, False]
    assert second.iterator_info.links[0]["permalink"] == "http://h/blog/1/"


def test_empty_iterator_still_has_one_page():
    pipeline = Pipeline(
        "html",
        iterators={
            "post.pagination": Query(
                "post", filter=FieldFilter("n", Operator.GREATER_THAN, 100), limit=2
            )
        },
    )
    resolved = IteratorResolver("").resolve(_contents(), pipeline, NOW)
    pages = [c for c in resolved if c.iterator_info is not None]
    assert len(pages) == 1
    assert pages[0].slug == "blog/1"
    assert pages[0].iterator_info.items == ()


def test_default_limit_and_untouched_contents():
    resolved = IteratorResolver("").resolve(_contents(3), _pipeline(limit=None), NOW)
    pages = [c for c in resolved if c.iterator_info is not None]
    assert len(pages) == 1
    assert pages[0].iterator_info.limit == 10
    assert resolved[0].iterator_info is None


def test_filter_rules_run_before_iterators():
    pipeline = Pipeline(
        "html",
        content_types=ContentTypes(
            filter_rules={"post": FieldFilter("n", Operator.LESS_THAN_OR_EQUALS, 2)}
        ),
        iterators=_pipeline(limit=1).iterators,
    )
    filtered = pipeline.content_types.apply_filter_rules(_contents(), NOW)
    resolved = IteratorResolver("").resolve(filtered, pipeline, NOW)
    pages = [c for c in resolved if c.iterator_info is not None]
    assert [p.slug for p in pages] == ["blog/1", "blog/2"]
