import pytest
import yaml

from stele.content import Content, ContentDefinition
from stele.pipeline import ContentTypes, ContextCategory, Pipeline
from stele.query import FieldFilter, Operator

NOW = 1_700_000_000.0

PIPELINE_YAML = """
contentTypes:
  include: [page, post]
  exclude: [draft]
  lastUpdate: [post]
  filterRules:
    "*": {key: hidden, operator: equals, value: false}
    post: {key: draft, operator: equals, value: false}
scopes:
  post:
    list:
      context: [properties, relations]
      fields: [title, slug]
  "*":
    card:
      context: userDefined
queries:
  featured:
    contentType: post
    scope: card
    filter: {key: featured, operator: equals, value: true}
dataTypes:
  date:
    dateFormats:
      year: "%Y"
      local: {format: "%H:%M", timeZone: Europe/Budapest}
iterators:
  post.pagination:
    contentType: post
    limit: 5
engine:
  id: json
  options:
    keyPath: page
output:
  path: "api/{{slug}}"
  file: data
  ext: json
"""


def test_pipeline_from_yaml():
    pipeline = Pipeline.from_dict(yaml.safe_load(PIPELINE_YAML), id="api")

    assert pipeline.id == "api"
    assert pipeline.content_types.include == ("page", "post")
    assert pipeline.content_types.last_update == ("post",)
    scope = pipeline.get_scope("list", "post")
    assert scope.context == ContextCategory.PROPERTIES | ContextCategory.RELATIONS
    assert scope.fields == ("title", "slug")
    assert pipeline.get_scope("card", "page").context == ContextCategory.USER_DEFINED
    assert pipeline.queries["featured"].scope == "card"
    assert pipeline.date_formats["year"].pattern == "%Y"
    assert pipeline.date_formats["local"].time_zone == "Europe/Budapest"
    assert pipeline.iterators["post.pagination"].limit == 5
    assert pipeline.engine.id == "json"
    assert pipeline.engine.options == {"keyPath": "page"}
    assert (pipeline.output.path, pipeline.output.file, pipeline.output.ext) == (
        "api/{{slug}}",
        "data",
        "json",
    )


def test_pipeline_defaults():
    pipeline = Pipeline.from_dict({}, id="html")
    assert pipeline.engine.id == "mustache"
    assert (pipeline.output.path, pipeline.output.file, pipeline.output.ext) == (
        "{{slug}}",
        "index",
        "html",
    )
    assert pipeline.get_scope("reference", "post").context == (
        ContextCategory.USER_DEFINED | ContextCategory.PROPERTIES
    )


def test_context_category_names():
    assert ContextCategory.from_names("all") == ContextCategory.ALL
    assert ContextCategory.from_names([]) == ContextCategory.NONE
    with pytest.raises(KeyError):
        ContextCategory.from_names(["bogus"])


def test_content_type_allow_list():
    types = ContentTypes(include=("post",), exclude=("post",))
    assert not types.is_allowed("post")
    assert ContentTypes().is_allowed("anything")
    assert not ContentTypes(include=("post",)).is_allowed("page")


def test_filter_rules_keep_matching_contents():
    page = ContentDefinition(id="page")
    post = ContentDefinition(id="post")
    contents = [
        Content(id="a", slug="a", definition=post, properties={"draft": False, "hidden": True}),
        Content(id="b", slug="b", definition=post, properties={"draft": True}),
        Content(id="c", slug="c", definition=page, properties={"hidden": False}),
        Content(id="d", slug="d", definition=page, properties={"hidden": True}),
    ]
    types = ContentTypes(
        filter_rules={
            "*": FieldFilter("hidden", Operator.EQUALS, False),
            "post": FieldFilter("draft", Operator.EQUALS, False),
        }
    )
    assert [c.id for c in types.apply_filter_rules(contents, NOW)] == ["a", "c"]
