import json
import logging

import pytest
from jinja2 import TemplateSyntaxError

from stele.content import Content, ContentDefinition
from stele.output import (
    ContextBundle,
    ContextBundleToHTMLRenderer,
    ContextBundleToJSONRenderer,
    Destination,
    render_bundles,
)
from stele.pipeline import Engine, Pipeline
from stele.protocols import BundleRenderer, TemplateProvider
from stele.templates import TemplateLibrary, render_outline

POST = ContentDefinition(id="post")


def _bundle(content_id="hello", front_matter=None):
    content = Content(
        id=content_id,
        slug=f"posts/{content_id}",
        definition=POST,
        front_matter=front_matter or {},
    )
    context = {"page": {"title": content_id.title(), "html": "<p>Hi</p>"}}
    return ContextBundle(content, context, Destination(f"posts/{content_id}", "index", "html"))


def _templates():
    return TemplateLibrary(
        {
            "post": "<h1>{{ page.title }}</h1>{{ page.html }}",
            "special": "special {{ page.title }}",
            "empty": "",
        }
    )


def test_html_engine_uses_type_template_and_front_matter_override():
    pipeline = Pipeline(
        "html",
        engine=Engine("mustache", {"contentTypes": {"post": {"template": "post"}}}),
    )
    results = render_bundles(
        pipeline,
        [_bundle("hello"), _bundle("other", {"template": "special"})],
        _templates(),
    )
    assert [r.contents for r in results] == ["<h1>Hello</h1><p>Hi</p>", "special Other"]
    assert results[0].destination.relative_path == "posts/hello/index.html"


def test_html_engine_skips_missing_and_empty_templates(caplog):
    pipeline = Pipeline("html", engine=Engine("jinja"))
    bundles = [
        _bundle("none"),
        _bundle("unknown", {"template": "nope"}),
        _bundle("blank", {"template": "empty"}),
        _bundle("ok", {"template": "post"}),
    ]
    with caplog.at_level(logging.WARNING, logger="stele.output"):
        results = render_bundles(pipeline, bundles, _templates())

    assert [r.destination.path for r in results] == ["posts/ok"]
    messages = [r.getMessage() for r in caplog.records]
    assert "Missing template for `posts/none` (type: post)" in messages
    assert sum("Could not get valid HTML" in m for m in messages) == 2


def test_json_engine_encodes_context():
    pipeline = Pipeline("api", engine=Engine("json"))
    (result,) = render_bundles(pipeline, [_bundle()], _templates())
    assert json.loads(result.contents) == {"page": {"title": "Hello", "html": "<p>Hi</p>"}}

    pipeline = Pipeline("api", engine=Engine("context", {"keyPath": "page.title"}))
    (result,) = render_bundles(pipeline, [_bundle()], _templates())
    assert json.loads(result.contents) == "Hello"


def test_unknown_engine_logs_error(caplog):
    pipeline = Pipeline("x", engine=Engine("handlebars"))
    with caplog.at_level(logging.ERROR, logger="stele.output"):
        assert render_bundles(pipeline, [_bundle()], _templates()) == []
    assert "Unknown renderer engine `handlebars`" in caplog.text


def test_renderers_satisfy_protocols():
    pipeline = Pipeline("html")
    assert isinstance(_templates(), TemplateProvider)
    assert isinstance(ContextBundleToHTMLRenderer(pipeline, _templates()), BundleRenderer)
    assert isinstance(ContextBundleToJSONRenderer(pipeline), BundleRenderer)


def test_template_library_outline_filter():
    library = TemplateLibrary({"toc": "{{ outline | outline }}"})
    outline = [
        {
            "level": 2,
            "text": "A & B",
            "fragment": "a-b",
            "children": [{"level": 3, "text": "C", "children": []}],
        }
    ]
    assert library.render("toc", {"outline": outline}) == (
        '<ul><li><a href="#a-b">A &amp; B</a><ul><li>C</li></ul></li></ul>'
    )
    assert "toc" in library
    assert library.render("missing", {}) is None
    assert render_outline([]) == ""


def test_mustache_sections_fail_with_engine_named(caplog):
    pipeline = Pipeline(
        "html",
        engine=Engine("mustache", {"contentTypes": {"post": {"template": "list"}}}),
    )
    templates = TemplateLibrary({"list": "{{#items}}{{name}}{{/items}}"})
    with caplog.at_level(logging.ERROR, logger="stele.output"):
        with pytest.raises(TemplateSyntaxError):
            render_bundles(pipeline, [_bundle()], templates)
    assert "Template `list` for engine `mustache` is not valid Jinja2 syntax" in caplog.text
