import logging
import textwrap

import pytest

from stele.content import (
    ContentDefinition,
    FileContentLoader,
    PropertyDefinition,
    PropertyType,
    RelationDefinition,
)
from stele.errors import ConfigError, FrontMatterError
from stele.extractors import extract_frontmatter
from stele.protocols import ContentLoader


def _write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
    return path


def _definitions():
    return {
        "page": ContentDefinition(id="page"),
        "post": ContentDefinition.from_dict(
            "post",
            {
                "properties": {
                    "title": {"type": "string", "required": True},
                    "rating": {"type": "double"},
                    "views": {"type": "int"},
                    "featured": {"type": "bool"},
                    "published": {"type": "date", "format": "%d/%m/%Y"},
                    "tags": {"type": "array"},
                },
                "relations": {"authors": {"references": "author", "order": {"key": "name"}}},
                "queries": {"related": {"contentType": "post", "limit": 3}},
            },
        ),
    }


def test_definition_from_dict():
    post = _definitions()["post"]
    assert post.properties["rating"] == PropertyDefinition(PropertyType.FLOAT)
    assert post.properties["title"].required is True
    assert post.relations["authors"].references == "author"
    assert post.relations["authors"].order.key == "name"
    assert isinstance(post.relations["authors"], RelationDefinition)
    assert post.queries["related"].limit == 3


def test_extract_frontmatter():
    data, body = extract_frontmatter("---\ntitle: Hi\n---\n\nBody", None)
    assert data == {"title": "Hi"}
    assert body == "Body"
    assert extract_frontmatter("No front matter", None) == ({}, "No front matter")
    with pytest.raises(FrontMatterError):
        extract_frontmatter("---\n- a\n---\n", None)


def test_loader_converts_properties(tmp_path):
    _write(
        tmp_path,
        "blog/first/index.md",
        """
        ---
        type: post
        title: First
        rating: "4.5"
        views: 10
        featured: "yes"
        published: 02/01/2025
        tags: solo
        authors: jane
        image: ./assets/cover.png
        extra: value
        ---
        Hello
        """,
    )
    loader = FileContentLoader(tmp_path, _definitions(), base_url="http://h/")
    assert isinstance(loader, ContentLoader)
    (content,) = loader.load()

    assert content.id == "blog-first"
    assert content.slug == "blog/first"
    assert content.markdown == "Hello\n"
    assert content.properties["rating"] == 4.5
    assert content.properties["views"] == 10
    assert content.properties["featured"] is True
    assert content.properties["tags"] == ["solo"]
    assert content.relations == {"authors": ["jane"]}
    assert content.front_matter["image"] == "http://h/assets/blog/first/cover.png"
    assert content.user_defined == {"image": "http://h/assets/blog/first/cover.png", "extra": "value"}
    assert content.query_fields["id"] == "blog-first"
    assert content.query_fields["authors"] == ["jane"]
    assert content.last_update > 0


def test_loader_warns_about_bad_properties(tmp_path, caplog):
    _write(
        tmp_path,
        "x/index.md",
        """
        ---
        type: post
        views: many
        ---
        """,
    )
    with caplog.at_level(logging.WARNING, logger="stele.content"):
        (content,) = FileContentLoader(tmp_path, _definitions()).load()
    assert "views" not in content.properties
    assert "title" not in content.properties
    assert "Missing required property `title`" in caplog.text
    assert "Invalid int value for property `views`" in caplog.text


def test_yaml_index_overrides_markdown_front_matter(tmp_path):
    _write(tmp_path, "about/index.md", "---\ntitle: From markdown\nslug: about-us\n---\nBody\n")
    _write(tmp_path, "about/index.yaml", "title: From yaml\nid: about\n")
    (content,) = FileContentLoader(tmp_path, _definitions()).load()
    assert content.id == "about"
    assert content.slug == "about-us"
    assert content.user_defined["title"] == "From yaml"
    assert content.markdown == "Body\n"


def test_root_folder_is_the_index_page(tmp_path):
    _write(tmp_path, "index.md", "# Home\n")
    (content,) = FileContentLoader(tmp_path, _definitions()).load()
    assert content.slug == ""
    assert content.id == "index"


def test_duplicate_ids_are_rejected(tmp_path):
    _write(tmp_path, "a/index.yaml", "id: same\n")
    _write(tmp_path, "b/index.yaml", "id: same\n")
    with pytest.raises(ConfigError):
        FileContentLoader(tmp_path, _definitions()).load()
