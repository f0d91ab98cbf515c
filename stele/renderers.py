"""Markdown renderers for Stele.

Markdown is parsed once with mistune into an AST and the tree is walked by a
small visitor that emits HTML. The visitor owns the site specific rules:

- Level 2 and 3 headings get a slugified ``id``; heading text has ``<`` and
  ``>`` escaped.
- Code escapes ``<`` and ``>`` only. In fenced blocks ``/*!*/`` and ``/*.*/``
  open and close a highlighted span.
- ``#[name]foo`` link targets become named anchors, ``/``-prefixed targets are
  joined to the base URL and anything else that is not relative opens in a
  new tab.
- Image sources resolve against the content item's asset folder.
- Block quotes whose only paragraph starts with a style prefix
  (``NOTE:``) become callouts with a CSS class.
- ``@Name(...)`` block directives render from their declarative records.

Key classes:
- MarkdownToHTMLRenderer: Markdown string to HTML string.
- ContentRenderer: HTML plus reading time and heading outline.
"""

from __future__ import annotations

import html
import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

import mistune

from .directives import BlockDirective, DirectiveArgumentError, block_directives, parse_arguments
from .html_utils import escape_angle_brackets, join_root_url, render_element, resolve_asset
from .utils import replace_tokens, slugify, word_count

logger = logging.getLogger(__name__)

Token = Mapping[str, Any]

ANCHOR_PREFIX = "#[name]"
ID_HEADING_LEVELS = (2, 3)

HIGHLIGHT_MARKERS = {
    "/*!*/": '<span class="highlight">',
    "/*.*/": "</span>",
}

# CSS class -> accepted prefixes
DEFAULT_PARAGRAPH_STYLES: dict[str, list[str]] = {
    "note": ["note"],
    "warning": ["warn", "warning"],
    "tip": ["tip"],
    "important": ["important"],
    "error": ["error", "caution"],
}

MISTUNE_PLUGINS = ["strikethrough", "table", "url"]


def plain_text(tokens: Iterable[Token]) -> str:
    """Concatenate the text of an inline token tree."""
    parts: list[str] = []
    for token in tokens:
        kind = token["type"]
        if kind in ("text", "codespan", "inline_html"):
            parts.append(token.get("raw", ""))
        elif kind in ("softbreak", "linebreak"):
            parts.append(" ")
        elif "children" in token:
            parts.append(plain_text(token["children"]))
    return "".join(parts)


class _HTMLVisitor:
    """Walks a mistune AST and renders HTML.

    Every ``visit_*`` method receives the token and the tuple of its
    ancestors, nearest last.
    """

    def __init__(
        self,
        directives: Mapping[str, BlockDirective],
        paragraph_styles: Mapping[str, Sequence[str]],
        slug: str,
        assets_path: str,
        base_url: str,
    ):
        self.directives = directives
        self.paragraph_styles = paragraph_styles
        self.slug = slug
        self.assets_path = assets_path
        self.base_url = base_url

    def render(self, tokens: Iterable[Token], parents: tuple[Token, ...] = ()) -> str:
        return "".join(self.visit(token, parents) for token in tokens)

    def visit(self, token: Token, parents: tuple[Token, ...]) -> str:
        method = getattr(self, f"visit_{token['type']}", None)
        if method is None:
            return self.children(token, parents)
        return method(token, parents)

    def children(self, token: Token, parents: tuple[Token, ...]) -> str:
        return self.render(token.get("children", ()), parents + (token,))

    # text

    def visit_text(self, token: Token, parents: tuple[Token, ...]) -> str:
        if _inside(parents, "heading"):
            return escape_angle_brackets(token["raw"])
        return token["raw"]

    def visit_inline_html(self, token: Token, parents: tuple[Token, ...]) -> str:
        return self.visit_text(token, parents)

    def visit_block_html(self, token: Token, parents: tuple[Token, ...]) -> str:
        return token["raw"]

    def visit_blank_line(self, token: Token, parents: tuple[Token, ...]) -> str:
        return ""

    def visit_softbreak(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("br")

    visit_linebreak = visit_softbreak

    def visit_thematic_break(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("hr")

    def visit_emphasis(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("em", contents=self.children(token, parents))

    def visit_strong(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("strong", contents=self.children(token, parents))

    def visit_strikethrough(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("s", contents=self.children(token, parents))

    # code

    def visit_codespan(self, token: Token, parents: tuple[Token, ...]) -> str:
        code = html.unescape(token["raw"])
        return render_element("code", contents=escape_angle_brackets(code))

    def visit_block_code(self, token: Token, parents: tuple[Token, ...]) -> str:
        attributes = []
        info = (token.get("attrs") or {}).get("info") or ""
        if info.strip():
            language = info.split()[0].lower()
            attributes.append(("class", f"language-{language}"))
        code = replace_tokens(escape_angle_brackets(token["raw"]), HIGHLIGHT_MARKERS)
        return render_element("pre", contents=render_element("code", attributes, code))

    # blocks

    def visit_paragraph(self, token: Token, parents: tuple[Token, ...]) -> str:
        contents = self.children(token, parents)
        if _inside(parents, "list_item"):
            return contents
        parent = parents[-1] if parents else None
        if parent is not None and parent["type"] == "block_directive":
            directive = self.directives.get(parent["attrs"]["name"].lower())
            if directive is not None and directive.removes_child_paragraph:
                return contents
        return render_element("p", contents=contents)

    def visit_block_text(self, token: Token, parents: tuple[Token, ...]) -> str:
        return self.children(token, parents)

    def visit_heading(self, token: Token, parents: tuple[Token, ...]) -> str:
        level = token["attrs"]["level"]
        attributes = []
        if level in ID_HEADING_LEVELS:
            attributes.append(("id", slugify(plain_text(token["children"]))))
        return render_element(f"h{level}", attributes, self.children(token, parents))

    def visit_list(self, token: Token, parents: tuple[Token, ...]) -> str:
        attrs = token.get("attrs") or {}
        if not attrs.get("ordered"):
            return render_element("ul", contents=self.children(token, parents))
        attributes = []
        start = attrs.get("start")
        if start is not None and start != 1:
            attributes.append(("start", str(start)))
        return render_element("ol", attributes, self.children(token, parents))

    def visit_list_item(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("li", contents=self.children(token, parents))

    def visit_block_quote(self, token: Token, parents: tuple[Token, ...]) -> str:
        blocks = [c for c in token.get("children", ()) if c["type"] != "blank_line"]
        if len(blocks) == 1 and blocks[0]["type"] == "paragraph":
            callout = self._callout(blocks[0])
            if callout is not None:
                css_class, paragraph = callout
                contents = self.visit(paragraph, parents + (token,))
                return render_element("blockquote", [("class", css_class)], contents)
        return render_element("blockquote", contents=self.children(token, parents))

    def _callout(self, paragraph: Token) -> tuple[str, Token] | None:
        """Match a paragraph against the style prefixes.

        Returns:
            The CSS class and the paragraph with the prefix removed, or None.
        """
        children = list(paragraph.get("children", ()))
        if not children or children[0]["type"] != "text":
            return None
        first = children[0]["raw"]
        lowered = first.lower()
        for css_class, prefixes in self.paragraph_styles.items():
            for prefix in prefixes:
                marker = f"{prefix.lower()}:"
                if lowered.startswith(marker):
                    stripped = {**children[0], "raw": first[len(marker) :].lstrip()}
                    return css_class, {**paragraph, "children": [stripped, *children[1:]]}
        return None

    # links and images

    def visit_link(self, token: Token, parents: tuple[Token, ...]) -> str:
        destination = (token.get("attrs") or {}).get("url") or ""
        decoded = unquote(destination)
        attributes = []
        if decoded.startswith(ANCHOR_PREFIX):
            attributes.append(("name", decoded[len(ANCHOR_PREFIX) :]))
        elif destination.startswith("/"):
            attributes.append(("href", join_root_url(self.base_url, destination)))
        else:
            attributes.append(("href", destination))
        if destination and not destination.startswith((".", "/", "#")):
            attributes.append(("target", "_blank"))
        return render_element("a", attributes, self.children(token, parents))

    def visit_image(self, token: Token, parents: tuple[Token, ...]) -> str:
        attrs = token.get("attrs") or {}
        source = attrs.get("url") or ""
        if not source:
            return ""
        attributes = [
            ("src", resolve_asset(source, self.base_url, self.assets_path, self.slug)),
            ("alt", plain_text(token.get("children", ()))),
        ]
        if attrs.get("title"):
            attributes.append(("title", attrs["title"]))
        return render_element("img", attributes)

    # tables

    def visit_table(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("table", contents=self.children(token, parents))

    def visit_table_head(self, token: Token, parents: tuple[Token, ...]) -> str:
        row = render_element("tr", contents=self.children(token, parents))
        return render_element("thead", contents=row)

    def visit_table_body(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("tbody", contents=self.children(token, parents))

    def visit_table_row(self, token: Token, parents: tuple[Token, ...]) -> str:
        return render_element("tr", contents=self.children(token, parents))

    def visit_table_cell(self, token: Token, parents: tuple[Token, ...]) -> str:
        name = "th" if (token.get("attrs") or {}).get("head") else "td"
        return render_element(name, contents=self.children(token, parents))

    # directives

    def visit_block_directive(self, token: Token, parents: tuple[Token, ...]) -> str:
        name = token["attrs"]["name"]
        try:
            arguments = parse_arguments(token["attrs"]["arguments"])
        except DirectiveArgumentError as exc:
            logger.warning("%s (block directive `%s`)", exc, name)
            return ""

        directive = self.directives.get(name.lower())
        if directive is None:
            logger.warning("Unrecognized block directive: `%s`", name)
            return ""

        missing = directive.missing_parameters(arguments)
        if missing:
            for label in missing:
                logger.warning(
                    "Parameter `%s` for `%s` is required.", label, directive.name
                )
            return ""

        required_parent = directive.requires_parent_directive
        if required_parent:
            parent = parents[-1] if parents else None
            if (
                parent is None
                or parent["type"] != "block_directive"
                or parent["attrs"]["name"].lower() != required_parent.lower()
            ):
                logger.warning(
                    "Block directive `%s` requires parent block `%s`",
                    directive.name,
                    required_parent,
                )
                return ""

        contents = self.children(token, parents)
        if directive.output is not None:
            return directive.render_output(arguments, contents)
        if directive.tag:
            return render_element(directive.tag, directive.render_attributes(arguments), contents)
        return ""


def _inside(parents: tuple[Token, ...], kind: str) -> bool:
    return any(parent["type"] == kind for parent in parents)


class MarkdownToHTMLRenderer:
    """Renders Markdown to HTML.

    Attributes:
        directives: Block directives by lower-cased name.
        paragraph_styles: CSS class to accepted callout prefixes.
    """

    def __init__(
        self,
        directives: Iterable[BlockDirective] = (),
        paragraph_styles: Mapping[str, Sequence[str]] | None = None,
    ):
        self.directives = {d.key: d for d in directives}
        self.paragraph_styles = (
            paragraph_styles if paragraph_styles is not None else DEFAULT_PARAGRAPH_STYLES
        )
        plugins: list[Any] = list(MISTUNE_PLUGINS)
        if self.directives:
            plugins.append(block_directives)
        self._markdown = mistune.create_markdown(renderer="ast", plugins=plugins)

    def parse(self, markup: str) -> list[dict[str, Any]]:
        """Parse Markdown into mistune AST tokens."""
        return self._markdown(markup)

    def render(self, markup: str, slug: str, assets_path: str, base_url: str) -> str:
        """Render Markdown to HTML.

        Args:
            markup: Markdown source.
            slug: Slug of the content item, used for image sources.
            assets_path: Name of the per-content assets folder.
            base_url: Site base URL.

        Returns:
            Rendered HTML.
        """
        return self.render_tokens(self.parse(markup), slug, assets_path, base_url)

    def render_tokens(
        self, tokens: Iterable[Token], slug: str, assets_path: str, base_url: str
    ) -> str:
        visitor = _HTMLVisitor(
            self.directives, self.paragraph_styles, slug, assets_path, base_url
        )
        return visitor.render(tokens)


@dataclass
class Heading:
    level: int
    text: str
    fragment: str | None = None
    children: list[Heading] = field(default_factory=list)

    def to_context(self) -> dict[str, Any]:
        item: dict[str, Any] = {"level": self.level, "text": self.text}
        if self.fragment is not None:
            item["fragment"] = self.fragment
        item["children"] = [child.to_context() for child in self.children]
        return item


def collect_headings(tokens: Iterable[Token], levels: Sequence[int]) -> list[Heading]:
    """Collect headings with an allowed level, in document order."""
    headings: list[Heading] = []
    for token in tokens:
        if token["type"] == "heading":
            level = token["attrs"]["level"]
            if level in levels:
                text = plain_text(token["children"])
                fragment = slugify(text) if level in ID_HEADING_LEVELS else None
                headings.append(Heading(level, text, fragment))
        elif token["type"] in ("block_quote", "block_directive"):
            headings.extend(collect_headings(token.get("children", ()), levels))
    return headings


def build_outline(headings: Iterable[Heading]) -> list[Heading]:
    """Nest a flat heading list by level.

    A heading becomes a child of the closest preceding heading with a lower
    level.
    """
    roots: list[Heading] = []
    stack: list[Heading] = []
    for heading in headings:
        while stack and stack[-1].level >= heading.level:
            stack.pop()
        (stack[-1].children if stack else roots).append(heading)
        stack.append(heading)
    return roots


@dataclass(frozen=True)
class RenderedContent:
    html: str
    reading_time: int
    outline: list[dict[str, Any]]

    def to_context(self) -> dict[str, Any]:
        return {
            "html": self.html,
            "readingTime": self.reading_time,
            "outline": self.outline,
        }


class ContentRenderer:
    """Renders a content body into HTML, reading time and outline.

    Attributes:
        markdown: Markdown to HTML renderer.
        words_per_minute: Reading speed used for the reading time estimate.
        outline_levels: Heading levels included in the outline.
    """

    def __init__(
        self,
        markdown: MarkdownToHTMLRenderer,
        words_per_minute: int = 238,
        outline_levels: Sequence[int] = (2, 3),
    ):
        self.markdown = markdown
        self.words_per_minute = max(1, words_per_minute)
        self.outline_levels = tuple(outline_levels)

    def render(self, markup: str, slug: str, assets_path: str, base_url: str) -> RenderedContent:
        tokens = self.markdown.parse(markup)
        headings = collect_headings(tokens, self.outline_levels)
        return RenderedContent(
            html=self.markdown.render_tokens(tokens, slug, assets_path, base_url),
            reading_time=math.ceil(word_count(_document_text(tokens)) / self.words_per_minute),
            outline=[h.to_context() for h in build_outline(headings)],
        )


def _document_text(tokens: Iterable[Token]) -> str:
    parts: list[str] = []
    for token in tokens:
        if "raw" in token:
            parts.append(token["raw"])
        if "children" in token:
            parts.append(_document_text(token["children"]))
    return " ".join(parts)
