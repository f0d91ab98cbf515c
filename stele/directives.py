"""Custom block directives for Stele Markdown.

Block directives extend Markdown with reusable HTML snippets::

    @Grid(columns: 3) {
        @Column {
            Some **Markdown** here.
        }
    }

Each directive is a declarative record loaded from ``blocks/*.yaml``. A
record either carries an ``output`` template with ``{{param}}`` tokens and the
reserved ``{{contents}}`` token, or a ``tag`` with templated ``attributes``
that wraps the rendered children::

    name: Grid
    parameters:
      - label: columns
        default: "2"
    tag: div
    attributes:
      - name: class
        value: "grid grid-{{columns}}"

The :func:`block_directives` mistune plugin turns directive lines into
``block_directive`` AST tokens; rendering happens in
:mod:`stele.renderers`.
"""

from __future__ import annotations

import re
import textwrap
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .utils import replace_tokens

DIRECTIVE_PATTERN = (
    r"^ {0,3}@(?P<directive_name>[A-Za-z][\w-]*)"
    r"(?:\((?P<directive_args>[^\n]*)\))?"
    r"[ \t]*(?P<directive_open>\{)?[ \t]*$"
)

_OPENER_RE = re.compile(r"^\s*@[A-Za-z][\w-]*(?:\([^\n]*\))?[ \t]*\{[ \t]*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")

_ARGUMENT_RE = re.compile(
    r'\s*(?P<label>[A-Za-z_][\w-]*)\s*[:=]\s*'
    r'(?:"(?P<quoted>(?:[^"\\]|\\.)*)"|(?P<bare>[^,"]*?))'
    r"\s*(?:,|$)"
)
_ESCAPE_RE = re.compile(r"\\(.)")


class DirectiveArgumentError(ValueError):
    """Raised when directive argument text cannot be parsed."""


@dataclass(frozen=True)
class DirectiveParameter:
    label: str
    required: bool = False
    default: str | None = None


@dataclass(frozen=True)
class DirectiveAttribute:
    name: str
    value: str


@dataclass(frozen=True)
class BlockDirective:
    """A custom block directive definition.

    Attributes:
        name: Directive name, matched case-insensitively.
        parameters: Declared parameters.
        requires_parent_directive: Name of the directive this one must be
            nested in directly.
        removes_child_paragraph: Render direct paragraph children without
            ``<p>``.
        output: Output template; wins over ``tag``.
        tag: Element name wrapping the rendered children.
        attributes: Attributes of the ``tag`` element.
    """

    name: str
    parameters: tuple[DirectiveParameter, ...] = ()
    requires_parent_directive: str | None = None
    removes_child_paragraph: bool = False
    output: str | None = None
    tag: str | None = None
    attributes: tuple[DirectiveAttribute, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BlockDirective:
        return cls(
            name=str(data["name"]),
            parameters=tuple(
                DirectiveParameter(
                    label=str(p["label"]),
                    required=bool(p.get("required", False)),
                    default=None if p.get("default") is None else str(p["default"]),
                )
                for p in data.get("parameters") or ()
            ),
            requires_parent_directive=data.get("requiresParentDirective"),
            removes_child_paragraph=bool(data.get("removesChildParagraph", False)),
            output=data.get("output"),
            tag=data.get("tag"),
            attributes=tuple(
                DirectiveAttribute(name=str(a["name"]), value=str(a["value"]))
                for a in data.get("attributes") or ()
            ),
        )

    @property
    def key(self) -> str:
        return self.name.lower()

    def missing_parameters(self, arguments: Mapping[str, str]) -> list[str]:
        """Return labels of required parameters absent from ``arguments``."""
        return [p.label for p in self.parameters if p.required and p.label not in arguments]

    def template_values(self, arguments: Mapping[str, str]) -> dict[str, str]:
        """Map ``{{label}}`` tokens to argument values, defaults or ``""``."""
        values: dict[str, str] = {}
        for p in self.parameters:
            value = arguments.get(p.label)
            if value is None:
                value = p.default if p.default is not None else ""
            values[f"{{{{{p.label}}}}}"] = value
        return values

    def render_output(self, arguments: Mapping[str, str], contents: str) -> str:
        """Fill the ``output`` template."""
        values = self.template_values(arguments)
        values["{{contents}}"] = contents
        return replace_tokens(self.output or "", values)

    def render_attributes(self, arguments: Mapping[str, str]) -> list[tuple[str, str]]:
        """Return the ``tag`` attributes with parameter tokens filled in."""
        values = self.template_values(arguments)
        return [(a.name, replace_tokens(a.value, values)) for a in self.attributes]


def parse_arguments(text: str | None) -> dict[str, str]:
    """Parse directive argument text.

    Accepts ``label: value`` or ``label = value`` pairs separated by commas.
    Values may be double quoted; inside quotes a backslash escapes the next
    character. When a label repeats, the first value wins.

    Args:
        text: Text between the directive's parentheses.

    Returns:
        Mapping of label to value.

    Raises:
        DirectiveArgumentError: If the text is not a valid argument list.

    Examples:
        >>> parse_arguments('columns: 3, title: "a, b"')
        {'columns': '3', 'title': 'a, b'}
    """
    arguments: dict[str, str] = {}
    if not text:
        return arguments
    pos = 0
    while pos < len(text):
        if not text[pos:].strip():
            break
        match = _ARGUMENT_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise DirectiveArgumentError(
                f"Invalid directive arguments near `{text[pos:].strip()}`"
            )
        quoted = match.group("quoted")
        if quoted is not None:
            value = _ESCAPE_RE.sub(r"\1", quoted)
        else:
            value = match.group("bare").strip()
        arguments.setdefault(match.group("label"), value)
        pos = match.end()
    return arguments


def _find_body_end(lines: list[str]) -> int:
    """Return the index of the line closing a directive body, or -1."""
    depth = 1
    fence: str | None = None
    for index, line in enumerate(lines):
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
            continue
        if fence is not None:
            continue
        if line.strip() == "}":
            depth -= 1
            if depth == 0:
                return index
            continue
        if _OPENER_RE.match(line):
            depth += 1
    return -1


def parse_block_directive(block, m, state):
    """Parse a directive line and its optional ``{ ... }`` body."""
    name = m.group("directive_name")
    arguments = m.group("directive_args")
    has_body = m.group("directive_open") is not None
    if arguments is None and not has_body:
        return None

    end_pos = m.end() + 1
    body = ""
    if has_body:
        start = end_pos
        rest = state.src[start:]
        lines = rest.splitlines(keepends=True)
        closing = _find_body_end(lines)
        if closing < 0:
            body = rest
            end_pos = len(state.src)
        else:
            body = "".join(lines[:closing])
            end_pos = start + sum(len(line) for line in lines[: closing + 1])

    children = []
    if body.strip():
        child = state.child_state(textwrap.dedent(body).rstrip("\n") + "\n")
        block.parse(child)
        children = child.tokens

    state.append_token(
        {
            "type": "block_directive",
            "attrs": {"name": name, "arguments": arguments or ""},
            "children": children,
        }
    )
    return end_pos


def block_directives(md):
    """Mistune plugin adding ``@Name(args) { ... }`` block directives.

    Usage::

        markdown = mistune.create_markdown(renderer="ast", plugins=[block_directives])
    """
    md.block.register("block_directive", DIRECTIVE_PATTERN, parse_block_directive)
