"""Template rendering for Stele.

Templates are loaded into memory up front and rendered with Jinja2. Template
ids are dotted paths relative to the templates folder without the extension,
so ``templates/partials/post-card.html`` is ``partials.post-card``.

Key class:
- TemplateLibrary: Renders templates by id from an in-memory mapping.

Key function:
- render_outline: Render a content outline as nested HTML lists.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from jinja2 import DictLoader, Environment, TemplateNotFound
from markupsafe import Markup, escape

logger = logging.getLogger(__name__)

__all__ = ["TemplateLibrary", "render_outline"]


def render_outline(outline: Sequence[Mapping[str, Any]] | None) -> Markup:
    """Render a nested outline as ``<ul><li><a href="#id">text</a></li></ul>``.

    Items without a ``fragment`` are listed as plain text.

    Args:
        outline: Outline items as produced by the content renderer.

    Returns:
        Markup-safe HTML string, or empty Markup if there are no items.
    """
    if not outline:
        return Markup("")

    parts: list[str] = ["<ul>"]
    for item in outline:
        text = escape(item.get("text", ""))
        fragment = item.get("fragment")
        if fragment:
            parts.append(f'<li><a href="#{escape(fragment)}">{text}</a>')
        else:
            parts.append(f"<li>{text}")
        parts.append(render_outline(item.get("children")))
        parts.append("</li>")
    parts.append("</ul>")
    return Markup("".join(parts))


class TemplateLibrary:
    """Renders templates from an in-memory id to source mapping.

    Every template engine id (``mustache`` and ``jinja``) is served by Jinja2,
    so templates must use Jinja syntax. Mustache sections such as
    ``{{#items}}`` are template syntax errors.

    Attributes:
        templates: Template sources by id.
        env: Jinja2 environment.
    """

    def __init__(self, templates: Mapping[str, str]):
        self.templates = dict(templates)
        self.env = Environment(
            loader=DictLoader(self.templates),
            autoescape=False,
        )
        self.env.filters["outline"] = render_outline
        self.env.globals["render_outline"] = render_outline

    def __contains__(self, template_id: str) -> bool:
        return template_id in self.templates

    def render(self, template_id: str, context: Mapping[str, Any]) -> str | None:
        """Render a template by id.

        HTML in the context (such as ``page.contents.html``) is inserted as-is;
        templates escape nothing unless they ask for it with ``|e``.

        Args:
            template_id: Template identifier.
            context: Template context.

        Returns:
            Rendered text, or None if the template does not exist.
        """
        try:
            template = self.env.get_template(template_id)
        except TemplateNotFound:
            logger.debug("Template not found: %s", template_id)
            return None
        return template.render(**context)
