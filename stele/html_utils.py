"""HTML utility functions for Stele.

This module provides HTML string helpers: angle bracket escaping, URL
joining, asset path resolution and a tiny element builder used by the
Markdown transformer.

Functions:
    escape_angle_brackets: Escape only ``<`` and ``>``.
    join_root_url: Join a base URL with a path.
    resolve_asset: Resolve an image or asset source for a content item.
    render_element: Render an HTML element from a name, attributes and contents.
"""

from __future__ import annotations

from collections.abc import Iterable

# Void elements rendered without a closing tag
VOID_ELEMENTS = frozenset({"br", "hr", "img", "input", "meta", "link", "source"})

# Sources that are never rewritten
_EXTERNAL_PREFIXES = (
    "http://",
    "https://",
    "//",
    "data:",
    "mailto:",
    "#",
)


def escape_angle_brackets(text: str) -> str:
    """Escape ``<`` and ``>`` but leave ``&`` alone.

    Examples:
        >>> escape_angle_brackets("a -> <b> &amp;")
        'a -&gt; &lt;b&gt; &amp;'
    """
    return text.replace("<", "&lt;").replace(">", "&gt;")


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'

        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path if path.startswith("/") else f"/{path}"
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def resolve_asset(source: str, base_url: str, assets_path: str, slug: str) -> str:
    """Resolve an asset source referenced from a content item.

    - External URLs, anchors and templated values are returned unchanged.
    - Root-relative sources (``/logo.png``) are joined to the base URL.
    - Every other source is relative to the item's own asset folder and
      resolves to ``<base_url>/<assets_path>/<slug>/<source>``. A leading
      ``./`` and a leading ``<assets_path>/`` segment are dropped first, so
      ``./assets/a.png`` and ``a.png`` point at the same file.

    Args:
        source: Source as written in the content.
        base_url: Site base URL.
        assets_path: Name of the per-content assets folder.
        slug: Slug of the content item.

    Returns:
        Resolved URL.
    """
    if not source or source.startswith(_EXTERNAL_PREFIXES) or "{{" in source:
        return source
    if source.startswith("/"):
        return join_root_url(base_url, source)
    relative = source
    while relative.startswith("./"):
        relative = relative[2:]
    assets = assets_path.strip("/")
    if assets and relative.startswith(f"{assets}/"):
        relative = relative[len(assets) + 1 :]
    parts = [p for p in (assets, slug.strip("/"), relative) if p]
    return join_root_url(base_url, "/".join(parts))


def render_element(
    name: str,
    attributes: Iterable[tuple[str, str]] = (),
    contents: str = "",
) -> str:
    """Render a single HTML element.

    Attribute values have their quotes escaped; contents are inserted as-is.
    Void elements (``br``, ``img`` ...) are rendered without a closing tag.

    Args:
        name: Tag name.
        attributes: Ordered ``(key, value)`` pairs.
        contents: Inner HTML.

    Returns:
        The element as an HTML string.
    """
    attrs = "".join(
        f' {key}="{value.replace(chr(34), "&quot;")}"' for key, value in attributes
    )
    if name in VOID_ELEMENTS:
        return f"<{name}{attrs}>"
    return f"<{name}{attrs}>{contents}</{name}>"
