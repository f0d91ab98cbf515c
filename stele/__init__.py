"""Stele static site generator.

Stele renders a folder of typed content items through pipelines. Each pipeline
selects content types, resolves a render context for every item (front matter,
typed properties, rendered Markdown, relations and sub-queries) and hands the
resulting bundles to a template or JSON renderer.

The main entry point is the CLI module; :func:`stele.build.build_site` is the
programmatic one.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
