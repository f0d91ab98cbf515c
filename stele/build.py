"""Site building functionality for Stele.

This module runs every pipeline over a content snapshot and writes the
results to disk.

Key classes:
- Project: Everything loaded from a project folder.
- SiteRenderer: Renders all pipelines of a project into results.
- FileOutputSink: Writes results below an output directory.

Key functions:
- load_project: Load configuration, definitions, templates and contents.
- build_site: Main function to build the entire site.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import TemplateError, TemplateSyntaxError

from . import __version__
from .config import (
    Config,
    load_block_directives,
    load_config,
    load_definitions,
    load_pipelines,
    load_templates,
)
from .content import Content, ContentDefinition, FileContentLoader
from .context import ContextResolver
from .directives import BlockDirective
from .errors import BuildError
from .iterators import IteratorResolver
from .output import PipelineResult, render_bundles
from .pipeline import Pipeline
from .protocols import TemplateProvider
from .query import Direction, Order, Query, run
from .renderers import ContentRenderer, MarkdownToHTMLRenderer
from .templates import TemplateLibrary
from .utils import ensure_clean_dir, merge_dicts

logger = logging.getLogger(__name__)

GENERATOR = {"name": "stele", "version": __version__}


@dataclass
class Project:
    """A loaded project.

    Attributes:
        root: Project folder.
        config: Site settings.
        definitions: Content types by id.
        pipelines: Pipelines in file name order.
        directives: Block directives.
        templates: Template sources by id.
        contents: Content snapshot.
    """

    root: Path
    config: Config
    definitions: dict[str, ContentDefinition] = field(default_factory=dict)
    pipelines: list[Pipeline] = field(default_factory=list)
    directives: list[BlockDirective] = field(default_factory=list)
    templates: dict[str, str] = field(default_factory=dict)
    contents: list[Content] = field(default_factory=list)


def load_project(project_root: Path, base_url: str | None = None) -> Project:
    """Load a project folder.

    Args:
        project_root: Root directory of the project.
        base_url: Optional base URL overriding the configured one.

    Returns:
        The loaded project.

    Raises:
        ConfigError: If a configuration file is invalid.
        FrontMatterError: If a content file has invalid front matter.
    """
    config = load_config(project_root)
    if base_url is not None:
        config = replace(config, base_url=base_url)
    definitions = load_definitions(project_root)
    loader = FileContentLoader(
        project_root / "contents",
        definitions,
        base_url=config.base_url,
        assets_path=config.assets_path,
        time_zone=config.time_zone,
    )
    return Project(
        root=project_root,
        config=config,
        definitions=definitions,
        pipelines=load_pipelines(project_root),
        directives=load_block_directives(project_root),
        templates=load_templates(project_root),
        contents=loader.load(),
    )


class SiteRenderer:
    """Renders every pipeline of a project.

    Attributes:
        config: Site settings.
        pipelines: Pipelines to run.
        contents: Content snapshot.
        templates: Template provider for template engines.
        directives: Block directives for Markdown rendering.
    """

    def __init__(
        self,
        config: Config,
        pipelines: Sequence[Pipeline],
        contents: Sequence[Content],
        templates: TemplateProvider,
        directives: Sequence[BlockDirective] = (),
    ):
        self.config = config
        self.pipelines = list(pipelines)
        self.contents = list(contents)
        self.templates = templates
        self.content_renderer = ContentRenderer(
            MarkdownToHTMLRenderer(directives, config.renderer.paragraph_styles),
            words_per_minute=config.renderer.words_per_minute,
            outline_levels=config.renderer.outline_levels,
        )

    def site_context(
        self, resolver: ContextResolver, pipeline: Pipeline, now: float, last_update: float
    ) -> dict[str, Any]:
        """Return the ``site`` block shared by every bundle of a pipeline."""
        return merge_dicts(
            self.config.user_defined,
            {
                "baseUrl": self.config.base_url,
                "name": self.config.name,
                "locale": self.config.locale,
                "timeZone": self.config.time_zone,
                "generation": resolver.format_date(pipeline, now),
                "generator": dict(GENERATOR),
                "lastUpdate": resolver.format_date(pipeline, last_update),
            },
        )

    @staticmethod
    def last_content_update(
        contents: Sequence[Content], pipeline: Pipeline, now: float
    ) -> float | None:
        """Return the most recent update among the pipeline's ``lastUpdate`` types."""
        types = {c.definition.id for c in contents}
        if pipeline.content_types.last_update:
            types &= set(pipeline.content_types.last_update)
        updates = []
        for type_id in sorted(types):
            latest = run(
                contents,
                Query(
                    content_type=type_id,
                    order_by=(Order("lastUpdate", Direction.DESC),),
                    limit=1,
                ),
                now,
            )
            updates.extend(c.last_update for c in latest)
        return max(updates) if updates else None

    def render(self, now: datetime | float | None = None) -> list[PipelineResult]:
        """Render every pipeline.

        Args:
            now: Current time; defaults to the wall clock.

        Returns:
            Results of every pipeline, in pipeline order.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        timestamp = now.timestamp() if isinstance(now, datetime) else float(now)

        resolver = ContextResolver(
            self.content_renderer,
            base_url=self.config.base_url,
            assets_path=self.config.assets_path,
            time_zone=self.config.time_zone,
            date_formats=self.config.date_formats,
        )
        iterators = IteratorResolver(self.config.base_url)

        results: list[PipelineResult] = []
        for pipeline in self.pipelines:
            filtered = pipeline.content_types.apply_filter_rules(self.contents, timestamp)
            contents = iterators.resolve(filtered, pipeline, timestamp)
            last_update = self.last_content_update(contents, pipeline, timestamp)
            site = self.site_context(
                resolver,
                pipeline,
                timestamp,
                last_update if last_update is not None else timestamp,
            )
            bundles = resolver.bundles(contents, pipeline, timestamp, {"site": site})
            pipeline_results = render_bundles(pipeline, bundles, self.templates)
            logger.info(
                "Pipeline `%s`: %d bundles, %d results",
                pipeline.id,
                len(bundles),
                len(pipeline_results),
            )
            results.extend(pipeline_results)
        return results


class FileOutputSink:
    """Writes results below an output directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir
        self.written: list[Path] = []

    def write(self, path: str, file: str, ext: str, data: bytes) -> None:
        name = f"{file}.{ext}" if ext else file
        target = self.output_dir / path.strip("/") / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        self.written.append(target)


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        results: Rendered results in output order.
        output_dir: Directory where the site was built.
        files: Files written.
    """

    results: list[PipelineResult]
    output_dir: Path
    files: list[Path]


def build_site(
    project_root: Path,
    base_url: str | None = None,
    output_dir_override: Path | None = None,
    clean_output: bool = True,
    now: datetime | float | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        base_url: Optional base URL overriding stele.yaml.
        output_dir_override: Optional path to write the build output instead of config output_dir.
        clean_output: Whether to wipe the output directory before building.
        now: Build time; defaults to the wall clock.

    Returns:
        BuildResult with every rendered result and written file.

    Raises:
        BuildError: If loading fails or a template raises.
    """
    project = load_project(project_root, base_url=base_url)
    output_dir = output_dir_override or (project_root / project.config.output_dir)

    renderer = SiteRenderer(
        project.config,
        project.pipelines,
        project.contents,
        TemplateLibrary(project.templates),
        project.directives,
    )
    templates_dir = project_root / "templates"
    try:
        results = renderer.render(now)
    except TemplateSyntaxError as exc:
        raise BuildError(
            templates_dir / (exc.name or ""),
            f"Template syntax error on line {exc.lineno}: {exc.message}",
            exc,
        ) from exc
    except TemplateError as exc:
        raise BuildError(templates_dir, _format_error_message(exc), exc) from exc

    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    sink = FileOutputSink(output_dir)
    for result in results:
        destination = result.destination
        sink.write(
            destination.path,
            destination.file,
            destination.ext,
            result.contents.encode("utf-8"),
        )
    return BuildResult(results=results, output_dir=output_dir, files=sink.written)


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    return f"{error_type}: {error_msg}"
