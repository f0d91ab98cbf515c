"""Project configuration loading for Stele.

A Stele project is a folder laid out as::

    stele.yaml          site settings (optional, defaults apply)
    types/*.yaml        content type definitions
    pipelines/*.yaml    pipeline definitions
    blocks/*.yaml       block directive definitions
    templates/**        templates, id = dotted path without extension
    contents/**         content items (see stele.content)

Key functions:
- load_config: Loads site settings from stele.yaml.
- load_definitions: Loads content type definitions.
- load_pipelines: Loads pipeline definitions.
- load_block_directives: Loads block directive definitions.
- load_templates: Loads template sources into memory.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .content import ContentDefinition
from .dates import DateFormat, get_timezone
from .directives import BlockDirective
from .errors import ConfigError
from .extractors import load_yaml_mapping
from .pipeline import Pipeline
from .renderers import DEFAULT_PARAGRAPH_STYLES
from .utils import merge_dicts

logger = logging.getLogger(__name__)

CONFIG_FILE = "stele.yaml"
YAML_SUFFIXES = (".yaml", ".yml")
TEMPLATE_SUFFIXES = (".html", ".htm", ".jinja", ".j2", ".mustache", ".xml", ".txt")
DEFAULT_TYPE = "page"

DEFAULT_CONFIG: dict[str, Any] = {
    "base_url": "http://localhost:3000/",
    "name": "",
    "locale": "en-US",
    "time_zone": "UTC",
    "output_dir": "dist",
    "assets_path": "assets",
    "date_formats": {},
    "renderer": {
        "words_per_minute": 238,
        "outline_levels": [2, 3],
        "paragraph_styles": DEFAULT_PARAGRAPH_STYLES,
    },
    "user_defined": {},
}


@dataclass(frozen=True)
class RendererConfig:
    words_per_minute: int = 238
    outline_levels: tuple[int, ...] = (2, 3)
    paragraph_styles: Mapping[str, list[str]] = field(
        default_factory=lambda: dict(DEFAULT_PARAGRAPH_STYLES)
    )


@dataclass(frozen=True)
class Config:
    """Site settings.

    Attributes:
        base_url: Base URL every permalink and root-relative link is joined to.
        name: Site name.
        locale: Locale identifier passed to templates.
        time_zone: Time zone used to format dates.
        output_dir: Build output folder, relative to the project root.
        assets_path: Name of the per-content assets folder.
        date_formats: Extra named date formats.
        renderer: Markdown rendering options.
        user_defined: Free-form data exposed under ``site``.
    """

    base_url: str
    name: str = ""
    locale: str = "en-US"
    time_zone: str = "UTC"
    output_dir: str = "dist"
    assets_path: str = "assets"
    date_formats: Mapping[str, DateFormat] = field(default_factory=dict)
    renderer: RendererConfig = field(default_factory=RendererConfig)
    user_defined: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        renderer = data.get("renderer") or {}
        time_zone = str(data.get("time_zone") or "UTC")
        get_timezone(time_zone)
        return cls(
            base_url=str(data.get("base_url") or ""),
            name=str(data.get("name") or ""),
            locale=str(data.get("locale") or "en-US"),
            time_zone=time_zone,
            output_dir=str(data.get("output_dir") or "dist"),
            assets_path=str(data.get("assets_path") or "assets").strip("/"),
            date_formats={
                k: DateFormat.from_value(v)
                for k, v in (data.get("date_formats") or {}).items()
            },
            renderer=RendererConfig(
                words_per_minute=int(renderer.get("words_per_minute") or 238),
                outline_levels=tuple(int(v) for v in renderer.get("outline_levels") or (2, 3)),
                paragraph_styles={
                    k: [str(p) for p in (v if isinstance(v, list) else [v])]
                    for k, v in (renderer.get("paragraph_styles") or {}).items()
                },
            ),
            user_defined=dict(data.get("user_defined") or {}),
        )


def load_config(project_root: Path) -> Config:
    """Load site configuration from stele.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Config with defaults applied for every missing value.

    Raises:
        ConfigError: If stele.yaml is not a valid YAML mapping.
    """
    config_path = project_root / CONFIG_FILE
    config = dict(DEFAULT_CONFIG)
    if config_path.exists():
        loaded = load_yaml_mapping(
            config_path.read_text(encoding="utf-8"), config_path, ConfigError
        )
        config = merge_dicts(config, loaded)
        renderer = loaded.get("renderer")
        # Callout styles replace the defaults instead of extending them
        if isinstance(renderer, Mapping) and "paragraph_styles" in renderer:
            config["renderer"] = {
                **config["renderer"],
                "paragraph_styles": renderer["paragraph_styles"] or {},
            }
    try:
        return Config.from_dict(config)
    except (TypeError, ValueError) as exc:
        raise ConfigError(config_path, f"Invalid configuration: {exc}", exc) from exc


def _iter_yaml(folder: Path) -> Iterator[tuple[Path, dict[str, Any]]]:
    if not folder.is_dir():
        return
    for path in sorted(folder.iterdir()):
        if path.is_file() and path.suffix in YAML_SUFFIXES:
            yield path, load_yaml_mapping(path.read_text(encoding="utf-8"), path, ConfigError)


def load_definitions(project_root: Path) -> dict[str, ContentDefinition]:
    """Load content type definitions from ``types/``.

    A ``page`` type without properties is always available.

    Raises:
        ConfigError: If a definition cannot be decoded.
    """
    definitions: dict[str, ContentDefinition] = {}
    for path, data in _iter_yaml(project_root / "types"):
        try:
            definition = ContentDefinition.from_dict(path.stem, data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(path, f"Invalid content type: {exc}", exc) from exc
        definitions[definition.id] = definition
    definitions.setdefault(DEFAULT_TYPE, ContentDefinition(id=DEFAULT_TYPE))
    logger.debug("Loaded content types: %s", ", ".join(sorted(definitions)))
    return definitions


def load_pipelines(project_root: Path) -> list[Pipeline]:
    """Load pipeline definitions from ``pipelines/``, ordered by file name.

    Raises:
        ConfigError: If a pipeline cannot be decoded.
    """
    pipelines: list[Pipeline] = []
    for path, data in _iter_yaml(project_root / "pipelines"):
        try:
            pipelines.append(Pipeline.from_dict(data, id=path.stem))
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(path, f"Invalid pipeline: {exc}", exc) from exc
    if not pipelines:
        logger.warning("No pipelines found in %s", project_root / "pipelines")
    return pipelines


def load_block_directives(project_root: Path) -> list[BlockDirective]:
    """Load block directives from ``blocks/``.

    A file holds one directive mapping, or a ``directives`` list of them.

    Raises:
        ConfigError: If a directive cannot be decoded.
    """
    directives: list[BlockDirective] = []
    for path, data in _iter_yaml(project_root / "blocks"):
        entries = data["directives"] if "directives" in data else [data]
        try:
            directives.extend(BlockDirective.from_dict(entry) for entry in entries)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(path, f"Invalid block directive: {exc}", exc) from exc
    return directives


def template_id(templates_dir: Path, path: Path) -> str:
    """Return the id of a template file.

    Examples:
        >>> template_id(Path("templates"), Path("templates/partials/card.html"))
        'partials.card'
    """
    return ".".join(path.relative_to(templates_dir).with_suffix("").parts)


def load_templates(project_root: Path) -> dict[str, str]:
    """Load every template below ``templates/`` into memory."""
    templates_dir = project_root / "templates"
    templates: dict[str, str] = {}
    if not templates_dir.is_dir():
        return templates
    for path in sorted(templates_dir.rglob("*")):
        if path.is_file() and path.suffix in TEMPLATE_SUFFIXES:
            templates[template_id(templates_dir, path)] = path.read_text(encoding="utf-8")
    return templates
