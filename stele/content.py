"""Content model and loading for Stele.

This module defines the immutable content records the core works on and the
file-based loader that produces them from a project's ``contents`` folder.

Key classes:
- ContentDefinition: A content type with its property, relation and query schema.
- Content: One loaded content item.
- IteratorInfo: Pagination metadata of a generated listing page.
- FileContentLoader: Builds Content instances from ``index.md``/``index.yaml`` files.

Layout of a contents folder::

    contents/
        index.md                  -> slug ""
        blog/hello-world/index.md -> slug "blog/hello-world"
        authors/jane/index.yaml   -> slug "authors/jane"

The folder path is the slug unless front matter sets ``slug``. Front matter
``type`` selects the content definition.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Any

from .dates import get_timezone, to_timestamp
from .errors import ConfigError, FrontMatterError
from .extractors import extract_frontmatter, load_yaml_mapping
from .html_utils import resolve_asset
from .query import Order, Query

logger = logging.getLogger(__name__)

MARKDOWN_NAMES = ("index.md", "index.markdown")
YAML_NAMES = ("index.yaml", "index.yml")
RESERVED_KEYS = frozenset({"id", "slug", "type"})


class PropertyType(str, Enum):
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    DATE = "date"
    ARRAY = "array"


@dataclass(frozen=True)
class PropertyDefinition:
    type: PropertyType
    required: bool = False
    default: Any = None
    format: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PropertyDefinition:
        raw_type = str(data.get("type", "string"))
        if raw_type == "double":
            raw_type = "float"
        return cls(
            type=PropertyType(raw_type),
            required=bool(data.get("required", False)),
            default=data.get("default"),
            format=data.get("format"),
        )


@dataclass(frozen=True)
class RelationDefinition:
    """A typed link to other contents.

    Attributes:
        references: Content type the identifiers point at.
        type: ``one`` or ``many``.
        order: Optional ordering of the resolved contents; without one the
            stored identifier order is kept.
    """

    references: str
    type: str = "many"
    order: Order | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelationDefinition:
        order = data.get("order")
        return cls(
            references=str(data["references"]),
            type=str(data.get("type", "many")),
            order=Order.from_dict(order) if order else None,
        )


@dataclass(frozen=True)
class ContentDefinition:
    """A content type.

    Attributes:
        id: Content type identifier (e.g. ``post``).
        properties: Typed property schema.
        relations: Relation schema.
        queries: Named sub-queries resolved for items of this type.
    """

    id: str
    properties: Mapping[str, PropertyDefinition] = field(default_factory=dict)
    relations: Mapping[str, RelationDefinition] = field(default_factory=dict)
    queries: Mapping[str, Query] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, id: str, data: Mapping[str, Any]) -> ContentDefinition:
        return cls(
            id=str(data.get("id", id)),
            properties={
                k: PropertyDefinition.from_dict(v)
                for k, v in (data.get("properties") or {}).items()
            },
            relations={
                k: RelationDefinition.from_dict(v)
                for k, v in (data.get("relations") or {}).items()
            },
            queries={
                k: Query.from_dict(v) for k, v in (data.get("queries") or {}).items()
            },
        )


@dataclass(frozen=True)
class IteratorInfo:
    """Pagination metadata attached to a generated listing page.

    Attributes:
        current: 1-based page number.
        limit: Items per page.
        total: Number of pages.
        items: Contents shown on this page.
        links: One ``{"number", "permalink", "isCurrent"}`` entry per page.
        scope: Scope used to resolve ``items``; ``list`` when unset.
    """

    current: int
    limit: int
    total: int
    items: tuple[Content, ...] = ()
    links: tuple[Mapping[str, Any], ...] = ()
    scope: str | None = None


@dataclass(frozen=True)
class Content:
    """One loaded content item.

    Instances are never modified after loading; the iterator resolver derives
    new instances with :func:`dataclasses.replace`.
    """

    id: str
    slug: str
    definition: ContentDefinition
    properties: Mapping[str, Any] = field(default_factory=dict)
    relations: Mapping[str, list[str]] = field(default_factory=dict)
    markdown: str = ""
    user_defined: Mapping[str, Any] = field(default_factory=dict)
    front_matter: Mapping[str, Any] = field(default_factory=dict)
    last_update: float = 0.0
    iterator_info: IteratorInfo | None = None

    @cached_property
    def query_fields(self) -> dict[str, Any]:
        """Fields visible to queries: properties, relation ids and computed keys."""
        fields: dict[str, Any] = dict(self.properties)
        fields.update({k: list(v) for k, v in self.relations.items()})
        fields["id"] = self.id
        fields["slug"] = self.slug
        fields["lastUpdate"] = self.last_update
        return fields


class FileContentLoader:
    """Loads content items from a contents directory.

    Attributes:
        contents_dir: Root folder holding one sub folder per content item.
        definitions: Known content types by id.
        base_url: Site base URL, used for the front matter ``image`` field.
        assets_path: Name of the per-item assets folder.
        default_type: Type used when front matter has no ``type``.
    """

    def __init__(
        self,
        contents_dir: Path,
        definitions: Mapping[str, ContentDefinition],
        base_url: str = "",
        assets_path: str = "assets",
        time_zone: str | None = None,
        default_type: str = "page",
    ):
        self.contents_dir = contents_dir
        self.definitions = definitions
        self.base_url = base_url
        self.assets_path = assets_path
        self.tz = get_timezone(time_zone)
        self.default_type = default_type

    def iter_dirs(self) -> list[Path]:
        """Return every folder that holds an index file, sorted by path."""
        names = MARKDOWN_NAMES + YAML_NAMES
        found = {
            path.parent
            for path in self.contents_dir.rglob("index.*")
            if path.is_file() and path.name in names
        }
        return sorted(found)

    def load(self) -> list[Content]:
        """Load every content item.

        Returns:
            Contents in folder path order.

        Raises:
            FrontMatterError: If a front matter block cannot be decoded.
            ConfigError: If an item names an unknown content type or two
                items share an id.
        """
        contents: list[Content] = []
        seen: dict[str, Path] = {}
        for folder in self.iter_dirs():
            content = self.build(folder)
            if content.id in seen:
                raise ConfigError(
                    folder, f"Duplicate content id `{content.id}` (also in {seen[content.id]})"
                )
            seen[content.id] = folder
            contents.append(content)
        logger.debug("Loaded %d contents from %s", len(contents), self.contents_dir)
        return contents

    def build(self, folder: Path) -> Content:
        """Build a Content from one content folder."""
        front_matter: dict[str, Any] = {}
        markdown = ""
        source: Path | None = None
        modified = 0.0

        md_path = _first_existing(folder, MARKDOWN_NAMES)
        if md_path is not None:
            front_matter, markdown = extract_frontmatter(
                md_path.read_text(encoding="utf-8"), md_path
            )
            source = md_path
            modified = md_path.stat().st_mtime
        yaml_path = _first_existing(folder, YAML_NAMES)
        if yaml_path is not None:
            front_matter.update(
                load_yaml_mapping(
                    yaml_path.read_text(encoding="utf-8"), yaml_path, FrontMatterError
                )
            )
            source = source or yaml_path
            modified = max(modified, yaml_path.stat().st_mtime)

        rel = folder.relative_to(self.contents_dir).as_posix()
        slug = str(front_matter.get("slug", "" if rel == "." else rel)).strip("/")
        type_id = str(front_matter.get("type", self.default_type))
        definition = self.definitions.get(type_id)
        if definition is None:
            raise ConfigError(source or folder, f"Unknown content type `{type_id}`")

        if "image" in front_matter and isinstance(front_matter["image"], str):
            front_matter["image"] = resolve_asset(
                front_matter["image"], self.base_url, self.assets_path, slug
            )

        content_id = str(front_matter.get("id") or slug.replace("/", "-") or "index")
        claimed = set(definition.properties) | set(definition.relations) | RESERVED_KEYS
        return Content(
            id=content_id,
            slug=slug,
            definition=definition,
            properties=self._convert_properties(definition, front_matter, source or folder),
            relations=self._convert_relations(definition, front_matter),
            markdown=markdown,
            user_defined={k: v for k, v in front_matter.items() if k not in claimed},
            front_matter=front_matter,
            last_update=modified,
        )

    def _convert_properties(
        self, definition: ContentDefinition, front_matter: Mapping[str, Any], path: Path
    ) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for name, prop in definition.properties.items():
            raw = front_matter.get(name, prop.default)
            if raw is None:
                if prop.required:
                    logger.warning("Missing required property `%s` in %s", name, path)
                continue
            value = self._convert_value(prop, raw)
            if value is None:
                logger.warning(
                    "Invalid %s value for property `%s` in %s: %r",
                    prop.type.value,
                    name,
                    path,
                    raw,
                )
                continue
            properties[name] = value
        return properties

    def _convert_value(self, prop: PropertyDefinition, raw: Any) -> Any:
        try:
            if prop.type is PropertyType.DATE:
                return to_timestamp(raw, self.tz, prop.format)
            if prop.type is PropertyType.BOOL:
                if isinstance(raw, str):
                    return raw.strip().lower() in ("true", "yes", "1")
                return bool(raw)
            if prop.type is PropertyType.INT:
                return int(raw)
            if prop.type is PropertyType.FLOAT:
                return float(raw)
            if prop.type is PropertyType.ARRAY:
                return list(raw) if isinstance(raw, (list, tuple)) else [raw]
        except (TypeError, ValueError):
            return None
        return str(raw)

    def _convert_relations(
        self, definition: ContentDefinition, front_matter: Mapping[str, Any]
    ) -> dict[str, list[str]]:
        relations: dict[str, list[str]] = {}
        for name in definition.relations:
            raw = front_matter.get(name)
            if raw is None:
                relations[name] = []
            elif isinstance(raw, (list, tuple)):
                relations[name] = [str(v) for v in raw]
            else:
                relations[name] = [str(raw)]
        return relations


def _first_existing(folder: Path, names: tuple[str, ...]) -> Path | None:
    for name in names:
        candidate = folder / name
        if candidate.is_file():
            return candidate
    return None
