"""Hierarchy configuration: entity tables, the belongs-to field, media types.

The defaults describe a stock repository layout::

    node(nid) <- media__field_media_of(field_media_of_target_id, entity_id)
              -> media(mid) -> media__<source_field>(<source_field>_target_id)
              -> file_managed(fid)

Configuration can be loaded from JSON::

    {
      "lut_table": "hierarchical_access_lut",
      "media_of_field": "field_media_of",
      "entities": {"node": {"base_table": "node", "id_key": "nid"}},
      "media_types": {
        "image": {"source_field": "field_media_image", "handler": "default:file"},
        "remote_video": {"source_field": "field_media_oembed_video", "handler": null}
      }
    }

Omitted keys keep their defaults.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from hierarchical_access.errors import ConfigError
from hierarchical_access.io_utils import load_json
from hierarchical_access.query_builder import check_identifier

FILE_HANDLER = "default:file"
DEFAULT_LUT_TABLE = "hierarchical_access_lut"

ENTITY_TYPES: tuple[str, ...] = ("node", "media", "file")


@dataclass(frozen=True, slots=True)
class EntityTypeConfig:
    """Storage layout for one entity type."""

    entity_type: str
    base_table: str
    id_key: str

    @property
    def field_table_prefix(self) -> str:
        return f"{self.entity_type}__"


@dataclass(frozen=True, slots=True)
class MediaTypeConfig:
    """A media sub-type and the field its content is stored in.

    Built-in types are not ``required``: a site that lacks one of their field
    tables simply has no media of that type. Types named in a config file are
    required, and a missing field table for them is an error.
    """

    media_type: str
    source_field: str
    handler: str | None = FILE_HANDLER
    required: bool = True

    @property
    def is_file_backed(self) -> bool:
        return self.handler == FILE_HANDLER


DEFAULT_ENTITIES: tuple[EntityTypeConfig, ...] = (
    EntityTypeConfig("node", "node", "nid"),
    EntityTypeConfig("media", "media", "mid"),
    EntityTypeConfig("file", "file_managed", "fid"),
)

DEFAULT_MEDIA_TYPES: tuple[MediaTypeConfig, ...] = (
    MediaTypeConfig("audio", "field_media_audio_file", required=False),
    MediaTypeConfig("document", "field_media_document", required=False),
    MediaTypeConfig("extracted_text", "field_media_file", required=False),
    MediaTypeConfig("file", "field_media_file", required=False),
    MediaTypeConfig("fits_technical_metadata", "field_media_file", required=False),
    MediaTypeConfig("image", "field_media_image", required=False),
    MediaTypeConfig("remote_video", "field_media_oembed_video", handler=None, required=False),
    MediaTypeConfig("video", "field_media_video_file", required=False),
)


@dataclass(frozen=True, slots=True)
class HierarchyConfig:
    """Where the node -> media -> file hierarchy lives in the database."""

    entities: tuple[EntityTypeConfig, ...] = DEFAULT_ENTITIES
    media_types: tuple[MediaTypeConfig, ...] = DEFAULT_MEDIA_TYPES
    media_of_field: str = "field_media_of"
    lut_table: str = DEFAULT_LUT_TABLE

    def entity(self, entity_type: str) -> EntityTypeConfig:
        for info in self.entities:
            if info.entity_type == entity_type:
                return info
        raise ConfigError(f"Unknown entity type: {entity_type!r}")

    def media_type(self, media_type: str) -> MediaTypeConfig:
        for info in self.media_types:
            if info.media_type == media_type:
                return info
        raise ConfigError(f"Unknown media type: {media_type!r}")

    @property
    def media_of_table(self) -> str:
        return f"{self.entity('media').field_table_prefix}{self.media_of_field}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HierarchyConfig:
        """Build a config from a JSON-shaped dict, validating identifiers."""
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a JSON object, got {type(data).__name__}")
        config = cls()
        try:
            entities = {info.entity_type: info for info in config.entities}
            for name, raw in (data.get("entities") or {}).items():
                if name not in ENTITY_TYPES:
                    raise ConfigError(f"Unknown entity type in config: {name!r}")
                current = entities[name]
                entities[name] = EntityTypeConfig(
                    entity_type=name,
                    base_table=check_identifier(raw.get("base_table", current.base_table)),
                    id_key=check_identifier(raw.get("id_key", current.id_key)),
                )

            media_types = config.media_types
            if "media_types" in data:
                media_types = tuple(
                    MediaTypeConfig(
                        media_type=str(name),
                        source_field=check_identifier(raw["source_field"]),
                        handler=raw.get("handler", FILE_HANDLER),
                    )
                    for name, raw in sorted(data["media_types"].items())
                )

            return replace(
                config,
                entities=tuple(entities[name] for name in ENTITY_TYPES),
                media_types=media_types,
                media_of_field=check_identifier(data.get("media_of_field", config.media_of_field)),
                lut_table=check_identifier(data.get("lut_table", config.lut_table)),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ConfigError(f"Invalid hierarchy config: {exc}") from exc

    @classmethod
    def from_json(cls, path: Path | str) -> HierarchyConfig:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            data = load_json(path)
        except ValueError as exc:
            raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
        return cls.from_dict(data)

