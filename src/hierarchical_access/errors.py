"""Error hierarchy for hierarchical access propagation.

* ``StorageError`` — the lookup table could not be rebuilt; the rebuild was
  rolled back before this was raised.
* ``MetadataError`` — entity or field metadata could not be resolved. Fatal,
  never retried.
* ``ConfigError`` — a ``MetadataError`` raised while loading configuration.
* ``EntityNotFoundError`` — an entity identifier did not resolve. Only the
  regeneration CLI raises and handles this, as a per-item warning.
"""
from __future__ import annotations


class HierarchicalAccessError(RuntimeError):
    """Base class for all errors raised by this package."""


class StorageError(HierarchicalAccessError):
    """Raised when a transactional lookup-table rebuild fails."""


class MetadataError(HierarchicalAccessError):
    """Raised when entity/field metadata cannot be resolved."""


class ConfigError(MetadataError):
    """Raised when the hierarchy configuration is malformed."""


class EntityNotFoundError(HierarchicalAccessError):
    """Raised when an entity identifier does not resolve to a stored row."""

    def __init__(self, entity_type: str, entity_id: object) -> None:
        super().__init__(f"{entity_type} {entity_id!r} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id
