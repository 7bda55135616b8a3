"""Access policy hooks supplied by the host application.

A policy receives a :class:`SelectQuery` anchored on an entity's base table
(``query.base_alias`` names it) and may add any restricting joins or
conditions. Deciding who may see a node is entirely the host's business;
this package only propagates the outcome down the hierarchy.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from hierarchical_access.query_builder import SelectQuery

QueryHook = Callable[[SelectQuery], None]


class AccessPolicy(Protocol):
    def apply_node_policy(self, query: SelectQuery) -> None:
        """Restrict a node-anchored query to the nodes the caller may see."""
        ...

    def apply_media_policy(self, query: SelectQuery) -> None:
        """Restrict a media-anchored query to the media the caller may see."""
        ...


class NullAccessPolicy:
    """Policy that restricts nothing."""

    def apply_node_policy(self, query: SelectQuery) -> None:
        return None

    def apply_media_policy(self, query: SelectQuery) -> None:
        return None


class CallbackAccessPolicy:
    """Adapts plain callables to :class:`AccessPolicy`; missing hooks are no-ops."""

    def __init__(self, *, node: QueryHook | None = None, media: QueryHook | None = None) -> None:
        self._node = node
        self._media = media

    def apply_node_policy(self, query: SelectQuery) -> None:
        if self._node is not None:
            self._node(query)

    def apply_media_policy(self, query: SelectQuery) -> None:
        if self._media is not None:
            self._media(query)
