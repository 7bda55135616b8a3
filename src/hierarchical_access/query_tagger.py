"""Query tagging that propagates node access down to media and files.

For media and file queries we build two reference sub-selects through the
lookup table:

* **base** — descendant ids of every node/media, no policy applied;
* **tagged** — the same, with the host's access policy applied to the anchor
  table before the lookup join.

If the two compile identically there is nothing to restrict and the query is
left untouched. Otherwise each relevant table alias in the query is
constrained to ids that are either outside the hierarchy (``NOT IN base``)
or still reachable after the policy (``IN tagged``).

A tagger memoizes its reference queries for its own lifetime; create one
per incoming request.
"""
from __future__ import annotations

import logging
from functools import cached_property

from hierarchical_access.config import HierarchyConfig
from hierarchical_access.metadata import EntityMetadata
from hierarchical_access.policy import AccessPolicy, NullAccessPolicy
from hierarchical_access.query_builder import SelectQuery, TableRef

log = logging.getLogger(__name__)


def andify_query(query: SelectQuery) -> SelectQuery:
    """Make the query's root condition group an AND group.

    An OR root is rebuilt as ``AND(OR(<original conditions>))`` so anything
    appended afterwards constrains the original selection as a whole.
    """
    original = query.conditions
    if original.conjunction == "AND":
        return query

    new_or = query.or_group()
    for item in original.items:
        new_or.condition(item)
    new_and = query.and_group().condition(new_or)
    query.replace_conditions(new_and)
    return query


def _key_column(ref: TableRef, entity_type: str, id_key: str) -> str:
    """Id column of an entity table: field tables key on ``entity_id``."""
    table = str(ref.table)
    if table.startswith((f"{entity_type}__", f"{entity_type}_revision__")):
        return "entity_id"
    return id_key


class QueryTagger:
    """Rewrites media/file queries to honour node-level access."""

    def __init__(
        self,
        metadata: EntityMetadata,
        policy: AccessPolicy | None = None,
        *,
        config: HierarchyConfig | None = None,
    ) -> None:
        self.metadata = metadata
        self.policy: AccessPolicy = policy or NullAccessPolicy()
        self.config = config or getattr(metadata, "config", None) or HierarchyConfig()

    # ── reference queries ──────────────────────────────────────────────

    def _anchor_query(self, entity_type: str, tagged: bool) -> SelectQuery:
        info = self.metadata.entity_info(entity_type)
        query = (
            SelectQuery(info.base_table, entity_type[0])
            .add_tag(f"{entity_type}_access")
            .add_metadata("base_table", info.base_table)
        )
        if tagged:
            # Only the anchor table is exposed to the policy; the lookup join
            # is added afterwards.
            if entity_type == "node":
                self.policy.apply_node_policy(query)
            else:
                self.policy.apply_media_policy(query)

        anchor = "parent_id" if entity_type == "node" else "child_id"
        selected = "child_id" if entity_type == "node" else "grandchild_id"
        lut_alias = query.join(
            self.config.lut_table,
            "lut",
            [(anchor, f"{query.base_alias}.{info.id_key}")],
        )
        return query.add_field(lut_alias, selected)

    @cached_property
    def base_node_query(self) -> SelectQuery:
        """Media ids reachable from any node."""
        return self._anchor_query("node", tagged=False)

    @cached_property
    def tagged_node_query(self) -> SelectQuery:
        """Media ids reachable from nodes the policy allows."""
        return self._anchor_query("node", tagged=True)

    @cached_property
    def base_media_query(self) -> SelectQuery:
        """File ids reachable from any media."""
        return self._anchor_query("media", tagged=False)

    @cached_property
    def tagged_media_query(self) -> SelectQuery:
        """File ids reachable from media the policy allows."""
        return self._anchor_query("media", tagged=True)

    # ── tagging ────────────────────────────────────────────────────────

    def _matching_tables(self, query: SelectQuery, entity_type: str) -> list[TableRef]:
        tables = self.metadata.table_names(entity_type)
        return [
            ref
            for ref in query.tables()
            if not isinstance(ref.table, SelectQuery) and ref.table in tables
        ]

    def tag_file_query(self, query: SelectQuery) -> bool:
        """Constrain file rows to those outside the hierarchy or still allowed.

        Returns True if the query was modified.
        """
        if self.base_media_query.to_sql() == self.tagged_media_query.to_sql():
            # No relevant tagging for which to account.
            return False

        refs = self._matching_tables(query, "file")
        if not refs:
            return False

        andify_query(query)
        file_key = self.metadata.entity_info("file").id_key

        existential = query.and_group()
        allowed = query.or_group()
        for ref in refs:
            column = f"{ref.alias}.{_key_column(ref, 'file', file_key)}"
            # Files not related to any media keep their access untouched...
            existential.condition(column, self.base_media_query, "NOT IN")
            # ...otherwise they must still be reachable after tagging.
            allowed.condition(column, self.tagged_media_query, "IN")
        allowed.condition(existential)

        query.condition(allowed)
        log.debug("Tagged file query on aliases %s", [ref.alias for ref in refs])
        return True

    def tag_media_query(self, query: SelectQuery) -> bool:
        """Constrain media rows to those outside the hierarchy or still allowed.

        Returns True if the query was modified.
        """
        if self.base_node_query.to_sql() == self.tagged_node_query.to_sql():
            # No relevant tagging for which to account.
            return False

        refs = self._matching_tables(query, "media")
        if not refs:
            return False

        andify_query(query)
        media_key = self.metadata.entity_info("media").id_key

        new_or = query.or_group()
        for ref in refs:
            column = f"{ref.alias}.{_key_column(ref, 'media', media_key)}"
            new_or.condition(column, self.base_node_query, "NOT IN")
            new_or.condition(column, self.tagged_node_query, "IN")

        query.condition(new_or)
        log.debug("Tagged media query on aliases %s", [ref.alias for ref in refs])
        return True


class HierarchicalAccessPolicy:
    """Host policy extended so node access also governs media.

    The media hook runs the host's own media hook, then restricts the media
    to those whose nodes the host allows. Using this as the policy of a
    :class:`QueryTagger` carries node access all the way down to files.
    """

    def __init__(
        self,
        host: AccessPolicy,
        metadata: EntityMetadata,
        *,
        config: HierarchyConfig | None = None,
    ) -> None:
        self.host = host
        self.metadata = metadata
        self.config = config

    def apply_node_policy(self, query: SelectQuery) -> None:
        self.host.apply_node_policy(query)

    def apply_media_policy(self, query: SelectQuery) -> None:
        self.host.apply_media_policy(query)
        QueryTagger(self.metadata, self.host, config=self.config).tag_media_query(query)
