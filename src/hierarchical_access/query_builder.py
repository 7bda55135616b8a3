"""Structured SELECT builder with nestable AND/OR condition groups.

Queries are assembled from structured parts rather than SQL text:

* **Condition** (leaf) — ``field <operator> value``; the value may be a
  literal, a sequence (``IN``/``NOT IN``), a :class:`Column` or a nested
  :class:`SelectQuery` used as a sub-select.
* **ConditionGroup** (compound) — AND/OR of conditions and groups.
* **JoinSpec** — joined table/alias plus the column pairs it is matched on.
* **SelectQuery** — base table, joins, output fields/expressions and a root
  condition group. Compiles to ``(sql, params)`` with positional ``?``
  placeholders for DuckDB.

Compilation is deterministic: the same structure always produces the same
``(sql, params)`` pair, so two queries can be compared for equivalence by
comparing their compiled form.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

CONJUNCTIONS: tuple[str, ...] = ("AND", "OR")
JOIN_KINDS: tuple[str, ...] = ("INNER", "LEFT")

_COMPARISON_OPERATORS = frozenset({"=", "<>", "!=", "<", "<=", ">", ">="})
_SET_OPERATORS = frozenset({"IN", "NOT IN"})
_NULL_OPERATORS = frozenset({"IS NULL", "IS NOT NULL"})

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_REFERENCE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def check_identifier(name: str) -> str:
    """Validate a bare SQL identifier (table, alias or column name)."""
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def check_reference(ref: str) -> str:
    """Validate a column reference, optionally alias-qualified (``m.mid``)."""
    if not isinstance(ref, str) or not _REFERENCE_RE.match(ref):
        raise ValueError(f"Invalid column reference: {ref!r}")
    return ref


def _normalize_conjunction(conjunction: str) -> str:
    value = str(conjunction).strip().upper()
    if value not in CONJUNCTIONS:
        raise ValueError(f"Invalid conjunction: {conjunction!r}")
    return value


def _normalize_operator(operator: str) -> str:
    value = " ".join(str(operator).strip().upper().split())
    if value == "!=":
        value = "<>"
    if value not in _COMPARISON_OPERATORS | _SET_OPERATORS | _NULL_OPERATORS:
        raise ValueError(f"Unsupported operator: {operator!r}")
    return value


def coalesce(*refs: str, default: int = 0) -> str:
    """Build a ``COALESCE(ref, ..., default)`` output expression.

    The default is rendered inline, so only integers are accepted.
    """
    if not refs:
        return str(int(default))
    if isinstance(default, bool) or not isinstance(default, int):
        raise ValueError(f"COALESCE default must be an integer, got {default!r}")
    parts = [check_reference(ref) for ref in refs]
    parts.append(str(default))
    return f"COALESCE({', '.join(parts)})"


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Column:
    """A column reference used as the right-hand side of a comparison."""

    ref: str

    def __post_init__(self) -> None:
        check_reference(self.ref)


@dataclass(frozen=True, slots=True)
class Condition:
    """Leaf predicate: ``field <operator> value``."""

    field: str
    value: Any = None
    operator: str = "="

    def compile(self) -> tuple[str, list[Any]]:
        op = self.operator
        if op in _NULL_OPERATORS:
            return (f"{self.field} {op}", [])

        if isinstance(self.value, SelectQuery):
            sub_sql, sub_params = self.value.to_sql()
            return (f"{self.field} {op} ({sub_sql})", sub_params)

        if op in _SET_OPERATORS:
            values = list(self.value)
            if not values:
                # Empty IN matches nothing; empty NOT IN matches everything.
                return ("1=0" if op == "IN" else "1=1", [])
            placeholders = ", ".join("?" for _ in values)
            return (f"{self.field} {op} ({placeholders})", values)

        if isinstance(self.value, Column):
            return (f"{self.field} {op} {self.value.ref}", [])
        return (f"{self.field} {op} ?", [self.value])


class ConditionGroup:
    """AND/OR group of conditions and nested groups."""

    __slots__ = ("conjunction", "_items")

    def __init__(self, conjunction: str = "AND") -> None:
        self.conjunction = _normalize_conjunction(conjunction)
        self._items: list[Condition | ConditionGroup] = []

    @property
    def items(self) -> tuple[Condition | ConditionGroup, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        # A group is a truthy object even when empty.
        return True

    def __repr__(self) -> str:
        return f"ConditionGroup({self.conjunction!r}, {self._items!r})"

    def condition(
        self,
        field: str | Condition | ConditionGroup,
        value: Any = None,
        operator: str = "=",
    ) -> ConditionGroup:
        """Append a condition (or nested group) and return ``self``."""
        if isinstance(field, (Condition, ConditionGroup)):
            if field is self:
                raise ValueError("A condition group cannot contain itself")
            self._items.append(field)
            return self

        op = _normalize_operator(operator)
        check_reference(field)
        if op in _SET_OPERATORS and not isinstance(value, SelectQuery):
            if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, set, frozenset)):
                raise ValueError(f"{op} requires a sequence or sub-select, got {value!r}")
            value = tuple(value)
        elif op in _COMPARISON_OPERATORS and value is None:
            raise ValueError(f"Comparison {field} {op} NULL; use IS NULL instead")
        self._items.append(Condition(field=field, value=value, operator=op))
        return self

    def is_not_null(self, field: str) -> ConditionGroup:
        return self.condition(field, operator="IS NOT NULL")

    def compile(self) -> tuple[str, list[Any]]:
        """Compile into a SQL boolean expression + parameter list.

        Nested groups are parenthesised; the group itself is not. An empty
        group is vacuously true.
        """
        if not self._items:
            return ("1=1", [])

        parts: list[str] = []
        params: list[Any] = []
        for item in self._items:
            item_sql, item_params = item.compile()
            if isinstance(item, ConditionGroup):
                item_sql = f"({item_sql})"
            parts.append(item_sql)
            params.extend(item_params)
        return (f" {self.conjunction} ".join(parts), params)


# ---------------------------------------------------------------------------
# Tables and joins
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class JoinSpec:
    """Structured join: ``<kind> JOIN table alias ON alias.col = other ...``.

    ``on`` pairs a column of the joined table (unqualified) with a qualified
    column elsewhere in the query. ``match`` combines the pairs; ``OR``
    yields an any-of join.
    """

    table: str | SelectQuery
    alias: str
    on: tuple[tuple[str, str], ...]
    kind: str = "INNER"
    match: str = "AND"

    def __post_init__(self) -> None:
        if not isinstance(self.table, SelectQuery):
            check_identifier(self.table)
        check_identifier(self.alias)
        kind = str(self.kind).upper()
        if kind not in JOIN_KINDS:
            raise ValueError(f"Invalid join kind: {self.kind!r}")
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "match", _normalize_conjunction(self.match))
        pairs = tuple((check_identifier(col), check_reference(other)) for col, other in self.on)
        if not pairs:
            raise ValueError(f"Join on {self.alias!r} needs at least one column pair")
        object.__setattr__(self, "on", pairs)

    def on_sql(self) -> str:
        clauses = [f"{self.alias}.{col} = {other}" for col, other in self.on]
        return f" {self.match} ".join(clauses)


@dataclass(frozen=True, slots=True)
class TableRef:
    """One table in a query's FROM clause; ``join`` is None for the base."""

    table: str | SelectQuery
    alias: str
    join: JoinSpec | None = None


def _table_sql(table: str | SelectQuery, alias: str) -> tuple[str, list[Any]]:
    if isinstance(table, SelectQuery):
        sub_sql, sub_params = table.to_sql()
        return (f"({sub_sql}) {alias}", sub_params)
    return (f"{table} {alias}", [])


# ---------------------------------------------------------------------------
# SelectQuery
# ---------------------------------------------------------------------------

class SelectQuery:
    """Mutable SELECT query object.

    Access hooks receive one of these and may add joins and conditions. The
    root condition group's conjunction is chosen at construction (``AND`` by
    default) and can be swapped with :meth:`replace_conditions`.
    """

    def __init__(self, table: str | SelectQuery, alias: str, *, conjunction: str = "AND") -> None:
        if not isinstance(table, SelectQuery):
            check_identifier(table)
        check_identifier(alias)
        self._base = TableRef(table=table, alias=alias)
        self._joins: list[JoinSpec] = []
        self._fields: list[tuple[str, str | None]] = []
        self._expressions: list[tuple[str, str]] = []
        self._conditions = ConditionGroup(conjunction)
        self._order_by: list[tuple[str, str]] = []
        self._distinct = False
        self._tags: list[str] = []
        self._metadata: dict[str, Any] = {}

    # ── structure ──────────────────────────────────────────────────────

    @property
    def base_alias(self) -> str:
        return self._base.alias

    def tables(self) -> list[TableRef]:
        """Ordered table references (base first, then joins)."""
        return [self._base] + [TableRef(table=j.table, alias=j.alias, join=j) for j in self._joins]

    def _unique_alias(self, alias: str) -> str:
        taken = {self._base.alias, *(j.alias for j in self._joins)}
        if alias not in taken:
            return alias
        count = 2
        while f"{alias}_{count}" in taken:
            count += 1
        return f"{alias}_{count}"

    def add_join(self, spec: JoinSpec) -> str:
        """Add a pre-built join. Its alias must not already be taken."""
        if spec.alias == self._base.alias or any(j.alias == spec.alias for j in self._joins):
            raise ValueError(f"Alias {spec.alias!r} already used in query")
        self._joins.append(spec)
        return spec.alias

    def join(
        self,
        table: str | SelectQuery,
        alias: str,
        on: Sequence[tuple[str, str]],
        *,
        kind: str = "INNER",
        match: str = "AND",
    ) -> str:
        """Join *table*, returning the alias actually assigned.

        If *alias* is taken a numeric suffix is added (``mf``, ``mf_2``).
        """
        unique = self._unique_alias(check_identifier(alias))
        spec = JoinSpec(table=table, alias=unique, on=tuple(on), kind=kind, match=match)
        return self.add_join(spec)

    def left_join(
        self,
        table: str | SelectQuery,
        alias: str,
        on: Sequence[tuple[str, str]],
        *,
        match: str = "AND",
    ) -> str:
        return self.join(table, alias, on, kind="LEFT", match=match)

    # ── output ─────────────────────────────────────────────────────────

    def add_field(self, alias: str, column: str, as_: str | None = None) -> SelectQuery:
        check_identifier(alias)
        check_identifier(column)
        if as_ is not None:
            check_identifier(as_)
        self._fields.append((f"{alias}.{column}", as_))
        return self

    def add_expression(self, expression: str, as_: str) -> SelectQuery:
        """Add a computed output column (see :func:`coalesce`)."""
        self._expressions.append((expression, check_identifier(as_)))
        return self

    def distinct(self, value: bool = True) -> SelectQuery:
        self._distinct = value
        return self

    def order_by(self, field: str, direction: str = "ASC") -> SelectQuery:
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValueError(f"Invalid sort direction: {direction!r}")
        self._order_by.append((check_reference(field), direction))
        return self

    # ── conditions ─────────────────────────────────────────────────────

    @property
    def conditions(self) -> ConditionGroup:
        """The root condition group."""
        return self._conditions

    def replace_conditions(self, group: ConditionGroup) -> None:
        self._conditions = group

    def condition(
        self,
        field: str | Condition | ConditionGroup,
        value: Any = None,
        operator: str = "=",
    ) -> SelectQuery:
        self._conditions.condition(field, value, operator)
        return self

    def and_group(self) -> ConditionGroup:
        return ConditionGroup("AND")

    def or_group(self) -> ConditionGroup:
        return ConditionGroup("OR")

    # ── tags and metadata ──────────────────────────────────────────────

    def add_tag(self, tag: str) -> SelectQuery:
        if tag not in self._tags:
            self._tags.append(tag)
        return self

    def has_tag(self, tag: str) -> bool:
        return tag in self._tags

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(self._tags)

    def add_metadata(self, key: str, value: Any) -> SelectQuery:
        self._metadata[key] = value
        return self

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    # ── compilation / execution ────────────────────────────────────────

    def to_sql(self) -> tuple[str, list[Any]]:
        """Compile to ``(sql, params)`` with ``?`` placeholders."""
        params: list[Any] = []

        columns = [f"{ref} AS {as_}" if as_ else ref for ref, as_ in self._fields]
        columns.extend(f"{expr} AS {as_}" for expr, as_ in self._expressions)
        select = "SELECT DISTINCT" if self._distinct else "SELECT"
        parts = [f"{select} {', '.join(columns) if columns else '*'}"]

        base_sql, base_params = _table_sql(self._base.table, self._base.alias)
        parts.append(f"FROM {base_sql}")
        params.extend(base_params)

        for spec in self._joins:
            table_sql, table_params = _table_sql(spec.table, spec.alias)
            parts.append(f"{spec.kind} JOIN {table_sql} ON {spec.on_sql()}")
            params.extend(table_params)

        if len(self._conditions):
            where_sql, where_params = self._conditions.compile()
            parts.append(f"WHERE {where_sql}")
            params.extend(where_params)

        if self._order_by:
            parts.append(
                "ORDER BY " + ", ".join(f"{field} {direction}" for field, direction in self._order_by)
            )

        return (" ".join(parts), params)

    def __str__(self) -> str:
        return self.to_sql()[0]

    def __repr__(self) -> str:
        return f"SelectQuery({self.to_sql()[0]!r})"

    def execute(self, conn: Any) -> Any:
        """Run the query on a DuckDB connection, returning the cursor."""
        sql, params = self.to_sql()
        return conn.execute(sql, params)
