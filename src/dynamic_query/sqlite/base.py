# src/dynamic_query/sqlite/base.py
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, is_dataclass
from logging import LoggerAdapter
from typing import (
    Any,
    AsyncGenerator,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

import aiosqlite

from dynamic_query.base.conditions import JoinType
from dynamic_query.base.exceptions import KeyAlreadyExistsException
from dynamic_query.base.interfaces import QueryRepository
from dynamic_query.base.predicate import (
    Comparison,
    Conjunction,
    FieldPath,
    Join,
    Logical,
    Negation,
    Operator,
    Predicate,
)
from dynamic_query.base.query import QueryOptions
from dynamic_query.base.utils import prepare_for_storage

T = TypeVar("T")

log = logging.getLogger(__name__)

_JOIN_KEYWORDS = {
    JoinType.INNER: "INNER JOIN",
    JoinType.LEFT: "LEFT JOIN",
    JoinType.RIGHT: "RIGHT JOIN",
}


def quote_identifier(identifier: str) -> str:
    """Quote an identifier for SQLite (SQLite uses double quotes for identifiers)."""
    safe_identifier = identifier.replace('"', '""')
    return f'"{safe_identifier}"'


def _is_complex_type(t: Any) -> bool:
    """True for annotations stored as JSON text (collections, models, dataclasses)."""
    origin = get_origin(t)
    if origin is Union:
        non_none = [a for a in get_args(t) if a is not type(None)]
        if len(non_none) == 1:
            return _is_complex_type(non_none[0])
        return False
    if origin in (list, dict, set, tuple, Mapping):
        return True
    return isinstance(t, type) and (
        issubclass(t, (list, dict, set, tuple))
        or is_dataclass(t)
        or hasattr(t, "model_dump")
    )


@dataclass(frozen=True)
class RelationMapping:
    """
    Where a relation's rows live.

    Joins render as ``root.local_key = alias.remote_key``: for a one-to-many
    relation ``local_key`` is the root id and ``remote_key`` the foreign key
    column of ``table``.
    """

    table: str
    local_key: str
    remote_key: str


@dataclass
class _SqlParts:
    joins: List[str]
    params: List[Any]


class SqliteRepository(QueryRepository[T], Generic[T]):
    """
    SQLite repository implementation using aiosqlite.

    This repository expects an active `aiosqlite.Connection` to be provided
    during initialization; commit and rollback are left to the caller.

    Predicates render to a parameterised ``SELECT`` with ``?`` placeholders.
    Relations named in ``relations`` render as joins; dotted paths on the root
    read JSON columns with ``json_extract``. LIKE is case-sensitive on the
    connection, matching the in-memory backend.

    Assumes complex types (lists, dicts, nested models) are stored as JSON
    text and datetimes as ISO 8601 strings.
    """

    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        table_name: str,
        entity_type: Optional[Type[T]] = None,
        id_field: str = "id",
        relations: Optional[Dict[str, RelationMapping]] = None,
    ):
        """
        Args:
            db_connection: An active aiosqlite.Connection managed externally.
            table_name: The root table.
            entity_type: Class results are built as; None yields dicts.
            id_field: Primary key column of the root table.
            relations: Relation name to RelationMapping for join rendering.
        """
        if not isinstance(db_connection, aiosqlite.Connection):
            raise TypeError("db_connection must be an instance of aiosqlite.Connection")

        self._conn = db_connection
        self._conn.row_factory = aiosqlite.Row
        self._table_name = table_name
        self._entity_type = entity_type
        self._id_field = id_field
        self._relations: Dict[str, RelationMapping] = dict(relations or {})
        self._prepared = False

        name = entity_type.__name__ if entity_type else "dict"
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}[{name}]")
        self._logger.debug(
            f"Repository instance created for {name} using table '{table_name}' "
            f"with relations {sorted(self._relations)}"
        )

    @property
    def entity_type(self) -> Optional[Type[T]]:
        return self._entity_type

    @property
    def id_field(self) -> str:
        return self._id_field

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Yields the external connection, logging and re-raising errors."""
        if not self._prepared:
            await self._conn.execute("PRAGMA case_sensitive_like = ON")
            self._prepared = True
        try:
            yield self._conn
        except aiosqlite.Error as e:
            self._logger.error(f"Error during repository operation: {e}", exc_info=True)
            raise

    # --- Storage ---
    async def store(self, entity: Any, logger: LoggerAdapter) -> None:
        """Insert a root entity and the items of its mapped relations."""
        data = prepare_for_storage(entity)
        if not isinstance(data, dict):
            raise TypeError(f"Cannot store {type(entity).__name__} as a row")
        entity_id = data.get(self._id_field)
        if entity_id is None:
            raise ValueError(f"Entity must have its '{self._id_field}' field set")

        related = {name: data.pop(name, None) for name in self._relations}
        async with self._get_session() as conn:
            try:
                await self._insert(conn, self._table_name, data)
            except aiosqlite.IntegrityError as e:
                raise KeyAlreadyExistsException(
                    f"Entity with ID '{entity_id}' already exists."
                ) from e
            for name, items in related.items():
                mapping = self._relations[name]
                for item in items or []:
                    row = dict(item)
                    row[mapping.remote_key] = data.get(mapping.local_key)
                    await self._insert(conn, mapping.table, row)
        logger.debug(f"Stored entity with {self._id_field}='{entity_id}'")

    async def _insert(self, conn: aiosqlite.Connection, table: str, row: Dict[str, Any]) -> None:
        values = [
            json.dumps(v) if isinstance(v, (dict, list, tuple)) else v for v in row.values()
        ]
        cols = ", ".join(quote_identifier(k) for k in row.keys())
        placeholders = ", ".join(["?"] * len(row))
        sql = f"INSERT INTO {quote_identifier(table)} ({cols}) VALUES ({placeholders})"
        await conn.execute(sql, tuple(values))

    # --- Queries ---
    async def list(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> AsyncGenerator[T, None]:
        options = options or QueryOptions()
        sql, params = self.build_select(options)
        logger.debug(f"Executing list query: SQL='{sql}', Params={params}")
        async with self._get_session() as conn:
            async with conn.execute(sql, tuple(params)) as cursor:
                async for record in cursor:
                    yield self._deserialize_record(record)

    async def count(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> int:
        options = options or QueryOptions()
        sql, params = self.build_count(options)
        logger.debug(f"Executing count query: SQL='{sql}', Params={params}")
        async with self._get_session() as conn:
            async with conn.execute(sql, tuple(params)) as cursor:
                row = await cursor.fetchone()
        return int(row[0]) if row else 0

    def build_select(self, options: QueryOptions) -> Tuple[str, List[Any]]:
        """Renders ``options`` to a SELECT statement and its parameters."""
        table = quote_identifier(self._table_name)
        from_clause, where, params = self._render_from_where(options.expression)
        distinct = "DISTINCT " if options.distinct else ""
        sql = f"SELECT {distinct}{table}.* FROM {from_clause}"
        if where:
            sql += f" WHERE {where}"
        if options.order_by:
            order = ", ".join(
                f"{self._column(FieldPath(spec.field))} {spec.direction.value}"
                for spec in options.order_by
            )
            sql += f" ORDER BY {order}"
        if options.limit is not None:
            sql += " LIMIT ?"
            params.append(options.limit)
        elif options.offset:
            # SQLite needs a LIMIT before OFFSET
            sql += " LIMIT -1"
        if options.offset:
            sql += " OFFSET ?"
            params.append(options.offset)
        return sql, params

    def build_count(self, options: QueryOptions) -> Tuple[str, List[Any]]:
        """Renders a COUNT over the matching root rows."""
        from_clause, where, params = self._render_from_where(options.expression)
        if options.distinct:
            target = f"DISTINCT {self._column(FieldPath(self._id_field))}"
        else:
            target = "*"
        sql = f"SELECT COUNT({target}) FROM {from_clause}"
        if where:
            sql += f" WHERE {where}"
        return sql, params

    def _render_from_where(self, expression: Predicate) -> Tuple[str, str, List[Any]]:
        parts = _SqlParts(joins=[], params=[])
        where = self._translate_expression(expression, parts)
        from_clause = " ".join([quote_identifier(self._table_name), *parts.joins])
        return from_clause, ("" if where == "1=1" else where), parts.params

    def _column(self, path: FieldPath) -> str:
        owner = quote_identifier(path.alias or self._table_name)
        if "." in path.name and path.alias is None:
            base, rest = path.name.split(".", 1)
            return f"json_extract({owner}.{quote_identifier(base)}, '$.{rest}')"
        return f"{owner}.{quote_identifier(path.name)}"

    def _translate_expression(self, expression: Predicate, parts: _SqlParts) -> str:
        """Recursively renders a predicate into a WHERE fragment, collecting joins and params."""
        if isinstance(expression, Conjunction):
            return "1=1"
        if isinstance(expression, Comparison):
            return self._translate_comparison(expression, parts)
        if isinstance(expression, Logical):
            fragments = [
                f"({self._translate_expression(member, parts)})"
                for member in expression.conditions
            ]
            return f" {expression.operator.upper()} ".join(fragments)
        if isinstance(expression, Negation):
            return f"NOT ({self._translate_expression(expression.predicate, parts)})"
        if isinstance(expression, Join):
            parts.joins.append(self._translate_join(expression))
            return self._translate_expression(expression.predicate, parts)
        raise TypeError(
            f"Unknown predicate type encountered during translation: {type(expression)}"
        )

    def _translate_join(self, node: Join) -> str:
        mapping = self._relations.get(node.relation)
        if mapping is None:
            raise ValueError(
                f"No relation mapping configured for '{node.relation}' on table '{self._table_name}'"
            )
        alias = quote_identifier(node.alias)
        root = quote_identifier(self._table_name)
        return (
            f"{_JOIN_KEYWORDS[node.join_type]} {quote_identifier(mapping.table)} AS {alias} "
            f"ON {root}.{quote_identifier(mapping.local_key)} = "
            f"{alias}.{quote_identifier(mapping.remote_key)}"
        )

    def _translate_comparison(self, comparison: Comparison, parts: _SqlParts) -> str:
        column = self._column(comparison.path)
        operator = comparison.operator

        if operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return f"{column} {operator.value}"
        if operator in (Operator.IN, Operator.NOT_IN):
            values = [prepare_for_storage(v) for v in comparison.value]
            parts.params.extend(values)
            placeholders = ", ".join(["?"] * len(values))
            return f"{column} {operator.value} ({placeholders})"
        if operator is Operator.BETWEEN:
            parts.params.append(prepare_for_storage(comparison.value))
            parts.params.append(prepare_for_storage(comparison.second_value))
            return f"{column} BETWEEN ? AND ?"
        if comparison.ignore_case:
            column = f"LOWER({column})"
        parts.params.append(prepare_for_storage(comparison.value))
        return f"{column} {operator.value} ?"

    # --- Deserialisation ---
    def _deserialize_record(self, record: aiosqlite.Row) -> Any:
        """Converts an aiosqlite.Row into an entity, or a dict without an entity type."""
        data = dict(record)
        if self._entity_type is None:
            return data
        try:
            hints = get_type_hints(self._entity_type)
        except (NameError, TypeError) as e:
            self._logger.warning(
                f"Could not get type hints for {self._entity_type.__name__}: {e}"
            )
            hints = {}
        for key, value in data.items():
            if isinstance(value, str) and _is_complex_type(hints.get(key)):
                try:
                    data[key] = json.loads(value)
                except json.JSONDecodeError:
                    self._logger.warning(f"Failed to JSON decode field '{key}'")
        return self._entity_type(**data)
