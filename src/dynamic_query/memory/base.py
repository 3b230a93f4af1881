import copy
import logging
import re
from dataclasses import asdict, is_dataclass
from logging import LoggerAdapter
from typing import (
    Any,
    AsyncGenerator,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Type,
    TypeVar,
)

from dynamic_query.base.conditions import JoinType, OrderSpec
from dynamic_query.base.exceptions import KeyAlreadyExistsException
from dynamic_query.base.interfaces import QueryRepository
from dynamic_query.base.predicate import (
    Comparison,
    Conjunction,
    Join,
    Logical,
    Negation,
    Operator,
    Predicate,
)
from dynamic_query.base.query import QueryOptions

T = TypeVar("T")

log = logging.getLogger(__name__)

# Record bindings: None is the root record, anything else a join alias
Row = Dict[Optional[str], Any]


def like_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compiles a SQL LIKE pattern (``%`` and ``_`` wildcards) to a regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _get_nested_value(record: Any, field: str) -> Any:
    """Get a value from a record using dot notation. Missing parts give None."""
    current = record
    for part in field.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def _and(results: List[Optional[bool]]) -> Optional[bool]:
    if False in results:
        return False
    return None if None in results else True


def _or(results: List[Optional[bool]]) -> Optional[bool]:
    if True in results:
        return True
    return None if None in results else False


def _membership(entity_value: Any, values: Iterable[Any]) -> Optional[bool]:
    """SQL ``IN``: a NULL in the list makes a miss unknown rather than false."""
    values = list(values)
    if any(v is not None and entity_value == v for v in values):
        return True
    return None if any(v is None for v in values) else False


def _as_items(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


class MemoryRepository(QueryRepository[T], Generic[T]):
    """
    In-memory repository that evaluates predicate trees against Python records.

    Records are kept as dicts. A related collection stored on a record (a list
    of dicts or models under the relation's name) is what a ``Join`` node
    traverses. NULL semantics follow SQL three-valued logic: a comparison
    involving a missing value is unknown (``None``), unknown survives ``NOT``,
    and only a definite ``True`` selects a record.
    """

    def __init__(self, entity_type: Optional[Type[T]] = None, id_field: str = "id"):
        self._entity_type = entity_type
        self._id_field = id_field
        self._store: Dict[Any, Dict[str, Any]] = {}
        name = entity_type.__name__ if entity_type else "dict"
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}[{name}]")

    @property
    def entity_type(self) -> Optional[Type[T]]:
        return self._entity_type

    @property
    def id_field(self) -> str:
        return self._id_field

    async def store(self, entity: Any, logger: LoggerAdapter) -> None:
        entity_dict = self._entity_to_dict(entity)
        entity_id = entity_dict.get(self._id_field)
        if entity_id is None:
            raise ValueError(f"Entity must have its '{self._id_field}' field set")
        if entity_id in self._store:
            raise KeyAlreadyExistsException(f"Entity with ID '{entity_id}' already exists.")
        self._store[entity_id] = entity_dict
        logger.debug(f"Stored entity with {self._id_field}='{entity_id}'")

    async def store_many(self, entities: Iterable[Any], logger: LoggerAdapter) -> None:
        for entity in entities:
            await self.store(entity, logger)

    async def list(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> AsyncGenerator[T, None]:
        options = options or QueryOptions()
        logger.debug(f"Listing entities with options: {options!r}")
        filtered = self._filter_entities(options)
        sorted_entities = self._sort_entities(filtered, options.order_by)
        start = options.offset or 0
        end = start + options.limit if options.limit is not None else None
        for entity_dict in sorted_entities[start:end]:
            yield self._dict_to_entity(entity_dict)

    async def count(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> int:
        options = options or QueryOptions()
        count = len(self._filter_entities(options))
        logger.debug(f"Counted {count} entities matching {options.expression}")
        return count

    def _filter_entities(self, options: QueryOptions) -> List[Dict[str, Any]]:
        if not options.has_filter:
            return list(self._store.values())
        return [
            record
            for record in self._store.values()
            if self.matches(record, options.expression)
        ]

    def matches(self, record: Any, predicate: Predicate) -> bool:
        """Evaluates ``predicate`` against a single root record."""
        return self._evaluate(predicate, {None: record}) is True

    def _evaluate(self, predicate: Predicate, row: Row) -> Optional[bool]:
        """Returns True, False, or None when the outcome is unknown."""
        if isinstance(predicate, Conjunction):
            return True
        if isinstance(predicate, Comparison):
            return self._check_operator(predicate, row)
        if isinstance(predicate, Logical):
            results = [self._evaluate(p, row) for p in predicate.conditions]
            return _and(results) if predicate.operator == "and" else _or(results)
        if isinstance(predicate, Negation):
            result = self._evaluate(predicate.predicate, row)
            return None if result is None else not result
        if isinstance(predicate, Join):
            return self._evaluate_join(predicate, row)
        raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")

    def _evaluate_join(self, node: Join, row: Row) -> Optional[bool]:
        items = _as_items(_get_nested_value(row[None], node.relation))
        if not items and node.join_type is JoinType.LEFT:
            # Unmatched roots are kept with an all-NULL related row
            return self._evaluate(node.predicate, {**row, node.alias: None})
        return _or(
            [self._evaluate(node.predicate, {**row, node.alias: item}) for item in items]
        )

    def _check_operator(self, comparison: Comparison, row: Row) -> Optional[bool]:
        operator = comparison.operator
        bound = row.get(comparison.path.alias)
        entity_value = _get_nested_value(bound, comparison.path.name)

        if operator is Operator.IS_NULL:
            return entity_value is None
        if operator is Operator.IS_NOT_NULL:
            return entity_value is not None

        value = comparison.value
        if entity_value is None:
            return None
        if value is None and operator not in (Operator.IN, Operator.NOT_IN):
            return None
        try:
            if operator is Operator.EQ:
                return entity_value == value
            if operator is Operator.NE:
                return entity_value != value
            if operator is Operator.GT:
                return entity_value > value
            if operator is Operator.GE:
                return entity_value >= value
            if operator is Operator.LT:
                return entity_value < value
            if operator is Operator.LE:
                return entity_value <= value
            if operator is Operator.BETWEEN:
                if comparison.second_value is None:
                    return None
                return value <= entity_value <= comparison.second_value
        except TypeError as e:
            self._logger.debug(
                f"Values of '{comparison.path}' are not comparable ({e}), treating as no match"
            )
            return False
        if operator in (Operator.IN, Operator.NOT_IN):
            found = _membership(entity_value, value)
            if found is None or operator is Operator.IN:
                return found
            return not found
        if operator in (Operator.LIKE, Operator.NOT_LIKE):
            text = str(entity_value)
            if comparison.ignore_case:
                text = text.lower()
            found = like_to_regex(value).fullmatch(text) is not None
            return found if operator is Operator.LIKE else not found
        raise ValueError(f"Unsupported operator: {operator}")

    def _sort_entities(
        self, entities: List[Dict[str, Any]], order_by: Iterable[OrderSpec]
    ) -> List[Dict[str, Any]]:
        result = list(entities)
        # Stable sorts applied from the last key to the first; NULLs sort lowest
        for spec in reversed(list(order_by)):
            result.sort(
                key=lambda record, f=spec.field: (
                    _get_nested_value(record, f) is not None,
                    _get_nested_value(record, f),
                ),
                reverse=not spec.ascending,
            )
        return result

    def _entity_to_dict(self, entity: Any) -> Dict[str, Any]:
        if hasattr(entity, "model_dump"):
            return entity.model_dump(by_alias=True)
        if is_dataclass(entity) and not isinstance(entity, type):
            return asdict(entity)
        if isinstance(entity, dict):
            return copy.deepcopy(entity)
        return dict(vars(entity))

    def _dict_to_entity(self, entity_dict: Dict[str, Any]) -> T:
        entity_data = copy.deepcopy(entity_dict)
        if self._entity_type is None:
            return entity_data
        return self._entity_type(**entity_data)
