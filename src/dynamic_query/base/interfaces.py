# src/dynamic_query/base/interfaces.py

from abc import ABC, abstractmethod
from dataclasses import replace
from logging import LoggerAdapter
from typing import Any, AsyncGenerator, Generic, Optional, Type, TypeVar

from dynamic_query.base.exceptions import ObjectNotFoundException
from dynamic_query.base.query import QueryOptions

# Type variable for any entity
T = TypeVar("T")


class QueryRepository(Generic[T], ABC):
    """
    Storage backend that evaluates built ``QueryOptions``.

    Implementations apply the predicate, then ordering, then offset and
    limit. A query that traverses a relation never returns the same root
    entity twice.
    """

    @property
    @abstractmethod
    def entity_type(self) -> Optional[Type[T]]:
        """The entity type results are returned as, or None for plain dicts."""
        pass

    @property
    @abstractmethod
    def id_field(self) -> str:
        """The field holding the entity's unique id."""
        pass

    @abstractmethod
    async def store(self, entity: Any, logger: LoggerAdapter) -> None:
        """
        Store a new entity.

        Raises:
            KeyAlreadyExistsException: If an entity with the same id exists.
        """
        pass

    @abstractmethod
    async def list(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> AsyncGenerator[T, None]:
        """
        List entities matching the provided query options.

        Args:
            logger: Logger adapter for recording operations.
            options: QueryOptions from ``QueryBuilder.build()``. If None, list all.

        Yields:
            Entities matching the query, ordered and paginated as requested.
        """
        # Abstract method requires yield, but it won't be executed.
        if False:  # pragma: no cover
            yield

    @abstractmethod
    async def count(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> int:
        """
        Count entities matching the query's expression.

        Ordering and pagination are ignored.
        """
        pass

    async def find_one(
        self, logger: LoggerAdapter, options: Optional[QueryOptions] = None
    ) -> T:
        """
        Find the first entity matching the query options.

        Raises:
            ObjectNotFoundException: If no entity matches.
        """
        query_options = replace(options or QueryOptions(), limit=1, offset=0)
        async for entity in self.list(logger, query_options):
            return entity
        name = self.entity_type.__name__ if self.entity_type else "entity"
        raise ObjectNotFoundException(
            f"No {name} found matching the provided criteria."
        )
