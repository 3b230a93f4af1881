# src/dynamic_query/base/schema.py
"""
Field resolution against an entity model.

A resolver turns caller-supplied field names into typed ``FieldPath`` values
for the predicate tree. ``StrictFieldResolver`` walks the model's type hints
and raises ``InvalidPathError`` for unknown names. ``PermissiveFieldResolver``
trusts the caller and only reports a type when the model can answer.
"""

import logging
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass
from inspect import isclass
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .exceptions import InvalidPathError
from .predicate import FieldPath

log = logging.getLogger(__name__)

_SEQUENCE_ORIGINS = (list, List, tuple, Tuple, set, Set, frozenset)
_MAPPING_ORIGINS = (dict, Dict, Mapping)


def _is_none_type(t: Any) -> bool:
    return t is type(None)


def _unwrap_optional(t: Any) -> Any:
    """Strips ``Optional[X]`` / ``X | None`` down to ``X``."""
    origin = get_origin(t)
    if origin is Union or origin is types.UnionType:
        non_none = [arg for arg in get_args(t) if not _is_none_type(arg)]
        if len(non_none) == 1:
            return non_none[0]
    return t


def _item_type(t: Any) -> Any:
    """Element type of a collection annotation, or the type itself."""
    t = _unwrap_optional(t)
    origin = get_origin(t)
    if origin in _SEQUENCE_ORIGINS or t in (list, tuple, set, frozenset):
        args = get_args(t)
        if not args:
            return Any
        return args[0]
    return t


@dataclass(frozen=True)
class JoinScope:
    """A resolved relation: where joined fields live and what type they belong to."""

    relation: str
    alias: str
    item_type: Optional[Any] = None


class FieldResolver(ABC):
    """Resolves field and relation names for the predicate algebra."""

    strict: bool = True

    @abstractmethod
    def resolve(self, field: str, scope: Optional[JoinScope] = None) -> FieldPath:
        """
        Resolves ``field`` on the root entity, or on the joined entity of ``scope``.

        Raises:
            InvalidPathError: If the field does not exist.
        """

    @abstractmethod
    def resolve_relation(
        self, relation: str, alias: str, scope: Optional[JoinScope] = None
    ) -> JoinScope:
        """
        Resolves a relation to a join scope under ``alias``.

        Raises:
            InvalidPathError: If the relation does not exist.
        """


class _TypeHints:
    """Cached type-hint and alias lookup for model classes."""

    def __init__(self):
        self._hints_cache: Dict[Type, Dict[str, Any]] = {}
        self._aliases_cache: Dict[Type, Dict[str, str]] = {}

    def hints(self, cls: Type) -> Dict[str, Any]:
        if cls not in self._hints_cache:
            log.debug(f"Cache miss: hints for {cls.__name__}")
            try:
                hints = get_type_hints(cls, include_extras=True)
            except NameError as e:
                raise TypeError(
                    f"Unresolved forward ref in {cls.__name__}? Error: {e}"
                ) from e
            model_fields = getattr(cls, "model_fields", None)
            if isinstance(model_fields, dict):
                # Pydantic models also annotate ClassVars such as model_config
                hints = {k: v for k, v in hints.items() if k in model_fields}
            self._hints_cache[cls] = hints
        return self._hints_cache[cls]

    def aliases(self, cls: Type) -> Dict[str, str]:
        if cls not in self._aliases_cache:
            aliases = {}
            if hasattr(cls, "model_fields"):
                for name, info in cls.model_fields.items():
                    if info.alias and info.alias != name:
                        aliases[info.alias] = name
            self._aliases_cache[cls] = aliases
        return self._aliases_cache[cls]

    def traverse(self, model_cls: Any, field_path: str) -> Any:
        """
        Walks a dotted field path through ``model_cls`` and returns the final type.

        Collections along the way are stepped through to their element type.
        ``Any`` and untyped dicts stop the walk and yield ``Any``.
        """
        current: Any = model_cls
        walked: List[str] = []

        for part in field_path.split("."):
            walked.append(part)
            current = _item_type(current)
            origin = get_origin(current)

            if current is Any or isinstance(current, TypeVar):
                return Any

            if origin in _MAPPING_ORIGINS or current is dict:
                args = get_args(current)
                if len(args) == 2:
                    if args[0] is not str:
                        raise InvalidPathError(
                            f"Cannot traverse dict path '{'.'.join(walked)}' with non-string keys"
                        )
                    current = args[1]
                    continue
                return Any

            cls = origin if isinstance(origin, type) else current
            if not isclass(cls):
                raise InvalidPathError(
                    f"Cannot access '{part}' on {current!r}. Path: '{'.'.join(walked)}'."
                )

            name = self.aliases(cls).get(part, part)
            hints = self.hints(cls)
            if name not in hints:
                raise InvalidPathError(
                    f"Field '{part}' does not exist in type {cls.__name__}. "
                    f"Path: '{'.'.join(walked)}'."
                )
            current = hints[name]

        log.debug(f"Resolved '{field_path}' on {model_cls!r} to {current!r}")
        return current


class StrictFieldResolver(FieldResolver):
    """Resolves names against the type hints of ``model_cls`` and fails on unknown ones."""

    strict = True

    def __init__(self, model_cls: Type):
        if not isclass(model_cls):
            raise TypeError(f"model_cls must be a class, received {type(model_cls)}.")
        self.model_cls = model_cls
        self._hints = _TypeHints()

    def _owner(self, scope: Optional[JoinScope]) -> Any:
        if scope is None:
            return self.model_cls
        if scope.item_type is None:
            raise InvalidPathError(f"Relation '{scope.relation}' has no known item type")
        return scope.item_type

    def resolve(self, field: str, scope: Optional[JoinScope] = None) -> FieldPath:
        field_type = self._hints.traverse(self._owner(scope), field)
        return FieldPath(field, scope.alias if scope else None, field_type)

    def resolve_relation(
        self, relation: str, alias: str, scope: Optional[JoinScope] = None
    ) -> JoinScope:
        relation_type = self._hints.traverse(self._owner(scope), relation)
        item_type = _item_type(relation_type)
        if item_type is Any:
            item_type = None
        return JoinScope(relation, alias, item_type)


class PermissiveFieldResolver(FieldResolver):
    """
    Trusts caller-supplied names.

    When a model class is given its type hints are consulted for declared
    types, but a miss only leaves the type unknown.
    """

    strict = False

    def __init__(self, model_cls: Optional[Type] = None):
        self.model_cls = model_cls
        self._hints = _TypeHints()

    def _lookup(self, owner: Any, path: str) -> Optional[Any]:
        if owner is None:
            return None
        try:
            found = self._hints.traverse(owner, path)
        except (InvalidPathError, TypeError) as e:
            log.debug(f"Type lookup for '{path}' failed, treating as untyped: {e}")
            return None
        return None if found is Any else found

    def _owner(self, scope: Optional[JoinScope]) -> Any:
        return self.model_cls if scope is None else scope.item_type

    def resolve(self, field: str, scope: Optional[JoinScope] = None) -> FieldPath:
        field_type = self._lookup(self._owner(scope), field)
        return FieldPath(field, scope.alias if scope else None, field_type)

    def resolve_relation(
        self, relation: str, alias: str, scope: Optional[JoinScope] = None
    ) -> JoinScope:
        relation_type = self._lookup(self._owner(scope), relation)
        item_type = _item_type(relation_type) if relation_type is not None else None
        if item_type is Any:
            item_type = None
        return JoinScope(relation, alias, item_type)


def resolver_for(model_cls: Optional[Type] = None, strict: bool = True) -> FieldResolver:
    """Chooses a resolver: strict needs a model class, anything else is permissive."""
    if strict and model_cls is not None:
        return StrictFieldResolver(model_cls)
    return PermissiveFieldResolver(model_cls)


__all__ = [
    "JoinScope",
    "FieldResolver",
    "StrictFieldResolver",
    "PermissiveFieldResolver",
    "resolver_for",
]
