"""
Object store contract.

Responsibility:
    Defines the narrow interface through which the engine reads and writes
    entities: ``Document`` (a typed field map), ``Filter`` (field/op/value
    query predicates), ``MutationEvent`` (what a write announces) and
    ``WriteScope`` (per-transaction origin and re-entrancy guards).

Architecture position:
    Kernel > Store.  Services depend on the ``ObjectStore`` protocol, never on
    the SQL implementation, so the store can be swapped without touching
    calculators.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from backoffice_kernel.domain.deadline import Deadline
from backoffice_kernel.domain.values import EntityType

ORDER_CREATED = "created_at"


class FilterOp(str, Enum):
    """Comparison operators supported by ``ObjectStore.find``."""

    EQ = "="
    NE = "!="
    IN = "IN"
    NOT_IN = "NOT_IN"
    BETWEEN = "BETWEEN"
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="


@dataclass(frozen=True)
class Filter:
    """A single field predicate.  Filters passed together are AND-ed."""

    field: str
    op: FilterOp
    value: Any

    @classmethod
    def eq(cls, field: str, value: Any) -> Filter:
        return cls(field, FilterOp.EQ, value)

    @classmethod
    def ne(cls, field: str, value: Any) -> Filter:
        return cls(field, FilterOp.NE, value)

    @classmethod
    def in_(cls, field: str, values: Sequence[Any]) -> Filter:
        return cls(field, FilterOp.IN, tuple(values))

    @classmethod
    def not_in(cls, field: str, values: Sequence[Any]) -> Filter:
        return cls(field, FilterOp.NOT_IN, tuple(values))

    @classmethod
    def between(cls, field: str, low: Any, high: Any) -> Filter:
        return cls(field, FilterOp.BETWEEN, (low, high))

    @classmethod
    def lt(cls, field: str, value: Any) -> Filter:
        return cls(field, FilterOp.LT, value)

    @classmethod
    def gt(cls, field: str, value: Any) -> Filter:
        return cls(field, FilterOp.GT, value)

    @classmethod
    def ge(cls, field: str, value: Any) -> Filter:
        return cls(field, FilterOp.GE, value)


@dataclass(frozen=True)
class Document:
    """An entity as read from the store: type tag, id, fields and metadata."""

    entity_type: EntityType
    id: int
    fields: Mapping[str, Any]
    status: str = "publish"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    @property
    def is_trashed(self) -> bool:
        return self.status == "trash"


class MutationKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    TRASHED = "trashed"
    DELETING = "deleting"
    DELETED = "deleted"


class WriteOrigin(str, Enum):
    """
    Who caused a write.

    AUTOSAVE and REVISION writes are bookkeeping of the editing surface;
    they never change derived values and are ignored by cache invalidation.
    """

    USER = "user"
    SYSTEM = "system"
    AUTOSAVE = "autosave"
    REVISION = "revision"


@dataclass(frozen=True)
class MutationEvent:
    entity_type: EntityType
    entity_id: int
    kind: MutationKind
    origin: WriteOrigin = WriteOrigin.USER
    changed_fields: tuple[str, ...] = ()

    @property
    def is_bookkeeping(self) -> bool:
        return self.origin in (WriteOrigin.AUTOSAVE, WriteOrigin.REVISION)


@dataclass
class WriteScope:
    """
    State scoped to one write transaction.

    Hooks that write back to the entity that triggered them (title sync,
    reference assignment) enter a named guard; the nested event sees the
    guard and returns instead of looping.  The guard lives on the scope,
    so two concurrent requests never see each other's guards.
    """

    origin: WriteOrigin = WriteOrigin.USER
    _guards: set[str] = field(default_factory=set)

    def is_guarded(self, name: str) -> bool:
        return name in self._guards

    @contextmanager
    def guard(self, name: str) -> Iterator[None]:
        self._guards.add(name)
        try:
            yield
        finally:
            self._guards.discard(name)


class ObjectStore(Protocol):
    """The operations the engine consumes from the document store."""

    def get(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        deadline: Deadline | None = None,
    ) -> Document: ...

    def exists(
        self,
        entity_type: EntityType | str,
        entity_id: int | None,
        *,
        deadline: Deadline | None = None,
    ) -> bool: ...

    def get_many(
        self,
        entity_type: EntityType | str,
        entity_ids: Sequence[int],
        *,
        deadline: Deadline | None = None,
    ) -> list[Document]: ...

    def find(
        self,
        entity_type: EntityType | str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        include_trashed: bool = False,
        deadline: Deadline | None = None,
    ) -> list[int]: ...

    def create(
        self,
        entity_type: EntityType | str,
        fields: Mapping[str, Any],
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> int: ...

    def set_field(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        name: str,
        value: Any,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None: ...

    def update(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        fields: Mapping[str, Any],
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None: ...

    def trash(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None: ...

    def delete(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None: ...
