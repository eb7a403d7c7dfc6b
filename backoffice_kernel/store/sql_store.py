"""
SqlObjectStore -- the object store on SQLAlchemy.

Responsibility:
    Implements the ``ObjectStore`` protocol over the entity/field tables in
    ``store.orm``: typed field reads, field-predicate queries, writes that
    publish ``MutationEvent`` to a ``MutationDispatcher``.

Architecture position:
    Kernel > Store -- imperative shell.  Services receive it through the
    ``ObjectStore`` protocol.

Invariants enforced:
    - Writes flush but never commit; the caller owns the transaction.
    - Every write publishes exactly one event (deletes publish DELETING
      before the rows go and DELETED after).
    - Creation timestamps come from the injected clock so ordering is
      deterministic under ``DeterministicClock``.

Failure modes:
    - EntityNotFoundError: no entity with that type and id.
    - InvalidFilterError: malformed filter (unknown op, wrong value shape).
    - DeadlineExceededError: the caller's deadline expired before the call.
    - StoreTimeoutError: the database cancelled the statement or the pool
      timed out.
    - StoreUnavailableError: any other SQLAlchemyError.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import and_, false, or_, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, aliased

from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import EntityType
from backoffice_kernel.exceptions import (
    EntityNotFoundError,
    InvalidFilterError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.store import codec
from backoffice_kernel.store.dispatcher import MutationDispatcher
from backoffice_kernel.store.orm import EntityRecord, FieldRecord
from backoffice_kernel.store.protocol import (
    ORDER_CREATED,
    Document,
    Filter,
    FilterOp,
    MutationEvent,
    MutationKind,
    WriteScope,
)

logger = get_logger("kernel.store")

STATUS_PUBLISH = "publish"
STATUS_TRASH = "trash"

_TIMEOUT_MARKERS = ("statement timeout", "canceling statement")


class SqlObjectStore:
    """
    Object store backed by the ``store_entities``/``store_fields`` tables.

    Contract:
        Reads return ``Document`` with decoded field values; ``find``
        returns ids only, ordered by the requested field then by id.

    Guarantees:
        - Numeric filter values compare numerically, strings and dates
          lexically (dates are stored as ISO text).
        - ``!=`` and ``NOT_IN`` only match entities that have the field.
        - Trashed entities are excluded from ``find`` unless
          ``include_trashed`` is set; ``get`` returns them.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT cache; the cache layer sits above the services.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        dispatcher: MutationDispatcher | None = None,
        call_timeout_seconds: float = 5.0,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or MutationDispatcher()
        self._call_timeout = call_timeout_seconds

    @property
    def dispatcher(self) -> MutationDispatcher:
        return self._dispatcher

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Call guard
    # ------------------------------------------------------------------

    @contextmanager
    def _call(self, operation: str, deadline: Deadline | None) -> Iterator[None]:
        resolve(deadline).check(operation)
        started = time.monotonic()
        try:
            yield
        except PoolTimeoutError as exc:
            logger.error(
                "store_call_timeout",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreTimeoutError(operation, self._call_timeout) from exc
        except OperationalError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _TIMEOUT_MARKERS):
                logger.error(
                    "store_call_timeout",
                    extra={"operation": operation, "error": str(exc)},
                )
                raise StoreTimeoutError(operation, self._call_timeout) from exc
            logger.error(
                "store_call_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreUnavailableError(operation, str(exc)) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "store_call_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreUnavailableError(operation, str(exc)) from exc
        elapsed = time.monotonic() - started
        if elapsed > self._call_timeout:
            logger.warning(
                "store_call_slow",
                extra={
                    "operation": operation,
                    "elapsed_seconds": round(elapsed, 3),
                    "timeout_seconds": self._call_timeout,
                },
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        deadline: Deadline | None = None,
    ) -> Document:
        etype = EntityType(entity_type)
        with self._call("get", deadline):
            record = self._load(etype, entity_id)
            return self._to_document(record)

    def exists(
        self,
        entity_type: EntityType | str,
        entity_id: int | None,
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        if not entity_id:
            return False
        etype = EntityType(entity_type)
        with self._call("exists", deadline):
            found = self._session.execute(
                select(EntityRecord.id).where(
                    EntityRecord.id == entity_id,
                    EntityRecord.entity_type == etype.value,
                )
            ).scalar_one_or_none()
        return found is not None

    def get_many(
        self,
        entity_type: EntityType | str,
        entity_ids: Sequence[int],
        *,
        deadline: Deadline | None = None,
    ) -> list[Document]:
        """Bulk fetch; result follows the order of ``entity_ids``, missing ids dropped."""
        etype = EntityType(entity_type)
        ids = list(dict.fromkeys(entity_ids))
        if not ids:
            return []
        with self._call("get_many", deadline):
            records = self._session.execute(
                select(EntityRecord).where(
                    EntityRecord.id.in_(ids),
                    EntityRecord.entity_type == etype.value,
                )
            ).scalars().all()
            by_id = {record.id: record for record in records}
            return [self._to_document(by_id[i]) for i in ids if i in by_id]

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
    ) -> list[int]:
        etype = EntityType(entity_type)
        clauses = [EntityRecord.entity_type == etype.value]
        if not include_trashed:
            clauses.append(EntityRecord.status == STATUS_PUBLISH)
        clauses.extend(self._filter_clause(f) for f in filters)

        stmt = select(EntityRecord.id).where(*clauses)

        if order_by == ORDER_CREATED:
            order_cols = [EntityRecord.created_at]
        elif order_by:
            sort_field = aliased(FieldRecord)
            stmt = stmt.outerjoin(
                sort_field,
                and_(
                    sort_field.entity_id == EntityRecord.id,
                    sort_field.name == order_by,
                    sort_field.position == 0,
                ),
            )
            order_cols = [sort_field.value_num, sort_field.value_text]
        else:
            order_cols = []
        order_cols.append(EntityRecord.id)
        stmt = stmt.order_by(*[c.desc() if descending else c.asc() for c in order_cols])

        if limit is not None and limit > 0:
            stmt = stmt.limit(limit)

        with self._call("find", deadline):
            return list(self._session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        entity_type: EntityType | str,
        fields: Mapping[str, Any],
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> int:
        etype = EntityType(entity_type)
        scope = scope or WriteScope()
        now = self._clock.now()
        with self._call("create", deadline):
            record = EntityRecord(
                entity_type=etype.value,
                status=STATUS_PUBLISH,
                created_at=now,
                updated_at=now,
            )
            record.fields = []
            for name, value in fields.items():
                record.fields.extend(self._encode_field(name, value))
            self._session.add(record)
            self._session.flush()

        logger.debug(
            "store_entity_created",
            extra={"entity_type": etype.value, "entity_id": record.id},
        )
        self._publish(etype, record.id, MutationKind.CREATED, scope, tuple(fields))
        return record.id

    def set_field(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        name: str,
        value: Any,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        self.update(entity_type, entity_id, {name: value}, scope=scope, deadline=deadline)

    def update(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        fields: Mapping[str, Any],
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        if not fields:
            return
        etype = EntityType(entity_type)
        scope = scope or WriteScope()
        with self._call("update", deadline):
            record = self._load(etype, entity_id)
            names = set(fields)
            kept = [f for f in record.fields if f.name not in names]
            for name, value in fields.items():
                kept.extend(self._encode_field(name, value))
            record.fields = kept
            record.updated_at = self._clock.now()
            self._session.flush()

        self._publish(etype, entity_id, MutationKind.UPDATED, scope, tuple(fields))

    def trash(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        etype = EntityType(entity_type)
        scope = scope or WriteScope()
        with self._call("trash", deadline):
            record = self._load(etype, entity_id)
            if record.status == STATUS_TRASH:
                return
            record.status = STATUS_TRASH
            record.updated_at = self._clock.now()
            self._session.flush()

        self._publish(etype, entity_id, MutationKind.TRASHED, scope)

    def restore(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        """Bring a trashed entity back; published as an update of ``status``."""
        etype = EntityType(entity_type)
        scope = scope or WriteScope()
        with self._call("restore", deadline):
            record = self._load(etype, entity_id)
            if record.status == STATUS_PUBLISH:
                return
            record.status = STATUS_PUBLISH
            record.updated_at = self._clock.now()
            self._session.flush()

        self._publish(etype, entity_id, MutationKind.UPDATED, scope, ("status",))

    def delete(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        etype = EntityType(entity_type)
        scope = scope or WriteScope()
        with self._call("delete", deadline):
            self._load(etype, entity_id)

        # Listeners read the entity (and its children) before the rows go.
        self._publish(etype, entity_id, MutationKind.DELETING, scope)

        with self._call("delete", deadline):
            record = self._load(etype, entity_id)
            self._session.delete(record)
            self._session.flush()

        logger.debug(
            "store_entity_deleted",
            extra={"entity_type": etype.value, "entity_id": entity_id},
        )
        self._publish(etype, entity_id, MutationKind.DELETED, scope)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, etype: EntityType, entity_id: int) -> EntityRecord:
        record = self._session.get(EntityRecord, entity_id)
        if record is None or record.entity_type != etype.value:
            raise EntityNotFoundError(etype.value, entity_id)
        return record

    @staticmethod
    def _encode_field(name: str, value: Any) -> list[FieldRecord]:
        is_multi, rows = codec.encode(value)
        return [
            FieldRecord(
                name=name,
                position=position,
                is_multi=is_multi,
                value_type=row.value_type,
                value_text=row.value_text,
                value_num=row.value_num,
            )
            for position, row in enumerate(rows)
        ]

    @staticmethod
    def _to_document(record: EntityRecord) -> Document:
        grouped: dict[str, list[FieldRecord]] = {}
        for field_row in record.fields:
            grouped.setdefault(field_row.name, []).append(field_row)

        values: dict[str, Any] = {}
        for name, rows in grouped.items():
            rows.sort(key=lambda r: r.position)
            values[name] = codec.decode(
                rows[0].is_multi,
                [(r.value_type, r.value_text) for r in rows],
            )

        return Document(
            entity_type=EntityType(record.entity_type),
            id=record.id,
            fields=values,
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def _publish(
        self,
        etype: EntityType,
        entity_id: int,
        kind: MutationKind,
        scope: WriteScope,
        changed_fields: tuple[str, ...] = (),
    ) -> None:
        self._dispatcher.publish(
            MutationEvent(
                entity_type=etype,
                entity_id=entity_id,
                kind=kind,
                origin=scope.origin,
                changed_fields=changed_fields,
            ),
            scope,
        )

    # ------------------------------------------------------------------
    # Filter compilation
    # ------------------------------------------------------------------

    def _filter_clause(self, flt: Filter):
        try:
            op = FilterOp(flt.op)
        except ValueError:
            raise InvalidFilterError(flt.field, str(flt.op), "unknown operator") from None

        def matching(condition):
            return EntityRecord.id.in_(
                select(FieldRecord.entity_id).where(
                    FieldRecord.name == flt.field, condition
                )
            )

        has_field = EntityRecord.id.in_(
            select(FieldRecord.entity_id).where(FieldRecord.name == flt.field)
        )

        if op in (FilterOp.IN, FilterOp.NOT_IN):
            if not isinstance(flt.value, (list, tuple, set, frozenset)):
                raise InvalidFilterError(flt.field, op.value, "expected a sequence of values")
            condition = self._membership(list(flt.value))
            if op is FilterOp.IN:
                return matching(condition) if condition is not None else false()
            if condition is None:
                return has_field
            return and_(has_field, ~matching(condition))

        if op is FilterOp.BETWEEN:
            if not isinstance(flt.value, (list, tuple)) or len(flt.value) != 2:
                raise InvalidFilterError(flt.field, op.value, "expected (low, high)")
            low_kind, low = codec.comparison_operand(flt.value[0])
            high_kind, high = codec.comparison_operand(flt.value[1])
            if low_kind != high_kind or low_kind == "null":
                raise InvalidFilterError(flt.field, op.value, "bounds must be comparable")
            column = self._column(low_kind)
            return matching(column.between(low, high))

        if isinstance(flt.value, (list, tuple, set, frozenset)):
            raise InvalidFilterError(flt.field, op.value, "expected a single value")

        kind, operand = codec.comparison_operand(flt.value)
        if kind == "null":
            if op is FilterOp.EQ:
                return matching(FieldRecord.value_type == codec.NULL)
            if op is FilterOp.NE:
                return matching(FieldRecord.value_type != codec.NULL)
            raise InvalidFilterError(flt.field, op.value, "None only supports = and !=")

        column = self._column(kind)
        if op is FilterOp.EQ:
            return matching(column == operand)
        if op is FilterOp.NE:
            return and_(has_field, ~matching(column == operand))
        if op is FilterOp.LT:
            return matching(column < operand)
        if op is FilterOp.GT:
            return matching(column > operand)
        if op is FilterOp.LE:
            return matching(column <= operand)
        return matching(column >= operand)

    def _membership(self, values: list[Any]):
        nums: list[Any] = []
        texts: list[Any] = []
        for value in values:
            kind, operand = codec.comparison_operand(value)
            if kind == "num":
                nums.append(operand)
            elif kind == "text":
                texts.append(operand)
        parts = []
        if nums:
            parts.append(FieldRecord.value_num.in_(nums))
        if texts:
            parts.append(FieldRecord.value_text.in_(texts))
        if not parts:
            return None
        return or_(*parts)

    @staticmethod
    def _column(kind: str):
        return FieldRecord.value_num if kind == "num" else FieldRecord.value_text
