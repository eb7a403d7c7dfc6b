"""
MutationDispatcher -- fan-out of store write events to listeners.

The store publishes one ``MutationEvent`` per write after the write is
flushed (``DELETING`` is published before the rows go).  Listeners run
synchronously in subscription order inside the writer's transaction and
receive the writer's ``WriteScope`` so nested writes can share guards.
Listener logs carry the event's ``entity_type`` and ``entity_id`` through
``LogContext``.

A listener exception propagates to the writer.  Listeners that must never
fail a write (cache invalidation) handle their own errors.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from backoffice_kernel.domain.values import EntityType
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.store.protocol import MutationEvent, MutationKind, WriteScope

logger = get_logger("kernel.store.dispatcher")

Listener = Callable[[MutationEvent, WriteScope], None]


@dataclass(frozen=True)
class _Subscription:
    listener: Listener
    entity_types: frozenset[EntityType] | None
    kinds: frozenset[MutationKind] | None
    name: str

    def matches(self, event: MutationEvent) -> bool:
        if self.entity_types is not None and event.entity_type not in self.entity_types:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        return True


class MutationDispatcher:
    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(
        self,
        listener: Listener,
        entity_types: Iterable[EntityType] | None = None,
        kinds: Iterable[MutationKind] | None = None,
        name: str | None = None,
    ) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        subscription = _Subscription(
            listener=listener,
            entity_types=frozenset(entity_types) if entity_types is not None else None,
            kinds=frozenset(kinds) if kinds is not None else None,
            name=name or getattr(listener, "__qualname__", repr(listener)),
        )
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def publish(self, event: MutationEvent, scope: WriteScope) -> None:
        with LogContext.bind(
            entity_type=event.entity_type.value, entity_id=str(event.entity_id)
        ):
            for subscription in list(self._subscriptions):
                if not subscription.matches(event):
                    continue
                logger.debug(
                    "mutation_dispatched",
                    extra={
                        "listener": subscription.name,
                        "kind": event.kind.value,
                        "origin": event.origin.value,
                    },
                )
                subscription.listener(event, scope)

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)
