"""Object store: protocol, SQL implementation and mutation dispatch."""

from backoffice_kernel.store.dispatcher import MutationDispatcher
from backoffice_kernel.store.protocol import (
    ORDER_CREATED,
    Document,
    Filter,
    FilterOp,
    MutationEvent,
    MutationKind,
    ObjectStore,
    WriteOrigin,
    WriteScope,
)
from backoffice_kernel.store.sql_store import SqlObjectStore

__all__ = [
    "ORDER_CREATED",
    "Document",
    "Filter",
    "FilterOp",
    "MutationDispatcher",
    "MutationEvent",
    "MutationKind",
    "ObjectStore",
    "SqlObjectStore",
    "WriteOrigin",
    "WriteScope",
]
