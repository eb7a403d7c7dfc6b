"""
Invoice line items.

Line items belong to exactly one invoice through ``invoice_id``.  They are
titled ``"{invoice_number} - {line_type} - ${amount}"`` on save, and follow
their invoice when it is trashed (published items are trashed) or deleted
(every item is deleted, whatever its status).
"""

from __future__ import annotations

from decimal import Decimal

from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import (
    ZERO,
    EntityType,
    coerce_id,
    round_hours,
    round_money,
    to_decimal,
)
from backoffice_kernel.exceptions import EntityNotFoundError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.store import Document, Filter, ObjectStore, WriteScope
from backoffice_modules.billing.models import LineType

logger = get_logger("modules.billing.line_items")

TITLE_GUARD = "line_item_title"

DEFAULT_TITLE = "Line Item"


def build_line_item_title(invoice_number: str | None, line_type: str | None, amount) -> str:
    """``INV-0042 - Support - $1,234.50``; blanks read as ``No Invoice`` / ``Unknown Type`` / ``$0.00``."""
    value = to_decimal(amount)
    amount_display = f"${round_money(value):,.2f}" if value else "$0.00"
    return f"{invoice_number or 'No Invoice'} - {line_type or 'Unknown Type'} - {amount_display}"


class LineItemService:
    """
    Line item creation, per-invoice queries and the invoice cascades.

    Guarantees
    ----------
    * ``line_items_for_invoice`` is ordered by ``display_order`` then id.
    * Hour totals count only Support and Support (Non-Billable) lines.
    * Writes flush through the store; the caller owns the transaction.
    """

    def __init__(self, store: ObjectStore):
        self._store = store

    def create(
        self,
        invoice_id: int,
        *,
        line_type: str = "",
        description: str = "",
        quantity=None,
        rate=None,
        amount=0,
        display_order: int = 0,
        related_service_request: int | None = None,
        related_milestone: int | None = None,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> int:
        scope = scope or WriteScope()
        fields = {
            "title": DEFAULT_TITLE,
            "invoice_id": invoice_id,
            "line_type": line_type,
            "description": description,
            "quantity": to_decimal(quantity) if quantity not in (None, "") else None,
            "rate": to_decimal(rate) if rate not in (None, "") else None,
            "amount": to_decimal(amount),
            "display_order": display_order,
        }
        if related_service_request:
            fields["related_service_request"] = related_service_request
        if related_milestone:
            fields["related_milestone"] = related_milestone

        line_item_id = self._store.create(
            EntityType.INVOICE_LINE_ITEM, fields, scope=scope, deadline=deadline
        )
        self.auto_title(line_item_id, scope=scope, deadline=deadline)

        logger.debug(
            "line_item_created",
            extra={
                "invoice_id": invoice_id,
                "line_item_id": line_item_id,
                "line_type": line_type,
            },
        )
        return line_item_id

    def line_items_for_invoice(
        self, invoice_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        ids = self._store.find(
            EntityType.INVOICE_LINE_ITEM,
            [Filter.eq("invoice_id", invoice_id)],
            order_by="display_order",
            deadline=deadline,
        )
        return self._store.get_many(EntityType.INVOICE_LINE_ITEM, ids, deadline=deadline)

    def total_amount(self, invoice_id: int, *, deadline: Deadline | None = None) -> Decimal:
        budget = resolve(deadline)
        total = ZERO
        for item in self.line_items_for_invoice(invoice_id, deadline=deadline):
            budget.check("line_item_total")
            total += to_decimal(item.get("amount"))
        return round_money(total)

    def total_hours(self, invoice_id: int, *, deadline: Deadline | None = None) -> Decimal:
        total = ZERO
        for item in self.line_items_for_invoice(invoice_id, deadline=deadline):
            if item.get("line_type") in LineType.HOURLY:
                total += to_decimal(item.get("quantity"))
        return round_hours(total)

    def count(self, invoice_id: int, *, deadline: Deadline | None = None) -> int:
        return len(self.line_items_for_invoice(invoice_id, deadline=deadline))

    def has_line_type(
        self, invoice_id: int, line_type: str, *, deadline: Deadline | None = None
    ) -> bool:
        return bool(
            self._store.find(
                EntityType.INVOICE_LINE_ITEM,
                [Filter.eq("invoice_id", invoice_id), Filter.eq("line_type", line_type)],
                limit=1,
                deadline=deadline,
            )
        )

    # ------------------------------------------------------------------
    # Save and delete hooks
    # ------------------------------------------------------------------

    def auto_title(
        self,
        line_item_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> str | None:
        """Recompute the title; writes only when it changed.  Returns the new title."""
        scope = scope or WriteScope()
        if scope.is_guarded(TITLE_GUARD):
            return None

        item = self._store.get(EntityType.INVOICE_LINE_ITEM, line_item_id, deadline=deadline)
        invoice_number = None
        invoice_id = coerce_id(item.get("invoice_id"))
        if invoice_id is not None:
            try:
                invoice = self._store.get(EntityType.INVOICE, invoice_id, deadline=deadline)
            except EntityNotFoundError:
                invoice = None
            if invoice is not None:
                invoice_number = invoice.get("invoice_number")

        title = build_line_item_title(invoice_number, item.get("line_type"), item.get("amount"))
        if item.get("title") == title:
            return None

        with scope.guard(TITLE_GUARD):
            self._store.set_field(
                EntityType.INVOICE_LINE_ITEM,
                line_item_id,
                "title",
                title,
                scope=scope,
                deadline=deadline,
            )
        logger.debug("line_item_titled", extra={"line_item_id": line_item_id, "title": title})
        return title

    def cascade_delete(
        self,
        invoice_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> int:
        """Hard-delete every line item of the invoice, trashed ones included."""
        ids = self._store.find(
            EntityType.INVOICE_LINE_ITEM,
            [Filter.eq("invoice_id", invoice_id)],
            include_trashed=True,
            deadline=deadline,
        )
        for item_id in ids:
            self._store.delete(
                EntityType.INVOICE_LINE_ITEM, item_id, scope=scope, deadline=deadline
            )
        if ids:
            logger.debug(
                "line_items_cascade_deleted",
                extra={"invoice_id": invoice_id, "count": len(ids)},
            )
        return len(ids)

    def cascade_trash(
        self,
        invoice_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> int:
        """Trash the published line items of the invoice."""
        ids = self._store.find(
            EntityType.INVOICE_LINE_ITEM,
            [Filter.eq("invoice_id", invoice_id)],
            deadline=deadline,
        )
        for item_id in ids:
            self._store.trash(
                EntityType.INVOICE_LINE_ITEM, item_id, scope=scope, deadline=deadline
            )
        if ids:
            logger.debug(
                "line_items_cascade_trashed",
                extra={"invoice_id": invoice_id, "count": len(ids)},
            )
        return len(ids)
