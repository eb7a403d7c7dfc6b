"""
Typed Exception Hierarchy for the Back-Office Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the financial and reference engine must be able to tell a
"no data" answer apart from "the store could not be reached".  Parsing
message strings for that distinction is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        status = milestones.payment_status(milestone_id)
    except StoreUnavailableError as e:
        render_error(code=e.code, operation=e.operation)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BackofficeError (base)
    |
    +-- StoreError
    |   +-- EntityNotFoundError
    |   +-- InvalidFilterError
    |   +-- StoreUnavailableError
    |       +-- StoreTimeoutError
    |       +-- DeadlineExceededError
    |
    +-- ReferenceNumberError
    |   +-- MissingReferenceInputError
    |
    +-- ReportPeriodError
    |   +-- UnparsableReportMonthError
    |
    +-- PaymentError
    |   +-- InvalidPaymentAmountError
    |   +-- OverpaymentError
    |   +-- InvoiceNotPayableError
    |
    +-- CacheError
    |   +-- CacheBackendError
    |
    +-- ConfigurationError
        +-- InvalidationTableError

===============================================================================
PROPAGATION
===============================================================================

Validation-style problems (missing reference inputs, unparsable report
months) are raised inside the engine and caught at the service boundary,
where they are logged and replaced by a safe default.  Infrastructure
problems (StoreUnavailableError and its subclasses) always reach the
caller.  CacheError never escapes the cache facade: a failing cache is a
miss.
"""


class BackofficeError(Exception):
    """
    Base exception for all back-office kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BACKOFFICE_ERROR"


# Object store exceptions


class StoreError(BackofficeError):
    """Base exception for object store errors."""

    code: str = "STORE_ERROR"


class EntityNotFoundError(StoreError):
    """No entity of the given type exists with the given id."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_type}:{entity_id}")


class InvalidFilterError(StoreError):
    """A query filter is malformed (unknown operator or wrong value shape)."""

    code: str = "INVALID_FILTER"

    def __init__(self, field: str, op: str, reason: str):
        self.field = field
        self.op = op
        self.reason = reason
        super().__init__(f"Invalid filter on {field!r} ({op}): {reason}")


class StoreUnavailableError(StoreError):
    """
    The object store could not answer.

    Calculators must never substitute zero for real data when this is
    raised; it always propagates to the caller.
    """

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Object store unavailable during {operation}: {reason}")


class StoreTimeoutError(StoreUnavailableError):
    """A store call exceeded its bounded timeout."""

    code: str = "STORE_TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(operation, f"timed out after {timeout_seconds}s")


class DeadlineExceededError(StoreUnavailableError):
    """The caller's deadline expired before or during an aggregate."""

    code: str = "DEADLINE_EXCEEDED"

    def __init__(self, operation: str):
        super().__init__(operation, "caller deadline exceeded")


# Reference number exceptions


class ReferenceNumberError(BackofficeError):
    """Base exception for reference-number generation."""

    code: str = "REFERENCE_NUMBER_ERROR"


class MissingReferenceInputError(ReferenceNumberError):
    """
    A milestone reference cannot be generated yet.

    Raised when the parent project is missing or has no reference number,
    or when the milestone has no order.  The generator logs and skips;
    the reference stays unset for a later retry.
    """

    code: str = "MISSING_REFERENCE_INPUT"

    def __init__(self, entity_id: int, missing: str):
        self.entity_id = entity_id
        self.missing = missing
        super().__init__(f"Cannot assign reference to {entity_id}: missing {missing}")


# Report period exceptions


class ReportPeriodError(BackofficeError):
    """Base exception for monthly report period handling."""

    code: str = "REPORT_PERIOD_ERROR"


class UnparsableReportMonthError(ReportPeriodError):
    """The report_month of a monthly report is not a recognizable month."""

    code: str = "UNPARSABLE_REPORT_MONTH"

    def __init__(self, report_month: str, report_id: int | None = None):
        self.report_month = report_month
        self.report_id = report_id
        super().__init__(f"Cannot parse report month {report_month!r}")


# Payment exceptions


class PaymentError(BackofficeError):
    """Base exception for payment recording."""

    code: str = "PAYMENT_ERROR"


class InvalidPaymentAmountError(PaymentError):
    """Payment amount must be strictly positive."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, invoice_id: int, amount):
        self.invoice_id = invoice_id
        self.amount = amount
        super().__init__(f"Invalid payment amount {amount} for invoice {invoice_id}")


class OverpaymentError(PaymentError):
    """The payment would push amount_paid above the invoice amount."""

    code: str = "OVERPAYMENT"

    def __init__(self, invoice_id: int, amount, balance):
        self.invoice_id = invoice_id
        self.amount = amount
        self.balance = balance
        super().__init__(
            f"Payment of {amount} exceeds balance {balance} on invoice {invoice_id}"
        )


class InvoiceNotPayableError(PaymentError):
    """The invoice is in a terminal status and cannot take payments."""

    code: str = "INVOICE_NOT_PAYABLE"

    def __init__(self, invoice_id: int, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Invoice {invoice_id} is {status} and cannot take payments")


# Cache exceptions


class CacheError(BackofficeError):
    """Base exception for cache errors.  Never fatal."""

    code: str = "CACHE_ERROR"


class CacheBackendError(CacheError):
    """A cache backend failed to read or write a key."""

    code: str = "CACHE_BACKEND_ERROR"

    def __init__(self, operation: str, key: str, reason: str = ""):
        self.operation = operation
        self.key = key
        self.reason = reason
        super().__init__(f"Cache {operation} failed for {key!r}: {reason}")


# Configuration exceptions


class ConfigurationError(BackofficeError):
    """Base exception for start-time configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class InvalidationTableError(ConfigurationError):
    """
    The cache dependency table does not cover what cached keys depend on.

    Raised at router construction so drift between what a write evicts
    and what a read depends on is caught before any request is served.
    """

    code: str = "INVALIDATION_TABLE_INVALID"

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            "Cache invalidation table is inconsistent:\n"
            + "\n".join(f"  - {p}" for p in problems)
        )
