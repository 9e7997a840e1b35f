"""
Custom exceptions for the procurement ledger

Every financial-state error carries structured attributes (budget item code,
requested vs. available amount, current vs. requested state) so callers can
render a useful message without parsing strings.

Fun fact: Luca Pacioli's 1494 "Summa de arithmetica" already told merchants
not to go to sleep until the debits equalled the credits. InvariantViolation
is our version of that insomnia.
"""

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for all procurement ledger errors"""

    pass


# Event store errors


class EventStoreError(LedgerError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when a command_id was already processed

    The store normally returns the original events instead of raising;
    this only surfaces when the race cannot be resolved.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates a concurrent writer outside this process - reload and retry.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# Input validation


class ValidationError(LedgerError):
    """
    Malformed or out-of-range input

    Raised before any ledger access, so it is never partially applied.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NoteRequired(ValidationError):
    """Raised when a transition that requires a note receives a blank one"""

    def __init__(self, requested_status: str) -> None:
        self.requested_status = requested_status
        super().__init__(
            f"A note is required to move a purchase order to {requested_status}",
            field="note",
        )


# Ledger invariant errors


class InvariantViolation(LedgerError):
    """
    Internal bug guard - a ledger invariant would be broken

    Treated as fatal: the operation is aborted and the error logged loudly.
    """

    def __init__(self, message: str, budget_item_id: str | None = None) -> None:
        self.budget_item_id = budget_item_id
        super().__init__(message)


class InsufficientBudget(LedgerError):
    """Raised when a reservation would drive available balance below zero"""

    def __init__(
        self,
        budget_item_id: str,
        code: str,
        requested: Decimal,
        available: Decimal,
    ) -> None:
        self.budget_item_id = budget_item_id
        self.code = code
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient budget on {code}: requested {requested}, "
            f"available {available}"
        )


class ConcurrencyTimeout(LedgerError):
    """
    Raised when a lock could not be acquired within the bounded wait

    Safe to retry: nothing was written.
    """

    def __init__(self, resource_ids: list[str], timeout_seconds: float) -> None:
        self.resource_ids = resource_ids
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for lock on "
            f"{', '.join(resource_ids)} - retry the request"
        )


# Budget item errors


class BudgetItemNotFound(LedgerError):
    """Raised when budget item does not exist"""

    def __init__(self, budget_item_id: str) -> None:
        self.budget_item_id = budget_item_id
        super().__init__(f"Budget item {budget_item_id} not found")


class DuplicateBudgetItemCode(ValidationError):
    """Raised when a budget item code is already taken"""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Budget item code {code} already exists", field="code")


class BudgetItemInUse(LedgerError):
    """Raised when deleting a budget item still referenced by an open PO"""

    def __init__(self, budget_item_id: str, code: str, po_numbers: list[str]) -> None:
        self.budget_item_id = budget_item_id
        self.code = code
        self.po_numbers = po_numbers
        super().__init__(
            f"Budget item {code} is referenced by open purchase orders: "
            f"{', '.join(po_numbers)}"
        )


class AmendmentNotFound(LedgerError):
    """Raised when amendment does not exist"""

    def __init__(self, amendment_id: str) -> None:
        self.amendment_id = amendment_id
        super().__init__(f"Amendment {amendment_id} not found")


# Purchase order errors


class PurchaseOrderNotFound(LedgerError):
    """Raised when purchase order does not exist"""

    def __init__(self, po_id: str) -> None:
        self.po_id = po_id
        super().__init__(f"Purchase order {po_id} not found")


class InvalidTransition(LedgerError):
    """Raised when the state machine has no edge for the requested move"""

    def __init__(self, po_id: str, current_status: str, requested_status: str) -> None:
        self.po_id = po_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Invalid status transition from {current_status} to {requested_status}"
        )


class NotEditable(LedgerError):
    """Raised when line items or details are edited outside DRAFT"""

    def __init__(self, po_id: str, current_status: str) -> None:
        self.po_id = po_id
        self.current_status = current_status
        super().__init__(
            f"Purchase order {po_id} is {current_status}, only DRAFT can be edited"
        )


class SelfApprovalForbidden(LedgerError):
    """Raised when a requester tries to approve their own purchase order"""

    def __init__(self, po_id: str, actor_id: str) -> None:
        self.po_id = po_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} cannot approve their own purchase order")


class OverrideNotPermitted(LedgerError):
    """Raised when an over-budget override is requested without the right role"""

    def __init__(self, actor_id: str, role: str, allowed_roles: list[str]) -> None:
        self.actor_id = actor_id
        self.role = role
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role {role} cannot authorize over-budget approvals "
            f"(allowed: {', '.join(allowed_roles)})"
        )


# Receipt errors


class ReceiptNotFound(LedgerError):
    """Raised when receipt does not exist"""

    def __init__(self, receipt_id: str) -> None:
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} not found")


class ReceiptNotLinked(LedgerError):
    """Raised when unlinking a receipt that has no purchase order"""

    def __init__(self, receipt_id: str) -> None:
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} is not linked to a purchase order")
