"""
Typed exception hierarchy for the ledger kernel.

Every error the engine can produce is an *expected* domain outcome and is
raised as a subclass of ``LedgerError``.  Each class carries:

  1. A ``code`` class attribute (machine-readable, API-safe).
  2. Structured attributes with the context needed to act on the error
     (account code/name, numeric totals, row index, voucher status).
  3. A human-readable message suitable for showing to the user.

Callers catch by type, never by parsing messages::

    try:
        machine.post(voucher_id, company_id, actor_id)
    except NonLeafAccountError as e:
        return {"error": e.code, "account_code": e.account_code}
    except BalanceError as e:
        return {"error": e.code, "debit": e.total_debit, "credit": e.total_credit}

Hierarchy::

    LedgerError
    |
    +-- VoucherValidationError          VALIDATION_ERROR
    |
    +-- BalanceError                    BALANCE_ERROR
    |   +-- UnbalancedVoucherError      UNBALANCED_VOUCHER
    |
    +-- AccountStateError               ACCOUNT_STATE_ERROR
    |   +-- AccountNotFoundError        ACCOUNT_NOT_FOUND
    |   +-- AccountNotEligibleError     ACCOUNT_NOT_ELIGIBLE
    |       +-- InactiveAccountError    INACTIVE_ACCOUNT
    |       +-- NonLeafAccountError     NON_LEAF_ACCOUNT
    |
    +-- NotFoundError                   NOT_FOUND
    |   +-- VoucherNotFoundError        VOUCHER_NOT_FOUND
    |   +-- PurchaseNotFoundError       PURCHASE_NOT_FOUND
    |
    +-- ConflictError                   CONFLICT
    |   +-- InvalidTransitionError      INVALID_TRANSITION
    |   |   +-- VoucherNotDraftError    VOUCHER_NOT_DRAFT
    |   |   +-- VoucherNotPostedError   VOUCHER_NOT_POSTED
    |   +-- VoucherAlreadyReversedError VOUCHER_ALREADY_REVERSED
    |   +-- PurchaseAlreadyLinkedError  PURCHASE_ALREADY_LINKED
    |   +-- ConcurrentModificationError CONCURRENT_MODIFICATION
    |   +-- ImportBatchRejectedError    IMPORT_BATCH_REJECTED
    |
    +-- ImportRowError                  IMPORT_ROW_ERROR
    +-- PurchaseConfigurationError      PURCHASE_CONFIGURATION_ERROR
    +-- PaymentAccountRequiredError     PAYMENT_ACCOUNT_REQUIRED
    +-- InvalidReversalDateError        INVALID_REVERSAL_DATE
    +-- PermissionDeniedError           PERMISSION_DENIED
    +-- ImmutabilityViolationError      IMMUTABILITY_VIOLATION
    +-- InvariantViolationError         INVARIANT_VIOLATION

Design decisions:

1. Domain exceptions inherit from ``Exception`` directly, not ``ValueError``,
   so that domain outcomes can be caught as a group without catching
   programming errors.
2. ``code`` is a class attribute so that the outer API layer can document
   and map codes without instantiating exceptions.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence


class LedgerError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_ERROR"

    def details(self) -> dict[str, Any]:
        """Structured attributes for API envelopes and structured logs."""
        return {k: v for k, v in vars(self).items() if not k.startswith("_")}


# Validation


class VoucherValidationError(LedgerError):
    """Malformed voucher input shape (no lines, negative or two-sided lines)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, issues: Sequence[str]):
        self.issues = tuple(issues)
        super().__init__("; ".join(self.issues) or "Invalid voucher")


# Balance


class BalanceError(LedgerError):
    """Base exception for debit/credit balance failures."""

    code: str = "BALANCE_ERROR"


class UnbalancedVoucherError(BalanceError):
    """Debits and credits differ by at least the tolerance."""

    code: str = "UNBALANCED_VOUCHER"

    def __init__(
        self,
        total_debit: Decimal,
        total_credit: Decimal,
        difference: Decimal,
        message: str | None = None,
    ):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = difference
        super().__init__(
            message
            or f"Voucher is not balanced. Debit: {total_debit}, "
            f"Credit: {total_credit}, Difference: {difference}"
        )


# Account state


class AccountStateError(LedgerError):
    """Base exception for account eligibility problems."""

    code: str = "ACCOUNT_STATE_ERROR"


class AccountNotFoundError(AccountStateError):
    """Account does not exist in the company's chart of accounts."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class AccountNotEligibleError(AccountStateError):
    """Account may not receive a posting."""

    code: str = "ACCOUNT_NOT_ELIGIBLE"

    def __init__(self, account_code: str, account_name: str, message: str):
        self.account_code = account_code
        self.account_name = account_name
        super().__init__(message)


class InactiveAccountError(AccountNotEligibleError):
    """One or more line accounts are deactivated."""

    code: str = "INACTIVE_ACCOUNT"

    def __init__(
        self,
        account_code: str,
        account_name: str,
        message: str | None = None,
    ):
        super().__init__(
            account_code,
            account_name,
            message or f"Account {account_code} ({account_name}) is inactive",
        )


class NonLeafAccountError(AccountNotEligibleError):
    """Account has active children and is therefore a grouping node."""

    code: str = "NON_LEAF_ACCOUNT"

    def __init__(self, account_code: str, account_name: str):
        super().__init__(
            account_code,
            account_name,
            f"Account {account_code} ({account_name}) is not a leaf account "
            "and cannot be used in voucher lines",
        )


# Not found


class NotFoundError(LedgerError):
    """Entity missing or owned by another company."""

    code: str = "NOT_FOUND"


class VoucherNotFoundError(NotFoundError):
    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__("Voucher not found")


class PurchaseNotFoundError(NotFoundError):
    code: str = "PURCHASE_NOT_FOUND"

    def __init__(self, purchase_id: str):
        self.purchase_id = purchase_id
        super().__init__("Purchase not found")


# Conflicts


class ConflictError(LedgerError):
    """Entity is not in the state the operation requires."""

    code: str = "CONFLICT"


class InvalidTransitionError(ConflictError):
    """Requested status transition is not allowed from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        voucher_id: str,
        status: str,
        action: str,
        message: str | None = None,
    ):
        self.voucher_id = voucher_id
        self.status = status
        self.action = action
        super().__init__(
            message or f"Cannot {action} a voucher in status {status}"
        )


class VoucherNotDraftError(InvalidTransitionError):
    code: str = "VOUCHER_NOT_DRAFT"

    def __init__(
        self,
        voucher_id: str,
        status: str,
        action: str = "post",
        required_status: str = "DRAFT",
    ):
        self.required_status = required_status
        if action == "post":
            message = f"Only {required_status} vouchers can be posted"
        else:
            message = f"Only {required_status} vouchers can be changed"
        super().__init__(voucher_id, status, action, message)


class VoucherNotPostedError(InvalidTransitionError):
    code: str = "VOUCHER_NOT_POSTED"

    def __init__(self, voucher_id: str, status: str):
        super().__init__(
            voucher_id, status, "reverse", "Only POSTED vouchers can be reversed"
        )


class VoucherAlreadyReversedError(ConflictError):
    code: str = "VOUCHER_ALREADY_REVERSED"

    def __init__(self, voucher_id: str, reversal_voucher_id: str | None = None):
        self.voucher_id = voucher_id
        self.reversal_voucher_id = reversal_voucher_id
        super().__init__("Voucher has already been reversed")


class PurchaseAlreadyLinkedError(ConflictError):
    code: str = "PURCHASE_ALREADY_LINKED"

    def __init__(self, purchase_id: str, voucher_id: str):
        self.purchase_id = purchase_id
        self.voucher_id = voucher_id
        super().__init__("Purchase already has a voucher")


class ConcurrentModificationError(ConflictError):
    """A guarded write found the row changed since it was read."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, expected: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected {expected})"
        )


class ImportBatchRejectedError(ConflictError):
    """Import commit refused because candidates still carry errors."""

    code: str = "IMPORT_BATCH_REJECTED"

    def __init__(self, invalid_count: int, voucher_keys: Sequence[str] = ()):
        self.invalid_count = invalid_count
        self.voucher_keys = tuple(voucher_keys)
        super().__init__(
            f"Cannot import vouchers with errors. {invalid_count} voucher(s) have errors."
        )


# Import


class ImportRowError(LedgerError):
    """A single offending import row (unresolved account, bad date, two-sided)."""

    code: str = "IMPORT_ROW_ERROR"

    def __init__(self, message: str, row_index: int | None = None, voucher_key: str | None = None):
        self.row_index = row_index
        self.voucher_key = voucher_key
        super().__init__(message)


# Purchases


class PurchaseConfigurationError(LedgerError):
    """A well-known account required for purchase synthesis is missing."""

    code: str = "PURCHASE_CONFIGURATION_ERROR"

    def __init__(self, account_code: str, message: str):
        self.account_code = account_code
        super().__init__(message)


class PaymentAccountRequiredError(LedgerError):
    code: str = "PAYMENT_ACCOUNT_REQUIRED"

    def __init__(self, purchase_id: str):
        self.purchase_id = purchase_id
        super().__init__("Payment account is required when paid amount > 0")


# Reversal


class InvalidReversalDateError(LedgerError):
    code: str = "INVALID_REVERSAL_DATE"

    def __init__(self, voucher_id: str, voucher_date: Any, reversal_date: Any):
        self.voucher_id = voucher_id
        self.voucher_date = voucher_date
        self.reversal_date = reversal_date
        super().__init__(
            f"Reversal date {reversal_date} is before voucher date {voucher_date}"
        )


# Authorization


class PermissionDeniedError(LedgerError):
    code: str = "PERMISSION_DENIED"

    def __init__(self, role: str, resource: str, action: str):
        self.role = role
        self.resource = resource
        self.action = action
        super().__init__(f"Role {role} may not {action} {resource}")


# Integrity


class ImmutabilityViolationError(LedgerError):
    """Attempt to modify a posted voucher, its lines, or an audit record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class InvariantViolationError(LedgerError):
    """Internal arithmetic or structural invariant broken; a defect, not user input."""

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, message: str):
        self.invariant = invariant
        super().__init__(message)
