"""
ORM-level immutability enforcement for posted vouchers and audit records.

Posted vouchers are final: a mistake is corrected by posting a reversal,
never by editing history.  SQLAlchemy fires mapper events before an UPDATE
or DELETE reaches the database; the listeners registered here inspect the
attribute history and raise ImmutabilityViolationError, which aborts the
flush before any SQL is sent.

Protected entities:

    Entity       | When immutable                       | Allowed change
    -------------|--------------------------------------|-----------------------------
    Voucher      | status POSTED or REVERSED            | POSTED -> REVERSED stamp
    VoucherLine  | parent voucher POSTED or REVERSED    | none
    AuditLog     | always                               | none

updated_at / updated_by_id are bookkeeping and may change on any row.

Guarded status writes in the services use conditional UPDATE statements,
which do not fire mapper events; these listeners protect the ORM path
(accidental attribute edits, cascaded deletes, ad-hoc scripts).

Usage::

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_FROZEN_STATUSES = frozenset({"POSTED", "REVERSED"})

_BOOKKEEPING_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields the reversal stamp may touch on a POSTED voucher
_REVERSAL_STAMP_FIELDS = frozenset({"status", "reversed_by_id", "reversed_at", "version"})


def _status_value(status) -> str | None:
    if status is None:
        return None
    return getattr(status, "value", status)


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _BOOKKEEPING_FIELDS and attr.history.has_changes()
    ]


def _check_voucher_immutability(mapper, connection, target):
    """
    Block updates to vouchers that were already POSTED or REVERSED.

    The status history tells us the value as loaded: if it was POSTED, the
    only accepted change is the reversal stamp (status -> REVERSED plus
    reversed_by_id / reversed_at / version).  A REVERSED voucher accepts no
    change at all.
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        old_status = _status_value(status_history.deleted[0])
    elif not status_history.added:
        old_status = _status_value(target.status)
    else:
        # status newly set without a loaded previous value
        old_status = None

    if old_status not in _FROZEN_STATUSES:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    new_status = _status_value(target.status)
    if (
        old_status == "POSTED"
        and new_status == "REVERSED"
        and set(changed) <= _REVERSAL_STAMP_FIELDS
    ):
        return

    field = changed[0]
    _blocked(
        "Voucher",
        target.id,
        "UPDATE",
        f"Cannot modify field '{field}' on a {old_status.lower()} voucher",
        field=field,
    )


def _check_voucher_delete(mapper, connection, target):
    if _status_value(target.status) in _FROZEN_STATUSES:
        _blocked("Voucher", target.id, "DELETE", "Posted vouchers cannot be deleted")


def _parent_status(connection, voucher_id) -> str | None:
    from ledger_kernel.models.voucher import Voucher

    if voucher_id is None:
        return None
    status = connection.execute(
        select(Voucher.__table__.c.status).where(Voucher.__table__.c.id == voucher_id)
    ).scalar_one_or_none()
    return _status_value(status)


def _check_voucher_line_immutability(mapper, connection, target):
    if _parent_status(connection, target.voucher_id) in _FROZEN_STATUSES:
        _blocked(
            "VoucherLine",
            target.id,
            "UPDATE",
            "Voucher lines cannot be modified after the voucher is posted",
        )


def _check_voucher_line_delete(mapper, connection, target):
    if _parent_status(connection, target.voucher_id) in _FROZEN_STATUSES:
        _blocked(
            "VoucherLine",
            target.id,
            "DELETE",
            "Voucher lines cannot be deleted after the voucher is posted",
        )


def _check_audit_log_immutability(mapper, connection, target):
    _blocked("AuditLog", target.id, "UPDATE", "Audit records are immutable")


def _check_audit_log_delete(mapper, connection, target):
    _blocked("AuditLog", target.id, "DELETE", "Audit records cannot be deleted")


def _listeners():
    from ledger_kernel.models.audit_log import AuditLog
    from ledger_kernel.models.voucher import Voucher, VoucherLine

    return [
        (Voucher, "before_update", _check_voucher_immutability),
        (Voucher, "before_delete", _check_voucher_delete),
        (VoucherLine, "before_update", _check_voucher_line_immutability),
        (VoucherLine, "before_delete", _check_voucher_line_delete),
        (AuditLog, "before_update", _check_audit_log_immutability),
        (AuditLog, "before_delete", _check_audit_log_delete),
    ]


def register_immutability_listeners() -> None:
    """Register every immutability listener (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  Tests only."""
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
