"""Transfer-level status.

The status of a transfer is never chosen by a caller: it is derived from
the statuses of its items plus three flags (dispatched, cancelled, return
dispatched). The guards below decide whether the explicit top-level actions
that set those flags are allowed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum

from app.depot.core.error_catalog import EmptyTransfer, InvalidTransition
from app.depot.services.item_state_machine import ItemSnapshot, ItemStatus


class TransferStatus(str, Enum):
    INITIATED = "initiated"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    PARTIAL_RECEIVED = "partial_received"
    REJECTED = "rejected"
    RETURNED = "returned"
    CANCELLED = "cancelled"


RECEIVABLE_TRANSFER_STATUSES = frozenset({TransferStatus.IN_TRANSIT, TransferStatus.PARTIAL_RECEIVED})
CANCELLABLE_TRANSFER_STATUSES = frozenset({TransferStatus.INITIATED, TransferStatus.IN_TRANSIT})
RESOLVABLE_TRANSFER_STATUSES = frozenset(
    {TransferStatus.IN_TRANSIT, TransferStatus.PARTIAL_RECEIVED, TransferStatus.REJECTED}
)
RETURNABLE_TRANSFER_STATUSES = frozenset({TransferStatus.PARTIAL_RECEIVED, TransferStatus.REJECTED})
RESERVING_TRANSFER_STATUSES = frozenset({TransferStatus.INITIATED, TransferStatus.IN_TRANSIT})

_REJECTION_OUTCOMES = frozenset({ItemStatus.REJECTED, ItemStatus.DISPOSED, ItemStatus.RETURNED})


def derive_transfer_status(
    item_statuses: Iterable[ItemStatus | str],
    *,
    dispatched: bool,
    cancelled: bool = False,
    return_dispatched: bool = False,
) -> TransferStatus:
    statuses = [ItemStatus(status) for status in item_statuses]
    if cancelled:
        return TransferStatus.CANCELLED
    if not dispatched:
        return TransferStatus.INITIATED
    if return_dispatched:
        return TransferStatus.RETURNED
    if not statuses or any(status is ItemStatus.PENDING for status in statuses):
        return TransferStatus.IN_TRANSIT
    if all(status is ItemStatus.ACCEPTED for status in statuses):
        return TransferStatus.RECEIVED
    if all(status in _REJECTION_OUTCOMES for status in statuses):
        return TransferStatus.REJECTED
    return TransferStatus.PARTIAL_RECEIVED


def has_receipt_activity(items: Iterable[ItemSnapshot]) -> bool:
    for item in items:
        quantities = item.quantities
        if item.status is not ItemStatus.PENDING:
            return True
        if quantities.received or quantities.rejected or quantities.disposed or quantities.returned:
            return True
    return False


def _refuse(action: str, status: TransferStatus, **details) -> InvalidTransition:
    return InvalidTransition(
        f"transfer cannot be {action} from status {status.value}",
        status=status.value,
        **details,
    )


def ensure_dispatchable(status: TransferStatus, item_count: int) -> None:
    if status is not TransferStatus.INITIATED:
        raise _refuse("dispatched", status)
    if item_count <= 0:
        raise EmptyTransfer("transfer has no items to dispatch")


def ensure_receivable(status: TransferStatus) -> None:
    if status not in RECEIVABLE_TRANSFER_STATUSES:
        raise _refuse("received", status)


def ensure_resolvable(status: TransferStatus) -> None:
    if status not in RESOLVABLE_TRANSFER_STATUSES:
        raise _refuse("resolved", status)


def ensure_cancellable(status: TransferStatus, items: Sequence[ItemSnapshot]) -> None:
    if status not in CANCELLABLE_TRANSFER_STATUSES:
        raise _refuse("cancelled", status)
    if has_receipt_activity(items):
        raise _refuse(
            "cancelled",
            status,
            actioned_item_ids=[item.item_id for item in items if item.status is not ItemStatus.PENDING],
        )


def ensure_return_dispatchable(status: TransferStatus, items: Sequence[ItemSnapshot]) -> None:
    if status not in RETURNABLE_TRANSFER_STATUSES:
        raise _refuse("returned", status)
    outstanding = [item.item_id for item in items if item.quantities.outstanding > 0]
    if outstanding:
        raise InvalidTransition(
            "every sent unit must be received or rejected before the return ships",
            status=status.value,
            outstanding_item_ids=outstanding,
        )
    unresolved =[item.item_id for item in items if item.quantities.unresolved_rejected > 0]
    if unresolved:
        raise InvalidTransition(
            "every rejected unit must be disposed or marked returned first",
            status=status.value,
            unresolved_item_ids=unresolved,
        )
    if not any(item.quantities.returned > 0 for item in items):
        raise InvalidTransition("transfer has no returned units to ship back", status=status.value)


def ensure_return_confirmable(status: TransferStatus, already_confirmed: bool) -> None:
    if status is not TransferStatus.RETURNED:
        raise _refuse("confirmed as returned", status)
    if already_confirmed:
        raise InvalidTransition("return receipt already confirmed", status=status.value)
