"""Per-line status transitions driven by receipt, disposal and return actions.

The functions take an immutable snapshot of a transfer item and an action,
and return the transition to apply. They never touch the database; the
transfer service persists the resulting snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from app.depot.core.error_catalog import InvalidTransition, ValidationError
from app.depot.services.quantity_ledger import ItemQuantities, assert_conserved


class ItemStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PARTIAL_ACCEPTED = "partial_accepted"
    REJECTED = "rejected"
    DISPOSED = "disposed"
    RETURNED = "returned"


RECEIVABLE_ITEM_STATUSES = frozenset({ItemStatus.PENDING, ItemStatus.PARTIAL_ACCEPTED})
RESOLVABLE_ITEM_STATUSES = frozenset({ItemStatus.REJECTED, ItemStatus.PARTIAL_ACCEPTED})


@dataclass(frozen=True)
class ItemSnapshot:
    item_id: str | None
    status: ItemStatus
    quantities: ItemQuantities
    rejection_reason: str | None = None
    disposal_reason: str | None = None
    condition_notes: str | None = None


@dataclass(frozen=True)
class ReceiptAction:
    item_id: str
    quantity_received: int = 0
    quantity_rejected: int = 0
    rejection_reason: str | None = None
    condition_notes: str | None = None
    expected_version: int | None = None


@dataclass(frozen=True)
class DisposalAction:
    reason: str
    quantity: int | None = None


@dataclass(frozen=True)
class ReturnAction:
    quantity: int | None = None


@dataclass(frozen=True)
class ItemTransition:
    before: ItemSnapshot
    after: ItemSnapshot
    deltas: dict[str, int]

    @property
    def previous_status(self) -> ItemStatus:
        return self.before.status

    @property
    def new_status(self) -> ItemStatus:
        return self.after.status

    def details(self) -> dict:
        return {
            **{f"{name}_delta": value for name, value in self.deltas.items()},
            **self.after.quantities.as_dict(),
            "outstanding": self.after.quantities.outstanding,
        }


def status_after_receipt(quantities: ItemQuantities) -> ItemStatus:
    if quantities.received == quantities.sent and quantities.rejected == 0:
        return ItemStatus.ACCEPTED
    if quantities.rejected == quantities.sent:
        return ItemStatus.REJECTED
    if quantities.received + quantities.rejected > 0:
        return ItemStatus.PARTIAL_ACCEPTED
    return ItemStatus.PENDING


def status_after_resolution(current: ItemStatus, quantities: ItemQuantities) -> ItemStatus:
    if current is not ItemStatus.REJECTED or quantities.unresolved_rejected > 0:
        return current
    if quantities.returned > 0:
        return ItemStatus.RETURNED
    return ItemStatus.DISPOSED


def apply_receipt(snapshot: ItemSnapshot, action: ReceiptAction) -> ItemTransition:
    received_delta = action.quantity_received
    rejected_delta = action.quantity_rejected
    if received_delta < 0 or rejected_delta < 0:
        raise ValidationError(
            "receipt quantities must be non-negative",
            item_id=snapshot.item_id,
            quantity_received=received_delta,
            quantity_rejected=rejected_delta,
        )
    if received_delta == 0 and rejected_delta == 0:
        raise ValidationError("receipt must receive or reject at least one unit", item_id=snapshot.item_id)
    if snapshot.status not in RECEIVABLE_ITEM_STATUSES or snapshot.quantities.outstanding <= 0:
        raise InvalidTransition(
            "item has no outstanding quantity to receive",
            item_id=snapshot.item_id,
            status=snapshot.status.value,
        )

    quantities = snapshot.quantities.adding(received=received_delta, rejected=rejected_delta)
    assert_conserved(quantities, item_id=snapshot.item_id)

    after = replace(
        snapshot,
        status=status_after_receipt(quantities),
        quantities=quantities,
        rejection_reason=action.rejection_reason or snapshot.rejection_reason,
        condition_notes=action.condition_notes or snapshot.condition_notes,
    )
    return ItemTransition(
        before=snapshot,
        after=after,
        deltas={"quantity_received": received_delta, "quantity_rejected": rejected_delta},
    )


def _resolution_quantity(snapshot: ItemSnapshot, requested: int | None, verb: str) -> int:
    if snapshot.status not in RESOLVABLE_ITEM_STATUSES or snapshot.quantities.rejected <= 0:
        raise InvalidTransition(
            f"only items with rejected units can be {verb}",
            item_id=snapshot.item_id,
            status=snapshot.status.value,
        )
    if requested is None:
        remainder = snapshot.quantities.unresolved_rejected
        if remainder <= 0:
            raise InvalidTransition(
                f"no rejected units left to be {verb}",
                item_id=snapshot.item_id,
                status=snapshot.status.value,
            )
        return remainder
    if requested <= 0:
        raise ValidationError("quantity must be positive", item_id=snapshot.item_id, quantity=requested)
    return requested


def apply_disposal(snapshot: ItemSnapshot, action: DisposalAction) -> ItemTransition:
    if not action.reason or not action.reason.strip():
        raise ValidationError("disposal_reason is required", item_id=snapshot.item_id)
    quantity = _resolution_quantity(snapshot, action.quantity, "disposed")
    quantities = snapshot.quantities.adding(disposed=quantity)
    assert_conserved(quantities, item_id=snapshot.item_id)

    after = replace(
        snapshot,
        status=status_after_resolution(snapshot.status, quantities),
        quantities=quantities,
        disposal_reason=action.reason,
    )
    return ItemTransition(before=snapshot, after=after, deltas={"quantity_disposed": quantity})


def apply_return(snapshot: ItemSnapshot, action: ReturnAction) -> ItemTransition:
    if snapshot.quantities.rejected <= snapshot.quantities.disposed:
        raise InvalidTransition(
            "return requires rejected units that were not disposed",
            item_id=snapshot.item_id,
            status=snapshot.status.value,
        )
    quantity = _resolution_quantity(snapshot, action.quantity, "returned")
    quantities = snapshot.quantities.adding(returned=quantity)
    assert_conserved(quantities, item_id=snapshot.item_id)

    after = replace(snapshot, status=status_after_resolution(snapshot.status, quantities), quantities=quantities)
    return ItemTransition(before=snapshot, after=after, deltas={"quantity_returned": quantity})
