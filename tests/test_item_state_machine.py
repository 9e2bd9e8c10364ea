import pytest

from app.depot.core.error_catalog import InvalidTransition, QuantityConservationViolation, ValidationError
from app.depot.services.item_state_machine import (
    DisposalAction,
    ItemSnapshot,
    ItemStatus,
    ReceiptAction,
    ReturnAction,
    apply_disposal,
    apply_receipt,
    apply_return,
    status_after_receipt,
)
from app.depot.services.quantity_ledger import ItemQuantities


def _snapshot(status=ItemStatus.PENDING, **quantities):
    quantities.setdefault("sent", 10)
    return ItemSnapshot(item_id="item-1", status=status, quantities=ItemQuantities(**quantities))


@pytest.mark.parametrize(
    "quantities, expected",
    [
        (ItemQuantities(sent=10, received=10), ItemStatus.ACCEPTED),
        (ItemQuantities(sent=10, rejected=10), ItemStatus.REJECTED),
        (ItemQuantities(sent=10, received=6, rejected=4), ItemStatus.PARTIAL_ACCEPTED),
        (ItemQuantities(sent=10, received=3), ItemStatus.PARTIAL_ACCEPTED),
        (ItemQuantities(sent=10), ItemStatus.PENDING),
    ],
)
def test_status_after_receipt(quantities, expected):
    assert status_after_receipt(quantities) is expected


def test_full_receipt_accepts_item():
    transition = apply_receipt(_snapshot(), ReceiptAction(item_id="item-1", quantity_received=10))
    assert transition.previous_status is ItemStatus.PENDING
    assert transition.new_status is ItemStatus.ACCEPTED
    assert transition.details()["quantity_received_delta"] == 10
    assert transition.details()["outstanding"] == 0


def test_split_receipt_is_partial_and_keeps_reason():
    transition = apply_receipt(
        _snapshot(),
        ReceiptAction(item_id="item-1", quantity_received=6, quantity_rejected=4, rejection_reason="crushed"),
    )
    assert transition.new_status is ItemStatus.PARTIAL_ACCEPTED
    assert transition.after.rejection_reason == "crushed"
    assert transition.after.quantities.outstanding == 0


def test_follow_up_receipt_completes_partial_item():
    snapshot = _snapshot(ItemStatus.PARTIAL_ACCEPTED, received=4)
    transition = apply_receipt(snapshot, ReceiptAction(item_id="item-1", quantity_received=6))
    assert transition.new_status is ItemStatus.ACCEPTED
    assert transition.after.quantities.received == 10


def test_receipt_beyond_sent_violates_conservation():
    with pytest.raises(QuantityConservationViolation) as exc_info:
        apply_receipt(_snapshot(), ReceiptAction(item_id="item-1", quantity_received=8, quantity_rejected=3))
    assert exc_info.value.inequality == "received_plus_rejected_within_sent"


@pytest.mark.parametrize(
    "received, rejected",
    [(-1, 0), (0, -2), (0, 0)],
)
def test_receipt_rejects_bad_quantities(received, rejected):
    with pytest.raises(ValidationError):
        apply_receipt(
            _snapshot(),
            ReceiptAction(item_id="item-1", quantity_received=received, quantity_rejected=rejected),
        )


@pytest.mark.parametrize("status", [ItemStatus.ACCEPTED, ItemStatus.REJECTED, ItemStatus.DISPOSED])
def test_receipt_refused_for_settled_items(status):
    with pytest.raises(InvalidTransition):
        apply_receipt(_snapshot(status, received=10), ReceiptAction(item_id="item-1", quantity_received=1))


def test_implicit_disposal_takes_unresolved_remainder():
    snapshot = _snapshot(ItemStatus.PARTIAL_ACCEPTED, received=6, rejected=4)
    transition = apply_disposal(snapshot, DisposalAction(reason="damaged"))
    assert transition.after.quantities.disposed == 4
    assert transition.after.disposal_reason == "damaged"
    assert transition.new_status is ItemStatus.PARTIAL_ACCEPTED


def test_disposal_past_rejected_total_violates_conservation():
    snapshot = _snapshot(ItemStatus.PARTIAL_ACCEPTED, received=6, rejected=4, disposed=4)
    with pytest.raises(QuantityConservationViolation) as exc_info:
        apply_disposal(snapshot, DisposalAction(reason="damaged", quantity=1))
    assert isinstance(exc_info.value, InvalidTransition)


def test_disposal_requires_reason():
    with pytest.raises(ValidationError):
        apply_disposal(_snapshot(ItemStatus.REJECTED, rejected=10), DisposalAction(reason="  "))


def test_disposal_refused_without_rejected_units():
    with pytest.raises(InvalidTransition):
        apply_disposal(_snapshot(ItemStatus.ACCEPTED, received=10), DisposalAction(reason="damaged"))


def test_rejected_item_fully_disposed_becomes_disposed():
    transition = apply_disposal(_snapshot(ItemStatus.REJECTED, rejected=10), DisposalAction(reason="expired"))
    assert transition.new_status is ItemStatus.DISPOSED


def test_mixed_disposal_and_return_on_rejected_item():
    snapshot = _snapshot(ItemStatus.REJECTED, rejected=10)
    disposed = apply_disposal(snapshot, DisposalAction(reason="damaged", quantity=4))
    assert disposed.new_status is ItemStatus.REJECTED

    returned = apply_return(disposed.after, ReturnAction())
    assert returned.after.quantities.returned == 6
    assert returned.new_status is ItemStatus.RETURNED


def test_return_refused_when_all_rejected_units_disposed():
    snapshot = _snapshot(ItemStatus.PARTIAL_ACCEPTED, received=6, rejected=4, disposed=4)
    with pytest.raises(InvalidTransition):
        apply_return(snapshot, ReturnAction())


def test_return_of_more_than_remaining_violates_conservation():
    snapshot = _snapshot(ItemStatus.REJECTED, rejected=10, disposed=8)
    with pytest.raises(QuantityConservationViolation) as exc_info:
        apply_return(snapshot, ReturnAction(quantity=3))
    assert exc_info.value.inequality == "returned_within_undisposed_rejected"


def test_explicit_resolution_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        apply_return(_snapshot(ItemStatus.REJECTED, rejected=10), ReturnAction(quantity=0))
