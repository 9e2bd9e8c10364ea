import pytest

from app.depot.core.error_catalog import EmptyTransfer, InvalidTransition
from app.depot.services.item_state_machine import ItemSnapshot, ItemStatus
from app.depot.services.quantity_ledger import ItemQuantities
from app.depot.services.transfer_state_machine import (
    TransferStatus,
    derive_transfer_status,
    ensure_cancellable,
    ensure_dispatchable,
    ensure_receivable,
    ensure_resolvable,
    ensure_return_confirmable,
    ensure_return_dispatchable,
)


def _item(status, item_id="item-1", **quantities):
    quantities.setdefault("sent", 10)
    return ItemSnapshot(item_id=item_id, status=status, quantities=ItemQuantities(**quantities))


@pytest.mark.parametrize(
    "statuses, flags, expected",
    [
        (["pending"], {"dispatched": False}, TransferStatus.INITIATED),
        (["pending"], {"dispatched": True}, TransferStatus.IN_TRANSIT),
        (["accepted", "pending"], {"dispatched": True}, TransferStatus.IN_TRANSIT),
        (["accepted", "accepted"], {"dispatched": True}, TransferStatus.RECEIVED),
        (["partial_accepted"], {"dispatched": True}, TransferStatus.PARTIAL_RECEIVED),
        (["accepted", "rejected"], {"dispatched": True}, TransferStatus.PARTIAL_RECEIVED),
        (["rejected", "disposed", "returned"], {"dispatched": True}, TransferStatus.REJECTED),
        (["returned"], {"dispatched": True, "return_dispatched": True}, TransferStatus.RETURNED),
        (["pending"], {"dispatched": True, "cancelled": True}, TransferStatus.CANCELLED),
        (["pending"], {"dispatched": False, "cancelled": True}, TransferStatus.CANCELLED),
        ([], {"dispatched": True}, TransferStatus.IN_TRANSIT),
    ],
)
def test_derive_transfer_status(statuses, flags, expected):
    assert derive_transfer_status(statuses, **flags) is expected


def test_derivation_accepts_enum_members():
    assert derive_transfer_status([ItemStatus.ACCEPTED], dispatched=True) is TransferStatus.RECEIVED


def test_dispatch_guard():
    ensure_dispatchable(TransferStatus.INITIATED, 1)
    with pytest.raises(EmptyTransfer):
        ensure_dispatchable(TransferStatus.INITIATED, 0)
    with pytest.raises(InvalidTransition):
        ensure_dispatchable(TransferStatus.IN_TRANSIT, 1)


def test_receive_and_resolve_guards():
    ensure_receivable(TransferStatus.IN_TRANSIT)
    ensure_receivable(TransferStatus.PARTIAL_RECEIVED)
    with pytest.raises(InvalidTransition):
        ensure_receivable(TransferStatus.INITIATED)
    with pytest.raises(InvalidTransition):
        ensure_receivable(TransferStatus.RECEIVED)

    ensure_resolvable(TransferStatus.REJECTED)
    with pytest.raises(InvalidTransition):
        ensure_resolvable(TransferStatus.CANCELLED)


def test_cancel_guard_refuses_after_receipt_activity():
    ensure_cancellable(TransferStatus.INITIATED, [_item(ItemStatus.PENDING)])
    ensure_cancellable(TransferStatus.IN_TRANSIT, [_item(ItemStatus.PENDING)])
    with pytest.raises(InvalidTransition) as exc_info:
        ensure_cancellable(TransferStatus.IN_TRANSIT, [_item(ItemStatus.PARTIAL_ACCEPTED, received=2)])
    assert exc_info.value.details["actioned_item_ids"] == ["item-1"]
    with pytest.raises(InvalidTransition):
        ensure_cancellable(TransferStatus.RECEIVED, [_item(ItemStatus.ACCEPTED, received=10)])


def test_return_dispatch_guard():
    resolved = _item(ItemStatus.RETURNED, rejected=10, returned=10)
    ensure_return_dispatchable(TransferStatus.REJECTED, [resolved])

    unresolved = _item(ItemStatus.REJECTED, item_id="item-2", rejected=10, returned=4)
    with pytest.raises(InvalidTransition) as exc_info:
        ensure_return_dispatchable(TransferStatus.REJECTED, [resolved, unresolved])
    assert exc_info.value.details["unresolved_item_ids"] == ["item-2"]

    disposed_only = _item(ItemStatus.DISPOSED, rejected=10, disposed=10)
    with pytest.raises(InvalidTransition):
        ensure_return_dispatchable(TransferStatus.REJECTED, [disposed_only])

    with pytest.raises(InvalidTransition):
        ensure_return_dispatchable(TransferStatus.IN_TRANSIT, [resolved])


def test_return_dispatch_guard_refuses_outstanding_units():
    short = _item(ItemStatus.PARTIAL_ACCEPTED, item_id="item-3", received=3, rejected=2, returned=2)
    with pytest.raises(InvalidTransition) as exc_info:
        ensure_return_dispatchable(TransferStatus.PARTIAL_RECEIVED, [short])
    assert exc_info.value.details["outstanding_item_ids"] == ["item-3"]


def test_return_confirmation_guard():
    ensure_return_confirmable(TransferStatus.RETURNED, False)
    with pytest.raises(InvalidTransition):
        ensure_return_confirmable(TransferStatus.RETURNED, True)
    with pytest.raises(InvalidTransition):
        ensure_return_confirmable(TransferStatus.REJECTED, False)
