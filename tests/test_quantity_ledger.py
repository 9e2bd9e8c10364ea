import pytest

from app.depot.core.error_catalog import InvalidTransition, QuantityConservationViolation
from app.depot.services.quantity_ledger import (
    ItemQuantities,
    assert_conserved,
    check_quantities,
    outstanding_quantity,
    unresolved_rejected_quantity,
)


def test_fresh_item_is_conserved():
    result = check_quantities(ItemQuantities(sent=10))
    assert result.ok
    assert result.violated is None


def test_outstanding_and_unresolved_quantities():
    quantities = ItemQuantities(sent=10, received=6, rejected=3, disposed=1, returned=1)
    assert outstanding_quantity(quantities) == 1
    assert quantities.outstanding == 1
    assert unresolved_rejected_quantity(quantities) == 1
    assert quantities.unresolved_rejected == 1


@pytest.mark.parametrize(
    "quantities, inequality",
    [
        (ItemQuantities(sent=0), "quantities_non_negative"),
        (ItemQuantities(sent=5, received=-1), "quantities_non_negative"),
        (ItemQuantities(sent=10, received=7, rejected=4), "received_plus_rejected_within_sent"),
        (ItemQuantities(sent=10, received=6, rejected=4, disposed=5), "disposed_within_rejected"),
        (ItemQuantities(sent=10, rejected=4, disposed=2, returned=3), "returned_within_undisposed_rejected"),
    ],
)
def test_each_inequality_is_reported(quantities, inequality):
    result = check_quantities(quantities)
    assert not result.ok
    assert result.violated == inequality
    assert result.details["quantity_sent"] == quantities.sent


def test_assert_conserved_raises_with_inequality_and_item():
    with pytest.raises(QuantityConservationViolation) as exc_info:
        assert_conserved(ItemQuantities(sent=10, received=6, rejected=4, disposed=5), item_id="item-1")

    exc = exc_info.value
    assert exc.inequality == "disposed_within_rejected"
    assert exc.details["item_id"] == "item-1"
    assert exc.details["quantities"]["quantity_disposed"] == 5
    assert exc.error.code == "QUANTITY_CONSERVATION_VIOLATION"
    assert isinstance(exc, InvalidTransition)


def test_adding_returns_new_quantities():
    base = ItemQuantities(sent=10)
    updated = base.adding(received=6, rejected=4)
    assert base.received == 0
    assert (updated.received, updated.rejected, updated.outstanding) == (6, 4, 0)
