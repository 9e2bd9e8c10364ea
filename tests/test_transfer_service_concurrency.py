import pytest
from sqlalchemy import select

from app.depot.core.error_catalog import ConcurrentModification
from app.depot.core.metrics import metrics
from app.depot.db.models import WarehouseTransferItem, WarehouseTransferLog
from app.depot.services.item_state_machine import ReceiptAction
from app.depot.services.transfers import TransferService
from tests.transfer_helpers import actor, dispatched, first_item, initiate, receive


def test_stale_session_loses_concurrent_receipt(db_session):
    from app.depot.db.session import SessionLocal

    transfer = dispatched(db_session, 10)
    transfer_id = transfer.id
    item_id = first_item(db_session, transfer).id

    first_writer = SessionLocal()
    second_writer = SessionLocal()
    try:
        stale_service = TransferService(second_writer)
        stale_snapshot = stale_service.get_transfer_with_history(transfer_id)

        TransferService(first_writer).receive_items(
            transfer_id,
            [ReceiptAction(item_id=str(item_id), quantity_received=10)],
            actor("clerk-a"),
        )

        with pytest.raises(ConcurrentModification):
            stale_service.receive_items(
                transfer_id,
                [ReceiptAction(item_id=str(item_id), quantity_received=5, quantity_rejected=5)],
                actor("clerk-b"),
            )
        assert [item.id for item in stale_snapshot.items] == [item_id]
    finally:
        first_writer.close()
        second_writer.close()

    db_session.expire_all()
    item = db_session.get(WarehouseTransferItem, item_id)
    assert (item.quantity_received, item.quantity_rejected) == (10, 0)
    assert item.item_status == "accepted"
    receipts = db_session.execute(
        select(WarehouseTransferLog).where(
            WarehouseTransferLog.transfer_item_id == item_id,
            WarehouseTransferLog.action == "item_received",
        )
    ).scalars().all()
    assert [log.action_by for log in receipts] == ["clerk-a"]


def test_expected_version_mismatch_is_rejected(db_session):
    service = TransferService(db_session)
    transfer = dispatched(db_session, 10)
    item = first_item(db_session, transfer)
    read_version = item.version

    receive(db_session, transfer, item, received=4)
    assert item.version == read_version + 1

    with pytest.raises(ConcurrentModification) as exc_info:
        service.receive_items(
            transfer.id,
            [ReceiptAction(item_id=str(item.id), quantity_received=6, expected_version=read_version)],
            actor("clerk-b"),
        )
    assert exc_info.value.details["expected_version"] == read_version

    service.receive_items(
        transfer.id,
        [ReceiptAction(item_id=str(item.id), quantity_received=6, expected_version=item.version)],
        actor("clerk-b"),
    )
    assert item.item_status == "accepted"


def test_expected_version_on_dispatch(db_session):
    transfer = initiate(db_session, 2)
    with pytest.raises(ConcurrentModification):
        TransferService(db_session).dispatch_transfer(transfer.id, None, actor(), expected_version=transfer.version + 1)
    TransferService(db_session).dispatch_transfer(transfer.id, None, actor(), expected_version=transfer.version)
    assert transfer.status == "in_transit"


def test_stale_write_counts_concurrent_modification_metric(db_session):
    from app.depot.db.session import SessionLocal

    metrics.reset()
    transfer = dispatched(db_session, 10)
    transfer_id = transfer.id
    item_id = first_item(db_session, transfer).id

    stale = SessionLocal()
    try:
        stale_service = TransferService(stale)
        stale_snapshot = stale_service.get_transfer_with_history(transfer_id)
        TransferService(db_session).cancel_transfer(transfer_id, actor("manager"), "recalled")
        with pytest.raises(ConcurrentModification):
            stale_service.receive_items(
                transfer_id,
                [ReceiptAction(item_id=str(item_id), quantity_received=10)],
                actor("clerk-b"),
            )
        assert stale_snapshot.transfer.id == transfer_id
    finally:
        stale.close()

    if metrics.enabled:
        assert "concurrent_modification_total 1.0" in metrics.render().content.decode("utf-8")


def test_expected_version_mismatch_counts_concurrent_modification_metric(db_session):
    metrics.reset()
    transfer = initiate(db_session, 4)
    with pytest.raises(ConcurrentModification):
        TransferService(db_session).dispatch_transfer(transfer.id, None, actor(), expected_version=transfer.version + 1)

    db_session.refresh(transfer)
    assert transfer.status == "initiated"
    if metrics.enabled:
        assert "concurrent_modification_total 1.0" in metrics.render().content.decode("utf-8")
