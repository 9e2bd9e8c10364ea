import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.depot.core.error_catalog import ValidationError
from app.depot.db.models import ImmutableRecordError, WarehouseTransferItem, WarehouseTransferLog
from app.depot.services.notifications import TransferEventBus
from app.depot.services.transfer_log import TransferLogAction, TransferLogWriter
from app.depot.services.transfers import TransferService
from tests.transfer_helpers import actor, dispatched, first_item, initiate, receive


def _logs(db_session, transfer_id):
    return (
        db_session.execute(
            select(WarehouseTransferLog)
            .where(WarehouseTransferLog.transfer_id == transfer_id)
            .order_by(WarehouseTransferLog.action_at)
        )
        .scalars()
        .all()
    )


def test_every_change_writes_one_record_with_actor_and_statuses(db_session):
    transfer = dispatched(db_session, 10)
    item = first_item(db_session, transfer)
    receive(db_session, transfer, item, received=6, rejected=4, condition_notes="two pallets wet")

    logs = _logs(db_session, transfer.id)
    by_action = {log.action: log for log in logs}
    assert set(by_action) == {
        "transfer_initiated",
        "transfer_dispatched",
        "item_received",
        "transfer_status_changed",
    }

    initiated = by_action["transfer_initiated"]
    assert initiated.previous_status is None
    assert initiated.new_status == "initiated"
    assert initiated.action_by == "clerk-north"
    assert initiated.ip_address == "10.0.0.5"
    assert initiated.details["items_count"] == 1

    dispatched_log = by_action["transfer_dispatched"]
    assert (dispatched_log.previous_status, dispatched_log.new_status) == ("initiated", "in_transit")
    assert dispatched_log.action_by == "dispatcher"

    received = by_action["item_received"]
    assert received.transfer_item_id == item.id
    assert (received.previous_status, received.new_status) == ("pending", "partial_accepted")
    assert received.details["quantity_received_delta"] == 6
    assert received.details["quantity_rejected_delta"] == 4
    assert received.details["condition_notes"] == "two pallets wet"

    changed = by_action["transfer_status_changed"]
    assert (changed.previous_status, changed.new_status) == ("in_transit", "partial_received")
    assert changed.details["total_rejected"] == 4


def test_failed_audit_write_rolls_back_state_change(db_session, monkeypatch):
    transfer = dispatched(db_session, 10)
    item = first_item(db_session, transfer)
    original_write = TransferLogWriter.write

    def failing_write(self, transfer, entry, actor, *, item=None):
        if entry.action is TransferLogAction.ITEM_RECEIVED:
            raise SQLAlchemyError("audit store unavailable")
        return original_write(self, transfer, entry, actor, item=item)

    monkeypatch.setattr(TransferLogWriter, "write", failing_write)

    with pytest.raises(SQLAlchemyError):
        receive(db_session, transfer, item, received=10)

    db_session.expire_all()
    stored = db_session.get(WarehouseTransferItem, item.id)
    assert stored.quantity_received == 0
    assert stored.item_status == "pending"
    assert transfer.status == "in_transit"
    assert sorted(log.action for log in _logs(db_session, transfer.id)) == ["transfer_dispatched", "transfer_initiated"]


def test_failed_audit_write_on_initiate_leaves_no_rows(db_session, monkeypatch):
    def failing_write(self, transfer, entry, actor, *, item=None):
        raise SQLAlchemyError("audit store unavailable")

    monkeypatch.setattr(TransferLogWriter, "write", failing_write)

    with pytest.raises(SQLAlchemyError):
        initiate(db_session, 5)
    assert db_session.execute(select(func.count()).select_from(WarehouseTransferItem)).scalar_one() == 0


def test_log_records_cannot_be_updated_or_deleted(db_session):
    transfer = initiate(db_session, 5)
    log = _logs(db_session, transfer.id)[0]

    log.notes = "rewritten history"
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()

    db_session.delete(db_session.get(WarehouseTransferLog, log.id))
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()

    assert _logs(db_session, transfer.id)[0].notes is None


def test_events_published_after_commit_and_subscriber_failure_is_absorbed(db_session):
    bus = TransferEventBus()
    received_events = []

    def broken_subscriber(event):
        raise RuntimeError("webhook down")

    bus.subscribe(broken_subscriber)
    unsubscribe = bus.subscribe(received_events.append)

    transfer = initiate(db_session, 5, notifier=bus)
    TransferService(db_session, notifier=bus).dispatch_transfer(transfer.id, None, actor("dispatcher"))

    assert transfer.status == "in_transit"
    assert [event.action for event in received_events] == ["transfer_initiated", "transfer_dispatched"]
    assert received_events[1].previous_status == "initiated"
    assert received_events[1].actor_id == "dispatcher"

    unsubscribe()
    TransferService(db_session, notifier=bus).cancel_transfer(transfer.id, actor("manager"), "recalled")
    assert len(received_events) == 2


def test_failed_operation_publishes_nothing(db_session):
    bus = TransferEventBus()
    received_events = []
    bus.subscribe(received_events.append)
    transfer = initiate(db_session, 5)

    with pytest.raises(ValidationError):
        TransferService(db_session, notifier=bus).receive_items(transfer.id, [], actor())
    assert received_events == []
