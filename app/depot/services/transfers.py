from __future__ import annotations

import logging
import secrets
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm.exc import StaleDataError

from app.depot.core.config import settings
from app.depot.core.context import ActorContext, require_actor
from app.depot.core.error_catalog import ConcurrentModification, NotFound, ValidationError
from app.depot.core.logging import log_json
from app.depot.core.metrics import metrics
from app.depot.db.models import WarehouseTransfer, WarehouseTransferItem, WarehouseTransferLog
from app.depot.repos.transfers import TransferQueryFilters, TransferRepository
from app.depot.services.item_state_machine import (
    DisposalAction,
    ItemSnapshot,
    ItemStatus,
    ItemTransition,
    ReceiptAction,
    ReturnAction,
    apply_disposal,
    apply_receipt,
    apply_return,
)
from app.depot.services.notifications import TransferEventBus, TransferLifecycleEvent, event_bus
from app.depot.services.quantity_ledger import ItemQuantities
from app.depot.services.transfer_log import TransferLogAction, TransferLogEntry, TransferLogWriter
from app.depot.services.transfer_state_machine import (
    RESERVING_TRANSFER_STATUSES,
    TransferStatus,
    derive_transfer_status,
    ensure_cancellable,
    ensure_dispatchable,
    ensure_receivable,
    ensure_resolvable,
    ensure_return_confirmable,
    ensure_return_dispatchable,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferItemInput:
    product_id: str | uuid.UUID
    quantity_sent: int
    batch_number: str | None = None
    expiry_date: date | None = None
    unit_price: Decimal | None = None
    currency: str | None = None


@dataclass(frozen=True)
class CourierInfo:
    courier_name: str | None = None
    tracking_number: str | None = None
    expected_delivery_date: date | None = None


@dataclass
class TransferHistory:
    transfer: WarehouseTransfer
    items: list[WarehouseTransferItem]
    logs: list[WarehouseTransferLog]


def as_uuid(value, field_name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a valid UUID", **{field_name: str(value)}) from exc


def _lookup_uuid(value, kind: str) -> uuid.UUID:
    try:
        return as_uuid(value, f"{kind}_id")
    except ValidationError as exc:
        raise NotFound(f"{kind} not found", **{f"{kind}_id": str(value)}) from exc


def _check_version(record, expected_version: int | None, kind: str) -> None:
    if expected_version is None or record.version == expected_version:
        return
    raise ConcurrentModification(
        f"{kind} was modified since it was read",
        **{f"{kind}_id": str(record.id)},
        expected_version=expected_version,
        actual_version=record.version,
    )


def item_quantities(item: WarehouseTransferItem) -> ItemQuantities:
    return ItemQuantities(
        sent=item.quantity_sent,
        received=item.quantity_received or 0,
        rejected=item.quantity_rejected or 0,
        disposed=item.quantity_disposed or 0,
        returned=item.quantity_returned or 0,
    )


def item_snapshot(item: WarehouseTransferItem) -> ItemSnapshot:
    return ItemSnapshot(
        item_id=str(item.id),
        status=ItemStatus(item.item_status),
        quantities=item_quantities(item),
        rejection_reason=item.rejection_reason,
        disposal_reason=item.disposal_reason,
        condition_notes=item.condition_notes,
    )


def derived_status_for(transfer: WarehouseTransfer, items: list[WarehouseTransferItem]) -> TransferStatus:
    return derive_transfer_status(
        [item.item_status for item in items],
        dispatched=transfer.dispatch_date is not None,
        cancelled=transfer.cancelled_at is not None,
        return_dispatched=transfer.return_dispatch_date is not None,
    )


def transfer_totals(items: list[WarehouseTransferItem]) -> dict[str, int]:
    snapshots = [item_snapshot(item).quantities for item in items]
    return {
        "total_sent": sum(q.sent for q in snapshots),
        "total_received": sum(q.received for q in snapshots),
        "total_rejected": sum(q.rejected for q in snapshots),
        "total_disposed": sum(q.disposed for q in snapshots),
        "total_returned": sum(q.returned for q in snapshots),
        "total_outstanding": sum(q.outstanding for q in snapshots),
    }


class TransferService:
    """Entry point for the transfer workflow and the only writer of transfer rows.

    Each public mutating method is one unit of work: the state change and
    its audit rows are committed together or not at all. Transfers and
    items are versioned rows, so a write based on a stale read surfaces as
    ``ConcurrentModification`` instead of overwriting the newer state.
    """

    def __init__(self, db, notifier: TransferEventBus | None = None):
        self.db = db
        self.repo = TransferRepository(db)
        self.log_writer = TransferLogWriter(db)
        self.notifier = notifier if notifier is not None else event_bus

    @contextmanager
    def _unit_of_work(self, operation: str, **context):
        logs: list[WarehouseTransferLog] = []
        try:
            yield logs
            self.db.flush()
            events = [TransferLifecycleEvent.from_log(log) for log in logs]
            self.db.commit()
        except ConcurrentModification:
            self.db.rollback()
            self._record_conflict(operation, context)
            raise
        except StaleDataError as exc:
            self.db.rollback()
            self._record_conflict(operation, context)
            raise ConcurrentModification(
                "record was modified by another writer; re-read and resubmit",
                operation=operation,
                **context,
            ) from exc
        except Exception:
            self.db.rollback()
            raise
        for event in events:
            metrics.record_transfer_transition(event.action)
            self.notifier.publish(event)

    def _record_conflict(self, operation: str, context: dict) -> None:
        metrics.increment_concurrent_modification()
        log_json(
            logger,
            {"event": "transfer.concurrent_modification", "operation": operation, **context},
            level=logging.WARNING,
        )

    def _get_transfer(self, transfer_id) -> WarehouseTransfer:
        transfer = self.repo.get_transfer(_lookup_uuid(transfer_id, "transfer"))
        if transfer is None:
            raise NotFound("transfer not found", transfer_id=str(transfer_id))
        return transfer

    def _get_item(self, item_id) -> WarehouseTransferItem:
        item = self.repo.get_item(_lookup_uuid(item_id, "item"))
        if item is None:
            raise NotFound("transfer item not found", item_id=str(item_id))
        return item

    def _rederive(self, transfer: WarehouseTransfer, items: list[WarehouseTransferItem], now: datetime) -> TransferStatus:
        status = derived_status_for(transfer, items)
        transfer.status = status.value
        transfer.updated_at = now
        return status

    def _next_transfer_number(self, now: datetime) -> str:
        prefix = f"{settings.TRANSFER_NUMBER_PREFIX}-{now:%Y%m%d}-"
        for _ in range(settings.TRANSFER_NUMBER_MAX_ATTEMPTS):
            candidate = f"{prefix}{secrets.randbelow(10000):04d}"
            if not self.repo.transfer_number_exists(candidate):
                return candidate
        return f"{prefix}{uuid.uuid4().hex[:8].upper()}"

    @staticmethod
    def _prepare_item(line_number: int, item: TransferItemInput, now: datetime) -> WarehouseTransferItem:
        quantity = item.quantity_sent
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "quantity_sent must be a positive integer",
                line_number=line_number,
                quantity_sent=quantity,
            )
        unit_price = None
        if item.unit_price is not None:
            try:
                unit_price = Decimal(str(item.unit_price))
            except InvalidOperation as exc:
                raise ValidationError("unit_price must be a decimal amount", line_number=line_number) from exc
            if unit_price < 0:
                raise ValidationError("unit_price must not be negative", line_number=line_number)
        currency = item.currency or (settings.DEFAULT_CURRENCY if unit_price is not None else None)
        return WarehouseTransferItem(
            id=uuid.uuid4(),
            line_number=line_number,
            product_id=as_uuid(item.product_id, "product_id"),
            batch_number=item.batch_number or None,
            expiry_date=item.expiry_date,
            unit_price=unit_price,
            currency=currency,
            quantity_sent=quantity,
            quantity_received=0,
            quantity_rejected=0,
            quantity_disposed=0,
            quantity_returned=0,
            item_status=ItemStatus.PENDING.value,
            created_at=now,
        )

    @staticmethod
    def _apply_transition(item: WarehouseTransferItem, transition: ItemTransition, now: datetime) -> None:
        after = transition.after
        item.item_status = after.status.value
        item.quantity_received = after.quantities.received
        item.quantity_rejected = after.quantities.rejected
        item.quantity_disposed = after.quantities.disposed
        item.quantity_returned = after.quantities.returned
        item.rejection_reason = after.rejection_reason
        item.disposal_reason = after.disposal_reason
        item.condition_notes = after.condition_notes
        item.updated_at = now

    def _log_status_change(
        self,
        logs: list,
        transfer: WarehouseTransfer,
        items: list[WarehouseTransferItem],
        previous: TransferStatus,
        new: TransferStatus,
        actor: ActorContext,
        notes: str | None = None,
    ) -> None:
        if new is previous:
            return
        logs.append(
            self.log_writer.write(
                transfer,
                TransferLogEntry(TransferLogAction.TRANSFER_STATUS_CHANGED, previous, new, transfer_totals(items), notes),
                actor,
            )
        )

    def initiate_transfer(
        self,
        source_warehouse_id,
        target_warehouse_id,
        items: list[TransferItemInput],
        actor: ActorContext,
        *,
        courier: CourierInfo | None = None,
        notes: str | None = None,
    ) -> WarehouseTransfer:
        actor = require_actor(actor)
        source_id = as_uuid(source_warehouse_id, "source_warehouse_id")
        target_id = as_uuid(target_warehouse_id, "target_warehouse_id")
        if source_id == target_id:
            raise ValidationError(
                "source and target warehouses must differ",
                source_warehouse_id=str(source_id),
                target_warehouse_id=str(target_id),
            )
        if not items:
            raise ValidationError("items must not be empty")
        now = datetime.utcnow()
        prepared = [self._prepare_item(index, item, now) for index, item in enumerate(items, start=1)]
        courier = courier or CourierInfo()

        with self._unit_of_work("initiate_transfer") as logs:
            transfer = WarehouseTransfer(
                id=uuid.uuid4(),
                transfer_number=self._next_transfer_number(now),
                source_warehouse_id=source_id,
                target_warehouse_id=target_id,
                status=TransferStatus.INITIATED.value,
                initiated_by=str(actor.actor_id),
                initiated_at=now,
                initiation_notes=notes,
                courier_name=courier.courier_name,
                tracking_number=courier.tracking_number,
                expected_delivery_date=courier.expected_delivery_date,
                created_at=now,
                items=prepared,
            )
            self.db.add(transfer)
            logs.append(
                self.log_writer.write(
                    transfer,
                    TransferLogEntry(
                        TransferLogAction.TRANSFER_INITIATED,
                        None,
                        TransferStatus.INITIATED,
                        {
                            "transfer_number": transfer.transfer_number,
                            "source_warehouse_id": str(source_id),
                            "target_warehouse_id": str(target_id),
                            "items_count": len(prepared),
                            "total_quantity": sum(item.quantity_sent for item in prepared),
                            "courier_name": courier.courier_name,
                            "tracking_number": courier.tracking_number,
                        },
                        notes,
                    ),
                    actor,
                )
            )
        log_json(
            logger,
            {
                "event": "transfer.initiated",
                "transfer_id": str(transfer.id),
                "transfer_number": transfer.transfer_number,
                "items_count": len(prepared),
                "actor_id": actor.actor_id,
                "trace_id": actor.trace_id,
            },
        )
        return transfer

    def dispatch_transfer(
        self,
        transfer_id,
        courier: CourierInfo | None,
        actor: ActorContext,
        *,
        expected_version: int | None = None,
    ) -> WarehouseTransfer:
        actor = require_actor(actor)
        courier = courier or CourierInfo()
        with self._unit_of_work("dispatch_transfer", transfer_id=str(transfer_id)) as logs:
            transfer = self._get_transfer(transfer_id)
            _check_version(transfer, expected_version, "transfer")
            items = self.repo.get_items(transfer.id)
            previous = TransferStatus(transfer.status)
            ensure_dispatchable(previous, len(items))

            now = datetime.utcnow()
            transfer.dispatch_date = now
            transfer.dispatched_by = str(actor.actor_id)
            transfer.courier_name = courier.courier_name or transfer.courier_name
            transfer.tracking_number = courier.tracking_number or transfer.tracking_number
            transfer.expected_delivery_date = courier.expected_delivery_date or transfer.expected_delivery_date
            status = self._rederive(transfer, items, now)
            logs.append(
                self.log_writer.write(
                    transfer,
                    TransferLogEntry(
                        TransferLogAction.TRANSFER_DISPATCHED,
                        previous,
                        status,
                        {
                            "courier_name": transfer.courier_name,
                            "tracking_number": transfer.tracking_number,
                            "expected_delivery_date": transfer.expected_delivery_date.isoformat()
                            if transfer.expected_delivery_date
                            else None,
                        },
                    ),
                    actor,
                )
            )
        log_json(logger, {"event": "transfer.dispatched", "transfer_id": str(transfer.id), "actor_id": actor.actor_id})
        return transfer

    def receive_items(
        self,
        transfer_id,
        actions: list[ReceiptAction],
        actor: ActorContext,
        notes: str | None = None,
    ) -> WarehouseTransfer:
        actor = require_actor(actor)
        if not actions:
            raise ValidationError("receipt actions must not be empty")
        with self._unit_of_work("receive_items", transfer_id=str(transfer_id)) as logs:
            transfer = self._get_transfer(transfer_id)
            previous = TransferStatus(transfer.status)
            ensure_receivable(previous)
            items = self.repo.get_items(transfer.id)
            items_by_id = {item.id: item for item in items}

            planned: list[tuple[WarehouseTransferItem, ReceiptAction, ItemTransition]] = []
            seen: set[uuid.UUID] = set()
            for action in actions:
                item_id = _lookup_uuid(action.item_id, "item")
                if item_id in seen:
                    raise ValidationError("item appears more than once in the receipt batch", item_id=str(item_id))
                seen.add(item_id)
                item = items_by_id.get(item_id)
                if item is None:
                    raise NotFound(
                        "transfer item not found on this transfer",
                        item_id=str(item_id),
                        transfer_id=str(transfer.id),
                    )
                _check_version(item, action.expected_version, "item")
                planned.append((item, action, apply_receipt(item_snapshot(item), action)))

            now = datetime.utcnow()
            for item, action, transition in planned:
                self._apply_transition(item, transition, now)
                logs.append(
                    self.log_writer.write(
                        transfer,
                        TransferLogEntry(
                            TransferLogAction.ITEM_RECEIVED,
                            transition.previous_status,
                            transition.new_status,
                            {
                                **transition.details(),
                                "rejection_reason": action.rejection_reason,
                                "condition_notes": action.condition_notes,
                            },
                            notes,
                        ),
                        actor,
                        item=item,
                    )
                )

            transfer.received_by = str(actor.actor_id)
            transfer.received_at = now
            if notes:
                transfer.receipt_notes = notes
            status = self._rederive(transfer, items, now)
            self._log_status_change(logs, transfer, items, previous, status, actor, notes)
        log_json(
            logger,
            {
                "event": "transfer.items_received",
                "transfer_id": str(transfer.id),
                "items": len(planned),
                "previous_status": previous.value,
                "status": status.value,
                "actor_id": actor.actor_id,
            },
        )
        return transfer

    def _resolve_rejected_item(
        self,
        operation: str,
        item_id,
        actor: ActorContext,
        expected_version: int | None,
        apply,
        log_action: TransferLogAction,
        extra_details: dict,
    ) -> WarehouseTransferItem:
        actor = require_actor(actor)
        with self._unit_of_work(operation, item_id=str(item_id)) as logs:
            item = self._get_item(item_id)
            _check_version(item, expected_version, "item")
            transfer = self._get_transfer(item.transfer_id)
            previous = TransferStatus(transfer.status)
            ensure_resolvable(previous)
            transition = apply(item_snapshot(item))

            now = datetime.utcnow()
            self._apply_transition(item, transition, now)
            logs.append(
                self.log_writer.write(
                    transfer,
                    TransferLogEntry(
                        log_action,
                        transition.previous_status,
                        transition.new_status,
                        {**transition.details(), **extra_details},
                    ),
                    actor,
                    item=item,
                )
            )
            items = self.repo.get_items(transfer.id)
            status = self._rederive(transfer, items, now)
            self._log_status_change(logs, transfer, items, previous, status, actor)
        log_json(
            logger,
            {
                "event": f"transfer.{log_action.value}",
                "transfer_id": str(transfer.id),
                "item_id": str(item.id),
                "item_status": item.item_status,
                "actor_id": actor.actor_id,
            },
        )
        return item

    def dispose_rejected_item(
        self,
        item_id,
        reason: str,
        actor: ActorContext,
        *,
        quantity: int | None = None,
        expected_version: int | None = None,
    ) -> WarehouseTransferItem:
        action = DisposalAction(reason=reason, quantity=quantity)
        return self._resolve_rejected_item(
            "dispose_rejected_item",
            item_id,
            actor,
            expected_version,
            lambda snapshot: apply_disposal(snapshot, action),
            TransferLogAction.ITEM_DISPOSED,
            {"disposal_reason": reason},
        )

    def return_rejected_item(
        self,
        item_id,
        actor: ActorContext,
        *,
        quantity: int | None = None,
        expected_version: int | None = None,
    ) -> WarehouseTransferItem:
        action = ReturnAction(quantity=quantity)
        return self._resolve_rejected_item(
            "return_rejected_item",
            item_id,
            actor,
            expected_version,
            lambda snapshot: apply_return(snapshot, action),
            TransferLogAction.ITEM_RETURNED,
            {},
        )

    def cancel_transfer(self, transfer_id, actor: ActorContext, reason: str | None = None) -> WarehouseTransfer:
        actor = require_actor(actor)
        with self._unit_of_work("cancel_transfer", transfer_id=str(transfer_id)) as logs:
            transfer = self._get_transfer(transfer_id)
            items = self.repo.get_items(transfer.id)
            previous = TransferStatus(transfer.status)
            ensure_cancellable(previous, [item_snapshot(item) for item in items])

            now = datetime.utcnow()
            transfer.cancelled_at = now
            transfer.cancelled_by = str(actor.actor_id)
            transfer.cancellation_reason = reason
            status = self._rederive(transfer, items, now)
            logs.append(
                self.log_writer.write(
                    transfer,
                    TransferLogEntry(TransferLogAction.TRANSFER_CANCELLED, previous, status, None, reason),
                    actor,
                )
            )
        log_json(logger, {"event": "transfer.cancelled", "transfer_id": str(transfer.id), "actor_id": actor.actor_id})
        return transfer

    def dispatch_return(self, transfer_id, courier: CourierInfo | None, actor: ActorContext) -> WarehouseTransfer:
        actor = require_actor(actor)
        courier = courier or CourierInfo()
        with self._unit_of_work("dispatch_return", transfer_id=str(transfer_id)) as logs:
            transfer = self._get_transfer(transfer_id)
            items = self.repo.get_items(transfer.id)
            previous = TransferStatus(transfer.status)
            ensure_return_dispatchable(previous, [item_snapshot(item) for item in items])

            now = datetime.utcnow()
            transfer.return_courier_name = courier.courier_name
            transfer.return_tracking_number = courier.tracking_number
            transfer.return_dispatch_date = now
            transfer.return_dispatched_by = str(actor.actor_id)
            status = self._rederive(transfer, items, now)
            logs.append(
                self.log_writer.write(
                    transfer,
                    TransferLogEntry(
                        TransferLogAction.RETURN_DISPATCHED,
                        previous,
                        status,
                        {
                            "return_courier_name": courier.courier_name,
                            "return_tracking_number": courier.tracking_number,
                            "returned_items": {str(item.id): item.quantity_returned for item in items if item.quantity_returned},
                            "total_returned": sum(item.quantity_returned for item in items),
                        },
                    ),
                    actor,
                )
            )
        log_json(logger, {"event": "transfer.return_dispatched", "transfer_id": str(transfer.id), "actor_id": actor.actor_id})
        return transfer

    def confirm_return_receipt(self, transfer_id, actor: ActorContext, notes: str | None = None) -> WarehouseTransfer:
        actor = require_actor(actor)
        with self._unit_of_work("confirm_return_receipt", transfer_id=str(transfer_id)) as logs:
            transfer = self._get_transfer(transfer_id)
            status = TransferStatus(transfer.status)
            ensure_return_confirmable(status, transfer.return_received_at is not None)

            now = datetime.utcnow()
            transfer.return_received_at = now
            transfer.return_received_by = str(actor.actor_id)
            transfer.updated_at = now
            logs.append(
                self.log_writer.write(
                    transfer,
                    TransferLogEntry(TransferLogAction.RETURN_RECEIVED, status, status, None, notes),
                    actor,
                )
            )
        return transfer

    def get_transfer_with_history(self, transfer_id) -> TransferHistory:
        transfer = self._get_transfer(transfer_id)
        return TransferHistory(
            transfer=transfer,
            items=self.repo.get_items(transfer.id),
            logs=self.repo.get_logs(transfer.id),
        )

    def list_transfers(self, filters: TransferQueryFilters | None = None) -> list[WarehouseTransfer]:
        return self.repo.list_transfers(filters or TransferQueryFilters())

    def reserved_quantities(self, source_warehouse_id) -> dict[str, int]:
        warehouse_id = as_uuid(source_warehouse_id, "source_warehouse_id")
        reserved = self.repo.reserved_quantities(
            warehouse_id,
            [status.value for status in RESERVING_TRANSFER_STATUSES],
        )
        return {str(product_id): quantity for product_id, quantity in reserved.items() if quantity > 0}
