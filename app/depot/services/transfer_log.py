from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.depot.core.context import ActorContext
from app.depot.db.models import WarehouseTransfer, WarehouseTransferItem, WarehouseTransferLog
from app.depot.repos.transfers import TransferRepository


class TransferLogAction(str, Enum):
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_DISPATCHED = "transfer_dispatched"
    ITEM_RECEIVED = "item_received"
    TRANSFER_STATUS_CHANGED = "transfer_status_changed"
    ITEM_DISPOSED = "item_disposed"
    ITEM_RETURNED = "item_returned"
    TRANSFER_CANCELLED = "transfer_cancelled"
    RETURN_DISPATCHED = "return_dispatched"
    RETURN_RECEIVED = "return_received"


def _status_value(status) -> str | None:
    if status is None:
        return None
    if isinstance(status, Enum):
        return status.value
    return str(status)


@dataclass
class TransferLogEntry:
    action: TransferLogAction
    previous_status: object | None
    new_status: object | None
    details: dict | None = None
    notes: str | None = None


class TransferLogWriter:
    """Appends audit rows inside the caller's unit of work.

    Nothing is committed here and nothing is swallowed: if the row cannot
    be written the exception reaches the transfer service, which rolls the
    whole operation back.
    """

    def __init__(self, db):
        self.repo = TransferRepository(db)

    def write(
        self,
        transfer: WarehouseTransfer,
        entry: TransferLogEntry,
        actor: ActorContext,
        *,
        item: WarehouseTransferItem | None = None,
    ) -> WarehouseTransferLog:
        log = WarehouseTransferLog(
            transfer_id=transfer.id,
            transfer_item_id=item.id if item is not None else None,
            action=entry.action.value,
            action_by=str(actor.actor_id),
            action_at=datetime.utcnow(),
            previous_status=_status_value(entry.previous_status),
            new_status=_status_value(entry.new_status),
            details=entry.details,
            notes=entry.notes,
            ip_address=actor.ip_address,
        )
        return self.repo.add_log(log)
