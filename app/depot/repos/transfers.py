from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import func, select

from app.depot.db.models import WarehouseTransfer, WarehouseTransferItem, WarehouseTransferLog


@dataclass(frozen=True)
class TransferQueryFilters:
    status: str | None = None
    source_warehouse_id: uuid.UUID | None = None
    target_warehouse_id: uuid.UUID | None = None
    warehouse_id: uuid.UUID | None = None
    limit: int = 50
    offset: int = 0


class TransferRepository:
    def __init__(self, db):
        self.db = db

    def list_transfers(self, filters: TransferQueryFilters) -> list[WarehouseTransfer]:
        query = select(WarehouseTransfer)
        if filters.status:
            query = query.where(WarehouseTransfer.status == filters.status)
        if filters.source_warehouse_id:
            query = query.where(WarehouseTransfer.source_warehouse_id == filters.source_warehouse_id)
        if filters.target_warehouse_id:
            query = query.where(WarehouseTransfer.target_warehouse_id == filters.target_warehouse_id)
        if filters.warehouse_id:
            query = query.where(
                (WarehouseTransfer.source_warehouse_id == filters.warehouse_id)
                | (WarehouseTransfer.target_warehouse_id == filters.warehouse_id)
            )
        query = query.order_by(WarehouseTransfer.initiated_at.desc(), WarehouseTransfer.transfer_number.desc())
        return self.db.execute(query.limit(filters.limit).offset(filters.offset)).scalars().all()

    def get_transfer(self, transfer_id: uuid.UUID) -> WarehouseTransfer | None:
        return self.db.get(WarehouseTransfer, transfer_id)

    def get_item(self, item_id: uuid.UUID) -> WarehouseTransferItem | None:
        return self.db.get(WarehouseTransferItem, item_id)

    def get_items(self, transfer_id: uuid.UUID) -> list[WarehouseTransferItem]:
        return (
            self.db.execute(
                select(WarehouseTransferItem)
                .where(WarehouseTransferItem.transfer_id == transfer_id)
                .order_by(WarehouseTransferItem.line_number)
            )
            .scalars()
            .all()
        )

    def get_logs(self, transfer_id: uuid.UUID) -> list[WarehouseTransferLog]:
        return (
            self.db.execute(
                select(WarehouseTransferLog)
                .where(WarehouseTransferLog.transfer_id == transfer_id)
                .order_by(WarehouseTransferLog.action_at.desc(), WarehouseTransferLog.id)
            )
            .scalars()
            .all()
        )

    def transfer_number_exists(self, transfer_number: str) -> bool:
        return (
            self.db.execute(
                select(WarehouseTransfer.id).where(WarehouseTransfer.transfer_number == transfer_number)
            ).first()
            is not None
        )

    def add_log(self, log: WarehouseTransferLog) -> WarehouseTransferLog:
        self.db.add(log)
        return log

    def reserved_quantities(self, source_warehouse_id: uuid.UUID, statuses) -> dict[uuid.UUID, int]:
        query = (
            select(
                WarehouseTransferItem.product_id,
                func.coalesce(
                    func.sum(WarehouseTransferItem.quantity_sent - WarehouseTransferItem.quantity_returned), 0
                ),
            )
            .join(WarehouseTransfer, WarehouseTransferItem.transfer_id == WarehouseTransfer.id)
            .where(
                WarehouseTransfer.source_warehouse_id == source_warehouse_id,
                WarehouseTransfer.status.in_(list(statuses)),
            )
            .group_by(WarehouseTransferItem.product_id)
        )
        return {product_id: int(quantity or 0) for product_id, quantity in self.db.execute(query).all()}
