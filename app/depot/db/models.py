import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, CHAR


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class ImmutableRecordError(RuntimeError):
    pass


class WarehouseTransfer(Base):
    __tablename__ = "warehouse_transfers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    source_warehouse_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    target_warehouse_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(50), index=True, nullable=False, default="initiated")

    initiated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    initiated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    initiation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    courier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    dispatch_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    dispatched_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    receipt_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    return_courier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    return_tracking_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    return_dispatch_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    return_dispatched_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    return_received_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    return_received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    items = relationship(
        "WarehouseTransferItem",
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="WarehouseTransferItem.line_number",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("source_warehouse_id <> target_warehouse_id", name="ck_transfer_different_warehouses"),
    )


class WarehouseTransferItem(Base):
    __tablename__ = "warehouse_transfer_items"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("warehouse_transfers.id", ondelete="CASCADE"), index=True, nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    batch_number: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(10), nullable=True)

    quantity_sent: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_rejected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_disposed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_returned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    item_status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disposal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    condition_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    transfer = relationship("WarehouseTransfer", back_populates="items")

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("quantity_sent > 0", name="ck_transfer_item_quantity_sent_positive"),
        CheckConstraint(
            "quantity_received >= 0 AND quantity_rejected >= 0 "
            "AND quantity_disposed >= 0 AND quantity_returned >= 0",
            name="ck_transfer_item_quantities_non_negative",
        ),
    )


class WarehouseTransferLog(Base):
    __tablename__ = "warehouse_transfer_logs"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    transfer_item_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    action_by: Mapped[str] = mapped_column(String(255), nullable=False)
    action_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)


Index("ix_warehouse_transfers_initiated_at", WarehouseTransfer.initiated_at)
Index("ix_warehouse_transfer_logs_transfer_action_at", WarehouseTransferLog.transfer_id, WarehouseTransferLog.action_at)


@event.listens_for(WarehouseTransferLog, "before_update")
def _refuse_log_update(mapper, connection, target):
    raise ImmutableRecordError(f"warehouse transfer log {target.id} is immutable")


@event.listens_for(WarehouseTransferLog, "before_delete")
def _refuse_log_delete(mapper, connection, target):
    raise ImmutableRecordError(f"warehouse transfer log {target.id} cannot be deleted")
