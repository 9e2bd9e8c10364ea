"""warehouse transfers

Revision ID: 0001_warehouse_transfers
Revises:
Create Date: 2026-09-14 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_warehouse_transfers"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    class GUID(sa.TypeDecorator):
        impl = sa.CHAR
        cache_ok = True

        def load_dialect_impl(self, dialect):
            if dialect.name == "postgresql":
                from sqlalchemy.dialects.postgresql import UUID

                return dialect.type_descriptor(UUID(as_uuid=True))
            return dialect.type_descriptor(sa.CHAR(36))

    op.create_table(
        "warehouse_transfers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("source_warehouse_id", GUID(), nullable=False),
        sa.Column("target_warehouse_id", GUID(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="initiated"),
        sa.Column("initiated_by", sa.String(length=255), nullable=False),
        sa.Column("initiated_at", sa.DateTime(), nullable=False),
        sa.Column("initiation_notes", sa.Text(), nullable=True),
        sa.Column("courier_name", sa.String(length=255), nullable=True),
        sa.Column("tracking_number", sa.String(length=255), nullable=True),
        sa.Column("expected_delivery_date", sa.Date(), nullable=True),
        sa.Column("dispatch_date", sa.DateTime(), nullable=True),
        sa.Column("dispatched_by", sa.String(length=255), nullable=True),
        sa.Column("received_by", sa.String(length=255), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.Column("receipt_notes", sa.Text(), nullable=True),
        sa.Column("return_courier_name", sa.String(length=255), nullable=True),
        sa.Column("return_tracking_number", sa.String(length=255), nullable=True),
        sa.Column("return_dispatch_date", sa.DateTime(), nullable=True),
        sa.Column("return_dispatched_by", sa.String(length=255), nullable=True),
        sa.Column("return_received_at", sa.DateTime(), nullable=True),
        sa.Column("return_received_by", sa.String(length=255), nullable=True),
        sa.Column("cancelled_by", sa.String(length=255), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("source_warehouse_id <> target_warehouse_id", name="ck_transfer_different_warehouses"),
    )
    op.create_index("ix_warehouse_transfers_source_warehouse_id", "warehouse_transfers", ["source_warehouse_id"])
    op.create_index("ix_warehouse_transfers_target_warehouse_id", "warehouse_transfers", ["target_warehouse_id"])
    op.create_index("ix_warehouse_transfers_status", "warehouse_transfers", ["status"])
    op.create_index("ix_warehouse_transfers_initiated_at", "warehouse_transfers", ["initiated_at"])

    op.create_table(
        "warehouse_transfer_items",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column(
            "transfer_id",
            GUID(),
            sa.ForeignKey("warehouse_transfers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_id", GUID(), nullable=False),
        sa.Column("batch_number", sa.String(length=255), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column("quantity_sent", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_rejected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_disposed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_returned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("item_status", sa.String(length=50), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("disposal_reason", sa.Text(), nullable=True),
        sa.Column("condition_notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("quantity_sent > 0", name="ck_transfer_item_quantity_sent_positive"),
        sa.CheckConstraint(
            "quantity_received >= 0 AND quantity_rejected >= 0 "
            "AND quantity_disposed >= 0 AND quantity_returned >= 0",
            name="ck_transfer_item_quantities_non_negative",
        ),
    )
    op.create_index("ix_warehouse_transfer_items_transfer_id", "warehouse_transfer_items", ["transfer_id"])
    op.create_index("ix_warehouse_transfer_items_product_id", "warehouse_transfer_items", ["product_id"])
    op.create_index("ix_warehouse_transfer_items_batch_number", "warehouse_transfer_items", ["batch_number"])

    op.create_table(
        "warehouse_transfer_logs",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), nullable=False),
        sa.Column("transfer_item_id", GUID(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("action_by", sa.String(length=255), nullable=False),
        sa.Column("action_at", sa.DateTime(), nullable=False),
        sa.Column("previous_status", sa.String(length=50), nullable=True),
        sa.Column("new_status", sa.String(length=50), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
    )
    op.create_index("ix_warehouse_transfer_logs_transfer_id", "warehouse_transfer_logs", ["transfer_id"])
    op.create_index("ix_warehouse_transfer_logs_transfer_item_id", "warehouse_transfer_logs", ["transfer_item_id"])
    op.create_index(
        "ix_warehouse_transfer_logs_transfer_action_at",
        "warehouse_transfer_logs",
        ["transfer_id", "action_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_warehouse_transfer_logs_transfer_action_at", table_name="warehouse_transfer_logs")
    op.drop_index("ix_warehouse_transfer_logs_transfer_item_id", table_name="warehouse_transfer_logs")
    op.drop_index("ix_warehouse_transfer_logs_transfer_id", table_name="warehouse_transfer_logs")
    op.drop_table("warehouse_transfer_logs")
    op.drop_index("ix_warehouse_transfer_items_batch_number", table_name="warehouse_transfer_items")
    op.drop_index("ix_warehouse_transfer_items_product_id", table_name="warehouse_transfer_items")
    op.drop_index("ix_warehouse_transfer_items_transfer_id", table_name="warehouse_transfer_items")
    op.drop_table("warehouse_transfer_items")
    op.drop_index("ix_warehouse_transfers_initiated_at", table_name="warehouse_transfers")
    op.drop_index("ix_warehouse_transfers_status", table_name="warehouse_transfers")
    op.drop_index("ix_warehouse_transfers_target_warehouse_id", table_name="warehouse_transfers")
    op.drop_index("ix_warehouse_transfers_source_warehouse_id", table_name="warehouse_transfers")
    op.drop_table("warehouse_transfers")
