from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


_TRANSFER_CREATE_EXAMPLE = {
    "source_warehouse_id": "5f1d8a4e-0c3b-4f7e-9a55-0d2f4b1c9e01",
    "target_warehouse_id": "a3b7c2d1-6e4f-4a8b-8c9d-1e2f3a4b5c6d",
    "courier_name": "Northline Freight",
    "tracking_number": "NLF-884120",
    "notes": "Monthly rebalance",
    "items": [
        {
            "product_id": "0b9e6f3a-2d1c-4e8b-9f7a-6c5d4e3b2a19",
            "quantity_sent": 10,
            "batch_number": "B-2026-07",
            "expiry_date": "2027-01-31",
            "unit_price": "12.50",
            "currency": "USD",
        }
    ],
}


class TransferItemCreate(BaseModel):
    product_id: str
    quantity_sent: int
    batch_number: str | None = None
    expiry_date: date | None = None
    unit_price: Decimal | None = None
    currency: str | None = None


class TransferCreateRequest(BaseModel):
    source_warehouse_id: str
    target_warehouse_id: str
    items: list[TransferItemCreate]
    courier_name: str | None = None
    tracking_number: str | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None

    model_config = {"json_schema_extra": {"example": _TRANSFER_CREATE_EXAMPLE}}


class TransferReceiveItem(BaseModel):
    item_id: str
    quantity_received: int = 0
    quantity_rejected: int = 0
    rejection_reason: str | None = None
    condition_notes: str | None = None
    expected_version: int | None = None


class TransferActionRequest(BaseModel):
    action: Literal["dispatch", "receive", "cancel", "dispatch_return", "confirm_return"]
    courier_name: str | None = None
    tracking_number: str | None = None
    expected_delivery_date: date | None = None
    expected_version: int | None = None
    receive_items: list[TransferReceiveItem] | None = None
    reason: str | None = None
    notes: str | None = None


class TransferItemActionRequest(BaseModel):
    action: Literal["dispose", "return"]
    quantity: int | None = None
    reason: str | None = None
    expected_version: int | None = None


class TransferItemResponse(BaseModel):
    id: str
    transfer_id: str
    line_number: int
    product_id: str
    batch_number: str | None
    expiry_date: date | None
    unit_price: Decimal | None
    currency: str | None
    quantity_sent: int
    quantity_received: int
    quantity_rejected: int
    quantity_disposed: int
    quantity_returned: int
    outstanding_quantity: int
    item_status: str
    rejection_reason: str | None
    disposal_reason: str | None
    condition_notes: str | None
    version: int
    created_at: datetime
    updated_at: datetime | None


class TransferHeaderResponse(BaseModel):
    id: str
    transfer_number: str
    source_warehouse_id: str
    target_warehouse_id: str
    status: str
    initiated_by: str
    initiated_at: datetime
    initiation_notes: str | None
    courier_name: str | None
    tracking_number: str | None
    expected_delivery_date: date | None
    dispatch_date: datetime | None
    dispatched_by: str | None
    received_by: str | None
    received_at: datetime | None
    receipt_notes: str | None
    return_courier_name: str | None
    return_tracking_number: str | None
    return_dispatch_date: datetime | None
    return_dispatched_by: str | None
    return_received_at: datetime | None
    return_received_by: str | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    version: int
    created_at: datetime
    updated_at: datetime | None


class TransferTotals(BaseModel):
    total_sent: int
    total_received: int
    total_rejected: int
    total_disposed: int
    total_returned: int
    total_outstanding: int


class TransferLogResponse(BaseModel):
    id: str
    transfer_item_id: str | None
    action: str
    action_by: str
    action_at: datetime
    previous_status: str | None
    new_status: str | None
    details: dict | None
    notes: str | None
    ip_address: str | None


class TransferResponse(BaseModel):
    header: TransferHeaderResponse
    items: list[TransferItemResponse]
    totals: TransferTotals


class TransferDetailResponse(TransferResponse):
    history: list[TransferLogResponse] = Field(default_factory=list)


class TransferListResponse(BaseModel):
    rows: list[TransferHeaderResponse]
    limit: int
    offset: int


class ReservedQuantityRow(BaseModel):
    product_id: str
    quantity: int


class ReservedQuantitiesResponse(BaseModel):
    source_warehouse_id: str
    rows: list[ReservedQuantityRow]
