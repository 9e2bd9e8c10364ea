from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.depot.core.config import settings
from app.depot.core.context import ActorContext
from app.depot.core.deps import require_actor_context
from app.depot.core.error_catalog import ValidationError
from app.depot.db.models import WarehouseTransfer, WarehouseTransferItem, WarehouseTransferLog
from app.depot.db.session import get_db
from app.depot.repos.transfers import TransferQueryFilters
from app.depot.schemas.errors import error_responses
from app.depot.schemas.transfers import (
    ReservedQuantitiesResponse,
    ReservedQuantityRow,
    TransferActionRequest,
    TransferCreateRequest,
    TransferDetailResponse,
    TransferHeaderResponse,
    TransferItemActionRequest,
    TransferItemResponse,
    TransferListResponse,
    TransferLogResponse,
    TransferResponse,
    TransferTotals,
)
from app.depot.services.item_state_machine import ReceiptAction
from app.depot.services.transfer_state_machine import TransferStatus
from app.depot.services.transfers import (
    CourierInfo,
    TransferItemInput,
    TransferService,
    as_uuid,
    item_snapshot,
    transfer_totals,
)


router = APIRouter()
_READ_ERRORS = error_responses(401, 404, 422)
_WRITE_ERRORS = error_responses(401, 404, 409, 422)


def _header_response(transfer: WarehouseTransfer) -> TransferHeaderResponse:
    return TransferHeaderResponse(
        id=str(transfer.id),
        transfer_number=transfer.transfer_number,
        source_warehouse_id=str(transfer.source_warehouse_id),
        target_warehouse_id=str(transfer.target_warehouse_id),
        status=transfer.status,
        initiated_by=transfer.initiated_by,
        initiated_at=transfer.initiated_at,
        initiation_notes=transfer.initiation_notes,
        courier_name=transfer.courier_name,
        tracking_number=transfer.tracking_number,
        expected_delivery_date=transfer.expected_delivery_date,
        dispatch_date=transfer.dispatch_date,
        dispatched_by=transfer.dispatched_by,
        received_by=transfer.received_by,
        received_at=transfer.received_at,
        receipt_notes=transfer.receipt_notes,
        return_courier_name=transfer.return_courier_name,
        return_tracking_number=transfer.return_tracking_number,
        return_dispatch_date=transfer.return_dispatch_date,
        return_dispatched_by=transfer.return_dispatched_by,
        return_received_at=transfer.return_received_at,
        return_received_by=transfer.return_received_by,
        cancelled_by=transfer.cancelled_by,
        cancelled_at=transfer.cancelled_at,
        cancellation_reason=transfer.cancellation_reason,
        version=transfer.version,
        created_at=transfer.created_at,
        updated_at=transfer.updated_at,
    )


def _item_response(item: WarehouseTransferItem) -> TransferItemResponse:
    return TransferItemResponse(
        id=str(item.id),
        transfer_id=str(item.transfer_id),
        line_number=item.line_number,
        product_id=str(item.product_id),
        batch_number=item.batch_number,
        expiry_date=item.expiry_date,
        unit_price=item.unit_price,
        currency=item.currency,
        quantity_sent=item.quantity_sent,
        quantity_received=item.quantity_received,
        quantity_rejected=item.quantity_rejected,
        quantity_disposed=item.quantity_disposed,
        quantity_returned=item.quantity_returned,
        outstanding_quantity=item_snapshot(item).quantities.outstanding,
        item_status=item.item_status,
        rejection_reason=item.rejection_reason,
        disposal_reason=item.disposal_reason,
        condition_notes=item.condition_notes,
        version=item.version,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _log_response(log: WarehouseTransferLog) -> TransferLogResponse:
    return TransferLogResponse(
        id=str(log.id),
        transfer_item_id=str(log.transfer_item_id) if log.transfer_item_id else None,
        action=log.action,
        action_by=log.action_by,
        action_at=log.action_at,
        previous_status=log.previous_status,
        new_status=log.new_status,
        details=log.details,
        notes=log.notes,
        ip_address=log.ip_address,
    )


def _transfer_response(service: TransferService, transfer: WarehouseTransfer) -> TransferResponse:
    items = service.repo.get_items(transfer.id)
    return TransferResponse(
        header=_header_response(transfer),
        items=[_item_response(item) for item in items],
        totals=TransferTotals(**transfer_totals(items)),
    )


def _courier(payload: TransferActionRequest) -> CourierInfo:
    return CourierInfo(
        courier_name=payload.courier_name,
        tracking_number=payload.tracking_number,
        expected_delivery_date=payload.expected_delivery_date,
    )


@router.get("/depot/transfers", response_model=TransferListResponse, responses=_READ_ERRORS)
def list_transfers(
    status: TransferStatus | None = None,
    source_warehouse_id: str | None = None,
    target_warehouse_id: str | None = None,
    warehouse_id: str | None = None,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    _actor: ActorContext = Depends(require_actor_context),
    db=Depends(get_db),
):
    limit = min(limit, settings.TRANSFER_LIST_MAX_PAGE_SIZE)
    filters = TransferQueryFilters(
        status=status.value if status else None,
        source_warehouse_id=as_uuid(source_warehouse_id, "source_warehouse_id") if source_warehouse_id else None,
        target_warehouse_id=as_uuid(target_warehouse_id, "target_warehouse_id") if target_warehouse_id else None,
        warehouse_id=as_uuid(warehouse_id, "warehouse_id") if warehouse_id else None,
        limit=limit,
        offset=offset,
    )
    rows = TransferService(db).list_transfers(filters)
    return TransferListResponse(rows=[_header_response(row) for row in rows], limit=limit, offset=offset)


@router.post("/depot/transfers", response_model=TransferResponse, status_code=201, responses=_WRITE_ERRORS)
def create_transfer(
    payload: TransferCreateRequest,
    actor: ActorContext = Depends(require_actor_context),
    db=Depends(get_db),
):
    service = TransferService(db)
    transfer = service.initiate_transfer(
        payload.source_warehouse_id,
        payload.target_warehouse_id,
        [
            TransferItemInput(
                product_id=item.product_id,
                quantity_sent=item.quantity_sent,
                batch_number=item.batch_number,
                expiry_date=item.expiry_date,
                unit_price=item.unit_price,
                currency=item.currency,
            )
            for item in payload.items
        ],
        actor,
        courier=CourierInfo(
            courier_name=payload.courier_name,
            tracking_number=payload.tracking_number,
            expected_delivery_date=payload.expected_delivery_date,
        ),
        notes=payload.notes,
    )
    return _transfer_response(service, transfer)


@router.get("/depot/transfers/{transfer_id}", response_model=TransferDetailResponse, responses=_READ_ERRORS)
def get_transfer_detail(
    transfer_id: str,
    _actor: ActorContext = Depends(require_actor_context),
    db=Depends(get_db),
):
    history = TransferService(db).get_transfer_with_history(transfer_id)
    return TransferDetailResponse(
        header=_header_response(history.transfer),
        items=[_item_response(item) for item in history.items],
        totals=TransferTotals(**transfer_totals(history.items)),
        history=[_log_response(log) for log in history.logs],
    )


@router.post("/depot/transfers/{transfer_id}/actions", response_model=TransferResponse, responses=_WRITE_ERRORS)
def transfer_actions(
    transfer_id: str,
    payload: TransferActionRequest,
    actor: ActorContext = Depends(require_actor_context),
    db=Depends(get_db),
):
    service = TransferService(db)
    if payload.action == "dispatch":
        transfer = service.dispatch_transfer(
            transfer_id, _courier(payload), actor, expected_version=payload.expected_version
        )
    elif payload.action == "receive":
        if not payload.receive_items:
            raise ValidationError("receive_items is required for receive")
        transfer = service.receive_items(
            transfer_id,
            [
                ReceiptAction(
                    item_id=line.item_id,
                    quantity_received=line.quantity_received,
                    quantity_rejected=line.quantity_rejected,
                    rejection_reason=line.rejection_reason,
                    condition_notes=line.condition_notes,
                    expected_version=line.expected_version,
                )
                for line in payload.receive_items
            ],
            actor,
            notes=payload.notes,
        )
    elif payload.action == "cancel":
        transfer = service.cancel_transfer(transfer_id, actor, payload.reason)
    elif payload.action == "dispatch_return":
        transfer = service.dispatch_return(transfer_id, _courier(payload), actor)
    else:
        transfer = service.confirm_return_receipt(transfer_id, actor, notes=payload.notes)
    return _transfer_response(service, transfer)


@router.post(
    "/depot/transfer-items/{item_id}/actions",
    response_model=TransferItemResponse,
    responses=_WRITE_ERRORS,
)
def transfer_item_actions(
    item_id: str,
    payload: TransferItemActionRequest,
    actor: ActorContext = Depends(require_actor_context),
    db=Depends(get_db),
):
    service = TransferService(db)
    if payload.action == "dispose":
        item = service.dispose_rejected_item(
            item_id,
            payload.reason,
            actor,
            quantity=payload.quantity,
            expected_version=payload.expected_version,
        )
    else:
        item = service.return_rejected_item(
            item_id,
            actor,
            quantity=payload.quantity,
            expected_version=payload.expected_version,
        )
    return _item_response(item)


@router.get(
    "/depot/warehouses/{warehouse_id}/reserved-quantities",
    response_model=ReservedQuantitiesResponse,
    responses=_READ_ERRORS,
)
def reserved_quantities(
    warehouse_id: str,
    _actor: ActorContext = Depends(require_actor_context),
    db=Depends(get_db),
):
    reserved = TransferService(db).reserved_quantities(warehouse_id)
    return ReservedQuantitiesResponse(
        source_warehouse_id=str(as_uuid(warehouse_id, "warehouse_id")),
        rows=[
            ReservedQuantityRow(product_id=product_id, quantity=quantity)
            for product_id, quantity in sorted(reserved.items())
        ],
    )
