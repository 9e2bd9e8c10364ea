from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select

from app.depot.core.metrics import metrics
from app.depot.db.models import WarehouseTransfer, WarehouseTransferItem, WarehouseTransferLog
from app.depot.services.item_state_machine import ItemStatus
from app.depot.services.quantity_ledger import check_quantities
from app.depot.services.transfer_log import TransferLogAction
from app.depot.services.transfers import derived_status_for, item_quantities


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def check_item_quantity_conservation(db) -> list[IntegrityFinding]:
    findings = []
    for item in db.execute(select(WarehouseTransferItem)).scalars().all():
        result = check_quantities(item_quantities(item))
        if result.ok:
            continue
        findings.append(
            IntegrityFinding(
                check_id="item_quantity_conservation",
                severity=SEVERITY_CRITICAL,
                message=f"Transfer item violates {result.description}.",
                entity="warehouse_transfer_items",
                entity_id=str(item.id),
                details={"transfer_id": str(item.transfer_id), "inequality": result.violated, **result.details},
            )
        )
    if findings:
        metrics.increment_invariant_violation("item_quantity_conservation", len(findings))
    return findings


def _item_status_matches_quantities(item: WarehouseTransferItem) -> bool:
    quantities = item_quantities(item)
    try:
        status = ItemStatus(item.item_status)
    except ValueError:
        return False
    if status is ItemStatus.PENDING:
        return quantities.received == 0 and quantities.rejected == 0
    if status is ItemStatus.ACCEPTED:
        return quantities.received == quantities.sent and quantities.rejected == 0
    if status is ItemStatus.PARTIAL_ACCEPTED:
        return (
            quantities.received + quantities.rejected > 0
            and quantities.rejected != quantities.sent
            and not (quantities.received == quantities.sent and quantities.rejected == 0)
        )
    if status is ItemStatus.REJECTED:
        return quantities.rejected == quantities.sent
    if status is ItemStatus.DISPOSED:
        return quantities.rejected == quantities.sent and quantities.unresolved_rejected == 0
    return (
        quantities.rejected == quantities.sent
        and quantities.unresolved_rejected == 0
        and quantities.returned > 0
    )


def check_item_status_quantities(db) -> list[IntegrityFinding]:
    findings = []
    for item in db.execute(select(WarehouseTransferItem)).scalars().all():
        if _item_status_matches_quantities(item):
            continue
        findings.append(
            IntegrityFinding(
                check_id="item_status_quantities",
                severity=SEVERITY_WARN,
                message="Transfer item status does not match its quantities.",
                entity="warehouse_transfer_items",
                entity_id=str(item.id),
                details={"item_status": item.item_status, **item_quantities(item).as_dict()},
            )
        )
    if findings:
        metrics.increment_invariant_violation("item_status_quantities", len(findings))
    return findings


def check_transfer_status_derivation(db) -> list[IntegrityFinding]:
    items_by_transfer: dict = defaultdict(list)
    for item in db.execute(select(WarehouseTransferItem)).scalars().all():
        items_by_transfer[item.transfer_id].append(item)

    findings = []
    for transfer in db.execute(select(WarehouseTransfer)).scalars().all():
        derived = derived_status_for(transfer, items_by_transfer.get(transfer.id, []))
        if derived.value == transfer.status:
            continue
        findings.append(
            IntegrityFinding(
                check_id="transfer_status_derivation",
                severity=SEVERITY_CRITICAL,
                message="Stored transfer status differs from the status derived from its items.",
                entity="warehouse_transfers",
                entity_id=str(transfer.id),
                details={
                    "transfer_number": transfer.transfer_number,
                    "stored_status": transfer.status,
                    "derived_status": derived.value,
                    "dispatch_date": _format_datetime(transfer.dispatch_date),
                    "cancelled_at": _format_datetime(transfer.cancelled_at),
                },
            )
        )
    if findings:
        metrics.increment_invariant_violation("transfer_status_derivation", len(findings))
    return findings


def _required_log_actions(transfer: WarehouseTransfer) -> list[str]:
    required = [TransferLogAction.TRANSFER_INITIATED.value]
    if transfer.dispatch_date is not None:
        required.append(TransferLogAction.TRANSFER_DISPATCHED.value)
    if transfer.cancelled_at is not None:
        required.append(TransferLogAction.TRANSFER_CANCELLED.value)
    if transfer.return_dispatch_date is not None:
        required.append(TransferLogAction.RETURN_DISPATCHED.value)
    if transfer.return_received_at is not None:
        required.append(TransferLogAction.RETURN_RECEIVED.value)
    return required


def check_log_coverage(db) -> list[IntegrityFinding]:
    actions_by_transfer: dict = defaultdict(set)
    logged_items: set = set()
    for row in db.execute(
        select(WarehouseTransferLog.transfer_id, WarehouseTransferLog.transfer_item_id, WarehouseTransferLog.action)
    ).all():
        actions_by_transfer[row.transfer_id].add(row.action)
        if row.transfer_item_id is not None:
            logged_items.add(row.transfer_item_id)

    findings = []
    for transfer in db.execute(select(WarehouseTransfer)).scalars().all():
        missing = [
            action for action in _required_log_actions(transfer) if action not in actions_by_transfer[transfer.id]
        ]
        if missing:
            findings.append(
                IntegrityFinding(
                    check_id="log_coverage",
                    severity=SEVERITY_CRITICAL,
                    message="Transfer state change has no matching audit record.",
                    entity="warehouse_transfers",
                    entity_id=str(transfer.id),
                    details={"transfer_number": transfer.transfer_number, "missing_actions": missing},
                )
            )

    actioned_items = db.execute(
        select(WarehouseTransferItem.id, WarehouseTransferItem.transfer_id).where(
            WarehouseTransferItem.item_status != ItemStatus.PENDING.value
        )
    ).all()
    for row in actioned_items:
        if row.id in logged_items:
            continue
        findings.append(
            IntegrityFinding(
                check_id="log_coverage",
                severity=SEVERITY_CRITICAL,
                message="Actioned transfer item has no audit record.",
                entity="warehouse_transfer_items",
                entity_id=str(row.id),
                details={"transfer_id": str(row.transfer_id)},
            )
        )
    if findings:
        metrics.increment_invariant_violation("log_coverage", len(findings))
    return findings


def _format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def run_integrity_checks(db) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    findings.extend(check_item_quantity_conservation(db))
    findings.extend(check_item_status_quantities(db))
    findings.extend(check_transfer_status_derivation(db))
    findings.extend(check_log_coverage(db))
    return findings
