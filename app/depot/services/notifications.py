from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from app.depot.db.models import WarehouseTransferLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferLifecycleEvent:
    transfer_id: str
    transfer_item_id: str | None
    action: str
    previous_status: str | None
    new_status: str | None
    actor_id: str
    occurred_at: datetime

    @classmethod
    def from_log(cls, log: WarehouseTransferLog) -> TransferLifecycleEvent:
        return cls(
            transfer_id=str(log.transfer_id),
            transfer_item_id=str(log.transfer_item_id) if log.transfer_item_id else None,
            action=log.action,
            previous_status=log.previous_status,
            new_status=log.new_status,
            actor_id=log.action_by,
            occurred_at=log.action_at,
        )


Subscriber = Callable[[TransferLifecycleEvent], None]


class TransferEventBus:
    """Publishes committed transfer events to in-process subscribers.

    A failing subscriber is logged and the remaining subscribers still run.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: TransferLifecycleEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Transfer event subscriber failed",
                    extra={
                        "action": event.action,
                        "transfer_id": event.transfer_id,
                        "transfer_item_id": event.transfer_item_id,
                    },
                )


event_bus = TransferEventBus()
