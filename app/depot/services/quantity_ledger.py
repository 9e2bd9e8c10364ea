"""Quantity conservation rules for transfer items.

Every unit sent on a transfer line must be accounted for as received,
rejected or still outstanding, and rejected units can only be resolved
(disposed or returned) once. The checks here are pure: they look at a
candidate set of quantities and report the first inequality that fails.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace

from app.depot.core.error_catalog import QuantityConservationViolation


@dataclass(frozen=True)
class ItemQuantities:
    sent: int
    received: int = 0
    rejected: int = 0
    disposed: int = 0
    returned: int = 0

    @property
    def outstanding(self) -> int:
        return outstanding_quantity(self)

    @property
    def unresolved_rejected(self) -> int:
        return unresolved_rejected_quantity(self)

    def adding(self, **deltas: int) -> ItemQuantities:
        return replace(self, **{name: getattr(self, name) + delta for name, delta in deltas.items()})

    def as_dict(self) -> dict[str, int]:
        return {
            "quantity_sent": self.sent,
            "quantity_received": self.received,
            "quantity_rejected": self.rejected,
            "quantity_disposed": self.disposed,
            "quantity_returned": self.returned,
        }


@dataclass(frozen=True)
class LedgerCheck:
    ok: bool
    violated: str | None = None
    description: str | None = None
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class _Inequality:
    name: str
    description: str
    holds: Callable[[ItemQuantities], bool]


INEQUALITIES: tuple[_Inequality, ...] = (
    _Inequality(
        "quantities_non_negative",
        "all quantities >= 0 and quantity_sent > 0",
        lambda q: q.sent > 0 and min(q.received, q.rejected, q.disposed, q.returned) >= 0,
    ),
    _Inequality(
        "received_plus_rejected_within_sent",
        "quantity_received + quantity_rejected <= quantity_sent",
        lambda q: q.received + q.rejected <= q.sent,
    ),
    _Inequality(
        "disposed_within_rejected",
        "quantity_disposed <= quantity_rejected",
        lambda q: q.disposed <= q.rejected,
    ),
    _Inequality(
        "returned_within_undisposed_rejected",
        "quantity_returned <= quantity_rejected - quantity_disposed",
        lambda q: q.returned <= q.rejected - q.disposed,
    ),
)


def check_quantities(quantities: ItemQuantities) -> LedgerCheck:
    for inequality in INEQUALITIES:
        if not inequality.holds(quantities):
            return LedgerCheck(
                ok=False,
                violated=inequality.name,
                description=inequality.description,
                details=quantities.as_dict(),
            )
    return LedgerCheck(ok=True)


def assert_conserved(quantities: ItemQuantities, *, item_id: str | None = None) -> None:
    result = check_quantities(quantities)
    if result.ok:
        return
    raise QuantityConservationViolation(
        f"violates {result.description}",
        inequality=result.violated,
        item_id=item_id,
        quantities=result.details,
    )


def outstanding_quantity(quantities: ItemQuantities) -> int:
    return quantities.sent - quantities.received - quantities.rejected


def unresolved_rejected_quantity(quantities: ItemQuantities) -> int:
    return quantities.rejected - quantities.disposed - quantities.returned
