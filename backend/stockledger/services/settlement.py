# Overview: Exchange settlement calculator; pure price-delta arithmetic, no I/O.

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

SETTLEMENT_CUSTOMER_OWES = "CUSTOMER_OWES"
SETTLEMENT_CUSTOMER_REFUND = "CUSTOMER_REFUND"
SETTLEMENT_EVEN = "EVEN"


def money(value) -> Decimal:
    """Nearest-cent rounding (half-up). None counts as zero."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ExchangeSettlement:
    return_total: Decimal
    exchange_total: Decimal
    delta: Decimal
    additional_payment: Decimal | None = None
    shortfall: Decimal | None = None
    change: Decimal | None = None

    @property
    def kind(self) -> str:
        if self.delta > 0:
            return SETTLEMENT_CUSTOMER_OWES
        if self.delta < 0:
            return SETTLEMENT_CUSTOMER_REFUND
        return SETTLEMENT_EVEN

    @property
    def amount_due(self) -> Decimal:
        """What the customer must pay on top of the returned goods."""
        return self.delta if self.delta > 0 else ZERO

    @property
    def refund_due(self) -> Decimal:
        """What the store hands back to the customer."""
        return -self.delta if self.delta < 0 else ZERO

    @property
    def is_short(self) -> bool:
        return bool(self.shortfall and self.shortfall > 0)

    def to_dict(self) -> dict:
        def _s(value):
            return None if value is None else str(value)

        return {
            "kind": self.kind,
            "return_total": _s(self.return_total),
            "exchange_total": _s(self.exchange_total),
            "delta": _s(self.delta),
            "amount_due": _s(self.amount_due),
            "refund_due": _s(self.refund_due),
            "additional_payment": _s(self.additional_payment),
            "shortfall": _s(self.shortfall),
            "change": _s(self.change),
        }


def calculate_exchange_settlement(
    *,
    return_unit_price,
    return_quantity,
    exchange_unit_price,
    exchange_quantity,
    additional_payment=None,
) -> ExchangeSettlement:
    """
    Price delta of swapping returned goods for a replacement.

    delta = exchange_total - return_total
    - delta > 0: customer owes delta. With additional_payment, both shortfall
      and change are reported (one of them is zero).
    - delta < 0: store owes |delta|; shortfall/change stay None.
    - delta == 0: nothing to settle.
    """
    return_total = money(money(return_unit_price) * Decimal(str(return_quantity)))
    exchange_total = money(money(exchange_unit_price) * Decimal(str(exchange_quantity)))
    delta = exchange_total - return_total

    if delta <= 0 or additional_payment is None:
        return ExchangeSettlement(
            return_total=return_total,
            exchange_total=exchange_total,
            delta=delta,
            additional_payment=money(additional_payment) if additional_payment is not None else None,
        )

    paid = money(additional_payment)
    return ExchangeSettlement(
        return_total=return_total,
        exchange_total=exchange_total,
        delta=delta,
        additional_payment=paid,
        shortfall=max(ZERO, delta - paid),
        change=max(ZERO, paid - delta),
    )
