# Overview: Read-only audit of the stock invariants across products.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import case, func

from ..models import Product, ProductUnit, StockMovement
from ..models.inventory import MOVEMENT_IN

RULE_NEGATIVE_STOCK = "NEGATIVE_STOCK"
RULE_LEDGER_MISMATCH = "LEDGER_MISMATCH"
RULE_UNIT_COUNT_MISMATCH = "UNIT_COUNT_MISMATCH"
RULE_SERVICE_HAS_UNITS = "SERVICE_HAS_UNITS"

QUANTUM = Decimal("0.001")


def _qty(value) -> Decimal:
    # SQLite hands back aggregate sums as floats
    return Decimal(str(value or 0)).quantize(QUANTUM)


@dataclass(frozen=True)
class InvariantViolation:
    product_id: int
    rule: str
    expected: Decimal
    actual: Decimal

    def __str__(self) -> str:
        return f"product {self.product_id}: {self.rule} (expected {self.expected}, actual {self.actual})"


def check_invariants(session, company_id: int | None = None) -> list[InvariantViolation]:
    """
    Compare every product's stock counter against the ledger and its units.

    - current_stock >= 0
    - initial_stock + SUM(+IN, -OUT) == current_stock
    - unit-tracked products: available units == current_stock
    - services own no units
    """
    signed = case(
        (StockMovement.type == MOVEMENT_IN, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    ledger_q = session.query(StockMovement.product_id, func.coalesce(func.sum(signed), 0)).group_by(
        StockMovement.product_id
    )
    units_q = session.query(
        ProductUnit.product_id,
        func.count(ProductUnit.id),
        func.sum(case((ProductUnit.available_clause(), 1), else_=0)),
    ).group_by(ProductUnit.product_id)
    products_q = session.query(Product)

    if company_id is not None:
        ledger_q = ledger_q.filter(StockMovement.company_id == company_id)
        units_q = units_q.filter(ProductUnit.company_id == company_id)
        products_q = products_q.filter(Product.company_id == company_id)

    ledger = {pid: _qty(total) for pid, total in ledger_q.all()}
    units = {pid: (int(total), int(available or 0)) for pid, total, available in units_q.all()}

    violations: list[InvariantViolation] = []
    for product in products_q.order_by(Product.id).all():
        stock = _qty(product.current_stock)

        if stock < 0:
            violations.append(InvariantViolation(product.id, RULE_NEGATIVE_STOCK, Decimal("0"), stock))

        expected = _qty(product.initial_stock) + ledger.get(product.id, _qty(0))
        if expected != stock:
            violations.append(InvariantViolation(product.id, RULE_LEDGER_MISMATCH, expected, stock))

        if product.id in units:
            total, available = units[product.id]
            if product.is_service:
                violations.append(InvariantViolation(product.id, RULE_SERVICE_HAS_UNITS, Decimal("0"), Decimal(total)))
            elif Decimal(available) != stock:
                violations.append(
                    InvariantViolation(product.id, RULE_UNIT_COUNT_MISMATCH, stock, Decimal(available))
                )

    return violations
