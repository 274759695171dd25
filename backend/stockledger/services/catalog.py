# Overview: Product catalog collaborator: scoped lookups, row locks and the stock counter.

"""
Catalog access used by the ledger, unit registry and transaction engine.

The catalog itself (product creation/editing) lives outside this package;
these helpers are the lookup/update capability the engine consumes.
All lookups are company-scoped: a product from another company is reported
as missing, never as forbidden.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from ..errors import InsufficientStockError, InvalidStateError, NotFoundError
from ..models import Company, Product, ProductUnit
from ..time_utils import utcnow
from .concurrency import lock_for_update

ZERO = Decimal("0")


def to_quantity(value, *, field: str = "quantity", whole: bool = False) -> Decimal:
    """Coerce a caller-supplied quantity to a positive Decimal."""
    if isinstance(value, bool) or value is None:
        raise InvalidStateError(f"{field} is required", field=field)
    try:
        qty = Decimal(str(value))
    except ArithmeticError:
        raise InvalidStateError(f"{field} must be a number", field=field) from None
    if not qty.is_finite() or qty <= 0:
        raise InvalidStateError(f"{field} must be greater than zero", field=field)
    if whole and qty != qty.to_integral_value():
        raise InvalidStateError(f"{field} must be a whole number", field=field)
    return qty


def get_company(session, company_id: int) -> Company:
    company = session.get(Company, company_id)
    if company is None or company.is_archived:
        raise NotFoundError("Company", company_id)
    return company


def get_product(
    session,
    company_id: int,
    product_id: int,
    *,
    lock: bool = False,
    require_active: bool = False,
) -> Product:
    query = session.query(Product).filter_by(id=product_id, company_id=company_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product", product_id)
    if require_active and not product.is_active:
        raise NotFoundError("Product", product_id, message=f"Product {product_id} is not active")
    return product


def lock_products(session, company_id: int, product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Lock every product in ascending id order.

    A fixed lock order keeps two batches touching the same products from
    deadlocking each other.
    """
    locked: dict[int, Product] = {}
    for product_id in sorted(set(product_ids)):
        locked[product_id] = get_product(session, company_id, product_id, lock=True)
    return locked


def is_unit_tracked(session, product: Product) -> bool:
    """True once a product has ever had a unit row."""
    return session.query(
        session.query(ProductUnit.id).filter_by(product_id=product.id).exists()
    ).scalar()


def apply_stock_delta(product: Product, delta: Decimal) -> Decimal:
    """
    Move the stock counter and stamp last_movement_at.

    Callers validate sufficiency first; this is the last line that keeps
    current_stock from going negative.
    """
    current = Decimal(product.current_stock or ZERO)
    new_stock = current + delta
    if new_stock < 0:
        raise InsufficientStockError(product.id, requested=-delta, available=current)
    product.current_stock = new_stock
    product.last_movement_at = utcnow()
    return new_stock
