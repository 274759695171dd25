# Overview: Transaction engine, sale side; SALE/SERVICE rows, unit reservation and sales queries.

"""
Sales Service

A sale attempt runs synchronously as one unit of work:

    validate company/product -> type matches product (is_service)
    -> [SALE] stock sufficiency -> [SALE] reserve N available units
    -> write Sale row, mark units sold, stock OUT on the ledger -> commit

SERVICE sales only write the Sale row. For unit-tracked products the units
are the ground truth: a sale fails when fewer units are available than
requested, whatever current_stock says.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func

from ..config import setting
from ..errors import InsufficientStockError, InvalidStateError, NotFoundError
from ..log import get_logger
from ..models import ProductUnit, Sale
from ..models.inventory import MOVEMENT_OUT
from ..models.sales import (
    ORIGINATING_TYPES,
    PAYMENT_METHODS,
    SALE_TYPE_SALE,
    SALE_TYPE_SERVICE,
    SALE_TYPES,
)
from ..time_utils import normalize_datetime, utcnow
from . import catalog
from .concurrency import begin_write, lock_for_update, run_with_retry
from .movement_service import append_movement
from .pagination import Page, paginate
from .unit_service import UnitSaleDetails, mark_sold, reserve_units


@dataclass
class OriginalSale:
    """A SALE/SERVICE row resolved for a return, with its units still out."""
    sale: Sale
    outstanding_units: list[ProductUnit] = field(default_factory=list)

    @property
    def sale_id(self) -> int:
        return self.sale.id

    @property
    def product_id(self) -> int:
        return self.sale.product_id


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_email(value: str | None) -> str | None:
    value = _clean(value)
    return value.lower() if value else None


def normalize_payment_method(value: str | None) -> str:
    method = (value or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise InvalidStateError(
            f"payment_method must be one of {', '.join(PAYMENT_METHODS)}",
            field="payment_method",
        )
    return method


def whole_units(quantity: Decimal, field_name: str = "quantity") -> int:
    if quantity != quantity.to_integral_value():
        raise InvalidStateError(f"{field_name} must be a whole number for unit-tracked products", field=field_name)
    return int(quantity)


def take_from_stock(session, product, quantity: Decimal, sale: Sale, user_id: int, reason: str) -> list[ProductUnit]:
    """
    Remove goods sold on `sale` from stock: reserve units when the product is
    unit-tracked, check the counter otherwise, then write the OUT movement.

    Caller holds the product lock and commits.
    """
    units: list[ProductUnit] = []
    if catalog.is_unit_tracked(session, product):
        units = reserve_units(session, product, whole_units(quantity))
        details = UnitSaleDetails(
            buyer_description=sale.customer_name,
            payment_methods=sale.payment_method,
            sale_description=sale.observations,
        )
        for unit in units:
            mark_sold(session, unit, sale.id, details)
    else:
        available = Decimal(product.current_stock)
        if quantity > available:
            raise InsufficientStockError(product.id, requested=quantity, available=available)

    append_movement(
        session,
        product=product,
        movement_type=MOVEMENT_OUT,
        quantity=quantity,
        user_id=user_id,
        reason=reason,
    )
    return units


def create_sale(
    session,
    *,
    company_id: int,
    user_id: int,
    product_id: int,
    type: str,
    quantity,
    customer_name: str,
    payment_method: str,
    customer_document: str | None = None,
    customer_email: str | None = None,
    observations: str | None = None,
) -> Sale:
    """Record a SALE (goods) or SERVICE (service rendered) for one product."""
    sale_type = (type or "").upper()
    if sale_type not in ORIGINATING_TYPES:
        raise InvalidStateError("type must be SALE or SERVICE", field="type")
    qty = catalog.to_quantity(quantity)
    method = normalize_payment_method(payment_method)
    name = _clean(customer_name)
    if not name:
        raise InvalidStateError("customer_name is required", field="customer_name")

    def _op():
        begin_write(session)
        catalog.get_company(session, company_id)
        product = catalog.get_product(session, company_id, product_id, lock=True)

        if sale_type == SALE_TYPE_SALE and product.is_service:
            raise InvalidStateError(
                f"Product {product.id} is a service; record it with type SERVICE",
                field="type",
            )
        if sale_type == SALE_TYPE_SERVICE and not product.is_service:
            raise InvalidStateError(
                f"Product {product.id} is not a service; record it with type SALE",
                field="type",
            )

        sale = Sale(
            company_id=company_id,
            product_id=product.id,
            user_id=user_id,
            type=sale_type,
            quantity=qty,
            customer_name=name,
            customer_document=_clean(customer_document),
            customer_email=normalize_email(customer_email),
            payment_method=method,
            observations=_clean(observations),
            created_at=utcnow(),
        )
        session.add(sale)
        session.flush()

        if sale_type == SALE_TYPE_SALE:
            take_from_stock(session, product, qty, sale, user_id, reason=f"Sale #{sale.id}")

        session.commit()
        return sale

    try:
        sale = run_with_retry(session, _op)
    except InsufficientStockError as exc:
        get_logger().warning("Sale rejected: %s", exc.message)
        raise

    get_logger().info(
        "Recorded %s #%s: product %s x %s (company %s)",
        sale.type, sale.id, sale.product_id, sale.quantity, company_id,
    )
    return sale


# =============================================================================
# ORIGINAL SALE RESOLUTION
# =============================================================================

def get_original_sale(session, company_id: int, sale_id: int, *, lock: bool = False) -> OriginalSale:
    """
    Resolve the SALE/SERVICE row a return refers to.

    There is no foreign key behind the reference; anything that is not an
    originating sale of this company is reported as missing.
    """
    sale = (
        session.query(Sale)
        .filter(
            Sale.id == sale_id,
            Sale.company_id == company_id,
            Sale.type.in_(ORIGINATING_TYPES),
        )
        .first()
    )
    if sale is None:
        raise NotFoundError("Sale", sale_id)

    units_query = (
        session.query(ProductUnit)
        .filter(
            ProductUnit.sale_id == sale.id,
            ProductUnit.is_sold.is_(True),
            ProductUnit.is_returned.is_(False),
        )
        .order_by(ProductUnit.id.asc())
    )
    if lock:
        units_query = lock_for_update(units_query)
    return OriginalSale(sale=sale, outstanding_units=units_query.all())


# =============================================================================
# QUERIES
# =============================================================================

def list_sales(
    session,
    company_id: int,
    *,
    type: str | None = None,
    product_id: int | None = None,
    start=None,
    end=None,
    page: int | None = None,
    limit: int | None = None,
) -> Page:
    """Sales and return-family rows, newest first."""
    query = session.query(Sale).filter(Sale.company_id == company_id)

    if type:
        sale_type = type.upper()
        if sale_type not in SALE_TYPES:
            raise InvalidStateError(f"type must be one of {', '.join(SALE_TYPES)}", field="type")
        query = query.filter(Sale.type == sale_type)
    if product_id is not None:
        query = query.filter(Sale.product_id == product_id)

    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Sale.created_at <= end_dt)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, limit)


def find_sales_by_customer(
    session,
    company_id: int,
    *,
    customer_name: str | None = None,
    customer_email: str | None = None,
    customer_document: str | None = None,
    start=None,
    end=None,
) -> list[Sale]:
    """
    Originating sales (SALE/SERVICE) matching the customer criteria.

    Name and email match as case-insensitive substrings, the document number
    exactly. Used at the counter to find the sale a customer brings back.
    """
    query = session.query(Sale).filter(
        Sale.company_id == company_id,
        Sale.type.in_(ORIGINATING_TYPES),
    )

    name = _clean(customer_name)
    if name:
        query = query.filter(func.lower(Sale.customer_name).contains(name.lower()))
    email = normalize_email(customer_email)
    if email:
        query = query.filter(func.lower(Sale.customer_email).contains(email))
    document = _clean(customer_document)
    if document:
        query = query.filter(Sale.customer_document == document)

    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Sale.created_at <= end_dt)

    return (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(setting("STOCKLEDGER_CUSTOMER_SEARCH_LIMIT"))
        .all()
    )
