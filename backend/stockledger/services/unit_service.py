# Overview: Unit registry; issues sequential barcodes and tracks each unit through sale and return.

"""
Unit Registry

WHY: Some products are tracked per physical piece. Each piece gets a barcode
{base}-{sequence:03d}, where base is the product barcode or PROD-{id}.

DESIGN:
- Units are created in batches; creation is a stock IN recorded on the ledger
  in the same DB transaction as the unit rows.
- The next sequence continues from the suffix of the most recently created
  unit, so numbers are never reissued even if the unit count shrinks.
- mark_sold() only flips unit state. Stock and ledger are the caller's job,
  so a multi-unit sale decrements stock once, not once per unit.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..config import setting
from ..errors import ConflictError, InsufficientStockError, InvalidStateError, NotFoundError
from ..log import get_logger
from ..models import Product, ProductUnit
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..time_utils import day_bounds, utcnow
from . import catalog
from .concurrency import begin_write, lock_for_update, run_with_retry
from .movement_service import append_movement

_SEQUENCE_SUFFIX = re.compile(r"-(\d+)$")


@dataclass
class UnitSaleDetails:
    """Free-form sale annotations copied onto each sold unit."""
    seller_name: str | None = None
    attendant_name: str | None = None
    buyer_description: str | None = None
    payment_methods: str | None = None
    sale_description: str | None = None

    @classmethod
    def coerce(cls, value) -> "UnitSaleDetails":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls(**{k: value.get(k) for k in cls.__dataclass_fields__})


def format_barcode(base_code: str, sequence: int) -> str:
    return f"{base_code}-{sequence:03d}"


def next_sequence(session, product: Product) -> int:
    """Sequence number following the most recently created unit of the product."""
    last_unit = (
        session.query(ProductUnit)
        .filter_by(product_id=product.id, company_id=product.company_id)
        .order_by(ProductUnit.id.desc())
        .first()
    )
    if last_unit is None:
        return 1
    match = _SEQUENCE_SUFFIX.search(last_unit.barcode)
    if not match:
        return 1
    return int(match.group(1)) + 1


def create_units(
    session,
    *,
    company_id: int,
    user_id: int,
    product_id: int,
    quantity,
) -> list[ProductUnit]:
    """Create `quantity` contiguous units and record the matching stock IN."""
    qty = catalog.to_quantity(quantity, whole=True)
    count = int(qty)
    max_units = setting("STOCKLEDGER_MAX_UNITS_PER_BATCH")
    if count > max_units:
        raise InvalidStateError(f"at most {max_units} units can be created at once", field="quantity")

    def _op():
        begin_write(session)
        catalog.get_company(session, company_id)
        product = catalog.get_product(session, company_id, product_id, lock=True)

        if product.is_service:
            raise InvalidStateError(f"Product {product.id} is a service and cannot have units", field="product_id")
        if not catalog.is_unit_tracked(session, product) and Decimal(product.current_stock) != 0:
            raise InvalidStateError(
                f"Product {product.id} holds bulk stock without units; units cannot be mixed in",
                field="product_id",
            )

        start = next_sequence(session, product)
        base_code = product.unit_base_code
        barcodes = [format_barcode(base_code, start + i) for i in range(count)]

        taken = (
            session.query(ProductUnit.barcode)
            .filter(ProductUnit.company_id == company_id, ProductUnit.barcode.in_(barcodes))
            .first()
        )
        if taken is not None:
            raise ConflictError(f"Barcode {taken.barcode} already exists in this company", barcode=taken.barcode)

        now = utcnow()
        units = [
            ProductUnit(
                company_id=company_id,
                product_id=product.id,
                barcode=barcode,
                is_sold=False,
                is_returned=False,
                created_at=now,
            )
            for barcode in barcodes
        ]
        session.add_all(units)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConflictError("Barcode collision while creating units") from exc

        append_movement(
            session,
            product=product,
            movement_type=MOVEMENT_IN,
            quantity=qty,
            user_id=user_id,
            reason=f"Unit creation: {count} barcoded unit(s)",
        )
        session.commit()
        return units

    units = run_with_retry(session, _op)
    get_logger().info(
        "Created %d unit(s) for product %s: %s..%s",
        len(units), product_id, units[0].barcode, units[-1].barcode,
    )
    return units


def mark_sold(session, unit: ProductUnit, sale_id: int | None, details=None) -> ProductUnit:
    """
    Flip one unit to sold. No stock change, no ledger row, no commit.

    A unit back on the shelf after a RESTOCK return may be sold again.
    """
    if not unit.is_available:
        raise ConflictError(f"Unit {unit.barcode} has already been sold", unit_id=unit.id, barcode=unit.barcode)

    info = UnitSaleDetails.coerce(details)
    unit.is_sold = True
    unit.sold_at = utcnow()
    unit.sale_id = sale_id
    unit.is_returned = False
    unit.return_action = None
    for key, value in asdict(info).items():
        setattr(unit, key, value or None)
    session.flush()
    return unit


def available_units_query(session, product: Product):
    """Sellable units of a product, oldest first."""
    return (
        session.query(ProductUnit)
        .filter(
            ProductUnit.product_id == product.id,
            ProductUnit.company_id == product.company_id,
            ProductUnit.available_clause(),
        )
        .order_by(ProductUnit.id.asc())
    )


def count_available_units(session, product: Product) -> int:
    return available_units_query(session, product).order_by(None).count()


def reserve_units(session, product: Product, quantity: int) -> list[ProductUnit]:
    """
    Lock and return exactly `quantity` available units, oldest first.

    Caller must hold the product lock; raises InsufficientStockError when
    fewer units are available than requested.
    """
    units = lock_for_update(available_units_query(session, product)).limit(quantity).all()
    if len(units) < quantity:
        available = count_available_units(session, product)
        raise InsufficientStockError(
            product.id,
            requested=quantity,
            available=available,
            message=f"Not enough units available for product {product.id}. "
                    f"Available: {available}, requested: {quantity}",
        )
    return units


def mark_unit_sold(
    session,
    *,
    company_id: int,
    user_id: int,
    unit_id: int,
    details=None,
) -> ProductUnit:
    """
    Sell a single unit outside a Sale row (e.g. scanned at the counter).

    Marks the unit and takes it out of stock with one OUT movement.
    """
    def _op():
        begin_write(session)
        catalog.get_company(session, company_id)
        unit = session.query(ProductUnit).filter_by(id=unit_id, company_id=company_id).first()
        if unit is None:
            raise NotFoundError("Unit", unit_id)

        product = catalog.get_product(session, company_id, unit.product_id, lock=True)
        unit = lock_for_update(session.query(ProductUnit).filter_by(id=unit_id)).one()

        info = UnitSaleDetails.coerce(details)
        mark_sold(session, unit, None, info)

        reason = "Unit sale"
        if info.sale_description:
            reason = f"Unit sale: {info.sale_description}"
        append_movement(
            session,
            product=product,
            movement_type=MOVEMENT_OUT,
            quantity=Decimal("1"),
            user_id=user_id,
            reason=reason[:255],
        )
        session.commit()
        return unit

    try:
        unit = run_with_retry(session, _op)
    except ConflictError as exc:
        get_logger().warning("Unit sale rejected: %s", exc.message)
        raise

    get_logger().info("Unit %s marked as sold", unit.barcode)
    return unit


# =============================================================================
# QUERIES
# =============================================================================

def get_units_by_product(session, company_id: int, product_id: int) -> dict:
    """Product plus all of its units, newest first."""
    product = catalog.get_product(session, company_id, product_id)
    units = (
        session.query(ProductUnit)
        .filter_by(product_id=product.id, company_id=company_id)
        .order_by(ProductUnit.created_at.desc(), ProductUnit.id.desc())
        .all()
    )
    return {"product": product, "units": units}


def get_units_by_date(session, company_id: int, day) -> list[ProductUnit]:
    """Units created during one UTC calendar day, newest first."""
    start, end = day_bounds(day)
    return (
        session.query(ProductUnit)
        .filter(
            ProductUnit.company_id == company_id,
            ProductUnit.created_at >= start,
            ProductUnit.created_at < end,
        )
        .order_by(ProductUnit.created_at.desc(), ProductUnit.id.desc())
        .all()
    )


def list_unit_creation_dates(session, company_id: int) -> list[dict]:
    """Distinct creation days with unit counts, newest first."""
    day = func.date(ProductUnit.created_at)
    rows = (
        session.query(day.label("day"), func.count(ProductUnit.id).label("count"))
        .filter(ProductUnit.company_id == company_id)
        .group_by(day)
        .order_by(day.desc())
        .all()
    )
    result = []
    for row in rows:
        value = row.day
        if isinstance(value, str):
            value = date.fromisoformat(value)
        result.append({"date": value, "count": int(row.count)})
    return result
