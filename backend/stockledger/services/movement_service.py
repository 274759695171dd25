# Overview: Stock ledger; records IN/OUT movements and keeps current_stock in step.

"""
Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only: the engine never updates or deletes one.
- Every change to Product.current_stock is written together with exactly one
  movement in the same DB transaction (append_movement is the only writer).
- initial_stock + SUM(+IN, -OUT) == current_stock for every product.
- current_stock never goes negative.
- Plain movements are for bulk-stock products. Unit-tracked products change
  stock only through unit creation, sales and returns, otherwise the
  available-unit count and the counter drift apart.

Batches are read-all-then-write-all: every movement is checked against the
running stock of its product (earlier items in the same batch included)
before the first row is written.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import InsufficientStockError, InvalidStateError
from ..log import get_logger
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from ..time_utils import normalize_datetime, utcnow
from . import catalog
from .concurrency import begin_write, run_with_retry
from .pagination import Page, paginate


def _validate_type(movement_type: str) -> str:
    normalized = (movement_type or "").upper()
    if normalized not in MOVEMENT_TYPES:
        raise InvalidStateError(f"movement type must be one of {', '.join(MOVEMENT_TYPES)}", field="type")
    return normalized


def _ensure_bulk_product(session, product: Product) -> None:
    if product.is_service:
        raise InvalidStateError(f"Product {product.id} is a service and holds no stock", field="product_id")
    if catalog.is_unit_tracked(session, product):
        raise InvalidStateError(
            f"Product {product.id} is tracked by units; stock changes go through units, sales and returns",
            field="product_id",
        )


def append_movement(
    session,
    *,
    product: Product,
    movement_type: str,
    quantity: Decimal,
    user_id: int,
    reason: str | None = None,
) -> StockMovement:
    """
    Core ledger write without locking, validation of the caller's intent, or commit.

    Called by record_movement, batches, unit creation and the transaction
    engine, all of which hold the product lock already.
    """
    if quantity <= 0:
        raise InvalidStateError("movement quantity must be greater than zero", field="quantity")

    delta = quantity if movement_type == MOVEMENT_IN else -quantity
    catalog.apply_stock_delta(product, delta)

    movement = StockMovement(
        company_id=product.company_id,
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        reason=reason or None,
        user_id=user_id,
        created_at=utcnow(),
    )
    session.add(movement)
    session.flush()
    return movement


def record_movement(
    session,
    *,
    company_id: int,
    user_id: int,
    product_id: int,
    type: str,
    quantity,
    reason: str | None = None,
) -> StockMovement:
    """Record one IN/OUT movement and update the product's stock atomically."""
    movement_type = _validate_type(type)
    qty = catalog.to_quantity(quantity)

    def _op():
        begin_write(session)
        catalog.get_company(session, company_id)
        product = catalog.get_product(session, company_id, product_id, lock=True)
        _ensure_bulk_product(session, product)

        if movement_type == MOVEMENT_OUT:
            available = Decimal(product.current_stock)
            if qty > available:
                raise InsufficientStockError(product.id, requested=qty, available=available)

        movement = append_movement(
            session,
            product=product,
            movement_type=movement_type,
            quantity=qty,
            user_id=user_id,
            reason=reason,
        )
        session.commit()
        return movement

    try:
        movement = run_with_retry(session, _op)
    except InsufficientStockError as exc:
        get_logger().warning("Movement rejected: %s", exc.message)
        raise

    get_logger().info(
        "Recorded %s movement of %s for product %s (company %s)",
        movement.type, movement.quantity, movement.product_id, company_id,
    )
    return movement


def create_batch_movements(
    session,
    *,
    company_id: int,
    user_id: int,
    movements: list[dict],
) -> list[StockMovement]:
    """
    Apply a batch of movements all-or-nothing.

    Each item is a mapping with product_id, type, quantity and optional reason.
    """
    if not movements:
        raise InvalidStateError("batch must contain at least one movement", field="movements")

    planned = []
    for index, item in enumerate(movements):
        product_id = item.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise InvalidStateError("product_id is required", field=f"movements[{index}].product_id")
        planned.append({
            "product_id": product_id,
            "type": _validate_type(item.get("type")),
            "quantity": catalog.to_quantity(item.get("quantity"), field=f"movements[{index}].quantity"),
            "reason": item.get("reason"),
        })

    def _op():
        begin_write(session)
        catalog.get_company(session, company_id)
        products = catalog.lock_products(session, company_id, [p["product_id"] for p in planned])

        # Read phase: simulate the whole batch before writing anything
        running = {pid: Decimal(product.current_stock) for pid, product in products.items()}
        for product in products.values():
            _ensure_bulk_product(session, product)
        for item in planned:
            pid = item["product_id"]
            if item["type"] == MOVEMENT_OUT:
                if item["quantity"] > running[pid]:
                    raise InsufficientStockError(pid, requested=item["quantity"], available=running[pid])
                running[pid] -= item["quantity"]
            else:
                running[pid] += item["quantity"]

        # Write phase
        created = [
            append_movement(
                session,
                product=products[item["product_id"]],
                movement_type=item["type"],
                quantity=item["quantity"],
                user_id=user_id,
                reason=item["reason"],
            )
            for item in planned
        ]
        session.commit()
        return created

    try:
        created = run_with_retry(session, _op)
    except InsufficientStockError as exc:
        get_logger().warning("Batch of %d movements rejected: %s", len(planned), exc.message)
        raise

    get_logger().info("Applied batch of %d movements (company %s)", len(created), company_id)
    return created


def list_movements(
    session,
    company_id: int,
    *,
    product_id: int | None = None,
    type: str | None = None,
    start=None,
    end=None,
    page: int | None = None,
    limit: int | None = None,
) -> Page:
    """Movements newest-first; start/end are inclusive on created_at."""
    query = session.query(StockMovement).filter(StockMovement.company_id == company_id)

    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if type:
        query = query.filter(StockMovement.type == _validate_type(type))

    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt is not None:
        query = query.filter(StockMovement.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(StockMovement.created_at <= end_dt)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page, limit)
