# Overview: Transaction engine, return side; RETURN, REFUND and EXCHANGE against an original sale.

"""
Return Processing Service

WHY: Goods come back. Each return-family operation resolves the original
SALE/SERVICE row first, then runs as a single unit of work.

RULES:
- RETURN: quantity + return_action. Marks that many outstanding units as
  returned; RESTOCK puts the quantity back in stock, MAINTENANCE does not.
- REFUND: money only. Quantity is always 1, no stock or unit effect.
- EXCHANGE: always restocks the returned goods, then sells exchange_quantity
  of the replacement product and settles the price delta:
    * customer owes  -> zero-quantity SALE row carrying the payment
    * customer is owed -> REFUND row carrying the change
    * no difference  -> no settlement row
- The returnable quantity of a sale is what it sold minus what earlier
  RETURN/EXCHANGE rows already took back; for sales made with units it is
  also capped by the units still in the customer's hands.
- A bulk sale of a product that later switched to units has no units to
  take back. It can be returned for MAINTENANCE or refunded, but not
  restocked or exchanged, since restocking would add stock no unit backs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError
from ..log import get_logger
from ..models import ProductUnit, Sale
from ..models.inventory import MOVEMENT_IN, RETURN_ACTION_RESTOCK, RETURN_ACTIONS
from ..models.sales import (
    RETURN_FAMILY_TYPES,
    SALE_TYPE_EXCHANGE,
    SALE_TYPE_REFUND,
    SALE_TYPE_RETURN,
    SALE_TYPE_SALE,
    SALE_TYPE_SERVICE,
)
from ..time_utils import utcnow
from . import catalog
from .concurrency import begin_write, run_with_retry
from .movement_service import append_movement
from .sales_service import OriginalSale, get_original_sale, take_from_stock, whole_units
from .settlement import ExchangeSettlement, calculate_exchange_settlement, money


@dataclass
class ReturnResult:
    return_sale: Sale
    returned_units: list[ProductUnit] = field(default_factory=list)
    replacement_sale: Sale | None = None
    settlement_sale: Sale | None = None
    settlement: ExchangeSettlement | None = None

    def to_dict(self) -> dict:
        return {
            "return": self.return_sale.to_dict(),
            "returned_unit_ids": [u.id for u in self.returned_units],
            "replacement_sale": self.replacement_sale.to_dict() if self.replacement_sale else None,
            "settlement_sale": self.settlement_sale.to_dict() if self.settlement_sale else None,
            "settlement": self.settlement.to_dict() if self.settlement else None,
        }


def returned_quantity(session, original_sale_id: int) -> Decimal:
    """Quantity already taken back from a sale by RETURN/EXCHANGE rows."""
    total = session.query(func.coalesce(func.sum(Sale.quantity), 0)).filter(
        Sale.original_sale_id == original_sale_id,
        Sale.type.in_([SALE_TYPE_RETURN, SALE_TYPE_EXCHANGE]),
    ).scalar()
    return Decimal(str(total or 0))


def _sold_with_units(session, sale: Sale) -> bool:
    return session.query(
        session.query(ProductUnit.id).filter_by(sale_id=sale.id).exists()
    ).scalar()


def _units_to_return(session, original: OriginalSale, product, quantity: Decimal,
                     action: str) -> list[ProductUnit]:
    """Validate the requested quantity and pick the outstanding units to take back."""
    if original.sale.type == SALE_TYPE_SERVICE:
        raise InvalidStateError(
            f"Sale {original.sale_id} is a service; use REFUND instead",
            field="type",
        )

    remaining = Decimal(original.sale.quantity) - returned_quantity(session, original.sale_id)
    tracked = _sold_with_units(session, original.sale)
    if tracked:
        remaining = min(remaining, Decimal(len(original.outstanding_units)))

    if quantity > remaining:
        raise InvalidStateError(
            f"Return quantity exceeds what sale {original.sale_id} still has out. "
            f"Returnable: {remaining.normalize():f}, requested: {quantity.normalize():f}",
            field="quantity",
        )

    if tracked:
        return original.outstanding_units[:whole_units(quantity)]
    if action == RETURN_ACTION_RESTOCK and catalog.is_unit_tracked(session, product):
        # Bulk goods cannot go back on a shelf that is now counted in units
        raise InvalidStateError(
            f"Sale {original.sale_id} predates unit tracking of product {product.id}; "
            f"its goods can only be returned for MAINTENANCE or refunded",
            field="return_action",
        )
    return []


def _take_back(session, *, original: OriginalSale, product, quantity: Decimal, action: str, user_id: int,
               units: list[ProductUnit]) -> None:
    now = utcnow()
    for unit in units:
        unit.is_returned = True
        unit.return_action = action
        unit.returned_at = now

    if action == RETURN_ACTION_RESTOCK:
        append_movement(
            session,
            product=product,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            user_id=user_id,
            reason=f"Return from sale #{original.sale_id} (restock)",
        )
    session.flush()


def _customer_copy(original: Sale, *, with_payment: bool = False) -> dict:
    data = {
        "customer_name": original.customer_name,
        "customer_document": original.customer_document,
        "customer_email": original.customer_email,
    }
    if with_payment:
        data["payment_method"] = original.payment_method
    return data


def _join(*parts: str | None) -> str | None:
    text = " ".join(p.strip() for p in parts if p and p.strip())
    return text or None


def _settlement_note(settlement: ExchangeSettlement) -> str:
    if settlement.delta > 0:
        note = f"Customer owes {settlement.amount_due}."
        if settlement.additional_payment is not None:
            note += f" Paid {settlement.additional_payment}."
            if settlement.is_short:
                note += f" SHORTFALL {settlement.shortfall}."
            elif settlement.change:
                note += f" Change {settlement.change}."
        return note
    if settlement.delta < 0:
        return f"Change to return to customer: {settlement.refund_due}."
    return "Exchange with no price difference."


def create_return(
    session,
    *,
    company_id: int,
    user_id: int,
    sale_id: int,
    type: str,
    quantity=None,
    return_action: str | None = None,
    refund_amount=None,
    exchange_product_id: int | None = None,
    exchange_quantity=None,
    additional_payment=None,
    observations: str | None = None,
) -> ReturnResult:
    """Process a RETURN, REFUND or EXCHANGE against an originating sale."""
    return_type = (type or "").upper()
    if return_type not in RETURN_FAMILY_TYPES:
        raise InvalidStateError(f"type must be one of {', '.join(RETURN_FAMILY_TYPES)}", field="type")

    action = None
    refund = None
    exchange_qty = None
    payment = None
    if return_type == SALE_TYPE_RETURN:
        qty = catalog.to_quantity(quantity)
        action = (return_action or "").upper()
        if action not in RETURN_ACTIONS:
            raise InvalidStateError("return_action must be RESTOCK or MAINTENANCE", field="return_action")
    elif return_type == SALE_TYPE_REFUND:
        refund = money(catalog.to_quantity(refund_amount, field="refund_amount"))
        qty = Decimal("1")
    else:
        qty = catalog.to_quantity(quantity)
        if not isinstance(exchange_product_id, int) or isinstance(exchange_product_id, bool) \
                or exchange_product_id <= 0:
            raise InvalidStateError("exchange_product_id is required", field="exchange_product_id")
        exchange_qty = catalog.to_quantity(exchange_quantity, field="exchange_quantity")
        if additional_payment is not None:
            payment = catalog.to_quantity(additional_payment, field="additional_payment")
        # Exchanged goods always go back on the shelf
        action = RETURN_ACTION_RESTOCK

    note = (observations or "").strip() or None

    def _op():
        begin_write(session)
        catalog.get_company(session, company_id)
        origin = get_original_sale(session, company_id, sale_id).sale

        product_ids = [origin.product_id]
        if return_type == SALE_TYPE_EXCHANGE:
            product_ids.append(exchange_product_id)
        products = catalog.lock_products(session, company_id, product_ids)
        product = products[origin.product_id]

        # Products first, then units: same lock order as the sale path
        original = get_original_sale(session, company_id, sale_id, lock=True)

        result = ReturnResult(return_sale=None)

        if return_type == SALE_TYPE_REFUND:
            result.return_sale = Sale(
                company_id=company_id,
                product_id=origin.product_id,
                user_id=user_id,
                type=SALE_TYPE_REFUND,
                quantity=qty,
                amount=refund,
                original_sale_id=origin.id,
                observations=_join(f"Refund amount: {refund}.", note),
                created_at=utcnow(),
                **_customer_copy(origin),
            )
            session.add(result.return_sale)
            session.flush()
            session.commit()
            return result

        units = _units_to_return(session, original, product, qty, action)
        _take_back(session, original=original, product=product, quantity=qty, action=action,
                   user_id=user_id, units=units)
        result.returned_units = units

        if return_type == SALE_TYPE_RETURN:
            result.return_sale = Sale(
                company_id=company_id,
                product_id=origin.product_id,
                user_id=user_id,
                type=SALE_TYPE_RETURN,
                quantity=qty,
                return_action=action,
                original_sale_id=origin.id,
                observations=note,
                created_at=utcnow(),
                **_customer_copy(origin),
            )
            session.add(result.return_sale)
            session.flush()
            session.commit()
            return result

        replacement = products[exchange_product_id]
        if not replacement.is_active:
            raise NotFoundError("Product", exchange_product_id,
                                message=f"Exchange product {exchange_product_id} is not active")
        if replacement.is_service:
            raise InvalidStateError(
                f"Exchange product {exchange_product_id} is a service; only goods can be exchanged",
                field="exchange_product_id",
            )

        settlement = calculate_exchange_settlement(
            return_unit_price=product.unit_price,
            return_quantity=qty,
            exchange_unit_price=replacement.unit_price,
            exchange_quantity=exchange_qty,
            additional_payment=payment,
        )
        result.settlement = settlement

        result.return_sale = Sale(
            company_id=company_id,
            product_id=origin.product_id,
            user_id=user_id,
            type=SALE_TYPE_EXCHANGE,
            quantity=qty,
            return_action=action,
            original_sale_id=origin.id,
            exchange_product_id=replacement.id,
            exchange_quantity=exchange_qty,
            observations=_join(
                f"Exchanged for {replacement.name} (qty {exchange_qty.normalize():f}).",
                _settlement_note(settlement),
                note,
            ),
            created_at=utcnow(),
            **_customer_copy(origin),
        )
        session.add(result.return_sale)
        session.flush()

        result.replacement_sale = Sale(
            company_id=company_id,
            product_id=replacement.id,
            user_id=user_id,
            type=SALE_TYPE_SALE,
            quantity=exchange_qty,
            original_sale_id=origin.id,
            observations=_join(
                f"Exchange replacement for sale #{origin.id}: "
                f"{product.name} (qty {qty.normalize():f}).",
                note,
            ),
            created_at=utcnow(),
            **_customer_copy(origin, with_payment=True),
        )
        session.add(result.replacement_sale)
        session.flush()
        take_from_stock(
            session, replacement, exchange_qty, result.replacement_sale, user_id,
            reason=f"Exchange replacement for sale #{origin.id}",
        )

        if settlement.delta > 0:
            paid = settlement.additional_payment
            result.settlement_sale = Sale(
                company_id=company_id,
                product_id=replacement.id,
                user_id=user_id,
                type=SALE_TYPE_SALE,
                quantity=Decimal("0"),
                amount=paid if paid is not None else settlement.amount_due,
                original_sale_id=origin.id,
                observations=_settlement_note(settlement),
                created_at=utcnow(),
                **_customer_copy(origin, with_payment=True),
            )
        elif settlement.delta < 0:
            result.settlement_sale = Sale(
                company_id=company_id,
                product_id=replacement.id,
                user_id=user_id,
                type=SALE_TYPE_REFUND,
                quantity=Decimal("1"),
                amount=settlement.refund_due,
                original_sale_id=origin.id,
                observations=_settlement_note(settlement),
                created_at=utcnow(),
                **_customer_copy(origin, with_payment=True),
            )
        if result.settlement_sale is not None:
            session.add(result.settlement_sale)
            session.flush()

        session.commit()
        return result

    result = run_with_retry(session, _op)

    log = get_logger()
    log.info(
        "Recorded %s #%s against sale #%s (company %s)",
        return_type, result.return_sale.id, sale_id, company_id,
    )
    if result.settlement is not None and result.settlement.is_short:
        log.warning(
            "Exchange #%s settled short by %s",
            result.return_sale.id, result.settlement.shortfall,
        )
    return result
