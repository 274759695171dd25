"""
Return-side transaction tests.

RETURN (restock/maintenance), REFUND and EXCHANGE with its settlement rows.
"""

from decimal import Decimal

import pytest

from stockledger.errors import InsufficientStockError, InvalidStateError, NotFoundError
from stockledger.models import ProductUnit, Sale, StockMovement
from stockledger.services import invariant_service, return_service, sales_service, unit_service


def _sell(session, company, product, quantity, sale_type="SALE"):
    return sales_service.create_sale(
        session,
        company_id=company.id,
        user_id=1,
        product_id=product.id,
        type=sale_type,
        quantity=quantity,
        customer_name="Carlos Pereira",
        customer_email="carlos@example.com",
        payment_method="CASH",
    )


@pytest.fixture
def sold_units(db_session, company_a, unit_product):
    """Five units created, two of them sold on one sale."""
    unit_service.create_units(
        db_session, company_id=company_a.id, user_id=1, product_id=unit_product.id, quantity=5,
    )
    return _sell(db_session, company_a, unit_product, 2)


class TestReturn:

    def test_restock_puts_units_back_on_the_shelf(self, db_session, company_a, unit_product, sold_units):
        result = return_service.create_return(
            db_session,
            company_id=company_a.id,
            user_id=1,
            sale_id=sold_units.id,
            type="RETURN",
            quantity=1,
            return_action="restock",
        )

        assert result.return_sale.type == "RETURN"
        assert result.return_sale.return_action == "RESTOCK"
        assert result.return_sale.original_sale_id == sold_units.id
        assert result.return_sale.customer_name == "Carlos Pereira"
        assert result.return_sale.payment_method is None
        assert len(result.returned_units) == 1
        unit = result.returned_units[0]
        assert unit.is_returned is True
        assert unit.return_action == "RESTOCK"
        assert unit.returned_at is not None
        assert unit_product.current_stock == Decimal("4")
        assert unit_service.count_available_units(db_session, unit_product) == 4
        assert invariant_service.check_invariants(db_session, company_a.id) == []

    def test_restocked_unit_can_be_sold_again(self, db_session, company_a, unit_product, sold_units):
        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
            type="RETURN", quantity=1, return_action="RESTOCK",
        )
        returned_id = result.returned_units[0].id

        resale = _sell(db_session, company_a, unit_product, 4)

        unit = db_session.get(ProductUnit, returned_id)
        assert unit.sale_id == resale.id
        assert unit.is_returned is False
        assert unit.return_action is None
        assert unit_product.current_stock == Decimal("0")

    def test_maintenance_keeps_units_out_of_stock(self, db_session, company_a, unit_product, sold_units):
        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
            type="RETURN", quantity=2, return_action="MAINTENANCE",
        )

        assert all(u.return_action == "MAINTENANCE" for u in result.returned_units)
        assert unit_product.current_stock == Decimal("3")
        assert unit_service.count_available_units(db_session, unit_product) == 3
        assert db_session.query(StockMovement).filter_by(product_id=unit_product.id, type="IN").count() == 1
        assert invariant_service.check_invariants(db_session, company_a.id) == []

    def test_bulk_return(self, db_session, company_a, bulk_product):
        sale = _sell(db_session, company_a, bulk_product, 4)

        return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="RETURN", quantity="1.5", return_action="RESTOCK",
        )

        assert bulk_product.current_stock == Decimal("7.5")

    def test_cannot_return_more_than_sold(self, db_session, company_a, unit_product, sold_units):
        return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
            type="RETURN", quantity=1, return_action="RESTOCK",
        )

        with pytest.raises(InvalidStateError) as exc_info:
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
                type="RETURN", quantity=2, return_action="RESTOCK",
            )

        assert exc_info.value.field == "quantity"
        assert unit_product.current_stock == Decimal("4")
        assert db_session.query(Sale).filter_by(type="RETURN").count() == 1

    def test_return_action_required(self, db_session, company_a, sold_units):
        with pytest.raises(InvalidStateError) as exc_info:
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
                type="RETURN", quantity=1,
            )
        assert exc_info.value.field == "return_action"

    def test_service_cannot_be_returned(self, db_session, company_a, service_product):
        sale = _sell(db_session, company_a, service_product, 1, sale_type="SERVICE")

        with pytest.raises(InvalidStateError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
                type="RETURN", quantity=1, return_action="RESTOCK",
            )

    def test_unknown_original_sale(self, db_session, company_a):
        with pytest.raises(NotFoundError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=987654,
                type="RETURN", quantity=1, return_action="RESTOCK",
            )

    def test_return_row_is_not_an_original_sale(self, db_session, company_a, sold_units):
        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
            type="RETURN", quantity=1, return_action="RESTOCK",
        )

        with pytest.raises(NotFoundError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=result.return_sale.id,
                type="RETURN", quantity=1, return_action="RESTOCK",
            )


class TestRefund:

    def test_refund_is_money_only(self, db_session, company_a, bulk_product):
        sale = _sell(db_session, company_a, bulk_product, 2)
        movements_before = db_session.query(StockMovement).count()

        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="REFUND", refund_amount="12.345",
        )

        assert result.return_sale.type == "REFUND"
        assert result.return_sale.quantity == Decimal("1")
        assert result.return_sale.amount == Decimal("12.35")
        assert result.returned_units == []
        assert bulk_product.current_stock == Decimal("8")
        assert db_session.query(StockMovement).count() == movements_before

    def test_service_can_be_refunded(self, db_session, company_a, service_product):
        sale = _sell(db_session, company_a, service_product, 1, sale_type="SERVICE")

        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="REFUND", refund_amount=80,
        )

        assert result.return_sale.amount == Decimal("80.00")

    def test_refund_amount_required(self, db_session, company_a, bulk_product):
        sale = _sell(db_session, company_a, bulk_product, 1)

        with pytest.raises(InvalidStateError) as exc_info:
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id, type="REFUND",
            )
        assert exc_info.value.field == "refund_amount"


class TestExchange:

    def test_customer_pays_the_difference_short(self, db_session, company_a, bulk_product, product_factory):
        pricier = product_factory(company_a, "Rice 5kg", stock="5", price="35.00")
        sale = _sell(db_session, company_a, bulk_product, 1)

        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="EXCHANGE", quantity=1,
            exchange_product_id=pricier.id, exchange_quantity=1, additional_payment=10,
        )

        settlement = result.settlement
        assert settlement.delta == Decimal("15.00")
        assert settlement.shortfall == Decimal("5.00")
        assert settlement.change == Decimal("0.00")

        assert result.return_sale.type == "EXCHANGE"
        assert result.return_sale.return_action == "RESTOCK"
        assert result.return_sale.exchange_product_id == pricier.id
        assert "SHORTFALL" in result.return_sale.observations

        assert result.replacement_sale.type == "SALE"
        assert result.replacement_sale.product_id == pricier.id
        assert result.replacement_sale.quantity == Decimal("1")

        assert result.settlement_sale.type == "SALE"
        assert result.settlement_sale.quantity == Decimal("0")
        assert result.settlement_sale.amount == Decimal("10.00")
        assert result.return_sale.payment_method is None
        assert result.replacement_sale.payment_method == "CASH"
        assert result.settlement_sale.payment_method == "CASH"

        assert bulk_product.current_stock == Decimal("10")
        assert pricier.current_stock == Decimal("4")
        assert invariant_service.check_invariants(db_session, company_a.id) == []

    def test_store_refunds_the_difference(self, db_session, company_a, bulk_product, product_factory):
        cheaper = product_factory(company_a, "Rice 500g", stock="5", price="15.00")
        sale = _sell(db_session, company_a, bulk_product, 1)

        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="EXCHANGE", quantity=1, exchange_product_id=cheaper.id, exchange_quantity=1,
        )

        assert result.settlement.refund_due == Decimal("5.00")
        assert result.settlement.shortfall is None
        assert result.settlement.change is None
        assert result.settlement_sale.type == "REFUND"
        assert result.settlement_sale.amount == Decimal("5.00")
        assert result.to_dict()["settlement"]["kind"] == "CUSTOMER_REFUND"

    def test_even_exchange_writes_no_settlement(self, db_session, company_a, bulk_product, product_factory):
        same_price = product_factory(company_a, "Brown rice 1kg", stock="5", price="20.00")
        sale = _sell(db_session, company_a, bulk_product, 2)

        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="EXCHANGE", quantity=2, exchange_product_id=same_price.id, exchange_quantity=2,
        )

        assert result.settlement.delta == Decimal("0.00")
        assert result.settlement_sale is None

    def test_exchange_of_units_for_units(self, db_session, company_a, unit_product, sold_units,
                                         product_factory):
        other = product_factory(company_a, "Tablet", price="20.00", barcode="TAB")
        unit_service.create_units(
            db_session, company_id=company_a.id, user_id=1, product_id=other.id, quantity=2,
        )

        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sold_units.id,
            type="EXCHANGE", quantity=1, exchange_product_id=other.id, exchange_quantity=1,
        )

        assert result.returned_units[0].return_action == "RESTOCK"
        assert [u.barcode for u in result.replacement_sale.units] == ["TAB-001"]
        assert unit_product.current_stock == Decimal("4")
        assert other.current_stock == Decimal("1")
        assert invariant_service.check_invariants(db_session, company_a.id) == []

    def test_exchange_counts_against_returnable_quantity(self, db_session, company_a, bulk_product,
                                                         product_factory):
        other = product_factory(company_a, "Oats", stock="5", price="20.00")
        sale = _sell(db_session, company_a, bulk_product, 2)
        return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
            type="EXCHANGE", quantity=2, exchange_product_id=other.id, exchange_quantity=2,
        )

        with pytest.raises(InvalidStateError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
                type="RETURN", quantity=1, return_action="RESTOCK",
            )

    def test_replacement_out_of_stock_rolls_everything_back(self, db_session, company_a, bulk_product,
                                                            product_factory):
        scarce = product_factory(company_a, "Saffron", stock="1", price="20.00")
        sale = _sell(db_session, company_a, bulk_product, 1)
        movements_before = db_session.query(StockMovement).count()

        with pytest.raises(InsufficientStockError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
                type="EXCHANGE", quantity=1, exchange_product_id=scarce.id, exchange_quantity=2,
            )

        assert bulk_product.current_stock == Decimal("9")
        assert scarce.current_stock == Decimal("1")
        assert db_session.query(StockMovement).count() == movements_before
        assert db_session.query(Sale).filter(Sale.type != "SALE").count() == 0

    def test_inactive_replacement(self, db_session, company_a, bulk_product, product_factory):
        retired = product_factory(company_a, "Old rice", stock="5", price="20.00", is_active=False)
        sale = _sell(db_session, company_a, bulk_product, 1)

        with pytest.raises(NotFoundError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
                type="EXCHANGE", quantity=1, exchange_product_id=retired.id, exchange_quantity=1,
            )

    def test_service_replacement(self, db_session, company_a, bulk_product, service_product):
        sale = _sell(db_session, company_a, bulk_product, 1)

        with pytest.raises(InvalidStateError) as exc_info:
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
                type="EXCHANGE", quantity=1, exchange_product_id=service_product.id, exchange_quantity=1,
            )
        assert exc_info.value.field == "exchange_product_id"

    def test_exchange_product_required(self, db_session, company_a, bulk_product):
        sale = _sell(db_session, company_a, bulk_product, 1)

        with pytest.raises(InvalidStateError) as exc_info:
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=sale.id,
                type="EXCHANGE", quantity=1, exchange_quantity=1,
            )
        assert exc_info.value.field == "exchange_product_id"


class TestReturnAfterSwitchToUnits:
    """Bulk sales made before a product started carrying units."""

    @pytest.fixture
    def bulk_era_sale(self, db_session, company_a, bulk_product):
        sale = _sell(db_session, company_a, bulk_product, 10)
        unit_service.create_units(
            db_session, company_id=company_a.id, user_id=1, product_id=bulk_product.id, quantity=2,
        )
        return sale

    def test_restock_is_rejected(self, db_session, company_a, bulk_product, bulk_era_sale):
        with pytest.raises(InvalidStateError) as exc_info:
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=bulk_era_sale.id,
                type="RETURN", quantity=1, return_action="RESTOCK",
            )

        assert exc_info.value.field == "return_action"
        assert bulk_product.current_stock == Decimal("2")
        assert db_session.query(Sale).filter_by(type="RETURN").count() == 0

    def test_exchange_is_rejected(self, db_session, company_a, bulk_product, bulk_era_sale, product_factory):
        other = product_factory(company_a, "Pasta", stock="5", price="20.00")

        with pytest.raises(InvalidStateError):
            return_service.create_return(
                db_session, company_id=company_a.id, user_id=1, sale_id=bulk_era_sale.id,
                type="EXCHANGE", quantity=1, exchange_product_id=other.id, exchange_quantity=1,
            )

        assert other.current_stock == Decimal("5")

    def test_maintenance_return_is_allowed(self, db_session, company_a, bulk_product, bulk_era_sale):
        result = return_service.create_return(
            db_session, company_id=company_a.id, user_id=1, sale_id=bulk_era_sale.id,
            type="RETURN", quantity=3, return_action="MAINTENANCE",
        )

        assert result.returned_units == []
        assert result.return_sale.quantity == Decimal("3")
        assert bulk_product.current_stock == Decimal("2")
        assert invariant_service.check_invariants(db_session, company_a.id) == []
