from decimal import Decimal

from stockledger.services.settlement import calculate_exchange_settlement, money


def test_money_rounds_half_up():
    assert money("2.345") == Decimal("2.35")
    assert money("2.344") == Decimal("2.34")
    assert money(None) == Decimal("0.00")


def test_customer_owes_with_partial_payment():
    result = calculate_exchange_settlement(
        return_unit_price="20", return_quantity=1,
        exchange_unit_price="35", exchange_quantity=1,
        additional_payment="10",
    )

    assert result.kind == "CUSTOMER_OWES"
    assert result.delta == Decimal("15.00")
    assert result.amount_due == Decimal("15.00")
    assert result.shortfall == Decimal("5.00")
    assert result.change == Decimal("0.00")
    assert result.is_short


def test_customer_overpays():
    result = calculate_exchange_settlement(
        return_unit_price="20", return_quantity=1,
        exchange_unit_price="35", exchange_quantity=1,
        additional_payment="50",
    )

    assert result.shortfall == Decimal("0.00")
    assert result.change == Decimal("35.00")
    assert not result.is_short


def test_customer_owes_without_payment_reports_nothing_paid():
    result = calculate_exchange_settlement(
        return_unit_price="20", return_quantity=1,
        exchange_unit_price="35", exchange_quantity=1,
    )

    assert result.amount_due == Decimal("15.00")
    assert result.shortfall is None
    assert result.change is None


def test_store_refunds_difference():
    result = calculate_exchange_settlement(
        return_unit_price="20", return_quantity=1,
        exchange_unit_price="15", exchange_quantity=1,
        additional_payment="10",
    )

    assert result.kind == "CUSTOMER_REFUND"
    assert result.refund_due == Decimal("5.00")
    assert result.amount_due == Decimal("0.00")
    assert result.shortfall is None
    assert result.change is None


def test_even_exchange():
    result = calculate_exchange_settlement(
        return_unit_price="12.50", return_quantity=2,
        exchange_unit_price="25", exchange_quantity=1,
    )

    assert result.kind == "EVEN"
    assert result.delta == Decimal("0.00")
    assert result.to_dict()["refund_due"] == "0.00"


def test_fractional_quantities_round_to_cents():
    result = calculate_exchange_settlement(
        return_unit_price="9.99", return_quantity="0.333",
        exchange_unit_price="0", exchange_quantity=1,
    )

    # 9.99 * 0.333 = 3.32667
    assert result.return_total == Decimal("3.33")
    assert result.refund_due == Decimal("3.33")


def test_missing_prices_count_as_zero():
    result = calculate_exchange_settlement(
        return_unit_price=None, return_quantity=1,
        exchange_unit_price="7", exchange_quantity=1,
    )

    assert result.delta == Decimal("7.00")
