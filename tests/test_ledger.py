"""Money arithmetic: splits, rounding and amount validation."""

from decimal import Decimal

import pytest

from tripzeo.core.exceptions import InvalidAmount
from tripzeo.domain.ledger import (
    compute_partner_commission,
    compute_split,
    format_minor_units,
    percent_of,
    validate_amount,
    validate_rate,
)


def test_split_for_standard_rates():
    split = compute_split(10000, Decimal("15.00"), Decimal("5.00"))

    assert split.base_price == 10000
    assert split.service_fee == 500
    assert split.total_amount == 10500
    assert split.commission_amount == 1500
    assert split.host_earnings == 8500


def test_split_parts_always_add_up():
    for base in (1, 99, 333, 12345, 987654):
        split = compute_split(base, "12.5", "7.25")
        assert split.total_amount == split.base_price + split.service_fee
        assert split.host_earnings + split.commission_amount == split.base_price


def test_percent_rounds_half_up():
    # 10% of 5 cents is 0.5 -> 1
    assert percent_of(5, Decimal("10")) == 1
    # 15% of 3 cents is 0.45 -> 0
    assert percent_of(3, Decimal("15")) == 0
    # 12.5% of 4 cents is 0.5 -> 1
    assert percent_of(4, Decimal("12.5")) == 1


def test_zero_rates_and_zero_price():
    split = compute_split(0, 0, 0)
    assert split.total_amount == 0
    assert split.host_earnings == 0

    split = compute_split(10000, 0, 0)
    assert split.total_amount == 10000
    assert split.host_earnings == 10000


def test_partner_commission_is_independent_of_platform_commission():
    assert compute_partner_commission(10000) == 1000
    assert compute_partner_commission(10000, "2.5") == 250


@pytest.mark.parametrize("amount", [-1, Decimal("10.5"), float("nan"), float("inf"), "abc", None, True])
def test_invalid_amounts_are_rejected(amount):
    with pytest.raises(InvalidAmount):
        validate_amount(amount)


def test_integral_decimal_amount_is_accepted():
    assert validate_amount(Decimal("1500")) == 1500


@pytest.mark.parametrize("rate", [-1, "100.01", "NaN", "x"])
def test_invalid_rates_are_rejected(rate):
    with pytest.raises(InvalidAmount):
        validate_rate(rate)


def test_split_rejects_negative_base():
    with pytest.raises(InvalidAmount):
        compute_split(-100, 15, 5)


def test_format_minor_units():
    assert format_minor_units(10500, "USD") == "USD 105.00"
    assert format_minor_units(-1000, "EUR") == "EUR -10.00"
    assert format_minor_units(123456789, "USD") == "USD 1,234,567.89"
