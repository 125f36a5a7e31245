from decimal import Decimal

import pytest

from revisional_calc.price import (
    PRICE,
    SAC,
    annuity_payment,
    estimate_savings,
    price_total_interest,
    sac_total_interest,
    total_paid,
)
from revisional_calc.utils import quantize_money


def test_annuity_payment():
    assert quantize_money(annuity_payment(Decimal("120000"), Decimal("0.01"), 12)) == Decimal("10661.85")
    assert annuity_payment(Decimal("1000"), Decimal("0"), 10) == Decimal("100")
    with pytest.raises(ValueError):
        annuity_payment(Decimal("1000"), Decimal("0.01"), 0)


def test_closed_form_interest():
    assert sac_total_interest(Decimal("120000"), Decimal("0.01"), 12) == Decimal("7800")
    assert price_total_interest(Decimal("120000"), Decimal("0.01"), 12) > Decimal("7800")
    assert total_paid(Decimal("120000"), Decimal("0.01"), 12, SAC) == Decimal("127800")
    assert total_paid(Decimal("120000"), Decimal("0.01"), 12, "price") > Decimal("127800")
    with pytest.raises(ValueError):
        total_paid(Decimal("120000"), Decimal("0.01"), 12, "german")


def test_estimate_savings():
    assert estimate_savings(Decimal("120000"), Decimal("0.01"), Decimal("0.008"), 12) == Decimal("1560")
    assert estimate_savings(Decimal("120000"), Decimal("0.008"), Decimal("0.01"), 12) == 0
    assert estimate_savings(Decimal("120000"), Decimal("0.01"), Decimal("0.008"), 12, PRICE) > 0
