from datetime import date
from decimal import Decimal

import pytest

from revisional_calc.data_models import AncillaryCharge, LoanParameters, RateBand

CONTRACT_RATE = Decimal("0.005654145387")


@pytest.fixture
def contract_params():
    """302,400.00 over 360 months from 2018-06-21 with first-period charges."""
    return LoanParameters(
        principal=Decimal("302400.00"),
        total_installments=360,
        first_due_date=date(2018, 6, 21),
        rate_bands=[RateBand(start=date(2018, 6, 21), end=date(2099, 12, 31), monthly_rate=CONTRACT_RATE)],
        ancillary_charges=[
            AncillaryCharge(
                date=date(2018, 6, 21),
                components={"mip": Decimal("62.54"), "dfi": Decimal("77.66"), "tca": Decimal("25.00")},
            )
        ],
    )


@pytest.fixture
def small_params():
    """120,000.00 over 12 months at 1 % a.m.: amortization 10,000.00 per month."""
    return LoanParameters(
        principal=Decimal("120000"),
        total_installments=12,
        first_due_date=date(2024, 1, 10),
        rate_bands=[RateBand(start=date(2024, 1, 10), end=date(2030, 1, 1), monthly_rate=Decimal("0.01"))],
    )


@pytest.fixture
def contract_request():
    return {
        "principal": "302400.00",
        "totalInstallments": 360,
        "firstDueDate": "2018-06-21",
        "rateBands": [{"start": "2018-06-21", "end": "2099-12-31", "monthlyRate": "0.005654145387"}],
        "correctionSeries": [],
        "ancillaryCharges": [
            {"date": "2018-06-21", "components": {"mip": "62.54", "dfi": "77.66", "tca": "25.00"}}
        ],
        "marketMonthlyRate": "0.0062",
    }


@pytest.fixture
def small_request():
    return {
        "principal": "120000",
        "totalInstallments": 12,
        "firstDueDate": "2024-01-10",
        "contractMonthlyRate": "0.01",
        "marketMonthlyRate": "0.008",
    }
