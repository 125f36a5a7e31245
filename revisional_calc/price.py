"""Closed-form totals for quick estimates.

The scheduler only implements constant amortization (SAC). A request may say
its contract is amortized by the Price table (French system, equal
installments) instead; the preview then sizes the rate difference with the
annuity formula below. Both closed forms assume one flat rate over the whole
term and ignore correction and charges.
"""

from __future__ import annotations

from decimal import Decimal, getcontext

from .utils import ZERO

getcontext().prec = 28

SAC = "SAC"
PRICE = "PRICE"
SYSTEMS = (SAC, PRICE)


def annuity_payment(principal: Decimal, rate_per_month: Decimal, term: int) -> Decimal:
    """Equal installment that clears ``principal`` in ``term`` months.

    ``P * i * (1 + i)^n / ((1 + i)^n - 1)``, or ``P / n`` at a zero rate.
    """
    if term <= 0:
        raise ValueError("Term must be positive")
    if rate_per_month == 0:
        return principal / Decimal(term)
    growth = (1 + rate_per_month) ** term
    return principal * rate_per_month * growth / (growth - 1)


def sac_total_interest(principal: Decimal, rate_per_month: Decimal, term: int) -> Decimal:
    """Total SAC interest: ``i * P * (n + 1) / 2``."""
    return rate_per_month * principal * Decimal(term + 1) / Decimal(2)


def price_total_interest(principal: Decimal, rate_per_month: Decimal, term: int) -> Decimal:
    return annuity_payment(principal, rate_per_month, term) * Decimal(term) - principal


def total_paid(principal: Decimal, rate_per_month: Decimal, term: int, system: str = SAC) -> Decimal:
    system = system.upper()
    if system == SAC:
        return principal + sac_total_interest(principal, rate_per_month, term)
    if system == PRICE:
        return principal + price_total_interest(principal, rate_per_month, term)
    raise ValueError(f"Unknown amortization system: {system}")


def estimate_savings(
    principal: Decimal,
    contract_rate: Decimal,
    market_rate: Decimal,
    term: int,
    system: str = SAC,
) -> Decimal:
    """Difference between the closed-form totals at the contract and market rates.

    A contract already at or below the market rate yields zero.
    """
    if contract_rate <= market_rate:
        return ZERO
    return total_paid(principal, contract_rate, term, system) - total_paid(principal, market_rate, term, system)
