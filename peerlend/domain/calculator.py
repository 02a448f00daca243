"""Financial calculator - amortization, risk grading and portfolio math"""

from typing import Iterable, List, Optional, Sequence

from peerlend.domain.models import (
    Amortization,
    FundedLoan,
    LoanStatus,
    PortfolioSummary,
    ScheduledPayment,
    User,
)
from peerlend.utils.date_utils import add_months
from peerlend.utils.money import round_cents

RISK_GRADES = ("C-", "C", "C+", "B-", "B", "B+", "A-", "A", "A+")


def _monthly_rate(annual_rate_pct: float) -> float:
    return annual_rate_pct / 100 / 12


def _annuity_payment(principal: float, monthly_rate: float, months: int) -> float:
    return (principal * monthly_rate) / (1 - (1 + monthly_rate) ** -months)


def amortized_payment(principal: float, annual_rate_pct: float, months: int) -> Amortization:
    """
    Fixed monthly payment for a simple annuity loan.

    monthly = P·r / (1 - (1+r)^-n), r = annual_rate_pct / 100 / 12
    total_interest = monthly·n - P

    A zero rate or zero term is a degenerate input, not an error:
    both figures come back as 0.00.

    Example:
        amortized_payment(10000, 12, 12) -> Amortization(888.49, 661.88)
    """
    monthly_rate = _monthly_rate(annual_rate_pct)
    if monthly_rate == 0 or months == 0:
        return Amortization(0.0, 0.0)

    monthly_payment = _annuity_payment(principal, monthly_rate, months)
    total_interest = monthly_payment * months - principal
    return Amortization(round_cents(monthly_payment), round_cents(total_interest))


def minimum_payment(loan: Optional[FundedLoan]) -> float:
    """Minimum installment for a funded loan, from its original terms"""
    if loan is None:
        return 0.0

    monthly_rate = _monthly_rate(loan.interest_rate or 0)
    total_payments = loan.total_payments or 0
    amount = loan.amount or 0
    if monthly_rate == 0 or total_payments == 0 or amount == 0:
        return 0.0

    return round_cents(_annuity_payment(amount, monthly_rate, total_payments))


def risk_rating(credit_score: int, amount: float, months: int) -> str:
    """
    Letter grade from three 1-3 point sub-scores.

    - Credit: >=740 -> 3, >=670 -> 2, else 1
    - Amount: <10,000 -> 3, <25,000 -> 2, else 1
    - Duration: <=24 -> 3, <=48 -> 2, else 1

    The total (3-9) indexes RISK_GRADES at min(total - 1, 8), so the
    lowest reachable grade is C+ and the best is A+.
    """
    if credit_score >= 740:
        score = 3
    elif credit_score >= 670:
        score = 2
    else:
        score = 1

    if amount < 10_000:
        score += 3
    elif amount < 25_000:
        score += 2
    else:
        score += 1

    if months <= 24:
        score += 3
    elif months <= 48:
        score += 2
    else:
        score += 1

    return RISK_GRADES[min(score - 1, 8)]


def payment_schedule(loan: Optional[FundedLoan], window: int = 6) -> List[ScheduledPayment]:
    """
    Project the next unpaid installments of a funded loan.

    Display projection only: real balance changes happen through payments.
    Installment i is due `i` calendar months after the funding date and is
    capped at the projected remaining balance.
    """
    if loan is None:
        return []

    remaining = loan.outstanding_balance or 0
    monthly_rate = _monthly_rate(loan.interest_rate or 0)
    total_payments = loan.total_payments or 0
    if monthly_rate == 0 or total_payments == 0 or remaining <= 0:
        return []

    monthly = _annuity_payment(loan.amount, monthly_rate, total_payments)
    first = loan.payments_made + 1
    last = min(total_payments, loan.payments_made + window)

    schedule = []
    balance = remaining
    for number in range(first, last + 1):
        if balance <= 0:
            break
        schedule.append(
            ScheduledPayment(
                payment_number=number,
                due_date=add_months(loan.funded_date, number).date(),
                amount=round_cents(min(monthly, balance)),
            )
        )
        balance -= monthly

    return schedule


def roi(invested: float, returns: float) -> float:
    """Return on investment in percent"""
    if invested == 0:
        return 0.0
    return round_cents(returns / invested * 100)


def default_rate(loans: Sequence[FundedLoan]) -> float:
    """Share of defaulted loans in percent"""
    if not loans:
        return 0.0
    defaulted = sum(1 for loan in loans if loan.status == LoanStatus.DEFAULTED)
    return round_cents(defaulted / len(loans) * 100)


def portfolio_summary(user: User, funded_loans: Iterable[FundedLoan]) -> PortfolioSummary:
    """Dashboard figures across the loans a user funded and borrowed"""
    loans = list(funded_loans)
    lent = [loan for loan in loans if loan.lender_id == user.id]
    borrowed = [loan for loan in loans if loan.borrower_id == user.id]

    active = sum(1 for loan in lent + borrowed if loan.status == LoanStatus.ACTIVE)

    # Grade letter buckets: A+/A/A- -> A, etc.
    distribution = {"A": 0, "B": 0, "C": 0}
    for loan in lent:
        letter = loan.risk_rating[:1]
        if letter in distribution:
            distribution[letter] += 1

    return PortfolioSummary(
        total_lent=sum(loan.amount for loan in lent),
        total_borrowed=sum(loan.amount for loan in borrowed),
        active_loans=active,
        roi=roi(user.total_invested, user.total_returns),
        default_rate=default_rate(lent),
        risk_distribution=distribution,
    )
