"""Demo marketplace data: one lender, one borrower and an open loan request"""

from datetime import timedelta

from peerlend.domain.engine import LendingEngine
from peerlend.domain.models import RiskProfile

DEMO_PASSWORD = "demo123"
DEMO_LENDER_ID = "demo-lender"
DEMO_BORROWER_ID = "demo-borrower"


def seed_demo_data(engine: LendingEngine) -> None:
    """
    Populate an empty engine with the demo accounts.

    Balances enter through deposits so the ledger journal accounts for
    them; the lender's historical investment totals are set directly.
    """
    now = engine.clock()

    lender = engine.register_user(
        email="lender@demo.com",
        password=DEMO_PASSWORD,
        name="John Lender",
        credit_score=750,
        risk_profile=RiskProfile.CONSERVATIVE,
        verified=True,
        user_id=DEMO_LENDER_ID,
    ).value
    lender.account_created = now - timedelta(days=180)
    lender.total_invested = 25_000.0
    lender.total_returns = 1_850.0
    engine.deposit(lender.id, 50_000)

    borrower = engine.register_user(
        email="borrower@demo.com",
        password=DEMO_PASSWORD,
        name="Sarah Borrower",
        credit_score=680,
        risk_profile=RiskProfile.MODERATE,
        verified=True,
        user_id=DEMO_BORROWER_ID,
    ).value
    borrower.account_created = now - timedelta(days=90)
    engine.deposit(borrower.id, 1_000)

    engine.request_loan(borrower.id, 15_000, 8.5, 36, purpose="Business Expansion")
