"""Unit tests for lending engine operations"""

import pytest
from peerlend.domain.engine import LendingEngine, hash_password, verify_password
from peerlend.domain.exceptions import (
    AuthenticationError,
    InsufficientFundsError,
    InvalidPaymentError,
    InvalidStateError,
    ValidationError,
)
from peerlend.domain.models import (
    EventKind,
    HistoryAction,
    LoanState,
    LoanStatus,
    User,
)
from peerlend.domain.seed import DEMO_BORROWER_ID, DEMO_LENDER_ID, seed_demo_data


@pytest.fixture
def request_id(lending_engine: LendingEngine, borrower: User) -> str:
    return lending_engine.request_loan(borrower.id, 15_000, 8.5, 36, purpose="Business Expansion").value.id


@pytest.fixture
def loan_id(lending_engine: LendingEngine, lender: User, request_id: str) -> str:
    return lending_engine.fund_loan(lender.id, request_id).value.id


def test_password_hash_round_trip():
    stored = hash_password("demo123")
    assert verify_password("demo123", stored)
    assert not verify_password("demo124", stored)
    assert not verify_password("demo123", "")


def test_register_and_authenticate(lending_engine: LendingEngine, lender: User):
    assert lending_engine.authenticate("lender@example.com", "secret123") is lender

    with pytest.raises(AuthenticationError):
        lending_engine.authenticate("lender@example.com", "wrong")
    with pytest.raises(AuthenticationError):
        lending_engine.authenticate("nobody@example.com", "secret123")


def test_register_rejects_duplicate_email(lending_engine: LendingEngine, lender: User):
    with pytest.raises(ValidationError) as exc_info:
        lending_engine.register_user("LENDER@example.com", "secret123", "Copy")
    assert "email" in exc_info.value.errors


def test_register_reports_every_bad_field(lending_engine: LendingEngine):
    with pytest.raises(ValidationError) as exc_info:
        lending_engine.register_user("not-an-email", "123", " ")
    assert set(exc_info.value.errors) == {"email", "password", "name"}


def test_request_loan_notifies_everyone(lending_engine: LendingEngine, lender: User, borrower: User):
    outcome = lending_engine.request_loan(borrower.id, 15_000, 8.5, 36, purpose="Business Expansion")

    request = outcome.value
    assert request.risk_rating == "B+"
    assert lending_engine.loan_state(request.id) == LoanState.PENDING
    assert {(e.recipient_user_id, e.kind) for e in outcome.events} == {
        (borrower.id, EventKind.LOAN_REQUESTED),
        (lender.id, EventKind.LOAN_REQUESTED),
    }
    assert outcome.history[0].action == HistoryAction.REQUESTED
    assert outcome.history[0].amount == 15_000


def test_request_loan_rejects_invalid_terms(lending_engine: LendingEngine, borrower: User):
    with pytest.raises(ValidationError):
        lending_engine.request_loan(borrower.id, 500, 8.5, 36)

    assert lending_engine.marketplace("someone") == []


def test_fund_loan_end_to_end(lending_engine: LendingEngine, lender: User, borrower: User, request_id: str):
    """Test lender funds 15,000: lender pays in full, borrower gets 98.5%"""
    outcome = lending_engine.fund_loan(lender.id, request_id)
    loan = outcome.value

    assert lender.account_balance == 35_000
    assert borrower.account_balance == pytest.approx(1_000 + 14_775)
    assert lending_engine.ledger.fees_collected == pytest.approx(225)
    assert loan.outstanding_balance == 15_000
    assert loan.payments_made == 0
    assert loan.status == LoanStatus.ACTIVE
    assert loan.id in lender.loans_funded
    assert loan.id in borrower.loans_borrowed
    assert lending_engine.loan_state(request_id) == LoanState.FUNDED
    assert lending_engine.marketplace(lender.id) == []

    borrower_event = next(e for e in outcome.events if e.recipient_user_id == borrower.id)
    assert borrower_event.message == "Loan funded! $14,775.00 deposited (after 1.5% fee)"
    assert outcome.history[0].action == HistoryAction.FUNDED


def test_fund_loan_insufficient_balance_changes_nothing(
    lending_engine: LendingEngine, lender: User, borrower: User, request_id: str
):
    lending_engine.withdraw(lender.id, 40_000)

    with pytest.raises(InsufficientFundsError):
        lending_engine.fund_loan(lender.id, request_id)

    assert lender.account_balance == 10_000
    assert borrower.account_balance == 1_000
    assert lending_engine.loan_state(request_id) == LoanState.PENDING
    assert lending_engine.get_loan_request(request_id).amount == 15_000


def test_failed_operation_rolls_back_ledger(
    lending_engine: LendingEngine, lender: User, borrower: User, request_id: str, monkeypatch
):
    """A failure after money moved restores every balance"""

    def boom(*args, **kwargs):
        raise RuntimeError("registry unavailable")

    monkeypatch.setattr(lending_engine.registry, "fund_request", boom)

    with pytest.raises(RuntimeError):
        lending_engine.fund_loan(lender.id, request_id)

    assert lender.account_balance == 50_000
    assert lender.total_invested == 0
    assert borrower.account_balance == 1_000
    assert lending_engine.ledger.fees_collected == 0


def test_accept_offer_updates_terms(lending_engine: LendingEngine, lender: User, borrower: User, request_id: str):
    negotiation = lending_engine.counter_offer(lender.id, request_id, 12_000, 9.0, 24).value
    assert lending_engine.loan_state(request_id) == LoanState.NEGOTIATING

    outcome = lending_engine.accept_offer(borrower.id, negotiation.id)

    assert outcome.value.amount == 12_000
    assert outcome.value.risk_rating == "B+"
    assert outcome.history[0].action == HistoryAction.ACCEPTED_OFFER
    assert outcome.history[0].amount == 15_000
    assert lending_engine.negotiations_for(borrower.id) == []

    loan = lending_engine.fund_loan(lender.id, request_id).value
    assert loan.amount == 12_000
    assert loan.total_payments == 24


def test_recounter_by_borrower(lending_engine: LendingEngine, lender: User, borrower: User, request_id: str):
    negotiation = lending_engine.counter_offer(lender.id, request_id, 12_000, 9.0, 24).value

    outcome = lending_engine.recounter_offer(borrower.id, negotiation.id, 14_000, 8.75, 36)

    assert [n.id for n in lending_engine.negotiations_for(lender.id)] == [outcome.value.id]
    assert any(e.recipient_user_id == lender.id for e in outcome.events)


def test_payment_reduces_balance_and_pays_lender(
    lending_engine: LendingEngine, lender: User, borrower: User, loan_id: str
):
    minimum = lending_engine.minimum_payment(loan_id)
    borrower_before = borrower.account_balance

    outcome = lending_engine.make_payment(borrower.id, loan_id, minimum)
    loan = outcome.value

    assert loan.outstanding_balance == pytest.approx(15_000 - minimum)
    assert loan.payments_made == 1
    assert borrower.account_balance == pytest.approx(borrower_before - minimum)
    assert lender.account_balance == pytest.approx(35_000 + minimum)
    assert lender.total_returns == pytest.approx(minimum - 15_000 / 36)
    assert {e.kind for e in outcome.events} == {EventKind.PAYMENT_RECEIVED, EventKind.PAYMENT_MADE}
    assert outcome.history[0].amount == 15_000


def test_payment_below_minimum(lending_engine: LendingEngine, borrower: User, loan_id: str):
    minimum = lending_engine.minimum_payment(loan_id)

    with pytest.raises(InvalidPaymentError):
        lending_engine.make_payment(borrower.id, loan_id, minimum - 0.01)
    with pytest.raises(InvalidPaymentError):
        lending_engine.make_payment(borrower.id, loan_id, "abc")
    with pytest.raises(InvalidPaymentError):
        lending_engine.make_payment(borrower.id, loan_id, 0)

    assert lending_engine.get_funded_loan(loan_id).payments_made == 0


def test_overpayment_pays_off_loan(lending_engine: LendingEngine, lender: User, borrower: User, loan_id: str):
    outcome = lending_engine.make_payment(borrower.id, loan_id, 15_000)
    loan = outcome.value

    assert loan.outstanding_balance == 0
    assert loan.status == LoanStatus.PAID_OFF
    assert lending_engine.loan_state(loan.request_id) == LoanState.PAID_OFF
    assert EventKind.LOAN_PAID_OFF in {e.kind for e in outcome.events}
    assert lending_engine.payment_schedule(loan_id) == []

    with pytest.raises(InvalidStateError):
        lending_engine.make_payment(borrower.id, loan_id, 500)


def test_payment_exceeding_balance(lending_engine: LendingEngine, borrower: User, loan_id: str):
    lending_engine.withdraw(borrower.id, borrower.account_balance - 100)

    with pytest.raises(InsufficientFundsError):
        lending_engine.make_payment(borrower.id, loan_id, lending_engine.minimum_payment(loan_id))

    assert lending_engine.get_funded_loan(loan_id).outstanding_balance == 15_000


def test_credit_report_flow(lending_engine: LendingEngine, lender: User, borrower: User, request_id: str):
    credit_request = lending_engine.request_credit_report(lender.id, request_id).value

    outcome = lending_engine.submit_credit_report(borrower.id, credit_request.id, {"score": "680"})

    assert outcome.value.report == {"score": "680"}
    assert outcome.events[0].recipient_user_id == lender.id
    assert lending_engine.credit_reports_for(lender.id)[0].id == credit_request.id


def test_deposit_and_withdraw_validation(lending_engine: LendingEngine, borrower: User):
    with pytest.raises(ValidationError):
        lending_engine.deposit(borrower.id, -5)
    with pytest.raises(ValidationError):
        lending_engine.withdraw(borrower.id, "lots")
    with pytest.raises(InsufficientFundsError):
        lending_engine.withdraw(borrower.id, 5_000)

    assert borrower.account_balance == 1_000


def test_edit_profile(lending_engine: LendingEngine, lender: User, borrower: User):
    outcome = lending_engine.edit_profile(borrower.id, name="Sarah B.")
    assert outcome.value.name == "Sarah B."
    assert outcome.events[0].kind == EventKind.PROFILE

    with pytest.raises(ValidationError):
        lending_engine.edit_profile(borrower.id, email=lender.email)


def test_portfolio(lending_engine: LendingEngine, lender: User, borrower: User, loan_id: str):
    summary = lending_engine.portfolio(lender.id)

    assert summary.total_lent == 15_000
    assert summary.active_loans == 1
    assert summary.risk_distribution["B"] == 1

    assert lending_engine.portfolio(borrower.id).total_borrowed == 15_000


def test_seed_demo_data(lending_engine: LendingEngine):
    seed_demo_data(lending_engine)

    lender = lending_engine.get_user(DEMO_LENDER_ID)
    assert lender.account_balance == 50_000
    assert lender.total_invested == 25_000
    assert lending_engine.get_user(DEMO_BORROWER_ID).account_balance == 1_000

    listing = lending_engine.marketplace(DEMO_LENDER_ID)
    assert len(listing) == 1
    assert listing[0].risk_rating == "B+"


def test_records_held_across_failed_operation_stay_live(
    lending_engine: LendingEngine, lender: User, borrower: User
):
    """A request returned before a failed funding is the one later operations edit"""
    request = lending_engine.request_loan(borrower.id, 60_000, 8.5, 36).value

    with pytest.raises(InsufficientFundsError):
        lending_engine.fund_loan(lender.id, request.id)

    negotiation = lending_engine.counter_offer(lender.id, request.id, 12_000, 9.0, 24).value
    lending_engine.accept_offer(borrower.id, negotiation.id)

    assert lending_engine.get_loan_request(request.id) is request
    assert request.amount == 12_000


def test_rollback_does_not_copy_history(lending_engine: LendingEngine, borrower: User):
    for _ in range(50):
        lending_engine.deposit(borrower.id, 10)
    journal = lending_engine.ledger.journal

    with pytest.raises(InsufficientFundsError):
        lending_engine.withdraw(borrower.id, 10_000)

    assert lending_engine.ledger.journal is journal
    assert len(journal) == 51
    assert borrower.account_balance == 1_500
