"""Unit tests for the loan lifecycle state machine"""

import itertools
import pytest
from datetime import datetime, timezone
from peerlend.domain.exceptions import InvalidStateError, NotFoundError, UnauthorizedError
from peerlend.domain.models import CreditReportStatus, LoanState, LoanTerms, User
from peerlend.domain.registry import LoanRegistry

NOW = datetime(2025, 1, 15, tzinfo=timezone.utc)


def make_user(user_id: str, credit_score: int = 680) -> User:
    return User(id=user_id, email=f"{user_id}@example.com", name=user_id.title(),
                account_created=NOW, credit_score=credit_score)


@pytest.fixture
def registry() -> LoanRegistry:
    counter = itertools.count(1)
    return LoanRegistry(id_factory=lambda: f"id_{next(counter)}")


@pytest.fixture
def borrower() -> User:
    return make_user("borrower")


@pytest.fixture
def lender() -> User:
    return make_user("lender", credit_score=760)


@pytest.fixture
def request_id(registry: LoanRegistry, borrower: User) -> str:
    return registry.create_request(borrower, LoanTerms(15_000, 8.5, 36), "Business Expansion", NOW).id


def test_new_request_is_pending_with_fixed_rating(registry: LoanRegistry, request_id: str):
    request = registry.get_request(request_id)

    assert registry.state_of(request_id) == LoanState.PENDING
    assert request.state == LoanState.PENDING
    assert request.risk_rating == "B+"


def test_counter_offer_moves_to_negotiating(registry: LoanRegistry, request_id: str, lender: User):
    negotiation = registry.propose_counter(request_id, lender, LoanTerms(12_000, 9.0, 24), NOW)

    assert registry.state_of(request_id) == LoanState.NEGOTIATING
    assert negotiation.original == LoanTerms(15_000, 8.5, 36)
    assert negotiation.counter == LoanTerms(12_000, 9.0, 24)


def test_borrower_cannot_counter_own_request(registry: LoanRegistry, request_id: str, borrower: User):
    with pytest.raises(UnauthorizedError):
        registry.propose_counter(request_id, borrower, LoanTerms(12_000, 9.0, 24), NOW)


def test_reject_last_counter_returns_to_pending(registry: LoanRegistry, request_id: str, lender: User):
    negotiation = registry.propose_counter(request_id, lender, LoanTerms(12_000, 9.0, 24), NOW)

    with pytest.raises(UnauthorizedError):
        registry.reject_counter(negotiation.id, lender.id)

    registry.reject_counter(negotiation.id, "borrower")

    assert registry.state_of(request_id) == LoanState.PENDING
    assert negotiation.id not in registry.negotiations


def test_accept_counter_overwrites_terms_keeps_rating(registry: LoanRegistry, request_id: str, lender: User):
    negotiation = registry.propose_counter(request_id, lender, LoanTerms(5_000, 9.0, 12), NOW)

    request = registry.accept_counter(negotiation.id, "borrower")

    assert request.terms == LoanTerms(5_000, 9.0, 12)
    assert request.risk_rating == "B+"
    assert registry.state_of(request_id) == LoanState.PENDING
    assert registry.negotiations == {}


def test_accept_one_counter_keeps_others_negotiating(registry: LoanRegistry, request_id: str, lender: User):
    other = make_user("other")
    first = registry.propose_counter(request_id, lender, LoanTerms(12_000, 9.0, 24), NOW)
    registry.propose_counter(request_id, other, LoanTerms(14_000, 9.5, 36), NOW)

    registry.accept_counter(first.id, "borrower")

    assert registry.state_of(request_id) == LoanState.NEGOTIATING


def test_recounter_replaces_negotiation(registry: LoanRegistry, request_id: str, lender: User):
    negotiation = registry.propose_counter(request_id, lender, LoanTerms(12_000, 9.0, 24), NOW)

    replacement = registry.recounter(negotiation.id, "borrower", LoanTerms(13_000, 8.75, 30), NOW)

    assert replacement.id != negotiation.id
    assert list(registry.negotiations) == [replacement.id]
    assert replacement.lender_id == lender.id
    assert replacement.original == LoanTerms(15_000, 8.5, 36)

    with pytest.raises(UnauthorizedError):
        registry.recounter(replacement.id, "stranger", LoanTerms(13_000, 8.75, 30), NOW)


def test_funding_clears_request_and_side_records(registry: LoanRegistry, request_id: str, lender: User):
    registry.propose_counter(request_id, lender, LoanTerms(12_000, 9.0, 24), NOW)
    registry.request_credit_report(request_id, lender, NOW)

    loan = registry.fund_request(request_id, lender, NOW)

    assert loan.outstanding_balance == 15_000
    assert loan.total_payments == 36
    assert loan.payments_made == 0
    assert loan.risk_rating == "B+"
    assert registry.state_of(request_id) == LoanState.FUNDED
    assert registry.negotiations == {}
    assert registry.credit_requests == {}
    with pytest.raises(NotFoundError):
        registry.get_request(request_id)


def test_funded_request_cannot_be_funded_again(registry: LoanRegistry, request_id: str, lender: User):
    registry.fund_request(request_id, lender, NOW)

    with pytest.raises(NotFoundError):
        registry.fund_request(request_id, make_user("other"), NOW)


def test_payments_reduce_balance_to_paid_off(registry: LoanRegistry, request_id: str, lender: User):
    loan = registry.fund_request(request_id, lender, NOW)

    registry.apply_payment(loan.id, "borrower", 5_000)
    assert loan.outstanding_balance == 10_000
    assert loan.payments_made == 1

    registry.apply_payment(loan.id, "borrower", 12_000)
    assert loan.outstanding_balance == 0
    assert loan.payments_made == 2
    assert registry.state_of(request_id) == LoanState.PAID_OFF

    with pytest.raises(InvalidStateError):
        registry.apply_payment(loan.id, "borrower", 100)


def test_only_borrower_can_pay(registry: LoanRegistry, request_id: str, lender: User):
    loan = registry.fund_request(request_id, lender, NOW)

    with pytest.raises(UnauthorizedError):
        registry.check_payable(loan.id, lender.id)


def test_credit_report_protocol(registry: LoanRegistry, request_id: str, lender: User, borrower: User):
    with pytest.raises(UnauthorizedError):
        registry.request_credit_report(request_id, borrower, NOW)

    credit_request = registry.request_credit_report(request_id, lender, NOW)
    with pytest.raises(InvalidStateError):
        registry.request_credit_report(request_id, lender, NOW)

    with pytest.raises(UnauthorizedError):
        registry.submit_credit_report(credit_request.id, lender.id, {"score": "680"})

    registry.submit_credit_report(credit_request.id, borrower.id, {"score": "680"})
    assert credit_request.status == CreditReportStatus.APPROVED
    assert credit_request.report == {"score": "680"}

    with pytest.raises(InvalidStateError):
        registry.deny_credit_report(credit_request.id, borrower.id)


def test_deny_credit_report_removes_request(registry: LoanRegistry, request_id: str, lender: User):
    credit_request = registry.request_credit_report(request_id, lender, NOW)

    registry.deny_credit_report(credit_request.id, "borrower")

    assert registry.credit_requests_for(lender.id) == []


def test_marketplace_filters_and_sorts(registry: LoanRegistry, request_id: str, lender: User):
    other = make_user("other", credit_score=760)
    registry.create_request(other, LoanTerms(5_000, 12.0, 12), "Car repair", NOW)
    registry.create_request(other, LoanTerms(40_000, 6.0, 60), "Home renovation", NOW)

    by_amount = registry.marketplace(lender.id)
    assert [r.amount for r in by_amount] == [40_000, 15_000, 5_000]

    by_rate = registry.marketplace(lender.id, sort_by="rate")
    assert [r.interest_rate for r in by_rate] == [12.0, 8.5, 6.0]

    assert [r.purpose for r in registry.marketplace(lender.id, search="car")] == ["Car repair"]
    assert [r.risk_rating for r in registry.marketplace(lender.id, risk_grade="A")] == ["A+"]

    # Viewers never see their own requests
    assert all(r.borrower_id != "other" for r in registry.marketplace("other"))


def test_rollback_restores_records_in_place(registry: LoanRegistry, request_id: str, lender: User):
    request = registry.get_request(request_id)
    negotiation = registry.propose_counter(request_id, lender, LoanTerms(12_000, 9.0, 24), NOW)
    checkpoint = registry.begin()

    loan = registry.fund_request(request_id, lender, NOW)
    registry.apply_payment(loan.id, "borrower", 1_000)
    registry.rollback(checkpoint)

    assert registry.get_request(request_id) is request
    assert registry.get_negotiation(negotiation.id) is negotiation
    assert registry.state_of(request_id) == LoanState.NEGOTIATING
    assert registry.funded == {}


def test_marketplace_sorts_best_grade_first(registry: LoanRegistry, request_id: str, lender: User):
    strong = make_user("strong", credit_score=760)
    middling = make_user("middling", credit_score=700)
    registry.create_request(strong, LoanTerms(5_000, 12.0, 12), "Car repair", NOW)
    registry.create_request(middling, LoanTerms(5_000, 12.0, 12), "Laptop", NOW)
    registry.create_request(strong, LoanTerms(5_000, 12.0, 60), "Tuition", NOW)

    by_risk = registry.marketplace(lender.id, sort_by="risk")

    assert [r.risk_rating for r in by_risk] == ["A+", "A", "A-", "B+"]
