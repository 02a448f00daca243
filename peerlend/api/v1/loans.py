"""Loan requests: listing, marketplace browsing, funding and counter-offers"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from peerlend.api.dependencies import OutcomePublisher, get_actor_id, get_engine
from peerlend.api.v1.schemas import (
    event_list,
    CreditReportResponse,
    CreditReportRequestSchema,
    FundedLoanSchema,
    FundingResponse,
    LoanCreateRequest,
    LoanRequestResponse,
    LoanRequestSchema,
    LoanTermsRequest,
    MarketplaceResponse,
    NegotiationResponse,
    NegotiationSchema,
    PreviewResponse,
    UserSchema,
)
from peerlend.domain.calculator import risk_rating
from peerlend.domain.engine import LendingEngine
from peerlend.infrastructure.observability.metrics import record_funding

router = APIRouter()


@router.post("/loans", response_model=LoanRequestResponse, status_code=201)
def request_loan(
    body: LoanCreateRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """
    List a loan request on the marketplace.

    The risk rating is derived from the borrower's credit score and the
    requested terms and does not change afterwards.
    """
    outcome = engine.request_loan(actor_id, body.amount, body.interest_rate, body.duration, body.purpose)
    publisher.publish("request_loan", actor_id, outcome, amount=body.amount)
    return LoanRequestResponse(
        loan_request=LoanRequestSchema.model_validate(outcome.value),
        events=event_list(outcome.events),
    )


@router.get("/loans/marketplace", response_model=MarketplaceResponse)
def marketplace(
    search: Optional[str] = Query(None, description="Borrower name or purpose"),
    risk: Optional[str] = Query(None, description="Risk grade prefix, e.g. A or B+"),
    sort_by: str = Query("amount", pattern="^(amount|rate|risk)$"),
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
):
    """Open loan requests from other borrowers"""
    listing = engine.marketplace(actor_id, search=search, risk_grade=risk, sort_by=sort_by)
    return MarketplaceResponse(loan_requests=[LoanRequestSchema.model_validate(r) for r in listing])


@router.get("/loans/preview", response_model=PreviewResponse)
def preview_terms(
    amount: float,
    interest_rate: float,
    duration: int,
    credit_score: Optional[int] = None,
    engine: LendingEngine = Depends(get_engine),
):
    """Monthly payment and total interest for candidate terms"""
    amortization = engine.preview_terms(amount, interest_rate, duration)
    return PreviewResponse(
        monthly_payment=amortization.monthly_payment,
        total_interest=amortization.total_interest,
        total_repayment=round(amount + amortization.total_interest, 2),
        risk_rating=risk_rating(credit_score, amount, duration) if credit_score is not None else None,
    )


@router.get("/loans/{loan_id}", response_model=LoanRequestSchema)
def get_loan_request(loan_id: str, engine: LendingEngine = Depends(get_engine)):
    return LoanRequestSchema.model_validate(engine.get_loan_request(loan_id))


@router.post("/loans/{loan_id}/fund", response_model=FundingResponse)
def fund_loan(
    loan_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """
    Fund an open loan request.

    Flow:
    1. Debit the full principal from the lender
    2. Credit the borrower net of the platform fee
    3. Replace the request with an active funded loan
    4. Drop the request's negotiations and credit report requests
    """
    outcome = engine.fund_loan(actor_id, loan_id)
    loan, lender, borrower = outcome.records

    record_funding(loan.amount, loan.amount * engine.ledger.fee_rate)
    publisher.publish("fund_loan", actor_id, outcome, loan_id=loan.id, amount=loan.amount)

    return FundingResponse(
        funded_loan=FundedLoanSchema.model_validate(loan),
        lender=UserSchema.model_validate(lender),
        borrower=UserSchema.model_validate(borrower),
        events=event_list(outcome.events),
    )


@router.post("/loans/{loan_id}/counter-offers", response_model=NegotiationResponse, status_code=201)
def counter_offer(
    loan_id: str,
    body: LoanTermsRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.counter_offer(actor_id, loan_id, body.amount, body.interest_rate, body.duration)
    negotiation, request = outcome.records
    publisher.publish("counter_offer", actor_id, outcome, loan_id=loan_id)
    return NegotiationResponse(
        negotiation=NegotiationSchema.model_validate(negotiation),
        loan_request=LoanRequestSchema.model_validate(request),
        events=event_list(outcome.events),
    )


@router.post("/loans/{loan_id}/credit-reports", response_model=CreditReportResponse, status_code=201)
def request_credit_report(
    loan_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """Ask the borrower to share credit data; funding does not depend on it"""
    outcome = engine.request_credit_report(actor_id, loan_id)
    publisher.publish("request_credit_report", actor_id, outcome, loan_id=loan_id)
    return CreditReportResponse(
        credit_request=CreditReportRequestSchema.model_validate(outcome.value),
        events=event_list(outcome.events),
    )
