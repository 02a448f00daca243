"""Funded loans: listing, payment schedule projection and repayments"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from peerlend.api.dependencies import OutcomePublisher, get_actor_id, get_engine
from peerlend.api.v1.schemas import (
    AmountRequest,
    FundedLoanSchema,
    FundedLoansResponse,
    PaymentResponse,
    ScheduledPaymentSchema,
    ScheduleResponse,
    UserSchema,
    event_list,
)
from peerlend.domain.engine import LendingEngine
from peerlend.domain.models import LoanStatus
from peerlend.infrastructure.observability.metrics import record_payment

router = APIRouter()


@router.get("/funded-loans", response_model=FundedLoansResponse)
def list_funded_loans(
    role: Optional[str] = Query(None, pattern="^(borrowed|funded)$"),
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
):
    """Loans the actor borrowed, funded, or both when no role is given"""
    loans = engine.funded_loans_for(actor_id, role)
    return FundedLoansResponse(funded_loans=[FundedLoanSchema.model_validate(loan) for loan in loans])


@router.get("/funded-loans/{loan_id}", response_model=FundedLoanSchema)
def get_funded_loan(loan_id: str, engine: LendingEngine = Depends(get_engine)):
    return FundedLoanSchema.model_validate(engine.get_funded_loan(loan_id))


@router.get("/funded-loans/{loan_id}/schedule", response_model=ScheduleResponse)
def get_payment_schedule(loan_id: str, engine: LendingEngine = Depends(get_engine)):
    """
    Projected next installments.

    Returns:
        Up to the configured window of upcoming payments; a projection only,
        balances change through payments
    """
    loan = engine.get_funded_loan(loan_id)
    schedule = engine.payment_schedule(loan_id)
    return ScheduleResponse(
        loan_id=loan.id,
        minimum_payment=engine.minimum_payment(loan_id),
        outstanding_balance=loan.outstanding_balance,
        payments=[ScheduledPaymentSchema.model_validate(p) for p in schedule],
    )


@router.post("/funded-loans/{loan_id}/payments", response_model=PaymentResponse)
def make_payment(
    loan_id: str,
    body: AmountRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """Borrower pays at least the minimum installment from their balance"""
    outcome = engine.make_payment(actor_id, loan_id, body.amount)
    loan, payer, lender = outcome.records

    record_payment(body.amount, paid_off=loan.status == LoanStatus.PAID_OFF)
    publisher.publish("make_payment", actor_id, outcome, loan_id=loan.id, amount=body.amount)

    return PaymentResponse(
        funded_loan=FundedLoanSchema.model_validate(loan),
        payer=UserSchema.model_validate(payer),
        lender=UserSchema.model_validate(lender),
        events=event_list(outcome.events),
    )
