"""Counter-offer negotiation between lenders and borrowers"""

from fastapi import APIRouter, Depends

from peerlend.api.dependencies import OutcomePublisher, get_actor_id, get_engine
from peerlend.api.v1.schemas import (
    event_list,
    LoanRequestSchema,
    LoanTermsRequest,
    NegotiationResponse,
    NegotiationSchema,
    NegotiationsResponse,
)
from peerlend.domain.engine import LendingEngine

router = APIRouter()


@router.get("/negotiations", response_model=NegotiationsResponse)
def list_negotiations(
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
):
    """Open counter-offers where the actor is the lender or the borrower"""
    negotiations = engine.negotiations_for(actor_id)
    return NegotiationsResponse(negotiations=[NegotiationSchema.model_validate(n) for n in negotiations])


@router.post("/negotiations/{negotiation_id}/accept", response_model=NegotiationResponse)
def accept_offer(
    negotiation_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """Borrower adopts the counter terms; the request stays open for funding"""
    outcome = engine.accept_offer(actor_id, negotiation_id)
    request, negotiation = outcome.records
    publisher.publish("accept_offer", actor_id, outcome, loan_id=request.id)
    return NegotiationResponse(
        negotiation=NegotiationSchema.model_validate(negotiation),
        loan_request=LoanRequestSchema.model_validate(request),
        events=event_list(outcome.events),
    )


@router.post("/negotiations/{negotiation_id}/reject", response_model=NegotiationResponse)
def reject_offer(
    negotiation_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.reject_offer(actor_id, negotiation_id)
    publisher.publish("reject_offer", actor_id, outcome, loan_id=outcome.value.loan_id)
    return NegotiationResponse(
        negotiation=NegotiationSchema.model_validate(outcome.value),
        events=event_list(outcome.events),
    )


@router.post("/negotiations/{negotiation_id}/counter", response_model=NegotiationResponse, status_code=201)
def recounter_offer(
    negotiation_id: str,
    body: LoanTermsRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """Replace a counter-offer with new terms under a new negotiation id"""
    outcome = engine.recounter_offer(actor_id, negotiation_id, body.amount, body.interest_rate, body.duration)
    negotiation, request = outcome.records
    publisher.publish("recounter_offer", actor_id, outcome, loan_id=request.id)
    return NegotiationResponse(
        negotiation=NegotiationSchema.model_validate(negotiation),
        loan_request=LoanRequestSchema.model_validate(request),
        events=event_list(outcome.events),
    )
