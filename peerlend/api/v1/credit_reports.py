"""Credit report side protocol between prospective lenders and borrowers"""

from fastapi import APIRouter, Depends

from peerlend.api.dependencies import OutcomePublisher, get_actor_id, get_engine
from peerlend.api.v1.schemas import (
    CreditReportRequestSchema,
    CreditReportResponse,
    CreditReportsResponse,
    CreditReportSubmission,
    event_list,
)
from peerlend.domain.engine import LendingEngine

router = APIRouter()


@router.get("/credit-reports", response_model=CreditReportsResponse)
def list_credit_reports(
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
):
    """Requests the actor sent or received"""
    requests = engine.credit_reports_for(actor_id)
    return CreditReportsResponse(
        credit_requests=[CreditReportRequestSchema.model_validate(r) for r in requests]
    )


@router.post("/credit-reports/{credit_request_id}/submit", response_model=CreditReportResponse)
def submit_credit_report(
    credit_request_id: str,
    body: CreditReportSubmission,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.submit_credit_report(actor_id, credit_request_id, body.report)
    publisher.publish("submit_credit_report", actor_id, outcome, loan_id=outcome.value.loan_id)
    return CreditReportResponse(
        credit_request=CreditReportRequestSchema.model_validate(outcome.value),
        events=event_list(outcome.events),
    )


@router.post("/credit-reports/{credit_request_id}/deny", response_model=CreditReportResponse)
def deny_credit_report(
    credit_request_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.deny_credit_report(actor_id, credit_request_id)
    publisher.publish("deny_credit_report", actor_id, outcome, loan_id=outcome.value.loan_id)
    return CreditReportResponse(
        credit_request=CreditReportRequestSchema.model_validate(outcome.value),
        events=event_list(outcome.events),
    )
