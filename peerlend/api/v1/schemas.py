"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Dict, List, Optional

from peerlend.domain.models import (
    CreditReportStatus,
    EventKind,
    HistoryAction,
    LoanState,
    LoanStatus,
    RiskProfile,
)


class RecordSchema(BaseModel):
    """Base for schemas read straight from domain dataclasses"""

    model_config = ConfigDict(from_attributes=True)


# ----------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------


class UserSchema(RecordSchema):
    id: str
    email: str
    name: str
    account_balance: float
    credit_score: int
    total_invested: float
    total_returns: float
    risk_profile: RiskProfile
    verified: bool
    account_created: datetime
    loans_funded: List[str]
    loans_borrowed: List[str]


class LoanTermsSchema(RecordSchema):
    amount: float
    interest_rate: float
    duration: int


class LoanRequestSchema(RecordSchema):
    id: str
    borrower_id: str
    borrower_name: str
    borrower_credit: int
    amount: float
    interest_rate: float
    duration: int
    purpose: str
    risk_rating: str
    request_date: datetime
    status: LoanStatus
    state: LoanState


class NegotiationSchema(RecordSchema):
    id: str
    loan_id: str
    lender_id: str
    lender_name: str
    borrower_id: str
    borrower_name: str
    original: LoanTermsSchema
    counter: LoanTermsSchema
    created_at: datetime


class FundedLoanSchema(RecordSchema):
    id: str
    request_id: str
    borrower_id: str
    borrower_name: str
    borrower_credit: int
    lender_id: str
    lender_name: str
    amount: float
    interest_rate: float
    duration: int
    purpose: str
    risk_rating: str
    funded_date: datetime
    outstanding_balance: float
    total_payments: int
    payments_made: int
    status: LoanStatus


class CreditReportRequestSchema(RecordSchema):
    id: str
    loan_id: str
    requester_id: str
    requester_name: str
    borrower_id: str
    borrower_name: str
    loan_amount: float
    created_at: datetime
    status: CreditReportStatus
    report: Optional[Dict[str, str]] = None


class EventSchema(RecordSchema):
    recipient_user_id: str
    kind: EventKind
    message: str


class ScheduledPaymentSchema(RecordSchema):
    payment_number: int
    due_date: date
    amount: float


# ----------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /v1/users"""

    email: str
    password: str
    name: str
    credit_score: int = Field(650, ge=300, le=850, description="Bureau credit score")
    risk_profile: RiskProfile = RiskProfile.MODERATE


class SigninRequest(BaseModel):
    email: str
    password: str


class ProfileUpdateRequest(BaseModel):
    """Request body for PATCH /v1/users/me; omitted fields stay unchanged"""

    name: Optional[str] = None
    email: Optional[str] = None
    risk_profile: Optional[RiskProfile] = None


class AmountRequest(BaseModel):
    """Deposit, withdrawal or payment amount in dollars"""

    amount: float


class LoanTermsRequest(BaseModel):
    """Terms as entered by the user; bounds are checked by the engine"""

    amount: float
    interest_rate: float = Field(..., description="Annual interest rate in percent")
    duration: int = Field(..., description="Term in months")


class LoanCreateRequest(LoanTermsRequest):
    purpose: str = ""


class CreditReportSubmission(BaseModel):
    """Free-form report, e.g. score, payment_history, credit_utilization"""

    report: Dict[str, str] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# Responses
# ----------------------------------------------------------------------


class UserResponse(BaseModel):
    user: UserSchema
    events: List[EventSchema] = []


class LoanRequestResponse(BaseModel):
    loan_request: LoanRequestSchema
    events: List[EventSchema] = []


class NegotiationResponse(BaseModel):
    negotiation: NegotiationSchema
    loan_request: Optional[LoanRequestSchema] = None
    events: List[EventSchema] = []


class FundingResponse(BaseModel):
    funded_loan: FundedLoanSchema
    lender: UserSchema
    borrower: UserSchema
    events: List[EventSchema] = []


class PaymentResponse(BaseModel):
    funded_loan: FundedLoanSchema
    payer: UserSchema
    lender: UserSchema
    events: List[EventSchema] = []


class CreditReportResponse(BaseModel):
    credit_request: CreditReportRequestSchema
    events: List[EventSchema] = []


class MarketplaceResponse(BaseModel):
    loan_requests: List[LoanRequestSchema]


class NegotiationsResponse(BaseModel):
    negotiations: List[NegotiationSchema]


class FundedLoansResponse(BaseModel):
    funded_loans: List[FundedLoanSchema]


class CreditReportsResponse(BaseModel):
    credit_requests: List[CreditReportRequestSchema]


class ScheduleResponse(BaseModel):
    """Projected next installments for GET /v1/funded-loans/{loan_id}/schedule"""

    loan_id: str
    minimum_payment: float
    outstanding_balance: float
    payments: List[ScheduledPaymentSchema]


class PreviewResponse(BaseModel):
    monthly_payment: float
    total_interest: float
    total_repayment: float
    risk_rating: Optional[str] = None


class PortfolioResponse(BaseModel):
    user_id: str
    account_balance: float
    total_invested: float
    total_returns: float
    total_lent: float
    total_borrowed: float
    active_loans: int
    roi: float
    default_rate: float
    risk_distribution: Dict[str, int]


class HistoryItem(BaseModel):
    """Single entry in a user's activity history"""

    model_config = ConfigDict(from_attributes=True)

    action: HistoryAction
    loan_id: str
    amount: float
    occurred_at: datetime


class HistoryResponse(BaseModel):
    """Response for GET /v1/history"""

    user_id: str
    entries: List[HistoryItem]


class NotificationItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: EventKind
    message: str
    is_read: bool
    created_at: datetime


class NotificationsResponse(BaseModel):
    user_id: str
    notifications: List[NotificationItem]


class ErrorResponse(BaseModel):
    error: str
    detail: str
    errors: Optional[Dict[str, str]] = None


def event_list(events) -> List[EventSchema]:
    return [EventSchema.model_validate(event) for event in events]
