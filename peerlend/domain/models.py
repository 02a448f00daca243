"""Domain models - pure Python dataclasses representing marketplace entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class RiskProfile(str, Enum):
    """Investment appetite declared by a user"""

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class LoanStatus(str, Enum):
    """Status field carried by loan requests and funded loans"""

    PENDING = "pending"
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class LoanState(str, Enum):
    """Lifecycle state of a loan request lineage"""

    PENDING = "pending"
    NEGOTIATING = "negotiating"
    FUNDED = "funded"
    PAID_OFF = "paid_off"
    DEFAULTED = "defaulted"


class CreditReportStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class EventKind(str, Enum):
    """Notification categories delivered by the external notifier"""

    LOAN_REQUESTED = "loan_requested"
    LOAN_FUNDED = "loan_funded"
    LOAN_PAID_OFF = "loan_paid_off"
    COUNTER_OFFER = "counter_offer"
    CREDIT_REQUEST = "credit_request"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_MADE = "payment_made"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    PROFILE = "profile"


class HistoryAction(str, Enum):
    REQUESTED = "requested"
    COUNTER_OFFERED = "counter_offered"
    ACCEPTED_OFFER = "accepted_offer"
    FUNDED = "funded"
    PAYMENT_MADE = "payment_made"


@dataclass
class User:
    """Marketplace participant; balances are owned by the ledger"""

    id: str
    email: str
    name: str
    account_created: datetime
    account_balance: float = 0.0
    credit_score: int = 650
    total_invested: float = 0.0
    total_returns: float = 0.0
    risk_profile: RiskProfile = RiskProfile.MODERATE
    verified: bool = False
    loans_funded: List[str] = field(default_factory=list)
    loans_borrowed: List[str] = field(default_factory=list)
    password_hash: str = field(default="", repr=False)


@dataclass(frozen=True)
class LoanTerms:
    """Amount, annual interest rate (%) and duration (months)"""

    amount: float
    interest_rate: float
    duration: int


@dataclass
class LoanRequest:
    """Open offer from a borrower, listed on the marketplace"""

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
    status: LoanStatus = LoanStatus.PENDING
    state: LoanState = LoanState.PENDING

    @property
    def terms(self) -> LoanTerms:
        return LoanTerms(self.amount, self.interest_rate, self.duration)


@dataclass
class Negotiation:
    """Pending counter-offer against a loan request"""

    id: str
    loan_id: str
    lender_id: str
    lender_name: str
    borrower_id: str
    borrower_name: str
    original: LoanTerms
    counter: LoanTerms
    created_at: datetime


@dataclass
class FundedLoan:
    """Loan created from a request at funding time and serviced by payments"""

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
    payments_made: int = 0
    status: LoanStatus = LoanStatus.ACTIVE


@dataclass
class CreditReportRequest:
    """Lender's request to see a borrower's credit data for one loan request"""

    id: str
    loan_id: str
    requester_id: str
    requester_name: str
    borrower_id: str
    borrower_name: str
    loan_amount: float
    created_at: datetime
    status: CreditReportStatus = CreditReportStatus.PENDING
    report: Optional[Dict[str, str]] = None


class Amortization(NamedTuple):
    """Fixed monthly payment and total interest, rounded to cents"""

    monthly_payment: float
    total_interest: float


@dataclass
class ScheduledPayment:
    """Projected installment, for display only"""

    payment_number: int
    due_date: date
    amount: float


@dataclass
class PortfolioSummary:
    """Dashboard figures for one user"""

    total_lent: float
    total_borrowed: float
    active_loans: int
    roi: float
    default_rate: float
    risk_distribution: Dict[str, int]


@dataclass(frozen=True)
class Event:
    """Outbound notification for the external notifier"""

    recipient_user_id: str
    kind: EventKind
    message: str


@dataclass(frozen=True)
class HistoryEntry:
    """Outbound activity log entry"""

    user_id: str
    action: HistoryAction
    loan_id: str
    amount: float
    timestamp: datetime


@dataclass
class Outcome:
    """Result of a successful engine operation"""

    value: Any
    records: List[Any] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    history: List[HistoryEntry] = field(default_factory=list)
