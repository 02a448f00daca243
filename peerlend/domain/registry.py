"""
Loan registry - loan requests, negotiations, funded loans and credit report
requests, plus the lifecycle state machine that links them.

Lifecycle per request id:

    PENDING <-> NEGOTIATING -> FUNDED -> PAID_OFF
                                      -> DEFAULTED (declared, never entered)

A request is NEGOTIATING while at least one counter-offer references it.
Funding removes the request together with every negotiation and credit
report request that points at it.
"""

import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from peerlend.domain.calculator import RISK_GRADES, risk_rating
from peerlend.domain.changes import ChangeLog
from peerlend.domain.exceptions import (
    InvalidPaymentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from peerlend.domain.models import (
    CreditReportRequest,
    CreditReportStatus,
    FundedLoan,
    LoanRequest,
    LoanState,
    LoanStatus,
    LoanTerms,
    Negotiation,
    User,
)

OPEN_STATES = (LoanState.PENDING, LoanState.NEGOTIATING)
SORT_KEYS = ("amount", "rate", "risk")


def _new_id() -> str:
    return str(uuid.uuid4())


class LoanRegistry:
    """Owns loan records and every legal transition between them"""

    def __init__(self, id_factory: Callable[[], str] = _new_id):
        self._new_id = id_factory
        self.requests: Dict[str, LoanRequest] = {}
        self.negotiations: Dict[str, Negotiation] = {}
        self.funded: Dict[str, FundedLoan] = {}
        self.credit_requests: Dict[str, CreditReportRequest] = {}
        self._lineage: Dict[str, LoanState] = {}
        self._changes = ChangeLog()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> LoanRequest:
        request = self.requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Loan request {request_id} not found")
        return request

    def get_negotiation(self, negotiation_id: str) -> Negotiation:
        negotiation = self.negotiations.get(negotiation_id)
        if negotiation is None:
            raise NotFoundError(f"Negotiation {negotiation_id} not found")
        return negotiation

    def get_funded(self, loan_id: str) -> FundedLoan:
        loan = self.funded.get(loan_id)
        if loan is None:
            raise NotFoundError(f"Funded loan {loan_id} not found")
        return loan

    def get_credit_request(self, credit_request_id: str) -> CreditReportRequest:
        credit_request = self.credit_requests.get(credit_request_id)
        if credit_request is None:
            raise NotFoundError(f"Credit report request {credit_request_id} not found")
        return credit_request

    def state_of(self, request_id: str) -> LoanState:
        state = self._lineage.get(request_id)
        if state is None:
            raise NotFoundError(f"Loan request {request_id} not found")
        return state

    def _open_request(self, request_id: str) -> LoanRequest:
        request = self.get_request(request_id)
        if self._lineage[request_id] not in OPEN_STATES:
            raise InvalidStateError(f"Loan request {request_id} is {self._lineage[request_id].value}")
        return request

    def _set_state(self, request_id: str, state: LoanState) -> None:
        self._changes.put(self._lineage, request_id, state)
        request = self.requests.get(request_id)
        if request is not None:
            self._changes.touch(request)
            request.state = state

    def _refresh_negotiating(self, request_id: str) -> None:
        has_offers = any(n.loan_id == request_id for n in self.negotiations.values())
        self._set_state(request_id, LoanState.NEGOTIATING if has_offers else LoanState.PENDING)

    # ------------------------------------------------------------------
    # Requests and negotiations
    # ------------------------------------------------------------------

    def create_request(self, borrower: User, terms: LoanTerms, purpose: str, now: datetime) -> LoanRequest:
        """New marketplace listing; its risk rating is fixed here for good"""
        request = LoanRequest(
            id=self._new_id(),
            borrower_id=borrower.id,
            borrower_name=borrower.name,
            borrower_credit=borrower.credit_score,
            amount=terms.amount,
            interest_rate=terms.interest_rate,
            duration=terms.duration,
            purpose=purpose,
            risk_rating=risk_rating(borrower.credit_score, terms.amount, terms.duration),
            request_date=now,
        )
        self._changes.put(self.requests, request.id, request)
        self._set_state(request.id, LoanState.PENDING)
        return request

    def propose_counter(self, request_id: str, lender: User, terms: LoanTerms, now: datetime) -> Negotiation:
        request = self._open_request(request_id)
        if lender.id == request.borrower_id:
            raise UnauthorizedError("Borrowers cannot counter their own loan request")

        negotiation = Negotiation(
            id=self._new_id(),
            loan_id=request.id,
            lender_id=lender.id,
            lender_name=lender.name,
            borrower_id=request.borrower_id,
            borrower_name=request.borrower_name,
            original=request.terms,
            counter=terms,
            created_at=now,
        )
        self._changes.put(self.negotiations, negotiation.id, negotiation)
        self._set_state(request.id, LoanState.NEGOTIATING)
        return negotiation

    def accept_counter(self, negotiation_id: str, borrower_id: str) -> LoanRequest:
        """Replace the request's terms with the counter terms; the risk rating is kept"""
        negotiation = self.get_negotiation(negotiation_id)
        if negotiation.borrower_id != borrower_id:
            raise UnauthorizedError("Only the borrower can accept a counter offer")
        request = self._open_request(negotiation.loan_id)

        self._changes.touch(request)
        request.amount = negotiation.counter.amount
        request.interest_rate = negotiation.counter.interest_rate
        request.duration = negotiation.counter.duration

        self._changes.drop(self.negotiations, negotiation.id)
        self._refresh_negotiating(request.id)
        return request

    def reject_counter(self, negotiation_id: str, borrower_id: str) -> Negotiation:
        negotiation = self.get_negotiation(negotiation_id)
        if negotiation.borrower_id != borrower_id:
            raise UnauthorizedError("Only the borrower can reject a counter offer")

        self._changes.drop(self.negotiations, negotiation.id)
        self._refresh_negotiating(negotiation.loan_id)
        return negotiation

    def recounter(self, negotiation_id: str, actor_id: str, terms: LoanTerms, now: datetime) -> Negotiation:
        """
        Replace a counter-offer with updated terms.

        The original-terms snapshot is re-read from the request, not carried
        over from the replaced negotiation.
        """
        previous = self.get_negotiation(negotiation_id)
        if actor_id not in (previous.lender_id, previous.borrower_id):
            raise UnauthorizedError("Only the parties to a negotiation can counter it")
        request = self._open_request(previous.loan_id)

        negotiation = Negotiation(
            id=self._new_id(),
            loan_id=request.id,
            lender_id=previous.lender_id,
            lender_name=previous.lender_name,
            borrower_id=previous.borrower_id,
            borrower_name=previous.borrower_name,
            original=request.terms,
            counter=terms,
            created_at=now,
        )
        self._changes.drop(self.negotiations, previous.id)
        self._changes.put(self.negotiations, negotiation.id, negotiation)
        self._set_state(request.id, LoanState.NEGOTIATING)
        return negotiation

    # ------------------------------------------------------------------
    # Funding and servicing
    # ------------------------------------------------------------------

    def check_fundable(self, request_id: str, lender_id: str) -> LoanRequest:
        request = self._open_request(request_id)
        if lender_id == request.borrower_id:
            raise UnauthorizedError("Borrowers cannot fund their own loan request")
        return request

    def fund_request(self, request_id: str, lender: User, now: datetime) -> FundedLoan:
        """Convert an open request into an active funded loan and clear its side records"""
        request = self.check_fundable(request_id, lender.id)

        loan = FundedLoan(
            id=self._new_id(),
            request_id=request.id,
            borrower_id=request.borrower_id,
            borrower_name=request.borrower_name,
            borrower_credit=request.borrower_credit,
            lender_id=lender.id,
            lender_name=lender.name,
            amount=request.amount,
            interest_rate=request.interest_rate,
            duration=request.duration,
            purpose=request.purpose,
            risk_rating=request.risk_rating,
            funded_date=now,
            outstanding_balance=request.amount,
            total_payments=request.duration,
        )
        self._changes.put(self.funded, loan.id, loan)

        self._changes.drop(self.requests, request.id)
        for negotiation_id in [k for k, n in self.negotiations.items() if n.loan_id == request.id]:
            self._changes.drop(self.negotiations, negotiation_id)
        for credit_request_id in [k for k, r in self.credit_requests.items() if r.loan_id == request.id]:
            self._changes.drop(self.credit_requests, credit_request_id)
        self._set_state(request.id, LoanState.FUNDED)
        return loan

    def check_payable(self, loan_id: str, payer_id: str) -> FundedLoan:
        loan = self.get_funded(loan_id)
        if loan.borrower_id != payer_id:
            raise UnauthorizedError("Only the borrower can make payments on a loan")
        if loan.status != LoanStatus.ACTIVE:
            raise InvalidStateError(f"Loan {loan_id} is {loan.status.value}")
        return loan

    def apply_payment(self, loan_id: str, payer_id: str, payment: float) -> FundedLoan:
        """Reduce the outstanding balance (floored at zero) and count the installment"""
        loan = self.check_payable(loan_id, payer_id)
        if payment <= 0:
            raise InvalidPaymentError("Payment amount must be greater than zero")

        self._changes.touch(loan)
        loan.outstanding_balance = max(0.0, loan.outstanding_balance - payment)
        loan.payments_made += 1
        if loan.outstanding_balance == 0:
            loan.status = LoanStatus.PAID_OFF
            self._set_state(loan.request_id, LoanState.PAID_OFF)
        return loan

    # ------------------------------------------------------------------
    # Credit report protocol
    # ------------------------------------------------------------------

    def request_credit_report(self, request_id: str, requester: User, now: datetime) -> CreditReportRequest:
        request = self._open_request(request_id)
        if requester.id == request.borrower_id:
            raise UnauthorizedError("Borrowers cannot request their own credit report")
        if any(
            r.loan_id == request.id and r.requester_id == requester.id
            for r in self.credit_requests.values()
        ):
            raise InvalidStateError("Credit report already requested for this loan")

        credit_request = CreditReportRequest(
            id=self._new_id(),
            loan_id=request.id,
            requester_id=requester.id,
            requester_name=requester.name,
            borrower_id=request.borrower_id,
            borrower_name=request.borrower_name,
            loan_amount=request.amount,
            created_at=now,
        )
        self._changes.put(self.credit_requests, credit_request.id, credit_request)
        return credit_request

    def _pending_credit_request(self, credit_request_id: str, borrower_id: str) -> CreditReportRequest:
        credit_request = self.get_credit_request(credit_request_id)
        if credit_request.borrower_id != borrower_id:
            raise UnauthorizedError("Only the borrower can answer a credit report request")
        if credit_request.status != CreditReportStatus.PENDING:
            raise InvalidStateError("Credit report request was already answered")
        return credit_request

    def submit_credit_report(
        self, credit_request_id: str, borrower_id: str, report: Dict[str, str]
    ) -> CreditReportRequest:
        credit_request = self._pending_credit_request(credit_request_id, borrower_id)
        self._changes.touch(credit_request)
        credit_request.status = CreditReportStatus.APPROVED
        credit_request.report = dict(report)
        return credit_request

    def deny_credit_report(self, credit_request_id: str, borrower_id: str) -> CreditReportRequest:
        credit_request = self._pending_credit_request(credit_request_id, borrower_id)
        self._changes.drop(self.credit_requests, credit_request.id)
        return credit_request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def marketplace(
        self,
        viewer_id: str,
        search: Optional[str] = None,
        risk_grade: Optional[str] = None,
        sort_by: str = "amount",
    ) -> List[LoanRequest]:
        """
        Open requests the viewer could fund.

        search matches borrower name or purpose (case-insensitive); risk_grade
        matches the grade prefix ("A" matches A+, A and A-). Sorting is by
        amount or rate (highest first) or by risk grade (best first).
        """
        listing = [
            r for r in self.requests.values()
            if r.status == LoanStatus.PENDING and r.borrower_id != viewer_id
        ]
        if search:
            needle = search.lower()
            listing = [
                r for r in listing
                if needle in r.borrower_name.lower() or needle in (r.purpose or "").lower()
            ]
        if risk_grade:
            listing = [r for r in listing if r.risk_rating.startswith(risk_grade)]

        if sort_by == "amount":
            listing.sort(key=lambda r: r.amount, reverse=True)
        elif sort_by == "rate":
            listing.sort(key=lambda r: r.interest_rate, reverse=True)
        elif sort_by == "risk":
            listing.sort(key=lambda r: RISK_GRADES.index(r.risk_rating), reverse=True)
        return listing

    def negotiations_for(self, user_id: str) -> List[Negotiation]:
        return [
            n for n in self.negotiations.values()
            if user_id in (n.lender_id, n.borrower_id)
        ]

    def credit_requests_for(self, user_id: str) -> List[CreditReportRequest]:
        return [
            r for r in self.credit_requests.values()
            if user_id in (r.requester_id, r.borrower_id)
        ]

    def funded_loans_for(self, user_id: str, role: Optional[str] = None) -> List[FundedLoan]:
        """role: "borrowed", "funded" or None for both"""
        loans = []
        for loan in self.funded.values():
            if role in (None, "borrowed") and loan.borrower_id == user_id:
                loans.append(loan)
            elif role in (None, "funded") and loan.lender_id == user_id:
                loans.append(loan)
        return loans

    # ------------------------------------------------------------------
    # Operation boundaries
    # ------------------------------------------------------------------

    def begin(self) -> int:
        return self._changes.begin()

    def rollback(self, checkpoint: int) -> None:
        """Put back every record changed since `checkpoint`, as the same objects"""
        self._changes.rollback(checkpoint)

    def commit(self, checkpoint: int) -> None:
        self._changes.commit(checkpoint)
