"""
Lending engine - the single entry point for every marketplace action.

Each operation validates its input, computes what it needs, mutates the
ledger and the registry, and returns an Outcome carrying the affected
records plus the notification events and history entries it produced.

Operations run one at a time under one lock. The ledger and registry log
the before-image of every record an operation changes and replay it if the
operation raises, so a failed action leaves no trace.
"""

import hashlib
import hmac
import logging
import secrets
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from peerlend.domain import calculator
from peerlend.domain.exceptions import (
    AuthenticationError,
    InvalidPaymentError,
    ValidationError,
)
from peerlend.domain.ledger import Ledger
from peerlend.domain.models import (
    Amortization,
    CreditReportRequest,
    Event,
    EventKind,
    FundedLoan,
    HistoryAction,
    HistoryEntry,
    LoanRequest,
    LoanState,
    LoanStatus,
    Negotiation,
    Outcome,
    PortfolioSummary,
    RiskProfile,
    ScheduledPayment,
    User,
)
from peerlend.domain.registry import LoanRegistry
from peerlend.domain.validation import (
    require_loan_terms,
    validate_amount,
    validate_email,
    validate_password,
)
from peerlend.utils.money import format_money

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt, _, _ = stored.partition("$")
    return bool(salt) and hmac.compare_digest(hash_password(password, salt), stored)


class LendingEngine:
    """Facade over the calculator, validator, ledger and registry"""

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        registry: Optional[LoanRegistry] = None,
        clock: Callable[[], datetime] = _utcnow,
        schedule_window: int = 6,
    ):
        self.ledger = ledger or Ledger()
        self.registry = registry or LoanRegistry()
        self.clock = clock
        self.schedule_window = schedule_window
        self._lock = threading.RLock()

    @contextmanager
    def _atomic(self, action: str) -> Iterator[None]:
        """Run one operation under the lock, rolling back on any exception"""
        with self._lock:
            ledger_checkpoint = self.ledger.begin()
            registry_checkpoint = self.registry.begin()
            try:
                yield
            except Exception:
                self.ledger.rollback(ledger_checkpoint)
                self.registry.rollback(registry_checkpoint)
                logger.debug("Rolled back %s", action)
                raise
            self.ledger.commit(ledger_checkpoint)
            self.registry.commit(registry_checkpoint)

    def _history(self, user_id: str, action: HistoryAction, loan_id: str, amount: float) -> HistoryEntry:
        return HistoryEntry(
            user_id=user_id,
            action=action,
            loan_id=loan_id,
            amount=amount,
            timestamp=self.clock(),
        )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register_user(
        self,
        email: str,
        password: str,
        name: str,
        credit_score: int = 650,
        risk_profile: RiskProfile = RiskProfile.MODERATE,
        verified: bool = False,
        user_id: Optional[str] = None,
    ) -> Outcome:
        with self._atomic("register_user"):
            errors: Dict[str, str] = {}
            if not validate_email(email):
                errors["email"] = "Invalid email format"
            elif self.ledger.find_by_email(email) is not None:
                errors["email"] = "Email is already registered"
            if not validate_password(password):
                errors["password"] = "Password must be at least 6 characters"
            if not name or not name.strip():
                errors["name"] = "Name is required"
            if errors:
                raise ValidationError(errors)

            user = self.ledger.add_user(
                User(
                    id=user_id or str(uuid.uuid4()),
                    email=email.strip(),
                    name=name.strip(),
                    account_created=self.clock(),
                    credit_score=credit_score,
                    risk_profile=RiskProfile(risk_profile),
                    verified=verified,
                    password_hash=hash_password(password),
                )
            )
        return Outcome(value=user, records=[user])

    def authenticate(self, email: str, password: str) -> User:
        """Credential lookup: the matching user, or AuthenticationError"""
        with self._lock:
            user = self.ledger.find_by_email(email or "")
            if user is None or not verify_password(password or "", user.password_hash):
                raise AuthenticationError("Invalid credentials")
            return user

    def edit_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        risk_profile: Optional[RiskProfile] = None,
    ) -> Outcome:
        with self._atomic("edit_profile"):
            user = self.ledger.get_user(user_id)
            if email is not None:
                if not validate_email(email):
                    raise ValidationError({"email": "Invalid email format"})
                other = self.ledger.find_by_email(email)
                if other is not None and other.id != user_id:
                    raise ValidationError({"email": "Email is already registered"})
            if name is not None and not name.strip():
                raise ValidationError({"name": "Name is required"})

            self.ledger.update_profile(user_id, name=name, email=email, risk_profile=risk_profile)
            events = [Event(user.id, EventKind.PROFILE, "Profile updated successfully")]
        return Outcome(value=user, records=[user], events=events)

    def deposit(self, user_id: str, amount: float) -> Outcome:
        if not validate_amount(amount) or float(amount) <= 0:
            raise ValidationError({"amount": "Invalid deposit amount"})

        with self._atomic("deposit"):
            self.ledger.deposit(user_id, float(amount))
            user = self.ledger.get_user(user_id)
            events = [Event(user.id, EventKind.DEPOSIT, f"Successfully deposited {format_money(float(amount))}")]
        return Outcome(value=user, records=[user], events=events)

    def withdraw(self, user_id: str, amount: float) -> Outcome:
        if not validate_amount(amount) or float(amount) <= 0:
            raise ValidationError({"amount": "Invalid withdrawal amount"})

        with self._atomic("withdraw"):
            self.ledger.withdraw(user_id, float(amount))
            user = self.ledger.get_user(user_id)
            events = [Event(user.id, EventKind.WITHDRAW, f"Successfully withdrew {format_money(float(amount))}")]
        return Outcome(value=user, records=[user], events=events)

    # ------------------------------------------------------------------
    # Loan requests and negotiation
    # ------------------------------------------------------------------

    def request_loan(self, borrower_id: str, amount: Any, rate: Any, duration: Any, purpose: str = "") -> Outcome:
        """List a new loan request; every other user is told it is available"""
        terms = require_loan_terms(amount, rate, duration)

        with self._atomic("request_loan"):
            borrower = self.ledger.get_user(borrower_id)
            request = self.registry.create_request(borrower, terms, purpose or "", self.clock())

            events = [
                Event(borrower.id, EventKind.LOAN_REQUESTED,
                      f"Loan request submitted for {format_money(terms.amount)}")
            ]
            events.extend(
                Event(user.id, EventKind.LOAN_REQUESTED,
                      f"New loan request available: {format_money(terms.amount)} at {terms.interest_rate}%")
                for user in self.ledger.users()
                if user.id != borrower.id
            )
            history = [self._history(borrower.id, HistoryAction.REQUESTED, request.id, request.amount)]
        return Outcome(value=request, records=[request], events=events, history=history)

    def counter_offer(self, lender_id: str, request_id: str, amount: Any, rate: Any, duration: Any) -> Outcome:
        terms = require_loan_terms(amount, rate, duration)

        with self._atomic("counter_offer"):
            lender = self.ledger.get_user(lender_id)
            negotiation = self.registry.propose_counter(request_id, lender, terms, self.clock())
            request = self.registry.get_request(request_id)

            events = [
                Event(negotiation.borrower_id, EventKind.COUNTER_OFFER,
                      f"{lender.name} made a counter offer on your loan request"),
                Event(lender.id, EventKind.COUNTER_OFFER, "Counter offer submitted successfully"),
            ]
            history = [self._history(lender.id, HistoryAction.COUNTER_OFFERED, request.id, request.amount)]
        return Outcome(value=negotiation, records=[negotiation, request], events=events, history=history)

    def accept_offer(self, borrower_id: str, negotiation_id: str) -> Outcome:
        """Adopt the counter terms; the request stays listed and keeps its risk rating"""
        with self._atomic("accept_offer"):
            borrower = self.ledger.get_user(borrower_id)
            negotiation = self.registry.get_negotiation(negotiation_id)
            previous_amount = self.registry.get_request(negotiation.loan_id).amount
            request = self.registry.accept_counter(negotiation_id, borrower.id)

            events = [
                Event(negotiation.lender_id, EventKind.COUNTER_OFFER,
                      f"{borrower.name} accepted your counter offer"),
                Event(borrower.id, EventKind.COUNTER_OFFER, "You accepted the counter offer"),
            ]
            history = [self._history(borrower.id, HistoryAction.ACCEPTED_OFFER, request.id, previous_amount)]
        return Outcome(value=request, records=[request, negotiation], events=events, history=history)

    def reject_offer(self, borrower_id: str, negotiation_id: str) -> Outcome:
        with self._atomic("reject_offer"):
            borrower = self.ledger.get_user(borrower_id)
            negotiation = self.registry.reject_counter(negotiation_id, borrower.id)

            events = [
                Event(negotiation.lender_id, EventKind.COUNTER_OFFER,
                      f"{borrower.name} rejected your counter offer"),
                Event(borrower.id, EventKind.COUNTER_OFFER, "You rejected the counter offer"),
            ]
        return Outcome(value=negotiation, records=[negotiation], events=events)

    def recounter_offer(self, actor_id: str, negotiation_id: str, amount: Any, rate: Any, duration: Any) -> Outcome:
        """Replace a standing counter-offer with new terms; either party may counter again"""
        terms = require_loan_terms(amount, rate, duration)

        with self._atomic("recounter_offer"):
            actor = self.ledger.get_user(actor_id)
            negotiation = self.registry.recounter(negotiation_id, actor.id, terms, self.clock())
            request = self.registry.get_request(negotiation.loan_id)

            counterparty = negotiation.borrower_id if actor.id == negotiation.lender_id else negotiation.lender_id
            events = [
                Event(counterparty, EventKind.COUNTER_OFFER, f"{actor.name} sent a new counter offer"),
                Event(actor.id, EventKind.COUNTER_OFFER, "Counter offer submitted successfully"),
            ]
            history = [self._history(actor.id, HistoryAction.COUNTER_OFFERED, request.id, request.amount)]
        return Outcome(value=negotiation, records=[negotiation, request], events=events, history=history)

    # ------------------------------------------------------------------
    # Funding and servicing
    # ------------------------------------------------------------------

    def fund_loan(self, lender_id: str, request_id: str) -> Outcome:
        """
        Fund an open request.

        The lender pays the full amount, the borrower receives it net of the
        platform fee, and the request with all of its negotiations and credit
        report requests is replaced by an active funded loan.
        """
        with self._atomic("fund_loan"):
            lender = self.ledger.get_user(lender_id)
            request = self.registry.check_fundable(request_id, lender.id)

            receipt = self.ledger.fund(lender.id, request.borrower_id, request.amount)
            loan = self.registry.fund_request(request_id, lender, self.clock())
            self.ledger.link_loan(lender.id, loan.borrower_id, loan.id)
            borrower = self.ledger.get_user(loan.borrower_id)

            events = [
                Event(borrower.id, EventKind.LOAN_FUNDED,
                      f"Loan funded! {format_money(receipt.credited)} deposited "
                      f"(after {self.ledger.fee_rate:.1%} fee)"),
                Event(lender.id, EventKind.LOAN_FUNDED, f"Successfully funded loan to {loan.borrower_name}"),
            ]
            history = [self._history(lender.id, HistoryAction.FUNDED, loan.id, loan.amount)]
        return Outcome(value=loan, records=[loan, lender, borrower], events=events, history=history)

    def make_payment(self, payer_id: str, loan_id: str, payment: Any) -> Outcome:
        """
        Pay an installment on an active loan.

        Raises:
            InvalidPaymentError: payment is not positive or below the minimum payment
            InsufficientFundsError: payment exceeds the payer's balance
        """
        try:
            payment = float(payment)
        except (TypeError, ValueError) as e:
            raise InvalidPaymentError("Invalid payment amount") from e
        if not payment > 0:
            raise InvalidPaymentError("Invalid payment amount")

        with self._atomic("make_payment"):
            payer = self.ledger.get_user(payer_id)
            loan = self.registry.check_payable(loan_id, payer.id)

            minimum = calculator.minimum_payment(loan)
            if payment < minimum:
                raise InvalidPaymentError(f"Minimum payment is {format_money(minimum)}")

            self.ledger.repay(payer.id, loan.lender_id, payment, loan.amount / loan.total_payments)
            loan = self.registry.apply_payment(loan_id, payer.id, payment)
            lender = self.ledger.get_user(loan.lender_id)

            events = [
                Event(lender.id, EventKind.PAYMENT_RECEIVED,
                      f"Received {format_money(payment)} payment from {payer.name}"),
                Event(payer.id, EventKind.PAYMENT_MADE,
                      f"Payment of {format_money(payment)} processed successfully"),
            ]
            if loan.status == LoanStatus.PAID_OFF:
                events.append(Event(payer.id, EventKind.LOAN_PAID_OFF, "Congratulations! Loan paid off in full"))
                events.append(Event(lender.id, EventKind.LOAN_PAID_OFF,
                                    f"{payer.name} paid off their loan in full"))
            history = [self._history(payer.id, HistoryAction.PAYMENT_MADE, loan.id, loan.amount)]
        return Outcome(value=loan, records=[loan, payer, lender], events=events, history=history)

    # ------------------------------------------------------------------
    # Credit reports
    # ------------------------------------------------------------------

    def request_credit_report(self, requester_id: str, request_id: str) -> Outcome:
        with self._atomic("request_credit_report"):
            requester = self.ledger.get_user(requester_id)
            credit_request = self.registry.request_credit_report(request_id, requester, self.clock())

            events = [
                Event(credit_request.borrower_id, EventKind.CREDIT_REQUEST,
                      f"{requester.name} requested your credit report for loan #{request_id}"),
                Event(requester.id, EventKind.CREDIT_REQUEST, "Credit report request sent"),
            ]
        return Outcome(value=credit_request, records=[credit_request], events=events)

    def submit_credit_report(self, borrower_id: str, credit_request_id: str, report: Dict[str, str]) -> Outcome:
        with self._atomic("submit_credit_report"):
            borrower = self.ledger.get_user(borrower_id)
            credit_request = self.registry.submit_credit_report(credit_request_id, borrower.id, report)

            events = [
                Event(credit_request.requester_id, EventKind.CREDIT_REQUEST,
                      f"{borrower.name} submitted their credit report"),
                Event(borrower.id, EventKind.CREDIT_REQUEST, "Credit report submitted successfully"),
            ]
        return Outcome(value=credit_request, records=[credit_request], events=events)

    def deny_credit_report(self, borrower_id: str, credit_request_id: str) -> Outcome:
        with self._atomic("deny_credit_report"):
            borrower = self.ledger.get_user(borrower_id)
            credit_request = self.registry.deny_credit_report(credit_request_id, borrower.id)

            events = [
                Event(credit_request.requester_id, EventKind.CREDIT_REQUEST,
                      f"{borrower.name} denied your credit report request"),
                Event(borrower.id, EventKind.CREDIT_REQUEST, "Credit report request denied"),
            ]
        return Outcome(value=credit_request, records=[credit_request], events=events)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        with self._lock:
            return self.ledger.get_user(user_id)

    def get_loan_request(self, request_id: str) -> LoanRequest:
        with self._lock:
            return self.registry.get_request(request_id)

    def get_funded_loan(self, loan_id: str) -> FundedLoan:
        with self._lock:
            return self.registry.get_funded(loan_id)

    def loan_state(self, request_id: str) -> LoanState:
        with self._lock:
            return self.registry.state_of(request_id)

    def marketplace(
        self,
        viewer_id: str,
        search: Optional[str] = None,
        risk_grade: Optional[str] = None,
        sort_by: str = "amount",
    ) -> List[LoanRequest]:
        with self._lock:
            return self.registry.marketplace(viewer_id, search=search, risk_grade=risk_grade, sort_by=sort_by)

    def negotiations_for(self, user_id: str) -> List[Negotiation]:
        with self._lock:
            return self.registry.negotiations_for(user_id)

    def credit_reports_for(self, user_id: str) -> List[CreditReportRequest]:
        with self._lock:
            return self.registry.credit_requests_for(user_id)

    def funded_loans_for(self, user_id: str, role: Optional[str] = None) -> List[FundedLoan]:
        with self._lock:
            return self.registry.funded_loans_for(user_id, role)

    def payment_schedule(self, loan_id: str) -> List[ScheduledPayment]:
        with self._lock:
            return calculator.payment_schedule(self.registry.get_funded(loan_id), self.schedule_window)

    def minimum_payment(self, loan_id: str) -> float:
        with self._lock:
            return calculator.minimum_payment(self.registry.get_funded(loan_id))

    def preview_terms(self, amount: Any, rate: Any, duration: Any) -> Amortization:
        """Monthly payment and total interest for terms entered in a form"""
        terms = require_loan_terms(amount, rate, duration)
        return calculator.amortized_payment(terms.amount, terms.interest_rate, terms.duration)

    def portfolio(self, user_id: str) -> PortfolioSummary:
        with self._lock:
            user = self.ledger.get_user(user_id)
            return calculator.portfolio_summary(user, self.registry.funded.values())
