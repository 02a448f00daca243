"""
Account-balance ledger for marketplace users.

Every balance change goes through `Ledger.transfer`, which checks all
preconditions before touching any user, so a transfer either applies every
field change or none of them. The platform fee taken at funding time leaves
the user balances and accumulates in `fees_collected`, which keeps

    sum(user balances) + fees_collected == deposits - withdrawals

true after every transfer.

User edits go through a ChangeLog while an operation is open, and the
journal is append-only, so rolling back a failed operation touches only the
users it changed and truncates the journal to its earlier length.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from peerlend.domain.changes import ChangeLog
from peerlend.domain.exceptions import InsufficientFundsError, NotFoundError, ValidationError
from peerlend.domain.models import RiskProfile, User

DEFAULT_FEE_RATE = 0.015


class TransferKind(str, Enum):
    FUNDING = "funding"
    REPAYMENT = "repayment"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class TransferReceipt:
    """Journal line for one applied transfer"""

    sequence: int
    kind: TransferKind
    source_id: Optional[str]
    target_id: Optional[str]
    amount: float
    credited: float
    fee: float
    returns: float


class Ledger:
    """In-memory user table with atomic balance transfers"""

    def __init__(self, fee_rate: float = DEFAULT_FEE_RATE):
        self.fee_rate = fee_rate
        self.fees_collected = 0.0
        self.journal: List[TransferReceipt] = []
        self._users: Dict[str, User] = {}
        self._changes = ChangeLog()

    # ------------------------------------------------------------------
    # User table
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> User:
        if user.id in self._users:
            raise ValidationError({"id": f"User {user.id} already exists"})
        self._changes.put(self._users, user.id, user)
        return user

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        return next((u for u in self._users.values() if u.email.lower() == email), None)

    def users(self) -> List[User]:
        return list(self._users.values())

    def total_balance(self) -> float:
        return sum(user.account_balance for user in self._users.values())

    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        risk_profile: Optional[RiskProfile] = None,
    ) -> User:
        """Edit display fields; balances only change through transfer()"""
        user = self.get_user(user_id)
        self._changes.touch(user)
        if name is not None:
            user.name = name
        if email is not None:
            user.email = email
        if risk_profile is not None:
            user.risk_profile = RiskProfile(risk_profile)
        return user

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer(
        self,
        kind: TransferKind,
        source_id: Optional[str],
        target_id: Optional[str],
        amount: float,
        fee: float = 0.0,
        returns: float = 0.0,
    ) -> TransferReceipt:
        """
        Move `amount` out of `source_id` and `amount - fee` into `target_id`.

        A missing source is an external deposit, a missing target an
        external withdrawal. Funding transfers count the amount towards the
        source's total_invested; repayment transfers add `returns` to the
        target's total_returns.

        Raises:
            ValidationError: amount is not positive or fee is out of range
            NotFoundError: source or target user does not exist
            InsufficientFundsError: source balance is below amount
        """
        if amount <= 0:
            raise ValidationError({"amount": "Amount must be greater than zero"})
        if not 0 <= fee <= amount:
            raise ValidationError({"fee": "Fee must be between zero and the transfer amount"})

        source = self.get_user(source_id) if source_id is not None else None
        target = self.get_user(target_id) if target_id is not None else None

        if source is not None and source.account_balance < amount:
            raise InsufficientFundsError(
                f"Balance {source.account_balance:.2f} is below transfer amount {amount:.2f}"
            )

        credited = amount - fee

        # Preconditions hold: apply every change
        for user in (source, target):
            if user is not None:
                self._changes.touch(user)
        if source is not None:
            source.account_balance -= amount
            if kind == TransferKind.FUNDING:
                source.total_invested += amount
        if target is not None:
            target.account_balance += credited
            if kind == TransferKind.REPAYMENT:
                target.total_returns += returns
        self.fees_collected += fee

        receipt = TransferReceipt(
            sequence=len(self.journal) + 1,
            kind=kind,
            source_id=source_id,
            target_id=target_id,
            amount=amount,
            credited=credited,
            fee=fee,
            returns=returns,
        )
        self.journal.append(receipt)
        return receipt

    def fund(self, lender_id: str, borrower_id: str, amount: float) -> TransferReceipt:
        """Principal leaves the lender; the borrower receives it net of the platform fee"""
        if lender_id == borrower_id:
            raise ValidationError({"lender": "Lender and borrower must be different users"})
        fee = amount * self.fee_rate
        return self.transfer(TransferKind.FUNDING, lender_id, borrower_id, amount, fee=fee)

    def repay(self, payer_id: str, payee_id: str, payment: float, principal_share: float) -> TransferReceipt:
        """
        Installment from borrower to lender.

        The lender's returns grow by the payment minus a flat per-installment
        principal share (loan amount / total payments), not by the interest
        part of the installment.
        """
        return self.transfer(
            TransferKind.REPAYMENT,
            payer_id,
            payee_id,
            payment,
            returns=payment - principal_share,
        )

    def deposit(self, user_id: str, amount: float) -> TransferReceipt:
        return self.transfer(TransferKind.DEPOSIT, None, user_id, amount)

    def withdraw(self, user_id: str, amount: float) -> TransferReceipt:
        return self.transfer(TransferKind.WITHDRAWAL, user_id, None, amount)

    def link_loan(self, lender_id: str, borrower_id: str, loan_id: str) -> None:
        lender = self.get_user(lender_id)
        borrower = self.get_user(borrower_id)
        self._changes.touch(lender)
        self._changes.touch(borrower)
        lender.loans_funded.append(loan_id)
        borrower.loans_borrowed.append(loan_id)

    # ------------------------------------------------------------------
    # Operation boundaries
    # ------------------------------------------------------------------

    def begin(self) -> Tuple[int, int, float]:
        """Open an operation; the checkpoint is cheap whatever the ledger size"""
        return self._changes.begin(), len(self.journal), self.fees_collected

    def rollback(self, checkpoint: Tuple[int, int, float]) -> None:
        """Undo every user change since `checkpoint`, editing the same User objects"""
        mark, journal_length, fees_collected = checkpoint
        self._changes.rollback(mark)
        del self.journal[journal_length:]
        self.fees_collected = fees_collected

    def commit(self, checkpoint: Tuple[int, int, float]) -> None:
        self._changes.commit(checkpoint[0])
