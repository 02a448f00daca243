"""Domain-specific exceptions"""

from typing import Dict


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Malformed or out-of-range input, reported per field"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{name}: {message}" for name, message in self.errors.items()))


class InsufficientFundsError(DomainException):
    """Transfer exceeds the payer's account balance"""

    pass


class InvalidPaymentError(DomainException):
    """Payment amount is non-positive or below the minimum payment"""

    pass


class NotFoundError(DomainException):
    """Referenced user, loan, negotiation or credit report request does not exist"""

    pass


class UnauthorizedError(DomainException):
    """Actor is not the party allowed to perform the action"""

    pass


class InvalidStateError(DomainException):
    """Action is not legal in the record's current lifecycle state"""

    pass


class AuthenticationError(DomainException):
    """Credential lookup failed"""

    pass
