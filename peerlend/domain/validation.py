"""Input constraint checks for loan terms and account fields"""

import math
import re
from typing import Any, Dict, Optional

from peerlend.domain.exceptions import ValidationError
from peerlend.domain.models import LoanTerms

MIN_LOAN_AMOUNT = 1_000
MAX_LOAN_AMOUNT = 1_000_000
MAX_INTEREST_RATE = 50
MIN_DURATION_MONTHS = 1
MAX_DURATION_MONTHS = 360
MIN_PASSWORD_LENGTH = 6

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _as_number(value: Any) -> Optional[float]:
    """Coerce form input to a finite float, None when it is not numeric"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_loan_terms(amount: Any, rate: Any, duration: Any) -> Dict[str, str]:
    """
    Check loan terms against marketplace bounds.

    Counter-offers are held to the same bounds as fresh requests; there is
    no constraint relative to the original terms.

    Returns:
        Mapping of field name to error message, empty when the terms are valid
    """
    errors: Dict[str, str] = {}

    amount_value = _as_number(amount)
    if amount_value is None or not MIN_LOAN_AMOUNT <= amount_value <= MAX_LOAN_AMOUNT:
        errors["amount"] = "Amount must be between $1,000 and $1,000,000"

    rate_value = _as_number(rate)
    if rate_value is None or not 0 < rate_value <= MAX_INTEREST_RATE:
        errors["rate"] = "Interest rate must be greater than 0% and at most 50%"

    duration_value = _as_number(duration)
    if (
        duration_value is None
        or not duration_value.is_integer()
        or not MIN_DURATION_MONTHS <= duration_value <= MAX_DURATION_MONTHS
    ):
        errors["duration"] = "Duration must be a whole number of months between 1 and 360"

    return errors


def require_loan_terms(amount: Any, rate: Any, duration: Any) -> LoanTerms:
    """Validate and normalize loan terms, raising ValidationError on any field error"""
    errors = validate_loan_terms(amount, rate, duration)
    if errors:
        raise ValidationError(errors)
    return LoanTerms(amount=float(amount), interest_rate=float(rate), duration=int(float(duration)))


def validate_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def validate_password(password: Optional[str]) -> bool:
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH


def validate_amount(amount: Any, minimum: float = 0, maximum: float = math.inf) -> bool:
    """Numeric and within the inclusive [minimum, maximum] range"""
    value = _as_number(amount)
    return value is not None and minimum <= value <= maximum
