"""Unit tests for loan term and account field validation"""

import pytest
from peerlend.domain.exceptions import ValidationError
from peerlend.domain.models import LoanTerms
from peerlend.domain.validation import (
    require_loan_terms,
    validate_amount,
    validate_email,
    validate_loan_terms,
    validate_password,
)


def test_valid_terms_have_no_errors():
    assert validate_loan_terms(15_000, 8.5, 36) == {}
    assert validate_loan_terms(1_000, 50, 1) == {}
    assert validate_loan_terms(1_000_000, 0.1, 360) == {}


@pytest.mark.parametrize("amount", [999, 1_000_001, "abc", None, float("nan")])
def test_amount_out_of_bounds(amount):
    errors = validate_loan_terms(amount, 10, 12)
    assert set(errors) == {"amount"}


@pytest.mark.parametrize("rate", [0, -1, 50.01, ""])
def test_rate_out_of_bounds(rate):
    errors = validate_loan_terms(5_000, rate, 12)
    assert set(errors) == {"rate"}


@pytest.mark.parametrize("duration", [0, 361, 12.5, "twelve"])
def test_duration_out_of_bounds(duration):
    errors = validate_loan_terms(5_000, 10, duration)
    assert set(errors) == {"duration"}


def test_all_field_errors_reported_together():
    errors = validate_loan_terms(0, 0, 0)
    assert set(errors) == {"amount", "rate", "duration"}


def test_require_loan_terms_normalizes_form_input():
    """String form values are accepted and converted"""
    terms = require_loan_terms("15000", "8.5", "36")
    assert terms == LoanTerms(amount=15_000.0, interest_rate=8.5, duration=36)
    assert isinstance(terms.duration, int)


def test_require_loan_terms_raises_with_field_errors():
    with pytest.raises(ValidationError) as exc_info:
        require_loan_terms(500, 8.5, 36)

    assert "amount" in exc_info.value.errors
    assert "amount:" in str(exc_info.value)


def test_email_and_password_rules():
    assert validate_email("lender@demo.com")
    assert not validate_email("lender@demo")
    assert not validate_email("lender demo@x.com")
    assert not validate_email(None)

    assert validate_password("demo123")
    assert not validate_password("12345")


def test_validate_amount_range():
    assert validate_amount(100)
    assert validate_amount("25.50")
    assert not validate_amount("abc")
    assert not validate_amount(-1)
    assert not validate_amount(150, maximum=100)
