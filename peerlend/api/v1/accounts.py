"""User accounts: signup, sign-in, profile edits, deposits and withdrawals"""

from fastapi import APIRouter, Depends

from peerlend.api.dependencies import OutcomePublisher, get_actor_id, get_engine
from peerlend.api.v1.schemas import (
    event_list,
    AmountRequest,
    ProfileUpdateRequest,
    SigninRequest,
    SignupRequest,
    UserResponse,
    UserSchema,
)
from peerlend.domain.engine import LendingEngine

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=201)
def register_user(
    body: SignupRequest,
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    """Create a marketplace account with a zero balance"""
    outcome = engine.register_user(
        email=body.email,
        password=body.password,
        name=body.name,
        credit_score=body.credit_score,
        risk_profile=body.risk_profile,
    )
    publisher.publish("register_user", outcome.value.id, outcome)
    return UserResponse(user=UserSchema.model_validate(outcome.value))


@router.post("/auth/signin", response_model=UserResponse)
def sign_in(body: SigninRequest, engine: LendingEngine = Depends(get_engine)):
    """Credential lookup; 401 when the email/password pair does not match"""
    user = engine.authenticate(body.email, body.password)
    return UserResponse(user=UserSchema.model_validate(user))


@router.get("/users/{user_id}", response_model=UserSchema)
def get_user(user_id: str, engine: LendingEngine = Depends(get_engine)):
    return UserSchema.model_validate(engine.get_user(user_id))


@router.patch("/users/me", response_model=UserResponse)
def edit_profile(
    body: ProfileUpdateRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.edit_profile(
        actor_id,
        name=body.name,
        email=body.email,
        risk_profile=body.risk_profile,
    )
    publisher.publish("edit_profile", actor_id, outcome)
    return UserResponse(user=UserSchema.model_validate(outcome.value), events=event_list(outcome.events))


@router.post("/accounts/deposit", response_model=UserResponse)
def deposit(
    body: AmountRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.deposit(actor_id, body.amount)
    publisher.publish("deposit", actor_id, outcome, amount=body.amount)
    return UserResponse(user=UserSchema.model_validate(outcome.value), events=event_list(outcome.events))


@router.post("/accounts/withdraw", response_model=UserResponse)
def withdraw(
    body: AmountRequest,
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
    publisher: OutcomePublisher = Depends(),
):
    outcome = engine.withdraw(actor_id, body.amount)
    publisher.publish("withdraw", actor_id, outcome, amount=body.amount)
    return UserResponse(user=UserSchema.model_validate(outcome.value), events=event_list(outcome.events))
