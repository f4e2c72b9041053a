# finance_api/api/v1/auth.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user, get_settings
from finance_api.core.config import SimpleSettings
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest, Token, UserOut
from finance_api.schemas.common import ok
from finance_api.services import users as user_service
from finance_api.services.security import create_access_token

router = APIRouter(tags=["auth"])


def _session_payload(user: models.User, settings: SimpleSettings) -> dict:
    token = Token(access_token=create_access_token(user.id, settings))
    return {"user": UserOut.model_validate(user), **token.model_dump()}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    settings: SimpleSettings = Depends(get_settings),
):
    user = user_service.register_user(db, payload.username, payload.email, payload.password, payload.full_name)
    return ok(_session_payload(user, settings), "User registered successfully")


@router.post("/login")
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    settings: SimpleSettings = Depends(get_settings),
):
    user = user_service.authenticate(db, payload.username_or_email, payload.password)
    return ok(_session_payload(user, settings), "Login successful")


@router.get("/me")
def me(current_user: models.User = Depends(get_current_user)):
    return ok(UserOut.model_validate(current_user))


@router.get("/verify")
def verify(current_user: models.User = Depends(get_current_user)):
    return ok({"valid": True, "user": UserOut.model_validate(current_user)}, "Token is valid")


@router.post("/refresh")
def refresh(
    payload: RefreshRequest,
    db: Session = Depends(get_db),
    settings: SimpleSettings = Depends(get_settings),
):
    user = user_service.refresh_user(db, payload.token, settings)
    return ok(_session_payload(user, settings), "Token refreshed successfully")
