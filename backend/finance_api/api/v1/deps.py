# finance_api/api/v1/deps.py
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from finance_api.core.config import SimpleSettings
from finance_api.core.errors import Internal, Unauthenticated
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.services.blob_store import BlobStore
from finance_api.services.receipts import ReceiptExtractor
from finance_api.services.security import (
    ExpiredToken,
    InvalidToken,
    TokenVerifier,
    VerifierUnavailable,
)

# auto_error=False so a missing header gets our own 401 message instead of a bare 403
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> SimpleSettings:
    return request.app.state.settings


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


def get_extractor(request: Request) -> ReceiptExtractor:
    return request.app.state.extractor


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: TokenVerifier = Depends(get_verifier),
    db: Session = Depends(get_db),
) -> models.User:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Access token required")

    try:
        identity = verifier.verify(credentials.credentials)
    except (InvalidToken, ExpiredToken) as exc:
        raise Unauthenticated(str(exc))
    except VerifierUnavailable:
        raise Internal("Authentication failed")

    if not identity.is_active:
        raise Unauthenticated("Account is deactivated")

    user = db.query(models.User).filter(models.User.id == identity.user_id).first()
    if user is None:
        raise Unauthenticated("Invalid token - user not found")
    return user
