# finance_api/services/security.py
"""Password hashing + JWT helpers, and the identity verifier built on them.

We use passlib pbkdf2_sha256 (pure-python) to avoid bcrypt backend issues.
JWT encode/decode uses python-jose.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_api.core.config import SimpleSettings, settings as default_settings
from finance_api.db import models

logger = logging.getLogger(__name__)

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a plaintext password (never store plaintext)."""
    if password is None:
        raise ValueError("password cannot be None")
    return pwd_ctx.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify plain password against hashed. Returns False on any error."""
    if plain is None or hashed is None:
        return False
    try:
        return pwd_ctx.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def create_access_token(
    subject: Union[str, int],
    settings: SimpleSettings = default_settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token with subject (user id usually).
    - subject is stored under 'sub' as a string
    - 'iat' and 'exp' included (exp as int timestamp)
    """
    now = datetime.now(timezone.utc)
    if expires_delta is not None:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload: Dict[str, Any] = {
        "sub": str(subject),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str, settings: SimpleSettings = default_settings) -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises ExpiredSignatureError / JWTError on bad tokens.
    Returns the payload dict (contains 'sub', 'exp', etc).
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])


def token_subject(token: str, settings: SimpleSettings = default_settings) -> int:
    """
    User id carried by a token we signed, ignoring its expiry. Used only to
    reissue a session; anything badly signed or malformed raises InvalidToken.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM], options={"verify_exp": False})
    except JWTError:
        raise InvalidToken("Invalid token")
    return _subject_id(payload)


def _subject_id(payload: Dict[str, Any]) -> int:
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise InvalidToken("Invalid token subject")


@dataclass(frozen=True)
class Identity:
    user_id: int
    is_active: bool


class InvalidToken(Exception):
    """Token is malformed, badly signed or names no user."""


class ExpiredToken(Exception):
    """Token signature is fine but it is past its expiry."""


class VerifierUnavailable(Exception):
    """The verifier could not reach the user store."""


class TokenVerifier:
    """
    Turns a bearer token into an Identity.

    The three failure kinds stay distinct so the HTTP layer can answer
    401 / 401 / 500 without inspecting messages.
    """

    def __init__(self, session_factory: Callable[[], Session], settings: SimpleSettings = default_settings):
        self._session_factory = session_factory
        self._settings = settings

    def verify(self, token: str) -> Identity:
        try:
            payload = decode_access_token(token, self._settings)
        except ExpiredSignatureError:
            raise ExpiredToken("Token expired")
        except JWTError:
            raise InvalidToken("Invalid token")

        user_id = _subject_id(payload)

        db = self._session_factory()
        try:
            row = db.query(models.User.id, models.User.is_active).filter(models.User.id == user_id).first()
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed while verifying token")
            raise VerifierUnavailable("Authentication failed") from exc
        finally:
            db.close()

        if row is None:
            raise InvalidToken("Invalid token - user not found")
        return Identity(user_id=row.id, is_active=bool(row.is_active))
