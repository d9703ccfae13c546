"""Password hashing and bearer token issuance/verification."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
import logging

import bcrypt
import jwt

from app.settings import settings

log = logging.getLogger(__name__)


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of verifying a bearer token."""
    status: TokenStatus
    user_id: Optional[int] = None


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.password_hash_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def create_access_token(user_id: int, expires_in: Optional[int] = None) -> str:
    expires = expires_in if expires_in is not None else settings.access_token_expire_seconds
    payload = {
        "id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> TokenCheck:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        return TokenCheck(TokenStatus.EXPIRED)
    except jwt.InvalidTokenError as e:
        log.debug("Rejected token: %s", e)
        return TokenCheck(TokenStatus.INVALID)

    user_id = payload.get("id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return TokenCheck(TokenStatus.INVALID)
    return TokenCheck(TokenStatus.VALID, user_id=user_id)
