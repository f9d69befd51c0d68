import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from src.api.config import get_settings
from src.api.errors import Unauthenticated

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Setup password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)

# auto_error=False so a missing/malformed header reaches our own 401 envelope
bearer_scheme = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
    """Token signature, structure or validity window did not check out."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a plaintext password."""
    return pwd_context.hash(password)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed JWT carrying `{id: user_id}`, valid for one hour unless told otherwise."""
    settings = get_settings()
    ttl = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"id": user_id, "exp": datetime.now(tz=timezone.utc) + ttl}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> int:
    """
    Return the user id carried by `token`.

    Raises:
        InvalidToken if the signature does not match, the token is malformed,
        the id claim is missing, or the token has expired.
    """
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc

    user_id = payload.get("id")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise InvalidToken("Token has no usable id claim")
    return user_id


# PUBLIC_INTERFACE
def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    """
    Dependency that authenticates the request from its bearer token.

    Does not touch the store: a valid token for a since-deleted user still
    passes here, and the handler decides what that means.

    Raises:
        Unauthenticated (401) if the header is missing, not bearer-scheme,
        or the token fails verification.
    """
    if credentials is None:
        raise Unauthenticated("No token provided")
    try:
        return decode_access_token(credentials.credentials)
    except InvalidToken as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise Unauthenticated("Token invalid or expired") from exc
