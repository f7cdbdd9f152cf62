import base64
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bcrypt import gensalt, hashpw
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models
from .database import get_db
from .errors import AuthenticationError, AuthorizationError

TOKEN_PATTERN = re.compile(r"^[0-9a-f]{32}$")

bearer_scheme = HTTPBearer(auto_error=False)


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(raw: str) -> Optional[datetime]:
    """Parse an ISO-8601 string to naive UTC; naive input is taken as UTC."""
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except (AttributeError, TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            return None
    return parsed


# Share tokens

def generate_token() -> str:
    return secrets.token_hex(16)


def is_valid_token(token) -> bool:
    return isinstance(token, str) and TOKEN_PATTERN.match(token) is not None


# Password utils

def _password_bytes(password: str) -> bytes:
    # Fixed-size digest; bcrypt reads at most 72 bytes of its input.
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str):
    """Return ``(hash, salt)`` for storage; the plaintext is never kept."""
    salt = gensalt()
    hashed = hashpw(_password_bytes(password), salt)
    return hashed.decode("utf-8"), salt.decode("utf-8")


def verify_password(password: Optional[str], salt: Optional[str], expected_hash: Optional[str]) -> bool:
    if password is None or not salt or not expected_hash:
        return False
    try:
        hashed = hashpw(_password_bytes(password), salt.encode("utf-8"))
    except ValueError:
        return False
    return hmac.compare_digest(hashed, expected_hash.encode("utf-8"))


# JWT utils

def create_access_token(settings, user: models.User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(user.id), "role": user.role, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required.")
    settings = request.app.state.settings
    try:
        payload = jwt.decode(credentials.credentials, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid authentication token.")
    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise AuthenticationError("Invalid authentication token.")
    user = db.get(models.User, int(subject))
    if user is None:
        raise AuthenticationError("Invalid authentication token.")
    return user


def require_admin(current_user: models.User = Depends(get_current_user)) -> models.User:
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required.")
    return current_user


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"
