import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import AuthenticationError, ValidationError
from .utils import hash_password, verify_password

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email) -> str:
    return str(email or "").strip().lower()


def register_user(db: Session, settings, name: str, email: str, password: str) -> models.User:
    name = str(name or "").strip()
    email = normalize_email(email)
    password = str(password or "")

    if not name or not email or not password:
        raise ValidationError("name, email and password are required.")
    if len(name) < 2 or len(name) > 60:
        raise ValidationError("Name must be between 2 and 60 characters.")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format.")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters.")
    if len(password) > 128:
        raise ValidationError("Password must be less than 129 characters.")

    if db.query(models.User).filter(models.User.email == email).first():
        raise ValidationError("Email already in use.")

    password_hash, password_salt = hash_password(password)
    role = models.ROLE_ADMIN if email == normalize_email(settings.admin_email) else models.ROLE_USER
    user = models.User(
        name=name,
        email=email,
        password_hash=password_hash,
        password_salt=password_salt,
        role=role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Email already in use.")
    db.refresh(user)
    logger.info(f"Registered user {user.id} with role {user.role}")
    return user


def authenticate(db: Session, email: str, password: str) -> models.User:
    email = normalize_email(email)
    password = str(password or "")
    if not email or not password:
        raise ValidationError("email and password are required.")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format.")
    if len(password) > 128:
        raise ValidationError("Invalid credentials.")

    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None or not verify_password(password, user.password_salt, user.password_hash):
        logger.warning("Failed login attempt")
        raise AuthenticationError("Invalid credentials.")
    return user


def ensure_admin_user(db: Session, settings) -> models.User:
    """Create the configured admin account, or promote an existing one."""
    email = normalize_email(settings.admin_email)
    existing = db.query(models.User).filter(models.User.email == email).first()
    if existing is not None:
        if existing.role != models.ROLE_ADMIN:
            existing.role = models.ROLE_ADMIN
            db.commit()
            logger.info(f"Promoted user {existing.id} to admin")
        return existing

    password_hash, password_salt = hash_password(settings.admin_password)
    admin = models.User(
        name=settings.admin_name,
        email=email,
        password_hash=password_hash,
        password_salt=password_salt,
        role=models.ROLE_ADMIN,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info(f"Created admin account {email}")
    return admin
