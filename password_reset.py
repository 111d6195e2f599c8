"""Forgot/reset password flow verified by date of birth.

A request stores only the SHA-256 digest of a random secret together with an
expiry; the plaintext goes back to the caller, who delivers it. Consuming the
secret sets the new password and clears both reset columns in one commit.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import InvalidOrExpiredError, NotFoundError, ValidationError
from models import User, utcnow
from schemas import MIN_PASSWORD_LENGTH
from security import generate_reset_token, get_password_hash, hash_reset_token
from users import find_by_email

logger = logging.getLogger(__name__)

RESET_TOKEN_EXPIRE_MINUTES = 30
DOB_MISMATCH = "Date of birth does not match our records"


def _user_for_email(db: Session, email: str) -> User:
    user = find_by_email(db, email)
    if not user:
        raise NotFoundError("User not found with this email address")
    return user


def verify_date_of_birth(db: Session, email: str, date_of_birth: date) -> bool:
    user = _user_for_email(db, email)
    return user.date_of_birth == date_of_birth


def forgot(
    db: Session,
    email: str,
    date_of_birth: date,
    expire_minutes: int = RESET_TOKEN_EXPIRE_MINUTES,
    now: Optional[datetime] = None,
) -> str:
    """Issue a reset secret and return its plaintext. A newer request replaces an older one."""
    user = _user_for_email(db, email)
    if user.date_of_birth != date_of_birth:
        raise ValidationError.for_field("dateOfBirth", DOB_MISMATCH)

    token = generate_reset_token()
    user.set_reset_token(hash_reset_token(token), (now or utcnow()) + timedelta(minutes=expire_minutes))
    db.commit()

    logger.info("Issued password reset token for user %s", user.id)
    return token


def reset(
    db: Session,
    pwd_context: CryptContext,
    token: str,
    new_password: str,
    now: Optional[datetime] = None,
) -> User:
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError.for_field(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    user = db.scalars(
        select(User).where(
            User.reset_token == hash_reset_token(token),
            User.reset_token_expiry > (now or utcnow()),
        )
    ).first()
    if not user:
        raise InvalidOrExpiredError()

    user.password_hash = get_password_hash(pwd_context, new_password)
    user.clear_reset_token()
    db.commit()

    logger.info("Password reset completed for user %s", user.id)
    return user
