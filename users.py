"""Credential store: user accounts, password hashes and public projection."""

import logging
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ConflictError, UnauthenticatedError, ValidationError
from models import User
from schemas import ChangePasswordRequest, ProfileUpdate, RegisterRequest, UserPublic
from security import get_password_hash, verify_password

logger = logging.getLogger(__name__)


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalars(select(User).where(User.email == email.strip().lower())).first()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def create_user(db: Session, pwd_context: CryptContext, data: RegisterRequest) -> User:
    if find_by_email(db, data.email):
        raise ConflictError("User already exists with this email")

    user = User(
        name=data.name,
        email=data.email,
        password_hash=get_password_hash(pwd_context, data.password),
        date_of_birth=data.date_of_birth,
        role="user",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration for the same email
        db.rollback()
        raise ConflictError("User already exists with this email")
    db.refresh(user)

    logger.info("Registered user %s", user.id)
    return user


def check_password(pwd_context: CryptContext, user: User, candidate: str) -> bool:
    return verify_password(pwd_context, candidate, user.password_hash)


def authenticate(db: Session, pwd_context: CryptContext, email: str, password: str) -> User:
    user = find_by_email(db, email)
    if not user or not check_password(pwd_context, user, password):
        logger.warning("Failed login attempt")
        raise UnauthenticatedError("Invalid credentials")
    return user


def update_profile(db: Session, user: User, data: ProfileUpdate) -> User:
    changes = data.model_fields_set
    if "name" in changes and data.name:
        user.name = data.name

    if "email" in changes and data.email and data.email != user.email:
        taken = find_by_email(db, data.email)
        if taken and taken.id != user.id:
            raise ConflictError("Email is already taken")
        user.email = data.email

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email is already taken")
    db.refresh(user)
    return user


def change_password(db: Session, pwd_context: CryptContext, user: User, data: ChangePasswordRequest) -> None:
    if not check_password(pwd_context, user, data.current_password):
        raise ValidationError.for_field("currentPassword", "Current password is not correct")

    user.password_hash = get_password_hash(pwd_context, data.new_password)
    db.commit()
    logger.info("Password changed for user %s", user.id)


def serialize_public(user: User) -> UserPublic:
    return UserPublic.model_validate(user)
