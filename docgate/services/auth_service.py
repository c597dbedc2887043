"""Authentication service: user CRUD, password hashing, role management.

All password operations use bcrypt via passlib. Passwords are never stored
or logged in plaintext. The service layer owns user lifecycle; endpoints
are thin wrappers.
"""

import logging
from typing import Optional

from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from ..exceptions import ValidationError, AuthenticationError, UserNotFoundError
from ..models.user import User, ROLES, DEFAULT_ROLE
from . import audit_service

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def register_user(
    db: Session,
    email: str,
    password: str,
    name: str,
    role: str = DEFAULT_ROLE,
) -> User:
    """Create a new user account.

    The first user registered is automatically promoted to admin. Later
    users get *role* (reader by default) and no access rules; an admin
    must grant access explicitly.

    Raises ValidationError if email is already taken or inputs are invalid.
    """
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValidationError("Valid email address required", field="email")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )
    if not name.strip():
        raise ValidationError("Name required", field="name")
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}", field="role")

    existing = db.query(User).filter(User.email == email).first()
    if existing is not None:
        raise ValidationError("Email already registered", field="email")

    # FOR UPDATE so two concurrent first registrations can't both become admin.
    user_count = db.query(User).with_for_update().count()
    effective_role = "admin" if user_count == 0 else role

    user = User(
        name=name.strip(),
        email=email,
        password_hash=bcrypt.hash(password),
        role=effective_role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    if user_count == 0:
        logger.info("First user registered as admin: %s", email)
    audit_service.log(db, user.id, "register", "user", str(user.id), {"role": effective_role})
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """Validate credentials and return the user.

    Raises AuthenticationError on invalid email, wrong password, or inactive account.
    """
    email = email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    if user is None or user.password_hash is None:
        raise AuthenticationError("Invalid email or password")

    if not bcrypt.verify(password, user.password_hash):
        audit_service.log(db, user.id, "login_failed", "user", str(user.id))
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    audit_service.log(db, user.id, "login", "user", str(user.id))
    return user


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def require_user(db: Session, user_id: int) -> User:
    user = get_user_by_id(db, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at, User.id).all()


def update_user_role(db: Session, user_id: int, new_role: str, changed_by: Optional[int] = None) -> User:
    """Change a user's global role."""
    if new_role not in ROLES:
        raise ValidationError(
            f"Invalid role: {new_role}. Must be one of: {', '.join(ROLES)}.", field="role"
        )

    user = require_user(db, user_id)
    old_role = user.role
    user.role = new_role
    db.commit()
    db.refresh(user)
    audit_service.log(db, changed_by, "role_change", "user", str(user.id), {"from": old_role, "to": new_role})
    return user


def deactivate_user(db: Session, user_id: int, changed_by: Optional[int] = None) -> User:
    user = require_user(db, user_id)
    user.is_active = False
    db.commit()
    db.refresh(user)
    audit_service.log(db, changed_by, "deactivate", "user", str(user.id))
    return user
