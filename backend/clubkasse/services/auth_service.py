# Overview: Staff credential check for the admin panel and the register.

"""
Single credential check, no sessions.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_LOG_ROUNDS, default 12)
- Minimum 8 characters with upper, lower and digit
- authenticate() answers "who is this and may they use this role?"; the
  frontends keep no server-side session
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import AdminUser
from ..models.auth import ADMIN_ROLES
from ..validation import ConflictError, ValidationError
from clubkasse.time_utils import utcnow
from .concurrency import run_in_transaction


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "weak_password"


class InvalidCredentialsError(Exception):
    """401: unknown user, inactive user or wrong password."""


class RoleNotAllowedError(Exception):
    """403: credentials are valid but not for the requested role."""


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_LOG_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe via bcrypt.checkpw. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_admin_user(username: str, password: str, role: str = "admin") -> AdminUser:
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if role not in ADMIN_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ADMIN_ROLES)}")
    password_hash = hash_password(password or "")

    def _op() -> AdminUser:
        if db.session.query(AdminUser).filter_by(username=username).first() is not None:
            raise ConflictError(f"User {username} already exists")
        user = AdminUser(username=username, password_hash=password_hash, role=role)
        db.session.add(user)
        db.session.flush()
        return user

    return run_in_transaction(db.session, _op)


def authenticate(username, password, role=None) -> dict:
    """
    Check a username/password pair, optionally for a specific role.

    Raises:
        ValidationError: username or password missing (400)
        InvalidCredentialsError: (401)
        RoleNotAllowedError: valid user, different role (403)
    """
    if not username or not password:
        raise ValidationError("username and password are required")
    if role is not None and role not in ADMIN_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ADMIN_ROLES)}")

    user = (
        db.session.query(AdminUser)
        .filter(AdminUser.username == str(username).strip(), AdminUser.is_active.is_(True))
        .first()
    )
    if user is None or not verify_password(str(password), user.password_hash):
        raise InvalidCredentialsError("Invalid credentials")
    if role is not None and user.role != role:
        raise RoleNotAllowedError("No permission for this role")

    def _op() -> None:
        user.last_login_at = utcnow()

    run_in_transaction(db.session, _op)
    return {
        "success": True,
        "user": {"id": user.id, "username": user.username, "role": user.role},
    }
