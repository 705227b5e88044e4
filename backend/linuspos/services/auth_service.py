# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and user administration.

Every sale is attributed to the logged-in cashier, so every action starts
here. Passwords are hashed with bcrypt; session tokens are handled
separately (see session_service.py).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum length only; the shop sets its own policy
- authenticate() checks credentials first and the active flag second, so a
  disabled account is reported as disabled only to someone who knows its
  password
- The admin account (config ADMIN_USERNAME) can never be deactivated
"""

from __future__ import annotations

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_ADMIN, ROLE_STAFF, USER_RECORD_VERSION
from ..signals import notify_changed
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .permission_service import build_permission_row, permissions_for_role
from .session_service import revoke_all_user_sessions

MIN_PASSWORD_LENGTH = 6


class AccountDisabledError(Exception):
    """Credentials matched but the account is deactivated."""


class UserNotFoundError(Exception):
    pass


class ProtectedAccountError(ConflictError):
    """Raised when trying to deactivate the admin account."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str, *, check_strength: bool = True) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    check_strength=False is for migrating existing accounts whose passwords
    predate the length rule.
    """
    if check_strength:
        validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe. A malformed stored hash never verifies."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def admin_username() -> str:
    return current_app.config.get("ADMIN_USERNAME", "admin")


def is_protected_account(username: str) -> bool:
    return username == admin_username()


def get_user_by_username(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()


def authenticate(username: str, password: str) -> User | None:
    """
    Returns User if credentials are valid, None otherwise.
    Updates last_login_at on success.

    Raises:
        AccountDisabledError: credentials match but the account is inactive
    """
    if not username or not password:
        return None

    user = get_user_by_username(username.strip())
    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    if not user.is_active:
        raise AccountDisabledError("This account has been deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def _clean_required(value, field: str, max_len: int) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if len(text) > max_len:
        raise ValidationError(f"{field} exceeds max length {max_len}")
    return text


def create_user(
    username: str,
    password: str,
    name: str,
    role: str = ROLE_STAFF,
    permissions: dict | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    When `permissions` is None the role decides the defaults
    (admin: everything, staff: nothing).

    Raises:
        ValidationError: missing username/password/name, bad role or permissions
        ConflictError: username already exists
    """
    username = _clean_required(username, "username", 64)
    name = _clean_required(name, "name", 120)
    if not password:
        raise ValidationError("password is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if permissions is not None and not isinstance(permissions, dict):
        raise ValidationError("permissions must be an object")

    if get_user_by_username(username):
        raise ConflictError("Username already exists")

    flags = permissions if permissions is not None else permissions_for_role(role)
    try:
        permission_row = build_permission_row(flags)
    except ValueError as exc:
        raise ValidationError(str(exc))

    user = User(
        username=username,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
        record_version=USER_RECORD_VERSION,
    )
    user.permissions = permission_row

    db.session.add(user)
    db.session.commit()
    notify_changed(current_app._get_current_object(), "users")
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


def toggle_user_active(username: str) -> User:
    """
    Flip a user's active flag. Deactivating revokes the user's sessions.

    Raises:
        ProtectedAccountError: the admin account (nothing is written)
        UserNotFoundError: unknown username
    """
    if is_protected_account(username):
        current_app.logger.info("Rejected attempt to toggle protected account %s", username)
        raise ProtectedAccountError("The admin account cannot be deactivated")

    user = get_user_by_username(username)
    if not user:
        raise UserNotFoundError(f"User {username} not found")

    user.is_active = not user.is_active
    db.session.commit()

    if not user.is_active:
        revoke_all_user_sessions(user.id, reason="User account deactivated")

    notify_changed(current_app._get_current_object(), "users")
    return user


def ensure_admin(password: str, *, name: str = "Administrator") -> tuple[User, bool]:
    """
    Create the admin account if it does not exist.

    Returns (user, created). An existing admin is left untouched.
    """
    username = admin_username()
    existing = get_user_by_username(username)
    if existing:
        return existing, False
    return create_user(username, password, name, role=ROLE_ADMIN), True
