# Overview: Password hashing, login with lockout, and user creation.

"""
Authentication Service

Every action must be attributable. Passwords are hashed with bcrypt
(BCRYPT_ROUNDS, default 12) and must pass the strength rules below.

LOCKOUT:
- Each failed password check increments failed_login_attempts.
- At MAX_LOGIN_ATTEMPTS the account is locked for LOCK_TIME_MINUTES.
- A locked account answers 423 without checking the password.
- A successful login resets the counter.

Session tokens are managed separately (see session_service.py).
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

import bcrypt
from flask import current_app

from ..errors import AccountLockedError, AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Store, User
from ..models.auth import PERMISSION_DEFAULTS, ROLE_ADMIN
from ..time_utils import utcnow
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str, field: str = "password"):
        super().__init__(message, errors=[{"field": field, "message": message}])


def validate_password_strength(password: str, field: str = "password") -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long", field)

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter", field)

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter", field)

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit", field)

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character", field)


def hash_password(password: str) -> str:
    """Hash a password with bcrypt after checking its strength."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; a malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _ensure_email_free(uow: UnitOfWork, email: str, exclude_id: int | None = None) -> None:
    query = uow.query(User).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("A user with this email already exists")


def _ensure_store(uow: UnitOfWork, store_id: int | None) -> None:
    if store_id is None:
        return
    store = uow.session.get(Store, store_id)
    if store is None or not store.is_active:
        raise NotFoundError(f"Store {store_id} not found")


def create_user(req) -> User:
    """
    Create a user from a CreateUserRequest.

    Admins carry no store; store users must name an active store. Permission
    flags default to PERMISSION_DEFAULTS and are overridden by the request.

    Raises:
        ConflictError: Email already taken
        PasswordValidationError: Weak password
    """
    password_hash = hash_password(req.password)

    def _op(uow: UnitOfWork) -> User:
        _ensure_email_free(uow, req.email)
        is_admin = req.role == ROLE_ADMIN
        if not is_admin:
            _ensure_store(uow, req.store_id)
        permissions = dict(PERMISSION_DEFAULTS)
        permissions.update(req.permissions or {})
        user = User(
            name=req.name,
            email=req.email,
            password_hash=password_hash,
            role=req.role,
            store_id=None if is_admin else req.store_id,
            permissions=permissions,
            is_active=True,
        )
        uow.add(user)
        uow.flush()
        return user

    user = run_in_unit_of_work(_op)
    logger.info("User %s created (%s)", user.email, user.role)
    return user


def _register_failure(user_id: int) -> int | None:
    """Count a failed attempt in its own unit of work; returns lock seconds if it locked."""
    config = current_app.config
    max_attempts = config.get("MAX_LOGIN_ATTEMPTS", 5)
    lock_minutes = config.get("LOCK_TIME_MINUTES", 15)

    def _op(uow: UnitOfWork) -> int | None:
        user = uow.locked(uow.query(User).filter_by(id=user_id)).first()
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= max_attempts:
            user.locked_until = utcnow() + timedelta(minutes=lock_minutes)
            user.failed_login_attempts = 0
            return lock_minutes * 60
        return None

    return run_in_unit_of_work(_op)


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and return the user.

    Raises:
        AuthenticationError: Unknown email, wrong password or inactive account
        AccountLockedError: Too many failed attempts
    """
    user = db.session.query(User).filter(User.email == email.lower()).first()
    if user is None:
        logger.info("Login failed: unknown email %s", email)
        raise AuthenticationError("Invalid credentials")

    now = utcnow()
    if user.is_locked(now):
        retry_after = int((user.locked_until - now).total_seconds()) + 1
        logger.warning("Login attempt on locked account %s", user.email)
        raise AccountLockedError(
            f"Account locked due to repeated failed logins. Try again in {retry_after // 60 + 1} minutes",
            retry_after_seconds=retry_after,
        )

    if not verify_password(password, user.password_hash):
        locked_for = _register_failure(user.id)
        if locked_for:
            logger.warning("Account %s locked for %s seconds", user.email, locked_for)
            raise AccountLockedError(
                "Account locked due to repeated failed logins",
                retry_after_seconds=locked_for,
            )
        logger.info("Login failed: wrong password for %s", user.email)
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        raise AuthenticationError("Account is inactive")

    def _op(uow: UnitOfWork) -> User:
        fresh = uow.locked(uow.query(User).filter_by(id=user.id)).first()
        fresh.failed_login_attempts = 0
        fresh.locked_until = None
        fresh.last_login_at = utcnow()
        return fresh

    return run_in_unit_of_work(_op)


def change_password(user_id: int, current_password: str, new_password: str) -> None:
    """
    Change a user's own password.

    Raises:
        AuthenticationError: current_password is wrong
        PasswordValidationError: new password too weak
    """
    user = db.session.get(User, user_id)
    if user is None or not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    try:
        new_hash = hash_password(new_password)
    except PasswordValidationError as exc:
        raise PasswordValidationError(exc.message, field="new_password") from exc

    def _op(uow: UnitOfWork) -> None:
        fresh = uow.locked(uow.query(User).filter_by(id=user_id)).first()
        fresh.password_hash = new_hash

    run_in_unit_of_work(_op)
    logger.info("Password changed for user %s", user_id)


def set_password(user_id: int, new_password: str) -> None:
    """Admin/CLI reset; skips the current-password check."""
    new_hash = hash_password(new_password)

    def _op(uow: UnitOfWork) -> None:
        user = uow.locked(uow.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError("User not found")
        user.password_hash = new_hash
        user.failed_login_attempts = 0
        user.locked_until = None

    run_in_unit_of_work(_op)
