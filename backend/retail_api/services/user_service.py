# Overview: Admin user management and self-service profile edits.

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..actors import Actor, ensure_admin
from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..models import User
from ..models.auth import PERMISSION_DEFAULTS, ROLE_ADMIN
from ..pagination import PageParams, paginate
from ..schemas import UNSET
from . import auth_service, session_service
from .auth_service import _ensure_email_free, _ensure_store
from .unit_of_work import UnitOfWork, run_in_unit_of_work

logger = logging.getLogger(__name__)


def _locked_user(uow: UnitOfWork, user_id: int) -> User:
    user = uow.locked(uow.query(User).filter_by(id=user_id)).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(actor: Actor, params: PageParams, *, role: str | None = None, store_id: int | None = None,
               is_active: bool | None = None, search: str | None = None):
    ensure_admin(actor)
    query = User.query
    if role:
        query = query.filter(User.role == role)
    if store_id is not None:
        query = query.filter(User.store_id == store_id)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    return paginate(query.order_by(User.name.asc(), User.id.asc()), params)


def get_user(actor: Actor, user_id: int) -> User:
    ensure_admin(actor)
    user = User.query.filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(actor: Actor, req) -> User:
    ensure_admin(actor)
    return auth_service.create_user(req)


def update_user(actor: Actor, user_id: int, req) -> User:
    """
    Patch a user (admin only).

    Switching a user to the store role requires a store, either already on
    the row or in the same request. Deactivating revokes every session.

    Raises:
        BusinessRuleError: An admin tried to deactivate or demote themselves
    """
    ensure_admin(actor)
    if user_id == actor.user_id and (req.is_active is False or req.role not in (UNSET, ROLE_ADMIN)):
        raise BusinessRuleError("You cannot deactivate or demote your own account")

    def _op(uow: UnitOfWork) -> User:
        user = _locked_user(uow, user_id)
        if req.email is not UNSET:
            _ensure_email_free(uow, req.email, exclude_id=user.id)
            user.email = req.email
        if req.name is not UNSET:
            user.name = req.name
        if req.role is not UNSET:
            user.role = req.role
        if req.store_id is not UNSET:
            _ensure_store(uow, req.store_id)
            user.store_id = req.store_id
        if user.role == ROLE_ADMIN:
            user.store_id = None
        elif user.store_id is None:
            raise ValidationError("Validation failed", errors=[
                {"field": "store_id", "message": "store users must be assigned to a store"},
            ])
        if req.permissions is not UNSET and req.permissions is not None:
            permissions = dict(PERMISSION_DEFAULTS)
            permissions.update(user.permissions or {})
            permissions.update(req.permissions)
            user.permissions = permissions
        if req.is_active is not UNSET:
            user.is_active = bool(req.is_active)
        return user

    user = run_in_unit_of_work(_op)
    if not user.is_active:
        session_service.revoke_all_user_sessions(user.id, "User account deactivated")
    return user


def deactivate_user(actor: Actor, user_id: int) -> User:
    ensure_admin(actor)
    if user_id == actor.user_id:
        raise BusinessRuleError("You cannot deactivate your own account")

    def _op(uow: UnitOfWork) -> User:
        user = _locked_user(uow, user_id)
        user.is_active = False
        return user

    user = run_in_unit_of_work(_op)
    session_service.revoke_all_user_sessions(user.id, "User account deactivated")
    logger.info("User %s deactivated by %s", user.email, actor.user_id)
    return user


def reset_login_attempts(actor: Actor | None, user_id: int) -> User:
    """Clear the failure counter and any lock; actor is None from the CLI."""
    if actor is not None:
        ensure_admin(actor)

    def _op(uow: UnitOfWork) -> User:
        user = _locked_user(uow, user_id)
        user.failed_login_attempts = 0
        user.locked_until = None
        return user

    user = run_in_unit_of_work(_op)
    logger.info("Login attempts reset for %s", user.email)
    return user


def update_profile(user_id: int, req) -> User:
    """Self-service edit: only name and email."""
    def _op(uow: UnitOfWork) -> User:
        user = _locked_user(uow, user_id)
        if req.email is not UNSET:
            _ensure_email_free(uow, req.email, exclude_id=user.id)
            user.email = req.email
        if req.name is not UNSET:
            user.name = req.name
        return user

    return run_in_unit_of_work(_op)
