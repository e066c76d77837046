# Overview: Who is calling: an admin or a user bound to one store.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .errors import ForbiddenError
from .models.auth import PERMISSION_DEFAULTS


@dataclass(frozen=True)
class Admin:
    user_id: int
    store_id: None = None
    is_admin: bool = field(default=True, init=False)

    def can_access_store(self, store_id: int | None) -> bool:
        return True

    def has_permission(self, flag: str) -> bool:
        return True


@dataclass(frozen=True)
class StoreUser:
    user_id: int
    store_id: int
    permissions: frozenset = frozenset()
    is_admin: bool = field(default=False, init=False)

    def can_access_store(self, store_id: int | None) -> bool:
        return store_id is not None and store_id == self.store_id

    def has_permission(self, flag: str) -> bool:
        return flag in self.permissions


Actor = Union[Admin, StoreUser]


def actor_for(user) -> Actor:
    """Build the actor value for an authenticated User row."""
    if user.is_admin:
        return Admin(user_id=user.id)
    flags = dict(PERMISSION_DEFAULTS)
    flags.update(user.permissions or {})
    return StoreUser(
        user_id=user.id,
        store_id=user.store_id,
        permissions=frozenset(name for name, granted in flags.items() if granted),
    )


def ensure_store_access(actor: Actor, store_id: int | None) -> None:
    if not actor.can_access_store(store_id):
        raise ForbiddenError("You do not have access to this store")


def ensure_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenError("Administrator role required")


def scoped_store_id(actor: Actor, requested_store_id: int | None) -> int | None:
    """
    Resolve the store filter for list endpoints.

    Admins may ask for any store (or none, meaning all stores); store users
    are always pinned to their own store.
    """
    if actor.is_admin:
        return requested_store_id
    if requested_store_id is not None:
        ensure_store_access(actor, requested_store_id)
    return actor.store_id
