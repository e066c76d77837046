from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

# Permission flags and their defaults for new store users.
# Admins implicitly hold every flag.
PERMISSION_DEFAULTS = {
    "can_add_inventory": False,
    "can_remove_inventory": True,
    "can_view_inventory": True,
    "can_add_sale": True,
    "can_view_sales": True,
    "can_view_reports": False,
}


class User(db.Model):
    """
    User accounts for authentication and attribution.

    A store user is bound to exactly one store; an admin has none. The check
    constraint keeps the database honest, and actors.actor_for() turns the
    row into an Admin or StoreUser value so no caller repeats that test.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            "role = 'admin' OR store_id IS NOT NULL",
            name="ck_users_store_required_for_user_role",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    permissions = db.Column(db.JSON, nullable=False, default=lambda: dict(PERMISSION_DEFAULTS))

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Lockout bookkeeping
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", backref=db.backref("users", lazy=True))

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def is_locked(self, now=None) -> bool:
        now = now or utcnow()
        return self.locked_until is not None and self.locked_until > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "store_id": self.store_id,
            "permissions": dict(self.permissions or {}),
            "is_active": self.is_active,
            "failed_login_attempts": self.failed_login_attempts,
            "locked_until": to_utc_z(self.locked_until),
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class SessionToken(db.Model):
    """
    Session tokens for authentication.

    Tokens are hashed (SHA-256) before storage.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # SHA-256 of the plaintext token handed to the client
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
