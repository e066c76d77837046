# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login issues a bearer token; repeated failures lock the account (423)
- Logout revokes the presented token
- Self-registration is closed: /register is admin-only
"""

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..responses import created, ok
from ..schemas import ChangePasswordRequest, CreateUserRequest, LoginRequest, UpdateUserRequest
from ..services import auth_service, session_service, user_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    The token must be sent as `Authorization: Bearer <token>` on protected routes.
    """
    req = LoginRequest.from_json(request.get_json(silent=True))
    user = auth_service.authenticate(req.email, req.password)
    session, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return ok({
        "token": token,
        "expires_at": session.to_dict()["expires_at"],
        "user": user.to_dict(),
    }, message="Login successful")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok(g.current_user.to_dict())


@auth_bp.post("/register")
@require_auth
@require_admin
def register_route():
    """Users are created by administrators only."""
    req = CreateUserRequest.from_json(request.get_json(silent=True))
    user = auth_service.create_user(req)
    return created(user.to_dict(), message="User registered")


@auth_bp.put("/password")
@require_auth
def change_password_route():
    """Change own password; every other session of the user is revoked."""
    req = ChangePasswordRequest.from_json(request.get_json(silent=True))
    auth_service.change_password(g.current_user.id, req.current_password, req.new_password)
    session_service.revoke_all_user_sessions(
        g.current_user.id, "Password changed", keep_session_id=g.session_context.session.id,
    )
    return ok(message="Password updated")


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    req = UpdateUserRequest.from_json(request.get_json(silent=True))
    user = user_service.update_profile(g.current_user.id, req)
    return ok(user.to_dict(), message="Profile updated")
