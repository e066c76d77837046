# Overview: Flask API routes for user administration; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import CreateUserRequest, UpdateUserRequest
from ..services import user_service
from ..validation import query_bool

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users():
    page = user_service.list_users(
        g.actor,
        page_params(request.args),
        role=request.args.get("role"),
        store_id=request.args.get("store_id", type=int),
        is_active=query_bool(request.args, "is_active"),
        search=request.args.get("search"),
    )
    return paginated(page)


@users_bp.get("/<int:user_id>")
@require_auth
@require_admin
def get_user(user_id: int):
    return ok(user_service.get_user(g.actor, user_id).to_dict())


@users_bp.post("")
@require_auth
@require_admin
def create_user():
    req = CreateUserRequest.from_json(request.get_json(silent=True))
    user = user_service.create_user(g.actor, req)
    return created(user.to_dict(), message="User created")


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user(user_id: int):
    req = UpdateUserRequest.from_json(request.get_json(silent=True))
    user = user_service.update_user(g.actor, user_id, req)
    return ok(user.to_dict(), message="User updated")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def deactivate_user(user_id: int):
    user = user_service.deactivate_user(g.actor, user_id)
    return ok(user.to_dict(), message="User deactivated")


@users_bp.post("/<int:user_id>/reset-attempts")
@require_auth
@require_admin
def reset_login_attempts(user_id: int):
    user = user_service.reset_login_attempts(g.actor, user_id)
    return ok(user.to_dict(), message="Login attempts reset")
