# Overview: Flask API routes for the daily cash register; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import created, ok
from ..schemas import CashMovementRequest, CloseRegisterRequest, OpenRegisterRequest
from ..services import register_service
from ..validation import query_datetime

cash_register_bp = Blueprint("cash_register", __name__, url_prefix="/api/cash-register")


@cash_register_bp.get("/current")
@require_auth
def current_register():
    """The open register of a store with live totals, or data=null when closed."""
    current = register_service.current_register(g.actor, request.args.get("store_id", type=int))
    if current is None:
        return ok(None, message="No open cash register")
    return ok(current)


@cash_register_bp.get("/history")
@require_auth
def register_history():
    history = register_service.register_history(
        g.actor,
        store_id=request.args.get("store_id", type=int),
        start=query_datetime(request.args, "start"),
        end=query_datetime(request.args, "end"),
        limit=min(max(1, request.args.get("limit", 30, type=int)), 365),
    )
    return ok({
        "registers": [register.to_dict(include_movements=False) for register in history["registers"]],
        "stats": history["stats"],
    })


@cash_register_bp.post("/open")
@require_auth
def open_register():
    req = OpenRegisterRequest.from_json(request.get_json(silent=True))
    register = register_service.open_register(g.actor, req)
    return created(register.to_dict(), message="Cash register opened")


@cash_register_bp.post("/movement")
@require_auth
def add_movement():
    req = CashMovementRequest.from_json(request.get_json(silent=True))
    register = register_service.add_movement(g.actor, req)
    return created(register.to_dict(), message="Movement recorded")


@cash_register_bp.post("/close")
@require_auth
def close_register():
    req = CloseRegisterRequest.from_json(request.get_json(silent=True))
    register = register_service.close_register(g.actor, req)
    return ok(register.to_dict(), message="Cash register closed")


@cash_register_bp.get("/<int:register_id>")
@require_auth
def get_register(register_id: int):
    return ok(register_service.get_register(g.actor, register_id).to_dict())
