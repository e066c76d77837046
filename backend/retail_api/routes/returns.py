# Overview: Flask API routes for returns and exchanges; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import CreateReturnRequest, ReasonRequest
from ..services import return_service
from ..validation import query_datetime

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


def _filters() -> dict:
    return {
        "store_id": request.args.get("store_id", type=int),
        "status": request.args.get("status"),
        "return_type": request.args.get("type"),
        "start": query_datetime(request.args, "start"),
        "end": query_datetime(request.args, "end"),
    }


@returns_bp.get("/search-sale")
@require_auth
def search_sale():
    document_number = request.args.get("document_number", "").strip()
    if not document_number:
        raise ValidationError("Validation failed", errors=[
            {"field": "document_number", "message": "is required"},
        ])
    return ok(return_service.search_sale(g.actor, document_number))


@returns_bp.get("/summary")
@require_auth
def return_summary():
    return ok(return_service.return_summary(g.actor, **_filters()))


@returns_bp.get("")
@require_auth
def list_returns():
    page = return_service.list_returns(g.actor, page_params(request.args), **_filters())
    return paginated(page, lambda document: document.to_dict(include_lines=False))


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return(return_id: int):
    return ok(return_service.get_return(g.actor, return_id).to_dict())


@returns_bp.post("")
@require_auth
def create_return():
    req = CreateReturnRequest.from_json(request.get_json(silent=True))
    document = return_service.create_return(g.actor, req)
    return created(document.to_dict(), message="Return created")


@returns_bp.post("/<int:return_id>/approve")
@require_auth
def approve_return(return_id: int):
    return ok(return_service.approve_return(g.actor, return_id).to_dict(), message="Return approved")


@returns_bp.post("/<int:return_id>/complete")
@require_auth
def complete_return(return_id: int):
    """Restock returned lines and, for exchanges, take the replacement lines off the shelf."""
    document = return_service.complete_return(g.actor, return_id)
    return ok(document.to_dict(), message="Return completed")


@returns_bp.post("/<int:return_id>/reject")
@require_auth
def reject_return(return_id: int):
    req = ReasonRequest.from_json(request.get_json(silent=True))
    document = return_service.reject_return(g.actor, return_id, req.reason)
    return ok(document.to_dict(), message="Return rejected")
