# Overview: Flask API routes for credits (fiado / apartado); parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import CreateCreditRequest, CreditPaymentRequest, ReasonRequest
from ..services import credit_service
from ..validation import query_datetime

credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.get("/summary")
@require_auth
def credit_summary():
    return ok(credit_service.credit_summary(g.actor, request.args.get("store_id", type=int)))


@credits_bp.get("")
@require_auth
def list_credits():
    page = credit_service.list_credits(
        g.actor,
        page_params(request.args),
        store_id=request.args.get("store_id", type=int),
        status=request.args.get("status"),
        credit_type=request.args.get("type"),
        search=request.args.get("search"),
        start=query_datetime(request.args, "start"),
        end=query_datetime(request.args, "end"),
    )
    return paginated(page, lambda credit: credit.to_dict(include_lines=False))


@credits_bp.get("/<int:credit_id>")
@require_auth
def get_credit(credit_id: int):
    return ok(credit_service.get_credit(g.actor, credit_id).to_dict())


@credits_bp.post("")
@require_auth
def create_credit():
    """
    Open a credit.

    fiado: stock leaves the shelf now. apartado: stock is reserved on paper
    and only decremented by the payment that completes it.
    """
    req = CreateCreditRequest.from_json(request.get_json(silent=True))
    credit = credit_service.create_credit(g.actor, req)
    return created(credit.to_dict(), message="Credit created")


@credits_bp.post("/<int:credit_id>/payment")
@require_auth
def add_payment(credit_id: int):
    req = CreditPaymentRequest.from_json(request.get_json(silent=True))
    credit = credit_service.add_payment(g.actor, credit_id, req)
    message = "Credit completed" if credit.status == "completed" else "Payment recorded"
    return ok(credit.to_dict(), message=message)


@credits_bp.put("/<int:credit_id>/cancel")
@require_auth
@require_admin
def cancel_credit(credit_id: int):
    req = ReasonRequest.from_json(request.get_json(silent=True))
    credit = credit_service.cancel_credit(g.actor, credit_id, req.reason)
    return ok(credit.to_dict(), message="Credit cancelled")
