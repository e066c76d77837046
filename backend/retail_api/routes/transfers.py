# Overview: Flask API routes for inter-store transfers; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..pagination import page_params
from ..responses import created, ok, paginated
from ..schemas import CreateTransferRequest, ReasonRequest, ReceiveTransferRequest
from ..services import transfer_service

transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("/summary")
@require_auth
def transfer_summary():
    return ok(transfer_service.transfer_summary(g.actor, request.args.get("store_id", type=int)))


@transfers_bp.get("")
@require_auth
def list_transfers():
    page = transfer_service.list_transfers(
        g.actor,
        page_params(request.args),
        status=request.args.get("status"),
        store_id=request.args.get("store_id", type=int),
        direction=request.args.get("direction"),
    )
    return paginated(page, lambda transfer: transfer.to_dict(include_lines=False))


@transfers_bp.post("")
@require_auth
def create_transfer():
    req = CreateTransferRequest.from_json(request.get_json(silent=True))
    transfer = transfer_service.create_transfer(g.actor, req)
    return created(transfer.to_dict(), message="Transfer created")


@transfers_bp.get("/<int:transfer_id>")
@require_auth
def get_transfer(transfer_id: int):
    return ok(transfer_service.get_transfer(g.actor, transfer_id).to_dict())


@transfers_bp.put("/<int:transfer_id>/send")
@require_auth
def send_transfer(transfer_id: int):
    transfer = transfer_service.send_transfer(g.actor, transfer_id)
    return ok(transfer.to_dict(), message="Transfer sent")


@transfers_bp.put("/<int:transfer_id>/receive")
@require_auth
def receive_transfer(transfer_id: int):
    req = ReceiveTransferRequest.from_json(request.get_json(silent=True))
    transfer = transfer_service.receive_transfer(g.actor, transfer_id, req)
    return ok(transfer.to_dict(), message="Transfer received")


@transfers_bp.put("/<int:transfer_id>/cancel")
@require_auth
@require_admin
def cancel_transfer(transfer_id: int):
    req = ReasonRequest.from_json(request.get_json(silent=True))
    transfer = transfer_service.cancel_transfer(g.actor, transfer_id, req.reason)
    return ok(transfer.to_dict(), message="Transfer cancelled")
