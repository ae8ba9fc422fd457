# Overview: Operator review of mirrored purchase-order lines, with optional upstream corrections.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_api_key
from ..extensions import db
from ..models import LINE_STATUSES, PurchaseOrder, PurchaseOrderLine
from ..services import correction_service
from ..services.correction_service import CorrectionError
from ..services.credential_service import CredentialMissing
from ..services.upstream_errors import UpstreamError


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_api_key
def list_purchase_orders_route():
    """
    Query parameters:
    - status: pending | done | skipped (default: all)
    - limit: Maximum results (default: 50, max 200)
    """
    status = request.args.get("status")
    limit = request.args.get("limit", 50, type=int)
    limit = max(1, min(limit, 200))

    if status is not None and status not in LINE_STATUSES:
        return jsonify({"error": f"status must be one of {', '.join(LINE_STATUSES)}"}), 400

    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.lines.any(PurchaseOrderLine.local_status == status))
    orders = query.order_by(PurchaseOrder.purchase_date.desc()).limit(limit).all()
    return jsonify({"items": [order.to_dict(include_lines=True) for order in orders], "count": len(orders)}), 200


@purchase_orders_bp.post("/lines/<int:line_id>/review")
@require_api_key
def review_line_route(line_id):
    """
    Request body:
    {
        "status": "done" | "skipped",
        "correction": {"base_price": 12000, "cost": 9000, "description": "...", "branch_id": 1}
    }

    The correction is optional and only pushed upstream for "done".
    The review status is stored even if the upstream push fails (502).
    """
    data = request.get_json(silent=True) or {}
    try:
        result = correction_service.review_purchase_order_line(
            line_id,
            data.get("status"),
            correction=data.get("correction"),
        )
    except CorrectionError as e:
        return jsonify({"error": str(e)}), 400
    except (CredentialMissing, UpstreamError) as e:
        current_app.logger.exception("Correction push failed for line %s", line_id)
        return jsonify({"error": str(e), "review_stored": True}), 502
    except LookupError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(result), 200
