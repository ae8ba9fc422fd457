# Overview: Operator routes that trigger sync jobs and token refresh; return the job summary envelope.

"""
Sync Routes

SECURITY: Every route requires the X-API-Key header (see require_api_key).

Responses:
- 200: job finished (row-level errors are reported in `count.error`)
- 400: invalid operator input (dates, year/month/day)
- 404: single invoice not found upstream
- 502: job aborted (credential missing, upstream failure, store failure)
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_api_key
from ..services import (
    category_sync_service,
    customer_sync_service,
    invoice_sync_service,
    pricebook_sync_service,
    product_sync_service,
    purchase_order_sync_service,
    scheduler_service,
)
from ..services.sync_service import SyncSummary, SyncValidationError
from ..services.upstream_client import build_client
from ..services.upstream_errors import UpstreamError


sync_bp = Blueprint("sync", __name__, url_prefix="/api")


def _summary_response(summary: SyncSummary):
    if summary.ok:
        status = 200
    elif summary.fatal:
        status = 502
    else:
        status = 404
    return jsonify(summary.to_dict()), status


def _run(job, *args):
    try:
        summary = job(*args)
    except SyncValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    return _summary_response(summary)


@sync_bp.post("/sync/products")
@require_api_key
def sync_products_route():
    return _run(product_sync_service.sync_products)


@sync_bp.post("/sync/customers")
@require_api_key
def sync_customers_route():
    return _run(customer_sync_service.sync_customers)


@sync_bp.post("/sync/categories")
@require_api_key
def sync_categories_route():
    return _run(category_sync_service.sync_categories)


@sync_bp.post("/sync/pricebooks")
@require_api_key
def sync_pricebooks_route():
    return _run(pricebook_sync_service.sync_pricebooks)


@sync_bp.post("/sync/invoices/<int:year>/<int:month>")
@require_api_key
def sync_invoices_month_route(year, month):
    return _run(invoice_sync_service.sync_invoices_by_month, year, month)


@sync_bp.post("/sync/invoices/<int:year>/<int:month>/<int:day>")
@require_api_key
def sync_invoices_day_route(year, month, day):
    return _run(invoice_sync_service.sync_invoices_by_day, year, month, day)


@sync_bp.post("/sync/invoices/code/<code>")
@require_api_key
def sync_invoice_code_route(code):
    return _run(invoice_sync_service.sync_invoice_by_code, code)


@sync_bp.post("/sync/purchase-orders")
@require_api_key
def sync_purchase_orders_route():
    """
    Request body (optional):
    {
        "from_date": "MM/DD/YYYY",
        "to_date": "MM/DD/YYYY"
    }

    Without dates, the trailing three months up to today are synced.
    """
    data = request.get_json(silent=True) or {}
    from_date = data.get("from_date")
    to_date = data.get("to_date")
    if not from_date and not to_date:
        from_date, to_date = purchase_order_sync_service.recent_range()
    elif not from_date or not to_date:
        return jsonify({"success": False, "message": "from_date and to_date must be given together"}), 400
    return _run(purchase_order_sync_service.sync_purchase_orders, from_date, to_date)


@sync_bp.post("/sync/all")
@require_api_key
def sync_all_route():
    """Run the daily sweep now; stops at the first job that aborts."""
    result = scheduler_service.run_sweep()
    return jsonify(result.to_dict()), 200 if result.stopped_at is None else 502


@sync_bp.post("/upstream/token/refresh")
@require_api_key
def refresh_token_route():
    try:
        stored = build_client().refresh()
    except UpstreamError as e:
        current_app.logger.exception("Upstream token refresh failed")
        return jsonify({"success": False, "message": str(e), **e.to_dict()}), 502
    return jsonify({"success": True, "message": "Token refreshed", "token": stored.to_dict()}), 200
