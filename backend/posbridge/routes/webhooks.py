# Overview: Upstream POS webhook receiver; always acknowledges so upstream never disables the subscription.

"""
Webhook Routes

The upstream POS disables subscriptions that answer non-2xx, so every
outcome (bad signature, malformed body, processing failure) is reported
in a 200 envelope and surfaced through logs and /api/system/metrics.

Only /webhooks/upstream and the legacy /kiotviet/webhook/product-update
are routed; a POST to any other path gets a 404. A subscription pointed
at a different path needs a rewrite at the proxy or another route
decorator here.
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import webhook_service


webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.post("/webhooks/upstream")
@webhooks_bp.post("/kiotviet/webhook/product-update")
def upstream_webhook():
    raw_body = request.get_data(cache=True)
    signature = request.headers.get(webhook_service.SIGNATURE_HEADER)
    delivery_id = request.headers.get(webhook_service.DELIVERY_HEADER)
    current_app.logger.info(
        "Webhook delivery %s received (event=%s, %d bytes)",
        delivery_id,
        request.headers.get(webhook_service.EVENT_HEADER),
        len(raw_body),
    )

    try:
        result = webhook_service.handle_delivery(
            current_app._get_current_object(),
            raw_body,
            signature,
            delivery_id,
        )
    except Exception:
        current_app.logger.exception("Webhook delivery %s failed", delivery_id)
        return jsonify({"success": True, "error": "Processing failed", "delivery_id": delivery_id}), 200

    return jsonify(result.to_dict()), 200
