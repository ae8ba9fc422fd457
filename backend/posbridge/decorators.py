# Overview: Request decorators for operator API routes.

import hmac
from functools import wraps

from flask import current_app, jsonify, request

API_KEY_HEADER = "X-API-Key"


def require_api_key(f):
    """
    Require the shared operator key in the X-API-Key header.

    SECURITY: Returns 503 when SYNC_API_KEY is not configured (operator
    routes are disabled) and 401 when the header is missing or wrong.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("SYNC_API_KEY")
        if not expected:
            return jsonify({"error": "Operator API is disabled"}), 503

        provided = request.headers.get(API_KEY_HEADER) or ""
        if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected operator request to %s: bad API key", request.path)
            return jsonify({"error": "Invalid API key"}), 401

        return f(*args, **kwargs)

    return decorated_function
