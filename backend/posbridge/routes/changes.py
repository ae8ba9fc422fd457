# Overview: Read-only access to the product change ledger.

from flask import Blueprint, jsonify, request

from ..decorators import require_api_key
from ..services import changelog_service
from ..time_utils import parse_iso_datetime


changes_bp = Blueprint("changes", __name__, url_prefix="/api/changes")


@changes_bp.get("")
@require_api_key
def list_changes_route():
    """
    Query parameters:
    - upstream_id: Only entries for this upstream product
    - since: ISO-8601 timestamp; entries created at or after it
    - limit: Maximum results (default: 200, max 1000)

    Newest first.
    """
    upstream_id = request.args.get("upstream_id", type=int)
    limit = max(1, min(request.args.get("limit", 200, type=int), 1000))
    try:
        since = parse_iso_datetime(request.args.get("since"))
    except ValueError:
        return jsonify({"error": "since must be an ISO-8601 timestamp"}), 400

    entries = changelog_service.list_changes(upstream_id=upstream_id, since=since, limit=limit)
    return jsonify({"items": [entry.to_dict() for entry in entries], "count": len(entries)}), 200
