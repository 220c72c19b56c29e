"""Admin blueprint: /api/v1/admin/activities/*

Read endpoints for company admins, scoped to the caller's company by the
tenant middleware. Bulk ingestion is for platform admins only, since a
batch can span companies.

Route Map:
  GET  /api/v1/admin/activities            Filtered listing, newest first
  GET  /api/v1/admin/activities/summary    Windowed counts by dimension
  GET  /api/v1/admin/activities/stats      Dashboard stats bundle
  GET  /api/v1/admin/activities/overview   Trends, top users, peak hours
  POST /api/v1/admin/activities/bulk       Bulk ingestion
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy.orm import joinedload

from activity_app.decorators import activity_viewer_required, admin_required
from activity_app.extensions import limiter
from activity_app.models.activity import Activity
from activity_app.services.activity_stats import (
    generate_overview,
    generate_stats,
    serialize_activity,
)
from activity_app.services.activity_summary import generate_summary
from activity_app.services.activity_tracker import bulk_track

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")

DEFAULT_LIMIT = 25
MAX_LIMIT = 100


def _limit_param():
    try:
        limit = int(request.args.get("limit", DEFAULT_LIMIT))
    except ValueError:
        limit = DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


@admin_bp.route("/activities")
@activity_viewer_required
def activities():
    """Filtered listing: user_id, activity_type, start_date, end_date, limit."""
    params = {
        key: request.args.get(key)
        for key in ("user_id", "activity_type", "start_date", "end_date")
    }
    try:
        query = Activity.filter_by_params(params)
    except ValueError as e:
        return jsonify({"error": f"Invalid date: {e}"}), 400

    records = query.options(joinedload(Activity.user)).limit(_limit_param()).all()
    return jsonify({
        "activities": [serialize_activity(a) for a in records],
    })


@admin_bp.route("/activities/summary")
@activity_viewer_required
def summary():
    period = request.args.get("period", "day")
    group_by = request.args.get("group_by", "activity_type")
    data = generate_summary(current_user.company, period=period, group_by=group_by)
    # JSON object keys must be strings; hour buckets are ints internally.
    data["data"] = {str(k): v for k, v in data["data"].items()}
    return jsonify(data)


@admin_bp.route("/activities/stats")
@activity_viewer_required
def stats():
    return jsonify(generate_stats(current_user.company))


@admin_bp.route("/activities/overview")
@activity_viewer_required
def overview():
    return jsonify(generate_overview(current_user.company))


@admin_bp.route("/activities/bulk", methods=["POST"])
@admin_required
@limiter.limit("30 per minute")
def bulk():
    data = request.get_json(silent=True) or {}
    entries = data.get("activities")
    if not isinstance(entries, list):
        return jsonify({"error": "'activities' must be a list"}), 400

    result = bulk_track(entries)
    result["results"] = [
        {
            "success": r["success"],
            "reason": r["reason"],
            **({"activity_id": r["record"].id} if "record" in r else {}),
        }
        for r in result["results"]
    ]
    logger.info(
        f"Bulk track by {current_user.id}: {result['succeeded']}/{result['total']} succeeded"
    )
    return jsonify(result)
