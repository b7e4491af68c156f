"""
Review Blueprint — the approval review surface.

Endpoints:
    GET /api/v1/reviews/reports
        Query params: job_id, status, start_date, end_date, report_type,
                      submitted_by, search, group=folder
    GET /api/v1/reviews/metrics        (same filters, status ignored)
    GET /api/v1/reviews/pending        Query params: job_id
    GET /api/v1/jobs/<job_id>/print-queue

Read-only: no writes happen behind these routes.
"""

import logging

from flask import Blueprint, jsonify, request

from neta_ops.middleware.actor_context import current_actor
from neta_ops.services import review_surface
from neta_ops.services.permission import check_permission

logger = logging.getLogger(__name__)

review_bp = Blueprint("reviews", __name__, url_prefix="/api/v1")


def _summary(report, asset):
    data = report.to_dict(include_payload=False, include_history=False)
    data["asset_id"] = asset.id if asset else None
    data["asset_name"] = asset.name if asset else None
    return data


@review_bp.route("/reviews/reports", methods=["GET"])
def list_reports():
    check_permission(current_actor(), "report_view")
    filters = review_surface.ReviewFilters.from_args(request.args)
    reports = review_surface.list_reports_for_review(filters)
    linked = review_surface.assets_by_report_id(reports)

    if request.args.get("group") == "folder":
        groups = review_surface.group_reports_by_folder(reports, linked)
        return jsonify({
            "total": len(reports),
            "folders": [
                {
                    "folder": g["folder"],
                    "count": len(g["items"]),
                    "items": [_summary(r, linked.get(r.id)) for r in g["items"]],
                }
                for g in groups
            ],
        })
    return jsonify({
        "total": len(reports),
        "items": [_summary(r, linked.get(r.id)) for r in reports],
    })


@review_bp.route("/reviews/metrics", methods=["GET"])
def metrics():
    check_permission(current_actor(), "report_view")
    filters = review_surface.ReviewFilters.from_args(request.args)
    return jsonify(review_surface.get_approval_metrics(filters))


@review_bp.route("/reviews/pending", methods=["GET"])
def pending():
    check_permission(current_actor(), "report_view")
    reports = review_surface.list_pending_reports(job_id=request.args.get("job_id") or None)
    linked = review_surface.assets_by_report_id(reports)
    return jsonify({
        "total": len(reports),
        "items": [_summary(r, linked.get(r.id)) for r in reports],
    })


@review_bp.route("/jobs/<job_id>/print-queue", methods=["GET"])
def print_queue(job_id):
    check_permission(current_actor(), "report_view")
    items = review_surface.list_printable_reports(job_id)
    return jsonify({"job_id": job_id, "total": len(items), "items": items})
