"""
Reports Blueprint — report creation and lifecycle transitions.

Endpoints:
    POST   /api/v1/jobs/<job_id>/reports
           Body: { "title", "report_type", "report_data": {...}, "template_slug"? }
           Returns: 201 with the draft report.

    GET    /api/v1/reports/<report_id>
    PUT    /api/v1/reports/<report_id>
           Body: { "title"?, "report_data"? }  (drafts only)
    GET    /api/v1/reports/<report_id>/history

    POST   /api/v1/reports/<report_id>/transition
           Body: { "action": "submit|resubmit|approve|reject|archive",
                   "comments"?, "asset_id"?, "expected_version"?, "timeout_ms"? }

    POST   /api/v1/reports/<report_id>/review
           Body: { "decision": "approved|rejected", "comments"?, "expected_version"? }

    GET    /api/v1/reports/<report_id>/actions

Layer contract:
    - Blueprint: parse input, resolve actor, call service, serialise.
    - NO db.session calls here — all writes owned by report_lifecycle.
    - NO inline role checks except report_view on reads.
"""

import logging

from flask import Blueprint, jsonify

from neta_ops.blueprints import json_body, optional_int
from neta_ops.middleware.actor_context import current_actor
from neta_ops.services import report_lifecycle, report_store
from neta_ops.services.permission import check_permission

logger = logging.getLogger(__name__)

reports_bp = Blueprint("reports", __name__, url_prefix="/api/v1")


def _report_response(report, status=200):
    body = report.to_dict()
    body["available_actions"] = report_lifecycle.get_available_actions(report, current_actor())
    linked = report_store.get_linked_asset(report.id)
    body["asset_id"] = linked.id if linked else None
    return jsonify(body), status


# ── Create / read / edit ──────────────────────────────────────────────────────


@reports_bp.route("/jobs/<job_id>/reports", methods=["POST"])
def create_report(job_id):
    data = json_body()
    report = report_lifecycle.create_report(
        current_actor(),
        job_id,
        data.get("title"),
        data.get("report_type"),
        data.get("report_data") or {},
        template_slug=data.get("template_slug"),
        timeout_ms=optional_int(data, "timeout_ms"),
    )
    return _report_response(report, 201)


@reports_bp.route("/reports/<report_id>", methods=["GET"])
def get_report(report_id):
    check_permission(current_actor(), "report_view")
    return _report_response(report_store.get_report(report_id))


@reports_bp.route("/reports/<report_id>", methods=["PUT"])
def update_report(report_id):
    data = json_body()
    report = report_lifecycle.edit_draft_report(
        report_id,
        current_actor(),
        title=data.get("title"),
        payload=data.get("report_data"),
        timeout_ms=optional_int(data, "timeout_ms"),
    )
    return _report_response(report)


@reports_bp.route("/reports/<report_id>/history", methods=["GET"])
def report_history(report_id):
    check_permission(current_actor(), "report_view")
    report = report_store.get_report(report_id)
    return jsonify({
        "report_id": report.id,
        "status": report.status,
        "current_version": report.current_version,
        "items": report.revision_history,
    })


# ── Transitions ───────────────────────────────────────────────────────────────


@reports_bp.route("/reports/<report_id>/transition", methods=["POST"])
def transition_report(report_id):
    data = json_body()
    action = (data.get("action") or "").strip()
    report = report_lifecycle.transition_report(
        report_id,
        action,
        current_actor(),
        asset_id=data.get("asset_id"),
        comments=data.get("comments"),
        expected_version=optional_int(data, "expected_version"),
        timeout_ms=optional_int(data, "timeout_ms"),
    )
    return _report_response(report)


@reports_bp.route("/reports/<report_id>/review", methods=["POST"])
def review_report(report_id):
    data = json_body()
    report = report_lifecycle.review_report(
        report_id,
        current_actor(),
        data.get("decision"),
        comments=data.get("comments"),
        expected_version=optional_int(data, "expected_version"),
        timeout_ms=optional_int(data, "timeout_ms"),
    )
    return _report_response(report)


@reports_bp.route("/reports/<report_id>/actions", methods=["GET"])
def available_actions(report_id):
    actor = current_actor()
    check_permission(actor, "report_view")
    report = report_store.get_report(report_id)
    return jsonify({
        "report_id": report.id,
        "status": report.status,
        "actions": report_lifecycle.get_available_actions(report, actor),
    })
