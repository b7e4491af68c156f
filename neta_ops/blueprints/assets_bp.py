"""
Job Assets Blueprint — the job asset view and asset-side status changes.

Endpoints:
    GET    /api/v1/jobs/<job_id>/assets
           Query params: status (all|in_progress|ready_for_review|approved|issue),
                         search, group=folder
    POST   /api/v1/jobs/<job_id>/assets
           Body: { "name", "file_url", "status"?, "template_type"? }
    POST   /api/v1/jobs/<job_id>/assets/<asset_id>/link
    DELETE /api/v1/jobs/<job_id>/assets/<asset_id>
    PUT    /api/v1/jobs/<job_id>/assets/<asset_id>/status
           Body: { "status", "confirm"? }
    GET    /api/v1/assets/<asset_id>
"""

import logging

from flask import Blueprint, jsonify, request

from neta_ops.blueprints import json_body, optional_bool, optional_int
from neta_ops.middleware.actor_context import current_actor
from neta_ops.services import asset_registry, job_asset_service, report_lifecycle, review_surface
from neta_ops.services.permission import check_permission

logger = logging.getLogger(__name__)

assets_bp = Blueprint("assets", __name__, url_prefix="/api/v1")


@assets_bp.route("/jobs/<job_id>/assets", methods=["GET"])
def list_job_assets(job_id):
    check_permission(current_actor(), "report_view")
    assets = review_surface.filter_job_assets(
        asset_registry.list_assets_for_job(job_id),
        status_tab=request.args.get("status", "all"),
        search=request.args.get("search"),
    )
    if request.args.get("group") == "folder":
        groups = review_surface.group_assets_by_folder(assets)
        return jsonify({
            "job_id": job_id,
            "total": len(assets),
            "folders": [
                {"folder": g["folder"], "count": len(g["items"]), "items": [a.to_dict() for a in g["items"]]}
                for g in groups
            ],
        })
    assets = sorted(assets, key=lambda a: (a.created_at is None, a.created_at), reverse=True)
    return jsonify({"job_id": job_id, "total": len(assets), "items": [a.to_dict() for a in assets]})


@assets_bp.route("/jobs/<job_id>/assets", methods=["POST"])
def add_job_asset(job_id):
    data = json_body()
    asset = job_asset_service.add_upload_asset(
        current_actor(),
        job_id,
        data.get("name"),
        data.get("file_url"),
        status=data.get("status") or "in_progress",
        template_type=data.get("template_type"),
    )
    return jsonify(asset.to_dict()), 201


@assets_bp.route("/jobs/<job_id>/assets/<asset_id>/link", methods=["POST"])
def link_job_asset(job_id, asset_id):
    link = job_asset_service.link_existing_asset(current_actor(), job_id, asset_id)
    return jsonify(link.to_dict()), 201


@assets_bp.route("/jobs/<job_id>/assets/<asset_id>", methods=["DELETE"])
def unlink_job_asset(job_id, asset_id):
    result = job_asset_service.detach_asset(current_actor(), job_id, asset_id)
    return jsonify(result), 200


@assets_bp.route("/jobs/<job_id>/assets/<asset_id>/status", methods=["PUT"])
def change_asset_status(job_id, asset_id):
    data = json_body()
    asset = report_lifecycle.change_asset_status(
        asset_id,
        (data.get("status") or "").strip(),
        current_actor(),
        job_id=job_id,
        confirm=optional_bool(data.get("confirm")),
        timeout_ms=optional_int(data, "timeout_ms"),
    )
    return jsonify(job_asset_service.describe_asset(asset))


@assets_bp.route("/assets/<asset_id>", methods=["GET"])
def get_asset(asset_id):
    check_permission(current_actor(), "report_view")
    return jsonify(job_asset_service.describe_asset(asset_registry.get_asset(asset_id)))
