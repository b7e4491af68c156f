"""
Notifications Blueprint — read side of the ``reportStatusChanged`` outbox.

Endpoints:
    GET    /api/v1/notifications
           Query params: recipient (default: current user), job_id, unread_only, limit, offset
    PATCH  /api/v1/notifications/<id>/read
    POST   /api/v1/notifications/read-all     Body: { "recipient"? }
    GET    /api/v1/reports/<report_id>/events

Reviewers may read the shared reviewer inbox; any other recipient needs
``notification_manage``.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from neta_ops.blueprints import json_body, optional_bool
from neta_ops.core.exceptions import AuthorizationError, NotFoundError
from neta_ops.middleware.actor_context import current_actor
from neta_ops.models import db
from neta_ops.models.notification import Notification
from neta_ops.services.notification import NotificationService
from neta_ops.services.permission import check_permission, has_permission

logger = logging.getLogger(__name__)

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


def _allowed_recipients(actor) -> set[str]:
    allowed = {actor.user_id, "all"}
    if actor.is_reviewer:
        allowed.add(current_app.config.get("REVIEWER_RECIPIENT", "reviewers"))
    return allowed


def _resolve_recipient(actor, requested) -> str:
    check_permission(actor, "report_view")
    recipient = (requested or "").strip() or actor.user_id
    if recipient not in _allowed_recipients(actor) and not has_permission(actor, "notification_manage"):
        raise AuthorizationError(actor.user_id, "notification_manage", role=actor.role.value)
    return recipient


def _int_arg(name, default, maximum=None):
    try:
        value = max(int(request.args.get(name, default)), 0)
    except (TypeError, ValueError):
        value = default
    return min(value, maximum) if maximum else value


@notifications_bp.route("/notifications", methods=["GET"])
def list_notifications():
    actor = current_actor()
    recipient = _resolve_recipient(actor, request.args.get("recipient"))
    items, total = NotificationService.list_for_recipient(
        recipient=recipient,
        job_id=request.args.get("job_id"),
        unread_only=optional_bool(request.args.get("unread_only")),
        limit=_int_arg("limit", 50, maximum=200),
        offset=_int_arg("offset", 0),
    )
    return jsonify({
        "recipient": recipient,
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(recipient=recipient),
    })


@notifications_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
def mark_notification_read(nid):
    actor = current_actor()
    check_permission(actor, "report_view")
    notif = db.session.get(Notification, nid)
    if notif is None or (
        notif.recipient not in _allowed_recipients(actor)
        and not has_permission(actor, "notification_manage")
    ):
        raise NotFoundError("Notification", str(nid))
    notif = NotificationService.mark_read(nid)
    return jsonify(notif.to_dict())


@notifications_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_notifications_read():
    actor = current_actor()
    recipient = _resolve_recipient(actor, json_body().get("recipient"))
    count = NotificationService.mark_all_read(recipient=recipient)
    return jsonify({"recipient": recipient, "marked": count})


@notifications_bp.route("/reports/<report_id>/events", methods=["GET"])
def report_events(report_id):
    check_permission(current_actor(), "report_view")
    events = NotificationService.list_events_for_report(report_id)
    return jsonify({"report_id": report_id, "items": [e.payload for e in events]})
