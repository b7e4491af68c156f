"""
NETA Ops — Notification Service.

Creates and queries notification rows. ``reportStatusChanged`` events are
written through ``report_status_changed`` inside the lifecycle transaction;
the delivery collaborator reads the table as its outbox.
"""

import logging
from datetime import datetime, timezone

from neta_ops.models import db
from neta_ops.models.notification import EVENT_REPORT_STATUS_CHANGED, Notification

logger = logging.getLogger(__name__)

_STATUS_SEVERITY = {
    "submitted": "info",
    "approved": "success",
    "rejected": "warning",
    "archived": "info",
}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, title, message="", category="report", severity="info",
               recipient="all", job_id=None, event_type=EVENT_REPORT_STATUS_CHANGED,
               payload=None, entity_type="report", entity_id=None):
        """
        Add a single notification record to the current transaction.

        Returns:
            The flushed Notification instance. The caller commits.
        """
        notif = Notification(
            job_id=job_id,
            recipient=recipient,
            title=title,
            message=message,
            category=category,
            severity=severity,
            event_type=event_type,
            payload=payload or {},
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def report_status_changed(report, from_status, to_status, actor_id, recipient):
        """Emit ``reportStatusChanged{reportId, from, to, actorId}``."""
        payload = {
            "reportId": report.id,
            "from": from_status,
            "to": to_status,
            "actorId": actor_id,
        }
        logger.info(
            "reportStatusChanged",
            extra={
                "report_id": report.id,
                "job_id": report.job_id,
                "actor_id": actor_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )
        return NotificationService.create(
            title=f"Report '{report.title}' {to_status}",
            message=f"{report.report_type} report moved from {from_status} to {to_status}.",
            severity=_STATUS_SEVERITY.get(to_status, "info"),
            recipient=recipient,
            job_id=report.job_id,
            payload=payload,
            entity_type="report",
            entity_id=report.id,
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient="all", job_id=None, unread_only=False,
                           limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter(
            (Notification.recipient == recipient) | (Notification.recipient == "all")
        )
        if job_id:
            q = q.filter_by(job_id=job_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def list_events_for_report(report_id):
        """All status-change events for one report, oldest first."""
        return (
            Notification.query
            .filter_by(entity_type="report", entity_id=report_id, event_type=EVENT_REPORT_STATUS_CHANGED)
            .order_by(Notification.id.asc())
            .all()
        )

    @staticmethod
    def unread_count(recipient="all", job_id=None):
        """Return count of unread notifications."""
        q = Notification.query.filter(
            (Notification.recipient == recipient) | (Notification.recipient == "all")
        ).filter_by(is_read=False)
        if job_id:
            q = q.filter_by(job_id=job_id)
        return q.count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient="all", job_id=None):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter(
            (Notification.recipient == recipient) | (Notification.recipient == "all")
        ).filter_by(is_read=False)
        if job_id:
            q = q.filter_by(job_id=job_id)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
