"""
NETA Ops — Notification domain model.

Models:
    - Notification: one row per emitted report event and recipient.

Rows are written in the same transaction as the transition they describe,
so the table doubles as the outbox read by the notification delivery
service. Delivery itself happens elsewhere.
"""

from datetime import datetime, timezone

from neta_ops.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CATEGORIES = {"report", "asset", "system"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}

EVENT_REPORT_STATUS_CHANGED = "reportStatusChanged"


class Notification(db.Model):
    """
    In-app notification / outbox entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.String(64), nullable=True, index=True)
    recipient = db.Column(db.String(150), default="all", index=True, comment="User id, 'reviewers' or 'all'")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="report")
    severity = db.Column(db.String(20), default="info")

    # Logical event carried by this notification
    event_type = db.Column(db.String(60), nullable=False, default=EVENT_REPORT_STATUS_CHANGED)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    # Link to source entity
    entity_type = db.Column(db.String(30), default="report")
    entity_id = db.Column(db.String(36), nullable=True)

    # Read / delivery tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "recipient": self.recipient,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
            "event_type": self.event_type,
            "payload": self.payload or {},
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
