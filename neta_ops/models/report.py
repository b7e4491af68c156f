"""
NETA Ops — Technical report domain model.

Models:
    - TechnicalReport: canonical record produced by a report-template form.
    - ReportRevision: append-only revision history row (one per status change).
    - AssetReport: Report ↔ Asset link created when a report is submitted.

Lifecycle: draft → submitted → approved | rejected → archived.
A rejected report may be resubmitted.
"""

import uuid
from datetime import datetime, timezone

from neta_ops.models import db

# ── Constants ────────────────────────────────────────────────────────────────

REPORT_STATUSES = ("draft", "submitted", "approved", "rejected", "archived")

# action → allowed source states + target state
REPORT_ACTIONS = {
    "submit": {"from": ["draft"], "to": "submitted"},
    "resubmit": {"from": ["rejected"], "to": "submitted"},
    "approve": {"from": ["submitted"], "to": "approved"},
    "reject": {"from": ["submitted"], "to": "rejected"},
    "archive": {"from": ["submitted", "approved", "rejected"], "to": "archived"},
}

REPORT_TRANSITIONS = {
    "draft": ["submitted"],
    "submitted": ["approved", "rejected", "archived"],
    "approved": ["archived"],
    "rejected": ["archived", "submitted"],
    "archived": [],
}


def validate_report_transition(old_status, new_status):
    """Return True if TechnicalReport status transition is sanctioned."""
    return new_status in REPORT_TRANSITIONS.get(old_status, [])


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class TechnicalReport(db.Model):
    """
    A structured, versioned technical report with an approval lifecycle.

    Business rules:
    - ``status`` always equals the status of the newest revision.
    - ``current_version`` equals the number of revisions; it starts at 1 and
      grows by exactly one per status change.
    - ``report_data`` is opaque template payload; the core never reads it.
    """

    __tablename__ = "technical_reports"
    __table_args__ = (
        db.Index("idx_reports_job_status", "job_id", "status"),
        db.Index("idx_reports_status_submitted", "status", "submitted_at"),
        db.Index("idx_reports_type", "report_type"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    job_id = db.Column(db.String(64), nullable=False, comment="External job id")
    title = db.Column(db.String(255), nullable=False)
    report_type = db.Column(db.String(120), nullable=False, comment="Report template identifier")
    status = db.Column(db.String(20), nullable=False, default="draft")
    current_version = db.Column(db.Integer, nullable=False, default=1)

    report_data = db.Column(db.JSON, nullable=False, default=dict)

    created_by = db.Column(db.String(64), nullable=False)
    submitted_by = db.Column(db.String(64), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by = db.Column(db.String(64), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    revisions = db.relationship(
        "ReportRevision",
        order_by="ReportRevision.version",
        cascade="all, delete-orphan",
        lazy="select",
    )

    @property
    def revision_history(self) -> list[dict]:
        return [r.to_dict() for r in self.revisions]

    def to_dict(self, include_payload=True, include_history=True):
        d = {
            "id": self.id,
            "job_id": self.job_id,
            "title": self.title,
            "report_type": self.report_type,
            "status": self.status,
            "current_version": self.current_version,
            "created_by": self.created_by,
            "submitted_by": self.submitted_by,
            "submitted_at": _iso(self.submitted_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "review_comments": self.review_comments,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_payload:
            d["report_data"] = self.report_data or {}
        if include_history:
            d["revision_history"] = self.revision_history
        return d

    def __repr__(self):
        return f"<TechnicalReport {self.id}: {self.title[:40]} [{self.status} v{self.current_version}]>"


class ReportRevision(db.Model):
    """Immutable revision history entry. Rows are never updated."""

    __tablename__ = "report_revisions"
    __table_args__ = (
        db.UniqueConstraint("report_id", "version", name="uq_report_revision_version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.String(36),
        db.ForeignKey("technical_reports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    comments = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "version": self.version,
            "status": self.status,
            "timestamp": _iso(self.timestamp),
            "user": self.user_id,
            "comments": self.comments,
        }

    def __repr__(self):
        return f"<ReportRevision {self.report_id} v{self.version} {self.status}>"


class AssetReport(db.Model):
    """Report ↔ Asset link. An asset backs at most one report."""

    __tablename__ = "asset_reports"
    __table_args__ = (
        db.UniqueConstraint("asset_id", name="uq_asset_reports_asset"),
    )

    report_id = db.Column(
        db.String(36),
        db.ForeignKey("technical_reports.id", ondelete="CASCADE"),
        primary_key=True,
    )
    asset_id = db.Column(
        db.String(36),
        db.ForeignKey("assets.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "report_id": self.report_id,
            "asset_id": self.asset_id,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<AssetReport report={self.report_id} asset={self.asset_id}>"
